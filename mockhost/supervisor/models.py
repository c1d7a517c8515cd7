from pydantic import BaseModel
from typing import List, Optional


class StartRequest(BaseModel):
    port: int
    configFile: str


class StopRequest(BaseModel):
    port: int


class StartResponse(BaseModel):
    success: bool = True
    port: int
    configFile: str
    message: str


class StopResponse(BaseModel):
    success: bool = True
    port: int
    message: str


class InstanceStatus(BaseModel):
    port: int
    configFile: str
    uptime: int
    uptimeFormatted: str
    pid: Optional[int] = None


class ConfigEntry(BaseModel):
    name: str
    size: str
    sizeBytes: int
    modified: str
    inUse: bool


class UploadResponse(BaseModel):
    success: bool = True
    filename: str
    message: str


class DeleteResponse(BaseModel):
    success: bool = True
    message: str


StatusList = List[InstanceStatus]
ConfigList = List[ConfigEntry]
