"""HTTP endpoints for uploading and managing mock configuration files."""

import asyncio
import logging
import tempfile
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import JSONResponse

from mockhost.errors import InvalidFormat
from mockhost.supervisor.config_store import MAX_CONFIG_BYTES, ConfigStore
from mockhost.supervisor.dependencies import get_store
from mockhost.supervisor.models import ConfigList, DeleteResponse, UploadResponse

logger = logging.getLogger("mockhost.supervisor.api_configs")

router = APIRouter(prefix="/api/mock")

UPLOAD_CHUNK_BYTES = 64 * 1024
JSON_CONTENT_TYPE = "application/json"


def _is_json_upload(upload: UploadFile) -> bool:
    """Accept a JSON content type or a ``.json`` filename."""
    content_type = (upload.content_type or "").split(";")[0].strip().lower()
    return content_type == JSON_CONTENT_TYPE or (upload.filename or "").endswith(".json")


async def _spool_upload(upload: UploadFile, upload_dir: Path) -> Path:
    """Copy the request body to a transient file, enforcing the size ceiling."""
    upload_dir.mkdir(parents=True, exist_ok=True)
    handle = tempfile.NamedTemporaryFile(
        dir=upload_dir,
        prefix="upload-",
        suffix=".part",
        delete=False,
    )
    spooled = Path(handle.name)
    try:
        with handle:
            written = 0
            while chunk := await upload.read(UPLOAD_CHUNK_BYTES):
                written += len(chunk)
                if written > MAX_CONFIG_BYTES:
                    raise InvalidFormat("Configuration exceeds the 5 MB size limit")
                handle.write(chunk)
    except BaseException:
        spooled.unlink(missing_ok=True)
        raise
    return spooled


@router.post("/upload", response_model=UploadResponse)
async def upload_config(
    config: Optional[UploadFile] = File(None),
    store: ConfigStore = Depends(get_store),
):
    """Store an uploaded JSON configuration under its sanitized filename."""
    if config is None or not config.filename:
        raise InvalidFormat("No file uploaded")
    if not _is_json_upload(config):
        raise InvalidFormat("Only JSON files are allowed")

    spooled = await _spool_upload(config, store.upload_dir)
    info = await asyncio.to_thread(store.upload_file, config.filename, spooled)
    return UploadResponse(
        filename=info.name,
        message="Configuration file uploaded successfully",
    )


@router.get("/configs", response_model=ConfigList)
async def list_configs(store: ConfigStore = Depends(get_store)):
    # Snapshot on the loop; the registry map is only touched from here.
    in_use = store.in_use_names()
    infos = await asyncio.to_thread(store.list, in_use)
    return [info.to_dict() for info in infos]


@router.delete("/configs/{filename}", response_model=DeleteResponse)
async def delete_config(filename: str, store: ConfigStore = Depends(get_store)):
    name = await store.delete(filename)
    return DeleteResponse(message=f"Configuration {name} deleted successfully")


@router.get("/configs/{filename}/download")
async def download_config(filename: str, store: ConfigStore = Depends(get_store)):
    """Return the stored JSON document as-is."""
    document = await asyncio.to_thread(store.download, filename)
    return JSONResponse(content=document)
