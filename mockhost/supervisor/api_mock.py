"""HTTP endpoints for starting, stopping and listing mock server instances."""

import logging

from fastapi import APIRouter, Depends

from mockhost.supervisor.dependencies import get_registry
from mockhost.supervisor.models import (
    StartRequest,
    StartResponse,
    StatusList,
    StopRequest,
    StopResponse,
)
from mockhost.supervisor.registry import InstanceRegistry

logger = logging.getLogger("mockhost.supervisor.api_mock")

router = APIRouter(prefix="/api/mock")


@router.post("/start", response_model=StartResponse)
async def start_mock(
    request: StartRequest,
    registry: InstanceRegistry = Depends(get_registry),
):
    """Launch a mock server for ``configFile`` bound to ``port``."""
    instance = await registry.start(request.port, request.configFile)
    return StartResponse(
        port=instance.port,
        configFile=instance.config_name,
        message=f"Mock server started on port {instance.port}",
    )


@router.post("/stop", response_model=StopResponse)
async def stop_mock(
    request: StopRequest,
    registry: InstanceRegistry = Depends(get_registry),
):
    await registry.stop(request.port)
    return StopResponse(
        port=request.port,
        message=f"Mock server on port {request.port} stopped",
    )


@router.get("/status", response_model=StatusList)
async def mock_status(registry: InstanceRegistry = Depends(get_registry)):
    """Return running instances with their uptime."""
    return await registry.status()
