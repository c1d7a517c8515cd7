"""Request-scoped accessors for objects created by the app factory."""

from fastapi import Request

from mockhost.supervisor.config_store import ConfigStore
from mockhost.supervisor.registry import InstanceRegistry


def get_registry(request: Request) -> InstanceRegistry:
    return request.app.state.registry


def get_store(request: Request) -> ConfigStore:
    return request.app.state.store
