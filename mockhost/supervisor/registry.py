"""In-memory registry of running mock server instances keyed by port."""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import AsyncIterator

from mockhost.errors import InstanceNotFound, InvalidPort, PortInUse
from mockhost.supervisor.config_store import ConfigStore
from mockhost.supervisor.port_policy import PortPolicy
from mockhost.supervisor.process_supervisor import ManagedProcess, ProcessSupervisor

logger = logging.getLogger("mockhost.supervisor.registry")


def format_uptime(elapsed_seconds: float) -> str:
    """Render elapsed time in its two coarsest units, e.g. ``1h 1m``."""
    seconds = max(int(elapsed_seconds), 0)
    minutes, secs = divmod(seconds, 60)
    hours, mins = divmod(minutes, 60)
    days, hrs = divmod(hours, 24)
    if days > 0:
        return f"{days}d {hrs}h"
    if hours > 0:
        return f"{hours}h {mins}m"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


@dataclass
class Instance:
    port: int
    config_name: str
    started_at: datetime
    process: ManagedProcess

    def uptime_seconds(self, now: float | None = None) -> float:
        """Elapsed seconds on the monotonic clock; wall-clock jumps do not apply."""
        now = time.monotonic() if now is None else now
        return max(now - self.process.started_monotonic, 0.0)

    def to_status(self, now: float | None = None) -> dict:
        elapsed = self.uptime_seconds(now)
        return {
            "port": self.port,
            "configFile": self.config_name,
            "uptime": int(elapsed * 1000),
            "uptimeFormatted": format_uptime(elapsed),
            "pid": self.process.pid,
        }


class InstanceRegistry:
    """Single source of truth for which port runs which configuration.

    Every mutation and every consistent read happens under one registry-wide
    ``asyncio.Lock``; ``start`` holds it across probe, spawn and insert so two
    requests for the same port cannot both launch a process.
    """

    def __init__(
        self,
        store: ConfigStore,
        supervisor: ProcessSupervisor,
        port_policy: PortPolicy | None = None,
    ) -> None:
        self._store = store
        self._supervisor = supervisor
        self._port_policy = port_policy or PortPolicy()
        self._instances: dict[int, Instance] = {}
        self._lock = asyncio.Lock()
        store.bind_usage(self)

    @asynccontextmanager
    async def locked(self) -> AsyncIterator[None]:
        async with self._lock:
            yield

    def _reconcile_locked(self) -> list[Instance]:
        """Evict instances whose process has exited. Caller holds the lock."""
        evicted: list[Instance] = []
        for port, instance in list(self._instances.items()):
            if instance.process.is_alive():
                continue
            instance.process.close_log()
            del self._instances[port]
            evicted.append(instance)
            logger.warning(
                "Mock server on port %s (config=%s pid=%s) exited with code %s; evicted",
                port,
                instance.config_name,
                instance.process.pid,
                instance.process.returncode,
            )
        return evicted

    async def reconcile(self) -> list[Instance]:
        async with self._lock:
            return self._reconcile_locked()

    async def start(self, port: int, config_file: str) -> Instance:
        if not self._port_policy.is_allowed_range(port):
            raise InvalidPort(port)

        async with self._lock:
            self._reconcile_locked()
            if port in self._instances:
                raise PortInUse(port)
            if await self._port_policy.is_port_in_use(port):
                raise PortInUse(port)
            name, config_path = self._store.resolve(config_file)

            managed = await self._supervisor.spawn(config_path, port)
            instance = Instance(
                port=port,
                config_name=name.value,
                started_at=managed.started_at,
                process=managed,
            )
            self._instances[port] = instance

        logger.info("Started mock server on port %s with %s", port, name.value)
        return instance

    async def stop(self, port: int) -> Instance:
        """Terminate and deregister; the entry is removed even if terminate fails."""
        async with self._lock:
            instance = self._instances.get(port)
            if instance is None:
                raise InstanceNotFound(port)
            try:
                exit_code = await self._supervisor.terminate(instance.process)
            finally:
                instance.process.close_log()
                self._instances.pop(port, None)

        logger.info("Stopped mock server on port %s (exit code %s)", port, exit_code)
        return instance

    async def status(self) -> list[dict]:
        async with self._lock:
            self._reconcile_locked()
            now = time.monotonic()
            return [
                self._instances[port].to_status(now) for port in sorted(self._instances)
            ]

    async def is_config_in_use(self, name: str) -> bool:
        async with self._lock:
            self._reconcile_locked()
            return name in self.config_names_in_use()

    def config_names_in_use(self) -> set[str]:
        """Snapshot of configs referenced by live instances; does not mutate."""
        return {
            instance.config_name
            for instance in self._instances.values()
            if instance.process.is_alive()
        }

    def get(self, port: int) -> Instance | None:
        return self._instances.get(port)

    def __len__(self) -> int:
        return len(self._instances)

    async def shutdown(self) -> None:
        """Stop every instance; used when the management server exits."""
        async with self._lock:
            ports = sorted(self._instances)
        logger.info("Shutting down %d mock servers...", len(ports))
        for port in ports:
            try:
                await self.stop(port)
            except InstanceNotFound:
                continue
            except Exception:
                logger.exception("Failed to stop mock server on port %s", port)

