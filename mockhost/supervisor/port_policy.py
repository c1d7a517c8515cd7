"""Port range policy and best-effort OS occupancy probing."""

from __future__ import annotations

import asyncio
import logging
import subprocess
from typing import Callable

logger = logging.getLogger("mockhost.supervisor.port_policy")

ALLOWED_PORT_MIN = 9001
ALLOWED_PORT_MAX = 9999
PROBE_TIMEOUT_SECONDS = 5

# Tried in order; the first tool that runs successfully decides.
LISTEN_PROBE_COMMANDS = (
    ["netstat", "-tln"],
    ["ss", "-tln"],
)


def is_allowed_range(port: object) -> bool:
    """Return True only for integer ports inside [9001, 9999]."""
    if isinstance(port, bool) or not isinstance(port, int):
        return False
    return ALLOWED_PORT_MIN <= port <= ALLOWED_PORT_MAX


def _listening_ports_output_mentions(output: str, port: int) -> bool:
    """Return True when a listing line has a local address ending in ``:port``."""
    suffix = str(port)
    for raw_line in output.splitlines():
        for token in raw_line.split():
            if ":" not in token:
                continue
            if token.rsplit(":", maxsplit=1)[-1] == suffix:
                return True
    return False


class PortPolicy:
    """Gate port allocation on range and live listening-socket state."""

    def __init__(
        self,
        run: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        probe_commands: tuple[list[str], ...] = LISTEN_PROBE_COMMANDS,
    ) -> None:
        self._run = run
        self._probe_commands = probe_commands

    @staticmethod
    def is_allowed_range(port: object) -> bool:
        return is_allowed_range(port)

    def is_port_in_use_sync(self, port: int) -> bool:
        """Query listening sockets; an inconclusive probe counts as free."""
        for args in self._probe_commands:
            try:
                result = self._run(
                    args,
                    capture_output=True,
                    text=True,
                    timeout=PROBE_TIMEOUT_SECONDS,
                )
            except (OSError, subprocess.SubprocessError) as exc:
                logger.debug("Port probe %s unavailable: %s", args[0], exc)
                continue
            if result.returncode != 0:
                logger.debug(
                    "Port probe %s exited with %s: %s",
                    args[0],
                    result.returncode,
                    (result.stderr or "").strip(),
                )
                continue
            return _listening_ports_output_mentions(result.stdout or "", port)
        logger.warning("Port probe inconclusive for %s; assuming it is free", port)
        return False

    async def is_port_in_use(self, port: int) -> bool:
        return await asyncio.to_thread(self.is_port_in_use_sync, port)
