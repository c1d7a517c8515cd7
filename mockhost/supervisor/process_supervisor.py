"""Spawn and reap external mock-server subprocesses."""

from __future__ import annotations

import asyncio
import logging
import subprocess
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import IO, Callable, Sequence

from mockhost.errors import SpawnFailed, UnknownIO

logger = logging.getLogger("mockhost.supervisor.process_supervisor")


@dataclass
class ManagedProcess:
    """A running mock server and the log sink its output is piped into."""

    process: subprocess.Popen
    log_file: IO[str]
    log_path: Path
    started_at: datetime
    started_monotonic: float = field(default_factory=time.monotonic)

    @property
    def pid(self) -> int:
        return self.process.pid

    def is_alive(self) -> bool:
        return self.process.poll() is None

    @property
    def returncode(self) -> int | None:
        return self.process.returncode

    def close_log(self) -> None:
        if not self.log_file.closed:
            self.log_file.close()


class ProcessSupervisor:
    """Launches ``<command> start --data <config> --port <port>`` per instance."""

    def __init__(
        self,
        command: Sequence[str],
        logs_dir: Path,
        *,
        terminate_timeout: float = 5.0,
        startup_grace: float = 0.5,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
    ) -> None:
        if not command:
            raise ValueError("mock server command must not be empty")
        self.command = list(command)
        self.logs_dir = Path(logs_dir)
        self.terminate_timeout = terminate_timeout
        self.startup_grace = startup_grace
        self._popen = popen

    def log_path_for(self, port: int) -> Path:
        return self.logs_dir / f"mock-{port}.log"

    def build_command(self, config_path: Path, port: int) -> list[str]:
        return [*self.command, "start", "--data", str(config_path), "--port", str(port)]

    async def spawn(self, config_path: Path, port: int) -> ManagedProcess:
        """Start the mock server; the log sink is closed if anything fails."""
        args = self.build_command(config_path, port)
        log_path = self.log_path_for(port)
        try:
            self.logs_dir.mkdir(parents=True, exist_ok=True)
            log_file = open(log_path, "a", encoding="utf-8")
        except OSError as exc:
            raise UnknownIO(f"Failed to open log file {log_path}: {exc}") from exc

        logger.info("Running command: %s", " ".join(args))
        try:
            process = self._popen(
                args,
                stdin=subprocess.DEVNULL,
                stdout=log_file,
                stderr=subprocess.STDOUT,
                text=True,
            )
        except OSError as exc:
            log_file.close()
            raise SpawnFailed(f"Failed to launch {args[0]}: {exc}") from exc

        managed = ManagedProcess(
            process=process,
            log_file=log_file,
            log_path=log_path,
            started_at=datetime.now(),
        )
        if self.startup_grace > 0:
            try:
                exit_code = await asyncio.to_thread(_wait_or_none, process, self.startup_grace)
            except BaseException:
                # Cancelled mid-grace: nobody will register this process.
                logger.warning("Start on port %s abandoned; reaping pid=%s", port, process.pid)
                self.terminate_sync(managed)
                raise
            if exit_code is not None:
                managed.close_log()
                raise SpawnFailed(
                    f"Mock server on port {port} exited during startup with code "
                    f"{exit_code}; see {log_path}"
                )
        logger.info("Spawned mock server pid=%s port=%s log=%s", process.pid, port, log_path)
        return managed

    def terminate_sync(self, managed: ManagedProcess) -> int | None:
        """SIGTERM, wait up to the timeout, then SIGKILL. Always closes the log."""
        process = managed.process
        try:
            if process.poll() is None:
                process.terminate()
                try:
                    process.wait(timeout=self.terminate_timeout)
                except subprocess.TimeoutExpired:
                    logger.warning(
                        "Mock server pid=%s ignored SIGTERM for %.1fs; killing",
                        process.pid,
                        self.terminate_timeout,
                    )
                    process.kill()
                    try:
                        process.wait(timeout=self.terminate_timeout)
                    except subprocess.TimeoutExpired as exc:
                        raise UnknownIO(
                            f"Mock server pid={process.pid} did not exit after SIGKILL"
                        ) from exc
            return process.returncode
        except ProcessLookupError:
            return process.poll()
        finally:
            managed.close_log()

    async def terminate(self, managed: ManagedProcess) -> int | None:
        return await asyncio.to_thread(self.terminate_sync, managed)


def _wait_or_none(process: subprocess.Popen, timeout: float) -> int | None:
    """Return the exit code if the process ends within ``timeout``."""
    try:
        return process.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        return None
