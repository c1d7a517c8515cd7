"""Environment-driven runtime settings for the mock host supervisor."""

from __future__ import annotations

import os
import shlex
from dataclasses import dataclass
from pathlib import Path

from platformdirs import user_data_dir

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3500
DEFAULT_MOCK_COMMAND = "mockoon-cli"
DEFAULT_TERMINATE_TIMEOUT = 5.0
DEFAULT_STARTUP_GRACE = 0.5
DEFAULT_RECONCILE_INTERVAL = 30.0


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc
    if value < 0:
        raise ValueError(f"{name} must not be negative")
    return value


def _env_dir(name: str, default: Path) -> Path:
    raw = os.getenv(name, "").strip()
    return Path(raw).expanduser() if raw else default


@dataclass(frozen=True)
class Settings:
    """Resolved directories, subprocess command and supervision timings."""

    configs_dir: Path
    upload_dir: Path
    logs_dir: Path
    mock_command: tuple[str, ...] = (DEFAULT_MOCK_COMMAND,)
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    development: bool = False
    terminate_timeout: float = DEFAULT_TERMINATE_TIMEOUT
    startup_grace: float = DEFAULT_STARTUP_GRACE
    reconcile_interval: float = DEFAULT_RECONCILE_INTERVAL
    log_level: str = "INFO"

    @classmethod
    def for_directory(cls, base_dir: Path, **overrides) -> "Settings":
        """Build settings rooted at one base directory (used by tests and embedding)."""
        base_dir = Path(base_dir)
        return cls(
            configs_dir=base_dir / "configs",
            upload_dir=base_dir / "uploads",
            logs_dir=base_dir / "logs",
            **overrides,
        )

    def ensure_dirs(self) -> None:
        for directory in (self.configs_dir, self.upload_dir, self.logs_dir):
            directory.mkdir(parents=True, exist_ok=True)


def load_settings() -> Settings:
    """Read settings from MOCKHOST_* environment variables."""
    home = _env_dir("MOCKHOST_HOME", Path(user_data_dir("mockhost")))
    command = shlex.split(os.getenv("MOCKHOST_MOCK_COMMAND", DEFAULT_MOCK_COMMAND))
    if not command:
        raise ValueError("MOCKHOST_MOCK_COMMAND must not be empty")
    port_raw = os.getenv("MOCKHOST_PORT", "").strip()
    return Settings(
        configs_dir=_env_dir("MOCKHOST_CONFIGS_DIR", home / "configs"),
        upload_dir=_env_dir("MOCKHOST_UPLOAD_DIR", home / "uploads"),
        logs_dir=_env_dir("MOCKHOST_LOGS_DIR", home / "logs"),
        mock_command=tuple(command),
        host=os.getenv("MOCKHOST_HOST", DEFAULT_HOST).strip() or DEFAULT_HOST,
        port=int(port_raw) if port_raw else DEFAULT_PORT,
        development=os.getenv("MOCKHOST_ENV", "production").strip().lower() == "development",
        terminate_timeout=_env_float("MOCKHOST_TERMINATE_TIMEOUT", DEFAULT_TERMINATE_TIMEOUT),
        startup_grace=_env_float("MOCKHOST_STARTUP_GRACE", DEFAULT_STARTUP_GRACE),
        reconcile_interval=_env_float("MOCKHOST_RECONCILE_INTERVAL", DEFAULT_RECONCILE_INTERVAL),
        log_level=os.getenv("MOCKHOST_LOG_LEVEL", "INFO").strip().upper() or "INFO",
    )
