"""Filesystem-backed store of named JSON mock configurations."""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncContextManager, Protocol

from mockhost.errors import (
    ConfigInUse,
    ConfigNotFound,
    DuplicateName,
    InvalidFormat,
    UnknownIO,
)

logger = logging.getLogger("mockhost.supervisor.config_store")

MAX_CONFIG_BYTES = 5 * 1024 * 1024
CONFIG_SUFFIX = ".json"
MAX_NAME_LENGTH = 255

_UNSAFE_CHARS_RE = re.compile(r"[^A-Za-z0-9.-]")
_STORED_NAME_RE = re.compile(r"^[A-Za-z0-9._-]+\.json$")


@dataclass(frozen=True)
class ConfigName:
    """Validated configuration filename; safe to join onto the configs directory."""

    value: str

    @classmethod
    def from_upload(cls, raw: str) -> "ConfigName":
        """Sanitize a client-supplied filename into a storable name."""
        candidate = _UNSAFE_CHARS_RE.sub("_", str(raw or "").strip())
        if not candidate.endswith(CONFIG_SUFFIX):
            candidate += CONFIG_SUFFIX
        if candidate == CONFIG_SUFFIX:
            raise InvalidFormat("Configuration filename is empty")
        if len(candidate) > MAX_NAME_LENGTH:
            raise InvalidFormat("Configuration filename is too long")
        return cls(candidate)

    @classmethod
    def parse(cls, raw: str) -> "ConfigName":
        """Accept an already-stored name; anything else cannot exist on disk."""
        value = str(raw or "")
        if len(value) > MAX_NAME_LENGTH or not _STORED_NAME_RE.match(value):
            raise ConfigNotFound(value)
        return cls(value)

    def __str__(self) -> str:
        return self.value


class ConfigUsage(Protocol):
    """What the store needs from the instance registry."""

    def config_names_in_use(self) -> set[str]: ...

    def locked(self) -> AsyncContextManager[Any]: ...


def format_file_size(size_bytes: int) -> str:
    """Return a human-readable size such as ``1.5 KB``."""
    if size_bytes <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value = float(size_bytes)
    exponent = 0
    while value >= 1024 and exponent < len(units) - 1:
        value /= 1024
        exponent += 1
    return f"{round(value, 2):g} {units[exponent]}"


@dataclass(frozen=True)
class ConfigInfo:
    name: str
    size_bytes: int
    modified: datetime
    in_use: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "size": format_file_size(self.size_bytes),
            "sizeBytes": self.size_bytes,
            "modified": self.modified.isoformat(),
            "inUse": self.in_use,
        }


def validate_document(content: bytes) -> Any:
    """Return the parsed JSON document or raise InvalidFormat."""
    if len(content) > MAX_CONFIG_BYTES:
        raise InvalidFormat("Configuration exceeds the 5 MB size limit")
    try:
        return json.loads(content.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise InvalidFormat(f"Configuration is not valid JSON: {exc}") from exc


class ConfigStore:
    """Coordinates list/upload/delete/download of configuration documents."""

    def __init__(
        self,
        configs_dir: Path,
        upload_dir: Path,
        usage: ConfigUsage | None = None,
    ) -> None:
        self.configs_dir = Path(configs_dir)
        self.upload_dir = Path(upload_dir)
        self._usage = usage

    def bind_usage(self, usage: ConfigUsage) -> None:
        self._usage = usage

    def in_use_names(self) -> set[str]:
        if self._usage is None:
            return set()
        return self._usage.config_names_in_use()

    def path_for(self, name: ConfigName) -> Path:
        return self.configs_dir / name.value

    def resolve(self, raw: str) -> tuple[ConfigName, Path]:
        """Return the name and path of an existing configuration."""
        name = ConfigName.parse(raw)
        path = self.path_for(name)
        if not path.is_file():
            raise ConfigNotFound(name.value)
        return name, path

    def list(self, in_use: set[str] | None = None) -> list[ConfigInfo]:
        """Enumerate stored configurations with their in-use flag.

        Files whose names could never come out of upload sanitization are
        skipped, since no other operation can address them.
        """
        try:
            self.configs_dir.mkdir(parents=True, exist_ok=True)
            entries = sorted(self.configs_dir.iterdir(), key=lambda p: p.name)
        except OSError as exc:
            raise UnknownIO(f"Failed to list configurations: {exc}") from exc

        if in_use is None:
            in_use = self.in_use_names()
        infos: list[ConfigInfo] = []
        for path in entries:
            if not path.name.endswith(CONFIG_SUFFIX) or not path.is_file():
                continue
            if not _STORED_NAME_RE.match(path.name):
                logger.warning("Skipping unaddressable configuration file %r", path.name)
                continue
            try:
                stats = path.stat()
            except FileNotFoundError:
                # Deleted between listing and stat.
                continue
            except OSError as exc:
                raise UnknownIO(f"Failed to stat {path.name}: {exc}") from exc
            infos.append(
                ConfigInfo(
                    name=path.name,
                    size_bytes=stats.st_size,
                    modified=datetime.fromtimestamp(stats.st_mtime, tz=timezone.utc),
                    in_use=path.name in in_use,
                )
            )
        return infos

    def upload(self, filename: str, content: bytes) -> ConfigInfo:
        """Store a new configuration; never overwrites an existing name."""
        name = ConfigName.from_upload(filename)
        validate_document(content)
        self._publish(name, content)

        logger.info("Stored configuration %s (%d bytes)", name.value, len(content))
        return ConfigInfo(
            name=name.value,
            size_bytes=len(content),
            modified=datetime.now(timezone.utc),
        )

    def _publish(self, name: ConfigName, content: bytes) -> None:
        """Write to a hidden staging file, then hard-link it into place.

        The link either creates the final name with complete contents or
        fails with FileExistsError, so readers never see a partial document.
        """
        path = self.path_for(name)
        try:
            self.configs_dir.mkdir(parents=True, exist_ok=True)
            handle = tempfile.NamedTemporaryFile(
                dir=self.configs_dir,
                prefix=".staging-",
                suffix=".part",
                delete=False,
            )
        except OSError as exc:
            raise UnknownIO(f"Failed to create {name.value}: {exc}") from exc

        staging = Path(handle.name)
        try:
            with handle:
                handle.write(content)
            os.link(staging, path)
        except FileExistsError as exc:
            raise DuplicateName(name.value) from exc
        except OSError as exc:
            raise UnknownIO(f"Failed to write {name.value}: {exc}") from exc
        finally:
            staging.unlink(missing_ok=True)

    def upload_file(self, filename: str, spooled_path: Path) -> ConfigInfo:
        """Store a spooled upload artifact and discard it on every path."""
        try:
            try:
                size = spooled_path.stat().st_size
                if size > MAX_CONFIG_BYTES:
                    raise InvalidFormat("Configuration exceeds the 5 MB size limit")
                content = spooled_path.read_bytes()
            except OSError as exc:
                raise UnknownIO(f"Failed to read upload: {exc}") from exc
            return self.upload(filename, content)
        finally:
            spooled_path.unlink(missing_ok=True)

    async def delete(self, raw: str) -> str:
        """Remove a configuration unless a live instance references it."""
        name = ConfigName.parse(raw)
        if self._usage is None:
            return self._unlink(name)
        async with self._usage.locked():
            return self._unlink(name)

    def _unlink(self, name: ConfigName) -> str:
        path = self.path_for(name)
        if not path.is_file():
            raise ConfigNotFound(name.value)
        if name.value in self.in_use_names():
            raise ConfigInUse(name.value)
        try:
            path.unlink()
        except FileNotFoundError as exc:
            raise ConfigNotFound(name.value) from exc
        except OSError as exc:
            raise UnknownIO(f"Failed to delete {name.value}: {exc}") from exc
        logger.info("Deleted configuration %s", name.value)
        return name.value

    def download(self, raw: str) -> Any:
        """Return the parsed JSON document stored under ``raw``."""
        name, path = self.resolve(raw)
        try:
            content = path.read_bytes()
        except FileNotFoundError as exc:
            raise ConfigNotFound(name.value) from exc
        except OSError as exc:
            raise UnknownIO(f"Failed to read {name.value}: {exc}") from exc
        try:
            return json.loads(content.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise UnknownIO(f"Stored configuration {name.value} is not valid JSON") from exc
