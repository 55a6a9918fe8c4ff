"""
Typed, validated settings built from a loaded Config.

Validation collects every violated constraint and raises a single
ConfigurationError listing all of them.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from dropsync.config.loader import Config
from dropsync.exceptions import ConfigurationError
from dropsync.remote.sftp import SFTPConfig

_DURATION = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$")
_DURATION_UNITS = {None: 1.0, "ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}
_UNRESOLVED = re.compile(r"\$\{[^}]+\}")


@dataclass(frozen=True)
class SyncOptions:
    remote_dir: str
    pattern: str
    local_dir: Path
    poll_interval: float
    max_files_per_cycle: int | None = None
    skip_existing_local: bool = True
    manifest_path: Path | None = None
    chunk_size: int = 32768


@dataclass(frozen=True)
class DispatchOptions:
    # 0 means unbounded
    capacity: int = 0
    shutdown_timeout: float = 30.0


@dataclass(frozen=True)
class ServiceOptions:
    # 0 disables escalation
    max_consecutive_failures: int = 5
    metrics_port: int | None = None


@dataclass(frozen=True)
class SyncSettings:
    sftp: SFTPConfig
    sync: SyncOptions
    dispatch: DispatchOptions = field(default_factory=DispatchOptions)
    service: ServiceOptions = field(default_factory=ServiceOptions)
    logging: dict[str, Any] = field(default_factory=dict)


class _Checker:
    """Reads typed values from one config section, recording violations."""

    def __init__(self, section: str, data: dict[str, Any], errors: list[str]):
        self.section = section
        self.data = data
        self.errors = errors

    def _key(self, key: str) -> str:
        return f"{self.section}.{key}"

    def _raw(self, key: str) -> Any:
        value = self.data.get(key)
        if isinstance(value, str):
            if _UNRESOLVED.search(value):
                self.errors.append(f"{self._key(key)}: references an unset environment variable ({value})")
                return None
            if not value.strip():
                return None
        return value

    def string(self, key: str, *, required: bool = False, default: str | None = None) -> str | None:
        value = self._raw(key)
        if value is None:
            if required:
                self.errors.append(f"{self._key(key)}: is required")
            return default
        if not isinstance(value, (str, int, float)) or isinstance(value, bool):
            self.errors.append(f"{self._key(key)}: must be a string, got {type(value).__name__}")
            return default
        return str(value)

    def integer(
        self,
        key: str,
        *,
        default: int | None = None,
        minimum: int | None = None,
        maximum: int | None = None,
    ) -> int | None:
        value = self._raw(key)
        if value is None:
            return default
        try:
            if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
                raise ValueError
            number = int(value)
        except (TypeError, ValueError):
            self.errors.append(f"{self._key(key)}: must be an integer, got {value!r}")
            return default
        if minimum is not None and number < minimum:
            self.errors.append(f"{self._key(key)}: must be >= {minimum}, got {number}")
        if maximum is not None and number > maximum:
            self.errors.append(f"{self._key(key)}: must be <= {maximum}, got {number}")
        return number

    def duration(self, key: str, *, default: float | None = None, required: bool = False) -> float | None:
        """Seconds, as a number or a string like ``30s``, ``5m``, ``250ms``."""
        value = self._raw(key)
        if value is None:
            if required:
                self.errors.append(f"{self._key(key)}: is required")
            return default
        if isinstance(value, bool):
            seconds = None
        elif isinstance(value, (int, float)):
            seconds = float(value)
        else:
            match = _DURATION.match(str(value))
            seconds = float(match.group(1)) * _DURATION_UNITS[match.group(2)] if match else None
        if seconds is None:
            self.errors.append(f"{self._key(key)}: must be a duration like 30, '30s' or '5m', got {value!r}")
            return default
        if seconds <= 0:
            self.errors.append(f"{self._key(key)}: must be > 0, got {value!r}")
        return seconds

    def boolean(self, key: str, *, default: bool) -> bool:
        value = self._raw(key)
        if value is None:
            return default
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("true", "yes", "1", "on"):
            return True
        if isinstance(value, str) and value.strip().lower() in ("false", "no", "0", "off"):
            return False
        self.errors.append(f"{self._key(key)}: must be a boolean, got {value!r}")
        return default


def build_settings(config: Config | dict[str, Any]) -> SyncSettings:
    """
    Validate configuration and build SyncSettings.

    Raises:
        ConfigurationError: listing every violated constraint
    """
    cfg = config if isinstance(config, Config) else Config(config)
    errors: list[str] = []

    for name in ("sftp", "sync"):
        if name not in cfg.data:
            errors.append(f"{name}: section is required")
        elif not isinstance(cfg.data[name], dict):
            errors.append(f"{name}: must be a mapping")

    sftp = _Checker("sftp", cfg.section("sftp"), errors)
    host = sftp.string("host", required=True)
    port = sftp.integer("port", default=22, minimum=1, maximum=65535)
    username = sftp.string("username", required=True)
    password = sftp.string("password")
    private_key_path = sftp.string("private_key_path")
    if password is None and private_key_path is None:
        errors.append("sftp: one of password or private_key_path is required")
    sftp_config = SFTPConfig(
        host=host or "",
        port=port or 22,
        username=username,
        password=password,
        private_key_path=private_key_path,
        private_key_passphrase=sftp.string("private_key_passphrase"),
        known_hosts_path=sftp.string("known_hosts_path"),
        connect_timeout=sftp.duration("connect_timeout", default=15.0) or 15.0,
    )

    sync = _Checker("sync", cfg.section("sync"), errors)
    remote_dir = sync.string("remote_dir", required=True)
    pattern = sync.string("pattern", required=True)
    local_dir = sync.string("local_dir", required=True)
    manifest_path = sync.string("manifest_path")
    sync_options = SyncOptions(
        remote_dir=remote_dir or "",
        pattern=pattern or "*",
        local_dir=Path(local_dir or "."),
        poll_interval=sync.duration("poll_interval", required=True) or 60.0,
        max_files_per_cycle=sync.integer("max_files_per_cycle", minimum=1),
        skip_existing_local=sync.boolean("skip_existing_local", default=True),
        manifest_path=Path(manifest_path) if manifest_path else None,
        chunk_size=sync.integer("chunk_size", default=32768, minimum=1) or 32768,
    )

    dispatch = _Checker("dispatch", cfg.section("dispatch"), errors)
    dispatch_options = DispatchOptions(
        capacity=dispatch.integer("capacity", default=0, minimum=0) or 0,
        shutdown_timeout=dispatch.duration("shutdown_timeout", default=30.0) or 30.0,
    )

    service = _Checker("service", cfg.section("service"), errors)
    failures = service.integer("max_consecutive_failures", default=5, minimum=0)
    service_options = ServiceOptions(
        max_consecutive_failures=5 if failures is None else failures,
        metrics_port=service.integer("metrics_port", minimum=1, maximum=65535),
    )

    if errors:
        source = f" in {cfg.source}" if cfg.source else ""
        raise ConfigurationError(
            f"Invalid configuration{source}:\n" + "\n".join(f"  - {e}" for e in errors),
            errors=errors,
        )

    return SyncSettings(
        sftp=sftp_config,
        sync=sync_options,
        dispatch=dispatch_options,
        service=service_options,
        logging=cfg.section("logging"),
    )
