"""
SFTP remote store backed by paramiko.
"""

from __future__ import annotations

import socket
import stat
from dataclasses import dataclass
from typing import Any, BinaryIO

import paramiko

from dropsync.exceptions import ListError, RemoteConnectionError, RemoteNotFoundError, TransferError
from dropsync.remote.base import RemoteEntry
from dropsync.utils.logging import get_logger

logger = get_logger("dropsync.remote.sftp")

# Key classes tried in order when loading a private key file
_KEY_CLASSES: tuple[type[paramiko.PKey], ...] = (paramiko.RSAKey, paramiko.Ed25519Key, paramiko.ECDSAKey)


@dataclass(frozen=True)
class SFTPConfig:
    host: str
    port: int = 22
    username: str | None = None
    password: str | None = None
    private_key_path: str | None = None
    private_key_passphrase: str | None = None
    known_hosts_path: str | None = None
    connect_timeout: float = 15.0

    @classmethod
    def from_dict(cls, cfg: dict[str, Any]) -> SFTPConfig:
        return cls(
            host=cfg.get("host", ""),
            port=int(cfg.get("port", 22)),
            username=cfg.get("username"),
            password=cfg.get("password"),
            private_key_path=cfg.get("private_key_path"),
            private_key_passphrase=cfg.get("private_key_passphrase"),
            known_hosts_path=cfg.get("known_hosts_path"),
            connect_timeout=float(cfg.get("connect_timeout", 15.0)),
        )


class SFTPSession:
    """One authenticated SFTP session (transport + channel)."""

    def __init__(self, transport: paramiko.Transport, client: paramiko.SFTPClient):
        self._transport: paramiko.Transport | None = transport
        self._client: paramiko.SFTPClient | None = client

    @property
    def client(self) -> paramiko.SFTPClient:
        if self._client is None:
            raise RemoteConnectionError("SFTP session is closed")
        return self._client

    def list(self, path: str) -> list[RemoteEntry]:
        try:
            attrs = self.client.listdir_attr(path)
        except (OSError, paramiko.SSHException) as e:
            raise ListError(path, str(e)) from e

        return [
            RemoteEntry(
                name=attr.filename,
                size=attr.st_size,
                mtime=attr.st_mtime,
                is_dir=bool(attr.st_mode is not None and stat.S_ISDIR(attr.st_mode)),
            )
            for attr in attrs
        ]

    def open_read(self, path: str) -> BinaryIO:
        try:
            handle = self.client.open(path, "rb")
        except FileNotFoundError as e:
            raise RemoteNotFoundError(path) from e
        except (OSError, paramiko.SSHException) as e:
            raise TransferError(path, str(e)) from e
        handle.prefetch()
        return handle

    def close(self) -> None:
        """Close SFTP client + underlying transport."""
        try:
            if self._client is not None:
                self._client.close()
        finally:
            self._client = None
        try:
            if self._transport is not None:
                self._transport.close()
        finally:
            self._transport = None

    def __enter__(self) -> SFTPSession:
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc: BaseException | None, tb: Any) -> None:
        self.close()


class SFTPStoreClient:
    """
    Opens SFTP sessions for the synchronizer.

    Every ``connect()`` returns a fresh session; the synchronizer opens one
    per poll cycle and closes it on every exit path.
    """

    def __init__(self, config: SFTPConfig):
        self.config = config

    def _load_private_key(self) -> paramiko.PKey | None:
        cfg = self.config
        if not cfg.private_key_path:
            return None

        last_error: Exception | None = None
        for key_cls in _KEY_CLASSES:
            try:
                return key_cls.from_private_key_file(cfg.private_key_path, password=cfg.private_key_passphrase)
            except (paramiko.SSHException, ValueError) as e:
                last_error = e
        raise RemoteConnectionError(
            f"Cannot load private key '{cfg.private_key_path}': {last_error}",
            details={"host": cfg.host},
        )

    def _expected_host_key(self) -> paramiko.PKey | None:
        """Host key from known_hosts, or None when host keys are not verified."""
        cfg = self.config
        if not cfg.known_hosts_path:
            return None

        try:
            host_keys = paramiko.HostKeys(cfg.known_hosts_path)
        except OSError as e:
            raise RemoteConnectionError(f"Cannot read known_hosts '{cfg.known_hosts_path}': {e}") from e

        lookup_name = cfg.host if cfg.port == 22 else f"[{cfg.host}]:{cfg.port}"
        entry = host_keys.lookup(lookup_name)
        if not entry:
            raise RemoteConnectionError(
                f"Host '{lookup_name}' not found in known_hosts '{cfg.known_hosts_path}'",
                details={"host": cfg.host},
            )
        return next(iter(entry.values()))

    def connect(self) -> SFTPSession:
        """Open an authenticated session; raises RemoteConnectionError."""
        cfg = self.config
        if not cfg.host:
            raise RemoteConnectionError("SFTP connection missing host")

        pkey = self._load_private_key()
        hostkey = self._expected_host_key()

        transport: paramiko.Transport | None = None
        try:
            sock = socket.create_connection((cfg.host, cfg.port), timeout=cfg.connect_timeout)
            transport = paramiko.Transport(sock)
            transport.banner_timeout = cfg.connect_timeout
            transport.auth_timeout = cfg.connect_timeout
            transport.connect(hostkey=hostkey, username=cfg.username, password=cfg.password, pkey=pkey)
            client = paramiko.SFTPClient.from_transport(transport)
            if client is None:
                raise paramiko.SSHException("SFTP subsystem unavailable")
        except paramiko.AuthenticationException as e:
            if transport is not None:
                transport.close()
            raise RemoteConnectionError(
                f"Authentication to {cfg.host}:{cfg.port} as '{cfg.username}' failed: {e}",
                details={"host": cfg.host, "port": cfg.port},
            ) from e
        except (OSError, paramiko.SSHException, EOFError) as e:
            if transport is not None:
                transport.close()
            raise RemoteConnectionError(
                f"Cannot connect to {cfg.host}:{cfg.port}: {e}",
                details={"host": cfg.host, "port": cfg.port},
            ) from e

        client.get_channel().settimeout(cfg.connect_timeout)
        logger.debug(f"Opened SFTP session to {cfg.host}:{cfg.port}")
        return SFTPSession(transport, client)
