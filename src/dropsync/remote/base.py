"""
Remote file store capability.

The synchronizer only needs three things from a remote store: open a
session, list a directory, and stream one file. Transports (paramiko SFTP,
the in-memory fake) implement these protocols.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, BinaryIO, Protocol


@dataclass(frozen=True)
class RemoteEntry:
    """One listed entry of the remote directory, snapshotted per cycle."""

    name: str
    size: int | None = None
    mtime: int | None = None
    is_dir: bool = False


class RemoteSession(Protocol):
    """
    An open, authenticated session.

    ``list`` raises ListError; ``open_read`` raises RemoteNotFoundError for
    missing entries and TransferError for other read failures. The returned
    stream is closed by the caller.
    """

    def list(self, path: str) -> list[RemoteEntry]: ...

    def open_read(self, path: str) -> BinaryIO: ...

    def close(self) -> None: ...

    def __enter__(self) -> RemoteSession: ...

    def __exit__(self, exc_type: type[BaseException] | None, exc: BaseException | None, tb: Any) -> None: ...


class RemoteStoreClient(Protocol):
    """Opens sessions; raises RemoteConnectionError on auth/network failure."""

    def connect(self) -> RemoteSession: ...


def join_remote(directory: str, name: str) -> str:
    """Join a remote directory and entry name with a single '/'."""
    if not directory:
        return name
    return f"{directory.rstrip('/')}/{name}"
