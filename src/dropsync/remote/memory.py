"""
In-memory remote store for testing.

Holds a single flat directory of named byte blobs and supports fault
injection, so synchronizer behaviour can be tested without an SFTP server.

Example:
    from dropsync.remote.memory import InMemoryRemoteStore

    store = InMemoryRemoteStore("/deliveries")
    store.put("File1_data.csv", b"a,b\\n1,2\\n")
    store.fail_after("File2_data.csv", 4)   # interrupt mid-stream

    with store.connect() as session:
        entries = session.list("/deliveries")
"""

from __future__ import annotations

import io
import threading
from typing import Any, BinaryIO

from dropsync.exceptions import ListError, RemoteConnectionError, RemoteNotFoundError, TransferError
from dropsync.remote.base import RemoteEntry


class _InterruptingReader(io.RawIOBase):
    """Serves ``limit`` bytes of ``data`` and then raises TransferError."""

    def __init__(self, name: str, data: bytes, limit: int):
        self._name = name
        self._data = data
        self._limit = limit
        self._pos = 0

    def readable(self) -> bool:
        return True

    def readinto(self, buffer: Any) -> int:
        if self._pos >= self._limit:
            raise TransferError(self._name, f"connection reset after {self._pos} bytes")
        chunk = self._data[self._pos : min(self._limit, self._pos + len(buffer))]
        buffer[: len(chunk)] = chunk
        self._pos += len(chunk)
        return len(chunk)


class _GatedReader(io.BytesIO):
    """Blocks the first read until ``gate`` is set."""

    def __init__(self, data: bytes, gate: threading.Event):
        super().__init__(data)
        self._gate = gate

    def read(self, size: int | None = -1) -> bytes:
        self._gate.wait()
        return super().read(size)


class InMemorySession:
    def __init__(self, store: InMemoryRemoteStore):
        self._store = store
        self.closed = False

    def list(self, path: str) -> list[RemoteEntry]:
        store = self._store
        if store.list_error is not None:
            raise ListError(path, str(store.list_error))
        if path.rstrip("/") != store.directory.rstrip("/"):
            raise ListError(path, "no such directory")
        with store._lock:
            entries = [RemoteEntry(name=name, size=len(data), mtime=0) for name, data in store._files.items()]
            entries.extend(RemoteEntry(name=name, is_dir=True) for name in store._dirs)
        return entries

    def open_read(self, path: str) -> BinaryIO:
        store = self._store
        name = path.rsplit("/", 1)[-1]
        with store._lock:
            if name not in store._files:
                raise RemoteNotFoundError(path)
            data = store._files[name]
            limit = store._interrupts.get(name)
            store.reads.append(name)
        if limit is not None:
            return _InterruptingReader(name, data, limit)
        if store.gate is not None:
            return _GatedReader(data, store.gate)
        return io.BytesIO(data)

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            with self._store._lock:
                self._store.open_sessions -= 1

    def __enter__(self) -> InMemorySession:
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc: BaseException | None, tb: Any) -> None:
        self.close()


class InMemoryRemoteStore:
    """
    In-memory remote store for tests and local development.

    Listing order is insertion order. Counters (``sessions_opened``,
    ``open_sessions``, ``reads``) let tests assert session hygiene and
    fetch counts.
    """

    def __init__(self, directory: str = "/"):
        self.directory = directory
        self._files: dict[str, bytes] = {}
        self._dirs: list[str] = []
        self._interrupts: dict[str, int] = {}
        self._lock = threading.Lock()

        self.connect_error: Exception | None = None
        self.list_error: Exception | None = None
        self.gate: threading.Event | None = None

        self.sessions_opened = 0
        self.open_sessions = 0
        self.reads: list[str] = []

    def put(self, name: str, data: bytes) -> None:
        with self._lock:
            self._files[name] = data

    def mkdir(self, name: str) -> None:
        with self._lock:
            self._dirs.append(name)

    def remove(self, name: str) -> None:
        with self._lock:
            self._files.pop(name, None)

    def fail_after(self, name: str, nbytes: int) -> None:
        """Make reads of ``name`` raise after ``nbytes`` bytes."""
        with self._lock:
            self._interrupts[name] = nbytes

    def clear_faults(self) -> None:
        with self._lock:
            self._interrupts.clear()
        self.connect_error = None
        self.list_error = None

    def connect(self) -> InMemorySession:
        if self.connect_error is not None:
            raise RemoteConnectionError(f"Cannot connect: {self.connect_error}")
        with self._lock:
            self.sessions_opened += 1
            self.open_sessions += 1
        return InMemorySession(self)
