"""Shared test fixtures for dropsync."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from pathlib import Path

import pytest

from dropsync.observability.metrics import MetricsRegistry
from dropsync.remote.memory import InMemoryRemoteStore
from dropsync.sync.filters import FilenameFilter
from dropsync.sync.manifest import LocalManifest
from dropsync.sync.synchronizer import Synchronizer
from dropsync.sync.types import StagedFile

REMOTE_DIR = "/deliveries"

DELIVERIES = {
    "File1_data.csv": b"id,value\n1,alpha\n",
    "File2_data.csv": b"id,value\n2,beta\n3,gamma\n",
    "notes.txt": b"not a data file\n",
}


@pytest.fixture
def remote() -> InMemoryRemoteStore:
    """Remote directory with two matching files and one that never matches."""
    store = InMemoryRemoteStore(REMOTE_DIR)
    for name, data in DELIVERIES.items():
        store.put(name, data)
    return store


@pytest.fixture
def staging(tmp_path: Path) -> Path:
    return tmp_path / "staging"


@pytest.fixture
def manifest() -> LocalManifest:
    return LocalManifest()


@pytest.fixture
def metrics() -> MetricsRegistry:
    registry = MetricsRegistry()
    registry.enable()
    return registry


@pytest.fixture
def make_synchronizer(remote, staging, manifest) -> Callable[..., Synchronizer]:
    def factory(pattern: str = "*_data.csv", **kwargs) -> Synchronizer:
        return Synchronizer(remote, REMOTE_DIR, staging, FilenameFilter(pattern), manifest, **kwargs)

    return factory


@pytest.fixture
def make_staged(tmp_path: Path) -> Callable[[str], StagedFile]:
    """Write a small file and wrap it as a StagedFile."""
    directory = tmp_path / "staged"
    directory.mkdir()

    def factory(name: str, data: bytes = b"x") -> StagedFile:
        path = directory / name
        path.write_bytes(data)
        return StagedFile(local_path=str(path), original_name=name)

    return factory


@pytest.fixture
def wait_until():
    """Await until a predicate holds, polling the event loop."""

    async def _wait(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        deadline = time.monotonic() + timeout
        while not predicate():
            if time.monotonic() > deadline:
                raise AssertionError("condition not reached in time")
            await asyncio.sleep(0.005)

    return _wait
