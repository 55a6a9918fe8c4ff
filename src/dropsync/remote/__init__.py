"""
Remote file store clients.

SFTP (paramiko) for production, in-memory for tests.
"""

from dropsync.remote.base import RemoteEntry, RemoteSession, RemoteStoreClient
from dropsync.remote.memory import InMemoryRemoteStore
from dropsync.remote.sftp import SFTPConfig, SFTPSession, SFTPStoreClient

__all__ = [
    "RemoteEntry",
    "RemoteSession",
    "RemoteStoreClient",
    "InMemoryRemoteStore",
    "SFTPConfig",
    "SFTPSession",
    "SFTPStoreClient",
]
