"""
dropsync - polling SFTP inbound file synchronizer.

Polls a remote directory on a fixed interval, stages new files matching a
pattern atomically into a local directory and hands each one to a
consumer with at-least-once delivery.
"""

__version__ = "0.1.0"

from dropsync.config import SyncSettings, build_settings, load_config
from dropsync.exceptions import (
    ConfigurationError,
    ConsumerError,
    DispatchError,
    DispatcherClosedError,
    DropsyncError,
    EscalationError,
    ListError,
    LocalIOError,
    ManifestError,
    RemoteConnectionError,
    RemoteError,
    RemoteNotFoundError,
    TransferError,
    UndeliveredMessagesError,
)
from dropsync.remote import InMemoryRemoteStore, RemoteEntry, SFTPConfig, SFTPStoreClient
from dropsync.service import Dispatcher, LoggingConsumer, Poller, SyncService, run_service
from dropsync.sync import FilenameFilter, LocalManifest, ManifestRecord, PollCycleResult, StagedFile, Synchronizer

__all__ = [
    "__version__",
    # Config
    "SyncSettings",
    "build_settings",
    "load_config",
    # Remote stores
    "RemoteEntry",
    "SFTPConfig",
    "SFTPStoreClient",
    "InMemoryRemoteStore",
    # Sync core
    "FilenameFilter",
    "LocalManifest",
    "ManifestRecord",
    "PollCycleResult",
    "StagedFile",
    "Synchronizer",
    # Service
    "Dispatcher",
    "LoggingConsumer",
    "Poller",
    "SyncService",
    "run_service",
    # Exceptions
    "DropsyncError",
    "ConfigurationError",
    "RemoteError",
    "RemoteConnectionError",
    "ListError",
    "TransferError",
    "RemoteNotFoundError",
    "LocalIOError",
    "ManifestError",
    "DispatchError",
    "ConsumerError",
    "DispatcherClosedError",
    "UndeliveredMessagesError",
    "EscalationError",
]
