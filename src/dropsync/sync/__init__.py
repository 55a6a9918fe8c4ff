"""
Sync subsystem: remote listing, manifest diff and atomic staging.
"""

from dropsync.sync.filters import FilenameFilter
from dropsync.sync.manifest import LocalManifest
from dropsync.sync.synchronizer import Synchronizer
from dropsync.sync.types import ManifestRecord, PollCycleResult, StagedFile

__all__ = [
    "FilenameFilter",
    "LocalManifest",
    "ManifestRecord",
    "PollCycleResult",
    "StagedFile",
    "Synchronizer",
]
