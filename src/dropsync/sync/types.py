"""
Type definitions shared by the synchronizer, poller and dispatcher.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class ManifestRecord:
    """One successfully downloaded remote entry."""

    name: str
    local_path: str
    fetched_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "local_path": self.local_path, "fetched_at": self.fetched_at.isoformat()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ManifestRecord:
        return cls(
            name=str(data["name"]),
            local_path=str(data["local_path"]),
            fetched_at=datetime.fromisoformat(str(data["fetched_at"])),
        )


@dataclass(frozen=True)
class StagedFile:
    """A file fully and atomically materialised in the staging directory."""

    local_path: str
    original_name: str

    @property
    def path(self) -> Path:
        return Path(self.local_path)


@dataclass
class PollCycleResult:
    """
    Outcome of one poll cycle.

    ``error`` holds the cycle-level abort (connection, listing or local I/O
    failure); per-entry transfer failures go to ``failed`` instead.
    ``reused`` counts entries of ``downloaded`` that were already present
    in the staging directory and handed over without a transfer.
    """

    cycle_id: str
    started_at: datetime
    finished_at: datetime | None = None
    attempted: int = 0
    skipped: int = 0
    reused: int = 0
    downloaded: list[StagedFile] = field(default_factory=list)
    failed: list[tuple[str, Exception]] = field(default_factory=list)
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def downloaded_names(self) -> list[str]:
        return [staged.original_name for staged in self.downloaded]

    @property
    def failed_names(self) -> set[str]:
        return {name for name, _ in self.failed}

    def to_dict(self) -> dict[str, Any]:
        return {
            "cycle_id": self.cycle_id,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "attempted": self.attempted,
            "downloaded": self.downloaded_names,
            "skipped": self.skipped,
            "reused": self.reused,
            "failed": {name: str(error) for name, error in self.failed},
            "error": str(self.error) if self.error else None,
        }
