"""
Local manifest of synchronized remote entries.

Used to avoid re-downloading files a previous poll cycle already staged.
Records live in memory for the process lifetime; passing ``path`` also
persists them to a JSON file so a restart does not re-fetch everything.
"""

from __future__ import annotations

import json
import os
import threading
from datetime import UTC, datetime
from pathlib import Path

from dropsync.exceptions import ManifestError
from dropsync.sync.types import ManifestRecord
from dropsync.utils.logging import get_logger

logger = get_logger("dropsync.sync.manifest")


class LocalManifest:
    """
    Thread-safe name -> ManifestRecord mapping plus the set of in-flight names.

    One lock guards both structures and is held only for the map operation,
    never across file or network I/O.
    """

    def __init__(self, path: str | Path | None = None):
        self.path = Path(path) if path else None
        self._records: dict[str, ManifestRecord] = {}
        self._in_flight: set[str] = set()
        self._lock = threading.Lock()
        # Persistence bookkeeping: snapshots are versioned so an older
        # snapshot never overwrites a newer one on disk.
        self._version = 0
        self._written_version = 0
        self._persist_lock = threading.Lock()

        if self.path is not None:
            self._load(self.path)

    def is_known(self, name: str) -> bool:
        with self._lock:
            return name in self._records

    def get(self, name: str) -> ManifestRecord | None:
        with self._lock:
            return self._records.get(name)

    def mark_fetched(self, name: str, local_path: str) -> ManifestRecord:
        """
        Record a completed download.

        Idempotent: an existing record is returned unchanged and keeps its
        original ``fetched_at``.
        """
        with self._lock:
            existing = self._records.get(name)
            if existing is not None:
                return existing
            record = ManifestRecord(name=name, local_path=str(local_path), fetched_at=datetime.now(UTC))
            self._records[name] = record
            snapshot = self._snapshot_locked()
        self._persist(snapshot)
        return record

    def reset(self, name: str) -> bool:
        """Forget ``name`` so the next cycle fetches it again."""
        with self._lock:
            removed = self._records.pop(name, None) is not None
            snapshot = self._snapshot_locked() if removed else None
        if snapshot is not None:
            self._persist(snapshot)
            logger.info(f"Manifest record for {name} reset")
        return removed

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
            snapshot = self._snapshot_locked()
        self._persist(snapshot)

    def try_claim(self, name: str) -> bool:
        """Mark ``name`` as being downloaded; False if someone already is."""
        with self._lock:
            if name in self._in_flight:
                return False
            self._in_flight.add(name)
            return True

    def release(self, name: str) -> None:
        with self._lock:
            self._in_flight.discard(name)

    def in_flight(self) -> set[str]:
        with self._lock:
            return set(self._in_flight)

    def records(self) -> list[ManifestRecord]:
        with self._lock:
            return list(self._records.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._records

    # -- persistence ----------------------------------------------------------

    def _snapshot_locked(self) -> tuple[int, list[dict]] | None:
        if self.path is None:
            return None
        self._version += 1
        return self._version, [record.to_dict() for record in self._records.values()]

    def _persist(self, snapshot: tuple[int, list[dict]] | None) -> None:
        if snapshot is None or self.path is None:
            return
        version, rows = snapshot
        with self._persist_lock:
            if version < self._written_version:
                return
            tmp = self.path.with_name(self.path.name + ".part")
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                tmp.write_text(json.dumps({"version": 1, "records": rows}, indent=2))
                os.replace(tmp, self.path)
            except OSError as e:
                raise ManifestError(f"Cannot write manifest '{self.path}': {e}") from e
            self._written_version = version

    def _load(self, path: Path) -> None:
        if not path.exists():
            return
        try:
            data = json.loads(path.read_text())
            records = [ManifestRecord.from_dict(row) for row in data.get("records", [])]
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            raise ManifestError(f"Cannot read manifest '{path}': {e}") from e

        with self._lock:
            self._records = {record.name: record for record in records}
        logger.info(f"Loaded {len(records)} manifest record(s) from {path}")
