"""
Remote -> staging directory synchronizer.

One poll cycle: open a session, list the remote directory, filter names,
diff against the manifest, download what is missing into the staging
directory and record it. Downloads land in ``<name>.part`` and are moved
onto the final name with ``os.replace`` only once complete, so a staged
name always refers to a whole file.
"""

from __future__ import annotations

import os
from datetime import UTC, datetime
from pathlib import Path
from typing import BinaryIO

from dropsync.exceptions import DropsyncError, LocalIOError, TransferError
from dropsync.observability.structured_logging import add_correlation_id, log_file_downloaded, new_cycle_id
from dropsync.remote.base import RemoteEntry, RemoteSession, RemoteStoreClient, join_remote
from dropsync.sync.filters import FilenameFilter
from dropsync.sync.manifest import LocalManifest
from dropsync.sync.types import PollCycleResult, StagedFile
from dropsync.utils.logging import get_logger

logger = get_logger("dropsync.sync")

PART_SUFFIX = ".part"


class Synchronizer:
    """Runs poll cycles against one remote directory."""

    def __init__(
        self,
        client: RemoteStoreClient,
        remote_dir: str,
        staging_dir: str | Path,
        file_filter: FilenameFilter,
        manifest: LocalManifest,
        *,
        max_files_per_cycle: int | None = None,
        chunk_size: int = 32768,
        skip_existing_local: bool = True,
    ):
        self.client = client
        self.remote_dir = remote_dir
        self.staging_dir = Path(staging_dir)
        self.file_filter = file_filter
        self.manifest = manifest
        self.max_files_per_cycle = max_files_per_cycle
        self.chunk_size = chunk_size
        self.skip_existing_local = skip_existing_local

    def run_cycle(self) -> PollCycleResult:
        """
        Run one poll cycle.

        Never raises for connection, listing or local I/O failures: those
        abort the cycle and are returned in ``result.error``. Per-file
        transfer failures are collected in ``result.failed``.
        """
        result = PollCycleResult(cycle_id=new_cycle_id(), started_at=datetime.now(UTC))
        with add_correlation_id(result.cycle_id):
            try:
                self._run(result)
            except DropsyncError as e:
                result.error = e
                if isinstance(e, LocalIOError):
                    logger.critical(f"Poll cycle aborted, staging directory unusable: {e}")
                else:
                    logger.error(f"Poll cycle aborted: {e}")
            finally:
                result.finished_at = datetime.now(UTC)

            logger.debug(
                f"Cycle {result.cycle_id}: attempted={result.attempted} downloaded={len(result.downloaded)} "
                f"failed={len(result.failed)} skipped={result.skipped} reused={result.reused}"
            )
        return result

    def _run(self, result: PollCycleResult) -> None:
        staging = self._ensure_staging_dir()

        with self.client.connect() as session:
            entries = session.list(self.remote_dir)
            candidates = self._select(entries, staging, result)

            for entry, present in candidates:
                if not self.manifest.try_claim(entry.name):
                    logger.debug(f"Skipping {entry.name}: download already in flight")
                    continue
                try:
                    # Re-check under the claim: a concurrent cycle may have
                    # finished this name since the diff was taken.
                    if self.manifest.is_known(entry.name):
                        result.skipped += 1
                        continue
                    if present:
                        # Never overwrite a local file this process did not download
                        staged = StagedFile(local_path=str(staging / entry.name), original_name=entry.name)
                        result.reused += 1
                        logger.info(f"{entry.name} already present in {staging}, handed over without download")
                    else:
                        result.attempted += 1
                        try:
                            staged = self._download(session, entry, staging)
                        except TransferError as e:
                            result.failed.append((entry.name, e))
                            logger.warning(f"Transfer failed for {entry.name}: {e.message}")
                            continue
                    # In the result before the manifest write, which may raise
                    result.downloaded.append(staged)
                    self.manifest.mark_fetched(entry.name, staged.local_path)
                finally:
                    self.manifest.release(entry.name)

    def _select(
        self, entries: list[RemoteEntry], staging: Path, result: PollCycleResult
    ) -> list[tuple[RemoteEntry, bool]]:
        """
        Filter + manifest diff, in listing order, capped per cycle.

        Each candidate is paired with whether a file of that name already
        sits in the staging directory.
        """
        candidates: list[tuple[RemoteEntry, bool]] = []
        for entry in entries:
            if entry.is_dir or not self.file_filter.matches(entry.name):
                continue
            if self.manifest.is_known(entry.name):
                result.skipped += 1
                continue
            present = self.skip_existing_local and _is_safe_name(entry.name) and (staging / entry.name).is_file()
            candidates.append((entry, present))

        if self.max_files_per_cycle is not None and len(candidates) > self.max_files_per_cycle:
            logger.debug(f"Capping cycle at {self.max_files_per_cycle} of {len(candidates)} new files")
            candidates = candidates[: self.max_files_per_cycle]
        return candidates

    def _ensure_staging_dir(self) -> Path:
        staging = self.staging_dir
        try:
            staging.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise LocalIOError(str(staging), str(e)) from e
        if not staging.is_dir() or not os.access(staging, os.W_OK | os.X_OK):
            raise LocalIOError(str(staging), "not a writable directory")
        return staging

    def _download(self, session: RemoteSession, entry: RemoteEntry, staging: Path) -> StagedFile:
        if not _is_safe_name(entry.name):
            raise TransferError(entry.name, "entry name would escape the staging directory")

        final_path = staging / entry.name
        part_path = staging / f"{entry.name}{PART_SUFFIX}"

        stream = session.open_read(join_remote(self.remote_dir, entry.name))
        size = 0
        try:
            with open(part_path, "wb") as out:
                while chunk := self._read_chunk(stream, entry.name):
                    out.write(chunk)
                    size += len(chunk)
                out.flush()
                os.fsync(out.fileno())
            os.replace(part_path, final_path)
        except OSError as e:
            _discard(part_path)
            raise LocalIOError(str(part_path), str(e)) from e
        except BaseException:
            _discard(part_path)
            raise
        finally:
            _close_quietly(stream)

        log_file_downloaded(entry.name, str(final_path), size)
        return StagedFile(local_path=str(final_path), original_name=entry.name)

    def _read_chunk(self, stream: BinaryIO, name: str) -> bytes:
        try:
            return stream.read(self.chunk_size)
        except TransferError:
            raise
        except Exception as e:
            raise TransferError(name, str(e) or type(e).__name__) from e


def _is_safe_name(name: str) -> bool:
    return bool(name) and name not in (".", "..") and "/" not in name and "\\" not in name and "\0" not in name


def _discard(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Could not remove partial download {path}: {e}")


def _close_quietly(stream: BinaryIO) -> None:
    try:
        stream.close()
    except Exception as e:
        logger.debug(f"Error closing remote stream: {e}")
