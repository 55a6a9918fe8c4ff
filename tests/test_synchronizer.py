"""
Tests for the poll cycle: listing, filtering, manifest diff and atomic staging.
"""

import os
import threading
import time

import pytest

from dropsync.exceptions import ListError, LocalIOError, ManifestError, RemoteConnectionError, TransferError
from dropsync.remote.memory import InMemoryRemoteStore
from dropsync.sync.filters import FilenameFilter
from dropsync.sync.manifest import LocalManifest
from dropsync.sync.synchronizer import PART_SUFFIX, Synchronizer

from conftest import DELIVERIES, REMOTE_DIR


def _staged_names(staging):
    return sorted(p.name for p in staging.iterdir())


class TestCycleOutcome:
    def test_downloads_matching_files(self, make_synchronizer, staging):
        """Both *_data.csv files are staged with their content; notes.txt is not."""
        result = make_synchronizer().run_cycle()

        assert result.ok
        assert result.downloaded_names == ["File1_data.csv", "File2_data.csv"]
        assert result.attempted == 2
        assert result.failed == []
        assert _staged_names(staging) == ["File1_data.csv", "File2_data.csv"]
        for name in ("File1_data.csv", "File2_data.csv"):
            assert (staging / name).read_bytes() == DELIVERIES[name]

    def test_records_manifest(self, make_synchronizer, manifest, staging):
        make_synchronizer().run_cycle()

        assert manifest.is_known("File1_data.csv")
        assert manifest.is_known("File2_data.csv")
        assert not manifest.is_known("notes.txt")
        assert manifest.get("File1_data.csv").local_path == str(staging / "File1_data.csv")

    def test_second_cycle_is_a_noop(self, make_synchronizer, remote):
        """Polling an unchanged directory downloads nothing."""
        sync = make_synchronizer()
        sync.run_cycle()
        reads_after_first = list(remote.reads)

        result = sync.run_cycle()

        assert result.ok
        assert result.downloaded == []
        assert result.attempted == 0
        assert result.skipped == 2
        assert remote.reads == reads_after_first

    def test_new_file_picked_up_next_cycle(self, make_synchronizer, remote):
        sync = make_synchronizer()
        sync.run_cycle()
        remote.put("File3_data.csv", b"late\n")

        result = sync.run_cycle()

        assert result.downloaded_names == ["File3_data.csv"]

    def test_pattern_filters_names(self, make_synchronizer, remote, staging):
        remote.put("ignore.txt", b"nope")
        remote.put("Order_data.csv", b"order")

        result = make_synchronizer().run_cycle()

        assert "Order_data.csv" in result.downloaded_names
        assert "ignore.txt" not in result.downloaded_names
        assert not (staging / "ignore.txt").exists()

    def test_listing_order_preserved(self, make_synchronizer, remote):
        remote.put("c_data.csv", b"c")
        remote.put("a_data.csv", b"a")
        remote.put("b_data.csv", b"b")

        result = make_synchronizer().run_cycle()

        assert result.downloaded_names == [
            "File1_data.csv",
            "File2_data.csv",
            "c_data.csv",
            "a_data.csv",
            "b_data.csv",
        ]

    def test_directories_ignored(self, make_synchronizer, remote, staging):
        remote.mkdir("archive_data.csv")

        result = make_synchronizer().run_cycle()

        assert "archive_data.csv" not in result.downloaded_names
        assert not (staging / "archive_data.csv").exists()

    def test_empty_directory(self, staging, manifest):
        store = InMemoryRemoteStore(REMOTE_DIR)
        result = Synchronizer(store, REMOTE_DIR, staging, FilenameFilter("*"), manifest).run_cycle()

        assert result.ok
        assert result.downloaded == []
        assert staging.is_dir()

    def test_session_closed_after_cycle(self, make_synchronizer, remote):
        make_synchronizer().run_cycle()
        assert remote.sessions_opened == 1
        assert remote.open_sessions == 0

    def test_cycle_timestamps(self, make_synchronizer):
        result = make_synchronizer().run_cycle()
        assert result.cycle_id.startswith("cycle-")
        assert result.finished_at >= result.started_at

    def test_to_dict(self, make_synchronizer):
        data = make_synchronizer().run_cycle().to_dict()
        assert data["downloaded"] == ["File1_data.csv", "File2_data.csv"]
        assert data["error"] is None
        assert data["failed"] == {}


class TestAtomicStaging:
    def test_interrupted_transfer_leaves_nothing(self, make_synchronizer, remote, manifest, staging):
        """A transfer cut mid-stream leaves neither the file nor its .part behind."""
        remote.fail_after("File2_data.csv", 4)

        result = make_synchronizer().run_cycle()

        assert result.ok
        assert result.downloaded_names == ["File1_data.csv"]
        assert result.failed_names == {"File2_data.csv"}
        assert isinstance(result.failed[0][1], TransferError)
        assert _staged_names(staging) == ["File1_data.csv"]
        assert not manifest.is_known("File2_data.csv")

    def test_failed_file_retried_next_cycle(self, make_synchronizer, remote, staging):
        remote.fail_after("File2_data.csv", 4)
        sync = make_synchronizer()
        sync.run_cycle()
        remote.clear_faults()

        result = sync.run_cycle()

        assert result.downloaded_names == ["File2_data.csv"]
        assert (staging / "File2_data.csv").read_bytes() == DELIVERIES["File2_data.csv"]

    def test_failure_immediately_at_start(self, make_synchronizer, remote, staging):
        remote.fail_after("File1_data.csv", 0)

        result = make_synchronizer().run_cycle()

        assert result.failed_names == {"File1_data.csv"}
        assert not (staging / f"File1_data.csv{PART_SUFFIX}").exists()

    def test_small_chunks(self, make_synchronizer, staging):
        make_synchronizer(chunk_size=3).run_cycle()
        assert (staging / "File2_data.csv").read_bytes() == DELIVERIES["File2_data.csv"]

    def test_final_name_only_appears_complete(self, make_synchronizer, remote, staging):
        """While bytes are still streaming, only the .part name exists."""
        gate = threading.Event()
        remote.gate = gate
        part = staging / f"File1_data.csv{PART_SUFFIX}"

        worker = threading.Thread(target=make_synchronizer().run_cycle)
        worker.start()
        try:
            deadline = time.monotonic() + 5
            while not part.exists() and time.monotonic() < deadline:
                time.sleep(0.005)

            assert part.exists()
            assert not (staging / "File1_data.csv").exists()
        finally:
            gate.set()
            worker.join(timeout=5)

        assert _staged_names(staging) == ["File1_data.csv", "File2_data.csv"]


class TestCycleAbort:
    def test_connect_error(self, make_synchronizer, remote, staging):
        remote.connect_error = OSError("connection refused")

        result = make_synchronizer().run_cycle()

        assert not result.ok
        assert isinstance(result.error, RemoteConnectionError)
        assert result.downloaded == []
        assert not any(staging.iterdir())

    def test_list_error_closes_session(self, make_synchronizer, remote):
        remote.list_error = PermissionError("permission denied")

        result = make_synchronizer().run_cycle()

        assert isinstance(result.error, ListError)
        assert remote.open_sessions == 0

    def test_wrong_remote_dir(self, remote, staging, manifest):
        result = Synchronizer(remote, "/missing", staging, FilenameFilter("*"), manifest).run_cycle()

        assert isinstance(result.error, ListError)

    def test_unusable_staging_dir(self, remote, tmp_path, manifest):
        blocker = tmp_path / "staging"
        blocker.write_text("a file, not a directory")

        result = Synchronizer(remote, REMOTE_DIR, blocker, FilenameFilter("*"), manifest).run_cycle()

        assert isinstance(result.error, LocalIOError)
        assert remote.sessions_opened == 0
        assert len(manifest) == 0

    @pytest.mark.skipif(hasattr(os, "geteuid") and os.geteuid() == 0, reason="root ignores permissions")
    def test_read_only_staging_dir(self, make_synchronizer, staging):
        staging.mkdir()
        staging.chmod(0o500)
        try:
            result = make_synchronizer().run_cycle()
        finally:
            staging.chmod(0o700)

        assert isinstance(result.error, LocalIOError)

    def test_manifest_write_failure_keeps_staged_file(self, remote, staging, tmp_path):
        """The file staged before a failed manifest write is still returned for dispatch."""
        state = tmp_path / "state"
        (state / "manifest.json.part").mkdir(parents=True)
        manifest = LocalManifest(state / "manifest.json")

        result = Synchronizer(remote, REMOTE_DIR, staging, FilenameFilter("*_data.csv"), manifest).run_cycle()

        assert isinstance(result.error, ManifestError)
        assert result.downloaded_names == ["File1_data.csv"]
        assert result.downloaded[0].path.read_bytes() == DELIVERIES["File1_data.csv"]
        assert manifest.is_known("File1_data.csv")


class TestSelection:
    def test_cap_per_cycle(self, make_synchronizer):
        sync = make_synchronizer(max_files_per_cycle=1)

        first = sync.run_cycle()
        second = sync.run_cycle()
        third = sync.run_cycle()

        assert first.downloaded_names == ["File1_data.csv"]
        assert second.downloaded_names == ["File2_data.csv"]
        assert third.downloaded == []

    def test_existing_local_file_handed_over_not_overwritten(self, make_synchronizer, manifest, remote, staging):
        """A file already staged (e.g. before a crash) is returned for dispatch without a transfer."""
        staging.mkdir()
        (staging / "File1_data.csv").write_bytes(b"local copy")

        result = make_synchronizer().run_cycle()

        assert result.downloaded_names == ["File1_data.csv", "File2_data.csv"]
        assert result.reused == 1
        assert result.attempted == 1
        assert result.downloaded[0].path.read_bytes() == b"local copy"
        assert manifest.is_known("File1_data.csv")
        assert "File1_data.csv" not in remote.reads

    def test_existing_local_file_overwritten_when_disabled(self, make_synchronizer, staging):
        staging.mkdir()
        (staging / "File1_data.csv").write_bytes(b"local copy")

        result = make_synchronizer(skip_existing_local=False).run_cycle()

        assert result.downloaded_names == ["File1_data.csv", "File2_data.csv"]
        assert (staging / "File1_data.csv").read_bytes() == DELIVERIES["File1_data.csv"]

    def test_unsafe_name_rejected(self, make_synchronizer, remote, tmp_path):
        remote.put("..", b"x")
        remote.put("a\\b_data.csv", b"x")

        result = make_synchronizer(pattern="*").run_cycle()

        assert {"..", "a\\b_data.csv"} <= result.failed_names
        assert not (tmp_path / "b_data.csv").exists()

    def test_in_flight_name_skipped(self, make_synchronizer, manifest, remote):
        manifest.try_claim("File1_data.csv")

        result = make_synchronizer().run_cycle()

        assert result.downloaded_names == ["File2_data.csv"]
        assert "File1_data.csv" not in remote.reads
        assert not manifest.is_known("File1_data.csv")

    def test_reset_name_fetched_again(self, make_synchronizer, manifest, remote):
        sync = make_synchronizer(skip_existing_local=False)
        sync.run_cycle()
        remote.put("File1_data.csv", b"redelivered\n")
        manifest.reset("File1_data.csv")

        result = sync.run_cycle()

        assert result.downloaded_names == ["File1_data.csv"]
        assert result.downloaded[0].path.read_bytes() == b"redelivered\n"

    def test_reset_name_with_local_copy_handed_over_without_fetch(self, make_synchronizer, manifest, remote):
        sync = make_synchronizer()
        sync.run_cycle()
        manifest.reset("File1_data.csv")

        result = sync.run_cycle()

        assert result.downloaded_names == ["File1_data.csv"]
        assert result.reused == 1
        assert manifest.is_known("File1_data.csv")
        assert remote.reads.count("File1_data.csv") == 1
