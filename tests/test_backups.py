"""Tests for backup snapshots and retention."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from sbsrf_update.backups import BackupStore, copy_tree
from sbsrf_update.errors import FilesystemError


@pytest.fixture
def live(tmp_path):
    d = tmp_path / "live"
    (d / "build").mkdir(parents=True)
    (d / "user.yaml").write_text("custom: true")
    (d / "build" / "sbsrf.table.bin").write_bytes(b"\x00\x01")
    return d


def _seed(root, *versions):
    for v in versions:
        (root / v).mkdir(parents=True)
        (root / v / "marker").write_text(v)


class TestCopyTree:
    def test_copies_nested_files(self, live, tmp_path):
        seen = []
        count = copy_tree(live, tmp_path / "out", seen.append)
        assert count == 2
        assert (tmp_path / "out" / "user.yaml").read_text() == "custom: true"
        assert (tmp_path / "out" / "build" / "sbsrf.table.bin").read_bytes() == b"\x00\x01"
        assert len(seen) == 2

    def test_overwrites_existing(self, live, tmp_path):
        out = tmp_path / "out"
        out.mkdir()
        (out / "user.yaml").write_text("stale")
        copy_tree(live, out)
        assert (out / "user.yaml").read_text() == "custom: true"

    def test_missing_source(self, tmp_path):
        with pytest.raises(FilesystemError, match="does not exist"):
            copy_tree(tmp_path / "nope", tmp_path / "out")


class TestListing:
    def test_sorted_by_name_not_mtime(self, tmp_path):
        root = tmp_path / "backups"
        _seed(root, "20240301", "20231201", "20240101")
        store = BackupStore(root, 5)
        assert store.list() == ["20231201", "20240101", "20240301"]
        assert store.latest() == "20240301"

    def test_hidden_staging_dirs_skipped(self, tmp_path):
        root = tmp_path / "backups"
        _seed(root, "v1")
        (root / ".v2.partial").mkdir()
        assert BackupStore(root, 5).list() == ["v1"]

    def test_missing_root_is_empty(self, tmp_path):
        store = BackupStore(tmp_path / "backups", 1)
        assert store.list() == []
        assert store.latest() is None


class TestSnapshot:
    def test_creates_version_dir(self, live, tmp_path):
        store = BackupStore(tmp_path / "backups", 1)
        path = store.snapshot(live, "v1")
        assert path == tmp_path / "backups" / "v1"
        assert (path / "user.yaml").read_text() == "custom: true"
        assert store.list() == ["v1"]

    def test_retention_evicts_oldest(self, live, tmp_path):
        root = tmp_path / "backups"
        _seed(root, "a", "b")
        store = BackupStore(root, 2)
        store.snapshot(live, "c")
        assert store.list() == ["b", "c"]

    def test_retention_from_overfull_store(self, live, tmp_path):
        root = tmp_path / "backups"
        _seed(root, "20230101", "20230102", "20230103")
        store = BackupStore(root, 2)
        assert store.ensure_capacity() == ["20230101", "20230102"]
        store.snapshot(live, "20230104")
        assert store.list() == ["20230103", "20230104"]

    def test_removal_failure_aborts_snapshot(self, live, tmp_path):
        root = tmp_path / "backups"
        _seed(root, "v1", "v2")
        store = BackupStore(root, 2)
        with patch("sbsrf_update.backups.shutil.rmtree", side_effect=OSError("busy")):
            with pytest.raises(FilesystemError, match="Cannot remove old backup v1"):
                store.snapshot(live, "v3")
        assert store.list() == ["v1", "v2"]
        assert not store.exists("v3")

    def test_retention_of_one_keeps_only_new(self, live, tmp_path):
        root = tmp_path / "backups"
        _seed(root, "v1")
        store = BackupStore(root, 1)
        store.snapshot(live, "v2")
        assert store.list() == ["v2"]

    def test_existing_version_is_not_overwritten(self, live, tmp_path):
        root = tmp_path / "backups"
        _seed(root, "v1")
        store = BackupStore(root, 3)
        path = store.snapshot(live, "v1")
        assert path == root / "v1"
        assert (root / "v1" / "marker").read_text() == "v1"
        assert not (root / "v1" / "user.yaml").exists()

    def test_disabled_when_max_is_zero(self, live, tmp_path):
        store = BackupStore(tmp_path / "backups", 0)
        assert not store.enabled
        assert store.snapshot(live, "v1") is None
        assert not (tmp_path / "backups").exists()

    def test_failed_copy_leaves_no_backup(self, live, tmp_path):
        root = tmp_path / "backups"
        store = BackupStore(root, 2)
        with patch("sbsrf_update.backups.shutil.copy2", side_effect=OSError("disk full")):
            with pytest.raises(FilesystemError, match="disk full"):
                store.snapshot(live, "v1")
        assert store.list() == []
        assert not store.exists("v1")
        assert list(root.iterdir()) == []

    def test_retry_after_failure_completes(self, live, tmp_path):
        store = BackupStore(tmp_path / "backups", 2)
        with patch("sbsrf_update.backups.shutil.copy2", side_effect=OSError("boom")):
            with pytest.raises(FilesystemError):
                store.snapshot(live, "v1")
        store.snapshot(live, "v1")
        assert (store.path_for("v1") / "user.yaml").exists()


class TestCapture:
    async def test_writer_fills_backup(self, tmp_path):
        store = BackupStore(tmp_path / "backups", 1, archive_name="Rime.zip")

        async def _writer(staging):
            (staging / "Rime.zip").write_bytes(b"PK")

        path = await store.capture("v1", _writer)
        assert path == tmp_path / "backups" / "v1"
        assert store.restore_source("v1") == path / "Rime.zip"

    async def test_failed_writer_cleans_staging(self, tmp_path):
        store = BackupStore(tmp_path / "backups", 1, archive_name="Rime.zip")

        async def _writer(staging):
            (staging / "Rime.zip").write_bytes(b"partial")
            raise RuntimeError("connection reset")

        with pytest.raises(RuntimeError):
            await store.capture("v1", _writer)
        assert list((tmp_path / "backups").iterdir()) == []

    async def test_disabled(self, tmp_path):
        store = BackupStore(tmp_path / "backups", 0, archive_name="Rime.zip")

        async def _writer(staging):  # pragma: no cover
            raise AssertionError("should not run")

        assert await store.capture("v1", _writer) is None


class TestRestoreSource:
    def test_directory_backup(self, tmp_path):
        root = tmp_path / "backups"
        _seed(root, "v1")
        assert BackupStore(root, 1).restore_source("v1") == root / "v1"

    def test_missing_version(self, tmp_path):
        with pytest.raises(FilesystemError, match="does not exist"):
            BackupStore(tmp_path / "backups", 1).restore_source("v9")

    def test_missing_archive(self, tmp_path):
        root = tmp_path / "backups"
        _seed(root, "v1")
        with pytest.raises(FilesystemError, match="Rime.zip"):
            BackupStore(root, 1, archive_name="Rime.zip").restore_source("v1")
