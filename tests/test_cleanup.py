"""
Tests for temp directory and sidecar housekeeping.
"""

import os
import time
from unittest.mock import patch

import pytest

from naptan2sqlite.cleanup import (
    STAGING_PREFIX,
    cleanup_stale_staging,
    existing_sidecars,
    remove_sidecars,
    scoped_temp_dir,
    sidecar_paths,
)
from naptan2sqlite.types import StagingIOError


def age(path, hours):
    stamp = time.time() - hours * 3600
    os.utime(path, (stamp, stamp))


class TestSidecars:
    def test_sidecar_paths(self, tmp_path):
        names = [p.name for p in sidecar_paths(tmp_path / "stops.sqlite")]
        assert names == ["stops.sqlite-wal", "stops.sqlite-shm", "stops.sqlite-journal"]

    def test_existing_and_remove(self, tmp_path):
        db_path = tmp_path / "stops.sqlite"
        (tmp_path / "stops.sqlite-wal").write_bytes(b"")
        (tmp_path / "stops.sqlite-journal").write_bytes(b"")

        assert len(existing_sidecars(db_path)) == 2
        assert remove_sidecars(db_path) == 2
        assert existing_sidecars(db_path) == []

    def test_remove_failure_raises(self, tmp_path):
        (tmp_path / "stops.sqlite-wal").write_bytes(b"")

        with patch("pathlib.Path.unlink", side_effect=PermissionError("read-only")):
            with pytest.raises(StagingIOError):
                remove_sidecars(tmp_path / "stops.sqlite")


class TestScopedTempDir:
    def test_removed_after_use(self, tmp_path):
        with scoped_temp_dir("naptan-", tmp_path) as tmp_dir:
            (tmp_dir / "file.csv").write_text("x")
            assert tmp_dir.parent == tmp_path

        assert not tmp_dir.exists()

    def test_missing_parent(self, tmp_path):
        with pytest.raises(StagingIOError):
            with scoped_temp_dir("naptan-", tmp_path / "missing"):
                pass


class TestCleanupStaleStaging:
    def test_removes_only_old_staging_dirs(self, tmp_path):
        old = tmp_path / f"{STAGING_PREFIX}old"
        fresh = tmp_path / f"{STAGING_PREFIX}fresh"
        unrelated = tmp_path / "archive"
        for path in (old, fresh, unrelated):
            path.mkdir()
        age(old, 48)
        age(unrelated, 48)

        removed = cleanup_stale_staging(tmp_path / "stops.sqlite", retention_hours=24)

        assert removed == 1
        assert not old.exists()
        assert fresh.exists()
        assert unrelated.exists()

    def test_missing_output_directory(self, tmp_path):
        assert cleanup_stale_staging(tmp_path / "nowhere" / "stops.sqlite") == 0
