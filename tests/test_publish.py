"""
Tests for staging finalization and the atomic swap.
"""

import sqlite3
from unittest.mock import patch

import pytest

from naptan2sqlite.cleanup import STAGING_PREFIX
from naptan2sqlite.pipeline.publish import AtomicPublisher, staging_area
from naptan2sqlite.types import StagingIOError


def write_database(path, rows=1):
    conn = sqlite3.connect(str(path))
    conn.execute("CREATE TABLE stops (id TEXT PRIMARY KEY)")
    conn.executemany("INSERT INTO stops VALUES (?)", [(str(i),) for i in range(rows)])
    conn.commit()
    conn.close()


class TestStagingArea:
    def test_staging_path_beside_destination(self, tmp_path):
        out_path = tmp_path / "data" / "buses" / "stops.sqlite"

        with staging_area(out_path) as staging_path:
            assert staging_path.name == "stops.sqlite"
            assert staging_path.parent.parent == out_path.parent
            assert staging_path.parent.name.startswith(STAGING_PREFIX)
            assert not staging_path.exists()
            staging_dir = staging_path.parent

        assert not staging_dir.exists()
        assert out_path.parent.is_dir()

    def test_removed_on_error(self, tmp_path):
        out_path = tmp_path / "stops.sqlite"

        with pytest.raises(RuntimeError):
            with staging_area(out_path) as staging_path:
                staging_path.write_bytes(b"partial")
                raise RuntimeError("load failed")

        assert list(tmp_path.glob(f"{STAGING_PREFIX}*")) == []
        assert not out_path.exists()


class TestAtomicPublisher:
    def test_finalize_closes_connection(self, tmp_path):
        conn = sqlite3.connect(str(tmp_path / "stops.sqlite"), isolation_level=None)
        conn.execute("CREATE TABLE stops (id TEXT PRIMARY KEY)")

        AtomicPublisher(tmp_path / "out.sqlite").finalize(conn)

        with pytest.raises(sqlite3.ProgrammingError):
            conn.execute("SELECT 1")

    def test_publish_replaces_destination(self, tmp_path):
        out_path = tmp_path / "stops.sqlite"
        out_path.write_bytes(b"old dataset")
        staging_path = tmp_path / "staging.sqlite"
        write_database(staging_path, rows=3)
        staged_bytes = staging_path.read_bytes()

        result = AtomicPublisher(out_path).publish(staging_path)

        assert result == out_path
        assert out_path.read_bytes() == staged_bytes
        assert not staging_path.exists()

    def test_publish_removes_sidecars(self, tmp_path):
        out_path = tmp_path / "stops.sqlite"
        staging_path = tmp_path / "staging.sqlite"
        write_database(staging_path)
        for suffix in ("-wal", "-shm", "-journal"):
            (tmp_path / f"staging.sqlite{suffix}").write_bytes(b"")
            (tmp_path / f"stops.sqlite{suffix}").write_bytes(b"")

        AtomicPublisher(out_path).publish(staging_path)

        leftovers = [p.name for p in tmp_path.iterdir() if p.name != "stops.sqlite"]
        assert leftovers == []

    def test_missing_staging_file(self, tmp_path):
        with pytest.raises(StagingIOError):
            AtomicPublisher(tmp_path / "stops.sqlite").publish(tmp_path / "missing.sqlite")

    def test_failed_rename_leaves_destination(self, tmp_path):
        out_path = tmp_path / "stops.sqlite"
        out_path.write_bytes(b"old dataset")
        staging_path = tmp_path / "staging.sqlite"
        write_database(staging_path)

        with patch("naptan2sqlite.pipeline.publish.os.replace", side_effect=OSError("cross-device link")):
            with pytest.raises(StagingIOError, match="cross-device link"):
                AtomicPublisher(out_path).publish(staging_path)

        assert out_path.read_bytes() == b"old dataset"
