"""
Tests for the command-line interface.
"""

import os
import time

from typer.testing import CliRunner

from naptan2sqlite import __version__
from naptan2sqlite.cleanup import STAGING_PREFIX
from naptan2sqlite.cli import app
from naptan2sqlite.pipeline.validate import validate_stops_database

from conftest import OTHER_ROWS, SHEFFIELD_ROWS

runner = CliRunner()


def build_args(csv_path, out_path, *extra):
    return ["build", "--source", str(csv_path), "--out", str(out_path), "--no-rtree", *extra]


class TestBuildCommand:
    def test_build_default_prefix(self, tmp_path, write_csv):
        out_path = tmp_path / "stops.sqlite"

        result = runner.invoke(app, build_args(write_csv(SHEFFIELD_ROWS + OTHER_ROWS), out_path))

        assert result.exit_code == 0, result.output
        assert validate_stops_database(out_path).stop_count == 3

    def test_build_all_prefix(self, tmp_path, write_csv):
        out_path = tmp_path / "stops.sqlite"

        result = runner.invoke(app, build_args(write_csv(SHEFFIELD_ROWS + OTHER_ROWS), out_path, "--prefix", "all"))

        assert result.exit_code == 0, result.output
        assert validate_stops_database(out_path).stop_count == 5

    def test_build_json_report(self, tmp_path, write_csv):
        out_path = tmp_path / "stops.sqlite"

        result = runner.invoke(app, build_args(write_csv(SHEFFIELD_ROWS), out_path, "--json"))

        assert result.exit_code == 0, result.output
        assert '"rows_kept": 3' in result.output
        assert '"spatial_index_requested": false' in result.output

    def test_build_missing_source(self, tmp_path):
        out_path = tmp_path / "stops.sqlite"

        result = runner.invoke(app, build_args(tmp_path / "missing.csv", out_path))

        assert result.exit_code == 1
        assert "ERROR" in result.output
        assert not out_path.exists()

    def test_build_rejects_zero_batch_size(self, tmp_path, write_csv):
        result = runner.invoke(app, build_args(write_csv(SHEFFIELD_ROWS), tmp_path / "stops.sqlite", "--batch-size", "0"))
        assert result.exit_code != 0

    def test_build_invalid_config_file(self, tmp_path, write_csv):
        config = tmp_path / "stops.yml"
        config.write_text("unknown: 1\n")

        result = runner.invoke(app, build_args(write_csv(SHEFFIELD_ROWS), tmp_path / "stops.sqlite", "--config", str(config)))

        assert result.exit_code == 1
        assert "Unknown keys" in result.output

    def test_build_uses_environment(self, tmp_path, write_csv, monkeypatch):
        monkeypatch.setenv("NAPTAN_SOURCE", str(write_csv(OTHER_ROWS)))
        monkeypatch.setenv("NAPTAN_OUT", str(tmp_path / "env.sqlite"))
        monkeypatch.setenv("NAPTAN_ATCO_PREFIX", "490")
        monkeypatch.setenv("NAPTAN_USE_RTREE", "false")

        result = runner.invoke(app, ["build"])

        assert result.exit_code == 0, result.output
        assert validate_stops_database(tmp_path / "env.sqlite").stop_count == 1


class TestValidateCommand:
    def test_validate_published_file(self, tmp_path, write_csv):
        out_path = tmp_path / "stops.sqlite"
        runner.invoke(app, build_args(write_csv(SHEFFIELD_ROWS), out_path))

        result = runner.invoke(app, ["validate", "--db", str(out_path), "--json"])

        assert result.exit_code == 0, result.output
        assert '"stop_count": 3' in result.output

    def test_validate_missing_file(self, tmp_path):
        result = runner.invoke(app, ["validate", "--db", str(tmp_path / "stops.sqlite")])

        assert result.exit_code == 1
        assert "Missing SQLite file" in result.output

    def test_validate_sidecar(self, tmp_path, write_csv):
        out_path = tmp_path / "stops.sqlite"
        runner.invoke(app, build_args(write_csv(SHEFFIELD_ROWS), out_path))
        (tmp_path / "stops.sqlite-wal").write_bytes(b"")

        result = runner.invoke(app, ["validate", "--db", str(out_path)])

        assert result.exit_code == 1
        assert "Found WAL file" in result.output


class TestCleanStagingCommand:
    def test_removes_stale_directories(self, tmp_path):
        stale = tmp_path / f"{STAGING_PREFIX}abc123"
        stale.mkdir()
        stamp = time.time() - 48 * 3600
        os.utime(stale, (stamp, stamp))

        result = runner.invoke(app, ["clean-staging", "--out", str(tmp_path / "stops.sqlite"), "--retention-hours", "24"])

        assert result.exit_code == 0, result.output
        assert "Removed 1 stale staging directory" in result.output
        assert not stale.exists()


class TestVersionCommand:
    def test_version(self):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert __version__ in result.output
