"""
Shared fixtures for the stops pipeline tests.
"""

import csv
import logging
import sqlite3

import pytest

CONFIG_ENV_VARS = (
    "ENVIRONMENT",
    "NAPTAN_SOURCE",
    "NAPTAN_OUT",
    "NAPTAN_ATCO_PREFIX",
    "NAPTAN_USE_RTREE",
    "NAPTAN_BATCH_SIZE",
    "SHEFFIELD_DATA_DIR",
    "STAGING_RETENTION_HOURS",
)

NAPTAN_HEADER = [
    "ATCOCode", "NaptanCode", "CommonName", "Indicator", "Street",
    "LocalityName", "NptgLocalityCode", "Longitude", "Latitude",
    "StopType", "Status", "AdministrativeAreaCode", "Bearing", "StopAreaCode",
]


def naptan_row(atco, lat, lng, name="", **extra):
    """A raw access-nodes record with NaPTAN headers."""
    row = {header: "" for header in NAPTAN_HEADER}
    row.update({
        "ATCOCode": atco,
        "Latitude": "" if lat is None else str(lat),
        "Longitude": "" if lng is None else str(lng),
        "CommonName": name,
    })
    row.update(extra)
    return row


SHEFFIELD_ROWS = [
    naptan_row("370000001", 53.38, -1.47, "Fargate", AdministrativeAreaCode="099", StopType="BCT", Indicator="Stop A"),
    naptan_row("370000002", 53.40, -1.50, "Hillsborough", AdministrativeAreaCode="099", StopType="BCT"),
    naptan_row("370000003", 53.36, -1.45, "Heeley", AdministrativeAreaCode="099", Street="London Road"),
]

OTHER_ROWS = [
    naptan_row("9400ZZSYFAR1", 53.381, -1.468, "Fargate (Tram)", AdministrativeAreaCode="147", StopType="PLT"),
    naptan_row("490000001", 51.50, -0.12, "Westminster", AdministrativeAreaCode="082"),
]


@pytest.fixture(autouse=True)
def clean_config_env(monkeypatch):
    """Start every test without pipeline settings in the environment.

    setenv before delenv makes monkeypatch remove anything load_dotenv adds.
    """
    for name in CONFIG_ENV_VARS:
        monkeypatch.setenv(name, "unset")
        monkeypatch.delenv(name)
    yield


@pytest.fixture(autouse=True)
def restore_root_logging():
    """Undo logging.basicConfig(force=True) calls made by CLI commands."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


@pytest.fixture
def write_csv(tmp_path):
    """Write rows to a CSV file and return its path."""
    def _write(rows, name="access-nodes.csv", header=None, encoding="utf-8"):
        path = tmp_path / name
        fieldnames = header or NAPTAN_HEADER
        with open(path, "w", newline="", encoding=encoding) as f:
            writer = csv.DictWriter(f, fieldnames=fieldnames, extrasaction="ignore")
            writer.writeheader()
            writer.writerows(rows)
        return path
    return _write


@pytest.fixture(scope="session")
def rtree_available():
    """Whether this interpreter's SQLite has the R*Tree module."""
    conn = sqlite3.connect(":memory:")
    try:
        conn.execute("CREATE VIRTUAL TABLE probe USING rtree(id, minX, maxX)")
        return True
    except sqlite3.OperationalError:
        return False
    finally:
        conn.close()


@pytest.fixture
def require_rtree(rtree_available):
    if not rtree_available:
        pytest.skip("SQLite build without R*Tree module")
