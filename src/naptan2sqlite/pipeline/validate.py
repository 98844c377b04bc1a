"""
Post-publish validation of a stops database.

Structural and geographic sanity checks on a published file. Each check is
fatal on first failure and names itself in the raised error.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import NoReturn

from ..cleanup import existing_sidecars
from ..domain.models import BoundingBox, ValidationReport
from ..types import DatasetValidationError
from .schema import RTREE_TABLE, table_exists

logger = logging.getLogger(__name__)

# Generous bounds around Great Britain; catches swapped or mis-parsed coordinates
UK_BOUNDS = BoundingBox(min_lat=49.0, max_lat=61.5, min_lng=-8.5, max_lng=2.5)

# Sidecars whose presence means the last writer did not finish cleanly
UNCLEAN_SIDECARS = ("-wal", "-shm")


def _fail(check: str, message: str) -> NoReturn:
    raise DatasetValidationError(check, message)


def _open_read_only(db_path: Path) -> sqlite3.Connection:
    return sqlite3.connect(f"{db_path.resolve().as_uri()}?mode=ro", uri=True)


def validate_stops_database(db_path: Path, bounds: BoundingBox = UK_BOUNDS) -> ValidationReport:
    """
    Validate a published stops database.

    Checks, in order: file exists, stops table exists, at least one row,
    coordinate extent within bounds, no WAL/SHM sidecars.

    Args:
        db_path: Published SQLite file
        bounds: Extent every stop must fall inside

    Returns:
        ValidationReport with row count and coordinate ranges

    Raises:
        DatasetValidationError: On the first failed check
    """
    if not db_path.is_file():
        _fail("exists", f"Missing SQLite file: {db_path}")

    try:
        conn = _open_read_only(db_path)
    except sqlite3.Error as e:
        _fail("readable", f"Could not open {db_path}: {e}")

    try:
        try:
            if not table_exists(conn, "stops"):
                _fail("stops_table", "Missing stops table")

            count = conn.execute("SELECT COUNT(*) FROM stops").fetchone()[0]
            if not count:
                _fail("row_count", "Stops table is empty")

            min_lat, max_lat, min_lng, max_lng = conn.execute(
                "SELECT MIN(lat), MAX(lat), MIN(lng), MAX(lng) FROM stops"
            ).fetchone()

            spatial_index_present = table_exists(conn, RTREE_TABLE)
            spatial_index_rows = None
            if spatial_index_present:
                try:
                    spatial_index_rows = conn.execute(f"SELECT COUNT(*) FROM {RTREE_TABLE}").fetchone()[0]
                except sqlite3.OperationalError as e:
                    # Table declared but this SQLite build cannot read rtree
                    logger.warning(f"Could not read {RTREE_TABLE}: {e}")
        except sqlite3.DatabaseError as e:
            _fail("readable", f"Could not read {db_path}: {e}")
    finally:
        conn.close()

    extent = BoundingBox(min_lat=min_lat, max_lat=max_lat, min_lng=min_lng, max_lng=max_lng)
    if not bounds.contains(extent):
        if not bounds.covers_latitudes(extent):
            _fail("lat_range", f"Latitude range out of bounds: {min_lat}..{max_lat}")
        _fail("lng_range", f"Longitude range out of bounds: {min_lng}..{max_lng}")

    for sidecar in existing_sidecars(db_path, UNCLEAN_SIDECARS):
        kind = sidecar.name.rsplit("-", 1)[-1].upper()
        _fail("sidecars", f"Found {kind} file: {sidecar}")

    report = ValidationReport(
        db_path=db_path,
        stop_count=count,
        bbox=extent,
        spatial_index_present=spatial_index_present,
        spatial_index_rows=spatial_index_rows,
    )

    logger.info(f"Stops count: {count}")
    logger.info(f"Latitude range: {min_lat}..{max_lat}")
    logger.info(f"Longitude range: {min_lng}..{max_lng}")
    if spatial_index_present:
        logger.info(f"Spatial index rows: {spatial_index_rows}")
    else:
        logger.info("Spatial index: absent")

    return report
