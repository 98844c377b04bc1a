"""
Staging database provisioning.

Creates a brand-new SQLite file at a staging path, applies load-optimized
pragmas, creates the stops table with its secondary indexes, and probes
for the R*Tree module.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from ..types import SchemaCapabilityError, SpatialIndexProbe, StagingIOError

logger = logging.getLogger(__name__)

# The file is rebuilt wholesale each run, so durability during load is not needed
LOAD_PRAGMAS = (
    "PRAGMA journal_mode = DELETE;",
    "PRAGMA synchronous = OFF;",
    "PRAGMA temp_store = MEMORY;",
)

STOPS_DDL = """
CREATE TABLE IF NOT EXISTS stops (
  id TEXT PRIMARY KEY,
  name TEXT NOT NULL,
  lat REAL NOT NULL,
  lng REAL NOT NULL,
  locality_name TEXT,
  admin_area_code TEXT,
  stop_type TEXT,
  stop_area_code TEXT,
  indicator TEXT,
  street TEXT,
  bearing TEXT,
  nptg_locality_code TEXT,
  status TEXT
);
"""

STOPS_INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_stops_lat ON stops(lat);",
    "CREATE INDEX IF NOT EXISTS idx_stops_lng ON stops(lng);",
    "CREATE INDEX IF NOT EXISTS idx_stops_admin_area ON stops(admin_area_code);",
)

RTREE_TABLE = "stops_rtree"
RTREE_DDL = f"CREATE VIRTUAL TABLE IF NOT EXISTS {RTREE_TABLE} USING rtree(id, minX, maxX, minY, maxY);"


def apply_load_pragmas(conn: sqlite3.Connection) -> None:
    for pragma in LOAD_PRAGMAS:
        conn.execute(pragma)


def create_stops_schema(conn: sqlite3.Connection) -> None:
    conn.execute(STOPS_DDL)
    for ddl in STOPS_INDEXES:
        conn.execute(ddl)


def probe_spatial_index(conn: sqlite3.Connection) -> SpatialIndexProbe:
    """
    Attempt to create the R*Tree table.

    SQLite builds without the rtree module reject the DDL; that rejection
    is reported as an unavailable capability rather than raised.

    Args:
        conn: Open staging connection

    Returns:
        SpatialIndexProbe with enabled=True, or enabled=False and the error
    """
    try:
        conn.execute(RTREE_DDL)
    except sqlite3.OperationalError as e:
        return SpatialIndexProbe(enabled=False, error=SchemaCapabilityError("rtree", str(e)))
    return SpatialIndexProbe(enabled=True)


def table_exists(conn: sqlite3.Connection, name: str) -> bool:
    row = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (name,)
    ).fetchone()
    return row is not None


def create_staging_database(
    staging_path: Path,
    use_rtree: bool = True
) -> tuple[sqlite3.Connection, SpatialIndexProbe]:
    """
    Provision a fresh staging database.

    Args:
        staging_path: Path for the new database file; must not exist yet
        use_rtree: Whether to attempt the spatial index

    Returns:
        Tuple of (open connection in autocommit mode, spatial index probe)

    Raises:
        StagingIOError: If the file exists already or SQLite cannot create it
    """
    if staging_path.exists():
        raise StagingIOError(f"Staging database already exists: {staging_path}")

    try:
        conn = sqlite3.connect(str(staging_path), isolation_level=None)
    except sqlite3.Error as e:
        raise StagingIOError(f"Could not create staging database {staging_path}: {e}") from e

    try:
        apply_load_pragmas(conn)
        create_stops_schema(conn)
        probe = probe_spatial_index(conn) if use_rtree else SpatialIndexProbe(enabled=False)
    except sqlite3.Error as e:
        conn.close()
        raise StagingIOError(f"Schema setup failed for {staging_path}: {e}") from e

    if probe.unavailable:
        logger.warning(f"RTree module unavailable ({probe.error}); using lat/lng indexes only.")
    elif probe.enabled:
        logger.debug(f"Created {RTREE_TABLE} spatial index table")

    return conn, probe
