"""
Stops database build run.

Drives one run through acquire, schema setup, streaming load, finalize,
publish and cleanup. The run is a function of its BuildOptions only; the
destination is touched exclusively by the final atomic rename.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Optional

from ..domain.enums import RunPhase
from ..domain.models import BuildOptions, BuildReport
from ..utils import format_duration
from .load import BatchLoader
from .publish import AtomicPublisher, staging_area
from .schema import create_staging_database
from .source import StopsSource, sanitize_url
from .transform import map_records

logger = logging.getLogger(__name__)


class _PhaseTracker:
    """Current run phase, for failure reporting."""

    def __init__(self):
        self.phase = RunPhase.INIT

    def enter(self, phase: RunPhase) -> None:
        logger.debug(f"Phase: {self.phase.value} -> {phase.value}")
        self.phase = phase


def build_stops_database(options: BuildOptions, temp_parent: Optional[Path] = None) -> BuildReport:
    """
    Build and atomically publish the stops database.

    Args:
        options: Resolved source, destination, prefix filter and index flag
        temp_parent: Directory for the download temp dir (system temp if None)

    Returns:
        BuildReport with counters, extent and spatial index status

    Raises:
        NetworkError: Remote source could not be fetched
        StagingIOError: Local copy, staging, load or rename failure
    """
    start_time = time.time()
    tracker = _PhaseTracker()
    source = StopsSource(options.source, temp_parent=temp_parent)
    publisher = AtomicPublisher(options.out_path)

    try:
        tracker.enter(RunPhase.ACQUIRE)
        with source.acquire() as acquired, staging_area(options.out_path) as staging_path:
            tracker.enter(RunPhase.SCHEMA_SETUP)
            conn, probe = create_staging_database(staging_path, use_rtree=options.use_rtree)

            tracker.enter(RunPhase.LOAD)
            try:
                loader = BatchLoader(conn, rtree_enabled=probe.enabled, batch_size=options.batch_size)
                records = source.iter_records(acquired.csv_path, chunk_size=options.batch_size)
                stats = loader.load(map_records(records, options.atco_prefix))
            except BaseException:
                conn.close()
                raise

            tracker.enter(RunPhase.FINALIZE)
            publisher.finalize(conn)

            if stats.kept == 0:
                logger.warning("No stops matched; publishing an empty stops table")

            tracker.enter(RunPhase.PUBLISH)
            publisher.publish(staging_path)
            tracker.enter(RunPhase.CLEANUP)
    except Exception:
        logger.error(f"Build failed during {tracker.phase.value}")
        raise

    tracker.enter(RunPhase.DONE)

    return BuildReport(
        source=sanitize_url(options.source),
        out_path=options.out_path,
        atco_prefix=options.atco_prefix,
        rows_processed=stats.processed,
        rows_kept=stats.kept,
        rows_skipped=stats.skipped,
        rows_inserted=stats.inserted,
        duplicates_dropped=stats.duplicates,
        skip_reasons={reason.value: count for reason, count in stats.skip_reasons.items()},
        bbox=stats.bbox(),
        spatial_index_requested=options.use_rtree,
        spatial_index_enabled=probe.enabled,
        spatial_index_error=str(probe.error) if probe.error else None,
        duration_s=round(time.time() - start_time, 3),
    )


def log_build_summary(report: BuildReport) -> None:
    """Operator-facing summary lines for a finished build."""
    logger.info(f"Rows processed: {report.rows_processed}")
    logger.info(f"Rows kept: {report.rows_kept}")
    logger.info(f"Rows skipped: {report.rows_skipped}")
    for reason, count in sorted(report.skip_reasons.items()):
        logger.info(f"  {reason}: {count}")
    if report.duplicates_dropped:
        logger.info(f"Duplicate ids dropped: {report.duplicates_dropped}")
    if report.bbox:
        logger.info(f"Latitude range: {report.bbox.min_lat:.6f} to {report.bbox.max_lat:.6f}")
        logger.info(f"Longitude range: {report.bbox.min_lng:.6f} to {report.bbox.max_lng:.6f}")

    logger.info(f"ATCO prefix filter: {report.atco_prefix or 'none'}")

    if report.spatial_index_requested and not report.spatial_index_enabled:
        logger.info("RTree unavailable; using lat/lng indexes only.")
    elif report.spatial_index_enabled:
        logger.info("RTree enabled for spatial lookups.")

    logger.info(f"Done. Wrote {report.out_path} in {format_duration(report.duration_s)}")
