"""
NaPTAN Stops Pipeline Components

This module provides the build pipeline following the Acquire → Schema → Load → Publish pattern.

Components:
- source: StopsSource for CSV acquisition (download or local copy) and streaming reads
- schema: Staging database provisioning and spatial index probe
- transform: Row normalization into Stop records
- load: BatchLoader for transactional batched inserts
- publish: AtomicPublisher for finalize and atomic swap
- validate: Post-publish sanity checks
- build: End-to-end run orchestration
"""

from .build import build_stops_database, log_build_summary
from .load import BatchLoader, LoadStats
from .publish import AtomicPublisher, staging_area
from .schema import create_staging_database
from .source import StopsSource
from .transform import map_records, map_row
from .validate import UK_BOUNDS, validate_stops_database

__all__ = [
    "StopsSource", "BatchLoader", "LoadStats", "AtomicPublisher", "staging_area",
    "create_staging_database", "map_row", "map_records", "build_stops_database", "log_build_summary",
    "validate_stops_database", "UK_BOUNDS"
]
