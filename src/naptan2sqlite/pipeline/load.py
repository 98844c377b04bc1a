"""
BatchLoader - Transactional Stop Insertion

Consumes the transformed row stream, writing bounded batches inside
explicit transactions, and keeps the counters and coordinate extent
reported at the end of a build.
"""

from __future__ import annotations

import logging
import math
import sqlite3
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Optional, Union

from ..domain.models import BATCH_SIZE, BoundingBox
from ..types import STOP_COLUMNS, SkipReason, StagingIOError, Stop
from ..utils import timer
from .schema import RTREE_TABLE

logger = logging.getLogger(__name__)

INSERT_STOP_SQL = (
    f"INSERT OR IGNORE INTO stops ({', '.join(STOP_COLUMNS)}) "
    f"VALUES ({', '.join('?' for _ in STOP_COLUMNS)});"
)
INSERT_RTREE_SQL = f"INSERT OR REPLACE INTO {RTREE_TABLE} (id, minX, maxX, minY, maxY) VALUES (?, ?, ?, ?, ?);"


@dataclass
class LoadStats:
    """Running counters over the row stream."""
    processed: int = 0
    kept: int = 0
    inserted: int = 0
    spatial_entries: int = 0
    batches: int = 0
    skip_reasons: Counter = field(default_factory=Counter)
    min_lat: float = math.inf
    max_lat: float = -math.inf
    min_lng: float = math.inf
    max_lng: float = -math.inf

    @property
    def skipped(self) -> int:
        return sum(self.skip_reasons.values())

    @property
    def duplicates(self) -> int:
        """Kept rows whose id was already present."""
        return self.kept - self.inserted

    def record_skip(self, reason: SkipReason) -> None:
        self.processed += 1
        self.skip_reasons[reason] += 1

    def record_kept(self, stop: Stop) -> None:
        self.processed += 1
        self.kept += 1
        self.min_lat = min(self.min_lat, stop.lat)
        self.max_lat = max(self.max_lat, stop.lat)
        self.min_lng = min(self.min_lng, stop.lng)
        self.max_lng = max(self.max_lng, stop.lng)

    def bbox(self) -> Optional[BoundingBox]:
        if self.kept == 0:
            return None
        return BoundingBox(
            min_lat=self.min_lat,
            max_lat=self.max_lat,
            min_lng=self.min_lng,
            max_lng=self.max_lng,
        )


class BatchLoader:
    """
    Batched writer for the stops table and its optional R*Tree.

    Rows are buffered up to batch_size and each full buffer is written in a
    single transaction. The connection must be in autocommit mode
    (isolation_level=None) so BEGIN/COMMIT here are the only transactions.
    """

    def __init__(self, conn: sqlite3.Connection, rtree_enabled: bool = False, batch_size: int = BATCH_SIZE):
        if batch_size < 1:
            raise ValueError("Batch size must be positive")
        self.conn = conn
        self.rtree_enabled = rtree_enabled
        self.batch_size = batch_size
        self.stats = LoadStats()
        self._batch: list[Stop] = []

    def add(self, item: Union[Stop, SkipReason]) -> None:
        """Tally one transformed row, flushing when the batch is full."""
        if isinstance(item, SkipReason):
            self.stats.record_skip(item)
            return

        self.stats.record_kept(item)
        self._batch.append(item)
        if len(self._batch) >= self.batch_size:
            self.flush()

    @timer
    def load(self, items: Iterable[Union[Stop, SkipReason]]) -> LoadStats:
        """
        Consume the whole stream and flush the final partial batch.

        Returns:
            Final LoadStats

        Raises:
            StagingIOError: If any batch transaction fails
        """
        for item in items:
            self.add(item)
        self.flush()
        return self.stats

    def flush(self) -> int:
        """
        Write the pending batch in one transaction.

        Returns:
            Number of new stop rows written

        Raises:
            StagingIOError: If the transaction fails; the batch is rolled back
        """
        if not self._batch:
            return 0

        batch, self._batch = self._batch, []
        inserted = 0
        spatial = 0

        try:
            self.conn.execute("BEGIN;")
            for stop in batch:
                cursor = self.conn.execute(INSERT_STOP_SQL, stop.as_row())
                if cursor.rowcount != 1:
                    continue
                inserted += 1
                if self.rtree_enabled and cursor.lastrowid is not None:
                    self.conn.execute(
                        INSERT_RTREE_SQL,
                        (cursor.lastrowid, stop.lng, stop.lng, stop.lat, stop.lat),
                    )
                    spatial += 1
            self.conn.execute("COMMIT;")
        except sqlite3.Error as e:
            if self.conn.in_transaction:
                self.conn.execute("ROLLBACK;")
            raise StagingIOError(f"Batch insert failed after {self.stats.inserted} rows: {e}") from e

        self.stats.inserted += inserted
        self.stats.spatial_entries += spatial
        self.stats.batches += 1
        logger.debug(
            f"Flushed batch {self.stats.batches}: {len(batch)} rows, {inserted} new "
            f"({self.stats.inserted:,} total)"
        )
        return inserted
