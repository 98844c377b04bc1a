"""
AtomicPublisher - Staging Finalization and Swap

Compacts the finished staging database and promotes it onto the
destination path with a single rename. Readers of the destination see
either the previous complete file or the new complete file.
"""

from __future__ import annotations

import logging
import os
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from ..cleanup import STAGING_PREFIX, remove_sidecars, scoped_temp_dir
from ..types import StagingIOError
from ..utils import timer

logger = logging.getLogger(__name__)


@contextmanager
def staging_area(out_path: Path) -> Iterator[Path]:
    """
    Yield a staging database path beside the destination.

    The staging directory lives in the destination's directory so the final
    rename never crosses a filesystem boundary. It is removed on exit.

    Raises:
        StagingIOError: If the destination directory cannot be created
    """
    out_dir = out_path.parent
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise StagingIOError(f"Could not create output directory {out_dir}: {e}") from e

    with scoped_temp_dir(STAGING_PREFIX, out_dir) as staging_dir:
        yield staging_dir / out_path.name


class AtomicPublisher:
    """Finalize a staging database and swap it onto the destination."""

    def __init__(self, out_path: Path):
        self.out_path = out_path

    @timer
    def finalize(self, conn: sqlite3.Connection) -> None:
        """
        Refresh planner statistics, compact the file and close the connection.

        Raises:
            StagingIOError: If maintenance fails; the connection is still closed
        """
        try:
            conn.execute("PRAGMA optimize;")
            conn.execute("VACUUM;")
        except sqlite3.Error as e:
            raise StagingIOError(f"Staging database finalization failed: {e}") from e
        finally:
            conn.close()

    def publish(self, staging_path: Path) -> Path:
        """
        Promote the finished staging file onto the destination.

        Nothing before the rename touches the destination, so a failure
        there leaves the previously published file intact.

        Args:
            staging_path: Closed, finalized staging database

        Returns:
            The destination path

        Raises:
            StagingIOError: If sidecar removal or the rename fails
        """
        if not staging_path.is_file():
            raise StagingIOError(f"Staging database missing: {staging_path}")

        remove_sidecars(staging_path)

        try:
            os.replace(staging_path, self.out_path)
        except OSError as e:
            raise StagingIOError(f"Could not publish {staging_path} to {self.out_path}: {e}") from e

        logger.info(f"Published {self.out_path}")

        # The new data is live; leftovers here are harmless
        try:
            remove_sidecars(self.out_path)
        except StagingIOError as e:
            logger.warning(f"Post-publish cleanup incomplete: {e}")

        return self.out_path
