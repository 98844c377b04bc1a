"""Temporary directory and SQLite sidecar management for build runs."""

from __future__ import annotations

import logging
import shutil
import tempfile
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from .types import StagingIOError

# Journal and shared-memory files SQLite may leave beside a database
SIDECAR_SUFFIXES = ("-wal", "-shm", "-journal")

# Prefix of staging directories created next to the destination file
STAGING_PREFIX = ".stops-"


def sidecar_paths(db_path: Path, suffixes: tuple[str, ...] = SIDECAR_SUFFIXES) -> list[Path]:
    """Sidecar file locations for a database path."""
    return [db_path.with_name(db_path.name + suffix) for suffix in suffixes]


def existing_sidecars(db_path: Path, suffixes: tuple[str, ...] = SIDECAR_SUFFIXES) -> list[Path]:
    """Sidecar files currently present beside db_path."""
    return [path for path in sidecar_paths(db_path, suffixes) if path.exists()]


def remove_sidecars(db_path: Path) -> int:
    """
    Delete any sidecar files beside db_path.

    Args:
        db_path: Database file whose sidecars should go

    Returns:
        Number of files removed

    Raises:
        StagingIOError: If a sidecar exists but cannot be removed
    """
    removed = 0
    for path in sidecar_paths(db_path):
        try:
            path.unlink()
            removed += 1
            logging.debug(f"Removed sidecar file: {path}")
        except FileNotFoundError:
            continue
        except OSError as e:
            raise StagingIOError(f"Could not remove sidecar {path}: {e}") from e
    return removed


def remove_tree(path: Path) -> bool:
    """Remove a temp directory, logging rather than raising on failure."""
    if not path.exists():
        return True
    try:
        shutil.rmtree(path)
        logging.debug(f"Removed temp directory: {path}")
        return True
    except OSError as e:
        logging.warning(f"Could not remove temp directory {path}: {e}")
        return False


@contextmanager
def scoped_temp_dir(prefix: str, parent: Optional[Path] = None) -> Iterator[Path]:
    """
    Create a temp directory that is removed on every exit path.

    Args:
        prefix: Directory name prefix
        parent: Directory to create it in (system temp dir if None)

    Raises:
        StagingIOError: If the directory cannot be created
    """
    try:
        tmp_dir = Path(tempfile.mkdtemp(prefix=prefix, dir=str(parent) if parent else None))
    except OSError as e:
        raise StagingIOError(f"Could not create temp directory in {parent or tempfile.gettempdir()}: {e}") from e

    try:
        yield tmp_dir
    finally:
        remove_tree(tmp_dir)


def cleanup_stale_staging(out_path: Path, retention_hours: int = 24) -> int:
    """
    Remove staging directories abandoned by killed runs.

    Only directories beside out_path carrying the staging prefix and older
    than the retention period are touched.

    Args:
        out_path: Destination database path
        retention_hours: Directories older than this will be removed

    Returns:
        Number of directories removed
    """
    parent = out_path.parent
    if not parent.exists():
        return 0

    cutoff_time = time.time() - (retention_hours * 3600)
    cleaned_count = 0

    for item in parent.glob(f"{STAGING_PREFIX}*"):
        if not item.is_dir():
            continue
        try:
            if item.stat().st_mtime >= cutoff_time:
                continue
        except OSError as e:
            logging.warning(f"Could not stat staging directory {item}: {e}")
            continue
        if remove_tree(item):
            cleaned_count += 1

    if cleaned_count > 0:
        logging.info(f"Cleaned up {cleaned_count} stale staging directories (>{retention_hours}h)")

    return cleaned_count
