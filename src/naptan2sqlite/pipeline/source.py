"""
StopsSource - Access-nodes CSV Acquisition

Materializes the NaPTAN access-nodes CSV into a run-scoped temp directory,
either by streaming an HTTP download to disk or by copying a local file,
and streams the copy back as raw records one pandas chunk at a time.
"""

import logging
import re
import shutil
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union
from urllib.parse import urlsplit, urlunsplit
from urllib.request import url2pathname

import pandas as pd
import requests

from ..cleanup import scoped_temp_dir
from ..domain.enums import SourceKind
from ..types import NetworkError, SkipReason, StagingIOError

logger = logging.getLogger(__name__)

# Filename of the materialized CSV inside the temp directory
CSV_FILENAME = "access-nodes.csv"

# Bytes per write while streaming a download to disk
DOWNLOAD_CHUNK_SIZE = 65536

_REMOTE_PATTERN = re.compile(r"^https?:", re.IGNORECASE)


def is_remote_source(source: str) -> bool:
    """True for http(s) URLs."""
    return bool(_REMOTE_PATTERN.match(source))


def source_kind(source: str) -> SourceKind:
    return SourceKind.REMOTE if is_remote_source(source) else SourceKind.LOCAL


def sanitize_url(url: str) -> str:
    """Drop any user:password component so URLs are safe to log."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if parts.username is None and parts.password is None:
        return url
    netloc = parts.hostname or ""
    if parts.port:
        netloc = f"{netloc}:{parts.port}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


def resolve_local_path(source: str) -> Path:
    """Filesystem path for a local source, accepting file:// URLs."""
    if source.lower().startswith("file://"):
        parts = urlsplit(source)
        return Path(url2pathname(parts.path))
    return Path(source).expanduser().resolve()


@dataclass(frozen=True)
class AcquiredSource:
    """Local copy of the source CSV and the temp directory that owns it."""
    csv_path: Path
    tmp_dir: Path
    kind: SourceKind


class StopsSource:
    """
    Access-nodes CSV source.

    Handles remote download or local copy into an isolated temp directory,
    and streaming CSV reads with bounded memory.
    """

    def __init__(self, source: str, temp_parent: Optional[Path] = None):
        """
        Initialize source.

        Args:
            source: http(s) URL, local path, or file:// URL
            temp_parent: Directory for the download temp dir (system temp if None)
        """
        self.source = source
        self.kind = source_kind(source)
        self.temp_parent = temp_parent

    @contextmanager
    def acquire(self) -> Iterator[AcquiredSource]:
        """
        Materialize the source CSV for the duration of the block.

        The temp directory and everything in it is removed on exit, whether
        the block completes or raises.

        Raises:
            NetworkError: Remote fetch failed or returned no body
            StagingIOError: Local copy or temp directory failure
        """
        with scoped_temp_dir("naptan-", self.temp_parent) as tmp_dir:
            csv_path = tmp_dir / CSV_FILENAME
            if self.kind == SourceKind.REMOTE:
                self._download(csv_path)
            else:
                self._copy_local(csv_path)
            yield AcquiredSource(csv_path=csv_path, tmp_dir=tmp_dir, kind=self.kind)

    def _download(self, dest: Path) -> None:
        """Stream the HTTP response body straight to dest."""
        url = self.source
        logger.info(f"Downloading: {sanitize_url(url)}")

        try:
            response = requests.get(url, stream=True, headers={"accept": "text/csv"})
        except requests.RequestException as e:
            raise NetworkError(sanitize_url(url), str(e)) from e

        with response:
            if not response.ok:
                raise NetworkError(sanitize_url(url), f"{response.status_code} {response.reason}")
            if response.raw is None:
                raise NetworkError(sanitize_url(url), "response has no body")

            written = 0
            try:
                with open(dest, "wb") as f:
                    for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                        if chunk:
                            f.write(chunk)
                            written += len(chunk)
            except requests.RequestException as e:
                raise NetworkError(sanitize_url(url), f"download interrupted: {e}") from e
            except OSError as e:
                raise StagingIOError(f"Could not write download to {dest}: {e}") from e

        if written == 0:
            raise NetworkError(sanitize_url(url), "response has no body")
        logger.info(f"Downloaded {written / (1024 * 1024):.1f} MB")

    def _copy_local(self, dest: Path) -> None:
        """Copy the local source file verbatim."""
        src = resolve_local_path(self.source)
        logger.info(f"Using local file: {src}")
        try:
            shutil.copyfile(src, dest)
        except OSError as e:
            raise StagingIOError(f"Could not copy {src}: {e}") from e

    @staticmethod
    def iter_records(csv_path: Path, chunk_size: int = 2000) -> Iterator[Union[dict, SkipReason]]:
        """
        Stream raw records from a CSV file.

        Undecodable bytes are replaced rather than failing the read. Lines
        with more fields than the header are dropped by the parser and
        reported as SkipReason.MALFORMED_LINE so the caller can tally them.

        Args:
            csv_path: CSV with a header row
            chunk_size: Rows parsed per pandas chunk

        Yields:
            One dict per row (header -> string value), or MALFORMED_LINE

        Raises:
            StagingIOError: If the file cannot be read or the CSV structure
                cannot be parsed
        """
        malformed: list[list[str]] = []

        def drop_malformed(bad_line: list[str]) -> None:
            malformed.append(bad_line)
            return None

        try:
            reader = pd.read_csv(
                csv_path,
                dtype=str,
                keep_default_na=False,
                na_filter=False,
                encoding="utf-8-sig",
                encoding_errors="replace",
                chunksize=chunk_size,
                engine="python",
                on_bad_lines=drop_malformed,
            )
        except pd.errors.EmptyDataError:
            logger.warning(f"Source CSV is empty: {csv_path}")
            return
        except pd.errors.ParserError as e:
            raise StagingIOError(f"Could not parse {csv_path}: {e}") from e
        except OSError as e:
            raise StagingIOError(f"Could not read {csv_path}: {e}") from e

        dropped = 0
        try:
            with reader:
                for chunk in reader:
                    yield from chunk.to_dict("records")
                    while malformed:
                        malformed.pop()
                        dropped += 1
                        yield SkipReason.MALFORMED_LINE
        except pd.errors.ParserError as e:
            raise StagingIOError(f"Could not parse {csv_path} after {dropped} malformed lines: {e}") from e

        while malformed:
            malformed.pop()
            dropped += 1
            yield SkipReason.MALFORMED_LINE

        if dropped:
            logger.warning(f"Dropped {dropped:,} malformed CSV lines from {csv_path.name}")
