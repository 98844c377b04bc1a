"""
Type definitions for the NaPTAN stops build pipeline.

This module provides the row-level record types shared by the transform and
load stages, and the exception hierarchy used across the pipeline.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional
from enum import Enum


# Column order of the stops table, matching Stop.as_row()
STOP_COLUMNS = (
    "id",
    "name",
    "lat",
    "lng",
    "locality_name",
    "admin_area_code",
    "stop_type",
    "stop_area_code",
    "indicator",
    "street",
    "bearing",
    "nptg_locality_code",
    "status",
)


class SkipReason(str, Enum):
    """Why a raw CSV record was not turned into a Stop.

    MISSING_ID: No identifier column resolved to a non-empty value
    PREFIX_MISMATCH: Identifier does not start with the active ATCO prefix
    INVALID_COORDINATES: Latitude or longitude missing, unparsable or not finite
    MALFORMED_LINE: CSV line with more fields than the header, dropped by the parser
    """
    MISSING_ID = "missing_id"
    PREFIX_MISMATCH = "prefix_mismatch"
    INVALID_COORDINATES = "invalid_coordinates"
    MALFORMED_LINE = "malformed_line"


@dataclass(frozen=True)
class Stop:
    """One normalized NaPTAN stop, ready for insertion."""
    id: str
    name: str
    lat: float
    lng: float
    locality_name: Optional[str] = None
    admin_area_code: Optional[str] = None
    stop_type: Optional[str] = None
    stop_area_code: Optional[str] = None
    indicator: Optional[str] = None
    street: Optional[str] = None
    bearing: Optional[str] = None
    nptg_locality_code: Optional[str] = None
    status: Optional[str] = None

    def as_row(self) -> tuple:
        """Insert parameters in STOP_COLUMNS order."""
        return tuple(getattr(self, column) for column in STOP_COLUMNS)


@dataclass(frozen=True)
class SpatialIndexProbe:
    """Outcome of attempting to create the R*Tree table.

    A disabled probe with no error means the index was not requested.
    """
    enabled: bool
    error: Optional[SchemaCapabilityError] = None

    @property
    def unavailable(self) -> bool:
        return not self.enabled and self.error is not None


# Pipeline exception hierarchy
class StagingError(Exception):
    """Base exception for build and validation operations."""
    pass


class NetworkError(StagingError):
    """Remote source fetch failed or returned no usable body."""
    def __init__(self, url: str, message: str):
        self.url = url
        super().__init__(f"Network error fetching {url}: {message}")


class StagingIOError(StagingError):
    """Local copy, staging database, rename or cleanup failure."""
    pass


class SchemaCapabilityError(StagingError):
    """The SQLite build lacks an optional capability (R*Tree module)."""
    def __init__(self, capability: str, message: str):
        self.capability = capability
        super().__init__(f"{capability} unavailable: {message}")


class DatasetValidationError(StagingError):
    """A published dataset failed a post-publish sanity check."""
    def __init__(self, check: str, message: str):
        self.check = check
        super().__init__(message)
