"""
Pipeline Domain Models

Pydantic models for the run configuration and the reports produced by the
build and validate commands.
"""

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator

# Default number of stops per insert transaction
BATCH_SIZE = 2000


class BoundingBox(BaseModel):
    """Coordinate extent of a set of stops."""
    min_lat: float = Field(..., description="Southernmost latitude")
    max_lat: float = Field(..., description="Northernmost latitude")
    min_lng: float = Field(..., description="Westernmost longitude")
    max_lng: float = Field(..., description="Easternmost longitude")

    class Config:
        """Pydantic configuration."""
        frozen = True

    def covers_latitudes(self, other: "BoundingBox") -> bool:
        return self.min_lat <= other.min_lat and other.max_lat <= self.max_lat

    def covers_longitudes(self, other: "BoundingBox") -> bool:
        return self.min_lng <= other.min_lng and other.max_lng <= self.max_lng

    def contains(self, other: "BoundingBox") -> bool:
        """True if other lies entirely inside this box."""
        return self.covers_latitudes(other) and self.covers_longitudes(other)


class BuildOptions(BaseModel):
    """Everything a build run needs, resolved once by the caller."""
    source: str = Field(..., description="Remote URL, local path or file:// URL of the access-nodes CSV")
    out_path: Path = Field(..., description="Destination SQLite file")
    atco_prefix: Optional[str] = Field(None, description="Keep only ATCO codes with this prefix (None keeps all)")
    use_rtree: bool = Field(default=True, description="Attempt to build the stops_rtree spatial index")
    batch_size: int = Field(default=BATCH_SIZE, gt=0, description="Stops per insert transaction")

    class Config:
        """Pydantic configuration."""
        frozen = True

    @field_validator("atco_prefix")
    @classmethod
    def _empty_prefix_means_none(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value


class BuildReport(BaseModel):
    """Operator-facing summary of a completed build."""
    source: str
    out_path: Path
    atco_prefix: Optional[str] = None
    rows_processed: int = 0
    rows_kept: int = 0
    rows_skipped: int = 0
    rows_inserted: int = 0
    duplicates_dropped: int = 0
    skip_reasons: dict[str, int] = Field(default_factory=dict)
    bbox: Optional[BoundingBox] = None
    spatial_index_requested: bool = True
    spatial_index_enabled: bool = False
    spatial_index_error: Optional[str] = None
    duration_s: float = 0.0


class ValidationReport(BaseModel):
    """Result of a successful validation of a published stops database."""
    db_path: Path
    stop_count: int
    bbox: BoundingBox
    spatial_index_present: bool = False
    spatial_index_rows: Optional[int] = None
