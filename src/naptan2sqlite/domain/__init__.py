"""
Domain Models and Types

This module contains the core domain models and enumerations used throughout the pipeline.

Models:
- BuildOptions: Resolved run configuration passed into the build
- BuildReport: Counters, extent and spatial index status of a finished build
- ValidationReport: Summary of a published database that passed validation
- BoundingBox: Coordinate extent

Enums:
- SourceKind: Remote download or local copy
- RunPhase: Build state machine phases
"""

from .enums import RunPhase, SourceKind
from .models import BATCH_SIZE, BoundingBox, BuildOptions, BuildReport, ValidationReport

__all__ = [
    "BuildOptions", "BuildReport", "ValidationReport", "BoundingBox", "BATCH_SIZE",
    "RunPhase", "SourceKind"
]
