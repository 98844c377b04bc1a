"""
Pipeline Enumerations

Core enums for type safety and clear interface definitions across the pipeline.
"""

from enum import Enum


class SourceKind(str, Enum):
    """Where the access-nodes CSV comes from."""
    REMOTE = "remote"       # http(s) download, streamed to disk
    LOCAL = "local"         # Filesystem path or file:// URL, copied verbatim


class RunPhase(str, Enum):
    """Phases of a single build run, in execution order."""
    INIT = "init"
    ACQUIRE = "acquire"             # Materialize the CSV into a temp directory
    SCHEMA_SETUP = "schema_setup"   # Fresh staging database, pragmas, DDL
    LOAD = "load"                   # Streaming transform and batched insert
    FINALIZE = "finalize"           # Optimize and vacuum the staging file
    PUBLISH = "publish"             # Atomic swap onto the destination
    CLEANUP = "cleanup"             # Remove staging and download directories
    DONE = "done"
