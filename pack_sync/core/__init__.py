"""Core functionality for pack_sync.

This module provides the sync engine and its building blocks:
- Type definitions and configuration
- Content-addressed repository
- Manifest client, planner and fetch orchestration
- Mergers for auxiliary files and load planning
"""

from pack_sync.core.types import (
    Artifact,
    ConfigEntry,
    FileInfo,
    LocalState,
    RemoteFileDescriptor,
    RepositoryEntry,
    ServerListEntry,
    SyncContext,
    SyncManifest,
)
from pack_sync.core.utils import (
    algorithm_for_checksum,
    chunked_read,
    compute_checksum,
    format_size,
    validate_hash_string,
)

__all__ = [
    # Types
    "Artifact",
    "ConfigEntry",
    "FileInfo",
    "LocalState",
    "RemoteFileDescriptor",
    "RepositoryEntry",
    "ServerListEntry",
    "SyncContext",
    "SyncManifest",
    # Utils
    "algorithm_for_checksum",
    "chunked_read",
    "compute_checksum",
    "format_size",
    "validate_hash_string",
]
