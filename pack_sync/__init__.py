"""pack-sync - keep a game install in step with a remotely declared mod pack.

Key modules:
- core: Sync engine (repository, client, planner, fetcher, mergers, loader)
- formats: File format parsers and builders (NBT, options.txt, properties)
- commands: CLI command implementations
"""

__version__ = "0.1.0"

# Re-export commonly used types
from pack_sync.core.types import (
    Artifact,
    FileInfo,
    LocalState,
    RemoteFileDescriptor,
    SyncManifest,
)

__all__ = [
    "__version__",
    "Artifact",
    "FileInfo",
    "LocalState",
    "RemoteFileDescriptor",
    "SyncManifest",
]
