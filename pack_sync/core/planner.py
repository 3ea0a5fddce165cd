"""Sync planning: decide whether to sync and what to fetch."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

import structlog

from pack_sync.core.repository import ContentRepository
from pack_sync.core.types import ArtifactRegistry, FileInfo, LocalState, RemoteFileDescriptor, RepositoryEntry, SyncManifest

logger = structlog.get_logger()


def sort_mods(infos: Iterable[FileInfo]) -> list[FileInfo]:
    """Order mods by filename, ignoring case."""
    return sorted(infos, key=lambda info: info.filename.casefold())


@dataclass
class ModPlan:
    """Mods of a manifest and the work needed to have all of them cached."""

    mods: list[FileInfo] = field(default_factory=list)
    downloads: list[RemoteFileDescriptor] = field(default_factory=list)
    relabels: list[tuple[RepositoryEntry, FileInfo]] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.downloads and not self.relabels


class SyncPlanner:
    """Compares local state and a manifest against the repository."""

    def __init__(self, repository: ContentRepository):
        self.repository = repository

    def validate_cache(self, state: LocalState, registry: ArtifactRegistry) -> bool:
        """Check that every enabled mod of ``state`` is cached intact.

        Returns:
            False if any required entry is missing or fails verification
        """
        for info in state.mods:
            if registry.get(info.artifact.group, False):
                continue
            entry = self.repository.lookup(info.checksum)
            if entry is None or not self.repository.verify(entry):
                logger.info("cache_invalid", filename=info.filename, checksum=info.checksum)
                return False
        return True

    @staticmethod
    def is_current(state: LocalState, remote_version: str) -> bool:
        """True if ``state`` already reflects ``remote_version``."""
        return bool(state.version) and state.version == remote_version

    def plan_mods(self, manifest: SyncManifest) -> ModPlan:
        """Build the mod plan for a manifest.

        The manifest's mod list replaces the local one. Missing or damaged
        blobs are downloaded; intact blobs whose metadata differs only get
        a new sidecar.
        """
        plan = ModPlan(mods=sort_mods(desc.file_info for desc in manifest.mods))
        scheduled: set[str] = set()

        for desc in manifest.mods:
            if desc.checksum in scheduled:
                continue
            scheduled.add(desc.checksum)

            entry = self.repository.lookup(desc.checksum)
            if entry is None or not self.repository.verify(entry):
                plan.downloads.append(desc)
            elif entry.info != desc.file_info:
                plan.relabels.append((entry, desc.file_info))

        logger.info(
            "mods_planned",
            mods=len(plan.mods),
            downloads=len(plan.downloads),
            relabels=len(plan.relabels),
        )
        return plan
