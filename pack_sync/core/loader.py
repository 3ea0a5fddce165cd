"""Artifact filtering and load planning."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from pack_sync.core.issues import IssueReporter
from pack_sync.core.planner import sort_mods
from pack_sync.core.repository import ContentRepository
from pack_sync.core.types import ArtifactRegistry, FileInfo

logger = structlog.get_logger()


@dataclass
class LoadPlan:
    """Ordered files for the host loader plus the updated registry."""

    paths: list[Path] = field(default_factory=list)
    missing: list[FileInfo] = field(default_factory=list)
    registry: ArtifactRegistry = field(default_factory=dict)
    registry_changed: bool = False


class LoadPlanner:
    """Turns the settled mod list into the list of files to load.

    Args:
        repository: Repository holding the mod blobs
        issues: Reporter for mods that cannot be loaded
    """

    def __init__(self, repository: ContentRepository, issues: IssueReporter):
        self.repository = repository
        self.issues = issues

    def plan(self, mods: Iterable[FileInfo], registry: ArtifactRegistry) -> LoadPlan:
        """Filter disabled artifacts and resolve the rest to verified blobs.

        Newly seen artifact groups are added to the registry as enabled;
        existing flags are never changed.
        """
        result = LoadPlan(registry=dict(registry))

        for info in sort_mods(mods):
            group = info.artifact.group
            if group and group not in result.registry:
                result.registry[group] = False
                result.registry_changed = True

            if group and result.registry[group]:
                logger.info("mod_skipped", filename=info.filename, artifact=group)
                continue

            entry = self.repository.lookup(info.checksum)
            if entry is None or not self.repository.verify(entry):
                result.missing.append(info)
                self.issues.error(f"Mod {info.filename} ({info.artifact}) is not available")
                continue

            result.paths.append(entry.path)
            logger.info(
                "mod_loaded",
                mod=f"{info.filename} ({info.artifact}/{info.checksum})",
            )

        return result
