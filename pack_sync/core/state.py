"""Persisted sync state and one-time migration of the legacy info file.

``pack-sync-state.json`` holds the pack version and mod set of the last
completed cycle. It is rewritten atomically (temp file + os.replace) and
only after a cycle finished without failures.

Older installs kept everything in ``pack-sync-info.json``::

    {"version": ..., "auth": ..., "pause_updates": ..., "ignored_mods": [...], "mods": [...]}

That file is split into the local config and the state file once, then
renamed to ``pack-sync-info.json.bak``.
"""

from __future__ import annotations

import json
import os
from typing import Any

import structlog
from pydantic import ValidationError

from pack_sync.core.config import InstallLayout, LocalConfig
from pack_sync.core.issues import IssueReporter
from pack_sync.core.types import FileInfo, LocalState
from pack_sync.core.utils import atomic_write_text

logger = structlog.get_logger()


def load_state(layout: InstallLayout, issues: IssueReporter | None = None) -> LocalState:
    """Load the last accepted state.

    A missing file yields an empty state. An unreadable or malformed file
    is reported as a warning and also yields an empty state, which forces
    a full sync.
    """
    path = layout.state_file
    if not path.exists():
        return LocalState()

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        state = LocalState.model_validate(data)
    except (OSError, ValueError) as e:
        if issues is not None:
            issues.warning("Ignoring unreadable sync state", path=path, cause=e)
        else:
            logger.warning("state_load_failed", path=str(path), error=str(e))
        return LocalState()

    logger.debug("state_loaded", version=state.version, mods=len(state.mods))
    return state


def save_state(layout: InstallLayout, state: LocalState) -> None:
    atomic_write_text(layout.state_file, json.dumps(state.to_json(), indent=2) + "\n")
    logger.info("state_saved", version=state.version, mods=len(state.mods))


def migrate_legacy(layout: InstallLayout) -> bool:
    """Split a legacy ``pack-sync-info.json`` into local config and state.

    Values already present in the new files win. ``ignored_mods`` become
    disabled registry entries.

    Returns:
        True if a legacy file was migrated
    """
    legacy = layout.legacy_info_file
    if not legacy.is_file():
        return False

    try:
        with open(legacy, encoding="utf-8") as f:
            data: Any = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    except (OSError, ValueError) as e:
        logger.warning("legacy_migration_failed", path=str(legacy), error=str(e))
        return False

    local_exists = layout.local_config_file.exists()
    local = LocalConfig.load(layout.local_config_file) if local_exists else LocalConfig()
    if not local_exists:
        if isinstance(data.get("auth"), str):
            local.auth = data["auth"]
        if isinstance(data.get("pause_updates"), bool):
            local.pause_updates = data["pause_updates"]

    for name in data.get("ignored_mods") or []:
        if isinstance(name, str) and name:
            local.disabled_artifacts.setdefault(name, True)
    local.save(layout.local_config_file)

    if not layout.state_file.exists():
        mods: list[FileInfo] = []
        for raw in data.get("mods") or []:
            try:
                mods.append(FileInfo.model_validate(raw))
            except ValidationError as e:
                logger.warning("legacy_mod_skipped", error=str(e))
        version = data.get("version") if isinstance(data.get("version"), str) else ""
        save_state(layout, LocalState(version=version, mods=mods))

    os.replace(legacy, legacy.with_name(legacy.name + ".bak"))
    logger.info("legacy_info_migrated", path=str(legacy))
    return True
