"""One sync cycle, from configuration to load list.

Phases run strictly in order::

    discovery -> version check -> manifest -> mods -> extras -> merges -> persist -> load plan

Any failure counted during mods, extras or merges stops the cycle before
the state file and the artifact registry are rewritten, so the next run
retries from the same version. Downloads that did complete stay in the
repository. A load list is produced in every case except a missing pack
configuration.
"""

from __future__ import annotations

import os
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

import httpx
import structlog

from pack_sync.core.client import ManifestClient, SyncUnavailableError, resolve_auth
from pack_sync.core.config import ConfigError, InstallLayout, LocalConfig, PackConfig, SyncSettings
from pack_sync.core.fetcher import FailureCounter, FetchOrchestrator, PhaseRunner, PhaseTask
from pack_sync.core.issues import Issue, IssueLevel, IssueReporter
from pack_sync.core.loader import LoadPlan, LoadPlanner
from pack_sync.core.merge import (
    encode_icon,
    load_remote_server_list,
    merge_options,
    merge_properties,
    merge_server_list,
)
from pack_sync.core.planner import SyncPlanner
from pack_sync.core.repository import ContentRepository
from pack_sync.core.state import load_state, migrate_legacy, save_state
from pack_sync.core.types import (
    ArtifactRegistry,
    FileInfo,
    LocalState,
    PlatformInfo,
    ServerListEntry,
    SyncContext,
    SyncManifest,
)

logger = structlog.get_logger()


@dataclass
class SyncResult:
    """Outcome of one cycle."""

    issues: list[Issue] = field(default_factory=list)
    load_plan: LoadPlan | None = None
    context: SyncContext | None = None
    version: str = ""
    updated: bool = False
    failed: bool = False

    @property
    def paths(self) -> list[Path]:
        return self.load_plan.paths if self.load_plan is not None else []

    @property
    def has_errors(self) -> bool:
        return any(issue.level == IssueLevel.ERROR for issue in self.issues)


class SyncEngine:
    """Runs sync cycles for one install directory.

    Args:
        install_root: Directory holding ``mods/`` and the config files
        settings: Runtime settings
        environ: Environment used for the repository override and auth
        transport: Optional httpx transport, used by tests
    """

    def __init__(
        self,
        install_root: Path,
        settings: SyncSettings | None = None,
        environ: Mapping[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.layout = InstallLayout(install_root)
        self.settings = settings or SyncSettings()
        self.environ = os.environ if environ is None else environ
        self.transport = transport
        self.client: ManifestClient | None = None

    def create_repository(self, issues: IssueReporter) -> ContentRepository:
        repository = ContentRepository(
            self.settings.primary_repository(self.environ),
            self.layout.secondary_repository,
            issues,
        )
        repository.open()
        return repository

    def run(self, platform: PlatformInfo | None = None) -> SyncResult:
        """Run one full cycle."""
        start = time.monotonic()
        platform = platform or PlatformInfo()
        issues = IssueReporter()
        result = SyncResult()

        try:
            pack = PackConfig.load(self.layout.pack_config_file)
        except ConfigError as e:
            issues.error(str(e), path=e.path, cause=e)
            result.failed = True
            result.issues = issues.issues
            return result

        migrate_legacy(self.layout)
        local = LocalConfig.load(self.layout.local_config_file)
        state = load_state(self.layout, issues)
        registry: ArtifactRegistry = dict(local.disabled_artifacts)

        context = SyncContext(api=pack.api, pack_code=pack.pack_code, pack_id=pack.pack_id)
        if self.client is None:
            self.client = ManifestClient(
                self.settings,
                token=resolve_auth(local.auth, self.environ),
                transport=self.transport,
            )

        counter = FailureCounter()
        repository = self.create_repository(issues)
        mods = state.mods

        with PhaseRunner(issues, counter, self.settings.max_workers) as runner:
            repository.discover(runner)

            if local.pause_updates:
                logger.info("updates_paused", version=state.version)
            else:
                context, mods, result.failed, result.updated = self._sync(
                    context, platform, state, registry, repository, runner, issues
                )

        load_plan = LoadPlanner(repository, issues).plan(mods, registry)
        if load_plan.registry_changed and not result.failed:
            local.disabled_artifacts = load_plan.registry
            local.save(self.layout.local_config_file)

        result.load_plan = load_plan
        result.context = context
        result.version = context.version or state.version
        result.issues = issues.issues
        logger.info(
            "sync_finished",
            version=result.version,
            updated=result.updated,
            failed=result.failed,
            files=len(load_plan.paths),
            elapsed_ms=int((time.monotonic() - start) * 1000),
        )
        return result

    def _sync(
        self,
        context: SyncContext,
        platform: PlatformInfo,
        state: LocalState,
        registry: ArtifactRegistry,
        repository: ContentRepository,
        runner: PhaseRunner,
        issues: IssueReporter,
    ) -> tuple[SyncContext, list[FileInfo], bool, bool]:
        """Check the remote and apply a new manifest.

        Returns:
            (context, mods to load, failed, updated)
        """
        assert self.client is not None
        planner = SyncPlanner(repository)

        local_version = state.version
        if state.mods and not planner.validate_cache(state, registry):
            logger.info("cache_resync_forced", version=state.version)
            local_version = ""

        try:
            info = self.client.fetch_version(context)
        except SyncUnavailableError as e:
            issues.warning("Pack sync is unavailable, using cached mods", cause=e)
            return context, state.mods, False, False

        context = context.with_version(info)
        if planner.is_current(LocalState(version=local_version), info.version):
            logger.info("pack_up_to_date", version=info.version)
            return context, state.mods, False, False

        logger.info("pack_update_found", current=local_version, remote=info.version)
        try:
            manifest = self.client.fetch_manifest(context, platform, pack_version=local_version)
        except SyncUnavailableError as e:
            issues.warning("Pack sync is unavailable, using cached mods", cause=e)
            return context, state.mods, False, False

        for message in manifest.warnings:
            issues.warning(message)
        if manifest.errors:
            for message in manifest.errors:
                issues.error(message)
            return context, state.mods, True, False

        plan = planner.plan_mods(manifest)
        orchestrator = FetchOrchestrator(self.client, repository, runner)

        orchestrator.fetch_mods(plan)
        if runner.counter.value:
            return context, state.mods, True, False

        orchestrator.sync_extra_files(manifest.extra_files, self.layout.root, manifest.server_icon)
        if runner.counter.value:
            return context, state.mods, True, False

        runner.run("merges", self._merge_tasks(manifest, issues))
        if runner.counter.value:
            return context, state.mods, True, False

        save_state(self.layout, LocalState(version=info.version, mods=plan.mods))
        logger.info("pack_updated", previous=state.version, version=info.version)
        return context, plan.mods, False, True

    def _merge_tasks(self, manifest: SyncManifest, issues: IssueReporter) -> list[PhaseTask]:
        layout = self.layout
        tasks: list[PhaseTask] = []

        if manifest.options:
            tasks.append(
                PhaseTask(
                    label=layout.options_file.name,
                    func=lambda: merge_options(layout.options_file, manifest.options),
                    path=layout.options_file,
                )
            )
        if manifest.server_properties:
            tasks.append(
                PhaseTask(
                    label=layout.server_properties_file.name,
                    func=lambda: merge_properties(layout.server_properties_file, manifest.server_properties),
                    path=layout.server_properties_file,
                )
            )
        if manifest.server_list is not None or manifest.servers is not None:
            tasks.append(
                PhaseTask(
                    label=layout.servers_file.name,
                    func=lambda: self._merge_servers(manifest, issues),
                    path=layout.servers_file,
                )
            )
        return tasks

    def _merge_servers(self, manifest: SyncManifest, issues: IssueReporter) -> bool:
        assert self.client is not None
        entries: list[ServerListEntry] = list(manifest.server_list or [])
        if manifest.servers is not None:
            data = self.client.download(manifest.servers.url, gzip_body=manifest.servers.gzip)
            entries.extend(load_remote_server_list(data))

        default_icon = encode_icon(self.layout.server_icon_file)
        return merge_server_list(self.layout.servers_file, entries, default_icon, issues)

    def notify_exit(self, context: SyncContext | None) -> bool:
        """Send the exit notification for a finished run."""
        if self.client is None or context is None:
            return False
        return self.client.notify_exit(context)

    def close(self) -> None:
        if self.client is not None:
            self.client.close()
            self.client = None
