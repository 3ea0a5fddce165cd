"""Fetch orchestration: fork-join phases over a thread pool.

A sync cycle runs its work in phases (discovery, mods, extra files,
merges). Each phase submits one task per unit of work and waits for all of
them before returning; phases never interleave. A task that raises is
turned into an error issue and a failure-counter increment, so one bad
file never stops its siblings.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ALL_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from pack_sync.core.integrity import verify_checksum, verify_size
from pack_sync.core.issues import IssueReporter
from pack_sync.core.types import RemoteFileDescriptor
from pack_sync.core.utils import atomic_write_bytes, format_size

if TYPE_CHECKING:
    from pack_sync.core.client import ManifestClient
    from pack_sync.core.planner import ModPlan
    from pack_sync.core.repository import ContentRepository

logger = structlog.get_logger()

SERVER_ICON_FILENAME = "server-icon.png"


class PathEscapeError(ValueError):
    """Raised when a declared path resolves outside the install root."""

    def __init__(self, message: str, *, path: str):
        self.path = path
        super().__init__(message)


def resolve_under(root: Path, relative: str) -> Path:
    """Resolve ``relative`` below ``root``.

    Raises:
        PathEscapeError: If the result is ``root`` itself or lies outside it
    """
    base = root.resolve()
    candidate = (base / relative).resolve()
    if candidate == base or not candidate.is_relative_to(base):
        raise PathEscapeError(f"Path escapes the install directory: {relative}", path=relative)
    return candidate


class FailureCounter:
    """Lock-guarded failure count shared by the tasks of one cycle."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value = 0

    def increment(self) -> int:
        with self._lock:
            self._value += 1
            return self._value

    @property
    def value(self) -> int:
        with self._lock:
            return self._value


@dataclass
class PhaseTask:
    """One unit of work in a phase."""

    label: str
    func: Callable[[], Any]
    path: Path | None = None


@dataclass
class PhaseResult:
    """Outcome of one phase."""

    name: str
    total: int
    failed: int
    elapsed: float

    @property
    def ok(self) -> bool:
        return self.failed == 0


class PhaseRunner:
    """Runs phases of tasks on a shared thread pool.

    Args:
        issues: Reporter receiving task failures
        counter: Failure counter of the current cycle
        max_workers: Pool size
    """

    def __init__(self, issues: IssueReporter, counter: FailureCounter | None = None, max_workers: int = 16):
        self.issues = issues
        self.counter = counter or FailureCounter()
        self.max_workers = max_workers
        self._executor: ThreadPoolExecutor | None = None

    @property
    def executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="pack-sync")
        return self._executor

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self) -> PhaseRunner:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def run(self, name: str, tasks: Sequence[PhaseTask]) -> PhaseResult:
        """Run every task and wait for all of them.

        Returns:
            Phase result; failures are already reported
        """
        start = time.monotonic()
        if not tasks:
            return PhaseResult(name=name, total=0, failed=0, elapsed=0.0)

        futures = {self.executor.submit(task.func): task for task in tasks}
        wait(futures, return_when=ALL_COMPLETED)

        failed = 0
        for future, task in futures.items():
            error = future.exception()
            if error is None:
                continue
            failed += 1
            self.counter.increment()
            self.issues.error(f"Failed to process {task.label}", path=task.path, cause=error)

        elapsed = time.monotonic() - start
        logger.info("phase_completed", phase=name, tasks=len(tasks), failed=failed, elapsed_ms=int(elapsed * 1000))
        return PhaseResult(name=name, total=len(tasks), failed=failed, elapsed=elapsed)


class FetchOrchestrator:
    """Realizes a manifest into the repository and the install directory.

    Args:
        client: Download client
        repository: Content repository receiving mods
        runner: Phase runner of the current cycle
    """

    def __init__(self, client: ManifestClient, repository: ContentRepository, runner: PhaseRunner):
        self.client = client
        self.repository = repository
        self.runner = runner

    @property
    def issues(self) -> IssueReporter:
        return self.runner.issues

    def fetch_mods(self, plan: ModPlan) -> PhaseResult:
        """Download missing mods and relabel cached ones with new metadata."""
        tasks = [
            PhaseTask(label=desc.filename, func=lambda desc=desc: self._fetch_mod(desc))
            for desc in plan.downloads
        ]
        tasks.extend(
            PhaseTask(
                label=info.filename,
                func=lambda entry=entry, info=info: self.repository.relabel(entry, info),
                path=entry.path,
            )
            for entry, info in plan.relabels
        )
        return self.runner.run("mods", tasks)

    def _fetch_mod(self, descriptor: RemoteFileDescriptor) -> None:
        logger.info(
            "mod_downloading",
            filename=descriptor.filename,
            checksum=descriptor.checksum,
            size=format_size(descriptor.size),
        )
        data = self.client.download(descriptor.url, gzip_body=descriptor.gzip)
        entry = self.repository.store(descriptor, data)
        logger.info("mod_downloaded", filename=descriptor.filename, path=str(entry.path))

    def sync_extra_files(
        self,
        descriptors: Sequence[RemoteFileDescriptor],
        install_root: Path,
        server_icon: RemoteFileDescriptor | None = None,
    ) -> PhaseResult:
        """Create, replace or delete files under the install root.

        Paths that escape the install root are reported, counted as
        failures and never touched.
        """
        tasks: list[PhaseTask] = []
        escaped = 0
        for desc in descriptors:
            relative = desc.path or desc.filename
            try:
                target = resolve_under(install_root, relative)
            except PathEscapeError as e:
                escaped += 1
                self.runner.counter.increment()
                self.issues.error(f"Refusing to write {relative}", path=install_root / relative, cause=e)
                continue
            tasks.append(
                PhaseTask(label=relative, func=lambda desc=desc, target=target: self._sync_file(desc, target), path=target)
            )

        if server_icon is not None:
            tasks.append(
                PhaseTask(
                    label=SERVER_ICON_FILENAME,
                    func=lambda: self.sync_server_icon(server_icon, install_root),
                    path=install_root / SERVER_ICON_FILENAME,
                )
            )

        result = self.runner.run("extras", tasks)
        if escaped:
            result.failed += escaped
            result.total += escaped
        return result

    def sync_server_icon(self, descriptor: RemoteFileDescriptor, install_root: Path) -> bool:
        """Place the server icon under the install root when it differs."""
        return self._sync_file(descriptor, install_root / SERVER_ICON_FILENAME)

    def _sync_file(self, descriptor: RemoteFileDescriptor, target: Path) -> bool:
        if descriptor.is_deletion:
            # lazy only acts on absent targets, so a lazy deletion is a no-op
            if not descriptor.lazy and target.is_file():
                logger.info("extra_file_deleting", path=str(target), size=format_size(target.stat().st_size))
                target.unlink()
                return True
            return False

        if not descriptor.needs_replace(target):
            return False

        logger.info("extra_file_downloading", path=str(target), url=descriptor.url)
        data = self.client.download(descriptor.url, gzip_body=descriptor.gzip)
        verify_size(data, descriptor.size, descriptor.checksum)
        verify_checksum(data, descriptor.checksum)
        atomic_write_bytes(target, data)
        return True
