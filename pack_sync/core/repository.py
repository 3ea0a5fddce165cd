"""Content-addressed repository of downloaded files.

Layout under each root::

    <root>/
    └── {checksum[:2]}/
        ├── {checksum}{ext}          # Blob, e.g. 5d41...c592.jar
        └── {checksum}.meta.json     # Sidecar with the FileInfo JSON

Two roots exist. The primary root is shared between installs
(``$PACK_SYNC_REPO_DIRECTORY`` or ``~/.cache/pack-sync``). The secondary root
lives under the install directory; it holds files marked ``local`` and
takes over completely when the primary root cannot be created.
"""

from __future__ import annotations

import json
import threading
import time
from pathlib import Path

import structlog

from pack_sync.core.fetcher import PhaseResult, PhaseRunner, PhaseTask
from pack_sync.core.integrity import file_matches, verify_checksum, verify_size
from pack_sync.core.issues import IssueReporter
from pack_sync.core.types import FileInfo, RemoteFileDescriptor, RepositoryEntry
from pack_sync.core.utils import atomic_write_bytes, atomic_write_text, file_size

logger = structlog.get_logger()

SIDECAR_SUFFIX = ".meta.json"


class RepositoryError(Exception):
    """Raised when a blob or its sidecar cannot be written."""

    def __init__(self, message: str, *, path: Path | None = None):
        self.path = path
        super().__init__(message)


class ChecksumIndex:
    """Lock-guarded map of checksum -> RepositoryEntry."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, RepositoryEntry] = {}

    def get(self, checksum: str) -> RepositoryEntry | None:
        with self._lock:
            return self._entries.get(checksum)

    def put(self, entry: RepositoryEntry) -> None:
        with self._lock:
            self._entries[entry.checksum] = entry

    def put_if_absent(self, entry: RepositoryEntry) -> RepositoryEntry:
        """Insert unless the checksum is known; return the stored entry."""
        with self._lock:
            return self._entries.setdefault(entry.checksum, entry)

    def remove(self, checksum: str) -> None:
        with self._lock:
            self._entries.pop(checksum, None)

    def values(self) -> list[RepositoryEntry]:
        with self._lock:
            return list(self._entries.values())

    def __contains__(self, checksum: object) -> bool:
        with self._lock:
            return checksum in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def _is_blob(path: Path) -> bool:
    name = path.name
    return path.is_file() and not name.endswith(SIDECAR_SUFFIX) and not name.endswith(".tmp")


class ContentRepository:
    """Checksum-addressed blob store with JSON sidecars.

    Args:
        primary_root: Shared repository root
        secondary_root: Install-local repository root
        issues: Reporter for discovery warnings
    """

    def __init__(
        self,
        primary_root: Path,
        secondary_root: Path,
        issues: IssueReporter | None = None,
    ):
        self.primary_root = primary_root
        self.secondary_root = secondary_root
        self.issues = issues or IssueReporter()
        self.index = ChecksumIndex()
        self.fallback_active = False

    def open(self) -> None:
        """Create the primary root, falling back to the secondary root.

        The fallback stays active for the rest of the run.
        """
        try:
            self.primary_root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self.fallback_active = True
            self.issues.warning(
                f"Cannot create repository at {self.primary_root}, using {self.secondary_root}",
                path=self.primary_root,
                cause=e,
            )

    @property
    def active_root(self) -> Path:
        return self.secondary_root if self.fallback_active else self.primary_root

    def roots(self) -> list[Path]:
        """Roots searched by discovery, primary first."""
        roots = [self.secondary_root] if self.fallback_active else [self.primary_root, self.secondary_root]
        unique: list[Path] = []
        for root in roots:
            if root not in unique:
                unique.append(root)
        return unique

    def root_for(self, descriptor: RemoteFileDescriptor) -> Path:
        return self.secondary_root if descriptor.local else self.active_root

    @staticmethod
    def blob_path(root: Path, info: FileInfo) -> Path:
        return root / info.checksum[:2] / f"{info.checksum}{info.extension}"

    @staticmethod
    def sidecar_path(blob: Path) -> Path:
        checksum = blob.name.split(".", 1)[0]
        return blob.with_name(checksum + SIDECAR_SUFFIX)

    def discover(self, runner: PhaseRunner) -> PhaseResult:
        """Scan every root and index blobs with a matching sidecar.

        Roots are scanned one after the other, primary first, so a checksum
        present in both roots resolves to the primary copy. Within a root
        there is one task per blob; the scan is complete when this returns.
        """
        start = time.monotonic()
        total = failed = 0
        for root in self.roots():
            if not root.is_dir():
                continue
            blobs: list[Path] = []
            for prefix_dir in sorted(root.iterdir()):
                if prefix_dir.is_dir():
                    blobs.extend(sorted(p for p in prefix_dir.iterdir() if _is_blob(p)))

            result = runner.run(
                "discovery",
                [PhaseTask(label=blob.name, func=lambda blob=blob: self._index_blob(blob), path=blob) for blob in blobs],
            )
            total += result.total
            failed += result.failed

        elapsed = time.monotonic() - start
        logger.info(
            "repository_discovered",
            files=len(self.index),
            scanned=total,
            elapsed_ms=int(elapsed * 1000),
        )
        return PhaseResult(name="discovery", total=total, failed=failed, elapsed=elapsed)

    def _index_blob(self, blob: Path) -> None:
        sidecar = self.sidecar_path(blob)
        try:
            with open(sidecar, encoding="utf-8") as f:
                info = FileInfo.model_validate(json.load(f))
        except (OSError, ValueError) as e:
            self.issues.warning("Ignoring cached file without readable metadata", path=blob, cause=e)
            return

        if info.checksum != blob.name.split(".", 1)[0] or info.size != file_size(blob):
            self.issues.warning("Ignoring cached file whose metadata does not match", path=blob)
            return

        self.index.put_if_absent(RepositoryEntry(path=blob, info=info))

    def lookup(self, checksum: str) -> RepositoryEntry | None:
        if not checksum:
            return None
        return self.index.get(checksum.lower())

    def store(self, descriptor: RemoteFileDescriptor, data: bytes) -> RepositoryEntry:
        """Verify ``data`` and store it under its checksum.

        The blob is written before the sidecar. If the sidecar cannot be
        written the blob stays on disk but is not indexed.

        Raises:
            IntegrityError: If size or digest do not match the descriptor
            RepositoryError: If the descriptor has no checksum or the
                sidecar cannot be written
            OSError: If the blob cannot be written
        """
        if not descriptor.checksum:
            raise RepositoryError(f"Cannot store {descriptor.filename} without a checksum")

        verify_size(data, descriptor.size, descriptor.checksum)
        verify_checksum(data, descriptor.checksum)

        info = descriptor.file_info
        blob = self.blob_path(self.root_for(descriptor), info)
        atomic_write_bytes(blob, data)
        self._write_sidecar(blob, info)

        entry = RepositoryEntry(path=blob, info=info)
        self.index.put(entry)
        logger.debug("blob_stored", checksum=info.checksum, filename=info.filename, size=len(data))
        return entry

    def relabel(self, entry: RepositoryEntry, info: FileInfo) -> RepositoryEntry:
        """Attach new metadata to bytes that are already stored.

        Raises:
            ValueError: If ``info`` describes different bytes
            RepositoryError: If the sidecar cannot be written
        """
        if info.checksum != entry.info.checksum or info.size != entry.info.size:
            raise ValueError(f"Cannot relabel {entry.info.checksum} with metadata for {info.checksum}")

        self._write_sidecar(entry.path, info)
        relabeled = RepositoryEntry(path=entry.path, info=info)
        self.index.put(relabeled)
        logger.debug("blob_relabeled", checksum=info.checksum, filename=info.filename)
        return relabeled

    def _write_sidecar(self, blob: Path, info: FileInfo) -> None:
        sidecar = self.sidecar_path(blob)
        try:
            atomic_write_text(sidecar, json.dumps(info.to_json(), indent=2) + "\n")
        except OSError as e:
            raise RepositoryError(f"Cannot write metadata for {info.filename}: {e}", path=sidecar) from e

    def verify(self, entry: RepositoryEntry) -> bool:
        """Recheck size and digest of an entry against the file on disk.

        A damaged entry is dropped from the index.
        """
        ok = file_matches(entry.path, entry.info.checksum, entry.info.size)
        if not ok:
            self.index.remove(entry.checksum)
            logger.debug("blob_verify_failed", checksum=entry.checksum, path=str(entry.path))
        return ok

    def entries(self) -> list[RepositoryEntry]:
        return sorted(self.index.values(), key=lambda e: e.info.filename.casefold())
