"""Pytest configuration and shared fixtures for pack_sync tests."""

import hashlib
import json
import tempfile
from collections.abc import Generator
from pathlib import Path
from typing import Any

import httpx
import pytest

from pack_sync.core.config import InstallLayout, SyncSettings
from pack_sync.core.types import Artifact, FileInfo, RemoteFileDescriptor

API_URL = "https://packs.example.com/api"
CDN_URL = "https://cdn.example.com/files"
PACK_CODE = "test-pack"


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield Path(tmp_dir)


@pytest.fixture
def install_root(temp_dir: Path) -> Path:
    """Install directory with a pack configuration."""
    root = temp_dir / "install"
    (root / "mods").mkdir(parents=True)
    (root / "mods" / "pack-sync.json").write_text(
        json.dumps({"api": API_URL + "/", "pack_code": PACK_CODE, "pack_id": "local-id"})
    )
    return root


@pytest.fixture
def layout(install_root: Path) -> InstallLayout:
    """Layout of the test install directory."""
    return InstallLayout(install_root)


@pytest.fixture
def repo_dir(temp_dir: Path) -> Path:
    """Primary repository root."""
    return temp_dir / "repository"


@pytest.fixture
def environ(repo_dir: Path) -> dict[str, str]:
    """Environment pointing the primary repository at the temp directory."""
    return {"PACK_SYNC_REPO_DIRECTORY": str(repo_dir), "PACK_SYNC_TOKEN": "secret-token"}


@pytest.fixture
def fast_settings() -> SyncSettings:
    """Settings with small pools and no retry delay."""
    return SyncSettings(max_workers=4, max_retries=1, base_backoff=0.0)


def md5(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()


def make_descriptor(filename: str, data: bytes, **extra: Any) -> RemoteFileDescriptor:
    """Descriptor for ``data`` served from the fake CDN."""
    fields: dict[str, Any] = {
        "checksum": md5(data),
        "filename": filename,
        "size": len(data),
        "url": f"{CDN_URL}/{filename}",
    }
    fields.update(extra)
    return RemoteFileDescriptor.model_validate(fields)


@pytest.fixture
def descriptor_factory():
    """Factory building descriptors for in-memory content."""
    return make_descriptor


@pytest.fixture
def sample_file_info() -> FileInfo:
    """Sample FileInfo for testing."""
    data = b"sample mod content"
    return FileInfo(
        checksum=md5(data),
        filename="SampleMod-1.0.jar",
        size=len(data),
        artifact=Artifact(group="samplemod", version="1.0"),
    )


class FakeSyncServer:
    """In-memory sync API and CDN behind an httpx.MockTransport."""

    def __init__(self) -> None:
        self.version = "1"
        self.manifest: dict[str, Any] = {}
        self.files: dict[str, bytes] = {}
        self.session_id = ""
        self.pack_id = ""
        self.version_status = 200
        self.file_status: dict[str, int] = {}
        self.requests: list[httpx.Request] = []

    def add_file(self, filename: str, data: bytes, **extra: Any) -> dict[str, Any]:
        """Serve ``data`` and return its manifest descriptor JSON."""
        url = f"{CDN_URL}/{filename}"
        self.files[url] = data
        descriptor = {"checksum": md5(data), "filename": filename, "size": len(data), "url": url}
        descriptor.update(extra)
        return descriptor

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == f"/api/version/{PACK_CODE}":
            headers = {}
            if self.session_id:
                headers["X-Pack-Sync-Session-ID"] = self.session_id
            if self.pack_id:
                headers["X-Pack-Sync-Pack-ID"] = self.pack_id
            return httpx.Response(self.version_status, text=self.version, headers=headers)

        if path == f"/api/sync/{PACK_CODE}":
            return httpx.Response(200, json=self.manifest)

        if path == "/api/exit":
            return httpx.Response(204)

        url = str(request.url)
        if url in self.file_status:
            return httpx.Response(self.file_status[url])
        if url in self.files:
            return httpx.Response(200, content=self.files[url])
        return httpx.Response(404)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]

    def downloads(self) -> list[str]:
        return [str(r.url) for r in self.requests if str(r.url).startswith(CDN_URL)]


@pytest.fixture
def fake_server() -> FakeSyncServer:
    """Fake sync API and CDN."""
    return FakeSyncServer()


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest settings."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
