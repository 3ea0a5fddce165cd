"""Tests for pack_sync.commands.sync module."""

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from pack_sync.__main__ import main
from pack_sync.core.engine import SyncEngine


@pytest.fixture
def engine_patch(environ, fake_server):
    """Route the command's engine through the fake server."""

    def factory(install_dir, settings):
        return SyncEngine(install_dir, settings.model_copy(update={"base_backoff": 0.0}), environ, fake_server.transport)

    with patch("pack_sync.commands.sync.SyncEngine", side_effect=factory) as mock_engine:
        yield mock_engine


@pytest.fixture
def served_pack(fake_server):
    fake_server.version = "3"
    fake_server.manifest = {
        "mods": [
            fake_server.add_file("ModB.jar", b"bbb", artifact="modb", version="1.0"),
            fake_server.add_file("moda.jar", b"aa", artifact="moda", version="2.0"),
        ],
        "warnings": ["Loader is outdated"],
    }
    return fake_server


class TestSyncCommand:
    """Test sync command."""

    @pytest.fixture
    def runner(self):
        """Create CLI runner."""
        return CliRunner()

    def test_sync_plain(self, runner, engine_patch, served_pack, install_root):
        """Test plain output of a successful sync."""
        result = runner.invoke(main, ["-o", "plain", "-i", str(install_root), "sync"])

        assert result.exit_code == 0
        assert "Pack updated to 3" in result.stdout
        assert "Load List (2 files)" in result.stdout
        assert "WARNING Loader is outdated" in result.stdout

    def test_sync_json(self, runner, engine_patch, served_pack, install_root):
        """Test JSON output of a successful sync."""
        result = runner.invoke(main, ["-o", "json", "-i", str(install_root), "sync"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["version"] == "3"
        assert data["updated"] is True
        assert data["failed"] is False
        assert len(data["load"]) == 2
        assert data["issues"] == [
            {"level": "warning", "message": "Loader is outdated", "path": None, "cause": None}
        ]

    def test_up_to_date(self, runner, engine_patch, served_pack, install_root):
        """Test a second sync reports the current version."""
        runner.invoke(main, ["-o", "plain", "-i", str(install_root), "sync"])
        result = runner.invoke(main, ["-o", "plain", "-i", str(install_root), "sync"])

        assert result.exit_code == 0
        assert "Pack is up to date (3)" in result.stdout

    def test_platform_options(self, runner, engine_patch, served_pack, install_root):
        """Test caller details reach the manifest request."""
        result = runner.invoke(
            main,
            [
                "-o", "json", "-i", str(install_root), "sync",
                "--mc-version", "1.20.1",
                "--loader-version", "0.15.0",
                "--loader-api-version", "0.92.0",
                "--server",
                "--dev",
            ],
        )

        assert result.exit_code == 0
        request = next(r for r in served_pack.requests if r.url.path.startswith("/api/sync/"))
        body = json.loads(request.content)
        assert body["mc_version"] == "1.20.1"
        assert body["loader_version"] == "0.15.0"
        assert body["loader_api_version"] == "0.92.0"
        assert body["server"] is True
        assert body["dev"] is True

    def test_exit_notification(self, runner, engine_patch, served_pack, install_root):
        """Test the exit call is made after the run."""
        runner.invoke(main, ["-o", "json", "-i", str(install_root), "sync"])
        assert served_pack.paths()[-1] == "/api/exit"

    def test_manifest_errors(self, runner, engine_patch, fake_server, install_root):
        """Test server errors give a non-zero exit status."""
        fake_server.manifest = {"errors": ["Pack is disabled"]}

        result = runner.invoke(main, ["-o", "json", "-i", str(install_root), "sync"])

        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["failed"] is True
        assert data["issues"][0]["message"] == "Pack is disabled"

    def test_failure_plain(self, runner, engine_patch, fake_server, install_root):
        """Test failed cycles say so."""
        fake_server.manifest = {"errors": ["Pack is disabled"]}

        result = runner.invoke(main, ["-o", "plain", "-i", str(install_root), "sync"])

        assert result.exit_code == 1
        assert "ERROR Pack is disabled" in result.stdout
        assert "Sync failed, loading cached mods" in result.stdout

    def test_missing_pack_config(self, runner, engine_patch, fake_server, temp_dir):
        """Test an unconfigured directory fails without a load list."""
        result = runner.invoke(main, ["-o", "plain", "-i", str(temp_dir), "sync"])

        assert result.exit_code == 1
        assert "Pack configuration not found" in result.stdout
        assert "Load List" not in result.stdout
        assert fake_server.requests == []
