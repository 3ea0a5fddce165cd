"""Tests for pack_sync.core.config module."""

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from pack_sync import __version__
from pack_sync.core.config import (
    DEFAULT_AUTH,
    REPOSITORY_ENV,
    ConfigError,
    InstallLayout,
    LocalConfig,
    PackConfig,
    SyncSettings,
)


class TestPackConfig:
    """Test PackConfig loading."""

    def test_load(self, layout):
        """Test loading the shipped pack configuration."""
        config = PackConfig.load(layout.pack_config_file)
        assert config.api == "https://packs.example.com/api"
        assert config.pack_code == "test-pack"
        assert config.pack_id == "local-id"

    def test_missing(self, temp_dir):
        """Test missing file raises ConfigError."""
        path = temp_dir / "mods" / "pack-sync.json"
        with pytest.raises(ConfigError, match="not found") as exc_info:
            PackConfig.load(path)
        assert exc_info.value.path == path

    def test_invalid_json(self, temp_dir):
        """Test malformed JSON raises ConfigError."""
        path = temp_dir / "pack-sync.json"
        path.write_text("{not json")
        with pytest.raises(ConfigError, match="Cannot read"):
            PackConfig.load(path)

    def test_invalid_values(self, temp_dir):
        """Test empty pack code raises ConfigError."""
        path = temp_dir / "pack-sync.json"
        path.write_text(json.dumps({"api": "https://x", "pack_code": "  "}))
        with pytest.raises(ConfigError, match="Invalid pack configuration"):
            PackConfig.load(path)

    def test_pack_id_optional(self, temp_dir):
        """Test pack id defaults to empty."""
        path = temp_dir / "pack-sync.json"
        path.write_text(json.dumps({"api": "https://x/", "pack_code": "p"}))
        config = PackConfig.load(path)
        assert config.pack_id == ""
        assert config.api == "https://x"


class TestLocalConfig:
    """Test LocalConfig loading and saving."""

    def test_defaults(self):
        """Test default values."""
        config = LocalConfig()
        assert config.auth == DEFAULT_AUTH
        assert not config.pause_updates
        assert config.disabled_artifacts == {}

    def test_missing_file_written(self, temp_dir):
        """Test a missing file is created with defaults."""
        path = temp_dir / "pack-sync-local.json"
        config = LocalConfig.load(path)

        assert config == LocalConfig()
        assert json.loads(path.read_text()) == {
            "auth": DEFAULT_AUTH,
            "pause_updates": False,
            "disabled_artifacts": {},
        }

    def test_missing_keys_written_back(self, temp_dir):
        """Test partially filled files gain the missing defaults."""
        path = temp_dir / "pack-sync-local.json"
        path.write_text(json.dumps({"pause_updates": True}))

        config = LocalConfig.load(path)

        assert config.pause_updates
        data = json.loads(path.read_text())
        assert data["pause_updates"] is True
        assert data["auth"] == DEFAULT_AUTH
        assert data["disabled_artifacts"] == {}

    def test_complete_file_untouched(self, temp_dir):
        """Test complete files are not rewritten."""
        path = temp_dir / "pack-sync-local.json"
        text = '{"auth": "abc", "pause_updates": false, "disabled_artifacts": {"x": true}}'
        path.write_text(text)

        config = LocalConfig.load(path)

        assert config.auth == "abc"
        assert config.disabled_artifacts == {"x": True}
        assert path.read_text() == text

    def test_malformed_file_kept(self, temp_dir):
        """Test a malformed file is left alone and defaults are used."""
        path = temp_dir / "pack-sync-local.json"
        path.write_text("{broken")

        config = LocalConfig.load(path)

        assert config == LocalConfig()
        assert path.read_text() == "{broken"

    def test_non_object_file(self, temp_dir):
        """Test a JSON array is treated as malformed."""
        path = temp_dir / "pack-sync-local.json"
        path.write_text("[]")
        assert LocalConfig.load(path) == LocalConfig()
        assert path.read_text() == "[]"

    def test_save_format(self, temp_dir):
        """Test output is indented JSON with a trailing newline."""
        path = temp_dir / "pack-sync-local.json"
        LocalConfig(auth="t", disabled_artifacts={"a": False}).save(path)

        text = path.read_text()
        assert text.endswith("}\n")
        assert '  "auth": "t"' in text
        assert LocalConfig.load(path).disabled_artifacts == {"a": False}


class TestSyncSettings:
    """Test SyncSettings model."""

    def test_defaults(self):
        """Test default settings."""
        settings = SyncSettings()
        assert settings.timeout == 30.0
        assert settings.connect_timeout == 15.0
        assert settings.max_workers == 16
        assert settings.max_retries == 2
        assert settings.base_backoff == 0.5
        assert settings.user_agent == f"pack-sync/{__version__}"
        assert settings.repository_env == REPOSITORY_ENV

    @pytest.mark.parametrize(
        "field,value",
        [
            ("timeout", 0),
            ("connect_timeout", -1),
            ("max_workers", 0),
            ("max_retries", -1),
            ("base_backoff", -0.1),
        ],
    )
    def test_validation(self, field, value):
        """Test invalid values are rejected."""
        with pytest.raises(ValidationError):
            SyncSettings(**{field: value})

    def test_load_file(self, temp_dir):
        """Test loading settings from JSON."""
        path = temp_dir / "settings.json"
        path.write_text(json.dumps({"max_workers": 4, "timeout": 5}))

        settings = SyncSettings.load(path)

        assert settings.max_workers == 4
        assert settings.timeout == 5.0
        assert settings.max_retries == 2

    def test_load_defaults(self, temp_dir):
        """Test None or a missing file gives defaults."""
        assert SyncSettings.load(None) == SyncSettings()
        assert SyncSettings.load(temp_dir / "missing.json") == SyncSettings()

    def test_primary_repository_override(self, temp_dir):
        """Test the environment override."""
        settings = SyncSettings()
        assert settings.primary_repository({REPOSITORY_ENV: str(temp_dir)}) == temp_dir

    def test_primary_repository_default(self):
        """Test the default cache location."""
        settings = SyncSettings()
        expected = Path.home() / ".cache" / "pack-sync"
        assert settings.primary_repository({}) == expected
        assert settings.primary_repository({REPOSITORY_ENV: "  "}) == expected

    def test_custom_repository_env(self, temp_dir):
        """Test the override variable name is configurable."""
        settings = SyncSettings(repository_env="MY_REPO")
        assert settings.primary_repository({"MY_REPO": str(temp_dir)}) == temp_dir


class TestInstallLayout:
    """Test InstallLayout paths."""

    def test_paths(self, temp_dir):
        """Test every path is placed under the install root."""
        layout = InstallLayout(temp_dir)

        assert layout.mods_dir == temp_dir / "mods"
        assert layout.pack_config_file == temp_dir / "mods" / "pack-sync.json"
        assert layout.local_config_file == temp_dir / "pack-sync-local.json"
        assert layout.state_file == temp_dir / "pack-sync-state.json"
        assert layout.legacy_info_file == temp_dir / "pack-sync-info.json"
        assert layout.secondary_repository == temp_dir / ".pack-sync" / "repository"
        assert layout.options_file == temp_dir / "options.txt"
        assert layout.server_properties_file == temp_dir / "server.properties"
        assert layout.servers_file == temp_dir / "servers.dat"
        assert layout.server_icon_file == temp_dir / "server-icon.png"
