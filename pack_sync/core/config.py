"""Configuration management for pack-sync.

Three kinds of configuration exist:

- ``mods/pack-sync.json`` (:class:`PackConfig`): shipped with the pack,
  never written by pack-sync
- ``pack-sync-local.json`` (:class:`LocalConfig`): per-install settings the
  user may edit; missing defaults are written back
- :class:`SyncSettings`: runtime knobs such as timeouts and pool size
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, Field, ValidationError, field_validator

from pack_sync import __version__
from pack_sync.core.utils import atomic_write_text

logger = structlog.get_logger()

DEFAULT_AUTH = "%PACK_SYNC_TOKEN%"
REPOSITORY_ENV = "PACK_SYNC_REPO_DIRECTORY"


class ConfigError(Exception):
    """Raised when the pack configuration is missing or unreadable."""

    def __init__(self, message: str, *, path: Path | None = None):
        self.path = path
        super().__init__(message)


class PackConfig(BaseModel):
    """Pack identity shipped in ``mods/pack-sync.json``."""

    api: str = Field(..., description="Sync API base URL")
    pack_code: str = Field(..., description="Pack code used in API paths")
    pack_id: str = Field(default="", description="Pack id, may be overridden by the server")

    @field_validator("api")
    @classmethod
    def validate_api(cls, v: str) -> str:
        """Validate API URL."""
        v = v.strip().rstrip("/")
        if not v:
            raise ValueError("API URL cannot be empty")
        return v

    @field_validator("pack_code")
    @classmethod
    def validate_pack_code(cls, v: str) -> str:
        """Validate pack code."""
        if not v.strip():
            raise ValueError("Pack code cannot be empty")
        return v.strip()

    @classmethod
    def load(cls, path: Path) -> PackConfig:
        """Load the pack configuration.

        Raises:
            ConfigError: If the file is missing, unreadable or invalid
        """
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError as e:
            raise ConfigError(f"Pack configuration not found: {path}", path=path) from e
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot read pack configuration {path}: {e}", path=path) from e

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid pack configuration {path}: {e}", path=path) from e


class LocalConfig(BaseModel):
    """Per-install settings in ``pack-sync-local.json``."""

    auth: str = Field(default=DEFAULT_AUTH, description="Token or %ENV_VAR% reference")
    pause_updates: bool = Field(default=False, description="Skip remote checks and load cached state")
    disabled_artifacts: dict[str, bool] = Field(
        default_factory=dict, description="Artifact group -> disabled"
    )

    @classmethod
    def load(cls, path: Path) -> LocalConfig:
        """Load local settings, writing back any missing defaults.

        A malformed file is left untouched and defaults are used.
        """
        if not path.exists():
            config = cls()
            config.save(path)
            return config

        try:
            with open(path, encoding="utf-8") as f:
                data: Any = json.load(f)
            if not isinstance(data, dict):
                raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
            config = cls.model_validate(data)
        except (OSError, ValueError) as e:
            logger.warning("local_config_invalid", path=str(path), error=str(e))
            return cls()

        if any(name not in data for name in cls.model_fields):
            config.save(path)
            logger.info("local_config_defaults_written", path=str(path))
        return config

    def save(self, path: Path) -> None:
        atomic_write_text(path, json.dumps(self.model_dump(mode="json"), indent=2) + "\n")
        logger.debug("local_config_saved", path=str(path))


class SyncSettings(BaseModel):
    """Runtime settings for a sync cycle."""

    timeout: float = Field(default=30.0, description="Request timeout in seconds")
    connect_timeout: float = Field(default=15.0, description="Connect timeout in seconds")
    max_workers: int = Field(default=16, description="Worker threads per phase")
    max_retries: int = Field(default=2, description="Download retry attempts")
    base_backoff: float = Field(default=0.5, description="First retry delay in seconds")
    user_agent: str = Field(default=f"pack-sync/{__version__}", description="HTTP User-Agent")
    repository_env: str = Field(
        default=REPOSITORY_ENV, description="Environment variable overriding the primary repository root"
    )

    @field_validator("timeout", "connect_timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate timeout value."""
        if v <= 0:
            raise ValueError("Timeout must be positive")
        return v

    @field_validator("max_workers")
    @classmethod
    def validate_max_workers(cls, v: int) -> int:
        """Validate worker count."""
        if v < 1:
            raise ValueError("Max workers must be at least 1")
        return v

    @field_validator("max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        """Validate max retries value."""
        if v < 0:
            raise ValueError("Max retries must be non-negative")
        return v

    @field_validator("base_backoff")
    @classmethod
    def validate_base_backoff(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Backoff must be non-negative")
        return v

    @classmethod
    def load(cls, config_file: Path | None = None) -> SyncSettings:
        """Load settings from a JSON file.

        Args:
            config_file: Path to settings file, defaults are used if None

        Returns:
            Sync settings
        """
        if config_file is not None and config_file.exists():
            with open(config_file, encoding="utf-8") as f:
                data = json.load(f)
                return cls(**data)

        return cls()

    def primary_repository(self, environ: Mapping[str, str] | None = None) -> Path:
        """Primary repository root: the override variable or ``~/.cache/pack-sync``."""
        env = os.environ if environ is None else environ
        override = env.get(self.repository_env, "").strip()
        if override:
            return Path(override).expanduser()
        return Path.home() / ".cache" / "pack-sync"


class InstallLayout:
    """Paths of every file pack-sync touches under an install root."""

    def __init__(self, root: Path):
        self.root = root

    @property
    def mods_dir(self) -> Path:
        return self.root / "mods"

    @property
    def pack_config_file(self) -> Path:
        return self.mods_dir / "pack-sync.json"

    @property
    def local_config_file(self) -> Path:
        return self.root / "pack-sync-local.json"

    @property
    def state_file(self) -> Path:
        return self.root / "pack-sync-state.json"

    @property
    def legacy_info_file(self) -> Path:
        return self.root / "pack-sync-info.json"

    @property
    def secondary_repository(self) -> Path:
        return self.root / ".pack-sync" / "repository"

    @property
    def options_file(self) -> Path:
        return self.root / "options.txt"

    @property
    def server_properties_file(self) -> Path:
        return self.root / "server.properties"

    @property
    def servers_file(self) -> Path:
        return self.root / "servers.dat"

    @property
    def server_icon_file(self) -> Path:
        return self.root / "server-icon.png"
