"""Core type definitions for pack_sync."""

from __future__ import annotations

from pathlib import Path
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator, model_validator

from pack_sync.core.integrity import file_matches
from pack_sync.core.utils import detect_platform, validate_hash_string
from pack_sync.formats.nbt import BYTE_ONE, CompoundTag, StringTag, Tag

# Artifact group -> disabled flag
ArtifactRegistry = dict[str, bool]

DELETED_FILENAME = "deleted"
SERVER_ENTRY_KEYS = frozenset({"name", "ip", "icon", "hidden"})


class Artifact(BaseModel):
    """Logical package identity, independent of the bytes that implement it."""

    group: str = Field(default="", description="Artifact group, e.g. mod id")
    version: str = Field(default="", description="Artifact version")

    model_config = ConfigDict(frozen=True)

    NONE: ClassVar[Artifact]

    @property
    def is_none(self) -> bool:
        return not self.group and not self.version

    def __str__(self) -> str:
        if self.is_none:
            return "no-artifact"
        return f"{self.group}:{self.version}"


Artifact.NONE = Artifact()


def _fold_artifact(data: Any) -> Any:
    """Fold the flat ``artifact``/``version`` JSON keys into an Artifact."""
    if not isinstance(data, dict):
        return data
    artifact = data.get("artifact")
    if isinstance(artifact, (Artifact, dict)):
        return data

    data = dict(data)
    group = data.pop("artifact", None) or ""
    version = data.pop("version", None) or ""
    data["artifact"] = Artifact(group=group, version=version) if group or version else Artifact.NONE
    return data


class FileInfo(BaseModel):
    """Canonical description of one piece of content.

    Two FileInfos with the same checksum describe the same bytes even when
    filename or artifact differ.
    """

    checksum: str = Field(default="", description="Lowercase hex digest, empty when absent")
    filename: str = Field(..., description="File name used for display and load order")
    size: int = Field(default=0, description="Content size in bytes")
    artifact: Artifact = Field(default=Artifact.NONE, description="Owning artifact")

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="before")
    @classmethod
    def fold_artifact(cls, data: Any) -> Any:
        return _fold_artifact(data)

    @field_validator("checksum")
    @classmethod
    def validate_checksum(cls, v: str) -> str:
        """Normalize checksum case; empty means absent."""
        v = v.strip().lower()
        if v and not validate_hash_string(v):
            raise ValueError(f"Checksum must be a hex digest: {v!r}")
        return v

    @field_validator("size")
    @classmethod
    def validate_size(cls, v: int) -> int:
        """Validate size value."""
        if v < 0:
            raise ValueError("Size must be non-negative")
        return v

    @property
    def extension(self) -> str:
        """File extension including the dot, e.g. ``.jar``."""
        return Path(self.filename).suffix.lower()

    def to_json(self) -> dict[str, Any]:
        """Flat JSON form; ``artifact`` and ``version`` are omitted when empty."""
        data: dict[str, Any] = {
            "checksum": self.checksum,
            "filename": self.filename,
            "size": self.size,
        }
        if self.artifact.group:
            data["artifact"] = self.artifact.group
        if self.artifact.version:
            data["version"] = self.artifact.version
        return data


class RemoteFileDescriptor(FileInfo):
    """A file the remote wants present locally.

    ``lazy`` files are only fetched when absent, ``gzip`` bodies are inflated
    after download and ``local`` routes storage to the install-local
    repository root.
    """

    url: str = Field(default="", description="Download URL")
    path: str = Field(default="", description="Destination path relative to the install root")
    lazy: bool = Field(default=False, description="Fetch only if absent")
    gzip: bool = Field(default=False, description="Body is gzip-compressed")
    local: bool = Field(default=False, description="Store under the install-local root")

    @property
    def file_info(self) -> FileInfo:
        return FileInfo(
            checksum=self.checksum,
            filename=self.filename,
            size=self.size,
            artifact=self.artifact,
        )

    @property
    def is_deletion(self) -> bool:
        """True when the remote declares this file deleted."""
        return self.size == 0 and self.filename == DELETED_FILENAME

    def needs_replace(self, target: Path) -> bool:
        """Decide whether ``target`` must be (re)downloaded."""
        if self.lazy:
            return not target.exists()
        return not file_matches(target, self.checksum, self.size)

    def to_json(self) -> dict[str, Any]:
        data = super().to_json()
        data["url"] = self.url
        if self.path:
            data["path"] = self.path
        for flag in ("lazy", "gzip", "local"):
            if getattr(self, flag):
                data[flag] = True
        return data


class RepositoryEntry(BaseModel):
    """A verified blob on disk plus its metadata."""

    path: Path = Field(..., description="Blob location")
    info: FileInfo = Field(..., description="Recorded metadata")

    model_config = ConfigDict(frozen=True)

    @property
    def checksum(self) -> str:
        return self.info.checksum


class ConfigEntry(BaseModel):
    """One declared option or property."""

    key: str = Field(..., description="Entry key")
    value: str = Field(default="", description="Entry value")
    force: bool = Field(default=False, description="Overwrite an existing local value")

    @field_validator("value", mode="before")
    @classmethod
    def coerce_value(cls, v: Any) -> str:
        """Accept JSON scalars the way a text file would store them."""
        if isinstance(v, bool):
            return "true" if v else "false"
        if v is None:
            return ""
        return str(v)


class ServerListEntry(BaseModel):
    """A named server in the multiplayer server list."""

    name: str = Field(..., description="Display name, unique key")
    ip: str = Field(default="", description="Address, empty means remove")
    icon: str = Field(default="", description="Base64 PNG icon")
    hidden: bool = Field(default=False, description="Hide address in the list")
    # other tags of a decoded entry, written back unchanged
    _extra_tags: dict[str, Tag] = PrivateAttr(default_factory=dict)

    def to_compound(self) -> CompoundTag:
        tag = CompoundTag()
        tag["name"] = StringTag.of(self.name)
        tag["ip"] = StringTag.of(self.ip)
        if self.icon:
            tag["icon"] = StringTag.of(self.icon)
        if self.hidden:
            tag["hidden"] = BYTE_ONE
        for key, value in self._extra_tags.items():
            tag[key] = value
        return tag

    @classmethod
    def from_compound(cls, tag: CompoundTag, default_icon: str = "") -> ServerListEntry:
        entry = cls(
            name=tag.get_string("name"),
            ip=tag.get_string("ip"),
            icon=tag.get_string("icon") or default_icon,
            hidden=tag.get_byte("hidden") != 0,
        )
        entry._extra_tags = {key: value for key, value in tag.items() if key not in SERVER_ENTRY_KEYS}
        return entry


class SyncManifest(BaseModel):
    """Decoded sync response."""

    warnings: list[str] = Field(default_factory=list, description="Messages to surface as warnings")
    errors: list[str] = Field(default_factory=list, description="Messages that abort the cycle")
    mods: list[RemoteFileDescriptor] = Field(default_factory=list, description="Authoritative mod set")
    extra_files: list[RemoteFileDescriptor] = Field(
        default_factory=list, description="Files placed under the install root"
    )
    server_list: list[ServerListEntry] | None = Field(default=None, description="Inline server list")
    servers: RemoteFileDescriptor | None = Field(default=None, description="Remote server-list document")
    server_icon: RemoteFileDescriptor | None = Field(default=None, description="server-icon.png source")
    options: list[ConfigEntry] = Field(default_factory=list, description="options.txt entries")
    server_properties: list[ConfigEntry] = Field(
        default_factory=list, description="server.properties entries"
    )

    model_config = ConfigDict(extra="ignore")


class LocalState(BaseModel):
    """Pack version and mod set of the last completed sync."""

    version: str = Field(default="", description="Accepted pack version, empty forces a sync")
    mods: list[FileInfo] = Field(default_factory=list, description="Mods of the accepted version")

    def to_json(self) -> dict[str, Any]:
        return {"version": self.version, "mods": [m.to_json() for m in self.mods]}


class PlatformInfo(BaseModel):
    """Caller environment reported to the sync endpoint."""

    platform: str = Field(default_factory=detect_platform, description="OS family")
    mc_version: str = Field(default="", description="Game version")
    loader_version: str = Field(default="", description="Mod loader version")
    loader_api_version: str = Field(default="", description="Mod loader API version")
    dev: bool = Field(default=False, description="Development environment")
    server: bool = Field(default=False, description="Dedicated server")


class VersionInfo(BaseModel):
    """Result of the version call."""

    version: str = Field(..., description="Remote pack version")
    session_id: str = Field(default="", description="Session id header")
    pack_id: str = Field(default="", description="Authoritative pack id header")


class SyncContext(BaseModel):
    """Values identifying this run to the remote.

    Immutable; response headers produce a new context.
    """

    api: str = Field(..., description="API base URL")
    pack_code: str = Field(..., description="Pack code")
    pack_id: str = Field(default="", description="Pack id")
    session_id: str = Field(default="", description="Session id issued by the server")
    version: str = Field(default="", description="Resolved remote version")

    model_config = ConfigDict(frozen=True)

    @field_validator("api")
    @classmethod
    def validate_api(cls, v: str) -> str:
        """Strip trailing slashes from the API base."""
        v = v.strip().rstrip("/")
        if not v:
            raise ValueError("API URL cannot be empty")
        return v

    def with_version(self, info: VersionInfo) -> SyncContext:
        """Apply a version response; header values override configured ones."""
        update: dict[str, str] = {"version": info.version}
        if info.session_id:
            update["session_id"] = info.session_id
        if info.pack_id:
            update["pack_id"] = info.pack_id
        return self.model_copy(update=update)
