"""Reconcile remote-declared settings with locally edited files.

Every merger reads the current file, applies the declared entries and
writes the file back atomically only when something changed, so applying
the same entries twice leaves the file untouched.
"""

from __future__ import annotations

import base64
from collections.abc import Iterable
from pathlib import Path

import structlog

from pack_sync.core.issues import IssueReporter
from pack_sync.core.types import ConfigEntry, ServerListEntry
from pack_sync.core.utils import atomic_write_bytes
from pack_sync.formats.key_value import KeyValueParser
from pack_sync.formats.nbt import CompoundTag, ListTag, NbtParser, StringTag, TagFormatError, read_compound_document
from pack_sync.formats.properties import PropertiesParser

logger = structlog.get_logger()

# options.txt data version written when the game has not created the file yet
OPTIONS_BOOTSTRAP = {"version": "4325"}
PROPERTIES_HEADER = "Minecraft server properties"


def _apply_entries(values: dict[str, str], entries: Iterable[ConfigEntry]) -> bool:
    changed = False
    for entry in entries:
        current = values.get(entry.key)
        if current is None or (entry.force and current != entry.value):
            values[entry.key] = entry.value
            changed = True
    return changed


def merge_options(path: Path, entries: Iterable[ConfigEntry]) -> bool:
    """Merge ``key:value`` entries into ``options.txt``.

    Existing keys are kept unless the entry is forced and differs. A new
    file starts with the bootstrap data version.

    Returns:
        True if the file was written
    """
    parser = KeyValueParser()
    exists = path.exists()
    values = parser.parse_file(path) if exists else dict(OPTIONS_BOOTSTRAP)

    if not _apply_entries(values, entries) and exists:
        return False

    parser.build_file(values, path)
    logger.info("options_updated", path=str(path), entries=len(values))
    return True


def merge_properties(path: Path, entries: Iterable[ConfigEntry]) -> bool:
    """Merge entries into a Java properties file such as ``server.properties``.

    Returns:
        True if the file was written
    """
    parser = PropertiesParser(header=PROPERTIES_HEADER)
    exists = path.exists()
    values = parser.parse_file(path) if exists else {}

    if not _apply_entries(values, entries) and exists:
        return False

    parser.build_file(values, path)
    logger.info("properties_updated", path=str(path), entries=len(values))
    return True


def _server_tags(root: CompoundTag) -> list[CompoundTag]:
    servers = root.get("servers")
    if not isinstance(servers, ListTag):
        return []
    return [tag for tag in servers if isinstance(tag, CompoundTag) and tag.get_string("name")]


def load_remote_server_list(data: bytes, compressed: bool = False) -> list[ServerListEntry]:
    """Decode a remote server-list document.

    Entries without a name are skipped; entries without an address are kept
    since they request removal. Tags beyond name, address, icon and hidden
    flag travel with each entry.

    Raises:
        TagFormatError: If the document is malformed
    """
    root = read_compound_document(data, compressed=compressed)
    return [ServerListEntry.from_compound(tag) for tag in _server_tags(root)]


def merge_server_list(
    path: Path,
    remote_entries: Iterable[ServerListEntry],
    default_icon: str = "",
    issues: IssueReporter | None = None,
) -> bool:
    """Merge remote server entries into ``servers.dat``.

    Entries are keyed by name, first local match wins, and local entries
    keep every tag they carry. A remote entry with an address replaces the
    whole local entry or appends; one without removes. Entries left without
    an address are dropped. Other root keys are preserved.

    Returns:
        True if the file was written
    """
    parser = NbtParser()
    original: bytes | None = None
    root = CompoundTag()

    if path.exists():
        original = path.read_bytes()
        try:
            root = parser.parse(original)
        except TagFormatError as e:
            if issues is not None:
                issues.warning("Replacing unreadable server list", path=path, cause=e)
            else:
                logger.warning("server_list_invalid", path=str(path), error=str(e))
            root = CompoundTag()

    servers: dict[str, CompoundTag] = {}
    for tag in _server_tags(root):
        servers.setdefault(tag.get_string("name"), tag)

    for remote in remote_entries:
        if not remote.name:
            continue
        if remote.ip:
            servers[remote.name] = remote.to_compound()
        else:
            servers.pop(remote.name, None)

    merged = ListTag()
    for tag in servers.values():
        if not tag.get_string("ip"):
            continue
        if default_icon and not tag.get_string("icon"):
            tag["icon"] = StringTag.of(default_icon)
        merged.append(tag)

    root["servers"] = merged
    data = parser.build(root)
    if data == original:
        return False

    atomic_write_bytes(path, data)
    logger.info("server_list_updated", path=str(path), servers=len(merged))
    return True


def encode_icon(path: Path) -> str:
    """Base64 of a PNG icon, empty if the file does not exist."""
    if not path.is_file():
        return ""
    return base64.b64encode(path.read_bytes()).decode("ascii")
