"""Format parsers and builders for files pack-sync reads and writes.

- NBT: Binary tagged-value documents (servers.dat)
- Key/value: ``key:value`` line files (options.txt)
- Properties: Java properties files (server.properties)
"""

from pack_sync.formats.base import FormatParser
from pack_sync.formats.key_value import KeyValueParser
from pack_sync.formats.nbt import (
    ByteArrayTag,
    ByteTag,
    CompoundTag,
    DoubleTag,
    FloatTag,
    IntArrayTag,
    IntTag,
    ListTag,
    LongArrayTag,
    LongTag,
    NbtParser,
    ShortTag,
    StringTag,
    Tag,
    TagFormatError,
    TagType,
    read_document,
    to_snbt,
    write_document,
)
from pack_sync.formats.properties import PropertiesParser

__all__ = [
    "FormatParser",
    "KeyValueParser",
    "PropertiesParser",
    # NBT
    "NbtParser",
    "Tag",
    "TagType",
    "TagFormatError",
    "ByteTag",
    "ShortTag",
    "IntTag",
    "LongTag",
    "FloatTag",
    "DoubleTag",
    "StringTag",
    "ByteArrayTag",
    "IntArrayTag",
    "LongArrayTag",
    "ListTag",
    "CompoundTag",
    "read_document",
    "write_document",
    "to_snbt",
]
