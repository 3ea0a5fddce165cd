"""Parser and builder for line-based ``key:value`` files (options.txt).

Each line holds one entry split on the first colon. Lines without a colon
are ignored on read and dropped on rewrite. Entry order is preserved.
Bytes that are not valid UTF-8 are carried through unchanged.
"""

from __future__ import annotations

from typing import BinaryIO

from pack_sync.formats.base import FormatParser


class KeyValueParser(FormatParser[dict[str, str]]):
    """Parser for ``key:value`` text documents."""

    separator = ":"

    def parse(self, data: bytes | BinaryIO) -> dict[str, str]:
        raw = data if isinstance(data, bytes) else data.read()
        entries: dict[str, str] = {}
        for line in raw.decode("utf-8", errors="surrogateescape").splitlines():
            key, sep, value = line.partition(self.separator)
            if sep:
                entries[key] = value
        return entries

    def build(self, obj: dict[str, str]) -> bytes:
        return "\n".join(f"{key}{self.separator}{value}" for key, value in obj.items()).encode(
            "utf-8", errors="surrogateescape"
        )
