"""Parser and builder for Java-style ``.properties`` files.

Reading follows ``java.util.Properties.load``:
- ``#`` or ``!`` as the first non-blank character starts a comment line
- A line ending in an odd number of backslashes continues on the next line
- The key ends at the first unescaped ``=``, ``:`` or whitespace
- Escapes: ``\\t``, ``\\n``, ``\\r``, ``\\f``, ``\\uXXXX``; any other
  escaped character stands for itself

Writing escapes the same characters back, emits non-ASCII characters as
``\\uXXXX`` and writes an optional ``#`` header comment. No timestamp is
written so unchanged entries always produce identical bytes.
"""

from __future__ import annotations

from typing import BinaryIO

from pack_sync.formats.base import FormatParser

_WHITESPACE = " \t\f"
_ESCAPES = {"t": "\t", "n": "\n", "r": "\r", "f": "\f"}
_REVERSE_ESCAPES = {"\t": "\\t", "\n": "\\n", "\r": "\\r", "\f": "\\f"}


def _logical_lines(text: str) -> list[str]:
    """Join continuation lines and drop comments and blank lines."""
    result: list[str] = []
    pending: str | None = None

    for raw in text.splitlines():
        line = raw.lstrip(_WHITESPACE)
        if pending is None and (not line or line[0] in "#!"):
            continue

        trailing = len(line) - len(line.rstrip("\\"))
        continued = trailing % 2 == 1
        if continued:
            line = line[:-1]

        pending = line if pending is None else pending + line
        if not continued:
            result.append(pending)
            pending = None

    if pending is not None:
        result.append(pending)
    return result


def _unescape(value: str) -> str:
    out: list[str] = []
    i = 0
    while i < len(value):
        ch = value[i]
        if ch != "\\" or i + 1 >= len(value):
            out.append(ch)
            i += 1
            continue

        nxt = value[i + 1]
        if nxt == "u":
            digits = value[i + 2:i + 6]
            if len(digits) != 4:
                raise ValueError(f"Malformed \\uXXXX escape: {value[i:i + 6]!r}")
            try:
                out.append(chr(int(digits, 16)))
            except ValueError as e:
                raise ValueError(f"Malformed \\uXXXX escape: {value[i:i + 6]!r}") from e
            i += 6
        else:
            out.append(_ESCAPES.get(nxt, nxt))
            i += 2
    # Join surrogate pairs written as two \\uXXXX escapes
    return "".join(out).encode("utf-16-le", "surrogatepass").decode("utf-16-le", "surrogatepass")


def _split_entry(line: str) -> tuple[str, str]:
    i = 0
    n = len(line)
    while i < n:
        ch = line[i]
        if ch == "\\":
            i += 2
            continue
        if ch in "=:" or ch in _WHITESPACE:
            break
        i += 1

    key = line[:i]
    rest = line[i:].lstrip(_WHITESPACE)
    if rest[:1] in ("=", ":"):
        rest = rest[1:].lstrip(_WHITESPACE)
    return _unescape(key), _unescape(rest)


def _escape(value: str, is_key: bool) -> str:
    out: list[str] = []
    for index, ch in enumerate(value):
        if ch == " ":
            out.append("\\ " if is_key or index == 0 else " ")
        elif ch in _REVERSE_ESCAPES:
            out.append(_REVERSE_ESCAPES[ch])
        elif ch in "\\=:#!":
            out.append("\\" + ch)
        elif ord(ch) < 0x20 or ord(ch) > 0x7E:
            for unit in _utf16_units(ch):
                out.append(f"\\u{unit:04X}")
        else:
            out.append(ch)
    return "".join(out)


def _utf16_units(ch: str) -> list[int]:
    raw = ch.encode("utf-16-be", "surrogatepass")
    return [int.from_bytes(raw[i:i + 2], "big") for i in range(0, len(raw), 2)]


class PropertiesParser(FormatParser[dict[str, str]]):
    """Parser for Java properties documents.

    Args:
        header: Optional comment written as the first line
    """

    def __init__(self, header: str | None = None):
        self.header = header

    def parse(self, data: bytes | BinaryIO) -> dict[str, str]:
        raw = data if isinstance(data, bytes) else data.read()
        # Properties files are ISO-8859-1 with \u escapes for anything else
        text = raw.decode("latin-1")
        entries: dict[str, str] = {}
        for line in _logical_lines(text):
            key, value = _split_entry(line)
            entries[key] = value
        return entries

    def build(self, obj: dict[str, str]) -> bytes:
        lines: list[str] = []
        if self.header:
            lines.append("#" + self.header)
        for key, value in obj.items():
            lines.append(f"{_escape(key, True)}={_escape(value, False)}")
        return ("\n".join(lines) + "\n").encode("latin-1")
