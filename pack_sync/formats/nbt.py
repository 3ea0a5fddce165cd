"""Binary tagged-value (NBT) codec.

Documents are trees of a closed set of tag variants. Every value is
identified on the wire by a one-byte type id; all numbers are big-endian.

Wire format:
- Root: type byte, empty name (u16 length 0), payload
- Compound: repeated ``(type:u8, name, payload)`` terminated by type 0
- List: element type (u8), count (i32), then ``count`` payloads
- Arrays: count (i32), then ``count`` elements of the fixed width
- Strings and names: u16 byte length + Java modified UTF-8

Lists on the wire are homogeneous. A heterogeneous list is written as a
compound list whose elements are wrapped in ``{"": value}``; the decoder
unwraps any list element of that shape back to the bare value.

Whole-document gzip compression is chosen by the caller; it is not
recorded in the format itself.
"""

from __future__ import annotations

import gzip
import math
import re
import struct
import zlib
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from enum import IntEnum
from io import BytesIO
from typing import BinaryIO, ClassVar, Union

import structlog

from pack_sync.formats.base import FormatParser

logger = structlog.get_logger()

MAX_DEPTH = 128
MAX_STRING_BYTES = 0xFFFF


class TagType(IntEnum):
    """One-byte type ids."""

    END = 0
    BYTE = 1
    SHORT = 2
    INT = 3
    LONG = 4
    FLOAT = 5
    DOUBLE = 6
    BYTE_ARRAY = 7
    STRING = 8
    LIST = 9
    COMPOUND = 10
    INT_ARRAY = 11
    LONG_ARRAY = 12


class TagFormatError(ValueError):
    """Raised when a document cannot be decoded or encoded."""


def _check_range(value: int, bits: int, name: str) -> None:
    low = -(1 << (bits - 1))
    high = (1 << (bits - 1)) - 1
    if not low <= value <= high:
        raise ValueError(f"{name} value out of range: {value}")


def _to_float32(value: float) -> float:
    return struct.unpack(">f", struct.pack(">f", value))[0]


def _is_positive_zero(value: float) -> bool:
    return value == 0.0 and math.copysign(1.0, value) > 0


@dataclass(frozen=True)
class ByteTag:
    value: int
    tag_type: ClassVar[TagType] = TagType.BYTE

    def __post_init__(self) -> None:
        _check_range(self.value, 8, "Byte")

    @classmethod
    def of(cls, value: int) -> ByteTag:
        if value == 0:
            return BYTE_ZERO
        if value == 1:
            return BYTE_ONE
        return cls(value)


@dataclass(frozen=True)
class ShortTag:
    value: int
    tag_type: ClassVar[TagType] = TagType.SHORT

    def __post_init__(self) -> None:
        _check_range(self.value, 16, "Short")

    @classmethod
    def of(cls, value: int) -> ShortTag:
        if value == 0:
            return SHORT_ZERO
        if value == 1:
            return SHORT_ONE
        return cls(value)


@dataclass(frozen=True)
class IntTag:
    value: int
    tag_type: ClassVar[TagType] = TagType.INT

    def __post_init__(self) -> None:
        _check_range(self.value, 32, "Int")

    @classmethod
    def of(cls, value: int) -> IntTag:
        if value == 0:
            return INT_ZERO
        if value == 1:
            return INT_ONE
        return cls(value)


@dataclass(frozen=True)
class LongTag:
    value: int
    tag_type: ClassVar[TagType] = TagType.LONG

    def __post_init__(self) -> None:
        _check_range(self.value, 64, "Long")

    @classmethod
    def of(cls, value: int) -> LongTag:
        if value == 0:
            return LONG_ZERO
        if value == 1:
            return LONG_ONE
        return cls(value)


@dataclass(frozen=True)
class FloatTag:
    """32-bit float. The stored value is narrowed to float32 precision."""

    value: float
    tag_type: ClassVar[TagType] = TagType.FLOAT

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", _to_float32(float(self.value)))

    @classmethod
    def of(cls, value: float) -> FloatTag:
        if _is_positive_zero(value):
            return FLOAT_ZERO
        if value == 1.0:
            return FLOAT_ONE
        return cls(value)


@dataclass(frozen=True)
class DoubleTag:
    value: float
    tag_type: ClassVar[TagType] = TagType.DOUBLE

    @classmethod
    def of(cls, value: float) -> DoubleTag:
        if _is_positive_zero(value):
            return DOUBLE_ZERO
        if value == 1.0:
            return DOUBLE_ONE
        return cls(float(value))


@dataclass(frozen=True)
class StringTag:
    value: str
    tag_type: ClassVar[TagType] = TagType.STRING

    @classmethod
    def of(cls, value: str) -> StringTag:
        return STRING_EMPTY if not value else cls(value)


@dataclass(frozen=True)
class ByteArrayTag:
    value: bytes
    tag_type: ClassVar[TagType] = TagType.BYTE_ARRAY

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", bytes(self.value))


@dataclass(frozen=True)
class IntArrayTag:
    value: tuple[int, ...]
    tag_type: ClassVar[TagType] = TagType.INT_ARRAY

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", tuple(self.value))
        for item in self.value:
            _check_range(item, 32, "Int array")


@dataclass(frozen=True)
class LongArrayTag:
    value: tuple[int, ...]
    tag_type: ClassVar[TagType] = TagType.LONG_ARRAY

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", tuple(self.value))
        for item in self.value:
            _check_range(item, 64, "Long array")


@dataclass
class ListTag:
    """Ordered list of tags. May hold mixed variants in memory."""

    items: list[Tag] = field(default_factory=list)
    tag_type: ClassVar[TagType] = TagType.LIST

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[Tag]:
        return iter(self.items)

    def __getitem__(self, index: int) -> Tag:
        return self.items[index]

    def append(self, tag: Tag) -> None:
        self.items.append(tag)


@dataclass
class CompoundTag:
    """Insertion-ordered mapping of names to tags."""

    entries: dict[str, Tag] = field(default_factory=dict)
    tag_type: ClassVar[TagType] = TagType.COMPOUND

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, key: object) -> bool:
        return key in self.entries

    def __getitem__(self, key: str) -> Tag:
        return self.entries[key]

    def __setitem__(self, key: str, tag: Tag) -> None:
        self.entries[key] = tag

    def __delitem__(self, key: str) -> None:
        del self.entries[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self.entries)

    def get(self, key: str) -> Tag | None:
        return self.entries.get(key)

    def items(self):
        return self.entries.items()

    def get_string(self, key: str, default: str = "") -> str:
        """Return a string entry, or ``default`` if absent or not a string."""
        tag = self.entries.get(key)
        return tag.value if isinstance(tag, StringTag) else default

    def get_byte(self, key: str, default: int = 0) -> int:
        tag = self.entries.get(key)
        return tag.value if isinstance(tag, ByteTag) else default


Tag = Union[
    ByteTag,
    ShortTag,
    IntTag,
    LongTag,
    FloatTag,
    DoubleTag,
    StringTag,
    ByteArrayTag,
    IntArrayTag,
    LongArrayTag,
    ListTag,
    CompoundTag,
]

BYTE_ZERO = ByteTag(0)
BYTE_ONE = ByteTag(1)
SHORT_ZERO = ShortTag(0)
SHORT_ONE = ShortTag(1)
INT_ZERO = IntTag(0)
INT_ONE = IntTag(1)
LONG_ZERO = LongTag(0)
LONG_ONE = LongTag(1)
FLOAT_ZERO = FloatTag(0.0)
FLOAT_ONE = FloatTag(1.0)
DOUBLE_ZERO = DoubleTag(0.0)
DOUBLE_ONE = DoubleTag(1.0)
STRING_EMPTY = StringTag("")


def is_wrapper(tag: Tag) -> bool:
    """True if ``tag`` is a compound holding exactly one empty-named entry."""
    return isinstance(tag, CompoundTag) and len(tag) == 1 and "" in tag


def unwrap(tag: Tag) -> Tag:
    """Strip one ``{"": value}`` wrapper, leaving other tags untouched."""
    if is_wrapper(tag):
        return tag[""]  # type: ignore[index]
    return tag


# Modified UTF-8


def encode_modified_utf8(value: str) -> bytes:
    """Encode a string the way Java's ``DataOutput.writeUTF`` does.

    NUL is written as ``C0 80`` and characters outside the BMP as two
    3-byte surrogate sequences.
    """
    if value.isascii() and "\x00" not in value:
        return value.encode("ascii")

    raw = value.encode("utf-16-be", "surrogatepass")
    units = struct.unpack(f">{len(raw) // 2}H", raw)
    out = bytearray()
    for unit in units:
        if 0 < unit < 0x80:
            out.append(unit)
        elif unit < 0x800:
            out.append(0xC0 | (unit >> 6))
            out.append(0x80 | (unit & 0x3F))
        else:
            out.append(0xE0 | (unit >> 12))
            out.append(0x80 | ((unit >> 6) & 0x3F))
            out.append(0x80 | (unit & 0x3F))
    return bytes(out)


def decode_modified_utf8(data: bytes) -> str:
    """Inverse of :func:`encode_modified_utf8`.

    Raises:
        TagFormatError: On malformed byte sequences
    """
    if data.isascii():
        return data.decode("ascii")

    units: list[int] = []
    i = 0
    n = len(data)
    while i < n:
        b = data[i]
        if b < 0x80:
            units.append(b)
            i += 1
        elif b & 0xE0 == 0xC0:
            if i + 1 >= n or data[i + 1] & 0xC0 != 0x80:
                raise TagFormatError(f"Malformed string at byte {i}")
            units.append(((b & 0x1F) << 6) | (data[i + 1] & 0x3F))
            i += 2
        elif b & 0xF0 == 0xE0:
            if i + 2 >= n or data[i + 1] & 0xC0 != 0x80 or data[i + 2] & 0xC0 != 0x80:
                raise TagFormatError(f"Malformed string at byte {i}")
            units.append(((b & 0x0F) << 12) | ((data[i + 1] & 0x3F) << 6) | (data[i + 2] & 0x3F))
            i += 3
        else:
            raise TagFormatError(f"Malformed string at byte {i}")

    return struct.pack(f">{len(units)}H", *units).decode("utf-16-be", "surrogatepass")


# Writing


def _write_string(out: BinaryIO, value: str) -> None:
    encoded = encode_modified_utf8(value)
    if len(encoded) > MAX_STRING_BYTES:
        raise TagFormatError(f"String too long to encode: {len(encoded)} bytes")
    out.write(struct.pack(">H", len(encoded)))
    out.write(encoded)


def _write_list(out: BinaryIO, tag: ListTag) -> None:
    if not tag.items:
        out.write(struct.pack(">bi", TagType.END, 0))
        return

    kinds = {_type_of(item) for item in tag.items}
    element_type = kinds.pop() if len(kinds) == 1 else TagType.COMPOUND
    out.write(struct.pack(">bi", element_type, len(tag.items)))

    for item in tag.items:
        if element_type == TagType.COMPOUND and (
            not isinstance(item, CompoundTag) or is_wrapper(item)
        ):
            _write_compound(out, CompoundTag({"": item}))
        else:
            _WRITERS[element_type](out, item)


def _write_compound(out: BinaryIO, tag: CompoundTag) -> None:
    for key, value in tag.entries.items():
        kind = _type_of(value)
        out.write(struct.pack(">b", kind))
        _write_string(out, key)
        _WRITERS[kind](out, value)
    out.write(b"\x00")


def _write_array(fmt: str) -> Callable[[BinaryIO, Tag], None]:
    def write(out: BinaryIO, tag: Tag) -> None:
        values = tag.value  # type: ignore[union-attr]
        out.write(struct.pack(">i", len(values)))
        out.write(struct.pack(f">{len(values)}{fmt}", *values))

    return write


def _write_scalar(fmt: str) -> Callable[[BinaryIO, Tag], None]:
    def write(out: BinaryIO, tag: Tag) -> None:
        out.write(struct.pack(fmt, tag.value))  # type: ignore[union-attr]

    return write


def _write_byte_array(out: BinaryIO, tag: Tag) -> None:
    data = tag.value  # type: ignore[union-attr]
    out.write(struct.pack(">i", len(data)))
    out.write(data)


_WRITERS: dict[TagType, Callable[[BinaryIO, Tag], None]] = {
    TagType.BYTE: _write_scalar(">b"),
    TagType.SHORT: _write_scalar(">h"),
    TagType.INT: _write_scalar(">i"),
    TagType.LONG: _write_scalar(">q"),
    TagType.FLOAT: _write_scalar(">f"),
    TagType.DOUBLE: _write_scalar(">d"),
    TagType.BYTE_ARRAY: _write_byte_array,
    TagType.STRING: lambda out, tag: _write_string(out, tag.value),  # type: ignore[union-attr]
    TagType.LIST: _write_list,  # type: ignore[dict-item]
    TagType.COMPOUND: _write_compound,  # type: ignore[dict-item]
    TagType.INT_ARRAY: _write_array("i"),
    TagType.LONG_ARRAY: _write_array("q"),
}


def _type_of(tag: object) -> TagType:
    kind = getattr(type(tag), "tag_type", None)
    if not isinstance(kind, TagType) or kind == TagType.END:
        raise TagFormatError(f"Unsupported tag value: {type(tag).__name__}")
    return kind


# Reading


class _Reader:
    """Bounded reader over a binary stream."""

    def __init__(self, stream: BinaryIO):
        self.stream = stream
        self.depth = 0

    def read_exact(self, size: int) -> bytes:
        data = self.stream.read(size)
        if len(data) != size:
            raise TagFormatError(f"Unexpected end of data: wanted {size} bytes, got {len(data)}")
        return data

    def unpack(self, fmt: str) -> tuple:
        return struct.unpack(fmt, self.read_exact(struct.calcsize(fmt)))

    def read_type(self) -> int:
        return self.read_exact(1)[0]

    def read_string(self) -> str:
        (length,) = self.unpack(">H")
        return decode_modified_utf8(self.read_exact(length))

    def read_size(self, what: str) -> int:
        (size,) = self.unpack(">i")
        if size < 0:
            raise TagFormatError(f"Negative {what} size: {size}")
        return size

    def read_payload(self, kind: int) -> Tag:
        try:
            tag_type = TagType(kind)
        except ValueError:
            raise TagFormatError(f"Unknown tag type: {kind}") from None
        if tag_type == TagType.END:
            raise TagFormatError("Unexpected END tag")

        self.depth += 1
        if self.depth > MAX_DEPTH:
            raise TagFormatError(f"Document nested deeper than {MAX_DEPTH} levels")
        try:
            return _READERS[tag_type](self)
        finally:
            self.depth -= 1

    def read_list(self) -> ListTag:
        kind = self.read_type()
        size = self.read_size("list")
        if size == 0:
            return ListTag()
        if kind not in _VALID_ELEMENT_TYPES:
            raise TagFormatError(f"Invalid list element type: {kind}")
        return ListTag([unwrap(self.read_payload(kind)) for _ in range(size)])

    def read_compound(self) -> CompoundTag:
        entries: dict[str, Tag] = {}
        while True:
            kind = self.read_type()
            if kind == TagType.END:
                break
            if kind not in _VALID_ELEMENT_TYPES:
                raise TagFormatError(f"Unknown tag type in compound: {kind}")
            key = self.read_string()
            entries[key] = self.read_payload(kind)
        return CompoundTag(entries)

    def read_byte_array(self) -> ByteArrayTag:
        size = self.read_size("byte array")
        return EMPTY_BYTE_ARRAY if size == 0 else ByteArrayTag(self.read_exact(size))

    def read_int_array(self) -> IntArrayTag:
        size = self.read_size("int array")
        return EMPTY_INT_ARRAY if size == 0 else IntArrayTag(self.unpack(f">{size}i"))

    def read_long_array(self) -> LongArrayTag:
        size = self.read_size("long array")
        return EMPTY_LONG_ARRAY if size == 0 else LongArrayTag(self.unpack(f">{size}q"))


EMPTY_BYTE_ARRAY = ByteArrayTag(b"")
EMPTY_INT_ARRAY = IntArrayTag(())
EMPTY_LONG_ARRAY = LongArrayTag(())

_VALID_ELEMENT_TYPES = frozenset(t.value for t in TagType if t != TagType.END)

_READERS: dict[TagType, Callable[[_Reader], Tag]] = {
    TagType.BYTE: lambda r: ByteTag.of(r.unpack(">b")[0]),
    TagType.SHORT: lambda r: ShortTag.of(r.unpack(">h")[0]),
    TagType.INT: lambda r: IntTag.of(r.unpack(">i")[0]),
    TagType.LONG: lambda r: LongTag.of(r.unpack(">q")[0]),
    TagType.FLOAT: lambda r: FloatTag.of(r.unpack(">f")[0]),
    TagType.DOUBLE: lambda r: DoubleTag.of(r.unpack(">d")[0]),
    TagType.BYTE_ARRAY: _Reader.read_byte_array,
    TagType.STRING: lambda r: StringTag.of(r.read_string()),
    TagType.LIST: _Reader.read_list,
    TagType.COMPOUND: _Reader.read_compound,
    TagType.INT_ARRAY: _Reader.read_int_array,
    TagType.LONG_ARRAY: _Reader.read_long_array,
}


# Documents


def encode(tag: Tag) -> bytes:
    """Encode a bare payload without type byte or name."""
    out = BytesIO()
    _WRITERS[_type_of(tag)](out, tag)
    return out.getvalue()


def decode(kind: TagType, data: bytes) -> Tag:
    """Decode a bare payload of a known type."""
    return _Reader(BytesIO(data)).read_payload(kind)


def write_document(tag: Tag, compressed: bool = False) -> bytes:
    """Encode a root document: type byte, empty name, payload.

    Args:
        tag: Root tag, normally a :class:`CompoundTag`
        compressed: Wrap the whole document in gzip

    Returns:
        Encoded document bytes
    """
    out = BytesIO()
    kind = _type_of(tag)
    out.write(struct.pack(">b", kind))
    _write_string(out, "")
    _WRITERS[kind](out, tag)
    data = out.getvalue()
    return gzip.compress(data, mtime=0) if compressed else data


def read_document(data: bytes | BinaryIO, compressed: bool = False) -> Tag:
    """Decode a root document.

    Args:
        data: Document bytes or stream
        compressed: Whether the document is gzip-wrapped

    Returns:
        The root tag

    Raises:
        TagFormatError: If the document is malformed
    """
    raw = data if isinstance(data, bytes) else data.read()
    if compressed:
        try:
            raw = gzip.decompress(raw)
        except (OSError, EOFError, zlib.error) as e:
            raise TagFormatError(f"Invalid gzip wrapper: {e}") from e

    reader = _Reader(BytesIO(raw))
    kind = reader.read_type()
    reader.read_string()
    return reader.read_payload(kind)


def read_compound_document(data: bytes | BinaryIO, compressed: bool = False) -> CompoundTag:
    """Decode a root document that must be a compound."""
    root = read_document(data, compressed=compressed)
    if not isinstance(root, CompoundTag):
        raise TagFormatError(f"Expected compound root, got {_type_of(root).name}")
    return root


# Text form


_CONTROL_ESCAPES = {"\b": "b", "\t": "t", "\n": "n", "\f": "f", "\r": "r"}
_PLAIN_KEY = re.compile(r"^[A-Za-z0-9._+-]+$")


def quote_string(value: str) -> str:
    """Quote a string for the text form.

    The quote character is chosen so the first quote found inside the
    value needs no escaping.
    """
    quote: str | None = None
    parts: list[str] = []
    for ch in value:
        if ch == "\\":
            parts.append("\\\\")
        elif ch in "\"'":
            if quote is None:
                quote = "'" if ch == '"' else '"'
            if ch == quote:
                parts.append("\\")
            parts.append(ch)
        elif ch in _CONTROL_ESCAPES:
            parts.append("\\" + _CONTROL_ESCAPES[ch])
        elif ch < " ":
            parts.append(f"\\x{ord(ch):02X}")
        else:
            parts.append(ch)
    quote = quote or '"'
    return quote + "".join(parts) + quote


def to_snbt(tag: Tag) -> str:
    """Render a tag in the human-readable text form (diagnostics only)."""
    if isinstance(tag, ByteTag):
        return f"{tag.value}b"
    if isinstance(tag, ShortTag):
        return f"{tag.value}s"
    if isinstance(tag, IntTag):
        return str(tag.value)
    if isinstance(tag, LongTag):
        return f"{tag.value}L"
    if isinstance(tag, FloatTag):
        return f"{tag.value!r}f"
    if isinstance(tag, DoubleTag):
        return f"{tag.value!r}d"
    if isinstance(tag, StringTag):
        return quote_string(tag.value)
    if isinstance(tag, ByteArrayTag):
        return "[B;" + ",".join(f"{b if b < 128 else b - 256}b" for b in tag.value) + "]"
    if isinstance(tag, IntArrayTag):
        return "[I;" + ",".join(str(v) for v in tag.value) + "]"
    if isinstance(tag, LongArrayTag):
        return "[L;" + ",".join(f"{v}L" for v in tag.value) + "]"
    if isinstance(tag, ListTag):
        return "[" + ",".join(to_snbt(item) for item in tag.items) + "]"
    if isinstance(tag, CompoundTag):
        return "{" + ",".join(
            f"{key if _PLAIN_KEY.match(key) else quote_string(key)}:{to_snbt(value)}"
            for key, value in tag.entries.items()
        ) + "}"
    raise TagFormatError(f"Unsupported tag value: {type(tag).__name__}")


class NbtParser(FormatParser[CompoundTag]):
    """File-level parser for compound-rooted documents."""

    def __init__(self, compressed: bool = False):
        self.compressed = compressed

    def parse(self, data: bytes | BinaryIO) -> CompoundTag:
        root = read_compound_document(data, compressed=self.compressed)
        logger.debug("nbt_parsed", entries=len(root), compressed=self.compressed)
        return root

    def build(self, obj: CompoundTag) -> bytes:
        return write_document(obj, compressed=self.compressed)
