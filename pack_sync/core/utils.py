"""Shared utilities for pack-sync."""

from __future__ import annotations

import hashlib
import os
import sys
import threading
from collections.abc import Iterator
from pathlib import Path
from typing import BinaryIO

CHUNK_SIZE = 32768

# Hex digest length -> hashlib algorithm name
_ALGORITHMS_BY_LENGTH = {
    32: "md5",
    40: "sha1",
    64: "sha256",
    128: "sha512",
}


def algorithm_for_checksum(checksum: str) -> str:
    """Infer the digest algorithm from the length of a hex checksum.

    Args:
        checksum: Hex digest

    Returns:
        hashlib algorithm name

    Raises:
        ValueError: If the length matches no supported algorithm

    Example:
        >>> algorithm_for_checksum("5d41402abc4b2a76b9719d911017c592")
        'md5'
    """
    try:
        return _ALGORITHMS_BY_LENGTH[len(checksum)]
    except KeyError:
        raise ValueError(f"Unsupported checksum length: {len(checksum)}") from None


def chunked_read(stream: BinaryIO, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    """Read stream in chunks.

    Args:
        stream: Binary stream to read from
        chunk_size: Size of each chunk in bytes

    Yields:
        Data chunks as bytes
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")

    while True:
        chunk = stream.read(chunk_size)
        if not chunk:
            break
        yield chunk


def compute_checksum(data: bytes, algorithm: str = "md5") -> str:
    """Hex digest of in-memory data.

    Example:
        >>> compute_checksum(b"hello")
        '5d41402abc4b2a76b9719d911017c592'
    """
    return hashlib.new(algorithm, data).hexdigest()


def checksum_file(path: Path, algorithm: str = "md5") -> str:
    """Hex digest of a file's contents.

    Args:
        path: File to hash
        algorithm: hashlib algorithm name

    Returns:
        Lowercase hex digest, or "" if the file does not exist

    Raises:
        OSError: If the file exists but cannot be read
    """
    if not path.is_file():
        return ""

    digest = hashlib.new(algorithm)
    with open(path, "rb") as f:
        for chunk in chunked_read(f):
            digest.update(chunk)
    return digest.hexdigest()


def file_size(path: Path) -> int:
    """Size of a file in bytes, 0 if it is missing or unreadable."""
    try:
        return path.stat().st_size
    except OSError:
        return 0


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Write ``data`` to ``path`` through a temp file and ``os.replace``.

    The parent directory is created if needed. Concurrent creation of the
    same directory is tolerated.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f"{path.name}.{os.getpid()}.{threading.get_ident():x}.tmp")
    try:
        with open(tmp_path, "wb") as f:
            f.write(data)
        os.replace(tmp_path, path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise


def atomic_write_text(path: Path, text: str) -> None:
    atomic_write_bytes(path, text.encode("utf-8"))


def format_size(size: int) -> str:
    """Format byte size as human-readable string.

    Example:
        >>> format_size(1536)
        '1.5 KB'
    """
    if size < 0:
        return "0 B"

    size_float = float(size)
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if size_float < 1024.0:
            if unit == "B":
                return f"{int(size_float)} {unit}"
            return f"{size_float:.1f} {unit}"
        size_float /= 1024.0
    return f"{size_float:.1f} PB"


def validate_hash_string(hash_str: str) -> bool:
    """Validate a lowercase or uppercase hex hash string.

    Example:
        >>> validate_hash_string("deadbeef")
        True
        >>> validate_hash_string("")
        False
    """
    if not hash_str or hash_str != hash_str.strip() or " " in hash_str:
        return False
    try:
        bytes.fromhex(hash_str)
        return True
    except ValueError:
        return False


def detect_platform(os_name: str | None = None) -> str:
    """Map an OS name to the platform family sent to the sync server.

    Args:
        os_name: OS name to classify, defaults to ``sys.platform``

    Returns:
        One of windows, mac, solaris, linux, unknown
    """
    name = (os_name if os_name is not None else sys.platform).lower()
    if "win" in name and "darwin" not in name:
        return "windows"
    if "mac" in name or "darwin" in name:
        return "mac"
    if "solaris" in name or "sunos" in name:
        return "solaris"
    if "linux" in name or "unix" in name:
        return "linux"
    return "unknown"
