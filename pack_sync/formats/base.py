"""Base classes for file format parsers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import BinaryIO, Generic, TypeVar

import structlog

from pack_sync.core.utils import atomic_write_bytes

logger = structlog.get_logger()

T = TypeVar("T")


class FormatParser(ABC, Generic[T]):
    """Base class for parsers that read and write one document type."""

    @abstractmethod
    def parse(self, data: bytes | BinaryIO) -> T:
        """Parse a document.

        Args:
            data: Raw bytes or a binary stream

        Returns:
            Parsed document
        """
        ...

    @abstractmethod
    def build(self, obj: T) -> bytes:
        """Serialize a document.

        Args:
            obj: Document to serialize

        Returns:
            Encoded bytes
        """
        ...

    def parse_file(self, path: Path) -> T:
        """Parse a document from disk.

        Args:
            path: File path

        Returns:
            Parsed document

        Raises:
            ValueError: If the file cannot be read
        """
        try:
            with open(path, "rb") as f:
                return self.parse(f)
        except OSError as e:
            logger.error("format_read_failed", path=str(path), error=str(e))
            raise ValueError(f"Cannot read file {path}: {e}") from e

    def build_file(self, obj: T, path: Path) -> bytes:
        """Serialize a document and replace the file at ``path`` atomically.

        Returns:
            The bytes that were written
        """
        data = self.build(obj)
        atomic_write_bytes(path, data)
        return data

    def validate(self, data: bytes) -> tuple[bool, str]:
        """Check that ``data`` parses and rebuilds to the same bytes."""
        try:
            rebuilt = self.build(self.parse(data))
        except ValueError as e:
            return False, str(e)
        if rebuilt != data:
            return False, "Round-trip validation failed"
        return True, "Valid"
