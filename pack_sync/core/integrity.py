"""Content integrity verification for downloaded and cached files.

Every piece of content is identified by a hex checksum whose algorithm is
implied by its length (MD5 for 32 characters, SHA-512 for 128). Verification
happens at two levels:

1. The byte count must match the recorded size
2. The digest of the bytes must match the recorded checksum
"""

from __future__ import annotations

from pathlib import Path

import structlog

from pack_sync.core.utils import algorithm_for_checksum, checksum_file, compute_checksum, file_size

logger = structlog.get_logger()


class IntegrityError(Exception):
    """Raised when content verification fails.

    Attributes:
        expected: Expected checksum or size
        actual: Actual checksum or size
        checksum: The content checksum being verified
    """

    def __init__(
        self,
        message: str,
        *,
        expected: str | int | None = None,
        actual: str | int | None = None,
        checksum: str | None = None,
    ):
        self.expected = expected
        self.actual = actual
        self.checksum = checksum
        super().__init__(message)


def verify_checksum(data: bytes, expected: str) -> bool:
    """Verify in-memory content against its checksum.

    An empty ``expected`` checksum accepts any content.

    Raises:
        IntegrityError: If the digest does not match
    """
    if not expected:
        return True

    actual = compute_checksum(data, algorithm_for_checksum(expected))
    if actual != expected.lower():
        raise IntegrityError(
            f"Checksum mismatch: expected {expected}, got {actual}",
            expected=expected,
            actual=actual,
            checksum=expected,
        )
    return True


def verify_size(data: bytes, expected: int, checksum: str | None = None) -> bool:
    """Verify in-memory content against its recorded size.

    A non-positive ``expected`` size accepts any length.

    Raises:
        IntegrityError: If the size does not match
    """
    if expected > 0 and len(data) != expected:
        raise IntegrityError(
            f"Size mismatch: expected {expected}, got {len(data)}",
            expected=expected,
            actual=len(data),
            checksum=checksum,
        )
    return True


def file_matches(path: Path, checksum: str, size: int) -> bool:
    """Check a file on disk against a checksum and size.

    Returns False for missing files, size mismatches, digest mismatches and
    files that cannot be read.
    """
    if not path.is_file():
        return False
    if file_size(path) != size:
        return False
    if not checksum:
        return True

    try:
        actual = checksum_file(path, algorithm_for_checksum(checksum))
    except (OSError, ValueError) as e:
        logger.warning("checksum_failed", path=str(path), error=str(e))
        return False
    return actual == checksum.lower()
