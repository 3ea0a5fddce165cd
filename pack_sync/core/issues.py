"""Issue collection for a sync cycle.

Library code raises; the engine and the phase runner turn failures into
:class:`Issue` records so one bad file never aborts its siblings. Every
reported issue is also logged at its level.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

import structlog

logger = structlog.get_logger()


class IssueLevel(StrEnum):
    """Severity of a reported issue."""
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Issue:
    """A warning or error tied to an optional path."""

    level: IssueLevel
    message: str
    path: Path | None = None
    cause: BaseException | None = None

    def display(self) -> str:
        text = self.message
        if self.path is not None:
            text += f" [{self.path}]"
        if self.cause is not None:
            text += f": {self.cause}"
        return text


class IssueReporter:
    """Thread-safe collector of issues."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._issues: list[Issue] = []

    def add(self, issue: Issue) -> None:
        with self._lock:
            self._issues.append(issue)

        log = logger.error if issue.level == IssueLevel.ERROR else logger.warning
        log(
            "issue_reported",
            message=issue.message,
            path=str(issue.path) if issue.path is not None else None,
            error=str(issue.cause) if issue.cause is not None else None,
        )

    def warning(self, message: str, path: Path | None = None, cause: BaseException | None = None) -> None:
        self.add(Issue(IssueLevel.WARNING, message, path, cause))

    def error(self, message: str, path: Path | None = None, cause: BaseException | None = None) -> None:
        self.add(Issue(IssueLevel.ERROR, message, path, cause))

    @property
    def issues(self) -> list[Issue]:
        with self._lock:
            return list(self._issues)

    @property
    def errors(self) -> list[Issue]:
        return [i for i in self.issues if i.level == IssueLevel.ERROR]

    @property
    def warnings(self) -> list[Issue]:
        return [i for i in self.issues if i.level == IssueLevel.WARNING]

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def __len__(self) -> int:
        with self._lock:
            return len(self._issues)
