"""Tests for pack_sync.core.issues module."""

import threading
from pathlib import Path

from pack_sync.core.issues import Issue, IssueLevel, IssueReporter


class TestIssue:
    """Test Issue display."""

    def test_display_message_only(self):
        """Test bare message."""
        assert Issue(IssueLevel.WARNING, "Something happened").display() == "Something happened"

    def test_display_with_path_and_cause(self):
        """Test path and cause are appended."""
        issue = Issue(IssueLevel.ERROR, "Failed", Path("mods/a.jar"), ValueError("bad"))
        assert issue.display() == f"Failed [{Path('mods/a.jar')}]: bad"

    def test_level_values(self):
        """Test levels are plain strings."""
        assert IssueLevel.WARNING == "warning"
        assert IssueLevel.ERROR == "error"


class TestIssueReporter:
    """Test IssueReporter class."""

    def test_collects_in_order(self):
        """Test issues keep report order."""
        reporter = IssueReporter()
        reporter.warning("first")
        reporter.error("second", path=Path("x"))

        assert [i.message for i in reporter.issues] == ["first", "second"]
        assert len(reporter) == 2

    def test_filters(self):
        """Test warnings and errors are separated."""
        reporter = IssueReporter()
        reporter.warning("w")
        assert not reporter.has_errors

        reporter.error("e")
        assert reporter.has_errors
        assert [i.message for i in reporter.errors] == ["e"]
        assert [i.message for i in reporter.warnings] == ["w"]

    def test_issues_is_a_copy(self):
        """Test the returned list does not alias internal state."""
        reporter = IssueReporter()
        reporter.warning("w")
        reporter.issues.clear()
        assert len(reporter) == 1

    def test_thread_safety(self):
        """Test concurrent reports are all kept."""
        reporter = IssueReporter()

        def report(n: int) -> None:
            for i in range(50):
                reporter.warning(f"{n}-{i}")

        threads = [threading.Thread(target=report, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(reporter) == 400
