"""Tests for pack_sync.core.planner module."""

import pytest

from pack_sync.core.issues import IssueReporter
from pack_sync.core.planner import ModPlan, SyncPlanner, sort_mods
from pack_sync.core.repository import ContentRepository
from pack_sync.core.types import FileInfo, LocalState, SyncManifest


@pytest.fixture
def repository(temp_dir):
    repo = ContentRepository(temp_dir / "primary", temp_dir / "secondary", IssueReporter())
    repo.open()
    return repo


@pytest.fixture
def planner(repository):
    return SyncPlanner(repository)


class TestSortMods:
    """Test sort_mods function."""

    def test_case_insensitive(self):
        """Test ordering ignores case."""
        infos = [FileInfo(filename=name) for name in ["zeta.jar", "Alpha.jar", "beta.jar"]]
        assert [i.filename for i in sort_mods(infos)] == ["Alpha.jar", "beta.jar", "zeta.jar"]


class TestValidateCache:
    """Test SyncPlanner.validate_cache."""

    def test_all_present(self, planner, repository, descriptor_factory):
        """Test a complete cache."""
        desc = descriptor_factory("A.jar", b"a", artifact="a")
        repository.store(desc, b"a")
        assert planner.validate_cache(LocalState(version="1", mods=[desc.file_info]), {})

    def test_missing_entry(self, planner, descriptor_factory):
        """Test a mod that was never stored."""
        desc = descriptor_factory("A.jar", b"a", artifact="a")
        assert not planner.validate_cache(LocalState(version="1", mods=[desc.file_info]), {})

    def test_damaged_entry(self, planner, repository, descriptor_factory):
        """Test a blob damaged after discovery."""
        desc = descriptor_factory("A.jar", b"abc", artifact="a")
        entry = repository.store(desc, b"abc")
        entry.path.write_bytes(b"xyz")
        assert not planner.validate_cache(LocalState(version="1", mods=[desc.file_info]), {})

    def test_disabled_artifacts_skipped(self, planner, descriptor_factory):
        """Test disabled groups are not required."""
        desc = descriptor_factory("A.jar", b"a", artifact="a")
        state = LocalState(version="1", mods=[desc.file_info])
        assert planner.validate_cache(state, {"a": True})
        assert not planner.validate_cache(state, {"a": False})

    def test_empty_state(self, planner):
        """Test an empty state is trivially valid."""
        assert planner.validate_cache(LocalState(), {})


class TestIsCurrent:
    """Test SyncPlanner.is_current."""

    def test_same_version(self):
        """Test equal versions."""
        assert SyncPlanner.is_current(LocalState(version="3"), "3")

    def test_different_version(self):
        """Test a newer remote version."""
        assert not SyncPlanner.is_current(LocalState(version="3"), "4")

    def test_empty_local_version(self):
        """Test an empty local version is never current."""
        assert not SyncPlanner.is_current(LocalState(), "")
        assert not SyncPlanner.is_current(LocalState(), "1")


class TestPlanMods:
    """Test SyncPlanner.plan_mods."""

    def test_missing_downloaded(self, planner, descriptor_factory):
        """Test uncached mods are scheduled for download."""
        a = descriptor_factory("A.jar", b"a")
        b = descriptor_factory("b.jar", b"b")

        plan = planner.plan_mods(SyncManifest(mods=[b, a]))

        assert plan.downloads == [b, a]
        assert plan.relabels == []
        assert [m.filename for m in plan.mods] == ["A.jar", "b.jar"]
        assert not plan.is_empty

    def test_cached_skipped(self, planner, repository, descriptor_factory):
        """Test cached mods with identical metadata need nothing."""
        desc = descriptor_factory("A.jar", b"a", artifact="a", version="1")
        repository.store(desc, b"a")

        plan = planner.plan_mods(SyncManifest(mods=[desc]))

        assert plan.is_empty
        assert plan.mods == [desc.file_info]

    def test_relabel(self, planner, repository, descriptor_factory):
        """Test same bytes with new metadata are relabeled."""
        old = descriptor_factory("A-1.jar", b"a", artifact="a", version="1")
        entry = repository.store(old, b"a")
        new = descriptor_factory("A-2.jar", b"a", artifact="a", version="2")

        plan = planner.plan_mods(SyncManifest(mods=[new]))

        assert plan.downloads == []
        assert plan.relabels == [(entry, new.file_info)]

    def test_damaged_redownloaded(self, planner, repository, descriptor_factory):
        """Test damaged blobs are downloaded again."""
        desc = descriptor_factory("A.jar", b"abc")
        entry = repository.store(desc, b"abc")
        entry.path.write_bytes(b"ab")

        plan = planner.plan_mods(SyncManifest(mods=[desc]))

        assert plan.downloads == [desc]

    def test_duplicate_checksums(self, planner, descriptor_factory):
        """Test one download per checksum."""
        a = descriptor_factory("A.jar", b"same")
        b = descriptor_factory("B.jar", b"same")

        plan = planner.plan_mods(SyncManifest(mods=[a, b]))

        assert plan.downloads == [a]
        assert len(plan.mods) == 2

    def test_empty_manifest(self, planner):
        """Test a manifest without mods."""
        plan = planner.plan_mods(SyncManifest())
        assert plan.mods == []
        assert plan.is_empty


class TestModPlan:
    """Test ModPlan dataclass."""

    def test_defaults(self):
        """Test an empty plan."""
        plan = ModPlan()
        assert plan.is_empty
        assert plan.mods == []
