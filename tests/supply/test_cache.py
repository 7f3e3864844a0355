"""
Unit tests for the dependency cache.

Tests cover:
- Format-version migration and no-cache mode
- Loading entries from earlier runs
- Marking, version eviction and the end-of-run sweep
- Lock contention between runs
"""

import pytest

from stackkit.core.exceptions import CacheLockTimeout, CacheRootUnavailable
from stackkit.supply.cache import (
    CacheStore,
    EntryState,
    entry_belongs_to,
    split_entry_name,
)


def make_entry(format_dir, full_name):
    entry = format_dir / full_name
    entry.mkdir(parents=True)
    (entry / "marker").write_text(full_name)
    return entry


class TestEntryNames:
    """Test entry name parsing."""

    def test_belongs_to_own_dependency(self):
        """Test a versioned entry belongs to its dependency."""
        assert entry_belongs_to("logstash-6.4.0", "logstash")

    def test_longer_name_does_not_belong(self):
        """Test logstash-plugins entries are not logstash versions."""
        assert not entry_belongs_to("logstash-plugins-6.4.0", "logstash")

    def test_bare_name_does_not_belong(self):
        """Test a name without a version does not belong."""
        assert not entry_belongs_to("logstash-", "logstash")

    def test_split_entry_name(self):
        """Test the dependency name is parsed from the first digit segment."""
        assert split_entry_name("logstash-plugins-6.4.0") == "logstash-plugins"
        assert split_entry_name("x-pack-6.4.0") == "x-pack"
        assert split_entry_name("curator") is None


class TestCacheOpen:
    """Test CacheStore.open()."""

    def test_creates_format_dir(self, cache_store, cache_root):
        """Test opening a fresh cache creates <root>/<format>."""
        with cache_store.open() as session:
            assert session.format_dir == cache_root / "v1"
            assert session.format_dir.is_dir()
            assert session.entries() == {}

    def test_loads_existing_entries_unmarked(self, cache_store, cache_root):
        """Test entries from an earlier run load as UNMARKED."""
        make_entry(cache_root / "v1", "jq-1.6.0")
        make_entry(cache_root / "v1", "gte-1.0.0")

        with cache_store.open() as session:
            assert session.entries() == {
                "gte-1.0.0": EntryState.UNMARKED,
                "jq-1.6.0": EntryState.UNMARKED,
            }
            assert session.has("jq-1.6.0")

    def test_format_migration_wipes_root(self, cache_root):
        """Test a missing format directory clears everything in the root."""
        old = make_entry(cache_root / "v0", "jq-1.5.0")
        (cache_root / "stray.txt").write_text("")

        with CacheStore(cache_root, "v1", lock_timeout=5).open() as session:
            assert session.entries() == {}

        assert not old.exists()
        assert sorted(p.name for p in cache_root.iterdir()) == ["v1"]

    def test_no_cache_wipes_root(self, cache_store, cache_root):
        """Test no-cache mode starts from an empty cache."""
        entry = make_entry(cache_root / "v1", "jq-1.6.0")

        with cache_store.open(no_cache=True) as session:
            assert session.entries() == {}
            assert session.no_cache

        assert not entry.exists()

    def test_unfinished_publish_removed(self, cache_store, cache_root):
        """Test dot-prefixed publish directories are deleted, not loaded."""
        leftover = make_entry(cache_root / "v1", ".openjdk-1.8.0")
        make_entry(cache_root / "v1", "openjdk-1.8.0")

        with cache_store.open() as session:
            assert list(session.entries()) == ["openjdk-1.8.0"]

        assert not leftover.exists()

    def test_root_under_regular_file(self, tmp_path):
        """Test an unusable cache root raises CacheRootUnavailable."""
        blocker = tmp_path / "blocker"
        blocker.write_text("")

        with pytest.raises(CacheRootUnavailable):
            CacheStore(blocker / "dependencies", "v1", lock_timeout=1).open()

    def test_lock_contention(self, cache_store, cache_root):
        """Test a second run waiting on the cache times out."""
        with cache_store.open():
            contender = CacheStore(cache_root, "v1", lock_timeout=0.1)
            with pytest.raises(CacheLockTimeout):
                contender.open()

    def test_lock_released_on_close(self, cache_store, cache_root):
        """Test the lock is free once the session is closed."""
        session = cache_store.open()
        session.close()

        with CacheStore(cache_root, "v1", lock_timeout=0.1).open():
            pass


class TestCacheSession:
    """Test marking, eviction and sweep."""

    def test_mark_in_use(self, cache_store, cache_root):
        """Test marking sets IN_USE."""
        make_entry(cache_root / "v1", "jq-1.6.0")

        with cache_store.open() as session:
            session.mark_in_use("jq-1.6.0", "jq")
            assert session.state("jq-1.6.0") is EntryState.IN_USE

    def test_mark_evicts_other_versions(self, cache_store, cache_root):
        """Test marking a version deletes other versions of the dependency."""
        format_dir = cache_root / "v1"
        old = make_entry(format_dir, "logstash-6.3.2")
        plugins = make_entry(format_dir, "logstash-plugins-6.3.2")
        make_entry(format_dir, "logstash-6.4.0")

        with cache_store.open() as session:
            session.mark_in_use("logstash-6.4.0", "logstash")

            assert session.state("logstash-6.3.2") is EntryState.DELETED
            assert not session.has("logstash-6.3.2")
            assert session.state("logstash-plugins-6.3.2") is EntryState.UNMARKED

        assert not old.exists()
        assert plugins.exists()

    def test_mark_parses_name_when_omitted(self, cache_store, cache_root):
        """Test mark_in_use derives the dependency name from the entry."""
        format_dir = cache_root / "v1"
        make_entry(format_dir, "x-pack-6.3.2")
        make_entry(format_dir, "x-pack-6.4.0")

        with cache_store.open() as session:
            session.mark_in_use("x-pack-6.4.0")
            assert session.state("x-pack-6.3.2") is EntryState.DELETED

    def test_sweep_removes_unmarked(self, cache_store, cache_root):
        """Test sweep deletes only entries the run did not use."""
        format_dir = cache_root / "v1"
        used = make_entry(format_dir, "jq-1.6.0")
        stale = make_entry(format_dir, "ofelia-0.2.2")

        with cache_store.open() as session:
            session.mark_in_use("jq-1.6.0", "jq")
            removed = session.sweep()

            assert removed == ["ofelia-0.2.2"]
            assert session.state("ofelia-0.2.2") is EntryState.DELETED

        assert used.exists()
        assert not stale.exists()

    def test_add_new_entry(self, cache_store):
        """Test a published entry is tracked as UNMARKED until marked."""
        with cache_store.open() as session:
            session.add("gte-1.0.0")
            assert session.state("gte-1.0.0") is EntryState.UNMARKED

            session.forget("gte-1.0.0")
            assert not session.has("gte-1.0.0")

    def test_path(self, cache_store, cache_root):
        """Test entry paths live in the format directory."""
        with cache_store.open() as session:
            assert session.path("jq-1.6.0") == cache_root / "v1" / "jq-1.6.0"
