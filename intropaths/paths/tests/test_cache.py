"""Tests for the path caches."""

from datetime import datetime, timedelta, timezone
import sqlite3
import threading

import pytest

from intropaths.graph.schema import Edge
from intropaths.paths.cache import (
    InMemoryPathCache,
    SqlitePathCache,
    cache_key,
    entry_from_json,
    entry_to_json,
)
from intropaths.paths.types import CachedPaths, ScoredPath

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def _entry(calculated_at=NOW, quality=0.6) -> CachedPaths:
    path = ScoredPath(
        nodes=("alice", "bob", "tara"),
        edges=(
            Edge("alice", "bob", "colleague", 0.9, NOW - timedelta(days=3)),
            Edge("bob", "tara", "linkedin", 0.7),
        ),
        raw_strength=0.63,
        freshness=0.7,
        quality_score=quality,
        hops=2,
    )
    return CachedPaths(
        paths=(path,), calculated_at=calculated_at, truncated=False, candidates_considered=1
    )


class TestCacheKey:
    def test_source_order_and_duplicates_ignored(self):
        assert cache_key(["b", "a", "a"], "t", 3, 0.0) == cache_key(["a", "b"], "t", 3, 0.0)

    def test_parameters_change_key(self):
        base = cache_key(["a"], "t", 3, 0.0)
        assert cache_key(["a"], "t", 2, 0.0) != base
        assert cache_key(["a"], "t", 3, 0.5) != base
        assert cache_key(["a"], "u", 3, 0.0) != base
        assert cache_key(["a", "b"], "t", 3, 0.0) != base


def test_entry_json_preserves_edges():
    restored = entry_from_json(entry_to_json(_entry()))
    assert restored == _entry()


@pytest.fixture(params=["memory", "sqlite"])
def cache(request, tmp_path):
    if request.param == "memory":
        return InMemoryPathCache(ttl_seconds=3600)
    return SqlitePathCache(tmp_path / "cache.db", ttl_seconds=3600)


class TestPathCache:
    def test_hit_within_ttl(self, cache):
        cache.put("k", _entry(), target="tara")
        assert cache.get("k", now=NOW + timedelta(minutes=30)) == _entry()

    def test_expired_entry_is_miss(self, cache):
        cache.put("k", _entry(), target="tara")
        assert cache.get("k", now=NOW + timedelta(hours=2)) is None

    def test_last_writer_wins(self, cache):
        cache.put("k", _entry(quality=0.1), target="tara")
        cache.put("k", _entry(quality=0.9), target="tara")
        assert cache.get("k", now=NOW).paths[0].quality_score == 0.9

    def test_invalidate_by_target(self, cache):
        cache.put("k1", _entry(), target="tara")
        cache.put("k2", _entry(), target="other")

        assert cache.invalidate("tara") == 1
        assert cache.get("k1", now=NOW) is None
        assert cache.get("k2", now=NOW) is not None

    def test_invalidate_all(self, cache):
        cache.put("k1", _entry(), target="tara")
        cache.put("k2", _entry(), target="other")
        assert cache.invalidate() == 2
        assert cache.get("k2", now=NOW) is None

    def test_graph_version_change_clears(self, cache):
        assert cache.sync_graph_version("v1") is False
        cache.put("k", _entry(), target="tara")

        assert cache.sync_graph_version("v1") is False
        assert cache.get("k", now=NOW) is not None

        assert cache.sync_graph_version("v2") is True
        assert cache.get("k", now=NOW) is None

    def test_naive_now_is_utc(self, cache):
        cache.put("k", _entry(), target="tara")
        naive = NOW.replace(tzinfo=None)

        assert cache.get("k", now=naive + timedelta(minutes=30)) == _entry()
        assert cache.get("k", now=naive + timedelta(hours=2)) is None

    def test_concurrent_writers(self, cache):
        def write(i):
            cache.put("k", _entry(quality=i / 10), target="tara")

        threads = [threading.Thread(target=write, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        entry = cache.get("k", now=NOW)
        assert entry is not None
        assert entry.paths[0].quality_score in {i / 10 for i in range(8)}


class TestSqlitePathCache:
    def test_shared_between_instances(self, tmp_path):
        SqlitePathCache(tmp_path / "c.db").put("k", _entry(), target="tara")
        assert SqlitePathCache(tmp_path / "c.db").get("k", now=NOW) == _entry()

    def test_corrupt_row_is_miss(self, tmp_path):
        db = tmp_path / "c.db"
        cache = SqlitePathCache(db)
        conn = sqlite3.connect(db)
        conn.execute(
            "INSERT INTO path_cache (key, target, calculated_at, payload) VALUES (?, ?, ?, ?)",
            ("k", "tara", NOW.isoformat(), "{not json"),
        )
        conn.commit()
        conn.close()

        assert cache.get("k", now=NOW) is None

    def test_purge_expired(self, tmp_path):
        cache = SqlitePathCache(tmp_path / "c.db", ttl_seconds=3600)
        cache.put("old", _entry(calculated_at=NOW - timedelta(hours=3)), target="tara")
        cache.put("new", _entry(), target="tara")

        assert cache.purge_expired(now=NOW) == 1
        assert cache.get("new", now=NOW) is not None

    def test_purge_compares_instants_across_offsets(self, tmp_path):
        cache = SqlitePathCache(tmp_path / "c.db", ttl_seconds=3600)
        eastern = timezone(timedelta(hours=-5))
        cache.put("fresh", _entry(calculated_at=NOW.astimezone(eastern)), target="tara")
        cache.put(
            "stale",
            _entry(calculated_at=(NOW - timedelta(hours=3)).astimezone(eastern)),
            target="tara",
        )

        assert cache.purge_expired(now=NOW.replace(tzinfo=None)) == 1
        assert cache.get("fresh", now=NOW) is not None


def test_in_memory_drops_expired_on_read():
    cache = InMemoryPathCache(ttl_seconds=60)
    cache.put("k", _entry(), target="tara")
    assert len(cache) == 1
    cache.get("k", now=NOW + timedelta(minutes=5))
    assert len(cache) == 0
