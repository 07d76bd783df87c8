"""Path cache keyed by (sources, target, depth, min strength).

Entries are derived data: concurrent writers may race and the last one
wins. Entries expire after a TTL, on explicit invalidation, or when the
recorded graph version changes.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import hashlib
import json
import logging
from pathlib import Path
import sqlite3
import threading
from typing import Any, Iterable, Protocol

from ..graph.schema import Edge, as_utc, parse_timestamp
from .types import CachedPaths, ScoredPath

log = logging.getLogger(__name__)


def _canonical_dumps(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def cache_key(
    sources: Iterable[str],
    target: str,
    max_depth: int,
    min_edge_strength: float,
) -> str:
    """Stable SHA-256 key; source order does not matter."""
    payload = {
        "sources": sorted(set(sources)),
        "target": target,
        "max_depth": int(max_depth),
        "min_edge_strength": round(float(min_edge_strength), 6),
    }
    return hashlib.sha256(_canonical_dumps(payload).encode("utf-8")).hexdigest()


def _edge_to_dict(edge: Edge) -> dict:
    return {
        "source": edge.source,
        "target": edge.target,
        "kind": edge.kind,
        "strength": edge.strength,
        "last_interaction_at": (
            edge.last_interaction_at.isoformat() if edge.last_interaction_at else None
        ),
    }


def path_to_dict(path: ScoredPath) -> dict:
    return {
        "nodes": list(path.nodes),
        "edges": [_edge_to_dict(edge) for edge in path.edges],
        "raw_strength": path.raw_strength,
        "freshness": path.freshness,
        "quality_score": path.quality_score,
        "hops": path.hops,
    }


def path_from_dict(data: dict) -> ScoredPath:
    return ScoredPath(
        nodes=tuple(data["nodes"]),
        edges=tuple(
            Edge(
                source=e["source"],
                target=e["target"],
                kind=e["kind"],
                strength=float(e["strength"]),
                last_interaction_at=parse_timestamp(e.get("last_interaction_at")),
            )
            for e in data["edges"]
        ),
        raw_strength=float(data["raw_strength"]),
        freshness=float(data["freshness"]),
        quality_score=float(data["quality_score"]),
        hops=int(data["hops"]),
    )


def entry_to_json(entry: CachedPaths) -> str:
    return _canonical_dumps(
        {
            "paths": [path_to_dict(p) for p in entry.paths],
            "calculated_at": as_utc(entry.calculated_at).isoformat(),
            "truncated": entry.truncated,
            "candidates_considered": entry.candidates_considered,
        }
    )


def entry_from_json(raw: str) -> CachedPaths:
    data = json.loads(raw)
    calculated_at = parse_timestamp(data["calculated_at"])
    if calculated_at is None:
        raise ValueError("cache entry has no calculated_at")
    return CachedPaths(
        paths=tuple(path_from_dict(p) for p in data["paths"]),
        calculated_at=calculated_at,
        truncated=bool(data.get("truncated", False)),
        candidates_considered=int(data.get("candidates_considered", 0)),
    )


class PathCache(Protocol):
    def get(self, key: str, *, now: datetime) -> CachedPaths | None: ...

    def put(self, key: str, entry: CachedPaths, *, target: str) -> None: ...

    def invalidate(self, target: str | None = None) -> int: ...

    def sync_graph_version(self, version: str) -> bool: ...


def _is_fresh(entry: CachedPaths, now: datetime, ttl_seconds: float) -> bool:
    return as_utc(now) - as_utc(entry.calculated_at) <= timedelta(seconds=ttl_seconds)


class InMemoryPathCache:
    """Process-local cache guarded by a lock."""

    def __init__(self, ttl_seconds: float = 6 * 3600.0):
        self.ttl_seconds = ttl_seconds
        self._entries: dict[str, tuple[str, CachedPaths]] = {}
        self._graph_version: str | None = None
        self._lock = threading.Lock()

    def get(self, key: str, *, now: datetime) -> CachedPaths | None:
        with self._lock:
            item = self._entries.get(key)
            if item is None:
                return None
            _, entry = item
            if not _is_fresh(entry, now, self.ttl_seconds):
                del self._entries[key]
                return None
            return entry

    def put(self, key: str, entry: CachedPaths, *, target: str) -> None:
        with self._lock:
            self._entries[key] = (target, entry)

    def invalidate(self, target: str | None = None) -> int:
        """Drop all entries, or only those for one target. Returns count."""
        with self._lock:
            if target is None:
                count = len(self._entries)
                self._entries.clear()
                return count
            doomed = [k for k, (t, _) in self._entries.items() if t == target]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

    def sync_graph_version(self, version: str) -> bool:
        """Record the graph version; clear everything if it changed."""
        with self._lock:
            changed = self._graph_version is not None and self._graph_version != version
            if changed:
                self._entries.clear()
            self._graph_version = version
            return changed

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class SqlitePathCache:
    """File-backed cache shared between processes.

    ``INSERT OR REPLACE`` makes concurrent writes last-writer-wins.
    ``calculated_at`` is stored as UTC ISO-8601 text, so rows compare in
    time order.
    """

    def __init__(self, db_path: Path | str, ttl_seconds: float = 6 * 3600.0):
        self.db_path = Path(db_path)
        self.ttl_seconds = ttl_seconds
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path, timeout=5.0)

    def _init_db(self):
        conn = self._get_conn()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS path_cache (
                    key TEXT PRIMARY KEY,
                    target TEXT NOT NULL,
                    calculated_at TEXT NOT NULL,
                    payload TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_path_cache_target ON path_cache(target)
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS cache_meta (
                    name TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)
            conn.commit()
        finally:
            conn.close()

    def get(self, key: str, *, now: datetime) -> CachedPaths | None:
        """Return a fresh entry, or None on miss, expiry or unreadable row."""
        try:
            conn = self._get_conn()
            try:
                row = conn.execute(
                    "SELECT payload FROM path_cache WHERE key = ?", (key,)
                ).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as e:
            log.warning(f"Path cache read failed, recomputing: {e}")
            return None

        if row is None:
            return None
        try:
            entry = entry_from_json(row[0])
        except (ValueError, KeyError, TypeError) as e:
            log.warning(f"Discarding corrupt path cache entry {key[:12]}: {e}")
            return None
        if not _is_fresh(entry, now, self.ttl_seconds):
            return None
        return entry

    def put(self, key: str, entry: CachedPaths, *, target: str) -> None:
        calculated_at = as_utc(entry.calculated_at).isoformat()
        try:
            conn = self._get_conn()
            try:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO path_cache (key, target, calculated_at, payload)
                    VALUES (?, ?, ?, ?)
                    """,
                    (key, target, calculated_at, entry_to_json(entry)),
                )
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            log.warning(f"Path cache write failed: {e}")

    def invalidate(self, target: str | None = None) -> int:
        conn = self._get_conn()
        try:
            if target is None:
                cursor = conn.execute("DELETE FROM path_cache")
            else:
                cursor = conn.execute("DELETE FROM path_cache WHERE target = ?", (target,))
            conn.commit()
            return cursor.rowcount
        finally:
            conn.close()

    def sync_graph_version(self, version: str) -> bool:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT value FROM cache_meta WHERE name = 'graph_version'"
            ).fetchone()
            changed = row is not None and row[0] != version
            if changed:
                conn.execute("DELETE FROM path_cache")
            conn.execute(
                "INSERT OR REPLACE INTO cache_meta (name, value) VALUES ('graph_version', ?)",
                (version,),
            )
            conn.commit()
            return changed
        finally:
            conn.close()

    def purge_expired(self, *, now: datetime | None = None) -> int:
        """Delete rows older than the TTL. Returns count."""
        now = now or datetime.now(timezone.utc)
        cutoff = as_utc(now) - timedelta(seconds=self.ttl_seconds)
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                "DELETE FROM path_cache WHERE calculated_at < ?", (cutoff.isoformat(),)
            )
            conn.commit()
            return cursor.rowcount
        finally:
            conn.close()
