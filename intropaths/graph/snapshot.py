"""JSON graph snapshots and their content hash.

Two layouts are accepted:

- flat: ``{"nodes": [{"id", "kind", "name", ...}],
  "edges": [{"source", "target", "kind", "strength", ...}]}``
- export: ``{"nodes": [{"id", "labels", "properties"}],
  "edges": [{"from_id", "to_id", "relation", "properties"}]}``

The hash of the normalized snapshot is used as a graph version, so a cache
can tell when the underlying edges changed.
"""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import Any

from .schema import Edge, Node
from .store import InMemoryGraphStore

log = logging.getLogger(__name__)


def _canonical_dumps(obj: Any) -> str:
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str
    )


def _flatten_node(raw: dict) -> dict:
    props = dict(raw.get("properties") or {})
    flat = {k: v for k, v in raw.items() if k not in {"properties", "labels"}}
    merged = {**props, **flat}
    if raw.get("labels"):
        merged["_labels"] = list(raw["labels"])
    return merged


def _flatten_edge(raw: dict) -> dict:
    props = dict(raw.get("properties") or {})
    flat = {k: v for k, v in raw.items() if k != "properties"}
    return {**props, **flat}


def normalize_snapshot(snapshot: dict[str, Any]) -> dict[str, Any]:
    """Flatten and sort snapshot entries into a canonical form."""
    nodes = [_flatten_node(n) for n in snapshot.get("nodes", []) if n.get("id")]
    edges = [
        _flatten_edge(e)
        for e in snapshot.get("edges", [])
        if (e.get("source") or e.get("from_id")) and (e.get("target") or e.get("to_id"))
    ]

    nodes.sort(key=lambda n: str(n["id"]))
    edges.sort(
        key=lambda e: (
            str(e.get("source") or e.get("from_id")),
            str(e.get("kind") or e.get("relation") or ""),
            str(e.get("target") or e.get("to_id")),
        )
    )
    return {"nodes": nodes, "edges": edges}


def graph_hash(snapshot: dict[str, Any]) -> str:
    normalized = normalize_snapshot(snapshot)
    payload = _canonical_dumps(normalized).encode("utf-8")
    return hashlib.sha256(payload).hexdigest()


def load_snapshot(path: Path | str) -> dict[str, Any]:
    """Read a snapshot file.

    Raises:
        ValueError: If the file is not a JSON object with nodes/edges lists.
    """
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Snapshot must be a JSON object: {path}")
    for key in ("nodes", "edges"):
        if not isinstance(data.get(key, []), list):
            raise ValueError(f"Snapshot '{key}' must be a list: {path}")
    return data


def store_from_snapshot(snapshot: dict[str, Any]) -> InMemoryGraphStore:
    """Build an in-memory store from a snapshot, skipping malformed entries.

    Edge order is preserved from the file, not the normalized order.
    """
    nodes: list[Node] = []
    for raw in snapshot.get("nodes", []):
        try:
            nodes.append(Node.from_record(_flatten_node(raw)))
        except ValueError as e:
            log.warning(f"Skipping snapshot node: {e}")

    edges: list[Edge] = []
    for raw in snapshot.get("edges", []):
        try:
            edges.append(Edge.from_record(_flatten_edge(raw)))
        except ValueError as e:
            log.warning(f"Skipping snapshot edge: {e}")

    store = InMemoryGraphStore(nodes, edges)
    log.info(f"Loaded snapshot: {store.node_count} nodes, {store.edge_count} edges")
    return store
