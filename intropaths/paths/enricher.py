"""Attach display metadata to ranked paths."""

import logging
import re

from ..graph.schema import Node, NodeKind
from ..graph.store import GraphStore
from .types import EnrichedPath, NodeSummary, ScoredPath

log = logging.getLogger(__name__)

PLACEHOLDER_NAME = "Unknown"

_WS_RE = re.compile(r"\s+")


def normalize_whitespace(text: str | None) -> str:
    """Collapse whitespace to single spaces."""
    if text is None:
        return ""
    return _WS_RE.sub(" ", text).strip()


def describe_hops(hops: int) -> str:
    if hops == 1:
        return "Direct connection"
    if hops == 2:
        return "One degree of separation"
    return f"{hops - 1} degrees of separation"


def summarize_node(node_id: str, node: Node | None) -> NodeSummary:
    """Summary for one node; placeholder when metadata is missing."""
    if node is None:
        return NodeSummary(
            id=node_id,
            display_name=PLACEHOLDER_NAME,
            kind=NodeKind.UNKNOWN.value,
            is_internal=False,
            is_portfolio=False,
        )
    return NodeSummary(
        id=node_id,
        display_name=normalize_whitespace(node.display_name) or PLACEHOLDER_NAME,
        kind=node.kind.value,
        is_internal=node.is_internal,
        is_portfolio=node.is_portfolio,
    )


def bare_summary(node_id: str) -> NodeSummary:
    """Summary used when enrichment is switched off."""
    return NodeSummary(
        id=node_id,
        display_name=node_id,
        kind=NodeKind.UNKNOWN.value,
        is_internal=False,
        is_portfolio=False,
    )


def _build_path(path: ScoredPath, summaries: list[NodeSummary]) -> EnrichedPath:
    return EnrichedPath(
        path=path,
        nodes=tuple(summaries),
        description=describe_hops(path.hops),
        connection_kinds=tuple(edge.kind for edge in path.edges),
        internal_connections=sum(1 for s in summaries if s.is_internal),
    )


def enrich_paths(
    paths: list[ScoredPath],
    *,
    target: str,
    store: GraphStore | None,
) -> tuple[NodeSummary, list[EnrichedPath]]:
    """Fetch metadata for every node on every path in a single batch.

    With no store, paths are returned with id-only summaries.

    Returns:
        (target summary, enriched paths in input order)
    """
    if store is None:
        return bare_summary(target), [
            _build_path(path, [bare_summary(n) for n in path.nodes]) for path in paths
        ]

    node_ids = {target}
    for path in paths:
        node_ids.update(path.nodes)

    nodes = store.load_nodes(node_ids)
    missing = node_ids - nodes.keys()
    if missing:
        log.warning(f"No metadata for {len(missing)} nodes, using placeholders")

    summaries = {node_id: summarize_node(node_id, nodes.get(node_id)) for node_id in node_ids}
    enriched = [_build_path(path, [summaries[n] for n in path.nodes]) for path in paths]
    return summaries[target], enriched
