"""Typed contracts for intro path discovery."""

from dataclasses import dataclass
from datetime import datetime

from ..graph.schema import Edge


@dataclass(frozen=True)
class RawPath:
    """A simple path as found by enumeration, with the edge used per hop."""

    nodes: tuple[str, ...]
    edges: tuple[Edge, ...]

    @property
    def hops(self) -> int:
        return len(self.nodes) - 1


@dataclass(frozen=True)
class ScoredPath:
    nodes: tuple[str, ...]
    edges: tuple[Edge, ...]
    raw_strength: float
    freshness: float
    quality_score: float
    hops: int

    @property
    def identity(self) -> str:
        """Stable identifier used for deduplication and final tie-breaks."""
        return "|".join(self.nodes)


@dataclass(frozen=True)
class EnumerationResult:
    paths: tuple[RawPath, ...]
    truncated: bool
    timed_out: bool
    sources_searched: int


@dataclass(frozen=True)
class NodeSummary:
    id: str
    display_name: str
    kind: str
    is_internal: bool
    is_portfolio: bool


@dataclass(frozen=True)
class EnrichedPath:
    path: ScoredPath
    nodes: tuple[NodeSummary, ...]
    description: str
    connection_kinds: tuple[str, ...]
    internal_connections: int


@dataclass(frozen=True)
class CachedPaths:
    """Fully ranked (not yet top-K truncated) paths for one cache key."""

    paths: tuple[ScoredPath, ...]
    calculated_at: datetime
    truncated: bool
    candidates_considered: int
