"""Path scoring: weakest-link strength, freshness decay and length penalty.

All functions are pure; the reference time is always passed in.

    raw_strength  = product of hop strengths
    freshness     = min over hops of exp(-days_since_interaction / half_life_days)
                    (unknown_freshness when a hop has no interaction date)
    penalty       = max(0, (hops - penalty_free_hops) * length_penalty_per_extra_hop)
    quality_score = max(0, raw_strength * freshness - penalty)
"""

from datetime import datetime
import math
from typing import Iterable

from ..graph.schema import Edge, as_utc
from .config import DEFAULT_PATH_CONFIG, PathConfig
from .types import RawPath, ScoredPath

_SECONDS_PER_DAY = 86400.0


def edge_freshness(
    edge: Edge,
    *,
    now: datetime,
    config: PathConfig = DEFAULT_PATH_CONFIG,
) -> float:
    """Decay factor in (0, 1] for one hop. Future timestamps count as today."""
    if edge.last_interaction_at is None:
        return config.unknown_freshness

    elapsed = as_utc(now) - as_utc(edge.last_interaction_at)
    days = max(0.0, elapsed.total_seconds() / _SECONDS_PER_DAY)
    return math.exp(-days / config.half_life_days)


def path_freshness(
    edges: Iterable[Edge],
    *,
    now: datetime,
    config: PathConfig = DEFAULT_PATH_CONFIG,
) -> float:
    """Freshness of the stalest hop."""
    values = [edge_freshness(edge, now=now, config=config) for edge in edges]
    if not values:
        return config.unknown_freshness
    return min(values)


def raw_strength(edges: Iterable[Edge]) -> float:
    """Product of hop strengths."""
    product = 1.0
    for edge in edges:
        product *= edge.strength
    return product


def length_penalty(hops: int, config: PathConfig = DEFAULT_PATH_CONFIG) -> float:
    extra_hops = hops - config.penalty_free_hops
    return max(0.0, extra_hops * config.length_penalty_per_extra_hop)


def score_path(
    path: RawPath,
    *,
    now: datetime,
    config: PathConfig = DEFAULT_PATH_CONFIG,
) -> ScoredPath:
    strength = raw_strength(path.edges)
    freshness = path_freshness(path.edges, now=now, config=config)
    quality = max(0.0, strength * freshness - length_penalty(path.hops, config))

    return ScoredPath(
        nodes=path.nodes,
        edges=path.edges,
        raw_strength=strength,
        freshness=freshness,
        quality_score=quality,
        hops=path.hops,
    )


def score_paths(
    paths: Iterable[RawPath],
    *,
    now: datetime,
    config: PathConfig = DEFAULT_PATH_CONFIG,
) -> list[ScoredPath]:
    return [score_path(path, now=now, config=config) for path in paths]
