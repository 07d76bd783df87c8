"""Deterministic ranking and top-K selection of scored paths."""

from typing import Iterable

from .types import ScoredPath


def _path_sort_key(path: ScoredPath) -> tuple[float, int, float, str]:
    return (
        -path.quality_score,
        path.hops,
        -path.raw_strength,
        path.identity,
    )


def dedupe_paths(paths: Iterable[ScoredPath]) -> list[ScoredPath]:
    """Keep one copy per node sequence, the best-ranked one."""
    best: dict[tuple[str, ...], ScoredPath] = {}
    for path in paths:
        existing = best.get(path.nodes)
        if existing is None or _path_sort_key(path) < _path_sort_key(existing):
            best[path.nodes] = path
    return list(best.values())


def sort_scored_paths(paths: Iterable[ScoredPath]) -> list[ScoredPath]:
    """Sort by quality, then fewer hops, then raw strength, then node ids."""
    return sorted(paths, key=_path_sort_key)


def rank_paths(
    paths: Iterable[ScoredPath],
    *,
    top_k: int | None = None,
) -> list[ScoredPath]:
    """Dedupe, sort and truncate. Never pads when fewer than K exist."""
    ranked = sort_scored_paths(dedupe_paths(paths))
    if top_k is None:
        return ranked
    return ranked[: max(0, top_k)]
