"""Bounded-depth multi-source path enumeration.

Each source is searched independently with a level-by-level BFS that keeps a
visited set per partial path, so every emitted path is simple. Adjacency is
fetched lazily one BFS level at a time, in batches, and memoized for the
duration of a single request only.
"""

from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass
import logging
import threading
import time
from typing import Callable, Iterable

from ..errors import RequestCancelled
from ..graph.schema import Edge
from ..graph.store import GraphStore
from .config import DEFAULT_PATH_CONFIG, PathConfig
from .types import EnumerationResult, RawPath

log = logging.getLogger(__name__)


class _SearchAborted(Exception):
    """Raised inside sibling traversals after another one failed."""


class _BudgetExpired(Exception):
    """Raised when the wall-clock budget runs out mid-search."""


class SearchBudget:
    """Wall-clock deadline and cancellation signal for one request."""

    def __init__(
        self,
        time_budget_seconds: float | None = None,
        cancel_event: threading.Event | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._clock = clock
        self._deadline = (
            None
            if time_budget_seconds is None
            else clock() + max(0.0, time_budget_seconds)
        )
        self._cancel_event = cancel_event
        self._abort = threading.Event()

    def expired(self) -> bool:
        return self._deadline is not None and self._clock() >= self._deadline

    def abort(self) -> None:
        self._abort.set()

    def check_cancelled(self) -> None:
        """Raise if the caller cancelled or a sibling traversal failed."""
        if self._cancel_event is not None and self._cancel_event.is_set():
            raise RequestCancelled("Path discovery cancelled by caller")
        if self._abort.is_set():
            raise _SearchAborted()

    def check(self) -> None:
        """Like ``check_cancelled``, but also raise once the deadline passed."""
        self.check_cancelled()
        if self.expired():
            raise _BudgetExpired()


class AdjacencyLoader:
    """Request-scoped, thread-safe adjacency memo over a graph store.

    Missing nodes are fetched in batches of ``batch_size`` with an optional
    pause between batches. Each batch is one discrete store call, and no
    batch starts once the budget has expired.
    """

    def __init__(
        self,
        store: GraphStore,
        *,
        batch_size: int = 200,
        batch_delay_seconds: float = 0.0,
        budget: SearchBudget | None = None,
    ):
        self.store = store
        self.batch_size = max(1, batch_size)
        self.batch_delay_seconds = max(0.0, batch_delay_seconds)
        self.budget = budget
        self.fetches = 0
        self._memo: dict[str, list[Edge]] = {}
        self._lock = threading.Lock()

    def prefetch(self, node_ids: Iterable[str]) -> None:
        with self._lock:
            missing = sorted({n for n in node_ids if n not in self._memo})

        for start in range(0, len(missing), self.batch_size):
            if start and self.batch_delay_seconds:
                time.sleep(self.batch_delay_seconds)
            if self.budget is not None:
                self.budget.check()

            batch = set(missing[start : start + self.batch_size])
            loaded = self.store.load_adjacency(batch)
            with self._lock:
                self.fetches += 1
                for node_id in batch:
                    self._memo.setdefault(node_id, list(loaded.get(node_id, ())))

    def neighbors(self, node_id: str) -> list[Edge]:
        with self._lock:
            edges = self._memo.get(node_id)
        if edges is None:
            self.prefetch([node_id])
            with self._lock:
                edges = self._memo[node_id]
        return edges


def qualifying_neighbors(
    node_id: str,
    edges: list[Edge],
    min_edge_strength: float,
) -> list[tuple[str, Edge]]:
    """Neighbors reachable through edges at or above the strength floor.

    Parallel edges to the same neighbor collapse to the strongest one (first
    wins on ties). Neighbor order follows the store's edge order.
    """
    best: dict[str, Edge] = {}
    order: list[str] = []
    for edge in edges:
        if edge.strength < min_edge_strength or not edge.touches(node_id):
            continue
        other = edge.other(node_id)
        if other == node_id:
            continue
        current = best.get(other)
        if current is None:
            order.append(other)
            best[other] = edge
        elif edge.strength > current.strength:
            best[other] = edge
    return [(other, best[other]) for other in order]


@dataclass(frozen=True)
class _Partial:
    nodes: tuple[str, ...]
    edges: tuple[Edge, ...]
    visited: frozenset[str]
    strength: float


@dataclass(frozen=True)
class SourceEnumeration:
    paths: tuple[RawPath, ...]
    truncated: bool
    timed_out: bool


def enumerate_from_source(
    source: str,
    target: str,
    *,
    loader: AdjacencyLoader,
    max_depth: int,
    min_edge_strength: float,
    max_paths: int,
    frontier_cap: int,
    budget: SearchBudget,
) -> SourceEnumeration:
    """Find simple paths from one source to the target, shortest first.

    The direct source-target edge is checked on the source's own adjacency
    before any expansion. On the last level only the target's adjacency is
    consulted, so the final frontier is never fetched. When the budget
    expires, the paths found so far are returned as truncated.
    """
    if source == target:
        return SourceEnumeration(paths=(), truncated=False, timed_out=False)

    max_paths = max(1, max_paths)
    found: list[RawPath] = []
    truncated = False

    try:
        budget.check()
        start_neighbors = qualifying_neighbors(
            source, loader.neighbors(source), min_edge_strength
        )
        for other, edge in start_neighbors:
            if other == target:
                found.append(RawPath(nodes=(source, target), edges=(edge,)))
                break

        frontier = [_Partial((source,), (), frozenset((source,)), 1.0)]
        target_links: dict[str, Edge] | None = None

        for depth in range(2, max_depth + 1):
            budget.check()

            # Extend every partial by one hop (now depth - 1 hops long).
            extended: list[_Partial] = []
            if depth == 2:
                for other, edge in start_neighbors:
                    if other != target:
                        extended.append(
                            _Partial(
                                (source, other),
                                (edge,),
                                frozenset((source, other)),
                                edge.strength,
                            )
                        )
            else:
                loader.prefetch(p.nodes[-1] for p in frontier)
                for partial in frontier:
                    budget.check()
                    current = partial.nodes[-1]
                    neighbors = qualifying_neighbors(
                        current, loader.neighbors(current), min_edge_strength
                    )
                    for other, edge in neighbors:
                        if other in partial.visited or other == target:
                            continue
                        extended.append(
                            _Partial(
                                partial.nodes + (other,),
                                partial.edges + (edge,),
                                partial.visited | {other},
                                partial.strength * edge.strength,
                            )
                        )

            if not extended:
                break
            if len(extended) > frontier_cap:
                extended = sorted(extended, key=lambda p: -p.strength)[:frontier_cap]
                truncated = True

            # Close partials onto the target.
            if target_links is None:
                target_links = dict(
                    qualifying_neighbors(target, loader.neighbors(target), min_edge_strength)
                )
            for partial in extended:
                edge = target_links.get(partial.nodes[-1])
                if edge is None:
                    continue
                if len(found) >= max_paths:
                    return SourceEnumeration(
                        paths=tuple(found), truncated=True, timed_out=False
                    )
                found.append(
                    RawPath(nodes=partial.nodes + (target,), edges=partial.edges + (edge,))
                )

            frontier = extended
    except _BudgetExpired:
        log.warning(f"Time budget exhausted searching from {source} ({len(found)} paths kept)")
        return SourceEnumeration(paths=tuple(found), truncated=True, timed_out=True)

    return SourceEnumeration(paths=tuple(found), truncated=truncated, timed_out=False)


def _run_parallel(
    sources: list[str],
    run: Callable[[str], SourceEnumeration],
    *,
    budget: SearchBudget,
    max_workers: int,
) -> list[SourceEnumeration]:
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = [pool.submit(run, source) for source in sources]
        try:
            wait(futures, return_when=FIRST_EXCEPTION)
        except KeyboardInterrupt:
            # The pool joins its workers on exit; make them stop first.
            budget.abort()
            pool.shutdown(wait=False, cancel_futures=True)
            raise

        errors = [
            f.exception() for f in futures if f.done() and not f.cancelled() and f.exception()
        ]
        if errors:
            budget.abort()
            pool.shutdown(wait=True, cancel_futures=True)
            errors = [
                f.exception()
                for f in futures
                if f.done() and not f.cancelled() and f.exception()
            ]
            primary = next(
                (e for e in errors if not isinstance(e, _SearchAborted)), errors[0]
            )
            raise primary

        return [f.result() for f in futures]


def enumerate_paths(
    sources: Iterable[str],
    target: str,
    *,
    store: GraphStore,
    max_depth: int,
    min_edge_strength: float,
    config: PathConfig = DEFAULT_PATH_CONFIG,
    budget: SearchBudget | None = None,
) -> EnumerationResult:
    """Enumerate simple paths from every source to the target.

    Sources are searched in parallel (one task per source) and merged in
    sorted source order, so output does not depend on thread scheduling.
    Only per-source caps apply here; the global cap is applied after
    ranking, so it never drops a better path for a worse one.
    """
    ordered = sorted({s for s in sources if s})
    bounded_depth = config.clamp_depth(max_depth)
    budget = budget or SearchBudget(config.time_budget_seconds)
    loader = AdjacencyLoader(
        store,
        batch_size=config.batch_size,
        batch_delay_seconds=config.batch_delay_seconds,
        budget=budget,
    )

    def run(source: str) -> SourceEnumeration:
        return enumerate_from_source(
            source,
            target,
            loader=loader,
            max_depth=bounded_depth,
            min_edge_strength=min_edge_strength,
            max_paths=config.max_paths_per_source,
            frontier_cap=config.frontier_cap,
            budget=budget,
        )

    workers = min(config.max_workers, len(ordered))
    if workers <= 1:
        results = [run(source) for source in ordered]
    else:
        results = _run_parallel(ordered, run, budget=budget, max_workers=workers)

    merged: list[RawPath] = []
    for result in results:
        merged.extend(result.paths)

    truncated = any(r.truncated for r in results)
    log.debug(
        f"Enumerated {len(merged)} paths from {len(ordered)} sources to {target} "
        f"(depth={bounded_depth}, fetches={loader.fetches}, truncated={truncated})"
    )
    return EnumerationResult(
        paths=tuple(merged),
        truncated=truncated,
        timed_out=any(r.timed_out for r in results),
        sources_searched=len(ordered),
    )
