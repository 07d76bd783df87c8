"""Intro path discovery pipeline orchestration.

    RECEIVED -> cache hit -> RETURN
    RECEIVED -> cache miss -> ENUMERATING -> SCORING -> RANKING
             -> ENRICHING -> CACHE_WRITE -> RETURN
"""

from dataclasses import asdict
from datetime import datetime, timezone
from enum import Enum
import logging
import os
import threading

from ..errors import InvalidRequest
from ..graph.neo4j_storage import Neo4jGraphStore
from ..graph.schema import as_utc
from ..graph.store import GraphStore, RetryingGraphStore
from .cache import PathCache, cache_key
from .config import DEFAULT_PATH_CONFIG, PathConfig
from .enricher import enrich_paths
from .enumerator import SearchBudget, enumerate_paths
from .ranker import rank_paths
from .scorer import score_paths
from .types import CachedPaths, EnrichedPath

log = logging.getLogger(__name__)

REASON_OK = "ok"
REASON_NO_PATH = "no_path_found"


class RequestState(Enum):
    RECEIVED = "received"
    ENUMERATING = "enumerating"
    SCORING = "scoring"
    RANKING = "ranking"
    ENRICHING = "enriching"
    CACHE_WRITE = "cache_write"
    RETURN = "return"


def _transition(request_id: str, state: RequestState) -> None:
    log.debug(f"[{request_id}] {state.value}")


def _default_store(config: PathConfig) -> Neo4jGraphStore:
    return Neo4jGraphStore(
        uri=os.environ.get("NEO4J_URI", "bolt://localhost:7687"),
        user=os.environ.get("NEO4J_USER", "neo4j"),
        password=os.environ.get("NEO4J_PASSWORD", "neo4j"),
        database=os.environ.get("NEO4J_DATABASE") or None,
        query_timeout_seconds=config.time_budget_seconds,
    )


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _normalize_sources(sources: list[str] | None) -> list[str]:
    if not sources:
        return []
    cleaned = {str(s).strip() for s in sources if s is not None}
    return sorted(s for s in cleaned if s)


def validate_request(
    target: str | None,
    *,
    max_depth: int,
    min_strength: float,
    top_k: int,
    config: PathConfig = DEFAULT_PATH_CONFIG,
) -> str:
    """Check request bounds and return the normalized target.

    Raises:
        InvalidRequest: With a hint on which parameter to adjust.
    """
    if not isinstance(target, str) or not target.strip():
        raise InvalidRequest("target is required")
    if not _is_int(max_depth) or not 1 <= max_depth <= config.max_depth_ceiling:
        raise InvalidRequest(
            f"max_depth must be an integer in [1, {config.max_depth_ceiling}], got {max_depth!r}"
        )
    if not _is_int(top_k) or top_k <= 0:
        raise InvalidRequest(f"top_k must be a positive integer, got {top_k!r}")
    if isinstance(min_strength, bool) or not isinstance(min_strength, (int, float)):
        raise InvalidRequest(f"min_strength must be a number, got {min_strength!r}")
    if not 0.0 <= float(min_strength) <= 1.0:
        raise InvalidRequest(f"min_strength must be in [0, 1], got {min_strength!r}")
    return target.strip()


def _path_payload(item: EnrichedPath) -> dict:
    path = item.path
    return {
        "hops": path.hops,
        "quality_score": path.quality_score,
        "raw_strength": path.raw_strength,
        "freshness": path.freshness,
        "description": item.description,
        "connection_kinds": list(item.connection_kinds),
        "internal_connections": item.internal_connections,
        "nodes": [asdict(node) for node in item.nodes],
    }


def find_intro_paths(
    target: str,
    *,
    sources: list[str] | None = None,
    max_depth: int | None = None,
    min_strength: float | None = None,
    top_k: int | None = None,
    include_enrichment: bool = True,
    use_cache: bool = True,
    store: GraphStore | None = None,
    cache: PathCache | None = None,
    config: PathConfig = DEFAULT_PATH_CONFIG,
    now: datetime | None = None,
    cancel_event: threading.Event | None = None,
) -> dict:
    """Find and rank warm introduction paths from sources to a target.

    When ``sources`` is omitted the store's internal people are used.
    An unreachable target is a normal result with ``meta.reason`` set to
    ``"no_path_found"``; a search stopped by a cap or the time budget sets
    ``meta.truncated``.

    Raises:
        InvalidRequest: Bad parameters, or no sources available.
        StoreUnavailable: The graph store failed after retries.
        RequestCancelled: ``cancel_event`` was set mid-search.
    """
    depth = config.default_max_depth if max_depth is None else max_depth
    strength_floor = config.default_min_strength if min_strength is None else min_strength
    k = config.default_top_k if top_k is None else top_k
    target = validate_request(
        target, max_depth=depth, min_strength=strength_floor, top_k=k, config=config
    )
    strength_floor = float(strength_floor)
    now = as_utc(now) if now is not None else datetime.now(timezone.utc)

    owned_store = store is None
    raw_store = store or _default_store(config)
    db = RetryingGraphStore(
        raw_store,
        retries=config.store_retry_attempts,
        backoff_seconds=config.store_retry_backoff_seconds,
    )

    try:
        source_ids = _normalize_sources(sources)
        if not source_ids:
            source_ids = _normalize_sources(db.list_internal_people())
        if not source_ids:
            raise InvalidRequest(
                "No sources given and the graph has no internal people to start from"
            )

        key = cache_key(source_ids, target, depth, strength_floor)
        request_id = key[:12]
        _transition(request_id, RequestState.RECEIVED)

        entry = cache.get(key, now=now) if (cache is not None and use_cache) else None
        from_cache = entry is not None
        timed_out = False

        if entry is None:
            _transition(request_id, RequestState.ENUMERATING)
            budget = SearchBudget(config.time_budget_seconds, cancel_event)
            enumeration = enumerate_paths(
                source_ids,
                target,
                store=db,
                max_depth=depth,
                min_edge_strength=strength_floor,
                config=config,
                budget=budget,
            )

            _transition(request_id, RequestState.SCORING)
            scored = score_paths(enumeration.paths, now=now, config=config)
            timed_out = enumeration.timed_out

            _transition(request_id, RequestState.RANKING)
            ranked = rank_paths(scored)
            truncated = enumeration.truncated
            if len(ranked) > config.global_path_cap:
                ranked = ranked[: config.global_path_cap]
                truncated = True
            entry = CachedPaths(
                paths=tuple(ranked),
                calculated_at=now,
                truncated=truncated,
                candidates_considered=len(scored),
            )
            if truncated:
                log.warning(
                    f"[{request_id}] results truncated, kept {len(ranked)} of {len(scored)} "
                    f"(timed_out={timed_out})"
                )
        else:
            log.info(f"[{request_id}] cache hit, calculated_at={entry.calculated_at.isoformat()}")

        selected = list(entry.paths[:k])

        _transition(request_id, RequestState.ENRICHING)
        target_node, enriched = enrich_paths(
            selected, target=target, store=db if include_enrichment else None
        )

        if not from_cache and cache is not None and use_cache and not timed_out:
            _transition(request_id, RequestState.CACHE_WRITE)
            cache.put(key, entry, target=target)

        _transition(request_id, RequestState.RETURN)
        log.info(
            f"[{request_id}] {len(enriched)} paths to {target} "
            f"from {len(source_ids)} sources (from_cache={from_cache})"
        )

        return {
            "success": True,
            "target": target,
            "target_node": asdict(target_node),
            "paths": [_path_payload(item) for item in enriched],
            "meta": {
                "total_candidates_considered": entry.candidates_considered,
                "from_cache": from_cache,
                "calculated_at": entry.calculated_at.isoformat(),
                "truncated": entry.truncated,
                "reason": REASON_OK if enriched else REASON_NO_PATH,
                "sources_searched": len(source_ids),
                "max_depth": depth,
                "min_strength": strength_floor,
                "top_k": k,
            },
        }
    finally:
        if owned_store:
            db.close()
