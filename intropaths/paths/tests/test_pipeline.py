"""End-to-end tests for intro path discovery over an in-memory graph."""

from datetime import datetime, timedelta, timezone
import math
import threading

import pytest

from intropaths.errors import InvalidRequest, RequestCancelled, StoreUnavailable
from intropaths.graph.schema import Edge, Node, NodeKind
from intropaths.graph.store import InMemoryGraphStore
from intropaths.paths import find_intro_paths_markdown
from intropaths.paths.cache import InMemoryPathCache
from intropaths.paths.config import PathConfig
from intropaths.paths.pipeline import REASON_NO_PATH, REASON_OK, find_intro_paths

NOW = datetime(2026, 10, 18, tzinfo=timezone.utc)
FAST = PathConfig(store_retry_backoff_seconds=0.0)


def _ago(days: int) -> datetime:
    return NOW - timedelta(days=days)


def _chain_store() -> InMemoryGraphStore:
    return InMemoryGraphStore(
        nodes=[
            Node("A", NodeKind.PERSON, "Alice", is_internal=True),
            Node("B", NodeKind.PERSON, "Bob"),
            Node("C", NodeKind.ORGANIZATION, "Cobalt Labs", is_portfolio=True),
        ],
        edges=[
            Edge("A", "B", "colleague", 0.9, _ago(10)),
            Edge("B", "C", "founder", 0.8, _ago(10)),
        ],
    )


def _two_source_store() -> InMemoryGraphStore:
    return InMemoryGraphStore(
        nodes=[
            Node("S1", NodeKind.PERSON, "Sam", is_internal=True),
            Node("S2", NodeKind.PERSON, "Sue", is_internal=True),
            Node("T", NodeKind.PERSON, "Tara"),
        ],
        edges=[
            Edge("S1", "X", "linkedin", 0.9),
            Edge("X", "T", "linkedin", 0.9),
            Edge("S2", "Y", "colleague", 0.9),
            Edge("Y", "Z", "colleague", 0.9),
            Edge("Z", "T", "colleague", 0.9),
        ],
    )


class _CountingStore(InMemoryGraphStore):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.adjacency_calls = 0
        self.closed = False

    def load_adjacency(self, node_ids):
        self.adjacency_calls += 1
        return super().load_adjacency(node_ids)

    def close(self):
        self.closed = True


class _DownStore(InMemoryGraphStore):
    def __init__(self):
        super().__init__()
        self.calls = 0

    def load_adjacency(self, node_ids):
        self.calls += 1
        raise StoreUnavailable("connection refused")


def _find(store, target, **kwargs):
    kwargs.setdefault("config", FAST)
    kwargs.setdefault("now", NOW)
    return find_intro_paths(target, store=store, **kwargs)


class TestScenarios:
    def test_two_hop_path_scored(self):
        result = _find(_chain_store(), "C", sources=["A"], max_depth=3)

        assert result["success"] is True
        assert result["meta"]["reason"] == REASON_OK
        (path,) = result["paths"]
        assert [n["id"] for n in path["nodes"]] == ["A", "B", "C"]
        assert path["raw_strength"] == pytest.approx(0.72)
        assert path["quality_score"] == pytest.approx(0.72 * math.exp(-10 / 90))
        assert path["connection_kinds"] == ["colleague", "founder"]
        assert path["description"] == "One degree of separation"
        assert path["internal_connections"] == 1
        assert result["target_node"]["display_name"] == "Cobalt Labs"

    def test_strength_floor_leaves_no_path(self):
        result = _find(_chain_store(), "C", sources=["A"], min_strength=0.85)

        assert result["success"] is True
        assert result["paths"] == []
        assert result["meta"]["reason"] == REASON_NO_PATH
        assert result["meta"]["truncated"] is False

    def test_depth_one_vs_three(self):
        shallow = _find(_chain_store(), "C", sources=["A"], max_depth=1)
        deep = _find(_chain_store(), "C", sources=["A"], max_depth=3)

        assert shallow["paths"] == []
        assert shallow["meta"]["reason"] == REASON_NO_PATH
        assert len(deep["paths"]) == 1

    def test_shorter_path_ranks_first(self):
        result = _find(_two_source_store(), "T", sources=["S1", "S2"])

        assert [p["hops"] for p in result["paths"]] == [2, 3]
        assert result["paths"][0]["nodes"][0]["id"] == "S1"
        assert result["paths"][0]["quality_score"] > result["paths"][1]["quality_score"]

    def test_top_k_limits_results(self):
        result = _find(_two_source_store(), "T", sources=["S1", "S2"], top_k=1)
        assert len(result["paths"]) == 1
        assert result["meta"]["total_candidates_considered"] == 2

    def test_default_sources_are_internal_people(self):
        result = _find(_two_source_store(), "T")
        assert result["meta"]["sources_searched"] == 2
        assert len(result["paths"]) == 2

    def test_unknown_target_is_not_an_error(self):
        result = _find(_chain_store(), "nobody", sources=["A"])
        assert result["paths"] == []
        assert result["target_node"]["display_name"] == "Unknown"

    def test_without_enrichment(self):
        result = _find(_chain_store(), "C", sources=["A"], include_enrichment=False)
        assert [n["display_name"] for n in result["paths"][0]["nodes"]] == ["A", "B", "C"]

    def test_idempotent_without_cache(self):
        first = _find(_two_source_store(), "T", sources=["S2", "S1"], use_cache=False)
        second = _find(_two_source_store(), "T", sources=["S1", "S2"], use_cache=False)
        assert first == second

    def test_markdown_wrapper(self):
        text = find_intro_paths_markdown("C", sources=["A"], store=_chain_store(), now=NOW)
        assert "Alice * -[colleague]-> Bob -[founder]-> Cobalt Labs" in text


class TestValidation:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_depth": 0},
            {"max_depth": 7},
            {"max_depth": True},
            {"max_depth": 2.5},
            {"top_k": 0},
            {"top_k": -3},
            {"min_strength": -0.1},
            {"min_strength": 1.5},
            {"min_strength": "high"},
        ],
    )
    def test_bad_parameters(self, kwargs):
        with pytest.raises(InvalidRequest):
            _find(_chain_store(), "C", sources=["A"], **kwargs)

    def test_blank_target(self):
        with pytest.raises(InvalidRequest):
            _find(_chain_store(), "   ", sources=["A"])

    def test_no_sources_available(self):
        store = InMemoryGraphStore(edges=[Edge("x", "y", "colleague", 0.5)])
        with pytest.raises(InvalidRequest):
            _find(store, "y")

    def test_invalid_request_touches_no_store(self):
        store = _CountingStore()
        with pytest.raises(InvalidRequest):
            _find(store, "C", sources=["A"], max_depth=0)
        assert store.adjacency_calls == 0


class TestCaching:
    def test_second_call_served_from_cache(self):
        store = _CountingStore(
            nodes=[Node("A", NodeKind.PERSON, "Alice", is_internal=True)],
            edges=[Edge("A", "B", "colleague", 0.9), Edge("B", "C", "founder", 0.8)],
        )
        cache = InMemoryPathCache()

        first = _find(store, "C", sources=["A"], cache=cache)
        calls = store.adjacency_calls
        second = _find(store, "C", sources=["A"], cache=cache, now=NOW + timedelta(minutes=5))

        assert first["meta"]["from_cache"] is False
        assert second["meta"]["from_cache"] is True
        assert store.adjacency_calls == calls
        assert second["paths"] == first["paths"]
        assert second["meta"]["calculated_at"] == NOW.isoformat()

    def test_cache_shared_across_top_k(self):
        cache = InMemoryPathCache()
        _find(_two_source_store(), "T", sources=["S1", "S2"], cache=cache, top_k=1)
        result = _find(_two_source_store(), "T", sources=["S1", "S2"], cache=cache, top_k=5)

        assert result["meta"]["from_cache"] is True
        assert len(result["paths"]) == 2

    def test_use_cache_false_bypasses(self):
        cache = InMemoryPathCache()
        _find(_chain_store(), "C", sources=["A"], cache=cache, use_cache=False)
        assert len(cache) == 0

    def test_expired_entry_recomputed(self):
        cache = InMemoryPathCache(ttl_seconds=60)
        _find(_chain_store(), "C", sources=["A"], cache=cache)
        later = _find(_chain_store(), "C", sources=["A"], cache=cache, now=NOW + timedelta(hours=1))
        assert later["meta"]["from_cache"] is False

    def test_timed_out_search_not_cached(self):
        cache = InMemoryPathCache()
        config = PathConfig(time_budget_seconds=0.0, store_retry_backoff_seconds=0.0)

        result = _find(_chain_store(), "C", sources=["A"], cache=cache, config=config)

        assert result["meta"]["truncated"] is True
        assert len(cache) == 0


class TestFailures:
    def test_store_failure_propagates_after_retries(self):
        store = _DownStore()
        with pytest.raises(StoreUnavailable):
            _find(store, "C", sources=["A"])
        assert store.calls == FAST.store_retry_attempts + 1

    def test_store_failure_is_not_cached(self):
        cache = InMemoryPathCache()
        with pytest.raises(StoreUnavailable):
            _find(_DownStore(), "C", sources=["A"], cache=cache)
        assert len(cache) == 0

    def test_cancellation(self):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(RequestCancelled):
            _find(_chain_store(), "C", sources=["A"], cancel_event=cancel)

    def test_caller_store_left_open(self):
        store = _CountingStore()
        _find(store, "C", sources=["A"])
        assert store.closed is False


class TestGlobalCap:
    @staticmethod
    def _crowded_store() -> InMemoryGraphStore:
        edges = []
        for s in range(5):
            for m in range(10):
                edges.append(Edge(f"A{s}", f"A{s}M{m}", "linkedin", 0.5))
                edges.append(Edge(f"A{s}M{m}", "T", "linkedin", 0.5))
        edges.append(Edge("Z", "T", "colleague", 1.0, NOW))
        return InMemoryGraphStore(edges=edges)

    def test_strong_path_from_late_source_survives_cap(self):
        sources = [f"A{s}" for s in range(5)] + ["Z"]

        result = _find(self._crowded_store(), "T", sources=sources, top_k=1)

        assert [n["id"] for n in result["paths"][0]["nodes"]] == ["Z", "T"]
        assert result["paths"][0]["quality_score"] == pytest.approx(1.0)
        assert result["meta"]["truncated"] is True
        assert result["meta"]["total_candidates_considered"] == 51

    def test_cached_list_holds_best_paths_only(self):
        cache = InMemoryPathCache()
        config = PathConfig(global_path_cap=3, store_retry_backoff_seconds=0.0)
        sources = [f"A{s}" for s in range(5)] + ["Z"]

        result = _find(
            self._crowded_store(), "T", sources=sources, cache=cache, config=config, top_k=10
        )

        assert len(result["paths"]) == 3
        assert result["paths"][0]["hops"] == 1
        assert result["meta"]["truncated"] is True


def test_naive_now_treated_as_utc():
    cache = InMemoryPathCache()
    naive = NOW.replace(tzinfo=None)

    first = _find(_chain_store(), "C", sources=["A"], cache=cache, now=naive)
    second = _find(_chain_store(), "C", sources=["A"], cache=cache, now=naive)

    assert first["meta"]["calculated_at"] == NOW.isoformat()
    assert second["meta"]["from_cache"] is True
    assert first["paths"][0]["quality_score"] == pytest.approx(0.72 * math.exp(-10 / 90))
