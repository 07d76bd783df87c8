"""Read-only graph store contract and the in-memory backend.

Traversal only sees ``GraphStore``; Neo4j and snapshot graphs both
implement it.
"""

import logging
from typing import Callable, Iterable, Protocol, TypeVar

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ..errors import StoreUnavailable
from .schema import Edge, Node, NodeKind

log = logging.getLogger(__name__)

T = TypeVar("T")


class GraphStore(Protocol):
    def load_adjacency(self, node_ids: set[str]) -> dict[str, list[Edge]]: ...

    def load_node(self, node_id: str) -> Node | None: ...

    def load_nodes(self, node_ids: set[str]) -> dict[str, Node]: ...

    def list_internal_people(self) -> list[str]: ...

    def close(self) -> None: ...


class InMemoryGraphStore:
    """Graph store over nodes and edges held in process memory.

    Edge order per node follows insertion order, which is the order
    traversal explores neighbors in. Self-loops are dropped.
    """

    def __init__(self, nodes: Iterable[Node] = (), edges: Iterable[Edge] = ()):
        self._nodes: dict[str, Node] = {}
        self._adjacency: dict[str, list[Edge]] = {}
        for node in nodes:
            self._nodes[node.id] = node
        for edge in edges:
            self.add_edge(edge)

    def add_edge(self, edge: Edge) -> None:
        if edge.source == edge.target:
            return
        self._adjacency.setdefault(edge.source, []).append(edge)
        self._adjacency.setdefault(edge.target, []).append(edge)

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    @property
    def edge_count(self) -> int:
        return sum(len(edges) for edges in self._adjacency.values()) // 2

    def load_adjacency(self, node_ids: set[str]) -> dict[str, list[Edge]]:
        return {node_id: list(self._adjacency.get(node_id, ())) for node_id in node_ids}

    def load_node(self, node_id: str) -> Node | None:
        return self._nodes.get(node_id)

    def load_nodes(self, node_ids: set[str]) -> dict[str, Node]:
        return {
            node_id: self._nodes[node_id]
            for node_id in node_ids
            if node_id in self._nodes
        }

    def list_internal_people(self) -> list[str]:
        return sorted(
            node.id
            for node in self._nodes.values()
            if node.is_internal and node.kind == NodeKind.PERSON
        )

    def close(self) -> None:
        return None


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, StoreUnavailable) and exc.transient


class RetryingGraphStore:
    """Wrap a store so each call is retried on transient failures.

    Non-transient failures and the final transient failure propagate as
    ``StoreUnavailable``.

    Args:
        store: Backend to delegate to.
        retries: Extra attempts after the first call.
        backoff_seconds: Initial wait, doubled per retry.
    """

    def __init__(self, store: GraphStore, *, retries: int = 2, backoff_seconds: float = 0.1):
        self.store = store
        self.retries = max(0, retries)
        self.backoff_seconds = max(0.0, backoff_seconds)

    def _call(self, fn: Callable[[], T]) -> T:
        retrying = Retrying(
            reraise=True,
            stop=stop_after_attempt(self.retries + 1),
            wait=wait_exponential(multiplier=self.backoff_seconds, max=2.0),
            retry=retry_if_exception(_is_transient),
            before_sleep=before_sleep_log(log, logging.WARNING),
        )
        return retrying(fn)

    def load_adjacency(self, node_ids: set[str]) -> dict[str, list[Edge]]:
        return self._call(lambda: self.store.load_adjacency(node_ids))

    def load_node(self, node_id: str) -> Node | None:
        return self._call(lambda: self.store.load_node(node_id))

    def load_nodes(self, node_ids: set[str]) -> dict[str, Node]:
        return self._call(lambda: self.store.load_nodes(node_ids))

    def list_internal_people(self) -> list[str]:
        return self._call(self.store.list_internal_people)

    def close(self) -> None:
        self.store.close()
