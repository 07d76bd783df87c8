"""Neo4j-backed read-only graph store.

Entities are nodes carrying the ``Entity`` label and an ``id`` property;
relationships carry ``kind``/``strength``/``last_interaction_at`` (or the
legacy ``strength_score``/``last_interaction_date`` names). Soft-deleted
relationships (``invalid_at`` set) are ignored.
"""

import logging
from typing import Any

from neo4j import GraphDatabase, Query
from neo4j.exceptions import (
    DriverError,
    Neo4jError,
    ServiceUnavailable,
    SessionExpired,
    TransientError,
)

from ..errors import StoreUnavailable
from .schema import Edge, Node

log = logging.getLogger(__name__)

DEFAULT_QUERY_TIMEOUT_SECONDS = 5.0

_ADJACENCY_QUERY = """
UNWIND $ids AS node_id
MATCH (n:Entity {id: node_id})-[r]-(m:Entity)
WHERE r.invalid_at IS NULL
RETURN node_id,
       startNode(r).id AS source,
       endNode(r).id AS target,
       coalesce(r.kind, toLower(type(r))) AS kind,
       coalesce(r.strength, r.strength_score) AS strength,
       coalesce(r.last_interaction_at, r.last_interaction_date) AS last_interaction_at
ORDER BY node_id, source, target, kind
"""

_NODES_QUERY = """
UNWIND $ids AS node_id
MATCH (n:Entity {id: node_id})
RETURN n, labels(n) AS labels
"""

_INTERNAL_PEOPLE_QUERY = """
MATCH (n:Entity)
WHERE n.is_internal = true
  AND (toLower(coalesce(n.kind, n.type, '')) = 'person' OR 'Person' IN labels(n))
RETURN n.id AS id
ORDER BY id
"""


class Neo4jGraphStore:
    """Neo4j graph store. Each call opens a short-lived session.

    Args:
        uri: Bolt URI.
        user: Username.
        password: Password.
        database: Database name, or None for the server default.
        query_timeout_seconds: Server-side timeout per query.
    """

    def __init__(
        self,
        uri: str = "bolt://localhost:7687",
        user: str = "neo4j",
        password: str = "neo4j",
        database: str | None = None,
        query_timeout_seconds: float = DEFAULT_QUERY_TIMEOUT_SECONDS,
    ):
        self.driver = GraphDatabase.driver(uri, auth=(user, password))
        self.database = database
        self.query_timeout_seconds = query_timeout_seconds

    def close(self):
        self.driver.close()

    def _run(self, cypher: str, **params: Any) -> list:
        """Run a read query and materialize all records.

        Driver failures are translated into ``StoreUnavailable``; connection
        drops and transient server errors are flagged retryable.
        """
        try:
            with self.driver.session(database=self.database) as session:
                result = session.run(
                    Query(cypher, timeout=self.query_timeout_seconds), **params
                )
                return list(result)
        except (ServiceUnavailable, SessionExpired, TransientError) as e:
            raise StoreUnavailable(f"Neo4j unavailable: {e}", transient=True) from e
        except (Neo4jError, DriverError) as e:
            raise StoreUnavailable(f"Neo4j query failed: {e}", transient=False) from e

    def load_adjacency(self, node_ids: set[str]) -> dict[str, list[Edge]]:
        """Get every edge touching each requested node.

        Nodes without edges (or missing from the graph) map to an empty list.
        """
        adjacency: dict[str, list[Edge]] = {node_id: [] for node_id in node_ids}
        if not node_ids:
            return adjacency

        records = self._run(_ADJACENCY_QUERY, ids=sorted(node_ids))
        for record in records:
            try:
                edge = Edge.from_record(
                    {
                        "source": record["source"],
                        "target": record["target"],
                        "kind": record["kind"],
                        "strength": record["strength"],
                        "last_interaction_at": record["last_interaction_at"],
                    }
                )
            except ValueError:
                log.warning(f"Skipping malformed edge touching {record['node_id']}")
                continue
            adjacency.setdefault(record["node_id"], []).append(edge)
        return adjacency

    def load_nodes(self, node_ids: set[str]) -> dict[str, Node]:
        if not node_ids:
            return {}

        nodes: dict[str, Node] = {}
        for record in self._run(_NODES_QUERY, ids=sorted(node_ids)):
            props = dict(record["n"])
            props["_labels"] = record["labels"]
            try:
                node = Node.from_record(props)
            except ValueError:
                continue
            nodes[node.id] = node
        return nodes

    def load_node(self, node_id: str) -> Node | None:
        return self.load_nodes({node_id}).get(node_id)

    def list_internal_people(self) -> list[str]:
        return [record["id"] for record in self._run(_INTERNAL_PEOPLE_QUERY)]
