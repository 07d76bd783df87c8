"""Tests for the Neo4j graph store."""

import os
from urllib.parse import urlparse

import pytest
from neo4j.exceptions import ConfigurationError, ServiceUnavailable

from intropaths.errors import StoreUnavailable
from intropaths.graph.neo4j_storage import Neo4jGraphStore
from intropaths.graph.schema import NodeKind

MAIN_BOLT_PORT = 7687


def _integration_target() -> tuple[str, str, str]:
    """Connection for the integration graph; never the main database port."""
    uri = os.getenv("INTRO_PATHS_TEST_NEO4J_URI", "bolt://localhost:17687")
    port = urlparse(uri.strip()).port
    if port is None or port == MAIN_BOLT_PORT:
        raise RuntimeError(
            f"Refusing to seed fixtures through {uri}; point "
            "INTRO_PATHS_TEST_NEO4J_URI at a throwaway instance on another port"
        )
    return (
        uri,
        os.getenv("INTRO_PATHS_TEST_NEO4J_USER", "neo4j"),
        os.getenv("INTRO_PATHS_TEST_NEO4J_PASSWORD", "neo4j"),
    )


@pytest.mark.parametrize(
    "uri", ["bolt://localhost:7687", "neo4j://db.internal:7687", "bolt://localhost"]
)
def test_integration_target_refuses_main_port(monkeypatch, uri):
    monkeypatch.setenv("INTRO_PATHS_TEST_NEO4J_URI", uri)
    with pytest.raises(RuntimeError):
        _integration_target()


def test_integration_target_from_env(monkeypatch):
    monkeypatch.setenv("INTRO_PATHS_TEST_NEO4J_URI", "bolt://graph-test:27687")
    monkeypatch.delenv("INTRO_PATHS_TEST_NEO4J_USER", raising=False)
    monkeypatch.setenv("INTRO_PATHS_TEST_NEO4J_PASSWORD", "s3cret")
    assert _integration_target() == ("bolt://graph-test:27687", "neo4j", "s3cret")


class _FailingDriver:
    def __init__(self, exc: Exception):
        self.exc = exc

    def session(self, database=None):
        raise self.exc

    def close(self):
        return None


class TestErrorTranslation:
    """Driver failures must surface as StoreUnavailable, never as empty results."""

    def _store(self, exc: Exception) -> Neo4jGraphStore:
        store = Neo4jGraphStore(uri="bolt://localhost:1", user="neo4j", password="x")
        store.driver.close()
        store.driver = _FailingDriver(exc)
        return store

    def test_connection_failure_is_transient(self):
        store = self._store(ServiceUnavailable("down"))
        with pytest.raises(StoreUnavailable) as info:
            store.load_adjacency({"a"})
        assert info.value.transient is True

    def test_configuration_error_is_not_transient(self):
        store = self._store(ConfigurationError("bad database name"))
        with pytest.raises(StoreUnavailable) as info:
            store.list_internal_people()
        assert info.value.transient is False

    def test_empty_id_set_skips_query(self):
        store = self._store(ServiceUnavailable("down"))
        assert store.load_adjacency(set()) == {}
        assert store.load_nodes(set()) == {}


class TestNeo4jGraphStore:
    """Integration tests; skipped without a test Neo4j instance."""

    @pytest.fixture
    def storage(self):
        uri, user, password = _integration_target()
        try:
            s = Neo4jGraphStore(uri=uri, user=user, password=password)
            s.driver.verify_connectivity()
        except Exception as e:
            pytest.skip(f"Neo4j not available: {e}")

        with s.driver.session() as session:
            session.run("MATCH (n:Entity) WHERE n.id STARTS WITH 'itest:' DETACH DELETE n")
            session.run(
                """
                CREATE (a:Entity:Person {id: 'itest:alice', name: 'Alice', kind: 'person', is_internal: true})
                CREATE (b:Entity:Person {id: 'itest:bob', name: 'Bob', kind: 'person'})
                CREATE (c:Entity:Organization {id: 'itest:acme', name: 'Acme', kind: 'organization', is_portfolio: true})
                CREATE (x:Entity:Person {id: 'itest:loner', name: 'Loner', kind: 'person'})
                CREATE (a)-[:RELATES {kind: 'colleague', strength: 0.9, last_interaction_at: datetime('2026-09-01T00:00:00Z')}]->(b)
                CREATE (b)-[:RELATES {kind: 'founder', strength_score: 0.8}]->(c)
                CREATE (a)-[:RELATES {kind: 'linkedin', strength: 0.3, invalid_at: datetime()}]->(c)
                """
            )
        yield s
        with s.driver.session() as session:
            session.run("MATCH (n:Entity) WHERE n.id STARTS WITH 'itest:' DETACH DELETE n")
        s.close()

    def test_load_adjacency(self, storage):
        adjacency = storage.load_adjacency({"itest:bob", "itest:loner"})

        kinds = sorted(edge.kind for edge in adjacency["itest:bob"])
        assert kinds == ["colleague", "founder"]
        assert adjacency["itest:loner"] == []

    def test_soft_deleted_edges_ignored(self, storage):
        adjacency = storage.load_adjacency({"itest:acme"})
        assert [edge.kind for edge in adjacency["itest:acme"]] == ["founder"]

    def test_legacy_strength_and_timestamps(self, storage):
        edges = storage.load_adjacency({"itest:bob"})["itest:bob"]
        by_kind = {edge.kind: edge for edge in edges}
        assert by_kind["founder"].strength == 0.8
        assert by_kind["colleague"].last_interaction_at.year == 2026

    def test_load_nodes(self, storage):
        nodes = storage.load_nodes({"itest:acme", "itest:missing"})
        assert set(nodes) == {"itest:acme"}
        assert nodes["itest:acme"].kind == NodeKind.ORGANIZATION
        assert nodes["itest:acme"].is_portfolio is True

    def test_internal_people(self, storage):
        assert "itest:alice" in storage.list_internal_people()
        assert "itest:bob" not in storage.list_internal_people()
