"""Relationship graph schema and read-only store backends."""

from .schema import Edge, EdgeKind, Node, NodeKind
from .store import GraphStore, InMemoryGraphStore, RetryingGraphStore

__all__ = [
    "Edge",
    "EdgeKind",
    "GraphStore",
    "InMemoryGraphStore",
    "Node",
    "NodeKind",
    "RetryingGraphStore",
]
