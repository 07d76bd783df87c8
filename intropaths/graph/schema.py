"""Graph schema for the relationship graph.

Defines node kinds, known edge kinds and the read-only Node/Edge records
that every store backend produces.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

DEFAULT_EDGE_STRENGTH = 0.5


class NodeKind(Enum):
    """Kinds of entity in the relationship graph."""

    PERSON = "person"
    ORGANIZATION = "organization"
    UNKNOWN = "unknown"  # Placeholder for nodes with no metadata


class EdgeKind(Enum):
    """Relationship kinds produced by the ingestion jobs.

    Edges with other kinds are still traversed; this list only documents
    the vocabulary.
    """

    COLLEAGUE = "colleague"
    LINKEDIN = "linkedin"
    DEAL_TEAM = "deal_team"
    FOUNDER = "founder"
    OWNER = "owner"
    CONTACT = "contact"
    WORKS_AT = "works_at"
    INVESTS_IN = "invests_in"
    ADVISES = "advises"
    INTRODUCED_BY = "introduced_by"
    WORKED_WITH = "worked_with"
    PORTFOLIO_COMPANY_OF = "portfolio_company_of"
    COMPETED_WITH = "competed_with"


_KIND_ALIASES = {
    "person": NodeKind.PERSON,
    "people": NodeKind.PERSON,
    "contact": NodeKind.PERSON,
    "organization": NodeKind.ORGANIZATION,
    "organisation": NodeKind.ORGANIZATION,
    "company": NodeKind.ORGANIZATION,
    "fund": NodeKind.ORGANIZATION,
}


def get_edge_kinds() -> list[str]:
    """Get list of documented edge kinds."""
    return [e.value for e in EdgeKind]


def parse_node_kind(value: Any, labels: list[str] | None = None) -> NodeKind:
    """Resolve a node kind from a raw kind string or store labels."""
    if isinstance(value, NodeKind):
        return value
    if isinstance(value, str):
        kind = _KIND_ALIASES.get(value.strip().lower())
        if kind is not None:
            return kind
    for label in labels or []:
        kind = _KIND_ALIASES.get(str(label).strip().lower())
        if kind is not None:
            return kind
    return NodeKind.UNKNOWN


def as_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a timestamp into an aware UTC datetime.

    Accepts datetimes, ISO-8601 strings, epoch seconds and driver temporal
    values exposing ``to_native()``. Naive values are taken as UTC.
    """
    if value is None or isinstance(value, bool):
        return None
    if hasattr(value, "to_native"):
        value = value.to_native()
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            value = datetime.fromisoformat(text)
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    return as_utc(value)


def clamp_strength(value: Any) -> float:
    """Clamp a relationship strength into [0, 1], defaulting when unknown."""
    if value is None or isinstance(value, bool):
        return DEFAULT_EDGE_STRENGTH
    try:
        strength = float(value)
    except (TypeError, ValueError):
        return DEFAULT_EDGE_STRENGTH
    if strength != strength:  # NaN
        return DEFAULT_EDGE_STRENGTH
    if strength < 0.0:
        return 0.0
    if strength > 1.0:
        return 1.0
    return strength


def _first(record: dict, *keys: str) -> Any:
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return None


@dataclass(frozen=True)
class Node:
    """An entity (person or organization) in the relationship graph."""

    id: str
    kind: NodeKind
    display_name: str
    is_internal: bool = False
    is_portfolio: bool = False
    is_pipeline: bool = False
    importance: float | None = None
    last_seen_at: datetime | None = None

    @classmethod
    def from_record(cls, record: dict) -> "Node":
        """Build a node from a store row or snapshot entry.

        Understands both the relational column names (``type``,
        ``internal_owner``) and graph property names (``kind``, ``_labels``).
        """
        node_id = str(record.get("id") or "").strip()
        if not node_id:
            raise ValueError("node record has no id")

        name = _first(record, "display_name", "name", "full_name", "title")
        importance = record.get("importance")

        return cls(
            id=node_id,
            kind=parse_node_kind(
                _first(record, "kind", "type", "node_type"),
                record.get("_labels") or record.get("labels"),
            ),
            display_name=str(name).strip() if name else node_id,
            is_internal=bool(_first(record, "is_internal", "internal_owner")),
            is_portfolio=bool(record.get("is_portfolio")),
            is_pipeline=bool(record.get("is_pipeline")),
            importance=float(importance) if importance is not None else None,
            last_seen_at=parse_timestamp(_first(record, "last_seen_at", "updated_at")),
        )


@dataclass(frozen=True)
class Edge:
    """A weighted, typed relationship. Traversed in both directions."""

    source: str
    target: str
    kind: str
    strength: float = DEFAULT_EDGE_STRENGTH
    last_interaction_at: datetime | None = None

    def touches(self, node_id: str) -> bool:
        return node_id in (self.source, self.target)

    def other(self, node_id: str) -> str:
        """Return the endpoint opposite ``node_id``."""
        if node_id == self.source:
            return self.target
        if node_id == self.target:
            return self.source
        raise ValueError(f"edge {self.source}-{self.target} does not touch {node_id}")

    @classmethod
    def from_record(cls, record: dict) -> "Edge":
        """Build an edge from a store row or snapshot entry."""
        source = str(_first(record, "source", "from_id") or "").strip()
        target = str(_first(record, "target", "to_id") or "").strip()
        if not source or not target:
            raise ValueError("edge record needs both endpoints")

        kind = _first(record, "kind", "relation", "type")
        return cls(
            source=source,
            target=target,
            kind=str(kind).strip().lower() if kind else "related_to",
            strength=clamp_strength(_first(record, "strength", "strength_score")),
            last_interaction_at=parse_timestamp(
                _first(
                    record,
                    "last_interaction_at",
                    "last_interaction_date",
                    "last_interaction",
                )
            ),
        )
