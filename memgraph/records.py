"""
Plain record types returned by the graph store.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import memgraph.config as config


@dataclass(frozen=True)
class NodeRecord:
    id: int
    type: str
    label: str
    body: Optional[str] = None
    strength: float = config.STRENGTH_INITIAL
    access_count: int = 0
    last_accessed: Optional[datetime] = None
    category: Optional[str] = None
    metadata: dict = field(default_factory=dict)
    created_at: Optional[datetime] = None
    has_embedding: bool = False

    @property
    def is_core(self) -> bool:
        return self.category == config.CORE_CATEGORY

    @property
    def ref(self) -> str:
        return f"{self.type}:{self.label}"


@dataclass(frozen=True)
class EdgeRecord:
    id: int
    source_id: int
    target_id: int
    relation: str
    weight: float = config.WEIGHT_INITIAL
    created_at: Optional[datetime] = None

    def other_end(self, node_id: int) -> int:
        return self.target_id if self.source_id == node_id else self.source_id


@dataclass(frozen=True)
class ScoredNode:
    node: NodeRecord
    similarity: float


@dataclass(frozen=True)
class ActivatedNode:
    node: NodeRecord
    score: float
    hops: int = 0
    connections: tuple[str, ...] = ()


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_node(node: NodeRecord) -> dict:
    return {
        "id": node.id,
        "type": node.type,
        "label": node.label,
        "body": node.body,
        "strength": node.strength,
        "category": node.category,
        "access_count": node.access_count,
        "last_accessed": _iso(node.last_accessed),
        "created_at": _iso(node.created_at),
        "metadata": node.metadata,
    }


def serialize_edge(edge: EdgeRecord) -> dict:
    return {
        "id": edge.id,
        "source": edge.source_id,
        "target": edge.target_id,
        "relation": edge.relation,
        "weight": edge.weight,
    }


def serialize_activated(item: ActivatedNode) -> dict:
    payload = serialize_node(item.node)
    payload["score"] = item.score
    payload["hops"] = item.hops
    payload["connections"] = list(item.connections)
    return payload


__all__ = [
    "NodeRecord",
    "EdgeRecord",
    "ScoredNode",
    "ActivatedNode",
    "serialize_node",
    "serialize_edge",
    "serialize_activated",
]
