"""
Memory graph database models
PostgreSQL + pgvector schema (JSON embeddings on other backends)
"""

from datetime import datetime

from sqlalchemy import (
    Column, Integer, BigInteger, String, Text, Float,
    DateTime, ForeignKey, CheckConstraint, Index, UniqueConstraint, JSON,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base

import memgraph.config as config

try:
    from pgvector.sqlalchemy import Vector as PgVector
    PGVECTOR_AVAILABLE = True
except ImportError:
    PgVector = None
    PGVECTOR_AVAILABLE = False

PGVECTOR_ENABLED = (
    config.DB_BACKEND == "postgres"
    and config.VECTOR_BACKEND_EFFECTIVE == "pgvector"
    and PGVECTOR_AVAILABLE
)

if PGVECTOR_ENABLED:
    EMBEDDING_COLUMN_TYPE = PgVector(config.EMBEDDING_DIM)
else:
    EMBEDDING_COLUMN_TYPE = JSON(none_as_null=True)

JSON_TYPE = JSONB if config.DB_BACKEND == "postgres" else JSON

Base = declarative_base()


# =============================================================================
# Memory Nodes
# =============================================================================

class MemoryNode(Base):
    __tablename__ = "memory_nodes"

    id = Column(Integer, primary_key=True)
    type = Column(String(50), nullable=False)  # memory/tool/concept/person/event
    label = Column(String(255), nullable=False)  # Original case preserved
    label_key = Column(String(255), nullable=False)  # Lowercase for lookups
    body = Column(Text)
    embedding = Column(EMBEDDING_COLUMN_TYPE, nullable=True)
    strength = Column(Float, default=config.STRENGTH_INITIAL, nullable=False)
    access_count = Column(BigInteger, default=0, nullable=False)
    last_accessed = Column(DateTime, default=datetime.utcnow, nullable=False)
    category = Column(String(50))  # "core" is decay-exempt
    metadata_ = Column("metadata", JSON_TYPE, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "strength >= 0.01 AND strength <= 2.0",
            name="ck_memory_nodes_strength",
        ),
        Index("ix_memory_nodes_label_key_type", "label_key", "type"),
        Index("ix_memory_nodes_type", "type"),
        Index("ix_memory_nodes_category", "category"),
        Index("ix_memory_nodes_last_accessed", "last_accessed"),
        Index("ix_memory_nodes_strength", "strength"),
    )


# =============================================================================
# Memory Edges (directed, weighted associations)
# =============================================================================

class MemoryEdge(Base):
    __tablename__ = "memory_edges"

    id = Column(Integer, primary_key=True)
    source_id = Column(Integer, ForeignKey("memory_nodes.id", ondelete="CASCADE"), nullable=False)
    target_id = Column(Integer, ForeignKey("memory_nodes.id", ondelete="CASCADE"), nullable=False)
    relation = Column(String(100), nullable=False)  # uses/relates_to/belongs_to/...
    weight = Column(Float, default=config.WEIGHT_INITIAL, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("weight > 0 AND weight <= 3.0", name="ck_memory_edges_weight"),
        CheckConstraint("source_id != target_id", name="ck_memory_edges_distinct"),
        UniqueConstraint(
            "source_id",
            "target_id",
            "relation",
            name="uq_memory_edges_source_target_relation",
        ),
        Index("ix_memory_edges_source", "source_id"),
        Index("ix_memory_edges_target", "target_id"),
    )


__all__ = [
    "Base",
    "MemoryNode",
    "MemoryEdge",
    "PGVECTOR_AVAILABLE",
    "PGVECTOR_ENABLED",
    "EMBEDDING_COLUMN_TYPE",
]
