"""Create memory graph tables.

Revision ID: 0001_memory_graph
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

import memgraph.config as config


revision = "0001_memory_graph"
down_revision = None
branch_labels = None
depends_on = None


def _embedding_type(is_postgres: bool):
    if is_postgres and config.VECTOR_BACKEND_EFFECTIVE == "pgvector":
        from pgvector.sqlalchemy import Vector

        return Vector(config.EMBEDDING_DIM), True
    return sa.JSON(none_as_null=True), False


def upgrade() -> None:
    bind = op.get_bind()
    is_postgres = bind.dialect.name == "postgresql"
    json_type = postgresql.JSONB if is_postgres else sa.JSON
    embedding_type, use_pgvector = _embedding_type(is_postgres)

    if use_pgvector:
        op.execute("CREATE EXTENSION IF NOT EXISTS vector")

    op.create_table(
        "memory_nodes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("type", sa.String(length=50), nullable=False),
        sa.Column("label", sa.String(length=255), nullable=False),
        sa.Column("label_key", sa.String(length=255), nullable=False),
        sa.Column("body", sa.Text()),
        sa.Column("embedding", embedding_type, nullable=True),
        sa.Column("strength", sa.Float(), nullable=False, server_default="1.0"),
        sa.Column("access_count", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("last_accessed", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("category", sa.String(length=50)),
        sa.Column("metadata", json_type),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "strength >= 0.01 AND strength <= 2.0",
            name="ck_memory_nodes_strength",
        ),
    )
    op.create_index("ix_memory_nodes_label_key_type", "memory_nodes", ["label_key", "type"])
    op.create_index("ix_memory_nodes_type", "memory_nodes", ["type"])
    op.create_index("ix_memory_nodes_category", "memory_nodes", ["category"])
    op.create_index("ix_memory_nodes_last_accessed", "memory_nodes", ["last_accessed"])
    op.create_index("ix_memory_nodes_strength", "memory_nodes", ["strength"])

    op.create_table(
        "memory_edges",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "source_id",
            sa.Integer(),
            sa.ForeignKey("memory_nodes.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "target_id",
            sa.Integer(),
            sa.ForeignKey("memory_nodes.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("relation", sa.String(length=100), nullable=False),
        sa.Column("weight", sa.Float(), nullable=False, server_default="1.0"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("weight > 0 AND weight <= 3.0", name="ck_memory_edges_weight"),
        sa.CheckConstraint("source_id != target_id", name="ck_memory_edges_distinct"),
        sa.UniqueConstraint(
            "source_id",
            "target_id",
            "relation",
            name="uq_memory_edges_source_target_relation",
        ),
    )
    op.create_index("ix_memory_edges_source", "memory_edges", ["source_id"])
    op.create_index("ix_memory_edges_target", "memory_edges", ["target_id"])

    if use_pgvector:
        op.execute(
            "CREATE INDEX IF NOT EXISTS ix_memory_nodes_embedding_hnsw "
            "ON memory_nodes USING hnsw (embedding vector_cosine_ops)"
        )


def downgrade() -> None:
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        op.execute("DROP INDEX IF EXISTS ix_memory_nodes_embedding_hnsw")
    op.drop_index("ix_memory_edges_target", table_name="memory_edges")
    op.drop_index("ix_memory_edges_source", table_name="memory_edges")
    op.drop_table("memory_edges")
    op.drop_index("ix_memory_nodes_strength", table_name="memory_nodes")
    op.drop_index("ix_memory_nodes_last_accessed", table_name="memory_nodes")
    op.drop_index("ix_memory_nodes_category", table_name="memory_nodes")
    op.drop_index("ix_memory_nodes_type", table_name="memory_nodes")
    op.drop_index("ix_memory_nodes_label_key_type", table_name="memory_nodes")
    op.drop_table("memory_nodes")
