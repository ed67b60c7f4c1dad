"""
Graph store: repository over the memory_nodes / memory_edges tables.

All numeric mutations (strength, weight, access_count) are single UPDATE
statements with the clamp expressed in SQL, so concurrent writers cannot
lose updates or push a value out of range.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Iterable, Optional, Sequence

import numpy as np
from sqlalchemy import case, or_
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm import defer

import memgraph.config as config
from memgraph.errors import StorageTimeout, StorageUnavailable
from memgraph.models import MemoryEdge, MemoryNode, PGVECTOR_ENABLED
from memgraph.records import EdgeRecord, NodeRecord, ScoredNode
from memgraph.validators import validate_embedding

logger = config.logger


def normalize_label(label: str) -> str:
    return label.strip().lower()


def clamped_increment(column, delta: float, ceiling: float):
    bumped = column + delta
    return case((bumped > ceiling, ceiling), else_=bumped)


def clamped_scale(column, factor: float, floor: float):
    scaled = column * factor
    return case((scaled < floor, floor), else_=scaled)


def clamp_similarity(value: float) -> float:
    if value < 0.0:
        return 0.0
    if value > 1.0:
        return 1.0
    return value


def cosine_similarities(query: Sequence[float], vectors: Sequence[Sequence[float]]) -> np.ndarray:
    """Cosine similarity of ``query`` against each row of ``vectors``; zero vectors score 0."""
    matrix = np.asarray(vectors, dtype=np.float64)
    q = np.asarray(query, dtype=np.float64)
    if matrix.size == 0:
        return np.zeros(0)
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(q)
    dots = matrix @ q
    with np.errstate(divide="ignore", invalid="ignore"):
        sims = np.where(norms > 0, dots / norms, 0.0)
    return sims


def _node_record(row: MemoryNode, has_embedding: bool) -> NodeRecord:
    return NodeRecord(
        id=row.id,
        type=row.type,
        label=row.label,
        body=row.body,
        strength=row.strength,
        access_count=row.access_count or 0,
        last_accessed=row.last_accessed,
        category=row.category,
        metadata=dict(row.metadata_ or {}),
        created_at=row.created_at,
        has_embedding=bool(has_embedding),
    )


def _edge_record(row: MemoryEdge) -> EdgeRecord:
    return EdgeRecord(
        id=row.id,
        source_id=row.source_id,
        target_id=row.target_id,
        relation=row.relation,
        weight=row.weight,
        created_at=row.created_at,
    )


def _node_query(db):
    return db.query(
        MemoryNode,
        MemoryNode.embedding.isnot(None).label("has_embedding"),
    ).options(defer(MemoryNode.embedding))


class SqlGraphStore:
    """SQLAlchemy-backed graph store. Methods are synchronous; callers run them off the event loop."""

    live = True

    def __init__(self, session_factory, *, dimension: int = config.EMBEDDING_DIM):
        self._session_factory = session_factory
        self.dimension = dimension

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_node(self, node_id: int) -> Optional[NodeRecord]:
        db = self._session_factory()
        try:
            row = _node_query(db).filter(MemoryNode.id == node_id).first()
            return _node_record(*row) if row else None
        finally:
            db.close()

    def get_nodes(self, node_ids: Iterable[int]) -> dict[int, NodeRecord]:
        ids = sorted(set(node_ids))
        if not ids:
            return {}
        db = self._session_factory()
        try:
            rows = _node_query(db).filter(MemoryNode.id.in_(ids)).all()
            return {node.id: _node_record(node, has_emb) for node, has_emb in rows}
        finally:
            db.close()

    def find_by_label(self, label: str, node_type: Optional[str] = None) -> Optional[NodeRecord]:
        db = self._session_factory()
        try:
            query = _node_query(db).filter(MemoryNode.label_key == normalize_label(label))
            if node_type:
                query = query.filter(MemoryNode.type == node_type)
            row = query.order_by(MemoryNode.id.asc()).first()
            return _node_record(*row) if row else None
        finally:
            db.close()

    def core_nodes(self) -> list[NodeRecord]:
        db = self._session_factory()
        try:
            rows = (
                _node_query(db)
                .filter(MemoryNode.category == config.CORE_CATEGORY)
                .order_by(MemoryNode.created_at.desc(), MemoryNode.id.desc())
                .all()
            )
            return [_node_record(*row) for row in rows]
        finally:
            db.close()

    def list_nodes(self) -> list[NodeRecord]:
        db = self._session_factory()
        try:
            rows = (
                _node_query(db)
                .order_by(MemoryNode.strength.desc(), MemoryNode.id.asc())
                .all()
            )
            return [_node_record(*row) for row in rows]
        finally:
            db.close()

    def list_edges(self) -> list[EdgeRecord]:
        db = self._session_factory()
        try:
            rows = (
                db.query(MemoryEdge)
                .order_by(MemoryEdge.weight.desc(), MemoryEdge.id.asc())
                .all()
            )
            return [_edge_record(row) for row in rows]
        finally:
            db.close()

    def get_edge(self, edge_id: int) -> Optional[EdgeRecord]:
        db = self._session_factory()
        try:
            row = db.get(MemoryEdge, edge_id)
            return _edge_record(row) if row else None
        finally:
            db.close()

    def incident_edges(self, node_id: int) -> list[EdgeRecord]:
        """Edges leaving or entering ``node_id``, ordered by id."""
        db = self._session_factory()
        try:
            rows = (
                db.query(MemoryEdge)
                .filter(or_(MemoryEdge.source_id == node_id, MemoryEdge.target_id == node_id))
                .order_by(MemoryEdge.id.asc())
                .all()
            )
            return [_edge_record(row) for row in rows]
        finally:
            db.close()

    def edges_among(self, node_ids: Iterable[int]) -> list[EdgeRecord]:
        ids = sorted(set(node_ids))
        if len(ids) < 2:
            return []
        db = self._session_factory()
        try:
            rows = (
                db.query(MemoryEdge)
                .filter(MemoryEdge.source_id.in_(ids))
                .filter(MemoryEdge.target_id.in_(ids))
                .order_by(MemoryEdge.id.asc())
                .all()
            )
            return [_edge_record(row) for row in rows]
        finally:
            db.close()

    def nearest(self, embedding: Sequence[float], limit: int) -> list[ScoredNode]:
        """Top-``limit`` embedded nodes by cosine similarity, ties by ascending id."""
        validate_embedding(embedding, self.dimension)
        if limit <= 0:
            return []
        db = self._session_factory()
        try:
            if PGVECTOR_ENABLED and db.get_bind().dialect.name == "postgresql":
                scored = self._nearest_pgvector(db, embedding, limit)
            else:
                scored = self._nearest_in_process(db, embedding, limit)
            if not scored:
                return []
            nodes = {
                node.id: _node_record(node, has_emb)
                for node, has_emb in _node_query(db)
                .filter(MemoryNode.id.in_([node_id for node_id, _ in scored]))
                .all()
            }
        finally:
            db.close()
        results = [
            ScoredNode(node=nodes[node_id], similarity=similarity)
            for node_id, similarity in scored
            if node_id in nodes
        ]
        results.sort(key=lambda item: (-item.similarity, item.node.id))
        return results

    def _nearest_pgvector(self, db, embedding, limit: int) -> list[tuple[int, float]]:
        distance = MemoryNode.embedding.cosine_distance(list(embedding))
        rows = (
            db.query(MemoryNode.id, distance.label("distance"))
            .filter(MemoryNode.embedding.isnot(None))
            .order_by(distance.asc(), MemoryNode.id.asc())
            .limit(limit)
            .all()
        )
        return [(node_id, clamp_similarity(1.0 - float(dist))) for node_id, dist in rows]

    def _nearest_in_process(self, db, embedding, limit: int) -> list[tuple[int, float]]:
        rows = (
            db.query(MemoryNode.id, MemoryNode.embedding)
            .filter(MemoryNode.embedding.isnot(None))
            .order_by(MemoryNode.id.asc())
            .all()
        )
        rows = [(node_id, vector) for node_id, vector in rows if vector is not None]
        if not rows:
            return []
        sims = cosine_similarities(embedding, [vector for _, vector in rows])
        scored = [
            (node_id, clamp_similarity(float(sim)))
            for (node_id, _), sim in zip(rows, sims)
        ]
        scored.sort(key=lambda item: (-item[1], item[0]))
        return scored[:limit]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert_node(
        self,
        *,
        node_type: str,
        label: str,
        body: Optional[str] = None,
        embedding: Optional[Sequence[float]] = None,
        category: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> NodeRecord:
        if embedding is not None:
            validate_embedding(embedding, self.dimension)
        label_clean = label.strip()
        db = self._session_factory()
        try:
            now = datetime.utcnow()
            row = MemoryNode(
                type=node_type,
                label=label_clean,
                label_key=normalize_label(label_clean),
                body=body,
                embedding=list(embedding) if embedding is not None else None,
                strength=config.STRENGTH_INITIAL,
                access_count=0,
                last_accessed=now,
                category=category,
                metadata_=metadata or {},
                created_at=now,
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            return _node_record(row, embedding is not None)
        finally:
            db.close()

    def update_node(self, node_id: int, values: dict) -> Optional[NodeRecord]:
        """Direct field update. Accepts body, category, metadata and embedding."""
        column_values = {}
        if "body" in values:
            column_values[MemoryNode.body] = values["body"]
        if "category" in values:
            column_values[MemoryNode.category] = values["category"]
        if "metadata" in values:
            column_values[MemoryNode.metadata_] = values["metadata"] or {}
        if "embedding" in values:
            embedding = values["embedding"]
            if embedding is not None:
                validate_embedding(embedding, self.dimension)
                embedding = list(embedding)
            column_values[MemoryNode.embedding] = embedding
        db = self._session_factory()
        try:
            if column_values:
                updated = (
                    db.query(MemoryNode)
                    .filter(MemoryNode.id == node_id)
                    .update(column_values, synchronize_session=False)
                )
                if not updated:
                    db.rollback()
                    return None
                db.commit()
            row = _node_query(db).filter(MemoryNode.id == node_id).first()
            return _node_record(*row) if row else None
        finally:
            db.close()

    def delete_node(self, node_id: int) -> bool:
        """Delete a node together with every edge touching it."""
        db = self._session_factory()
        try:
            exists = db.query(MemoryNode.id).filter(MemoryNode.id == node_id).first()
            if not exists:
                return False
            (
                db.query(MemoryEdge)
                .filter(or_(MemoryEdge.source_id == node_id, MemoryEdge.target_id == node_id))
                .delete(synchronize_session=False)
            )
            db.query(MemoryNode).filter(MemoryNode.id == node_id).delete(synchronize_session=False)
            db.commit()
            return True
        finally:
            db.close()

    def touch(self, node_id: int) -> Optional[NodeRecord]:
        db = self._session_factory()
        try:
            updated = (
                db.query(MemoryNode)
                .filter(MemoryNode.id == node_id)
                .update(
                    {
                        MemoryNode.access_count: MemoryNode.access_count + 1,
                        MemoryNode.last_accessed: datetime.utcnow(),
                        MemoryNode.strength: clamped_increment(
                            MemoryNode.strength,
                            config.TOUCH_INCREMENT,
                            config.STRENGTH_MAX,
                        ),
                    },
                    synchronize_session=False,
                )
            )
            if not updated:
                db.rollback()
                return None
            db.commit()
            row = _node_query(db).filter(MemoryNode.id == node_id).first()
            return _node_record(*row) if row else None
        finally:
            db.close()

    def decay(self, cutoff: datetime) -> int:
        """Scale strength of non-core nodes untouched since ``cutoff``; returns rows affected."""
        db = self._session_factory()
        try:
            result = (
                db.query(MemoryNode)
                .filter(
                    or_(
                        MemoryNode.category.is_(None),
                        MemoryNode.category != config.CORE_CATEGORY,
                    )
                )
                .filter(MemoryNode.last_accessed < cutoff)
                .update(
                    {
                        MemoryNode.strength: clamped_scale(
                            MemoryNode.strength,
                            config.DECAY_FACTOR,
                            config.STRENGTH_MIN,
                        )
                    },
                    synchronize_session=False,
                )
            )
            db.commit()
            return result or 0
        finally:
            db.close()

    def upsert_edge(self, source_id: int, target_id: int, relation: str) -> Optional[EdgeRecord]:
        """Create the edge at the initial weight, or reinforce it if the triple exists.

        Returns None when either endpoint does not exist.
        """
        db = self._session_factory()
        try:
            found = {
                node_id
                for (node_id,) in db.query(MemoryNode.id)
                .filter(MemoryNode.id.in_([source_id, target_id]))
                .all()
            }
            if source_id not in found or target_id not in found:
                return None
            dialect = db.get_bind().dialect.name
            if dialect == "postgresql":
                from sqlalchemy.dialects.postgresql import insert
            elif dialect == "sqlite":
                from sqlalchemy.dialects.sqlite import insert
            else:
                raise StorageUnavailable(f"edge upsert is not supported on {dialect}")
            stmt = insert(MemoryEdge).values(
                source_id=source_id,
                target_id=target_id,
                relation=relation,
                weight=config.WEIGHT_INITIAL,
                created_at=datetime.utcnow(),
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["source_id", "target_id", "relation"],
                set_={
                    "weight": clamped_increment(
                        MemoryEdge.weight,
                        config.UPSERT_WEIGHT_INCREMENT,
                        config.WEIGHT_MAX,
                    )
                },
            ).returning(MemoryEdge.id)
            edge_id = db.execute(stmt).scalar_one()
            db.commit()
            row = db.get(MemoryEdge, edge_id)
            return _edge_record(row) if row else None
        finally:
            db.close()

    def strengthen_edge(self, edge_id: int) -> Optional[EdgeRecord]:
        db = self._session_factory()
        try:
            updated = (
                db.query(MemoryEdge)
                .filter(MemoryEdge.id == edge_id)
                .update(
                    {
                        MemoryEdge.weight: clamped_increment(
                            MemoryEdge.weight,
                            config.STRENGTHEN_WEIGHT_INCREMENT,
                            config.WEIGHT_MAX,
                        )
                    },
                    synchronize_session=False,
                )
            )
            if not updated:
                db.rollback()
                return None
            db.commit()
            row = db.get(MemoryEdge, edge_id)
            return _edge_record(row) if row else None
        finally:
            db.close()


class NullGraphStore:
    """Stand-in used when the engine is built without a store.

    Reads return empty results; writes raise StorageUnavailable.
    """

    live = False
    dimension = config.EMBEDDING_DIM

    def _unavailable(self, *args, **kwargs):
        raise StorageUnavailable("no graph store configured")

    def get_node(self, node_id: int) -> Optional[NodeRecord]:
        return None

    def get_nodes(self, node_ids: Iterable[int]) -> dict[int, NodeRecord]:
        return {}

    def find_by_label(self, label: str, node_type: Optional[str] = None) -> Optional[NodeRecord]:
        return None

    def core_nodes(self) -> list[NodeRecord]:
        return []

    def list_nodes(self) -> list[NodeRecord]:
        return []

    def list_edges(self) -> list[EdgeRecord]:
        return []

    def get_edge(self, edge_id: int) -> Optional[EdgeRecord]:
        return None

    def incident_edges(self, node_id: int) -> list[EdgeRecord]:
        return []

    def edges_among(self, node_ids: Iterable[int]) -> list[EdgeRecord]:
        return []

    def nearest(self, embedding: Sequence[float], limit: int) -> list[ScoredNode]:
        return []

    insert_node = _unavailable
    update_node = _unavailable
    delete_node = _unavailable
    touch = _unavailable
    decay = _unavailable
    upsert_edge = _unavailable
    strengthen_edge = _unavailable


# Store calls that change rows
MUTATING_CALLS = frozenset(
    {"insert_node", "update_node", "delete_node", "touch", "decay", "upsert_edge", "strengthen_edge"}
)


async def run_store_call(fn, *args, timeout: float, **kwargs):
    """Run a synchronous store call off the event loop, bounded by ``timeout``.

    A timeout stops the wait, not the worker thread, so a timed-out write may
    still commit afterwards. Timeouts on ``MUTATING_CALLS`` are raised as
    non-retryable; retrying a touch or upsert blindly could apply it twice.
    """
    try:
        return await asyncio.wait_for(asyncio.to_thread(fn, *args, **kwargs), timeout=timeout)
    except asyncio.TimeoutError as exc:
        mutating = fn.__name__ in MUTATING_CALLS
        logger.warning(
            "graph_store_timeout",
            extra={"call": fn.__name__, "timeout": timeout, "mutating": mutating},
        )
        raise StorageTimeout(
            f"graph store call {fn.__name__} timed out",
            retryable=not mutating,
        ) from exc
    except (OperationalError, InterfaceError) as exc:
        logger.warning("graph_store_error", extra={"call": fn.__name__, "error": type(exc).__name__})
        raise StorageUnavailable(f"graph store call {fn.__name__} failed", retryable=True) from exc


class AsyncGraphStore:
    """Awaitable view of a synchronous store; every call carries the storage timeout."""

    def __init__(self, store, timeout: float = config.STORAGE_TIMEOUT_SECONDS):
        self._store = store
        self.timeout = timeout

    @property
    def live(self) -> bool:
        return self._store.live

    @property
    def dimension(self) -> int:
        return self._store.dimension

    def __getattr__(self, name: str):
        target = getattr(self._store, name)
        if not callable(target):
            return target

        async def call(*args, **kwargs):
            return await run_store_call(target, *args, timeout=self.timeout, **kwargs)

        call.__name__ = name
        return call


__all__ = [
    "SqlGraphStore",
    "NullGraphStore",
    "AsyncGraphStore",
    "run_store_call",
    "MUTATING_CALLS",
    "normalize_label",
    "clamped_increment",
    "clamped_scale",
    "cosine_similarities",
]
