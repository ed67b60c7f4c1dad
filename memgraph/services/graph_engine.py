"""
GraphEngine: the async entry point for every memory-graph operation.

The engine owns the store and the embedding provider. Both are optional at
construction; a missing store becomes a NullGraphStore (reads come back
empty, writes raise StorageUnavailable) and a missing provider becomes one
that always raises EmbeddingUnavailable.
"""

from __future__ import annotations

import asyncio
from typing import Iterable, List, Optional, Sequence

import memgraph.config as config
from memgraph.errors import (
    ActivationTimeout,
    EdgeNotFound,
    NodeNotFound,
    StorageUnavailable,
    ValidationIssue,
)
from memgraph.records import ActivatedNode, EdgeRecord, NodeRecord, ScoredNode
from memgraph.services.activation import SpreadingActivation
from memgraph.services.embeddings import DisabledEmbeddingProvider, embedding_text
from memgraph.services.graph_store import AsyncGraphStore, NullGraphStore
from memgraph.services.ingest import ingest_extracted, track_tool_use
from memgraph.services.maintenance import DecaySweeper
from memgraph.services.seed_retriever import EmptySeedRetriever, SeedRetriever
from memgraph.validators import (
    clamp_int,
    validate_id,
    validate_id_list,
    validate_metadata,
    validate_optional_text,
    validate_required_text,
)

logger = config.logger

_UNSET = object()


class GraphEngine:
    def __init__(
        self,
        store=None,
        embedder=None,
        *,
        storage_timeout: float = config.STORAGE_TIMEOUT_SECONDS,
        activation_timeout: float = config.ACTIVATION_TIMEOUT_SECONDS,
    ):
        self.store = AsyncGraphStore(store if store is not None else NullGraphStore(), storage_timeout)
        self.embedder = embedder if embedder is not None else DisabledEmbeddingProvider()
        self.activation_timeout = activation_timeout
        if store is not None:
            self.retriever = SeedRetriever(self.store, self.embedder)
        else:
            self.retriever = EmptySeedRetriever(self.store, self.embedder)
        self.activation = SpreadingActivation(self.store, self.retriever)
        self.sweeper = DecaySweeper(self.store)

    @property
    def has_store(self) -> bool:
        return self.store.live

    @property
    def has_embedder(self) -> bool:
        return not isinstance(self.embedder, DisabledEmbeddingProvider)

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    async def embed_query(self, text: str) -> List[float]:
        validate_required_text(text, "text", config.MAX_QUERY_LENGTH)
        return await self.retriever.embed_query(text)

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        return await self.retriever.embed_batch(texts)

    async def nearest(self, vector: Sequence[float], limit: int = 1) -> List[ScoredNode]:
        return await self.retriever.nearest(vector, limit)

    async def seed(self, query: str, top_k: Optional[int] = None) -> List[ScoredNode]:
        validate_required_text(query, "query", config.MAX_QUERY_LENGTH)
        top_k = clamp_int(top_k, config.DEFAULT_TOP_K, 1, config.MAX_RESULT_LIMIT)
        return await self.retriever.seed(query, top_k)

    async def activate(
        self,
        query: str,
        top_k: Optional[int] = None,
        max_hops: Optional[int] = None,
    ) -> List[ActivatedNode]:
        """Seed by similarity, then spread activation across edges for up to ``max_hops`` rounds.

        Pure read: nothing is touched or strengthened. Callers that want the
        co-activation learning effect pass the result ids to ``reinforce``.
        """
        validate_required_text(query, "query", config.MAX_QUERY_LENGTH)
        top_k = clamp_int(top_k, config.DEFAULT_TOP_K, 1, config.MAX_RESULT_LIMIT)
        max_hops = clamp_int(max_hops, config.DEFAULT_MAX_HOPS, 0, config.MAX_HOPS_LIMIT)
        try:
            return await asyncio.wait_for(
                self.activation.run(query, top_k, max_hops),
                timeout=self.activation_timeout,
            )
        except asyncio.TimeoutError as exc:
            logger.warning(
                "activation_timeout",
                extra={"timeout": self.activation_timeout, "top_k": top_k, "max_hops": max_hops},
            )
            raise ActivationTimeout() from exc

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    async def list_graph(self) -> tuple[List[NodeRecord], List[EdgeRecord]]:
        nodes = await self.store.list_nodes()
        edges = await self.store.list_edges()
        return nodes, edges

    async def create_node(
        self,
        node_type: str,
        label: str,
        body: Optional[str] = None,
        category: Optional[str] = None,
        metadata: Optional[dict] = None,
        *,
        embedding: Optional[Sequence[float]] = None,
        embed: bool = True,
    ) -> NodeRecord:
        validate_required_text(node_type, "type", config.MAX_TYPE_LENGTH)
        validate_required_text(label, "label", config.MAX_LABEL_LENGTH)
        validate_optional_text(body, "body", config.MAX_TEXT_LENGTH)
        validate_optional_text(category, "category", config.MAX_TYPE_LENGTH)
        validate_metadata(metadata, "metadata")

        label = label.strip()
        if embedding is None and embed:
            embedding = await self.retriever.embed_query(embedding_text(label, body))
        node = await self.store.insert_node(
            node_type=node_type.strip(),
            label=label,
            body=body,
            embedding=embedding,
            category=category,
            metadata=metadata,
        )
        logger.info(
            "graph_node_created",
            extra={"node_id": node.id, "type": node.type, "embedded": node.has_embedding},
        )
        return node

    async def get_node(self, node_id: int) -> NodeRecord:
        validate_id(node_id, "node_id")
        node = await self.store.get_node(node_id)
        if node is None:
            raise NodeNotFound(node_id)
        return node

    async def find_by_label(self, label: str, node_type: Optional[str] = None) -> Optional[NodeRecord]:
        validate_required_text(label, "label", config.MAX_LABEL_LENGTH)
        validate_optional_text(node_type, "type", config.MAX_TYPE_LENGTH)
        return await self.store.find_by_label(label, node_type)

    async def core_nodes(self) -> List[NodeRecord]:
        return await self.store.core_nodes()

    async def update_node(
        self,
        node_id: int,
        *,
        body=_UNSET,
        category=_UNSET,
        metadata=_UNSET,
        reembed: bool = True,
    ) -> NodeRecord:
        """Update body, category or metadata in place. A changed body is re-embedded first."""
        validate_id(node_id, "node_id")
        values = {}
        if body is not _UNSET:
            validate_optional_text(body, "body", config.MAX_TEXT_LENGTH)
            values["body"] = body
        if category is not _UNSET:
            validate_optional_text(category, "category", config.MAX_TYPE_LENGTH)
            values["category"] = category
        if metadata is not _UNSET:
            validate_metadata(metadata, "metadata")
            values["metadata"] = metadata

        current = await self.store.get_node(node_id)
        if current is None:
            if not self.has_store:
                raise StorageUnavailable("no graph store configured")
            raise NodeNotFound(node_id)
        if reembed and "body" in values and values["body"] != current.body:
            values["embedding"] = await self.retriever.embed_query(
                embedding_text(current.label, values["body"])
            )

        node = await self.store.update_node(node_id, values)
        if node is None:
            raise NodeNotFound(node_id)
        logger.info("graph_node_updated", extra={"node_id": node_id, "fields": sorted(values)})
        return node

    async def delete_node(self, node_id: int) -> None:
        validate_id(node_id, "node_id")
        deleted = await self.store.delete_node(node_id)
        if not deleted:
            raise NodeNotFound(node_id)
        logger.info("graph_node_deleted", extra={"node_id": node_id})

    # ------------------------------------------------------------------
    # Strength maintenance
    # ------------------------------------------------------------------

    async def touch(self, node_id: int) -> NodeRecord:
        validate_id(node_id, "node_id")
        node = await self.store.touch(node_id)
        if node is None:
            raise NodeNotFound(node_id)
        return node

    async def decay_sweep(self) -> dict:
        return await self.sweeper.sweep()

    # ------------------------------------------------------------------
    # Edges
    # ------------------------------------------------------------------

    async def upsert_edge(self, source_id: int, target_id: int, relation: str) -> EdgeRecord:
        validate_id(source_id, "source_id")
        validate_id(target_id, "target_id")
        validate_required_text(relation, "relation", config.MAX_RELATION_LENGTH)
        if source_id == target_id:
            raise ValidationIssue(
                "an edge must connect two distinct nodes",
                field="target_id",
                error_type="self_edge",
            )
        edge = await self.store.upsert_edge(source_id, target_id, relation.strip())
        if edge is None:
            missing = source_id if await self.store.get_node(source_id) is None else target_id
            raise NodeNotFound(missing)
        logger.debug(
            "graph_edge_upserted",
            extra={"edge_id": edge.id, "relation": edge.relation, "weight": edge.weight},
        )
        return edge

    async def strengthen_edge(self, edge_id: int) -> EdgeRecord:
        validate_id(edge_id, "edge_id")
        edge = await self.store.strengthen_edge(edge_id)
        if edge is None:
            raise EdgeNotFound(edge_id)
        return edge

    async def reinforce(self, node_ids: Iterable[int]) -> dict:
        """Touch the leading nodes and strengthen every edge among the whole set."""
        node_ids = list(node_ids)
        validate_id_list(node_ids, "node_ids", config.MAX_RESULT_LIMIT)
        ordered = list(dict.fromkeys(node_ids))

        touched = 0
        for node_id in ordered[: config.REINFORCE_TOUCH_LIMIT]:
            if await self.store.touch(node_id) is not None:
                touched += 1

        strengthened = 0
        if len(ordered) >= 2:
            for edge in await self.store.edges_among(ordered):
                if await self.store.strengthen_edge(edge.id) is not None:
                    strengthened += 1
        logger.debug("graph_reinforced", extra={"touched": touched, "edges_strengthened": strengthened})
        return {"nodes_touched": touched, "edges_strengthened": strengthened}

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    async def ingest(self, entities: Sequence[dict], relations: Sequence[dict] = ()) -> dict:
        return await ingest_extracted(self, entities, relations)

    async def track_tool_use(self, tool_name: str) -> NodeRecord:
        return await track_tool_use(self, tool_name)


__all__ = ["GraphEngine"]
