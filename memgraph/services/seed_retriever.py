"""
Seed retrieval: embed a query and pull the most similar nodes.
"""

from __future__ import annotations

from typing import List, Sequence

import memgraph.config as config
from memgraph.errors import EmbeddingUnavailable
from memgraph.records import ScoredNode
from memgraph.services.embeddings import DisabledEmbeddingProvider

logger = config.logger


class SeedRetriever:
    def __init__(self, store, embedder=None):
        self.store = store
        self.embedder = embedder or DisabledEmbeddingProvider()

    async def embed_query(self, text: str) -> List[float]:
        vector = await self.embedder.embed(text)
        if not vector:
            raise EmbeddingUnavailable("embedding provider returned an empty vector")
        return vector

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        return await self.embedder.embed_batch(list(texts))

    async def nearest(self, vector: Sequence[float], limit: int) -> List[ScoredNode]:
        return await self.store.nearest(vector, limit)

    async def seed(self, query: str, limit: int) -> List[ScoredNode]:
        """Top-``limit`` nodes for ``query``, ordered by similarity desc then id asc."""
        vector = await self.embed_query(query)
        seeds = await self.nearest(vector, limit)
        logger.debug("seed_retrieved", extra={"limit": limit, "seed_count": len(seeds)})
        return seeds


class EmptySeedRetriever(SeedRetriever):
    """Retriever for an engine without a store: seeds nothing and never calls the provider."""

    async def nearest(self, vector: Sequence[float], limit: int) -> List[ScoredNode]:
        return []

    async def seed(self, query: str, limit: int) -> List[ScoredNode]:
        return []


__all__ = ["SeedRetriever", "EmptySeedRetriever"]
