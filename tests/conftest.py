import hashlib
import math
import os

os.environ.setdefault("DB_BACKEND", "sqlite")
os.environ.setdefault("VECTOR_BACKEND", "none")
os.environ.setdefault("EMBEDDING_PROVIDER", "none")
os.environ.setdefault("DECAY_INTERVAL_SECONDS", "0")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from memgraph.errors import EmbeddingUnavailable
from memgraph.models import Base
from memgraph.services import graph_tools
from memgraph.services.graph_engine import GraphEngine
from memgraph.services.graph_store import SqlGraphStore

DIM = 16


def unit(index: int, dim: int = DIM) -> list[float]:
    vector = [0.0] * dim
    vector[index] = 1.0
    return vector


def blend(index_a: int, index_b: int, cos_a: float, dim: int = DIM) -> list[float]:
    """Unit vector with cosine ``cos_a`` to unit(index_a), the rest along unit(index_b)."""
    vector = [0.0] * dim
    vector[index_a] = cos_a
    vector[index_b] = math.sqrt(max(0.0, 1.0 - cos_a * cos_a))
    return vector


class FakeEmbedder:
    """Deterministic provider: explicit vectors by text, hashed vectors otherwise."""

    def __init__(self, vectors=None, dim: int = DIM):
        self.vectors = dict(vectors or {})
        self.dim = dim
        self.calls = []
        self.fail = False

    def _vector(self, text: str) -> list[float]:
        if text in self.vectors:
            return list(self.vectors[text])
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        return [(digest[i] / 127.5) - 1.0 for i in range(self.dim)]

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail:
            raise EmbeddingUnavailable("fake provider down")
        return self._vector(text)

    async def embed_batch(self, texts) -> list[list[float]]:
        self.calls.extend(texts)
        if not texts:
            return []
        if self.fail:
            raise EmbeddingUnavailable("fake provider down")
        return [self._vector(text) for text in texts]

    def status(self) -> dict:
        return {"provider": "fake", "configured": True}


@pytest.fixture
def session_factory(tmp_path):
    db_path = tmp_path / "graph.sqlite"
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    try:
        yield SessionLocal
    finally:
        engine.dispose()


@pytest.fixture
def store(session_factory):
    return SqlGraphStore(session_factory, dimension=DIM)


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def graph(store, embedder):
    return GraphEngine(store, embedder)


@pytest.fixture
def bound_graph(graph):
    graph_tools.set_engine(graph)
    try:
        yield graph
    finally:
        graph_tools.set_engine(None)
