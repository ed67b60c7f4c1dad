import asyncio

import pytest

from conftest import FakeEmbedder, blend, unit
from memgraph.errors import EmbeddingUnavailable, StorageUnavailable
from memgraph.services.graph_engine import GraphEngine


@pytest.fixture
def ingest_embedder():
    return FakeEmbedder(
        {
            "Python: a programming language": unit(0),
            "FastAPI: web framework": unit(1),
            "Py lang: snake-named language": blend(0, 4, 0.99),
            "Rust": unit(7),
            "Postgres: database": unit(2),
        }
    )


def test_ingest_creates_nodes_and_links(store, ingest_embedder):
    graph = GraphEngine(store, ingest_embedder)

    result = asyncio.run(
        graph.ingest(
            [
                {"type": "concept", "label": "Python", "body": "a programming language"},
                {"type": "concept", "label": "FastAPI", "body": "web framework"},
            ],
            [{"source": "FastAPI", "target": "python", "relation": "uses"}],
        )
    )

    assert result == {"nodes_created": 2, "nodes_merged": 0, "edges_upserted": 1}
    python = store.find_by_label("python", "concept")
    fastapi = store.find_by_label("fastapi", "concept")
    edges = store.list_edges()
    assert [(e.source_id, e.target_id, e.relation) for e in edges] == [(fastapi.id, python.id, "uses")]
    assert python.has_embedding and fastapi.has_embedding


def test_ingest_merges_by_label_and_by_similarity(store, ingest_embedder):
    graph = GraphEngine(store, ingest_embedder)
    asyncio.run(graph.ingest([{"type": "concept", "label": "Python", "body": "a programming language"}]))

    by_label = asyncio.run(graph.ingest([{"type": "concept", "label": "PYTHON", "body": "dynamically typed"}]))
    assert by_label == {"nodes_created": 0, "nodes_merged": 1, "edges_upserted": 0}
    python = store.find_by_label("python", "concept")
    assert python.body == "a programming language\ndynamically typed"
    assert python.access_count == 1

    by_similarity = asyncio.run(
        graph.ingest([{"type": "concept", "label": "Py lang", "body": "snake-named language"}])
    )
    assert by_similarity["nodes_merged"] == 1
    assert by_similarity["nodes_created"] == 0
    assert len(store.list_nodes()) == 1
    assert store.get_node(python.id).body.endswith("\nsnake-named language")


def test_ingest_skips_bad_items_and_unresolved_relations(store, ingest_embedder):
    graph = GraphEngine(store, ingest_embedder)

    result = asyncio.run(
        graph.ingest(
            [
                {"type": "concept", "label": "", "body": "no label"},
                "not an entity",
                {"type": "concept", "label": "Postgres", "body": "database"},
            ],
            [
                {"source": "Postgres", "target": "Rust", "relation": "relates_to"},
                {"source": "Postgres", "target": "Postgres", "relation": "relates_to"},
                {"source": "", "target": "Postgres"},
            ],
        )
    )

    assert result == {"nodes_created": 1, "nodes_merged": 0, "edges_upserted": 0}
    assert store.list_edges() == []


def test_ingest_relation_resolves_existing_node_by_similarity(store, ingest_embedder):
    graph = GraphEngine(store, ingest_embedder)
    rust = store.insert_node(node_type="concept", label="Rust language", embedding=blend(7, 8, 0.9))

    result = asyncio.run(
        graph.ingest(
            [{"type": "concept", "label": "Postgres", "body": "database"}],
            [{"source": "Postgres", "target": "Rust", "relation": "relates_to"}],
        )
    )

    assert result["edges_upserted"] == 1
    postgres = store.find_by_label("postgres")
    edge = store.list_edges()[0]
    assert (edge.source_id, edge.target_id) == (postgres.id, rust.id)


def test_ingest_embedding_outage_fails_the_call(store):
    embedder = FakeEmbedder()
    embedder.fail = True
    graph = GraphEngine(store, embedder)

    with pytest.raises(EmbeddingUnavailable):
        asyncio.run(graph.ingest([{"type": "concept", "label": "X", "body": "y"}]))
    assert store.list_nodes() == []


def test_track_tool_use_creates_then_touches(graph):
    first = asyncio.run(graph.track_tool_use("Calculator"))
    assert first.type == "tool"
    assert first.access_count == 0

    second = asyncio.run(graph.track_tool_use("calculator"))
    assert second.id == first.id
    assert second.access_count == 1
    assert second.strength == pytest.approx(1.05)


def test_track_tool_use_without_embedder_skips_embedding(store):
    graph = GraphEngine(store)
    node = asyncio.run(graph.track_tool_use("Search"))
    assert node.has_embedding is False


def test_track_tool_use_requires_store():
    with pytest.raises(StorageUnavailable):
        asyncio.run(GraphEngine().track_tool_use("Search"))
