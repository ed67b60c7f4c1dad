import pytest

from memgraph.db import GraphDatabase
from memgraph.services.graph_store import SqlGraphStore


@pytest.fixture
def database(tmp_path):
    db = GraphDatabase(
        f"sqlite:///{tmp_path / 'graph.sqlite'}",
        backend="sqlite",
        vector_backend="none",
    )
    try:
        yield db
    finally:
        db.dispose()


def test_stale_schema_is_rejected_without_auto_migrate(database):
    with pytest.raises(RuntimeError, match="out of date"):
        database.migrate(auto_migrate=False)


def test_migrated_database_serves_a_graph_store(database):
    database.migrate(auto_migrate=True)

    health = database.health()
    assert health["ok"] is True
    assert health["schema_revision"] == "0001_memory_graph"
    assert health["pgvector_installed"] is None

    store = database.graph_store()
    assert isinstance(store, SqlGraphStore)
    node = store.insert_node(node_type="concept", label="Deploy")
    assert store.get_node(node.id).label == "Deploy"

    # Second call is a no-op at head
    database.migrate(auto_migrate=False)
