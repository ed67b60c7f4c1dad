from datetime import datetime, timedelta

import pytest

from conftest import DIM, blend, unit
from memgraph.errors import ValidationIssue
from memgraph.models import MemoryEdge, MemoryNode
from memgraph.services.graph_store import cosine_similarities, normalize_label


def _set_node(session_factory, node_id, **values):
    db = session_factory()
    try:
        db.query(MemoryNode).filter(MemoryNode.id == node_id).update(values)
        db.commit()
    finally:
        db.close()


def _set_edge_weight(session_factory, edge_id, weight):
    db = session_factory()
    try:
        db.query(MemoryEdge).filter(MemoryEdge.id == edge_id).update({"weight": weight})
        db.commit()
    finally:
        db.close()


def test_insert_node_defaults(store):
    node = store.insert_node(node_type="concept", label="  Python ", body="a language", embedding=unit(0))
    assert node.label == "Python"
    assert node.strength == 1.0
    assert node.access_count == 0
    assert node.has_embedding is True
    assert node.metadata == {}

    found = store.find_by_label("PYTHON", "concept")
    assert found is not None and found.id == node.id
    assert store.find_by_label("python", "tool") is None


def test_insert_node_rejects_wrong_dimension(store):
    with pytest.raises(ValidationIssue) as excinfo:
        store.insert_node(node_type="concept", label="Bad", embedding=[1.0, 0.0])
    assert excinfo.value.error_type == "dimension_mismatch"
    assert store.list_nodes() == []


def test_touch_increments_and_caps_strength(store, session_factory):
    node = store.insert_node(node_type="memory", label="touched")
    before = node.last_accessed

    touched = store.touch(node.id)
    assert touched.strength == pytest.approx(1.05)
    assert touched.access_count == 1
    assert touched.last_accessed >= before

    _set_node(session_factory, node.id, strength=1.98)
    capped = store.touch(node.id)
    assert capped.strength == pytest.approx(2.0)
    assert capped.access_count == 2

    again = store.touch(node.id)
    assert again.strength == pytest.approx(2.0)

    assert store.touch(9999) is None


def test_decay_skips_core_and_recent_nodes(store, session_factory):
    stale = store.insert_node(node_type="memory", label="stale")
    core = store.insert_node(node_type="memory", label="identity", category="core")
    recent = store.insert_node(node_type="memory", label="recent")
    tagged = store.insert_node(node_type="memory", label="tagged", category="project")
    old = datetime.utcnow() - timedelta(hours=2)
    for node in (stale, core, tagged):
        _set_node(session_factory, node.id, last_accessed=old)

    decayed = store.decay(datetime.utcnow() - timedelta(seconds=3600))

    assert decayed == 2
    assert store.get_node(stale.id).strength == pytest.approx(0.995)
    assert store.get_node(tagged.id).strength == pytest.approx(0.995)
    assert store.get_node(core.id).strength == pytest.approx(1.0)
    assert store.get_node(recent.id).strength == pytest.approx(1.0)


def test_decay_never_goes_below_floor(store, session_factory):
    node = store.insert_node(node_type="memory", label="faint")
    _set_node(
        session_factory,
        node.id,
        strength=0.0101,
        last_accessed=datetime.utcnow() - timedelta(days=3),
    )
    cutoff = datetime.utcnow() - timedelta(seconds=3600)
    for _ in range(5):
        store.decay(cutoff)
    assert store.get_node(node.id).strength == pytest.approx(0.01)


def test_upsert_edge_is_unique_and_capped(store, session_factory):
    a = store.insert_node(node_type="concept", label="A")
    b = store.insert_node(node_type="concept", label="B")

    first = store.upsert_edge(a.id, b.id, "uses")
    assert first.weight == pytest.approx(1.0)

    second = store.upsert_edge(a.id, b.id, "uses")
    assert second.id == first.id
    assert second.weight == pytest.approx(1.1)
    assert len(store.list_edges()) == 1

    other = store.upsert_edge(a.id, b.id, "relates_to")
    assert other.id != first.id

    _set_edge_weight(session_factory, first.id, 2.95)
    capped = store.upsert_edge(a.id, b.id, "uses")
    assert capped.weight == pytest.approx(3.0)

    assert store.upsert_edge(a.id, 9999, "uses") is None


def test_strengthen_edge_caps_weight(store, session_factory):
    a = store.insert_node(node_type="concept", label="A")
    b = store.insert_node(node_type="concept", label="B")
    edge = store.upsert_edge(a.id, b.id, "uses")

    assert store.strengthen_edge(edge.id).weight == pytest.approx(1.05)
    _set_edge_weight(session_factory, edge.id, 2.99)
    assert store.strengthen_edge(edge.id).weight == pytest.approx(3.0)
    assert store.strengthen_edge(9999) is None


def test_delete_node_removes_incident_edges(store):
    a = store.insert_node(node_type="concept", label="A")
    b = store.insert_node(node_type="concept", label="B")
    c = store.insert_node(node_type="concept", label="C")
    store.upsert_edge(a.id, b.id, "uses")
    store.upsert_edge(c.id, a.id, "uses")
    keep = store.upsert_edge(b.id, c.id, "uses")

    assert store.delete_node(a.id) is True
    assert store.get_node(a.id) is None
    assert [edge.id for edge in store.list_edges()] == [keep.id]
    assert store.delete_node(a.id) is False


def test_nearest_orders_by_similarity_then_id(store):
    far = store.insert_node(node_type="concept", label="far", embedding=unit(3))
    tie_a = store.insert_node(node_type="concept", label="tie-a", embedding=blend(0, 1, 0.6))
    tie_b = store.insert_node(node_type="concept", label="tie-b", embedding=blend(0, 2, 0.6))
    best = store.insert_node(node_type="concept", label="best", embedding=unit(0))
    store.insert_node(node_type="concept", label="no-embedding")

    results = store.nearest(unit(0), 10)

    assert [item.node.id for item in results] == [best.id, tie_a.id, tie_b.id, far.id]
    assert results[0].similarity == pytest.approx(1.0)
    assert results[1].similarity == pytest.approx(0.6)
    assert results[3].similarity == pytest.approx(0.0)
    assert store.nearest(unit(0), 2) == results[:2]


def test_nearest_clamps_negative_similarity(store):
    store.insert_node(node_type="concept", label="opposite", embedding=[-v for v in unit(0)])
    results = store.nearest(unit(0), 5)
    assert results[0].similarity == 0.0


def test_edges_among_and_incident_edges(store):
    a = store.insert_node(node_type="concept", label="A")
    b = store.insert_node(node_type="concept", label="B")
    c = store.insert_node(node_type="concept", label="C")
    ab = store.upsert_edge(a.id, b.id, "uses")
    bc = store.upsert_edge(b.id, c.id, "uses")
    ca = store.upsert_edge(c.id, a.id, "uses")

    assert [edge.id for edge in store.edges_among([a.id, b.id])] == [ab.id]
    assert [edge.id for edge in store.incident_edges(a.id)] == [ab.id, ca.id]
    assert [edge.id for edge in store.incident_edges(b.id)] == [ab.id, bc.id]
    assert store.edges_among([a.id]) == []


def test_core_nodes_newest_first(store, session_factory):
    first = store.insert_node(node_type="memory", label="first", category="core")
    second = store.insert_node(node_type="memory", label="second", category="core")
    store.insert_node(node_type="memory", label="plain")
    _set_node(session_factory, first.id, created_at=datetime.utcnow() - timedelta(days=1))

    assert [node.id for node in store.core_nodes()] == [second.id, first.id]


def test_similarity_helpers():
    sims = cosine_similarities(unit(0), [unit(0), unit(1), [0.0] * DIM])
    assert list(sims) == pytest.approx([1.0, 0.0, 0.0])
    assert normalize_label("  MixedCase ") == "mixedcase"
