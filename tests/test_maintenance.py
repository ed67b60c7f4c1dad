import asyncio
from datetime import datetime, timedelta

import pytest

from memgraph.models import MemoryNode
from memgraph.services import maintenance
from memgraph.services.maintenance import DecaySweeper, decay_cutoff, decay_loop


def _age(session_factory, node_id, hours):
    db = session_factory()
    try:
        db.query(MemoryNode).filter(MemoryNode.id == node_id).update(
            {"last_accessed": datetime.utcnow() - timedelta(hours=hours)}
        )
        db.commit()
    finally:
        db.close()


def test_decay_sweep_reports_decayed_count(graph, store, session_factory):
    old = store.insert_node(node_type="memory", label="old")
    core = store.insert_node(node_type="memory", label="me", category="core")
    store.insert_node(node_type="memory", label="fresh")
    _age(session_factory, old.id, 5)
    _age(session_factory, core.id, 5)

    result = asyncio.run(graph.decay_sweep())

    assert result["status"] == "ok"
    assert result["decayed"] == 1
    assert store.get_node(old.id).strength == pytest.approx(0.995)
    assert store.get_node(core.id).strength == pytest.approx(1.0)


class GatedStore:
    """Decay call that blocks until the test releases it."""

    def __init__(self):
        self.release = None
        self.calls = 0

    async def decay(self, cutoff):
        self.calls += 1
        await self.release.wait()
        return 3


def test_overlapping_sweep_is_skipped():
    store = GatedStore()
    sweeper = DecaySweeper(store, grace_seconds=60)

    async def scenario():
        store.release = asyncio.Event()
        first = asyncio.create_task(sweeper.sweep())
        await asyncio.sleep(0)
        assert sweeper.running is True
        skipped = await sweeper.sweep()
        store.release.set()
        return skipped, await first

    skipped, first = asyncio.run(scenario())

    assert skipped == {"status": "skipped", "reason": "sweep_in_progress"}
    assert first["status"] == "ok"
    assert first["decayed"] == 3
    assert store.calls == 1
    assert sweeper.running is False


def test_concurrent_sweeps_run_once(graph, store, session_factory):
    node = store.insert_node(node_type="memory", label="old")
    _age(session_factory, node.id, 2)

    async def both():
        return await asyncio.gather(graph.decay_sweep(), graph.decay_sweep())

    results = asyncio.run(both())

    statuses = sorted(result["status"] for result in results)
    assert statuses == ["ok", "skipped"]
    assert store.get_node(node.id).strength == pytest.approx(0.995)


def test_decay_cutoff_uses_grace_period():
    now = datetime(2026, 1, 1, 12, 0, 0)
    assert decay_cutoff(now, 3600) == datetime(2026, 1, 1, 11, 0, 0)


class StopLoop(BaseException):
    pass


def test_decay_loop_survives_failed_sweeps(monkeypatch):
    calls = []

    async def flaky_sweep():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("store offline")
        if len(calls) >= 3:
            raise StopLoop()
        return {"status": "ok", "decayed": 0}

    real_sleep = asyncio.sleep

    async def fast_sleep(_seconds):
        await real_sleep(0)

    monkeypatch.setattr(maintenance.asyncio, "sleep", fast_sleep)

    with pytest.raises(StopLoop):
        asyncio.run(decay_loop(flaky_sweep, interval_seconds=60))
    assert len(calls) == 3


def test_decay_loop_disabled_with_zero_interval():
    assert asyncio.run(decay_loop(lambda: None, interval_seconds=0)) is None


def test_sweeper_default_grace(store):
    assert DecaySweeper(store).grace_seconds == 3600
