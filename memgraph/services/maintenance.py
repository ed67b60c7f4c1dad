"""
Background maintenance: strength decay for nodes nobody has touched lately.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Awaitable, Callable

import memgraph.config as config

logger = config.logger


def decay_cutoff(now: datetime, grace_seconds: int = config.DECAY_GRACE_SECONDS) -> datetime:
    return now - timedelta(seconds=grace_seconds)


class DecaySweeper:
    """Runs decay sweeps one at a time; an overlapping request is skipped, not queued."""

    def __init__(self, store, grace_seconds: int = config.DECAY_GRACE_SECONDS):
        self.store = store
        self.grace_seconds = grace_seconds
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    async def sweep(self) -> dict:
        if self._lock.locked():
            logger.info("decay_sweep_skipped", extra={"reason": "sweep_in_progress"})
            return {"status": "skipped", "reason": "sweep_in_progress"}
        async with self._lock:
            cutoff = decay_cutoff(datetime.utcnow(), self.grace_seconds)
            decayed = await self.store.decay(cutoff)
        logger.info("decay_sweep_complete", extra={"decayed": decayed})
        return {"status": "ok", "decayed": decayed, "cutoff": cutoff.isoformat()}


async def decay_loop(
    run_sweep: Callable[[], Awaitable[dict]],
    interval_seconds: int = config.DECAY_INTERVAL_SECONDS,
) -> None:
    if interval_seconds <= 0:
        return
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await run_sweep()
        except Exception as exc:
            logger.warning(f"Decay sweep error: {exc}")


__all__ = ["DecaySweeper", "decay_loop", "decay_cutoff"]
