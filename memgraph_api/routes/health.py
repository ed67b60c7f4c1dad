"""
Health and dependency endpoints.
"""

from __future__ import annotations

import time
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

import memgraph.config as config
from memgraph.db import GraphDatabase
from memgraph.errors import EmbeddingUnavailable
from memgraph.mcp import tool_inventory_status
from memgraph.services.graph_engine import GraphEngine
from memgraph_api.deps import get_database, get_graph_engine


router = APIRouter()


def _check_db_health(database: Optional[GraphDatabase]) -> dict:
    if database is None:
        return {"ok": False, "error": "db_not_initialized"}
    return database.health()


async def _check_embedding_health(engine: GraphEngine, check_external: bool) -> dict:
    provider_status = engine.embedder.status()
    embedding_status = {
        "status": "unknown",
        "provider": provider_status.get("provider"),
        "cooldown": provider_status.get("cooldown"),
        "checked": False,
    }

    if not engine.has_embedder:
        embedding_status["status"] = "disabled"
        return embedding_status

    if (provider_status.get("cooldown") or {}).get("open"):
        embedding_status["status"] = "cooldown"
        return embedding_status

    if check_external and config.EMBEDDING_HEALTHCHECK_ENABLED:
        embedding_status["checked"] = True
        start = time.time()
        try:
            await engine.embed_query("healthcheck")
            embedding_status["status"] = "ok"
            embedding_status["latency_ms"] = int((time.time() - start) * 1000)
        except EmbeddingUnavailable as exc:
            embedding_status["status"] = "error"
            embedding_status["error"] = str(exc)
        return embedding_status

    embedding_status["status"] = "skipped" if check_external else "ready"
    return embedding_status


def _require_db(db_health: dict, **detail) -> None:
    if not db_health.get("ok"):
        raise HTTPException(status_code=503, detail={"database": db_health, **detail})


@router.get("/health")
async def health(
    engine: GraphEngine = Depends(get_graph_engine),
    database: Optional[GraphDatabase] = Depends(get_database),
):
    """Health check endpoint."""
    db_health = _check_db_health(database)
    embedding_status = await _check_embedding_health(engine, check_external=False)
    _require_db(db_health, embedding_provider=embedding_status)

    return {
        "status": "healthy",
        "service": "memgraph",
        "version": "0.1.0",
        "database": db_health,
        "embedding_provider": embedding_status,
        "decay_sweep_running": engine.sweeper.running,
    }


@router.get("/health/deps")
async def health_deps(
    engine: GraphEngine = Depends(get_graph_engine),
    database: Optional[GraphDatabase] = Depends(get_database),
):
    """Dependency health checks (optional embedding provider probe)."""
    db_health = _check_db_health(database)
    _require_db(db_health)

    embedding_status = await _check_embedding_health(engine, check_external=True)
    tool_inventory = await tool_inventory_status()

    return {
        "status": "healthy",
        "service": "memgraph",
        "database": db_health,
        "embedding_provider": embedding_status,
        "tool_inventory": tool_inventory,
    }
