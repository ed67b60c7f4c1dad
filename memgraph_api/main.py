"""
Standalone FastAPI app wiring for memgraph.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI

import memgraph.config as config
from memgraph.db import GraphDatabase, init_db
from memgraph.mcp import MCPRouteNormalizerASGI, mcp_stream_app
from memgraph.services import graph_tools
from memgraph.services.embeddings import build_embedding_provider
from memgraph.services.graph_engine import GraphEngine
from memgraph.services.maintenance import decay_loop
from memgraph_api.middleware import configure_middleware, register_exception_handlers
from memgraph_api.routes.graph import router as graph_router
from memgraph_api.routes.health import router as health_router
from memgraph_api.routes.root import router as root_router


decay_task = None


def build_engine(database: GraphDatabase) -> GraphEngine:
    """Engine over ``database`` and the configured embedding provider."""
    return GraphEngine(
        database.graph_store(),
        build_embedding_provider(),
        storage_timeout=config.STORAGE_TIMEOUT_SECONDS,
        activation_timeout=config.ACTIVATION_TIMEOUT_SECONDS,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize on startup, cleanup on shutdown."""
    global decay_task
    database = init_db()
    app.state.database = database
    engine = build_engine(database)
    graph_tools.set_engine(engine)
    if config.DECAY_INTERVAL_SECONDS > 0:
        decay_task = asyncio.create_task(
            decay_loop(engine.decay_sweep, config.DECAY_INTERVAL_SECONDS)
        )
    try:
        async with mcp_stream_app.lifespan(mcp_stream_app):
            yield
    finally:
        if decay_task:
            decay_task.cancel()
            try:
                await decay_task
            except asyncio.CancelledError:
                pass
            decay_task = None
        graph_tools.set_engine(None)
        app.state.database = None
        database.dispose()


app = FastAPI(title="memgraph", redirect_slashes=False, lifespan=lifespan)
configure_middleware(app)
register_exception_handlers(app)

app.include_router(health_router)
app.include_router(root_router)
app.include_router(graph_router)

app.mount("/mcp/", mcp_stream_app)


# =============================================================================
# ASGI Application (module-level for production deployment)
# =============================================================================

asgi_app = MCPRouteNormalizerASGI(app)
