"""
Root endpoint with service metadata.
"""

from __future__ import annotations

from fastapi import APIRouter

import memgraph.config as config


router = APIRouter()


@router.get("/")
async def root():
    """Root endpoint with service info."""
    return {
        "service": "memgraph",
        "version": "0.1.0",
        "description": "Associative memory graph with spreading activation recall",
        "embedding_model": config.EMBEDDING_MODEL,
        "endpoints": {
            "health": "/health",
            "health_deps": "/health/deps",
            "graph": "/graph",
            "activate": "/graph/activate",
            "mcp": "/mcp",
        },
    }
