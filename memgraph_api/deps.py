"""
Dependency helpers for the standalone FastAPI app.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Request

from memgraph.db import GraphDatabase
from memgraph.services import graph_tools
from memgraph.services.graph_engine import GraphEngine


def get_graph_engine() -> GraphEngine:
    return graph_tools.get_engine()


def get_database(request: Request) -> Optional[GraphDatabase]:
    """Database opened by the lifespan, or None before startup."""
    return getattr(request.app.state, "database", None)
