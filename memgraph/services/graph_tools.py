"""
Dict-returning graph operations shared by the MCP server.

Each tool returns ``{"status": "ok", ...}`` on success. Validation problems,
missing nodes/edges and unavailable dependencies come back as
``{"status": "error", ...}`` payloads instead of raising into the transport.
"""

from __future__ import annotations

import threading
from functools import wraps
from typing import Awaitable, Callable, List, Optional

import memgraph.config as config
from memgraph.errors import (
    EmbeddingUnavailable,
    NotFound,
    StorageUnavailable,
    ValidationIssue,
)
from memgraph.records import serialize_activated, serialize_edge, serialize_node
from memgraph.services.graph_engine import GraphEngine

logger = config.logger

_ENGINE = None
_ENGINE_LOCK = threading.Lock()


def set_engine(engine) -> None:
    global _ENGINE
    with _ENGINE_LOCK:
        _ENGINE = engine


def get_engine():
    """Engine bound at startup; a store-less engine until then."""
    global _ENGINE
    with _ENGINE_LOCK:
        if _ENGINE is None:
            _ENGINE = GraphEngine()
        return _ENGINE


# =============================================================================
# Error payloads
# =============================================================================

def _tool_error_payload(tool_name: str, exc: ValidationIssue) -> dict:
    return {
        "status": "error",
        "error_type": "validation_error",
        "tool": tool_name,
        "field": exc.field,
        "message": str(exc),
    }


def _log_validation_issue(tool_name: str, exc: ValidationIssue, warn: bool = False) -> None:
    payload = {
        "tool": tool_name,
        "field": exc.field,
        "error_type": exc.error_type,
        "detail": str(exc),
    }
    if warn:
        logger.warning("tool_validation_error", extra=payload)
    else:
        logger.info("tool_validation_error", extra=payload)


def _tool_error_handler(fn: Callable[..., Awaitable[dict]]) -> Callable[..., Awaitable[dict]]:
    @wraps(fn)
    async def wrapper(*args, **kwargs):
        try:
            return await fn(*args, **kwargs)
        except ValidationIssue as exc:
            _log_validation_issue(fn.__name__, exc, warn=False)
            return _tool_error_payload(fn.__name__, exc)
        except NotFound as exc:
            return {
                "status": "error",
                "error_type": "not_found",
                "tool": fn.__name__,
                "message": str(exc),
            }
        except EmbeddingUnavailable as exc:
            return {
                "status": "error",
                "error_type": "embedding_unavailable",
                "tool": fn.__name__,
                "message": str(exc),
            }
        except StorageUnavailable as exc:
            return {
                "status": "error",
                "error_type": "storage_unavailable",
                "tool": fn.__name__,
                "retryable": exc.retryable,
                "message": str(exc),
            }
        except ValueError as exc:
            issue = ValidationIssue(str(exc), field="unknown", error_type="value_error")
            _log_validation_issue(fn.__name__, issue, warn=True)
            return _tool_error_payload(fn.__name__, issue)
    return wrapper


def service_tool(fn: Callable[..., Awaitable[dict]]) -> Callable[..., Awaitable[dict]]:
    return _tool_error_handler(fn)


# =============================================================================
# Tools
# =============================================================================

@service_tool
async def graph_activate(
    query: str,
    top_k: int = config.DEFAULT_TOP_K,
    max_hops: int = config.DEFAULT_MAX_HOPS,
    reinforce: bool = False,
) -> dict:
    engine = get_engine()
    results = await engine.activate(query, top_k=top_k, max_hops=max_hops)
    payload = {
        "status": "ok",
        "query": query,
        "count": len(results),
        "nodes": [serialize_activated(item) for item in results],
    }
    if reinforce and results:
        payload["reinforced"] = await engine.reinforce([item.node.id for item in results])
    return payload


@service_tool
async def graph_create_node(
    type: str,
    label: str,
    body: Optional[str] = None,
    category: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> dict:
    node = await get_engine().create_node(type, label, body, category, metadata)
    return {"status": "ok", "node": serialize_node(node)}


@service_tool
async def graph_touch(node_id: int) -> dict:
    node = await get_engine().touch(node_id)
    return {"status": "ok", "node": serialize_node(node)}


@service_tool
async def graph_upsert_edge(source_id: int, target_id: int, relation: str) -> dict:
    edge = await get_engine().upsert_edge(source_id, target_id, relation)
    return {"status": "ok", "edge": serialize_edge(edge)}


@service_tool
async def graph_strengthen_edge(edge_id: int) -> dict:
    edge = await get_engine().strengthen_edge(edge_id)
    return {"status": "ok", "edge": serialize_edge(edge)}


@service_tool
async def graph_reinforce(node_ids: List[int]) -> dict:
    counts = await get_engine().reinforce(node_ids)
    return {"status": "ok", **counts}


@service_tool
async def graph_track_tool(tool_name: str) -> dict:
    node = await get_engine().track_tool_use(tool_name)
    return {"status": "ok", "node": serialize_node(node)}


@service_tool
async def graph_ingest(entities: List[dict], relations: Optional[List[dict]] = None) -> dict:
    counts = await get_engine().ingest(entities, relations or [])
    return {"status": "ok", **counts}


@service_tool
async def graph_delete_node(node_id: int) -> dict:
    await get_engine().delete_node(node_id)
    return {"status": "ok", "deleted": node_id}


@service_tool
async def graph_list() -> dict:
    nodes, edges = await get_engine().list_graph()
    return {
        "status": "ok",
        "nodes": [serialize_node(node) for node in nodes],
        "edges": [serialize_edge(edge) for edge in edges],
    }


__all__ = [
    "get_engine",
    "set_engine",
    "service_tool",
    "graph_activate",
    "graph_create_node",
    "graph_touch",
    "graph_upsert_edge",
    "graph_strengthen_edge",
    "graph_reinforce",
    "graph_track_tool",
    "graph_ingest",
    "graph_delete_node",
    "graph_list",
]
