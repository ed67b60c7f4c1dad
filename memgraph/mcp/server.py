"""
MCP server wiring and tool registration.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Optional

from fastmcp import FastMCP

import memgraph.config as config
from memgraph.services import graph_tools

READ_ONLY_TOOL_ANNOTATIONS = {"readOnlyHint": True}
DESTRUCTIVE_TOOL_ANNOTATIONS = {"destructiveHint": True}

mcp = FastMCP("memgraph")

_REGISTERED_TOOLS: list[tuple[Callable[..., Any], tuple[Any, ...], dict[str, Any]]] = []
_TOOL_REGISTRY_LOCK = threading.Lock()


def mcp_tool(*args, **kwargs):
    """Register a tool with FastMCP and keep a local registry for rebinding."""
    def decorator(fn: Callable[..., Any]):
        _REGISTERED_TOOLS.append((fn, args, kwargs))
        mcp.tool(*args, **kwargs)(fn)
        return fn
    return decorator


def _rebind_tool_registry(reason: str) -> None:
    with _TOOL_REGISTRY_LOCK:
        for fn, args, kwargs in _REGISTERED_TOOLS:
            mcp.tool(*args, **kwargs)(fn)
        config.logger.warning(
            "tool_registry_rebind",
            extra={"reason": reason, "tool_count": len(_REGISTERED_TOOLS)},
        )


async def tool_inventory_status(refresh_if_empty: bool = False, reason: str = "") -> dict:
    """Return tool inventory details and optionally rebind when empty."""
    tools = await mcp.get_tools()
    tool_names = sorted(tools.keys())

    refreshed = False
    if refresh_if_empty and not tool_names:
        refreshed = True
        _rebind_tool_registry(reason or "inventory_empty")
        tools = await mcp.get_tools()
        tool_names = sorted(tools.keys())

    return {
        "tool_count": len(tool_names),
        "tools": tool_names,
        "refreshed": refreshed,
    }


@mcp_tool(annotations=READ_ONLY_TOOL_ANNOTATIONS)
async def graph_activate(
    query: str,
    top_k: int = config.DEFAULT_TOP_K,
    max_hops: int = config.DEFAULT_MAX_HOPS,
    reinforce: bool = False,
) -> dict:
    """Recall memories associated with a query by spreading activation through the graph."""
    return await graph_tools.graph_activate(
        query=query,
        top_k=top_k,
        max_hops=max_hops,
        reinforce=reinforce,
    )


@mcp_tool()
async def graph_create_node(
    type: str,
    label: str,
    body: Optional[str] = None,
    category: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> dict:
    """Store a new memory node. Use category="core" for memories that must never decay."""
    return await graph_tools.graph_create_node(
        type=type,
        label=label,
        body=body,
        category=category,
        metadata=metadata,
    )


@mcp_tool()
async def graph_touch(node_id: int) -> dict:
    return await graph_tools.graph_touch(node_id=node_id)


@mcp_tool()
async def graph_upsert_edge(source_id: int, target_id: int, relation: str) -> dict:
    """Link two nodes, or reinforce the link if it already exists."""
    return await graph_tools.graph_upsert_edge(
        source_id=source_id,
        target_id=target_id,
        relation=relation,
    )


@mcp_tool()
async def graph_strengthen_edge(edge_id: int) -> dict:
    return await graph_tools.graph_strengthen_edge(edge_id=edge_id)


@mcp_tool()
async def graph_reinforce(node_ids: list[int]) -> dict:
    """Touch co-activated nodes and strengthen the edges between them."""
    return await graph_tools.graph_reinforce(node_ids=node_ids)


@mcp_tool()
async def graph_track_tool(tool_name: str) -> dict:
    return await graph_tools.graph_track_tool(tool_name=tool_name)


@mcp_tool()
async def graph_ingest(entities: list[dict], relations: Optional[list[dict]] = None) -> dict:
    """Merge extracted entities ({type, label, body}) and relations ({source, target, relation})."""
    return await graph_tools.graph_ingest(entities=entities, relations=relations)


@mcp_tool(annotations=DESTRUCTIVE_TOOL_ANNOTATIONS)
async def graph_delete_node(node_id: int) -> dict:
    return await graph_tools.graph_delete_node(node_id=node_id)


@mcp_tool(annotations=READ_ONLY_TOOL_ANNOTATIONS)
async def graph_list() -> dict:
    return await graph_tools.graph_list()


mcp_stream_app = mcp.http_app(
    path="/",
    transport="streamable-http",
    stateless_http=True,
    json_response=True,
)


class MCPRouteNormalizerASGI:
    """Pure ASGI middleware - no response buffering, SSE-safe."""
    def __init__(self, wrapped_app):
        self.wrapped_app = wrapped_app

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http" and scope.get("path") == "/mcp":
            scope = dict(scope)
            scope["path"] = "/mcp/"
        await self.wrapped_app(scope, receive, send)
