"""
Graph HTTP endpoints.
"""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

import memgraph.config as config
from memgraph.errors import ValidationIssue
from memgraph.records import serialize_activated, serialize_edge, serialize_node
from memgraph.services.graph_engine import GraphEngine
from memgraph_api.deps import get_graph_engine


router = APIRouter(prefix="/graph")


class NodeCreate(BaseModel):
    type: str
    label: str
    body: Optional[str] = None
    category: Optional[str] = None
    metadata: Optional[dict] = None


class NodeUpdate(BaseModel):
    body: Optional[str] = None
    category: Optional[str] = None
    metadata: Optional[dict] = None


class EdgeUpsert(BaseModel):
    source_id: int
    target_id: int
    relation: str


class ReinforceRequest(BaseModel):
    node_ids: List[int]


class IngestRequest(BaseModel):
    entities: List[dict] = Field(default_factory=list)
    relations: List[dict] = Field(default_factory=list)


@router.get("")
async def list_graph(engine: GraphEngine = Depends(get_graph_engine)):
    """Every node and edge, embeddings omitted."""
    nodes, edges = await engine.list_graph()
    return {
        "nodes": [serialize_node(node) for node in nodes],
        "edges": [serialize_edge(edge) for edge in edges],
    }


@router.get("/activate")
async def activate(
    query: Optional[str] = None,
    top_k: int = Query(config.DEFAULT_TOP_K, alias="topK"),
    max_hops: int = Query(config.DEFAULT_MAX_HOPS, alias="maxHops"),
    engine: GraphEngine = Depends(get_graph_engine),
):
    if not query or not query.strip():
        raise ValidationIssue("query is required", field="query", error_type="required")
    results = await engine.activate(query, top_k=top_k, max_hops=max_hops)
    return {"nodes": [serialize_activated(item) for item in results]}


@router.post("/nodes", status_code=201)
async def create_node(payload: NodeCreate, engine: GraphEngine = Depends(get_graph_engine)):
    node = await engine.create_node(
        payload.type,
        payload.label,
        payload.body,
        payload.category,
        payload.metadata,
    )
    return serialize_node(node)


@router.get("/nodes/{node_id}")
async def get_node(node_id: int, engine: GraphEngine = Depends(get_graph_engine)):
    return serialize_node(await engine.get_node(node_id))


@router.patch("/nodes/{node_id}")
async def update_node(node_id: int, payload: NodeUpdate, engine: GraphEngine = Depends(get_graph_engine)):
    changes = payload.model_dump(exclude_unset=True)
    node = await engine.update_node(node_id, **changes)
    return serialize_node(node)


@router.delete("/nodes/{node_id}")
async def delete_node(node_id: int, engine: GraphEngine = Depends(get_graph_engine)):
    await engine.delete_node(node_id)
    return {"success": True}


@router.post("/nodes/{node_id}/touch")
async def touch_node(node_id: int, engine: GraphEngine = Depends(get_graph_engine)):
    return serialize_node(await engine.touch(node_id))


@router.post("/edges")
async def upsert_edge(payload: EdgeUpsert, engine: GraphEngine = Depends(get_graph_engine)):
    edge = await engine.upsert_edge(payload.source_id, payload.target_id, payload.relation)
    return serialize_edge(edge)


@router.post("/edges/{edge_id}/strengthen")
async def strengthen_edge(edge_id: int, engine: GraphEngine = Depends(get_graph_engine)):
    return serialize_edge(await engine.strengthen_edge(edge_id))


@router.post("/reinforce")
async def reinforce(payload: ReinforceRequest, engine: GraphEngine = Depends(get_graph_engine)):
    return await engine.reinforce(payload.node_ids)


@router.post("/ingest")
async def ingest(payload: IngestRequest, engine: GraphEngine = Depends(get_graph_engine)):
    return await engine.ingest(payload.entities, payload.relations)


@router.post("/maintenance/decay")
async def decay_sweep(engine: GraphEngine = Depends(get_graph_engine)):
    return await engine.decay_sweep()
