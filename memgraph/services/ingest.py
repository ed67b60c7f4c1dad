"""
Ingestion of extracted entities/relations and tool-usage tracking.
"""

from __future__ import annotations

from typing import Dict, Optional, Sequence

import memgraph.config as config
from memgraph.errors import EmbeddingUnavailable, NotFound, ValidationIssue
from memgraph.records import NodeRecord
from memgraph.services.embeddings import embedding_text
from memgraph.services.graph_store import normalize_label
from memgraph.validators import validate_list, validate_optional_text, validate_required_text

logger = config.logger


def _clean_entity(entity: dict) -> dict:
    if not isinstance(entity, dict):
        raise ValidationIssue("entity must be an object", field="entities", error_type="invalid_type")
    node_type = entity.get("type") or "concept"
    label = entity.get("label")
    body = entity.get("body")
    category = entity.get("category")
    validate_required_text(node_type, "type", config.MAX_TYPE_LENGTH)
    validate_required_text(label, "label", config.MAX_LABEL_LENGTH)
    validate_optional_text(body, "body", config.MAX_TEXT_LENGTH)
    validate_optional_text(category, "category", config.MAX_TYPE_LENGTH)
    return {
        "type": node_type.strip(),
        "label": label.strip(),
        "body": body.strip() if body and body.strip() else None,
        "category": category,
    }


def _clean_relation(relation: dict) -> dict:
    if not isinstance(relation, dict):
        raise ValidationIssue("relation must be an object", field="relations", error_type="invalid_type")
    source = relation.get("source")
    target = relation.get("target")
    name = relation.get("relation") or "relates_to"
    validate_required_text(source, "source", config.MAX_LABEL_LENGTH)
    validate_required_text(target, "target", config.MAX_LABEL_LENGTH)
    validate_required_text(name, "relation", config.MAX_RELATION_LENGTH)
    return {"source": source.strip(), "target": target.strip(), "relation": name.strip()}


def _log_skipped(kind: str, exc: Exception) -> None:
    logger.info("ingest_item_skipped", extra={"kind": kind, "error": type(exc).__name__, "detail": str(exc)})


async def _merge_into(engine, node: NodeRecord, body: Optional[str]) -> NodeRecord:
    """Append ``body`` to an existing node (newline-joined) and touch it."""
    if body and body != node.body:
        merged = f"{node.body}\n{body}" if node.body else body
        node = await engine.update_node(node.id, body=merged[: config.MAX_TEXT_LENGTH], reembed=False)
    return await engine.touch(node.id)


async def ingest_extracted(engine, entities: Sequence[dict], relations: Sequence[dict] = ()) -> dict:
    """Merge extracted entities into the graph and link them.

    An entity joins an existing node when the (label, type) pair already
    exists or when its embedding sits above the merge threshold of its
    nearest node; otherwise it becomes a new node. Relations resolve their
    endpoints by label among the entities just ingested, falling back to
    nearest-node similarity above the link threshold.
    """
    validate_list(entities, "entities", config.MAX_INGEST_ITEMS)
    validate_list(relations, "relations", config.MAX_INGEST_ITEMS)

    created = 0
    merged = 0
    by_label: Dict[str, NodeRecord] = {}

    fresh = []
    for raw in entities or ():
        try:
            entity = _clean_entity(raw)
            match = await engine.find_by_label(entity["label"], entity["type"])
            if match is None:
                fresh.append(entity)
                continue
            by_label[normalize_label(entity["label"])] = await _merge_into(engine, match, entity["body"])
            merged += 1
        except (ValidationIssue, NotFound) as exc:
            _log_skipped("entity", exc)

    vectors = await engine.embed_batch([embedding_text(e["label"], e["body"]) for e in fresh])
    for entity, vector in zip(fresh, vectors):
        key = normalize_label(entity["label"])
        try:
            if key in by_label and by_label[key].type == entity["type"]:
                by_label[key] = await _merge_into(engine, by_label[key], entity["body"])
                merged += 1
                continue
            nearest = await engine.nearest(vector, 1)
            if nearest and nearest[0].similarity > config.INGEST_MERGE_THRESHOLD:
                by_label[key] = await _merge_into(engine, nearest[0].node, entity["body"])
                merged += 1
                continue
            by_label[key] = await engine.create_node(
                entity["type"],
                entity["label"],
                entity["body"],
                entity["category"],
                embedding=vector,
            )
            created += 1
        except (ValidationIssue, NotFound) as exc:
            _log_skipped("entity", exc)

    edges = 0
    for raw in relations or ():
        try:
            relation = _clean_relation(raw)
            source = await _resolve_endpoint(engine, relation["source"], by_label)
            target = await _resolve_endpoint(engine, relation["target"], by_label)
            if source is None or target is None or source.id == target.id:
                continue
            await engine.upsert_edge(source.id, target.id, relation["relation"])
            edges += 1
        except (ValidationIssue, NotFound, EmbeddingUnavailable) as exc:
            _log_skipped("relation", exc)

    result = {"nodes_created": created, "nodes_merged": merged, "edges_upserted": edges}
    logger.info("graph_ingest_complete", extra=result)
    return result


async def _resolve_endpoint(engine, label: str, by_label: Dict[str, NodeRecord]) -> Optional[NodeRecord]:
    known = by_label.get(normalize_label(label))
    if known is not None:
        return known
    vector = await engine.embed_query(label)
    nearest = await engine.nearest(vector, 1)
    if nearest and nearest[0].similarity > config.INGEST_LINK_THRESHOLD:
        return nearest[0].node
    return None


async def track_tool_use(engine, tool_name: str) -> NodeRecord:
    """Touch the ``tool`` node named ``tool_name``, creating it on first use."""
    validate_required_text(tool_name, "tool_name", config.MAX_LABEL_LENGTH)
    existing = await engine.find_by_label(tool_name, "tool")
    if existing is not None:
        return await engine.touch(existing.id)
    return await engine.create_node("tool", tool_name, embed=engine.has_embedder)


__all__ = ["ingest_extracted", "track_tool_use"]
