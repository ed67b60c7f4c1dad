"""
Spreading activation over the memory graph.

Seeds are the nodes most similar to the query. Each round expands the nodes
that gained activation in the previous round, pushing a share of that
activation across every incident edge (both directions):

    increment = source_activation * (weight / WEIGHT_MAX)
                * (neighbor_strength / STRENGTH_MAX) * HOP_DECAY_BASE ** hop

Increments received in a round are summed per node; that sum is the node's
carry into the next round. Expansion is bounded by ``max_hops`` and every
node expands at most once per round, so cycles terminate.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, List, Set

import memgraph.config as config
from memgraph.records import ActivatedNode, NodeRecord

logger = config.logger


def hop_decay(hop: int) -> float:
    return config.HOP_DECAY_BASE ** hop


def propagation_increment(
    source_activation: float,
    edge_weight: float,
    neighbor_strength: float,
    hop: int,
) -> float:
    return (
        source_activation
        * (edge_weight / config.WEIGHT_MAX)
        * (neighbor_strength / config.STRENGTH_MAX)
        * hop_decay(hop)
    )


class SpreadingActivation:
    def __init__(self, store, retriever):
        self.store = store
        self.retriever = retriever

    async def run(self, query: str, top_k: int, max_hops: int) -> List[ActivatedNode]:
        seeds = await self.retriever.seed(query, top_k)
        if not seeds:
            return []

        nodes: Dict[int, NodeRecord] = {}
        totals: Dict[int, float] = {}
        first_hop: Dict[int, int] = {}
        contributors: Dict[int, Set[int]] = defaultdict(set)
        for seed in seeds:
            nodes[seed.node.id] = seed.node
            totals[seed.node.id] = seed.similarity
            first_hop[seed.node.id] = 0

        frontier = {seed.node.id: seed.similarity for seed in seeds if seed.similarity > 0}
        for hop in range(1, max_hops + 1):
            if not frontier:
                break
            expanded: Set[int] = set()
            pending = []
            for node_id in sorted(frontier):
                if node_id in expanded:
                    continue
                expanded.add(node_id)
                for edge in await self.store.incident_edges(node_id):
                    neighbor_id = edge.other_end(node_id)
                    if neighbor_id == node_id:
                        continue
                    pending.append((node_id, neighbor_id, edge.weight))
            if not pending:
                break

            # Fresh snapshot each round; strengths may have moved since seeding.
            neighbors = await self.store.get_nodes({neighbor_id for _, neighbor_id, _ in pending})
            nodes.update(neighbors)

            received: Dict[int, float] = defaultdict(float)
            for source_id, neighbor_id, weight in pending:
                neighbor = neighbors.get(neighbor_id)
                if neighbor is None:
                    continue
                increment = propagation_increment(frontier[source_id], weight, neighbor.strength, hop)
                if increment <= 0:
                    continue
                received[neighbor_id] += increment
                contributors[neighbor_id].add(source_id)

            for node_id in sorted(received):
                totals[node_id] = totals.get(node_id, 0.0) + received[node_id]
                first_hop.setdefault(node_id, hop)
            frontier = {node_id: amount for node_id, amount in received.items() if amount > 0}

        ranked = sorted(totals.items(), key=lambda item: (-item[1], item[0]))[:top_k]
        results = []
        for node_id, score in ranked:
            node = nodes.get(node_id)
            if node is None:
                continue
            connections = tuple(
                nodes[source_id].ref
                for source_id in sorted(contributors.get(node_id, ()))
                if source_id in nodes
            )
            results.append(
                ActivatedNode(node=node, score=score, hops=first_hop[node_id], connections=connections)
            )
        logger.debug(
            "activation_complete",
            extra={"seed_count": len(seeds), "touched": len(totals), "returned": len(results)},
        )
        return results


__all__ = ["SpreadingActivation", "propagation_increment", "hop_decay"]
