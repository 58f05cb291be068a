"""Graph helpers: edge validation, indegree analysis and start-node resolution."""

from __future__ import annotations

import logging

from ..errors import NoStartNodeError
from .schema import Edge, Node

logger = logging.getLogger(__name__)


def valid_edges(nodes: list[Node], edges: list[Edge], warn: bool = True) -> list[Edge]:
    """Edges whose source and target both exist. Others are dropped, never fatal."""
    node_ids = {node.id for node in nodes}
    kept: list[Edge] = []
    for edge in edges:
        if edge.source and edge.target and edge.source in node_ids and edge.target in node_ids:
            kept.append(edge)
        elif warn:
            logger.warning("Ignoring invalid edge %s -> %s", edge.source, edge.target)
    return kept


def compute_indegree(nodes: list[Node], edges: list[Edge]) -> dict[str, int]:
    """Incoming edge count per node, counting valid edges only."""
    indegree = {node.id: 0 for node in nodes}
    for edge in valid_edges(nodes, edges, warn=False):
        indegree[edge.target] += 1
    return indegree


def find_start_nodes(nodes: list[Node], edges: list[Edge]) -> list[Node]:
    """Resolve where traversal begins.

    Explicit ``isStart`` nodes win; otherwise every zero-indegree node. A
    graph where every node has an incoming edge (e.g. a pure cycle) falls
    back to the nodes sharing the minimal indegree.
    """
    indegree = compute_indegree(nodes, edges)

    explicit = [node for node in nodes if node.is_start]
    if explicit:
        return explicit

    start_nodes = [node for node in nodes if indegree[node.id] == 0]
    if start_nodes:
        return start_nodes

    if indegree:
        minimal = min(indegree.values())
        start_nodes = [node for node in nodes if indegree[node.id] == minimal]
        logger.warning(
            "No zero-indegree nodes; falling back to minimal indegree %d: %s",
            minimal,
            [node.id for node in start_nodes],
        )
    if not start_nodes:
        raise NoStartNodeError("No start nodes found in workflow. All nodes have incoming edges.")
    return start_nodes
