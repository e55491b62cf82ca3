"""Pure metrics over already-materialized nodes and edges (no I/O)."""
from __future__ import annotations

from collections import Counter
from typing import Dict, Sequence

from ..models.records import Edge, GraphMetrics, Node


def calculate_graph_metrics(nodes: Sequence[Node], edges: Sequence[Edge]) -> GraphMetrics:
    """Counts, average degree and density, treating edges as undirected.

    Density is measured against the simple undirected maximum n(n-1)/2 and
    is 0 whenever that maximum is 0. Parallel or reciprocal edges can push
    it above 1.
    """
    node_count = len(nodes)
    edge_count = len(edges)
    max_possible_edges = node_count * (node_count - 1) / 2
    average_degree = edge_count * 2 / node_count if node_count > 0 else 0.0
    density_ratio = edge_count / max_possible_edges if max_possible_edges > 0 else 0.0
    return GraphMetrics(
        node_count=node_count,
        edge_count=edge_count,
        average_degree=average_degree,
        density_ratio=density_ratio,
    )


def type_distribution(
    nodes: Sequence[Node], edges: Sequence[Edge]
) -> Dict[str, Dict[str, int]]:
    return {
        "node_types": dict(Counter(node.type.value for node in nodes)),
        "edge_types": dict(Counter(edge.type.value for edge in edges)),
    }
