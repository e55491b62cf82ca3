"""In-process entry point for graph queries.

GraphQueryEngine binds the stores of one connection to the path finder,
traversal, extractor and searcher. It holds no graph data between calls:
every method builds its own working state, so one engine can serve
concurrent readers as long as the connection allows it.

Type and direction arguments accept enum members or their string values;
unknown strings raise InvalidArgumentError before any store access.
"""
from __future__ import annotations

import dataclasses
import sqlite3
from typing import Any, Dict, Iterable, List, Optional, Union

from ..db.stores import EdgeStore, NodeStore
from ..models.records import (
    Direction,
    Edge,
    GraphMetrics,
    Node,
    NodeType,
    PathResult,
    RelationshipType,
    Subgraph,
    SubgraphCriteria,
    TraversalItem,
    parse_direction,
    parse_node_types,
    parse_relationship_types,
)
from .limits import UNLIMITED, SearchLimits
from .metrics import calculate_graph_metrics, type_distribution
from .neighbors import NeighborResolver
from .paths import Heuristic, PathFinder, zero_heuristic
from .search import find_nodes_by_pattern
from .subgraph import (
    extract_subgraph,
    filter_by_node_type,
    filter_by_relationship_type,
)
from .traversal import GraphTraversal

TypeArg = Optional[Iterable[Union[str, RelationshipType]]]
NodeTypeArg = Optional[Iterable[Union[str, NodeType]]]
DirectionArg = Union[str, Direction]


class GraphQueryEngine:
    def __init__(
        self,
        nodes: NodeStore,
        edges: EdgeStore,
        limits: SearchLimits = UNLIMITED,
    ) -> None:
        self.nodes = nodes
        self.edges = edges
        self.limits = limits
        self.resolver = NeighborResolver(edges)

    @classmethod
    def from_connection(
        cls, conn: sqlite3.Connection, limits: SearchLimits = UNLIMITED
    ) -> "GraphQueryEngine":
        return cls(NodeStore(conn), EdgeStore(conn), limits)

    def _path_finder(self, limits: Optional[SearchLimits]) -> PathFinder:
        return PathFinder(self.nodes, self.resolver, limits or self.limits)

    def _traversal(self, limits: Optional[SearchLimits]) -> GraphTraversal:
        return GraphTraversal(self.nodes, self.edges, self.resolver, limits or self.limits)

    # --- adjacency ---
    def neighbors(
        self,
        node_id: str,
        organization_id: str,
        relationship_types: TypeArg = None,
        direction: DirectionArg = Direction.BOTH,
    ):
        return self.resolver.neighbors(
            node_id,
            organization_id,
            parse_relationship_types(relationship_types),
            parse_direction(direction),
        )

    # --- paths ---
    def dijkstra(
        self,
        source_id: str,
        target_id: str,
        organization_id: str,
        relationship_types: TypeArg = None,
        direction: DirectionArg = Direction.BOTH,
        limits: Optional[SearchLimits] = None,
    ) -> Optional[PathResult]:
        """Hop-prioritized search; see kgquery.graph.paths for how it differs
        from weighted_dijkstra and a_star."""
        return self._path_finder(limits).dijkstra(
            source_id,
            target_id,
            organization_id,
            parse_relationship_types(relationship_types),
            parse_direction(direction),
        )

    def weighted_dijkstra(
        self,
        source_id: str,
        target_id: str,
        organization_id: str,
        relationship_types: TypeArg = None,
        direction: DirectionArg = Direction.BOTH,
        limits: Optional[SearchLimits] = None,
    ) -> Optional[PathResult]:
        return self._path_finder(limits).weighted_dijkstra(
            source_id,
            target_id,
            organization_id,
            parse_relationship_types(relationship_types),
            parse_direction(direction),
        )

    def a_star(
        self,
        source_id: str,
        target_id: str,
        organization_id: str,
        relationship_types: TypeArg = None,
        heuristic: Heuristic = zero_heuristic,
        limits: Optional[SearchLimits] = None,
    ) -> Optional[PathResult]:
        return self._path_finder(limits).a_star(
            source_id,
            target_id,
            organization_id,
            parse_relationship_types(relationship_types),
            heuristic,
        )

    # --- traversal ---
    def bfs(
        self,
        start_id: str,
        organization_id: str,
        max_depth: Optional[int] = None,
        relationship_types: TypeArg = None,
        direction: DirectionArg = Direction.BOTH,
        limits: Optional[SearchLimits] = None,
    ) -> List[TraversalItem]:
        return self._traversal(limits).bfs(
            start_id,
            organization_id,
            max_depth,
            parse_relationship_types(relationship_types),
            parse_direction(direction),
        )

    def dfs(
        self,
        start_id: str,
        organization_id: str,
        max_depth: Optional[int] = None,
        relationship_types: TypeArg = None,
        direction: DirectionArg = Direction.BOTH,
        limits: Optional[SearchLimits] = None,
    ) -> List[TraversalItem]:
        return self._traversal(limits).dfs(
            start_id,
            organization_id,
            max_depth,
            parse_relationship_types(relationship_types),
            parse_direction(direction),
        )

    def neighbors_within(
        self,
        node_id: str,
        organization_id: str,
        relationship_types: TypeArg = None,
        direction: DirectionArg = Direction.BOTH,
        depth: int = 1,
    ) -> Dict[str, int]:
        return self._traversal(None).neighbors_within(
            node_id,
            organization_id,
            parse_relationship_types(relationship_types),
            parse_direction(direction),
            depth,
        )

    def find_all_paths(
        self,
        source_id: str,
        target_id: str,
        organization_id: str,
        max_path_length: int = 5,
    ) -> List[List[str]]:
        return self._traversal(None).find_all_paths(
            source_id, target_id, organization_id, max_path_length
        )

    def is_connected(
        self, source_id: str, target_id: str, organization_id: str, max_depth: int = 10
    ) -> bool:
        return self._traversal(None).is_connected(source_id, target_id, organization_id, max_depth)

    def common_neighbors(self, first_id: str, second_id: str, organization_id: str) -> List[Node]:
        return self._traversal(None).common_neighbors(first_id, second_id, organization_id)

    def ancestors(
        self, node_id: str, organization_id: str, max_depth: Optional[int] = None
    ) -> List[Node]:
        return self._traversal(None).ancestors(node_id, organization_id, max_depth)

    def descendants(
        self, node_id: str, organization_id: str, max_depth: Optional[int] = None
    ) -> List[Node]:
        return self._traversal(None).descendants(node_id, organization_id, max_depth)

    def node_degree(self, node_id: str, organization_id: str) -> Optional[Dict[str, int]]:
        return self._traversal(None).node_degree(node_id, organization_id)

    def relationships_between(
        self, first_id: str, second_id: str, organization_id: str
    ) -> Dict[str, Any]:
        return self._traversal(None).relationships_between(first_id, second_id, organization_id)

    # --- subgraphs and search ---
    def extract_subgraph(self, organization_id: str, criteria: SubgraphCriteria) -> Subgraph:
        normalized = dataclasses.replace(
            criteria,
            node_types=_as_list(parse_node_types(criteria.node_types)),
            relationship_types=_as_list(parse_relationship_types(criteria.relationship_types)),
        )
        return extract_subgraph(self.nodes, self.edges, organization_id, normalized)

    def find_nodes_by_pattern(
        self,
        organization_id: str,
        text_pattern: str,
        node_types: NodeTypeArg = None,
        tags: Optional[Iterable[str]] = None,
    ) -> List[Node]:
        return find_nodes_by_pattern(
            self.nodes,
            organization_id,
            text_pattern,
            node_types=parse_node_types(node_types),
            tags=list(tags) if tags else None,
        )

    # --- pure helpers ---
    @staticmethod
    def filter_by_relationship_type(edges: Iterable[Edge], relationship_types: TypeArg) -> List[Edge]:
        return filter_by_relationship_type(edges, parse_relationship_types(relationship_types) or ())

    @staticmethod
    def filter_by_node_type(nodes: Iterable[Node], node_types: NodeTypeArg) -> List[Node]:
        return filter_by_node_type(nodes, parse_node_types(node_types) or ())

    @staticmethod
    def calculate_graph_metrics(nodes: List[Node], edges: List[Edge]) -> GraphMetrics:
        return calculate_graph_metrics(nodes, edges)

    def graph_statistics(self, organization_id: str) -> Dict[str, Any]:
        nodes = self.nodes.find_by_organization(organization_id)
        edges = self.edges.find_by_organization(organization_id)
        metrics = calculate_graph_metrics(nodes, edges)
        distribution = type_distribution(nodes, edges)
        return {
            **metrics.to_dict(),
            "node_type_distribution": distribution["node_types"],
            "edge_type_distribution": distribution["edge_types"],
        }


def _as_list(values):
    return list(values) if values else None
