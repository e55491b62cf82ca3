from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from ..db.stores import EdgeStore, NodeStore
from ..models.records import Direction, Node, RelationshipType, TraversalItem
from .limits import UNLIMITED, SearchLimits
from .neighbors import NeighborResolver

logger = logging.getLogger(__name__)


@dataclass
class GraphTraversal:
    """Bounded and unbounded walks built on NeighborResolver.

    Nodes are hydrated one lookup at a time as they are reached; a node that
    is missing, inactive or in another organization ends that branch.
    """

    nodes: NodeStore
    edges: EdgeStore
    resolver: NeighborResolver
    limits: SearchLimits = UNLIMITED

    def bfs(
        self,
        start_id: str,
        organization_id: str,
        max_depth: Optional[int] = None,
        relationship_types: Optional[Sequence[RelationshipType]] = None,
        direction: Direction = Direction.BOTH,
    ) -> List[TraversalItem]:
        logger.debug("Starting BFS from %s with max depth %s", start_id, max_depth)
        visited: set[str] = set()
        result: List[TraversalItem] = []
        expanded = 0
        queue = deque([(start_id, 0, [start_id])])

        while queue:
            node_id, depth, path = queue.popleft()
            if node_id in visited:
                continue
            visited.add(node_id)

            node = self.nodes.find_by_id(node_id, organization_id)
            if node is None:
                continue
            result.append(TraversalItem(node=node, depth=depth, path=path))

            if max_depth is not None and depth >= max_depth:
                continue

            self.limits.check(expanded)
            expanded += 1
            for neighbor in self.resolver.neighbors(
                node_id, organization_id, relationship_types, direction
            ):
                if neighbor.neighbor_id not in visited:
                    queue.append((neighbor.neighbor_id, depth + 1, path + [neighbor.neighbor_id]))

        logger.debug("BFS completed. Visited %d nodes", len(visited))
        return result

    def dfs(
        self,
        start_id: str,
        organization_id: str,
        max_depth: Optional[int] = None,
        relationship_types: Optional[Sequence[RelationshipType]] = None,
        direction: Direction = Direction.BOTH,
    ) -> List[TraversalItem]:
        logger.debug("Starting DFS from %s with max depth %s", start_id, max_depth)
        visited: set[str] = set()
        result: List[TraversalItem] = []
        expanded = 0
        stack = [(start_id, 0, [start_id])]

        while stack:
            node_id, depth, path = stack.pop()
            if node_id in visited:
                continue
            visited.add(node_id)

            node = self.nodes.find_by_id(node_id, organization_id)
            if node is None:
                continue
            result.append(TraversalItem(node=node, depth=depth, path=path))

            if max_depth is not None and depth >= max_depth:
                continue

            self.limits.check(expanded)
            expanded += 1
            neighbors = self.resolver.neighbors(
                node_id, organization_id, relationship_types, direction
            )
            # Reversed so the first neighbor is explored first.
            for neighbor in reversed(neighbors):
                if neighbor.neighbor_id not in visited:
                    stack.append((neighbor.neighbor_id, depth + 1, path + [neighbor.neighbor_id]))

        logger.debug("DFS completed. Visited %d nodes", len(visited))
        return result

    def neighbors_within(
        self,
        node_id: str,
        organization_id: str,
        relationship_types: Optional[Sequence[RelationshipType]] = None,
        direction: Direction = Direction.BOTH,
        depth: int = 1,
    ) -> Dict[str, int]:
        """Map every node reachable within `depth` hops to its hop distance.

        The start node is not included. Depth below 1 yields an empty map.
        """
        if depth < 1:
            return {}
        distances: Dict[str, int] = {node_id: 0}
        frontier = [node_id]
        expanded = 0
        for level in range(1, depth + 1):
            next_frontier: List[str] = []
            for current in frontier:
                self.limits.check(expanded)
                expanded += 1
                for neighbor in self.resolver.neighbors(
                    current, organization_id, relationship_types, direction
                ):
                    if neighbor.neighbor_id not in distances:
                        distances[neighbor.neighbor_id] = level
                        next_frontier.append(neighbor.neighbor_id)
            if not next_frontier:
                break
            frontier = next_frontier
        del distances[node_id]
        return distances

    def find_all_paths(
        self,
        source_id: str,
        target_id: str,
        organization_id: str,
        max_path_length: int = 5,
    ) -> List[List[str]]:
        """Enumerate simple paths of at most `max_path_length` edges, both directions."""
        if self.nodes.find_by_id(source_id, organization_id) is None:
            return []
        paths: List[List[str]] = []
        expanded = 0
        # (node, path so far); a path never revisits one of its own nodes.
        stack = [(source_id, [source_id])]

        while stack:
            current, path = stack.pop()
            if current == target_id:
                paths.append(path)
                continue
            if len(path) - 1 >= max_path_length:
                continue

            self.limits.check(expanded)
            expanded += 1
            neighbor_ids = dict.fromkeys(
                neighbor.neighbor_id
                for neighbor in self.resolver.neighbors(current, organization_id)
            )
            on_path = set(path)
            for neighbor_id in reversed(list(neighbor_ids)):
                if neighbor_id not in on_path:
                    stack.append((neighbor_id, path + [neighbor_id]))

        logger.debug("Found %d paths from %s to %s", len(paths), source_id, target_id)
        return paths

    def is_connected(
        self,
        source_id: str,
        target_id: str,
        organization_id: str,
        max_depth: int = 10,
    ) -> bool:
        if self.nodes.find_by_id(source_id, organization_id) is None:
            return False
        if source_id == target_id:
            return True
        reachable = self.neighbors_within(source_id, organization_id, depth=max_depth)
        return target_id in reachable

    def common_neighbors(
        self, first_id: str, second_id: str, organization_id: str
    ) -> List[Node]:
        first = set(self.neighbors_within(first_id, organization_id))
        second = set(self.neighbors_within(second_id, organization_id))
        common = (first & second) - {first_id, second_id}
        if not common:
            return []
        return self.nodes.find_by_ids(organization_id, sorted(common))

    def ancestors(
        self, node_id: str, organization_id: str, max_depth: Optional[int] = None
    ) -> List[Node]:
        """Nodes that can reach `node_id` along outgoing edges; the node itself excluded."""
        items = self.bfs(node_id, organization_id, max_depth, None, Direction.INCOMING)
        return [item.node for item in items[1:]]

    def descendants(
        self, node_id: str, organization_id: str, max_depth: Optional[int] = None
    ) -> List[Node]:
        items = self.bfs(node_id, organization_id, max_depth, None, Direction.OUTGOING)
        return [item.node for item in items[1:]]

    def node_degree(self, node_id: str, organization_id: str) -> Optional[Dict[str, int]]:
        if self.nodes.find_by_id(node_id, organization_id) is None:
            return None
        return {
            "in_degree": self.edges.count_by_target(node_id, organization_id),
            "out_degree": self.edges.count_by_source(node_id, organization_id),
        }

    def relationships_between(
        self, first_id: str, second_id: str, organization_id: str
    ) -> Dict[str, Any]:
        direct = self.edges.find_between(first_id, second_id, organization_id)
        reverse = self.edges.find_between(second_id, first_id, organization_id)
        types = list(dict.fromkeys(edge.type for edge in direct + reverse))
        return {
            "direct_edges": direct,
            "reverse_edges": reverse,
            "relationship_types": types,
        }
