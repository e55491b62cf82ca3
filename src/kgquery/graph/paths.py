"""Shortest-path search over the organization-scoped graph.

Three searches share one contract: return a PathResult, or None when either
endpoint is missing/inactive/outside the organization or no path exists.
Adjacency is fetched through NeighborResolver one node at a time, so the
number of store round trips grows with the number of expanded nodes.

- dijkstra: selects the next node by HOP COUNT but relaxes labels by
  accumulated WEIGHT (ties broken by hop count). It tracks weight without
  optimizing for it, so on graphs with uneven weights it can return a path
  that is heavier than the lightest one. Kept as-is because existing callers
  depend on which path it picks.
- weighted_dijkstra: selects by accumulated weight; the returned path has
  minimal total_weight.
- a_star: heuristic search, direction fixed to both. With the default zero
  heuristic this is uniform-cost search and minimizes total_weight. A custom
  heuristic must never overestimate the remaining weight.
"""
from __future__ import annotations

import heapq
import itertools
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from ..db.stores import NodeStore
from ..models.records import Direction, PathEdge, PathResult, RelationshipType
from .limits import UNLIMITED, SearchLimits
from .neighbors import NeighborResolver

logger = logging.getLogger(__name__)

Heuristic = Callable[[str], float]


def zero_heuristic(node_id: str) -> float:
    return 0.0


@dataclass(slots=True)
class _Label:
    hop_count: int
    total_weight: float
    path: List[str]
    edges: List[PathEdge] = field(default_factory=list)


@dataclass
class PathFinder:
    nodes: NodeStore
    resolver: NeighborResolver
    limits: SearchLimits = UNLIMITED

    def dijkstra(
        self,
        source_id: str,
        target_id: str,
        organization_id: str,
        relationship_types: Optional[Sequence[RelationshipType]] = None,
        direction: Direction = Direction.BOTH,
    ) -> Optional[PathResult]:
        logger.debug("Computing hop-prioritized path from %s to %s", source_id, target_id)
        if not self._endpoints_exist(source_id, target_id, organization_id):
            return None

        labels: Dict[str, _Label] = {
            source_id: _Label(hop_count=0, total_weight=0.0, path=[source_id])
        }
        unvisited = {source_id}
        visited: set[str] = set()
        counter = itertools.count()
        # Entries are (hop_count, seq, node_id). An entry whose hop count no
        # longer matches the node's label is stale and skipped.
        queue = [(0, next(counter), source_id)]
        expanded = 0

        while queue:
            hop_count, _, current = heapq.heappop(queue)
            if current not in unvisited or labels[current].hop_count != hop_count:
                continue

            label = labels[current]
            if current == target_id:
                logger.debug("Path found after expanding %d nodes", expanded)
                return PathResult(
                    path=list(label.path),
                    distance=label.hop_count,
                    total_weight=label.total_weight,
                    edges=list(label.edges),
                )

            self.limits.check(expanded)
            unvisited.discard(current)
            visited.add(current)
            expanded += 1

            for neighbor in self.resolver.neighbors(
                current, organization_id, relationship_types, direction
            ):
                if neighbor.neighbor_id in visited:
                    continue
                candidate_hops = label.hop_count + 1
                candidate_weight = label.total_weight + neighbor.weight
                existing = labels.get(neighbor.neighbor_id)
                # Relaxation compares weight first even though selection above
                # is by hop count.
                if (
                    existing is None
                    or candidate_weight < existing.total_weight
                    or (
                        candidate_weight == existing.total_weight
                        and candidate_hops < existing.hop_count
                    )
                ):
                    labels[neighbor.neighbor_id] = _Label(
                        hop_count=candidate_hops,
                        total_weight=candidate_weight,
                        path=label.path + [neighbor.neighbor_id],
                        edges=label.edges + [neighbor.to_path_edge()],
                    )
                    unvisited.add(neighbor.neighbor_id)
                    heapq.heappush(queue, (candidate_hops, next(counter), neighbor.neighbor_id))

        logger.warning("No path found from %s to %s", source_id, target_id)
        return None

    def weighted_dijkstra(
        self,
        source_id: str,
        target_id: str,
        organization_id: str,
        relationship_types: Optional[Sequence[RelationshipType]] = None,
        direction: Direction = Direction.BOTH,
    ) -> Optional[PathResult]:
        logger.debug("Computing weighted path from %s to %s", source_id, target_id)
        if not self._endpoints_exist(source_id, target_id, organization_id):
            return None

        distances: Dict[str, float] = {source_id: 0.0}
        hops: Dict[str, int] = {source_id: 0}
        parent: Dict[str, str] = {}
        parent_edge: Dict[str, PathEdge] = {}
        settled: set[str] = set()
        counter = itertools.count()
        queue = [(0.0, 0, next(counter), source_id)]
        expanded = 0

        while queue:
            weight, hop_count, _, current = heapq.heappop(queue)
            if current in settled or weight != distances[current] or hop_count != hops[current]:
                continue

            if current == target_id:
                logger.debug("Path found after expanding %d nodes", expanded)
                return _reconstruct(source_id, target_id, parent, parent_edge, distances[target_id])

            self.limits.check(expanded)
            settled.add(current)
            expanded += 1

            for neighbor in self.resolver.neighbors(
                current, organization_id, relationship_types, direction
            ):
                if neighbor.neighbor_id in settled:
                    continue
                candidate = weight + neighbor.weight
                candidate_hops = hop_count + 1
                known = distances.get(neighbor.neighbor_id)
                if (
                    known is None
                    or candidate < known
                    or (candidate == known and candidate_hops < hops[neighbor.neighbor_id])
                ):
                    distances[neighbor.neighbor_id] = candidate
                    hops[neighbor.neighbor_id] = candidate_hops
                    parent[neighbor.neighbor_id] = current
                    parent_edge[neighbor.neighbor_id] = neighbor.to_path_edge()
                    heapq.heappush(
                        queue, (candidate, candidate_hops, next(counter), neighbor.neighbor_id)
                    )

        logger.warning("No path found from %s to %s", source_id, target_id)
        return None

    def a_star(
        self,
        source_id: str,
        target_id: str,
        organization_id: str,
        relationship_types: Optional[Sequence[RelationshipType]] = None,
        heuristic: Heuristic = zero_heuristic,
    ) -> Optional[PathResult]:
        logger.debug("Computing A* path from %s to %s", source_id, target_id)
        if not self._endpoints_exist(source_id, target_id, organization_id):
            return None

        g_score: Dict[str, float] = {source_id: 0.0}
        parent: Dict[str, str] = {}
        parent_edge: Dict[str, PathEdge] = {}
        open_set: Dict[str, float] = {source_id: heuristic(source_id)}
        counter = itertools.count()
        queue = [(open_set[source_id], next(counter), source_id)]
        expanded = 0

        while queue:
            f_score, _, current = heapq.heappop(queue)
            if open_set.get(current) != f_score:
                continue

            if current == target_id:
                logger.debug("Path found after expanding %d nodes", expanded)
                return _reconstruct(source_id, target_id, parent, parent_edge, g_score[target_id])

            self.limits.check(expanded)
            del open_set[current]
            expanded += 1
            current_g = g_score[current]

            for neighbor in self.resolver.neighbors(
                current, organization_id, relationship_types, Direction.BOTH
            ):
                tentative_g = current_g + neighbor.weight
                known = g_score.get(neighbor.neighbor_id)
                if known is None or tentative_g < known:
                    parent[neighbor.neighbor_id] = current
                    parent_edge[neighbor.neighbor_id] = neighbor.to_path_edge()
                    g_score[neighbor.neighbor_id] = tentative_g
                    score = tentative_g + heuristic(neighbor.neighbor_id)
                    open_set[neighbor.neighbor_id] = score
                    heapq.heappush(queue, (score, next(counter), neighbor.neighbor_id))

        logger.warning("No path found from %s to %s", source_id, target_id)
        return None

    def _endpoints_exist(self, source_id: str, target_id: str, organization_id: str) -> bool:
        source = self.nodes.find_by_id(source_id, organization_id)
        target = source if target_id == source_id else self.nodes.find_by_id(target_id, organization_id)
        if source is None or target is None:
            logger.warning(
                "Source or target node not found in organization %s: %s, %s",
                organization_id,
                source_id,
                target_id,
            )
            return False
        return True


def _reconstruct(
    source_id: str,
    target_id: str,
    parent: Dict[str, str],
    parent_edge: Dict[str, PathEdge],
    total_weight: float,
) -> PathResult:
    path = [target_id]
    edges: List[PathEdge] = []
    node = target_id
    while node != source_id:
        edges.append(parent_edge[node])
        node = parent[node]
        path.append(node)
    path.reverse()
    edges.reverse()
    return PathResult(path=path, distance=len(path) - 1, total_weight=total_weight, edges=edges)
