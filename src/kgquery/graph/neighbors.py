from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..db.stores import EdgeStore
from ..models.records import Direction, Neighbor, RelationshipType


@dataclass
class NeighborResolver:
    """Sole adjacency primitive: one or two edge scans per call, nothing cached.

    With Direction.BOTH a node joined to the same neighbor by an outgoing and
    an incoming edge yields two entries; duplicates are not merged and the
    order of entries is not meaningful.
    """

    edges: EdgeStore

    def neighbors(
        self,
        node_id: str,
        organization_id: str,
        relationship_types: Optional[Sequence[RelationshipType]] = None,
        direction: Direction = Direction.BOTH,
    ) -> List[Neighbor]:
        result: List[Neighbor] = []

        if direction.includes_outgoing:
            for edge in self.edges.find_by_source(node_id, organization_id, relationship_types):
                result.append(
                    Neighbor(
                        neighbor_id=edge.target_node_id,
                        edge_id=edge.id,
                        source_id=edge.source_node_id,
                        target_id=edge.target_node_id,
                        weight=edge.weight,
                        type=edge.type,
                    )
                )

        if direction.includes_incoming:
            for edge in self.edges.find_by_target(node_id, organization_id, relationship_types):
                result.append(
                    Neighbor(
                        neighbor_id=edge.source_node_id,
                        edge_id=edge.id,
                        source_id=edge.source_node_id,
                        target_id=edge.target_node_id,
                        weight=edge.weight,
                        type=edge.type,
                    )
                )

        return result
