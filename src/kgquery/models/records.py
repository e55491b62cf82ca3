from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..graph.errors import InvalidArgumentError


class NodeType(str, Enum):
    PERSON = "person"
    ORGANIZATION = "organization"
    TEAM = "team"
    TASK = "task"
    DOCUMENT = "document"
    CODE = "code"
    CONCEPT = "concept"
    GOAL = "goal"
    SKILL = "skill"
    TOOL = "tool"
    CUSTOM = "custom"


class RelationshipType(str, Enum):
    RELATES_TO = "relates_to"
    DERIVED_FROM = "derived_from"
    CONTRADICTS = "contradicts"
    SUPPORTS = "supports"
    EXTENDS = "extends"
    PREREQUISITE_OF = "prerequisite_of"
    PART_OF = "part_of"
    CHILD_OF = "child_of"
    REFERENCES = "references"
    IMPLEMENTS = "implements"
    MANAGES = "manages"
    CREATED_BY = "created_by"
    BELONGS_TO = "belongs_to"
    DEPENDS_ON = "depends_on"
    COLLABORATES_WITH = "collaborates_with"
    REFUTES = "refutes"
    SIMILAR_TO = "similar_to"
    EXPLAINS = "explains"
    EXEMPLIFIES = "exemplifies"
    CUSTOM = "custom"


class Direction(str, Enum):
    OUTGOING = "outgoing"
    INCOMING = "incoming"
    BOTH = "both"

    @property
    def includes_outgoing(self) -> bool:
        return self in (Direction.OUTGOING, Direction.BOTH)

    @property
    def includes_incoming(self) -> bool:
        return self in (Direction.INCOMING, Direction.BOTH)


def _parse_enum(enum_cls, value: Any, label: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise InvalidArgumentError(
            f"Unknown {label} '{value}'. Expected one of: {allowed}"
        ) from None


def parse_node_types(values: Optional[Iterable[Any]]) -> Optional[Tuple[NodeType, ...]]:
    """Coerce node type strings into NodeType members.

    None and empty collections both mean "no type filter" and return None.
    """
    if values is None:
        return None
    parsed = tuple(_parse_enum(NodeType, value, "node type") for value in values)
    return parsed or None


def parse_relationship_types(
    values: Optional[Iterable[Any]],
) -> Optional[Tuple[RelationshipType, ...]]:
    """Coerce relationship type strings into RelationshipType members."""
    if values is None:
        return None
    parsed = tuple(
        _parse_enum(RelationshipType, value, "relationship type") for value in values
    )
    return parsed or None


def parse_direction(value: Any) -> Direction:
    return _parse_enum(Direction, value, "direction")


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass(slots=True)
class Node:
    id: str
    name: str
    type: NodeType
    organization_id: str
    description: Optional[str] = None
    properties: Dict[str, Any] = field(default_factory=dict)
    tags: List[str] = field(default_factory=list)
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "organization_id": self.organization_id,
            "description": self.description,
            "properties": dict(self.properties),
            "tags": list(self.tags),
            "is_active": self.is_active,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


@dataclass(slots=True)
class Edge:
    id: str
    source_node_id: str
    target_node_id: str
    type: RelationshipType
    organization_id: str
    weight: float = 1.0
    properties: Dict[str, Any] = field(default_factory=dict)
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "source_node_id": self.source_node_id,
            "target_node_id": self.target_node_id,
            "type": self.type.value,
            "organization_id": self.organization_id,
            "weight": self.weight,
            "properties": dict(self.properties),
            "is_active": self.is_active,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


@dataclass(slots=True)
class Neighbor:
    """One adjacency entry: the edge that was followed and the node it leads to."""
    neighbor_id: str
    edge_id: str
    source_id: str
    target_id: str
    weight: float
    type: RelationshipType

    def to_path_edge(self) -> "PathEdge":
        return PathEdge(
            edge_id=self.edge_id,
            source_id=self.source_id,
            target_id=self.target_id,
            weight=self.weight,
            type=self.type,
        )


@dataclass(slots=True, frozen=True)
class PathEdge:
    edge_id: str
    source_id: str
    target_id: str
    weight: float
    type: RelationshipType

    def to_dict(self) -> dict:
        return {
            "edge_id": self.edge_id,
            "source_id": self.source_id,
            "target_id": self.target_id,
            "weight": self.weight,
            "type": self.type.value,
        }


@dataclass(slots=True)
class PathResult:
    path: List[str]
    distance: int  # hop count
    total_weight: float
    edges: List[PathEdge] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "path": list(self.path),
            "distance": self.distance,
            "total_weight": self.total_weight,
            "edges": [edge.to_dict() for edge in self.edges],
        }


@dataclass(slots=True)
class SubgraphCriteria:
    node_types: Optional[List[NodeType]] = None
    relationship_types: Optional[List[RelationshipType]] = None
    min_weight: Optional[float] = None
    max_weight: Optional[float] = None
    tags: Optional[List[str]] = None
    created_after: Optional[datetime] = None
    created_before: Optional[datetime] = None
    properties: Optional[Dict[str, Any]] = None


@dataclass(slots=True)
class Subgraph:
    nodes: List[Node] = field(default_factory=list)
    edges: List[Edge] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "nodes": [node.to_dict() for node in self.nodes],
            "edges": [edge.to_dict() for edge in self.edges],
        }


@dataclass(slots=True, frozen=True)
class GraphMetrics:
    node_count: int
    edge_count: int
    average_degree: float
    density_ratio: float

    def to_dict(self) -> dict:
        return {
            "node_count": self.node_count,
            "edge_count": self.edge_count,
            "average_degree": self.average_degree,
            "density_ratio": self.density_ratio,
        }


@dataclass(slots=True)
class TraversalItem:
    node: Node
    depth: int
    path: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "node": self.node.to_dict(),
            "depth": self.depth,
            "path": list(self.path),
        }
