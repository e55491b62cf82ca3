"""Subgraph extraction and in-memory structural filters."""
from __future__ import annotations

import logging
from typing import Iterable, List

from ..db.schema import format_timestamp
from ..db.stores import EdgeStore, NodeStore
from ..models.records import (
    Edge,
    Node,
    NodeType,
    RelationshipType,
    Subgraph,
    SubgraphCriteria,
)
from .errors import InvalidArgumentError

logger = logging.getLogger(__name__)


def validate_criteria(criteria: SubgraphCriteria) -> None:
    """Reject criteria whose bounds cannot describe any subgraph.

    Raises:
        InvalidArgumentError: For negative weight bounds, min_weight above
            max_weight, or created_after later than created_before
    """
    for label, value in (("min_weight", criteria.min_weight), ("max_weight", criteria.max_weight)):
        if value is not None and value < 0:
            raise InvalidArgumentError(f"{label} must be non-negative, got {value}")
    if (
        criteria.min_weight is not None
        and criteria.max_weight is not None
        and criteria.min_weight > criteria.max_weight
    ):
        raise InvalidArgumentError(
            f"min_weight ({criteria.min_weight}) is greater than max_weight ({criteria.max_weight})"
        )
    if (
        criteria.created_after is not None
        and criteria.created_before is not None
        and format_timestamp(criteria.created_after) > format_timestamp(criteria.created_before)
    ):
        raise InvalidArgumentError("created_after is later than created_before")


def extract_subgraph(
    nodes: NodeStore,
    edges: EdgeStore,
    organization_id: str,
    criteria: SubgraphCriteria,
) -> Subgraph:
    """Select nodes by criteria, then the edges joining pairs of those nodes.

    Edges are selected against the node set BEFORE the property filter is
    applied, so returned edges may reference nodes that the property filter
    removed from `nodes`. Callers that need a closed subgraph should run
    `restrict_edges_to_nodes` on the result.
    """
    validate_criteria(criteria)
    logger.debug("Extracting subgraph for organization %s with %s", organization_id, criteria)

    selected = nodes.find_by_organization(
        organization_id,
        node_types=criteria.node_types,
        tags=criteria.tags,
        created_after=criteria.created_after,
        created_before=criteria.created_before,
    )
    if not selected:
        return Subgraph(nodes=[], edges=[])

    subgraph_edges = edges.find_by_organization_and_node_set(
        organization_id,
        [node.id for node in selected],
        relationship_types=criteria.relationship_types,
        min_weight=criteria.min_weight,
        max_weight=criteria.max_weight,
    )

    if criteria.properties:
        selected = [
            node for node in selected if _properties_match(node, criteria.properties)
        ]

    logger.debug(
        "Subgraph extracted: %d nodes, %d edges", len(selected), len(subgraph_edges)
    )
    return Subgraph(nodes=selected, edges=subgraph_edges)


def _properties_match(node: Node, expected: dict) -> bool:
    for key, value in expected.items():
        if key not in node.properties or not _same_value(node.properties[key], value):
            return False
    return True


def _same_value(actual, expected) -> bool:
    # bool is an int subclass, so True == 1 needs an explicit check; 1 == 1.0 stays equal.
    return isinstance(actual, bool) == isinstance(expected, bool) and actual == expected


def restrict_edges_to_nodes(subgraph: Subgraph) -> Subgraph:
    """Drop edges whose endpoints are not both present in `subgraph.nodes`."""
    node_ids = {node.id for node in subgraph.nodes}
    return Subgraph(
        nodes=list(subgraph.nodes),
        edges=[
            edge
            for edge in subgraph.edges
            if edge.source_node_id in node_ids and edge.target_node_id in node_ids
        ],
    )


def filter_by_relationship_type(
    edges: Iterable[Edge], relationship_types: Iterable[RelationshipType]
) -> List[Edge]:
    wanted = set(relationship_types)
    return [edge for edge in edges if edge.type in wanted]


def filter_by_node_type(nodes: Iterable[Node], node_types: Iterable[NodeType]) -> List[Node]:
    wanted = set(node_types)
    return [node for node in nodes if node.type in wanted]
