from __future__ import annotations

from typing import List, Optional, Sequence

from ..db.stores import NodeStore
from ..models.records import Node, NodeType


def find_nodes_by_pattern(
    nodes: NodeStore,
    organization_id: str,
    text_pattern: str,
    node_types: Optional[Sequence[NodeType]] = None,
    tags: Optional[Sequence[str]] = None,
) -> List[Node]:
    """Case-insensitive substring match on node name or description.

    The pattern is literal text: `%` and `_` match themselves. Results are
    not ranked and their order is unspecified.
    """
    return nodes.find_by_pattern(organization_id, text_pattern, node_types=node_types, tags=tags)
