"""Query service over a knowledge graph database.

Provides the high-level API used by the CLI and the MCP server:
- shortest_path: Path between two nodes (dijkstra, weighted or astar)
- neighbors: Adjacency of one node
- extract_subgraph: Nodes and edges matching criteria
- find_nodes: Text search over names and descriptions
- graph_metrics: Counts, degree, density and type distributions
- load_graph: Bulk load a YAML/JSON graph document

Every call opens its own connection and returns JSON-ready dicts.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..config import Settings
from ..graph.engine import GraphQueryEngine
from ..graph.errors import InvalidArgumentError
from ..graph.limits import SearchLimits
from ..graph.subgraph import restrict_edges_to_nodes
from ..models.records import SubgraphCriteria
from .connection import get_connection
from .repository import GraphRepository

logger = logging.getLogger(__name__)

PATH_ALGORITHMS = ("dijkstra", "weighted", "astar")


class GraphQueryService:
    """Service for executing graph queries against one database.

    Reads go through read-only connections. Only load_graph writes.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def _limits(self) -> SearchLimits:
        # Built per call so the deadline starts when the query does.
        return SearchLimits.from_timeout(
            self.settings.max_expansions, self.settings.search_timeout_seconds
        )

    def _organization(self, organization_id: Optional[str]) -> str:
        org = organization_id or self.settings.default_organization_id
        if not org:
            raise InvalidArgumentError(
                "organization_id is required (set default_organization_id in config)"
            )
        return org

    def shortest_path(
        self,
        source_id: str,
        target_id: str,
        organization_id: Optional[str] = None,
        algorithm: str = "dijkstra",
        relationship_types: Optional[Sequence[str]] = None,
        direction: str = "both",
    ) -> Optional[Dict[str, Any]]:
        """Find a path between two nodes.

        Args:
            source_id: Start node id
            target_id: Goal node id
            organization_id: Organization scope (falls back to config)
            algorithm: "dijkstra" (fewest hops first), "weighted" (least
                total weight) or "astar" (least total weight,
                direction fixed to both)
            relationship_types: Optional relationship type filter
            direction: outgoing, incoming or both (ignored by astar)

        Returns:
            Path information or None if no path exists.
        """
        if algorithm not in PATH_ALGORITHMS:
            raise InvalidArgumentError(
                f"Unknown algorithm '{algorithm}'. Expected one of: {', '.join(PATH_ALGORITHMS)}"
            )
        org = self._organization(organization_id)
        with get_connection(self.settings.db_path) as conn:
            engine = GraphQueryEngine.from_connection(conn, self._limits())
            if algorithm == "astar":
                result = engine.a_star(source_id, target_id, org, relationship_types)
            elif algorithm == "weighted":
                result = engine.weighted_dijkstra(
                    source_id, target_id, org, relationship_types, direction
                )
            else:
                result = engine.dijkstra(source_id, target_id, org, relationship_types, direction)
            if result is None:
                return None
            payload = result.to_dict()
            payload["algorithm"] = algorithm
            nodes = {node.id: node for node in engine.nodes.find_by_ids(org, result.path)}
            payload["nodes"] = [
                nodes[node_id].to_dict() for node_id in result.path if node_id in nodes
            ]
            return payload

    def neighbors(
        self,
        node_id: str,
        organization_id: Optional[str] = None,
        relationship_types: Optional[Sequence[str]] = None,
        direction: str = "both",
    ) -> Optional[Dict[str, Any]]:
        """List the edges around a node together with the nodes they lead to.

        Returns:
            Node and neighbor information or None if the node is not found.
        """
        org = self._organization(organization_id)
        with get_connection(self.settings.db_path) as conn:
            engine = GraphQueryEngine.from_connection(conn, self._limits())
            node = engine.nodes.find_by_id(node_id, org)
            if node is None:
                return None
            adjacency = engine.neighbors(node_id, org, relationship_types, direction)
            others = {
                other.id: other
                for other in engine.nodes.find_by_ids(org, [n.neighbor_id for n in adjacency])
            }
            entries: List[Dict[str, Any]] = []
            for neighbor in adjacency:
                other = others.get(neighbor.neighbor_id)
                entries.append(
                    {
                        "node_id": neighbor.neighbor_id,
                        "name": other.name if other else None,
                        "node_type": other.type.value if other else None,
                        "edge_id": neighbor.edge_id,
                        "relationship_type": neighbor.type.value,
                        "weight": neighbor.weight,
                        "direction": "outgoing" if neighbor.source_id == node_id else "incoming",
                    }
                )
            return {"node": node.to_dict(), "neighbors": entries, "count": len(entries)}

    def extract_subgraph(
        self,
        organization_id: Optional[str] = None,
        node_types: Optional[Sequence[str]] = None,
        relationship_types: Optional[Sequence[str]] = None,
        min_weight: Optional[float] = None,
        max_weight: Optional[float] = None,
        tags: Optional[Sequence[str]] = None,
        created_after: Optional[datetime] = None,
        created_before: Optional[datetime] = None,
        properties: Optional[Mapping[str, Any]] = None,
        closed: bool = False,
    ) -> Dict[str, Any]:
        """Extract the subgraph matching the given criteria.

        Args:
            closed: If True, drop edges whose endpoints were removed by the
                property filter

        Returns:
            Nodes, edges and their counts.
        """
        org = self._organization(organization_id)
        criteria = SubgraphCriteria(
            node_types=list(node_types) if node_types else None,
            relationship_types=list(relationship_types) if relationship_types else None,
            min_weight=min_weight,
            max_weight=max_weight,
            tags=list(tags) if tags else None,
            created_after=created_after,
            created_before=created_before,
            properties=dict(properties) if properties else None,
        )
        with get_connection(self.settings.db_path) as conn:
            engine = GraphQueryEngine.from_connection(conn)
            subgraph = engine.extract_subgraph(org, criteria)
        if closed:
            subgraph = restrict_edges_to_nodes(subgraph)
        payload = subgraph.to_dict()
        payload["node_count"] = len(subgraph.nodes)
        payload["edge_count"] = len(subgraph.edges)
        return payload

    def find_nodes(
        self,
        text_pattern: str,
        organization_id: Optional[str] = None,
        node_types: Optional[Sequence[str]] = None,
        tags: Optional[Sequence[str]] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Search nodes whose name or description contains the text.

        Returns:
            List of matching nodes, at most `limit` when given.
        """
        org = self._organization(organization_id)
        with get_connection(self.settings.db_path) as conn:
            engine = GraphQueryEngine.from_connection(conn)
            matches = engine.find_nodes_by_pattern(org, text_pattern, node_types, tags)
        if limit is not None:
            matches = matches[:limit]
        return [node.to_dict() for node in matches]

    def graph_metrics(self, organization_id: Optional[str] = None) -> Dict[str, Any]:
        """Counts, average degree, density and type histograms of the active graph."""
        org = self._organization(organization_id)
        with get_connection(self.settings.db_path) as conn:
            engine = GraphQueryEngine.from_connection(conn)
            stats = engine.graph_statistics(org)
        stats["organization_id"] = org
        return stats

    def load_graph(self, payload: Mapping[str, Any]) -> Dict[str, int]:
        """Write a graph document into the database, creating it if needed."""
        with get_connection(self.settings.db_path, read_only=False) as conn:
            counts = GraphRepository(conn).load_graph(payload)
        logger.info(
            "Loaded %d nodes and %d edges into %s",
            counts["nodes"],
            counts["edges"],
            self.settings.db_path,
        )
        return counts
