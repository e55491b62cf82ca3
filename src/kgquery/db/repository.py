"""Writer for graph_nodes / graph_edges.

The query engine never writes; this repository stands in for the
node-management service so that graphs can be loaded from files and so
tests can build fixtures. Deactivation is a soft delete: rows stay in place
with is_active = 0.
"""
from __future__ import annotations

import json
import sqlite3
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..graph.errors import InvalidArgumentError
from ..models.records import (
    Edge,
    Node,
    NodeType,
    RelationshipType,
    parse_node_types,
    parse_relationship_types,
)
from .schema import format_timestamp, utcnow


@dataclass
class GraphRepository:
    conn: sqlite3.Connection

    # --- nodes ---
    def upsert_node(self, node: Node) -> str:
        now = utcnow()
        created = node.created_at or now
        updated = node.updated_at or now
        self.conn.execute(
            """
            INSERT INTO graph_nodes (
                id, organization_id, name, type, description,
                properties, tags, is_active, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                organization_id = excluded.organization_id,
                name = excluded.name,
                type = excluded.type,
                description = excluded.description,
                properties = excluded.properties,
                tags = excluded.tags,
                is_active = excluded.is_active,
                updated_at = excluded.updated_at
            """,
            (
                node.id,
                node.organization_id,
                node.name,
                node.type.value,
                node.description,
                json.dumps(node.properties, sort_keys=True),
                json.dumps(sorted(set(node.tags))),
                int(node.is_active),
                format_timestamp(created),
                format_timestamp(updated),
            ),
        )
        return node.id

    def deactivate_node(self, node_id: str) -> None:
        self.conn.execute(
            "UPDATE graph_nodes SET is_active = 0, updated_at = ? WHERE id = ?",
            (format_timestamp(utcnow()), node_id),
        )

    # --- edges ---
    def upsert_edge(self, edge: Edge) -> str:
        if edge.weight < 0:
            raise InvalidArgumentError(f"Edge {edge.id} has negative weight {edge.weight}")
        now = utcnow()
        self.conn.execute(
            """
            INSERT INTO graph_edges (
                id, organization_id, source_node_id, target_node_id, type,
                weight, properties, is_active, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                organization_id = excluded.organization_id,
                source_node_id = excluded.source_node_id,
                target_node_id = excluded.target_node_id,
                type = excluded.type,
                weight = excluded.weight,
                properties = excluded.properties,
                is_active = excluded.is_active,
                updated_at = excluded.updated_at
            """,
            (
                edge.id,
                edge.organization_id,
                edge.source_node_id,
                edge.target_node_id,
                edge.type.value,
                float(edge.weight),
                json.dumps(edge.properties, sort_keys=True),
                int(edge.is_active),
                format_timestamp(edge.created_at or now),
                format_timestamp(edge.updated_at or now),
            ),
        )
        return edge.id

    def deactivate_edge(self, edge_id: str) -> None:
        self.conn.execute(
            "UPDATE graph_edges SET is_active = 0, updated_at = ? WHERE id = ?",
            (format_timestamp(utcnow()), edge_id),
        )

    # --- bulk load ---
    def load_graph(self, payload: Mapping[str, Any]) -> Dict[str, int]:
        """Load a graph document of the form

            organization_id: org-1
            nodes: [{id, name, type, description?, properties?, tags?, created_at?}]
            edges: [{id?, source, target, type, weight?, properties?}]

        Entries may override organization_id individually. Returns counts.
        """
        default_org = payload.get("organization_id")
        nodes = [self._node_from_mapping(item, default_org) for item in payload.get("nodes") or []]
        edges = [self._edge_from_mapping(item, default_org) for item in payload.get("edges") or []]
        for node in nodes:
            self.upsert_node(node)
        for edge in edges:
            self.upsert_edge(edge)
        return {"nodes": len(nodes), "edges": len(edges)}

    # --- internal ---
    def _node_from_mapping(self, item: Mapping[str, Any], default_org: Optional[str]) -> Node:
        org = item.get("organization_id", default_org)
        if not org:
            raise InvalidArgumentError(f"Node {item.get('id') or item.get('name')} has no organization_id")
        if not item.get("name"):
            raise InvalidArgumentError("Every node needs a name")
        node_type = _single(parse_node_types([item.get("type", NodeType.CUSTOM.value)]))
        return Node(
            id=str(item.get("id") or uuid.uuid4()),
            name=str(item["name"]),
            type=node_type,
            organization_id=str(org),
            description=item.get("description"),
            properties=dict(item.get("properties") or {}),
            tags=[str(tag) for tag in item.get("tags") or []],
            is_active=bool(item.get("is_active", True)),
            created_at=_coerce_datetime(item.get("created_at")),
        )

    def _edge_from_mapping(self, item: Mapping[str, Any], default_org: Optional[str]) -> Edge:
        org = item.get("organization_id", default_org)
        source = item.get("source") or item.get("source_node_id")
        target = item.get("target") or item.get("target_node_id")
        if not org or not source or not target:
            raise InvalidArgumentError(f"Edge {item!r} needs organization_id, source and target")
        edge_type = _single(
            parse_relationship_types([item.get("type", RelationshipType.RELATES_TO.value)])
        )
        return Edge(
            id=str(item.get("id") or uuid.uuid4()),
            source_node_id=str(source),
            target_node_id=str(target),
            type=edge_type,
            organization_id=str(org),
            weight=float(item.get("weight", 1.0)),
            properties=dict(item.get("properties") or {}),
            is_active=bool(item.get("is_active", True)),
        )


def _single(values: Optional[Iterable[Any]]) -> Any:
    items: List[Any] = list(values or [])
    return items[0]


def _coerce_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError as exc:
        raise InvalidArgumentError(f"Invalid timestamp '{value}'") from exc
