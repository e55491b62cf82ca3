"""Read-only node and edge stores.

Every scan here is scoped to one organization and to active rows only.
These are the only places the query engine touches SQL; adjacency is
fetched on demand through indexed lookups and never cached.
"""
from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..graph.errors import StoreError
from ..models.records import Edge, Node, NodeType, RelationshipType
from .schema import format_timestamp, parse_timestamp


LIKE_ESCAPE_CHAR = "\\"

NODE_COLUMNS = """
    n.id, n.organization_id, n.name, n.type, n.description, n.properties,
    n.tags, n.is_active, n.created_at, n.updated_at
"""

EDGE_COLUMNS = """
    e.id, e.organization_id, e.source_node_id, e.target_node_id, e.type,
    e.weight, e.properties, e.is_active, e.created_at, e.updated_at
"""

# An edge is only visible while both of its endpoints are active nodes of the
# same organization, so deactivated nodes never surface as path hops.
ACTIVE_ENDPOINTS = """(
    EXISTS (SELECT 1 FROM graph_nodes sn
            WHERE sn.id = e.source_node_id AND sn.organization_id = e.organization_id
              AND sn.is_active = 1)
    AND EXISTS (SELECT 1 FROM graph_nodes tn
                WHERE tn.id = e.target_node_id AND tn.organization_id = e.organization_id
                  AND tn.is_active = 1)
)"""


def _escape_like_pattern(pattern: str) -> str:
    return pattern.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _fetch(conn: sqlite3.Connection, sql: str, params: Dict[str, Any]) -> List[sqlite3.Row]:
    try:
        return conn.execute(sql, params).fetchall()
    except sqlite3.Error as exc:
        raise StoreError(f"Graph store query failed: {exc}") from exc


def _in_clause(column: str, prefix: str, values: Sequence[Any], params: Dict[str, Any]) -> str:
    keys = []
    for idx, value in enumerate(values):
        key = f"{prefix}{idx}"
        params[key] = value.value if hasattr(value, "value") else value
        keys.append(f":{key}")
    return f"{column} IN ({', '.join(keys)})"


def _tags_overlap_clause(alias: str, tags: Sequence[str], params: Dict[str, Any]) -> str:
    params["tags_json"] = json.dumps(list(tags))
    return (
        f"EXISTS (SELECT 1 FROM json_each({alias}.tags) AS t "
        "WHERE t.value IN (SELECT value FROM json_each(:tags_json)))"
    )


def _decode_json(row: sqlite3.Row, column: str, default: Any) -> Any:
    if not row[column]:
        return default
    try:
        return json.loads(row[column])
    except ValueError as exc:
        raise StoreError(f"Row {row['id']} has malformed {column} JSON: {exc}") from exc


def _row_to_node(row: sqlite3.Row) -> Node:
    try:
        node_type = NodeType(row["type"])
    except ValueError as exc:
        raise StoreError(f"Node {row['id']} has unknown type '{row['type']}'") from exc
    properties = _decode_json(row, "properties", {})
    tags = _decode_json(row, "tags", [])
    return Node(
        id=row["id"],
        name=row["name"],
        type=node_type,
        organization_id=row["organization_id"],
        description=row["description"],
        properties=properties,
        tags=tags,
        is_active=bool(row["is_active"]),
        created_at=parse_timestamp(row["created_at"]),
        updated_at=parse_timestamp(row["updated_at"]),
    )


def _row_to_edge(row: sqlite3.Row) -> Edge:
    try:
        edge_type = RelationshipType(row["type"])
    except ValueError as exc:
        raise StoreError(f"Edge {row['id']} has unknown type '{row['type']}'") from exc
    properties = _decode_json(row, "properties", {})
    return Edge(
        id=row["id"],
        source_node_id=row["source_node_id"],
        target_node_id=row["target_node_id"],
        type=edge_type,
        organization_id=row["organization_id"],
        weight=float(row["weight"]),
        properties=properties,
        is_active=bool(row["is_active"]),
        created_at=parse_timestamp(row["created_at"]),
        updated_at=parse_timestamp(row["updated_at"]),
    )


@dataclass
class NodeStore:
    conn: sqlite3.Connection

    def find_by_id(self, node_id: str, organization_id: str) -> Optional[Node]:
        rows = _fetch(
            self.conn,
            f"""
            SELECT {NODE_COLUMNS}
            FROM graph_nodes n
            WHERE n.id = :node_id
              AND n.organization_id = :org
              AND n.is_active = 1
            """,
            {"node_id": node_id, "org": organization_id},
        )
        return _row_to_node(rows[0]) if rows else None

    def find_by_ids(self, organization_id: str, node_ids: Iterable[str]) -> List[Node]:
        ids = list(dict.fromkeys(node_ids))
        if not ids:
            return []
        rows = _fetch(
            self.conn,
            f"""
            SELECT {NODE_COLUMNS}
            FROM graph_nodes n
            WHERE n.organization_id = :org
              AND n.is_active = 1
              AND n.id IN (SELECT value FROM json_each(:node_ids))
            """,
            {"org": organization_id, "node_ids": json.dumps(ids)},
        )
        return [_row_to_node(row) for row in rows]

    def find_by_organization(
        self,
        organization_id: str,
        node_types: Optional[Sequence[NodeType]] = None,
        tags: Optional[Sequence[str]] = None,
        created_after: Optional[datetime] = None,
        created_before: Optional[datetime] = None,
    ) -> List[Node]:
        params: Dict[str, Any] = {"org": organization_id}
        where = self._base_filters("n", params, node_types, tags)
        if created_after is not None:
            params["created_after"] = format_timestamp(created_after)
            where.append("n.created_at >= :created_after")
        if created_before is not None:
            params["created_before"] = format_timestamp(created_before)
            where.append("n.created_at <= :created_before")
        rows = _fetch(
            self.conn,
            f"""
            SELECT {NODE_COLUMNS}
            FROM graph_nodes n
            WHERE {" AND ".join(where)}
            """,
            params,
        )
        return [_row_to_node(row) for row in rows]

    def find_by_pattern(
        self,
        organization_id: str,
        text: str,
        node_types: Optional[Sequence[NodeType]] = None,
        tags: Optional[Sequence[str]] = None,
    ) -> List[Node]:
        params: Dict[str, Any] = {
            "org": organization_id,
            "pattern": f"%{_escape_like_pattern(text.casefold())}%",
        }
        where = self._base_filters("n", params, node_types, tags)
        where.append(
            "("
            f"casefold(n.name) LIKE :pattern ESCAPE '{LIKE_ESCAPE_CHAR}' OR "
            f"casefold(COALESCE(n.description, '')) LIKE :pattern ESCAPE '{LIKE_ESCAPE_CHAR}'"
            ")"
        )
        rows = _fetch(
            self.conn,
            f"""
            SELECT {NODE_COLUMNS}
            FROM graph_nodes n
            WHERE {" AND ".join(where)}
            """,
            params,
        )
        return [_row_to_node(row) for row in rows]

    def _base_filters(
        self,
        alias: str,
        params: Dict[str, Any],
        node_types: Optional[Sequence[NodeType]],
        tags: Optional[Sequence[str]],
    ) -> List[str]:
        where = [f"{alias}.organization_id = :org", f"{alias}.is_active = 1"]
        if node_types:
            where.append(_in_clause(f"{alias}.type", "nt", node_types, params))
        if tags:
            where.append(_tags_overlap_clause(alias, tags, params))
        return where


@dataclass
class EdgeStore:
    conn: sqlite3.Connection

    def find_by_source(
        self,
        node_id: str,
        organization_id: str,
        relationship_types: Optional[Sequence[RelationshipType]] = None,
    ) -> List[Edge]:
        return self._find_by_endpoint("source_node_id", node_id, organization_id, relationship_types)

    def find_by_target(
        self,
        node_id: str,
        organization_id: str,
        relationship_types: Optional[Sequence[RelationshipType]] = None,
    ) -> List[Edge]:
        return self._find_by_endpoint("target_node_id", node_id, organization_id, relationship_types)

    def find_by_organization_and_node_set(
        self,
        organization_id: str,
        node_ids: Iterable[str],
        relationship_types: Optional[Sequence[RelationshipType]] = None,
        min_weight: Optional[float] = None,
        max_weight: Optional[float] = None,
    ) -> List[Edge]:
        ids = list(dict.fromkeys(node_ids))
        if not ids:
            return []
        params: Dict[str, Any] = {"org": organization_id, "node_ids": json.dumps(ids)}
        where = [
            "e.organization_id = :org",
            "e.is_active = 1",
            "e.source_node_id IN (SELECT value FROM json_each(:node_ids))",
            "e.target_node_id IN (SELECT value FROM json_each(:node_ids))",
        ]
        if relationship_types:
            where.append(_in_clause("e.type", "rt", relationship_types, params))
        if min_weight is not None:
            params["min_weight"] = min_weight
            where.append("e.weight >= :min_weight")
        if max_weight is not None:
            params["max_weight"] = max_weight
            where.append("e.weight <= :max_weight")
        rows = _fetch(
            self.conn,
            f"""
            SELECT {EDGE_COLUMNS}
            FROM graph_edges e
            WHERE {" AND ".join(where)}
            """,
            params,
        )
        return [_row_to_edge(row) for row in rows]

    def find_between(self, source_id: str, target_id: str, organization_id: str) -> List[Edge]:
        rows = _fetch(
            self.conn,
            f"""
            SELECT {EDGE_COLUMNS}
            FROM graph_edges e
            WHERE e.source_node_id = :source
              AND e.target_node_id = :target
              AND e.organization_id = :org
              AND e.is_active = 1
              AND {ACTIVE_ENDPOINTS}
            """,
            {"source": source_id, "target": target_id, "org": organization_id},
        )
        return [_row_to_edge(row) for row in rows]

    def find_by_organization(self, organization_id: str) -> List[Edge]:
        rows = _fetch(
            self.conn,
            f"""
            SELECT {EDGE_COLUMNS}
            FROM graph_edges e
            WHERE e.organization_id = :org
              AND e.is_active = 1
              AND {ACTIVE_ENDPOINTS}
            """,
            {"org": organization_id},
        )
        return [_row_to_edge(row) for row in rows]

    def count_by_source(self, node_id: str, organization_id: str) -> int:
        return self._count("source_node_id", node_id, organization_id)

    def count_by_target(self, node_id: str, organization_id: str) -> int:
        return self._count("target_node_id", node_id, organization_id)

    # --- internal ---
    def _find_by_endpoint(
        self,
        column: str,
        node_id: str,
        organization_id: str,
        relationship_types: Optional[Sequence[RelationshipType]],
    ) -> List[Edge]:
        params: Dict[str, Any] = {"node_id": node_id, "org": organization_id}
        where = [
            f"e.{column} = :node_id",
            "e.organization_id = :org",
            "e.is_active = 1",
            ACTIVE_ENDPOINTS,
        ]
        if relationship_types:
            where.append(_in_clause("e.type", "rt", relationship_types, params))
        rows = _fetch(
            self.conn,
            f"""
            SELECT {EDGE_COLUMNS}
            FROM graph_edges e
            WHERE {" AND ".join(where)}
            """,
            params,
        )
        return [_row_to_edge(row) for row in rows]

    def _count(self, column: str, node_id: str, organization_id: str) -> int:
        rows = _fetch(
            self.conn,
            f"""
            SELECT COUNT(*) AS edge_count
            FROM graph_edges e
            WHERE e.{column} = :node_id
              AND e.organization_id = :org
              AND e.is_active = 1
              AND {ACTIVE_ENDPOINTS}
            """,
            {"node_id": node_id, "org": organization_id},
        )
        return int(rows[0]["edge_count"]) if rows else 0

