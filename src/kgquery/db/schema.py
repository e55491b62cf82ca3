"""Schema definitions for the knowledge graph database.

Nodes and edges are written by the node-management collaborator; this module
provides:
- DDL for graph_nodes / graph_edges and the indexes the scans rely on
- Schema validation to ensure the database has expected tables
- Timestamp helpers shared by the stores and the repository
"""
from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import Optional


# Expected tables in the knowledge graph database
EXPECTED_TABLES = frozenset({
    "graph_nodes",
    "graph_edges",
})

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS graph_nodes (
    id TEXT PRIMARY KEY,
    organization_id TEXT NOT NULL,
    name TEXT NOT NULL,
    type TEXT NOT NULL DEFAULT 'custom',
    description TEXT,
    properties TEXT NOT NULL DEFAULT '{}',
    tags TEXT NOT NULL DEFAULT '[]',
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS graph_edges (
    id TEXT PRIMARY KEY,
    organization_id TEXT NOT NULL,
    source_node_id TEXT NOT NULL,
    target_node_id TEXT NOT NULL,
    type TEXT NOT NULL DEFAULT 'relates_to',
    weight REAL NOT NULL DEFAULT 1.0 CHECK (weight >= 0),
    properties TEXT NOT NULL DEFAULT '{}',
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_nodes_org_active ON graph_nodes(organization_id, is_active);
CREATE INDEX IF NOT EXISTS idx_nodes_type ON graph_nodes(type);
CREATE INDEX IF NOT EXISTS idx_nodes_created_at ON graph_nodes(created_at);
CREATE INDEX IF NOT EXISTS idx_edges_source_type ON graph_edges(source_node_id, type);
CREATE INDEX IF NOT EXISTS idx_edges_target_type ON graph_edges(target_node_id, type);
CREATE INDEX IF NOT EXISTS idx_edges_source_target ON graph_edges(source_node_id, target_node_id);
CREATE INDEX IF NOT EXISTS idx_edges_org_active ON graph_edges(organization_id, is_active);
CREATE INDEX IF NOT EXISTS idx_edges_org_type ON graph_edges(organization_id, type);
"""


class SchemaError(Exception):
    """Raised when database schema validation fails."""
    pass


def apply_schema(conn: sqlite3.Connection) -> None:
    """Create the graph tables and indexes if they do not exist yet."""
    conn.executescript(SCHEMA_SQL)


def validate_schema(conn: sqlite3.Connection) -> None:
    """Validate that the database has the knowledge graph tables.

    Args:
        conn: SQLite connection to validate

    Raises:
        SchemaError: If required tables are missing
    """
    cursor = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table'"
    )
    existing_tables = {row[0] for row in cursor.fetchall()}

    missing = EXPECTED_TABLES - existing_tables
    if missing:
        raise SchemaError(
            f"Database is missing required tables: {', '.join(sorted(missing))}. "
            "Run `kgquery load` or apply the schema before querying."
        )


def format_timestamp(value: datetime) -> str:
    """Render a datetime as UTC ISO-8601 text with a fixed width.

    Naive datetimes are taken to be UTC already. The fixed format keeps
    lexicographic comparison in SQL equal to chronological comparison.
    """
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.strftime("%Y-%m-%dT%H:%M:%S.%f")


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value).replace(tzinfo=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
