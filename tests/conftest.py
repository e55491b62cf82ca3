"""Shared test fixtures for kgquery tests.

These fixtures create knowledge graph databases through the same schema and
repository the `kgquery load` command uses.
"""
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

import pytest

from kgquery.db.connection import connect
from kgquery.db.repository import GraphRepository
from kgquery.models.records import Edge, Node, NodeType, RelationshipType

ORG = "org-1"
OTHER_ORG = "org-2"


def ts(year: int, month: int, day: int) -> datetime:
    return datetime(year, month, day, tzinfo=timezone.utc)


def create_graph_db(db_path: Path) -> sqlite3.Connection:
    """Create an empty graph database and return a writable connection."""
    return connect(db_path, read_only=False)


def add_node(
    conn: sqlite3.Connection,
    node_id: str,
    name: str,
    node_type: str = "concept",
    organization_id: str = ORG,
    **kwargs,
) -> Node:
    node = Node(
        id=node_id,
        name=name,
        type=NodeType(node_type),
        organization_id=organization_id,
        **kwargs,
    )
    GraphRepository(conn).upsert_node(node)
    return node


def add_edge(
    conn: sqlite3.Connection,
    edge_id: str,
    source: str,
    target: str,
    rel_type: str = "relates_to",
    weight: float = 1.0,
    organization_id: str = ORG,
    **kwargs,
) -> Edge:
    edge = Edge(
        id=edge_id,
        source_node_id=source,
        target_node_id=target,
        type=RelationshipType(rel_type),
        organization_id=organization_id,
        weight=weight,
        **kwargs,
    )
    GraphRepository(conn).upsert_edge(edge)
    return edge


def seed_test_data(conn: sqlite3.Connection) -> None:
    """Insert the standard test graph.

    Active graph of org-1 as seen by queries:

        n1 -(relates_to 1.5)-> n2 -(depends_on 2.0)-> n3 -(references 1.0)-> n4
        n5 isolated

    Hidden from queries:
        n6 is inactive, so e4 (n1->n6), e5 (n6->n4) and e6 (n6->n7) vanish
        and n7 is unreachable; e7 (n1->n4) is an inactive edge; e8 points at
        x1, which belongs to org-2.
    """
    add_node(
        conn, "n1", "Node 1", "concept",
        description="First concept node", tags=["core", "ml"],
        properties={"priority": 1}, created_at=ts(2024, 1, 1),
    )
    add_node(
        conn, "n2", "Node 2", "concept",
        description="Second concept", tags=["core"],
        properties={"priority": 2}, created_at=ts(2024, 2, 1),
    )
    add_node(
        conn, "n3", "Node 3", "task",
        description="Depends on node 2", tags=["ops"],
        properties={"priority": 1}, created_at=ts(2024, 3, 1),
    )
    add_node(
        conn, "n4", "Design Doc", "document",
        description="100% coverage_plan", created_at=ts(2024, 4, 1),
    )
    add_node(conn, "n5", "Lonely", "concept", created_at=ts(2024, 5, 1))
    add_node(
        conn, "n6", "Retired Hub", "concept",
        is_active=False, created_at=ts(2024, 1, 15),
    )
    add_node(conn, "n7", "Behind Retired", "task", created_at=ts(2024, 6, 1))
    add_node(conn, "x1", "Node 1", "concept", organization_id=OTHER_ORG, created_at=ts(2024, 1, 1))

    add_edge(conn, "e1", "n1", "n2", "relates_to", 1.5)
    add_edge(conn, "e2", "n2", "n3", "depends_on", 2.0)
    add_edge(conn, "e3", "n3", "n4", "references", 1.0)
    add_edge(conn, "e4", "n1", "n6", "relates_to", 0.1)
    add_edge(conn, "e5", "n6", "n4", "relates_to", 0.1)
    add_edge(conn, "e6", "n6", "n7", "relates_to", 1.0)
    add_edge(conn, "e7", "n1", "n4", "supports", 10.0, is_active=False)
    add_edge(conn, "e8", "n1", "x1", "relates_to", 1.0)
    conn.commit()


def seed_db(tmp_path: Path) -> Path:
    """Create and seed a test database."""
    db_path = tmp_path / "graph.db"
    conn = create_graph_db(db_path)
    seed_test_data(conn)
    conn.close()
    return db_path


@pytest.fixture
def graph_db(tmp_path: Path) -> Path:
    return seed_db(tmp_path)


@pytest.fixture
def graph_conn(graph_db: Path):
    conn = connect(graph_db)
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture
def engine(graph_conn):
    from kgquery.graph.engine import GraphQueryEngine

    return GraphQueryEngine.from_connection(graph_conn)


@pytest.fixture
def empty_conn(tmp_path: Path):
    """Writable connection to an empty graph database for per-test graphs."""
    conn = create_graph_db(tmp_path / "empty.db")
    try:
        yield conn
    finally:
        conn.close()
