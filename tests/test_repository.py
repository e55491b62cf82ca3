"""Tests for the graph writer and the read-only stores."""

import json
from pathlib import Path

import pytest

from kgquery.db.connection import connect
from kgquery.db.repository import GraphRepository
from kgquery.db.stores import EdgeStore, NodeStore
from kgquery.graph.errors import InvalidArgumentError, StoreError
from kgquery.models.records import Edge, NodeType, RelationshipType

from conftest import ORG, OTHER_ORG, add_node, create_graph_db, ts


class TestGraphRepository:
    """Tests for upserts, soft deletes and document loading."""

    def test_upsert_node_updates_in_place(self, empty_conn):
        add_node(empty_conn, "a", "Alpha", tags=["x"], created_at=ts(2024, 1, 1))
        add_node(empty_conn, "a", "Alpha Prime", tags=["y", "y"])

        rows = empty_conn.execute("SELECT name, tags, created_at FROM graph_nodes").fetchall()
        assert len(rows) == 1
        assert rows[0]["name"] == "Alpha Prime"
        assert json.loads(rows[0]["tags"]) == ["y"]
        # created_at survives the update
        assert rows[0]["created_at"].startswith("2024-01-01")

    def test_deactivate_node_is_soft_delete(self, empty_conn):
        add_node(empty_conn, "a", "Alpha")
        GraphRepository(empty_conn).deactivate_node("a")

        row = empty_conn.execute("SELECT is_active FROM graph_nodes WHERE id = 'a'").fetchone()
        assert row["is_active"] == 0
        assert NodeStore(empty_conn).find_by_id("a", ORG) is None

    def test_deactivate_edge_hides_it(self, empty_conn):
        add_node(empty_conn, "a", "Alpha")
        add_node(empty_conn, "b", "Beta")
        GraphRepository(empty_conn).load_graph(
            {"organization_id": ORG, "edges": [{"id": "ab", "source": "a", "target": "b"}]}
        )
        assert len(EdgeStore(empty_conn).find_by_source("a", ORG)) == 1

        GraphRepository(empty_conn).deactivate_edge("ab")

        assert EdgeStore(empty_conn).find_by_source("a", ORG) == []

    def test_negative_edge_weight_rejected(self, empty_conn):
        edge = Edge(
            id="e",
            source_node_id="a",
            target_node_id="b",
            type=RelationshipType.RELATES_TO,
            organization_id=ORG,
            weight=-0.5,
        )
        with pytest.raises(InvalidArgumentError):
            GraphRepository(empty_conn).upsert_edge(edge)

    def test_load_graph_document(self, empty_conn):
        counts = GraphRepository(empty_conn).load_graph(
            {
                "organization_id": ORG,
                "nodes": [
                    {"id": "a", "name": "Alpha", "type": "Concept", "tags": ["t"]},
                    {"id": "b", "name": "Beta", "type": "task", "created_at": "2024-02-01T00:00:00"},
                    {"id": "c", "name": "Gamma", "organization_id": OTHER_ORG},
                ],
                "edges": [
                    {"source": "a", "target": "b", "type": "depends_on", "weight": 2},
                ],
            }
        )

        assert counts == {"nodes": 3, "edges": 1}
        nodes = NodeStore(empty_conn)
        assert nodes.find_by_id("a", ORG).type == NodeType.CONCEPT
        assert nodes.find_by_id("b", ORG).created_at == ts(2024, 2, 1)
        assert nodes.find_by_id("c", OTHER_ORG).type == NodeType.CUSTOM
        edges = EdgeStore(empty_conn).find_by_source("a", ORG)
        assert [(edge.target_node_id, edge.type, edge.weight) for edge in edges] == [
            ("b", RelationshipType.DEPENDS_ON, 2.0)
        ]

    def test_load_graph_rejects_unknown_type(self, empty_conn):
        with pytest.raises(InvalidArgumentError) as exc_info:
            GraphRepository(empty_conn).load_graph(
                {"organization_id": ORG, "nodes": [{"id": "a", "name": "A", "type": "planet"}]}
            )
        assert "planet" in str(exc_info.value)

    def test_load_graph_requires_organization(self, empty_conn):
        with pytest.raises(InvalidArgumentError):
            GraphRepository(empty_conn).load_graph({"nodes": [{"id": "a", "name": "A"}]})


class TestNodeStore:
    """Tests for organization-scoped node scans."""

    def test_find_by_id_is_org_scoped(self, graph_conn):
        nodes = NodeStore(graph_conn)
        assert nodes.find_by_id("n1", ORG).name == "Node 1"
        assert nodes.find_by_id("x1", ORG) is None
        assert nodes.find_by_id("n1", OTHER_ORG) is None

    def test_find_by_id_skips_inactive(self, graph_conn):
        assert NodeStore(graph_conn).find_by_id("n6", ORG) is None

    def test_find_by_ids_ignores_unknown_and_duplicates(self, graph_conn):
        found = NodeStore(graph_conn).find_by_ids(ORG, ["n1", "n1", "n6", "missing", "x1"])
        assert [node.id for node in found] == ["n1"]

    def test_find_by_organization_filters(self, graph_conn):
        nodes = NodeStore(graph_conn)

        all_ids = {node.id for node in nodes.find_by_organization(ORG)}
        assert all_ids == {"n1", "n2", "n3", "n4", "n5", "n7"}

        tasks = nodes.find_by_organization(ORG, node_types=[NodeType.TASK])
        assert {node.id for node in tasks} == {"n3", "n7"}

        tagged = nodes.find_by_organization(ORG, tags=["ml", "ops"])
        assert {node.id for node in tagged} == {"n1", "n3"}

        window = nodes.find_by_organization(
            ORG, created_after=ts(2024, 2, 1), created_before=ts(2024, 4, 1)
        )
        assert {node.id for node in window} == {"n2", "n3", "n4"}

    def test_row_decoding(self, graph_conn):
        node = NodeStore(graph_conn).find_by_id("n1", ORG)
        assert node.tags == ["core", "ml"]
        assert node.properties == {"priority": 1}
        assert node.created_at == ts(2024, 1, 1)
        assert node.is_active is True

    def test_unknown_stored_type_raises_store_error(self, tmp_path: Path):
        db_path = tmp_path / "graph.db"
        writer = create_graph_db(db_path)
        writer.execute(
            "INSERT INTO graph_nodes (id, organization_id, name, type, created_at, updated_at) "
            "VALUES ('a', ?, 'A', 'planet', '2024-01-01T00:00:00.000000', '2024-01-01T00:00:00.000000')",
            (ORG,),
        )
        writer.commit()
        writer.close()

        conn = connect(db_path)
        try:
            with pytest.raises(StoreError):
                NodeStore(conn).find_by_id("a", ORG)
        finally:
            conn.close()

    @pytest.mark.parametrize("column", ["properties", "tags"])
    def test_malformed_json_raises_store_error(self, empty_conn, column):
        add_node(empty_conn, "a", "Alpha")
        empty_conn.execute(f"UPDATE graph_nodes SET {column} = '{{not json' WHERE id = 'a'")
        empty_conn.commit()

        with pytest.raises(StoreError) as exc_info:
            NodeStore(empty_conn).find_by_id("a", ORG)

        assert column in str(exc_info.value)

    def test_malformed_edge_properties_raise_store_error(self, empty_conn):
        add_node(empty_conn, "a", "Alpha")
        add_node(empty_conn, "b", "Beta")
        GraphRepository(empty_conn).load_graph(
            {"organization_id": ORG, "edges": [{"id": "ab", "source": "a", "target": "b"}]}
        )
        empty_conn.execute("UPDATE graph_edges SET properties = '[1,' WHERE id = 'ab'")
        empty_conn.commit()

        with pytest.raises(StoreError):
            EdgeStore(empty_conn).find_by_source("a", ORG)


class TestEdgeStore:
    """Tests for organization-scoped edge scans."""

    def test_edges_to_inactive_or_foreign_nodes_are_hidden(self, graph_conn):
        edges = EdgeStore(graph_conn)
        assert [edge.id for edge in edges.find_by_source("n1", ORG)] == ["e1"]
        assert edges.find_by_target("n4", ORG)[0].id == "e3"
        assert len(edges.find_by_target("n4", ORG)) == 1

    def test_find_by_source_type_filter(self, graph_conn):
        edges = EdgeStore(graph_conn)
        assert edges.find_by_source("n2", ORG, [RelationshipType.RELATES_TO]) == []
        found = edges.find_by_source("n2", ORG, [RelationshipType.DEPENDS_ON])
        assert [edge.id for edge in found] == ["e2"]

    def test_find_by_organization_and_node_set(self, graph_conn):
        edges = EdgeStore(graph_conn)
        found = edges.find_by_organization_and_node_set(ORG, ["n1", "n2", "n3"])
        assert {edge.id for edge in found} == {"e1", "e2"}

        heavy = edges.find_by_organization_and_node_set(
            ORG, ["n1", "n2", "n3", "n4"], min_weight=1.6
        )
        assert [edge.id for edge in heavy] == ["e2"]

        assert edges.find_by_organization_and_node_set(ORG, []) == []

    def test_find_between_and_counts(self, graph_conn):
        edges = EdgeStore(graph_conn)
        assert [edge.id for edge in edges.find_between("n1", "n2", ORG)] == ["e1"]
        assert edges.find_between("n2", "n1", ORG) == []
        assert edges.count_by_source("n1", ORG) == 1
        assert edges.count_by_target("n1", ORG) == 0

    def test_find_by_organization(self, graph_conn):
        found = EdgeStore(graph_conn).find_by_organization(ORG)
        assert {edge.id for edge in found} == {"e1", "e2", "e3"}
