"""Tests for neighbor resolution and graph traversal."""

import pytest

from kgquery.graph.engine import GraphQueryEngine
from kgquery.graph.errors import SearchTruncatedError
from kgquery.graph.limits import SearchLimits
from kgquery.models.records import Direction, RelationshipType

from conftest import ORG, add_edge, add_node


@pytest.fixture
def diamond_engine(empty_conn):
    """a -> b -> d and a -> c -> d, plus a reciprocal pair d <-> e."""
    for node_id in "abcde":
        add_node(empty_conn, node_id, node_id.upper())
    add_edge(empty_conn, "ab", "a", "b")
    add_edge(empty_conn, "ac", "a", "c")
    add_edge(empty_conn, "bd", "b", "d", "depends_on")
    add_edge(empty_conn, "cd", "c", "d", "depends_on")
    add_edge(empty_conn, "de", "d", "e")
    add_edge(empty_conn, "ed", "e", "d")
    empty_conn.commit()
    return GraphQueryEngine.from_connection(empty_conn)


class TestNeighbors:
    """Tests for the adjacency primitive."""

    def test_direction_selects_edges(self, engine):
        outgoing = engine.neighbors("n2", ORG, direction="outgoing")
        incoming = engine.neighbors("n2", ORG, direction=Direction.INCOMING)
        both = engine.neighbors("n2", ORG)

        assert [(n.neighbor_id, n.edge_id) for n in outgoing] == [("n3", "e2")]
        assert [(n.neighbor_id, n.edge_id) for n in incoming] == [("n1", "e1")]
        assert sorted(n.neighbor_id for n in both) == ["n1", "n3"]

    def test_type_filter(self, engine):
        found = engine.neighbors("n2", ORG, relationship_types=[RelationshipType.DEPENDS_ON])
        assert [n.neighbor_id for n in found] == ["n3"]
        assert engine.neighbors("n2", ORG, relationship_types=[]) == engine.neighbors("n2", ORG)

    def test_both_keeps_duplicate_entries(self, diamond_engine):
        found = diamond_engine.neighbors("d", ORG, direction="both")
        to_e = [n for n in found if n.neighbor_id == "e"]
        assert sorted(n.edge_id for n in to_e) == ["de", "ed"]

    def test_neighbor_carries_edge_details(self, engine):
        (neighbor,) = engine.neighbors("n1", ORG)
        assert neighbor.source_id == "n1"
        assert neighbor.target_id == "n2"
        assert neighbor.weight == 1.5
        assert neighbor.type == RelationshipType.RELATES_TO

    def test_unknown_node_has_no_neighbors(self, engine):
        assert engine.neighbors("missing", ORG) == []


class TestBreadthAndDepthFirst:
    """Tests for bfs and dfs."""

    def test_bfs_levels(self, diamond_engine):
        items = diamond_engine.bfs("a", ORG, direction="outgoing")
        depths = {item.node.id: item.depth for item in items}
        assert depths == {"a": 0, "b": 1, "c": 1, "d": 2, "e": 3}
        assert items[0].path == ["a"]
        assert items[-1].node.id == "e"

    def test_bfs_max_depth(self, diamond_engine):
        items = diamond_engine.bfs("a", ORG, max_depth=1, direction="outgoing")
        assert {item.node.id for item in items} == {"a", "b", "c"}

    def test_bfs_skips_inactive(self, engine):
        ids = [item.node.id for item in engine.bfs("n1", ORG)]
        assert ids == ["n1", "n2", "n3", "n4"]

    def test_bfs_missing_start(self, engine):
        assert engine.bfs("missing", ORG) == []

    def test_dfs_visits_each_node_once(self, diamond_engine):
        items = diamond_engine.dfs("a", ORG, direction="outgoing")
        ids = [item.node.id for item in items]
        assert ids[0] == "a"
        assert sorted(ids) == ["a", "b", "c", "d", "e"]
        for item in items:
            assert item.path[-1] == item.node.id
            assert item.depth == len(item.path) - 1

    def test_dfs_goes_deep_first(self, engine):
        ids = [item.node.id for item in engine.dfs("n1", ORG, direction="outgoing")]
        assert ids == ["n1", "n2", "n3", "n4"]

    def test_traversal_respects_limits(self, diamond_engine):
        with pytest.raises(SearchTruncatedError):
            diamond_engine.bfs("a", ORG, limits=SearchLimits(max_expansions=2))


class TestReachability:
    """Tests for bounded neighborhoods and connectivity."""

    def test_neighbors_within(self, diamond_engine):
        assert diamond_engine.neighbors_within("a", ORG, direction="outgoing") == {"b": 1, "c": 1}
        assert diamond_engine.neighbors_within("a", ORG, direction="outgoing", depth=2) == {
            "b": 1,
            "c": 1,
            "d": 2,
        }
        assert diamond_engine.neighbors_within("a", ORG, depth=0) == {}

    def test_find_all_paths(self, diamond_engine):
        paths = diamond_engine.find_all_paths("a", "d", ORG)
        assert sorted(paths) == [["a", "b", "d"], ["a", "c", "d"]]

    def test_find_all_paths_respects_length(self, diamond_engine):
        assert diamond_engine.find_all_paths("a", "e", ORG, max_path_length=2) == []
        assert len(diamond_engine.find_all_paths("a", "e", ORG, max_path_length=3)) == 2

    def test_find_all_paths_missing_source(self, diamond_engine):
        assert diamond_engine.find_all_paths("missing", "d", ORG) == []

    def test_is_connected(self, engine):
        assert engine.is_connected("n1", "n4", ORG)
        assert engine.is_connected("n4", "n1", ORG)
        assert engine.is_connected("n1", "n1", ORG)
        assert not engine.is_connected("n1", "n5", ORG)
        assert not engine.is_connected("n1", "n7", ORG)
        assert not engine.is_connected("n1", "n4", ORG, max_depth=2)

    def test_common_neighbors(self, diamond_engine):
        common = diamond_engine.common_neighbors("a", "d", ORG)
        assert sorted(node.id for node in common) == ["b", "c"]
        assert diamond_engine.common_neighbors("a", "e", ORG) == []


class TestHierarchy:
    """Tests for ancestors, descendants, degree and direct relationships."""

    def test_ancestors_and_descendants_exclude_start(self, engine):
        assert [node.id for node in engine.descendants("n2", ORG)] == ["n3", "n4"]
        assert [node.id for node in engine.ancestors("n3", ORG)] == ["n2", "n1"]
        assert [node.id for node in engine.ancestors("n3", ORG, max_depth=1)] == ["n2"]
        assert engine.ancestors("n1", ORG) == []

    def test_node_degree(self, engine):
        assert engine.node_degree("n2", ORG) == {"in_degree": 1, "out_degree": 1}
        # e4, e7 and e8 are not visible
        assert engine.node_degree("n1", ORG) == {"in_degree": 0, "out_degree": 1}
        assert engine.node_degree("n6", ORG) is None

    def test_relationships_between(self, diamond_engine):
        result = diamond_engine.relationships_between("d", "e", ORG)
        assert [edge.id for edge in result["direct_edges"]] == ["de"]
        assert [edge.id for edge in result["reverse_edges"]] == ["ed"]
        assert result["relationship_types"] == [RelationshipType.RELATES_TO]

        empty = diamond_engine.relationships_between("a", "e", ORG)
        assert empty == {"direct_edges": [], "reverse_edges": [], "relationship_types": []}
