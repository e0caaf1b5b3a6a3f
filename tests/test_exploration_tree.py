"""
Tests for ExplorationTree - arena construction and shape rules.
"""

from __future__ import annotations

import pytest

from deep_research.core.exceptions import TreeInvariantError
from deep_research.domain.entities import ExplorationTree, IterationResult, NodeStatus


@pytest.fixture
def tree():
    tree = ExplorationTree()
    root = tree.add_root("statins and dementia")
    tree.add_node("clinical outcomes", parent_id=root.id, max_depth=2, max_breadth=2, perspective_id="clinical-outcomes")
    tree.add_node("mechanisms", parent_id=root.id, max_depth=2, max_breadth=2, perspective_id="mechanisms")
    return tree


# ============================================================
# Construction
# ============================================================


class TestConstruction:
    def test_ids_and_depths(self, tree):
        assert list(tree.nodes) == ["node-0", "node-1", "node-2"]
        assert tree.root.is_root
        assert [n.depth for n in tree.children_of("node-0")] == [1, 1]

    def test_child_inherits_perspective(self, tree):
        child = tree.add_node("statin lipophilicity", parent_id="node-2", max_depth=2, max_breadth=2)

        assert child.perspective_id == "mechanisms"
        assert child.depth == 2
        assert tree.get("node-2").children == [child.id]

    def test_second_root_rejected(self, tree):
        with pytest.raises(TreeInvariantError):
            tree.add_root("again")

    def test_depth_limit(self, tree):
        child = tree.add_node("deeper", parent_id="node-1", max_depth=2, max_breadth=2)

        with pytest.raises(TreeInvariantError, match="depth"):
            tree.add_node("too deep", parent_id=child.id, max_depth=2, max_breadth=2)

    def test_breadth_limit(self, tree):
        with pytest.raises(TreeInvariantError):
            tree.add_node("third", parent_id="node-0", max_depth=2, max_breadth=2)

    def test_unknown_parent(self, tree):
        with pytest.raises(TreeInvariantError, match="Parent node not found"):
            tree.add_node("orphan", parent_id="node-99", max_depth=2, max_breadth=2)

    def test_rejected_node_leaves_tree_unchanged(self, tree):
        with pytest.raises(TreeInvariantError):
            tree.add_node("third", parent_id="node-0", max_depth=2, max_breadth=2)

        assert tree.total_nodes == 3
        assert tree.violations(max_depth=2, max_breadth=2) == []


# ============================================================
# Queries
# ============================================================


class TestQueries:
    def test_get_unknown(self, tree):
        with pytest.raises(TreeInvariantError):
            tree.get("node-42")

    def test_ancestors_nearest_first(self, tree):
        leaf = tree.add_node("leaf", parent_id="node-1", max_depth=2, max_breadth=2)

        assert [n.id for n in tree.ancestors_of(leaf.id)] == ["node-1", "node-0"]

    def test_completed_counts_failed_nodes(self, tree):
        tree.get("node-1").status = NodeStatus.COMPLETE
        tree.get("node-2").status = NodeStatus.FAILED

        assert tree.completed_nodes == 2
        assert [n.id for n in tree.pending_nodes()] == ["node-0"]

    def test_violations_detect_corruption(self, tree):
        tree.get("node-2").depth = 5
        tree.get("node-0").children.remove("node-1")

        problems = tree.violations(max_depth=2, max_breadth=2)

        assert any("node-2" in p and "depth" in p for p in problems)
        assert any("node-1" in p and "not listed" in p for p in problems)


# ============================================================
# Nodes
# ============================================================


class TestNode:
    def test_directions_dedup_across_iterations(self, tree):
        node = tree.get("node-1")
        node.iterations.append(IterationResult(1, "q1", "unified", 3, new_directions=["a", "b"]))
        node.iterations.append(IterationResult(2, "q2", "unified", 1, new_directions=["b", "c"]))

        assert node.new_directions == ["a", "b", "c"]

    def test_link_source_is_idempotent(self, tree):
        node = tree.get("node-1")
        node.link_source("src-1")
        node.link_source("src-1")

        assert node.source_ids == ["src-1"]

    def test_iteration_failed(self):
        assert IterationResult(1, "q", "unified", 0, errors=["pubmed: down"]).failed
        assert not IterationResult(1, "q", "unified", 2, errors=["arxiv: down"]).failed
        assert not IterationResult(1, "q", "unified", 0).failed

    def test_iteration_with_one_of_two_databases_down_is_not_failed(self):
        assert not IterationResult(1, "q", "pubmed,arxiv", 0, errors=["arxiv: down"]).failed
        assert IterationResult(1, "q", "pubmed,arxiv", 0, errors=["pubmed: down", "arxiv: down"]).failed


def test_tree_round_trip(tree):
    tree.get("node-1").iterations.append(IterationResult(1, "q", "unified", 2, learnings=["x"]))
    tree.get("node-1").status = NodeStatus.COMPLETE

    restored = ExplorationTree.from_dict(tree.to_dict())

    assert restored.root_id == "node-0"
    assert restored.get("node-1").status is NodeStatus.COMPLETE
    assert restored.get("node-1").learnings == ["x"]
    assert restored.get("node-0").children == ["node-1", "node-2"]
