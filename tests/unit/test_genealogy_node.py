"""
Tests for genealogy node derivation.

Tests cover:
- Root nodes
- Level, path and ancestor cache of children
- Depth limit and cycle rejection
"""

import pytest

from yieldcycle.models.genealogy_node import GenealogyNode
from yieldcycle.utils.exceptions import DepthExceeded, ValidationError


class TestRootNode:
    """Test root creation."""

    def test_root_defaults(self):
        root = GenealogyNode.create_root("root")

        assert root.level == 0
        assert root.path == "/"
        assert root.is_root
        assert root.ancestors() == []
        assert root.path_depth == 0


class TestChildNode:
    """Test child derivation."""

    def test_child_of_root(self):
        root = GenealogyNode.create_root("a")
        child = GenealogyNode.create_child("b", root)

        assert child.level == 1
        assert child.path == "/b/"
        assert child.parent_user_id == "a"
        assert child.ancestors() == [(1, "a")]

    def test_cache_equals_parent_walk(self, node_chain):
        by_id = {node.user_id: node for node in node_chain}

        for node in node_chain:
            walked = []
            current = node
            while current.parent_user_id is not None:
                current = by_id[current.parent_user_id]
                walked.append(current.user_id)
            assert node.ancestor_ids() == walked[:5]

    def test_deepest_node(self, node_chain):
        deepest = node_chain[5]

        assert deepest.level == 5
        assert deepest.path == "/u1/u2/u3/u4/u5/"
        assert deepest.path_segments == ["u1", "u2", "u3", "u4", "u5"]
        assert deepest.ancestors() == [
            (1, "u4"),
            (2, "u3"),
            (3, "u2"),
            (4, "u1"),
            (5, "root"),
        ]

    def test_ancestor_at(self, node_chain):
        assert node_chain[3].ancestor_at(1) == "u2"
        assert node_chain[3].ancestor_at(3) == "root"
        assert node_chain[3].ancestor_at(4) is None

    @pytest.mark.parametrize("level", [0, 6])
    def test_ancestor_at_out_of_range(self, node_chain, level):
        with pytest.raises(ValidationError):
            node_chain[1].ancestor_at(level)


class TestTreeLimits:
    """Test depth and cycle checks."""

    def test_depth_exceeded_below_level_five(self, node_chain):
        with pytest.raises(DepthExceeded):
            GenealogyNode.create_child("too-deep", node_chain[5])

    def test_cannot_attach_under_itself(self, node_chain):
        with pytest.raises(ValidationError):
            GenealogyNode.create_child("u2", node_chain[2])

    def test_cannot_attach_under_own_downline(self, node_chain):
        with pytest.raises(ValidationError):
            GenealogyNode.create_child("u1", node_chain[3])
