"""Tests for ResourceNode and attribute markers."""

import pytest

from stackplan.node import KIND_OUTPUTS, ResourceKind, ResourceNode
from stackplan.params import (
    ComputedExpression,
    DeferredReference,
    Literal,
    cel,
    cidrsubnet,
    contains_markers,
    count_index,
    join,
    ref,
    splat,
)


class TestResourceNode:
    """Tests for ResourceNode dataclass."""

    def test_creation(self):
        node = ResourceNode(id="vpc", kind="network", attributes={"cidr_block": "10.0.0.0/16"})
        assert node.kind is ResourceKind.NETWORK
        assert node.attributes == {"cidr_block": "10.0.0.0/16"}
        assert node.depends_on == ()
        assert node.count is None

    def test_immutability(self):
        """Test that node is immutable (frozen dataclass)."""
        node = ResourceNode(id="vpc", kind="network", attributes={})
        with pytest.raises(Exception):  # dataclass.FrozenInstanceError
            node.id = "other"

    def test_depends_on_accepts_nodes_and_dedups(self):
        gw = ResourceNode(id="gw", kind="gateway", attributes={})
        node = ResourceNode(
            id="nat", kind="gateway", attributes={}, depends_on=[gw, "eip", "gw"]
        )
        assert node.depends_on == ("gw", "eip")

    def test_empty_id_raises(self):
        with pytest.raises(ValueError, match="id must be a non-empty string"):
            ResourceNode(id="", kind="network", attributes={})

    def test_unknown_kind_raises(self):
        with pytest.raises(ValueError, match="unknown kind"):
            ResourceNode(id="x", kind="load-balancer", attributes={})

    def test_invalid_attributes_type(self):
        with pytest.raises(ValueError, match="attributes must be a dictionary"):
            ResourceNode(id="x", kind="network", attributes=[("a", 1)])

    def test_string_depends_on_raises(self):
        with pytest.raises(ValueError, match="depends_on must be a list"):
            ResourceNode(id="x", kind="network", attributes={}, depends_on="gw")

    def test_output_needs_value(self):
        with pytest.raises(ValueError, match="must have a 'value' attribute"):
            ResourceNode(id="out", kind="output", attributes={})

    def test_outputs_and_ref(self):
        node = ResourceNode(id="web", kind="compute-instance", attributes={})
        assert node.outputs == KIND_OUTPUTS[ResourceKind.COMPUTE_INSTANCE]
        assert "private_ip" in node.outputs
        assert node.ref("private_ip") == DeferredReference("web", "private_ip")
        assert node.ref("private_ip", 1).index == 1


class TestMarkers:
    """Tests for the attribute marker helpers."""

    def test_ref_from_node_or_id(self):
        node = ResourceNode(id="vpc", kind="network", attributes={})
        assert ref(node, "id") == ref("vpc", "id")

    def test_ref_rejects_empty_id(self):
        with pytest.raises(ValueError, match="non-empty node id"):
            ref("", "id")

    def test_reference_str(self):
        assert str(ref("vpc", "id")) == "vpc.id"
        assert str(ref("workers", "private_ip", 1)) == "workers[1].private_ip"

    def test_expression_helpers(self):
        parent = ref("vpc", "cidr_block")
        assert cidrsubnet(parent, 8, 2) == ComputedExpression("cidrsubnet", (parent, 8, 2))
        assert join("eu-north-1", "a") == ComputedExpression("join", ("", "eu-north-1", "a"))
        assert join("a", "b", separator=",").args[0] == ","
        assert splat(1, 2).args == (1, 2)
        assert count_index() == ComputedExpression("count_index")

    def test_cel_bindings(self):
        expr = cel("zone + suffix", zone=ref("net", "availability_zone"), suffix="a")
        assert expr.op == "cel"
        assert expr.args[0] == "zone + suffix"
        assert expr.args[1]["suffix"] == "a"

    def test_contains_markers(self):
        assert not contains_markers({"a": [1, "x", None]})
        assert contains_markers({"a": [1, {"b": ref("vpc", "id")}]})
        assert contains_markers(join("a", "b"))
        assert not contains_markers(Literal("x"))
