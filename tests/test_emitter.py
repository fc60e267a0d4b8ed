"""Tests for plan serialization."""

import json

import pytest

from stackplan import GraphBuilder, StackContext, cidrsubnet, ref
from stackplan.emitter import dump_plan, emit, load_plan, load_plan_from_dict
from stackplan.node import ResourceKind
from stackplan.params import ComputedExpression, DeferredReference, Literal
from stackplan.plan import OrderedPlan, PlannedResource


def _plan(*resources, **kwargs):
    return OrderedPlan(resources=tuple(resources), **kwargs)


class TestEmit:
    """Tests for emit()."""

    def test_envelope(self, network_ctx):
        doc = emit(GraphBuilder().build(network_ctx))
        assert doc["format"] == "stackplan"
        assert doc["version"] == 1
        assert doc["provider"] == {"region": "eu-north-1"}
        assert doc["default_tags"] == {"project": "k3s"}
        assert [r["id"] for r in doc["resources"]] == ["vpc", "public", "private", "web", "web_ip"]

    def test_resource_record(self, network_ctx):
        doc = emit(GraphBuilder().build(network_ctx))
        public = doc["resources"][1]
        assert public == {
            "id": "public",
            "kind": "subnet",
            "attributes": {
                "cidr_block": "172.16.2.0/24",
                "vpc_id": {"ref": "vpc", "output": "id"},
            },
            "depends_on": ["vpc"],
            "explicit_depends_on": [],
        }

    def test_expression_encoding(self):
        expr = ComputedExpression("cidrsubnet", (DeferredReference("vpc", "cidr_block"), 8, 3))
        plan = _plan(
            PlannedResource(id="vpc", kind=ResourceKind.NETWORK, attributes={}),
            PlannedResource(
                id="subnet",
                kind=ResourceKind.SUBNET,
                attributes={"cidr_block": expr},
                depends_on=("vpc",),
            ),
        )
        attrs = emit(plan)["resources"][1]["attributes"]
        assert attrs["cidr_block"] == {
            "op": "cidrsubnet",
            "args": [{"ref": "vpc", "output": "cidr_block"}, 8, 3],
        }

    def test_reserved_shape_escaped(self):
        """A literal dict shaped like a reference is wrapped in $literal."""
        plan = _plan(
            PlannedResource(
                id="n",
                kind=ResourceKind.NETWORK,
                attributes={"tags": Literal({"ref": "a", "output": "b"})},
            )
        )
        attrs = emit(plan)["resources"][0]["attributes"]
        assert attrs["tags"] == {"$literal": {"ref": "a", "output": "b"}}

    def test_sibling_fields(self, ctx):
        ctx.instance("workers", count=2)
        records = emit(GraphBuilder().build(ctx))["resources"]
        assert [(r["id"], r["template"], r["index"]) for r in records] == [
            ("workers[0]", "workers", 0),
            ("workers[1]", "workers", 1),
        ]

    def test_deterministic(self, network_ctx):
        assert dump_plan(GraphBuilder().build(network_ctx)) == dump_plan(
            GraphBuilder().build(network_ctx)
        )

    def test_indent(self, network_ctx):
        text = dump_plan(GraphBuilder().build(network_ctx), indent=2)
        assert text.startswith("{\n  ")
        assert json.loads(text)["format"] == "stackplan"


class TestLoad:
    """Tests for load_plan() and load_plan_from_dict()."""

    def test_round_trip(self, network_ctx):
        plan = GraphBuilder().build(network_ctx)
        assert load_plan(dump_plan(plan)) == plan

    def test_round_trip_with_escapes_and_expansion(self):
        ctx = StackContext()
        vpc = ctx.network("vpc", cidr_block=ref("ipam", "id"), tags={"op": "x", "args": [1]})
        ctx.network("ipam")
        ctx.subnet("subnets", cidr_block=cidrsubnet(vpc.ref("cidr_block"), 8, 1), count=1)
        plan = GraphBuilder().build(ctx)
        loaded = load_plan(dump_plan(plan).encode("utf-8"))
        assert loaded == plan
        assert loaded.get("vpc").attributes["tags"] == Literal({"op": "x", "args": [1]})
        assert loaded.get("subnets[0]").template == "subnets"

    def test_nested_values_inside_literal_escape_decode(self):
        """Only the wrapped level is exempt from decoding."""
        doc = {
            "format": "stackplan",
            "version": 1,
            "resources": [
                {
                    "id": "n",
                    "kind": "network",
                    "attributes": {
                        "x": {"$literal": {"ref": {"ref": "vpc", "output": "id"}, "output": "y"}}
                    },
                }
            ],
        }
        value = load_plan_from_dict(doc).get("n").attributes["x"]
        assert value == {"ref": DeferredReference("vpc", "id"), "output": "y"}

    def test_defaults_for_optional_fields(self):
        doc = {
            "format": "stackplan",
            "version": 1,
            "resources": [{"id": "n", "kind": "network", "attributes": {}}],
        }
        plan = load_plan_from_dict(doc)
        assert plan.provider == {}
        assert plan.get("n").depends_on == ()

    @pytest.mark.parametrize(
        "doc,message",
        [
            ([], "must be a JSON object"),
            ({"format": "other", "version": 1, "resources": []}, "format must be"),
            ({"format": "stackplan", "version": 2, "resources": []}, "not supported"),
            ({"format": "stackplan", "version": 1}, "'resources' array"),
            (
                {"format": "stackplan", "version": 1, "resources": [{"kind": "network"}]},
                "non-empty string 'id'",
            ),
            (
                {
                    "format": "stackplan",
                    "version": 1,
                    "resources": [{"id": "n", "kind": "router", "attributes": {}}],
                },
                "unsupported kind",
            ),
            (
                {
                    "format": "stackplan",
                    "version": 1,
                    "resources": [
                        {"id": "n", "kind": "network", "attributes": {}, "depends_on": [1]}
                    ],
                },
                "must be string",
            ),
            (
                {
                    "format": "stackplan",
                    "version": 1,
                    "resources": [
                        {"id": "n", "kind": "network", "attributes": {}, "template": "n"}
                    ],
                },
                "both 'template' and 'index'",
            ),
        ],
    )
    def test_invalid_documents(self, doc, message):
        with pytest.raises(ValueError, match=message):
            load_plan_from_dict(doc)

    def test_invalid_reference_shape(self):
        doc = {
            "format": "stackplan",
            "version": 1,
            "resources": [
                {"id": "n", "kind": "network", "attributes": {"x": {"ref": 1, "output": "id"}}}
            ],
        }
        with pytest.raises(ValueError, match="string 'ref' and 'output'"):
            load_plan_from_dict(doc)
