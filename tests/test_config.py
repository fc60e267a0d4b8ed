"""Tests for plan variables and StackContext declarations."""

import pytest

from stackplan import StackContext
from stackplan.config import ENV_PREFIX, Variable, Variables
from stackplan.errors import DuplicateResourceError, MissingVariableError
from stackplan.node import ResourceKind


class TestVariable:
    """Tests for Variable coercion."""

    def test_number(self):
        assert Variable("n", type="number").coerce("2") == 2
        assert Variable("n", type="number").coerce("2.5") == 2.5

    def test_number_invalid(self):
        with pytest.raises(ValueError, match="expects a number"):
            Variable("n", type="number").coerce("two")

    def test_bool(self):
        assert Variable("b", type="bool").coerce("true") is True
        assert Variable("b", type="bool").coerce("off") is False

    def test_list(self):
        assert Variable("l", type="list").coerce("a, b,c") == ["a", "b", "c"]
        assert Variable("l", type="list").coerce('["x", 1]') == ["x", 1]

    def test_non_string_passthrough(self):
        assert Variable("n", type="number").coerce(3) == 3

    def test_unknown_type(self):
        with pytest.raises(ValueError, match="unknown type"):
            Variable("x", type="map")


class TestVariables:
    """Tests for Variables resolution."""

    def _variables(self):
        variables = Variables()
        variables.declare(Variable("region", default="eu-north-1"))
        variables.declare(Variable("count", type="number", default=2))
        variables.declare(Variable("ssh_cidr"))
        return variables

    def test_precedence(self):
        """Overrides beat environment, environment beats defaults."""
        variables = self._variables()
        values = variables.resolve(
            overrides={"ssh_cidr": "203.0.113.0/24"},
            environ={f"{ENV_PREFIX}count": "5", f"{ENV_PREFIX}ssh_cidr": "0.0.0.0/0"},
        )
        assert values == {"region": "eu-north-1", "count": 5, "ssh_cidr": "203.0.113.0/24"}
        assert variables.get("count") == 5

    def test_missing_required(self):
        """A variable without a default must be set explicitly."""
        with pytest.raises(MissingVariableError, match="ssh_cidr"):
            self._variables().resolve(environ={})

    def test_undeclared_override(self):
        with pytest.raises(ValueError, match="Undeclared"):
            self._variables().resolve(overrides={"ssh_cidr": "x", "nope": 1}, environ={})

    def test_duplicate_declaration(self):
        variables = self._variables()
        with pytest.raises(ValueError, match="already declared"):
            variables.declare(Variable("region"))

    def test_get_before_resolve(self):
        with pytest.raises(KeyError, match="not been resolved"):
            self._variables().get("region")


class TestStackContext:
    """Tests for StackContext declarations."""

    def test_declaration_order(self, ctx):
        ctx.network("b", cidr_block="10.0.0.0/16")
        ctx.network("a", cidr_block="10.1.0.0/16")
        assert list(ctx.nodes) == ["b", "a"]
        assert len(ctx) == 2
        assert "a" in ctx

    def test_kind_helpers(self, ctx):
        assert ctx.subnet("s").kind is ResourceKind.SUBNET
        assert ctx.elastic_ip("e").kind is ResourceKind.ELASTIC_IP
        assert ctx.route_table_association("r").kind is ResourceKind.ROUTE_TABLE_ASSOCIATION
        assert ctx.ami_lookup("ami").kind is ResourceKind.AMI_LOOKUP
        out = ctx.output("o", 1, description="one")
        assert out.attributes == {"value": 1, "description": "one"}

    def test_depends_on_and_count_extracted(self, ctx):
        gw = ctx.gateway("gw")
        workers = ctx.instance("workers", depends_on=[gw], count=2, instance_type="t3.micro")
        assert workers.depends_on == ("gw",)
        assert workers.count == 2
        assert workers.attributes == {"instance_type": "t3.micro"}

    def test_string_depends_on_rejected(self, ctx):
        """A bare id string is not split into characters."""
        with pytest.raises(ValueError, match="depends_on must be a list or tuple"):
            ctx.instance("x", depends_on="gw")

    def test_duplicate_id(self, ctx):
        ctx.network("vpc")
        with pytest.raises(DuplicateResourceError) as exc_info:
            ctx.network("vpc")
        assert exc_info.value.node_ids == ("vpc",)

    def test_contexts_are_independent(self):
        first, second = StackContext(), StackContext()
        first.network("vpc")
        assert "vpc" not in second

    def test_var(self):
        ctx = StackContext()
        ctx.variable("region", default="eu-north-1")
        ctx.variables.resolve(environ={})
        assert ctx.var("region") == "eu-north-1"
