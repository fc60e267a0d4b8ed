"""Pytest configuration and fixtures."""

import itertools

import pytest

from stackplan import GraphBuilder, StackContext, cidrsubnet, default_registry
from stackplan.node import ECHOED_OUTPUTS, KIND_OUTPUTS, ResourceKind


@pytest.fixture
def registry():
    """Create a fresh OpRegistry with the built-in operations."""
    return default_registry()


@pytest.fixture
def builder(registry):
    """Create a GraphBuilder using the fresh registry."""
    return GraphBuilder(registry)


@pytest.fixture
def ctx():
    """Create an empty StackContext."""
    return StackContext()


@pytest.fixture
def network_ctx():
    """A small topology: network, two subnets, an instance and an output."""
    ctx = StackContext(provider={"region": "eu-north-1"}, default_tags={"project": "k3s"})
    vpc = ctx.network("vpc", cidr_block="172.16.0.0/16")
    public = ctx.subnet(
        "public",
        vpc_id=vpc.ref("id"),
        cidr_block=cidrsubnet(vpc.ref("cidr_block"), 8, 2),
    )
    ctx.subnet(
        "private",
        vpc_id=vpc.ref("id"),
        cidr_block=cidrsubnet(vpc.ref("cidr_block"), 8, 3),
    )
    web = ctx.instance("web", subnet_id=public.ref("id"), instance_type="t3.micro")
    ctx.output("web_ip", web.ref("public_ip"))
    return ctx


@pytest.fixture
def fake_provisioners():
    """Provisioners for every kind returning made-up values for each output.

    Outputs echoed from attributes are left to the executor.
    """
    counter = itertools.count(1)

    def for_kind(kind):
        def provision(resource_id, **attributes):
            n = next(counter)
            made_up = {
                "id": f"{resource_id}-id",
                "private_ip": f"10.0.0.{n}",
                "public_ip": f"198.51.100.{n}",
            }
            return {
                name: made_up.get(name, f"{resource_id}-{name}")
                for name in KIND_OUTPUTS[kind]
                if name not in attributes or name not in ECHOED_OUTPUTS.get(kind, ())
            }

        return provision

    return {kind: for_kind(kind) for kind in ResourceKind if kind is not ResourceKind.OUTPUT}
