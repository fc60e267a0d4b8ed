"""ResourceNode: a declared resource, a vertex in the plan graph."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from stackplan.params import DeferredReference


class ResourceKind(str, Enum):
    """Resource types a plan can contain."""

    NETWORK = "network"
    SUBNET = "subnet"
    GATEWAY = "gateway"
    ELASTIC_IP = "elastic-ip"
    ROUTE_TABLE = "route-table"
    ROUTE_TABLE_ASSOCIATION = "route-table-association"
    SECURITY_GROUP = "security-group"
    KEY_PAIR = "key-pair"
    COMPUTE_INSTANCE = "compute-instance"
    AMI_LOOKUP = "ami-lookup"
    OUTPUT = "output"


# Outputs each kind exposes once provisioned
KIND_OUTPUTS: dict[ResourceKind, frozenset[str]] = {
    ResourceKind.NETWORK: frozenset(
        {"id", "arn", "cidr_block", "default_route_table_id"}
    ),
    ResourceKind.SUBNET: frozenset(
        {"id", "arn", "cidr_block", "availability_zone", "vpc_id"}
    ),
    ResourceKind.GATEWAY: frozenset({"id", "public_ip", "private_ip"}),
    ResourceKind.ELASTIC_IP: frozenset({"id", "allocation_id", "public_ip"}),
    ResourceKind.ROUTE_TABLE: frozenset({"id", "vpc_id"}),
    ResourceKind.ROUTE_TABLE_ASSOCIATION: frozenset({"id"}),
    ResourceKind.SECURITY_GROUP: frozenset({"id", "arn", "name", "vpc_id"}),
    ResourceKind.KEY_PAIR: frozenset({"id", "key_name", "fingerprint"}),
    ResourceKind.COMPUTE_INSTANCE: frozenset(
        {"id", "arn", "private_ip", "public_ip", "private_dns", "public_dns"}
    ),
    ResourceKind.AMI_LOOKUP: frozenset({"id", "name", "architecture"}),
    ResourceKind.OUTPUT: frozenset({"value"}),
}

# Outputs equal to the input attribute of the same name, per kind
ECHOED_OUTPUTS: dict[ResourceKind, frozenset[str]] = {
    ResourceKind.NETWORK: frozenset({"cidr_block"}),
    ResourceKind.SUBNET: frozenset({"cidr_block", "availability_zone", "vpc_id"}),
    ResourceKind.ROUTE_TABLE: frozenset({"vpc_id"}),
    ResourceKind.SECURITY_GROUP: frozenset({"name", "vpc_id"}),
    ResourceKind.KEY_PAIR: frozenset({"key_name"}),
}


@dataclass(frozen=True)
class ResourceNode:
    """A declared resource.

    Attributes:
        id: Unique id within the plan.
        kind: The resource type.
        attributes: Attribute name -> value. Values may contain
                    DeferredReference and ComputedExpression markers.
        depends_on: Ids this node must wait on regardless of references.
        count: When set, the node expands into `count` siblings.
    """

    id: str
    kind: ResourceKind
    attributes: dict[str, Any]
    depends_on: tuple[str, ...] = ()
    count: Any = None

    def __post_init__(self) -> None:
        """Validate and normalize node configuration."""
        if not isinstance(self.id, str) or not self.id:
            raise ValueError("id must be a non-empty string")
        try:
            object.__setattr__(self, "kind", ResourceKind(self.kind))
        except ValueError:
            raise ValueError(
                f"Node '{self.id}' has unknown kind {self.kind!r}. "
                f"Known kinds: {sorted(k.value for k in ResourceKind)}"
            ) from None
        if not isinstance(self.attributes, dict):
            raise ValueError("attributes must be a dictionary")
        if isinstance(self.depends_on, str) or not isinstance(
            self.depends_on, (list, tuple)
        ):
            raise ValueError("depends_on must be a list or tuple of node ids")
        deps = tuple(dict.fromkeys(getattr(d, "id", d) for d in self.depends_on))
        object.__setattr__(self, "depends_on", deps)
        if self.kind is ResourceKind.OUTPUT and "value" not in self.attributes:
            raise ValueError(f"Output node '{self.id}' must have a 'value' attribute")

    @property
    def outputs(self) -> frozenset[str]:
        """Output names this node exposes."""
        return KIND_OUTPUTS[self.kind]

    def ref(self, output: str, index: int | None = None) -> DeferredReference:
        """Reference one of this node's outputs."""
        return DeferredReference(self.id, output, index)
