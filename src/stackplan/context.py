"""StackContext: explicit container for the declarations of one plan."""

from collections.abc import Iterable, Mapping
from typing import Any

import structlog

from stackplan.config import Variable, Variables
from stackplan.errors import DuplicateResourceError
from stackplan.node import ResourceKind, ResourceNode

logger = structlog.get_logger(__name__)


class StackContext:
    """Accumulates resource declarations for a single plan.

    Passed explicitly to every declaration call. Independent contexts never
    share nodes, so several plans can be built side by side.

    Example:
        ctx = StackContext()
        vpc = ctx.network("vpc", cidr_block="172.16.0.0/16")
        ctx.subnet("public", vpc_id=vpc.ref("id"),
                   cidr_block=cidrsubnet(vpc.ref("cidr_block"), 8, 2))
    """

    def __init__(
        self,
        variables: Variables | None = None,
        provider: Mapping[str, Any] | None = None,
        default_tags: Mapping[str, str] | None = None,
    ) -> None:
        """Initialize StackContext.

        Args:
            variables: Declared plan variables. Resolve them before calling var().
            provider: Provider settings passed through to the plan unchanged.
            default_tags: Tags the apply engine applies to every taggable resource.
        """
        self.variables = variables or Variables()
        self.provider: dict[str, Any] = dict(provider or {})
        self.default_tags: dict[str, str] = dict(default_tags or {})
        self._nodes: dict[str, ResourceNode] = {}

    @property
    def nodes(self) -> dict[str, ResourceNode]:
        """Declared nodes keyed by id, in declaration order."""
        return dict(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def variable(self, name: str, **kwargs: Any) -> Variable:
        """Declare a plan variable."""
        return self.variables.declare(Variable(name, **kwargs))

    def var(self, name: str) -> Any:
        """Return the resolved value of a plan variable."""
        return self.variables.get(name)

    def add(self, node: ResourceNode) -> ResourceNode:
        """Add a node to the context.

        Raises:
            DuplicateResourceError: If a node with the same id was declared.
        """
        if node.id in self._nodes:
            raise DuplicateResourceError(
                f"Resource id '{node.id}' is declared more than once",
                node_ids=[node.id],
            )
        self._nodes[node.id] = node
        logger.debug("Declared resource", node_id=node.id, kind=node.kind.value)
        return node

    def resource(
        self,
        node_id: str,
        kind: ResourceKind | str,
        attributes: Mapping[str, Any] | None = None,
        depends_on: Iterable[Any] = (),
        count: Any = None,
    ) -> ResourceNode:
        """Declare a resource and return its node.

        `depends_on` accepts nodes or node ids.
        """
        if not isinstance(depends_on, str):
            depends_on = tuple(depends_on)
        node = ResourceNode(
            id=node_id,
            kind=kind,
            attributes=dict(attributes or {}),
            depends_on=depends_on,
            count=count,
        )
        return self.add(node)

    def network(self, node_id: str, **attributes: Any) -> ResourceNode:
        return self._declare(node_id, ResourceKind.NETWORK, attributes)

    def subnet(self, node_id: str, **attributes: Any) -> ResourceNode:
        return self._declare(node_id, ResourceKind.SUBNET, attributes)

    def gateway(self, node_id: str, **attributes: Any) -> ResourceNode:
        return self._declare(node_id, ResourceKind.GATEWAY, attributes)

    def elastic_ip(self, node_id: str, **attributes: Any) -> ResourceNode:
        return self._declare(node_id, ResourceKind.ELASTIC_IP, attributes)

    def route_table(self, node_id: str, **attributes: Any) -> ResourceNode:
        return self._declare(node_id, ResourceKind.ROUTE_TABLE, attributes)

    def route_table_association(self, node_id: str, **attributes: Any) -> ResourceNode:
        return self._declare(node_id, ResourceKind.ROUTE_TABLE_ASSOCIATION, attributes)

    def security_group(self, node_id: str, **attributes: Any) -> ResourceNode:
        return self._declare(node_id, ResourceKind.SECURITY_GROUP, attributes)

    def key_pair(self, node_id: str, **attributes: Any) -> ResourceNode:
        return self._declare(node_id, ResourceKind.KEY_PAIR, attributes)

    def instance(self, node_id: str, **attributes: Any) -> ResourceNode:
        return self._declare(node_id, ResourceKind.COMPUTE_INSTANCE, attributes)

    def ami_lookup(self, node_id: str, **attributes: Any) -> ResourceNode:
        return self._declare(node_id, ResourceKind.AMI_LOOKUP, attributes)

    def output(self, node_id: str, value: Any, description: str = "") -> ResourceNode:
        """Declare a named output surfaced to the caller after apply."""
        attributes: dict[str, Any] = {"value": value}
        if description:
            attributes["description"] = description
        return self.resource(node_id, ResourceKind.OUTPUT, attributes)

    def _declare(
        self, node_id: str, kind: ResourceKind, attributes: dict[str, Any]
    ) -> ResourceNode:
        depends_on = attributes.pop("depends_on", ())
        count = attributes.pop("count", None)
        return self.resource(node_id, kind, attributes, depends_on=depends_on, count=count)
