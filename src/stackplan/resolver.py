"""ReferenceResolver: classifies attribute values and extracts implicit edges."""

import ipaddress
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import structlog

from stackplan.cidr import allocate_lazy
from stackplan.errors import (
    AddressSpaceExhausted,
    InvalidAttributeError,
    InvalidPrefix,
    ResourceExpansionError,
    UnknownOperationError,
    UnresolvedReferenceError,
)
from stackplan.expressions import compile_cel, evaluate
from stackplan.node import ECHOED_OUTPUTS, ResourceKind, ResourceNode
from stackplan.params import (
    ComputedExpression,
    DeferredReference,
    Literal,
    contains_markers,
)
from stackplan.registry import OpRegistry, default_registry

logger = structlog.get_logger(__name__)

_SCALARS = (str, int, float, bool, type(None))


@dataclass(frozen=True)
class ResolvedNode:
    """A node with its normalized attribute bag and implicit dependencies."""

    node: ResourceNode
    attributes: dict[str, Any]
    implicit_deps: tuple[str, ...]


@dataclass(frozen=True)
class Allocation:
    """A CIDR sub-block request with concrete bits and index.

    `parent` is the canonical parent block when known, otherwise the
    reference or expression the parent comes from.
    """

    node_id: str
    attribute: str
    parent: str
    additional_bits: int
    index: int
    cidr: str | None = None


class ReferenceResolver:
    """Normalizes attribute bags against a fixed set of declared nodes.

    resolve() runs during validation: it classifies every value, checks
    references statically and records implicit edges. materialize() runs once
    the graph is ordered: it binds sibling indices, redirects references to
    count nodes, and folds computed expressions whose operands are known.
    """

    def __init__(
        self, nodes: Mapping[str, ResourceNode], registry: OpRegistry | None = None
    ) -> None:
        self.nodes = nodes
        self.registry = registry or default_registry()
        # Materialized attributes by planned id, consulted for echoed outputs
        self._materialized: dict[str, dict[str, Any]] = {}
        self._kinds: dict[str, ResourceKind] = {}

    def resolve(self, node: ResourceNode) -> ResolvedNode:
        """Classify a node's attributes and collect its implicit dependencies.

        Raises:
            UnresolvedReferenceError: If a reference names a missing node or output.
            UnknownOperationError: If an expression uses an unregistered op.
            ResourceExpansionError: If count_index() is used outside a count node.
            InvalidAttributeError: If a value cannot be represented in a plan.
            AddressSpaceExhausted, InvalidPrefix: If a CIDR request is
                statically impossible.
        """
        implicit: dict[str, None] = {}
        attributes: dict[str, Any] = {}
        for name, value in node.attributes.items():
            normalized = self._normalize(value, node, name, implicit)
            if contains_markers(normalized):
                attributes[name] = normalized
            else:
                attributes[name] = Literal(normalized)

        logger.debug(
            "Resolved references",
            node_id=node.id,
            implicit_deps=list(implicit),
        )
        return ResolvedNode(node=node, attributes=attributes, implicit_deps=tuple(implicit))

    def _normalize(
        self, value: Any, node: ResourceNode, path: str, implicit: dict[str, None]
    ) -> Any:
        if isinstance(value, Literal):
            if contains_markers(value.value):
                raise InvalidAttributeError(
                    f"Node '{node.id}' attribute '{path}': Literal cannot wrap "
                    f"references or expressions",
                    node_ids=[node.id],
                )
            return value.value

        if isinstance(value, DeferredReference):
            self._check_reference(value, node, path)
            implicit[value.node_id] = None
            return value

        if isinstance(value, ComputedExpression):
            return self._normalize_expression(value, node, path, implicit)

        if isinstance(value, dict):
            normalized = {}
            for key, item in value.items():
                if not isinstance(key, str):
                    raise InvalidAttributeError(
                        f"Node '{node.id}' attribute '{path}' has non-string key {key!r}",
                        node_ids=[node.id],
                    )
                normalized[key] = self._normalize(item, node, f"{path}.{key}", implicit)
            return normalized

        if isinstance(value, (list, tuple)):
            return [
                self._normalize(item, node, f"{path}[{i}]", implicit)
                for i, item in enumerate(value)
            ]

        if isinstance(value, _SCALARS):
            return value

        if isinstance(value, ResourceNode):
            hint = f" Use ref('{value.id}', <output>) to reference it."
        else:
            hint = ""
        raise InvalidAttributeError(
            f"Node '{node.id}' attribute '{path}' holds unsupported value of type "
            f"{type(value).__name__}.{hint}",
            node_ids=[node.id],
        )

    def _normalize_expression(
        self,
        expr: ComputedExpression,
        node: ResourceNode,
        path: str,
        implicit: dict[str, None],
    ) -> ComputedExpression:
        if expr.op == "count_index":
            if node.count is None:
                raise ResourceExpansionError(
                    f"Node '{node.id}' attribute '{path}' uses count_index() "
                    f"but the node has no count",
                    node_ids=[node.id],
                )
            return expr

        if not self.registry.has(expr.op):
            raise UnknownOperationError(
                f"Node '{node.id}' attribute '{path}' uses unregistered operation "
                f"'{expr.op}'. Registered: {self.registry.names()}",
                node_ids=[node.id],
            )

        args = tuple(
            self._normalize(arg, node, f"{path}.{expr.op}[{i}]", implicit)
            for i, arg in enumerate(expr.args)
        )

        if expr.op == "cel":
            if len(args) != 2 or not isinstance(args[0], str) or not isinstance(args[1], dict):
                raise InvalidAttributeError(
                    f"Node '{node.id}' attribute '{path}': cel needs an expression "
                    f"string and a bindings mapping",
                    node_ids=[node.id],
                )
            try:
                compile_cel(args[0])
            except ValueError as e:
                raise InvalidAttributeError(
                    f"Node '{node.id}' attribute '{path}': {e}", node_ids=[node.id]
                ) from e

        if expr.op == "cidrsubnet":
            if len(args) != 3:
                raise InvalidAttributeError(
                    f"Node '{node.id}' attribute '{path}': cidrsubnet needs "
                    f"(parent, additional_bits, index), got {len(args)} operands",
                    node_ids=[node.id],
                )
            parent, bits, index = args
            if not contains_markers([bits, index]):
                # The parent may still be deferred; check what is knowable now
                self._allocate(parent, bits, index, node.id, path)

        return ComputedExpression(expr.op, args)

    def _check_reference(
        self, reference: DeferredReference, node: ResourceNode, path: str
    ) -> None:
        target = self.nodes.get(reference.node_id)
        if target is None:
            raise UnresolvedReferenceError(
                f"Node '{node.id}' attribute '{path}' references unknown node "
                f"'{reference.node_id}'",
                node_ids=[node.id, reference.node_id],
            )
        if reference.output not in target.outputs:
            raise UnresolvedReferenceError(
                f"Node '{node.id}' attribute '{path}' references output "
                f"'{reference.output}' which {target.kind.value} '{target.id}' does "
                f"not expose. Available: {sorted(target.outputs)}",
                node_ids=[node.id, target.id],
            )
        if reference.index is None:
            return
        if isinstance(reference.index, bool) or not isinstance(reference.index, int):
            raise UnresolvedReferenceError(
                f"Node '{node.id}' attribute '{path}' references '{target.id}' with "
                f"non-integer index {reference.index!r}",
                node_ids=[node.id, target.id],
            )
        if target.count is None:
            raise UnresolvedReferenceError(
                f"Node '{node.id}' attribute '{path}' references index "
                f"{reference.index} of '{target.id}', which has no count",
                node_ids=[node.id, target.id],
            )
        if not 0 <= reference.index < target.count:
            raise UnresolvedReferenceError(
                f"Node '{node.id}' attribute '{path}' references index "
                f"{reference.index} of '{target.id}', which has count {target.count}",
                node_ids=[node.id, target.id],
            )

    def _allocate(self, parent: Any, bits: Any, index: Any, node_id: str, path: str) -> Any:
        try:
            return allocate_lazy(parent, bits, index)
        except (AddressSpaceExhausted, InvalidPrefix) as e:
            raise type(e)(
                f"Node '{node_id}' attribute '{path}': {e}", node_ids=[node_id]
            ) from e

    def materialize(
        self,
        resolved: ResolvedNode,
        planned_id: str,
        index: int | None,
        expansions: Mapping[str, tuple[str, ...]],
    ) -> tuple[dict[str, Any], list[Allocation]]:
        """Bind a resolved node to its final position in the plan.

        Must be called in plan order, so that echoed outputs of earlier
        resources are available for folding.

        Args:
            resolved: The resolved template.
            planned_id: Id of the resource being produced (sibling id for
                        count nodes).
            index: Sibling index, or None for nodes without a count.
            expansions: Sibling ids of every count node, keyed by template id.

        Returns:
            The final attribute bag and the CIDR allocations it makes.
        """
        allocations: list[Allocation] = []
        attributes: dict[str, Any] = {}
        for name, value in resolved.attributes.items():
            raw = value.value if isinstance(value, Literal) else value
            folded = self._bind(raw, planned_id, name, index, expansions, allocations)
            attributes[name] = folded if contains_markers(folded) else Literal(folded)
        self._materialized[planned_id] = attributes
        self._kinds[planned_id] = resolved.node.kind
        return attributes, allocations

    def _bind(
        self,
        value: Any,
        planned_id: str,
        path: str,
        index: int | None,
        expansions: Mapping[str, tuple[str, ...]],
        allocations: list[Allocation],
    ) -> Any:
        if isinstance(value, DeferredReference):
            siblings = expansions.get(value.node_id)
            if siblings is None:
                return value
            if value.index is not None:
                return DeferredReference(siblings[value.index], value.output)
            return self._bind(
                ComputedExpression(
                    "splat",
                    tuple(DeferredReference(s, value.output) for s in siblings),
                ),
                planned_id,
                path,
                index,
                expansions,
                allocations,
            )

        if isinstance(value, ComputedExpression):
            if value.op == "count_index":
                return index
            args = tuple(
                self._bind(arg, planned_id, path, index, expansions, allocations)
                for arg in value.args
            )
            return self._fold(ComputedExpression(value.op, args), planned_id, path, allocations)

        if isinstance(value, dict):
            return {
                k: self._bind(v, planned_id, path, index, expansions, allocations)
                for k, v in value.items()
            }
        if isinstance(value, list):
            return [
                self._bind(item, planned_id, path, index, expansions, allocations)
                for item in value
            ]
        return value

    def _fold(
        self,
        expr: ComputedExpression,
        planned_id: str,
        path: str,
        allocations: list[Allocation],
    ) -> Any:
        """Evaluate an expression when its operands are known, else keep it."""
        operands = tuple(self._known_value(arg) for arg in expr.args)
        known = not contains_markers(operands)

        if expr.op == "cidrsubnet":
            parent, bits, index = operands
            if not contains_markers([bits, index]):
                result = self._allocate(parent, bits, index, planned_id, path)
                if isinstance(result, str):
                    key = str(ipaddress.ip_network(parent, strict=False))
                    cidr = result
                else:
                    key, cidr = str(expr.args[0]), None
                allocations.append(
                    Allocation(planned_id, path, key, bits, index, cidr)
                )
                if cidr is not None:
                    return cidr
            return expr

        if not known:
            return expr
        try:
            return evaluate(ComputedExpression(expr.op, operands), self.registry)
        except (TypeError, ValueError) as e:
            raise InvalidAttributeError(
                f"Node '{planned_id}' attribute '{path}': cannot evaluate "
                f"'{expr.op}': {e}",
                node_ids=[planned_id],
            ) from e

    def _known_value(self, value: Any) -> Any:
        """Substitute references to echoed outputs whose value is already literal."""
        if isinstance(value, DeferredReference):
            kind = self._kinds.get(value.node_id)
            if value.output not in ECHOED_OUTPUTS.get(kind, ()):
                return value
            known = self._materialized.get(value.node_id, {}).get(value.output)
            if isinstance(known, Literal):
                return known.value
            return value
        if isinstance(value, dict):
            return {k: self._known_value(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return type(value)(self._known_value(item) for item in value)
        return value
