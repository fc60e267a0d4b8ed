"""Plan construction errors.

Every error raised while building a plan derives from PlanError and names
the offending node id(s) and the rule that was violated.
"""

from collections.abc import Iterable


class PlanError(ValueError):
    """Base class for validation failures during plan construction.

    Attributes:
        node_ids: Ids of the nodes involved in the failure.
        rule: Short identifier of the violated rule.
    """

    rule = "plan"

    def __init__(self, message: str, node_ids: Iterable[str] = ()) -> None:
        super().__init__(message)
        self.node_ids: tuple[str, ...] = tuple(node_ids)


class UnresolvedReferenceError(PlanError):
    """A reference names a node or output that does not exist."""

    rule = "unresolved-reference"


class CyclicDependencyError(PlanError):
    """The dependency graph contains a cycle."""

    rule = "acyclic"

    def __init__(self, cycle: Iterable[str]) -> None:
        self.cycle: tuple[str, ...] = tuple(cycle)
        path = " -> ".join([*self.cycle, self.cycle[0]])
        super().__init__(f"Dependency cycle detected: {path}", node_ids=self.cycle)


class AddressSpaceExhausted(PlanError):
    """A sub-block index does not fit in the requested number of bits."""

    rule = "address-space"


class InvalidPrefix(PlanError):
    """A sub-block request yields an impossible prefix length."""

    rule = "prefix-length"


class OverlappingAllocationError(PlanError):
    """Two sub-block requests against the same parent overlap."""

    rule = "non-overlapping-allocation"


class ResourceExpansionError(PlanError):
    """A node's count is invalid or count_index() is used outside a count node."""

    rule = "count"


class DuplicateResourceError(PlanError):
    """Two declarations share the same id."""

    rule = "unique-id"


class UnknownOperationError(PlanError):
    """A computed expression uses an operation that is not registered."""

    rule = "known-operation"


class InvalidAttributeError(PlanError):
    """An attribute holds a value that cannot be represented in a plan."""

    rule = "attribute-value"


class MissingVariableError(PlanError):
    """A variable without a default was never given a value."""

    rule = "variable"
