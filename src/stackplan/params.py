"""Tagged attribute values for resource declarations.

An attribute value is one of:
- a plain literal (str, int, bool, None, or a dict/list of those), optionally
  wrapped in Literal to opt out of marker scanning,
- DeferredReference: another node's output, unknown until provisioning,
- ComputedExpression: an operation over operands, folded when the operands
  are known and otherwise left for the apply engine.

Markers are recognized by type. No string interpolation syntax is parsed.
"""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Literal:
    """A value taken as-is, never scanned for markers."""

    value: Any


@dataclass(frozen=True)
class DeferredReference:
    """Reference to an output of another node.

    Attributes:
        node_id: Id of the referenced node.
        output: Output name on that node (e.g. "id", "private_ip").
        index: Sibling index when the referenced node has a count.
    """

    node_id: str
    output: str
    index: int | None = None

    def __str__(self) -> str:
        if self.index is None:
            return f"{self.node_id}.{self.output}"
        return f"{self.node_id}[{self.index}].{self.output}"


@dataclass(frozen=True)
class ComputedExpression:
    """An operation applied to operands.

    Example:
        ComputedExpression("cidrsubnet", (ref("vpc", "cidr_block"), 8, 2))
    """

    op: str
    args: tuple[Any, ...] = ()


MARKERS = (DeferredReference, ComputedExpression)


def ref(node: Any, output: str, index: int | None = None) -> DeferredReference:
    """Reference `output` of `node` (a node or a node id)."""
    node_id = getattr(node, "id", node)
    if not isinstance(node_id, str) or not node_id:
        raise ValueError(f"ref() needs a node or a non-empty node id, got {node!r}")
    return DeferredReference(node_id, output, index)


def cidrsubnet(parent: Any, additional_bits: Any, index: Any) -> ComputedExpression:
    """Request sub-block `index` of `parent` extended by `additional_bits`."""
    return ComputedExpression("cidrsubnet", (parent, additional_bits, index))


def join(*parts: Any, separator: str = "") -> ComputedExpression:
    """Concatenate parts as strings."""
    return ComputedExpression("join", (separator, *parts))


def splat(*values: Any) -> ComputedExpression:
    """Collect values into a list."""
    return ComputedExpression("splat", values)


def cel(expression: str, **bindings: Any) -> ComputedExpression:
    """Evaluate a CEL expression with `bindings` exposed as variables.

    Example:
        cel("region + suffix", region=ref("net", "availability_zone"), suffix="a")
    """
    return ComputedExpression("cel", (expression, dict(bindings)))


def count_index() -> ComputedExpression:
    """The sibling index inside a node declared with a count."""
    return ComputedExpression("count_index")


def contains_markers(value: Any) -> bool:
    """Return True if value holds a reference or expression anywhere."""
    if isinstance(value, MARKERS):
        return True
    if isinstance(value, dict):
        return any(contains_markers(v) for v in value.values())
    if isinstance(value, (list, tuple)):
        return any(contains_markers(item) for item in value)
    return False
