"""Built-in operations for computed expressions and their evaluation."""

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from cachetools import LRUCache, cached
from celpy import Environment, celtypes
from celpy.adapter import json_to_cel

from stackplan.cidr import allocate
from stackplan.params import ComputedExpression

if TYPE_CHECKING:
    from stackplan.registry import OpRegistry


@cached(cache=LRUCache(maxsize=256))
def compile_cel(expression: str) -> Any:
    """Compile a CEL expression into a runnable program.

    Raises:
        ValueError: If the expression does not parse.
    """
    env = Environment()
    try:
        return env.program(env.compile(expression))
    except Exception as e:
        raise ValueError(f"Invalid CEL expression '{expression}': {e}") from e


def _cel_to_python(value: Any) -> Any:
    """Convert CEL result types back to plain Python values."""
    if isinstance(value, celtypes.BoolType):
        return bool(value)
    if isinstance(value, (celtypes.IntType, celtypes.UintType)):
        return int(value)
    if isinstance(value, celtypes.DoubleType):
        return float(value)
    if isinstance(value, celtypes.StringType):
        return str(value)
    if isinstance(value, celtypes.ListType):
        return [_cel_to_python(item) for item in value]
    if isinstance(value, celtypes.MapType):
        return {_cel_to_python(k): _cel_to_python(v) for k, v in value.items()}
    return value


def evaluate_cel(expression: str, bindings: Mapping[str, Any]) -> Any:
    """Evaluate a CEL expression with `bindings` exposed as variables.

    Raises:
        ValueError: If the expression is invalid or evaluation fails.
    """
    program = compile_cel(expression)
    activation = {name: json_to_cel(value) for name, value in bindings.items()}
    try:
        result = program.evaluate(activation)
    except Exception as e:
        raise ValueError(f"Failed to evaluate CEL expression '{expression}': {e}") from e
    if isinstance(result, Exception):
        raise ValueError(f"Failed to evaluate CEL expression '{expression}': {result}")
    return _cel_to_python(result)


def cidrsubnet(parent: str, additional_bits: int, index: int) -> str:
    return allocate(parent, additional_bits, index)


def join(separator: str, *parts: Any) -> str:
    return separator.join(str(part) for part in parts)


def splat(*values: Any) -> list[Any]:
    return list(values)


def cel(expression: str, bindings: Mapping[str, Any]) -> Any:
    return evaluate_cel(expression, bindings)


BUILTIN_OPS = {
    "cidrsubnet": cidrsubnet,
    "join": join,
    "splat": splat,
    "cel": cel,
}


def evaluate(expression: ComputedExpression, registry: "OpRegistry") -> Any:
    """Apply a registered operation to already-concrete operands.

    Raises:
        KeyError: If the operation is not registered.
    """
    op = registry.get(expression.op)
    return op(*expression.args)
