"""OpRegistry: operation names used in computed expressions -> callables."""

from collections.abc import Mapping
from typing import Any, Callable

Operation = Callable[..., Any]


class OpRegistry:
    """Maps the op name stored in a ComputedExpression to the code evaluating it.

    The name is what a serialized plan carries, so the planner and the apply
    engine must agree on it. Each build or apply takes its own registry.
    """

    def __init__(self, ops: Mapping[str, Operation] | None = None) -> None:
        self._ops: dict[str, Operation] = {}
        for name, op in (ops or {}).items():
            self.register(name, op)

    def register(self, name: str, op: Operation) -> None:
        """Register an operation taking the expression's operands positionally.

        Raises:
            ValueError: If name is empty or already registered.
        """
        if not name:
            raise ValueError("Operation name cannot be empty")
        if name in self._ops:
            raise ValueError(f"Operation '{name}' is already registered")
        self._ops[name] = op

    def get(self, name: str) -> Operation:
        """Look up an operation.

        Raises:
            KeyError: If the operation is not registered.
        """
        try:
            return self._ops[name]
        except KeyError:
            raise KeyError(f"Operation '{name}' is not registered") from None

    def has(self, name: str) -> bool:
        return name in self._ops

    def names(self) -> list[str]:
        """Registered operation names, sorted."""
        return sorted(self._ops)


def default_registry() -> OpRegistry:
    """Return a new registry holding the built-in expression operations."""
    from stackplan.expressions import BUILTIN_OPS

    return OpRegistry(BUILTIN_OPS)
