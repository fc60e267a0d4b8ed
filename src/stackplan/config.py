"""Plan variables: named inputs resolved from overrides, environment, or defaults."""

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

import structlog

from stackplan.errors import MissingVariableError

logger = structlog.get_logger(__name__)

ENV_PREFIX = "STACKPLAN_VAR_"

VariableType = Literal["string", "number", "bool", "list"]

_REQUIRED = object()


@dataclass(frozen=True)
class Variable:
    """A named plan input.

    A variable declared without a default must be given a value explicitly,
    through overrides or the environment.
    """

    name: str
    type: VariableType = "string"
    default: Any = _REQUIRED
    sensitive: bool = False
    description: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Variable name cannot be empty")
        if self.type not in ("string", "number", "bool", "list"):
            raise ValueError(f"Variable '{self.name}' has unknown type {self.type!r}")

    @property
    def required(self) -> bool:
        return self.default is _REQUIRED

    def coerce(self, raw: Any) -> Any:
        """Convert a raw value (typically an environment string) to this type.

        Raises:
            ValueError: If the value cannot be converted.
        """
        if not isinstance(raw, str):
            return raw
        if self.type == "string":
            return raw
        if self.type == "number":
            try:
                return int(raw)
            except ValueError:
                pass
            try:
                return float(raw)
            except ValueError:
                raise ValueError(
                    f"Variable '{self.name}' expects a number, got {raw!r}"
                ) from None
        if self.type == "bool":
            lowered = raw.strip().lower()
            if lowered in ("1", "true", "yes", "on"):
                return True
            if lowered in ("0", "false", "no", "off"):
                return False
            raise ValueError(f"Variable '{self.name}' expects a bool, got {raw!r}")
        # list: JSON array or comma-separated
        stripped = raw.strip()
        if stripped.startswith("["):
            value = json.loads(stripped)
            if not isinstance(value, list):
                raise ValueError(f"Variable '{self.name}' expects a list, got {raw!r}")
            return value
        return [item.strip() for item in stripped.split(",") if item.strip()]


@dataclass
class Variables:
    """Collection of declared variables and their resolved values."""

    declared: dict[str, Variable] = field(default_factory=dict)
    values: dict[str, Any] = field(default_factory=dict)

    def declare(self, variable: Variable) -> Variable:
        """Declare a variable.

        Raises:
            ValueError: If a variable with the same name is already declared.
        """
        if variable.name in self.declared:
            raise ValueError(f"Variable '{variable.name}' is already declared")
        self.declared[variable.name] = variable
        return variable

    def resolve(
        self,
        overrides: Mapping[str, Any] | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> dict[str, Any]:
        """Resolve every declared variable.

        Precedence: overrides, then STACKPLAN_VAR_<name> in `environ`
        (os.environ when None), then the default.

        Returns:
            Mapping of variable name -> value.

        Raises:
            MissingVariableError: If a required variable has no value.
            ValueError: If an override names an undeclared variable or a value
                cannot be coerced.
        """
        overrides = dict(overrides or {})
        environ = os.environ if environ is None else environ
        unknown = set(overrides) - set(self.declared)
        if unknown:
            raise ValueError(f"Undeclared variables in overrides: {sorted(unknown)}")

        resolved: dict[str, Any] = {}
        missing: list[str] = []
        for name, variable in self.declared.items():
            env_key = f"{ENV_PREFIX}{name}"
            if name in overrides:
                value, source = variable.coerce(overrides[name]), "override"
            elif env_key in environ:
                value, source = variable.coerce(environ[env_key]), "environment"
            elif not variable.required:
                value, source = variable.default, "default"
            else:
                missing.append(name)
                continue
            resolved[name] = value
            logger.debug(
                "Resolved variable",
                variable=name,
                source=source,
                value="***" if variable.sensitive else value,
            )

        if missing:
            raise MissingVariableError(
                f"Variables without a value: {missing}. Set them explicitly "
                f"or through {ENV_PREFIX}<name>."
            )
        self.values = resolved
        return resolved

    def get(self, name: str) -> Any:
        """Return the resolved value of a variable.

        Raises:
            KeyError: If the variable is not declared or not resolved yet.
        """
        if name not in self.declared:
            raise KeyError(f"Variable '{name}' is not declared")
        if name not in self.values:
            raise KeyError(f"Variable '{name}' has not been resolved")
        return self.values[name]
