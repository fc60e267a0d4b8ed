"""Executor: in-process reference implementation of the apply engine contract."""

import inspect
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import structlog

from stackplan.emitter import load_plan_from_dict
from stackplan.expressions import evaluate
from stackplan.node import ECHOED_OUTPUTS, KIND_OUTPUTS, ResourceKind
from stackplan.params import ComputedExpression, DeferredReference, Literal
from stackplan.plan import OrderedPlan, PlannedResource
from stackplan.registry import OpRegistry, default_registry

logger = structlog.get_logger(__name__)

Provisioner = Callable[..., Mapping[str, Any]]


@dataclass
class ApplyResult:
    """Outcome of applying a plan.

    Attributes:
        outputs: Output values of every provisioned resource, by id.
        failed: Error message of every resource that failed, by id.
        skipped: Resources not attempted because a dependency failed.
        values: Resolved values of output resources, by id.
    """

    outputs: dict[str, dict[str, Any]] = field(default_factory=dict)
    failed: dict[str, str] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)
    values: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed and not self.skipped


class Executor:
    """Applies an ordered plan through per-kind provisioner callables.

    Resources run in plan order. References are resolved against the outputs
    of earlier resources and computed expressions are evaluated through the
    OpRegistry. A failing resource does not stop the run: everything that
    transitively depends on it is skipped, unrelated resources proceed.
    """

    def __init__(
        self,
        provisioners: Mapping[ResourceKind | str, Provisioner],
        registry: OpRegistry | None = None,
    ) -> None:
        """Initialize Executor.

        Args:
            provisioners: Callable per resource kind. Each is invoked with the
                resolved attributes as keyword arguments (plus resource_id) and
                returns a mapping of output name -> value. Every output the
                kind declares must be present (echoed outputs are filled from
                the attributes); a missing one fails that resource.
            registry: OpRegistry for computed expressions. Defaults to the
                built-in operations.
        """
        self.provisioners = {ResourceKind(k): v for k, v in provisioners.items()}
        self.registry = registry or default_registry()

    def apply(self, plan: OrderedPlan | dict) -> ApplyResult:
        """Apply a plan (or its serialized envelope) and collect outputs.

        Args:
            plan: An OrderedPlan or a dict produced by emit().

        Returns:
            ApplyResult with outputs, failures and skipped resources.

        Raises:
            ValueError: If a serialized plan is malformed.
        """
        if not isinstance(plan, OrderedPlan):
            plan = load_plan_from_dict(plan)

        result = ApplyResult()
        blocked: set[str] = set()

        for resource in plan:
            if resource.id in blocked:
                result.skipped.append(resource.id)
                logger.warning("Skipped resource", resource_id=resource.id)
                continue
            try:
                result.outputs[resource.id] = self._apply_resource(resource, result.outputs)
                if resource.kind is ResourceKind.OUTPUT:
                    result.values[resource.id] = result.outputs[resource.id]["value"]
            except Exception as e:
                result.failed[resource.id] = f"{type(e).__name__}: {e}"
                blocked.update(plan.dependents(resource.id))
                logger.warning(
                    "Resource failed",
                    resource_id=resource.id,
                    error=result.failed[resource.id],
                )

        logger.info(
            "Applied plan",
            provisioned=len(result.outputs),
            failed=len(result.failed),
            skipped=len(result.skipped),
        )
        return result

    def _apply_resource(
        self, resource: PlannedResource, outputs: dict[str, dict[str, Any]]
    ) -> dict[str, Any]:
        attributes = {
            name: self._resolve(value, outputs) for name, value in resource.attributes.items()
        }
        if resource.kind is ResourceKind.OUTPUT:
            return {"value": attributes["value"]}

        if resource.kind not in self.provisioners:
            raise LookupError(f"No provisioner registered for kind '{resource.kind.value}'")
        provisioned = self._invoke_op(
            self.provisioners[resource.kind],
            resource.kind.value,
            {"resource_id": resource.id, **attributes},
        )
        if not isinstance(provisioned, Mapping):
            raise TypeError(
                f"Provisioner for '{resource.kind.value}' returned "
                f"{type(provisioned).__name__}, expected a mapping of outputs"
            )

        # Echoed outputs default to the attribute of the same name
        result = {
            name: attributes[name]
            for name in ECHOED_OUTPUTS.get(resource.kind, ())
            if name in attributes
        }
        result.update(provisioned)
        missing = KIND_OUTPUTS[resource.kind] - set(result)
        if missing:
            raise ValueError(
                f"Provisioner for '{resource.kind.value}' did not return {sorted(missing)}"
            )
        return result

    def _resolve(self, value: Any, outputs: dict[str, dict[str, Any]]) -> Any:
        """Replace references and expressions with concrete values."""
        if isinstance(value, Literal):
            return value.value
        if isinstance(value, DeferredReference):
            if value.node_id not in outputs:
                raise LookupError(f"Reference to '{value}' before it was provisioned")
            if value.output not in outputs[value.node_id]:
                raise LookupError(f"Resource '{value.node_id}' has no output '{value.output}'")
            return outputs[value.node_id][value.output]
        if isinstance(value, ComputedExpression):
            args = tuple(self._resolve(arg, outputs) for arg in value.args)
            return evaluate(ComputedExpression(value.op, args), self.registry)
        if isinstance(value, dict):
            return {k: self._resolve(v, outputs) for k, v in value.items()}
        if isinstance(value, list):
            return [self._resolve(item, outputs) for item in value]
        return value

    def _invoke_op(self, op: Any, op_name: str, manifest: dict[str, Any]) -> Any:
        """Invoke a provisioner with kwargs dispatch.

        Args:
            op: The provisioner callable.
            op_name: Kind name (for error messages).
            manifest: Resolved attributes plus resource_id.

        Raises:
            ValueError: If required parameters are missing.
        """
        sig = inspect.signature(op)
        kwargs: dict[str, Any] = {}

        for name, param in sig.parameters.items():
            if name in manifest:
                kwargs[name] = manifest[name]
            elif param.default is not inspect.Parameter.empty:
                pass
            elif param.kind in (inspect.Parameter.VAR_KEYWORD, inspect.Parameter.VAR_POSITIONAL):
                pass
            else:
                raise ValueError(f"Provisioner '{op_name}': missing required parameter '{name}'")

        has_var_kwargs = any(
            p.kind == inspect.Parameter.VAR_KEYWORD for p in sig.parameters.values()
        )
        if has_var_kwargs:
            for key, val in manifest.items():
                if key not in kwargs:
                    kwargs[key] = val

        return op(**kwargs)
