"""OrderedPlan: the validated, topologically ordered result of a build."""

from collections import deque
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

from stackplan.node import ResourceKind


@dataclass(frozen=True)
class PlannedResource:
    """A (possibly expanded) resource at its position in the plan.

    Attributes:
        id: Resource id. Siblings of a count node are "<template>[<index>]".
        kind: The resource type.
        attributes: Normalized attribute bag (Literal, DeferredReference,
                    ComputedExpression, or containers holding markers).
        depends_on: Explicit and implicit dependency ids, in plan order.
        explicit_depends_on: The subset of depends_on declared explicitly.
        template: Id of the count node this sibling was expanded from.
        index: Sibling index within the template.
    """

    id: str
    kind: ResourceKind
    attributes: dict[str, Any]
    depends_on: tuple[str, ...] = ()
    explicit_depends_on: tuple[str, ...] = ()
    template: str | None = None
    index: int | None = None


@dataclass(frozen=True)
class OrderedPlan:
    """Immutable ordered sequence of planned resources.

    Every dependency of a resource occupies an earlier position than the
    resource itself.
    """

    resources: tuple[PlannedResource, ...]
    provider: dict[str, Any] = field(default_factory=dict)
    default_tags: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        positions = {res.id: i for i, res in enumerate(self.resources)}
        if len(positions) != len(self.resources):
            raise ValueError("Plan contains duplicate resource ids")
        object.__setattr__(self, "_positions", positions)

    def __len__(self) -> int:
        return len(self.resources)

    def __iter__(self) -> Iterator[PlannedResource]:
        return iter(self.resources)

    def __contains__(self, resource_id: object) -> bool:
        return resource_id in self._positions

    @property
    def ids(self) -> list[str]:
        return [res.id for res in self.resources]

    def get(self, resource_id: str) -> PlannedResource:
        """Return a resource by id.

        Raises:
            KeyError: If the plan has no such resource.
        """
        if resource_id not in self._positions:
            raise KeyError(f"Resource '{resource_id}' is not in the plan")
        return self.resources[self._positions[resource_id]]

    def position(self, resource_id: str) -> int:
        """Return the position of a resource in the plan order.

        Raises:
            KeyError: If the plan has no such resource.
        """
        if resource_id not in self._positions:
            raise KeyError(f"Resource '{resource_id}' is not in the plan")
        return self._positions[resource_id]

    def edges(self) -> Iterator[tuple[str, str]]:
        """Yield (dependency, dependent) pairs."""
        for res in self.resources:
            for dep in res.depends_on:
                yield dep, res.id

    def outputs(self) -> list[PlannedResource]:
        """Resources of kind output, in plan order."""
        return [res for res in self.resources if res.kind is ResourceKind.OUTPUT]

    def dependents(self, resource_id: str) -> list[str]:
        """Ids that transitively depend on `resource_id`, in plan order."""
        self.get(resource_id)
        direct: dict[str, list[str]] = {res.id: [] for res in self.resources}
        for dep, dependent in self.edges():
            direct[dep].append(dependent)

        seen: set[str] = set()
        queue = deque(direct[resource_id])
        while queue:
            current = queue.popleft()
            if current in seen:
                continue
            seen.add(current)
            queue.extend(direct[current])
        return sorted(seen, key=self._positions.__getitem__)
