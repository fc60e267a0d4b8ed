"""GraphBuilder for validating, ordering and expanding resource graphs."""

import heapq
from collections.abc import Mapping
from itertools import combinations

import structlog

from stackplan.cidr import blocks_overlap
from stackplan.context import StackContext
from stackplan.errors import (
    CyclicDependencyError,
    DuplicateResourceError,
    OverlappingAllocationError,
    ResourceExpansionError,
    UnresolvedReferenceError,
)
from stackplan.node import ResourceNode
from stackplan.plan import OrderedPlan, PlannedResource
from stackplan.registry import OpRegistry
from stackplan.resolver import Allocation, ReferenceResolver, ResolvedNode

logger = structlog.get_logger(__name__)


def sibling_id(template_id: str, index: int) -> str:
    """Id of sibling `index` of a count node."""
    return f"{template_id}[{index}]"


class GraphBuilder:
    """Turns a set of declarations into an OrderedPlan.

    Handles:
    - Validation (missing dependencies, invalid counts, references)
    - Cycle detection
    - Topological sorting with declaration-order tie-break
    - count expansion and attribute materialization
    - CIDR allocation overlap checks

    Any failure raises a PlanError; a partial plan is never returned.
    """

    def __init__(self, registry: OpRegistry | None = None) -> None:
        """Initialize GraphBuilder.

        Args:
            registry: OpRegistry holding the computed-expression operations.
                     Defaults to the built-in operations.
        """
        self.registry = registry

    def validate(self, nodes: Mapping[str, ResourceNode]) -> dict[str, ResolvedNode]:
        """Validate declarations and resolve their references.

        Checks:
        - All explicit dependencies exist
        - All count values are non-negative integers
        - No sibling id of a count node is also a declared id
        - All references point at existing nodes and outputs
        - No cycles exist

        Args:
            nodes: Mapping of node id -> ResourceNode in declaration order.

        Returns:
            Mapping of node id -> ResolvedNode, in declaration order.

        Raises:
            PlanError: If validation fails.
        """
        for node_id, node in nodes.items():
            for dep in node.depends_on:
                if dep not in nodes:
                    raise UnresolvedReferenceError(
                        f"Node '{node_id}' depends on '{dep}' which is not declared",
                        node_ids=[node_id, dep],
                    )

        for node_id, node in nodes.items():
            count = node.count
            if count is None:
                continue
            if isinstance(count, bool) or not isinstance(count, int):
                raise ResourceExpansionError(
                    f"Node '{node_id}' has non-integer count {count!r}",
                    node_ids=[node_id],
                )
            if count < 0:
                raise ResourceExpansionError(
                    f"Node '{node_id}' has negative count {count}",
                    node_ids=[node_id],
                )
            for i in range(count):
                sibling = sibling_id(node_id, i)
                if sibling in nodes:
                    raise DuplicateResourceError(
                        f"Sibling '{sibling}' of count node '{node_id}' clashes "
                        f"with a declared resource",
                        node_ids=[node_id, sibling],
                    )

        resolver = ReferenceResolver(nodes, self.registry)
        resolved = {node_id: resolver.resolve(node) for node_id, node in nodes.items()}

        cycle = self.find_cycle(self._dependencies(resolved))
        if cycle:
            raise CyclicDependencyError(cycle)
        return resolved

    @staticmethod
    def _dependencies(resolved: Mapping[str, ResolvedNode]) -> dict[str, list[str]]:
        """Union of explicit and implicit dependencies per node."""
        return {
            node_id: list(dict.fromkeys([*r.node.depends_on, *r.implicit_deps]))
            for node_id, r in resolved.items()
        }

    @staticmethod
    def find_cycle(deps: Mapping[str, list[str]]) -> list[str] | None:
        """Detect a cycle using DFS.

        Args:
            deps: Mapping of node id -> ids it depends on.

        Returns:
            The ids on the first cycle found, in dependency order (each id
            depends on the next, the last depends on the first), or None.
        """
        WHITE = 0  # Unvisited
        GRAY = 1  # Currently in DFS path
        BLACK = 2  # Fully processed

        color: dict[str, int] = {node_id: WHITE for node_id in deps}

        # Declaration order keeps the reported cycle stable across runs
        for start in deps:
            if color[start] != WHITE:
                continue
            color[start] = GRAY
            path = [start]
            pending = [iter(deps[start])]
            while pending:
                for dep in pending[-1]:
                    if color[dep] == GRAY:
                        # Back edge: the cycle is the path suffix starting at dep
                        return path[path.index(dep):]
                    if color[dep] == WHITE:
                        color[dep] = GRAY
                        path.append(dep)
                        pending.append(iter(deps[dep]))
                        break
                else:
                    pending.pop()
                    color[path.pop()] = BLACK
        return None

    @staticmethod
    def topological_sort(deps: Mapping[str, list[str]]) -> list[str]:
        """Topologically sort using Kahn's algorithm.

        Among nodes whose dependencies are all satisfied, the one declared
        first is emitted first.

        Args:
            deps: Mapping of node id -> ids it depends on, in declaration order.

        Returns:
            Node ids, dependencies before dependents.

        Raises:
            CyclicDependencyError: If the graph contains a cycle.
        """
        declared = {node_id: i for i, node_id in enumerate(deps)}
        dependents: dict[str, list[str]] = {node_id: [] for node_id in deps}
        in_degree: dict[str, int] = {}
        for node_id, node_deps in deps.items():
            in_degree[node_id] = len(node_deps)
            for dep in node_deps:
                dependents[dep].append(node_id)

        heap = [declared[n] for n in deps if in_degree[n] == 0]
        heapq.heapify(heap)
        ids = list(deps)
        result: list[str] = []

        while heap:
            node_id = ids[heapq.heappop(heap)]
            result.append(node_id)
            for dependent in dependents[node_id]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    heapq.heappush(heap, declared[dependent])

        if len(result) != len(deps):
            raise CyclicDependencyError(GraphBuilder.find_cycle(deps) or [])
        return result

    def build(self, source: StackContext | Mapping[str, ResourceNode]) -> OrderedPlan:
        """Validate, order and expand a set of declarations.

        Args:
            source: A StackContext, or a mapping of node id -> ResourceNode in
                    declaration order.

        Returns:
            The ordered plan.

        Raises:
            PlanError: If any validation rule is violated.
        """
        if isinstance(source, StackContext):
            nodes = source.nodes
            provider, default_tags = source.provider, source.default_tags
        else:
            nodes = dict(source)
            provider, default_tags = {}, {}

        resolved = self.validate(nodes)
        deps = self._dependencies(resolved)
        order = self.topological_sort(deps)
        logger.debug("Ordered resources", order=order)

        resources, allocations = self._expand(order, resolved, deps)
        self.check_allocations(allocations)

        plan = OrderedPlan(
            resources=tuple(resources),
            provider=dict(provider),
            default_tags=dict(default_tags),
        )
        logger.info(
            "Built plan",
            declared=len(nodes),
            resources=len(plan),
            allocations=len(allocations),
        )
        return plan

    def _expand(
        self,
        order: list[str],
        resolved: Mapping[str, ResolvedNode],
        deps: Mapping[str, list[str]],
    ) -> tuple[list[PlannedResource], list[Allocation]]:
        """Expand count nodes into siblings and materialize attributes.

        Siblings take their template's position consecutively. A dependency
        on a count node becomes a dependency on each of its siblings.
        """
        expansions: dict[str, tuple[str, ...]] = {
            node_id: tuple(sibling_id(node_id, i) for i in range(r.node.count))
            for node_id, r in resolved.items()
            if r.node.count is not None
        }

        def expand_ids(ids: list[str] | tuple[str, ...]) -> tuple[str, ...]:
            out: list[str] = []
            for node_id in ids:
                out.extend(expansions.get(node_id, (node_id,)))
            return tuple(out)

        resolver = ReferenceResolver({k: r.node for k, r in resolved.items()}, self.registry)
        positions: dict[str, int] = {}
        resources: list[PlannedResource] = []
        allocations: list[Allocation] = []

        for node_id in order:
            r = resolved[node_id]
            node_deps = expand_ids(deps[node_id])
            explicit = expand_ids(r.node.depends_on)
            if r.node.count is None:
                instances = [(node_id, None)]
            else:
                instances = list(zip(expansions[node_id], range(r.node.count)))
                logger.debug("Expanding count", node_id=node_id, count=r.node.count)

            for planned_id, index in instances:
                attributes, node_allocations = resolver.materialize(
                    r, planned_id, index, expansions
                )
                allocations.extend(node_allocations)
                ordered_deps = tuple(sorted(node_deps, key=positions.__getitem__))
                positions[planned_id] = len(resources)
                resources.append(
                    PlannedResource(
                        id=planned_id,
                        kind=r.node.kind,
                        attributes=attributes,
                        depends_on=ordered_deps,
                        explicit_depends_on=tuple(
                            sorted(explicit, key=positions.__getitem__)
                        ),
                        template=node_id if index is not None else None,
                        index=index,
                    )
                )
        return resources, allocations

    @staticmethod
    def check_allocations(allocations: list[Allocation]) -> None:
        """Reject overlapping sub-block requests against the same parent.

        Raises:
            OverlappingAllocationError: Naming both requesting nodes.
        """
        by_parent: dict[str, list[Allocation]] = {}
        for allocation in allocations:
            by_parent.setdefault(allocation.parent, []).append(allocation)

        for parent, group in by_parent.items():
            for a, b in combinations(group, 2):
                if blocks_overlap(a.additional_bits, a.index, b.additional_bits, b.index):
                    raise OverlappingAllocationError(
                        f"Sub-block requests of '{parent}' overlap: node '{a.node_id}' "
                        f"attribute '{a.attribute}' (+{a.additional_bits} bits, index "
                        f"{a.index}) and node '{b.node_id}' attribute '{b.attribute}' "
                        f"(+{b.additional_bits} bits, index {b.index})",
                        node_ids=dict.fromkeys([a.node_id, b.node_id]),
                    )
