"""stackplan: declarative resource graphs resolved into ordered apply plans."""

from importlib.metadata import PackageNotFoundError, version

from stackplan.cidr import allocate, allocate_lazy, blocks_overlap
from stackplan.config import Variable, Variables
from stackplan.context import StackContext
from stackplan.emitter import dump_plan, emit, load_plan, load_plan_from_dict
from stackplan.errors import (
    AddressSpaceExhausted,
    CyclicDependencyError,
    DuplicateResourceError,
    InvalidAttributeError,
    InvalidPrefix,
    MissingVariableError,
    OverlappingAllocationError,
    PlanError,
    ResourceExpansionError,
    UnknownOperationError,
    UnresolvedReferenceError,
)
from stackplan.executor import ApplyResult, Executor
from stackplan.graph import GraphBuilder
from stackplan.node import ResourceKind, ResourceNode
from stackplan.params import (
    ComputedExpression,
    DeferredReference,
    Literal,
    cel,
    cidrsubnet,
    count_index,
    join,
    ref,
    splat,
)
from stackplan.plan import OrderedPlan, PlannedResource
from stackplan.registry import OpRegistry, default_registry
from stackplan.resolver import ReferenceResolver

try:
    __version__ = version("stackplan")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

__all__ = [
    "AddressSpaceExhausted",
    "ApplyResult",
    "ComputedExpression",
    "CyclicDependencyError",
    "DeferredReference",
    "DuplicateResourceError",
    "Executor",
    "GraphBuilder",
    "InvalidAttributeError",
    "InvalidPrefix",
    "Literal",
    "MissingVariableError",
    "OpRegistry",
    "OrderedPlan",
    "OverlappingAllocationError",
    "PlanError",
    "PlannedResource",
    "ReferenceResolver",
    "ResourceExpansionError",
    "ResourceKind",
    "ResourceNode",
    "StackContext",
    "UnknownOperationError",
    "UnresolvedReferenceError",
    "Variable",
    "Variables",
    "allocate",
    "allocate_lazy",
    "blocks_overlap",
    "cel",
    "cidrsubnet",
    "count_index",
    "default_registry",
    "dump_plan",
    "emit",
    "join",
    "load_plan",
    "load_plan_from_dict",
    "ref",
    "splat",
    "__version__",
]
