"""Graph engine: node/edge registry, execution loop, suspend/resume.

This package is domain independent. The broker conversation graph is
assembled from it in ``broker_core.graph``.
"""

from .errors import (
    GraphCompileError,
    GraphError,
    GraphRecursionError,
    InvalidRouteError,
    InvariantViolation,
    NodeExecutionError,
    NothingToResumeError,
)
from .executor import CompiledGraph, GraphBuilder
from .results import END, Completed, ExecutionResult, NodeOutcome, NodeResult, Suspended

__all__ = [
    "END",
    "CompiledGraph",
    "Completed",
    "ExecutionResult",
    "GraphBuilder",
    "GraphCompileError",
    "GraphError",
    "GraphRecursionError",
    "InvalidRouteError",
    "InvariantViolation",
    "NodeExecutionError",
    "NodeOutcome",
    "NodeResult",
    "NothingToResumeError",
    "Suspended",
]
