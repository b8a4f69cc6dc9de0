"""Exceptions raised by the graph engine.

Suspension is not an error: nodes signal it through ``NodeResult.suspend``.
Everything here aborts the current run without touching the last
checkpoint of the thread.
"""

from typing import Optional


class GraphError(Exception):
    """Base class for graph engine errors."""

    pass


class GraphCompileError(GraphError):
    """Raised when a graph definition is inconsistent."""

    pass


class InvalidRouteError(GraphError):
    """Raised when a router returns a node outside its declared targets."""

    pass


class GraphRecursionError(GraphError):
    """Raised when a run exceeds the configured step limit."""

    pass


class InvariantViolation(GraphError):
    """Raised when a node or router detects a broken programming invariant."""

    pass


class NothingToResumeError(GraphError):
    """Raised when resuming a thread that is not suspended."""

    pass


class NodeExecutionError(GraphError):
    """Raised when a node or router fails with an unexpected exception."""

    def __init__(self, node: str, message: str, cause: Optional[BaseException] = None):
        """Initialize the error.

        Args:
            node: Name of the failing node
            message: Error description
            cause: Original exception, if any
        """
        super().__init__(f"Node '{node}' failed: {message}")
        self.node = node
        self.cause = cause
