"""Node and execution result types for the graph engine."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from broker_runtime import ConversationState, Message, StateUpdate

# Terminal marker used as an edge target.
END = "__end__"


class NodeOutcome(str, Enum):
    """How a node wants execution to continue."""

    CONTINUE = "continue"
    SUSPEND = "suspend"
    TERMINAL = "terminal"


@dataclass
class NodeResult:
    """Result of a single node execution.

    Attributes:
        outcome: Continue along the outgoing edge, suspend, or end the branch
        update: Partial state update to merge (ignored when suspending)
        reason: Why the node suspended
    """

    outcome: NodeOutcome
    update: Optional[StateUpdate] = None
    reason: Optional[str] = None

    @classmethod
    def proceed(cls, update: Optional[StateUpdate] = None) -> "NodeResult":
        """Merge ``update`` and follow the node's outgoing edge."""
        return cls(NodeOutcome.CONTINUE, update=update)

    @classmethod
    def suspend(cls, reason: str) -> "NodeResult":
        """Halt the run until the thread is resumed."""
        return cls(NodeOutcome.SUSPEND, reason=reason)

    @classmethod
    def end(cls, update: Optional[StateUpdate] = None) -> "NodeResult":
        """Merge ``update`` and stop this branch without routing further."""
        return cls(NodeOutcome.TERMINAL, update=update)


@dataclass
class ExecutionResult(ABC):
    """Outcome of ``invoke`` or ``resume`` on a thread."""

    thread_id: str
    state: ConversationState

    @property
    @abstractmethod
    def status(self) -> str:
        """Wire name of the outcome."""

    @property
    def messages(self) -> List[Message]:
        return self.state.messages


@dataclass
class Suspended(ExecutionResult):
    """The run halted and waits for ``resume``."""

    reason: str
    pending_nodes: List[str] = field(default_factory=list)

    @property
    def status(self) -> str:
        return "suspended"


@dataclass
class Completed(ExecutionResult):
    """The run reached the terminal marker on every branch."""

    @property
    def status(self) -> str:
        return "completed"
