"""Broker Agent - Core Package."""

from .agent import AgentError, BrokerAgent, create_store
from .engine import (
    END,
    CompiledGraph,
    Completed,
    ExecutionResult,
    GraphBuilder,
    GraphError,
    NothingToResumeError,
    Suspended,
)
from .graph import confirmation_message, create_broker_graph
from .llm_provider import LLMProvider, LLMProviderError, create_llm

__version__ = "0.1.0"

__all__ = [
    "END",
    "AgentError",
    "BrokerAgent",
    "CompiledGraph",
    "Completed",
    "ExecutionResult",
    "GraphBuilder",
    "GraphError",
    "LLMProvider",
    "LLMProviderError",
    "NothingToResumeError",
    "Suspended",
    "confirmation_message",
    "create_broker_graph",
    "create_llm",
    "create_store",
]
