"""Broker conversation graph: model turns, data tools, purchase workflow.

The graph runs on the checkpointing executor in ``broker_core.engine``.
"""

from .builder import create_broker_graph
from .edges import (
    AGENT,
    EXECUTE_PURCHASE,
    PREPARE_PURCHASE,
    PURCHASE_APPROVAL,
    TOOLS,
    route_after_agent,
    route_after_approval,
)
from .purchase import (
    CONFIRMATION_REQUIRED,
    confirmation_message,
    format_price,
    pending_purchase_call,
    read_approval,
)

__all__ = [
    "AGENT",
    "CONFIRMATION_REQUIRED",
    "EXECUTE_PURCHASE",
    "PREPARE_PURCHASE",
    "PURCHASE_APPROVAL",
    "TOOLS",
    "confirmation_message",
    "create_broker_graph",
    "format_price",
    "pending_purchase_call",
    "read_approval",
    "route_after_agent",
    "route_after_approval",
]
