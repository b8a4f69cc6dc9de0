"""Graph builder for the broker conversation flow.

This module provides the function to construct and compile the
conversation graph on top of the checkpointing executor.
"""

from __future__ import annotations

from functools import partial
from typing import TYPE_CHECKING, Any, Optional

from broker_runtime import CheckpointStore, ConversationState

from ..engine import END, CompiledGraph, GraphBuilder
from ..engine.executor import NodeReturn
from .edges import (
    AGENT,
    EXECUTE_PURCHASE,
    PREPARE_PURCHASE,
    PURCHASE_APPROVAL,
    TOOLS,
    route_after_agent,
    route_after_approval,
)
from .nodes import call_model_node, tools_node
from .purchase import execute_purchase_node, prepare_purchase_node, purchase_approval_node

if TYPE_CHECKING:
    from broker_core.agent import BrokerAgent


def create_broker_graph(
    agent: BrokerAgent,
    store: Optional[CheckpointStore] = None,
) -> CompiledGraph:
    """Create and compile the broker conversation graph.

    The graph follows this flow:
    ```
    START → agent ─────────────────────────────┐
              │                                │
       ┌──────┼──────────────┐                 │
       ↓      ↓              ↓                 ↓
     tools  prepare_purchase_details   execute_purchase   END
       │      ↓                                ↓
       │    purchase_approval (suspends)      END
       │      │
       │   ┌──┴───────────┐
       ↓   ↓              ↓
     agent agent   execute_purchase
    ```

    Args:
        agent: The broker agent instance to bind to node functions
        store: Checkpoint store for suspended and completed threads

    Returns:
        Compiled graph ready for execution
    """
    workflow = GraphBuilder()

    # Add nodes with agent bound via partial
    workflow.add_node(AGENT, partial(_wrap_node, call_model_node, agent=agent))
    workflow.add_node(TOOLS, partial(_wrap_node, tools_node, agent=agent))
    workflow.add_node(
        PREPARE_PURCHASE,
        partial(_wrap_node, prepare_purchase_node, agent=agent),
    )
    workflow.add_node(
        PURCHASE_APPROVAL,
        partial(_wrap_node, purchase_approval_node, agent=agent),
    )
    workflow.add_node(
        EXECUTE_PURCHASE,
        partial(_wrap_node, execute_purchase_node, agent=agent),
    )

    workflow.set_entry_point(AGENT)

    workflow.add_conditional_edges(
        AGENT,
        route_after_agent,
        [TOOLS, PREPARE_PURCHASE, EXECUTE_PURCHASE, END],
    )
    workflow.add_edge(TOOLS, AGENT)
    workflow.add_edge(PREPARE_PURCHASE, PURCHASE_APPROVAL)
    workflow.add_conditional_edges(
        PURCHASE_APPROVAL,
        route_after_approval,
        [EXECUTE_PURCHASE, AGENT],
    )
    workflow.add_edge(EXECUTE_PURCHASE, END)

    return workflow.compile(
        store=store,
        recursion_limit=agent.config.checkpoints.recursion_limit,
    )


async def _wrap_node(
    node_func: Any,
    state: ConversationState,
    agent: BrokerAgent,
) -> NodeReturn:
    """Wrap and handle async node execution.

    Args:
        node_func: The node function to execute
        state: Current conversation state
        agent: The broker agent instance

    Returns:
        Whatever the node returned
    """
    return await node_func(state, agent)  # type: ignore[no-any-return]
