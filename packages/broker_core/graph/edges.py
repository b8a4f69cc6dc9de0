"""Edge routing functions for the broker conversation graph.

Routers are pure functions of the conversation state. They never mutate
the state and identical states always yield identical decisions.
"""

from __future__ import annotations

from typing import List, Literal, Union

from broker_runtime import ConversationState

from ..engine import END, InvariantViolation
from ..tools import PURCHASE_TOOL_NAMES

AGENT = "agent"
TOOLS = "tools"
PREPARE_PURCHASE = "prepare_purchase_details"
PURCHASE_APPROVAL = "purchase_approval"
EXECUTE_PURCHASE = "execute_purchase"


def route_after_agent(state: ConversationState) -> Union[str, List[str]]:
    """Decide what follows a model turn.

    1. No tool calls on the newest assistant message: end the turn.
    2. A purchase is already staged: execute it.
    3. Otherwise classify each requested call. Purchase calls go to the
       purchase workflow, everything else to the tools node. Mixed requests
       fan out to both, purchase workflow first so the approval gate is
       reached before the model runs again.

    Args:
        state: Current conversation state

    Returns:
        END, a node name, or the list of nodes to fan out to

    Raises:
        InvariantViolation: If the message claims tool calls but lists none
    """
    last_message = state.last_message
    if last_message is None or not last_message.claims_tool_calls:
        return END

    if state.staged_purchase is not None:
        return EXECUTE_PURCHASE

    tool_calls = last_message.tool_calls or []
    if not tool_calls:
        raise InvariantViolation("Expected tool_calls to be a list with at least one element")

    targets = []
    if any(call.name in PURCHASE_TOOL_NAMES for call in tool_calls):
        targets.append(PREPARE_PURCHASE)
    if any(call.name not in PURCHASE_TOOL_NAMES for call in tool_calls):
        targets.append(TOOLS)

    if len(targets) == 1:
        return targets[0]
    return targets


def route_after_approval(
    state: ConversationState,
) -> Literal["execute_purchase", "agent"]:
    """Route after the approval gate let the run through.

    The gate clears the staged purchase on rejection, so a purchase that is
    still staged here was approved.

    Args:
        state: Current conversation state

    Returns:
        Next node to execute
    """
    if state.staged_purchase is not None:
        return EXECUTE_PURCHASE
    return AGENT
