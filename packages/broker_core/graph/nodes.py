"""Model and data-tool nodes of the broker conversation graph.

The purchase workflow nodes live in ``purchase.py``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from broker_runtime import ConversationState, Message, StateUpdate

from ..engine import InvariantViolation
from ..messages import from_ai_message, to_langchain_messages
from ..tools import PURCHASE_TOOL_NAMES

if TYPE_CHECKING:
    from broker_core.agent import BrokerAgent

logger = logging.getLogger(__name__)


async def call_model_node(
    state: ConversationState,
    agent: BrokerAgent,
) -> StateUpdate:
    """Ask the model for the next assistant message.

    The prompt is the system instruction followed by the full message log.
    Data tools and purchase tools are both bound so the model can request
    either.

    Args:
        state: Current conversation state
        agent: The broker agent instance

    Returns:
        Update appending the assistant message
    """
    prompt = to_langchain_messages(agent.config.system_prompt, state.messages)
    response = await agent.llm_provider.achat(prompt, agent.model_tools)
    message = from_ai_message(response)

    if message.tool_calls:
        logger.debug("Model requested tools: %s", [call.name for call in message.tool_calls])

    return StateUpdate(messages=[message])


async def tools_node(
    state: ConversationState,
    agent: BrokerAgent,
) -> StateUpdate:
    """Dispatch the data tool calls of the newest assistant message.

    Purchase calls are skipped; the purchase workflow answers those. Every
    dispatched call gets exactly one tool message, errors included.

    Args:
        state: Current conversation state
        agent: The broker agent instance

    Returns:
        Update appending one tool message per dispatched call, in call order

    Raises:
        InvariantViolation: If the newest message requests no tools
    """
    last_message = state.last_message
    if last_message is None or not last_message.claims_tool_calls:
        raise InvariantViolation("Tools node reached without a tool-calling assistant message")

    calls = [call for call in last_message.tool_calls or [] if call.name not in PURCHASE_TOOL_NAMES]
    contents = await asyncio.gather(*(agent.tools.invoke(call) for call in calls))

    return StateUpdate(
        messages=[
            Message.tool(content, call.id, call.name) for call, content in zip(calls, contents)
        ]
    )
