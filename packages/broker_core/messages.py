"""Conversion between the conversation log and LangChain messages."""

import json
from typing import Any, List

from broker_runtime import Message, MessageRole, ToolCall
from langchain_core.messages import (  # type: ignore[import-not-found]
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)


def _text_content(content: Any) -> str:
    """Flatten LangChain content blocks into plain text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(str(block.get("text", "")))
        return "".join(parts)
    return json.dumps(content)


def to_langchain_message(message: Message) -> BaseMessage:
    """Convert one log message to its LangChain counterpart."""
    if message.role == MessageRole.USER:
        return HumanMessage(content=message.content)
    if message.role == MessageRole.SYSTEM:
        return SystemMessage(content=message.content)
    if message.role == MessageRole.TOOL:
        return ToolMessage(
            content=message.content,
            tool_call_id=message.tool_call_id or "",
            name=message.name,
        )
    return AIMessage(
        content=message.content,
        tool_calls=[
            {"name": call.name, "args": call.args, "id": call.id, "type": "tool_call"}
            for call in message.tool_calls or []
        ],
    )


def to_langchain_messages(system_prompt: str, messages: List[Message]) -> List[BaseMessage]:
    """Build a prompt: system instruction followed by the full history."""
    return [SystemMessage(content=system_prompt), *(to_langchain_message(m) for m in messages)]


def from_ai_message(message: AIMessage) -> Message:
    """Convert a model response into an assistant log message.

    A response without tool calls yields a message whose ``tool_calls`` is
    None, so routing treats it as a final answer.
    """
    tool_calls = [
        ToolCall(id=call["id"], name=call["name"], args=call.get("args") or {})
        if call.get("id")
        else ToolCall(name=call["name"], args=call.get("args") or {})
        for call in message.tool_calls or []
    ]
    return Message.assistant(
        content=_text_content(message.content),
        tool_calls=tool_calls or None,
    )
