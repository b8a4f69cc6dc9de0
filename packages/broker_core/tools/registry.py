"""Tool registry and dispatch.

Tools are LangChain ``BaseTool`` instances with pydantic argument schemas.
The registry invokes them by name and turns every failure into a
structured error payload, so dispatch never raises.
"""

import json
import logging
from typing import Dict, Iterable, List, Optional

from broker_runtime import ToolCall
from langchain_core.tools import BaseTool  # type: ignore[import-not-found]

from ..metrics import TOOL_CALLS

logger = logging.getLogger(__name__)

ERROR_KEY = "ErrorHappened"


def error_payload(message: str) -> str:
    """Serialize an error the way tool results report failures."""
    return json.dumps({ERROR_KEY: message})


class ToolRegistry:
    """Tools available to the model, looked up by name."""

    def __init__(self, tools: Optional[Iterable[BaseTool]] = None):
        self._tools: Dict[str, BaseTool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: BaseTool) -> None:
        """Add a tool, replacing any tool of the same name."""
        if tool.name in self._tools:
            logger.warning("Replacing registered tool %s", tool.name)
        self._tools[tool.name] = tool

    def get(self, name: str) -> Optional[BaseTool]:
        return self._tools.get(name)

    def names(self) -> List[str]:
        return list(self._tools)

    def tools(self) -> List[BaseTool]:
        """All registered tools, in registration order, for binding to the model."""
        return list(self._tools.values())

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    async def invoke(self, call: ToolCall) -> str:
        """Run one requested tool call.

        Args:
            call: Tool name, arguments and correlation ID

        Returns:
            Serialized result, or an error payload if the tool is unknown or fails
        """
        tool = self._tools.get(call.name)
        if tool is None:
            TOOL_CALLS.labels(tool=call.name, status="unknown").inc()
            logger.warning("Model requested unknown tool %s", call.name)
            return error_payload(f"Unknown tool '{call.name}'")

        try:
            result = await tool.ainvoke(call.args)
        except Exception as e:
            TOOL_CALLS.labels(tool=call.name, status="error").inc()
            logger.warning("Tool %s failed: %s", call.name, e)
            return error_payload(f"An error occurred while running {call.name}: {e}")

        TOOL_CALLS.labels(tool=call.name, status="success").inc()
        return result if isinstance(result, str) else json.dumps(result, default=str)
