"""LLM Provider for the Broker Agent.

This module provides LLM initialization and the two calls the agent needs:
a tool-aware chat completion for the agent node and a structured
extraction used by ticker resolution.
"""

import os
import time
from typing import List, Optional, Sequence, Type, TypeVar, cast

from broker_config import LLMConfig
from broker_config import LLMProvider as LLMProviderEnum
from langchain_core.language_models import BaseChatModel  # type: ignore[import-not-found]
from langchain_core.messages import (  # type: ignore[import-not-found]
    AIMessage,
    BaseMessage,
    HumanMessage,
)
from langchain_core.tools import BaseTool  # type: ignore[import-not-found]
from langchain_openai import ChatOpenAI  # type: ignore[import-not-found]
from pydantic import BaseModel

from .metrics import LLM_CALLS, LLM_LATENCY

SchemaT = TypeVar("SchemaT", bound=BaseModel)


class LLMProviderError(Exception):
    """Raised when there's an error with the LLM provider."""

    pass


def create_llm(config: LLMConfig) -> BaseChatModel:
    """Create and configure an LLM instance based on configuration.

    Args:
        config: LLM configuration

    Returns:
        Initialized LLM instance

    Raises:
        LLMProviderError: If provider is not supported
        ValueError: If API key is not found in environment variables
    """
    api_key = os.getenv(config.api_key_env_var)
    if not api_key:
        raise ValueError(
            f"API key not found in environment variable '{config.api_key_env_var}'. "
            f"Please set it before using the LLM provider."
        )

    common_params = {
        "model": config.model_name,
        "temperature": config.temperature,
        "api_key": api_key,
    }

    if config.max_tokens is not None:
        common_params["max_tokens"] = config.max_tokens

    if config.provider == LLMProviderEnum.OPENAI:
        if config.base_url:
            common_params["base_url"] = config.base_url
        return ChatOpenAI(**common_params)

    elif config.provider == LLMProviderEnum.OPENAI_COMPATIBLE:
        common_params["base_url"] = config.base_url
        return ChatOpenAI(**common_params)

    else:
        raise LLMProviderError(f"Unsupported LLM provider: {config.provider}")


class LLMProvider:
    """LLM Provider wrapper with error handling and convenience methods."""

    def __init__(self, config: LLMConfig):
        """Initialize LLM Provider.

        Args:
            config: LLM configuration
        """
        self.config = config
        self._llm: Optional[BaseChatModel] = None

    @property
    def llm(self) -> BaseChatModel:
        """Get or create LLM instance.

        Returns:
            Initialized LLM instance
        """
        if self._llm is None:
            self._llm = create_llm(self.config)
        return self._llm

    async def achat(
        self,
        messages: List[BaseMessage],
        tools: Sequence[BaseTool] = (),
    ) -> AIMessage:
        """Run a chat completion with the given tools bound.

        Args:
            messages: Full prompt, system message first
            tools: Tools the model may request

        Returns:
            The assistant message, possibly carrying tool calls

        Raises:
            LLMProviderError: If there's an error during invocation
        """
        LLM_CALLS.labels(operation="chat").inc()
        start_time = time.perf_counter()
        try:
            model = self.llm.bind_tools(list(tools)) if tools else self.llm
            response = await model.ainvoke(messages)
            return cast(AIMessage, response)
        except Exception as e:
            raise LLMProviderError(f"Error invoking LLM: {str(e)}") from e
        finally:
            LLM_LATENCY.labels(operation="chat").observe(time.perf_counter() - start_time)

    async def aextract(self, schema: Type[SchemaT], prompt: str) -> SchemaT:
        """Extract a structured record from a prompt.

        Args:
            schema: Pydantic model describing the output
            prompt: Instruction and context for the extraction

        Returns:
            Instance of ``schema``

        Raises:
            LLMProviderError: If there's an error during invocation
        """
        LLM_CALLS.labels(operation="extract").inc()
        start_time = time.perf_counter()
        try:
            structured = self.llm.with_structured_output(schema)
            result = await structured.ainvoke([HumanMessage(content=prompt)])
            return cast(SchemaT, result)
        except Exception as e:
            raise LLMProviderError(f"Error invoking LLM: {str(e)}") from e
        finally:
            LLM_LATENCY.labels(operation="extract").observe(time.perf_counter() - start_time)
