"""Broker Agent facade.

This module provides the entry point applications use to talk to the
agent: start a thread, send user messages, answer purchase confirmations,
and inspect or discard threads. Collaborators are created lazily from the
configuration unless they are injected.
"""

import logging
from typing import List, Optional
from uuid import uuid4

from broker_config import BrokerConfig
from broker_runtime import (
    Checkpoint,
    CheckpointStatus,
    CheckpointStore,
    Message,
    RetentionPolicy,
    StateUpdate,
)
from langchain_core.tools import BaseTool  # type: ignore[import-not-found]

from .engine import (
    CompiledGraph,
    ExecutionResult,
    GraphError,
    NodeExecutionError,
    NothingToResumeError,
)
from .graph import PURCHASE_APPROVAL, confirmation_message, create_broker_graph
from .graph.purchase import pending_purchase_call
from .llm_provider import LLMProvider, LLMProviderError
from .market import (
    MarketData,
    QuoteProvider,
    SupportedAssets,
    TavilySearchClient,
    TickerResolver,
    WebSearchTickerResolver,
    load_supported_assets,
)
from .tools import ToolRegistry, create_default_registry, purchase_coin_tool, purchase_stock_tool

logger = logging.getLogger(__name__)


class AgentError(Exception):
    """Raised when there's an error with the agent."""

    pass


def create_store(config: BrokerConfig) -> CheckpointStore:
    """Create a checkpoint store honoring the configured retention limits."""
    checkpoints = config.checkpoints
    return CheckpointStore(
        RetentionPolicy(
            max_age_seconds=checkpoints.max_age_seconds,
            suspended_max_age_seconds=checkpoints.suspended_max_age_seconds,
            max_threads=checkpoints.max_threads,
        )
    )


class BrokerAgent:
    """Financial broker agent that answers market questions and buys assets.

    Purchases always pause for an explicit confirmation. A thread waiting
    for one stays suspended until ``confirm_purchase`` is called or a new
    message abandons the pending purchase.
    """

    def __init__(
        self,
        config: BrokerConfig,
        store: Optional[CheckpointStore] = None,
        llm_provider: Optional[LLMProvider] = None,
        assets: Optional[SupportedAssets] = None,
        quotes: Optional[QuoteProvider] = None,
        ticker_resolver: Optional[TickerResolver] = None,
        tools: Optional[ToolRegistry] = None,
    ):
        """Initialize the broker agent.

        Args:
            config: Broker configuration
            store: Checkpoint store (created from config if not provided)
            llm_provider: Optional LLM provider (created from config if not provided)
            assets: Supported coin table (loaded from config if not provided)
            quotes: Price source used to default purchase prices
            ticker_resolver: Company name to ticker resolution
            tools: Registry of data tools the model may call
        """
        self.config = config
        self.store = store if store is not None else create_store(config)
        self._llm_provider = llm_provider
        self._assets = assets
        self._quotes = quotes
        self._ticker_resolver = ticker_resolver
        self._tools = tools
        self._graph: Optional[CompiledGraph] = None

    @property
    def llm_provider(self) -> LLMProvider:
        """Get or create the LLM provider."""
        if self._llm_provider is None:
            self._llm_provider = LLMProvider(self.config.llm)
        return self._llm_provider

    @property
    def assets(self) -> SupportedAssets:
        """Get or load the supported coin table."""
        if self._assets is None:
            self._assets = load_supported_assets(self.config.data_sources)
            logger.info("Loaded %d supported coins", len(self._assets))
        return self._assets

    @property
    def quotes(self) -> QuoteProvider:
        """Get or create the quote provider."""
        if self._quotes is None:
            self._quotes = MarketData.from_config(self.config.data_sources)
        return self._quotes

    @property
    def ticker_resolver(self) -> TickerResolver:
        """Get or create the ticker resolver."""
        if self._ticker_resolver is None:
            sources = self.config.data_sources
            self._ticker_resolver = WebSearchTickerResolver(
                TavilySearchClient(sources.tavily_api_key_env_var, timeout=sources.request_timeout),
                self.llm_provider,
            )
        return self._ticker_resolver

    @property
    def tools(self) -> ToolRegistry:
        """Get or create the data tool registry."""
        if self._tools is None:
            self._tools = create_default_registry(self.config.data_sources, self.assets)
        return self._tools

    @property
    def model_tools(self) -> List[BaseTool]:
        """Tools bound to the model: data tools plus the purchase schemas."""
        return [*self.tools.tools(), purchase_stock_tool(), purchase_coin_tool()]

    @property
    def graph(self) -> CompiledGraph:
        """Get or create the conversation graph."""
        if self._graph is None:
            self._graph = create_broker_graph(self, self.store)
        return self._graph

    def create_thread(self) -> str:
        """Allocate a new conversation thread.

        Returns:
            The new thread ID
        """
        thread_id = str(uuid4())
        self.store.put(Checkpoint(thread_id=thread_id))
        return thread_id

    def get_thread(self, thread_id: str) -> Optional[Checkpoint]:
        """Return the last checkpoint of a thread, or None if unknown."""
        return self.graph.get_checkpoint(thread_id)

    async def discard_thread(self, thread_id: str) -> bool:
        """Forget a thread.

        Returns:
            True if the thread existed
        """
        return await self.graph.discard(thread_id)

    async def send_message(self, thread_id: str, content: str) -> ExecutionResult:
        """Process a user message on a thread.

        A purchase still waiting for a confirmation is abandoned: it is
        answered with a rejection and unstaged before the new turn starts.

        Args:
            thread_id: Conversation thread identifier
            content: User's message

        Returns:
            Suspended or Completed result

        Raises:
            AgentError: If there's an error processing the message
        """
        try:
            await self._abandon_pending_purchase(thread_id)
            return await self.graph.invoke(thread_id, [Message.user(content)])
        except Exception as e:
            raise self._agent_error(e) from e

    async def confirm_purchase(self, thread_id: str, approve: bool) -> ExecutionResult:
        """Answer the pending purchase confirmation of a suspended thread.

        Args:
            thread_id: Conversation thread identifier
            approve: Whether the user approves the purchase

        Returns:
            Suspended or Completed result

        Raises:
            NothingToResumeError: If the thread is not waiting for a confirmation
            AgentError: If there's an error processing the confirmation
        """
        checkpoint = self.graph.get_checkpoint(thread_id)
        if checkpoint is None or not checkpoint.is_suspended:
            raise NothingToResumeError(f"Thread '{thread_id}' has no pending purchase")

        try:
            message = confirmation_message(checkpoint.state, approve)
            return await self.graph.resume(thread_id, message)
        except NothingToResumeError:
            raise
        except Exception as e:
            raise self._agent_error(e) from e

    async def _abandon_pending_purchase(self, thread_id: str) -> None:
        def abandon(checkpoint: Optional[Checkpoint]) -> Optional[StateUpdate]:
            if checkpoint is None or not checkpoint.is_suspended:
                return None
            if PURCHASE_APPROVAL not in checkpoint.pending_nodes:
                return None

            messages = []
            if pending_purchase_call(checkpoint.state) is not None:
                messages.append(confirmation_message(checkpoint.state, approve=False))

            logger.info("Thread %s: abandoning pending purchase for a new message", thread_id)
            return StateUpdate(messages=messages, staged_purchase=None)

        await self.graph.update_state(thread_id, abandon, status=CheckpointStatus.COMPLETED)

    @staticmethod
    def _agent_error(error: Exception) -> AgentError:
        cause = error.cause if isinstance(error, NodeExecutionError) else error
        if isinstance(cause, LLMProviderError):
            return AgentError(f"LLM error: {str(cause)}")
        if isinstance(error, GraphError):
            logger.error("Graph run aborted: %s", error)
            return AgentError(f"Graph error: {str(error)}")
        return AgentError(f"Error processing message: {str(error)}")
