"""State models for the Broker Agent runtime.

This module defines the conversation state threaded through the graph,
the message log it carries, the staged purchase variants, and the partial
update type nodes return.

Merge rules:
    - ``messages`` is append-only; updates are concatenated in arrival order.
    - ``staged_purchase`` is replace-on-write; writing ``None`` clears it and
      an update that does not mention it leaves it untouched.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger(__name__)

LEGACY_STOCK_FIELD = "requested_stock_purchase"
LEGACY_COIN_FIELD = "requested_coin_purchase"


class MessageRole(str, Enum):
    """Role of the message sender."""

    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"
    SYSTEM = "system"


class ToolCall(BaseModel):
    """A tool invocation requested by the assistant."""

    id: str = Field(
        default_factory=lambda: f"call_{uuid4().hex}", description="Correlation ID"
    )
    name: str = Field(..., description="Name of the requested tool")
    args: Dict[str, Any] = Field(default_factory=dict, description="Tool arguments")


class Message(BaseModel):
    """A single message in the conversation log."""

    id: str = Field(default_factory=lambda: str(uuid4()), description="Unique message ID")
    role: MessageRole = Field(..., description="Role of the message sender")
    content: str = Field(default="", description="Content of the message")
    tool_calls: Optional[List[ToolCall]] = Field(
        default=None, description="Tool invocations requested by an assistant message"
    )
    tool_call_id: Optional[str] = Field(
        default=None, description="ID of the tool call a tool message answers"
    )
    name: Optional[str] = Field(default=None, description="Tool name for tool messages")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), description="When the message was sent"
    )
    metadata: Dict[str, Any] = Field(
        default_factory=dict, description="Additional message metadata"
    )

    @property
    def claims_tool_calls(self) -> bool:
        """Whether this is an assistant message that carries a tool call list.

        An empty list still counts as a claim.
        """
        return self.role == MessageRole.ASSISTANT and self.tool_calls is not None

    @classmethod
    def user(cls, content: str) -> "Message":
        """Create a user message."""
        return cls(role=MessageRole.USER, content=content)

    @classmethod
    def assistant(
        cls, content: str = "", tool_calls: Optional[List[ToolCall]] = None
    ) -> "Message":
        """Create an assistant message, optionally requesting tool calls."""
        return cls(role=MessageRole.ASSISTANT, content=content, tool_calls=tool_calls)

    @classmethod
    def tool(cls, content: str, tool_call_id: str, name: Optional[str] = None) -> "Message":
        """Create a tool-result message correlated with a tool call."""
        return cls(role=MessageRole.TOOL, content=content, tool_call_id=tool_call_id, name=name)


class PriceSource(str, Enum):
    """Where the staged maximum price came from."""

    REQUESTED = "requested"
    QUOTED = "quoted"
    UNAVAILABLE = "unavailable"


class StockPurchase(BaseModel):
    """A staged equity purchase."""

    kind: Literal["stock"] = "stock"
    ticker: str = Field(..., description="Ticker symbol of the company")
    quantity: int = Field(default=1, gt=0, description="Number of shares")
    max_price: float = Field(default=0.0, ge=0.0, description="Maximum price per share")
    price_source: PriceSource = Field(default=PriceSource.REQUESTED)

    @field_validator("ticker")
    @classmethod
    def validate_ticker(cls, v: str) -> str:
        """Normalize the ticker to upper case."""
        if not v or not v.strip():
            raise ValueError("Ticker cannot be empty")
        return v.strip().upper()

    @property
    def asset(self) -> str:
        """Identifier reported back to the user."""
        return self.ticker


class CoinPurchase(BaseModel):
    """A staged crypto coin purchase."""

    kind: Literal["coin"] = "coin"
    symbol: str = Field(..., description="Coin symbol as supplied by the user")
    display_name: Optional[str] = Field(default=None, description="Human readable coin name")
    coin_id: Optional[str] = Field(default=None, description="Canonical registry identifier")
    quantity: int = Field(default=1, gt=0, description="Number of coins")
    max_price: float = Field(default=0.0, ge=0.0, description="Maximum price per coin")
    vs_currency: str = Field(default="usd", description="Reference currency of max_price")
    price_source: PriceSource = Field(default=PriceSource.REQUESTED)

    @field_validator("symbol")
    @classmethod
    def validate_symbol(cls, v: str) -> str:
        """Validate symbol is not empty."""
        if not v or not v.strip():
            raise ValueError("Symbol cannot be empty")
        return v.strip()

    @property
    def asset(self) -> str:
        """Identifier reported back to the user."""
        return self.symbol


StagedPurchase = Annotated[Union[StockPurchase, CoinPurchase], Field(discriminator="kind")]


class StateUpdate(BaseModel):
    """Partial state update produced by a node."""

    messages: List[Message] = Field(default_factory=list)
    staged_purchase: Optional[StagedPurchase] = None

    @property
    def writes_staged_purchase(self) -> bool:
        """Whether this update explicitly sets (or clears) the staged purchase."""
        return "staged_purchase" in self.model_fields_set

    def combine(self, other: "StateUpdate") -> "StateUpdate":
        """Fold ``other`` after this update, following the state merge rules."""
        combined = StateUpdate(messages=[*self.messages, *other.messages])
        if other.writes_staged_purchase:
            combined.staged_purchase = other.staged_purchase
        elif self.writes_staged_purchase:
            combined.staged_purchase = self.staged_purchase
        return combined


class ConversationState(BaseModel):
    """Complete state of a conversation thread."""

    messages: List[Message] = Field(
        default_factory=list, description="Append-only conversation log"
    )
    staged_purchase: Optional[StagedPurchase] = Field(
        default=None, description="Purchase awaiting confirmation, at most one"
    )

    @model_validator(mode="before")
    @classmethod
    def reject_dual_staging(cls, data: Any) -> Any:
        """Translate legacy purchase fields, refusing records that stage both."""
        if not isinstance(data, dict):
            return data

        stock = data.get(LEGACY_STOCK_FIELD)
        coin = data.get(LEGACY_COIN_FIELD)
        if stock and coin:
            logger.error("Refusing state record with both a stock and a coin purchase staged")
            raise ValueError("At most one purchase may be staged at a time")

        if LEGACY_STOCK_FIELD in data or LEGACY_COIN_FIELD in data:
            data = {k: v for k, v in data.items() if k not in (LEGACY_STOCK_FIELD, LEGACY_COIN_FIELD)}
            legacy = stock or coin
            if legacy:
                if data.get("staged_purchase"):
                    logger.error("Refusing state record with a legacy and a current purchase staged")
                    raise ValueError("At most one purchase may be staged at a time")
                kind = "stock" if stock else "coin"
                data["staged_purchase"] = {"kind": kind, **dict(legacy)}
        return data

    @property
    def last_message(self) -> Optional[Message]:
        """The newest message, or None for an empty log."""
        return self.messages[-1] if self.messages else None

    def merge(self, update: Optional[StateUpdate]) -> "ConversationState":
        """Return a new state with ``update`` applied.

        Args:
            update: Partial update to apply (None is a no-op)

        Returns:
            The merged state; ``self`` is left untouched
        """
        if update is None:
            return self.model_copy(deep=True)

        merged = self.model_copy(deep=True)
        merged.messages = [*merged.messages, *(m.model_copy(deep=True) for m in update.messages)]
        if update.writes_staged_purchase:
            merged.staged_purchase = (
                update.staged_purchase.model_copy(deep=True)
                if update.staged_purchase is not None
                else None
            )
        return merged

    def find_tool_call(self, tool_call_id: str) -> Optional[ToolCall]:
        """Find a requested tool call by its correlation ID."""
        for message in reversed(self.messages):
            for call in message.tool_calls or []:
                if call.id == tool_call_id:
                    return call
        return None
