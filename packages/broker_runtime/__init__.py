"""Broker Agent - Runtime Package."""

from .state import (
    CoinPurchase,
    ConversationState,
    Message,
    MessageRole,
    PriceSource,
    StagedPurchase,
    StateUpdate,
    StockPurchase,
    ToolCall,
)
from .store import (
    Checkpoint,
    CheckpointStatus,
    CheckpointStore,
    RetentionPolicy,
)

__version__ = "0.1.0"

__all__ = [
    "Checkpoint",
    "CheckpointStatus",
    "CheckpointStore",
    "CoinPurchase",
    "ConversationState",
    "Message",
    "MessageRole",
    "PriceSource",
    "RetentionPolicy",
    "StagedPurchase",
    "StateUpdate",
    "StockPurchase",
    "ToolCall",
]
