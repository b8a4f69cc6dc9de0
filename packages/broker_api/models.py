"""Pydantic models for API request/response schemas."""

from datetime import datetime
from typing import Any, Optional

from broker_core import ExecutionResult, Suspended
from broker_runtime import Checkpoint, ConversationState, Message
from pydantic import BaseModel, Field


class MessageRequest(BaseModel):
    """Request model for sending a message."""

    content: str = Field(..., min_length=1, description="The message content from the user")


class ConfirmationRequest(BaseModel):
    """Request model for answering a purchase confirmation."""

    approve: bool = Field(..., description="Whether the staged purchase should be executed")


class MessageModel(BaseModel):
    """A message as exposed by the API."""

    id: str = Field(..., description="Message ID")
    role: str = Field(..., description="Role of the sender")
    content: str = Field(default="", description="Message content")
    tool_calls: Optional[list[dict[str, Any]]] = Field(
        default=None, description="Tool invocations requested by the assistant"
    )
    tool_call_id: Optional[str] = Field(default=None, description="Answered tool call ID")
    name: Optional[str] = Field(default=None, description="Tool name")
    timestamp: datetime = Field(..., description="When the message was sent")

    @classmethod
    def from_message(cls, message: Message) -> "MessageModel":
        """Build the API view of a log message."""
        return cls(
            id=message.id,
            role=message.role.value,
            content=message.content,
            tool_calls=(
                [call.model_dump() for call in message.tool_calls]
                if message.tool_calls is not None
                else None
            ),
            tool_call_id=message.tool_call_id,
            name=message.name,
            timestamp=message.timestamp,
        )


def _staged(state: ConversationState) -> Optional[dict[str, Any]]:
    if state.staged_purchase is None:
        return None
    return state.staged_purchase.model_dump(mode="json")


class ThreadResponse(BaseModel):
    """Response model for a thread after a run or on lookup."""

    thread_id: str = Field(..., description="The conversation thread ID")
    status: str = Field(..., description="'suspended' or 'completed'")
    reason: Optional[str] = Field(default=None, description="Why the thread is suspended")
    messages: list[MessageModel] = Field(
        default_factory=list, description="Conversation messages"
    )
    staged_purchase: Optional[dict[str, Any]] = Field(
        default=None, description="Purchase awaiting confirmation"
    )
    updated_at: Optional[datetime] = Field(default=None, description="Last update time")

    @classmethod
    def from_result(cls, result: ExecutionResult) -> "ThreadResponse":
        """Build the response for an invoke or resume result."""
        return cls(
            thread_id=result.thread_id,
            status=result.status,
            reason=result.reason if isinstance(result, Suspended) else None,
            messages=[MessageModel.from_message(m) for m in result.state.messages],
            staged_purchase=_staged(result.state),
        )

    @classmethod
    def from_checkpoint(cls, checkpoint: Checkpoint) -> "ThreadResponse":
        """Build the response for a stored checkpoint."""
        return cls(
            thread_id=checkpoint.thread_id,
            status=checkpoint.status.value,
            reason=checkpoint.reason,
            messages=[MessageModel.from_message(m) for m in checkpoint.state.messages],
            staged_purchase=_staged(checkpoint.state),
            updated_at=checkpoint.updated_at,
        )


class CreateThreadResponse(BaseModel):
    """Response model for allocating a thread."""

    thread_id: str = Field(..., description="The new conversation thread ID")


class ErrorResponse(BaseModel):
    """Response model for errors."""

    error: str = Field(..., description="Error message")
    detail: Optional[str] = Field(None, description="Additional error details")
