"""Broker Agent - API Package."""

from .app import AppState, create_app, get_app_state
from .models import (
    ConfirmationRequest,
    CreateThreadResponse,
    ErrorResponse,
    MessageModel,
    MessageRequest,
    ThreadResponse,
)
from .routes import router

__version__ = "0.1.0"

__all__ = [
    "AppState",
    "ConfirmationRequest",
    "CreateThreadResponse",
    "ErrorResponse",
    "MessageModel",
    "MessageRequest",
    "ThreadResponse",
    "create_app",
    "get_app_state",
    "router",
]
