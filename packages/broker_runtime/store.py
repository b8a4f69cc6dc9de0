"""In-memory checkpoint store for the Broker Agent.

This module provides an in-memory implementation of checkpoint storage keyed
by thread ID. For production use, this can be replaced with Redis or another
persistent store implementing the same ``get``/``put`` contract.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from threading import Lock
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .state import ConversationState

logger = logging.getLogger(__name__)


class CheckpointStatus(str, Enum):
    """How the last run on a thread ended."""

    SUSPENDED = "suspended"
    COMPLETED = "completed"


class Checkpoint(BaseModel):
    """Last persisted state of a conversation thread."""

    thread_id: str = Field(..., description="Conversation thread identifier")
    state: ConversationState = Field(default_factory=ConversationState)
    status: CheckpointStatus = Field(default=CheckpointStatus.COMPLETED)
    pending_nodes: List[str] = Field(
        default_factory=list, description="Nodes to run when a suspended thread resumes"
    )
    reason: Optional[str] = Field(default=None, description="Why the thread is suspended")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_suspended(self) -> bool:
        """Whether the thread is waiting for a resume."""
        return self.status == CheckpointStatus.SUSPENDED


class RetentionPolicy(BaseModel):
    """Limits applied to stored checkpoints.

    All limits are optional; with none configured checkpoints are kept forever.
    """

    max_age_seconds: Optional[int] = Field(default=None, gt=0)
    suspended_max_age_seconds: Optional[int] = Field(default=None, gt=0)
    max_threads: Optional[int] = Field(default=None, gt=0)


class CheckpointStore:
    """In-memory store for thread checkpoints.

    This implementation uses a simple dictionary with thread-safe access and
    applies its retention policy on every write.
    """

    def __init__(self, retention: Optional[RetentionPolicy] = None) -> None:
        """Initialize the checkpoint store.

        Args:
            retention: Optional retention policy (keep everything if omitted)
        """
        self.retention = retention or RetentionPolicy()
        self._checkpoints: Dict[str, Checkpoint] = {}
        self._lock = Lock()

    def get(self, thread_id: str) -> Optional[Checkpoint]:
        """Retrieve a copy of the checkpoint for a thread.

        Args:
            thread_id: Thread ID to look up

        Returns:
            Checkpoint if found, None otherwise
        """
        with self._lock:
            checkpoint = self._checkpoints.get(thread_id)
            return checkpoint.model_copy(deep=True) if checkpoint is not None else None

    def put(self, checkpoint: Checkpoint) -> Checkpoint:
        """Create or overwrite the checkpoint for a thread.

        Args:
            checkpoint: Checkpoint to persist

        Returns:
            The stored Checkpoint
        """
        with self._lock:
            stored = checkpoint.model_copy(deep=True)
            existing = self._checkpoints.get(stored.thread_id)
            if existing is not None:
                stored.created_at = existing.created_at
            stored.updated_at = datetime.now(timezone.utc)
            self._checkpoints[stored.thread_id] = stored
            self._apply_retention()
            return stored.model_copy(deep=True)

    def delete(self, thread_id: str) -> bool:
        """Delete a thread's checkpoint.

        Args:
            thread_id: Thread ID to delete

        Returns:
            True if deleted, False if not found
        """
        with self._lock:
            if thread_id in self._checkpoints:
                del self._checkpoints[thread_id]
                return True
            return False

    def list(
        self,
        status: Optional[CheckpointStatus] = None,
        limit: Optional[int] = None,
    ) -> List[Checkpoint]:
        """List checkpoints with optional filtering, most recent first.

        Args:
            status: Optional status filter
            limit: Optional limit on number of results

        Returns:
            List of Checkpoint objects matching the criteria
        """
        with self._lock:
            checkpoints = list(self._checkpoints.values())

            if status is not None:
                checkpoints = [c for c in checkpoints if c.status == status]

            checkpoints.sort(key=lambda c: c.updated_at, reverse=True)

            if limit is not None:
                checkpoints = checkpoints[:limit]

            return [c.model_copy(deep=True) for c in checkpoints]

    def count(self, status: Optional[CheckpointStatus] = None) -> int:
        """Count checkpoints with optional filtering."""
        with self._lock:
            if status is None:
                return len(self._checkpoints)
            return sum(1 for c in self._checkpoints.values() if c.status == status)

    def clear(self) -> int:
        """Clear all checkpoints from the store.

        Returns:
            Number of checkpoints cleared
        """
        with self._lock:
            count = len(self._checkpoints)
            self._checkpoints.clear()
            return count

    def cleanup_expired(self) -> int:
        """Evict checkpoints that violate the retention policy.

        Returns:
            Number of checkpoints evicted
        """
        with self._lock:
            return self._apply_retention()

    def _apply_retention(self) -> int:
        """Apply the retention policy. Caller must hold the lock."""
        now = datetime.now(timezone.utc)
        to_delete = []

        for thread_id, checkpoint in self._checkpoints.items():
            if checkpoint.status == CheckpointStatus.SUSPENDED:
                max_age = self.retention.suspended_max_age_seconds
            else:
                max_age = self.retention.max_age_seconds
            if max_age is None:
                continue

            age_seconds = (now - checkpoint.updated_at).total_seconds()
            if age_seconds > max_age:
                to_delete.append(thread_id)

        for thread_id in to_delete:
            del self._checkpoints[thread_id]

        max_threads = self.retention.max_threads
        if max_threads is not None and len(self._checkpoints) > max_threads:
            oldest_first = sorted(self._checkpoints.values(), key=lambda c: c.updated_at)
            overflow = oldest_first[: len(self._checkpoints) - max_threads]
            for checkpoint in overflow:
                del self._checkpoints[checkpoint.thread_id]
                to_delete.append(checkpoint.thread_id)

        if to_delete:
            logger.info("Evicted %d checkpoint(s) by retention policy", len(to_delete))
        return len(to_delete)
