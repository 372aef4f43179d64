"""
Progress events for review sessions.

The orchestrator reports phase changes and per-part progress through a
ProgressEmitter owned by the session; presentation layers subscribe async
handlers instead of being called from inside the pipeline's control flow.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


class ReviewPhase(str, Enum):
    """Phases of a review session."""

    IDLE = "idle"
    RESOLVING = "resolving"
    SINGLE_SHOT = "single_shot"
    CHUNKING = "chunking"
    PER_CHUNK_REVIEW = "per_chunk_review"
    MERGING = "merging"
    DONE = "done"
    FAILED = "failed"


@dataclass
class ProgressEvent:
    """A progress update emitted by a review session."""

    phase: ReviewPhase
    message: str
    review_id: str | None = None
    part_number: int | None = None
    total_parts: int | None = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "phase": self.phase.value,
            "message": self.message,
            "review_id": self.review_id,
            "part_number": self.part_number,
            "total_parts": self.total_parts,
            "timestamp": self.timestamp.isoformat(),
        }


# Type alias for progress handlers
ProgressHandler = Callable[[ProgressEvent], Awaitable[None]]


class ProgressEmitter:
    """Broadcasts progress events to subscribed handlers.

    One emitter per session; handler failures are logged and never
    interrupt the review.
    """

    def __init__(self, handlers: list[ProgressHandler] | None = None, max_history: int = 200):
        self._handlers: list[ProgressHandler] = list(handlers or [])
        self._history: list[ProgressEvent] = []
        self._max_history = max_history

    def subscribe(self, handler: ProgressHandler) -> Callable[[], None]:
        """Subscribe to events.

        Returns:
            Unsubscribe function
        """
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    async def emit(self, event: ProgressEvent) -> None:
        """Emit an event to all subscribers."""
        self._history.append(event)
        if len(self._history) > self._max_history:
            self._history = self._history[-self._max_history :]

        if self._handlers:
            await asyncio.gather(*[self._safe_call(h, event) for h in list(self._handlers)])

    async def _safe_call(self, handler: ProgressHandler, event: ProgressEvent) -> None:
        try:
            await handler(event)
        except Exception as e:
            logger.error("Progress handler failed", error=str(e), phase=event.phase.value)

    @property
    def history(self) -> list[ProgressEvent]:
        """Events emitted so far, oldest first."""
        return list(self._history)
