"""Consensus change notifications.

Emits a ``vote_added`` event whenever a vote is recorded and a
``status_changed`` event when a submission reaches its terminal
decision. Delivery is at-least-once (late WebSocket clients are
replayed the history, remote consumers may retry), so every event
carries a deterministic ``event_key`` and consumers can wrap
themselves in IdempotentListener to act on each key only once.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Callable
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class EventType(StrEnum):
    """Types of consensus events."""

    VOTE_ADDED = "vote_added"
    STATUS_CHANGED = "status_changed"


class ConsensusEvent(BaseModel):
    """A single change notification for one submission."""

    type: EventType = Field(description="Event type")
    submission_id: str = Field(description="Submission the event concerns")
    event_key: str = Field(
        description="Deterministic identity; repeated deliveries share it",
    )
    timestamp: float = Field(
        default_factory=time.time,
        description="Unix timestamp when the event was emitted",
    )
    data: dict[str, Any] = Field(
        default_factory=dict,
        description="Event payload, varies by event type",
    )


# Type alias for event listener callbacks
EventListener = Callable[[ConsensusEvent], Any]


def make_event_key(event_type: EventType, submission_id: str, discriminator: str) -> str:
    """Build the deterministic key for an event.

    The discriminator is the verifier id for ``vote_added`` and the
    terminal status for ``status_changed``; both happen at most once
    per submission, so the key identifies the change itself.
    """
    return f"{event_type.value}:{submission_id}:{discriminator}"


class ConsensusEventEmitter:
    """Broadcasts consensus events to registered listeners.

    Listeners can be sync or async callables, optionally scoped to one
    submission. The emitter is passed into the engine as an optional
    dependency; without one, no events are produced.

    Only the most recent ``max_history`` events are kept for replay.
    """

    def __init__(self, max_history: int = 1000) -> None:
        self._listeners: list[tuple[EventListener, str | None]] = []
        self._history: deque[ConsensusEvent] = deque(maxlen=max_history)

    @property
    def history(self) -> list[ConsensusEvent]:
        """Recently emitted events, oldest first (for late-connecting clients)."""
        return list(self._history)

    def add_listener(
        self, listener: EventListener, submission_id: str | None = None,
    ) -> None:
        """Register a listener, for every submission or just one."""
        self._listeners.append((listener, submission_id))

    def remove_listener(self, listener: EventListener) -> None:
        """Remove a previously registered listener."""
        self._listeners = [
            (ln, sid) for ln, sid in self._listeners if ln is not listener
        ]

    async def emit(
        self,
        event_type: EventType,
        submission_id: str,
        discriminator: str,
        **data: Any,
    ) -> ConsensusEvent:
        """Emit an event to all matching listeners.

        Sync listeners are called directly; async listeners are awaited.
        Listener exceptions are logged but never propagate.
        """
        event = ConsensusEvent(
            type=event_type,
            submission_id=submission_id,
            event_key=make_event_key(event_type, submission_id, discriminator),
            data=data,
        )
        self._history.append(event)
        await self.deliver(event)
        return event

    async def deliver(self, event: ConsensusEvent) -> None:
        """Dispatch an already-built event, e.g. when redelivering."""
        for listener, scope in list(self._listeners):
            if scope is not None and scope != event.submission_id:
                continue
            try:
                result = listener(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("Event listener error for %s", event.event_key)


class IdempotentListener:
    """Wraps a listener so each event key is handled at most once.

    A key is claimed before the wrapped listener runs and released
    again if the listener raises, so a failed delivery can be retried.
    Only the most recent ``max_keys`` keys are remembered; size it at
    least as large as the emitter history that may be replayed.
    """

    def __init__(self, listener: EventListener, max_keys: int = 10_000) -> None:
        self._listener = listener
        self._max_keys = max_keys
        # Insertion-ordered, oldest key first
        self._seen: dict[str, None] = {}

    @property
    def seen(self) -> frozenset[str]:
        return frozenset(self._seen)

    def __call__(self, event: ConsensusEvent) -> Any:
        key = event.event_key
        if key in self._seen:
            logger.debug("Dropping duplicate event %s", key)
            return None
        self._seen[key] = None
        while len(self._seen) > self._max_keys:
            del self._seen[next(iter(self._seen))]
        try:
            result = self._listener(event)
        except Exception:
            self._seen.pop(key, None)
            raise
        if asyncio.iscoroutine(result):
            return self._await_or_release(key, result)
        return result

    async def _await_or_release(self, key: str, pending: Any) -> Any:
        try:
            return await pending
        except Exception:
            self._seen.pop(key, None)
            raise
