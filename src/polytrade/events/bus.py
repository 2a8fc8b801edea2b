"""Synchronous in-process publish/subscribe bus.

Subscribers are invoked in registration order on the emitter's call stack.
A subscriber that raises is logged and skipped; the exception never reaches
the emitter or the remaining subscribers. The last HISTORY_SIZE events are
kept for inspection (oldest evicted first).
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable
from typing import Any

import structlog

from src.polytrade.events.schemas import EventType, SystemEvent

logger = structlog.get_logger(__name__)

EventCallback = Callable[[SystemEvent], Any]


def _event_key(event_type: EventType | str) -> str:
    """Normalize an EventType or plain string to the subscription key."""
    return event_type.value if isinstance(event_type, EventType) else str(event_type)


class EventBus:
    """In-process event channel with bounded history.

    Thread safety note: designed for a single asyncio event loop. Callbacks
    must not block; long-running work should be handed off (the sync engine
    enqueues into its outbox from its callbacks).

    Args:
        history_size: Maximum number of events retained in history.
    """

    HISTORY_SIZE: int = 100

    def __init__(self, history_size: int = HISTORY_SIZE) -> None:
        self._subscribers: dict[str, list[EventCallback]] = {}
        self._history: deque[SystemEvent] = deque(maxlen=history_size)

    def subscribe(
        self, event_type: EventType | str, callback: EventCallback
    ) -> Callable[[], None]:
        """Register a callback for an event type.

        Args:
            event_type: Event name to listen for.
            callback: Called with the SystemEvent on every matching emit.

        Returns:
            A function that removes this subscription when called. Calling it
            more than once is harmless.
        """
        key = _event_key(event_type)
        self._subscribers.setdefault(key, []).append(callback)
        logger.debug("event_bus.subscribed", event_type=key)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(key)
            if callbacks and callback in callbacks:
                callbacks.remove(callback)
                logger.debug("event_bus.unsubscribed", event_type=key)

        return unsubscribe

    def emit(
        self,
        event_type: EventType | str,
        payload: Any = None,
        source: str = "unknown",
    ) -> SystemEvent:
        """Record an event and deliver it to current subscribers.

        Args:
            event_type: Event name.
            payload: Event data.
            source: Emitting component, for attribution in history and logs.

        Returns:
            The SystemEvent that was delivered.
        """
        key = _event_key(event_type)
        event = SystemEvent(type=key, payload=payload, source=source)
        self._history.append(event)

        logger.debug("event_bus.emitting", event_type=key, source=source)

        # Copy so a callback that unsubscribes does not skip its neighbour
        for callback in list(self._subscribers.get(key, [])):
            try:
                callback(event)
            except Exception:
                logger.error(
                    "event_bus.callback_failed",
                    event_type=key,
                    source=source,
                    exc_info=True,
                )

        return event

    def get_event_history(self, event_type: EventType | str | None = None) -> list[SystemEvent]:
        """Return retained events, oldest first, optionally filtered by type."""
        if event_type is None:
            return list(self._history)
        key = _event_key(event_type)
        return [event for event in self._history if event.type == key]

    def clear_history(self) -> None:
        """Drop all retained events."""
        self._history.clear()
        logger.debug("event_bus.history_cleared")

    def get_subscriptions(self) -> list[str]:
        """Return event types that have ever had a subscriber."""
        return list(self._subscribers.keys())
