"""In-process event channel for deal lifecycle and sync notifications.

Exports:
    EventBus: Synchronous publish/subscribe with a bounded history.
    EventType: Enum of deal and sync event names.
    SystemEvent: The envelope every subscriber receives.
"""

from __future__ import annotations

from src.polytrade.events.bus import EventBus
from src.polytrade.events.schemas import EventType, SystemEvent

__all__ = [
    "EventBus",
    "EventType",
    "SystemEvent",
]
