"""Event schemas for the in-process event channel."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Event names carried on the bus.

    Deal events announce local ledger mutations; sync events describe the
    lifecycle of a reconciliation run.
    """

    DEAL_CREATED = "deal.created"
    DEAL_UPDATED = "deal.updated"
    DEAL_DELETED = "deal.deleted"
    SYNC_STARTED = "sync.started"
    SYNC_COMPLETED = "sync.completed"
    SYNC_FAILED = "sync.failed"
    CONFLICT_DETECTED = "sync.conflict.detected"
    CONFLICT_RESOLVED = "sync.conflict.resolved"


class SystemEvent(BaseModel):
    """Envelope delivered to subscribers and kept in the bus history.

    Attributes:
        type: Event name (an EventType value or any custom string).
        payload: Arbitrary event data, usually a JSON-ready dict.
        timestamp: UTC emission time.
        source: Component that emitted the event.
    """

    type: str
    payload: Any = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    source: str = "unknown"
