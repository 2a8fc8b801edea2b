"""FastAPI dependencies resolving services from app.state.

Services are wired once in the application lifespan. A missing service
means that part of the application failed to initialize (or, for sync,
that no spreadsheet is configured), which endpoints report as 503.
"""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from src.polytrade.deals.service import DealService
from src.polytrade.events.bus import EventBus
from src.polytrade.sync.engine import DealSyncEngine


def get_deal_service(request: Request) -> DealService:
    """Retrieve DealService from app.state, 503 if not available."""
    service = getattr(request.app.state, "deal_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Deal ledger not initialized",
        )
    return service


def get_sync_engine(request: Request) -> DealSyncEngine:
    """Retrieve DealSyncEngine from app.state, 503 if not available."""
    engine = getattr(request.app.state, "sync_engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Google Sheets sync not configured",
        )
    return engine


def get_event_bus(request: Request) -> EventBus:
    """Retrieve EventBus from app.state, 503 if not available."""
    bus = getattr(request.app.state, "event_bus", None)
    if bus is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Event bus not initialized",
        )
    return bus
