"""REST API endpoints for deal ↔ Google Sheets synchronization.

Push and pull endpoints return the SyncResult as-is: a failed sync is a
200 response with ``success: false`` and populated ``errors``. Only a
missing deal on single-deal push maps to 404.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status

from src.polytrade.api.deps import get_event_bus, get_sync_engine
from src.polytrade.events.bus import EventBus
from src.polytrade.events.schemas import SystemEvent
from src.polytrade.sync.engine import DealSyncEngine
from src.polytrade.sync.schemas import (
    SyncComparison,
    SyncConfig,
    SyncConfigUpdate,
    SyncErrorType,
    SyncResult,
    SyncTask,
    SyncTaskStatus,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/sync", tags=["sync"])


# ── Push / Pull ──────────────────────────────────────────────────────────────


@router.post("/deals/to-sheets", response_model=SyncResult)
async def sync_all_to_sheets(
    engine: DealSyncEngine = Depends(get_sync_engine),
) -> SyncResult:
    """Mirror every local deal into the sheet."""
    return await engine.sync_all_deals_to_sheets()


@router.post("/deals/from-sheets", response_model=SyncResult)
async def sync_from_sheets(
    engine: DealSyncEngine = Depends(get_sync_engine),
) -> SyncResult:
    """Pull sheet rows into the ledger using the configured conflict policy."""
    return await engine.sync_sheets_to_database()


@router.post("/deals/{deal_id}/to-sheets", response_model=SyncResult)
async def sync_deal_to_sheets(
    deal_id: str,
    engine: DealSyncEngine = Depends(get_sync_engine),
) -> SyncResult:
    result = await engine.sync_deal_to_sheets(deal_id)
    if any(error.type == SyncErrorType.NOT_FOUND for error in result.errors):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Deal {deal_id} not found",
        )
    return result


# ── Inspection ───────────────────────────────────────────────────────────────


@router.get("/deals/compare", response_model=SyncComparison)
async def compare_deals(
    engine: DealSyncEngine = Depends(get_sync_engine),
) -> SyncComparison:
    """Diff the ledger against the sheet without changing either."""
    try:
        return await engine.compare_tables()
    except Exception as exc:
        logger.error("sync_api.compare_failed", error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Comparison failed: {exc}",
        )


@router.get("/status")
async def sync_status(
    engine: DealSyncEngine = Depends(get_sync_engine),
) -> dict[str, Any]:
    return await engine.status()


@router.get("/outbox", response_model=list[SyncTask])
async def list_outbox(
    task_status: SyncTaskStatus | None = Query(None, alias="status"),
    engine: DealSyncEngine = Depends(get_sync_engine),
) -> list[SyncTask]:
    """Recent auto-sync tasks, newest first."""
    return engine.outbox.list_tasks(task_status)


@router.get("/events", response_model=list[SystemEvent])
async def list_events(
    event_type: str | None = Query(None),
    bus: EventBus = Depends(get_event_bus),
) -> list[SystemEvent]:
    """Recent bus events, oldest first."""
    return bus.get_event_history(event_type)


# ── Configuration ────────────────────────────────────────────────────────────


@router.get("/config", response_model=SyncConfig)
async def get_config(
    engine: DealSyncEngine = Depends(get_sync_engine),
) -> SyncConfig:
    return engine.get_config()


@router.put("/config", response_model=SyncConfig)
async def update_config(
    body: SyncConfigUpdate,
    engine: DealSyncEngine = Depends(get_sync_engine),
) -> SyncConfig:
    """Apply a partial config change. Omitted fields keep their value."""
    return engine.update_config(**body.model_dump(exclude_none=True))
