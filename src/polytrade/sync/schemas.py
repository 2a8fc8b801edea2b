"""Pydantic schemas for deal ↔ spreadsheet synchronization.

Defines:
- Enums: ConflictResolution, SyncErrorType, SyncTaskAction, SyncTaskStatus
- Remote projection: SheetDeal, SheetBatchSummary
- Results: SyncError, SyncResult, SyncConflict, ConflictTimestamps, SyncComparison
- Configuration: SyncConfig, SyncConfigUpdate
- Outbox: SyncTask
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


# ── Enums ───────────────────────────────────────────────────────────────────


class ConflictResolution(str, Enum):
    """Policy applied when a pulled row disagrees with the local deal."""

    DATABASE_WINS = "database_wins"
    SHEETS_WINS = "sheets_wins"
    MANUAL = "manual"


class SyncErrorType(str, Enum):
    """Where a sync failure originated."""

    NOT_FOUND = "not_found"
    DATABASE = "database"
    SHEETS = "sheets"
    CONFLICT = "conflict"


class SyncTaskAction(str, Enum):
    UPSERT = "upsert"
    DELETE = "delete"


class SyncTaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


# ── Remote Projection ───────────────────────────────────────────────────────


class SheetDeal(BaseModel):
    """A deal as read back from one spreadsheet row.

    Values are loosely typed on purpose: whatever a person typed into the
    sheet is carried through, and validation happens only when the row is
    turned into a local deal.

    Attributes:
        id: Deal identifier from column A, or ``sheet_row_<n>`` when blank.
        row_number: 1-based sheet row, valid only until the sheet changes.
    """

    id: str
    date: str = ""
    sale_party: str = ""
    quantity_sold: float = 0.0
    sale_rate: float = 0.0
    delivery_terms: str = ""
    product_code: str = ""
    grade: str = ""
    company: str = ""
    specific_grade: str = ""
    sale_source: str = "new"
    purchase_party: str = ""
    purchase_quantity: float = 0.0
    purchase_rate: float = 0.0
    sale_comments: str | None = None
    purchase_comments: str | None = None
    final_comments: str | None = None
    warehouse: str | None = None
    row_number: int | None = None


class SheetBatchSummary(BaseModel):
    """Row counts written by one bulk push."""

    added: int = 0
    updated: int = 0
    removed: int = 0


# ── Results ─────────────────────────────────────────────────────────────────


class SyncError(BaseModel):
    """One failure recorded in a SyncResult."""

    id: str
    type: SyncErrorType
    message: str
    data: Any = None


class SyncResult(BaseModel):
    """Outcome of a sync operation. Operations report failure here, never by raising."""

    success: bool = False
    synced: int = 0
    errors: list[SyncError] = Field(default_factory=list)
    conflicts_resolved: int = 0
    message: str = ""


class ConflictTimestamps(BaseModel):
    """Last-modified times of both sides of a conflict.

    The spreadsheet keeps no per-row modification time, so ``sheets`` is
    always None.
    """

    database: datetime | None = None
    sheets: datetime | None = None


class SyncConflict(BaseModel):
    """A single field that differs between a local deal and its sheet row."""

    id: str
    field: str
    database_value: Any = None
    sheets_value: Any = None
    last_modified: ConflictTimestamps = Field(default_factory=ConflictTimestamps)


class SyncComparison(BaseModel):
    """Read-only diff of the local ledger against the sheet."""

    database_count: int = 0
    sheets_count: int = 0
    missing_in_sheets: list[str] = Field(default_factory=list)
    missing_in_database: list[str] = Field(default_factory=list)
    conflicts: list[SyncConflict] = Field(default_factory=list)


# ── Configuration ───────────────────────────────────────────────────────────


class SyncConfig(BaseModel):
    """Process-wide sync behaviour.

    Attributes:
        auto_sync_enabled: Push each locally mutated deal to the sheet.
        sync_interval: Minutes between reconciliations. Advisory; nothing
            in this service schedules on it.
        conflict_resolution: Policy for pull conflicts.
        batch_size: Rows per append request during a bulk push.
        retry_attempts: Attempts per auto-sync task before it is marked failed.
    """

    auto_sync_enabled: bool = True
    sync_interval: int = 5
    conflict_resolution: ConflictResolution = ConflictResolution.DATABASE_WINS
    batch_size: int = 100
    retry_attempts: int = 3


class SyncConfigUpdate(BaseModel):
    """Partial SyncConfig change (only non-None fields are applied)."""

    auto_sync_enabled: bool | None = None
    sync_interval: int | None = Field(default=None, ge=1)
    conflict_resolution: ConflictResolution | None = None
    batch_size: int | None = Field(default=None, ge=1)
    retry_attempts: int | None = Field(default=None, ge=1)


# ── Outbox ──────────────────────────────────────────────────────────────────


class SyncTask(BaseModel):
    """One queued auto-sync action and its delivery state."""

    task_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    action: SyncTaskAction
    deal_id: str
    status: SyncTaskStatus = SyncTaskStatus.PENDING
    attempts: int = 0
    last_error: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: datetime | None = None
