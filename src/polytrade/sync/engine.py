"""Deal ↔ spreadsheet sync engine.

Orchestrates data flow between the local deal store (system of record) and
the Google Sheets replica.

Key behaviours:
- Single-deal push: re-read the sheet, locate the row by deal ID, update it
  in place or append.
- Bulk push: upsert-by-ID diff of every local deal (SheetBatchSummary).
- Bulk pull: create missing deals locally and apply the configured conflict
  policy (database_wins, sheets_wins, manual) to rows that differ. A failing
  row is recorded and the pull continues.
- Auto-sync: deal.created/updated/deleted events enqueue SyncTask records on
  the SyncOutbox; a single worker delivers them with retries.

Push and pull operations report failure in SyncResult and emit sync.failed;
they never raise.
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog

from src.polytrade.core.monitoring import record_sync_operation, sync_conflicts_total
from src.polytrade.deals.schemas import DealRead, DealUpdate
from src.polytrade.events.bus import EventBus
from src.polytrade.events.schemas import EventType, SystemEvent
from src.polytrade.sync.adapter import LocalDealStore, RemoteDealSheet
from src.polytrade.sync.config_store import SyncConfigStore
from src.polytrade.sync.outbox import SyncOutbox
from src.polytrade.sync.row_mapping import (
    COMPARED_FIELDS,
    SHEET_CARRIED_FIELDS,
    is_synthetic_id,
    sheet_deal_to_create,
    values_differ,
)
from src.polytrade.sync.schemas import (
    ConflictResolution,
    ConflictTimestamps,
    SheetDeal,
    SyncComparison,
    SyncConfig,
    SyncConflict,
    SyncError,
    SyncErrorType,
    SyncResult,
    SyncTask,
    SyncTaskAction,
    SyncTaskStatus,
)

logger = structlog.get_logger(__name__)

EVENT_SOURCE = "DealSyncEngine"

# sync.* payload "type" values
SINGLE = "single"
ALL_TO_SHEETS = "all_to_sheets"
SHEETS_TO_DB = "sheets_to_db"


def _policy_value(policy: Any) -> str:
    """Conflict policy as a plain string (the config store does not validate)."""
    return policy.value if isinstance(policy, ConflictResolution) else str(policy)


def _payload_id(event: SystemEvent) -> str | None:
    payload = event.payload
    if isinstance(payload, dict):
        deal_id = payload.get("id")
        return str(deal_id) if deal_id else None
    return None


class DealSyncEngine:
    """Reconciles the local deal ledger with its spreadsheet replica.

    Subscribes to deal lifecycle events at construction. Call ``close()`` to
    drop those subscriptions.

    Args:
        store: Local deal store (system of record).
        sheet: Spreadsheet gateway.
        event_bus: Bus delivering deal.* events and receiving sync.* events.
        config_store: Holder of the runtime SyncConfig.
        backoff_multiplier: Base seconds for outbox retry backoff.
        backoff_max: Upper bound for a single outbox retry wait.
    """

    def __init__(
        self,
        store: LocalDealStore,
        sheet: RemoteDealSheet,
        event_bus: EventBus,
        config_store: SyncConfigStore,
        backoff_multiplier: float = 1.0,
        backoff_max: float = 30.0,
    ) -> None:
        self._store = store
        self._sheet = sheet
        self._bus = event_bus
        self._config_store = config_store
        self._write_lock = asyncio.Lock()
        self.outbox = SyncOutbox(
            self._run_task,
            config_store,
            backoff_multiplier=backoff_multiplier,
            backoff_max=backoff_max,
        )
        self._unsubscribers = [
            event_bus.subscribe(EventType.DEAL_CREATED, self._on_deal_saved),
            event_bus.subscribe(EventType.DEAL_UPDATED, self._on_deal_saved),
            event_bus.subscribe(EventType.DEAL_DELETED, self._on_deal_deleted),
        ]

    def close(self) -> None:
        """Stop reacting to deal events."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    # ── Event Handlers ───────────────────────────────────────────────────────

    def _on_deal_saved(self, event: SystemEvent) -> None:
        deal_id = _payload_id(event)
        if deal_id and self._config_store.get().auto_sync_enabled:
            self.outbox.enqueue(SyncTaskAction.UPSERT, deal_id)

    def _on_deal_deleted(self, event: SystemEvent) -> None:
        deal_id = _payload_id(event)
        if deal_id and self._config_store.get().auto_sync_enabled:
            self.outbox.enqueue(SyncTaskAction.DELETE, deal_id)

    async def _run_task(self, task: SyncTask) -> SyncTaskStatus:
        """Deliver one outbox task. Raises to have the outbox retry it."""
        if task.action == SyncTaskAction.DELETE:
            deleted = await self.delete_deal_from_sheets(task.deal_id)
            return SyncTaskStatus.SUCCEEDED if deleted else SyncTaskStatus.SKIPPED

        result = await self.sync_deal_to_sheets(task.deal_id)
        if result.success:
            return SyncTaskStatus.SUCCEEDED
        if any(error.type == SyncErrorType.NOT_FOUND for error in result.errors):
            return SyncTaskStatus.SKIPPED
        raise RuntimeError(result.errors[0].message if result.errors else result.message)

    # ── Helpers ──────────────────────────────────────────────────────────────

    def _failed(
        self,
        operation: str,
        error: SyncError,
        message: str,
        **payload: Any,
    ) -> SyncResult:
        result = SyncResult(success=False, errors=[error], message=message)
        self._bus.emit(
            EventType.SYNC_FAILED,
            {
                "type": operation,
                **payload,
                "error": error.message,
                "result": result.model_dump(mode="json"),
            },
            source=EVENT_SOURCE,
        )
        record_sync_operation(operation, success=False)
        logger.warning(
            "sync_engine.operation_failed",
            operation=operation,
            error_type=error.type.value,
            error=error.message,
        )
        return result

    def _completed(self, operation: str, result: SyncResult, **payload: Any) -> SyncResult:
        self._bus.emit(
            EventType.SYNC_COMPLETED,
            {"type": operation, **payload, "result": result.model_dump(mode="json")},
            source=EVENT_SOURCE,
        )
        record_sync_operation(operation, success=True)
        logger.info(
            "sync_engine.operation_completed",
            operation=operation,
            synced=result.synced,
            conflicts_resolved=result.conflicts_resolved,
            errors=len(result.errors),
        )
        return result

    async def _push_deal(self, deal: DealRead) -> None:
        """Update the deal's row if present, else append one. Caller holds the lock."""
        sheet_deals = await self._sheet.list_deals()
        existing = next((row for row in sheet_deals if row.id == deal.id), None)
        if existing is not None and existing.row_number is not None:
            await self._sheet.update_deal(deal, existing.row_number)
        else:
            await self._sheet.add_deal(deal)

    # ── Push ─────────────────────────────────────────────────────────────────

    async def sync_deal_to_sheets(self, deal_id: str) -> SyncResult:
        """Push one local deal to the sheet (update-or-append by ID)."""
        self._bus.emit(
            EventType.SYNC_STARTED, {"type": SINGLE, "deal_id": deal_id}, source=EVENT_SOURCE
        )

        try:
            deal = await self._store.get_deal(deal_id)
        except Exception as exc:
            return self._failed(
                SINGLE,
                SyncError(id=deal_id, type=SyncErrorType.DATABASE, message=str(exc)),
                "Sync failed",
                deal_id=deal_id,
            )

        if deal is None:
            return self._failed(
                SINGLE,
                SyncError(
                    id=deal_id,
                    type=SyncErrorType.NOT_FOUND,
                    message="Deal not found in database",
                ),
                "Deal not found",
                deal_id=deal_id,
            )

        try:
            async with self._write_lock:
                await self._push_deal(deal)
        except Exception as exc:
            return self._failed(
                SINGLE,
                SyncError(id=deal_id, type=SyncErrorType.SHEETS, message=str(exc)),
                "Sync failed",
                deal_id=deal_id,
            )

        result = SyncResult(success=True, synced=1, message="Deal synced successfully")
        return self._completed(SINGLE, result, deal_id=deal_id)

    async def sync_all_deals_to_sheets(self) -> SyncResult:
        """Make the sheet mirror every local deal (local wins).

        Rows are upserted by ID and rows for unknown IDs are removed; see
        RemoteDealSheet.batch_update_deals.
        """
        self._bus.emit(EventType.SYNC_STARTED, {"type": ALL_TO_SHEETS}, source=EVENT_SOURCE)

        try:
            deals = await self._store.list_deals()
        except Exception as exc:
            return self._failed(
                ALL_TO_SHEETS,
                SyncError(id="all", type=SyncErrorType.DATABASE, message=str(exc)),
                "Batch sync failed",
            )

        batch_size = self._config_store.get().batch_size
        try:
            async with self._write_lock:
                summary = await self._sheet.batch_update_deals(deals, batch_size=batch_size)
        except Exception as exc:
            return self._failed(
                ALL_TO_SHEETS,
                SyncError(id="all", type=SyncErrorType.SHEETS, message=str(exc)),
                "Batch sync failed",
            )

        result = SyncResult(
            success=True,
            synced=len(deals),
            message=(
                f"Synced {len(deals)} deals to sheets "
                f"({summary.added} added, {summary.updated} updated, "
                f"{summary.removed} removed)"
            ),
        )
        return self._completed(ALL_TO_SHEETS, result, summary=summary.model_dump())

    async def delete_deal_from_sheets(self, deal_id: str) -> bool:
        """Remove a deal's row from the sheet.

        Returns:
            True if a row was deleted, False if no row carried the ID.

        Raises:
            Exception: Whatever the gateway raised for other failures.
        """
        async with self._write_lock:
            sheet_deals = await self._sheet.list_deals()
            if not any(row.id == deal_id for row in sheet_deals):
                logger.info("sync_engine.delete_skipped", deal_id=deal_id)
                return False
            await self._sheet.delete_deal(deal_id)
        logger.info("sync_engine.deal_deleted_from_sheets", deal_id=deal_id)
        return True

    # ── Pull ─────────────────────────────────────────────────────────────────

    async def sync_sheets_to_database(self, config: SyncConfig | None = None) -> SyncResult:
        """Pull sheet rows into the local store.

        Rows without a local counterpart are created locally (a row with a
        synthetic ID gets the new deal ID written back to column A). Rows
        that differ from their local deal are handled per
        ``conflict_resolution``.

        Args:
            config: Override for the stored SyncConfig (for one run).
        """
        config = config or self._config_store.get()
        policy = _policy_value(config.conflict_resolution)
        self._bus.emit(EventType.SYNC_STARTED, {"type": SHEETS_TO_DB}, source=EVENT_SOURCE)

        try:
            sheet_deals = await self._sheet.list_deals()
        except Exception as exc:
            return self._failed(
                SHEETS_TO_DB,
                SyncError(id="all", type=SyncErrorType.SHEETS, message=str(exc)),
                "Sync from sheets failed",
            )

        try:
            local_deals = await self._store.list_deals()
        except Exception as exc:
            return self._failed(
                SHEETS_TO_DB,
                SyncError(id="all", type=SyncErrorType.DATABASE, message=str(exc)),
                "Sync from sheets failed",
            )

        local_by_id = {deal.id: deal for deal in local_deals}
        result = SyncResult()

        for sheet_deal in sheet_deals:
            local = local_by_id.get(sheet_deal.id)
            try:
                if local is None:
                    local_by_id[sheet_deal.id] = await self._create_from_row(sheet_deal, result)
                    result.synced += 1
                    continue

                conflicts = self.detect_conflicts(local, sheet_deal)
                if not conflicts:
                    continue

                sync_conflicts_total.labels(resolution=policy).inc()
                if policy == ConflictResolution.SHEETS_WINS.value:
                    if await self._apply_sheet_values(local, sheet_deal, conflicts):
                        result.conflicts_resolved += 1
                elif policy == ConflictResolution.MANUAL.value:
                    self._bus.emit(
                        EventType.CONFLICT_DETECTED,
                        {
                            "deal_id": sheet_deal.id,
                            "conflicts": [c.model_dump(mode="json") for c in conflicts],
                        },
                        source=EVENT_SOURCE,
                    )
            except Exception as exc:
                logger.warning(
                    "sync_engine.pull_row_failed",
                    deal_id=sheet_deal.id,
                    row_number=sheet_deal.row_number,
                    error=str(exc),
                )
                result.errors.append(
                    SyncError(
                        id=sheet_deal.id,
                        type=SyncErrorType.DATABASE,
                        message=str(exc),
                        data=sheet_deal.model_dump(mode="json"),
                    )
                )

        result.success = True
        result.message = f"Synced {result.synced} deals from sheets to database"
        return self._completed(SHEETS_TO_DB, result)

    async def _create_from_row(self, sheet_deal: SheetDeal, result: SyncResult) -> DealRead:
        data = sheet_deal_to_create(sheet_deal)
        if not is_synthetic_id(sheet_deal.id):
            return await self._store.create_deal(data, deal_id=sheet_deal.id)

        created = await self._store.create_deal(data)
        # Deal exists locally from here on; only the ID write-back can fail.
        try:
            async with self._write_lock:
                row_number = await self._locate_unidentified_row(sheet_deal)
                if row_number is not None:
                    await self._sheet.update_deal(created, row_number)
        except Exception as exc:
            reason = str(exc)
        else:
            if row_number is not None:
                return created
            reason = "its row changed before the ID was written"

        result.errors.append(
            SyncError(
                id=sheet_deal.id,
                type=SyncErrorType.SHEETS,
                message=f"Created deal {created.id} but could not write its ID back: {reason}",
            )
        )
        return created

    async def _locate_unidentified_row(self, sheet_deal: SheetDeal) -> int | None:
        """Find the current row of a pulled row that had no ID. Caller holds the lock.

        Rows may have shifted since the pull read the sheet, so the row is
        matched by content among rows still lacking an ID, preferring its
        original position.
        """
        content = sheet_deal.model_dump(exclude={"id", "row_number"})
        candidates = [
            row.row_number
            for row in await self._sheet.list_deals()
            if is_synthetic_id(row.id)
            and row.model_dump(exclude={"id", "row_number"}) == content
        ]
        if sheet_deal.row_number in candidates:
            return sheet_deal.row_number
        return candidates[0] if candidates else None

    async def _apply_sheet_values(
        self,
        local: DealRead,
        sheet_deal: SheetDeal,
        conflicts: list[SyncConflict],
    ) -> bool:
        """Overwrite conflicting local fields with the sheet's values.

        Only fields the sheet layout stores are written.

        Returns:
            True if the local deal was updated.
        """
        fields = sorted({c.field for c in conflicts} & SHEET_CARRIED_FIELDS)
        if not fields:
            return False

        incoming = sheet_deal_to_create(sheet_deal)
        await self._store.update_deal(
            local.id,
            DealUpdate(**{field: getattr(incoming, field) for field in fields}),
        )
        self._bus.emit(
            EventType.CONFLICT_RESOLVED,
            {
                "deal_id": local.id,
                "resolution": ConflictResolution.SHEETS_WINS.value,
                "fields": fields,
            },
            source=EVENT_SOURCE,
        )
        return True

    # ── Inspection ───────────────────────────────────────────────────────────

    def detect_conflicts(self, local: DealRead, sheet_deal: SheetDeal) -> list[SyncConflict]:
        """List compared fields whose values differ between the two sides."""
        timestamps = ConflictTimestamps(database=local.last_modified, sheets=None)
        conflicts: list[SyncConflict] = []
        for field in COMPARED_FIELDS:
            local_value = getattr(local, field)
            sheet_value = getattr(sheet_deal, field)
            if values_differ(field, local_value, sheet_value):
                conflicts.append(
                    SyncConflict(
                        id=local.id,
                        field=field,
                        database_value=local_value,
                        sheets_value=sheet_value,
                        last_modified=timestamps,
                    )
                )
        return conflicts

    async def compare_tables(self) -> SyncComparison:
        """Diff the local ledger against the sheet without writing to either.

        Raises:
            Exception: Whatever either side raised while reading.
        """
        local_deals, sheet_deals = await asyncio.gather(
            self._store.list_deals(), self._sheet.list_deals()
        )
        local_by_id = {deal.id: deal for deal in local_deals}
        sheet_ids = {row.id for row in sheet_deals}

        conflicts: list[SyncConflict] = []
        for sheet_deal in sheet_deals:
            local = local_by_id.get(sheet_deal.id)
            if local is not None:
                conflicts.extend(self.detect_conflicts(local, sheet_deal))

        return SyncComparison(
            database_count=len(local_deals),
            sheets_count=len(sheet_deals),
            missing_in_sheets=[deal.id for deal in local_deals if deal.id not in sheet_ids],
            missing_in_database=[row.id for row in sheet_deals if row.id not in local_by_id],
            conflicts=conflicts,
        )

    async def check_sheet_connection(self) -> None:
        """Raise if the spreadsheet cannot be reached."""
        await self._sheet.ping()

    async def get_sheet_data(self) -> list[SheetDeal]:
        return await self._sheet.list_deals()

    async def get_database_data(self) -> list[DealRead]:
        return await self._store.list_deals()

    async def status(self) -> dict[str, Any]:
        """Counts and timestamps for both sides plus the current config.

        A side that cannot be read reports a count of None and an error string.
        """
        status: dict[str, Any] = {
            "config": self.get_config().model_dump(mode="json"),
            "outbox_pending": self.outbox.pending_count,
            "outbox_running": self.outbox.running,
        }

        try:
            local_deals = await self._store.list_deals()
            status["database_count"] = len(local_deals)
            modified = [d.last_modified for d in local_deals if d.last_modified]
            status["database_last_updated"] = max(modified) if modified else None
        except Exception as exc:
            status["database_count"] = None
            status["database_error"] = str(exc)

        try:
            status["sheets_count"] = len(await self._sheet.list_deals())
        except Exception as exc:
            status["sheets_count"] = None
            status["sheets_error"] = str(exc)

        return status

    # ── Configuration ────────────────────────────────────────────────────────

    def get_config(self) -> SyncConfig:
        return self._config_store.get()

    def update_config(self, **changes: Any) -> SyncConfig:
        return self._config_store.update(**changes)
