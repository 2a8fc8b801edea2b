"""Shared test doubles and fixtures for the deal ledger and sheets sync.

Provides:
- FakeSheetsService: in-memory Google Sheets API speaking the
  ``spreadsheets().values()`` call chain the gateway uses
- InMemoryDealStore: LocalDealStore without a database
- Fixtures wiring a GoogleSheetsGateway and DealSyncEngine over the doubles
"""

from __future__ import annotations

import re
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import MagicMock

import pytest

from src.polytrade.deals.schemas import (
    DealCreate,
    DealFilter,
    DealRead,
    DealUpdate,
    deal_date_key,
)
from src.polytrade.events.bus import EventBus
from src.polytrade.sync.adapter import LocalDealStore
from src.polytrade.sync.config_store import SyncConfigStore
from src.polytrade.sync.engine import DealSyncEngine
from src.polytrade.sync.row_mapping import SHEET_HEADER
from src.polytrade.sync.schemas import SyncConfig
from src.polytrade.sync.sheets import GoogleSheetsGateway

_RANGE_RE = re.compile(r"!([A-Z]+)(\d+)?(?::([A-Z]+)(\d+)?)?$")


def _start_row(a1_range: str) -> int | None:
    match = _RANGE_RE.search(a1_range)
    if match is None or match.group(2) is None:
        return None
    return int(match.group(2))


# ── Fake Google Sheets API ───────────────────────────────────────────────────


class _Request:
    """Deferred API call; mirrors googleapiclient's HttpRequest.execute()."""

    def __init__(self, service: FakeSheetsService, name: str, fn: Callable[[], Any]) -> None:
        self._service = service
        self._name = name
        self._fn = fn

    def execute(self) -> Any:
        self._service.calls.append(self._name)
        if self._name in self._service.fail_on:
            raise RuntimeError(f"{self._name} unavailable")
        return self._fn()


class _Values:
    def __init__(self, service: FakeSheetsService) -> None:
        self._service = service

    def get(self, spreadsheetId: str, range: str) -> _Request:
        def run() -> dict:
            rows = self._service.trimmed_grid()
            return {"range": range, "values": rows} if rows else {"range": range}

        return _Request(self._service, "values.get", run)

    def append(
        self,
        spreadsheetId: str,
        range: str,
        valueInputOption: str,
        body: dict,
        insertDataOption: str | None = None,
    ) -> _Request:
        def run() -> dict:
            grid = self._service.trimmed_grid()
            grid.extend([list(row) for row in body["values"]])
            self._service.grid = grid
            return {"updates": {"updatedRows": len(body["values"])}}

        return _Request(self._service, "values.append", run)

    def update(
        self, spreadsheetId: str, range: str, valueInputOption: str, body: dict
    ) -> _Request:
        def run() -> dict:
            self._service.write_row(_start_row(range), body["values"][0])
            return {"updatedRange": range}

        return _Request(self._service, "values.update", run)

    def batchUpdate(self, spreadsheetId: str, body: dict) -> _Request:
        def run() -> dict:
            for entry in body["data"]:
                self._service.write_row(_start_row(entry["range"]), entry["values"][0])
            return {"totalUpdatedRows": len(body["data"])}

        return _Request(self._service, "values.batchUpdate", run)

    def clear(self, spreadsheetId: str, range: str, body: dict) -> _Request:
        def run() -> dict:
            start = _start_row(range) or 1
            self._service.grid = self._service.grid[: start - 1]
            return {"clearedRange": range}

        return _Request(self._service, "values.clear", run)


class _Spreadsheets:
    def __init__(self, service: FakeSheetsService) -> None:
        self._service = service

    def values(self) -> _Values:
        return _Values(self._service)

    def get(self, spreadsheetId: str, fields: str | None = None) -> _Request:
        def run() -> dict:
            return {
                "sheets": [
                    {"properties": {"title": title, "sheetId": sheet_id}}
                    for title, sheet_id in self._service.tabs.items()
                ]
            }

        return _Request(self._service, "spreadsheets.get", run)

    def batchUpdate(self, spreadsheetId: str, body: dict) -> _Request:
        def run() -> dict:
            for request in body["requests"]:
                dimension = request["deleteDimension"]["range"]
                self._service.deleted_sheet_ids.append(dimension["sheetId"])
                del self._service.grid[dimension["startIndex"] : dimension["endIndex"]]
            return {"replies": [{} for _ in body["requests"]]}

        return _Request(self._service, "spreadsheets.batchUpdate", run)


class FakeSheetsService:
    """In-memory single-tab spreadsheet.

    ``grid`` holds every row including the header (row 1 is ``grid[0]``).
    Add an operation name (e.g. ``"values.get"``) to ``fail_on`` to make
    that call raise.
    """

    def __init__(
        self,
        rows: list[list[Any]] | None = None,
        tabs: dict[str, int] | None = None,
        with_header: bool = True,
    ) -> None:
        self.grid: list[list[Any]] = [list(SHEET_HEADER)] if with_header else []
        self.grid.extend(list(row) for row in rows or [])
        self.tabs = tabs if tabs is not None else {"Main": 42}
        self.calls: list[str] = []
        self.fail_on: set[str] = set()
        self.deleted_sheet_ids: list[int] = []

    def spreadsheets(self) -> _Spreadsheets:
        return _Spreadsheets(self)

    def write_row(self, row_number: int | None, values: list[Any]) -> None:
        assert row_number is not None
        while len(self.grid) < row_number:
            self.grid.append([])
        self.grid[row_number - 1] = list(values)

    def trimmed_grid(self) -> list[list[Any]]:
        """Rows as the real API returns them: trailing blanks dropped."""
        rows = [list(row) for row in self.grid]
        for row in rows:
            while row and row[-1] in ("", None):
                row.pop()
        while rows and not rows[-1]:
            rows.pop()
        return rows

    @property
    def data_rows(self) -> list[list[Any]]:
        return self.trimmed_grid()[1:]


# ── In-Memory Deal Store ─────────────────────────────────────────────────────


class InMemoryDealStore(LocalDealStore):
    """LocalDealStore over a dict, newest-first listing like the repository.

    Add a method name to ``fail_on`` to make it raise RuntimeError.
    """

    def __init__(self) -> None:
        self._deals: dict[str, DealRead] = {}
        self._clock = datetime(2025, 3, 1, tzinfo=timezone.utc)
        self.fail_on: set[str] = set()

    def _check(self, name: str) -> None:
        if name in self.fail_on:
            raise RuntimeError(f"{name} failed")

    def _tick(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    async def get_deal(self, deal_id: str) -> DealRead | None:
        self._check("get_deal")
        return self._deals.get(deal_id)

    async def list_deals(self, filters: DealFilter | None = None) -> list[DealRead]:
        self._check("list_deals")
        deals = sorted(self._deals.values(), key=lambda d: d.created_at, reverse=True)
        if filters is not None and filters.product_code is not None:
            deals = [d for d in deals if d.product_code == filters.product_code]
        if filters is not None and filters.date_from is not None:
            low = deal_date_key(filters.date_from)
            deals = [d for d in deals if deal_date_key(d.date) >= low]
        if filters is not None and filters.date_to is not None:
            high = deal_date_key(filters.date_to)
            deals = [d for d in deals if deal_date_key(d.date) <= high]
        return deals

    async def create_deal(self, data: DealCreate, deal_id: str | None = None) -> DealRead:
        self._check("create_deal")
        deal = DealRead(
            id=deal_id or str(uuid.uuid4()),
            created_at=self._tick(),
            **data.model_dump(),
        )
        self._deals[deal.id] = deal
        return deal

    async def update_deal(self, deal_id: str, data: DealUpdate) -> DealRead:
        self._check("update_deal")
        deal = self._deals.get(deal_id)
        if deal is None:
            raise ValueError(f"Deal not found: {deal_id}")
        updated = deal.model_copy(
            update={**data.model_dump(exclude_none=True), "updated_at": self._tick()}
        )
        self._deals[deal_id] = updated
        return updated

    async def delete_deal(self, deal_id: str) -> None:
        self._check("delete_deal")
        if self._deals.pop(deal_id, None) is None:
            raise ValueError(f"Deal not found: {deal_id}")


# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
def make_deal() -> Callable[..., DealCreate]:
    """Factory for DealCreate payloads with sensible defaults."""

    def _make(**overrides: Any) -> DealCreate:
        defaults: dict[str, Any] = {
            "date": "14-03-2025",
            "sale_party": "Shree Plastics",
            "quantity_sold": 5000.0,
            "sale_rate": 98.5,
            "delivery_terms": "delivered",
            "product_code": "HD50MA180",
            "grade": "HDPE",
            "company": "Reliance",
            "specific_grade": "Injection",
            "purchase_party": "Reliance Polymers",
            "purchase_quantity": 5000.0,
            "purchase_rate": 94.0,
        }
        defaults.update(overrides)
        return DealCreate(**defaults)

    return _make


@pytest.fixture
def sheets_service() -> FakeSheetsService:
    return FakeSheetsService()


@pytest.fixture
def auth_manager(sheets_service):
    manager = MagicMock()
    manager.get_sheets_service.return_value = sheets_service
    return manager


@pytest.fixture
def sheet_gateway(auth_manager) -> GoogleSheetsGateway:
    return GoogleSheetsGateway(
        auth_manager=auth_manager,
        spreadsheet_id="sheet-123",
        sheet_name="Main",
        batch_size=2,
    )


@pytest.fixture
def deal_store() -> InMemoryDealStore:
    return InMemoryDealStore()


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def config_store() -> SyncConfigStore:
    return SyncConfigStore(SyncConfig())


@pytest.fixture
def sync_engine(deal_store, sheet_gateway, event_bus, config_store):
    engine = DealSyncEngine(
        store=deal_store,
        sheet=sheet_gateway,
        event_bus=event_bus,
        config_store=config_store,
        backoff_multiplier=0,
    )
    yield engine
    engine.close()


@pytest.fixture
def make_sheet() -> Callable[..., tuple[FakeSheetsService, GoogleSheetsGateway]]:
    """Factory for a FakeSheetsService pre-filled with rows plus its gateway."""

    def _make(
        rows: list[list[Any]] | None = None,
        tabs: dict[str, int] | None = None,
        with_header: bool = True,
        batch_size: int = 100,
    ) -> tuple[FakeSheetsService, GoogleSheetsGateway]:
        service = FakeSheetsService(rows=rows, tabs=tabs, with_header=with_header)
        manager = MagicMock()
        manager.get_sheets_service.return_value = service
        gateway = GoogleSheetsGateway(manager, "sheet-123", "Main", batch_size=batch_size)
        return service, gateway

    return _make
