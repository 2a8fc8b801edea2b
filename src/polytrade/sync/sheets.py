"""Google Sheets gateway -- the spreadsheet replica of the deal ledger.

All Google API calls are wrapped in asyncio.to_thread() so the blocking
client never stalls the event loop. Every operation re-raises failures as
SheetsGatewayError with the operation name attached; retries are the
caller's concern (see SyncOutbox).
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog

from src.polytrade.deals.schemas import DealRead
from src.polytrade.services.google.auth import GoogleAuthManager
from src.polytrade.sync.adapter import RemoteDealSheet
from src.polytrade.sync.row_mapping import (
    HEADER_ROW_COUNT,
    LAST_COLUMN,
    SHEET_HEADER,
    deal_to_row,
    row_to_sheet_deal,
)
from src.polytrade.sync.schemas import SheetBatchSummary, SheetDeal

logger = structlog.get_logger(__name__)

VALUE_INPUT_OPTION = "RAW"


class SheetsGatewayError(Exception):
    """A spreadsheet operation failed."""


class SheetRowNotFoundError(SheetsGatewayError):
    """No sheet row carries the requested deal ID."""


class GoogleSheetsGateway(RemoteDealSheet):
    """RemoteDealSheet backed by one tab of a Google spreadsheet.

    Args:
        auth_manager: Provides the cached Sheets API client.
        spreadsheet_id: Target spreadsheet.
        sheet_name: Tab holding the deal rows.
        batch_size: Rows per append request in ``batch_update_deals``.
    """

    def __init__(
        self,
        auth_manager: GoogleAuthManager,
        spreadsheet_id: str,
        sheet_name: str = "Main",
        batch_size: int = 100,
    ) -> None:
        if not spreadsheet_id:
            raise ValueError("A spreadsheet ID is required")
        self._auth = auth_manager
        self._spreadsheet_id = spreadsheet_id
        self._sheet_name = sheet_name
        self.batch_size = batch_size
        self._sheet_id: int | None = None

    # ── Helpers ──────────────────────────────────────────────────────────────

    def _range(self, cells: str) -> str:
        return f"'{self._sheet_name}'!{cells}"

    def _row_range(self, row_number: int) -> str:
        return self._range(f"A{row_number}:{LAST_COLUMN}{row_number}")

    @property
    def _full_range(self) -> str:
        return self._range(f"A:{LAST_COLUMN}")

    def _spreadsheets(self) -> Any:
        return self._auth.get_sheets_service().spreadsheets()

    async def _execute(self, operation: str, request: Any) -> Any:
        """Run one API request off the event loop, adding context on failure."""
        try:
            return await asyncio.to_thread(request.execute)
        except Exception as exc:
            logger.error(
                "sheets_gateway.request_failed",
                operation=operation,
                sheet_name=self._sheet_name,
                error=str(exc),
            )
            raise SheetsGatewayError(f"Failed to {operation}: {exc}") from exc

    async def _read_rows(self) -> list[list[Any]]:
        request = self._spreadsheets().values().get(
            spreadsheetId=self._spreadsheet_id,
            range=self._full_range,
        )
        response = await self._execute("read sheet rows", request)
        return response.get("values", [])

    async def _ensure_sheet_id(self) -> int:
        """Resolve (once) the numeric sheetId of the configured tab."""
        if self._sheet_id is not None:
            return self._sheet_id

        request = self._spreadsheets().get(
            spreadsheetId=self._spreadsheet_id,
            fields="sheets.properties",
        )
        response = await self._execute("resolve sheet id", request)
        for sheet in response.get("sheets", []):
            properties = sheet.get("properties", {})
            if properties.get("title") == self._sheet_name:
                self._sheet_id = int(properties.get("sheetId", 0))
                return self._sheet_id

        logger.warning(
            "sheets_gateway.sheet_id_fallback",
            sheet_name=self._sheet_name,
        )
        self._sheet_id = 0
        return self._sheet_id

    async def _delete_rows(self, row_numbers: list[int]) -> None:
        """Delete rows bottom-up in one request so earlier indexes stay valid."""
        sheet_id = await self._ensure_sheet_id()
        requests = [
            {
                "deleteDimension": {
                    "range": {
                        "sheetId": sheet_id,
                        "dimension": "ROWS",
                        "startIndex": row_number - 1,
                        "endIndex": row_number,
                    }
                }
            }
            for row_number in sorted(set(row_numbers), reverse=True)
        ]
        request = self._spreadsheets().batchUpdate(
            spreadsheetId=self._spreadsheet_id,
            body={"requests": requests},
        )
        await self._execute("delete sheet rows", request)

    async def _append_rows(self, rows: list[list[Any]]) -> None:
        request = self._spreadsheets().values().append(
            spreadsheetId=self._spreadsheet_id,
            range=self._full_range,
            valueInputOption=VALUE_INPUT_OPTION,
            insertDataOption="INSERT_ROWS",
            body={"values": rows},
        )
        await self._execute("append sheet rows", request)

    # ── Public API ───────────────────────────────────────────────────────────

    async def ensure_header(self) -> bool:
        """Write the column header into row 1 if the tab is empty.

        Returns:
            True if the header was written.
        """
        if await self._read_rows():
            return False
        request = self._spreadsheets().values().update(
            spreadsheetId=self._spreadsheet_id,
            range=self._row_range(1),
            valueInputOption=VALUE_INPUT_OPTION,
            body={"values": [list(SHEET_HEADER)]},
        )
        await self._execute("write sheet header", request)
        logger.info("sheets_gateway.header_written", sheet_name=self._sheet_name)
        return True

    async def ping(self) -> None:
        """Read the header row to confirm the spreadsheet is reachable."""
        request = self._spreadsheets().values().get(
            spreadsheetId=self._spreadsheet_id,
            range=self._row_range(1),
        )
        await self._execute("reach spreadsheet", request)

    async def list_deals(self) -> list[SheetDeal]:
        rows = await self._read_rows()
        deals: list[SheetDeal] = []
        for offset, row in enumerate(rows[HEADER_ROW_COUNT:]):
            sheet_deal = row_to_sheet_deal(row, offset + HEADER_ROW_COUNT + 1)
            if sheet_deal is not None:
                deals.append(sheet_deal)
        return deals

    async def add_deal(self, deal: DealRead | SheetDeal) -> None:
        await self._append_rows([deal_to_row(deal)])
        logger.info("sheets_gateway.deal_added", deal_id=deal.id)

    async def update_deal(self, deal: DealRead | SheetDeal, row_number: int) -> None:
        request = self._spreadsheets().values().update(
            spreadsheetId=self._spreadsheet_id,
            range=self._row_range(row_number),
            valueInputOption=VALUE_INPUT_OPTION,
            body={"values": [deal_to_row(deal)]},
        )
        await self._execute(f"update sheet row {row_number}", request)
        logger.info("sheets_gateway.deal_updated", deal_id=deal.id, row_number=row_number)

    async def delete_deal(self, deal_id: str) -> None:
        """Delete the row carrying ``deal_id``.

        Raises:
            SheetRowNotFoundError: If no row carries the ID.
            SheetsGatewayError: If the API call fails.
        """
        for sheet_deal in await self.list_deals():
            if sheet_deal.id == deal_id and sheet_deal.row_number is not None:
                await self._delete_rows([sheet_deal.row_number])
                logger.info(
                    "sheets_gateway.deal_deleted",
                    deal_id=deal_id,
                    row_number=sheet_deal.row_number,
                )
                return
        raise SheetRowNotFoundError(f"Deal {deal_id} not found in sheet")

    async def clear_deals(self) -> None:
        request = self._spreadsheets().values().clear(
            spreadsheetId=self._spreadsheet_id,
            range=self._range(f"A{HEADER_ROW_COUNT + 1}:{LAST_COLUMN}"),
            body={},
        )
        await self._execute("clear sheet rows", request)
        logger.info("sheets_gateway.cleared", sheet_name=self._sheet_name)

    async def batch_update_deals(
        self,
        deals: list[DealRead],
        prune: bool = True,
        batch_size: int | None = None,
    ) -> SheetBatchSummary:
        """Upsert deals by ID against the current sheet contents.

        Existing rows are overwritten in place, then (when ``prune``) rows for
        IDs outside ``deals`` and duplicate rows are deleted, then the
        remaining deals are appended in chunks of ``batch_size``. Each step is
        a separate request, so a failure leaves earlier writes in place rather
        than an empty sheet.

        Args:
            deals: The full set of deals the sheet should mirror.
            prune: Remove rows whose ID is not in ``deals``.
            batch_size: Rows per append request; defaults to the gateway's
                ``batch_size``.

        Returns:
            SheetBatchSummary with added/updated/removed row counts.
        """
        if not deals:
            return SheetBatchSummary()

        existing = await self.list_deals()
        wanted = {deal.id for deal in deals}
        first_rows: dict[str, int] = {}
        stale_rows: list[int] = []
        for sheet_deal in existing:
            if sheet_deal.id in wanted and sheet_deal.id not in first_rows:
                first_rows[sheet_deal.id] = sheet_deal.row_number
            elif prune:
                stale_rows.append(sheet_deal.row_number)

        updates = [deal for deal in deals if deal.id in first_rows]
        additions = [deal for deal in deals if deal.id not in first_rows]

        if updates:
            request = self._spreadsheets().values().batchUpdate(
                spreadsheetId=self._spreadsheet_id,
                body={
                    "valueInputOption": VALUE_INPUT_OPTION,
                    "data": [
                        {
                            "range": self._row_range(first_rows[deal.id]),
                            "values": [deal_to_row(deal)],
                        }
                        for deal in updates
                    ],
                },
            )
            await self._execute("update sheet rows", request)

        if stale_rows:
            await self._delete_rows(stale_rows)

        chunk_size = max(1, int(batch_size or self.batch_size))
        for start in range(0, len(additions), chunk_size):
            chunk = additions[start : start + chunk_size]
            await self._append_rows([deal_to_row(deal) for deal in chunk])

        summary = SheetBatchSummary(
            added=len(additions),
            updated=len(updates),
            removed=len(stale_rows),
        )
        logger.info("sheets_gateway.batch_updated", **summary.model_dump())
        return summary
