"""Deal ↔ Google Sheets synchronization.

Exports:
    DealSyncEngine: Push, pull and compare between the ledger and the sheet.
    GoogleSheetsGateway: RemoteDealSheet over the Google Sheets API.
    PostgresDealStore: LocalDealStore over DealRepository.
    SyncConfigStore: Runtime SyncConfig holder.
    SyncOutbox: Retried delivery queue for auto-sync.
"""

from __future__ import annotations

from src.polytrade.sync.adapter import LocalDealStore, RemoteDealSheet
from src.polytrade.sync.config_store import SyncConfigStore
from src.polytrade.sync.engine import DealSyncEngine
from src.polytrade.sync.outbox import SyncOutbox
from src.polytrade.sync.postgres import PostgresDealStore
from src.polytrade.sync.sheets import (
    GoogleSheetsGateway,
    SheetRowNotFoundError,
    SheetsGatewayError,
)

__all__ = [
    "DealSyncEngine",
    "GoogleSheetsGateway",
    "LocalDealStore",
    "PostgresDealStore",
    "RemoteDealSheet",
    "SheetRowNotFoundError",
    "SheetsGatewayError",
    "SyncConfigStore",
    "SyncOutbox",
]
