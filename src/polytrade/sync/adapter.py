"""Gateway abstract base classes for deal sync.

The DealSyncEngine talks to the local ledger through LocalDealStore and to
the spreadsheet through RemoteDealSheet. Production wires PostgresDealStore
and GoogleSheetsGateway; tests substitute in-memory implementations.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.polytrade.deals.schemas import DealCreate, DealFilter, DealRead, DealUpdate
from src.polytrade.sync.schemas import SheetBatchSummary, SheetDeal


class LocalDealStore(ABC):
    """Abstract interface for the system-of-record deal store."""

    @abstractmethod
    async def get_deal(self, deal_id: str) -> DealRead | None:
        """Fetch a deal by ID, or None if absent."""
        ...

    @abstractmethod
    async def list_deals(self, filters: DealFilter | None = None) -> list[DealRead]:
        """List deals, newest first."""
        ...

    @abstractmethod
    async def create_deal(
        self, data: DealCreate, deal_id: str | None = None
    ) -> DealRead:
        """Create a deal, optionally under a caller-chosen ID."""
        ...

    @abstractmethod
    async def update_deal(self, deal_id: str, data: DealUpdate) -> DealRead:
        """Apply a partial update. Raises ValueError if the deal is absent."""
        ...

    @abstractmethod
    async def delete_deal(self, deal_id: str) -> None:
        """Delete a deal. Raises ValueError if the deal is absent."""
        ...


class RemoteDealSheet(ABC):
    """Abstract interface for the spreadsheet replica of the ledger.

    Row numbers are 1-based and only valid until the sheet changes; callers
    re-read with ``list_deals()`` immediately before a targeted write.
    """

    @abstractmethod
    async def list_deals(self) -> list[SheetDeal]:
        """Read every data row below the header."""
        ...

    @abstractmethod
    async def add_deal(self, deal: DealRead | SheetDeal) -> None:
        """Append one row."""
        ...

    @abstractmethod
    async def update_deal(self, deal: DealRead | SheetDeal, row_number: int) -> None:
        """Overwrite the full A–M range of one row."""
        ...

    @abstractmethod
    async def delete_deal(self, deal_id: str) -> None:
        """Remove the row carrying ``deal_id``. Raises if not present."""
        ...

    @abstractmethod
    async def clear_deals(self) -> None:
        """Remove every data row, keeping the header."""
        ...

    @abstractmethod
    async def batch_update_deals(
        self,
        deals: list[DealRead],
        prune: bool = True,
        batch_size: int | None = None,
    ) -> SheetBatchSummary:
        """Upsert ``deals`` by ID and, when ``prune``, drop every other row.

        ``batch_size`` caps rows per append request; None uses the sheet's default.
        """
        ...

    @abstractmethod
    async def ping(self) -> None:
        """Make one cheap read. Raises if the sheet cannot be reached."""
        ...
