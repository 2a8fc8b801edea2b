"""PostgreSQL deal store -- LocalDealStore wrapping DealRepository."""

from __future__ import annotations

import structlog

from src.polytrade.deals.repository import DealRepository
from src.polytrade.deals.schemas import DealCreate, DealFilter, DealRead, DealUpdate
from src.polytrade.sync.adapter import LocalDealStore

logger = structlog.get_logger(__name__)


class PostgresDealStore(LocalDealStore):
    """LocalDealStore backed by PostgreSQL via DealRepository.

    Writes made here come from the sync engine itself and therefore do not
    go through DealService, so they emit no deal.* events and cannot loop
    back into auto-sync.

    Args:
        repository: DealRepository instance for database operations.
    """

    def __init__(self, repository: DealRepository) -> None:
        self._repo = repository

    async def get_deal(self, deal_id: str) -> DealRead | None:
        return await self._repo.get_deal(deal_id)

    async def list_deals(self, filters: DealFilter | None = None) -> list[DealRead]:
        return await self._repo.list_deals(filters)

    async def create_deal(
        self, data: DealCreate, deal_id: str | None = None
    ) -> DealRead:
        deal = await self._repo.create_deal(data, deal_id=deal_id)
        logger.info("postgres_store.deal_created", deal_id=deal.id)
        return deal

    async def update_deal(self, deal_id: str, data: DealUpdate) -> DealRead:
        deal = await self._repo.update_deal(deal_id, data)
        logger.info("postgres_store.deal_updated", deal_id=deal_id)
        return deal

    async def delete_deal(self, deal_id: str) -> None:
        await self._repo.delete_deal(deal_id)
        logger.info("postgres_store.deal_deleted", deal_id=deal_id)
