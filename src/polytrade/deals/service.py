"""Deal mutation service -- repository writes plus lifecycle notifications.

DealService is the entry point the HTTP layer uses for deal CRUD. Each
successful mutation is announced on the EventBus (deal.created, deal.updated,
deal.deleted) so that subscribers such as the sheets auto-sync react without
the caller knowing about them.
"""

from __future__ import annotations

import structlog

from src.polytrade.deals.repository import DealRepository
from src.polytrade.deals.schemas import DealCreate, DealFilter, DealRead, DealUpdate
from src.polytrade.events.bus import EventBus
from src.polytrade.events.schemas import EventType

logger = structlog.get_logger(__name__)

EVENT_SOURCE = "DealService"


class DealService:
    """Deal CRUD with event emission.

    Args:
        repository: DealRepository for persistence.
        event_bus: EventBus receiving deal lifecycle events.
    """

    def __init__(self, repository: DealRepository, event_bus: EventBus) -> None:
        self._repo = repository
        self._bus = event_bus

    async def list_deals(self, filters: DealFilter | None = None) -> list[DealRead]:
        return await self._repo.list_deals(filters)

    async def get_deal(self, deal_id: str) -> DealRead | None:
        return await self._repo.get_deal(deal_id)

    async def create_deal(self, data: DealCreate) -> DealRead:
        """Persist a new deal and emit deal.created with the stored deal."""
        deal = await self._repo.create_deal(data)
        self._bus.emit(
            EventType.DEAL_CREATED,
            deal.model_dump(mode="json"),
            source=EVENT_SOURCE,
        )
        logger.info("deal_service.created", deal_id=deal.id)
        return deal

    async def update_deal(self, deal_id: str, data: DealUpdate) -> DealRead:
        """Apply a partial update and emit deal.updated.

        Raises:
            ValueError: If the deal does not exist (no event is emitted).
        """
        deal = await self._repo.update_deal(deal_id, data)
        self._bus.emit(
            EventType.DEAL_UPDATED,
            deal.model_dump(mode="json"),
            source=EVENT_SOURCE,
        )
        logger.info("deal_service.updated", deal_id=deal_id)
        return deal

    async def delete_deal(self, deal_id: str) -> None:
        """Delete a deal and emit deal.deleted with its identifier.

        Raises:
            ValueError: If the deal does not exist (no event is emitted).
        """
        await self._repo.delete_deal(deal_id)
        self._bus.emit(EventType.DEAL_DELETED, {"id": deal_id}, source=EVENT_SOURCE)
        logger.info("deal_service.deleted", deal_id=deal_id)
