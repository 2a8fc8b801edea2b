"""Deal ledger repository -- async CRUD for deals.

Provides DealRepository with the session_factory callable pattern: every
method opens one session from the factory, performs its statement(s), and
commits. Serialization between DealModel and the Pydantic schemas happens in
module-level helpers so the repository body stays query-focused.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timezone

import structlog
from sqlalchemy import String, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.polytrade.deals.models import DealModel
from src.polytrade.deals.schemas import (
    DealCreate,
    DealFilter,
    DealRead,
    DealUpdate,
    deal_date_key,
)

logger = structlog.get_logger(__name__)


# ── Serialization Helpers ───────────────────────────────────────────────────


def _model_to_deal(model: DealModel) -> DealRead:
    """Convert DealModel to DealRead schema."""
    return DealRead(
        id=model.id,
        date=model.date,
        sale_party=model.sale_party,
        quantity_sold=model.quantity_sold,
        sale_rate=model.sale_rate,
        delivery_terms=model.delivery_terms,
        product_code=model.product_code,
        grade=model.grade or "",
        company=model.company or "",
        specific_grade=model.specific_grade or "",
        sale_source=model.sale_source or "new",
        purchase_party=model.purchase_party,
        purchase_quantity=model.purchase_quantity,
        purchase_rate=model.purchase_rate,
        sale_comments=model.sale_comments,
        purchase_comments=model.purchase_comments,
        final_comments=model.final_comments,
        warehouse=model.warehouse,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _date_key(column):
    """SQL expression turning ``DD-MM-YYYY`` text into a ``YYYYMMDD`` key."""
    return (
        func.substr(column, 7, 4, type_=String)
        + func.substr(column, 4, 2, type_=String)
        + func.substr(column, 1, 2, type_=String)
    )


def _column_values(data: DealCreate | DealUpdate, exclude_none: bool) -> dict:
    """Dump a payload to plain column values (enums as their string value)."""
    return data.model_dump(mode="json", exclude_none=exclude_none)


# ── Repository ──────────────────────────────────────────────────────────────


class DealRepository:
    """Async CRUD operations for deals.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    async def create_deal(
        self, data: DealCreate, deal_id: str | None = None
    ) -> DealRead:
        """Create a new deal.

        Args:
            data: DealCreate schema with the business fields.
            deal_id: Optional identifier to persist instead of a fresh UUID.

        Returns:
            DealRead with all persisted fields.
        """
        async for session in self._session_factory():
            model = DealModel(
                id=deal_id or str(uuid.uuid4()),
                **_column_values(data, exclude_none=False),
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            logger.info("deal_repository.created", deal_id=model.id)
            return _model_to_deal(model)

    async def get_deal(self, deal_id: str) -> DealRead | None:
        """Get a deal by ID.

        Returns:
            DealRead if found, None otherwise.
        """
        async for session in self._session_factory():
            result = await session.execute(
                select(DealModel).where(DealModel.id == deal_id)
            )
            model = result.scalar_one_or_none()
            if model is None:
                return None
            return _model_to_deal(model)

    async def list_deals(self, filters: DealFilter | None = None) -> list[DealRead]:
        """List deals, newest first, with optional filters.

        Date bounds compare ``YYYYMMDD`` keys, rebuilt in SQL from the
        stored zero-padded ``DD-MM-YYYY`` text.

        Args:
            filters: Optional DealFilter for narrowing results.

        Returns:
            List of DealRead objects.
        """
        async for session in self._session_factory():
            stmt = select(DealModel)

            if filters is not None:
                date_key = _date_key(DealModel.date)
                if filters.date_from is not None:
                    stmt = stmt.where(date_key >= deal_date_key(filters.date_from))
                if filters.date_to is not None:
                    stmt = stmt.where(date_key <= deal_date_key(filters.date_to))
                if filters.sale_party is not None:
                    stmt = stmt.where(DealModel.sale_party.ilike(f"%{filters.sale_party}%"))
                if filters.product_code is not None:
                    stmt = stmt.where(DealModel.product_code == filters.product_code)
                if filters.delivery_terms is not None:
                    stmt = stmt.where(
                        DealModel.delivery_terms == filters.delivery_terms.value
                    )

            stmt = stmt.order_by(DealModel.created_at.desc())
            result = await session.execute(stmt)
            return [_model_to_deal(m) for m in result.scalars().all()]

    async def update_deal(self, deal_id: str, data: DealUpdate) -> DealRead:
        """Update an existing deal.

        Args:
            deal_id: Deal identifier.
            data: DealUpdate with fields to update.

        Returns:
            Updated DealRead.

        Raises:
            ValueError: If deal not found.
        """
        async for session in self._session_factory():
            result = await session.execute(
                select(DealModel).where(DealModel.id == deal_id)
            )
            model = result.scalar_one_or_none()

            if model is None:
                raise ValueError(f"Deal not found: {deal_id}")

            # Update only non-None fields
            for key, value in _column_values(data, exclude_none=True).items():
                setattr(model, key, value)

            model.updated_at = datetime.now(timezone.utc)
            await session.commit()
            await session.refresh(model)
            logger.info("deal_repository.updated", deal_id=deal_id)
            return _model_to_deal(model)

    async def delete_deal(self, deal_id: str) -> None:
        """Delete a deal.

        Raises:
            ValueError: If deal not found.
        """
        async for session in self._session_factory():
            result = await session.execute(
                select(DealModel).where(DealModel.id == deal_id)
            )
            model = result.scalar_one_or_none()

            if model is None:
                raise ValueError(f"Deal not found: {deal_id}")

            await session.delete(model)
            await session.commit()
            logger.info("deal_repository.deleted", deal_id=deal_id)
