"""REST API endpoints for the deal ledger.

Every mutation goes through DealService so that deal.* events reach the
sheets auto-sync.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import ValidationError

from src.polytrade.api.deps import get_deal_service
from src.polytrade.deals.schemas import (
    DealCreate,
    DealFilter,
    DealRead,
    DealUpdate,
    DeliveryTerms,
)
from src.polytrade.deals.service import DealService

router = APIRouter(prefix="/deals", tags=["deals"])


@router.get("", response_model=list[DealRead])
async def list_deals(
    date_from: str | None = Query(None),
    date_to: str | None = Query(None),
    sale_party: str | None = Query(None),
    product_code: str | None = Query(None),
    delivery_terms: DeliveryTerms | None = Query(None),
    service: DealService = Depends(get_deal_service),
) -> list[DealRead]:
    """List deals, newest first. Date bounds are inclusive, DD-MM-YYYY."""
    try:
        filters = DealFilter(
            date_from=date_from,
            date_to=date_to,
            sale_party=sale_party,
            product_code=product_code,
            delivery_terms=delivery_terms,
        )
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=[error["msg"] for error in exc.errors()],
        )
    return await service.list_deals(filters)


@router.get("/{deal_id}", response_model=DealRead)
async def get_deal(
    deal_id: str,
    service: DealService = Depends(get_deal_service),
) -> DealRead:
    deal = await service.get_deal(deal_id)
    if deal is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Deal {deal_id} not found",
        )
    return deal


@router.post("", response_model=DealRead, status_code=201)
async def create_deal(
    body: DealCreate,
    service: DealService = Depends(get_deal_service),
) -> DealRead:
    return await service.create_deal(body)


@router.patch("/{deal_id}", response_model=DealRead)
async def update_deal(
    deal_id: str,
    body: DealUpdate,
    service: DealService = Depends(get_deal_service),
) -> DealRead:
    try:
        return await service.update_deal(deal_id, body)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


@router.delete("/{deal_id}", status_code=204)
async def delete_deal(
    deal_id: str,
    service: DealService = Depends(get_deal_service),
) -> Response:
    try:
        await service.delete_deal(deal_id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
