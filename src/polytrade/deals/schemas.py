"""Pydantic schemas for the deal ledger.

Defines:
- Enums: DeliveryTerms, SaleSource
- Payloads: DealCreate, DealUpdate, DealRead, DealFilter
- BUSINESS_FIELDS: ordered names of the user-editable deal fields
- deal_date_key(): sortable key for the DD-MM-YYYY deal date
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator


# ── Enums ───────────────────────────────────────────────────────────────────


class DeliveryTerms(str, Enum):
    """How the sold material reaches the customer."""

    DELIVERED = "delivered"
    PICKUP = "pickup"


class SaleSource(str, Enum):
    """Whether the sale was covered by a fresh purchase or existing stock."""

    NEW = "new"
    INVENTORY = "inventory"


# ── Deal Payloads ───────────────────────────────────────────────────────────


class DealCreate(BaseModel):
    """Schema for creating a deal.

    ``date`` is kept as the day-month-year text the desk types in
    (e.g. ``"14-03-2025"``). It is stored as given; only list date
    filters read it, via ``deal_date_key``.
    """

    date: str
    sale_party: str
    quantity_sold: float = Field(ge=0)
    sale_rate: float = Field(ge=0)
    delivery_terms: DeliveryTerms
    product_code: str
    grade: str = ""
    company: str = ""
    specific_grade: str = ""
    sale_source: SaleSource = SaleSource.NEW
    purchase_party: str
    purchase_quantity: float = Field(ge=0)
    purchase_rate: float = Field(ge=0)
    sale_comments: str | None = None
    purchase_comments: str | None = None
    final_comments: str | None = None
    warehouse: str | None = None


class DealUpdate(BaseModel):
    """Schema for a partial deal update (only non-None fields are applied)."""

    date: str | None = None
    sale_party: str | None = None
    quantity_sold: float | None = Field(default=None, ge=0)
    sale_rate: float | None = Field(default=None, ge=0)
    delivery_terms: DeliveryTerms | None = None
    product_code: str | None = None
    grade: str | None = None
    company: str | None = None
    specific_grade: str | None = None
    sale_source: SaleSource | None = None
    purchase_party: str | None = None
    purchase_quantity: float | None = Field(default=None, ge=0)
    purchase_rate: float | None = Field(default=None, ge=0)
    sale_comments: str | None = None
    purchase_comments: str | None = None
    final_comments: str | None = None
    warehouse: str | None = None


class DealRead(DealCreate):
    """Schema for reading a deal (includes identifier and timestamps)."""

    id: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def last_modified(self) -> datetime | None:
        """Most recent local modification time."""
        return self.updated_at or self.created_at


DATE_FORMATS = ("%d-%m-%Y", "%Y-%m-%d")


def deal_date_key(value: str) -> str:
    """Return a sortable ``YYYYMMDD`` key for a deal date.

    Accepts the desk layout (``DD-MM-YYYY``) and ISO (``YYYY-MM-DD``).

    Raises:
        ValueError: If the text is in neither layout.
    """
    text = value.strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).strftime("%Y%m%d")
        except ValueError:
            continue
    raise ValueError(f"Unrecognized date {value!r}, expected DD-MM-YYYY")


class DealFilter(BaseModel):
    """Optional filters for listing deals.

    ``date_from`` and ``date_to`` are inclusive bounds in either layout
    ``deal_date_key`` accepts.
    """

    date_from: str | None = None
    date_to: str | None = None
    sale_party: str | None = None
    product_code: str | None = None
    delivery_terms: DeliveryTerms | None = None

    @field_validator("date_from", "date_to")
    @classmethod
    def _check_date(cls, value: str | None) -> str | None:
        if value is not None:
            deal_date_key(value)
        return value


BUSINESS_FIELDS: tuple[str, ...] = tuple(DealCreate.model_fields)
