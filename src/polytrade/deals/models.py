"""Deal ledger persistence model.

One row per deal. The primary key is a text UUID assigned by the repository
unless the caller supplies one (a deal pulled in from the spreadsheet keeps
the identifier written in its row).
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, Index, String, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column

from src.polytrade.core.database import Base


class DealModel(Base):
    """A sale and the purchase that covers it.

    Monetary rates are per kilogram; quantities are kilograms. Delivery terms
    and sale source are stored as their enum string values.
    """

    __tablename__ = "deals"
    __table_args__ = (
        Index("ix_deals_sale_party", "sale_party"),
        Index("ix_deals_product_code", "product_code"),
    )

    id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    date: Mapped[str] = mapped_column(String(20), nullable=False)

    # Sale side
    sale_party: Mapped[str] = mapped_column(String(200), nullable=False)
    quantity_sold: Mapped[float] = mapped_column(Float, nullable=False)
    sale_rate: Mapped[float] = mapped_column(Float, nullable=False)
    delivery_terms: Mapped[str] = mapped_column(String(20), nullable=False)
    sale_comments: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Product identification
    product_code: Mapped[str] = mapped_column(String(100), nullable=False)
    grade: Mapped[str] = mapped_column(String(200), default="", server_default=text("''"))
    company: Mapped[str] = mapped_column(String(200), default="", server_default=text("''"))
    specific_grade: Mapped[str] = mapped_column(
        String(200), default="", server_default=text("''")
    )
    sale_source: Mapped[str] = mapped_column(
        String(20), default="new", server_default=text("'new'")
    )

    # Purchase side
    purchase_party: Mapped[str] = mapped_column(String(200), nullable=False)
    purchase_quantity: Mapped[float] = mapped_column(Float, nullable=False)
    purchase_rate: Mapped[float] = mapped_column(Float, nullable=False)
    purchase_comments: Mapped[str | None] = mapped_column(Text, nullable=True)

    warehouse: Mapped[str | None] = mapped_column(String(100), nullable=True)
    final_comments: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )
