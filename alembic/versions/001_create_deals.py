"""Create the deals table.

Revision ID: 001_create_deals
Revises:
Create Date: 2026-10-18

One row per sale with the purchase that covers it. The primary key is text
so that deals pulled in from the spreadsheet keep the identifier stored in
their row.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_create_deals"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "deals",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("date", sa.String(20), nullable=False),
        sa.Column("sale_party", sa.String(200), nullable=False),
        sa.Column("quantity_sold", sa.Float(), nullable=False),
        sa.Column("sale_rate", sa.Float(), nullable=False),
        sa.Column("delivery_terms", sa.String(20), nullable=False),
        sa.Column("sale_comments", sa.Text(), nullable=True),
        sa.Column("product_code", sa.String(100), nullable=False),
        sa.Column("grade", sa.String(200), server_default=sa.text("''"), nullable=False),
        sa.Column("company", sa.String(200), server_default=sa.text("''"), nullable=False),
        sa.Column(
            "specific_grade", sa.String(200), server_default=sa.text("''"), nullable=False
        ),
        sa.Column(
            "sale_source", sa.String(20), server_default=sa.text("'new'"), nullable=False
        ),
        sa.Column("purchase_party", sa.String(200), nullable=False),
        sa.Column("purchase_quantity", sa.Float(), nullable=False),
        sa.Column("purchase_rate", sa.Float(), nullable=False),
        sa.Column("purchase_comments", sa.Text(), nullable=True),
        sa.Column("warehouse", sa.String(100), nullable=True),
        sa.Column("final_comments", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_index("ix_deals_sale_party", "deals", ["sale_party"])
    op.create_index("ix_deals_product_code", "deals", ["product_code"])


def downgrade() -> None:
    op.drop_index("ix_deals_product_code", table_name="deals")
    op.drop_index("ix_deals_sale_party", table_name="deals")
    op.drop_table("deals")
