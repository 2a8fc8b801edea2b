"""DealRepository against a real SQL engine (in-memory SQLite via aiosqlite)."""

from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

from src.polytrade.core.database import Base
from src.polytrade.deals.repository import DealRepository
from src.polytrade.deals.schemas import DealFilter, DealUpdate, DeliveryTerms


@pytest.fixture
async def repository(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/deals.db")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async def session_factory():
        async with AsyncSession(engine, expire_on_commit=False) as session:
            yield session

    yield DealRepository(session_factory)
    await engine.dispose()


class TestDateFilters:
    async def test_bounds_compare_calendar_dates_not_text(self, repository, make_deal):
        await repository.create_deal(make_deal(date="15-01-2025"), deal_id="jan")
        await repository.create_deal(make_deal(date="05-03-2025"), deal_id="mar")
        await repository.create_deal(make_deal(date="20-12-2024"), deal_id="dec")

        deals = await repository.list_deals(
            DealFilter(date_from="01-02-2025", date_to="31-03-2025")
        )

        assert [d.id for d in deals] == ["mar"]

    async def test_bounds_are_inclusive(self, repository, make_deal):
        await repository.create_deal(make_deal(date="01-02-2025"), deal_id="first")
        await repository.create_deal(make_deal(date="28-02-2025"), deal_id="last")

        deals = await repository.list_deals(
            DealFilter(date_from="01-02-2025", date_to="28-02-2025")
        )

        assert {d.id for d in deals} == {"first", "last"}

    async def test_iso_bound_is_accepted(self, repository, make_deal):
        await repository.create_deal(make_deal(date="15-01-2025"), deal_id="jan")
        await repository.create_deal(make_deal(date="05-03-2025"), deal_id="mar")

        deals = await repository.list_deals(DealFilter(date_from="2025-02-01"))

        assert [d.id for d in deals] == ["mar"]

    async def test_year_boundary(self, repository, make_deal):
        await repository.create_deal(make_deal(date="31-12-2024"), deal_id="old")
        await repository.create_deal(make_deal(date="01-01-2025"), deal_id="new")

        deals = await repository.list_deals(DealFilter(date_to="31-12-2024"))

        assert [d.id for d in deals] == ["old"]


class TestOtherFilters:
    async def test_sale_party_is_case_insensitive_substring(self, repository, make_deal):
        await repository.create_deal(make_deal(sale_party="Shree Plastics"), deal_id="a")
        await repository.create_deal(make_deal(sale_party="Acme Moulding"), deal_id="b")

        deals = await repository.list_deals(DealFilter(sale_party="plast"))

        assert [d.id for d in deals] == ["a"]

    async def test_product_code_and_delivery_terms(self, repository, make_deal):
        await repository.create_deal(
            make_deal(product_code="HD50MA180", delivery_terms="pickup"), deal_id="a"
        )
        await repository.create_deal(
            make_deal(product_code="HD50MA180", delivery_terms="delivered"), deal_id="b"
        )
        await repository.create_deal(make_deal(product_code="LL20FS010"), deal_id="c")

        deals = await repository.list_deals(
            DealFilter(product_code="HD50MA180", delivery_terms=DeliveryTerms.PICKUP)
        )

        assert [d.id for d in deals] == ["a"]

    async def test_no_filters_lists_everything(self, repository, make_deal):
        await repository.create_deal(make_deal(), deal_id="a")
        await repository.create_deal(make_deal(), deal_id="b")

        assert {d.id for d in await repository.list_deals()} == {"a", "b"}


class TestCrud:
    async def test_create_keeps_explicit_id(self, repository, make_deal):
        deal = await repository.create_deal(make_deal(warehouse="Bhiwandi"), deal_id="sheet-7")

        fetched = await repository.get_deal("sheet-7")
        assert deal.id == "sheet-7"
        assert fetched.warehouse == "Bhiwandi"
        assert fetched.created_at is not None

    async def test_create_generates_id(self, repository, make_deal):
        deal = await repository.create_deal(make_deal())

        assert deal.id
        assert await repository.get_deal(deal.id) is not None

    async def test_update_applies_only_given_fields(self, repository, make_deal):
        await repository.create_deal(make_deal(sale_rate=98.5, grade="HDPE"), deal_id="a")

        updated = await repository.update_deal("a", DealUpdate(sale_rate=101.0))

        assert updated.sale_rate == 101.0
        assert updated.grade == "HDPE"
        assert updated.updated_at is not None

    async def test_update_missing_raises(self, repository):
        with pytest.raises(ValueError, match="Deal not found"):
            await repository.update_deal("missing", DealUpdate(sale_rate=1.0))

    async def test_delete_removes_row(self, repository, make_deal):
        await repository.create_deal(make_deal(), deal_id="a")

        await repository.delete_deal("a")

        assert await repository.get_deal("a") is None

    async def test_delete_missing_raises(self, repository):
        with pytest.raises(ValueError, match="Deal not found"):
            await repository.delete_deal("missing")
