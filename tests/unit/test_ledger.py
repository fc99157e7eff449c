"""
Unit tests for the inventory ledger.

Covers weighted average cost, rejection of movements that would make stock
negative, and the invariant that a variant's movements always sum to its
stock.
"""

import asyncio
from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from commerce_core.db import Database, DatabaseConfig
from commerce_core.db.models import Category, Product, Subcategory
from commerce_core.inventory import InventoryLedger, weighted_average_cost
from commerce_core.shared.enums import StockMovementReason
from commerce_core.shared.exceptions import (
    InsufficientStockError,
    InvalidQuantityError,
    VariantNotFoundError,
)


class TestWeightedAverageCost:
    def test_blends_incoming_units_by_quantity(self):
        # 10 units at $5 plus 10 units at $7
        assert weighted_average_cost(10, Decimal("5"), 10, Decimal("7")) == Decimal(
            "6.000000"
        )

    def test_outgoing_units_keep_average(self):
        assert weighted_average_cost(10, Decimal("5.5"), -3, None) == Decimal("5.5")

    def test_incoming_without_cost_keeps_average(self):
        assert weighted_average_cost(10, Decimal("5.5"), 4, None) == Decimal("5.5")

    def test_first_units_take_their_cost(self):
        assert weighted_average_cost(0, Decimal("0"), 3, Decimal("2.5")) == Decimal(
            "2.500000"
        )

    @given(
        old_stock=st.integers(min_value=1, max_value=10_000),
        old_average=st.decimals(min_value=0, max_value=1000, places=2),
        delta=st.integers(min_value=1, max_value=10_000),
        unit_cost=st.decimals(min_value=0, max_value=1000, places=2),
    )
    def test_average_stays_between_costs(self, old_stock, old_average, delta, unit_cost):
        average = weighted_average_cost(old_stock, old_average, delta, unit_cost)
        low, high = sorted([old_average, unit_cost])
        assert low - Decimal("0.000001") <= average <= high + Decimal("0.000001")


class TestRecordMovement:
    async def test_purchase_updates_stock_and_average(
        self, database, ledger, seeded, stock_of
    ):
        async with database.unit_of_work() as session:
            state = await ledger.record_movement(
                session,
                seeded.black,
                10,
                StockMovementReason.PURCHASE,
                unit_cost=Decimal("7"),
                actor="admin",
            )

        assert state.stock == 20
        # 10 seeded units at $6 plus 10 at $7
        assert state.average_cost_usd == Decimal("6.500000")
        assert await stock_of(seeded.black) == 20

        async with database.unit_of_work() as session:
            movements = await ledger.list_movements(session, seeded.black)

        assert [m.reason for m in movements] == ["initial_stock", "purchase"]
        assert movements[-1].stock_after == 20
        assert movements[-1].actor == "admin"

    async def test_insufficient_stock_leaves_no_trace(
        self, database, ledger, seeded, stock_of
    ):
        with pytest.raises(InsufficientStockError) as exc_info:
            async with database.unit_of_work() as session:
                await ledger.record_movement(
                    session, seeded.blue, -6, StockMovementReason.SALE
                )

        assert exc_info.value.status_code == 409
        assert exc_info.value.context["available"] == 5
        assert await stock_of(seeded.blue) == 5

        async with database.unit_of_work() as session:
            movements = await ledger.list_movements(session, seeded.blue)
        assert len(movements) == 1

    async def test_selling_entire_stock_reaches_zero(
        self, database, ledger, seeded, stock_of
    ):
        async with database.unit_of_work() as session:
            state = await ledger.record_movement(
                session, seeded.green, -2, StockMovementReason.SALE
            )
        assert state.stock == 0
        assert await stock_of(seeded.green) == 0

    async def test_zero_quantity_rejected(self, database, ledger, seeded):
        with pytest.raises(InvalidQuantityError):
            async with database.unit_of_work() as session:
                await ledger.record_movement(
                    session, seeded.black, 0, StockMovementReason.ADJUSTMENT
                )

    async def test_negative_unit_cost_rejected(self, database, ledger, seeded):
        with pytest.raises(InvalidQuantityError):
            async with database.unit_of_work() as session:
                await ledger.record_movement(
                    session,
                    seeded.black,
                    1,
                    StockMovementReason.PURCHASE,
                    unit_cost=Decimal("-1"),
                )

    async def test_unknown_variant(self, database, ledger, seeded):
        with pytest.raises(VariantNotFoundError):
            async with database.unit_of_work() as session:
                await ledger.record_movement(
                    session, 9999, 1, StockMovementReason.PURCHASE
                )

    async def test_rolled_back_unit_of_work_discards_movement(
        self, database, ledger, seeded, stock_of
    ):
        with pytest.raises(RuntimeError):
            async with database.unit_of_work() as session:
                await ledger.record_movement(
                    session, seeded.black, -3, StockMovementReason.SALE
                )
                raise RuntimeError("order update failed")

        assert await stock_of(seeded.black) == 10


class TestConsistency:
    async def test_consistent_after_movements(self, database, ledger, seeded):
        async with database.unit_of_work() as session:
            await ledger.record_movement(
                session, seeded.black, -4, StockMovementReason.SALE
            )
            await ledger.record_movement(
                session, seeded.black, 2, StockMovementReason.RETURN
            )
            await ledger.record_movement(
                session, seeded.black, -1, StockMovementReason.DAMAGE
            )

        async with database.unit_of_work() as session:
            report = await ledger.verify_consistency(session, seeded.black)

        assert report.consistent
        assert report.stock == 7
        assert report.ledger_total == 7
        assert report.movement_count == 4

    async def test_variant_without_initial_stock_has_no_movements(
        self, database, ledger, seeded
    ):
        async with database.unit_of_work() as session:
            report = await ledger.verify_consistency(session, seeded.red)

        assert report.consistent
        assert report.movement_count == 0


async def _replay(deltas: list[int]) -> tuple[int, int, int]:
    database = Database.from_url(DatabaseConfig.MEMORY_URL)
    await database.create_all()
    ledger = InventoryLedger()
    try:
        async with database.unit_of_work() as session:
            category = Category(slug="c", name="C")
            subcategory = Subcategory(slug="s", name="S", categories=[category])
            session.add_all([category, subcategory])
            await session.flush()
            product = Product(
                slug="p", product_model="P", sku="P-1", subcategory_id=subcategory.id
            )
            session.add(product)
            await session.flush()
            variant = await ledger.create_variant_with_stock(
                session, product.id, "Negro", "#000000", Decimal("10")
            )
            variant_id = variant.id

        rejected = 0
        for delta in deltas:
            try:
                async with database.unit_of_work() as session:
                    await ledger.record_movement(
                        session,
                        variant_id,
                        delta,
                        StockMovementReason.ADJUSTMENT,
                        unit_cost=Decimal("1") if delta > 0 else None,
                    )
            except InsufficientStockError:
                rejected += 1

        async with database.unit_of_work() as session:
            report = await ledger.verify_consistency(session, variant_id)
        return report.stock, report.ledger_total, rejected
    finally:
        await database.dispose()


@settings(max_examples=25, deadline=None)
@given(
    deltas=st.lists(
        st.integers(min_value=-20, max_value=20).filter(lambda d: d != 0),
        max_size=15,
    )
)
def test_movements_always_sum_to_stock(deltas):
    stock, ledger_total, rejected = asyncio.run(_replay(deltas))

    assert stock >= 0
    assert stock == ledger_total

    expected = 0
    expected_rejections = 0
    for delta in deltas:
        if expected + delta < 0:
            expected_rejections += 1
        else:
            expected += delta
    assert stock == expected
    assert rejected == expected_rejections
