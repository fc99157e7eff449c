"""
Unit tests for OrderItemMutator.

Every order change must keep stock and the ledger in step and roll back as a
whole when any part of it fails.
"""

from decimal import Decimal

import pytest

from commerce_core.orders.schemas import (
    ItemOperation,
    ItemPriceOverride,
    OrderDetailsUpdate,
    RefundRequest,
)
from commerce_core.shared.enums import (
    ItemAction,
    OrderStatus,
    PaymentMethod,
    RefundType,
)
from commerce_core.shared.exceptions import (
    DuplicateItemError,
    InsufficientStockError,
    InvalidOrderStateError,
    InvalidQuantityError,
    InvalidStatusTransitionError,
    ItemNotFoundError,
    OrderNotFoundError,
)


def add(variant_id: int, quantity: int) -> ItemOperation:
    return ItemOperation(
        action=ItemAction.ADD, product_variant_id=variant_id, quantity=quantity
    )


def remove(variant_id: int) -> ItemOperation:
    return ItemOperation(action=ItemAction.REMOVE, product_variant_id=variant_id)


def set_quantity(variant_id: int, quantity: int) -> ItemOperation:
    return ItemOperation(
        action=ItemAction.SET, product_variant_id=variant_id, quantity=quantity
    )


@pytest.fixture
def create(database, mutator, make_order_request):
    async def _create(items, **kwargs):
        return await mutator.create_order(
            database.unit_of_work(), make_order_request(items, **kwargs), actor="admin"
        )

    return _create


class TestCreateOrder:
    async def test_consumes_stock_and_computes_totals(self, create, seeded, stock_of):
        order = await create([(seeded.black, 2), (seeded.blue, 1)])

        assert order.order_number == 1
        assert order.status == OrderStatus.PROCESSING
        assert order.exchange_rate == Decimal("1000")
        assert order.sub_total == Decimal("280.00")
        assert order.total_cogs_usd == Decimal("52.00")
        assert order.total_contribution_margin_usd == Decimal("228.00")
        assert order.items_count == 3
        assert order.total_amount_ars == Decimal("280000.00")
        assert [item.product_variant_id for item in order.items] == [
            seeded.black,
            seeded.blue,
        ]
        assert order.items[0].cost_usd_at_purchase == Decimal("6")
        assert await stock_of(seeded.black) == 8
        assert await stock_of(seeded.blue) == 4

    async def test_order_numbers_are_sequential(self, create, seeded):
        first = await create([(seeded.black, 1)])
        second = await create([(seeded.black, 1)])
        assert second.order_number == first.order_number + 1

    async def test_insufficient_stock_creates_nothing(
        self, create, seeded, stock_of
    ):
        with pytest.raises(InsufficientStockError):
            await create([(seeded.black, 2), (seeded.red, 1)])

        assert await stock_of(seeded.black) == 10
        order = await create([(seeded.black, 1)])
        assert order.order_number == 1

    async def test_bank_transfer_surcharge(self, create, seeded):
        order = await create(
            [(seeded.black, 1)], payment_method=PaymentMethod.BANK_TRANSFER
        )
        assert order.bank_transfer_expense == Decimal("4.00")
        assert order.total_amount == Decimal("104.00")


class TestItemOperations:
    async def test_add_then_remove_restores_state(
        self, create, database, mutator, ledger, seeded, stock_of
    ):
        order = await create([(seeded.black, 1)])

        await mutator.apply_item_operations(
            database.unit_of_work(), order.id, [add(seeded.blue, 2)]
        )
        assert await stock_of(seeded.blue) == 3

        restored = await mutator.apply_item_operations(
            database.unit_of_work(), order.id, [remove(seeded.blue)]
        )

        assert await stock_of(seeded.blue) == 5
        assert restored.sub_total == order.sub_total
        assert restored.total_amount == order.total_amount
        assert restored.items_count == order.items_count
        assert [i.product_variant_id for i in restored.items] == [seeded.black]

        async with database.unit_of_work() as session:
            report = await ledger.verify_consistency(session, seeded.blue)
        assert report.consistent
        assert report.movement_count == 3

    async def test_failed_batch_rolls_back_every_operation(
        self, create, database, mutator, seeded, stock_of
    ):
        order = await create([(seeded.black, 1)])

        with pytest.raises(InsufficientStockError):
            await mutator.apply_item_operations(
                database.unit_of_work(),
                order.id,
                [add(seeded.green, 1), set_quantity(seeded.black, 4), add(seeded.blue, 99)],
            )

        assert await stock_of(seeded.green) == 2
        assert await stock_of(seeded.black) == 9
        unchanged = await mutator.get_order(database.unit_of_work(), order.id)
        assert unchanged.items_count == 1
        assert unchanged.sub_total == order.sub_total

    async def test_set_quantity_moves_stock_both_ways(
        self, create, database, mutator, seeded, stock_of
    ):
        order = await create([(seeded.black, 1)])

        grown = await mutator.apply_item_operations(
            database.unit_of_work(), order.id, [set_quantity(seeded.black, 5)]
        )
        assert await stock_of(seeded.black) == 5
        assert grown.items[0].sub_total == Decimal("500.00")

        shrunk = await mutator.apply_item_operations(
            database.unit_of_work(), order.id, [set_quantity(seeded.black, 2)]
        )
        assert await stock_of(seeded.black) == 8
        assert shrunk.items[0].quantity == 2
        assert shrunk.items[0].price_usd_at_purchase == Decimal("100")

    async def test_remove_and_re_add_in_one_batch(
        self, create, database, mutator, seeded, stock_of
    ):
        order = await create([(seeded.black, 3)])

        updated = await mutator.apply_item_operations(
            database.unit_of_work(),
            order.id,
            [remove(seeded.black), add(seeded.black, 1)],
        )

        assert updated.items_count == 1
        assert await stock_of(seeded.black) == 9

    async def test_duplicate_add_rejected(self, create, database, mutator, seeded):
        order = await create([(seeded.black, 1)])
        with pytest.raises(DuplicateItemError):
            await mutator.apply_item_operations(
                database.unit_of_work(), order.id, [add(seeded.black, 1)]
            )

    async def test_set_to_zero_rejected(self, create, database, mutator, seeded):
        order = await create([(seeded.black, 1)])
        with pytest.raises(InvalidQuantityError):
            await mutator.apply_item_operations(
                database.unit_of_work(), order.id, [set_quantity(seeded.black, 0)]
            )

    async def test_remove_missing_item(self, create, database, mutator, seeded):
        order = await create([(seeded.black, 1)])
        with pytest.raises(ItemNotFoundError):
            await mutator.apply_item_operations(
                database.unit_of_work(), order.id, [remove(seeded.blue)]
            )

    async def test_unknown_order(self, database, mutator, seeded):
        with pytest.raises(OrderNotFoundError):
            await mutator.apply_item_operations(
                database.unit_of_work(), 404, [add(seeded.black, 1)]
            )

    async def test_items_locked_while_refund_active(
        self, create, database, mutator, refunds, seeded
    ):
        order = await create([(seeded.black, 1)])
        await refunds.apply_refund(
            database.unit_of_work(),
            order.id,
            RefundRequest(type=RefundType.FIXED, amount=Decimal("10")),
        )

        with pytest.raises(InvalidOrderStateError):
            await mutator.apply_item_operations(
                database.unit_of_work(), order.id, [add(seeded.blue, 1)]
            )


class TestPriceOverrides:
    async def test_override_recomputes_without_touching_stock(
        self, create, database, mutator, seeded, stock_of
    ):
        order = await create([(seeded.black, 2)])

        updated = await mutator.override_item_prices(
            database.unit_of_work(),
            order.id,
            [
                ItemPriceOverride(
                    product_variant_id=seeded.black,
                    price_usd_at_purchase=Decimal("90"),
                )
            ],
        )

        assert updated.items[0].sub_total == Decimal("180.00")
        assert updated.sub_total == Decimal("180.00")
        assert updated.total_contribution_margin_usd == Decimal("168.00")
        assert await stock_of(seeded.black) == 8


class TestStatusChanges:
    async def test_cancel_returns_stock(
        self, create, database, mutator, ledger, seeded, stock_of
    ):
        order = await create([(seeded.black, 3), (seeded.blue, 2)])

        result = await mutator.update_status(
            database.unit_of_work(), order.id, OrderStatus.CANCELLED
        )

        assert result.success
        assert result.order.status == OrderStatus.CANCELLED
        assert await stock_of(seeded.black) == 10
        assert await stock_of(seeded.blue) == 5

        async with database.unit_of_work() as session:
            movements = await ledger.list_movements(session, seeded.black)
        assert movements[-1].reason == "order_cancelled"
        assert movements[-1].order_id == order.id

        with pytest.raises(InvalidOrderStateError):
            await mutator.apply_item_operations(
                database.unit_of_work(), order.id, [add(seeded.green, 1)]
            )

    async def test_pending_order_holds_no_stock_until_completed(
        self, create, database, mutator, seeded, stock_of
    ):
        order = await create([(seeded.blue, 5)], status=OrderStatus.PENDING_PAYMENT)
        assert await stock_of(seeded.blue) == 5

        report = await mutator.check_stock_availability(
            database.unit_of_work(), order.id
        )
        assert not report.has_conflicts

        result = await mutator.update_status(
            database.unit_of_work(), order.id, OrderStatus.COMPLETED
        )
        assert result.success
        assert result.order.status == OrderStatus.COMPLETED
        assert await stock_of(seeded.blue) == 0

    async def test_completing_stale_pending_order(
        self, create, database, mutator, ledger, seeded, stock_of
    ):
        order = await create([(seeded.blue, 3)], status=OrderStatus.PENDING_PAYMENT)
        # Another order sells 4 of the 5 units while payment is pending
        await create([(seeded.blue, 4)])

        report = await mutator.check_stock_availability(
            database.unit_of_work(), order.id
        )
        assert report.has_conflicts
        assert report.conflicts[0].required_quantity == 3
        assert report.conflicts[0].available_stock == 1

        result = await mutator.update_status(
            database.unit_of_work(), order.id, OrderStatus.COMPLETED
        )
        assert not result.success
        assert result.stock_conflicts[0].product_variant_id == seeded.blue
        assert result.order.status == OrderStatus.PENDING_PAYMENT
        assert await stock_of(seeded.blue) == 1

        forced = await mutator.update_status(
            database.unit_of_work(), order.id, OrderStatus.COMPLETED, force=True
        )
        assert forced.success
        assert forced.order.status == OrderStatus.COMPLETED
        assert await stock_of(seeded.blue) == 0

        async with database.unit_of_work() as session:
            movements = await ledger.list_movements(session, seeded.blue)
            report = await ledger.verify_consistency(session, seeded.blue)
        assert movements[-1].quantity_delta == -1
        assert movements[-1].note == "Completed 2 units short"
        assert report.consistent

    async def test_cancel_pending_order_releases_nothing(
        self, create, database, mutator, ledger, seeded, stock_of
    ):
        order = await create([(seeded.black, 2)], status=OrderStatus.PENDING_PAYMENT)

        await mutator.update_status(
            database.unit_of_work(), order.id, OrderStatus.CANCELLED
        )

        assert await stock_of(seeded.black) == 10
        async with database.unit_of_work() as session:
            movements = await ledger.list_movements(session, seeded.black)
        assert [m.reason for m in movements] == ["initial_stock"]

    async def test_moving_to_pending_payment_returns_stock(
        self, create, database, mutator, seeded, stock_of
    ):
        order = await create([(seeded.black, 2)])
        assert await stock_of(seeded.black) == 8

        await mutator.update_status(
            database.unit_of_work(), order.id, OrderStatus.PENDING_PAYMENT
        )
        assert await stock_of(seeded.black) == 10

        # Item changes on a pending order leave stock alone
        await mutator.apply_item_operations(
            database.unit_of_work(), order.id, [set_quantity(seeded.black, 4)]
        )
        assert await stock_of(seeded.black) == 10

    async def test_cancel_blocked_while_refund_applied(
        self, create, database, mutator, refunds, seeded, stock_of
    ):
        order = await create([(seeded.black, 2)], status=OrderStatus.COMPLETED)
        await refunds.apply_refund(
            database.unit_of_work(),
            order.id,
            RefundRequest(type=RefundType.FIXED, amount=Decimal("10")),
        )

        with pytest.raises(InvalidOrderStateError):
            await mutator.update_status(
                database.unit_of_work(), order.id, OrderStatus.CANCELLED
            )
        assert await stock_of(seeded.black) == 8

        await refunds.cancel_refund(database.unit_of_work(), order.id)
        result = await mutator.update_status(
            database.unit_of_work(), order.id, OrderStatus.CANCELLED
        )
        assert result.success
        assert await stock_of(seeded.black) == 10

    async def test_refunded_cannot_be_set_directly(
        self, create, database, mutator, seeded
    ):
        order = await create([(seeded.black, 1)], status=OrderStatus.COMPLETED)
        with pytest.raises(InvalidStatusTransitionError):
            await mutator.update_status(
                database.unit_of_work(), order.id, OrderStatus.REFUNDED
            )

    async def test_invalid_transition(self, create, database, mutator, seeded):
        order = await create([(seeded.black, 1)], status=OrderStatus.COMPLETED)
        with pytest.raises(InvalidStatusTransitionError):
            await mutator.update_status(
                database.unit_of_work(), order.id, OrderStatus.PROCESSING
            )

    async def test_hide_only_cancelled_orders(self, create, database, mutator, seeded):
        order = await create([(seeded.black, 1)])
        with pytest.raises(InvalidOrderStateError):
            await mutator.hide_cancelled_order(database.unit_of_work(), order.id)

        await mutator.update_status(
            database.unit_of_work(), order.id, OrderStatus.CANCELLED
        )
        hidden = await mutator.hide_cancelled_order(database.unit_of_work(), order.id)
        assert hidden.is_visible is False


class TestOrderDetails:
    async def test_payment_method_change_recomputes_totals(
        self, create, database, mutator, seeded
    ):
        order = await create([(seeded.black, 1)])
        assert order.bank_transfer_expense is None

        updated = await mutator.update_order_details(
            database.unit_of_work(),
            order.id,
            OrderDetailsUpdate(
                payment_method=PaymentMethod.BANK_TRANSFER, comments="Llamar antes"
            ),
        )

        assert updated.bank_transfer_expense == Decimal("4.00")
        assert updated.total_amount == Decimal("104.00")
        assert updated.comments == "Llamar antes"
