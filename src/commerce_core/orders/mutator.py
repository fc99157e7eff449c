"""
Order item mutation, order creation and status changes.

Every public method runs inside the unit of work passed to it. Stock
movements, item rows and recomputed totals are written in that one
transaction, so a failure at any step leaves no partial change behind.
"""

from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from commerce_core.db.models import Order, OrderItem, ProductVariant
from commerce_core.db.session import UnitOfWork
from commerce_core.inventory.ledger import InventoryLedger
from commerce_core.orders.schemas import (
    CreateOrderRequest,
    ItemOperation,
    ItemPriceOverride,
    OrderDetailsUpdate,
    OrderView,
    ShippingAddress,
    StatusUpdateResult,
    StockAvailabilityReport,
    StockConflict,
)
from commerce_core.orders.status import (
    INITIAL_STATUSES,
    ensure_transition,
    holds_stock,
    is_terminal,
)
from commerce_core.orders.totals import (
    DEFAULT_BANK_TRANSFER_RATE,
    compute_item_amounts,
    recompute_order_totals,
)
from commerce_core.pricing.exchange import ExchangeRateProvider
from commerce_core.shared import metrics
from commerce_core.shared.clock import Clock
from commerce_core.shared.enums import ItemAction, OrderStatus, StockMovementReason
from commerce_core.shared.exceptions import (
    DuplicateItemError,
    InvalidOrderStateError,
    InvalidQuantityError,
    InvalidStatusTransitionError,
    ItemNotFoundError,
    OrderNotFoundError,
    ValidationFailedError,
    VariantNotFoundError,
)
from commerce_core.shared.logging_utils import get_structured_logger

logger = get_structured_logger(__name__)


async def load_order(session: AsyncSession, order_id: int) -> Order:
    """Load an order with its items, variants and refund, or raise."""
    order = await session.get(Order, order_id, populate_existing=True)
    if order is None:
        raise OrderNotFoundError(order_id)
    return order


class OrderItemMutator:
    """Applies item, status and header changes to orders."""

    def __init__(
        self,
        ledger: InventoryLedger,
        exchange_rates: ExchangeRateProvider,
        bank_transfer_rate: Decimal = DEFAULT_BANK_TRANSFER_RATE,
        clock: Clock | None = None,
    ):
        self.ledger = ledger
        self.exchange_rates = exchange_rates
        self.bank_transfer_rate = bank_transfer_rate
        self.clock = clock or Clock()

    # ================================
    # ITEM OPERATIONS
    # ================================

    async def apply_item_operations(
        self,
        uow: UnitOfWork,
        order_id: int,
        operations: list[ItemOperation],
        actor: str | None = None,
    ) -> OrderView:
        """
        Apply a batch of add/remove/set operations in one transaction.

        Args:
            uow: Unit of work the whole batch runs in
            order_id: Order to change
            operations: Operations applied in order
            actor: Who requested the change, recorded on stock movements

        Returns:
            The order after all operations and the totals recompute

        Raises:
            OrderNotFoundError: If the order does not exist
            InvalidOrderStateError: If the order is terminal or has a refund
            DuplicateItemError: If an added variant is already in the order
            ItemNotFoundError: If a removed/set variant is not in the order
            InsufficientStockError: If a variant does not have enough stock
            InvalidQuantityError: If a quantity is not positive
        """
        async with uow as session:
            order = await load_order(session, order_id)
            self._ensure_items_mutable(order)

            for operation in operations:
                await self._apply_operation(session, order, operation, actor)
                # Deletes must reach the database before a re-add of the same variant
                await session.flush()

            recompute_order_totals(order, self.bank_transfer_rate)
            await session.flush()
            view = OrderView.from_order(order)

        logger.info(
            "Applied order item operations",
            order_id=order_id,
            operations=[op.action.value for op in operations],
            actor=actor,
        )
        return view

    async def _apply_operation(
        self,
        session: AsyncSession,
        order: Order,
        operation: ItemOperation,
        actor: str | None,
    ) -> None:
        if operation.action == ItemAction.ADD:
            await self._add_item(
                session, order, operation.product_variant_id, operation.quantity, actor
            )
        elif operation.action == ItemAction.REMOVE:
            await self._remove_item(session, order, operation.product_variant_id, actor)
        else:
            await self._set_quantity(
                session, order, operation.product_variant_id, operation.quantity, actor
            )
        metrics.order_item_operations_total.labels(action=operation.action.value).inc()

    async def _add_item(
        self,
        session: AsyncSession,
        order: Order,
        variant_id: int,
        quantity: int,
        actor: str | None,
    ) -> OrderItem:
        if quantity < 1:
            raise InvalidQuantityError(
                "Quantity must be at least 1", variant_id=variant_id, quantity=quantity
            )
        if order.item_for_variant(variant_id) is not None:
            raise DuplicateItemError(
                "Variant is already in the order; set its quantity instead",
                order_id=order.id,
                variant_id=variant_id,
            )

        variant = await session.get(ProductVariant, variant_id)
        if variant is None:
            raise VariantNotFoundError(variant_id)

        if holds_stock(order.status):
            await self.ledger.record_movement(
                session,
                variant_id,
                -quantity,
                StockMovementReason.SALE,
                order_id=order.id,
                actor=actor,
            )

        next_position = max((item.position for item in order.items), default=-1) + 1
        item = OrderItem(
            product_variant_id=variant_id,
            position=next_position,
            quantity=quantity,
            price_usd_at_purchase=variant.price_usd,
            cost_usd_at_purchase=variant.average_cost_usd,
            variant=variant,
        )
        compute_item_amounts(item)
        order.items.append(item)
        return item

    async def _remove_item(
        self, session: AsyncSession, order: Order, variant_id: int, actor: str | None
    ) -> None:
        item = order.item_for_variant(variant_id)
        if item is None:
            raise ItemNotFoundError(order.id, variant_id)

        if holds_stock(order.status):
            await self.ledger.record_movement(
                session,
                variant_id,
                item.quantity,
                StockMovementReason.RETURN,
                order_id=order.id,
                note="Item removed from order",
                actor=actor,
            )
        order.items.remove(item)

    async def _set_quantity(
        self,
        session: AsyncSession,
        order: Order,
        variant_id: int,
        quantity: int,
        actor: str | None,
    ) -> None:
        if quantity < 1:
            raise InvalidQuantityError(
                "Quantity must be at least 1; use remove to delete the item",
                variant_id=variant_id,
                quantity=quantity,
            )
        item = order.item_for_variant(variant_id)
        if item is None:
            raise ItemNotFoundError(order.id, variant_id)

        delta = quantity - item.quantity
        if delta == 0:
            return

        if holds_stock(order.status):
            reason = StockMovementReason.SALE if delta > 0 else StockMovementReason.RETURN
            await self.ledger.record_movement(
                session,
                variant_id,
                -delta,
                reason,
                order_id=order.id,
                note=None if delta > 0 else "Item quantity reduced",
                actor=actor,
            )

        item.quantity = quantity
        compute_item_amounts(item)

    def _ensure_items_mutable(self, order: Order) -> None:
        if is_terminal(order.status):
            raise InvalidOrderStateError(
                f"Items of a {order.status.value} order cannot be changed",
                order_id=order.id,
            )
        if order.refund is not None:
            raise InvalidOrderStateError(
                "Cancel the refund before changing the order's items",
                order_id=order.id,
            )

    # ================================
    # PRICE OVERRIDES
    # ================================

    async def override_item_prices(
        self,
        uow: UnitOfWork,
        order_id: int,
        overrides: list[ItemPriceOverride],
        actor: str | None = None,
    ) -> OrderView:
        """
        Correct the price and cost snapshots of existing items.

        Price and cost changes re-derive the item's subtotal, COGS and margin;
        an explicit subtotal or margin in the override wins over the derived
        value. Stock is never touched.
        """
        async with uow as session:
            order = await load_order(session, order_id)
            self._ensure_items_mutable(order)

            for override in overrides:
                item = order.item_for_variant(override.product_variant_id)
                if item is None:
                    raise ItemNotFoundError(order.id, override.product_variant_id)

                if override.cost_usd_at_purchase is not None:
                    item.cost_usd_at_purchase = override.cost_usd_at_purchase
                if override.price_usd_at_purchase is not None:
                    item.price_usd_at_purchase = override.price_usd_at_purchase
                compute_item_amounts(item)

                if override.sub_total is not None:
                    item.sub_total = override.sub_total
                    item.contribution_margin_usd = item.sub_total - item.cogs_usd
                if override.contribution_margin_usd is not None:
                    item.contribution_margin_usd = override.contribution_margin_usd

            recompute_order_totals(order, self.bank_transfer_rate)
            await session.flush()
            view = OrderView.from_order(order)

        logger.info(
            "Overrode order item prices",
            order_id=order_id,
            variants=[o.product_variant_id for o in overrides],
            actor=actor,
        )
        return view

    # ================================
    # ORDER CREATION
    # ================================

    async def create_order(
        self, uow: UnitOfWork, request: CreateOrderRequest, actor: str | None = None
    ) -> OrderView:
        """
        Create an order with its items, consuming stock for each item unless
        the order starts out pending payment.

        The order number is the next in sequence and the exchange rate is
        captured once, at creation.
        """
        if request.status not in INITIAL_STATUSES:
            raise InvalidStatusTransitionError("new", request.status.value)

        exchange_rate = await self.exchange_rates.get_rate()

        async with uow as session:
            result = await session.execute(select(func.max(Order.order_number)))
            order_number = (result.scalar() or 0) + 1

            now = self.clock.now()
            order = Order(
                order_number=order_number,
                user_id=request.user_id,
                status=request.status,
                payment_method=request.payment_method,
                shipping_method=request.shipping_method,
                shipping_address=request.shipping_address.model_dump(mode="json"),
                allow_view_invoice=request.allow_view_invoice,
                is_visible=True,
                comments=request.comments,
                exchange_rate=exchange_rate,
                created_at=request.created_at or now,
                updated_at=now,
                items=[],
                refund=None,
            )
            session.add(order)
            await session.flush()

            for new_item in request.items:
                await self._add_item(
                    session, order, new_item.product_variant_id, new_item.quantity, actor
                )
                await session.flush()

            recompute_order_totals(order, self.bank_transfer_rate)
            await session.flush()
            view = OrderView.from_order(order)

        logger.info(
            "Created order",
            order_id=view.id,
            order_number=view.order_number,
            total_amount=view.total_amount,
            actor=actor,
        )
        return view

    # ================================
    # STATUS AND DETAILS
    # ================================

    async def check_stock_availability(
        self, uow: UnitOfWork, order_id: int
    ) -> StockAvailabilityReport:
        """
        Report items of a pending payment order that exceed live stock.

        Read-only. Orders in any other status report no conflicts.
        """
        async with uow as session:
            order = await load_order(session, order_id)
            conflicts = await self._find_stock_conflicts(session, order)

        return StockAvailabilityReport(
            order_id=order_id, has_conflicts=bool(conflicts), conflicts=conflicts
        )

    async def _find_stock_conflicts(
        self, session: AsyncSession, order: Order
    ) -> list[StockConflict]:
        if order.status != OrderStatus.PENDING_PAYMENT or not order.items:
            return []

        variant_ids = [item.product_variant_id for item in order.items]
        result = await session.execute(
            select(ProductVariant)
            .where(ProductVariant.id.in_(variant_ids))
            .execution_options(populate_existing=True)
        )
        variants = {variant.id: variant for variant in result.scalars().all()}

        conflicts = []
        for item in order.items:
            variant = variants.get(item.product_variant_id)
            available = variant.stock if variant is not None else 0
            if item.quantity > available:
                product = variant.product if variant is not None else None
                conflicts.append(
                    StockConflict(
                        product_variant_id=item.product_variant_id,
                        product_model=product.product_model if product else None,
                        sku=product.sku if product else None,
                        color_name=variant.color_name if variant else None,
                        required_quantity=item.quantity,
                        available_stock=available,
                    )
                )
        return conflicts

    async def _take_stock(
        self,
        session: AsyncSession,
        order: Order,
        conflicts: list[StockConflict],
        actor: str | None,
    ) -> None:
        # A forced completion takes only the units that are left
        available = {c.product_variant_id: c.available_stock for c in conflicts}
        for item in order.items:
            quantity = min(
                item.quantity, available.get(item.product_variant_id, item.quantity)
            )
            if quantity < 1:
                continue
            shortfall = item.quantity - quantity
            await self.ledger.record_movement(
                session,
                item.product_variant_id,
                -quantity,
                StockMovementReason.SALE,
                order_id=order.id,
                note=f"Completed {shortfall} units short" if shortfall else None,
                actor=actor,
            )

    async def _release_stock(
        self,
        session: AsyncSession,
        order: Order,
        new_status: OrderStatus,
        actor: str | None,
    ) -> None:
        if new_status == OrderStatus.CANCELLED:
            reason, note = StockMovementReason.ORDER_CANCELLED, None
        else:
            reason, note = StockMovementReason.RETURN, "Order awaiting payment"
        for item in order.items:
            await self.ledger.record_movement(
                session,
                item.product_variant_id,
                item.quantity,
                reason,
                order_id=order.id,
                note=note,
                actor=actor,
            )

    async def update_status(
        self,
        uow: UnitOfWork,
        order_id: int,
        new_status: OrderStatus,
        force: bool = False,
        actor: str | None = None,
    ) -> StatusUpdateResult:
        """
        Move an order to a new status.

        Completing a pending payment order takes its items out of stock. Items
        that exceed live stock are conflicts: without ``force`` nothing changes
        and the conflicts are returned; with ``force`` the order completes and
        takes whatever stock is left. Leaving a stock-holding status (cancel,
        or back to pending payment) returns every item's quantity to stock.

        Raises:
            InvalidStatusTransitionError: If the transition is not allowed
            InvalidOrderStateError: If the order is cancelled with a refund applied
            InsufficientStockError: If stock ran out between the check and the update
        """
        async with uow as session:
            order = await load_order(session, order_id)
            current = order.status

            if new_status == current:
                return StatusUpdateResult(
                    success=True,
                    message=f"Order already {current.value}",
                    order=OrderView.from_order(order),
                )
            if new_status == OrderStatus.REFUNDED:
                # Only the refund processor may mark an order refunded
                raise InvalidStatusTransitionError(current.value, new_status.value)
            ensure_transition(current, new_status)
            if new_status == OrderStatus.CANCELLED and order.refund is not None:
                raise InvalidOrderStateError(
                    "Cancel the refund before cancelling the order", order_id=order.id
                )

            if not holds_stock(current) and holds_stock(new_status):
                conflicts = await self._find_stock_conflicts(session, order)
                if conflicts and not force:
                    return StatusUpdateResult(
                        success=False,
                        message="Order has stock conflicts",
                        order=OrderView.from_order(order),
                        stock_conflicts=conflicts,
                    )
                await self._take_stock(session, order, conflicts, actor)
            elif holds_stock(current) and not holds_stock(new_status):
                await self._release_stock(session, order, new_status, actor)

            order.status = new_status
            order.updated_at = self.clock.now()
            await session.flush()
            view = OrderView.from_order(order)

        metrics.order_status_changes_total.labels(
            from_status=current.value, to_status=new_status.value
        ).inc()
        logger.info(
            "Changed order status",
            order_id=order_id,
            from_status=current,
            to_status=new_status,
            actor=actor,
        )
        return StatusUpdateResult(
            success=True, message=f"Order status set to {new_status.value}", order=view
        )

    async def update_order_details(
        self, uow: UnitOfWork, order_id: int, update: OrderDetailsUpdate
    ) -> OrderView:
        """Update header fields; a payment method change recomputes totals."""
        async with uow as session:
            order = await load_order(session, order_id)
            if is_terminal(order.status):
                raise InvalidOrderStateError(
                    f"A {order.status.value} order cannot be edited", order_id=order_id
                )

            shipping_method = update.shipping_method or order.shipping_method
            if update.shipping_address is not None or update.shipping_method is not None:
                address = update.shipping_address
                if address is None:
                    address = ShippingAddress.model_validate(order.shipping_address)
                try:
                    address.validate_for(shipping_method)
                except ValueError as e:
                    raise ValidationFailedError(str(e), order_id=order_id)
                order.shipping_method = shipping_method
                order.shipping_address = address.model_dump(mode="json")

            if update.payment_method is not None:
                order.payment_method = update.payment_method
            if update.allow_view_invoice is not None:
                order.allow_view_invoice = update.allow_view_invoice
            if update.comments is not None:
                order.comments = update.comments
            if update.created_at is not None:
                order.created_at = update.created_at

            recompute_order_totals(order, self.bank_transfer_rate)
            order.updated_at = self.clock.now()
            await session.flush()
            return OrderView.from_order(order)

    async def hide_cancelled_order(self, uow: UnitOfWork, order_id: int) -> OrderView:
        """Hide a cancelled order from the customer's order list."""
        async with uow as session:
            order = await load_order(session, order_id)
            if order.status != OrderStatus.CANCELLED:
                raise InvalidOrderStateError(
                    "Only cancelled orders can be hidden", order_id=order_id
                )
            order.is_visible = False
            await session.flush()
            return OrderView.from_order(order)

    async def get_order(self, uow: UnitOfWork, order_id: int) -> OrderView:
        async with uow as session:
            return OrderView.from_order(await load_order(session, order_id))
