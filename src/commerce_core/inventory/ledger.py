"""
Inventory ledger.

Every change to a variant's stock goes through ``InventoryLedger.record_movement``,
which validates the change, updates the variant's stock and weighted average
cost with a conditional UPDATE, and appends exactly one StockMovement row. All
of this happens in the caller's session, so it commits or rolls back together
with whatever order change caused it.
"""

from decimal import Decimal

from pydantic import BaseModel, Field
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from commerce_core.db.models import ProductVariant, StockMovement
from commerce_core.shared import metrics
from commerce_core.shared.clock import Clock
from commerce_core.shared.enums import StockMovementReason
from commerce_core.shared.exceptions import (
    ConcurrentStockUpdateError,
    InsufficientStockError,
    InvalidQuantityError,
    VariantNotFoundError,
)
from commerce_core.shared.logging_utils import get_structured_logger
from commerce_core.shared.money import ZERO, quantize_cost, to_decimal

logger = get_structured_logger(__name__)


class VariantStockState(BaseModel):
    """Stock and cost of a variant after a movement."""

    variant_id: int
    stock: int = Field(..., ge=0)
    average_cost_usd: Decimal
    movement_id: int | None = None


class ConsistencyReport(BaseModel):
    """Result of replaying a variant's movements against its stock column."""

    variant_id: int
    stock: int
    ledger_total: int
    movement_count: int
    consistent: bool


def weighted_average_cost(
    old_stock: int,
    old_average: Decimal,
    delta_qty: int,
    unit_cost: Decimal | None,
) -> Decimal:
    """
    Compute the average unit cost after a stock change.

    Incoming units with a known cost blend into the average by quantity.
    Outgoing units, or incoming units without a cost, leave it unchanged.

    Args:
        old_stock: Units on hand before the change (>= 0)
        old_average: Average unit cost before the change
        delta_qty: Signed change in units
        unit_cost: Cost of each incoming unit, if known

    Returns:
        New average cost, rounded to six decimal places
    """
    if delta_qty <= 0 or unit_cost is None:
        return old_average

    new_stock = old_stock + delta_qty
    total_cost = Decimal(old_stock) * old_average + Decimal(delta_qty) * unit_cost
    return quantize_cost(total_cost / Decimal(new_stock))


class InventoryLedger:
    """Records stock movements and keeps variant stock and cost in step."""

    def __init__(self, clock: Clock | None = None):
        self.clock = clock or Clock()

    async def record_movement(
        self,
        session: AsyncSession,
        variant_id: int,
        delta_qty: int,
        reason: StockMovementReason,
        unit_cost: Decimal | int | float | str | None = None,
        order_id: int | None = None,
        note: str | None = None,
        actor: str | None = None,
    ) -> VariantStockState:
        """
        Apply a signed stock change to a variant and append it to the ledger.

        Args:
            session: Session of the caller's unit of work
            variant_id: Variant whose stock changes
            delta_qty: Signed quantity; positive adds stock, negative removes it
            reason: Why the stock changed
            unit_cost: Cost per incoming unit, blended into the average cost
            order_id: Order that caused the movement, if any
            note: Free-text note stored with the movement
            actor: Who requested the movement

        Returns:
            Stock and average cost after the movement

        Raises:
            InvalidQuantityError: If delta_qty is zero or unit_cost is negative
            InsufficientStockError: If the movement would make stock negative
            VariantNotFoundError: If the variant does not exist
            ConcurrentStockUpdateError: If stock changed since it was read
        """
        if delta_qty == 0:
            metrics.stock_rejections_total.labels(error_type="zero_quantity").inc()
            raise InvalidQuantityError(
                "Stock movement quantity cannot be zero", variant_id=variant_id
            )

        cost = to_decimal(unit_cost) if unit_cost is not None else None
        if cost is not None and cost < ZERO:
            raise InvalidQuantityError(
                "Unit cost cannot be negative", variant_id=variant_id, unit_cost=cost
            )

        variant = await session.get(ProductVariant, variant_id, populate_existing=True)
        if variant is None:
            raise VariantNotFoundError(variant_id)

        old_stock = variant.stock
        new_stock = old_stock + delta_qty
        if new_stock < 0:
            metrics.stock_rejections_total.labels(error_type="insufficient_stock").inc()
            logger.warning(
                "Rejected stock movement",
                variant_id=variant_id,
                requested=-delta_qty,
                available=old_stock,
                reason=reason,
            )
            raise InsufficientStockError(variant_id, -delta_qty, old_stock)

        new_average = weighted_average_cost(
            old_stock, variant.average_cost_usd, delta_qty, cost
        )

        result = await session.execute(
            update(ProductVariant)
            .where(ProductVariant.id == variant_id, ProductVariant.stock == old_stock)
            .values(stock=new_stock, average_cost_usd=new_average)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            metrics.stock_rejections_total.labels(error_type="concurrent_update").inc()
            raise ConcurrentStockUpdateError(
                "Variant stock changed during the movement",
                variant_id=variant_id,
                expected_stock=old_stock,
            )

        # Keep the loaded instance in step without marking it dirty
        set_committed_value(variant, "stock", new_stock)
        set_committed_value(variant, "average_cost_usd", new_average)

        movement = StockMovement(
            variant_id=variant_id,
            quantity_delta=delta_qty,
            reason=reason.value,
            unit_cost_usd=cost,
            stock_after=new_stock,
            average_cost_after=new_average,
            order_id=order_id,
            note=note,
            actor=actor,
            created_at=self.clock.now(),
        )
        session.add(movement)
        await session.flush()

        metrics.stock_movements_total.labels(reason=reason.value).inc()
        logger.debug(
            "Recorded stock movement",
            variant_id=variant_id,
            delta=delta_qty,
            reason=reason,
            stock_after=new_stock,
            order_id=order_id,
        )

        return VariantStockState(
            variant_id=variant_id,
            stock=new_stock,
            average_cost_usd=new_average,
            movement_id=movement.id,
        )

    async def create_variant_with_stock(
        self,
        session: AsyncSession,
        product_id: int,
        color_name: str,
        color_hex: str,
        price_usd: Decimal,
        initial_stock: int = 0,
        initial_cost_usd: Decimal | None = None,
        thumbnail: str | None = None,
        images: list[str] | None = None,
        actor: str | None = None,
    ) -> ProductVariant:
        """
        Create a variant with zero stock, then record its opening stock.

        The opening quantity is booked as an ``initial_stock`` movement so
        the ledger sum matches the variant's stock from the first row.
        """
        if initial_stock < 0:
            raise InvalidQuantityError(
                "Initial stock cannot be negative", initial_stock=initial_stock
            )

        variant = ProductVariant(
            product_id=product_id,
            color_name=color_name,
            color_hex=color_hex.upper(),
            stock=0,
            average_cost_usd=ZERO,
            price_usd=to_decimal(price_usd),
            thumbnail=thumbnail,
            images=list(images or []),
        )
        session.add(variant)
        await session.flush()

        if initial_stock > 0:
            await self.record_movement(
                session,
                variant.id,
                initial_stock,
                StockMovementReason.INITIAL_STOCK,
                unit_cost=initial_cost_usd,
                note="Initial stock",
                actor=actor,
            )

        return variant

    async def get_stock_state(
        self, session: AsyncSession, variant_id: int
    ) -> VariantStockState:
        variant = await session.get(ProductVariant, variant_id, populate_existing=True)
        if variant is None:
            raise VariantNotFoundError(variant_id)
        return VariantStockState(
            variant_id=variant.id,
            stock=variant.stock,
            average_cost_usd=variant.average_cost_usd,
        )

    async def list_movements(
        self, session: AsyncSession, variant_id: int
    ) -> list[StockMovement]:
        """Return a variant's movements, oldest first."""
        result = await session.execute(
            select(StockMovement)
            .where(StockMovement.variant_id == variant_id)
            .order_by(StockMovement.id)
        )
        return list(result.scalars().all())

    async def verify_consistency(
        self, session: AsyncSession, variant_id: int
    ) -> ConsistencyReport:
        """Check that the sum of a variant's movements equals its stock."""
        state = await self.get_stock_state(session, variant_id)

        result = await session.execute(
            select(
                func.coalesce(func.sum(StockMovement.quantity_delta), 0),
                func.count(StockMovement.id),
            ).where(StockMovement.variant_id == variant_id)
        )
        ledger_total, movement_count = result.one()

        report = ConsistencyReport(
            variant_id=variant_id,
            stock=state.stock,
            ledger_total=int(ledger_total),
            movement_count=int(movement_count),
            consistent=int(ledger_total) == state.stock,
        )
        if not report.consistent:
            logger.error(
                "Ledger does not match variant stock",
                variant_id=variant_id,
                stock=report.stock,
                ledger_total=report.ledger_total,
            )
        return report
