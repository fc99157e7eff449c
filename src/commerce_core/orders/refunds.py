"""
Refund processing.

An order carries at most one refund. Applying it takes the refunded amount
off the subtotal and the contribution margin and recomputes the bank
transfer surcharge and total; COGS stays as it was. Cancelling it deletes the
refund and recomputes the totals from the items, which restores the
pre-refund values.
"""

from decimal import Decimal

from commerce_core.db.models import Order, OrderRefund
from commerce_core.db.session import UnitOfWork
from commerce_core.orders.mutator import load_order
from commerce_core.orders.schemas import (
    CancelRefundEligibility,
    OrderView,
    RefundDetails,
    RefundEligibility,
    RefundRequest,
    RefundResult,
    RefundView,
)
from commerce_core.orders.totals import (
    DEFAULT_BANK_TRANSFER_RATE,
    recompute_order_totals,
)
from commerce_core.shared import metrics
from commerce_core.shared.clock import Clock
from commerce_core.shared.enums import OrderStatus, RefundType
from commerce_core.shared.exceptions import (
    InvalidOrderStateError,
    InvalidRefundError,
    NoActiveRefundError,
    RefundAlreadyAppliedError,
)
from commerce_core.shared.logging_utils import get_structured_logger
from commerce_core.shared.money import HUNDRED, ZERO, quantize_money

logger = get_structured_logger(__name__)


class RefundProcessor:
    """Applies and cancels order refunds."""

    def __init__(
        self,
        bank_transfer_rate: Decimal = DEFAULT_BANK_TRANSFER_RATE,
        clock: Clock | None = None,
    ):
        self.bank_transfer_rate = bank_transfer_rate
        self.clock = clock or Clock()

    @staticmethod
    def _eligibility(order: Order) -> RefundEligibility:
        if order.status == OrderStatus.CANCELLED:
            return RefundEligibility(
                can_refund=False, reason="Cancelled orders cannot be refunded"
            )
        if order.status == OrderStatus.REFUNDED:
            return RefundEligibility(
                can_refund=False, reason="Order is already refunded"
            )
        if order.refund is not None:
            return RefundEligibility(
                can_refund=False, reason="Order already has a refund"
            )
        if order.sub_total <= ZERO:
            return RefundEligibility(
                can_refund=False, reason="Order has no refundable amount"
            )
        return RefundEligibility(can_refund=True, max_refund_amount=order.sub_total)

    async def check_eligibility(
        self, uow: UnitOfWork, order_id: int
    ) -> RefundEligibility:
        """Report whether a refund can be applied and its maximum amount."""
        async with uow as session:
            order = await load_order(session, order_id)
            return self._eligibility(order)

    def _applied_amount(self, request: RefundRequest, max_amount: Decimal) -> Decimal:
        if request.amount <= ZERO:
            raise InvalidRefundError("Refund amount must be positive")

        if request.type == RefundType.PERCENTAGE:
            if request.amount > HUNDRED:
                raise InvalidRefundError(
                    "Refund percentage must be between 0 and 100",
                    amount=request.amount,
                )
            return quantize_money(max_amount * request.amount / HUNDRED)

        if request.amount > max_amount:
            raise InvalidRefundError(
                "Refund amount exceeds the refundable amount",
                amount=request.amount,
                max_refund_amount=max_amount,
            )
        return quantize_money(request.amount)

    async def apply_refund(
        self,
        uow: UnitOfWork,
        order_id: int,
        request: RefundRequest,
        actor: str | None = None,
    ) -> RefundResult:
        """
        Apply a fixed or percentage refund to an order.

        A refund of the whole subtotal moves a completed order to
        ``refunded``; partial refunds keep the status.

        Args:
            uow: Unit of work the refund runs in
            order_id: Order to refund
            request: Refund type, amount and reason
            actor: Who processed the refund

        Returns:
            The refunded order with before/after totals

        Raises:
            RefundAlreadyAppliedError: If the order already has a refund
            InvalidOrderStateError: If the order is cancelled or refunded
            InvalidRefundError: If the amount is out of range
        """
        async with uow as session:
            order = await load_order(session, order_id)
            if order.refund is not None:
                raise RefundAlreadyAppliedError(
                    "Order already has a refund", order_id=order_id
                )

            eligibility = self._eligibility(order)
            if not eligibility.can_refund:
                raise InvalidOrderStateError(eligibility.reason, order_id=order_id)

            max_amount = order.sub_total
            applied = self._applied_amount(request, max_amount)

            original_sub_total = order.sub_total
            original_expense = order.bank_transfer_expense
            original_total = order.total_amount
            original_margin = order.total_contribution_margin_usd

            order.refund = OrderRefund(
                type=request.type,
                amount=request.amount,
                applied_amount=applied,
                reason=request.reason,
                processed_at=self.clock.now(),
                processed_by=actor,
                original_sub_total=original_sub_total,
                original_bank_transfer_expense=original_expense,
                original_total_amount=original_total,
                original_contribution_margin_usd=original_margin,
                status_before_refund=order.status,
            )
            recompute_order_totals(order, self.bank_transfer_rate)

            if applied == max_amount and order.status == OrderStatus.COMPLETED:
                order.status = OrderStatus.REFUNDED
            order.updated_at = self.clock.now()
            await session.flush()

            result = RefundResult(
                order=OrderView.from_order(order),
                refund=RefundView.model_validate(order.refund),
                details=RefundDetails(
                    original_sub_total=original_sub_total,
                    new_sub_total=order.sub_total,
                    original_bank_transfer_expense=original_expense,
                    new_bank_transfer_expense=order.bank_transfer_expense,
                    original_total_amount=original_total,
                    new_total_amount=order.total_amount,
                    original_contribution_margin=original_margin,
                    new_contribution_margin=order.total_contribution_margin_usd,
                ),
            )

        metrics.refunds_total.labels(
            operation="applied", refund_type=request.type.value
        ).inc()
        logger.info(
            "Applied refund",
            order_id=order_id,
            refund_type=request.type,
            amount=request.amount,
            applied_amount=applied,
            actor=actor,
        )
        return result

    async def check_cancel_eligibility(
        self, uow: UnitOfWork, order_id: int
    ) -> CancelRefundEligibility:
        async with uow as session:
            order = await load_order(session, order_id)
            if order.refund is None:
                return CancelRefundEligibility(
                    can_cancel_refund=False, reason="Order has no active refund"
                )
            if order.status == OrderStatus.CANCELLED:
                return CancelRefundEligibility(
                    can_cancel_refund=False,
                    reason="Refunds of cancelled orders cannot be reverted",
                )
            return CancelRefundEligibility(
                can_cancel_refund=True, refund_amount=order.refund.applied_amount
            )

    async def cancel_refund(
        self, uow: UnitOfWork, order_id: int, actor: str | None = None
    ) -> RefundResult:
        """
        Revert an order's refund and restore its totals and status.

        Raises:
            NoActiveRefundError: If the order has no refund
            InvalidOrderStateError: If the order was cancelled after the refund
        """
        async with uow as session:
            order = await load_order(session, order_id)
            refund = order.refund
            if refund is None:
                raise NoActiveRefundError(order_id)
            if order.status == OrderStatus.CANCELLED:
                raise InvalidOrderStateError(
                    "Refunds of cancelled orders cannot be reverted", order_id=order_id
                )

            refunded_sub_total = order.sub_total
            refunded_expense = order.bank_transfer_expense
            refunded_total = order.total_amount
            refunded_margin = order.total_contribution_margin_usd
            refund_type = refund.type

            if order.status == OrderStatus.REFUNDED:
                order.status = refund.status_before_refund
            order.refund = None
            recompute_order_totals(order, self.bank_transfer_rate)
            order.updated_at = self.clock.now()
            await session.flush()

            result = RefundResult(
                order=OrderView.from_order(order),
                refund=None,
                details=RefundDetails(
                    original_sub_total=refunded_sub_total,
                    new_sub_total=order.sub_total,
                    original_bank_transfer_expense=refunded_expense,
                    new_bank_transfer_expense=order.bank_transfer_expense,
                    original_total_amount=refunded_total,
                    new_total_amount=order.total_amount,
                    original_contribution_margin=refunded_margin,
                    new_contribution_margin=order.total_contribution_margin_usd,
                ),
            )

        metrics.refunds_total.labels(
            operation="cancelled", refund_type=refund_type.value
        ).inc()
        logger.info("Cancelled refund", order_id=order_id, actor=actor)
        return result
