"""
Order and item amount calculations.

Order aggregates are never edited directly: they are recomputed from the
item set (less any active refund) after every change.
"""

from decimal import Decimal

from commerce_core.db.models import Order, OrderItem
from commerce_core.pricing.resolver import to_ars
from commerce_core.shared.enums import PaymentMethod
from commerce_core.shared.money import ZERO, percentage_of, quantize_money

DEFAULT_BANK_TRANSFER_RATE = Decimal("0.04")


def compute_item_amounts(item: OrderItem) -> None:
    """Derive an item's subtotal, COGS and margin from its snapshots."""
    quantity = Decimal(item.quantity)
    item.sub_total = quantize_money(item.price_usd_at_purchase * quantity)
    item.cogs_usd = quantize_money(item.cost_usd_at_purchase * quantity)
    item.contribution_margin_usd = item.sub_total - item.cogs_usd


def bank_transfer_expense(
    sub_total: Decimal, payment_method: PaymentMethod, rate: Decimal
) -> Decimal | None:
    """Surcharge for bank transfer payments; None for other methods."""
    if payment_method != PaymentMethod.BANK_TRANSFER:
        return None
    return quantize_money(sub_total * rate)


def recompute_order_totals(
    order: Order, bank_transfer_rate: Decimal = DEFAULT_BANK_TRANSFER_RATE
) -> Order:
    """
    Recompute every aggregate of an order from its items.

    With an active refund, the refund's applied amount is taken off the
    subtotal and the contribution margin; COGS is unaffected.

    Args:
        order: Order with its items (and refund) loaded
        bank_transfer_rate: Fraction of the subtotal charged for bank transfers

    Returns:
        The same order, updated in place
    """
    sub_total = sum((item.sub_total for item in order.items), ZERO)
    cogs = sum((item.cogs_usd for item in order.items), ZERO)
    margin = sum((item.contribution_margin_usd for item in order.items), ZERO)

    if order.refund is not None:
        sub_total -= order.refund.applied_amount
        margin -= order.refund.applied_amount

    expense = bank_transfer_expense(sub_total, order.payment_method, bank_transfer_rate)
    total = sub_total + (expense or ZERO)

    order.sub_total = quantize_money(sub_total)
    order.total_cogs_usd = quantize_money(cogs)
    order.total_contribution_margin_usd = quantize_money(margin)
    order.contribution_margin_percentage = percentage_of(margin, sub_total)
    order.bank_transfer_expense = expense
    order.total_amount = quantize_money(total)
    order.total_amount_ars = to_ars(order.total_amount, order.exchange_rate)
    order.items_count = sum(item.quantity for item in order.items)
    return order
