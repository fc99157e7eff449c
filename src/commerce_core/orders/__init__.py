"""Order item mutation, status changes, totals and refunds."""

from commerce_core.orders.mutator import OrderItemMutator, load_order
from commerce_core.orders.refunds import RefundProcessor
from commerce_core.orders.totals import compute_item_amounts, recompute_order_totals

__all__ = [
    "OrderItemMutator",
    "RefundProcessor",
    "compute_item_amounts",
    "load_order",
    "recompute_order_totals",
]
