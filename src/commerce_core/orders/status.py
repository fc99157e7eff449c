"""
Order status transitions.

``cancelled`` and ``refunded`` are terminal. ``refunded`` is only entered
through the refund processor, never by a direct status change.
"""

from commerce_core.shared.enums import OrderStatus
from commerce_core.shared.exceptions import InvalidStatusTransitionError

TERMINAL_STATUSES = frozenset({OrderStatus.CANCELLED, OrderStatus.REFUNDED})

ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PROCESSING: frozenset(
        {
            OrderStatus.ON_HOLD,
            OrderStatus.PENDING_PAYMENT,
            OrderStatus.COMPLETED,
            OrderStatus.CANCELLED,
        }
    ),
    OrderStatus.ON_HOLD: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PENDING_PAYMENT: frozenset(
        {OrderStatus.COMPLETED, OrderStatus.CANCELLED}
    ),
    OrderStatus.COMPLETED: frozenset({OrderStatus.CANCELLED}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
}

# Statuses whose items are taken out of stock; a pending payment order only
# consumes stock when it is completed
STOCK_HOLDING_STATUSES = frozenset(
    {
        OrderStatus.PROCESSING,
        OrderStatus.ON_HOLD,
        OrderStatus.COMPLETED,
        OrderStatus.REFUNDED,
    }
)

# Statuses an order may be created in
INITIAL_STATUSES = frozenset(
    {
        OrderStatus.PROCESSING,
        OrderStatus.ON_HOLD,
        OrderStatus.PENDING_PAYMENT,
        OrderStatus.COMPLETED,
    }
)


def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL_STATUSES


def holds_stock(status: OrderStatus) -> bool:
    return status in STOCK_HOLDING_STATUSES


def can_transition(current: OrderStatus, new: OrderStatus) -> bool:
    return new in ALLOWED_TRANSITIONS[current]


def ensure_transition(current: OrderStatus, new: OrderStatus) -> None:
    """Raise InvalidStatusTransitionError unless ``current -> new`` is allowed."""
    if not can_transition(current, new):
        raise InvalidStatusTransitionError(current.value, new.value)
