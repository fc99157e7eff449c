"""Enumerations shared by the ORM models, services and API schemas."""

from enum import Enum


class OrderStatus(str, Enum):
    """Lifecycle status of an order."""

    PROCESSING = "processing"
    ON_HOLD = "on_hold"
    PENDING_PAYMENT = "pending_payment"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    BANK_TRANSFER = "bank_transfer"
    CASH_ON_DELIVERY = "cash_on_delivery"


class ShippingMethod(str, Enum):
    MOTORCYCLE = "motorcycle"
    PARCEL_COMPANY = "parcel_company"


class DeliveryType(str, Enum):
    HOME_DELIVERY = "home_delivery"
    PICKUP_POINT = "pickup_point"


class StockMovementReason(str, Enum):
    """Why a variant's stock changed."""

    INITIAL_STOCK = "initial_stock"
    PURCHASE = "purchase"
    SALE = "sale"
    RETURN = "return"
    ORDER_CANCELLED = "order_cancelled"
    ADJUSTMENT = "adjustment"
    DAMAGE = "damage"


class RefundType(str, Enum):
    FIXED = "fixed"
    PERCENTAGE = "percentage"


class ItemAction(str, Enum):
    """Item operations accepted by the order item mutator."""

    ADD = "add"
    REMOVE = "remove"
    SET = "set"
