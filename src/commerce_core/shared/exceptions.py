"""
Custom exceptions for the commerce core service.

Every error raised by the ledger, order, refund and catalog services derives
from CommerceCoreError. Each class carries the HTTP status the API layer maps
it to and a ``context`` dict with the identifiers needed to diagnose it.
"""

from typing import Any


class CommerceCoreError(Exception):
    """Base exception for all commerce core errors."""

    status_code: int = 500
    error_code: str = "COMMERCE_CORE_ERROR"

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.context = {key: value for key, value in context.items() if value is not None}

        if self.context:
            details = ", ".join(f"{key}: {value}" for key, value in self.context.items())
            message = f"{message} ({details})"

        super().__init__(message)


# ================================
# VALIDATION
# ================================


class ValidationFailedError(CommerceCoreError):
    """Raised when request input fails a business validation rule."""

    status_code = 400
    error_code = "VALIDATION_ERROR"


class InvalidQuantityError(ValidationFailedError):
    """Raised when a stock movement or item quantity is not acceptable."""

    error_code = "INVALID_QUANTITY"


class InvalidCatalogRequestError(ValidationFailedError):
    """Raised when a catalog generation request selects nothing."""

    error_code = "INVALID_CATALOG_REQUEST"


class InvalidRefundError(ValidationFailedError):
    """Raised when a refund amount or type is out of range."""

    error_code = "INVALID_REFUND"


class InvalidStatusTransitionError(ValidationFailedError):
    """Raised when an order status change is not permitted."""

    error_code = "INVALID_STATUS_TRANSITION"

    def __init__(self, current_status: str, new_status: str):
        self.current_status = current_status
        self.new_status = new_status
        super().__init__(
            f"Cannot change order status from '{current_status}' to '{new_status}'",
            current_status=current_status,
            new_status=new_status,
        )


# ================================
# CONFLICTS
# ================================


class ConflictError(CommerceCoreError):
    """Raised when an operation conflicts with the current state."""

    status_code = 409
    error_code = "CONFLICT"


class InsufficientStockError(InvalidQuantityError):
    """Raised when a decrement would leave a variant with negative stock."""

    status_code = 409
    error_code = "INSUFFICIENT_STOCK"

    def __init__(self, variant_id: int, requested: int, available: int):
        self.variant_id = variant_id
        self.requested = requested
        self.available = available
        super().__init__(
            "Insufficient stock",
            variant_id=variant_id,
            requested=requested,
            available=available,
        )


class ConcurrentStockUpdateError(ConflictError):
    """Raised when a variant's stock changed between read and conditional write."""

    error_code = "CONCURRENT_STOCK_UPDATE"


class DuplicateItemError(ConflictError):
    """Raised when adding a variant that is already an item of the order."""

    error_code = "DUPLICATE_ITEM"


class InvalidOrderStateError(ConflictError):
    """Raised when an order's status or refund state forbids the operation."""

    error_code = "INVALID_ORDER_STATE"


class RefundAlreadyAppliedError(ConflictError):
    """Raised when a second refund is requested for the same order."""

    error_code = "REFUND_ALREADY_APPLIED"


# ================================
# NOT FOUND
# ================================


class NotFoundError(CommerceCoreError):
    """Raised when a referenced entity does not exist."""

    status_code = 404
    error_code = "NOT_FOUND"


class OrderNotFoundError(NotFoundError):
    error_code = "ORDER_NOT_FOUND"

    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__("Order not found", order_id=order_id)


class VariantNotFoundError(NotFoundError):
    error_code = "VARIANT_NOT_FOUND"

    def __init__(self, variant_id: int):
        self.variant_id = variant_id
        super().__init__("Product variant not found", variant_id=variant_id)


class ItemNotFoundError(NotFoundError):
    error_code = "ITEM_NOT_FOUND"

    def __init__(self, order_id: int, variant_id: int):
        self.order_id = order_id
        self.variant_id = variant_id
        super().__init__(
            "Order has no item for this variant",
            order_id=order_id,
            variant_id=variant_id,
        )


class NoActiveRefundError(NotFoundError):
    error_code = "NO_ACTIVE_REFUND"

    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__("Order has no active refund", order_id=order_id)


class ArtifactNotFoundError(NotFoundError):
    error_code = "ARTIFACT_NOT_FOUND"


# ================================
# INFRASTRUCTURE
# ================================


class InfrastructureError(CommerceCoreError):
    """Raised when an external collaborator fails."""

    status_code = 500
    error_code = "INFRASTRUCTURE_ERROR"

    def __init__(
        self, message: str, original_error: Exception | None = None, **context: Any
    ):
        self.original_error = original_error

        if original_error:
            message = f"{message} (Original error: {original_error})"

        super().__init__(message, **context)


class RendererError(InfrastructureError):
    error_code = "RENDERER_ERROR"


class ExchangeRateError(InfrastructureError):
    error_code = "EXCHANGE_RATE_ERROR"
