"""
Pydantic request and view models for orders and refunds.

Views are built from ORM objects inside the unit of work and are what the
services return, so callers never touch detached ORM state.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    field_validator,
    model_validator,
)

from commerce_core.db.models import Order, OrderItem, OrderRefund
from commerce_core.shared.enums import (
    DeliveryType,
    ItemAction,
    OrderStatus,
    PaymentMethod,
    RefundType,
    ShippingMethod,
)

# Decimal in Python, plain number in JSON responses
Money = Annotated[
    Decimal, PlainSerializer(float, return_type=float, when_used="json")
]


# ================================
# SHIPPING
# ================================


class ShippingAddress(BaseModel):
    """Recipient and delivery data stored with the order."""

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=254)
    phone_number: str = Field(..., min_length=6, max_length=30)
    dni: str = Field(..., min_length=6, max_length=12, description="National ID")
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    postal_code: str = Field(..., min_length=1, max_length=10)
    company_name: str | None = Field(None, max_length=100)
    street_address: str | None = Field(None, max_length=200)
    apartment: str | None = Field(None, max_length=50)
    delivery_type: DeliveryType | None = None
    pickup_point_address: str | None = Field(None, max_length=200)
    shipping_company: str | None = Field(None, max_length=100)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        local, _, domain = v.strip().partition("@")
        if not local or "." not in domain:
            raise ValueError("Invalid email address")
        return v.strip().lower()

    @field_validator("dni", "phone_number")
    @classmethod
    def validate_digits(cls, v: str) -> str:
        digits = v.replace(" ", "").replace("-", "").lstrip("+")
        if not digits.isdigit():
            raise ValueError("Must contain only digits")
        return v

    def validate_for(self, shipping_method: ShippingMethod) -> "ShippingAddress":
        """Check the fields required by the chosen shipping method."""
        if shipping_method == ShippingMethod.PARCEL_COMPANY:
            if self.delivery_type is None:
                raise ValueError("delivery_type is required for parcel company shipping")
            if (
                self.delivery_type == DeliveryType.HOME_DELIVERY
                and not self.street_address
            ):
                raise ValueError("street_address is required for home delivery")
            if (
                self.delivery_type == DeliveryType.PICKUP_POINT
                and not self.pickup_point_address
            ):
                raise ValueError("pickup_point_address is required for pickup point")
        elif not self.street_address:
            raise ValueError("street_address is required for motorcycle delivery")
        return self


# ================================
# REQUESTS
# ================================


class ItemOperation(BaseModel):
    """One add/remove/set operation on an order's items."""

    action: ItemAction
    product_variant_id: int = Field(..., gt=0)
    quantity: int | None = Field(None, ge=0)

    @model_validator(mode="after")
    def validate_quantity_present(self):
        if self.action in (ItemAction.ADD, ItemAction.SET) and self.quantity is None:
            raise ValueError(f"quantity is required for '{self.action.value}'")
        return self


class ItemOperationsRequest(BaseModel):
    operations: list[ItemOperation] = Field(..., min_length=1)


class ItemPriceOverride(BaseModel):
    """Admin correction of an item's snapshots; never touches stock."""

    product_variant_id: int = Field(..., gt=0)
    cost_usd_at_purchase: Decimal | None = Field(None, ge=0)
    price_usd_at_purchase: Decimal | None = Field(None, ge=0)
    sub_total: Decimal | None = Field(None, ge=0)
    contribution_margin_usd: Decimal | None = None

    @model_validator(mode="after")
    def validate_has_change(self):
        if all(
            value is None
            for value in (
                self.cost_usd_at_purchase,
                self.price_usd_at_purchase,
                self.sub_total,
                self.contribution_margin_usd,
            )
        ):
            raise ValueError("At least one price field must be provided")
        return self


class ItemPriceOverridesRequest(BaseModel):
    overrides: list[ItemPriceOverride] = Field(..., min_length=1)


class NewOrderItem(BaseModel):
    product_variant_id: int = Field(..., gt=0)
    quantity: int = Field(..., ge=1)


class CreateOrderRequest(BaseModel):
    """Order created by an administrator on behalf of a customer."""

    user_id: str = Field(..., min_length=1, max_length=64)
    items: list[NewOrderItem] = Field(..., min_length=1)
    payment_method: PaymentMethod
    shipping_method: ShippingMethod
    shipping_address: ShippingAddress
    status: OrderStatus = OrderStatus.PROCESSING
    allow_view_invoice: bool = False
    comments: str | None = Field(None, max_length=1000)
    created_at: datetime | None = Field(
        None, description="Override the creation date (e.g. for phone orders)"
    )

    @model_validator(mode="after")
    def validate_shipping(self):
        self.shipping_address.validate_for(self.shipping_method)
        return self


class OrderDetailsUpdate(BaseModel):
    """Editable order header fields; omitted fields are left unchanged."""

    payment_method: PaymentMethod | None = None
    shipping_method: ShippingMethod | None = None
    shipping_address: ShippingAddress | None = None
    allow_view_invoice: bool | None = None
    comments: str | None = Field(None, max_length=1000)
    created_at: datetime | None = None


class StatusUpdateRequest(BaseModel):
    status: OrderStatus
    force: bool = Field(
        False, description="Complete a pending payment order despite stock conflicts"
    )


class RefundRequest(BaseModel):
    type: RefundType
    amount: Decimal = Field(..., gt=0)
    reason: str | None = Field(None, max_length=500)


# ================================
# VIEWS
# ================================


class OrderItemView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_variant_id: int
    product_model: str | None = None
    sku: str | None = None
    color_name: str | None = None
    quantity: int
    price_usd_at_purchase: Money
    cost_usd_at_purchase: Money
    cogs_usd: Money
    sub_total: Money
    contribution_margin_usd: Money

    @classmethod
    def from_item(cls, item: OrderItem) -> "OrderItemView":
        variant = item.variant
        product = variant.product if variant is not None else None
        return cls(
            product_variant_id=item.product_variant_id,
            product_model=product.product_model if product is not None else None,
            sku=product.sku if product is not None else None,
            color_name=variant.color_name if variant is not None else None,
            quantity=item.quantity,
            price_usd_at_purchase=item.price_usd_at_purchase,
            cost_usd_at_purchase=item.cost_usd_at_purchase,
            cogs_usd=item.cogs_usd,
            sub_total=item.sub_total,
            contribution_margin_usd=item.contribution_margin_usd,
        )


class RefundView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    type: RefundType
    amount: Money
    applied_amount: Money
    reason: str | None = None
    processed_at: datetime
    processed_by: str | None = None
    original_sub_total: Money


class OrderView(BaseModel):
    """Snapshot of an order with its items and totals."""

    id: int
    order_number: int
    user_id: str
    status: OrderStatus
    payment_method: PaymentMethod
    shipping_method: ShippingMethod
    shipping_address: dict[str, Any]
    allow_view_invoice: bool
    is_visible: bool
    comments: str | None = None
    exchange_rate: Money
    items: list[OrderItemView]
    sub_total: Money
    total_cogs_usd: Money
    total_contribution_margin_usd: Money
    contribution_margin_percentage: Money
    bank_transfer_expense: Money | None = None
    total_amount: Money
    total_amount_ars: Money
    items_count: int
    refund: RefundView | None = None
    created_at: datetime
    updated_at: datetime | None = None

    @classmethod
    def from_order(cls, order: Order) -> "OrderView":
        refund: OrderRefund | None = order.refund
        return cls(
            id=order.id,
            order_number=order.order_number,
            user_id=order.user_id,
            status=order.status,
            payment_method=order.payment_method,
            shipping_method=order.shipping_method,
            shipping_address=dict(order.shipping_address),
            allow_view_invoice=order.allow_view_invoice,
            is_visible=order.is_visible,
            comments=order.comments,
            exchange_rate=order.exchange_rate,
            items=[OrderItemView.from_item(item) for item in order.items],
            sub_total=order.sub_total,
            total_cogs_usd=order.total_cogs_usd,
            total_contribution_margin_usd=order.total_contribution_margin_usd,
            contribution_margin_percentage=order.contribution_margin_percentage,
            bank_transfer_expense=order.bank_transfer_expense,
            total_amount=order.total_amount,
            total_amount_ars=order.total_amount_ars,
            items_count=order.items_count,
            refund=RefundView.model_validate(refund) if refund is not None else None,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )


class StockConflict(BaseModel):
    product_variant_id: int
    product_model: str | None = None
    sku: str | None = None
    color_name: str | None = None
    required_quantity: int
    available_stock: int


class StockAvailabilityReport(BaseModel):
    order_id: int
    has_conflicts: bool
    conflicts: list[StockConflict] = Field(default_factory=list)


class StatusUpdateResult(BaseModel):
    success: bool
    message: str
    order: OrderView | None = None
    stock_conflicts: list[StockConflict] | None = None


class RefundEligibility(BaseModel):
    can_refund: bool
    reason: str | None = None
    max_refund_amount: Money | None = None


class CancelRefundEligibility(BaseModel):
    can_cancel_refund: bool
    reason: str | None = None
    refund_amount: Money | None = None


class RefundDetails(BaseModel):
    """Totals before and after a refund was applied or cancelled."""

    original_sub_total: Money
    new_sub_total: Money
    original_bank_transfer_expense: Money | None = None
    new_bank_transfer_expense: Money | None = None
    original_total_amount: Money
    new_total_amount: Money
    original_contribution_margin: Money
    new_contribution_margin: Money


class RefundResult(BaseModel):
    order: OrderView
    refund: RefundView | None = None
    details: RefundDetails
