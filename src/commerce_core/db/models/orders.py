"""
SQLAlchemy ORM models for orders.

- Order (orders): header, shipping data and aggregate totals
- OrderItem (order_items): one variant line with price and cost snapshots
- OrderRefund (order_refunds): at most one active refund per order
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from commerce_core.db.models.base import Base, DecimalText, utcnow
from commerce_core.db.models.catalog import ProductVariant
from commerce_core.shared.enums import (
    OrderStatus,
    PaymentMethod,
    RefundType,
    ShippingMethod,
)


def _enum(enum_class) -> Enum:
    return Enum(
        enum_class,
        native_enum=False,
        length=30,
        values_callable=lambda members: [member.value for member in members],
    )


class Order(Base):
    """
    Customer order (orders).

    Aggregate columns (sub_total through items_count) are always derived
    from the item set by the order totals calculator.
    """

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_number: Mapped[int] = mapped_column(
        Integer, unique=True, nullable=False, comment="Sequential human-facing number"
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    status: Mapped[OrderStatus] = mapped_column(
        _enum(OrderStatus), nullable=False, default=OrderStatus.PROCESSING, index=True
    )
    payment_method: Mapped[PaymentMethod] = mapped_column(
        _enum(PaymentMethod), nullable=False
    )
    shipping_method: Mapped[ShippingMethod] = mapped_column(
        _enum(ShippingMethod), nullable=False
    )
    shipping_address: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    allow_view_invoice: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    is_visible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    exchange_rate: Mapped[Decimal] = mapped_column(
        DecimalText, nullable=False, comment="USD to ARS rate captured at creation"
    )

    # Aggregates
    sub_total: Mapped[Decimal] = mapped_column(
        DecimalText, nullable=False, default=Decimal("0")
    )
    total_cogs_usd: Mapped[Decimal] = mapped_column(
        DecimalText, nullable=False, default=Decimal("0")
    )
    total_contribution_margin_usd: Mapped[Decimal] = mapped_column(
        DecimalText, nullable=False, default=Decimal("0")
    )
    contribution_margin_percentage: Mapped[Decimal] = mapped_column(
        DecimalText, nullable=False, default=Decimal("0")
    )
    bank_transfer_expense: Mapped[Decimal | None] = mapped_column(
        DecimalText, nullable=True
    )
    total_amount: Mapped[Decimal] = mapped_column(
        DecimalText, nullable=False, default=Decimal("0")
    )
    total_amount_ars: Mapped[Decimal] = mapped_column(
        DecimalText, nullable=False, default=Decimal("0")
    )
    items_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    items: Mapped[list["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.position",
        lazy="selectin",
    )
    refund: Mapped["OrderRefund | None"] = relationship(
        "OrderRefund",
        back_populates="order",
        cascade="all, delete-orphan",
        uselist=False,
        lazy="selectin",
    )

    __table_args__ = (Index("idx_order_status_created", "status", "created_at"),)

    def item_for_variant(self, variant_id: int) -> "OrderItem | None":
        for item in self.items:
            if item.product_variant_id == variant_id:
                return item
        return None

    def __repr__(self) -> str:
        return (
            f"<Order(id={self.id}, number={self.order_number}, "
            f"status='{self.status.value}')>"
        )


class OrderItem(Base):
    """
    One variant line of an order (order_items).

    Price and cost are snapshots taken when the line was added; later
    changes to the variant do not affect them.
    """

    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    product_variant_id: Mapped[int] = mapped_column(
        ForeignKey("product_variants.id"), nullable=False
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price_usd_at_purchase: Mapped[Decimal] = mapped_column(DecimalText, nullable=False)
    cost_usd_at_purchase: Mapped[Decimal] = mapped_column(
        DecimalText, nullable=False, comment="Unit average cost snapshot"
    )
    cogs_usd: Mapped[Decimal] = mapped_column(
        DecimalText, nullable=False, comment="cost_usd_at_purchase x quantity"
    )
    sub_total: Mapped[Decimal] = mapped_column(DecimalText, nullable=False)
    contribution_margin_usd: Mapped[Decimal] = mapped_column(
        DecimalText, nullable=False
    )

    order: Mapped[Order] = relationship(Order, back_populates="items")
    variant: Mapped[ProductVariant] = relationship(ProductVariant, lazy="joined")

    __table_args__ = (
        UniqueConstraint("order_id", "product_variant_id", name="uq_item_order_variant"),
        CheckConstraint("quantity >= 1", name="ck_item_quantity_positive"),
    )

    def __repr__(self) -> str:
        return (
            f"<OrderItem(order_id={self.order_id}, "
            f"variant_id={self.product_variant_id}, quantity={self.quantity})>"
        )


class OrderRefund(Base):
    """
    Refund applied to an order (order_refunds).

    The ``original_*`` columns hold the order totals from before the refund so
    they can be reported and restored.
    """

    __tablename__ = "order_refunds"

    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), primary_key=True
    )
    type: Mapped[RefundType] = mapped_column(_enum(RefundType), nullable=False)
    amount: Mapped[Decimal] = mapped_column(
        DecimalText, nullable=False, comment="Requested value (USD or percent)"
    )
    applied_amount: Mapped[Decimal] = mapped_column(
        DecimalText, nullable=False, comment="USD actually deducted"
    )
    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    processed_by: Mapped[str | None] = mapped_column(String(120), nullable=True)
    original_sub_total: Mapped[Decimal] = mapped_column(DecimalText, nullable=False)
    original_bank_transfer_expense: Mapped[Decimal | None] = mapped_column(
        DecimalText, nullable=True
    )
    original_total_amount: Mapped[Decimal] = mapped_column(DecimalText, nullable=False)
    original_contribution_margin_usd: Mapped[Decimal] = mapped_column(
        DecimalText, nullable=False
    )
    status_before_refund: Mapped[OrderStatus] = mapped_column(
        _enum(OrderStatus), nullable=False
    )

    order: Mapped[Order] = relationship(Order, back_populates="refund")

    def __repr__(self) -> str:
        return (
            f"<OrderRefund(order_id={self.order_id}, type='{self.type.value}', "
            f"applied={self.applied_amount})>"
        )
