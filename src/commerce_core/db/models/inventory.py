"""
SQLAlchemy ORM model for the append-only stock movement ledger.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from commerce_core.db.models.base import Base, DecimalText, utcnow


class StockMovement(Base):
    """
    One signed change to a variant's stock (stock_movements).

    Rows are only ever inserted. For every variant the sum of
    ``quantity_delta`` equals ``ProductVariant.stock``.
    """

    __tablename__ = "stock_movements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    variant_id: Mapped[int] = mapped_column(
        ForeignKey("product_variants.id"), nullable=False, comment="Variant moved"
    )
    quantity_delta: Mapped[int] = mapped_column(
        Integer, nullable=False, comment="Signed quantity, never zero"
    )
    reason: Mapped[str] = mapped_column(
        String(30), nullable=False, index=True, comment="StockMovementReason value"
    )
    unit_cost_usd: Mapped[Decimal | None] = mapped_column(
        DecimalText, nullable=True, comment="Unit cost of incoming units"
    )
    stock_after: Mapped[int] = mapped_column(
        Integer, nullable=False, comment="Variant stock after this movement"
    )
    average_cost_after: Mapped[Decimal] = mapped_column(
        DecimalText, nullable=False, comment="Weighted average cost after this movement"
    )
    order_id: Mapped[int | None] = mapped_column(
        Integer, nullable=True, index=True, comment="Order that caused the movement"
    )
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    actor: Mapped[str | None] = mapped_column(String(120), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (Index("idx_movement_variant_id", "variant_id", "id"),)

    def __repr__(self) -> str:
        return (
            f"<StockMovement(id={self.id}, variant_id={self.variant_id}, "
            f"delta={self.quantity_delta}, reason='{self.reason}')>"
        )
