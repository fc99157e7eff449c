"""
SQLAlchemy ORM models for the product catalog.

- Category (categories)
- Subcategory (subcategories), linked to categories through subcategory_categories
- Product (products), linked to categories through product_categories
- ProductVariant (product_variants): one color of a product, owns stock and cost
"""

from decimal import Decimal

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from commerce_core.db.models.base import Base, DecimalText

subcategory_categories = Table(
    "subcategory_categories",
    Base.metadata,
    Column(
        "subcategory_id",
        ForeignKey("subcategories.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "category_id", ForeignKey("categories.id", ondelete="CASCADE"), primary_key=True
    ),
)

product_categories = Table(
    "product_categories",
    Base.metadata,
    Column(
        "product_id", ForeignKey("products.id", ondelete="CASCADE"), primary_key=True
    ),
    Column(
        "category_id", ForeignKey("categories.id", ondelete="CASCADE"), primary_key=True
    ),
)


class Category(Base):
    """Top-level catalog section (e.g. "Mochilas")."""

    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    slug: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    image: Mapped[str | None] = mapped_column(String(500), nullable=True)

    subcategories: Mapped[list["Subcategory"]] = relationship(
        "Subcategory",
        secondary=subcategory_categories,
        back_populates="categories",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Category(id={self.id}, slug='{self.slug}')>"


class Subcategory(Base):
    """Second-level catalog section; may belong to several categories."""

    __tablename__ = "subcategories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    slug: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    image: Mapped[str | None] = mapped_column(String(500), nullable=True)

    categories: Mapped[list[Category]] = relationship(
        Category,
        secondary=subcategory_categories,
        back_populates="subcategories",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Subcategory(id={self.id}, slug='{self.slug}')>"


class Product(Base):
    """A sellable model; stock and prices live on its variants."""

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    slug: Mapped[str] = mapped_column(String(160), unique=True, nullable=False)
    product_model: Mapped[str] = mapped_column(String(160), nullable=False)
    sku: Mapped[str] = mapped_column(String(80), nullable=False, index=True)
    size: Mapped[str | None] = mapped_column(String(80), nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    thumbnail: Mapped[str | None] = mapped_column(String(500), nullable=True)
    primary_image: Mapped[str | None] = mapped_column(String(500), nullable=True)
    subcategory_id: Mapped[int] = mapped_column(
        ForeignKey("subcategories.id"), nullable=False, index=True
    )

    subcategory: Mapped[Subcategory] = relationship(Subcategory, lazy="joined")
    categories: Mapped[list[Category]] = relationship(
        Category, secondary=product_categories, lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<Product(id={self.id}, sku='{self.sku}')>"


class ProductVariant(Base):
    """
    One color of a product.

    ``stock`` only changes through the inventory ledger. ``average_cost_usd``
    is the weighted average unit cost of the units currently in stock.
    """

    __tablename__ = "product_variants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )
    color_name: Mapped[str] = mapped_column(String(80), nullable=False)
    color_hex: Mapped[str] = mapped_column(String(7), nullable=False)
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    average_cost_usd: Mapped[Decimal] = mapped_column(
        DecimalText, nullable=False, default=Decimal("0")
    )
    price_usd: Mapped[Decimal] = mapped_column(DecimalText, nullable=False)
    thumbnail: Mapped[str | None] = mapped_column(String(500), nullable=True)
    images: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    product: Mapped[Product] = relationship(Product, lazy="joined")

    __table_args__ = (
        UniqueConstraint("product_id", "color_hex", name="uq_variant_product_color"),
        CheckConstraint("stock >= 0", name="ck_variant_stock_non_negative"),
        Index("idx_variant_product_stock", "product_id", "stock"),
    )

    def __repr__(self) -> str:
        return (
            f"<ProductVariant(id={self.id}, product_id={self.product_id}, "
            f"color='{self.color_name}', stock={self.stock})>"
        )
