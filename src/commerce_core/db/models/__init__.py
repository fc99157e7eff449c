"""
SQLAlchemy ORM models for the commerce core.

- base.py: Base class and the Decimal column type
- catalog.py: categories, subcategories, products and variants
- inventory.py: the stock movement ledger
- orders.py: orders, items and refunds
"""

from commerce_core.db.models.base import Base, DecimalText
from commerce_core.db.models.catalog import (
    Category,
    Product,
    ProductVariant,
    Subcategory,
    product_categories,
    subcategory_categories,
)
from commerce_core.db.models.inventory import StockMovement
from commerce_core.db.models.orders import Order, OrderItem, OrderRefund

__all__ = [
    "Base",
    "DecimalText",
    "Category",
    "Subcategory",
    "Product",
    "ProductVariant",
    "product_categories",
    "subcategory_categories",
    "StockMovement",
    "Order",
    "OrderItem",
    "OrderRefund",
]
