"""
Price adjustment resolution for catalog generation.

Adjustments are request-scoped markups keyed by category, subcategory, or
both. The most specific adjustment wins:

1. one matching both the category and the subcategory
2. one matching only the subcategory
3. one matching only the category

With no match the base price is returned unchanged.
"""

from collections.abc import Iterable
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from commerce_core.shared.money import HUNDRED, quantize_money, to_decimal


class PriceAdjustment(BaseModel):
    """Percentage markup applied to a category, a subcategory, or both."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    category_id: int | None = Field(None, alias="categoryId")
    subcategory_id: int | None = Field(None, alias="subcategoryId")
    percentage_increase: Decimal = Field(
        ..., ge=0, le=1000, alias="percentageIncrease"
    )

    @model_validator(mode="after")
    def validate_target(self):
        if self.category_id is None and self.subcategory_id is None:
            raise ValueError("A price adjustment needs a categoryId or a subcategoryId")
        return self


def find_adjustment(
    category_id: int | None,
    subcategory_id: int | None,
    adjustments: Iterable[PriceAdjustment],
) -> PriceAdjustment | None:
    """Return the adjustment that applies to a category/subcategory pair."""
    exact = subcategory_only = category_only = None

    for adjustment in adjustments:
        has_category = adjustment.category_id is not None
        has_subcategory = adjustment.subcategory_id is not None

        if has_category and has_subcategory:
            if (
                exact is None
                and adjustment.category_id == category_id
                and adjustment.subcategory_id == subcategory_id
            ):
                exact = adjustment
        elif has_subcategory:
            if subcategory_only is None and adjustment.subcategory_id == subcategory_id:
                subcategory_only = adjustment
        elif category_only is None and adjustment.category_id == category_id:
            category_only = adjustment

    return exact or subcategory_only or category_only


def apply_percentage(base_price: Decimal, percentage_increase: Decimal) -> Decimal:
    return quantize_money(base_price * (1 + percentage_increase / HUNDRED))


def resolve_price(
    base_price: Decimal | int | float | str,
    category_id: int | None,
    subcategory_id: int | None,
    adjustments: Iterable[PriceAdjustment],
) -> Decimal:
    """
    Resolve the display price of a variant.

    Args:
        base_price: Variant price in USD
        category_id: Category the variant is listed under
        subcategory_id: Subcategory the variant is listed under
        adjustments: Adjustments from the catalog request

    Returns:
        Adjusted price rounded to cents
    """
    base = to_decimal(base_price)
    adjustment = find_adjustment(category_id, subcategory_id, adjustments)
    if adjustment is None:
        return quantize_money(base)
    return apply_percentage(base, adjustment.percentage_increase)


def to_ars(price_usd: Decimal, exchange_rate: Decimal) -> Decimal:
    """Convert a USD amount to ARS at the given rate, rounded to cents."""
    return quantize_money(price_usd * exchange_rate)
