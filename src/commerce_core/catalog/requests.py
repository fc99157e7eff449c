"""
Catalog generation request models.

``CatalogGenerationForm`` is the lenient shape accepted over HTTP (the admin
panel sends lists as JSON or comma-separated strings and booleans as text).
It is normalized once into the strict ``CatalogRequest`` the pipeline uses.
"""

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from commerce_core.pricing.resolver import PriceAdjustment
from commerce_core.shared.exceptions import InvalidCatalogRequestError

_TRUE_VALUES = {"true", "1", "yes", "on"}
_FALSE_VALUES = {"false", "0", "no", "off", ""}


def _coerce_list(value: Any) -> Any:
    """Accept a list, a JSON array string, a comma-separated string or a scalar."""
    if value is None:
        return []
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return []
        if text.startswith("["):
            try:
                return json.loads(text)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid JSON list: {e}")
        return [part.strip() for part in text.split(",") if part.strip()]
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _coerce_bool(value: Any) -> Any:
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_VALUES:
            return True
        if text in _FALSE_VALUES:
            return False
        raise ValueError(f"Invalid boolean value: {value!r}")
    return value


class CatalogRequest(BaseModel):
    """Normalized catalog generation request."""

    model_config = ConfigDict(frozen=True)

    category_ids: tuple[int, ...] = ()
    subcategory_ids: tuple[int, ...] = ()
    price_adjustments: tuple[PriceAdjustment, ...] = ()
    in_stock: bool = False
    show_prices: bool = True
    logo_url: str | None = None


def validate_catalog_request(request: CatalogRequest) -> CatalogRequest:
    """
    Check that a request selects something.

    Raises:
        InvalidCatalogRequestError: If no category or subcategory is selected
            and ``in_stock`` is false
    """
    if not request.category_ids and not request.subcategory_ids and not request.in_stock:
        raise InvalidCatalogRequestError(
            "Select at least one category or subcategory, or only in-stock products"
        )
    return request


class CatalogGenerationForm(BaseModel):
    """Catalog generation request as sent by the admin panel."""

    model_config = ConfigDict(populate_by_name=True)

    categories: list[int] = Field(default_factory=list)
    subcategories: list[int] = Field(default_factory=list)
    price_adjustments: list[PriceAdjustment] = Field(
        default_factory=list, alias="priceAdjustments"
    )
    in_stock: bool = Field(False, alias="inStock")
    show_prices: bool = Field(True, alias="showPrices")
    logo_url: str | None = Field(None, alias="logoUrl")

    @field_validator("categories", "subcategories", "price_adjustments", mode="before")
    @classmethod
    def coerce_list(cls, v: Any) -> Any:
        return _coerce_list(v)

    @field_validator("in_stock", "show_prices", mode="before")
    @classmethod
    def coerce_bool(cls, v: Any) -> Any:
        return _coerce_bool(v)

    def to_request(self) -> CatalogRequest:
        """Normalize into a CatalogRequest, dropping duplicate ids."""
        return CatalogRequest(
            category_ids=tuple(dict.fromkeys(self.categories)),
            subcategory_ids=tuple(dict.fromkeys(self.subcategories)),
            price_adjustments=tuple(self.price_adjustments),
            in_stock=self.in_stock,
            show_prices=self.show_prices,
            logo_url=self.logo_url or None,
        )
