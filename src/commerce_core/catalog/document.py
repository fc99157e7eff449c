"""Catalog document models handed to the renderer."""

from decimal import Decimal

from pydantic import BaseModel, Field


class CatalogVariant(BaseModel):
    id: int
    color_name: str
    color_hex: str
    stock: int
    thumbnail: str
    images: list[str] = Field(default_factory=list)
    price_usd: Decimal
    price_ars: Decimal


class CatalogProduct(BaseModel):
    id: int
    slug: str
    product_model: str
    sku: str
    size: str | None = None
    thumbnail: str
    primary_image: str
    variants: list[CatalogVariant]


class CatalogSubcategory(BaseModel):
    id: int
    slug: str
    name: str
    title: str
    description: str
    image: str
    products: list[CatalogProduct]


class CatalogCategory(BaseModel):
    id: int
    slug: str
    name: str
    title: str
    description: str
    image: str
    subcategories: list[CatalogSubcategory]


class CatalogDocument(BaseModel):
    """Everything the renderer needs to produce one catalog."""

    title: str
    description: str = ""
    client_name: str = ""
    logo_url: str | None = None
    generated_at: str
    dollar_base_value: Decimal
    show_prices: bool
    total_products: int
    total_variants: int
    categories: list[CatalogCategory]
