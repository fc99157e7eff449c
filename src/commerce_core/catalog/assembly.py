"""
Catalog data loading and hierarchy assembly.

Data is read with a fixed number of queries (categories, subcategories,
products, variants) regardless of how many entries the catalog has, then
nested in memory as category -> subcategory -> product -> variant. Branches
that end up with nothing below them are pruned.

A subcategory belongs to a category only through the explicit
``subcategory_categories`` link; a product appears under a
(category, subcategory) pair when it is in that subcategory and linked to
that category.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from commerce_core.catalog.document import (
    CatalogCategory,
    CatalogDocument,
    CatalogProduct,
    CatalogSubcategory,
    CatalogVariant,
)
from commerce_core.catalog.requests import CatalogRequest
from commerce_core.db.models import (
    Category,
    Product,
    ProductVariant,
    Subcategory,
    subcategory_categories,
)
from commerce_core.pricing.resolver import resolve_price, to_ars
from commerce_core.shared.logging_utils import get_structured_logger

logger = get_structured_logger(__name__)

_ABSOLUTE_PREFIXES = ("http://", "https://", "data:")


@dataclass
class CatalogData:
    """Rows loaded for one catalog request."""

    categories: list[Category]
    subcategories: list[Subcategory]
    products: list[Product]
    variants: list[ProductVariant]


def resolve_image_url(path: str | None, base_url: str, placeholder: str) -> str:
    """
    Make an image reference absolute.

    Absolute URLs and data URIs are returned as they are. Relative paths are
    prefixed with ``base_url``. A missing image becomes the placeholder.
    """
    if not path or not path.strip():
        path = placeholder
    path = path.strip()
    if path.startswith(_ABSOLUTE_PREFIXES) or not base_url:
        return path
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


def format_generated_at(now: datetime, timezone: str) -> str:
    try:
        zone = ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown catalog time zone, using UTC", timezone=timezone)
        zone = ZoneInfo("UTC")
    return now.astimezone(zone).strftime("%d/%m/%Y %H:%M")


async def fetch_catalog_data(
    session: AsyncSession, request: CatalogRequest
) -> CatalogData:
    """Load the rows a catalog request can draw from."""
    category_ids = list(request.category_ids)
    subcategory_ids = list(request.subcategory_ids)

    category_query = select(Category).order_by(Category.name, Category.id)
    if category_ids:
        category_query = category_query.where(Category.id.in_(category_ids))
    elif subcategory_ids:
        linked = select(subcategory_categories.c.category_id).where(
            subcategory_categories.c.subcategory_id.in_(subcategory_ids)
        )
        category_query = category_query.where(Category.id.in_(linked))
    categories = list((await session.scalars(category_query)).unique())
    selected_category_ids = [c.id for c in categories]

    subcategory_query = select(Subcategory).order_by(Subcategory.name, Subcategory.id)
    if subcategory_ids:
        subcategory_query = subcategory_query.where(Subcategory.id.in_(subcategory_ids))
    else:
        linked = select(subcategory_categories.c.subcategory_id).where(
            subcategory_categories.c.category_id.in_(selected_category_ids)
        )
        subcategory_query = subcategory_query.where(Subcategory.id.in_(linked))
    subcategories = list((await session.scalars(subcategory_query)).unique())

    product_query = (
        select(Product)
        .where(Product.subcategory_id.in_([s.id for s in subcategories]))
        .order_by(Product.product_model, Product.id)
    )
    products = list((await session.scalars(product_query)).unique())

    variant_query = (
        select(ProductVariant)
        .where(ProductVariant.product_id.in_([p.id for p in products]))
        .order_by(ProductVariant.product_id, ProductVariant.id)
    )
    if request.in_stock:
        variant_query = variant_query.where(ProductVariant.stock > 0)
    variants = list((await session.scalars(variant_query)).unique())

    logger.debug(
        "Loaded catalog data",
        categories=len(categories),
        subcategories=len(subcategories),
        products=len(products),
        variants=len(variants),
    )
    return CatalogData(
        categories=categories,
        subcategories=subcategories,
        products=products,
        variants=variants,
    )


class CatalogAssembler:
    """Builds the nested catalog document from loaded rows."""

    def __init__(self, image_base_url: str = "", placeholder_image: str = ""):
        self.image_base_url = image_base_url
        self.placeholder_image = placeholder_image

    def _image(self, path: str | None) -> str:
        return resolve_image_url(path, self.image_base_url, self.placeholder_image)

    def _variant(
        self,
        variant: ProductVariant,
        category_id: int,
        subcategory_id: int,
        request: CatalogRequest,
        exchange_rate: Decimal,
    ) -> CatalogVariant:
        price_usd = resolve_price(
            variant.price_usd, category_id, subcategory_id, request.price_adjustments
        )
        return CatalogVariant(
            id=variant.id,
            color_name=variant.color_name,
            color_hex=variant.color_hex,
            stock=variant.stock,
            thumbnail=self._image(variant.thumbnail),
            images=[self._image(image) for image in variant.images or []],
            price_usd=price_usd,
            price_ars=to_ars(price_usd, exchange_rate),
        )

    def assemble(
        self,
        data: CatalogData,
        request: CatalogRequest,
        exchange_rate: Decimal,
        title: str,
        generated_at: str,
        logo_url: str | None = None,
        description: str = "",
        client_name: str = "",
    ) -> CatalogDocument:
        variants_by_product: dict[int, list[ProductVariant]] = {}
        for variant in data.variants:
            variants_by_product.setdefault(variant.product_id, []).append(variant)

        products_by_subcategory: dict[int, list[Product]] = {}
        for product in data.products:
            products_by_subcategory.setdefault(product.subcategory_id, []).append(product)

        seen_products: set[int] = set()
        seen_variants: set[int] = set()
        categories = []

        for category in data.categories:
            subcategory_entries = []
            for subcategory in data.subcategories:
                if category.id not in {c.id for c in subcategory.categories}:
                    continue

                product_entries = []
                for product in products_by_subcategory.get(subcategory.id, []):
                    if category.id not in {c.id for c in product.categories}:
                        continue
                    variants = variants_by_product.get(product.id)
                    if not variants:
                        continue

                    product_entries.append(
                        CatalogProduct(
                            id=product.id,
                            slug=product.slug,
                            product_model=product.product_model,
                            sku=product.sku,
                            size=product.size,
                            thumbnail=self._image(product.thumbnail),
                            primary_image=self._image(product.primary_image),
                            variants=[
                                self._variant(
                                    v, category.id, subcategory.id, request, exchange_rate
                                )
                                for v in variants
                            ],
                        )
                    )
                    seen_products.add(product.id)
                    seen_variants.update(v.id for v in variants)

                if product_entries:
                    subcategory_entries.append(
                        CatalogSubcategory(
                            id=subcategory.id,
                            slug=subcategory.slug,
                            name=subcategory.name,
                            title=subcategory.title or subcategory.name,
                            description=subcategory.description,
                            image=self._image(subcategory.image),
                            products=product_entries,
                        )
                    )

            if subcategory_entries:
                categories.append(
                    CatalogCategory(
                        id=category.id,
                        slug=category.slug,
                        name=category.name,
                        title=category.title or category.name,
                        description=category.description,
                        image=self._image(category.image),
                        subcategories=subcategory_entries,
                    )
                )

        return CatalogDocument(
            title=title,
            description=description,
            client_name=client_name,
            logo_url=logo_url,
            generated_at=generated_at,
            dollar_base_value=exchange_rate,
            show_prices=request.show_prices,
            total_products=len(seen_products),
            total_variants=len(seen_variants),
            categories=categories,
        )
