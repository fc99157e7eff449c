"""Catalog document generation."""

from commerce_core.catalog.assembly import (
    CatalogAssembler,
    CatalogData,
    fetch_catalog_data,
    resolve_image_url,
)
from commerce_core.catalog.document import CatalogDocument
from commerce_core.catalog.renderer import (
    CatalogRenderer,
    HtmlCatalogRenderer,
    RenderedArtifact,
)
from commerce_core.catalog.requests import (
    CatalogGenerationForm,
    CatalogRequest,
    validate_catalog_request,
)
from commerce_core.catalog.service import CatalogService
from commerce_core.catalog.storage import ArtifactStore

__all__ = [
    "ArtifactStore",
    "CatalogAssembler",
    "CatalogData",
    "CatalogDocument",
    "CatalogGenerationForm",
    "CatalogRenderer",
    "CatalogRequest",
    "CatalogService",
    "HtmlCatalogRenderer",
    "RenderedArtifact",
    "fetch_catalog_data",
    "resolve_image_url",
    "validate_catalog_request",
]
