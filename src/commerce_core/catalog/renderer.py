"""
Catalog renderers.

A renderer turns a ``CatalogDocument`` into the bytes of one artifact and
reports its own stages through the ``on_progress`` callback, between 70 and
97. The default renderer produces a standalone HTML page with Jinja2.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, Protocol

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

from commerce_core.catalog.document import CatalogDocument

ProgressCallback = Callable[[str, int], Awaitable[None]]

TEMPLATE_DIR = Path(__file__).parent / "templates"


@dataclass(frozen=True)
class RenderedArtifact:
    content: bytes
    extension: str
    media_type: str


class CatalogRenderer(Protocol):
    async def render(
        self, document: CatalogDocument, on_progress: ProgressCallback
    ) -> RenderedArtifact: ...


def format_number(value: Decimal | int | float, decimals: int = 2) -> str:
    """Format with "." thousands and "," decimals, e.g. 1.234,50."""
    text = f"{Decimal(value):,.{decimals}f}"
    return text.replace(",", "_").replace(".", ",").replace("_", ".")


def format_usd(value: Decimal) -> str:
    return f"USD {format_number(value)}"


def format_ars(value: Decimal) -> str:
    return f"$ {format_number(value)}"


class HtmlCatalogRenderer:
    """Renders the catalog as a single HTML document."""

    extension = "html"
    media_type = "text/html"

    def __init__(
        self,
        template_dir: str | Path = TEMPLATE_DIR,
        template_name: str = "catalog.html",
    ):
        self.template_dir = Path(template_dir)
        self.template_name = template_name

    def _environment(self) -> Environment:
        return Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape(["html"]),
            undefined=StrictUndefined,
            enable_async=False,
        )

    @staticmethod
    def _register_helpers(env: Environment) -> None:
        env.filters["number"] = format_number
        env.filters["usd"] = format_usd
        env.filters["ars"] = format_ars

    async def render(
        self, document: CatalogDocument, on_progress: ProgressCallback
    ) -> RenderedArtifact:
        await on_progress("reading-template", 70)
        env = self._environment()

        # Filters must exist before the template compiles
        await on_progress("registering-helpers", 72)
        self._register_helpers(env)

        await on_progress("compiling-template", 74)
        template = env.get_template(self.template_name)

        await on_progress("preparing-data", 76)
        context: dict[str, Any] = {"catalog": document}

        html = await asyncio.to_thread(template.render, **context)
        await on_progress("html-generated", 78)

        content = html.encode("utf-8")
        await on_progress("document-completed", 96)
        return RenderedArtifact(
            content=content, extension=self.extension, media_type=self.media_type
        )
