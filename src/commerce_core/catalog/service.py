"""
Catalog generation service.

``start_generation`` validates a request, opens a progress room and runs
``generate_catalog`` in the background. The pipeline reports staged progress
to the room:

    starting (0) -> validating (10) -> processing-logo (20) ->
    fetching-data (30) -> data-fetched (50) -> starting-pdf (70) ->
    renderer stages (70-97) -> saving-pdf (98) -> finalizing (99) ->
    completed (100)

Any failure emits one ``catalog-error`` event and ends the job; nothing is
retried.
"""

import asyncio
import time
from pathlib import Path

from commerce_core.catalog.assembly import (
    CatalogAssembler,
    fetch_catalog_data,
    format_generated_at,
    resolve_image_url,
)
from commerce_core.catalog.renderer import CatalogRenderer
from commerce_core.catalog.requests import CatalogRequest, validate_catalog_request
from commerce_core.catalog.storage import ArtifactStore
from commerce_core.config.models import CatalogSettings
from commerce_core.db.session import Database
from commerce_core.pricing.exchange import ExchangeRateProvider
from commerce_core.progress.notifier import ProgressNotifier, ProgressReporter
from commerce_core.progress.rooms import ProgressRoomManager
from commerce_core.shared import metrics
from commerce_core.shared.clock import Clock
from commerce_core.shared.exceptions import CommerceCoreError, RendererError
from commerce_core.shared.logging_utils import get_structured_logger
from commerce_core.shared.tasks import BackgroundTaskRegistry

logger = get_structured_logger(__name__)


class CatalogService:
    """Generates catalog artifacts and reports progress to a room."""

    def __init__(
        self,
        database: Database,
        exchange_rates: ExchangeRateProvider,
        renderer: CatalogRenderer,
        store: ArtifactStore,
        notifier: ProgressNotifier,
        rooms: ProgressRoomManager,
        tasks: BackgroundTaskRegistry,
        settings: CatalogSettings | None = None,
        clock: Clock | None = None,
    ):
        self.database = database
        self.exchange_rates = exchange_rates
        self.renderer = renderer
        self.store = store
        self.notifier = notifier
        self.rooms = rooms
        self.tasks = tasks
        self.settings = settings or CatalogSettings()
        self.clock = clock or Clock()
        self.assembler = CatalogAssembler(
            image_base_url=self.settings.image_base_url,
            placeholder_image=self.settings.placeholder_image,
        )

    def start_generation(
        self, request: CatalogRequest, logo_reference: str | None = None
    ) -> str:
        """
        Validate a request and start generating it in the background.

        Returns:
            Id of the progress room the job reports to

        Raises:
            InvalidCatalogRequestError: If the request selects nothing
        """
        validate_catalog_request(request)
        room_id = self.rooms.create_room(job_active=True)
        self.tasks.create(
            f"catalog_{room_id}",
            self._run_job(request, room_id, logo_reference),
            description="Catalog generation",
        )
        logger.info("Started catalog generation", room_id=room_id)
        return room_id

    async def _run_job(
        self, request: CatalogRequest, room_id: str, logo_reference: str | None
    ) -> str:
        try:
            return await self.generate_catalog(request, room_id, logo_reference)
        finally:
            self.rooms.finish_job(room_id)

    def _resolve_logo(self, logo_reference: str | None) -> str | None:
        reference = logo_reference or self.settings.default_logo_url
        if not reference:
            return None
        return resolve_image_url(
            reference, self.settings.image_base_url, self.settings.placeholder_image
        )

    async def generate_catalog(
        self,
        request: CatalogRequest,
        room_id: str,
        logo_reference: str | None = None,
    ) -> str:
        """
        Run the catalog pipeline for one request.

        Args:
            request: Normalized catalog request
            room_id: Room that receives progress events
            logo_reference: Uploaded or configured logo, overriding the
                request's ``logo_url``

        Returns:
            File name of the saved artifact

        Raises:
            CommerceCoreError: Whatever stopped the pipeline, after the error
                event was emitted
        """
        reporter = ProgressReporter(self.notifier, room_id)
        log = logger.bind(room_id=room_id)
        started = time.perf_counter()

        try:
            await reporter.emit_progress("starting", 0)

            await reporter.emit_progress("validating", 10)
            validate_catalog_request(request)

            await reporter.emit_progress("processing-logo", 20)
            logo_url = self._resolve_logo(logo_reference or request.logo_url)

            await reporter.emit_progress("fetching-data", 30)
            exchange_rate = await self.exchange_rates.get_rate()
            async with self.database.unit_of_work() as session:
                data = await fetch_catalog_data(session, request)
                document = self.assembler.assemble(
                    data,
                    request,
                    exchange_rate,
                    title=self.settings.title,
                    generated_at=format_generated_at(
                        self.clock.now(), self.settings.timezone
                    ),
                    logo_url=logo_url,
                    description=self.settings.description,
                    client_name=self.settings.client_name,
                )

            await reporter.emit_progress(
                "data-fetched",
                50,
                {
                    "total_products": document.total_products,
                    "total_variants": document.total_variants,
                },
            )

            await reporter.emit_progress("starting-pdf", 70)
            try:
                artifact = await self.renderer.render(document, reporter.emit_progress)
            except CommerceCoreError:
                raise
            except Exception as e:
                raise RendererError(
                    "Catalog rendering failed", original_error=e, room_id=room_id
                )

            await reporter.emit_progress("saving-pdf", 98)
            file_name = await asyncio.to_thread(
                self.store.save, artifact.content, artifact.extension
            )

            await reporter.emit_progress("finalizing", 99)
            await reporter.emit_complete(
                {
                    "file_name": file_name,
                    "download_url": f"/api/catalog/download/{file_name}",
                    "total_products": document.total_products,
                    "total_variants": document.total_variants,
                }
            )
        except Exception as e:
            message = e.message if isinstance(e, CommerceCoreError) else str(e)
            metrics.catalog_generations_total.labels(outcome="failed").inc()
            log.error(
                "Catalog generation failed",
                error=message,
                error_type=type(e).__name__,
            )
            await reporter.emit_error(message or "Catalog generation failed")
            raise

        duration = time.perf_counter() - started
        metrics.catalog_generations_total.labels(outcome="completed").inc()
        metrics.catalog_generation_duration_seconds.observe(duration)
        log.info(
            "Catalog generated",
            file_name=file_name,
            total_products=document.total_products,
            total_variants=document.total_variants,
            duration_seconds=round(duration, 3),
        )
        return file_name

    def artifact_path(self, file_name: str) -> Path:
        return self.store.resolve(file_name)
