"""
FastAPI router for catalog generation.

Generation runs in the background; the POST returns the id of the progress
room to join on ``/ws/catalog``. The finished file is served by name.
"""

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import FileResponse

from commerce_core.api.models import CatalogGenerationResponse, CatalogMetricsResponse
from commerce_core.catalog.requests import CatalogGenerationForm
from commerce_core.catalog.service import CatalogService
from commerce_core.shared.dependencies import (
    AppServices,
    get_api_key,
    get_catalog_service,
    get_services,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/catalog", tags=["Catalog"])


@router.post(
    "/generate",
    response_model=CatalogGenerationResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start catalog generation",
    description=(
        "Start generating a catalog for the selected categories and "
        "subcategories. Progress is published to the returned room."
    ),
    dependencies=[Depends(get_api_key)],
)
async def generate_catalog(
    form: CatalogGenerationForm,
    catalog: CatalogService = Depends(get_catalog_service),
):
    """
    Example:
        POST /api/catalog/generate
        {
            "categories": [1, 2],
            "priceAdjustments": [{"categoryId": 1, "percentageIncrease": 20}],
            "inStock": true
        }
    """
    request = form.to_request()
    room_id = catalog.start_generation(request)
    return CatalogGenerationResponse(room_id=room_id)


@router.get(
    "/download/{file_name}",
    summary="Download a generated catalog",
    response_class=FileResponse,
)
async def download_catalog(
    file_name: str,
    catalog: CatalogService = Depends(get_catalog_service),
):
    path = catalog.artifact_path(file_name)
    return FileResponse(
        path,
        media_type=catalog.store.media_type_for(file_name),
        filename=file_name,
    )


@router.get(
    "/metrics",
    response_model=CatalogMetricsResponse,
    summary="Progress room and job metrics",
    dependencies=[Depends(get_api_key)],
)
async def catalog_metrics(services: AppServices = Depends(get_services)):
    room_metrics = services.rooms.get_metrics()
    return CatalogMetricsResponse(
        **room_metrics.model_dump(),
        running_tasks=services.tasks.running_count,
        websocket_connections=services.broadcaster.connection_count,
    )
