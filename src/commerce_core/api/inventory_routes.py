"""FastAPI router for variant stock movements and ledger checks."""

import logging

from fastapi import APIRouter, Depends, status

from commerce_core.api.models import (
    StockMovementListResponse,
    StockMovementRequest,
    StockMovementView,
    VariantStockResponse,
)
from commerce_core.db.session import UnitOfWork
from commerce_core.inventory.ledger import ConsistencyReport, InventoryLedger
from commerce_core.shared.dependencies import (
    get_actor,
    get_api_key,
    get_ledger,
    get_unit_of_work,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/inventory", tags=["Inventory"], dependencies=[Depends(get_api_key)]
)


@router.post(
    "/variants/{variant_id}/movements",
    response_model=VariantStockResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record a stock movement",
    description=(
        "Purchases, damages and manual adjustments. Incoming units with a "
        "unit cost are blended into the variant's average cost."
    ),
)
async def record_movement(
    variant_id: int,
    request: StockMovementRequest,
    uow: UnitOfWork = Depends(get_unit_of_work),
    ledger: InventoryLedger = Depends(get_ledger),
    actor: str | None = Depends(get_actor),
):
    async with uow as session:
        state = await ledger.record_movement(
            session,
            variant_id,
            request.delta_qty,
            request.reason,
            unit_cost=request.unit_cost,
            note=request.note,
            actor=actor,
        )
    return VariantStockResponse(**state.model_dump())


@router.get(
    "/variants/{variant_id}/movements",
    response_model=StockMovementListResponse,
    summary="List a variant's stock movements",
)
async def list_movements(
    variant_id: int,
    uow: UnitOfWork = Depends(get_unit_of_work),
    ledger: InventoryLedger = Depends(get_ledger),
):
    async with uow as session:
        await ledger.get_stock_state(session, variant_id)
        movements = await ledger.list_movements(session, variant_id)
        views = [StockMovementView.model_validate(m) for m in movements]
    return StockMovementListResponse(variant_id=variant_id, movements=views)


@router.get(
    "/variants/{variant_id}/consistency",
    response_model=ConsistencyReport,
    summary="Check the ledger against the stock column",
)
async def check_consistency(
    variant_id: int,
    uow: UnitOfWork = Depends(get_unit_of_work),
    ledger: InventoryLedger = Depends(get_ledger),
):
    async with uow as session:
        return await ledger.verify_consistency(session, variant_id)
