"""
FastAPI router for order administration.

Item changes, status changes and refunds each run in a single unit of work;
a request either applies completely or changes nothing.
"""

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from commerce_core.db.session import UnitOfWork
from commerce_core.orders.mutator import OrderItemMutator
from commerce_core.orders.refunds import RefundProcessor
from commerce_core.orders.schemas import (
    CancelRefundEligibility,
    CreateOrderRequest,
    ItemOperationsRequest,
    ItemPriceOverridesRequest,
    OrderDetailsUpdate,
    OrderView,
    RefundEligibility,
    RefundRequest,
    RefundResult,
    StatusUpdateRequest,
    StatusUpdateResult,
    StockAvailabilityReport,
)
from commerce_core.shared.dependencies import (
    get_actor,
    get_api_key,
    get_mutator,
    get_refund_processor,
    get_unit_of_work,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/orders", tags=["Orders"], dependencies=[Depends(get_api_key)]
)


# ================================
# ORDERS
# ================================


@router.post(
    "/admin",
    response_model=OrderView,
    status_code=status.HTTP_201_CREATED,
    summary="Create an order",
    description="Create an order for a customer, consuming stock for every item.",
)
async def create_order(
    request: CreateOrderRequest,
    uow: UnitOfWork = Depends(get_unit_of_work),
    mutator: OrderItemMutator = Depends(get_mutator),
    actor: str | None = Depends(get_actor),
):
    return await mutator.create_order(uow, request, actor=actor)


@router.get("/{order_id}", response_model=OrderView, summary="Get an order")
async def get_order(
    order_id: int,
    uow: UnitOfWork = Depends(get_unit_of_work),
    mutator: OrderItemMutator = Depends(get_mutator),
):
    return await mutator.get_order(uow, order_id)


@router.patch(
    "/{order_id}/items",
    response_model=OrderView,
    summary="Add, remove or change order items",
    description=(
        "Apply a batch of item operations. Stock moves with every operation; "
        "if any operation fails the whole batch is rolled back."
    ),
)
async def update_order_items(
    order_id: int,
    request: ItemOperationsRequest,
    uow: UnitOfWork = Depends(get_unit_of_work),
    mutator: OrderItemMutator = Depends(get_mutator),
    actor: str | None = Depends(get_actor),
):
    """
    Example:
        PATCH /api/orders/12/items
        {
            "operations": [
                {"action": "add", "product_variant_id": 7, "quantity": 2},
                {"action": "remove", "product_variant_id": 3}
            ]
        }
    """
    return await mutator.apply_item_operations(
        uow, order_id, request.operations, actor=actor
    )


@router.patch(
    "/{order_id}/item-prices",
    response_model=OrderView,
    summary="Correct item prices and costs",
)
async def update_item_prices(
    order_id: int,
    request: ItemPriceOverridesRequest,
    uow: UnitOfWork = Depends(get_unit_of_work),
    mutator: OrderItemMutator = Depends(get_mutator),
    actor: str | None = Depends(get_actor),
):
    return await mutator.override_item_prices(
        uow, order_id, request.overrides, actor=actor
    )


@router.patch(
    "/{order_id}/status",
    response_model=StatusUpdateResult,
    summary="Change order status",
    description=(
        "Completing a pending payment order with stock conflicts returns 409 "
        "with the conflicts unless force is set."
    ),
)
async def update_order_status(
    order_id: int,
    request: StatusUpdateRequest,
    uow: UnitOfWork = Depends(get_unit_of_work),
    mutator: OrderItemMutator = Depends(get_mutator),
    actor: str | None = Depends(get_actor),
):
    result = await mutator.update_status(
        uow, order_id, request.status, force=request.force, actor=actor
    )
    if not result.success:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=result.model_dump(mode="json"),
        )
    return result


@router.patch(
    "/{order_id}/hide",
    response_model=OrderView,
    summary="Hide a cancelled order",
)
async def hide_order(
    order_id: int,
    uow: UnitOfWork = Depends(get_unit_of_work),
    mutator: OrderItemMutator = Depends(get_mutator),
):
    return await mutator.hide_cancelled_order(uow, order_id)


@router.patch(
    "/{order_id}",
    response_model=OrderView,
    summary="Update order details",
    description="Update payment, shipping and other header fields.",
)
async def update_order_details(
    order_id: int,
    request: OrderDetailsUpdate,
    uow: UnitOfWork = Depends(get_unit_of_work),
    mutator: OrderItemMutator = Depends(get_mutator),
):
    return await mutator.update_order_details(uow, order_id, request)


@router.get(
    "/{order_id}/stock-availability",
    response_model=StockAvailabilityReport,
    summary="Check stock for a pending payment order",
)
async def check_stock_availability(
    order_id: int,
    uow: UnitOfWork = Depends(get_unit_of_work),
    mutator: OrderItemMutator = Depends(get_mutator),
):
    return await mutator.check_stock_availability(uow, order_id)


# ================================
# REFUNDS
# ================================


@router.get(
    "/{order_id}/refund/eligibility",
    response_model=RefundEligibility,
    summary="Check whether an order can be refunded",
)
async def get_refund_eligibility(
    order_id: int,
    uow: UnitOfWork = Depends(get_unit_of_work),
    refunds: RefundProcessor = Depends(get_refund_processor),
):
    return await refunds.check_eligibility(uow, order_id)


@router.post(
    "/{order_id}/refund",
    response_model=RefundResult,
    summary="Apply a refund",
    description="Apply a fixed amount or percentage refund to the order subtotal.",
)
async def apply_refund(
    order_id: int,
    request: RefundRequest,
    uow: UnitOfWork = Depends(get_unit_of_work),
    refunds: RefundProcessor = Depends(get_refund_processor),
    actor: str | None = Depends(get_actor),
):
    return await refunds.apply_refund(uow, order_id, request, actor=actor)


@router.get(
    "/{order_id}/refund/cancel-eligibility",
    response_model=CancelRefundEligibility,
    summary="Check whether a refund can be reverted",
)
async def get_cancel_refund_eligibility(
    order_id: int,
    uow: UnitOfWork = Depends(get_unit_of_work),
    refunds: RefundProcessor = Depends(get_refund_processor),
):
    return await refunds.check_cancel_eligibility(uow, order_id)


@router.delete(
    "/{order_id}/refund",
    response_model=RefundResult,
    summary="Revert a refund",
)
async def cancel_refund(
    order_id: int,
    uow: UnitOfWork = Depends(get_unit_of_work),
    refunds: RefundProcessor = Depends(get_refund_processor),
    actor: str | None = Depends(get_actor),
):
    return await refunds.cancel_refund(uow, order_id, actor=actor)
