"""
Pydantic models for API requests and responses.

Order and refund payloads live with the order services
(``commerce_core.orders.schemas``); this module holds the inventory, catalog
and shared response shapes.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from commerce_core.orders.schemas import Money
from commerce_core.progress.rooms import RoomSummary
from commerce_core.shared.enums import StockMovementReason

# ================================
# INVENTORY MODELS
# ================================


class StockMovementRequest(BaseModel):
    """Manual stock movement on a variant."""

    delta_qty: int = Field(..., description="Signed quantity; negative removes stock")
    reason: StockMovementReason = Field(..., description="Why the stock changes")
    unit_cost: Decimal | None = Field(
        None, ge=0, description="Cost per incoming unit in USD"
    )
    note: str | None = Field(None, max_length=500)

    @field_validator("delta_qty")
    @classmethod
    def validate_non_zero(cls, v: int) -> int:
        if v == 0:
            raise ValueError("delta_qty must not be zero")
        return v


class StockMovementView(BaseModel):
    """One ledger entry."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    variant_id: int
    quantity_delta: int
    reason: str
    unit_cost_usd: Money | None = None
    stock_after: int
    average_cost_after: Money
    order_id: int | None = None
    note: str | None = None
    actor: str | None = None
    created_at: datetime


class VariantStockResponse(BaseModel):
    variant_id: int
    stock: int
    average_cost_usd: Money
    movement_id: int | None = None


class StockMovementListResponse(BaseModel):
    variant_id: int
    movements: list[StockMovementView]


# ================================
# CATALOG MODELS
# ================================


class CatalogGenerationResponse(BaseModel):
    """Returned as soon as a catalog job starts."""

    room_id: str = Field(..., description="Room that receives the job's progress")
    message: str = "Catalog generation started"


class CatalogMetricsResponse(BaseModel):
    active_rooms: int
    total_members: int
    rooms: list[RoomSummary]
    running_tasks: int
    websocket_connections: int


# ================================
# ERROR AND HEALTH MODELS
# ================================


class HealthCheckResponse(BaseModel):
    """Response model for health checks."""

    status: str = Field(..., description="Overall health status")
    timestamp: datetime = Field(..., description="Health check timestamp")
    version: str = Field(..., description="Application version")
    checks: dict[str, dict[str, Any]] = Field(
        ..., description="Individual component health checks"
    )


class ErrorResponse(BaseModel):
    """Standard error response model."""

    error: str = Field(..., description="Error type or code")
    message: str = Field(..., description="Human-readable error message")
    details: dict[str, Any] | None = Field(None, description="Additional error details")
    timestamp: datetime = Field(..., description="Error timestamp")


class ValidationErrorResponse(BaseModel):
    """Response model for validation errors."""

    error: str = Field(..., description="Error type")
    message: str = Field(..., description="General error message")
    field_errors: list[dict[str, Any]] = Field(
        ..., description="Detailed field validation errors"
    )
    timestamp: datetime = Field(..., description="Error timestamp")
