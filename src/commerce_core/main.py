"""
Main FastAPI application entry point for the commerce core service.

``create_app`` builds the application with its routes, middleware, exception
handlers and lifespan; the module-level ``app`` uses configuration from the
environment.
"""

import logging
import os
import traceback
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from commerce_core import __version__
from commerce_core.api.catalog_routes import router as catalog_router
from commerce_core.api.inventory_routes import router as inventory_router
from commerce_core.api.models import (
    ErrorResponse,
    HealthCheckResponse,
    ValidationErrorResponse,
)
from commerce_core.api.order_routes import router as order_router
from commerce_core.api.ws import router as ws_router
from commerce_core.config.models import AppConfig
from commerce_core.config.settings import load_config_with_fallback
from commerce_core.shared.dependencies import AppServices, build_services
from commerce_core.shared.exceptions import CommerceCoreError
from commerce_core.shared.logging_config import configure_structured_logging
from commerce_core.shared.logging_utils import (
    CORRELATION_HEADER,
    generate_correlation_id,
    set_correlation_id,
)

logger = logging.getLogger(__name__)

APP_NAME = "Commerce Core API"
APP_VERSION = __version__
APP_DESCRIPTION = """
**Commerce Core API** runs the back office of the store.

- **Orders**: create orders, edit items with stock kept in step, change status
- **Refunds**: apply and revert fixed or percentage refunds
- **Inventory**: record stock movements and audit the ledger
- **Catalog**: generate product catalogs with live progress over WebSocket

Mutating endpoints require `Authorization: Bearer <api key>` when an API key
is configured.
"""


def _error_content(model: ErrorResponse | ValidationErrorResponse) -> dict:
    return model.model_dump(mode="json")


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(CommerceCoreError)
    async def commerce_error_handler(request: Request, exc: CommerceCoreError):
        """Map domain errors to their HTTP status."""
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        else:
            logger.info(f"{request.method} {request.url.path} rejected: {exc}")

        error_response = ErrorResponse(
            error=exc.error_code,
            message=exc.message,
            details=exc.context or None,
            timestamp=datetime.now(UTC),
        )
        return JSONResponse(
            status_code=exc.status_code, content=_error_content(error_response)
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle HTTP exceptions with consistent error format."""
        error_response = ErrorResponse(
            error=f"HTTP_{exc.status_code}",
            message=str(exc.detail),
            timestamp=datetime.now(UTC),
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_content(error_response),
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        """Handle request validation errors with detailed field information."""
        logger.info(f"Validation error for {request.method} {request.url.path}")

        field_errors = [
            {
                "field": " -> ".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            }
            for error in exc.errors()
        ]
        error_response = ValidationErrorResponse(
            error="VALIDATION_ERROR",
            message="Request validation failed",
            field_errors=field_errors,
            timestamp=datetime.now(UTC),
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=_error_content(error_response),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.error(f"Unhandled exception: {exc}")
        logger.error(traceback.format_exc())

        error_response = ErrorResponse(
            error="INTERNAL_SERVER_ERROR",
            message="An unexpected error occurred",
            details={"exception_type": type(exc).__name__},
            timestamp=datetime.now(UTC),
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_content(error_response),
        )


def create_app(
    config: AppConfig | None = None, services: AppServices | None = None
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        config: Application configuration; loaded from the environment when
            omitted
        services: Pre-built services (tests inject in-memory ones)
    """
    config = config or (services.config if services else load_config_with_fallback())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage application startup and shutdown events."""
        configure_structured_logging(
            level=config.log_level, sql_echo=config.database.echo
        )
        logger.info(f"Starting {APP_NAME} v{APP_VERSION}")

        app_services = services or build_services(config)
        app.state.services = app_services

        await app_services.database.create_all()
        app_services.rooms.start_sweeper(config.rooms.sweep_interval_seconds)
        logger.info("Application startup completed")

        yield

        logger.info("Starting application shutdown")
        await app_services.tasks.cancel_all()
        await app_services.rooms.stop_sweeper()
        await app_services.database.dispose()
        logger.info("Application shutdown completed")

    app = FastAPI(
        title=APP_NAME,
        version=APP_VERSION,
        description=APP_DESCRIPTION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # Allow CORS origins to be configured via env var ALLOWED_ORIGINS (comma-separated)
    allowed_origins_env = os.getenv("ALLOWED_ORIGINS")
    allowed_origins = (
        [o.strip() for o in allowed_origins_env.split(",") if o.strip()]
        if allowed_origins_env
        else ["http://localhost:3000", "http://localhost:5173"]
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    _register_exception_handlers(app)

    @app.middleware("http")
    async def logging_middleware(request: Request, call_next):
        """Log all requests and responses under a per-request correlation id."""
        correlation_id = (
            request.headers.get(CORRELATION_HEADER) or generate_correlation_id()
        )
        set_correlation_id(correlation_id)
        start_time = datetime.now(UTC)
        response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        duration = (datetime.now(UTC) - start_time).total_seconds()
        logger.info(
            f"{request.method} {request.url.path} - "
            f"Status: {response.status_code} - "
            f"Duration: {duration:.3f}s"
        )
        return response

    @app.get(
        "/health",
        response_model=HealthCheckResponse,
        summary="Health check",
        tags=["Monitoring"],
    )
    async def health_check(request: Request):
        app_services: AppServices = request.app.state.services
        checks = {}
        overall_status = "healthy"

        if await app_services.database.is_healthy():
            checks["database"] = {"status": "healthy"}
        else:
            checks["database"] = {"status": "unhealthy"}
            overall_status = "unhealthy"

        room_metrics = app_services.rooms.get_metrics()
        checks["progress_rooms"] = {
            "status": "healthy",
            "active_rooms": room_metrics.active_rooms,
            "members": room_metrics.total_members,
        }

        return HealthCheckResponse(
            status=overall_status,
            timestamp=datetime.now(UTC),
            version=APP_VERSION,
            checks=checks,
        )

    @app.get(
        "/metrics",
        summary="Prometheus metrics",
        tags=["Monitoring"],
    )
    async def prometheus_metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(order_router)
    app.include_router(inventory_router)
    app.include_router(catalog_router)
    app.include_router(ws_router)

    return app


app = create_app()


# ================================
# DEVELOPMENT SERVER
# ================================


def run_dev_server():
    """Run the development server (COMMERCE_HOST / COMMERCE_PORT override the bind)."""
    import uvicorn

    uvicorn.run(
        "commerce_core.main:app",
        host=os.getenv("COMMERCE_HOST", "127.0.0.1"),
        port=int(os.getenv("COMMERCE_PORT", "8000")),
        reload=True,
        log_level="info",
    )


if __name__ == "__main__":
    run_dev_server()
