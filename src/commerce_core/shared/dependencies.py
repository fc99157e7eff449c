"""
Service wiring and FastAPI dependencies.

``build_services`` assembles every long-lived object the application needs
from an ``AppConfig``; the result is stored on ``app.state.services`` and
read back by the dependency functions below.
"""

import logging
from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from commerce_core.catalog.renderer import CatalogRenderer, HtmlCatalogRenderer
from commerce_core.catalog.service import CatalogService
from commerce_core.catalog.storage import ArtifactStore
from commerce_core.config.models import AppConfig
from commerce_core.db.session import Database, UnitOfWork
from commerce_core.inventory.ledger import InventoryLedger
from commerce_core.orders.mutator import OrderItemMutator
from commerce_core.orders.refunds import RefundProcessor
from commerce_core.pricing.exchange import (
    ExchangeRateProvider,
    HttpExchangeRateProvider,
    StaticExchangeRateProvider,
)
from commerce_core.progress.notifier import ProgressNotifier, WebSocketBroadcaster
from commerce_core.progress.rooms import ProgressRoomManager
from commerce_core.shared.clock import Clock
from commerce_core.shared.tasks import BackgroundTaskRegistry

logger = logging.getLogger(__name__)

# Security
security = HTTPBearer(auto_error=False)


@dataclass
class AppServices:
    """Everything the request handlers share for the application's lifetime."""

    config: AppConfig
    clock: Clock
    database: Database
    exchange_rates: ExchangeRateProvider
    ledger: InventoryLedger
    mutator: OrderItemMutator
    refunds: RefundProcessor
    rooms: ProgressRoomManager
    broadcaster: WebSocketBroadcaster
    tasks: BackgroundTaskRegistry
    catalog: CatalogService


def build_exchange_rate_provider(
    config: AppConfig, clock: Clock
) -> ExchangeRateProvider:
    pricing = config.pricing
    if pricing.exchange_rate_url:
        return HttpExchangeRateProvider(
            url=pricing.exchange_rate_url,
            field=pricing.exchange_rate_field,
            cache_seconds=pricing.exchange_rate_cache_seconds,
            clock=clock,
        )
    return StaticExchangeRateProvider(pricing.default_exchange_rate)


def build_services(
    config: AppConfig,
    clock: Clock | None = None,
    database: Database | None = None,
    exchange_rates: ExchangeRateProvider | None = None,
    renderer: CatalogRenderer | None = None,
    notifier: ProgressNotifier | None = None,
) -> AppServices:
    """
    Assemble the application's services from configuration.

    Every collaborator can be passed in to replace the configured one.
    ``notifier`` defaults to the WebSocket broadcaster.
    """
    clock = clock or Clock()
    database = database or Database.from_url(
        config.database.url, echo=config.database.echo
    )
    exchange_rates = exchange_rates or build_exchange_rate_provider(config, clock)
    rate = config.pricing.bank_transfer_surcharge_rate

    rooms = ProgressRoomManager(
        clock=clock,
        max_members=config.rooms.max_members,
        ttl_seconds=config.rooms.ttl_seconds,
        join_rate_limit=config.rooms.join_rate_limit,
        join_rate_window_seconds=config.rooms.join_rate_window_seconds,
    )
    broadcaster = WebSocketBroadcaster(rooms)
    tasks = BackgroundTaskRegistry(clock)
    ledger = InventoryLedger(clock)

    catalog = CatalogService(
        database=database,
        exchange_rates=exchange_rates,
        renderer=renderer or HtmlCatalogRenderer(),
        store=ArtifactStore(config.catalog.output_dir, clock),
        notifier=notifier or broadcaster,
        rooms=rooms,
        tasks=tasks,
        settings=config.catalog,
        clock=clock,
    )

    return AppServices(
        config=config,
        clock=clock,
        database=database,
        exchange_rates=exchange_rates,
        ledger=ledger,
        mutator=OrderItemMutator(ledger, exchange_rates, rate, clock),
        refunds=RefundProcessor(rate, clock),
        rooms=rooms,
        broadcaster=broadcaster,
        tasks=tasks,
        catalog=catalog,
    )


# ================================
# SERVICE DEPENDENCIES
# ================================


def get_services(request: Request) -> AppServices:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Application services are not initialized",
        )
    return services


def get_config(services: AppServices = Depends(get_services)) -> AppConfig:
    return services.config


def get_unit_of_work(services: AppServices = Depends(get_services)) -> UnitOfWork:
    """A fresh, not yet started unit of work for one request."""
    return services.database.unit_of_work()


def get_ledger(services: AppServices = Depends(get_services)) -> InventoryLedger:
    return services.ledger


def get_mutator(services: AppServices = Depends(get_services)) -> OrderItemMutator:
    return services.mutator


def get_refund_processor(
    services: AppServices = Depends(get_services),
) -> RefundProcessor:
    return services.refunds


def get_catalog_service(
    services: AppServices = Depends(get_services),
) -> CatalogService:
    return services.catalog


def get_rooms(services: AppServices = Depends(get_services)) -> ProgressRoomManager:
    return services.rooms


# ================================
# AUTHENTICATION
# ================================


async def get_api_key(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    config: AppConfig = Depends(get_config),
) -> str | None:
    """Extract and validate API key from Authorization header."""
    if not config.api_key:
        # No API key configured, allow access
        return None

    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API key required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if credentials.credentials != config.api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return credentials.credentials


def get_actor(request: Request) -> str | None:
    """Actor recorded on ledger movements and refunds (``X-Actor`` header)."""
    return request.headers.get("X-Actor")
