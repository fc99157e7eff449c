"""
Pytest configuration and fixtures for commerce core tests.

Provides an in-memory database, a seeded catalog, a manually advanced clock
and the services wired to them.
"""

from dataclasses import dataclass
from decimal import Decimal

import pytest

from commerce_core.db import Database, DatabaseConfig
from commerce_core.db.models import Category, Product, Subcategory
from commerce_core.inventory import InventoryLedger
from commerce_core.orders import OrderItemMutator, RefundProcessor
from commerce_core.orders.schemas import CreateOrderRequest
from commerce_core.pricing import StaticExchangeRateProvider
from commerce_core.progress import RecordingNotifier
from commerce_core.shared.clock import FrozenClock
from commerce_core.shared.enums import OrderStatus, PaymentMethod, ShippingMethod

EXCHANGE_RATE = Decimal("1000")


@dataclass
class SeededCatalog:
    """Ids of the seeded catalog rows.

    Layout:
        mochilas (category)
            urbanas (subcategory) -> backpack: black (10 @ $6), red (0)
            viaje (subcategory)   -> duffel: blue (5 @ $40)
        bolsos (category)
            viaje (subcategory)   -> duffel: blue, tote: green (2)
            vacia (subcategory)   -> nothing
    """

    mochilas: int
    bolsos: int
    urbanas: int
    viaje: int
    vacia: int
    backpack: int
    duffel: int
    tote: int
    black: int
    red: int
    blue: int
    green: int


async def seed_catalog(database: Database, ledger: InventoryLedger) -> SeededCatalog:
    async with database.unit_of_work() as session:
        mochilas = Category(slug="mochilas", name="Mochilas", title="Mochilas")
        bolsos = Category(slug="bolsos", name="Bolsos", title="Bolsos")
        urbanas = Subcategory(slug="urbanas", name="Urbanas", categories=[mochilas])
        viaje = Subcategory(slug="viaje", name="Viaje", categories=[mochilas, bolsos])
        vacia = Subcategory(slug="vacia", name="Vacia", categories=[bolsos])
        session.add_all([mochilas, bolsos, urbanas, viaje, vacia])
        await session.flush()

        backpack = Product(
            slug="backpack-city",
            product_model="City Backpack",
            sku="BP-001",
            thumbnail="/images/bp-thumb.png",
            primary_image="https://cdn.example.com/bp.png",
            subcategory_id=urbanas.id,
            categories=[mochilas],
        )
        duffel = Product(
            slug="duffel-weekender",
            product_model="Weekender Duffel",
            sku="DF-001",
            subcategory_id=viaje.id,
            categories=[mochilas, bolsos],
        )
        tote = Product(
            slug="tote-market",
            product_model="Market Tote",
            sku="TT-001",
            subcategory_id=viaje.id,
            categories=[bolsos],
        )
        session.add_all([backpack, duffel, tote])
        await session.flush()

        black = await ledger.create_variant_with_stock(
            session, backpack.id, "Negro", "#000000", Decimal("100"),
            initial_stock=10, initial_cost_usd=Decimal("6"),
        )
        red = await ledger.create_variant_with_stock(
            session, backpack.id, "Rojo", "#ff0000", Decimal("100"),
        )
        blue = await ledger.create_variant_with_stock(
            session, duffel.id, "Azul", "#0000ff", Decimal("80"),
            initial_stock=5, initial_cost_usd=Decimal("40"),
        )
        green = await ledger.create_variant_with_stock(
            session, tote.id, "Verde", "#00ff00", Decimal("30"),
            initial_stock=2, initial_cost_usd=Decimal("10"),
        )

        return SeededCatalog(
            mochilas=mochilas.id,
            bolsos=bolsos.id,
            urbanas=urbanas.id,
            viaje=viaje.id,
            vacia=vacia.id,
            backpack=backpack.id,
            duffel=duffel.id,
            tote=tote.id,
            black=black.id,
            red=red.id,
            blue=blue.id,
            green=green.id,
        )


def shipping_address() -> dict:
    return {
        "first_name": "Ana",
        "last_name": "Pérez",
        "email": "ana@example.com",
        "phone_number": "1155551234",
        "dni": "30123456",
        "city": "CABA",
        "state": "Buenos Aires",
        "postal_code": "1414",
        "street_address": "Av. Corrientes 1234",
    }


def order_request(
    items: list[tuple[int, int]],
    payment_method: PaymentMethod = PaymentMethod.CASH_ON_DELIVERY,
    status: OrderStatus = OrderStatus.PROCESSING,
) -> CreateOrderRequest:
    return CreateOrderRequest(
        user_id="user-1",
        items=[
            {"product_variant_id": variant_id, "quantity": quantity}
            for variant_id, quantity in items
        ],
        payment_method=payment_method,
        shipping_method=ShippingMethod.MOTORCYCLE,
        shipping_address=shipping_address(),
        status=status,
    )


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
async def database():
    db = Database.from_url(DatabaseConfig.MEMORY_URL)
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
def ledger(clock) -> InventoryLedger:
    return InventoryLedger(clock)


@pytest.fixture
def exchange_rates() -> StaticExchangeRateProvider:
    return StaticExchangeRateProvider(EXCHANGE_RATE)


@pytest.fixture
def mutator(ledger, exchange_rates, clock) -> OrderItemMutator:
    return OrderItemMutator(ledger, exchange_rates, Decimal("0.04"), clock)


@pytest.fixture
def refunds(clock) -> RefundProcessor:
    return RefundProcessor(Decimal("0.04"), clock)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
async def seeded(database, ledger) -> SeededCatalog:
    return await seed_catalog(database, ledger)


@pytest.fixture
def make_order_request():
    return order_request


@pytest.fixture
def stock_of(database, ledger):
    """Read a variant's committed stock in its own unit of work."""

    async def read(variant_id: int) -> int:
        async with database.unit_of_work() as session:
            state = await ledger.get_stock_state(session, variant_id)
        return state.stock

    return read


@pytest.fixture
def catalog_seeder():
    """The seeding coroutine, for tests that must run it on another loop."""
    return seed_catalog
