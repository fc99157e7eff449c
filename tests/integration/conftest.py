"""
Fixtures for HTTP and WebSocket integration tests.

The application runs against an in-memory database inside TestClient's event
loop; everything that touches the database (seeding included) has to run on
that loop, through ``client.portal``.
"""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from commerce_core.config.models import AppConfig, CatalogSettings
from commerce_core.db import Database, DatabaseConfig
from commerce_core.main import create_app
from commerce_core.pricing import StaticExchangeRateProvider
from commerce_core.shared.dependencies import build_services

API_KEY = "test-key"
AUTH = {"Authorization": f"Bearer {API_KEY}", "X-Actor": "admin@example.com"}


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return dict(AUTH)


@pytest.fixture
def catalog_renderer():
    """Renderer for the app under test; None uses the default HTML renderer."""
    return None


@pytest.fixture
def services(tmp_path, clock, catalog_renderer):
    config = AppConfig(
        api_key=API_KEY,
        catalog=CatalogSettings(output_dir=str(tmp_path / "catalogs")),
    )
    return build_services(
        config,
        clock=clock,
        database=Database.from_url(DatabaseConfig.MEMORY_URL),
        exchange_rates=StaticExchangeRateProvider(Decimal("1000")),
        renderer=catalog_renderer,
    )


@pytest.fixture
def client(services):
    app = create_app(services=services)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def catalog(client, services, catalog_seeder):
    return client.portal.call(catalog_seeder, services.database, services.ledger)


@pytest.fixture
def create_order(client, auth_headers, make_order_request):
    def _create(items, **kwargs):
        request = make_order_request(items, **kwargs)
        response = client.post(
            "/api/orders/admin",
            json=request.model_dump(mode="json"),
            headers=auth_headers,
        )
        assert response.status_code == 201, response.text
        return response.json()

    return _create
