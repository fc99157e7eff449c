"""Unit tests for price adjustment resolution and exchange rate providers."""

from decimal import Decimal

import httpx
import pytest
from hypothesis import given
from hypothesis import strategies as st
from pydantic import ValidationError

from commerce_core.pricing import (
    HttpExchangeRateProvider,
    PriceAdjustment,
    StaticExchangeRateProvider,
    find_adjustment,
    resolve_price,
    to_ars,
)
from commerce_core.shared.clock import FrozenClock
from commerce_core.shared.exceptions import ExchangeRateError

CATEGORY_20 = PriceAdjustment(category_id=1, percentage_increase=Decimal("20"))
SUBCATEGORY_10 = PriceAdjustment(subcategory_id=5, percentage_increase=Decimal("10"))
EXACT_50 = PriceAdjustment(
    category_id=1, subcategory_id=5, percentage_increase=Decimal("50")
)


class TestPriceAdjustment:
    def test_accepts_camel_case_fields(self):
        adjustment = PriceAdjustment.model_validate(
            {"categoryId": 3, "percentageIncrease": 15}
        )
        assert adjustment.category_id == 3
        assert adjustment.subcategory_id is None
        assert adjustment.percentage_increase == Decimal("15")

    def test_requires_a_target(self):
        with pytest.raises(ValidationError):
            PriceAdjustment(percentage_increase=Decimal("10"))

    def test_rejects_negative_percentage(self):
        with pytest.raises(ValidationError):
            PriceAdjustment(category_id=1, percentage_increase=Decimal("-5"))


class TestResolvePrice:
    def test_category_adjustment(self):
        assert resolve_price(Decimal("100"), 1, 7, [CATEGORY_20]) == Decimal("120.00")

    def test_no_match_returns_base_price(self):
        assert resolve_price(Decimal("100"), 2, 7, [CATEGORY_20]) == Decimal("100.00")

    def test_subcategory_beats_category(self):
        adjustments = [CATEGORY_20, SUBCATEGORY_10]
        assert resolve_price(Decimal("100"), 1, 5, adjustments) == Decimal("110.00")

    def test_exact_match_beats_everything(self):
        adjustments = [CATEGORY_20, SUBCATEGORY_10, EXACT_50]
        assert find_adjustment(1, 5, adjustments) is EXACT_50
        assert resolve_price(Decimal("100"), 1, 5, adjustments) == Decimal("150.00")

    def test_exact_match_for_other_category_is_ignored(self):
        # Listed under category 2, the (1, 5) adjustment does not apply
        adjustments = [EXACT_50, SUBCATEGORY_10]
        assert resolve_price(Decimal("100"), 2, 5, adjustments) == Decimal("110.00")

    def test_rounds_to_cents(self):
        adjustment = PriceAdjustment(category_id=1, percentage_increase=Decimal("33"))
        assert resolve_price(Decimal("9.99"), 1, None, [adjustment]) == Decimal("13.29")

    @given(
        base=st.decimals(min_value=0, max_value=100_000, places=2),
        pct=st.decimals(min_value=0, max_value=1000, places=2),
        category_id=st.integers(min_value=1, max_value=3),
        subcategory_id=st.integers(min_value=1, max_value=3),
    )
    def test_resolution_is_deterministic(self, base, pct, category_id, subcategory_id):
        adjustments = [
            PriceAdjustment(category_id=1, percentage_increase=pct),
            PriceAdjustment(subcategory_id=2, percentage_increase=pct / 2),
        ]
        first = resolve_price(base, category_id, subcategory_id, adjustments)
        second = resolve_price(base, category_id, subcategory_id, adjustments)

        assert first == second
        assert first >= base
        assert first == first.quantize(Decimal("0.01"))

    def test_to_ars(self):
        assert to_ars(Decimal("12.34"), Decimal("1000")) == Decimal("12340.00")


class TestExchangeRateProviders:
    async def test_static_provider(self):
        assert await StaticExchangeRateProvider("1200").get_rate() == Decimal("1200")

    def test_static_provider_rejects_non_positive(self):
        with pytest.raises(ValueError):
            StaticExchangeRateProvider(0)

    async def test_http_provider_caches_rate(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url)
            return httpx.Response(200, json={"compra": 980, "venta": 1005.5})

        clock = FrozenClock()
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            provider = HttpExchangeRateProvider(
                "https://rates.example.com/oficial",
                client=client,
                clock=clock,
                cache_seconds=60,
            )
            assert await provider.get_rate() == Decimal("1005.5")
            assert await provider.get_rate() == Decimal("1005.5")
            assert len(calls) == 1

            clock.advance(61)
            await provider.get_rate()
            assert len(calls) == 2

    async def test_http_provider_keeps_last_rate_on_failure(self):
        responses = iter(
            [
                httpx.Response(200, json={"venta": 1000}),
                httpx.Response(503),
            ]
        )

        def handler(request: httpx.Request) -> httpx.Response:
            return next(responses)

        clock = FrozenClock()
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            provider = HttpExchangeRateProvider(
                "https://rates.example.com/oficial", client=client, clock=clock
            )
            assert await provider.get_rate() == Decimal("1000")
            clock.advance(301)
            assert await provider.get_rate() == Decimal("1000")

    async def test_http_provider_without_previous_rate_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"unexpected": True})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            provider = HttpExchangeRateProvider(
                "https://rates.example.com/oficial", client=client
            )
            with pytest.raises(ExchangeRateError):
                await provider.get_rate()
