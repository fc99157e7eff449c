"""
USD to ARS exchange rate sources.

Orders snapshot the rate when they are created; catalogs print it as the
"dollar base value". Both read it through an ``ExchangeRateProvider``.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Protocol

import httpx
from cachetools import TTLCache

from commerce_core.shared.clock import Clock
from commerce_core.shared.exceptions import ExchangeRateError
from commerce_core.shared.money import ZERO, to_decimal

logger = logging.getLogger(__name__)


class ExchangeRateProvider(Protocol):
    async def get_rate(self) -> Decimal: ...


class StaticExchangeRateProvider:
    """Fixed rate, used when no live source is configured and in tests."""

    def __init__(self, rate: Decimal | int | str):
        self.rate = to_decimal(rate)
        if self.rate <= ZERO:
            raise ValueError("Exchange rate must be positive")

    async def get_rate(self) -> Decimal:
        return self.rate


class HttpExchangeRateProvider:
    """
    Rate fetched from a JSON HTTP endpoint and cached for ``cache_seconds``.

    The endpoint must return an object whose ``field`` member holds the rate.
    When a refresh fails, the last good rate is kept; with no previous rate the
    error is raised.
    """

    _CACHE_KEY = "usd_ars"

    def __init__(
        self,
        url: str,
        field: str = "venta",
        cache_seconds: int = 300,
        client: httpx.AsyncClient | None = None,
        clock: Clock | None = None,
        timeout: float = 10.0,
    ):
        self.url = url
        self.field = field
        self.timeout = timeout
        self._client = client
        clock = clock or Clock()
        self._cache: TTLCache[str, Decimal] = TTLCache(
            maxsize=1, ttl=cache_seconds, timer=clock.monotonic
        )
        self._last_rate: Decimal | None = None

    async def _fetch(self) -> Decimal:
        if self._client is not None:
            response = await self._client.get(self.url, timeout=self.timeout)
        else:
            async with httpx.AsyncClient() as client:
                response = await client.get(self.url, timeout=self.timeout)
        response.raise_for_status()

        payload = response.json()
        try:
            rate = to_decimal(str(payload[self.field]))
        except (KeyError, TypeError, InvalidOperation) as e:
            raise ExchangeRateError(
                "Exchange rate response has no usable rate",
                original_error=e,
                url=self.url,
                field=self.field,
            )
        if rate <= ZERO:
            raise ExchangeRateError("Exchange rate must be positive", rate=rate)
        return rate

    async def get_rate(self) -> Decimal:
        cached = self._cache.get(self._CACHE_KEY)
        if cached is not None:
            return cached

        try:
            rate = await self._fetch()
        except (httpx.HTTPError, ValueError, ExchangeRateError) as e:
            if self._last_rate is not None:
                logger.warning(
                    f"Exchange rate refresh failed, keeping {self._last_rate}: {e}"
                )
                return self._last_rate
            if isinstance(e, ExchangeRateError):
                raise
            raise ExchangeRateError(
                "Could not fetch exchange rate", original_error=e, url=self.url
            )

        self._cache[self._CACHE_KEY] = rate
        self._last_rate = rate
        logger.info(f"Fetched USD/ARS exchange rate: {rate}")
        return rate
