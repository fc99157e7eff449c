"""Price adjustment resolution and exchange rates."""

from commerce_core.pricing.exchange import (
    ExchangeRateProvider,
    HttpExchangeRateProvider,
    StaticExchangeRateProvider,
)
from commerce_core.pricing.resolver import (
    PriceAdjustment,
    find_adjustment,
    resolve_price,
    to_ars,
)

__all__ = [
    "ExchangeRateProvider",
    "HttpExchangeRateProvider",
    "PriceAdjustment",
    "StaticExchangeRateProvider",
    "find_adjustment",
    "resolve_price",
    "to_ars",
]
