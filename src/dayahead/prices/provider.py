"""Collaborator protocols — the interfaces the price core consumes.

Architecture
------------
The core never talks to a market, a rate feed or a tariff engine directly.
It depends on three protocols:

    UpstreamPriceSource → normalize() → PriceCalculator → PriceDayObject
    CurrencyRateSource  → CacheCoordinator (rate memoization)

Every collaborator implements its whole protocol. Nothing in the core probes
for optional methods at runtime.
"""

from __future__ import annotations

from datetime import date
from typing import Protocol, runtime_checkable

from dayahead.core.config import CalculatorConfig
from dayahead.core.models import (
    CurrencyRateRecord,
    PriceDayObject,
    PriceResolution,
    PriceSeries,
    UpstreamPrices,
)


@runtime_checkable
class UpstreamPriceSource(Protocol):
    """Fetches raw day-ahead points for one delivery day.

    Raises
    ------
    ProviderUnavailable
        When the provider cannot deliver prices for the date.
    """

    async def fetch(
        self,
        price_date: date,
        interval: PriceResolution,
        preferred_provider: str,
    ) -> UpstreamPrices: ...


@runtime_checkable
class CurrencyRateSource(Protocol):
    """Fetches the current reference rates, quoted per 1 EUR."""

    async def fetch(self) -> CurrencyRateRecord: ...


@runtime_checkable
class PriceCalculator(Protocol):
    """Turns a normalized series into a cacheable day object."""

    def compute(self, series: PriceSeries, config: CalculatorConfig) -> PriceDayObject: ...
