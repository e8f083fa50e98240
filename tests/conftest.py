"""Shared pytest fixtures for dayahead."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from dayahead.cache.coordinator import CacheCoordinator
from dayahead.cache.store import MemoryObjectCache
from dayahead.core.config import CacheConfig, MarketConfig, PricesConfig
from dayahead.core.exceptions import ProviderUnavailable, TransportError
from dayahead.core.models import CurrencyRateRecord, PriceResolution, UpstreamPrices
from dayahead.prices.calculator import SpotPriceCalculator

TODAY = date(2024, 3, 12)


def make_points(
    day: date,
    count: int = 24,
    minutes: int = 60,
    value=lambda i: float(i),
    currency: str = "EUR",
) -> list[dict]:
    """Raw upstream points starting at UTC midnight of ``day``."""
    start = datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
    step = timedelta(minutes=minutes)
    return [
        {
            "start": (start + i * step).isoformat(),
            "end": (start + (i + 1) * step).isoformat(),
            "value": value(i),
            "currency": currency,
        }
        for i in range(count)
    ]


class FakeUpstream:
    """UpstreamPriceSource serving canned points per date and counting calls."""

    def __init__(self, points_by_date: dict[date, list[dict]] | None = None):
        self.points_by_date = points_by_date or {}
        self.calls: list[date] = []

    async def fetch(
        self, price_date: date, interval: PriceResolution, preferred_provider: str
    ) -> UpstreamPrices:
        self.calls.append(price_date)
        points = self.points_by_date.get(price_date)
        if points is None:
            points = make_points(price_date)
        if not points:
            raise ProviderUnavailable(
                f"no prices for {price_date}", context={"provider": "fake"}
            )
        return UpstreamPrices(provider="Fake", provider_url="https://fake.test", points=points)


class FakeCurrencySource:
    """CurrencyRateSource returning the same rates with a fresh fetch time."""

    def __init__(self, rates: dict[str, float] | None = None, rate_date: date = TODAY):
        self.rates = rates if rates is not None else {"NOK": 11.5, "SEK": 11.25, "USD": 1.08}
        self.rate_date = rate_date
        self.calls = 0

    async def fetch(self) -> CurrencyRateRecord:
        self.calls += 1
        return CurrencyRateRecord(
            date=self.rate_date,
            rates=dict(self.rates),
            fetched_at=datetime.now(timezone.utc) + timedelta(seconds=self.calls),
        )


class RecordingTransport:
    """PublishTransport that records calls and can fail on a given topic."""

    def __init__(self, fail_on: str | None = None):
        self.fail_on = fail_on
        self.calls: list[tuple[str, str, bool, int]] = []

    async def publish(self, topic: str, payload: str, *, retain: bool, qos: int) -> None:
        if topic == self.fail_on:
            raise TransportError("broker did not ack", context={"topic": topic})
        self.calls.append((topic, payload, retain, qos))


@pytest.fixture
def prices_config() -> PricesConfig:
    """UTC, EUR, hourly, in-memory caches."""
    return PricesConfig(
        timezone="UTC",
        market=MarketConfig(region_code="NO1", price_currency="EUR"),
        cache=CacheConfig(backend="memory", keep_days=3),
    )


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def currency_source() -> FakeCurrencySource:
    return FakeCurrencySource()


@pytest.fixture
def price_cache() -> MemoryObjectCache:
    return MemoryObjectCache("prices")


@pytest.fixture
def currency_cache() -> MemoryObjectCache:
    return MemoryObjectCache("currencies")


@pytest.fixture
def coordinator(
    prices_config, price_cache, currency_cache, upstream, currency_source
) -> CacheCoordinator:
    return CacheCoordinator(
        prices_config,
        price_cache,
        currency_cache,
        upstream=upstream,
        calculator=SpotPriceCalculator(),
        currency_source=currency_source,
        today=lambda: TODAY,
    )


@pytest.fixture
def sample_day_payload() -> dict:
    """A stored day object in camelCase shape with 24 hourly entries."""
    midnight = datetime(TODAY.year, TODAY.month, TODAY.day, tzinfo=timezone.utc)
    return {
        "priceDate": TODAY.isoformat(),
        "priceInterval": "1h",
        "regionCode": "NO1",
        "priceCurrency": "EUR",
        "priceProvider": "Fake",
        "daily": {
            "minPrice": 0.0,
            "maxPrice": 23.0,
            "avgPrice": 1.23,
            "peakPrice": 13.5,
            "offPeakPrice1": 2.5,
            "offPeakPrice2": 22.5,
        },
        "hourly": [
            {
                "startTime": (midnight + timedelta(hours=h)).isoformat(),
                "endTime": (midnight + timedelta(hours=h + 1)).isoformat(),
                "spotPrice": float(h),
            }
            for h in range(24)
        ],
    }
