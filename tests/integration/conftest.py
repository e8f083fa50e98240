"""Integration test fixtures — real I/O but no network."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from dayahead.cache.coordinator import CacheCoordinator
from dayahead.cache.store import SqliteObjectCache
from dayahead.core.config import CacheConfig, MarketConfig, PricesConfig
from dayahead.prices.calculator import SpotPriceCalculator
from dayahead.service import PriceService

from tests.conftest import TODAY, FakeCurrencySource, FakeUpstream

NOON = datetime(TODAY.year, TODAY.month, TODAY.day, 12, tzinfo=timezone.utc)
EVENING = datetime(TODAY.year, TODAY.month, TODAY.day, 18, tzinfo=timezone.utc)


@pytest.fixture
def sqlite_config(tmp_path: Path) -> PricesConfig:
    return PricesConfig(
        timezone="UTC",
        market=MarketConfig(price_currency="EUR"),
        cache=CacheConfig(
            backend="sqlite", sqlite_path=str(tmp_path / "dayahead.db"), keep_days=3
        ),
    )


@pytest.fixture
async def build_service(sqlite_config):
    """Factory for a PriceService over sqlite with fake upstream sources."""
    opened: list[PriceService] = []

    async def _build(upstream: FakeUpstream | None = None, now=EVENING) -> PriceService:
        path = sqlite_config.cache.sqlite_path
        price_cache = SqliteObjectCache(path, "prices")
        currency_cache = SqliteObjectCache(path, "currencies")
        await price_cache.initialize()
        await currency_cache.initialize()
        coordinator = CacheCoordinator(
            sqlite_config,
            price_cache,
            currency_cache,
            upstream=upstream or FakeUpstream(),
            calculator=SpotPriceCalculator(),
            currency_source=FakeCurrencySource(),
            today=lambda: now.date(),
        )
        service = PriceService(sqlite_config, coordinator, now=lambda: now)
        service._closeables = [price_cache, currency_cache]
        opened.append(service)
        return service

    yield _build

    for service in opened:
        for cache in service._closeables:
            await cache.close()
