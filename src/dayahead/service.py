"""Price service: wires cache, window and publisher into fetch cycles.

One ``PriceService`` per process owns the caches, the coordinator, the day
window and (optionally) the rollover publisher. When cycles run is decided
outside: cron invoking ``dayahead fetch``, or a caller's own scheduler.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

import httpx

from dayahead.api.resolver import PathQueryResolver
from dayahead.cache.coordinator import CacheCoordinator
from dayahead.cache.store import ObjectCache, create_cache
from dayahead.core.config import PricesConfig, ScheduleConfig
from dayahead.core.exceptions import (
    ProviderUnavailable,
    RateUnavailable,
    StorageError,
    TransportError,
)
from dayahead.prices.calculator import SpotPriceCalculator
from dayahead.prices.currency import EcbCurrencySource
from dayahead.prices.entsoe import EntsoePriceSource
from dayahead.prices.fetcher import PriceFetcher
from dayahead.prices.nordpool import NordPoolPriceSource
from dayahead.prices.provider import UpstreamPriceSource
from dayahead.window.publisher import (
    PublishAction,
    PublishTransport,
    RolloverPublishController,
    snapshot_from_cache,
)
from dayahead.window.store import DayWindowStore

logger = logging.getLogger(__name__)

PRICE_NAMESPACE = "prices"
CURRENCY_NAMESPACE = "currencies"


def should_fetch_next_day(schedule: ScheduleConfig, now: datetime) -> bool:
    """Whether tomorrow's prices may be requested at ``now``.

    True exactly at a scheduled hour and minute, or any time after the
    latest scheduled hour.
    """
    if now.hour in schedule.schedule_hours and now.minute in schedule.schedule_minutes:
        return True
    return now.hour > max(schedule.schedule_hours)


def next_day_window(schedule: ScheduleConfig) -> str:
    """``HH:MM`` at which the next-day fetch window first opens."""
    return f"{min(schedule.schedule_hours):02d}:{min(schedule.schedule_minutes):02d}"


def build_upstream(config: PricesConfig, client: httpx.AsyncClient) -> PriceFetcher:
    """Nord Pool, plus ENTSO-E when a price access token is configured."""
    sources: dict[str, UpstreamPriceSource] = {
        "nordpool": NordPoolPriceSource(config.market, client=client),
    }
    if config.market.price_access_token:
        sources["entsoe"] = EntsoePriceSource(config.market, client=client)
    return PriceFetcher(sources)


@dataclass
class FetchCycleResult:
    """What a fetch cycle did."""

    today: date
    available: list[date] = field(default_factory=list)
    failed: dict[date, str] = field(default_factory=dict)
    skipped_next_day: bool = False
    cleaned: list[str] = field(default_factory=list)
    published: list[str] = field(default_factory=list)
    publish_error: str | None = None


class PriceService:
    """Fetch cycles, window warm-up and retained publishing.

    Parameters
    ----------
    config : PricesConfig
        Full configuration.
    coordinator : CacheCoordinator
        Fetch-or-reuse over the caches.
    window : DayWindowStore | None
        Live window. Created on the configured timezone if None.
    publisher : RolloverPublishController | None
        Retained publisher. Publishing is skipped if None.
    now : Callable[[], datetime] | None
        Wall clock. Defaults to now in the configured timezone.
    """

    def __init__(
        self,
        config: PricesConfig,
        coordinator: CacheCoordinator,
        window: DayWindowStore | None = None,
        publisher: RolloverPublishController | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config
        self.coordinator = coordinator
        self._now = now or (lambda: datetime.now(config.tz))
        self.window = window or DayWindowStore(lambda: self._now().date())
        self.publisher = publisher
        self.resolver = PathQueryResolver(self.window, coordinator)
        self._closeables: list[ObjectCache] = []
        self._client: httpx.AsyncClient | None = None

    @classmethod
    async def create(
        cls,
        config: PricesConfig,
        transport: PublishTransport | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> PriceService:
        """Build a service with the configured backends and HTTP sources."""
        price_cache = await create_cache(config.cache, PRICE_NAMESPACE)
        currency_cache = await create_cache(config.cache, CURRENCY_NAMESPACE)
        client = httpx.AsyncClient(timeout=config.market.request_timeout)
        now = now or (lambda: datetime.now(config.tz))

        coordinator = CacheCoordinator(
            config,
            price_cache,
            currency_cache,
            upstream=build_upstream(config, client),
            calculator=SpotPriceCalculator(),
            currency_source=EcbCurrencySource(config.currency, client=client),
            today=lambda: now().date(),
        )
        publisher = (
            RolloverPublishController(transport, config.publish)
            if transport is not None
            else None
        )
        service = cls(config, coordinator, publisher=publisher, now=now)
        service._closeables = [price_cache, currency_cache]
        service._client = client
        return service

    async def close(self) -> None:
        for cache in self._closeables:
            await cache.close()
        self._closeables = []
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def today(self) -> date:
        return self._now().date()

    async def run_fetch_cycle(self, now: datetime | None = None) -> FetchCycleResult:
        """Make sure the last ``keep_days`` days and tomorrow are cached.

        Provider, rate and storage failures skip the affected day. A corrupt
        cached entry is reported in ``failed`` and left in place. Yesterday,
        today and tomorrow are ingested into the window, the retained surface is
        refreshed when a publisher is configured, then old entries are swept.
        """
        now = now or self._now()
        today = now.date()
        result = FetchCycleResult(today=today)
        allow_next_day = should_fetch_next_day(self.config.schedule, now)

        for offset in range(-(self.config.cache.keep_days - 1), 2):
            day = today + timedelta(days=offset)
            if offset == 1 and not allow_next_day:
                if not await self.coordinator.price_data_exists(day):
                    logger.info(
                        "Skipping next-day fetch before window (%s): %s",
                        next_day_window(self.config.schedule),
                        day,
                    )
                    result.skipped_next_day = True
                    continue
            try:
                day_object = await self.coordinator.fetch_or_retrieve(day)
            except (ProviderUnavailable, RateUnavailable, StorageError) as e:
                logger.warning("Prices for %s unavailable: %s", day, e)
                result.failed[day] = str(e)
                continue
            result.available.append(day)
            if offset >= -1:
                self.window.ingest(day_object)

        if self.publisher is not None:
            try:
                actions = await self.publish(today)
                result.published = [a.topic for a in actions]
            except TransportError as e:
                logger.warning("Retained publish failed, will retry next cycle: %s", e)
                result.publish_error = str(e)

        # stale days stay cached until their retraction has been planned
        result.cleaned = await self.coordinator.cleanup(today)
        return result

    async def warm_window(self, today: date | None = None) -> list[date]:
        """Fill the window from the cache without touching upstream.

        Unreadable entries are logged and skipped.
        """
        today = today or self.today()
        loaded: list[date] = []
        for offset in (-1, 0, 1):
            day = today + timedelta(days=offset)
            try:
                day_object = await self.coordinator.get_price_data(day)
            except StorageError as e:
                logger.warning("Skipping cached prices for %s: %s", day, e)
                continue
            if day_object is not None:
                self.window.ingest(day_object)
                loaded.append(day)
        logger.info("Window warmed with %d cached days", len(loaded))
        return loaded

    async def publish(self, today: date | None = None) -> list[PublishAction]:
        """Run one rollover publish cycle from the cache.

        Raises:
            TransportError: A publish failed; see RolloverPublishController.
        """
        if self.publisher is None:
            return []
        snapshot = await snapshot_from_cache(self.coordinator, today or self.today())
        return await self.publisher.execute(snapshot)
