"""Cache coordinator — fetch-or-reuse over the object cache.

Owns two invariants:

- A cached day is never re-fetched, re-normalized or overwritten.
  ``fetch_or_retrieve`` returns it as stored. Concurrent calls for one date
  share a single in-flight fetch instead of racing to persist.
- Currency rates are written only when their content changes. Payloads are
  compared by structural signature with the volatile fetch time stripped,
  and the in-process rate table is dropped wholesale on any change.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable, Iterable
from datetime import date, datetime, timedelta
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from dayahead.cache.store import ObjectCache
from dayahead.core.config import PricesConfig
from dayahead.core.exceptions import (
    ProviderUnavailable,
    RateUnavailable,
    StorageError,
)
from dayahead.core.models import (
    CurrencyRateRecord,
    PriceDayObject,
    PricePoint,
    PriceSeries,
    UpstreamPrices,
)
from dayahead.prices.normalizer import clean_points, normalize
from dayahead.prices.provider import (
    CurrencyRateSource,
    PriceCalculator,
    UpstreamPriceSource,
)

logger = logging.getLogger(__name__)

PRICE_KEY_PREFIX = "prices-"
CURRENCY_KEY_PREFIX = "currencies-"
CURRENCY_LATEST_KEY = f"{CURRENCY_KEY_PREFIX}latest"

_VOLATILE_FIELDS = ("fetchedAt",)


def price_key(price_date: date) -> str:
    return f"{PRICE_KEY_PREFIX}{price_date.isoformat()}"


def currency_key(rate_date: date) -> str:
    return f"{CURRENCY_KEY_PREFIX}{rate_date.isoformat()}"


def structural_signature(payload: Any, volatile: Iterable[str] = _VOLATILE_FIELDS) -> str:
    """Order-independent serialization of ``payload``.

    Top-level ``volatile`` keys are dropped; mapping keys are sorted at every
    depth, so two payloads differing only in key order or fetch time share a
    signature.
    """
    if isinstance(payload, dict):
        skip = set(volatile)
        payload = {k: v for k, v in payload.items() if k not in skip}
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)


def _date_from_key(key: str, prefix: str) -> date | None:
    if not key.startswith(prefix):
        return None
    try:
        return date.fromisoformat(key[len(prefix) :])
    except ValueError:
        return None


class CacheCoordinator:
    """Fetch-or-reuse logic for price days and currency rates.

    Parameters
    ----------
    config : PricesConfig
        Market, calculator and retention settings.
    price_cache, currency_cache : ObjectCache
        Backends for ``prices-*`` and ``currencies-*`` keys.
    upstream : UpstreamPriceSource
        Raw day-ahead points.
    calculator : PriceCalculator
        Turns a normalized series into a day object.
    currency_source : CurrencyRateSource
        Reference rates per 1 EUR.
    today : Callable[[], date] | None
        Wall-clock "today". Defaults to the configured timezone.
    """

    def __init__(
        self,
        config: PricesConfig,
        price_cache: ObjectCache,
        currency_cache: ObjectCache,
        upstream: UpstreamPriceSource,
        calculator: PriceCalculator,
        currency_source: CurrencyRateSource,
        today: Callable[[], date] | None = None,
    ) -> None:
        self._config = config
        self._prices = price_cache
        self._currencies = currency_cache
        self._upstream = upstream
        self._calculator = calculator
        self._currency_source = currency_source
        self._today = today or (lambda: datetime.now(config.tz).date())
        self._in_flight: dict[str, asyncio.Task[PriceDayObject]] = {}
        self._rates: dict[str, float] = {}

    # --- Price days ---

    async def fetch_or_retrieve(
        self, price_date: date, preferred_provider: str | None = None
    ) -> PriceDayObject:
        """Return the cached day for ``price_date``, fetching it once if absent.

        A second caller for the same date while a fetch is running awaits
        that fetch rather than starting another one.

        Raises:
            ProviderUnavailable: Upstream could not deliver prices.
            StorageError: Cache backend failure.
        """
        key = price_key(price_date)
        pending = self._in_flight.get(key)
        if pending is not None:
            logger.debug("Joining in-flight fetch for %s", key)
            return await asyncio.shield(pending)

        provider = preferred_provider or self._config.market.preferred_provider
        task = asyncio.ensure_future(self._fetch_or_retrieve(price_date, provider))
        self._in_flight[key] = task

        def _release(done: asyncio.Task[PriceDayObject]) -> None:
            if self._in_flight.get(key) is done:
                del self._in_flight[key]

        task.add_done_callback(_release)
        return await asyncio.shield(task)

    async def _fetch_or_retrieve(self, price_date: date, provider: str) -> PriceDayObject:
        cached = await self.get_price_data(price_date)
        if cached is not None:
            return cached

        await self.ensure_currency_rates()
        upstream = await self._upstream.fetch(
            price_date, self._config.market.price_interval, provider
        )
        series = await self._build_series(price_date, upstream)
        day = self._calculator.compute(series, self._config.calculator)

        await self._prices.create_object(price_key(price_date), day.to_payload(), True)
        logger.info(
            "Cached %d %s prices for %s from %s",
            len(day.entries),
            series.interval,
            price_date,
            upstream.provider,
        )
        return day

    async def _build_series(self, price_date: date, upstream: UpstreamPrices) -> PriceSeries:
        market = self._config.market
        valid = clean_points(upstream.points)
        if not valid:
            raise ProviderUnavailable(
                f"{upstream.provider}: no valid price points for {price_date.isoformat()}",
                context={"provider": upstream.provider, "date": price_date.isoformat()},
            )
        dropped = len(upstream.points) - len(valid)
        if dropped:
            logger.warning(
                "Dropped %d malformed points from %s for %s",
                dropped,
                upstream.provider,
                price_date,
            )

        return PriceSeries(
            price_date=price_date,
            interval=market.price_interval,
            region_code=market.region_code,
            currency=market.price_currency,
            provider=upstream.provider,
            provider_url=upstream.provider_url,
            points=await self._convert(
                normalize(valid, market.price_interval), market.price_currency
            ),
        )

    async def _convert(self, points: list[PricePoint], target: str) -> list[PricePoint]:
        """Localize points to the configured timezone and quote them in ``target``."""
        tz = self._config.tz
        converted: list[PricePoint] = []
        factors: dict[str, float] = {}
        for point in points:
            source = (point.currency or target).upper()
            if source not in factors:
                factors[source] = (
                    1.0
                    if source == target
                    else await self.get_currency_rate(target)
                    / await self.get_currency_rate(source)
                )
            converted.append(
                PricePoint(
                    start=point.start.astimezone(tz),
                    end=point.end.astimezone(tz),
                    value=point.value * factors[source],
                    currency=target,
                )
            )
        return converted

    async def get_price_data(self, price_date: date) -> PriceDayObject | None:
        """Cached day for ``price_date``, or None."""
        key = price_key(price_date)
        if not await self._prices.has(key):
            return None
        raw = await self._prices.retrieve_object(key)
        if raw is None:
            return None
        try:
            return PriceDayObject.model_validate(raw)
        except PydanticValidationError as e:
            raise StorageError(
                f"Corrupt cache entry {key}: {e.error_count()} validation errors",
                context={"operation": "retrieve", "key": key},
            ) from e

    async def get_price_payload(self, price_date: date) -> dict[str, Any] | None:
        """Cached day for ``price_date`` exactly as stored, or None."""
        key = price_key(price_date)
        if not await self._prices.has(key):
            return None
        return await self._prices.retrieve_object(key)

    async def price_data_exists(self, price_date: date) -> bool:
        return await self._prices.has(price_key(price_date))

    async def cached_dates(self) -> list[date]:
        """All cached price dates, oldest first."""
        keys = await self._prices.keys()
        dates = [d for d in (_date_from_key(k, PRICE_KEY_PREFIX) for k in keys) if d]
        return sorted(dates)

    async def latest_dates(self, count: int = 2) -> list[date]:
        """The ``count`` newest cached price dates, newest first."""
        dates = await self.cached_dates()
        return list(reversed(dates))[:count]

    async def cleanup(self, today: date | None = None) -> list[str]:
        """Delete price and currency entries older than their keep windows.

        Returns the deleted keys. ``currencies-latest`` is never deleted and
        keys without a parseable date are left alone.
        """
        today = today or self._today()
        deleted: list[str] = []
        deleted += await self._sweep(
            self._prices, PRICE_KEY_PREFIX, today - timedelta(days=self._config.cache.keep_days)
        )
        deleted += await self._sweep(
            self._currencies,
            CURRENCY_KEY_PREFIX,
            today - timedelta(days=self._config.cache.currency_retention),
        )
        return deleted

    async def _sweep(self, cache: ObjectCache, prefix: str, cutoff: date) -> list[str]:
        deleted: list[str] = []
        for key in await cache.keys():
            entry_date = _date_from_key(key, prefix)
            if entry_date is None or entry_date > cutoff:
                continue
            await cache.delete_object(key, True)
            logger.info("Cleaned up old cache entry: %s", key)
            deleted.append(key)
        return deleted

    # --- Currency rates ---

    async def ensure_currency_rates(self) -> None:
        """Refresh rates when the latest record is not from today.

        Failures are logged; prices in the configured currency need no rates.
        """
        try:
            latest = await self._currencies.retrieve_object(CURRENCY_LATEST_KEY)
            if not latest or latest.get("date") != self._today().isoformat():
                await self.fetch_and_store_currency_rates()
        except (ProviderUnavailable, StorageError) as e:
            logger.warning("Unable to ensure currency rates: %s", e)

    async def fetch_and_store_currency_rates(self) -> CurrencyRateRecord:
        """Fetch rates and persist them only if their content changed."""
        record = await self._currency_source.fetch()
        payload = record.to_payload()
        date_key = currency_key(record.date)

        existing = await self._currencies.retrieve_object(date_key)
        if existing is None or structural_signature(existing) != structural_signature(payload):
            await self._currencies.create_object(date_key, payload, True)
            await self._currencies.create_object(CURRENCY_LATEST_KEY, payload, True)
            self._rates.clear()
            logger.info("Stored currency rates for %s", record.date)
        else:
            if not await self._currencies.has(CURRENCY_LATEST_KEY):
                await self._currencies.create_object(CURRENCY_LATEST_KEY, existing, True)
            logger.debug("Currency rates for %s unchanged", record.date)
        return record

    async def get_currency_rate(self, currency_code: str | None = None) -> float:
        """Rate of ``currency_code`` per 1 EUR.

        Raises:
            RateUnavailable: The code is unknown even after a refetch.
        """
        code = (currency_code or self._config.market.price_currency).upper()
        if code == "EUR":
            return 1.0
        if code in self._rates:
            return self._rates[code]

        latest = await self._currencies.retrieve_object(CURRENCY_LATEST_KEY)
        rates = (latest or {}).get("rates") or {}
        if code not in rates:
            try:
                rates = (await self.fetch_and_store_currency_rates()).rates
            except ProviderUnavailable as e:
                raise RateUnavailable(
                    f"Currency rate for {code} not available: {e}",
                    context={"currency": code},
                ) from e
        if code not in rates:
            raise RateUnavailable(
                f"Currency rate for {code} not available", context={"currency": code}
            )

        rate = float(rates[code])
        self._rates[code] = rate
        return rate
