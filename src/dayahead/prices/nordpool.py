"""Nord Pool day-ahead price source — direct HTTP implementation.

Uses the public data portal ``DayAheadPrices`` endpoint via httpx. The
endpoint answers in the requested currency, per MWh; values are converted
to per kWh here.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

import httpx

from dayahead.core.config import MarketConfig
from dayahead.core.exceptions import ProviderUnavailable
from dayahead.core.models import PriceResolution, UpstreamPrices

logger = logging.getLogger(__name__)

PROVIDER_KEY = "nordpool"
PROVIDER_NAME = "Nord Pool"

_USER_AGENT = "dayahead-prices/0.1"


class NordPoolAdapter:
    """Transforms a Nord Pool ``DayAheadPrices`` response into raw points."""

    def adapt(self, raw_data: dict[str, Any], region: str, currency: str) -> list[dict[str, Any]]:
        """Extract ``{start, end, value, currency}`` dicts for one area.

        Entries without a value for ``region`` are skipped. Values are
        divided by 1000 (MWh → kWh).
        """
        points: list[dict[str, Any]] = []
        for entry in raw_data.get("multiAreaEntries") or []:
            raw_value = (entry.get("entryPerArea") or {}).get(region)
            if raw_value is None:
                continue
            try:
                value = float(raw_value) / 1000
            except (TypeError, ValueError):
                continue
            points.append(
                {
                    "start": entry.get("deliveryStart"),
                    "end": entry.get("deliveryEnd"),
                    "value": value,
                    "currency": currency,
                }
            )
        return points


class NordPoolPriceSource:
    """Fetches day-ahead prices for one delivery area from Nord Pool.

    Parameters
    ----------
    config : MarketConfig
        Region, currency, endpoint URL and timeout.
    client : httpx.AsyncClient | None
        Shared client. A short-lived client per request is used if None.
    adapter : NordPoolAdapter | None
        Custom adapter instance. Uses default if None.
    """

    def __init__(
        self,
        config: MarketConfig,
        client: httpx.AsyncClient | None = None,
        adapter: NordPoolAdapter | None = None,
    ) -> None:
        self._config = config
        self._client = client
        self._adapter = adapter or NordPoolAdapter()

    async def fetch(
        self,
        price_date: date,
        interval: PriceResolution,
        preferred_provider: str,
    ) -> UpstreamPrices:
        """Fetch raw points for ``price_date``.

        ``interval`` is not sent upstream; Nord Pool publishes at its own
        resolution and the normalizer reconciles it. Provider selection
        happens in ``PriceFetcher``.
        """
        params = {
            "market": "DayAhead",
            "deliveryArea": self._config.region_code,
            "currency": self._config.price_currency,
            "date": price_date.isoformat(),
        }
        data = await self._get_json(params, price_date)
        points = self._adapter.adapt(
            data, self._config.region_code, self._config.price_currency
        )
        if not points:
            raise ProviderUnavailable(
                f"{PROVIDER_NAME}: no prices for {self._config.region_code} "
                f"on {price_date.isoformat()}",
                context={"provider": PROVIDER_KEY, "date": price_date.isoformat()},
            )

        logger.debug(
            "Fetched %d points from %s for %s", len(points), PROVIDER_NAME, price_date
        )
        return UpstreamPrices(
            provider=PROVIDER_NAME,
            provider_url=str(httpx.URL(self._config.nord_pool_url, params=params)),
            resolution="PT15M" if len(points) == 96 else "PT60M",
            points=points,
        )

    async def _get_json(self, params: dict[str, str], price_date: date) -> dict[str, Any]:
        context = {"provider": PROVIDER_KEY, "date": price_date.isoformat()}
        try:
            if self._client is not None:
                resp = await self._request(self._client, params)
            else:
                async with httpx.AsyncClient(timeout=self._config.request_timeout) as client:
                    resp = await self._request(client, params)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                "%s HTTP error for %s: %s %s",
                PROVIDER_NAME,
                price_date,
                e.response.status_code,
                e.response.text[:200],
            )
            raise ProviderUnavailable(
                f"{PROVIDER_NAME}: HTTP {e.response.status_code} for {price_date.isoformat()}",
                context={**context, "status_code": e.response.status_code},
            ) from e
        except httpx.RequestError as e:
            logger.error("%s request error for %s: %s", PROVIDER_NAME, price_date, e)
            raise ProviderUnavailable(
                f"{PROVIDER_NAME}: request failed for {price_date.isoformat()}: {e}",
                context=context,
            ) from e

        # 204 means the auction result is not published yet
        if resp.status_code == 204 or not resp.content:
            raise ProviderUnavailable(
                f"{PROVIDER_NAME}: day-ahead prices are not ready for {price_date.isoformat()}",
                context={**context, "status_code": resp.status_code},
            )
        try:
            return resp.json()
        except ValueError as e:
            raise ProviderUnavailable(
                f"{PROVIDER_NAME}: unparseable response for {price_date.isoformat()}",
                context=context,
            ) from e

    async def _request(self, client: httpx.AsyncClient, params: dict[str, str]) -> httpx.Response:
        return await client.get(
            self._config.nord_pool_url,
            params=params,
            headers={"Accept": "application/json", "User-Agent": _USER_AGENT},
        )
