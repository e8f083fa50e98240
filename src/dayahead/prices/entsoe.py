"""ENTSO-E Transparency Platform day-ahead price source.

Queries the ``A44`` (price document) endpoint for one bidding zone and
delivery day. Responses are ``Publication_MarketDocument`` XML:

    TimeSeries
      currency_Unit.name        EUR
      Period
        timeInterval/start,end  2024-03-11T23:00Z
        resolution              PT60M | PT15M
        Point/position, Point/price.amount   (per MWh)

Positions missing from a period repeat the previous price. When there is
no data the platform answers with an ``Acknowledgement_MarketDocument``
carrying a reason text instead.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Any
from zoneinfo import ZoneInfo

import httpx
from bs4 import BeautifulSoup

from dayahead.core.config import MarketConfig
from dayahead.core.exceptions import ProviderUnavailable
from dayahead.core.models import PriceResolution, UpstreamPrices

logger = logging.getLogger(__name__)

PROVIDER_KEY = "entsoe"
PROVIDER_NAME = "ENTSO-E"

# Day-ahead delivery days run midnight to midnight CET
_MARKET_TZ = ZoneInfo("Europe/Brussels")

_RESOLUTIONS: dict[str, timedelta] = {
    "PT15M": timedelta(minutes=15),
    "PT30M": timedelta(minutes=30),
    "PT60M": timedelta(minutes=60),
}

# Bidding zone EIC codes
BIDDING_ZONES: dict[str, str] = {
    "NO1": "10YNO-1--------2",
    "NO2": "10YNO-2--------T",
    "NO3": "10YNO-3--------J",
    "NO4": "10YNO-4--------9",
    "NO5": "10Y1001A1001A48H",
    "SE1": "10Y1001A1001A44P",
    "SE2": "10Y1001A1001A45N",
    "SE3": "10Y1001A1001A46L",
    "SE4": "10Y1001A1001A47J",
    "DK1": "10YDK-1--------W",
    "DK2": "10YDK-2--------M",
    "FI": "10YFI-1--------U",
    "EE": "10Y1001A1001A39I",
    "LV": "10YLV-1001A00074",
    "LT": "10YLT-1001A0008Q",
    "DE-LU": "10Y1001A1001A82H",
    "NL": "10YNL----------L",
    "BE": "10YBE----------2",
    "FR": "10YFR-RTE------C",
    "AT": "10YAT-APG------L",
    "PL": "10YPL-AREA-----S",
}


def _text(tag: Any, name: str) -> str | None:
    found = tag.find(name)
    return found.get_text(strip=True) if found is not None else None


def _parse_instant(value: str | None) -> datetime:
    if not value:
        raise ValueError("missing time interval bound")
    return datetime.fromisoformat(value).astimezone(timezone.utc)


class EntsoeAdapter:
    """Transforms an ENTSO-E price document into raw points."""

    def adapt(self, xml_text: str) -> list[dict[str, Any]]:
        """Extract ``{start, end, value, currency}`` dicts from every period.

        Values are divided by 1000 (MWh → kWh). Periods with an unknown
        resolution are skipped.

        Raises:
            ProviderUnavailable: The document is an acknowledgement (no
                data) or a bound, position or amount does not parse.
        """
        soup = BeautifulSoup(xml_text, "xml")
        if soup.find("Acknowledgement_MarketDocument") is not None:
            reason = _text(soup, "text") or "no data"
            raise ProviderUnavailable(
                f"{PROVIDER_NAME}: {reason}", context={"provider": PROVIDER_KEY}
            )

        points: list[dict[str, Any]] = []
        try:
            for series in soup.find_all("TimeSeries"):
                currency = (_text(series, "currency_Unit.name") or "EUR").upper()
                for period in series.find_all("Period"):
                    points.extend(self._period_points(period, currency))
        except ValueError as e:
            raise ProviderUnavailable(
                f"{PROVIDER_NAME}: malformed price document: {e}",
                context={"provider": PROVIDER_KEY},
            ) from e
        return points

    def _period_points(self, period: Any, currency: str) -> list[dict[str, Any]]:
        step = _RESOLUTIONS.get(_text(period, "resolution") or "")
        if step is None:
            return []
        interval = period.find("timeInterval")
        if interval is None:
            raise ValueError("period without timeInterval")
        start = _parse_instant(_text(interval, "start"))
        end = _parse_instant(_text(interval, "end"))

        prices: dict[int, float] = {}
        for point in period.find_all("Point"):
            position = int(_text(point, "position") or "")
            prices[position] = float(_text(point, "price.amount") or "") / 1000

        points: list[dict[str, Any]] = []
        last: float | None = None
        for position in range(1, int((end - start) / step) + 1):
            value = prices.get(position, last)
            if value is None:
                continue
            last = value
            slot_start = start + (position - 1) * step
            points.append(
                {
                    "start": slot_start.isoformat(),
                    "end": (slot_start + step).isoformat(),
                    "value": value,
                    "currency": currency,
                }
            )
        return points


class EntsoePriceSource:
    """Fetches day-ahead prices for one bidding zone from ENTSO-E.

    Parameters
    ----------
    config : MarketConfig
        Region, endpoint URL, security token and timeout.
    client : httpx.AsyncClient | None
        Shared client. A short-lived client per request is used if None.
    adapter : EntsoeAdapter | None
        Custom adapter instance. Uses default if None.
    """

    def __init__(
        self,
        config: MarketConfig,
        client: httpx.AsyncClient | None = None,
        adapter: EntsoeAdapter | None = None,
    ) -> None:
        self._config = config
        self._client = client
        self._adapter = adapter or EntsoeAdapter()

    async def fetch(
        self,
        price_date: date,
        interval: PriceResolution,
        preferred_provider: str,
    ) -> UpstreamPrices:
        """Fetch raw points for ``price_date``.

        Prices come back in EUR; the coordinator converts them to the
        configured currency.
        """
        context = {"provider": PROVIDER_KEY, "date": price_date.isoformat()}
        if not self._config.price_access_token:
            raise ProviderUnavailable(
                f"{PROVIDER_NAME}: no price_access_token configured", context=context
            )
        zone = BIDDING_ZONES.get(self._config.region_code)
        if zone is None:
            raise ProviderUnavailable(
                f"{PROVIDER_NAME}: unknown bidding zone {self._config.region_code}",
                context=context,
            )

        period_start = datetime.combine(price_date, time(), tzinfo=_MARKET_TZ)
        period_end = datetime.combine(price_date + timedelta(days=1), time(), tzinfo=_MARKET_TZ)
        params = {
            "documentType": "A44",
            "in_Domain": zone,
            "out_Domain": zone,
            "periodStart": period_start.astimezone(timezone.utc).strftime("%Y%m%d%H%M"),
            "periodEnd": period_end.astimezone(timezone.utc).strftime("%Y%m%d%H%M"),
        }
        text = await self._get_text(params, price_date)
        try:
            points = self._adapter.adapt(text)
        except ProviderUnavailable as e:
            raise ProviderUnavailable(str(e), context={**context, **e.context}) from e

        if not points:
            raise ProviderUnavailable(
                f"{PROVIDER_NAME}: no prices for {self._config.region_code} "
                f"on {price_date.isoformat()}",
                context=context,
            )

        logger.debug(
            "Fetched %d points from %s for %s", len(points), PROVIDER_NAME, price_date
        )
        return UpstreamPrices(
            provider=PROVIDER_NAME,
            # token stays out of the recorded URL
            provider_url=str(httpx.URL(self._config.entsoe_url, params=params)),
            resolution="PT15M" if len(points) > 48 else "PT60M",
            points=points,
        )

    async def _get_text(self, params: dict[str, str], price_date: date) -> str:
        context = {"provider": PROVIDER_KEY, "date": price_date.isoformat()}
        query = {**params, "securityToken": self._config.price_access_token or ""}
        try:
            if self._client is not None:
                resp = await self._client.get(self._config.entsoe_url, params=query)
            else:
                async with httpx.AsyncClient(timeout=self._config.request_timeout) as client:
                    resp = await client.get(self._config.entsoe_url, params=query)
        except httpx.RequestError as e:
            logger.error("%s request error for %s: %s", PROVIDER_NAME, price_date, e)
            raise ProviderUnavailable(
                f"{PROVIDER_NAME}: request failed for {price_date.isoformat()}: {e}",
                context=context,
            ) from e

        if resp.is_error:
            # The platform explains errors in an acknowledgement document
            reason = _text(BeautifulSoup(resp.text, "xml"), "text") or resp.text[:200]
            logger.error(
                "%s HTTP error for %s: %s %s",
                PROVIDER_NAME,
                price_date,
                resp.status_code,
                reason,
            )
            raise ProviderUnavailable(
                f"{PROVIDER_NAME}: HTTP {resp.status_code} for "
                f"{price_date.isoformat()}: {reason}",
                context={**context, "status_code": resp.status_code},
            )
        return resp.text
