"""ECB euro reference rates as the currency rate source.

The ECB publishes one XML document per business day with rates quoted per
1 EUR:

    <Cube><Cube time="2026-10-16"><Cube currency="NOK" rate="11.62"/>...
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone

import httpx
from bs4 import BeautifulSoup

from dayahead.core.config import CurrencyConfig
from dayahead.core.exceptions import ProviderUnavailable
from dayahead.core.models import CurrencyRateRecord

logger = logging.getLogger(__name__)


def parse_ecb_rates(xml_text: str) -> CurrencyRateRecord:
    """Parse the ECB daily reference XML into a record (without fetch time).

    Raises:
        ProviderUnavailable: The document holds no rates, or a date or rate
            attribute does not parse.
    """
    soup = BeautifulSoup(xml_text, "xml")

    rate_date: date | None = None
    rates: dict[str, float] = {}
    try:
        # The xml builder strips namespace prefixes from tag names
        for cube in soup.find_all("Cube"):
            if cube.has_attr("time"):
                rate_date = date.fromisoformat(cube["time"])
            if cube.has_attr("currency") and cube.has_attr("rate"):
                rates[cube["currency"].upper()] = float(cube["rate"])
    except ValueError as e:
        raise ProviderUnavailable(
            f"Malformed ECB rate document: {e}", context={"provider": "ecb"}
        ) from e

    if rate_date is None or not rates:
        raise ProviderUnavailable(
            "ECB rate document contains no rates", context={"provider": "ecb"}
        )
    return CurrencyRateRecord(date=rate_date, rates=rates)


class EcbCurrencySource:
    """Fetches ECB reference rates over HTTP."""

    def __init__(
        self, config: CurrencyConfig, client: httpx.AsyncClient | None = None
    ) -> None:
        self._config = config
        self._client = client

    async def fetch(self) -> CurrencyRateRecord:
        try:
            if self._client is not None:
                resp = await self._client.get(self._config.url)
            else:
                async with httpx.AsyncClient(timeout=self._config.request_timeout) as client:
                    resp = await client.get(self._config.url)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("ECB rate fetch failed: %s", e)
            raise ProviderUnavailable(
                f"ECB rate fetch failed: {e}", context={"provider": "ecb"}
            ) from e

        record = parse_ecb_rates(resp.text)
        return CurrencyRateRecord(
            date=record.date,
            rates=record.rates,
            fetched_at=datetime.now(timezone.utc),
        )
