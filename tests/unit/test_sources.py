"""Tests for the Nord Pool and ECB sources and the spot calculator."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import httpx
import pytest

from dayahead.core.config import CalculatorConfig, CurrencyConfig, MarketConfig
from dayahead.core.exceptions import ProviderUnavailable
from dayahead.core.models import PricePoint, PriceResolution, PriceSeries
from dayahead.prices.calculator import SpotPriceCalculator
from dayahead.prices.currency import EcbCurrencySource, parse_ecb_rates
from dayahead.prices.nordpool import NordPoolAdapter, NordPoolPriceSource

DAY = date(2024, 3, 12)

ECB_XML = """<?xml version="1.0" encoding="UTF-8"?>
<gesmes:Envelope xmlns:gesmes="http://www.gesmes.org/xml/2002-08-01"
                 xmlns="http://www.ecb.int/vocabulary/2002-08-01/eurofxref">
  <gesmes:subject>Reference rates</gesmes:subject>
  <Cube>
    <Cube time="2024-03-12">
      <Cube currency="USD" rate="1.0916"/>
      <Cube currency="SEK" rate="11.2385"/>
      <Cube currency="NOK" rate="11.5075"/>
    </Cube>
  </Cube>
</gesmes:Envelope>
"""


def _nordpool_body(count: int = 24, minutes: int = 60, area: str = "NO1") -> dict:
    start = datetime(2024, 3, 11, 23, tzinfo=timezone.utc)
    step = timedelta(minutes=minutes)
    return {
        "deliveryDateCET": DAY.isoformat(),
        "multiAreaEntries": [
            {
                "deliveryStart": (start + i * step).isoformat().replace("+00:00", "Z"),
                "deliveryEnd": (start + (i + 1) * step).isoformat().replace("+00:00", "Z"),
                "entryPerArea": {area: 50.0 + i, "NO2": 1.0},
            }
            for i in range(count)
        ],
    }


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestNordPoolAdapter:
    def test_per_kwh_values(self):
        points = NordPoolAdapter().adapt(_nordpool_body(), "NO1", "NOK")
        assert len(points) == 24
        assert points[0]["value"] == pytest.approx(0.05)
        assert points[0]["currency"] == "NOK"

    def test_missing_area_skipped(self):
        assert NordPoolAdapter().adapt(_nordpool_body(area="SE3"), "NO1", "NOK") == []

    def test_empty_document(self):
        assert NordPoolAdapter().adapt({}, "NO1", "NOK") == []


class TestNordPoolPriceSource:
    async def test_fetch(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(request.url.params)
            return httpx.Response(200, json=_nordpool_body(96, 15))

        async with _client(handler) as client:
            source = NordPoolPriceSource(MarketConfig(price_currency="EUR"), client=client)
            result = await source.fetch(DAY, PriceResolution.HOURLY, "nordpool")

        assert seen == {
            "market": "DayAhead",
            "deliveryArea": "NO1",
            "currency": "EUR",
            "date": "2024-03-12",
        }
        assert result.provider == "Nord Pool"
        assert result.resolution == "PT15M"
        assert len(result.points) == 96
        assert "deliveryArea=NO1" in result.provider_url

    async def test_http_error(self):
        async with _client(lambda r: httpx.Response(503, text="busy")) as client:
            source = NordPoolPriceSource(MarketConfig(), client=client)
            with pytest.raises(ProviderUnavailable) as exc_info:
                await source.fetch(DAY, PriceResolution.HOURLY, "nordpool")
        assert exc_info.value.context["status_code"] == 503

    async def test_not_published_yet(self):
        async with _client(lambda r: httpx.Response(204)) as client:
            source = NordPoolPriceSource(MarketConfig(), client=client)
            with pytest.raises(ProviderUnavailable, match="not ready"):
                await source.fetch(DAY, PriceResolution.HOURLY, "nordpool")

    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with _client(handler) as client:
            source = NordPoolPriceSource(MarketConfig(), client=client)
            with pytest.raises(ProviderUnavailable, match="request failed"):
                await source.fetch(DAY, PriceResolution.HOURLY, "nordpool")

    async def test_area_without_prices(self):
        async with _client(lambda r: httpx.Response(200, json=_nordpool_body(area="SE3"))) as client:
            source = NordPoolPriceSource(MarketConfig(), client=client)
            with pytest.raises(ProviderUnavailable, match="no prices for NO1"):
                await source.fetch(DAY, PriceResolution.HOURLY, "nordpool")


class TestEcb:
    def test_parse(self):
        record = parse_ecb_rates(ECB_XML)
        assert record.date == DAY
        assert record.rates == {"USD": 1.0916, "SEK": 11.2385, "NOK": 11.5075}
        assert record.fetched_at is None

    @pytest.mark.parametrize(
        "xml",
        [
            "<not-xml",
            "<Envelope><Cube/></Envelope>",
            '<Envelope><Cube><Cube time="2024-13-40">'
            '<Cube currency="NOK" rate="11.5"/></Cube></Cube></Envelope>',
            '<Envelope><Cube><Cube time="2024-03-12">'
            '<Cube currency="NOK" rate="n/a"/></Cube></Cube></Envelope>',
        ],
    )
    def test_parse_failures(self, xml):
        with pytest.raises(ProviderUnavailable):
            parse_ecb_rates(xml)

    async def test_fetch_sets_fetched_at(self):
        async with _client(lambda r: httpx.Response(200, text=ECB_XML)) as client:
            record = await EcbCurrencySource(CurrencyConfig(), client=client).fetch()
        assert record.rates["NOK"] == 11.5075
        assert record.fetched_at is not None

    async def test_fetch_http_error(self):
        async with _client(lambda r: httpx.Response(500)) as client:
            with pytest.raises(ProviderUnavailable, match="ECB rate fetch failed"):
                await EcbCurrencySource(CurrencyConfig(), client=client).fetch()


class TestSpotPriceCalculator:
    def _series(self, interval=PriceResolution.HOURLY, count=24, minutes=60) -> PriceSeries:
        start = datetime(2024, 3, 12, tzinfo=timezone.utc)
        step = timedelta(minutes=minutes)
        return PriceSeries(
            price_date=DAY,
            interval=interval,
            region_code="NO1",
            currency="EUR",
            provider="Fake",
            points=[
                PricePoint(start=start + i * step, end=start + (i + 1) * step, value=i / 3)
                for i in range(count)
            ],
        )

    def test_hourly_day_object(self):
        day = SpotPriceCalculator().compute(self._series(), CalculatorConfig())
        payload = day.to_payload()
        assert payload["priceDate"] == "2024-03-12"
        assert payload["priceInterval"] == "1h"
        assert len(payload["hourly"]) == 24
        assert "quarterly" not in payload
        assert payload["hourly"][1]["spotPrice"] == 0.3333
        assert payload["hourly"][0]["startTime"] == "2024-03-12T00:00:00+00:00"

    def test_daily_summary(self):
        day = SpotPriceCalculator().compute(self._series(), CalculatorConfig(decimals=2))
        daily = day.daily
        assert daily.min_price == 0.0
        assert daily.max_price == 7.67
        assert daily.avg_price == pytest.approx(3.83)
        # hours 6..21 -> values 2.0..7.0
        assert daily.peak_price == pytest.approx(4.5)
        # hours 0..5 and 22..23
        assert daily.off_peak_price1 == pytest.approx(0.83)
        assert daily.off_peak_price2 == pytest.approx(7.5)

    def test_quarterly_day_object(self):
        series = self._series(PriceResolution.QUARTER_HOUR, 96, 15)
        day = SpotPriceCalculator().compute(series, CalculatorConfig())
        assert day.hourly is None
        assert len(day.quarterly) == 96

    def test_empty_series_rejected(self):
        series = self._series(count=0)
        with pytest.raises(ValueError, match="empty series"):
            SpotPriceCalculator().compute(series, CalculatorConfig())
