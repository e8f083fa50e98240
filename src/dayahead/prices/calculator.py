"""Spot price calculator. Assembles day objects from a normalized series.

This is the default ``PriceCalculator``. It does no tariff, VAT or grid-fee
arithmetic: it rounds spot prices, lays them out as an interval array and
summarizes the day. Peak hours are ``[day_hours_start, day_hours_end)`` in
the series' own UTC offset; off-peak 1 is before, off-peak 2 after.
"""

from __future__ import annotations

from statistics import fmean

from dayahead.core.config import CalculatorConfig
from dayahead.core.models import (
    DailySummary,
    PriceDayObject,
    PriceEntry,
    PricePoint,
    PriceSeries,
)


class SpotPriceCalculator:
    """Default ``PriceCalculator`` producing spot-only day objects."""

    def compute(self, series: PriceSeries, config: CalculatorConfig) -> PriceDayObject:
        if not series.points:
            raise ValueError(f"cannot compute a day object from an empty series ({series.price_date})")

        decimals = config.decimals
        entries = [
            PriceEntry(
                start_time=p.start.isoformat(),
                end_time=p.end.isoformat(),
                spot_price=round(p.value, decimals),
            )
            for p in series.points
        ]
        daily = self._summarize(series.points, config)

        return PriceDayObject.model_validate(
            {
                "priceDate": series.price_date,
                "priceInterval": series.interval,
                "regionCode": series.region_code,
                "priceCurrency": series.currency,
                "priceProvider": series.provider,
                "priceProviderUrl": series.provider_url,
                "daily": daily,
                series.interval.entries_key: entries,
            }
        )

    @staticmethod
    def _summarize(points: list[PricePoint], config: CalculatorConfig) -> DailySummary:
        def avg(values: list[float]) -> float | None:
            return round(fmean(values), config.decimals) if values else None

        values = [p.value for p in points]
        peak = [p.value for p in points if config.day_hours_start <= p.start.hour < config.day_hours_end]
        early = [p.value for p in points if p.start.hour < config.day_hours_start]
        late = [p.value for p in points if p.start.hour >= config.day_hours_end]

        return DailySummary(
            min_price=round(min(values), config.decimals),
            max_price=round(max(values), config.decimals),
            avg_price=round(fmean(values), config.decimals),
            peak_price=avg(peak),
            off_peak_price1=avg(early),
            off_peak_price2=avg(late),
        )
