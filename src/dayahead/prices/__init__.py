"""Upstream price ingestion and interval normalization.

Architecture
------------
Upstream sources are decoupled from the rest of the system by protocols:

    UpstreamPriceSource → normalize → PriceCalculator → PriceDayObject

Key abstractions:

- ``UpstreamPriceSource``: Raw timestamped points for one delivery date.
- ``CurrencyRateSource``: Reference rates per 1 EUR.
- ``PriceCalculator``: Turns a normalized series into a day object.

Built-in implementations:

- ``NordPoolPriceSource``: Nord Pool day-ahead data portal.
- ``EntsoePriceSource``: ENTSO-E Transparency Platform (needs a token).
- ``PriceFetcher``: Tries the preferred source, then the others.
- ``EcbCurrencySource``: ECB daily reference rates.
- ``SpotPriceCalculator``: Spot entries plus a daily summary.

Adding a new price source means implementing ``UpstreamPriceSource.fetch``;
the normalizer reconciles whatever resolution it returns.
"""

from dayahead.prices.calculator import SpotPriceCalculator
from dayahead.prices.currency import EcbCurrencySource, parse_ecb_rates
from dayahead.prices.entsoe import EntsoeAdapter, EntsoePriceSource
from dayahead.prices.fetcher import PriceFetcher
from dayahead.prices.nordpool import NordPoolAdapter, NordPoolPriceSource
from dayahead.prices.normalizer import (
    aggregate_to_hourly,
    clean_points,
    detect_interval,
    expand_to_quarter_hour,
    normalize,
)
from dayahead.prices.provider import (
    CurrencyRateSource,
    PriceCalculator,
    UpstreamPriceSource,
)

__all__ = [
    # Protocols
    "UpstreamPriceSource",
    "CurrencyRateSource",
    "PriceCalculator",
    # Normalizer
    "normalize",
    "detect_interval",
    "aggregate_to_hourly",
    "expand_to_quarter_hour",
    "clean_points",
    # Nord Pool
    "NordPoolAdapter",
    "NordPoolPriceSource",
    # ENTSO-E
    "EntsoeAdapter",
    "EntsoePriceSource",
    # Provider selection
    "PriceFetcher",
    # ECB
    "EcbCurrencySource",
    "parse_ecb_rates",
    # Calculator
    "SpotPriceCalculator",
]
