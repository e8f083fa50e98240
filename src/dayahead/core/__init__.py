"""dayahead.core — Foundation types, config, and exceptions."""

from dayahead.core.config import (
    APIConfig,
    CacheConfig,
    CalculatorConfig,
    CurrencyConfig,
    MarketConfig,
    PricesConfig,
    PublishConfig,
    ScheduleConfig,
    load_config,
)
from dayahead.core.exceptions import (
    ConfigError,
    DayAheadError,
    IndexOutOfRange,
    NotFound,
    ProviderUnavailable,
    RateUnavailable,
    ServiceUnavailable,
    StorageError,
    TransportError,
    ValidationError,
)
from dayahead.core.models import (
    CacheBackend,
    CurrencyRateRecord,
    DailySummary,
    PriceDayObject,
    PriceEntry,
    PricePoint,
    PriceResolution,
    PriceSeries,
    UpstreamPrices,
    WindowSlot,
    WindowState,
)

__all__ = [
    # Enums
    "PriceResolution",
    "WindowSlot",
    "WindowState",
    "CacheBackend",
    # Models
    "PricePoint",
    "UpstreamPrices",
    "PriceSeries",
    "PriceEntry",
    "DailySummary",
    "PriceDayObject",
    "CurrencyRateRecord",
    # Config
    "MarketConfig",
    "CalculatorConfig",
    "CacheConfig",
    "CurrencyConfig",
    "PublishConfig",
    "ScheduleConfig",
    "APIConfig",
    "PricesConfig",
    "load_config",
    # Exceptions
    "DayAheadError",
    "ConfigError",
    "StorageError",
    "ValidationError",
    "NotFound",
    "IndexOutOfRange",
    "ServiceUnavailable",
    "ProviderUnavailable",
    "RateUnavailable",
    "TransportError",
]
