"""Pydantic data models — the system's type contracts."""

from __future__ import annotations

import math
from datetime import date, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from pydantic.alias_generators import to_camel

# --- Enumerations ---


class PriceResolution(StrEnum):
    """Temporal resolution of a price series."""

    HOURLY = "1h"
    QUARTER_HOUR = "15m"

    @property
    def minutes(self) -> int:
        return 60 if self is PriceResolution.HOURLY else 15

    @property
    def entries_key(self) -> str:
        """Key of the interval array inside a day object."""
        return "hourly" if self is PriceResolution.HOURLY else "quarterly"


class WindowSlot(StrEnum):
    """Slots of the rolling three-day window."""

    PREVIOUS = "previous"
    CURRENT = "current"
    NEXT = "next"


class WindowState(StrEnum):
    """Observable states of the day window."""

    NO_DATA = "no_data"
    CURRENT_ONLY = "current_only"
    CURRENT_AND_NEXT = "current_and_next"


class CacheBackend(StrEnum):
    """Supported object cache backends."""

    SQLITE = "sqlite"
    MEMORY = "memory"


# --- Price Models ---


class _CamelModel(BaseModel):
    """Frozen model serialized with camelCase keys."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class PricePoint(_CamelModel):
    """A single priced delivery window."""

    start: datetime
    end: datetime
    value: float
    currency: str = ""

    @field_validator("value")
    @classmethod
    def value_finite(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError(f"value must be finite, got {v}")
        return v

    @field_validator("currency", mode="before")
    @classmethod
    def currency_none_is_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @model_validator(mode="after")
    def start_before_end(self) -> PricePoint:
        if self.start >= self.end:
            raise ValueError(
                f"start ({self.start.isoformat()}) must be before "
                f"end ({self.end.isoformat()})"
            )
        return self

    @property
    def duration_minutes(self) -> float:
        return (self.end - self.start).total_seconds() / 60


class UpstreamPrices(_CamelModel):
    """Raw points for one delivery day, as returned by an upstream source."""

    provider: str
    provider_url: str | None = None
    resolution: str | None = None
    points: list[dict[str, Any]]


class PriceSeries(_CamelModel):
    """A normalized series for one delivery day plus its provenance."""

    price_date: date
    interval: PriceResolution
    region_code: str
    currency: str
    provider: str
    provider_url: str | None = None
    points: list[PricePoint]


class PriceEntry(_CamelModel):
    """One priced interval inside a day object."""

    model_config = ConfigDict(extra="allow")

    start_time: str
    end_time: str
    spot_price: float


class DailySummary(_CamelModel):
    """Aggregates over one delivery day."""

    model_config = ConfigDict(extra="allow")

    min_price: float
    max_price: float
    avg_price: float
    peak_price: float | None = None
    off_peak_price1: float | None = None
    off_peak_price2: float | None = None


class PriceDayObject(_CamelModel):
    """A cached, immutable day of prices.

    Unknown keys are kept, so an object read back from the cache dumps to
    exactly the payload that was stored.
    """

    model_config = ConfigDict(extra="allow")

    price_date: date
    price_interval: PriceResolution = PriceResolution.HOURLY
    region_code: str | None = None
    price_currency: str | None = None
    price_provider: str | None = None
    price_provider_url: str | None = None
    daily: DailySummary
    hourly: list[PriceEntry] | None = None
    quarterly: list[PriceEntry] | None = None

    @model_validator(mode="after")
    def has_entries(self) -> PriceDayObject:
        if self.hourly is None and self.quarterly is None:
            raise ValueError("day object needs an 'hourly' or 'quarterly' array")
        return self

    @property
    def entries(self) -> list[PriceEntry]:
        """The interval array, whichever resolution it was stored at."""
        if self.hourly is not None:
            return self.hourly
        return self.quarterly or []

    def to_payload(self) -> dict[str, Any]:
        """JSON-compatible dict in the stored (camelCase) shape."""
        return self.model_dump(by_alias=True, mode="json", exclude_unset=True)


# --- Currency Models ---


class CurrencyRateRecord(_CamelModel):
    """Reference rates for one day, quoted per 1 EUR."""

    date: date
    rates: dict[str, float]
    fetched_at: datetime | None = None

    @field_validator("rates")
    @classmethod
    def codes_upper(cls, v: dict[str, float]) -> dict[str, float]:
        return {code.upper(): rate for code, rate in v.items()}

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude_unset=True)
