"""Configuration loading, validation, and access."""

from __future__ import annotations

import os
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from dayahead.core.exceptions import ConfigError
from dayahead.core.models import CacheBackend, PriceResolution

_DEFAULT_CONFIG_FILE = "price-config.yaml"

PRICE_PROVIDERS = ("nordpool", "entsoe")


class MarketConfig(BaseModel):
    """Which day-ahead market to fetch and at what resolution."""

    model_config = ConfigDict(frozen=True)

    region_code: str = "NO1"
    price_currency: str = "NOK"
    price_interval: PriceResolution = PriceResolution.HOURLY
    preferred_provider: str = "nordpool"
    nord_pool_url: str = (
        "https://dataportal-api.nordpoolgroup.com/api/DayAheadPrices"
    )
    entsoe_url: str = "https://web-api.tp.entsoe.eu/api"
    price_access_token: str | None = None
    request_timeout: float = 15.0

    @field_validator("price_currency", "region_code")
    @classmethod
    def upper(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("preferred_provider")
    @classmethod
    def provider_known(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in PRICE_PROVIDERS:
            raise ValueError(f"preferred_provider must be one of {PRICE_PROVIDERS}")
        return v

    @model_validator(mode="after")
    def entsoe_needs_token(self) -> MarketConfig:
        if self.preferred_provider == "entsoe" and not self.price_access_token:
            raise ValueError("preferred_provider entsoe requires price_access_token")
        return self


class CalculatorConfig(BaseModel):
    """Settings for assembling day objects from a normalized series."""

    model_config = ConfigDict(frozen=True)

    day_hours_start: int = 6
    day_hours_end: int = 22
    decimals: int = 4

    @model_validator(mode="after")
    def day_hours_ordered(self) -> CalculatorConfig:
        if not 0 <= self.day_hours_start < self.day_hours_end <= 24:
            raise ValueError(
                "day hours must satisfy 0 <= day_hours_start < day_hours_end <= 24"
            )
        return self


class CacheConfig(BaseModel):
    """Object cache backend and retention."""

    model_config = ConfigDict(frozen=True)

    backend: CacheBackend = CacheBackend.SQLITE
    sqlite_path: str = "./data/dayahead.db"
    keep_days: int = 7
    currency_keep_days: int | None = None

    @field_validator("keep_days")
    @classmethod
    def keep_days_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("keep_days must be >= 1")
        return v

    @property
    def currency_retention(self) -> int:
        return self.currency_keep_days or self.keep_days


class CurrencyConfig(BaseModel):
    """Currency reference rate source."""

    model_config = ConfigDict(frozen=True)

    url: str = "https://www.ecb.europa.eu/stats/eurofxref/eurofxref-daily.xml"
    request_timeout: float = 15.0


class PublishConfig(BaseModel):
    """Retained publish surface."""

    model_config = ConfigDict(frozen=True)

    topic_prefix: str = "elwiz/prices"

    @field_validator("topic_prefix")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        v = v.rstrip("/")
        if not v:
            raise ValueError("topic_prefix must not be empty")
        return v


class ScheduleConfig(BaseModel):
    """Times at which the external scheduler runs fetch cycles."""

    model_config = ConfigDict(frozen=True)

    schedule_hours: list[int] = [13, 14]
    schedule_minutes: list[int] = [6, 11, 16, 21]

    @field_validator("schedule_hours", "schedule_minutes", mode="before")
    @classmethod
    def scalar_to_list(cls, v):
        return [v] if isinstance(v, (int, str)) else v

    @field_validator("schedule_hours")
    @classmethod
    def hours_valid(cls, v: list[int]) -> list[int]:
        if not v or any(h < 0 or h > 23 for h in v):
            raise ValueError("schedule_hours must be a non-empty list of 0-23")
        return sorted(set(v))

    @field_validator("schedule_minutes")
    @classmethod
    def minutes_valid(cls, v: list[int]) -> list[int]:
        if not v or any(m < 0 or m > 59 for m in v):
            raise ValueError("schedule_minutes must be a non-empty list of 0-59")
        return sorted(set(v))


class APIConfig(BaseModel):
    """FastAPI server configuration."""

    model_config = ConfigDict(frozen=True)

    host: str = "0.0.0.0"
    port: int = 3000


class PricesConfig(BaseModel):
    """Root configuration for the entire dayahead system."""

    model_config = ConfigDict(frozen=True)

    timezone: str = "Europe/Oslo"
    market: MarketConfig = MarketConfig()
    calculator: CalculatorConfig = CalculatorConfig()
    cache: CacheConfig = CacheConfig()
    currency: CurrencyConfig = CurrencyConfig()
    publish: PublishConfig = PublishConfig()
    schedule: ScheduleConfig = ScheduleConfig()
    api: APIConfig = APIConfig()

    @field_validator("timezone")
    @classmethod
    def timezone_known(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v!r}") from e
        return v

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


def load_config(
    config_path: str | None = None,
    env_prefix: str = "DAYAHEAD_",
) -> PricesConfig:
    """Load configuration from environment + YAML file + defaults.

    Resolution order (highest priority first):
    1. Environment variables (DAYAHEAD_MARKET__REGION_CODE, etc.)
    2. YAML file at config_path
    3. Built-in defaults

    Nested keys use double-underscore in env vars:
        DAYAHEAD_CACHE__KEEP_DAYS=5  ->  cache.keep_days = 5
    """
    try:
        yaml_path = _resolve_config_path(config_path)
        base: dict = {}
        if yaml_path is not None:
            base = _load_yaml(yaml_path)

        merged = _merge_env_vars(base, env_prefix)
        return PricesConfig.model_validate(merged)
    except Exception as e:
        if isinstance(e, ConfigError):
            raise
        raise ConfigError(str(e), context={"source": "load_config"}) from e


def _resolve_config_path(explicit: str | None) -> Path | None:
    """Determine config file path."""
    if explicit is not None:
        p = Path(explicit)
        if not p.exists():
            raise ConfigError(
                f"Config file not found: {explicit}",
                context={"field": "config_path", "value": explicit},
            )
        return p

    env_path = os.environ.get("DAYAHEAD_CONFIG")
    if env_path:
        p = Path(env_path)
        if not p.exists():
            raise ConfigError(
                f"Config file from DAYAHEAD_CONFIG not found: {env_path}",
                context={"field": "DAYAHEAD_CONFIG", "value": env_path},
            )
        return p

    default = Path(_DEFAULT_CONFIG_FILE)
    if default.exists():
        return default

    return None


def _load_yaml(path: Path) -> dict:
    """Load and parse YAML file."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(
                f"YAML config must be a mapping, got {type(data).__name__}",
                context={"field": "config_file", "value": str(path)},
            )
        return data
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Failed to parse YAML config: {e}",
            context={"field": "config_file", "value": str(path)},
        ) from e


def _merge_env_vars(base: dict, prefix: str) -> dict:
    """Overlay environment variables onto base config dict.

    Double-underscore separates nesting levels.
    Values are auto-cast: "true"/"false" -> bool, numeric strings -> int.
    Comma-separated values become lists (e.g. schedule hours).
    """
    result = dict(base)

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        remainder = key[len(prefix) :]
        parts = [p.lower() for p in remainder.split("__")]

        # Skip the CONFIG env var itself
        if parts == ["config"]:
            continue

        if "," in value:
            cast_value = [_auto_cast(v.strip()) for v in value.split(",") if v.strip()]
        else:
            cast_value = _auto_cast(value)

        target = result
        for part in parts[:-1]:
            existing = target.get(part)
            if not isinstance(existing, dict):
                existing = dict(existing) if existing else {}
                target[part] = existing
            target = existing
        target[parts[-1]] = cast_value

    return result


def _auto_cast(value: str) -> str | int | float | bool:
    """Auto-cast string values from environment variables."""
    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    return value
