"""Tests for dayahead.core.config."""

import os

import pytest
from pydantic import ValidationError

from dayahead.core.config import (
    CacheConfig,
    CalculatorConfig,
    MarketConfig,
    PricesConfig,
    PublishConfig,
    ScheduleConfig,
    _auto_cast,
    _merge_env_vars,
    load_config,
)
from dayahead.core.exceptions import ConfigError
from dayahead.core.models import CacheBackend, PriceResolution


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """No DAYAHEAD_* variables and no price-config.yaml in the cwd."""
    for key in list(os.environ):
        if key.startswith("DAYAHEAD_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


class TestMarketConfig:
    def test_defaults(self):
        c = MarketConfig()
        assert c.region_code == "NO1"
        assert c.price_currency == "NOK"
        assert c.price_interval == PriceResolution.HOURLY
        assert c.preferred_provider == "nordpool"

    def test_codes_uppercased(self):
        c = MarketConfig(region_code=" se3 ", price_currency="sek")
        assert c.region_code == "SE3"
        assert c.price_currency == "SEK"

    def test_interval_must_be_known(self):
        with pytest.raises(ValidationError):
            MarketConfig(price_interval="30m")

    def test_provider_must_be_known(self):
        with pytest.raises(ValidationError, match="preferred_provider must be one of"):
            MarketConfig(preferred_provider="awattar")

    def test_entsoe_requires_token(self):
        with pytest.raises(ValidationError, match="requires price_access_token"):
            MarketConfig(preferred_provider="entsoe")
        c = MarketConfig(preferred_provider=" EntsoE ", price_access_token="t")
        assert c.preferred_provider == "entsoe"


class TestCalculatorConfig:
    def test_day_hours_ordered(self):
        with pytest.raises(ValidationError, match="day_hours_start < day_hours_end"):
            CalculatorConfig(day_hours_start=22, day_hours_end=6)

    def test_day_hours_bounded(self):
        with pytest.raises(ValidationError):
            CalculatorConfig(day_hours_end=25)


class TestCacheConfig:
    def test_currency_retention_defaults_to_keep_days(self):
        assert CacheConfig(keep_days=5).currency_retention == 5
        assert CacheConfig(keep_days=5, currency_keep_days=30).currency_retention == 30

    def test_keep_days_positive(self):
        with pytest.raises(ValidationError, match="keep_days must be >= 1"):
            CacheConfig(keep_days=0)


class TestPublishConfig:
    def test_trailing_slash_stripped(self):
        assert PublishConfig(topic_prefix="elwiz/prices/").topic_prefix == "elwiz/prices"

    def test_empty_prefix_rejected(self):
        with pytest.raises(ValidationError):
            PublishConfig(topic_prefix="/")


class TestScheduleConfig:
    def test_sorted_and_deduplicated(self):
        c = ScheduleConfig(schedule_hours=[14, 13, 14], schedule_minutes=[30, 0])
        assert c.schedule_hours == [13, 14]
        assert c.schedule_minutes == [0, 30]

    def test_scalar_accepted(self):
        assert ScheduleConfig(schedule_hours=13).schedule_hours == [13]

    def test_out_of_range(self):
        with pytest.raises(ValidationError):
            ScheduleConfig(schedule_hours=[24])
        with pytest.raises(ValidationError):
            ScheduleConfig(schedule_minutes=[60])


class TestPricesConfig:
    def test_unknown_timezone(self):
        with pytest.raises(ValidationError, match="Unknown timezone"):
            PricesConfig(timezone="Mars/Olympus")

    def test_tz_property(self):
        assert PricesConfig(timezone="Europe/Stockholm").tz.key == "Europe/Stockholm"

    def test_frozen(self):
        c = PricesConfig()
        with pytest.raises(ValidationError):
            c.timezone = "UTC"


class TestLoadConfig:
    def test_defaults_only(self, clean_env):
        config = load_config()
        assert config.market.region_code == "NO1"
        assert config.cache.backend == CacheBackend.SQLITE
        assert config.api.port == 3000

    def test_yaml_loading(self, clean_env, tmp_path):
        yaml_file = tmp_path / "prices.yaml"
        yaml_file.write_text(
            "market:\n  region_code: SE3\n  price_currency: SEK\n"
            "cache:\n  backend: memory\n  keep_days: 3\n"
        )
        config = load_config(config_path=str(yaml_file))
        assert config.market.region_code == "SE3"
        assert config.cache.backend == CacheBackend.MEMORY
        assert config.cache.keep_days == 3

    def test_default_file_in_cwd(self, clean_env, tmp_path):
        (tmp_path / "price-config.yaml").write_text("timezone: UTC\n")
        assert load_config().timezone == "UTC"

    def test_config_env_var(self, clean_env, tmp_path, monkeypatch):
        path = tmp_path / "other.yaml"
        path.write_text("api:\n  port: 8080\n")
        monkeypatch.setenv("DAYAHEAD_CONFIG", str(path))
        assert load_config().api.port == 8080

    def test_env_overrides_yaml(self, clean_env, tmp_path, monkeypatch):
        yaml_file = tmp_path / "prices.yaml"
        yaml_file.write_text("market:\n  region_code: SE3\n")
        monkeypatch.setenv("DAYAHEAD_MARKET__REGION_CODE", "DK1")
        monkeypatch.setenv("DAYAHEAD_SCHEDULE__SCHEDULE_HOURS", "12,13")
        config = load_config(config_path=str(yaml_file))
        assert config.market.region_code == "DK1"
        assert config.schedule.schedule_hours == [12, 13]

    def test_missing_file_raises(self, clean_env):
        with pytest.raises(ConfigError, match="Config file not found"):
            load_config(config_path="/nonexistent/prices.yaml")

    def test_non_mapping_yaml(self, clean_env, tmp_path):
        yaml_file = tmp_path / "list.yaml"
        yaml_file.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="must be a mapping"):
            load_config(config_path=str(yaml_file))

    def test_invalid_value_wrapped(self, clean_env, monkeypatch):
        monkeypatch.setenv("DAYAHEAD_CACHE__KEEP_DAYS", "0")
        with pytest.raises(ConfigError):
            load_config()


class TestEnvHelpers:
    @pytest.mark.parametrize(
        "raw,expected",
        [("true", True), ("False", False), ("42", 42), ("1.5", 1.5), ("NO1", "NO1")],
    )
    def test_auto_cast(self, raw, expected):
        assert _auto_cast(raw) == expected

    def test_merge_nested(self, monkeypatch):
        monkeypatch.setenv("TESTPFX_CACHE__KEEP_DAYS", "4")
        merged = _merge_env_vars({"cache": {"backend": "memory"}}, "TESTPFX_")
        assert merged["cache"] == {"backend": "memory", "keep_days": 4}
