"""Integration tests for the CLI.

Uses Click's CliRunner — no subprocesses. The service factory is patched to
an in-memory service with fake upstream sources.
"""

from __future__ import annotations

import asyncio
import json
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from dayahead.cache.coordinator import CacheCoordinator, price_key
from dayahead.cache.store import MemoryObjectCache
from dayahead.cli import cli
from dayahead.core.exceptions import StorageError
from dayahead.prices.calculator import SpotPriceCalculator
from dayahead.service import PriceService

from tests.conftest import TODAY, FakeCurrencySource, FakeUpstream
from tests.integration.conftest import EVENING

pytestmark = pytest.mark.integration


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "price-config.yaml"
    path.write_text(
        "timezone: UTC\n"
        "market:\n  region_code: NO1\n  price_currency: EUR\n"
        "cache:\n  backend: memory\n  keep_days: 3\n"
    )
    return str(path)


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def service(prices_config, upstream, sample_day_payload) -> PriceService:
    price_cache = MemoryObjectCache("prices")
    asyncio.run(price_cache.create_object(price_key(TODAY), sample_day_payload))
    coordinator = CacheCoordinator(
        prices_config,
        price_cache,
        MemoryObjectCache("currencies"),
        upstream=upstream,
        calculator=SpotPriceCalculator(),
        currency_source=FakeCurrencySource(),
        today=lambda: TODAY,
    )
    return PriceService(prices_config, coordinator, now=lambda: EVENING)


@pytest.fixture
def patched(service):
    with patch("dayahead.service.PriceService.create", AsyncMock(return_value=service)):
        yield service


class TestCLIHelp:
    """CLI help and version commands."""

    def test_help_output(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "Day-ahead electricity prices" in result.output

    def test_version_output(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0

    @pytest.mark.parametrize("command", ["fetch", "status", "show", "cleanup", "serve"])
    def test_subcommand_help(self, runner, command):
        result = runner.invoke(cli, [command, "--help"])
        assert result.exit_code == 0

    def test_serve_options(self, runner):
        result = runner.invoke(cli, ["serve", "--help"])
        assert "--host" in result.output
        assert "--port" in result.output


class TestFetch:
    def test_fetch_cycle(self, runner, config_file, patched, upstream):
        result = runner.invoke(cli, ["-c", config_file, "fetch"])
        assert result.exit_code == 0, result.output
        assert "4 days available" in result.output
        assert TODAY not in upstream.calls

    def test_failed_day_exits_nonzero(self, runner, config_file, patched, upstream):
        upstream.points_by_date[TODAY + timedelta(days=1)] = []
        result = runner.invoke(cli, ["-c", config_file, "fetch"])
        assert result.exit_code == 1
        assert str(TODAY + timedelta(days=1)) in result.output


class TestShow:
    def test_scalar(self, runner, config_file, patched):
        result = runner.invoke(cli, ["-c", config_file, "show", TODAY.isoformat(), "daily/avgPrice"])
        assert result.exit_code == 0, result.output
        assert "1.23" in result.output

    def test_whole_day(self, runner, config_file, patched, sample_day_payload):
        result = runner.invoke(cli, ["-c", config_file, "show", TODAY.isoformat()])
        assert result.exit_code == 0
        start = result.output.index("{")
        end = result.output.rindex("}") + 1
        assert json.loads(result.output[start:end]) == sample_day_payload

    def test_not_found(self, runner, config_file, patched):
        result = runner.invoke(cli, ["-c", config_file, "show", TODAY.isoformat(), "hourly/99"])
        assert result.exit_code == 1
        assert "Path not found: /hourly/99" in result.output

    def test_invalid_date(self, runner, config_file, patched):
        result = runner.invoke(cli, ["-c", config_file, "show", "tomorrow"])
        assert result.exit_code == 1
        assert "Invalid date format" in result.output


class TestStatusAndCleanup:
    def test_status_table(self, runner, config_file, patched):
        result = runner.invoke(cli, ["-c", config_file, "status"])
        assert result.exit_code == 0, result.output
        assert "Day-ahead Prices Status" in result.output
        assert "current_only" in result.output

    def test_cleanup(self, runner, config_file, patched):
        old = TODAY - timedelta(days=9)
        asyncio.run(patched.coordinator._prices.create_object(price_key(old), {}))
        result = runner.invoke(cli, ["-c", config_file, "cleanup"])
        assert result.exit_code == 0
        assert price_key(old) in result.output
        assert "Removed 1 cache entries" in result.output


class TestConfigErrors:
    def test_missing_config_file(self, runner):
        result = runner.invoke(cli, ["-c", "/nonexistent.yaml", "fetch"])
        assert result.exit_code != 0

    def test_invalid_config(self, runner, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("cache:\n  keep_days: 0\n")
        result = runner.invoke(cli, ["-c", str(path), "status"])
        assert result.exit_code == 1
        assert "keep_days" in result.output


class TestStorageErrors:
    """Backend failures print a red message and exit 1 instead of a traceback."""

    @pytest.mark.parametrize(
        ("command", "target"),
        [
            ("fetch", "run_fetch_cycle"),
            ("cleanup", "coordinator.cleanup"),
            ("status", "coordinator.cached_dates"),
        ],
    )
    def test_reported(self, runner, config_file, patched, command, target):
        owner = patched
        *parents, name = target.split(".")
        for parent in parents:
            owner = getattr(owner, parent)
        failure = StorageError("disk I/O error", context={"operation": "keys", "key": None})
        with patch.object(owner, name, AsyncMock(side_effect=failure)):
            result = runner.invoke(cli, ["-c", config_file, command])
        assert result.exit_code == 1
        assert "500: disk I/O error" in result.output
        assert not isinstance(result.exception, StorageError)
