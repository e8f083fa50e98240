"""Click-based CLI for dayahead.

Thin wrapper around library modules. Zero business logic: every command
delegates to PriceService, the cache coordinator or the read resolver.
"""

from __future__ import annotations

import asyncio
import json
import logging

import click
from rich.console import Console
from rich.table import Table

console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_async(coro):
    """Run an async coroutine from synchronous Click code."""
    return asyncio.run(coro)


def _run_or_exit(ctx: click.Context, coro):
    """Run ``coro``; report a DayAheadError in red and exit 1."""
    from dayahead.core import DayAheadError

    try:
        return _run_async(coro)
    except DayAheadError as exc:
        console.print(f"[red]{exc.status_code}: {exc}[/red]")
        ctx.exit(1)


def _load_config(ctx: click.Context):
    """Load config lazily, caching on first call."""
    if "config" not in ctx.obj:
        from dayahead.core import ConfigError, load_config

        try:
            ctx.obj["config"] = load_config(config_path=ctx.obj.get("config_path"))
        except ConfigError as exc:
            raise click.ClickException(str(exc)) from exc
    return ctx.obj["config"]


async def _create_service_async(config):
    """Create a PriceService with the configured backends."""
    from dayahead.service import PriceService

    return await PriceService.create(config)


def _fmt(value) -> str:
    return "-" if value is None else str(value)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    envvar="DAYAHEAD_CONFIG",
    default=None,
    help="Path to price-config.yaml.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable debug logging.",
)
@click.version_option(package_name="dayahead-prices")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """Day-ahead electricity prices: fetch, cache and serve."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose
    ctx.obj["console"] = console
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# fetch
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def fetch(ctx: click.Context) -> None:
    """Run one fetch cycle: cache missing days, sweep old ones."""
    config = _load_config(ctx)

    async def _run():
        service = await _create_service_async(config)
        try:
            return await service.run_fetch_cycle()
        finally:
            await service.close()

    result = _run_or_exit(ctx, _run())

    console.print(
        f"[green]✓[/green] {len(result.available)} days available "
        f"for {config.market.region_code} ({config.market.price_currency})"
        + (f", {len(result.cleaned)} old entries removed" if result.cleaned else "")
    )
    if result.skipped_next_day:
        console.print("[yellow]Next-day prices not fetched: window not open yet.[/yellow]")
    for day, reason in sorted(result.failed.items()):
        console.print(f"[red]✗ {day}: {reason}[/red]")
    if result.failed:
        ctx.exit(1)


# ---------------------------------------------------------------------------
# show
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("price_date")
@click.argument("path", required=False, default="")
@click.pass_context
def show(ctx: click.Context, price_date: str, path: str) -> None:
    """Print a cached day object, or the value at PATH inside it, as JSON."""
    config = _load_config(ctx)

    async def _run():
        service = await _create_service_async(config)
        try:
            return await service.resolver.resolve(price_date, path)
        finally:
            await service.close()

    value = _run_or_exit(ctx, _run())
    click.echo(json.dumps(value, indent=2))


# ---------------------------------------------------------------------------
# cleanup
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def cleanup(ctx: click.Context) -> None:
    """Delete cached prices and rates older than the keep windows."""
    config = _load_config(ctx)

    async def _run():
        service = await _create_service_async(config)
        try:
            return await service.coordinator.cleanup()
        finally:
            await service.close()

    deleted = _run_or_exit(ctx, _run())
    for key in deleted:
        console.print(f"  removed {key}")
    console.print(f"[green]✓[/green] Removed {len(deleted)} cache entries")


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--host", type=str, default=None, help="Bind address (default: api.host).")
@click.option("--port", "-p", type=int, default=None, help="Port number (default: api.port).")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Start the read API server."""
    import uvicorn

    from dayahead.api.app import create_app

    config = _load_config(ctx)
    host = host or config.api.host
    port = port or config.api.port

    console.print(f"Starting dayahead API on [bold]{host}:{port}[/bold]")
    console.print(f"API docs: http://{host}:{port}/docs")

    uvicorn.run(create_app(config), host=host, port=port)


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show cached dates and the day window."""
    config = _load_config(ctx)

    async def _run():
        service = await _create_service_async(config)
        try:
            await service.warm_window()
            cached = await service.coordinator.cached_dates()
            return cached, service.window.describe()
        finally:
            await service.close()

    cached, window = _run_or_exit(ctx, _run())

    table = Table(title="Day-ahead Prices Status")
    table.add_column("Item", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Region", config.market.region_code)
    table.add_row("Currency", config.market.price_currency)
    table.add_row("Interval", str(config.market.price_interval))
    table.add_row("Cache backend", str(config.cache.backend))
    table.add_section()
    table.add_row("Cached days", str(len(cached)))
    table.add_row(
        "Date range",
        f"{cached[0]} → {cached[-1]}" if cached else "N/A",
    )
    table.add_section()
    table.add_row("Window state", window["state"])
    for slot, day in window["slots"].items():
        table.add_row(f"{slot.capitalize()} day", _fmt(day))

    console.print(table)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
