"""Click-based CLI for catalog-sync.

Thin wrapper around the engine with no business logic. Every operation
delegates to CatalogEngine or the history store.
"""

from __future__ import annotations

import asyncio
import logging

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_async(coro):
    """Run an async coroutine from synchronous Click code."""
    return asyncio.run(coro)


def _load_config(ctx: click.Context):
    """Load config lazily, caching on first call."""
    if "config" not in ctx.obj:
        from catalog_sync.core import load_config

        ctx.obj["config"] = load_config(config_path=ctx.obj.get("config_path"))
    return ctx.obj["config"]


async def _create_engine_async(config):
    """Create the engine from config."""
    from catalog_sync.engine import CatalogEngine

    return await CatalogEngine.create(config)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )


def _generation_table(title: str, sources) -> Table:
    table = Table(title=title)
    table.add_column("#", justify="right")
    table.add_column("Name", style="bold")
    table.add_column("Code")
    table.add_column("Items", justify="right")
    table.add_column("Listings", justify="right")
    table.add_column("Updated")
    for i, data in enumerate(sources):
        ts = data.timestamp
        table.add_row(
            str(i),
            data.name,
            data.code,
            str(len(data.snapshot)),
            str(data.snapshot.listing_count),
            ts.strftime("%Y-%m-%d %H:%M") if ts else "N/A",
        )
    return table


def _print_report(report) -> None:
    table = Table(title="Sync Report")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Published", "yes" if report.published else "no")
    table.add_row("Fresh sources", str(len(report.succeeded)))
    table.add_row("Failed sources", str(len(report.failed)))
    table.add_row("Carried over", str(len(report.carried_over)))
    table.add_row("Duration", f"{report.duration_seconds:.1f}s")
    console.print(table)
    for code, reason in sorted(report.failed.items()):
        console.print(f"[red]✗ {code}: {reason}[/red]")


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    envvar="CATALOG_SYNC_CONFIG",
    default=None,
    help="Path to catalog-sync.yml config file.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable verbose output.",
)
@click.version_option(package_name="catalog-sync")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """Catalog Sync: keeps the listing catalog fresh from upstream sources."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose
    ctx.obj["console"] = console
    _configure_logging(verbose)


# ---------------------------------------------------------------------------
# sources
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def sources(ctx: click.Context) -> None:
    """List configured sources."""
    config = _load_config(ctx)

    table = Table(title="Configured Sources")
    table.add_column("Code", style="bold")
    table.add_column("Name")
    table.add_column("Kind")
    table.add_column("Sides")
    table.add_column("Keepers")
    for source in config.sources:
        sides = [s for s, on in (("sell", source.sells), ("buy", source.buys)) if on]
        table.add_row(
            source.code,
            source.name,
            source.kind,
            "/".join(sides),
            ", ".join(source.keepers) or "-",
        )
    console.print(table)


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Load the catalog from cache and show what would be served."""
    config = _load_config(ctx)

    async def _run():
        engine = await _create_engine_async(config)
        try:
            await engine.load_cache()
            sellers, vendors = engine.current_generation()
            console.print(_generation_table("Sellers", sellers))
            console.print(_generation_table("Vendors", vendors))
            console.print(
                f"Catalog ready: {'[green]yes[/green]' if engine.catalog_ready() else '[yellow]no[/yellow]'}"
            )
        finally:
            await engine.close()

    _run_async(_run())


# ---------------------------------------------------------------------------
# sync
# ---------------------------------------------------------------------------


@cli.command()
@click.option(
    "--no-cache",
    is_flag=True,
    default=False,
    help="Do not preload the catalog from the snapshot cache first.",
)
@click.pass_context
def sync(ctx: click.Context, no_cache: bool) -> None:
    """Run one full-catalog refresh across all sources."""
    config = _load_config(ctx)

    async def _run():
        engine = await _create_engine_async(config)
        try:
            if not no_cache:
                await engine.load_cache()
            report = await engine.sync_all()
            _print_report(report)
            return report
        finally:
            await engine.close()

    report = _run_async(_run())
    if not report.published:
        raise SystemExit(1)


# ---------------------------------------------------------------------------
# refresh
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("code")
@click.pass_context
def refresh(ctx: click.Context, code: str) -> None:
    """Refresh a single source (CODE) on top of the cached catalog."""
    config = _load_config(ctx)

    async def _run():
        from catalog_sync.core import CatalogSyncError

        engine = await _create_engine_async(config)
        try:
            await engine.load_cache()
            try:
                return await engine.refresh_source(code)
            except CatalogSyncError as e:
                console.print(f"[red]{e}[/red]")
                return None
        finally:
            await engine.close()

    result = _run_async(_run())
    if result is None:
        raise SystemExit(1)
    for updated in result.updated:
        console.print(f"[green]✓[/green] {updated} updated")
    for failed, reason in sorted(result.failed.items()):
        console.print(f"[red]✗ {failed}: {reason}[/red]")
    if not result.updated:
        raise SystemExit(1)


# ---------------------------------------------------------------------------
# watch
# ---------------------------------------------------------------------------


@cli.command()
@click.option(
    "--interval",
    "-i",
    type=float,
    default=None,
    help="Seconds between full refreshes. Default: sync.interval_seconds.",
)
@click.pass_context
def watch(ctx: click.Context, interval: float | None) -> None:
    """Start the engine and keep resyncing on a fixed cadence."""
    config = _load_config(ctx)

    async def _run():
        engine = await _create_engine_async(config)
        try:
            await engine.start()
            await engine.run_forever(interval)
        finally:
            await engine.close()

    try:
        _run_async(_run())
    except KeyboardInterrupt:
        console.print("Stopped.")


# ---------------------------------------------------------------------------
# history
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("item_id", required=False)
@click.option("--namespace", "-n", required=True, help="History namespace, e.g. ck_retail.")
@click.option("--pattern", "-p", default=None, help="Glob pattern to list matching item ids.")
@click.pass_context
def history(
    ctx: click.Context,
    item_id: str | None,
    namespace: str,
    pattern: str | None,
) -> None:
    """Show the price series for ITEM_ID, or list item ids matching --pattern."""
    config = _load_config(ctx)
    if not config.history.enabled:
        console.print("[yellow]History store disabled in config.[/yellow]")
        raise SystemExit(1)
    if item_id is None and pattern is None:
        raise click.UsageError("Give an ITEM_ID or --pattern")

    async def _run():
        from catalog_sync.cache import create_history_store

        store = await create_history_store(config.history)
        try:
            if pattern is not None:
                return [key async for key in store.scan(namespace, pattern)], None
            return None, await store.fetch_series(namespace, item_id)
        finally:
            await store.close()

    keys, series = _run_async(_run())
    if keys is not None:
        for key in keys:
            click.echo(key)
        return

    if not series:
        console.print(f"[yellow]No history for {item_id} in {namespace}.[/yellow]")
        return
    table = Table(title=f"{item_id} ({namespace})")
    table.add_column("Date")
    table.add_column("Price", justify="right")
    for date_key, price in series.items():
        table.add_row(date_key, f"{price:.2f}")
    console.print(table)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
