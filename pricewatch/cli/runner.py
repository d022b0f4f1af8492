# pricewatch/cli/runner.py

"""Headless CLI commands: manage tracked items and run price checks."""

import asyncio
import json
import logging
import sys
from datetime import datetime

from rich.console import Console
from rich.table import Table

from pricewatch.models.price_reading import PriceChange
from pricewatch.models.product import ExtractionResult
from pricewatch.scrapers.page_fetcher import FetchError
from pricewatch.scrapers.product_extractor import ProductExtractor
from pricewatch.services.change_recorder import ChangeRecorder
from pricewatch.services.price_refresher import (
    STATUS_CHANGED,
    PriceNotFoundError,
    PriceRefresher,
)
from pricewatch.services.refresh_scheduler import (
    BatchReport,
    RefreshScheduler,
)
from pricewatch.storage.item_store import ItemStore

logger = logging.getLogger("pricewatch.cli")

# Stderr console for status messages so stdout stays clean for JSON
_err = Console(stderr=True)


def _format_ts(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else "never"


def _announce_change(change: PriceChange) -> None:
    """Print drops as they happen (the CLI's notification channel)."""
    if change.is_drop and change.previous is not None:
        _err.print(
            f"[green]↓ Item {change.reading.item_id}: "
            f"{change.previous.price} → {change.reading.price}[/green]"
        )


def build_refresher(store: ItemStore) -> PriceRefresher:
    """Wire the refresher with the CLI's change announcer."""
    return PriceRefresher(
        store,
        extractor=ProductExtractor(),
        recorder=ChangeRecorder(store, on_change=_announce_change),
    )


def _extraction_to_dict(result: ExtractionResult) -> dict[str, object]:
    """Serialise an extraction result to a plain dict for JSON output."""
    return {
        "url": result.url,
        "name": result.name,
        "price": str(result.price.amount) if result.price else None,
        "currency": result.price.currency if result.price else None,
        "image_url": result.image_url,
    }


def add_item(store: ItemStore, url: str, interval: int | None) -> int:
    """Track a new URL and take its first reading right away."""
    try:
        item = store.add_item(url, refresh_interval=interval)
    except ValueError as exc:
        _err.print(f"[red]{exc}[/red]")
        return 1

    _err.print(
        f"[bold]Tracking #{item.id}[/bold] {item.url} "
        f"[dim](every {item.refresh_interval}s)[/dim]"
    )
    return refresh_item(store, item.id)


def list_items(store: ItemStore) -> int:
    """Render every tracked item with its latest price."""
    items = store.list_items()
    if not items:
        _err.print("[yellow]No tracked items.[/yellow]")
        return 0

    table = Table(
        title="Tracked Items",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("#", style="dim", width=4)
    table.add_column("Name", max_width=50)
    table.add_column("Price", justify="right", style="green")
    table.add_column("Every", justify="right")
    table.add_column("Last checked", style="dim")
    table.add_column("URL", overflow="fold", style="dim")

    for item in items:
        latest = store.latest_reading(item.id)
        table.add_row(
            str(item.id),
            (item.name or "—")[:50],
            str(latest.price) if latest else "N/A",
            f"{item.refresh_interval}s",
            _format_ts(item.last_checked),
            item.url,
        )

    Console().print(table)
    return 0


def remove_item(store: ItemStore, item_id: int) -> int:
    """Stop tracking an item."""
    if not store.remove_item(item_id):
        _err.print(f"[red]No tracked item #{item_id}[/red]")
        return 1
    _err.print(f"[dim]Removed item #{item_id}[/dim]")
    return 0


def show_history(
    store: ItemStore, item_id: int, days: int | None,
) -> int:
    """Render an item's price history and summary stats."""
    try:
        item = store.get_item(item_id)
    except KeyError:
        _err.print(f"[red]No tracked item #{item_id}[/red]")
        return 1

    history = store.get_history(item_id, days=days)
    if not history:
        _err.print("[yellow]No price readings yet.[/yellow]")
        return 0

    table = Table(
        title=item.name or item.url,
        title_style="bold cyan",
    )
    table.add_column("Captured", style="dim")
    table.add_column("Price", justify="right", style="green")
    for reading in history:
        table.add_row(
            _format_ts(reading.captured_at), str(reading.price),
        )
    Console().print(table)

    stats = store.get_stats(item_id)
    if stats:
        _err.print(
            f"[dim]min {stats['min']}  max {stats['max']}  "
            f"avg {stats['avg']}  ({stats['count']} readings)[/dim]"
        )
    return 0


def refresh_item(store: ItemStore, item_id: int) -> int:
    """Manual trigger: refresh one item now, outside its schedule."""
    refresher = build_refresher(store)
    try:
        outcome = refresher.refresh_now(item_id)
    except KeyError:
        _err.print(f"[red]No tracked item #{item_id}[/red]")
        return 1
    except (FetchError, PriceNotFoundError) as exc:
        logger.warning("Manual refresh of item %d failed: %s", item_id, exc)
        _err.print(f"[red]{exc}[/red]")
        return 1

    price = outcome.extraction.price
    if outcome.status == STATUS_CHANGED:
        _err.print(f"[green]✓ Recorded {price}[/green]")
    else:
        _err.print(f"[dim]Price unchanged: {price}[/dim]")
    return 0


def extract_url(url: str) -> int:
    """Run extraction on an arbitrary URL and print JSON to stdout."""
    try:
        result = ProductExtractor().extract(url)
    except FetchError as exc:
        _err.print(f"[red]{exc}[/red]")
        return 1

    json.dump(
        _extraction_to_dict(result),
        sys.stdout,
        ensure_ascii=False,
        indent=2,
    )
    sys.stdout.write("\n")
    return 0 if result.has_price else 1


def _print_report(report: BatchReport) -> None:
    if report.aborted:
        _err.print("[red]Price check aborted, see log for details.[/red]")
        return
    _err.print(
        f"[green]✓ {report.processed} of {report.due} due items checked[/green] "
        f"[dim]({report.changed} changed, {report.unchanged} unchanged, "
        f"{report.no_price} without price, {report.failed} failed)[/dim]"
    )
    for error_msg in report.errors:
        _err.print(f"[red]Error: {error_msg}[/red]")


async def run_check(store: ItemStore) -> int:
    """Run a single scheduled tick and report on it."""
    scheduler = RefreshScheduler(store, refresher=build_refresher(store))
    report = await scheduler.tick()
    if report is None:
        return 1
    _print_report(report)
    return 1 if report.aborted else 0


def run_scheduler(store: ItemStore) -> int:
    """Run the recurring scheduler until interrupted."""
    scheduler = RefreshScheduler(store, refresher=build_refresher(store))
    _err.print(
        f"[bold]Checking due items every "
        f"{scheduler.tick_interval:.0f}s[/bold] [dim](Ctrl+C to stop)[/dim]"
    )
    try:
        asyncio.run(scheduler.run_forever())
    except KeyboardInterrupt:
        logger.info("Scheduler interrupted by user")
        _err.print("[dim]Stopped.[/dim]")
    return 0
