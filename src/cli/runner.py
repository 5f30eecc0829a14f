# src/cli/runner.py

"""Headless command implementations for the pricewatch CLI."""

import logging
from datetime import time

from rich.console import Console
from rich.table import Table

from src.models.outcomes import (
    ErrorOccurred,
    ExtractionFailed,
    FetchFailed,
    PriceChanged,
    Success,
)
from src.models.tracked_item import FetchMode
from src.services.pipeline import CycleResult
from src.services.scheduler import RunReport, Scheduler
from src.services.selector_validator import validate_selector
from src.storage.tracker_db import TrackerDB

logger = logging.getLogger("pricewatch.cli")

# Stderr console for status messages so stdout stays clean
_err = Console(stderr=True)


def _outcome_text(result: CycleResult) -> str:
    """Short Rich-markup description of a cycle result."""
    if result.skipped:
        return f"[yellow]skipped[/yellow] ({result.skip_reason})"
    outcome = result.outcome
    if isinstance(outcome, Success):
        price = f"{outcome.currency or ''}{outcome.price}"
        if isinstance(result.decision, PriceChanged):
            pct = result.decision.pct_change
            pct_str = f" {pct:+}%" if pct is not None else ""
            return (
                f"[bold green]{result.decision.old} → "
                f"{result.decision.new}{pct_str}[/bold green]"
            )
        return f"[green]{price}[/green]"
    if isinstance(outcome, ExtractionFailed):
        return f"[red]no price[/red] in {outcome.raw[:40]!r}"
    if isinstance(outcome, FetchFailed):
        return f"[red]{outcome.reason.value}[/red]: {outcome.message[:60]}"
    return "—"


def _print_report(report: RunReport) -> None:
    """Render a Rich table summarising a run."""
    table = Table(
        title=f"Run {report.run_id}",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("Item", style="dim", justify="right")
    table.add_column("Result")
    table.add_column("Alert", justify="center")

    for r in report.results:
        table.add_row(
            str(r.item_id),
            _outcome_text(r),
            "✓" if r.notified else "",
        )
    for item_id, message in report.errors.items():
        table.add_row(
            str(item_id), f"[red]crashed[/red]: {message[:60]}", "",
        )

    Console().print(table)


async def run_scheduled(db: TrackerDB) -> int:
    """One scheduled tick; exit 1 if any item crashed."""
    scheduler = Scheduler(db)
    report = await scheduler.run()

    if not report.selected:
        _err.print("[dim]No items due.[/dim]")
        return 0

    _print_report(report)
    _err.print(
        f"[green]✓ {len(report.results)} checked[/green] "
        f"({report.changed} changed, {report.failed} failed, "
        f"{report.notified} alerts)"
    )
    if report.crashed:
        _err.print(f"[red]{report.crashed} item(s) crashed[/red]")
        return 1
    return 0


def run_check(db: TrackerDB, item_id: int) -> int:
    """Manually recheck a single item."""
    scheduler = Scheduler(db)
    try:
        result = scheduler.check_now(item_id)
    except (LookupError, ValueError) as exc:
        _err.print(f"[red]{exc}[/red]")
        return 1

    _err.print(f"Item {item_id}: {_outcome_text(result)}")
    if isinstance(result.decision, ErrorOccurred):
        return 1
    return 0


def run_validate(url: str, selector: str, mode: str) -> int:
    """Dry-run a selector and print what would be recorded."""
    check = validate_selector(url, selector, FetchMode(mode))
    if check.error is not None:
        reason = check.reason.value if check.reason else "error"
        _err.print(f"[red]{reason}[/red]: {check.error}")
        return 1

    if check.parsed is None:
        _err.print("[red]No text returned by the selector[/red]")
        return 1
    table = Table(title="Selector check", title_style="bold cyan")
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("URL", url)
    table.add_row("Selector", selector)
    table.add_row("Text", check.parsed.raw)
    table.add_row("Currency", check.parsed.currency or "—")
    table.add_row(
        "Price",
        str(check.parsed.price)
        if check.parsed.price is not None
        else "[red]not found[/red]",
    )
    Console().print(table)
    return 0 if check.ok else 1


def run_add_user(
    db: TrackerDB,
    email: str,
    check_time: str,
    timezone: str,
    verified: bool,
) -> int:
    """Register a user with a daily local check time."""
    try:
        user_id = db.add_user(
            email, time.fromisoformat(check_time), timezone, verified,
        )
    except ValueError as exc:
        _err.print(f"[red]{exc}[/red]")
        return 1
    _err.print(f"[green]✓ User {user_id} added[/green]")
    return 0


def run_track(
    db: TrackerDB,
    user_id: int,
    url: str,
    selector: str,
    mode: str,
    label: str,
    category_id: int | None,
) -> int:
    """Start tracking a price element."""
    item = db.add_item(
        user_id,
        url,
        selector,
        category_id=category_id,
        label=label,
        fetch_mode=FetchMode(mode),
    )
    _err.print(f"[green]✓ Tracking item {item.id}[/green]")
    return 0


def run_set_paused(db: TrackerDB, item_id: int, paused: bool) -> int:
    """Pause or resume an item."""
    changed = db.pause_item(item_id) if paused else db.resume_item(item_id)
    if not changed:
        _err.print(f"[red]No tracked item with id {item_id}[/red]")
        return 1
    state = "paused" if paused else "active"
    _err.print(f"[green]✓ Item {item_id} is {state}[/green]")
    return 0


def run_history(db: TrackerDB, item_id: int) -> int:
    """Print an item's price readings."""
    item = db.get_item(item_id)
    if item is None:
        _err.print(f"[red]No tracked item with id {item_id}[/red]")
        return 1

    history = db.get_price_history(item_id)
    table = Table(
        title=item.label or item.url,
        show_lines=False,
        title_style="bold cyan",
    )
    table.add_column("Checked at", style="dim")
    table.add_column("Price", justify="right", style="green")
    for reading in history:
        table.add_row(
            reading.scraped_at.strftime("%Y-%m-%d %H:%M"),
            f"{reading.currency or ''}{reading.price}",
        )
    Console().print(table)

    summary = db.get_trend_summary(item_id)
    if summary is not None:
        _err.print(
            f"[dim]min {summary['min']} · max {summary['max']} · "
            f"{summary['count']} readings · status {item.status.value}"
            "[/dim]"
        )
    if item.error_message:
        _err.print(f"[red]Last error: {item.error_message}[/red]")
    return 0
