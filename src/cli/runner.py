# src/cli/runner.py

"""Headless command runner: parses nothing, calls the service, prints."""

import asyncio
import logging
import signal

from rich.console import Console
from rich.table import Table

from src.config.settings import Settings
from src.models.errors import PriceTrackerError
from src.models.product import ProductSnapshot, SearchHit
from src.services.notifier import ConsoleNotifier, DiscordNotifier, Notifier
from src.services.recheck_scheduler import RecheckScheduler, TickReport
from src.services.tracker_service import PriceTrackerService

logger = logging.getLogger("price_tracker.cli")

# Stderr console for status messages so stdout stays clean
_err = Console(stderr=True)


def _print_snapshot(snapshot: ProductSnapshot) -> None:
    table = Table(title=snapshot.title, title_style="bold red")
    table.add_column("Price", justify="right", style="green")
    table.add_column("Link", overflow="fold", style="dim")
    table.add_row(f"{snapshot.price} {snapshot.currency}", snapshot.url)
    Console().print(table)


def _print_hits(query: str, hits: list[SearchHit]) -> None:
    table = Table(
        title=f'Empik Search Results for "{query}"',
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("#", style="dim", width=4)
    table.add_column("Title", max_width=60)
    table.add_column("Price", justify="right", style="green")
    table.add_column("URL", overflow="fold", style="dim")
    for idx, hit in enumerate(hits, 1):
        table.add_row(str(idx), hit.title, hit.price_text, hit.url)
    Console().print(table)


async def cli_check(service: PriceTrackerService, text: str) -> int:
    """Show a product's current price, or search results for free text."""
    try:
        result = await service.check_or_search(text)
    except PriceTrackerError as exc:
        logger.warning("Lookup failed for %r: %s", text, exc)
        _err.print("[red]Could not fetch product information.[/red]")
        return 1
    if isinstance(result, ProductSnapshot):
        _print_snapshot(result)
        return 0
    if not result:
        _err.print("[yellow]No results found on Empik.[/yellow]")
        return 1
    _print_hits(text, result)
    return 0


async def cli_track(
    service: PriceTrackerService,
    owner_id: str,
    destination_id: str,
    url: str,
    target: str,
) -> int:
    """Subscribe *owner_id* to a target-price alert."""
    try:
        item = await service.subscribe(owner_id, destination_id, url, target)
    except (ValueError, PriceTrackerError) as exc:
        _err.print(f"[red]{exc}[/red]")
        return 1
    _err.print(
        f"[green]✅ Now tracking price for {item.item_id}. You'll be "
        f"notified when it drops to {item.target_price} "
        f"{Settings.DEFAULT_CURRENCY}.[/green]"
    )
    return 0


async def cli_untrack(
    service: PriceTrackerService, owner_id: str, url: str,
) -> int:
    """Remove a subscription."""
    if await service.unsubscribe(owner_id, url):
        _err.print(f"[green]Stopped tracking {url}.[/green]")
    else:
        _err.print(f"[yellow]{url} was not being tracked.[/yellow]")
    return 0


async def cli_list(service: PriceTrackerService, owner_id: str) -> int:
    """Print one owner's subscriptions."""
    items = await service.list_subscriptions(owner_id)
    if not items:
        _err.print("[yellow]No tracked items.[/yellow]")
        return 0
    table = Table(title="Tracked Items", title_style="bold cyan")
    table.add_column("Target", justify="right", style="green")
    table.add_column("Since", style="dim")
    table.add_column("URL", overflow="fold")
    for item in items:
        table.add_row(
            f"{item.target_price} {Settings.DEFAULT_CURRENCY}",
            item.created_at.strftime("%Y-%m-%d %H:%M"),
            item.item_id,
        )
    Console().print(table)
    return 0


async def cli_deals(service: PriceTrackerService, limit: int) -> int:
    """Print the biggest recent price drops."""
    deals = await service.list_deals(limit)
    if not deals:
        _err.print("[yellow]No deals right now.[/yellow]")
        return 0
    table = Table(title="🔥 Empik Deals", show_lines=True, title_style="bold red")
    table.add_column("Drop", justify="right", style="bold green")
    table.add_column("Title", max_width=50)
    table.add_column("Now", justify="right", style="green")
    table.add_column("Was", justify="right", style="dim")
    table.add_column("URL", overflow="fold", style="dim")
    for deal in deals:
        table.add_row(
            f"-{deal.drop_pct}%",
            deal.title,
            f"{deal.current_price} {deal.currency}",
            f"{deal.previous_price} {deal.currency}",
            deal.item_id,
        )
    Console().print(table)
    return 0


async def cli_stats(service: PriceTrackerService, url: str) -> int:
    """Print low / high / average for a recorded item."""
    try:
        stats = await service.get_stats(url)
    except PriceTrackerError as exc:
        _err.print(f"[yellow]{exc}[/yellow]")
        return 1
    currency = stats.latest.currency
    table = Table(title=stats.latest.title, title_style="bold cyan")
    table.add_column("Latest", justify="right", style="green")
    table.add_column("Low", justify="right")
    table.add_column("High", justify="right")
    table.add_column("Average", justify="right")
    table.add_column("Observations", justify="right", style="dim")
    table.add_row(
        f"{stats.latest.price} {currency}",
        f"{stats.low} {currency}",
        f"{stats.high} {currency}",
        f"{stats.average} {currency}",
        str(stats.count),
    )
    Console().print(table)
    return 0


def build_notifier(use_console: bool) -> Notifier:
    """Discord when a token is configured, the terminal otherwise."""
    if use_console or not Settings.DISCORD_TOKEN:
        return ConsoleNotifier(_err)
    return DiscordNotifier()


def _print_report(report: TickReport | None) -> None:
    if report is None:
        _err.print("[yellow]A recheck is already running.[/yellow]")
        return
    _err.print(
        f"[green]✓ {report.checked}/{report.subscriptions} checked, "
        f"{report.recorded} recorded, {report.alerts_sent} alerts sent"
        f"[/green]"
    )
    if report.fetch_failures or report.notify_failures:
        _err.print(
            f"[red]{report.fetch_failures} fetch failures, "
            f"{report.notify_failures} notify failures[/red]"
        )


async def run_scheduler(
    service: PriceTrackerService,
    once: bool,
    use_console: bool,
) -> int:
    """Run the recheck loop until interrupted (or a single tick)."""
    scheduler = RecheckScheduler(
        store=service.store,
        registry=service.registry,
        fetcher=service.scraper,
        notifier=build_notifier(use_console),
    )
    if once:
        _print_report(await scheduler.run_tick())
        return 0

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, scheduler.request_stop)
        except (NotImplementedError, RuntimeError):
            logger.debug("Signal handlers unavailable for %s", sig)

    _err.print(
        f"[bold]Rechecking every {scheduler.interval:.0f}s[/bold] "
        "[dim](Ctrl+C to stop)[/dim]"
    )
    scheduler.start()
    await scheduler.wait()
    _err.print("[dim]Scheduler stopped.[/dim]")
    return 0


def build_service() -> PriceTrackerService:
    """Wire the production store, registry and scraper."""
    return PriceTrackerService()
