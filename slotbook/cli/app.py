"""
Main CLI application using Typer.
"""

import asyncio
import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Annotated

import pendulum
import typer
from pendulum import DateTime
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ..adapters.console_notifier import ConsoleNotifier
from ..adapters.feed_fetcher import FeedFetcher
from ..adapters.mock_feed_fetcher import MockFeedFetcher
from ..adapters.url_safety import is_safe_to_fetch
from ..config import AppConfig, PageConfig, get_default_config_path
from ..domain.exceptions import SlotbookError, TokenNotFoundError
from ..domain.models import Availability, Slot
from ..domain.settings import AvailabilitySettings
from ..services.availability import AvailabilityService
from ..services.confirmation import ConfirmationWorkflow
from ..stores import (
    InMemoryBookingStore,
    InMemoryPendingRequestStore,
    PendingRequestPurger,
    SqliteBookingStore,
    SqlitePendingRequestStore,
)

app = typer.Typer(
    name="slotbook",
    help="Publish free slots from iCalendar feeds and confirm booking requests",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml"),
]
VerboseOption = Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging.")]


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


def _load_config(config_file: Optional[Path]) -> AppConfig:
    config_path = config_file or get_default_config_path()
    return AppConfig.load_from_yaml(config_path)


def _build_fetcher(config: AppConfig, page: Optional[PageConfig], mock: bool):
    if mock:
        return MockFeedFetcher(sources=page.mock_feeds)
    return FeedFetcher(
        timeout=config.fetch.timeout_seconds,
        max_redirects=config.fetch.max_redirects,
        max_bytes=config.fetch.max_bytes,
        user_agent=config.fetch.user_agent,
        url_validator=is_safe_to_fetch,
    )


@contextmanager
def _open_workflow(config: AppConfig) -> Iterator[ConfirmationWorkflow]:
    """Build stores, start the purger and tear everything down afterwards."""
    database = config.workflow.database_path
    if database is not None:
        pending_store = SqlitePendingRequestStore(str(database))
        booking_store = SqliteBookingStore(str(database))
    else:
        console.print(
            "[yellow]⚠  No workflow.database_path configured: "
            "requests are kept in memory for this run only[/yellow]"
        )
        pending_store = InMemoryPendingRequestStore()
        booking_store = InMemoryBookingStore()

    workflow = ConfirmationWorkflow(
        pending_store=pending_store,
        booking_store=booking_store,
        notifier=ConsoleNotifier(output=console),
        ttl_minutes=config.workflow.ttl_minutes,
        pages=config,
    )
    purger = PendingRequestPurger(
        pending_store,
        ttl_minutes=config.workflow.ttl_minutes,
        interval_seconds=config.workflow.purge_interval_minutes * 60,
    )

    try:
        with purger:
            yield workflow
    finally:
        for store in (pending_store, booking_store):
            close = getattr(store, "close", None)
            if close is not None:
                close()


def _print_availability(availability: Availability, as_json: bool) -> None:
    if as_json:
        console.print_json(json.dumps(availability.to_dict()))
        return

    for failure in availability.feed_errors:
        console.print(f"[yellow]⚠  Feed left out: {failure.feed} ({failure.error})[/yellow]")

    if not availability.slots:
        console.print(
            "[yellow]⚠ No available slots found.[/yellow]\n"
            "Try a longer date range or a shorter slot duration."
        )
        return

    by_day: Dict[str, List[Slot]] = {}
    for slot in availability.slots:
        by_day.setdefault(slot.start.format("dddd, DD.MM.YYYY"), []).append(slot)

    table = Table(
        title=f"{len(availability.slots)} available slot(s)",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Day", style="bold yellow")
    table.add_column("Slots", style="dim")

    for day, slots in by_day.items():
        table.add_row(day, ", ".join(slot.start.format("HH:mm") for slot in slots))

    console.print()
    console.print(table)
    console.print()


@app.command()
def slots(
    page_ref: Annotated[str, typer.Argument(help="Ref of the configured page")],
    config_file: ConfigOption = None,
    mock: Annotated[bool, typer.Option("--mock", help="Read feeds from local files instead of the network.")] = False,
    as_json: Annotated[bool, typer.Option("--json", help="Print the public JSON rendering.")] = False,
    verbose: VerboseOption = False,
):
    """
    Show the bookable slots of a page.

    Examples:

        slotbook slots alice
        slotbook slots alice --mock --json
    """
    _configure_logging(verbose)
    try:
        config = _load_config(config_file)
        page = config.get_page(page_ref)

        if mock:
            console.print("[yellow]⚠  MOCK MODE: using local feed files[/yellow]\n")

        service = AvailabilityService(
            fetcher=_build_fetcher(config, page, mock),
            timezone=config.timezone,
            pages=config,
        )
        availability = asyncio.run(service.find_availability(page.ref))
        _print_availability(availability, as_json)

    except (FileNotFoundError, ValueError, SlotbookError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def preview(
    feeds: Annotated[List[Path], typer.Argument(help="Local .ics files")],
    duration: Annotated[int, typer.Option("--duration", "-d", help="Slot duration in minutes")] = 30,
    buffer: Annotated[int, typer.Option("--buffer", help="Gap between slots in minutes")] = 0,
    notice: Annotated[int, typer.Option("--notice", help="Minimum notice in hours")] = 8,
    days: Annotated[int, typer.Option("--days", help="Number of days to offer")] = 14,
    start_hour: Annotated[int, typer.Option("--start-hour", help="Workday start hour")] = 9,
    end_hour: Annotated[int, typer.Option("--end-hour", help="Workday end hour")] = 17,
    weekends: Annotated[bool, typer.Option("--weekends", help="Offer Saturday and Sunday.")] = False,
    timezone: Annotated[str, typer.Option("--timezone", "-z", help="IANA timezone")] = "UTC",
    as_json: Annotated[bool, typer.Option("--json", help="Print the public JSON rendering.")] = False,
    verbose: VerboseOption = False,
):
    """
    Preview the slot grid for draft settings against local feed files.
    """
    _configure_logging(verbose)
    try:
        settings = AvailabilitySettings(
            slot_duration_minutes=duration,
            buffer_minutes=buffer,
            min_notice_hours=notice,
            include_weekends=weekends,
            date_range_days=days,
            workday_start_hour=start_hour,
            workday_end_hour=end_hour,
        )
        feed_texts = {str(path): path.read_text(encoding="utf-8") for path in feeds}

        service = AvailabilityService(timezone=timezone)
        availability = service.get_availability(
            settings=settings,
            feed_texts=feed_texts,
            now=pendulum.now(timezone),
        )
        _print_availability(availability, as_json)

    except (OSError, ValueError, SlotbookError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def request(
    page_ref: Annotated[str, typer.Argument(help="Ref of the configured page")],
    start: Annotated[str, typer.Option("--start", help="Slot start (ISO 8601)")],
    name: Annotated[str, typer.Option("--name", help="Your name")],
    email: Annotated[str, typer.Option("--email", help="Your email address")],
    reason: Annotated[str, typer.Option("--reason", help="What the appointment is about")],
    notes: Annotated[Optional[str], typer.Option("--notes", help="Additional notes")] = None,
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """
    Request a slot; prints the confirmation link instead of emailing it.
    """
    _configure_logging(verbose)
    try:
        config = _load_config(config_file)
        page = config.get_page(page_ref)

        slot_start = pendulum.parse(start, tz=config.timezone)
        if not isinstance(slot_start, DateTime):
            raise ValueError(f"--start must be a date and time, got {start!r}")
        slot = Slot(
            start=slot_start,
            end=slot_start.add(minutes=page.availability.slot_duration_minutes),
        )

        with _open_workflow(config) as workflow:
            workflow.submit(
                page.ref,
                {"name": name, "email": email, "reason": reason, "notes": notes},
                slot,
            )

        console.print(f"\n[green]✓ Request stored. Confirm within {config.workflow.ttl_minutes} minutes.[/green]\n")

    except (FileNotFoundError, ValueError, SlotbookError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def confirm(
    token: Annotated[str, typer.Argument(help="Token from the confirmation link")],
    page_ref: Annotated[Optional[str], typer.Option("--page", help="Page the link belongs to")] = None,
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """
    Confirm a pending request and create the booking.
    """
    _configure_logging(verbose)
    try:
        config = _load_config(config_file)
        if page_ref is not None:
            page_ref = config.get_page(page_ref).ref

        with _open_workflow(config) as workflow:
            booking = workflow.confirm(token, page_ref=page_ref)

        console.print(
            f"\n[bold green]✓ Booking {booking.id} confirmed:[/bold green] "
            f"{Slot(start=booking.start, end=booking.end).format_display()}\n"
        )

    except TokenNotFoundError as e:
        console.print(f"[yellow]{e}[/yellow]")
        console.print(
            f"Confirmation links are valid for {config.workflow.ttl_minutes} minutes "
            "and can only be used once."
        )
        raise typer.Exit(1)

    except (FileNotFoundError, ValueError, SlotbookError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def purge(
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """
    Remove expired pending requests now.
    """
    _configure_logging(verbose)
    try:
        config = _load_config(config_file)

        with _open_workflow(config) as workflow:
            removed = workflow.purge_expired()

        console.print(f"\n[green]✓ {removed} expired request(s) removed.[/green]\n")

    except (FileNotFoundError, ValueError, SlotbookError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def bookings(
    page_ref: Annotated[str, typer.Argument(help="Ref of the configured page")],
    config_file: ConfigOption = None,
    as_json: Annotated[bool, typer.Option("--json", help="Print bookings as JSON.")] = False,
    verbose: VerboseOption = False,
):
    """
    List the confirmed bookings of a page.
    """
    _configure_logging(verbose)
    try:
        config = _load_config(config_file)
        page = config.get_page(page_ref)

        with _open_workflow(config) as workflow:
            confirmed = workflow.list_bookings(page.ref)

    except (FileNotFoundError, ValueError, SlotbookError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    if as_json:
        console.print_json(json.dumps([booking.to_dict() for booking in confirmed]))
        return

    if not confirmed:
        console.print(f"[yellow]No confirmed bookings for {page.ref}.[/yellow]")
        return

    table = Table(
        title=f"{len(confirmed)} booking(s) for {page.owner_name}",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("When", style="bold yellow")
    table.add_column("Requester")
    table.add_column("Email", style="dim")
    table.add_column("Reason")

    for booking in confirmed:
        table.add_row(
            Slot(start=booking.start, end=booking.end).format_display(),
            booking.requester.name,
            booking.requester.email,
            booking.requester.reason,
        )

    console.print()
    console.print(table)
    console.print()


@app.command()
def validate_feeds(
    urls: Annotated[List[str], typer.Argument(help="Feed URLs (https:// or webcal://)")],
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """
    Test-load feeds before adding them to a page.

    Examples:

        slotbook validate-feeds webcal://calendar.example.com/alice.ics
    """
    _configure_logging(verbose)
    try:
        config = _load_config(config_file) if config_file else AppConfig()
        service = AvailabilityService(
            fetcher=_build_fetcher(config, None, mock=False),
            timezone=config.timezone,
        )
        checks = asyncio.run(service.validate_feeds(urls))

    except (FileNotFoundError, ValueError, SlotbookError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    table = Table(
        title="Feed check",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Feed", style="bold yellow")
    table.add_column("Status")
    table.add_column("Busy (60 days)", justify="right")
    table.add_column("Error", style="dim")

    for check in checks:
        table.add_row(
            check.feed,
            "[green]ok[/green]" if check.is_valid else "[red]failed[/red]",
            str(check.event_count) if check.is_valid else "-",
            check.error or "",
        )

    console.print()
    console.print(table)
    console.print()

    if not all(check.is_valid for check in checks):
        raise typer.Exit(1)


@app.command()
def list_pages(
    config_file: ConfigOption = None,
):
    """
    List all configured scheduling pages.
    """
    try:
        config = _load_config(config_file)

        if not config.pages:
            console.print("[yellow]No pages defined in the config file.[/yellow]")
            return

        table = Table(
            title="Configured pages",
            show_header=True,
            header_style="bold cyan"
        )
        table.add_column("Ref", style="bold yellow")
        table.add_column("Owner")
        table.add_column("Feeds", justify="right")
        table.add_column("Slot", style="dim")

        for page in config.pages:
            settings = page.availability
            table.add_row(
                page.ref,
                page.owner_name,
                str(len(page.feed_urls)),
                f"{settings.slot_duration_minutes} min, "
                f"{settings.workday_start_hour}:00-{settings.workday_end_hour}:00"
            )

        console.print()
        console.print(table)
        console.print()

    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]slotbook[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
