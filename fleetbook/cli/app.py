"""
Main CLI application using Typer.
"""

import asyncio
import logging
from datetime import date, timedelta
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ..adapters.memory_store import InMemoryCalendarStore
from ..adapters.supabase_store import SupabaseCalendarStore
from ..config import AppConfig, get_default_config_path
from ..domain.calendar_math import parse_time_of_day
from ..domain.clock import SystemClock
from ..domain.exceptions import BookingEngineError, QuotaExceeded, SlotUnavailable
from ..domain.models import BookingStatus
from ..services.availability_service import AvailabilityService
from ..services.booking_writer import BookingWriter, CustomerDetails
from ..services.settings_loader import CalendarSettingsLoader, SettingsAdmin

app = typer.Typer(
    name="fleetbook",
    help="Check service calendar availability and record bookings",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml"),
]


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging.")] = False,
):
    """
    Booking availability and slot allocation for the fleet service calendar.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


class _Runtime:
    """Wiring of config, store and services for one CLI invocation."""

    def __init__(self, config: AppConfig):
        self.config = config

        if config.store == "supabase":
            self.store = SupabaseCalendarStore(
                project_url=config.supabase_url,
                api_key=config.supabase_key,
                timeout=config.request_timeout_seconds,
            )
        elif config.data_file is not None:
            self.store = InMemoryCalendarStore.from_json(config.data_file)
        else:
            self.store = InMemoryCalendarStore()

        clock = SystemClock(config.timezone)
        self.loader = CalendarSettingsLoader(self.store, defaults=config.calendar)
        self.availability = AvailabilityService(self.loader, self.store, clock, config.timezone)
        self.writer = BookingWriter(self.loader, self.store, clock, config.timezone)
        self.settings_admin = SettingsAdmin(self.store, self.loader)

    @property
    def is_ephemeral(self) -> bool:
        return self.config.store == "memory" and self.config.data_file is None


def _load_runtime(config_file: Optional[Path]) -> _Runtime:
    config_path = config_file or get_default_config_path()
    config = AppConfig.load_from_yaml(config_path)
    return _Runtime(config)


def _parse_date(value: str, label: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        console.print(f"[red]Error: {label} must be YYYY-MM-DD, got '{value}'[/red]")
        raise typer.Exit(1)


def _fail(exc: Exception) -> None:
    console.print(f"[bold red]Error:[/bold red] {exc}")
    raise typer.Exit(1)


@app.command()
def availability(
    config_file: ConfigOption = None,
    start: Annotated[Optional[str], typer.Option("--start", help="Start date (YYYY-MM-DD). Defaults to today.")] = None,
    end: Annotated[Optional[str], typer.Option("--end", help="End date (YYYY-MM-DD). Defaults to start + 13 days.")] = None,
):
    """
    Show which dates can be booked.

    Examples:

        fleetbook availability
        fleetbook availability --start 2024-01-01 --end 2024-01-14
    """
    try:
        runtime = _load_runtime(config_file)
        start_date = _parse_date(start, "--start") if start else SystemClock(runtime.config.timezone).now().date()
        end_date = _parse_date(end, "--end") if end else start_date + timedelta(days=13)

        if end_date < start_date:
            console.print("[red]Error: --end must not be before --start.[/red]")
            raise typer.Exit(1)

        result = asyncio.run(runtime.availability.get_dates_availability(start_date, end_date))

        table = Table(
            title="Availability",
            show_header=True,
            header_style="bold cyan"
        )
        table.add_column("Date", style="bold")
        table.add_column("Day")
        table.add_column("Slots", justify="right")

        for iso_date, info in result["dateAvailability"].items():
            day = date.fromisoformat(iso_date)
            count = info["slotCount"]
            style = "green" if info["hasSlots"] else "dim"
            table.add_row(iso_date, day.strftime("%a"), f"[{style}]{count}[/{style}]")

        console.print()
        console.print(table)
        console.print(
            f"Earliest bookable date: [bold]{result['minBookableDate']}[/bold] "
            f"(advance notice {result['advanceBookingWindow']} {result['advanceBookingUnit']})\n"
        )

    except (FileNotFoundError, ValueError, BookingEngineError) as e:
        _fail(e)


@app.command()
def slots(
    day: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    config_file: ConfigOption = None,
):
    """
    List the free times on one date.
    """
    try:
        runtime = _load_runtime(config_file)
        result = asyncio.run(runtime.availability.get_day_availability(_parse_date(day, "DATE")))

        console.print(
            f"\nWeek {result['weekStart']} - {result['weekEnd']}: "
            f"{result['weeklyBookings']}/{result['maxBookingsPerWeek']} booked"
        )
        if not result["availableSlots"]:
            console.print(f"[yellow]No free slots on {day} ({result['reason']}).[/yellow]\n")
            return

        console.print(f"[bold green]{len(result['availableSlots'])} free slot(s) on {day}:[/bold green]")
        console.print("  " + "  ".join(result["availableSlots"]) + "\n")

    except (FileNotFoundError, ValueError, BookingEngineError) as e:
        _fail(e)


@app.command()
def book(
    day: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    at: Annotated[str, typer.Argument(help="Slot start (HH:MM)")],
    name: Annotated[str, typer.Option("--name", help="Customer name")],
    phone: Annotated[str, typer.Option("--phone", help="Customer phone")],
    service: Annotated[str, typer.Option("--service", help="Service type, e.g. 'oil change'")],
    email: Annotated[Optional[str], typer.Option("--email", help="Customer email")] = None,
    vehicle: Annotated[Optional[str], typer.Option("--vehicle", help="Vehicle description")] = None,
    notes: Annotated[Optional[str], typer.Option("--notes", help="Free-text notes")] = None,
    accept_compliance: Annotated[bool, typer.Option("--accept-compliance", help="Customer acknowledged the SMS terms.")] = False,
    confirmed: Annotated[bool, typer.Option("--confirmed", help="Create the booking already confirmed.")] = False,
    config_file: ConfigOption = None,
):
    """
    Book a slot after re-checking that it is still free.
    """
    try:
        runtime = _load_runtime(config_file)
        customer = CustomerDetails(
            customer_name=name,
            customer_phone=phone,
            service_type=service,
            customer_email=email,
            vehicle_info=vehicle,
            notes=notes,
            compliance_accepted=accept_compliance,
        )
        status = BookingStatus.CONFIRMED if confirmed else BookingStatus.PENDING

        booking = asyncio.run(
            runtime.writer.book(_parse_date(day, "DATE"), parse_time_of_day(at), customer, status)
        )

        console.print(f"\n[green]✓ Booked {day} {at} for {booking.customer_name}[/green] (id {booking.id}, {booking.status.value})")
        if runtime.is_ephemeral:
            console.print("[yellow]No data_file configured - the booking was not saved.[/yellow]")
        console.print()

    except QuotaExceeded as e:
        console.print(f"[bold red]Fully booked this week.[/bold red] {e}")
        raise typer.Exit(1)

    except SlotUnavailable as e:
        console.print(f"[bold red]That time is no longer available.[/bold red] {e}")
        if e.available_slots:
            console.print("Still free that day: " + ", ".join(e.available_slots))
        raise typer.Exit(1)

    except (FileNotFoundError, ValueError, BookingEngineError) as e:
        _fail(e)


@app.command()
def settings(
    config_file: ConfigOption = None,
    max_per_week: Annotated[Optional[int], typer.Option("--max-per-week", help="Weekly booking cap")] = None,
    start_time: Annotated[Optional[str], typer.Option("--start-time", help="Opening time (HH:MM)")] = None,
    end_time: Annotated[Optional[str], typer.Option("--end-time", help="Closing time (HH:MM)")] = None,
    duration: Annotated[Optional[int], typer.Option("--duration", help="Slot length in minutes")] = None,
    buffer: Annotated[Optional[int], typer.Option("--buffer", help="Buffer after each slot in minutes")] = None,
    working_days: Annotated[Optional[str], typer.Option("--working-days", help="Comma separated, 0=Sunday, e.g. 1,2,3,4,5")] = None,
    advance: Annotated[Optional[int], typer.Option("--advance", help="Advance notice window")] = None,
    advance_unit: Annotated[Optional[str], typer.Option("--advance-unit", help="hours or days")] = None,
):
    """
    Show the calendar settings, or update them when options are given.
    """
    updates = {
        "max_bookings_per_week": max_per_week,
        "start_time": start_time,
        "end_time": end_time,
        "slot_duration": duration,
        "slot_buffer_time": buffer,
        "advance_booking_window": advance,
        "advance_booking_unit": advance_unit,
    }
    try:
        if working_days is not None:
            updates["working_days"] = [int(part) for part in working_days.split(",") if part.strip()]
        updates = {key: value for key, value in updates.items() if value is not None}

        runtime = _load_runtime(config_file)
        if updates:
            current = asyncio.run(runtime.settings_admin.update(updates))
            console.print("\n[green]✓ Settings saved.[/green]")
        else:
            current = asyncio.run(runtime.availability.current_settings())

        table = Table(title="Calendar settings", show_header=True, header_style="bold cyan")
        table.add_column("Setting", style="bold yellow")
        table.add_column("Value")
        for key, value in current.to_payload().items():
            table.add_row(key, str(value))

        console.print()
        console.print(table)
        console.print()

    except (FileNotFoundError, ValueError, BookingEngineError) as e:
        _fail(e)


@app.command()
def set_status(
    booking_id: Annotated[str, typer.Argument(help="Booking id")],
    status: Annotated[BookingStatus, typer.Argument(help="New status")],
    config_file: ConfigOption = None,
):
    """
    Move a booking along its lifecycle (e.g. confirm or cancel it).
    """
    try:
        runtime = _load_runtime(config_file)
        booking = asyncio.run(runtime.store.update_booking_status(booking_id, status))
        console.print(f"\n[green]✓ Booking {booking.id} is now {booking.status.value}.[/green]\n")

    except KeyError as e:
        # str(KeyError) is the repr of its argument
        console.print(f"[bold red]Error:[/bold red] {e.args[0]}")
        raise typer.Exit(1)

    except (FileNotFoundError, ValueError, BookingEngineError) as e:
        _fail(e)


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]fleetbook[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
