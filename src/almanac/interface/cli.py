"""
Command-line interface for the almanac engine.

    almanac date 400
    almanac --calendar data/calendars --calendar-id harptos events 30 --region sword-coast
    almanac effects 120 --time 1260
    almanac validate data/events
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..errors import AlmanacError
from ..state.definitions import (
    MemoryEventSource,
    YamlCalendarSource,
    YamlEventSource,
    pack_files,
    read_pack,
)
from ..state.schema import EventContext
from ..systems.calendar import CalendarDriver
from ..systems.calendars import CalendarDefinitionManager
from ..systems.events import WorldEventService
from ..systems.validation import CalendarValidator, EventValidator, ValidationResult
from .config import EngineConfig, load_config

logger = logging.getLogger(__name__)

console = Console()

THEME = {
    "primary": "steel_blue",
    "warning": "dark_goldenrod",
    "danger": "dark_red",
    "accent": "cyan",
    "dim": "dim",
}

BASE_DIR = Path(__file__).parent.parent.parent.parent
DEFAULT_CALENDARS = BASE_DIR / "data" / "calendars"
DEFAULT_EVENTS = BASE_DIR / "data" / "events"


# -----------------------------------------------------------------------------
# Setup
# -----------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="almanac", description="Fantasy calendar and world-event simulator")
    parser.add_argument("--calendar", type=Path, help="Calendar file or directory")
    parser.add_argument("--calendar-id", help="Calendar to use (default from config)")
    parser.add_argument("--events", type=Path, help="Event pack file or directory")
    parser.add_argument("--config", type=Path, help="Engine config JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    commands = parser.add_subparsers(dest="command", required=True)

    date = commands.add_parser("date", help="Show the calendar date of a day")
    date.add_argument("day", type=int)
    date.add_argument("--count", type=int, default=1, help="Show this many consecutive days")

    events = commands.add_parser("events", help="List events active on a day")
    events.add_argument("day", type=int)
    _add_context_arguments(events)

    effects = commands.add_parser("effects", help="Show resolved effects for a day")
    effects.add_argument("day", type=int)
    effects.add_argument("--time", type=int, help="Minutes from midnight (0-1439)")
    _add_context_arguments(effects)

    validate = commands.add_parser("validate", help="Validate event or calendar files")
    validate.add_argument("paths", type=Path, nargs="+")
    return parser


def _add_context_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--location")
    parser.add_argument("--faction")
    parser.add_argument("--season")
    parser.add_argument("--region")
    parser.add_argument("--tag", action="append", default=[], dest="tags")


def _context_from(args: argparse.Namespace) -> EventContext | None:
    context = EventContext(
        location=args.location,
        faction=args.faction,
        season=args.season,
        region=args.region,
        tags=args.tags,
    )
    if context == EventContext():
        return None
    return context


def _create_driver(args: argparse.Namespace, config: EngineConfig) -> CalendarDriver:
    calendar_path = args.calendar or (DEFAULT_CALENDARS if DEFAULT_CALENDARS.exists() else None)
    manager = CalendarDefinitionManager(YamlCalendarSource(calendar_path) if calendar_path else None)
    manager.load_definitions()
    return manager.create_driver(args.calendar_id or config.get("calendar_id"))


def _create_service(args: argparse.Namespace, config: EngineConfig, day: int) -> WorldEventService:
    events_path = args.events or (DEFAULT_EVENTS if DEFAULT_EVENTS.exists() else None)
    source = YamlEventSource(events_path) if events_path else MemoryEventSource()
    service = WorldEventService(_create_driver(args, config), config=config)
    service.initialize(source, start_day=day)
    return service


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

def cmd_date(args: argparse.Namespace, config: EngineConfig) -> int:
    driver = _create_driver(args, config)
    table = Table(title=driver.calendar.name)
    table.add_column("Day", style="dim", justify="right")
    table.add_column("Date")
    table.add_column("Weekday")
    table.add_column("Holidays", style=THEME["accent"])

    for day in range(args.day, args.day + max(1, args.count)):
        date = driver.get_date(day)
        table.add_row(
            str(day),
            driver.format_date(day),
            date.day_of_week or "-",
            ", ".join(h.name for h in driver.get_holidays(day)),
        )
    console.print(table)
    return 0


def cmd_events(args: argparse.Namespace, config: EngineConfig) -> int:
    service = _create_service(args, config, args.day)
    driver = service.get_calendar_driver()
    active = service.get_active_events(args.day, _context_from(args))

    if not active:
        console.print(f"[{THEME['dim']}]No events active on {driver.format_date(args.day)}[/{THEME['dim']}]")
        return 0

    table = Table(title=f"Events on {driver.format_date(args.day)}")
    table.add_column("Event")
    table.add_column("Type", style="dim")
    table.add_column("State", style=THEME["accent"])
    table.add_column("Days", justify="right")
    table.add_column("Priority", justify="right")
    for event in active:
        table.add_row(
            event.name,
            event.type,
            event.state if event.type == "chain" else "",
            f"{event.start_day}-{event.end_day} ({event.remaining_days} left)",
            str(event.priority),
        )
    console.print(table)
    return 0


def cmd_effects(args: argparse.Namespace, config: EngineConfig) -> int:
    service = _create_service(args, config, args.day)
    driver = service.get_calendar_driver()
    context = _context_from(args)
    if args.time is not None:
        driver.set_time_of_day(args.time)
    baseline = driver.get_light_level(args.day, region=context.region if context else None)
    resolved = service.get_effect_registry(args.day, context, solar_baseline=baseline)

    table = Table(title=f"Effects on {driver.format_date(args.day)}")
    table.add_column("Effect")
    table.add_column("Value", style=THEME["accent"])
    table.add_column("Strategy", style="dim")
    table.add_column("Sources")
    for key, value in sorted(resolved.effects.items()):
        table.add_row(
            key,
            str(value),
            resolved.resolution_strategies.get(key, ""),
            ", ".join(resolved.competing_effects.get(key, [])),
        )
    console.print(table)

    overridden = service.effect_registry.get_overridden_sources(resolved)
    if overridden:
        lines = [f"{s.event_name}: {s.effect_key}={s.original_value}" for s in overridden]
        console.print(Panel("\n".join(lines), title="Overridden", border_style=THEME["warning"]))
    return 0


def _looks_like_calendar(record: object) -> bool:
    return isinstance(record, dict) and "type" not in record and ("months" in record or "weekdays" in record)


def cmd_validate(args: argparse.Namespace, config: EngineConfig) -> int:
    failed = False
    for path in args.paths:
        for pack in pack_files(path):
            data = read_pack(pack)
            if isinstance(data, dict):
                records = data.get("calendars") or data.get("events") or [data]
            else:
                records = data or []

            known_ids = {r.get("id") for r in records if isinstance(r, dict)}
            for record in records:
                if _looks_like_calendar(record):
                    result = CalendarValidator.validate(record)
                else:
                    result = EventValidator.validate(record, known_ids)
                label = record.get("id", "?") if isinstance(record, dict) else "?"
                _print_result(f"{pack.name}:{label}", result)
                failed = failed or not result.is_valid
    return 1 if failed else 0


def _print_result(label: str, result: ValidationResult) -> None:
    if result.is_valid and not result.warnings:
        console.print(f"[green]✓[/green] {label}")
        return
    marker = "[green]✓[/green]" if result.is_valid else f"[{THEME['danger']}]✗[/{THEME['danger']}]"
    console.print(f"{marker} {label}")
    for issue in result.errors:
        console.print(f"    [{THEME['danger']}]error[/{THEME['danger']}] {issue}")
    for issue in result.warnings:
        console.print(f"    [{THEME['warning']}]warning[/{THEME['warning']}] {issue}")


COMMANDS = {
    "date": cmd_date,
    "events": cmd_events,
    "effects": cmd_effects,
    "validate": cmd_validate,
}


# -----------------------------------------------------------------------------
# Main
# -----------------------------------------------------------------------------

def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    config = load_config(args.config)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else config.get("log_level", "INFO"),
        format='%(asctime)s [%(levelname)s] %(message)s',
    )

    try:
        return COMMANDS[args.command](args, config)
    except AlmanacError as e:
        console.print(f"[{THEME['danger']}]Error:[/{THEME['danger']}] {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
