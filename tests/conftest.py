"""
Pytest fixtures for almanac engine tests.

Provides sample calendars, in-memory sources and a service factory.
"""

import json
import pytest
from pathlib import Path

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from almanac.state import (
    CalendarDefinition,
    EventBus,
    MemoryClockStateStore,
    MemoryEventSource,
)
from almanac.systems import CalendarDriver, WorldEventService
from almanac.systems.leap import create_gregorian_leap_rules
from almanac.tools import RngFactory


FIXTURES_DIR = Path(__file__).parent / "fixtures"
DATA_DIR = Path(__file__).parent.parent / "data"


def twelve_by_thirty_with_festivals() -> CalendarDefinition:
    """12 x 30-day months with single-day festivals after months 1, 4, 7, 9 and 12."""
    months = []
    festivals_after = {0: "Midwinter", 3: "Greengrass", 6: "Midsummer", 8: "Highharvestide", 11: "Feast of the Moon"}
    names = [
        "Hammer", "Alturiak", "Ches", "Tarsakh", "Mirtul", "Kythorn",
        "Flamerule", "Eleasis", "Eleint", "Marpenoth", "Uktar", "Nightal",
    ]
    for index, name in enumerate(names):
        months.append({"name": name, "days": 30})
        if index in festivals_after:
            months.append({"name": festivals_after[index], "days": 1, "type": "intercalary"})
    for order, month in enumerate(months):
        month["order"] = order
    return CalendarDefinition.model_validate({
        "id": "festival-calendar",
        "name": "Festival Calendar",
        "weekdays": ["One", "Two", "Three", "Four", "Five", "Six", "Seven", "Eight", "Nine", "Ten"],
        "months": months,
        "startingYear": 1492,
        "yearSuffix": "DR",
    })


def gregorian() -> CalendarDefinition:
    return CalendarDefinition(
        id="gregorian",
        name="Gregorian",
        weekdays=["Saturday", "Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday"],
        months=[
            {"name": name, "days": days}
            for name, days in [
                ("January", 31), ("February", 28), ("March", 31), ("April", 30),
                ("May", 31), ("June", 30), ("July", 31), ("August", 31),
                ("September", 30), ("October", 31), ("November", 30), ("December", 31),
            ]
        ],
        starting_year=2000,
        year_suffix="CE",
        leap_rules=create_gregorian_leap_rules(target_month_index=1),
    )


@pytest.fixture
def festival_calendar():
    """365-day calendar with five intercalary festival days."""
    return twelve_by_thirty_with_festivals()


@pytest.fixture
def festival_driver(festival_calendar):
    return CalendarDriver(festival_calendar)


@pytest.fixture
def gregorian_calendar():
    """Gregorian months and leap rules, day 0 = Saturday 1 January 2000."""
    return gregorian()


@pytest.fixture
def gregorian_driver(gregorian_calendar):
    return CalendarDriver(gregorian_calendar)


@pytest.fixture
def golden_fixture():
    """Chain golden master: calendar, event and expected sequence."""
    return json.loads((FIXTURES_DIR / "chain_golden.json").read_text(encoding="utf-8"))


@pytest.fixture
def golden_driver(golden_fixture):
    return CalendarDriver(CalendarDefinition.model_validate(golden_fixture["calendar"]))


@pytest.fixture
def bus():
    """Fresh event bus per test."""
    return EventBus()


@pytest.fixture
def memory_clock_store():
    return MemoryClockStateStore()


@pytest.fixture
def weather_chain():
    """Three-state weather chain used across service tests."""
    return {
        "id": "weather",
        "name": "Weather",
        "type": "chain",
        "priority": 1,
        "effects": {},
        "seed": 12345,
        "states": [
            {"name": "Clear", "weight": 60, "duration": "3 days", "effects": {}},
            {"name": "Cloudy", "weight": 25, "duration": "2 days", "effects": {"light_level": "dim"}},
            {"name": "Dip", "weight": 15, "duration": "1d3 days", "effects": {"price_mult_global": 0.8}},
        ],
    }


@pytest.fixture
def make_service():
    """
    Factory: make_service(driver, definitions, **kwargs) -> initialized service.

    Definitions may be raw mappings or typed models.
    """
    def _make(driver, definitions, start_day=0, **kwargs):
        service = WorldEventService(driver, rng_factory=RngFactory(), **kwargs)
        service.initialize(MemoryEventSource(definitions), start_day=start_day)
        return service
    return _make
