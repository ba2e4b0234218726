"""
Pydantic models for calendars, event definitions and engine state.

Definitions are authored as YAML/JSON with camelCase keys; every model
accepts either the camelCase alias or the snake_case field name and
dumps camelCase with model_dump(by_alias=True).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


class SchemaModel(BaseModel):
    """Base for serialized records."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# -----------------------------------------------------------------------------
# Calendar
# -----------------------------------------------------------------------------

MonthType = Literal["standard", "intercalary"]
LightLevel = Literal["bright", "dim", "dark"]
SunState = Literal["dawn", "day", "dusk", "night"]


class CalendarMonth(SchemaModel):
    name: str
    days: int
    order: int | None = None
    type: MonthType = "standard"  # Intercalary days don't advance the weekday cycle


class CalendarHoliday(SchemaModel):
    """Holiday placed either by day_of_year (0-indexed) or month + day."""
    name: str
    description: str | None = None
    day_of_year: int | None = None
    month: int | None = None
    day: int | None = None
    notify_on_arrival: bool = False


class Era(SchemaModel):
    """
    Historical period used for year display.

    end_year is exclusive; None means the era is current. A direction of
    -1 counts years backward ("Before Dalereckoning").
    """
    name: str
    abbrev: str
    start_year: int
    end_year: int | None = None
    direction: Literal[1, -1] = 1


class LeapRule(SchemaModel):
    """
    A year is a leap year when (year - offset) % interval == 0 and no
    exclude rule matches. Gregorian: 4, excluding 100, excluding 400.
    """
    interval: int = Field(gt=0)
    offset: int = 0
    target_month_index: int | None = Field(
        default=None,
        validation_alias=AliasChoices("targetMonthIndex", "targetMonth", "target_month_index"),
        serialization_alias="targetMonthIndex",
    )
    exclude: list[LeapRule] = Field(default_factory=list)


class Season(SchemaModel):
    """Seasonal period with solar times in minutes from midnight."""
    name: str
    start_month: int
    start_day: int
    sunrise: int
    sunset: int
    region: str | None = None


class CalendarOrigin(SchemaModel):
    """Maps day 0 to a calendar date."""
    year: int
    month: int = 0  # 0-indexed
    day: int = 1  # 1-indexed
    description: str | None = None


class CalendarDefinition(SchemaModel):
    id: str
    name: str
    description: str | None = None
    weekdays: list[str] = Field(default_factory=list)
    months: list[CalendarMonth] = Field(default_factory=list)
    holidays: list[CalendarHoliday] = Field(default_factory=list)
    starting_year: int | None = None
    year_suffix: str = ""
    eras: list[Era] = Field(default_factory=list)
    leap_rules: list[LeapRule] = Field(default_factory=list)
    seasons: list[Season] = Field(default_factory=list)


SIMPLE_COUNTER_ID = "simple-counter"


def simple_counter_calendar() -> CalendarDefinition:
    """Fallback calendar: no months, no weekdays, just a day count."""
    return CalendarDefinition(
        id=SIMPLE_COUNTER_ID,
        name="Simple Day Counter",
        description="Counts days without months or weeks",
    )


@dataclass(frozen=True)
class ComputedDate:
    """Calendar position of an absolute day. Output only, never persisted."""
    absolute_day: int
    year: int
    month_index: int
    month_name: str
    day_of_month: int
    day_of_year: int
    day_of_week: str
    day_of_week_index: int  # -1 for intercalary days or no weekdays
    year_suffix: str
    is_intercalary: bool = False
    is_simple_counter: bool = False


# -----------------------------------------------------------------------------
# Event definitions
# -----------------------------------------------------------------------------

class EventDefinitionBase(SchemaModel):
    id: str
    name: str
    priority: int | float = 0
    effects: dict[str, Any] = Field(default_factory=dict)
    description: str | None = None

    # Context filters: empty means "applies everywhere"
    locations: list[str] = Field(default_factory=list)
    factions: list[str] = Field(default_factory=list)
    seasons: list[str] = Field(default_factory=list)
    regions: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)


class FixedDate(SchemaModel):
    month: int | None = None  # 0-indexed
    day: int | None = None  # 1-indexed
    year: int | None = None
    intercalary_name: str | None = None


class FixedDateEvent(EventDefinitionBase):
    """Occurs on a calendar date every year, or once when year-pinned."""
    type: Literal["fixed"] = "fixed"
    date: FixedDate
    year: int | None = None
    duration: int = 1

    @property
    def pinned_year(self) -> int | None:
        return self.year if self.year is not None else self.date.year


class IntervalEvent(EventDefinitionBase):
    """Recurs every `interval` days, or minutes when use_minutes is set."""
    type: Literal["interval"] = "interval"
    interval: int
    offset: int = 0
    duration: int = 1
    use_minutes: bool = False


class ChainState(SchemaModel):
    name: str
    weight: float
    duration: str  # "3 days", "1d4", "2d6 days"
    effects: dict[str, Any] = Field(default_factory=dict)


class ChainEvent(EventDefinitionBase):
    """Weighted random walk over named states, seeded per event."""
    type: Literal["chain"] = "chain"
    seed: int
    initial_state: str | None = None
    states: list[ChainState]

    def get_state(self, name: str) -> ChainState | None:
        for state in self.states:
            if state.name == name:
                return state
        return None


class ConditionalEvent(EventDefinitionBase):
    """Active while `condition` holds. Tier 2 may reference tier 1."""
    type: Literal["conditional"] = "conditional"
    condition: str
    tier: Literal[1, 2] = 1
    duration: int = 1


EventDefinition = Annotated[
    Union[FixedDateEvent, IntervalEvent, ChainEvent, ConditionalEvent],
    Field(discriminator="type"),
]

EVENT_TYPES = ("fixed", "interval", "chain", "conditional")

_event_adapter: TypeAdapter = TypeAdapter(EventDefinition)


def parse_event_definition(data: dict) -> EventDefinition:
    """Build a typed definition from a raw mapping. Raises pydantic.ValidationError."""
    return _event_adapter.validate_python(data)


class EventContext(SchemaModel):
    """Where and for whom events are being resolved."""
    location: str | None = None
    faction: str | None = None
    season: str | None = None
    region: str | None = None
    tags: list[str] = Field(default_factory=list)


# -----------------------------------------------------------------------------
# Runtime state
# -----------------------------------------------------------------------------

class ChainStateVector(SchemaModel):
    """
    Minimal checkpoint to resume a chain without replaying from day 0.

    rng_state is the generator state after the draws for the current
    state were made, so advancing from here matches a full replay.
    """
    current_state_name: str
    state_entered_day: int
    state_duration_days: int
    rng_state: int
    state_end_day: int


@dataclass
class ActiveEvent:
    """An event active on a given day. Derived per query, never persisted."""
    event_id: str
    name: str
    type: str
    state: str  # chain state name, or the event name for other kinds
    priority: int | float
    effects: dict[str, Any]
    start_day: int
    end_day: int
    remaining_days: int
    definition: Any = field(repr=False, default=None)
    source: str = "definition"

    @property
    def duration(self) -> int:
        return self.end_day - self.start_day + 1


class ClockState(SchemaModel):
    """Persisted clock position plus the engine snapshot needed to resume."""
    current_day: int = 0
    time_of_day: int = 0
    active_calendar_id: str = SIMPLE_COUNTER_ID
    origin_date: CalendarOrigin | None = None
    last_advanced: str | None = None
    total_advancement_count: int = 0
    chain_state_vectors: dict[str, ChainStateVector] = Field(default_factory=dict)
    module_toggles: dict[str, bool] = Field(default_factory=dict)
