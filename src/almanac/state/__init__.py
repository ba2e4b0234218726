"""State for the almanac engine: schemas, definition sources, persistence."""

from .schema import (
    ActiveEvent,
    CalendarDefinition,
    CalendarMonth,
    CalendarOrigin,
    ChainEvent,
    ChainStateVector,
    ClockState,
    ComputedDate,
    ConditionalEvent,
    EventContext,
    EventDefinition,
    FixedDateEvent,
    IntervalEvent,
    LeapRule,
    parse_event_definition,
    simple_counter_calendar,
)
from .event_bus import EngineEvent, EventBus, EventType
from .store import ClockStateStore, JsonClockStateStore, MemoryClockStateStore
from .definitions import (
    CalendarSource,
    EventDefinitionSource,
    MemoryCalendarSource,
    MemoryEventSource,
    YamlCalendarSource,
    YamlEventSource,
)

__all__ = [
    # Schema
    "ActiveEvent",
    "CalendarDefinition",
    "CalendarMonth",
    "CalendarOrigin",
    "ChainEvent",
    "ChainStateVector",
    "ClockState",
    "ComputedDate",
    "ConditionalEvent",
    "EventContext",
    "EventDefinition",
    "FixedDateEvent",
    "IntervalEvent",
    "LeapRule",
    "parse_event_definition",
    "simple_counter_calendar",
    # Event bus
    "EngineEvent",
    "EventBus",
    "EventType",
    # Store
    "ClockStateStore",
    "JsonClockStateStore",
    "MemoryClockStateStore",
    # Definition sources
    "CalendarSource",
    "EventDefinitionSource",
    "MemoryCalendarSource",
    "MemoryEventSource",
    "YamlCalendarSource",
    "YamlEventSource",
]
