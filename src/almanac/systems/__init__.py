"""
Engine systems for the almanac.

Calendar arithmetic, the condition language, effect resolution and the
world event service. Each system is pure computation over definitions;
loading and persistence live in almanac.state.
"""

from .calendar import CalendarDriver, SolarTimes
from .leap import LeapCalculator, create_gregorian_leap_rules
from .conditions import (
    ConditionSyntaxError,
    EventStateInfo,
    evaluate_condition,
    extract_event_references,
    parse_condition,
    validate_condition,
)
from .effects import EffectRegistry, ResolvedEffects, filter_by_context, matches_context
from .validation import (
    CalendarValidationError,
    CalendarValidator,
    EventValidationError,
    EventValidator,
    ValidationIssue,
    ValidationResult,
)
from .events import NotableEvent, WorldEventService
from .calendars import CalendarDefinitionManager
from .clock import CalendarClock, WorldEventIntegration

__all__ = [
    "CalendarDriver",
    "SolarTimes",
    "LeapCalculator",
    "create_gregorian_leap_rules",
    # Conditions
    "ConditionSyntaxError",
    "EventStateInfo",
    "evaluate_condition",
    "extract_event_references",
    "parse_condition",
    "validate_condition",
    # Effects
    "EffectRegistry",
    "ResolvedEffects",
    "filter_by_context",
    "matches_context",
    # Validation
    "CalendarValidationError",
    "CalendarValidator",
    "EventValidationError",
    "EventValidator",
    "ValidationIssue",
    "ValidationResult",
    # World events and time
    "NotableEvent",
    "WorldEventService",
    "CalendarDefinitionManager",
    "CalendarClock",
    "WorldEventIntegration",
]
