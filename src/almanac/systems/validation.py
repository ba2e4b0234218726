"""
Validators for event and calendar definitions.

Pure functions over raw mappings (as read from YAML/JSON, camelCase
keys): validate(raw) -> ValidationResult. Nothing is mutated and nothing
is raised for editorial mistakes.

Severities:
- error: the definition cannot be used and is rejected
- warning: usable but suspicious (negative priority, unknown reference)
- info: advisory (no effects, one-time event)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from ..errors import AlmanacError
from ..state.schema import EVENT_TYPES
from ..tools.durations import is_valid_duration
from .conditions import validate_condition
from .effects import is_valid_effect_key
from .leap import MAX_LEAP_PERIOD, leap_period

Severity = Literal["error", "warning", "info"]

FILTER_FIELDS = ("locations", "factions", "seasons", "regions", "tags")
MAX_SANE_PRIORITY = 1000
MINUTES_PER_DAY = 1440


@dataclass
class ValidationIssue:
    severity: Severity
    field: str
    message: str
    suggestion: str | None = None

    def __str__(self) -> str:
        text = f"{self.field}: {self.message}"
        return f"{text} (Suggestion: {self.suggestion})" if self.suggestion else text


@dataclass
class ValidationResult:
    """Outcome of validating one definition."""
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)
    info: list[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def error(self, field_name: str, message: str, suggestion: str | None = None) -> None:
        self.errors.append(ValidationIssue("error", field_name, message, suggestion))

    def warning(self, field_name: str, message: str, suggestion: str | None = None) -> None:
        self.warnings.append(ValidationIssue("warning", field_name, message, suggestion))

    def note(self, field_name: str, message: str, suggestion: str | None = None) -> None:
        self.info.append(ValidationIssue("info", field_name, message, suggestion))


class EventValidationError(AlmanacError):
    """Raised by EventValidator.validate_or_throw for the first error."""
    def __init__(self, field: str, message: str, suggestion: str | None = None):
        self.field = field
        self.suggestion = suggestion
        super().__init__(f"Event validation failed for '{field}': {message}")


class CalendarValidationError(AlmanacError):
    """Raised by CalendarValidator.validate_or_throw for the first error."""
    def __init__(self, field: str, message: str, suggestion: str | None = None):
        self.field = field
        self.suggestion = suggestion
        super().__init__(f"Calendar validation failed for '{field}': {message}")


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_text(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _get(raw: dict, *keys: str) -> Any:
    """First non-None value among alias spellings."""
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def _leap_intervals(rules: Any):
    """Valid intervals anywhere in a raw leap rule tree."""
    if not isinstance(rules, list):
        return
    for rule in rules:
        if not isinstance(rule, dict):
            continue
        interval = rule.get("interval")
        if _is_int(interval) and interval > 0:
            yield interval
        yield from _leap_intervals(rule.get("exclude"))


# ─── Events ────────────────────────────────────────────────────


class EventValidator:
    """
    Checks raw event definitions.

    Type-specific checks only run once the common schema is sound, so
    a definition with a bad type reports one error rather than a cascade.
    """

    @classmethod
    def validate(cls, raw: dict, known_event_ids: set[str] | None = None) -> ValidationResult:
        """
        Validate one raw event definition.

        Args:
            raw: Mapping as read from a definition file
            known_event_ids: Ids that conditions may reference; unknown
                references are warnings. None skips the check.

        Returns:
            ValidationResult with errors, warnings and info
        """
        result = ValidationResult()
        if not isinstance(raw, dict):
            result.error("event", "Event definition must be a mapping")
            return result

        cls._validate_schema(raw, result)
        if result.errors:
            return result

        kind = raw["type"]
        if kind == "fixed":
            cls._validate_fixed(raw, result)
        elif kind == "interval":
            cls._validate_interval(raw, result)
        elif kind == "chain":
            cls._validate_chain(raw, result)
        else:
            cls._validate_conditional(raw, result, known_event_ids)

        cls._validate_effect_keys(raw, result)
        return result

    @classmethod
    def validate_or_throw(cls, raw: dict, known_event_ids: set[str] | None = None) -> None:
        result = cls.validate(raw, known_event_ids)
        if not result.is_valid:
            first = result.errors[0]
            raise EventValidationError(first.field, first.message, first.suggestion)

    @classmethod
    def get_validation_errors(cls, raw: dict, known_event_ids: set[str] | None = None) -> list[str]:
        """Errors as display strings: "field: message (Suggestion: ...)"."""
        return [str(issue) for issue in cls.validate(raw, known_event_ids).errors]

    # ─── Common fields ─────────────────────────────────────────

    @staticmethod
    def _validate_schema(raw: dict, result: ValidationResult) -> None:
        for key, label in (("id", "ID"), ("name", "name")):
            value = raw.get(key)
            if value is None:
                result.error(key, f"Event {label} is required")
            elif not _is_text(value):
                result.error(key, f"Event {label} must be a non-empty string")

        kind = raw.get("type")
        if kind is None:
            result.error("type", "Event type is required", f"Use one of: {', '.join(EVENT_TYPES)}")
        elif kind not in EVENT_TYPES:
            result.error("type", f'Invalid event type: "{kind}"', f"Use one of: {', '.join(EVENT_TYPES)}")

        priority = raw.get("priority")
        if priority is None:
            result.error("priority", "Event priority is required", "Use 0 for normal priority")
        elif not _is_number(priority):
            result.error("priority", "Event priority must be a number")
        elif priority < 0:
            result.warning("priority", "Event priority is negative")
        elif priority > MAX_SANE_PRIORITY:
            result.warning("priority", f"Event priority is very high (> {MAX_SANE_PRIORITY})")

        effects = raw.get("effects")
        if effects is None:
            result.error("effects", "Event effects object is required", "Use {} for no effects")
        elif not isinstance(effects, dict):
            result.error("effects", "Event effects must be a mapping")
        elif not effects and raw.get("type") != "chain":
            result.note("effects", "Event has no effects defined")

        description = raw.get("description")
        if description is not None and not isinstance(description, str):
            result.error("description", "Event description must be a string if provided")

        for key in FILTER_FIELDS:
            value = raw.get(key)
            if value is not None and not isinstance(value, list):
                result.error(key, f"Event {key} must be a list if provided")

    @staticmethod
    def _validate_duration_days(raw: dict, result: ValidationResult) -> None:
        duration = raw.get("duration")
        if duration is not None and (not _is_int(duration) or duration < 1):
            result.error("duration", "Duration must be a positive integer if provided")

    # ─── Per kind ──────────────────────────────────────────────

    @classmethod
    def _validate_fixed(cls, raw: dict, result: ValidationResult) -> None:
        date = raw.get("date")
        if date is None:
            result.error("date", "Fixed date event requires a date specification",
                         "Add date: {month: 0, day: 1}")
            return
        if not isinstance(date, dict):
            result.error("date", "Date specification must be a mapping")
            return

        month, day = date.get("month"), date.get("day")
        intercalary = _get(date, "intercalaryName", "intercalary_name")
        has_standard = month is not None and day is not None

        if not has_standard and intercalary is None:
            result.error("date", "Date must specify either (month + day) or intercalaryName",
                         "Use {month: 0, day: 1} or {intercalaryName: 'Midwinter'}")
        if has_standard and intercalary is not None:
            result.warning("date", "Date specifies both standard date and intercalaryName",
                           "intercalaryName takes precedence")

        if month is not None and (not _is_int(month) or month < 0):
            result.error("date.month", "Month must be a non-negative integer (0-indexed)")
        if day is not None and (not _is_int(day) or day < 1):
            result.error("date.day", "Day must be a positive integer (1-indexed)")
        if intercalary is not None and not _is_text(intercalary):
            result.error("date.intercalaryName", "Intercalary name must be a non-empty string")

        year = _get(raw, "year")
        if year is None:
            year = date.get("year")
        if year is not None:
            if not _is_int(year):
                result.error("date.year", "Year must be an integer if provided")
            else:
                result.note("date.year", f"One-time event for year {year}")

        cls._validate_duration_days(raw, result)

    @classmethod
    def _validate_interval(cls, raw: dict, result: ValidationResult) -> None:
        interval = raw.get("interval")
        if interval is None:
            result.error("interval", "Interval event requires an interval value")
        elif not _is_int(interval) or interval < 1:
            result.error("interval", "Interval must be a positive integer")

        offset = raw.get("offset")
        if offset is not None and not _is_int(offset):
            result.error("offset", "Offset must be an integer if provided")

        cls._validate_duration_days(raw, result)

        use_minutes = _get(raw, "useMinutes", "use_minutes")
        if use_minutes is not None and not isinstance(use_minutes, bool):
            result.error("useMinutes", "useMinutes must be a boolean if provided")
        elif use_minutes and _is_int(interval) and interval < 60:
            result.note("interval", "Interval under an hour", "Minute intervals are usually 60 or more")

    @classmethod
    def _validate_chain(cls, raw: dict, result: ValidationResult) -> None:
        seed = raw.get("seed")
        if seed is None:
            result.error("seed", "Chain event requires a seed for deterministic RNG")
        elif not _is_int(seed):
            result.error("seed", "Seed must be an integer")

        states = raw.get("states")
        if states is None:
            result.error("states", "Chain event requires a states list")
            return
        if not isinstance(states, list):
            result.error("states", "States must be a list")
            return
        if not states:
            result.error("states", "Chain event must have at least one state")
            return

        seen: set[str] = set()
        for index, state in enumerate(states):
            cls._validate_chain_state(state, index, seen, result)

        initial = _get(raw, "initialState", "initial_state")
        if initial is not None:
            if not _is_text(initial):
                result.error("initialState", "Initial state must be a non-empty string if provided")
            elif initial not in seen:
                result.error("initialState", f'Initial state "{initial}" does not match any defined state',
                             f"Use one of: {', '.join(sorted(seen))}")

    @staticmethod
    def _validate_chain_state(state: Any, index: int, seen: set[str], result: ValidationResult) -> None:
        prefix = f"states[{index}]"
        if not isinstance(state, dict):
            result.error(prefix, "State must be a mapping")
            return

        name = state.get("name")
        if not _is_text(name):
            result.error(f"{prefix}.name", "State name is required and must be a non-empty string")
        elif name in seen:
            result.error(f"{prefix}.name", f'Duplicate state name: "{name}"')
        else:
            seen.add(name)

        weight = state.get("weight")
        if weight is None:
            result.error(f"{prefix}.weight", "State weight is required")
        elif not _is_number(weight) or weight < 0:
            result.error(f"{prefix}.weight", "State weight must be a non-negative number")

        duration = state.get("duration")
        if duration is None:
            result.error(f"{prefix}.duration", "State duration is required", 'Use "3 days" or "1d4 days"')
        elif not isinstance(duration, str):
            result.error(f"{prefix}.duration", "State duration must be a string")
        elif not is_valid_duration(duration):
            result.error(f"{prefix}.duration", f'Invalid duration notation: "{duration}"',
                         'Use "N days", "NdM days" or a compound like "1 week + 1d4 days"')

        effects = state.get("effects")
        if effects is not None and not isinstance(effects, dict):
            result.error(f"{prefix}.effects", "State effects must be a mapping")

    @classmethod
    def _validate_conditional(
        cls, raw: dict, result: ValidationResult, known_event_ids: set[str] | None,
    ) -> None:
        condition = raw.get("condition")
        if condition is None:
            result.error("condition", "Conditional event requires a condition expression")
        elif not _is_text(condition):
            result.error("condition", "Condition must be a non-empty string")

        tier = raw.get("tier")
        if tier is None:
            result.error("tier", "Conditional event requires a tier (1 or 2)",
                         "Use tier 1 to read fixed, interval and chain events, tier 2 to also read tier 1")
        elif tier not in (1, 2) or isinstance(tier, bool):
            result.error("tier", f"Invalid tier: {tier}", "Use 1 or 2")

        cls._validate_duration_days(raw, result)

        if not _is_text(condition):
            return
        check = validate_condition(condition, known_event_ids)
        for message in check.errors:
            result.error("condition", message)
        for message in check.warnings:
            result.warning("condition", message)
        if raw.get("id") is not None and f"events['{raw['id']}']" in condition:
            result.warning("condition", "Condition references its own event")

    @staticmethod
    def _validate_effect_keys(raw: dict, result: ValidationResult) -> None:
        for key in raw.get("effects") or {}:
            if not is_valid_effect_key(key):
                result.note("effects", f'Unknown effect key: "{key}"', "Resolved as last-wins")
        for index, state in enumerate(raw.get("states") or []):
            if not isinstance(state, dict):
                continue
            for key in state.get("effects") or {}:
                if not is_valid_effect_key(key):
                    result.note(f"states[{index}].effects", f'Unknown effect key: "{key}"',
                                "Resolved as last-wins")


# ─── Calendars ─────────────────────────────────────────────────


class CalendarValidator:
    """Checks raw calendar definitions."""

    @classmethod
    def validate(cls, raw: dict) -> ValidationResult:
        result = ValidationResult()
        if not isinstance(raw, dict):
            result.error("calendar", "Calendar definition must be a mapping")
            return result

        for key in ("id", "name"):
            value = raw.get(key)
            if value is None:
                result.error(key, f"Calendar {key} is required")
            elif not _is_text(value):
                result.error(key, f"Calendar {key} must be a non-empty string")

        months = raw.get("months") or []
        cls._validate_weekdays(raw.get("weekdays"), result)
        cls._validate_months(months, result)
        month_count = len(months) if isinstance(months, list) else 0

        starting_year = _get(raw, "startingYear", "starting_year")
        if starting_year is not None and not _is_int(starting_year):
            result.error("startingYear", "Starting year must be an integer")

        cls._validate_eras(raw.get("eras") or [], result)
        leap_rules = _get(raw, "leapRules", "leap_rules") or []
        for index, rule in enumerate(leap_rules):
            cls._validate_leap_rule(rule, f"leapRules[{index}]", month_count, result)
        period = leap_period(_leap_intervals(leap_rules))
        if period > MAX_LEAP_PERIOD:
            result.error("leapRules", f"Leap rules repeat only every {period} years",
                         f"Choose intervals whose least common multiple is at most {MAX_LEAP_PERIOD}")
        cls._validate_seasons(raw.get("seasons") or [], month_count, result)
        cls._validate_holidays(raw.get("holidays") or [], month_count, result)
        return result

    @classmethod
    def validate_or_throw(cls, raw: dict) -> None:
        result = cls.validate(raw)
        if not result.is_valid:
            first = result.errors[0]
            raise CalendarValidationError(first.field, first.message, first.suggestion)

    @classmethod
    def get_validation_errors(cls, raw: dict) -> list[str]:
        return [str(issue) for issue in cls.validate(raw).errors]

    @staticmethod
    def _validate_weekdays(weekdays: Any, result: ValidationResult) -> None:
        if weekdays is None:
            return
        if not isinstance(weekdays, list):
            result.error("weekdays", "Weekdays must be a list of names")
            return
        for index, name in enumerate(weekdays):
            if not _is_text(name):
                result.error(f"weekdays[{index}]", "Weekday name must be a non-empty string")
        if len(set(weekdays)) != len(weekdays):
            result.warning("weekdays", "Duplicate weekday names")

    @staticmethod
    def _validate_months(months: Any, result: ValidationResult) -> None:
        if not isinstance(months, list):
            result.error("months", "Months must be a list")
            return
        if not months:
            result.note("months", "No months defined, dates use the simple day counter")
            return

        names: set[str] = set()
        orders: list[int] = []
        standard = 0
        for index, month in enumerate(months):
            prefix = f"months[{index}]"
            if not isinstance(month, dict):
                result.error(prefix, "Month must be a mapping")
                continue
            name = month.get("name")
            if not _is_text(name):
                result.error(f"{prefix}.name", "Month name is required")
            elif name in names:
                result.error(f"{prefix}.name", f'Duplicate month name: "{name}"')
            else:
                names.add(name)

            days = month.get("days")
            if not _is_int(days) or days < 1:
                result.error(f"{prefix}.days", "Month days must be a positive integer")

            kind = month.get("type", "standard")
            if kind not in ("standard", "intercalary"):
                result.error(f"{prefix}.type", f'Invalid month type: "{kind}"', "Use standard or intercalary")
            elif kind == "standard":
                standard += 1

            order = month.get("order")
            if order is not None:
                if not _is_int(order):
                    result.error(f"{prefix}.order", "Month order must be an integer")
                else:
                    orders.append(order)

        if orders:
            if len(orders) != len(months):
                result.error("months", "Either every month has an order or none do")
            elif sorted(orders) != list(range(len(months))):
                result.error("months", "Month order values must be unique and contiguous from 0",
                             f"Use 0 to {len(months) - 1}")
        if standard == 0:
            result.warning("months", "Calendar has only intercalary months")

    @staticmethod
    def _validate_eras(eras: Any, result: ValidationResult) -> None:
        if not isinstance(eras, list):
            result.error("eras", "Eras must be a list")
            return
        spans: list[tuple[int, int | None, int]] = []
        for index, era in enumerate(eras):
            prefix = f"eras[{index}]"
            if not isinstance(era, dict):
                result.error(prefix, "Era must be a mapping")
                continue
            for key in ("name", "abbrev"):
                if not _is_text(era.get(key)):
                    result.error(f"{prefix}.{key}", f"Era {key} is required")
            start = _get(era, "startYear", "start_year")
            end = _get(era, "endYear", "end_year")
            if not _is_int(start):
                result.error(f"{prefix}.startYear", "Era start year must be an integer")
                continue
            if end is not None and (not _is_int(end) or end <= start):
                result.error(f"{prefix}.endYear", "Era end year must be an integer after the start year")
                continue
            if era.get("direction", 1) not in (1, -1):
                result.error(f"{prefix}.direction", "Era direction must be 1 or -1")
            spans.append((start, end, index))

        spans.sort(key=lambda s: s[0])
        for (start_a, end_a, a), (start_b, _, b) in zip(spans, spans[1:]):
            if end_a is None or end_a > start_b:
                result.warning("eras", f"Eras {a} and {b} overlap", "The first listed era wins")

    @classmethod
    def _validate_leap_rule(cls, rule: Any, prefix: str, month_count: int, result: ValidationResult) -> None:
        if not isinstance(rule, dict):
            result.error(prefix, "Leap rule must be a mapping")
            return
        interval = rule.get("interval")
        if not _is_int(interval) or interval < 1:
            result.error(f"{prefix}.interval", "Leap interval must be a positive integer")
        offset = rule.get("offset")
        if offset is not None and not _is_int(offset):
            result.error(f"{prefix}.offset", "Leap offset must be an integer")
        target = _get(rule, "targetMonthIndex", "targetMonth", "target_month_index")
        if target is not None and (not _is_int(target) or not 0 <= target < max(month_count, 1)):
            result.error(f"{prefix}.targetMonthIndex", "Leap target month is out of range",
                         f"Use 0 to {month_count - 1}")
        for index, sub in enumerate(rule.get("exclude") or []):
            cls._validate_leap_rule(sub, f"{prefix}.exclude[{index}]", month_count, result)

    @staticmethod
    def _validate_seasons(seasons: Any, month_count: int, result: ValidationResult) -> None:
        if not isinstance(seasons, list):
            result.error("seasons", "Seasons must be a list")
            return
        for index, season in enumerate(seasons):
            prefix = f"seasons[{index}]"
            if not isinstance(season, dict):
                result.error(prefix, "Season must be a mapping")
                continue
            if not _is_text(season.get("name")):
                result.error(f"{prefix}.name", "Season name is required")
            start_month = _get(season, "startMonth", "start_month")
            if not _is_int(start_month) or not 0 <= start_month < max(month_count, 1):
                result.error(f"{prefix}.startMonth", "Season start month is out of range")
            start_day = _get(season, "startDay", "start_day")
            if not _is_int(start_day) or start_day < 1:
                result.error(f"{prefix}.startDay", "Season start day must be a positive integer")
            for key in ("sunrise", "sunset"):
                value = season.get(key)
                if not _is_int(value) or not 0 <= value < MINUTES_PER_DAY:
                    result.error(f"{prefix}.{key}", f"Season {key} must be minutes from midnight (0-1439)")

    @staticmethod
    def _validate_holidays(holidays: Any, month_count: int, result: ValidationResult) -> None:
        if not isinstance(holidays, list):
            result.error("holidays", "Holidays must be a list")
            return
        for index, holiday in enumerate(holidays):
            prefix = f"holidays[{index}]"
            if not isinstance(holiday, dict):
                result.error(prefix, "Holiday must be a mapping")
                continue
            if not _is_text(holiday.get("name")):
                result.error(f"{prefix}.name", "Holiday name is required")
            day_of_year = _get(holiday, "dayOfYear", "day_of_year")
            month, day = holiday.get("month"), holiday.get("day")
            if day_of_year is None and (month is None or day is None):
                result.error(prefix, "Holiday needs dayOfYear or month + day")
            elif day_of_year is None and (not _is_int(month) or not 0 <= month < max(month_count, 1)):
                result.error(f"{prefix}.month", "Holiday month is out of range")
