"""
Duration notation parsing.

Two notations are understood:

- Compound: "2d6 days + 1d3 weeks - 4 hours", resolved to minutes with
  calendar-aware unit sizes (parse_duration).
- Day notation used by chain states: "3", "3 days", "1d4 weeks",
  resolved to whole days (resolve_day_duration).

Dice in either notation are rolled through the caller's seeded generator,
so the same generator state always resolves the same duration.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..errors import DurationError

if TYPE_CHECKING:
    from ..state.schema import CalendarDefinition
    from .rng import SeededRandomizer

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 1440

TOKEN_PATTERN = re.compile(
    r"\d+d\d+|\d+|minutes?|hours?|days?|weeks?|months?|years?|[+\-]|\S+",
    re.IGNORECASE,
)
UNIT_PATTERN = re.compile(r"^(minute|hour|day|week|month|year)s?$", re.IGNORECASE)

DAY_DICE_PATTERN = re.compile(r"^(\d+)d(\d+)\s*(days?|weeks?|months?)?$", re.IGNORECASE)
DAY_FIXED_PATTERN = re.compile(r"^(\d+)\s*(days?|weeks?|months?)?$", re.IGNORECASE)


@dataclass(frozen=True)
class DurationUnits:
    """Unit sizes for converting durations to minutes."""
    minutes_per_hour: int = 60
    hours_per_day: int = 24
    days_per_week: int = 7
    days_per_month: int = 30
    days_per_year: int = 365

    @classmethod
    def from_calendar(cls, calendar: "CalendarDefinition") -> "DurationUnits":
        """Derive week, month and year sizes from a calendar definition."""
        days_per_year = sum(m.days for m in calendar.months)
        if not days_per_year:
            return cls()
        standard = [m for m in calendar.months if m.type == "standard"] or calendar.months
        return cls(
            days_per_week=len(calendar.weekdays) or 7,
            days_per_month=round(sum(m.days for m in standard) / len(standard)),
            days_per_year=days_per_year,
        )

    def minutes_in(self, unit: str) -> int:
        day = self.hours_per_day * self.minutes_per_hour
        sizes = {
            "minute": 1,
            "hour": self.minutes_per_hour,
            "day": day,
            "week": self.days_per_week * day,
            "month": self.days_per_month * day,
            "year": self.days_per_year * day,
        }
        if unit not in sizes:
            raise DurationError(f'Unknown duration unit: "{unit}"')
        return sizes[unit]


DEFAULT_DURATION_UNITS = DurationUnits()


@dataclass(frozen=True)
class DurationChunk:
    """One signed "value unit" term of a compound duration."""
    sign: int
    unit: str
    value: int = 0
    dice: str | None = None


# ─── Compound notation ─────────────────────────────────────────


def _normalize(notation: str) -> str:
    return re.sub(r"\s+", " ", notation.strip().lower())


def parse_duration_chunks(notation: str) -> list[DurationChunk]:
    """
    Parse compound notation into signed chunks without rolling dice.

    Raises:
        DurationError: empty notation, unknown token, missing unit or
            dangling operator
    """
    normalized = _normalize(notation)
    if not normalized:
        raise DurationError("Duration notation cannot be empty")

    tokens = [m for m in TOKEN_PATTERN.finditer(normalized)]
    chunks: list[DurationChunk] = []
    sign = 1
    i = 0
    while i < len(tokens):
        text = tokens[i].group(0)
        position = tokens[i].start()

        if text in ("+", "-"):
            sign = -1 if text == "-" else 1
            i += 1
            if i >= len(tokens):
                raise DurationError(
                    f'Trailing operator "{text}" at position {position} without following value'
                )
            continue

        is_dice = re.fullmatch(r"\d+d\d+", text) is not None
        if not is_dice and not text.isdigit():
            raise DurationError(
                f'Expected number or dice notation at position {position}, got "{text}"'
            )

        i += 1
        if i >= len(tokens):
            raise DurationError(f'Missing unit after "{text}" at position {position}')
        unit_text = tokens[i].group(0)
        unit_match = UNIT_PATTERN.match(unit_text)
        if not unit_match:
            raise DurationError(
                f'Expected unit at position {tokens[i].start()}, got "{unit_text}"'
            )
        i += 1

        chunks.append(DurationChunk(
            sign=sign,
            unit=unit_match.group(1).lower(),
            value=0 if is_dice else int(text),
            dice=text if is_dice else None,
        ))
        sign = 1

    if not chunks:
        raise DurationError("No valid duration chunks found")
    return chunks


def parse_duration(
    notation: str,
    rng: "SeededRandomizer",
    units: DurationUnits = DEFAULT_DURATION_UNITS,
) -> int:
    """
    Resolve compound duration notation to whole minutes.

    Args:
        notation: e.g. "2 weeks + 1d6 days - 4 hours"
        rng: Generator used for any dice terms
        units: Unit sizes (see DurationUnits.from_calendar)

    Returns:
        Total minutes

    Raises:
        DurationError: notation is invalid or resolves below zero
    """
    total = 0
    for chunk in parse_duration_chunks(notation):
        value = rng.roll_dice(chunk.dice).total if chunk.dice else chunk.value
        total += chunk.sign * value * units.minutes_in(chunk.unit)

    if total < 0:
        raise DurationError(
            f"Duration cannot be negative (resolved to {total} minutes). "
            "Check notation for subtraction errors."
        )
    return total


# ─── Day notation ──────────────────────────────────────────────


def _days_for_unit(value: int, unit: str | None, days_per_month: float) -> int:
    unit = (unit or "days").lower()
    if unit.startswith("week"):
        return value * 7
    if unit.startswith("month"):
        # Round half up, matching how saved worlds were generated
        return math.floor(value * days_per_month + 0.5)
    return value


def is_day_notation(notation: str) -> bool:
    """True if notation is a plain day count or single dice term."""
    normalized = notation.strip().lower()
    return bool(DAY_DICE_PATTERN.match(normalized) or DAY_FIXED_PATTERN.match(normalized))


def is_valid_duration(notation: str) -> bool:
    """Syntax check for either notation. Dice are not rolled."""
    if not isinstance(notation, str):
        return False
    if is_day_notation(notation):
        return True
    try:
        parse_duration_chunks(notation)
    except DurationError:
        return False
    return True


def resolve_day_duration(
    notation: str,
    rng: "SeededRandomizer",
    days_per_year: int = 0,
) -> int:
    """
    Resolve a chain-state duration to days.

    Day notation is tried first; each die consumes exactly one draw.
    Compound notation falls back to parse_duration and is floored to
    whole days. Anything unusable resolves to 1 day rather than raising.
    """
    normalized = notation.strip().lower()
    days_per_month = days_per_year / 12 if days_per_year else 30

    dice = DAY_DICE_PATTERN.match(normalized)
    if dice:
        count, sides = int(dice.group(1)), int(dice.group(2))
        total = sum(rng.random_int(1, sides) for _ in range(count))
        return _days_for_unit(total, dice.group(3), days_per_month)

    fixed = DAY_FIXED_PATTERN.match(normalized)
    if fixed:
        return _days_for_unit(int(fixed.group(1)), fixed.group(2), days_per_month)

    try:
        minutes = parse_duration(normalized, rng)
    except DurationError as e:
        logger.warning(f"Unusable duration {notation!r}, defaulting to 1 day: {e}")
        return 1
    return max(1, minutes // MINUTES_PER_DAY)
