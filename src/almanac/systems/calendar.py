"""
Calendar driver: absolute day counter <-> calendar date.

Pure arithmetic over a CalendarDefinition. Handles intercalary months
(days outside the week cycle), rule-based leap days, eras, seasons and
solar light levels. Day 0 is the first day of the base year unless an
origin date maps it elsewhere.

All arithmetic is integer, so conversions are exact for any day count;
leap-year counting is constant time via LeapCalculator's period table.
"""

from __future__ import annotations

import math
from bisect import bisect_right
from typing import NamedTuple

from ..state.schema import (
    CalendarDefinition,
    CalendarHoliday,
    CalendarMonth,
    CalendarOrigin,
    ComputedDate,
    Era,
    LightLevel,
    Season,
    SunState,
)
from .leap import LeapCalculator

MINUTES_PER_DAY = 1440
DEFAULT_SUNRISE = 6 * 60
DEFAULT_SUNSET = 18 * 60


class SolarTimes(NamedTuple):
    sunrise: int  # minutes from midnight
    sunset: int


class CalendarDriver:
    """
    Date arithmetic for one calendar definition.

    Months are ordered by their `order` field (array position when
    unset). Leap days are added to the rule's target month, or to the
    last month when the rule names none.
    """

    TWILIGHT_DURATION = 30  # minutes either side of sunrise/sunset

    def __init__(self, calendar: CalendarDefinition, origin: CalendarOrigin | None = None):
        self.calendar = calendar
        self.origin = origin
        self.months: list[CalendarMonth] = [
            m for _, m in sorted(
                enumerate(calendar.months),
                key=lambda pair: (pair[1].order if pair[1].order is not None else pair[0], pair[0]),
            )
        ]
        self.base_year = origin.year if origin else (calendar.starting_year or 0)
        self._leap = LeapCalculator(calendar.leap_rules)
        self._time_of_day = 0

        self._total_days = sum(m.days for m in self.months)
        self._month_start_days: list[int] = []
        self._week_days_before_month: list[int] = []
        self._intercalary_days_before_month: list[int] = []
        start = week_days = intercalary_days = 0
        for month in self.months:
            self._month_start_days.append(start)
            self._week_days_before_month.append(week_days)
            self._intercalary_days_before_month.append(intercalary_days)
            start += month.days
            if month.type == "intercalary":
                intercalary_days += month.days
            else:
                week_days += month.days
        self._week_counting_days = week_days
        self._intercalary_days = intercalary_days

        # Leap years whose extra day lands in an intercalary month
        self._intercalary_leap = LeapCalculator([])
        if self.has_leap_rules() and self.has_intercalary_months():
            self._intercalary_leap = _FilteredLeapCounter(self._leap, self._leap_targets_intercalary)

        self._origin_offset = 0
        if origin and self.has_months():
            self._origin_offset = self._days_into_year(origin.year, origin.month, origin.day)

    # ─── Structure ─────────────────────────────────────────────

    def has_months(self) -> bool:
        return bool(self.months)

    def has_weekdays(self) -> bool:
        return bool(self.calendar.weekdays)

    def has_leap_rules(self) -> bool:
        return bool(self.calendar.leap_rules)

    def has_intercalary_months(self) -> bool:
        return any(m.type == "intercalary" for m in self.months)

    def get_total_days_in_year(self) -> int:
        """Days in a common (non-leap) year."""
        return self._total_days

    def get_week_counting_days_in_year(self) -> int:
        return self._week_counting_days

    def get_week_length(self) -> int:
        return len(self.calendar.weekdays)

    # ─── Leap years and eras ───────────────────────────────────

    def is_leap_year(self, year: int) -> bool:
        return self._leap.is_leap_year(year)

    def get_days_in_year(self, year: int) -> int:
        return self._total_days + (1 if self.is_leap_year(year) else 0)

    def get_leap_day_target_month(self, year: int) -> int | None:
        """Month index receiving the leap day, or None in common years."""
        if not self.is_leap_year(year):
            return None
        target = self._leap.target_month(year)
        if target is None or not 0 <= target < len(self.months):
            return len(self.months) - 1
        return target

    def _leap_targets_intercalary(self, year: int) -> bool:
        target = self.get_leap_day_target_month(year)
        return target is not None and self.months[target].type == "intercalary"

    def get_era(self, year: int) -> Era | None:
        """First era whose [start_year, end_year) contains year."""
        for era in self.calendar.eras:
            if year >= era.start_year and (era.end_year is None or year < era.end_year):
                return era
        return None

    def get_era_year(self, year: int) -> int:
        """
        Year number as displayed within its era.

        Forward eras show the raw year. Backward eras count down toward
        their end year: with end_year 1, year 0 is "1 BD" and -9 is "10 BD".
        """
        era = self.get_era(year)
        if era is None or era.direction == 1:
            return year
        reference = era.end_year if era.end_year is not None else era.start_year
        return reference - year

    def get_year_suffix(self, year: int) -> str:
        era = self.get_era(year)
        if era:
            return era.abbrev
        return self.calendar.year_suffix or ""

    # ─── Day -> date ───────────────────────────────────────────

    def get_date(self, absolute_day: int) -> ComputedDate:
        """Resolve an absolute day to its calendar date."""
        if not self.has_months():
            return self._simple_counter_date(absolute_day)

        raw = absolute_day + self._origin_offset
        year, day_of_year = self._year_and_day_of_year(raw)
        month_index, day_of_month = self._month_and_day(day_of_year, year)
        month = self.months[month_index]
        is_intercalary = month.type == "intercalary"

        if is_intercalary or not self.has_weekdays():
            day_of_week, day_of_week_index = "", -1
        else:
            week_day = self._week_counting_day(raw, year, month_index, day_of_month)
            day_of_week_index = week_day % self.get_week_length()
            day_of_week = self.calendar.weekdays[day_of_week_index]

        return ComputedDate(
            absolute_day=absolute_day,
            year=year,
            month_index=month_index,
            month_name=month.name,
            day_of_month=day_of_month,
            day_of_year=day_of_year,
            day_of_week=day_of_week,
            day_of_week_index=day_of_week_index,
            year_suffix=self.get_year_suffix(year),
            is_intercalary=is_intercalary,
        )

    def get_day_of_week(self, absolute_day: int) -> str:
        return self.get_date(absolute_day).day_of_week

    def get_month_name(self, absolute_day: int) -> str:
        return self.get_date(absolute_day).month_name

    def get_day_of_month(self, absolute_day: int) -> int:
        return self.get_date(absolute_day).day_of_month

    def get_year(self, absolute_day: int) -> int:
        return self.get_date(absolute_day).year

    def get_day_of_year(self, absolute_day: int) -> int:
        return self.get_date(absolute_day).day_of_year

    def is_intercalary_day(self, absolute_day: int) -> bool:
        return self.get_date(absolute_day).is_intercalary

    def _simple_counter_date(self, absolute_day: int) -> ComputedDate:
        return ComputedDate(
            absolute_day=absolute_day,
            year=0,
            month_index=-1,
            month_name="",
            day_of_month=0,
            day_of_year=absolute_day,
            day_of_week="",
            day_of_week_index=-1,
            year_suffix=self.get_year_suffix(0),
            is_simple_counter=True,
        )

    def _days_to_year(self, year: int) -> int:
        """Signed days from the start of base_year to the start of year."""
        return (year - self.base_year) * self._total_days + self._leap.leap_days_between(self.base_year, year)

    def _year_and_day_of_year(self, raw: int) -> tuple[int, int]:
        if self._total_days == 0:
            return self.base_year, 0

        if not self.has_leap_rules():
            years, day_of_year = divmod(raw, self._total_days)
            return self.base_year + years, day_of_year

        # Exact mean year length is total + leaps/period; estimate, then settle
        period = self._leap.period
        mean_numerator = self._total_days * period + self._leap.leaps_per_period
        year = self.base_year + (raw * period) // mean_numerator
        start = self._days_to_year(year)
        while start > raw:
            year -= 1
            start -= self.get_days_in_year(year)
        while start + self.get_days_in_year(year) <= raw:
            start += self.get_days_in_year(year)
            year += 1
        return year, raw - start

    def _month_lengths(self, year: int) -> list[int]:
        lengths = [m.days for m in self.months]
        target = self.get_leap_day_target_month(year)
        if target is not None:
            lengths[target] += 1
        return lengths

    def _month_and_day(self, day_of_year: int, year: int) -> tuple[int, int]:
        if not self.has_leap_rules() or not self.is_leap_year(year):
            index = bisect_right(self._month_start_days, day_of_year) - 1
            return index, day_of_year - self._month_start_days[index] + 1

        cumulative = 0
        for index, length in enumerate(self._month_lengths(year)):
            if day_of_year < cumulative + length:
                return index, day_of_year - cumulative + 1
            cumulative += length
        last = len(self.months) - 1
        return last, day_of_year - (cumulative - self._month_lengths(year)[last]) + 1

    def _week_counting_day(self, raw: int, year: int, month_index: int, day_of_month: int) -> int:
        """Days since the base year start that advance the weekday counter."""
        if not self.has_intercalary_months():
            return raw
        intercalary_before = (
            (year - self.base_year) * self._intercalary_days
            + self._intercalary_leap.leap_days_between(self.base_year, year)
            + self._intercalary_days_before_month[month_index]
        )
        target = self.get_leap_day_target_month(year)
        if target is not None and target < month_index and self.months[target].type == "intercalary":
            intercalary_before += 1
        return raw - intercalary_before

    # ─── Date -> day ───────────────────────────────────────────

    def get_absolute_day(self, year: int, month_index: int, day_of_month: int) -> int:
        """
        Inverse of get_date for any day inside the calendar.

        In simple counter mode day_of_month is 1-indexed day count.
        """
        if not self.has_months():
            return day_of_month - 1
        return self._days_into_year(year, month_index, day_of_month) - self._origin_offset

    def _days_into_year(self, year: int, month_index: int, day_of_month: int) -> int:
        if not self.has_leap_rules():
            before_month = self._month_start_days[month_index]
        else:
            before_month = sum(self._month_lengths(year)[:month_index])
        return self._days_to_year(year) + before_month + day_of_month - 1

    # ─── Holidays ──────────────────────────────────────────────

    def get_holidays(self, absolute_day: int) -> list[CalendarHoliday]:
        date = self.get_date(absolute_day)
        if date.is_simple_counter:
            return []
        return [
            h for h in self.calendar.holidays
            if h.day_of_year == date.day_of_year
            or (h.day_of_year is None and h.month == date.month_index and h.day == date.day_of_month)
        ]

    # ─── Seasons and sunlight ──────────────────────────────────

    def get_season(self, absolute_day: int) -> Season | None:
        date = self.get_date(absolute_day)
        if date.is_simple_counter:
            return None
        return self._find_season(date.month_index, date.day_of_month, region=None)

    def _find_season(self, month_index: int, day_of_month: int, region: str | None) -> Season | None:
        candidates = sorted(
            (s for s in self.calendar.seasons if s.region == region),
            key=lambda s: (s.start_month, s.start_day),
        )
        if not candidates:
            return None
        active = None
        for season in candidates:
            if (season.start_month, season.start_day) <= (month_index, day_of_month):
                active = season
            else:
                break
        # Before the first start of the year: still in last year's final season
        return active or candidates[-1]

    def get_default_solar_times(self) -> SolarTimes:
        return SolarTimes(DEFAULT_SUNRISE, DEFAULT_SUNSET)

    def get_solar_times(self, absolute_day: int, region: str | None = None) -> SolarTimes:
        """Sunrise/sunset for a day, preferring a region-specific season."""
        date = self.get_date(absolute_day)
        if date.is_simple_counter or not self.calendar.seasons:
            return self.get_default_solar_times()
        season = None
        if region:
            season = self._find_season(date.month_index, date.day_of_month, region)
        season = season or self._find_season(date.month_index, date.day_of_month, None)
        if season:
            return SolarTimes(season.sunrise, season.sunset)
        return self.get_default_solar_times()

    def get_time_of_day(self) -> int:
        return self._time_of_day

    def set_time_of_day(self, minutes: int) -> None:
        self._time_of_day = max(0, min(MINUTES_PER_DAY - 1, math.floor(minutes)))

    def advance_time(self, minutes: int) -> int:
        """
        Move the time of day forward.

        Returns:
            Number of days rolled over

        Raises:
            ValueError: minutes is negative
        """
        if minutes < 0:
            raise ValueError("Cannot advance time by negative minutes")
        days, self._time_of_day = divmod(self._time_of_day + minutes, MINUTES_PER_DAY)
        return days

    def get_sun_state(
        self,
        absolute_day: int,
        time_of_day: int | None = None,
        region: str | None = None,
    ) -> SunState:
        current = self._time_of_day if time_of_day is None else time_of_day
        sunrise, sunset = self.get_solar_times(absolute_day, region)
        twilight = self.TWILIGHT_DURATION

        if sunrise - twilight <= current < sunrise + twilight:
            return "dawn"
        if sunrise + twilight <= current < sunset - twilight:
            return "day"
        if sunset - twilight <= current < sunset + twilight:
            return "dusk"
        return "night"

    def get_light_level(
        self,
        absolute_day: int,
        time_of_day: int | None = None,
        region: str | None = None,
    ) -> LightLevel:
        """Solar light level: the baseline event effects darken from."""
        state = self.get_sun_state(absolute_day, time_of_day, region)
        if state == "day":
            return "bright"
        if state in ("dawn", "dusk"):
            return "dim"
        return "dark"

    # ─── Formatting ────────────────────────────────────────────

    def format_date(self, absolute_day: int) -> str:
        """Plain one-line rendering, e.g. "Monday, 3 January 1000 TE"."""
        date = self.get_date(absolute_day)
        if date.is_simple_counter:
            return f"Day {absolute_day}"
        year = f"{self.get_era_year(date.year)} {date.year_suffix}".strip()
        if date.is_intercalary:
            if self.months[date.month_index].days == 1:
                return f"{date.month_name}, {year}"
            return f"{date.month_name} {date.day_of_month}, {year}"
        text = f"{date.day_of_month} {date.month_name} {year}"
        if date.day_of_week:
            text = f"{date.day_of_week}, {text}"
        return text


class _FilteredLeapCounter:
    """Counts only leap years matching a predicate, reusing the rule period."""

    def __init__(self, leap: LeapCalculator, predicate):
        self._period = leap.period
        self._predicate = predicate
        prefix = [0]
        for year in range(self._period):
            prefix.append(prefix[-1] + (1 if predicate(year) else 0))
        self._prefix = prefix

    def _before(self, year: int) -> int:
        cycles, rest = divmod(year, self._period)
        return cycles * self._prefix[-1] + self._prefix[rest]

    def leap_days_between(self, base_year: int, year: int) -> int:
        return self._before(year) - self._before(base_year)
