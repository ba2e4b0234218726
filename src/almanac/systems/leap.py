"""
Leap year arithmetic for rule-based calendars.

Rules are periodic in the year number, so one precomputed period
(the lcm of every interval in the rule tree) answers "how many leap
years before year N" in constant time for any N, negative included.
Rule sets whose period exceeds MAX_LEAP_PERIOD are rejected.
"""

from __future__ import annotations

import math
from functools import reduce

from ..errors import LeapRuleError
from ..state.schema import LeapRule

# Longest supported rule period, in years
MAX_LEAP_PERIOD = 100_000


def matches_leap_rule(year: int, rule: LeapRule) -> bool:
    if (year - rule.offset) % rule.interval != 0:
        return False
    return not any(matches_leap_rule(year, sub) for sub in rule.exclude)


def _intervals(rules: list[LeapRule]):
    for rule in rules:
        yield rule.interval
        yield from _intervals(rule.exclude)


def leap_period(intervals) -> int:
    """Least common multiple of the given intervals (1 for none)."""
    return reduce(math.lcm, intervals, 1)


def create_gregorian_leap_rules(target_month_index: int = 1) -> list[LeapRule]:
    """Every 4 years, except every 100, except every 400."""
    return [
        LeapRule(
            interval=4,
            target_month_index=target_month_index,
            exclude=[LeapRule(interval=100, exclude=[LeapRule(interval=400)])],
        )
    ]


class LeapCalculator:
    """Answers leap questions for one rule set."""

    def __init__(self, rules: list[LeapRule] | None):
        self.rules = list(rules or [])
        self.period = leap_period(_intervals(self.rules))
        if self.period > MAX_LEAP_PERIOD:
            raise LeapRuleError(self.period, MAX_LEAP_PERIOD)
        prefix = [0]
        if self.rules:
            for year in range(self.period):
                prefix.append(prefix[-1] + (1 if self.is_leap_year(year) else 0))
        self._prefix = prefix

    @property
    def leaps_per_period(self) -> int:
        return self._prefix[-1]

    def is_leap_year(self, year: int) -> bool:
        return any(matches_leap_rule(year, rule) for rule in self.rules)

    def target_month(self, year: int) -> int | None:
        """Target month of the first matching rule, or None if not a leap year."""
        for rule in self.rules:
            if matches_leap_rule(year, rule):
                return rule.target_month_index
        return None

    def leap_years_before(self, year: int) -> int:
        """
        Signed count of leap years between year 0 and `year`.

        Leap years in [0, year) for year >= 0, negated count of [year, 0)
        otherwise, so count(a, b) == leap_years_before(b) - leap_years_before(a).
        """
        if not self.rules:
            return 0
        cycles, rest = divmod(year, self.period)
        return cycles * self._prefix[-1] + self._prefix[rest]

    def count_leap_years(self, start_year: int, end_year: int) -> int:
        """Leap years in [start_year, end_year)."""
        if not self.rules or end_year <= start_year:
            return 0
        return self.leap_years_before(end_year) - self.leap_years_before(start_year)

    def leap_days_between(self, base_year: int, year: int) -> int:
        """Signed leap days from the start of base_year to the start of year."""
        if year >= base_year:
            return self.count_leap_years(base_year, year)
        return -self.count_leap_years(year, base_year)
