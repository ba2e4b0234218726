"""Deterministic randomness and notation helpers."""

from .rng import Mulberry32, RngFactory, RollResult, SeededRandomizer
from .durations import (
    DEFAULT_DURATION_UNITS,
    DurationUnits,
    is_valid_duration,
    parse_duration,
    resolve_day_duration,
)

__all__ = [
    "Mulberry32",
    "RngFactory",
    "RollResult",
    "SeededRandomizer",
    "DEFAULT_DURATION_UNITS",
    "DurationUnits",
    "is_valid_duration",
    "parse_duration",
    "resolve_day_duration",
]
