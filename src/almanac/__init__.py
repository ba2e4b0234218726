"""Almanac: deterministic fantasy calendar and world-event simulation."""

__version__ = "0.4.0"
