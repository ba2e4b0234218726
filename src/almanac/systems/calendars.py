"""
Calendar definition registry.

Loads calendars from a CalendarSource, keeps the valid ones, and always
provides the built-in simple counter so a world can run with no
calendar files at all.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..errors import CalendarNotFoundError, DefinitionLoadError
from ..state.schema import (
    SIMPLE_COUNTER_ID,
    CalendarDefinition,
    CalendarOrigin,
    simple_counter_calendar,
)
from .calendar import CalendarDriver
from .validation import CalendarValidator

if TYPE_CHECKING:
    from ..state.definitions import CalendarSource

logger = logging.getLogger(__name__)


class CalendarDefinitionManager:
    """
    Registry of calendar definitions by id.

    Args:
        source: Where calendars come from. None means only the simple
            counter is available.
    """

    def __init__(self, source: "CalendarSource | None" = None):
        self.source = source
        self._definitions: dict[str, CalendarDefinition] = {}
        self._loaded = False

    def load_definitions(self) -> None:
        """
        Read calendars from the source once.

        A source failure is logged and leaves only the simple counter.
        """
        if self._loaded:
            return

        calendars: list[CalendarDefinition] = []
        if self.source is not None:
            try:
                calendars = self.source.load_calendar_definitions()
            except DefinitionLoadError as e:
                logger.error(f"Failed to load calendar definitions, using simple counter: {e}")

        for calendar in calendars:
            result = CalendarValidator.validate(calendar.model_dump(by_alias=True))
            if not result.is_valid:
                logger.warning(f"Invalid calendar definition '{calendar.id}': {result.errors[0]}")
                continue
            self._definitions[calendar.id] = calendar

        # Always include fallback
        self._definitions.setdefault(SIMPLE_COUNTER_ID, simple_counter_calendar())
        self._loaded = True
        logger.info(f"Calendars available: {', '.join(sorted(self._definitions))}")

    def is_loaded(self) -> bool:
        return self._loaded

    def get_definition(self, calendar_id: str) -> CalendarDefinition | None:
        if not self._loaded:
            logger.warning("Calendar definitions not loaded. Call load_definitions() first.")
            return None
        return self._definitions.get(calendar_id)

    def has_definition(self, calendar_id: str) -> bool:
        return calendar_id in self._definitions

    def list_definitions(self) -> list[CalendarDefinition]:
        return list(self._definitions.values())

    def get_default_definition(self) -> CalendarDefinition:
        return self._definitions.get(SIMPLE_COUNTER_ID) or simple_counter_calendar()

    def register_definition(self, calendar: CalendarDefinition) -> None:
        """Add a calendar at runtime. Raises CalendarValidationError if invalid."""
        CalendarValidator.validate_or_throw(calendar.model_dump(by_alias=True))
        self._definitions[calendar.id] = calendar

    def create_driver(
        self,
        calendar_id: str | None = None,
        origin: CalendarOrigin | None = None,
    ) -> CalendarDriver:
        """
        Driver for a registered calendar (default: simple counter).

        Raises:
            CalendarNotFoundError: If calendar_id is not registered
        """
        if calendar_id is None:
            return CalendarDriver(self.get_default_definition(), origin)
        calendar = self._definitions.get(calendar_id)
        if calendar is None:
            raise CalendarNotFoundError(calendar_id)
        return CalendarDriver(calendar, origin)
