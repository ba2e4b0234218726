"""
Calendar clock: the world's current day and time of day.

The clock owns the persisted ClockState, keeps a CalendarDriver for the
active calendar, and announces every change of day on the bus as
TIME_ADVANCED. WorldEventIntegration hooks the world event service in
so each advance also moves the event simulation and lists what started
along the way.

Flow of one advance:
1. Clock updates day/time
2. Notable-events collector runs (service advances, chains commit)
3. State, including chain checkpoints, is saved
4. TIME_ADVANCED is emitted with the notable events
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from ..errors import CalendarNotFoundError, ServiceNotInitializedError
from ..state.event_bus import EngineEvent, EventBus, EventType
from ..state.schema import SIMPLE_COUNTER_ID, CalendarOrigin, ChainStateVector, ClockState, ComputedDate
from ..state.store import ClockStateStore, MemoryClockStateStore
from .calendar import CalendarDriver
from .calendars import CalendarDefinitionManager
from .events import NotableEvent, WorldEventService

logger = logging.getLogger(__name__)

NotableEventsCollector = Callable[[int, int], list[NotableEvent]]


class CalendarClock:
    """
    Current position in time for one world.

    Args:
        bus: Bus that receives TIME_ADVANCED, CALENDAR_CHANGED, CLOCK_RESET
        manager: Calendar registry
        store: Where ClockState is persisted (in memory if omitted)
    """

    def __init__(
        self,
        bus: EventBus,
        manager: CalendarDefinitionManager,
        store: ClockStateStore | None = None,
    ):
        self.bus = bus
        self.manager = manager
        self.store = store or MemoryClockStateStore()
        self.state = ClockState()
        self.driver: CalendarDriver | None = None
        self._collector: NotableEventsCollector | None = None
        self._initialized = False

    def initialize(self) -> None:
        """Load calendars and saved state, then build the driver."""
        if self._initialized:
            return

        self.manager.load_definitions()
        loaded = self.store.load()
        if loaded:
            self.state = loaded
        else:
            self.store.save(self.state)

        if not self.manager.has_definition(self.state.active_calendar_id):
            logger.warning(
                f"Saved calendar '{self.state.active_calendar_id}' is not available, "
                f"falling back to {SIMPLE_COUNTER_ID}"
            )
            self.state.active_calendar_id = SIMPLE_COUNTER_ID

        self._update_driver()
        self._initialized = True

    def is_initialized(self) -> bool:
        return self._initialized

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise ServiceNotInitializedError("CalendarClock")

    def _update_driver(self) -> None:
        self.driver = self.manager.create_driver(self.state.active_calendar_id, self.state.origin_date)
        self.driver.set_time_of_day(self.state.time_of_day)

    def set_notable_events_collector(self, collector: NotableEventsCollector | None) -> None:
        """Callback run on each advance to list events that began in (from_day, to_day]."""
        self._collector = collector

    # ─── Advancing ─────────────────────────────────────────────

    def advance_time(self, days: int, minutes: int = 0) -> None:
        """
        Move forward by days plus minutes.

        Minutes past midnight roll over into extra days.

        Raises:
            ValueError: If days or minutes is negative
        """
        self._require_initialized()
        if days < 0 or minutes < 0:
            raise ValueError("Cannot advance time by a negative amount. Use set_current_day() to go backwards.")
        if days == 0 and minutes == 0:
            return

        previous_day = self.state.current_day
        total_days = days
        if minutes:
            total_days += self.driver.advance_time(minutes)
            self.state.time_of_day = self.driver.get_time_of_day()

        self._move_to(previous_day, previous_day + total_days)

    def set_current_day(self, day: int, allow_backwards: bool = False) -> None:
        """
        Jump to a day.

        Raises:
            ValueError: If day is negative, or earlier than the current
                day without allow_backwards
        """
        self._require_initialized()
        if day < 0:
            raise ValueError("Day cannot be negative.")
        if day < self.state.current_day and not allow_backwards:
            raise ValueError("Cannot go backwards in time without allow_backwards.")

        previous_day = self.state.current_day
        if day == previous_day:
            return
        self._move_to(previous_day, day)

    def _move_to(self, previous_day: int, new_day: int) -> None:
        self.state.current_day = new_day
        self.state.last_advanced = datetime.now().isoformat()
        self.state.total_advancement_count += 1

        notable: list[NotableEvent] = []
        if self._collector and new_day > previous_day:
            notable = self._collector(previous_day, new_day)

        self.store.save(self.state)

        date = self.get_current_date()
        self.bus.emit(
            EventType.TIME_ADVANCED,
            day=new_day,
            previous_day=previous_day,
            new_day=new_day,
            days_passed=new_day - previous_day,
            date=date,
            formatted=self.driver.format_date(new_day),
            notable_events=notable,
        )
        logger.debug(f"Advanced from day {previous_day} to {new_day} ({len(notable)} notable events)")

    # ─── Queries and settings ──────────────────────────────────

    def get_current_day(self) -> int:
        return self.state.current_day

    def get_current_date(self) -> ComputedDate:
        self._require_initialized()
        return self.driver.get_date(self.state.current_day)

    def get_time_of_day(self) -> int:
        return self.state.time_of_day

    def get_calendar_driver(self) -> CalendarDriver:
        self._require_initialized()
        return self.driver

    def set_active_calendar(self, calendar_id: str) -> None:
        """
        Switch calendars. The day counter is kept; only its reading changes.

        Raises:
            CalendarNotFoundError: If the calendar is not registered
        """
        self._require_initialized()
        if not self.manager.has_definition(calendar_id):
            raise CalendarNotFoundError(calendar_id)

        previous = self.state.active_calendar_id
        self.state.active_calendar_id = calendar_id
        self._update_driver()
        self.store.save(self.state)
        self.bus.emit(EventType.CALENDAR_CHANGED, day=self.state.current_day,
                      previous_calendar_id=previous, calendar_id=calendar_id)

    def set_origin_date(self, origin: CalendarOrigin | None) -> None:
        """Map day 0 to a calendar date, or clear the mapping with None."""
        self._require_initialized()
        self.state.origin_date = origin
        self._update_driver()
        self.store.save(self.state)
        self.bus.emit(EventType.CALENDAR_CHANGED, day=self.state.current_day,
                      previous_calendar_id=self.state.active_calendar_id,
                      calendar_id=self.state.active_calendar_id)

    def record_engine_snapshot(
        self,
        chain_state_vectors: dict[str, ChainStateVector],
        module_toggles: dict[str, bool],
        persist: bool = False,
    ) -> None:
        """Store the world event snapshot alongside the clock position."""
        self.state.chain_state_vectors = dict(chain_state_vectors)
        self.state.module_toggles = dict(module_toggles)
        if persist:
            self.store.save(self.state)

    def get_state(self) -> ClockState:
        """Copy of the current state."""
        return self.state.model_copy(deep=True)

    def reset(self) -> None:
        """Back to day 0 on the simple counter, discarding saved state."""
        self._require_initialized()
        self.store.clear()
        self.state = self.store.load() or ClockState()
        self._update_driver()
        self.store.save(self.state)
        self.bus.emit(EventType.CLOCK_RESET, day=0)


class WorldEventIntegration:
    """
    Keeps a WorldEventService in step with a CalendarClock.

    On initialize() the service adopts the clock's driver, resumes from
    the checkpoints and module toggles saved with the clock, and is
    moved to the clock's day. Each advance then commits the service to
    the new day and reports what started on the way.
    """

    def __init__(self, bus: EventBus, clock: CalendarClock, service: WorldEventService | None):
        self.bus = bus
        self.clock = clock
        self.service = service
        self._unsubscribers: list[Callable[[], None]] = []

    def initialize(self) -> None:
        self.clock.set_notable_events_collector(self._collect_notable_events)
        self._unsubscribers = [
            self.bus.on(EventType.TIME_ADVANCED, self._handle_time_advanced),
            self.bus.on(EventType.CALENDAR_CHANGED, self._handle_calendar_changed),
            self.bus.on(EventType.CLOCK_RESET, self._handle_calendar_changed),
            self.bus.on(EventType.MODULE_TOGGLED, self._handle_module_toggled),
        ]
        if self.service is None or not self.service.is_initialized():
            return

        state = self.clock.get_state()
        self.service.set_calendar_driver(self.clock.get_calendar_driver())
        if state.module_toggles:
            self.service.set_module_toggles(state.module_toggles)
        if state.chain_state_vectors:
            self.service.restore_chain_state_vectors(state.chain_state_vectors)
        self.service.advance_to_day(state.current_day)
        self._record_snapshot(persist=False)

    def dispose(self) -> None:
        self.clock.set_notable_events_collector(None)
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def set_world_event_service(self, service: WorldEventService | None) -> None:
        self.service = service

    def _record_snapshot(self, persist: bool) -> None:
        self.clock.record_engine_snapshot(
            self.service.get_chain_state_vectors(),
            self.service.get_module_toggles(),
            persist=persist,
        )

    def _collect_notable_events(self, from_day: int, to_day: int) -> list[NotableEvent]:
        if self.service is None:
            return []
        try:
            # Advance first so chain states are current before collecting
            self.service.advance_to_day(to_day)
            notable = self.service.get_notable_events(from_day, to_day)
        except Exception:
            logger.exception(f"Error collecting notable events for days {from_day}-{to_day}")
            return []
        self._record_snapshot(persist=False)
        return notable

    def _handle_time_advanced(self, event: EngineEvent) -> None:
        notable = event.data.get("notable_events") or []
        if notable:
            logger.info(
                f"{len(notable)} notable events during advancement: "
                + ", ".join(e.name for e in notable)
            )

    def _handle_calendar_changed(self, event: EngineEvent) -> None:
        if self.service is None:
            return
        self.service.set_calendar_driver(self.clock.get_calendar_driver())
        self.service.advance_to_day(self.clock.get_current_day())
        self._record_snapshot(persist=True)

    def _handle_module_toggled(self, event: EngineEvent) -> None:
        if self.service is None:
            return
        self._record_snapshot(persist=True)
