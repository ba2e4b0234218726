"""
Event bus for engine notifications.

Decouples the clock and world-event service from whatever reacts to
them (UI, notifiers, persistence). Each simulation owns its own bus;
there is no process-wide instance.

Usage:
    bus = EventBus()
    unsubscribe = bus.on(EventType.TIME_ADVANCED, my_handler)

    bus.emit(EventType.TIME_ADVANCED, previous_day=10, new_day=12)

    def my_handler(event: EngineEvent):
        print(f"Now on day {event.data['new_day']}")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Engine events that can be published."""

    # Clock events
    TIME_ADVANCED = "time.advanced"
    CALENDAR_CHANGED = "calendar.changed"
    CLOCK_RESET = "clock.reset"

    # World event service
    DEFINITIONS_LOADED = "definitions.loaded"
    MODULE_TOGGLED = "module.toggled"
    CHAIN_STATE_RESTORED = "chain.restored"


@dataclass
class EngineEvent:
    """
    Event payload for the event bus.

    Attributes:
        type: The event type (from EventType enum)
        data: Event-specific payload as dict
        day: Absolute day the event refers to, if any
        timestamp: When the event was emitted
    """

    type: EventType
    data: dict = field(default_factory=dict)
    day: int | None = None
    timestamp: datetime = field(default_factory=datetime.now)

    def __str__(self) -> str:
        return f"[{self.type.value}] {self.data}"


EventHandler = Callable[[EngineEvent], None]


class EventBus:
    """
    Synchronous publish/subscribe registry.

    Listeners run in subscription order during emit(). A listener that
    raises is logged and skipped; the remaining listeners still run.
    """

    def __init__(self, history_limit: int = 100):
        self._listeners: dict[EventType, list[EventHandler]] = {}
        self._history: list[EngineEvent] = []
        self._history_limit = history_limit

    def on(self, event_type: EventType, handler: EventHandler) -> Callable[[], None]:
        """
        Subscribe to an event type.

        Args:
            event_type: The type of event to listen for
            handler: Callback function that receives EngineEvent

        Returns:
            Function that removes this subscription
        """
        handlers = self._listeners.setdefault(event_type, [])
        if handler not in handlers:
            handlers.append(handler)
        return lambda: self.off(event_type, handler)

    def off(self, event_type: EventType, handler: EventHandler) -> None:
        """Unsubscribe a handler. Unknown handlers are ignored."""
        handlers = self._listeners.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, event_type: EventType, day: int | None = None, **data) -> EngineEvent:
        """
        Emit an event to all subscribers.

        Args:
            event_type: The type of event
            day: Absolute day the event refers to (optional)
            **data: Event-specific data

        Returns:
            The emitted EngineEvent
        """
        event = EngineEvent(type=event_type, data=data, day=day)

        self._history.append(event)
        if len(self._history) > self._history_limit:
            self._history = self._history[-self._history_limit:]

        # Copy so handlers may unsubscribe themselves mid-emit
        for handler in list(self._listeners.get(event_type, [])):
            try:
                handler(event)
            except Exception:
                logger.exception(f"Error in handler for {event_type.value}")

        return event

    def clear(self) -> None:
        """Remove all listeners."""
        self._listeners.clear()

    def get_history(self, event_type: EventType | None = None) -> list[EngineEvent]:
        """Recent events, optionally filtered by type."""
        if event_type is None:
            return list(self._history)
        return [e for e in self._history if e.type == event_type]

    def listener_count(self, event_type: EventType) -> int:
        return len(self._listeners.get(event_type, []))
