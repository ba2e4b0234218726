"""Tests for the engine event bus."""

from almanac.state.event_bus import EngineEvent, EventBus, EventType


class TestEventBus:
    """Test subscribe, emit and history."""

    def test_emit_reaches_subscribers_in_order(self, bus):
        """Handlers run in subscription order with the payload."""
        seen = []
        bus.on(EventType.TIME_ADVANCED, lambda e: seen.append(("first", e.data["new_day"])))
        bus.on(EventType.TIME_ADVANCED, lambda e: seen.append(("second", e.day)))
        bus.emit(EventType.TIME_ADVANCED, day=12, new_day=12)
        assert seen == [("first", 12), ("second", 12)]

    def test_other_types_not_delivered(self, bus):
        """Handlers only see their own type."""
        seen = []
        bus.on(EventType.CLOCK_RESET, seen.append)
        bus.emit(EventType.TIME_ADVANCED, day=1)
        assert seen == []

    def test_unsubscribe(self, bus):
        """The returned callable removes the handler."""
        seen = []
        unsubscribe = bus.on(EventType.CLOCK_RESET, seen.append)
        unsubscribe()
        bus.emit(EventType.CLOCK_RESET)
        assert seen == []
        assert bus.listener_count(EventType.CLOCK_RESET) == 0

    def test_duplicate_subscription_ignored(self, bus):
        """The same handler is only registered once."""
        seen = []
        bus.on(EventType.CLOCK_RESET, seen.append)
        bus.on(EventType.CLOCK_RESET, seen.append)
        bus.emit(EventType.CLOCK_RESET)
        assert len(seen) == 1

    def test_failing_handler_does_not_stop_others(self, bus, caplog):
        """A raising handler is logged and skipped."""
        seen = []

        def broken(event):
            raise RuntimeError("boom")

        bus.on(EventType.MODULE_TOGGLED, broken)
        bus.on(EventType.MODULE_TOGGLED, seen.append)
        bus.emit(EventType.MODULE_TOGGLED, module_id="weather", enabled=False)
        assert len(seen) == 1
        assert "Error in handler for module.toggled" in caplog.text

    def test_handler_may_unsubscribe_itself(self, bus):
        """Unsubscribing during emit is safe."""
        seen = []
        unsubscribe = None

        def once(event):
            seen.append(event)
            unsubscribe()

        unsubscribe = bus.on(EventType.CLOCK_RESET, once)
        bus.emit(EventType.CLOCK_RESET)
        bus.emit(EventType.CLOCK_RESET)
        assert len(seen) == 1

    def test_history(self):
        """History is capped and filterable."""
        bus = EventBus(history_limit=3)
        for day in range(5):
            bus.emit(EventType.TIME_ADVANCED, day=day)
        bus.emit(EventType.CLOCK_RESET, day=0)
        history = bus.get_history()
        assert [e.type for e in history] == [EventType.TIME_ADVANCED, EventType.TIME_ADVANCED, EventType.CLOCK_RESET]
        assert [e.day for e in bus.get_history(EventType.TIME_ADVANCED)] == [3, 4]

    def test_clear(self, bus):
        """clear() drops every listener."""
        bus.on(EventType.CLOCK_RESET, lambda e: None)
        bus.clear()
        assert bus.listener_count(EventType.CLOCK_RESET) == 0

    def test_event_str(self):
        """Events render their type and data."""
        event = EngineEvent(type=EventType.CLOCK_RESET, data={"day": 0})
        assert str(event) == "[clock.reset] {'day': 0}"
