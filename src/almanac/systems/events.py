"""
World event service: which events are active on a given day.

Four trigger kinds, resolved in phase order:

1. Fixed-date and interval events (depend only on the calendar)
2. Chain events (seeded weighted random walks)
3. Tier-1 conditional events (see phases 1-2)
4. Tier-2 conditional events (see phases 1-3)

Chain state is a pure function of (definition, day). It is derived by
replaying transitions from the nearest checkpoint at or before the day,
so asking about day 40 then day 10 gives the same answers as asking in
order. advance_to_day() commits the "current" checkpoint that
get_chain_state_vectors() hands out for saving.
Only days within buffer_size of the current day are cached.

Not thread-safe: one writer per instance.
"""

from __future__ import annotations

import copy
import logging
import math
from bisect import bisect_left, bisect_right
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from ..errors import ServiceNotInitializedError
from ..interface.config import DEFAULT_CONFIG, EngineConfig
from ..state.event_bus import EventBus, EventType
from ..state.schema import (
    ActiveEvent,
    ChainEvent,
    ChainState,
    ChainStateVector,
    ConditionalEvent,
    EventContext,
    EventDefinition,
    FixedDateEvent,
    IntervalEvent,
    LightLevel,
)
from ..tools.durations import resolve_day_duration
from ..tools.rng import RngFactory, SeededRandomizer
from .calendar import MINUTES_PER_DAY, CalendarDriver
from .conditions import ASTNode, EventStateInfo, evaluate_ast, parse_condition
from .effects import EffectRegistry, ResolvedEffects, filter_by_context
from .validation import EventValidator

if TYPE_CHECKING:
    from ..state.definitions import EventDefinitionSource

logger = logging.getLogger(__name__)


@dataclass
class NotableEvent:
    """An event (or chain state) that began during a span of days."""
    event_id: str
    name: str
    type: str
    state: str
    start_day: int
    end_day: int
    priority: int | float


@dataclass
class _ChainRuntime:
    """Checkpoints for one chain, sorted by state_entered_day."""
    definition: ChainEvent
    checkpoints: list[ChainStateVector] = field(default_factory=list)
    entered_days: list[int] = field(default_factory=list)  # parallel to checkpoints
    committed: ChainStateVector | None = None

    def nearest(self, day: int) -> ChainStateVector:
        """Latest checkpoint entered at or before day (the first one if none)."""
        index = max(0, bisect_right(self.entered_days, day) - 1)
        return self.checkpoints[index]

    def add(self, vector: ChainStateVector) -> None:
        position = bisect_right(self.entered_days, vector.state_entered_day)
        if position and self.entered_days[position - 1] == vector.state_entered_day:
            return
        self.entered_days.insert(position, vector.state_entered_day)
        self.checkpoints.insert(position, vector)

    def restore(self, vector: ChainStateVector) -> None:
        """Drop checkpoints entered at or after vector, then append it."""
        position = bisect_left(self.entered_days, vector.state_entered_day)
        del self.entered_days[position:]
        del self.checkpoints[position:]
        self.entered_days.append(vector.state_entered_day)
        self.checkpoints.append(vector)


class WorldEventService:
    """
    Resolves active events per day for one world.

    Args:
        driver: Calendar used for dates, year lengths and time of day
        rng_factory: Source of per-chain seeded generators
        config: Engine config (buffer_size, max_simulation_days,
            checkpoint_interval)
        bus: Optional bus for load/toggle/restore notifications
    """

    def __init__(
        self,
        driver: CalendarDriver,
        rng_factory: RngFactory | None = None,
        config: EngineConfig | None = None,
        bus: EventBus | None = None,
    ):
        self.driver = driver
        self.rng_factory = rng_factory or RngFactory()
        self.config: EngineConfig = {**DEFAULT_CONFIG, **(config or {})}
        self.bus = bus
        self.effect_registry = EffectRegistry()

        self._source: EventDefinitionSource | None = None
        self._registry: dict[str, EventDefinition] = {}
        self._fixed: list[FixedDateEvent] = []
        self._interval: list[IntervalEvent] = []
        self._conditional: list[tuple[ConditionalEvent, ASTNode]] = []
        self._chains: dict[str, _ChainRuntime] = {}
        self._day_cache: dict[tuple[int, int | None], list[ActiveEvent]] = {}
        self._module_toggles: dict[str, bool] = {}
        self._current_day = 0
        self._initialized = False

    # ─── Lifecycle ─────────────────────────────────────────────

    def initialize(self, source: "EventDefinitionSource", start_day: int = 0) -> None:
        """
        Load definitions from the source and prime state at start_day.

        This is the only loading step; every query after it is pure
        computation over the loaded definitions.
        """
        self._source = source
        self._current_day = start_day
        self._load_definitions()
        for runtime in self._chains.values():
            runtime.committed = self._chain_vector_at(runtime, start_day)
        self._initialized = True
        self._precompute_buffer(start_day)

    def is_initialized(self) -> bool:
        return self._initialized

    def reload_event_definitions(self) -> None:
        """Re-read definitions. Chains whose definition is unchanged keep their checkpoints."""
        if self._source is None:
            raise ServiceNotInitializedError("WorldEventService")
        if hasattr(self._source, "reload"):
            self._source.reload()
        previous = self._chains
        self._load_definitions()
        for event_id, runtime in self._chains.items():
            old = previous.get(event_id)
            if old is not None and old.definition == runtime.definition:
                self._chains[event_id] = old
            else:
                runtime.committed = self._chain_vector_at(runtime, self._current_day)

    def _load_definitions(self) -> None:
        definitions = self._source.load_event_definitions()
        accepted: dict[str, EventDefinition] = {}
        known_ids = {d.id for d in definitions}
        for definition in definitions:
            if definition.id in accepted:
                logger.warning(f"Duplicate event id '{definition.id}', keeping the first definition")
                continue
            result = EventValidator.validate(definition.model_dump(by_alias=True), known_ids)
            if not result.is_valid:
                logger.warning(
                    f"Rejected event '{definition.id}': "
                    + "; ".join(issue.message for issue in result.errors)
                )
                continue
            for warning in result.warnings:
                logger.info(f"Event '{definition.id}': {warning.field}: {warning.message}")
            accepted[definition.id] = definition

        self._registry = accepted
        self._build_indexes()
        self._day_cache.clear()
        logger.info(f"Loaded {len(accepted)} event definitions ({len(definitions) - len(accepted)} rejected)")
        if self.bus:
            self.bus.emit(EventType.DEFINITIONS_LOADED, day=self._current_day, count=len(accepted))

    def _build_indexes(self) -> None:
        self._fixed, self._interval, self._conditional = [], [], []
        self._chains = {}
        for definition in self._registry.values():
            match definition:
                case FixedDateEvent():
                    self._fixed.append(definition)
                case IntervalEvent():
                    self._interval.append(definition)
                case ChainEvent():
                    runtime = _ChainRuntime(definition=definition)
                    runtime.add(self._initial_chain_vector(definition))
                    self._chains[definition.id] = runtime
                case ConditionalEvent():
                    # Validation guarantees the condition parses
                    self._conditional.append((definition, parse_condition(definition.condition).ast))
                case _:
                    raise TypeError(f"Unhandled event definition: {definition!r}")

    # ─── Queries ───────────────────────────────────────────────

    def get_active_events(self, day: int, context: EventContext | None = None) -> list[ActiveEvent]:
        """
        Events active on a day, in phase order.

        Days within buffer_size of the current day are cached unfiltered;
        context filtering is applied on the way out. Callers get copies,
        so calling twice for the same day returns the same events even if
        the first result was modified.
        """
        key = self._cache_key(day)
        events = self._day_cache.get(key)
        if events is None:
            events = self._compute_day(day)
            if self._in_cache_window(day):
                self._day_cache[key] = events
        return [
            replace(event, effects=copy.deepcopy(event.effects))
            for event in filter_by_context(events, context)
        ]

    def get_effect_registry(
        self,
        day: int,
        context: EventContext | None = None,
        solar_baseline: LightLevel | None = None,
    ) -> ResolvedEffects:
        """Resolved effects of the day's (context-filtered) active events."""
        return self.effect_registry.get_resolved_effects(
            day,
            self.get_active_events(day, context),
            context=context,
            time_of_day=self.driver.get_time_of_day(),
            solar_baseline=solar_baseline,
        )

    def get_notable_events(self, from_day: int, to_day: int) -> list[NotableEvent]:
        """
        Events or chain states that began in (from_day, to_day].

        Long jumps only scan the last max_simulation_days days.
        """
        start = from_day + 1
        limit = self.config["max_simulation_days"]
        if to_day - start + 1 > limit:
            logger.info(f"Notable events scan limited to the last {limit} of {to_day - from_day} days")
            start = to_day - limit + 1

        notable: list[NotableEvent] = []
        seen: set[tuple[str, int]] = set()
        for day in range(start, to_day + 1):
            for event in self.get_active_events(day):
                if event.start_day != day or (event.event_id, day) in seen:
                    continue
                seen.add((event.event_id, day))
                notable.append(NotableEvent(
                    event_id=event.event_id,
                    name=event.name,
                    type=event.type,
                    state=event.state,
                    start_day=event.start_day,
                    end_day=event.end_day,
                    priority=event.priority,
                ))
        return notable

    def _cache_key(self, day: int) -> tuple[int, int | None]:
        # Minute-based intervals depend on the time of day as well
        if any(e.use_minutes for e in self._interval):
            return day, self.driver.get_time_of_day()
        return day, None

    def _compute_day(self, day: int) -> list[ActiveEvent]:
        phase1 = self._evaluate_fixed(day) + self._evaluate_intervals(day)
        phase2 = self._evaluate_chains(day)
        phase3 = self._evaluate_conditionals(day, phase1 + phase2, tier=1)
        phase4 = self._evaluate_conditionals(day, phase1 + phase2 + phase3, tier=2)
        return phase1 + phase2 + phase3 + phase4

    # ─── Phase 1: fixed and interval ───────────────────────────

    def _evaluate_fixed(self, day: int) -> list[ActiveEvent]:
        if not self.driver.has_months():
            return []
        active = []
        year = self.driver.get_date(day).year
        for event in self._fixed:
            if not self._is_event_enabled(event):
                continue
            occurrence = self._fixed_occurrence(event, day, year)
            if occurrence is not None:
                start, end = occurrence
                active.append(self._create_active_event(event, day, start, end))
        return active

    def _fixed_occurrence(self, event: FixedDateEvent, day: int, year: int) -> tuple[int, int] | None:
        """(start, end) of the nearest occurrence on/before day, if it covers day."""
        pinned = event.pinned_year
        if pinned is not None:
            years = [pinned]
        else:
            shortest_year = max(1, self.driver.get_total_days_in_year())
            lookback = math.ceil(event.duration / shortest_year) + 1
            years = [year - back for back in range(lookback + 1)]

        for candidate in years:
            span = self._fixed_span(event, candidate)
            if span is None:
                continue
            start, length = span
            if start <= day:
                end = start + length - 1
                return (start, end) if day <= end else None
        return None

    def _fixed_span(self, event: FixedDateEvent, year: int) -> tuple[int, int] | None:
        """Start day and length of the event's occurrence in a year, if the date exists."""
        months = self.driver.months
        if event.date.intercalary_name:
            for index, month in enumerate(months):
                if month.name == event.date.intercalary_name:
                    start = self.driver.get_absolute_day(year, index, 1)
                    if "duration" in event.model_fields_set:
                        return start, event.duration
                    length = month.days + (1 if self.driver.get_leap_day_target_month(year) == index else 0)
                    return start, max(1, length)
            return None

        month_index, day_of_month = event.date.month, event.date.day
        if month_index is None or day_of_month is None or not 0 <= month_index < len(months):
            return None
        month_length = months[month_index].days
        if self.driver.get_leap_day_target_month(year) == month_index:
            month_length += 1
        if not 1 <= day_of_month <= month_length:
            return None
        return self.driver.get_absolute_day(year, month_index, day_of_month), event.duration

    def _evaluate_intervals(self, day: int) -> list[ActiveEvent]:
        active = []
        for event in self._interval:
            if not self._is_event_enabled(event):
                continue
            if event.use_minutes:
                total = day * MINUTES_PER_DAY + self.driver.get_time_of_day()
                phase = (total - event.offset) % event.interval
                if phase >= event.duration:
                    continue
                first_minute = total - phase
                start = first_minute // MINUTES_PER_DAY
                end = (first_minute + event.duration - 1) // MINUTES_PER_DAY
            else:
                phase = (day - event.offset) % event.interval
                if phase >= event.duration:
                    continue
                start = day - phase
                end = start + event.duration - 1
            active.append(self._create_active_event(event, day, start, end))
        return active

    # ─── Phase 2: chains ───────────────────────────────────────

    def _evaluate_chains(self, day: int) -> list[ActiveEvent]:
        active = []
        for runtime in self._chains.values():
            definition = runtime.definition
            if not self._is_event_enabled(definition):
                continue
            vector = self._chain_vector_at(runtime, day)
            state = definition.get_state(vector.current_state_name)
            if state is None:
                continue
            active.append(ActiveEvent(
                event_id=definition.id,
                name=definition.name,
                type=definition.type,
                state=state.name,
                priority=definition.priority,
                effects={**definition.effects, **state.effects},
                start_day=vector.state_entered_day,
                end_day=vector.state_end_day,
                remaining_days=max(0, vector.state_end_day - day),
                definition=definition,
            ))
        return active

    def _select_weighted_state(self, states: list[ChainState], rng: SeededRandomizer) -> ChainState:
        """
        One draw: roll = float * total weight, first state whose
        cumulative weight exceeds the roll.
        """
        total = sum(s.weight for s in states)
        if total == 0:
            return states[0]
        roll = rng.random_float() * total
        cumulative = 0.0
        for state in states:
            cumulative += state.weight
            if roll < cumulative:
                return state
        return states[-1]

    def _state_duration(self, state: ChainState, rng: SeededRandomizer) -> int:
        days = resolve_day_duration(state.duration, rng, self.driver.get_total_days_in_year())
        return max(1, days)

    def _initial_chain_vector(self, definition: ChainEvent) -> ChainStateVector:
        rng = self.rng_factory.create(definition.seed)
        state = None
        if definition.initial_state:
            state = definition.get_state(definition.initial_state)
        if state is None:
            state = self._select_weighted_state(definition.states, rng)
        duration = self._state_duration(state, rng)
        return ChainStateVector(
            current_state_name=state.name,
            state_entered_day=0,
            state_duration_days=duration,
            rng_state=rng.get_state(),
            state_end_day=duration - 1,
        )

    def _next_chain_vector(self, definition: ChainEvent, vector: ChainStateVector) -> ChainStateVector:
        rng = self.rng_factory.create(definition.seed)
        rng.reseed(vector.rng_state)
        state = self._select_weighted_state(definition.states, rng)
        duration = self._state_duration(state, rng)
        entered = vector.state_end_day + 1
        return ChainStateVector(
            current_state_name=state.name,
            state_entered_day=entered,
            state_duration_days=duration,
            rng_state=rng.get_state(),
            state_end_day=entered + duration - 1,
        )

    def _chain_vector_at(self, runtime: _ChainRuntime, day: int) -> ChainStateVector:
        """State covering day, replayed from the nearest checkpoint at or before it."""
        vector = runtime.nearest(day)
        last_saved = vector.state_entered_day
        interval = self.config["checkpoint_interval"]

        while vector.state_end_day < day:
            vector = self._next_chain_vector(runtime.definition, vector)
            if vector.state_entered_day - last_saved >= interval:
                runtime.add(vector)
                last_saved = vector.state_entered_day
        return vector

    # ─── Phases 3-4: conditionals ──────────────────────────────

    def _evaluate_conditionals(self, day: int, visible: list[ActiveEvent], tier: int) -> list[ActiveEvent]:
        snapshot = {event_id: EventStateInfo(active=False) for event_id in self._registry}
        for event in visible:
            snapshot[event.event_id] = EventStateInfo(active=True, state=event.state, effects=event.effects)

        active = []
        for event, ast in self._conditional:
            if event.tier != tier or not self._is_event_enabled(event):
                continue
            result = evaluate_ast(ast, snapshot)
            if not result.success:
                logger.debug(f"Condition for '{event.id}' failed on day {day}: {result.error}")
                continue
            if result.value:
                active.append(self._create_active_event(event, day, day, day + event.duration - 1))
        return active

    # ─── Chain state vectors ───────────────────────────────────

    def advance_to_day(self, day: int) -> None:
        """Commit every chain to day, then roll the cache window forward."""
        self._current_day = day
        for runtime in self._chains.values():
            runtime.committed = self._chain_vector_at(runtime, day)
        self._trim_cache()
        self._precompute_buffer(day)

    def get_current_day(self) -> int:
        return self._current_day

    def get_chain_state_vectors(self) -> dict[str, ChainStateVector]:
        """Committed chain checkpoints keyed by event id, for saving."""
        return {
            event_id: runtime.committed.model_copy()
            for event_id, runtime in self._chains.items()
            if runtime.committed is not None
        }

    def restore_chain_state_vectors(self, vectors: dict[str, ChainStateVector | dict]) -> None:
        """
        Resume chains from saved checkpoints.

        Checkpoints after a restored vector are discarded; days before it
        still replay from day 0. Unknown event ids are ignored.
        """
        for event_id, raw in vectors.items():
            runtime = self._chains.get(event_id)
            if runtime is None:
                logger.debug(f"Ignoring chain state for unknown event '{event_id}'")
                continue
            vector = raw if isinstance(raw, ChainStateVector) else ChainStateVector.model_validate(raw)
            if runtime.definition.get_state(vector.current_state_name) is None:
                logger.warning(
                    f"Chain state '{vector.current_state_name}' not defined for '{event_id}', skipping restore"
                )
                continue
            runtime.restore(vector)
            runtime.committed = vector
        self._day_cache.clear()
        if self.bus:
            self.bus.emit(EventType.CHAIN_STATE_RESTORED, day=self._current_day, event_ids=list(vectors))

    # ─── Module toggles ────────────────────────────────────────

    def toggle_module(self, module_id: str, enabled: bool) -> None:
        """Enable or disable every event tagged with module_id."""
        self._module_toggles[module_id] = enabled
        self._day_cache.clear()
        if self.bus:
            self.bus.emit(EventType.MODULE_TOGGLED, day=self._current_day, module_id=module_id, enabled=enabled)

    def is_module_enabled(self, module_id: str) -> bool:
        return self._module_toggles.get(module_id, True)

    def get_module_toggles(self) -> dict[str, bool]:
        return dict(self._module_toggles)

    def set_module_toggles(self, toggles: dict[str, bool]) -> None:
        self._module_toggles = dict(toggles)
        self._day_cache.clear()

    def _is_event_enabled(self, event: EventDefinition) -> bool:
        return all(self._module_toggles.get(tag, True) for tag in event.tags)

    # ─── Definitions and cache ─────────────────────────────────

    def get_event_definitions(self) -> dict[str, EventDefinition]:
        return dict(self._registry)

    def get_event_definition(self, event_id: str) -> EventDefinition | None:
        return self._registry.get(event_id)

    def get_calendar_driver(self) -> CalendarDriver:
        return self.driver

    def set_calendar_driver(self, driver: CalendarDriver) -> None:
        """
        Swap the calendar. Chains are rebuilt because month-based state
        durations depend on the year length.
        """
        self.driver = driver
        if self._initialized:
            self._build_indexes()
            for runtime in self._chains.values():
                runtime.committed = self._chain_vector_at(runtime, self._current_day)
        self._day_cache.clear()

    def get_buffer_size(self) -> int:
        return self.config["buffer_size"]

    def invalidate_cache(self) -> None:
        self._day_cache.clear()

    def _in_cache_window(self, day: int) -> bool:
        return abs(day - self._current_day) <= self.config["buffer_size"]

    def _trim_cache(self) -> None:
        for key in [k for k in self._day_cache if not self._in_cache_window(k[0])]:
            del self._day_cache[key]

    def _precompute_buffer(self, day: int) -> None:
        for offset in range(self.config["buffer_size"] + 1):
            self.get_active_events(day + offset)

    def _create_active_event(self, event: EventDefinition, day: int, start: int, end: int) -> ActiveEvent:
        return ActiveEvent(
            event_id=event.id,
            name=event.name,
            type=event.type,
            state=event.name,
            priority=event.priority,
            effects=dict(event.effects),
            start_day=start,
            end_day=end,
            remaining_days=max(0, end - day),
            definition=event,
        )
