"""
Effect aggregation and conflict resolution.

Active events each carry an effects map. The registry merges them into
one record, resolving every key with a fixed strategy:

- multiply: price_mult_global, price_mult_tag (per tag)
- any_true: shop_closed, restock_block
- ordinal_min: light_level, darkest wins; the solar baseline is layer 0
- last_wins: ui_banner, ui_theme, season_set and any unknown key;
  highest priority wins, ties go to the lexically smallest event id

Every contributor is recorded with an applied flag so a UI can explain
why a shop is closed or which banner lost.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Iterable

from ..state.schema import ActiveEvent, EventContext, LightLevel


EFFECT_KEY_REGISTRY: dict[str, dict[str, str]] = {
    "economic": {
        "price_mult_global": "number",
        "price_mult_tag": "dict[str, number]",
        "shop_closed": "boolean",
        "restock_block": "boolean",
    },
    "environmental": {
        "light_level": "bright | dim | dark",
        "season_set": "string",
    },
    "ui": {
        "ui_banner": "string",
        "ui_theme": "string",
    },
}

MULTIPLY = "multiply"
ANY_TRUE = "any_true"
ORDINAL_MIN = "ordinal_min"
LAST_WINS = "last_wins"

EFFECT_STRATEGIES = {
    "price_mult_global": MULTIPLY,
    "price_mult_tag": MULTIPLY,
    "shop_closed": ANY_TRUE,
    "restock_block": ANY_TRUE,
    "light_level": ORDINAL_MIN,
    "ui_banner": LAST_WINS,
    "ui_theme": LAST_WINS,
    "season_set": LAST_WINS,
}

LIGHT_RANK: dict[str, int] = {"bright": 3, "dim": 2, "dark": 1}

# Marks a key whose contributors were all of the wrong type
_UNSET = object()


def get_all_effect_keys() -> list[str]:
    return [key for keys in EFFECT_KEY_REGISTRY.values() for key in keys]


def is_valid_effect_key(key: str) -> bool:
    return any(key in keys for keys in EFFECT_KEY_REGISTRY.values())


def get_effect_category(key: str) -> str | None:
    for category, keys in EFFECT_KEY_REGISTRY.items():
        if key in keys:
            return category
    return None


def get_strategy(key: str) -> str:
    return EFFECT_STRATEGIES.get(key, LAST_WINS)


# ─── Context filtering ─────────────────────────────────────────


def matches_context(definition: Any, context: EventContext | None) -> bool:
    """
    True if an event definition applies in the context.

    Each non-empty filter list on the definition must contain the
    context's value; tags match on any overlap. Empty lists apply
    everywhere, and so do context fields that are unset.
    """
    if context is None or definition is None:
        return True
    for attr, value in (
        ("locations", context.location),
        ("factions", context.faction),
        ("seasons", context.season),
        ("regions", context.region),
    ):
        allowed = getattr(definition, attr, None) or []
        if value and allowed and value not in allowed:
            return False
    tags = getattr(definition, "tags", None) or []
    if context.tags and tags and not set(context.tags) & set(tags):
        return False
    return True


def filter_by_context(events: Iterable[ActiveEvent], context: EventContext | None) -> list[ActiveEvent]:
    return [e for e in events if matches_context(e.definition, context)]


# ─── Results ───────────────────────────────────────────────────


@dataclass
class EffectSource:
    """One (key, value) contribution from one event."""
    effect_key: str
    event_id: str
    event_name: str
    event_priority: int | float
    original_value: Any
    applied: bool = False


@dataclass
class ResolvedEffects:
    """Merged effects for one day. Rebuilt on every call."""
    effects: dict[str, Any]
    resolved_day: int
    resolved_time_of_day: int | None = None
    resolved_context: EventContext | None = None
    competing_effects: dict[str, list[str]] = field(default_factory=dict)
    resolution_strategies: dict[str, str] = field(default_factory=dict)
    sources: list[EffectSource] = field(default_factory=list)

    def get(self, key: str, default: Any = None) -> Any:
        return self.effects.get(key, default)

    def __contains__(self, key: str) -> bool:
        return key in self.effects

    def __getitem__(self, key: str) -> Any:
        return self.effects[key]


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and not math.isnan(value)


class EffectRegistry:
    """
    Stateless effect resolver.

    Callers filter events by context first (see filter_by_context);
    the registry only aggregates what it is given.
    """

    def get_resolved_effects(
        self,
        day: int,
        active_events: Iterable[ActiveEvent],
        context: EventContext | None = None,
        time_of_day: int | None = None,
        solar_baseline: LightLevel | None = None,
    ) -> ResolvedEffects:
        """
        Merge effects from active events.

        Args:
            day: Absolute day being resolved
            active_events: Events already filtered for the context
            context: Recorded on the result for provenance
            time_of_day: Minutes from midnight, recorded on the result
            solar_baseline: Light level before events (layer 0)

        Returns:
            ResolvedEffects with per-key strategy and contributors
        """
        sources = [
            EffectSource(
                effect_key=key,
                event_id=event.event_id,
                event_name=event.name,
                event_priority=event.priority,
                original_value=value,
            )
            for event in active_events
            for key, value in event.effects.items()
        ]

        by_key: dict[str, list[EffectSource]] = {}
        for source in sources:
            by_key.setdefault(source.effect_key, []).append(source)

        effects: dict[str, Any] = {}
        strategies: dict[str, str] = {}

        if solar_baseline is not None:
            by_key.setdefault("light_level", [])

        for key, key_sources in by_key.items():
            strategy = get_strategy(key)
            if strategy == MULTIPLY:
                resolved = self._resolve_multiply(key, key_sources)
            elif strategy == ANY_TRUE:
                resolved = self._resolve_any_true(key_sources)
            elif strategy == ORDINAL_MIN:
                resolved = self._resolve_ordinal_min(key_sources, solar_baseline)
            else:
                resolved = self._resolve_last_wins(key_sources)
            if resolved is not _UNSET:
                effects[key] = resolved
                strategies[key] = strategy

        return ResolvedEffects(
            effects=effects,
            resolved_day=day,
            resolved_time_of_day=time_of_day,
            resolved_context=context,
            competing_effects={
                key: [s.event_id for s in key_sources]
                for key, key_sources in by_key.items()
                if key_sources
            },
            resolution_strategies=strategies,
            sources=sources,
        )

    def _resolve_multiply(self, key: str, sources: list[EffectSource]) -> Any:
        if key == "price_mult_tag":
            tag_sources = [s for s in sources if isinstance(s.original_value, dict)]
            if not tag_sources:
                return _UNSET
            multipliers: dict[str, float] = {}
            for source in tag_sources:
                for tag, mult in source.original_value.items():
                    if _is_number(mult):
                        multipliers[tag] = multipliers.get(tag, 1.0) * mult
                source.applied = True
            return multipliers

        numeric = [s for s in sources if _is_number(s.original_value)]
        if not numeric:
            return _UNSET
        product = 1.0
        for source in numeric:
            product *= source.original_value
            source.applied = True
        return product

    def _resolve_any_true(self, sources: list[EffectSource]) -> Any:
        flags = [s for s in sources if isinstance(s.original_value, bool)]
        if not flags:
            return _UNSET
        for source in flags:
            source.applied = source.original_value is True
        return any(s.original_value for s in flags)

    def _resolve_ordinal_min(self, sources: list[EffectSource], baseline: LightLevel | None) -> Any:
        if baseline is None and not sources:
            return _UNSET
        darkest = baseline or "bright"
        winner = None
        for source in sources:
            rank = LIGHT_RANK.get(source.original_value, LIGHT_RANK["bright"])
            if rank < LIGHT_RANK[darkest]:
                darkest = source.original_value
                winner = source
        if winner:
            winner.applied = True
        return darkest

    def _resolve_last_wins(self, sources: list[EffectSource]) -> Any:
        winner = min(sources, key=lambda s: (-s.event_priority, s.event_id))
        winner.applied = True
        return winner.original_value

    # ─── Source queries ────────────────────────────────────────

    def get_effect_sources(self, resolved: ResolvedEffects, effect_key: str) -> list[EffectSource]:
        return [s for s in resolved.sources if s.effect_key == effect_key]

    def get_applied_sources(self, resolved: ResolvedEffects) -> list[EffectSource]:
        return [s for s in resolved.sources if s.applied]

    def get_overridden_sources(self, resolved: ResolvedEffects) -> list[EffectSource]:
        return [s for s in resolved.sources if not s.applied]

    def is_restock_blocked(self, resolved: ResolvedEffects) -> bool:
        return resolved.get("restock_block") is True

    def get_restock_blocking_events(self, resolved: ResolvedEffects) -> list[str]:
        """Names of events currently blocking restocks."""
        return [s.event_name for s in self.get_effect_sources(resolved, "restock_block") if s.applied]

    def is_shop_closed(self, resolved: ResolvedEffects) -> bool:
        return resolved.get("shop_closed") is True

    def get_shop_closing_events(self, resolved: ResolvedEffects) -> list[str]:
        """Names of events currently closing shops."""
        return [s.event_name for s in self.get_effect_sources(resolved, "shop_closed") if s.applied]

