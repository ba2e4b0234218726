"""
Seeded random number generation for world simulation.

Mulberry32: 32-bit state, period 2^32. The same seed yields the same
sequence on every host, which makes chain events replayable and lets
saved worlds resume with the exact generator state.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Protocol, Sequence, TypeVar, runtime_checkable

T = TypeVar("T")

MASK_32 = 0xFFFFFFFF
GOLDEN_GAMMA = 0x6D2B79F5
TWO_POW_32 = 4294967296

DICE_PATTERN = re.compile(r"(\d+)d(\d+)([+\-]\d+)?", re.IGNORECASE)


@dataclass
class RollResult:
    """Result of a dice roll."""
    total: int
    breakdown: str
    rolls: list[int] = field(default_factory=list)
    modifier: int = 0
    valid: bool = True


@runtime_checkable
class SeededRandomizer(Protocol):
    """
    Deterministic generator with explicit state save/restore.

    Implementations:
    - Mulberry32: default generator for chains and loot
    """

    def random_float(self) -> float:
        """Return a float in [0, 1)."""
        ...

    def random_int(self, min_value: int, max_value: int) -> int:
        """Return an int in [min_value, max_value]."""
        ...

    def roll_dice(self, notation: str) -> RollResult:
        """Roll NdM[+/-K] notation."""
        ...

    def get_state(self) -> int:
        """Current internal state for serialization."""
        ...

    def reseed(self, seed: int) -> None:
        """Reset internal state."""
        ...


class Mulberry32:
    """
    Mulberry32 PRNG.

    Each draw adds a fixed constant to the state, then avalanche-mixes
    it with xor/shift/multiply steps into a 32-bit output.
    """

    def __init__(self, seed: int):
        self._state = int(seed) & MASK_32

    def next_uint32(self) -> int:
        """Advance the state and return the raw 32-bit output."""
        self._state = (self._state + GOLDEN_GAMMA) & MASK_32
        z = self._state
        z = ((z ^ (z >> 15)) * (z | 1)) & MASK_32
        z ^= (z + (((z ^ (z >> 7)) * (z | 61)) & MASK_32)) & MASK_32
        return (z ^ (z >> 14)) & MASK_32

    def random_float(self) -> float:
        return self.next_uint32() / TWO_POW_32

    def random_int(self, min_value: int, max_value: int) -> int:
        return math.floor(self.random_float() * (max_value - min_value + 1)) + min_value

    def roll_dice(self, notation: str) -> RollResult:
        """
        Roll dice notation like "2d6+3" or "1d20-1".

        Malformed notation does not raise: it returns a zero total with
        valid=False so one bad definition can't halt a day's resolution.
        """
        match = DICE_PATTERN.search(notation)
        if not match:
            return RollResult(
                total=0,
                breakdown=f"Invalid notation: {notation}",
                valid=False,
            )

        count = int(match.group(1))
        sides = int(match.group(2))
        modifier = int(match.group(3)) if match.group(3) else 0

        rolls = [self.random_int(1, sides) for _ in range(count)]
        total = sum(rolls) + modifier

        breakdown = f"{notation}: [{', '.join(str(r) for r in rolls)}]"
        if modifier:
            breakdown += f" {'+' if modifier > 0 else ''}{modifier}"
        breakdown += f" = {total}"

        return RollResult(total=total, breakdown=breakdown, rolls=rolls, modifier=modifier)

    def random_choice(self, items: Sequence[T]) -> T:
        if not items:
            raise ValueError("Cannot choose from an empty sequence")
        return items[self.random_int(0, len(items) - 1)]

    def weighted_choice(self, items: Sequence[T], weights: Sequence[float]) -> T:
        """
        Pick one item with probability proportional to its weight.

        Raises:
            ValueError: items is empty or weights don't line up with items
        """
        if len(items) != len(weights):
            raise ValueError(
                f"Items and weights must have the same length "
                f"({len(items)} != {len(weights)})"
            )
        if not items:
            raise ValueError("Cannot choose from an empty sequence")

        value = self.random_float() * sum(weights)
        for item, weight in zip(items, weights):
            value -= weight
            if value < 0:
                return item
        # Float rounding can leave value at exactly 0
        return items[-1]

    def roll_percentile(self) -> int:
        return self.random_int(1, 100)

    def chance(self, percentage: float) -> bool:
        """True with the given percent probability."""
        return self.roll_percentile() <= percentage

    def get_state(self) -> int:
        return self._state

    def reseed(self, seed: int) -> None:
        self._state = int(seed) & MASK_32

    def __repr__(self) -> str:
        return f"Mulberry32(state={self._state:#010x})"


class RngFactory:
    """Creates seeded generators. Swap in a subclass to change algorithms."""

    def create(self, seed: int) -> SeededRandomizer:
        return Mulberry32(seed)
