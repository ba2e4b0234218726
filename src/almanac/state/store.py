"""
Clock state storage abstraction.

Separates persistence of the clock and engine snapshot from the
simulation so tests run without touching disk.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import ValidationError

from .schema import ClockState

logger = logging.getLogger(__name__)


@runtime_checkable
class ClockStateStore(Protocol):
    """
    Storage interface for clock state.

    Implementations:
    - JsonClockStateStore: File-based persistence (production)
    - MemoryClockStateStore: In-memory storage (testing)
    """

    def load(self) -> ClockState | None:
        """Load saved state. Returns None if nothing was saved."""
        ...

    def save(self, state: ClockState) -> None:
        """Persist state."""
        ...

    def clear(self) -> None:
        """Forget saved state."""
        ...


class JsonClockStateStore:
    """
    File-based clock state using JSON.

    The previous save is kept as a .bak file next to the state file.
    """

    def __init__(self, path: Path | str = "almanac_state.json"):
        self.path = Path(path)

    def load(self) -> ClockState | None:
        if not self.path.exists():
            return None
        try:
            return ClockState.model_validate(json.loads(self.path.read_text(encoding="utf-8")))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable clock state at {self.path}: {e}")
            return None

    def save(self, state: ClockState) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)

        # Backup previous save
        if self.path.exists():
            backup = self.path.with_suffix(".json.bak")
            backup.write_text(self.path.read_text(encoding="utf-8"), encoding="utf-8")

        self.path.write_text(state.model_dump_json(by_alias=True, indent=2), encoding="utf-8")

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()


class MemoryClockStateStore:
    """
    In-memory clock state for testing.

    Stores a copy so later mutation of the live state does not leak in.
    """

    def __init__(self, state: ClockState | None = None):
        self.state = state.model_copy(deep=True) if state else None
        self.save_count = 0

    def load(self) -> ClockState | None:
        return self.state.model_copy(deep=True) if self.state else None

    def save(self, state: ClockState) -> None:
        self.state = state.model_copy(deep=True)
        self.save_count += 1

    def clear(self) -> None:
        self.state = None
