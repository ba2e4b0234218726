#!/usr/bin/env python3
"""
Chain golden master generator.

Replays the golden chain event through the world event service and
rewrites the expected sequence and raw Mulberry32 outputs in
tests/fixtures/chain_golden.json. The calendar and event definitions in
the fixture are the inputs and are left untouched.

Only regenerate after a deliberate change to the RNG or chain replay;
the point of the fixture is to catch accidental ones.

Usage:
    python scripts/generate_golden_master.py          # Rewrite fixture
    python scripts/generate_golden_master.py --check  # Exit 1 if it would change
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from almanac.state.definitions import MemoryEventSource
from almanac.state.schema import CalendarDefinition
from almanac.systems.calendar import CalendarDriver
from almanac.systems.events import WorldEventService
from almanac.tools.rng import Mulberry32

FIXTURE_PATH = Path(__file__).parent.parent / "tests" / "fixtures" / "chain_golden.json"
LAST_DAY = 50
RAW_VALUE_COUNT = 10


def build_sequence(fixture: dict) -> list[dict]:
    driver = CalendarDriver(CalendarDefinition.model_validate(fixture["calendar"]))
    service = WorldEventService(driver)
    service.initialize(MemoryEventSource([fixture["event"]]))

    sequence = []
    for day in range(LAST_DAY + 1):
        (event,) = service.get_active_events(day)
        sequence.append({
            "day": day,
            "state": event.state,
            "startDay": event.start_day,
            "endDay": event.end_day,
            "duration": event.duration,
            "effects": event.effects,
        })
    return sequence


def main() -> int:
    parser = argparse.ArgumentParser(description="Regenerate the chain golden master")
    parser.add_argument("--check", action="store_true", help="Only report whether the fixture is current")
    args = parser.parse_args()

    fixture = json.loads(FIXTURE_PATH.read_text(encoding="utf-8"))
    seed = fixture["seed"]
    rng = Mulberry32(seed)

    updated = dict(fixture)
    updated["expectedSequence"] = build_sequence(fixture)
    updated["mulberry32Values"] = {
        "description": f"First {RAW_VALUE_COUNT} randomFloat() outputs for seed {seed}",
        "seed": seed,
        "values": [rng.random_float() for _ in range(RAW_VALUE_COUNT)],
    }

    if args.check:
        current = updated == fixture
        print("Fixture is current" if current else "Fixture is out of date")
        return 0 if current else 1

    FIXTURE_PATH.write_text(json.dumps(updated, indent=2) + "\n", encoding="utf-8")
    print(f"Wrote {len(updated['expectedSequence'])} days to {FIXTURE_PATH}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
