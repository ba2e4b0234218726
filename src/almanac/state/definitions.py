"""
Definition sources: where event and calendar definitions come from.

Separates loading from the engine so tests can hand definitions over
in memory while a deployment reads YAML/JSON packs from disk.

A pack file holds either a list of records or a mapping with an
"events" (or "calendars") key. Invalid records are logged and skipped;
an unreadable file raises DefinitionLoadError.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable, Protocol, runtime_checkable

import yaml
from pydantic import ValidationError

from ..errors import DefinitionLoadError
from .schema import (
    CalendarDefinition,
    EventContext,
    EventDefinition,
    parse_event_definition,
)

logger = logging.getLogger(__name__)

PACK_SUFFIXES = (".yaml", ".yml", ".json")


def read_pack(path: Path) -> Any:
    """Decode one YAML or JSON file."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise DefinitionLoadError(path, str(e)) from e
    try:
        if path.suffix == ".json":
            return json.loads(text)
        return yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise DefinitionLoadError(path, f"malformed {path.suffix[1:].upper()}: {e}") from e


def pack_files(path: Path) -> list[Path]:
    """The file itself, or every pack file in a directory (sorted)."""
    if not path.exists():
        raise DefinitionLoadError(path, "no such file or directory")
    if path.is_file():
        return [path]
    return sorted(p for p in path.iterdir() if p.suffix in PACK_SUFFIXES and not p.name.startswith("."))


def _records(data: Any, key: str, path: Path) -> list:
    if data is None:
        return []
    if isinstance(data, dict) and key in data:
        data = data[key]
    elif isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        raise DefinitionLoadError(path, f"expected a list or a mapping with '{key}'")
    return data


def build_event_definitions(raw_records: Iterable[Any], origin: str = "memory") -> list[EventDefinition]:
    """
    Validate raw event records and build typed definitions.

    Records with validation errors are logged and skipped.
    """
    from ..systems.validation import EventValidator

    records = list(raw_records)
    known_ids = {r.get("id") for r in records if isinstance(r, dict)}
    definitions: list[EventDefinition] = []
    for raw in records:
        result = EventValidator.validate(raw, known_ids)
        label = raw.get("id", "?") if isinstance(raw, dict) else "?"
        if not result.is_valid:
            logger.warning(f"Skipping event '{label}' from {origin}: {'; '.join(map(str, result.errors))}")
            continue
        try:
            definitions.append(parse_event_definition(raw))
        except ValidationError as e:
            logger.warning(f"Skipping event '{label}' from {origin}: {e.error_count()} schema errors")
    return definitions


# ─── Event sources ─────────────────────────────────────────────


@runtime_checkable
class EventDefinitionSource(Protocol):
    """
    Supplies event definitions to the world event service.

    Implementations:
    - YamlEventSource: YAML/JSON packs on disk
    - MemoryEventSource: In-memory definitions (testing)
    """

    def load_event_definitions(self, context: EventContext | None = None) -> list[EventDefinition]:
        """All definitions, optionally only those applying in a context."""
        ...

    def load_event_definition_by_id(self, event_id: str) -> EventDefinition | None:
        ...

    def load_event_definitions_by_ids(self, event_ids: Iterable[str]) -> list[EventDefinition]:
        ...

    def list_event_definition_ids(self) -> list[str]:
        ...

    def has_event_definition(self, event_id: str) -> bool:
        ...


class _EventSourceMixin:
    """Lookups shared by sources that hold a full list of definitions."""

    def _all(self) -> list[EventDefinition]:
        raise NotImplementedError

    def load_event_definitions(self, context: EventContext | None = None) -> list[EventDefinition]:
        from ..systems.effects import matches_context
        return [d for d in self._all() if matches_context(d, context)]

    def load_event_definition_by_id(self, event_id: str) -> EventDefinition | None:
        for definition in self._all():
            if definition.id == event_id:
                return definition
        return None

    def load_event_definitions_by_ids(self, event_ids: Iterable[str]) -> list[EventDefinition]:
        wanted = set(event_ids)
        return [d for d in self._all() if d.id in wanted]

    def list_event_definition_ids(self) -> list[str]:
        return [d.id for d in self._all()]

    def has_event_definition(self, event_id: str) -> bool:
        return self.load_event_definition_by_id(event_id) is not None


class MemoryEventSource(_EventSourceMixin):
    """In-memory definitions. Accepts typed models or raw mappings."""

    def __init__(self, definitions: Iterable[EventDefinition | dict] = ()):
        self._definitions: list[EventDefinition] = []
        self.add(definitions)

    def add(self, definitions: Iterable[EventDefinition | dict]) -> None:
        items = list(definitions)
        self._definitions.extend(d for d in items if not isinstance(d, dict))
        self._definitions.extend(build_event_definitions([d for d in items if isinstance(d, dict)]))

    def clear(self) -> None:
        self._definitions = []

    def _all(self) -> list[EventDefinition]:
        return list(self._definitions)


class YamlEventSource(_EventSourceMixin):
    """
    Event packs on disk.

    The path may be one file or a directory of *.yaml/*.yml/*.json
    files. Files are read once and cached until reload().
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._cache: list[EventDefinition] | None = None

    def reload(self) -> None:
        self._cache = None

    def _all(self) -> list[EventDefinition]:
        if self._cache is None:
            definitions: list[EventDefinition] = []
            for pack in pack_files(self.path):
                records = _records(read_pack(pack), "events", pack)
                definitions.extend(build_event_definitions(records, origin=pack.name))
            logger.info(f"Read {len(definitions)} event definitions from {self.path}")
            self._cache = definitions
        return list(self._cache)


# ─── Calendar sources ──────────────────────────────────────────


@runtime_checkable
class CalendarSource(Protocol):
    """Supplies calendar definitions to the calendar manager."""

    def load_calendar_definitions(self) -> list[CalendarDefinition]:
        ...


def build_calendar_definitions(raw_records: Iterable[Any], origin: str = "memory") -> list[CalendarDefinition]:
    """Validate raw calendar records; invalid ones are logged and skipped."""
    from ..systems.validation import CalendarValidator

    calendars: list[CalendarDefinition] = []
    for raw in raw_records:
        label = raw.get("id", "?") if isinstance(raw, dict) else "?"
        result = CalendarValidator.validate(raw)
        if not result.is_valid:
            logger.warning(f"Skipping calendar '{label}' from {origin}: {'; '.join(map(str, result.errors))}")
            continue
        for warning in result.warnings:
            logger.info(f"Calendar '{label}': {warning}")
        try:
            calendars.append(CalendarDefinition.model_validate(raw))
        except ValidationError as e:
            logger.warning(f"Skipping calendar '{label}' from {origin}: {e.error_count()} schema errors")
    return calendars


class MemoryCalendarSource:
    """In-memory calendars. Accepts typed models or raw mappings."""

    def __init__(self, calendars: Iterable[CalendarDefinition | dict] = ()):
        items = list(calendars)
        self._calendars = [c for c in items if isinstance(c, CalendarDefinition)]
        self._calendars.extend(build_calendar_definitions([c for c in items if isinstance(c, dict)]))

    def load_calendar_definitions(self) -> list[CalendarDefinition]:
        return list(self._calendars)


class YamlCalendarSource:
    """Calendar packs on disk: one file or a directory of them."""

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def load_calendar_definitions(self) -> list[CalendarDefinition]:
        calendars: list[CalendarDefinition] = []
        for pack in pack_files(self.path):
            records = _records(read_pack(pack), "calendars", pack)
            calendars.extend(build_calendar_definitions(records, origin=pack.name))
        return calendars
