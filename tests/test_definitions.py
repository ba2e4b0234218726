"""Tests for definition sources and the calendar registry."""

import json

import pytest
import yaml

from almanac.errors import CalendarNotFoundError, DefinitionLoadError
from almanac.state.definitions import (
    EventDefinitionSource,
    MemoryCalendarSource,
    MemoryEventSource,
    YamlCalendarSource,
    YamlEventSource,
    pack_files,
    read_pack,
)
from almanac.state.schema import SIMPLE_COUNTER_ID, ChainEvent, EventContext, IntervalEvent
from almanac.systems.calendars import CalendarDefinitionManager
from almanac.systems.validation import CalendarValidationError

from conftest import DATA_DIR


MARKET = {
    "id": "market", "name": "Market Day", "type": "interval", "priority": 2,
    "effects": {"price_mult_global": 0.9}, "interval": 10, "regions": ["north"],
}
FAIR = {
    "id": "fair", "name": "Spring Fair", "type": "fixed", "priority": 1,
    "effects": {"ui_banner": "Fair"}, "date": {"month": 2, "day": 10},
}


def write_yaml(path, data):
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


class TestReadPack:
    """Test raw file decoding."""

    def test_yaml(self, tmp_path):
        """YAML files decode."""
        path = write_yaml(tmp_path / "pack.yaml", [MARKET])
        assert read_pack(path) == [MARKET]

    def test_json(self, tmp_path):
        """JSON files decode."""
        path = tmp_path / "pack.json"
        path.write_text(json.dumps({"events": [FAIR]}), encoding="utf-8")
        assert read_pack(path) == {"events": [FAIR]}

    def test_malformed(self, tmp_path):
        """Malformed files raise DefinitionLoadError."""
        path = tmp_path / "bad.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(DefinitionLoadError) as exc:
            read_pack(path)
        assert "malformed JSON" in str(exc.value)

    def test_missing(self, tmp_path):
        """Missing files raise DefinitionLoadError."""
        with pytest.raises(DefinitionLoadError):
            read_pack(tmp_path / "nope.yaml")

    def test_pack_files(self, tmp_path):
        """Directories list pack files, sorted, skipping hidden and other files."""
        write_yaml(tmp_path / "b.yaml", [])
        write_yaml(tmp_path / "a.yml", [])
        write_yaml(tmp_path / ".hidden.yaml", [])
        (tmp_path / "notes.txt").write_text("ignore me", encoding="utf-8")
        assert [p.name for p in pack_files(tmp_path)] == ["a.yml", "b.yaml"]
        with pytest.raises(DefinitionLoadError):
            pack_files(tmp_path / "missing")


class TestEventSources:
    """Test memory and YAML event sources."""

    def test_memory_source_builds_models(self):
        """Raw mappings become typed definitions."""
        source = MemoryEventSource([MARKET])
        (definition,) = source.load_event_definitions()
        assert isinstance(definition, IntervalEvent)
        assert isinstance(source, EventDefinitionSource)

    def test_memory_source_skips_invalid(self, caplog):
        """Invalid records are logged and skipped."""
        source = MemoryEventSource([MARKET, {**FAIR, "date": {}}])
        assert source.list_event_definition_ids() == ["market"]
        assert "Skipping event 'fair'" in caplog.text

    def test_lookups(self):
        """Lookup helpers by id."""
        source = MemoryEventSource([MARKET, FAIR])
        assert source.load_event_definition_by_id("fair").name == "Spring Fair"
        assert source.load_event_definition_by_id("ghost") is None
        assert [d.id for d in source.load_event_definitions_by_ids(["fair", "ghost"])] == ["fair"]
        assert source.has_event_definition("market")
        source.clear()
        assert source.list_event_definition_ids() == []

    def test_context_filtering(self):
        """A context narrows the loaded definitions."""
        source = MemoryEventSource([MARKET, FAIR])
        ids = [d.id for d in source.load_event_definitions(EventContext(region="south"))]
        assert ids == ["fair"]

    def test_yaml_directory(self, tmp_path):
        """A directory of packs loads every file."""
        write_yaml(tmp_path / "a.yaml", {"events": [MARKET]})
        write_yaml(tmp_path / "b.yaml", [FAIR])
        source = YamlEventSource(tmp_path)
        assert source.list_event_definition_ids() == ["market", "fair"]

    def test_yaml_single_record(self, tmp_path):
        """A file may hold a single record."""
        source = YamlEventSource(write_yaml(tmp_path / "one.yaml", FAIR))
        assert source.list_event_definition_ids() == ["fair"]

    def test_yaml_reload(self, tmp_path):
        """Files are cached until reload()."""
        path = write_yaml(tmp_path / "pack.yaml", [MARKET])
        source = YamlEventSource(path)
        assert source.list_event_definition_ids() == ["market"]
        write_yaml(path, [MARKET, FAIR])
        assert source.list_event_definition_ids() == ["market"]
        source.reload()
        assert source.list_event_definition_ids() == ["market", "fair"]

    def test_yaml_wrong_shape(self, tmp_path):
        """A scalar pack is a load error."""
        path = tmp_path / "pack.yaml"
        path.write_text("just a string\n", encoding="utf-8")
        with pytest.raises(DefinitionLoadError):
            YamlEventSource(path).load_event_definitions()

    def test_bundled_events(self):
        """Shipped event packs load without rejections."""
        source = YamlEventSource(DATA_DIR / "events")
        definitions = source.load_event_definitions()
        raw = read_pack(DATA_DIR / "events" / "sword_coast.yaml")
        records = raw["events"] if isinstance(raw, dict) else raw
        assert len(definitions) == len(records)
        assert any(isinstance(d, ChainEvent) for d in definitions)


class TestCalendarSources:
    """Test calendar sources and the registry."""

    def test_yaml_calendars(self):
        """Bundled calendars load."""
        ids = {c.id for c in YamlCalendarSource(DATA_DIR / "calendars").load_calendar_definitions()}
        assert {"harptos", "gregorian"} <= ids

    def test_memory_calendars_skip_invalid(self, gregorian_calendar):
        """Invalid raw calendars are skipped."""
        source = MemoryCalendarSource([gregorian_calendar, {"id": "broken", "name": "Broken", "months": "x"}])
        assert [c.id for c in source.load_calendar_definitions()] == ["gregorian"]

    def test_manager_always_has_simple_counter(self):
        """No source still gives the simple counter."""
        manager = CalendarDefinitionManager()
        manager.load_definitions()
        assert manager.is_loaded()
        assert [c.id for c in manager.list_definitions()] == [SIMPLE_COUNTER_ID]
        assert not manager.create_driver().has_months()

    def test_manager_get_before_load(self):
        """Lookups before loading return None."""
        assert CalendarDefinitionManager().get_definition(SIMPLE_COUNTER_ID) is None

    def test_manager_drivers(self, gregorian_calendar):
        """Drivers are built for registered calendars."""
        manager = CalendarDefinitionManager(MemoryCalendarSource([gregorian_calendar]))
        manager.load_definitions()
        assert manager.has_definition("gregorian")
        assert manager.create_driver("gregorian").format_date(0) == "Saturday, 1 January 2000 CE"
        with pytest.raises(CalendarNotFoundError):
            manager.create_driver("mayan")

    def test_manager_source_failure(self, tmp_path, caplog):
        """An unreadable source leaves only the simple counter."""
        manager = CalendarDefinitionManager(YamlCalendarSource(tmp_path / "missing"))
        manager.load_definitions()
        assert [c.id for c in manager.list_definitions()] == [SIMPLE_COUNTER_ID]
        assert "Failed to load calendar definitions" in caplog.text

    def test_register_definition(self, festival_calendar):
        """Runtime registration validates."""
        manager = CalendarDefinitionManager()
        manager.load_definitions()
        manager.register_definition(festival_calendar)
        assert manager.get_definition("festival-calendar") is festival_calendar

        broken = festival_calendar.model_copy(update={"id": "broken", "weekdays": [""]})
        with pytest.raises(CalendarValidationError):
            manager.register_definition(broken)
