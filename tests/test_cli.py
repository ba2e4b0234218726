"""Tests for the command-line interface."""

import json

import pytest

from almanac.interface.cli import build_parser, main

from conftest import DATA_DIR


CALENDARS = str(DATA_DIR / "calendars")
EVENTS = str(DATA_DIR / "events")


def run(*argv):
    return main(["--calendar", CALENDARS, "--events", EVENTS, *argv])


class TestParser:
    """Test argument parsing."""

    def test_command_required(self):
        """A subcommand is required."""
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_repeatable_tags(self):
        """--tag may be given more than once."""
        args = build_parser().parse_args(["events", "3", "--tag", "a", "--tag", "b"])
        assert args.tags == ["a", "b"]
        assert args.day == 3


class TestCommands:
    """Test command output and exit codes."""

    def test_date(self, capsys):
        """date prints calendar dates."""
        assert run("--calendar-id", "harptos", "date", "0", "--count", "2") == 0
        assert "Hammer" in capsys.readouterr().out

    def test_date_simple_counter(self, capsys):
        """Without a calendar id the simple counter is used."""
        assert run("date", "12") == 0
        assert "Day 12" in capsys.readouterr().out

    def test_unknown_calendar(self, capsys):
        """Unknown calendars fail with exit code 1."""
        assert run("--calendar-id", "mayan", "date", "0") == 1
        assert "Calendar not found" in capsys.readouterr().out

    def test_events(self, capsys):
        """events lists the day's active events."""
        assert run("--calendar-id", "harptos", "events", "30") == 0
        assert "Midwinter" in capsys.readouterr().out

    def test_events_none_active(self, capsys, tmp_path):
        """An empty day says so."""
        empty = tmp_path / "empty.yaml"
        empty.write_text("events: []\n", encoding="utf-8")
        assert main(["--calendar", CALENDARS, "--events", str(empty), "events", "1"]) == 0
        assert "No events active" in capsys.readouterr().out

    def test_effects(self, capsys):
        """effects shows resolved values."""
        assert run("--calendar-id", "harptos", "effects", "30", "--time", "720") == 0
        assert "shop_closed" in capsys.readouterr().out

    def test_config_calendar(self, capsys, tmp_path):
        """The config file supplies the default calendar."""
        config = tmp_path / "config.json"
        config.write_text(json.dumps({"calendar_id": "gregorian"}), encoding="utf-8")
        assert run("--config", str(config), "date", "0") == 0
        assert "Saturday" in capsys.readouterr().out

    def test_validate_bundled(self):
        """Shipped packs validate."""
        assert main(["validate", CALENDARS, EVENTS]) == 0

    def test_validate_reports_errors(self, capsys, tmp_path):
        """Invalid definitions fail validation."""
        pack = tmp_path / "bad.yaml"
        pack.write_text(
            "events:\n"
            "  - {id: broken, name: Broken, type: interval, priority: 0, effects: {}, interval: 0}\n",
            encoding="utf-8",
        )
        assert main(["validate", str(pack)]) == 1
        assert "Interval must be a positive integer" in capsys.readouterr().out

    def test_validate_missing_path(self, tmp_path):
        """A missing path is an error."""
        assert main(["validate", str(tmp_path / "missing")]) == 1
