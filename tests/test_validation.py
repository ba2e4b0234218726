"""Tests for event and calendar validators."""

import pytest

from almanac.systems.validation import (
    CalendarValidationError,
    CalendarValidator,
    EventValidationError,
    EventValidator,
)

from conftest import DATA_DIR


def fields(issues):
    return [issue.field for issue in issues]


@pytest.fixture
def fixed_event():
    return {
        "id": "midwinter", "name": "Midwinter", "type": "fixed", "priority": 5,
        "effects": {"shop_closed": True}, "date": {"intercalaryName": "Midwinter"},
    }


@pytest.fixture
def calendar():
    return {
        "id": "tiny", "name": "Tiny",
        "weekdays": ["Sun", "Moon"],
        "months": [{"name": "First", "days": 10}, {"name": "Second", "days": 12}],
    }


class TestEventCommonFields:
    """Test fields shared by all event types."""

    def test_valid_event(self, fixed_event):
        """A complete fixed event validates cleanly."""
        result = EventValidator.validate(fixed_event)
        assert result.is_valid
        assert result.warnings == []

    @pytest.mark.parametrize("missing", ["id", "name", "type", "priority", "effects"])
    def test_required_fields(self, fixed_event, missing):
        """Core fields are required."""
        del fixed_event[missing]
        result = EventValidator.validate(fixed_event)
        assert missing in fields(result.errors)

    def test_unknown_type(self, fixed_event):
        """Only the four kinds are accepted."""
        fixed_event["type"] = "lunar"
        result = EventValidator.validate(fixed_event)
        assert fields(result.errors) == ["type"]
        assert "fixed" in result.errors[0].suggestion

    def test_not_a_mapping(self):
        """Non-mappings are rejected outright."""
        assert not EventValidator.validate(["nope"]).is_valid

    def test_priority_warnings(self, fixed_event):
        """Negative or huge priorities warn."""
        fixed_event["priority"] = -1
        assert fields(EventValidator.validate(fixed_event).warnings) == ["priority"]
        fixed_event["priority"] = 5000
        assert fields(EventValidator.validate(fixed_event).warnings) == ["priority"]

    def test_boolean_priority_rejected(self, fixed_event):
        """Booleans are not numbers."""
        fixed_event["priority"] = True
        assert "priority" in fields(EventValidator.validate(fixed_event).errors)

    def test_empty_effects_noted(self, fixed_event):
        """No effects is advisory only."""
        fixed_event["effects"] = {}
        result = EventValidator.validate(fixed_event)
        assert result.is_valid
        assert "effects" in fields(result.info)

    def test_unknown_effect_key_noted(self, fixed_event):
        """Unknown effect keys are advisory."""
        fixed_event["effects"] = {"mood": "festive"}
        result = EventValidator.validate(fixed_event)
        assert result.is_valid
        assert any("mood" in issue.message for issue in result.info)

    def test_filter_lists(self, fixed_event):
        """Context filters must be lists."""
        fixed_event["regions"] = "north"
        assert fields(EventValidator.validate(fixed_event).errors) == ["regions"]


class TestEventKinds:
    """Test type-specific rules."""

    def test_fixed_needs_a_date(self, fixed_event):
        """Fixed events need month + day or an intercalary name."""
        fixed_event["date"] = {"month": 3}
        assert fields(EventValidator.validate(fixed_event).errors) == ["date"]
        del fixed_event["date"]
        assert fields(EventValidator.validate(fixed_event).errors) == ["date"]

    def test_fixed_both_date_forms_warns(self, fixed_event):
        """Giving both forms warns that the intercalary name wins."""
        fixed_event["date"] = {"month": 0, "day": 1, "intercalaryName": "Midwinter"}
        result = EventValidator.validate(fixed_event)
        assert result.is_valid
        assert fields(result.warnings) == ["date"]

    def test_fixed_ranges(self, fixed_event):
        """Months are 0-indexed, days 1-indexed."""
        fixed_event["date"] = {"month": -1, "day": 0}
        assert fields(EventValidator.validate(fixed_event).errors) == ["date.month", "date.day"]

    def test_fixed_pinned_year_noted(self, fixed_event):
        """Year-pinned events are one-time."""
        fixed_event["year"] = 1493
        result = EventValidator.validate(fixed_event)
        assert "date.year" in fields(result.info)

    def test_fixed_duration(self, fixed_event):
        """Durations are positive integers."""
        fixed_event["duration"] = 0
        assert fields(EventValidator.validate(fixed_event).errors) == ["duration"]

    def test_interval(self):
        """Intervals must be positive."""
        event = {"id": "m", "name": "M", "type": "interval", "priority": 0, "effects": {}, "interval": 0}
        assert fields(EventValidator.validate(event).errors) == ["interval"]
        event["interval"] = 7
        event["offset"] = "soon"
        assert fields(EventValidator.validate(event).errors) == ["offset"]

    def test_chain_states(self, weather_chain):
        """Chain states need unique names, weights and valid durations."""
        assert EventValidator.validate(weather_chain).is_valid

        weather_chain["states"][1]["name"] = "Clear"
        weather_chain["states"][2]["weight"] = -1
        weather_chain["states"][0]["duration"] = "forever"
        result = EventValidator.validate(weather_chain)
        assert set(fields(result.errors)) == {"states[1].name", "states[2].weight", "states[0].duration"}

    def test_chain_requires_seed_and_states(self, weather_chain):
        """Seed and a non-empty state list are required."""
        del weather_chain["seed"]
        weather_chain["states"] = []
        assert fields(EventValidator.validate(weather_chain).errors) == ["seed", "states"]

    def test_chain_initial_state(self, weather_chain):
        """initialState must name a state."""
        weather_chain["initialState"] = "Snow"
        result = EventValidator.validate(weather_chain)
        assert fields(result.errors) == ["initialState"]
        assert "Clear" in result.errors[0].suggestion

    def test_conditional(self):
        """Conditions must parse; unknown references warn."""
        event = {
            "id": "c", "name": "C", "type": "conditional", "priority": 0, "effects": {},
            "condition": "events['weather'].active", "tier": 1,
        }
        result = EventValidator.validate(event, known_event_ids={"c"})
        assert result.is_valid
        assert fields(result.warnings) == ["condition"]

        event["condition"] = "events['weather'.active"
        assert fields(EventValidator.validate(event).errors) == ["condition"]

    def test_conditional_tier(self):
        """Tier is 1 or 2."""
        event = {"id": "c", "name": "C", "type": "conditional", "priority": 0, "effects": {},
                 "condition": "true", "tier": 3}
        assert fields(EventValidator.validate(event).errors) == ["tier"]

    def test_conditional_tier_required(self):
        """A conditional without a tier is rejected."""
        event = {"id": "c", "name": "C", "type": "conditional", "priority": 0, "effects": {},
                 "condition": "true"}
        result = EventValidator.validate(event)
        assert fields(result.errors) == ["tier"]
        assert "requires a tier" in result.errors[0].message

    def test_self_reference_warns(self):
        """A condition referencing its own event warns."""
        event = {"id": "c", "name": "C", "type": "conditional", "priority": 0, "effects": {},
                 "condition": "!events['c'].active", "tier": 1}
        assert "Condition references its own event" in [w.message for w in EventValidator.validate(event).warnings]


class TestEventValidatorHelpers:
    """Test the raising and string forms."""

    def test_validate_or_throw(self, fixed_event):
        """The first error is raised."""
        fixed_event["type"] = "lunar"
        with pytest.raises(EventValidationError) as exc:
            EventValidator.validate_or_throw(fixed_event)
        assert exc.value.field == "type"

    def test_error_strings(self, fixed_event):
        """Errors render with their suggestion."""
        del fixed_event["priority"]
        (message,) = EventValidator.get_validation_errors(fixed_event)
        assert message == "priority: Event priority is required (Suggestion: Use 0 for normal priority)"


class TestCalendarValidator:
    """Test calendar validation."""

    def test_valid(self, calendar):
        """A minimal calendar validates."""
        assert CalendarValidator.validate(calendar).is_valid

    def test_required_ids(self, calendar):
        """id and name are required."""
        del calendar["id"]
        assert fields(CalendarValidator.validate(calendar).errors) == ["id"]

    def test_month_days(self, calendar):
        """Months need positive day counts."""
        calendar["months"][0]["days"] = 0
        assert fields(CalendarValidator.validate(calendar).errors) == ["months[0].days"]

    def test_duplicate_months(self, calendar):
        """Month names are unique."""
        calendar["months"][1]["name"] = "First"
        assert fields(CalendarValidator.validate(calendar).errors) == ["months[1].name"]

    def test_month_type(self, calendar):
        """Month type is standard or intercalary."""
        calendar["months"][1]["type"] = "festival"
        assert fields(CalendarValidator.validate(calendar).errors) == ["months[1].type"]

    def test_partial_order(self, calendar):
        """Order is all or nothing."""
        calendar["months"][0]["order"] = 0
        assert fields(CalendarValidator.validate(calendar).errors) == ["months"]

    def test_order_gaps(self, calendar):
        """Orders are contiguous from 0."""
        calendar["months"][0]["order"] = 0
        calendar["months"][1]["order"] = 2
        assert fields(CalendarValidator.validate(calendar).errors) == ["months"]

    def test_no_months_is_simple_counter(self, calendar):
        """No months is allowed and noted."""
        calendar["months"] = []
        result = CalendarValidator.validate(calendar)
        assert result.is_valid
        assert fields(result.info) == ["months"]

    def test_leap_rules(self, calendar):
        """Leap rules need positive intervals and in-range targets, recursively."""
        calendar["leapRules"] = [{"interval": 4, "targetMonthIndex": 5, "exclude": [{"interval": 0}]}]
        assert fields(CalendarValidator.validate(calendar).errors) == [
            "leapRules[0].targetMonthIndex", "leapRules[0].exclude[0].interval",
        ]

    def test_leap_period_limit(self, calendar):
        """Co-prime intervals whose combined period is too long are rejected."""
        calendar["leapRules"] = [{"interval": 1009, "exclude": [{"interval": 1013}, {"interval": 1019}]}]
        assert fields(CalendarValidator.validate(calendar).errors) == ["leapRules"]

        calendar["leapRules"] = [{"interval": 4, "exclude": [{"interval": 100, "exclude": [{"interval": 400}]}]}]
        assert CalendarValidator.validate(calendar).is_valid

    def test_eras(self, calendar):
        """Eras must end after they start; overlaps warn."""
        calendar["eras"] = [
            {"name": "Old", "abbrev": "OE", "startYear": 0, "endYear": 100},
            {"name": "New", "abbrev": "NE", "startYear": 50},
        ]
        result = CalendarValidator.validate(calendar)
        assert result.is_valid
        assert fields(result.warnings) == ["eras"]
        assert result.warnings[0].suggestion == "The first listed era wins"

        calendar["eras"][0]["endYear"] = -5
        assert fields(CalendarValidator.validate(calendar).errors) == ["eras[0].endYear"]

    def test_seasons(self, calendar):
        """Season times are minutes within a day."""
        calendar["seasons"] = [{"name": "Long", "startMonth": 4, "startDay": 1, "sunrise": 300, "sunset": 1440}]
        assert fields(CalendarValidator.validate(calendar).errors) == [
            "seasons[0].startMonth", "seasons[0].sunset",
        ]

    def test_holidays(self, calendar):
        """Holidays need a placement."""
        calendar["holidays"] = [{"name": "Lost"}]
        assert fields(CalendarValidator.validate(calendar).errors) == ["holidays[0]"]

    def test_validate_or_throw(self, calendar):
        """The first error is raised."""
        calendar["weekdays"] = "Sun"
        with pytest.raises(CalendarValidationError):
            CalendarValidator.validate_or_throw(calendar)

    @pytest.mark.parametrize("name", ["harptos.yaml", "gregorian.yaml"])
    def test_bundled_calendars(self, name):
        """Shipped calendars are valid."""
        from almanac.state.definitions import read_pack
        data = read_pack(DATA_DIR / "calendars" / name)
        records = data.get("calendars", [data]) if isinstance(data, dict) else data
        for record in records:
            assert CalendarValidator.validate(record).is_valid, CalendarValidator.get_validation_errors(record)
