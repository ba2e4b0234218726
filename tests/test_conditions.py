"""Tests for the conditional-event condition language."""

import pytest

from almanac.systems.conditions import (
    ConditionSyntaxError,
    EventStateInfo,
    TokenType,
    evaluate_condition,
    extract_event_references,
    parse_condition,
    tokenize,
    validate_condition,
)


@pytest.fixture
def snapshot():
    """Storm weather, full moon inactive, market with a price effect."""
    return {
        "weather": EventStateInfo(active=True, state="Storm", effects={"travel_speed": 0.5}),
        "full-moon": EventStateInfo(active=False),
        "market": EventStateInfo(active=True, state="", effects={"price_mult_global": 0.9}),
    }


class TestTokenizer:
    """Test tokenization."""

    def test_event_reference_tokens(self):
        """An event reference splits into its parts."""
        types = [t.type for t in tokenize("events['a'].active")]
        assert types == [
            TokenType.EVENTS, TokenType.LBRACKET, TokenType.STRING, TokenType.RBRACKET,
            TokenType.DOT, TokenType.IDENTIFIER, TokenType.EOF,
        ]

    def test_numbers(self):
        """Integers, decimals and negatives."""
        values = [t.value for t in tokenize("1 2.5 -3")[:-1]]
        assert values == [1, 2.5, -3]

    def test_escaped_quote(self):
        """Backslash escapes inside strings."""
        token = tokenize(r"'it\'s'")[0]
        assert token.value == "it's"

    def test_unterminated_string(self):
        """Unterminated strings report their start."""
        with pytest.raises(ConditionSyntaxError) as exc:
            tokenize("events['a")
        assert exc.value.position == 7

    def test_unexpected_character(self):
        """Stray characters are rejected."""
        with pytest.raises(ConditionSyntaxError):
            tokenize("events['a'].active & true")


class TestParsing:
    """Test parse errors."""

    @pytest.mark.parametrize("condition", [
        "",
        "events['a']",
        "events['a'].colour",
        "events[a].active",
        "(true",
        "true true",
        "events['a'].active &&",
    ])
    def test_invalid_conditions(self, condition):
        """Malformed conditions fail to parse."""
        result = parse_condition(condition)
        assert not result.success
        assert result.error

    def test_precedence(self):
        """&& binds tighter than ||."""
        result = evaluate_condition("true || false && false", {})
        assert result.value is True

    def test_nested_parentheses(self):
        """Parentheses override precedence."""
        result = evaluate_condition("(true || false) && false", {})
        assert result.value is False


class TestEvaluation:
    """Test evaluation against an event snapshot."""

    def test_active(self, snapshot):
        """active reads the snapshot flag."""
        assert evaluate_condition("events['weather'].active", snapshot).value is True
        assert evaluate_condition("events['full-moon'].active", snapshot).value is False

    def test_state_comparison(self, snapshot):
        """state compares as a string."""
        result = evaluate_condition("events['weather'].state == 'Storm'", snapshot)
        assert result.success and result.value is True
        assert evaluate_condition("events['weather'].state != 'Clear'", snapshot).value is True

    def test_effect_lookup(self, snapshot):
        """effects['key'] reads a single effect value."""
        assert evaluate_condition("events['market'].effects['price_mult_global'] < 1", snapshot).value is True
        assert evaluate_condition("events['weather'].effects['travel_speed'] >= 0.5", snapshot).value is True

    def test_negation(self, snapshot):
        """! negates, including double negation."""
        assert evaluate_condition("!events['full-moon'].active", snapshot).value is True
        assert evaluate_condition("!!events['weather'].active", snapshot).value is True

    def test_compound(self, snapshot):
        """Combined conditions."""
        condition = "events['weather'].state == 'Storm' && !events['full-moon'].active"
        assert evaluate_condition(condition, snapshot).value is True

    def test_missing_event_reads_inactive(self, snapshot):
        """Unknown events are inactive and reported."""
        result = evaluate_condition("events['ghost'].active || events['ghost'].state == ''", snapshot)
        assert result.success
        assert result.value is True
        assert result.missing_event_ids == ["ghost"]

    def test_no_coercion(self):
        """true does not equal 1."""
        assert evaluate_condition("true == 1", {}).value is False
        assert evaluate_condition("1 == 1.0", {}).value is True

    def test_mixed_ordering_fails(self, snapshot):
        """Ordering a string against a number is an evaluation error."""
        result = evaluate_condition("events['weather'].state < 3", snapshot)
        assert not result.success
        assert result.value is False
        assert "Cannot compare" in result.error

    def test_and_short_circuits(self, snapshot):
        """The right side of a false && is never evaluated."""
        result = evaluate_condition("false && events['ghost'].active", snapshot)
        assert result.success
        assert result.value is False
        assert result.missing_event_ids == []

        result = evaluate_condition("false && ('a' < 1)", snapshot)
        assert result.success
        assert result.value is False

    def test_or_short_circuits(self, snapshot):
        """The right side of a true || is never evaluated."""
        result = evaluate_condition("true || ('a' < 1)", snapshot)
        assert result.success
        assert result.value is True

        result = evaluate_condition("true || events['ghost'].active", snapshot)
        assert result.missing_event_ids == []

    def test_string_ordering(self):
        """Strings order lexically."""
        assert evaluate_condition("'apple' < 'banana'", {}).value is True

    def test_parse_failure_is_false(self):
        """Unparsable conditions evaluate to a failed false result."""
        result = evaluate_condition("events[", {})
        assert not result.success
        assert result.value is False


class TestReferences:
    """Test reference extraction and validation."""

    def test_extract_in_order(self):
        """References are listed once in order of appearance."""
        condition = "events['b'].active && events['a'].state == 'x' || events['b'].active"
        assert extract_event_references(condition) == ["b", "a"]

    def test_extract_unparsable(self):
        """Unparsable conditions give None."""
        assert extract_event_references("events[") is None

    def test_validate_unknown_reference_warns(self):
        """Unknown references are warnings, not errors."""
        result = validate_condition("events['x'].active", known_event_ids={"y"})
        assert result.is_valid
        assert result.warnings == ["Unknown event reference: 'x'"]

    def test_validate_syntax_error(self):
        """Syntax errors invalidate."""
        result = validate_condition("events['x'].active &&")
        assert not result.is_valid
        assert result.errors[0].startswith("Parse error:")
