"""
Condition language for conditional events.

A small boolean DSL over other events' state, parsed by hand and
evaluated by walking the tree. Nothing is ever passed to eval().

Grammar:
    Or       := And ('||' And)*
    And      := Cmp ('&&' Cmp)*
    Cmp      := Unary (('==' | '!=' | '<' | '>' | '<=' | '>=') Unary)?
    Unary    := '!' Unary | Primary
    Primary  := EventRef | 'true' | 'false' | STRING | NUMBER | '(' Or ')'
    EventRef := 'events' '[' STRING ']' '.' ('active' | 'state' | 'effects' ('[' STRING ']')?)

Example:
    events['full-moon'].active && events['weather'].state == 'Storm'
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Union

from ..errors import AlmanacError


class ConditionSyntaxError(AlmanacError):
    """Condition text could not be tokenized or parsed."""
    def __init__(self, message: str, position: int):
        self.position = position
        super().__init__(f"{message} at position {position}")


class ConditionEvaluationError(AlmanacError):
    """Condition parsed but could not be evaluated (e.g. 'a' < 1)."""
    pass


# ─── Tokens ────────────────────────────────────────────────────


class TokenType(Enum):
    EVENTS = "events"
    LBRACKET = "["
    RBRACKET = "]"
    DOT = "."
    LPAREN = "("
    RPAREN = ")"
    STRING = "string"
    NUMBER = "number"
    IDENTIFIER = "identifier"
    TRUE = "true"
    FALSE = "false"
    AND = "&&"
    OR = "||"
    NOT = "!"
    EQ = "=="
    NEQ = "!="
    LT = "<"
    GT = ">"
    LTE = "<="
    GTE = ">="
    EOF = "end of input"


@dataclass(frozen=True)
class Token:
    type: TokenType
    value: Any
    position: int


TWO_CHAR_OPERATORS = {
    "&&": TokenType.AND,
    "||": TokenType.OR,
    "==": TokenType.EQ,
    "!=": TokenType.NEQ,
    "<=": TokenType.LTE,
    ">=": TokenType.GTE,
}

ONE_CHAR_TOKENS = {
    "!": TokenType.NOT,
    "<": TokenType.LT,
    ">": TokenType.GT,
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
    "[": TokenType.LBRACKET,
    "]": TokenType.RBRACKET,
    ".": TokenType.DOT,
}

KEYWORDS = {
    "events": TokenType.EVENTS,
    "true": TokenType.TRUE,
    "false": TokenType.FALSE,
}

COMPARISON_OPERATORS = {
    TokenType.EQ, TokenType.NEQ, TokenType.LT,
    TokenType.GT, TokenType.LTE, TokenType.GTE,
}

EVENT_PROPERTIES = ("active", "state", "effects")


def tokenize(text: str) -> list[Token]:
    """Split condition text into tokens. Raises ConditionSyntaxError."""
    tokens: list[Token] = []
    i = 0
    length = len(text)

    while i < length:
        char = text[i]

        if char.isspace():
            i += 1
            continue

        pair = text[i:i + 2]
        if pair in TWO_CHAR_OPERATORS:
            tokens.append(Token(TWO_CHAR_OPERATORS[pair], pair, i))
            i += 2
            continue

        if char == "'":
            start = i
            i += 1
            chars = []
            while i < length and text[i] != "'":
                if text[i] == "\\" and i + 1 < length:
                    i += 1
                chars.append(text[i])
                i += 1
            if i >= length:
                raise ConditionSyntaxError("Unterminated string", start)
            tokens.append(Token(TokenType.STRING, "".join(chars), start))
            i += 1
            continue

        if char.isdigit() or (char == "-" and i + 1 < length and text[i + 1].isdigit()):
            start = i
            i += 1
            while i < length and text[i].isdigit():
                i += 1
            if i + 1 < length and text[i] == "." and text[i + 1].isdigit():
                i += 1
                while i < length and text[i].isdigit():
                    i += 1
                value: int | float = float(text[start:i])
            else:
                value = int(text[start:i])
            tokens.append(Token(TokenType.NUMBER, value, start))
            continue

        if char.isalpha() or char == "_":
            start = i
            while i < length and (text[i].isalnum() or text[i] == "_"):
                i += 1
            word = text[start:i]
            tokens.append(Token(KEYWORDS.get(word, TokenType.IDENTIFIER), word, start))
            continue

        if char in ONE_CHAR_TOKENS:
            tokens.append(Token(ONE_CHAR_TOKENS[char], char, i))
            i += 1
            continue

        raise ConditionSyntaxError(f"Unexpected character '{char}'", i)

    tokens.append(Token(TokenType.EOF, None, length))
    return tokens


# ─── AST ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class LiteralNode:
    value: bool | str | int | float


@dataclass(frozen=True)
class EventReferenceNode:
    event_id: str
    property: str  # active | state | effects
    effect_key: str | None = None


@dataclass(frozen=True)
class UnaryOpNode:
    operator: str
    operand: "ASTNode"


@dataclass(frozen=True)
class BinaryOpNode:
    operator: str  # && or ||
    left: "ASTNode"
    right: "ASTNode"


@dataclass(frozen=True)
class ComparisonNode:
    operator: str
    left: "ASTNode"
    right: "ASTNode"


ASTNode = Union[LiteralNode, EventReferenceNode, UnaryOpNode, BinaryOpNode, ComparisonNode]


class Parser:
    """Recursive-descent parser producing an ASTNode."""

    def __init__(self, tokens: list[Token]):
        self.tokens = tokens
        self.pos = 0

    def parse(self) -> ASTNode:
        if self._current().type == TokenType.EOF:
            raise ConditionSyntaxError("Empty condition", 0)
        node = self._parse_or()
        token = self._current()
        if token.type != TokenType.EOF:
            raise ConditionSyntaxError(f"Unexpected token '{token.value}'", token.position)
        return node

    def _current(self) -> Token:
        return self.tokens[self.pos]

    def _advance(self) -> Token:
        token = self.tokens[self.pos]
        if token.type != TokenType.EOF:
            self.pos += 1
        return token

    def _expect(self, token_type: TokenType) -> Token:
        token = self._current()
        if token.type != token_type:
            found = token.type.value if token.type == TokenType.EOF else repr(token.value)
            raise ConditionSyntaxError(
                f"Expected '{token_type.value}' but found {found}", token.position
            )
        return self._advance()

    def _parse_or(self) -> ASTNode:
        left = self._parse_and()
        while self._current().type == TokenType.OR:
            self._advance()
            left = BinaryOpNode("||", left, self._parse_and())
        return left

    def _parse_and(self) -> ASTNode:
        left = self._parse_comparison()
        while self._current().type == TokenType.AND:
            self._advance()
            left = BinaryOpNode("&&", left, self._parse_comparison())
        return left

    def _parse_comparison(self) -> ASTNode:
        left = self._parse_unary()
        if self._current().type in COMPARISON_OPERATORS:
            operator = self._advance().value
            return ComparisonNode(operator, left, self._parse_unary())
        return left

    def _parse_unary(self) -> ASTNode:
        if self._current().type == TokenType.NOT:
            self._advance()
            return UnaryOpNode("!", self._parse_unary())
        return self._parse_primary()

    def _parse_primary(self) -> ASTNode:
        token = self._current()

        if token.type == TokenType.EVENTS:
            return self._parse_event_reference()
        if token.type in (TokenType.TRUE, TokenType.FALSE):
            self._advance()
            return LiteralNode(token.type == TokenType.TRUE)
        if token.type in (TokenType.STRING, TokenType.NUMBER):
            self._advance()
            return LiteralNode(token.value)
        if token.type == TokenType.LPAREN:
            self._advance()
            node = self._parse_or()
            self._expect(TokenType.RPAREN)
            return node

        if token.type == TokenType.EOF:
            raise ConditionSyntaxError("Unexpected end of condition", token.position)
        raise ConditionSyntaxError(f"Unexpected token '{token.value}'", token.position)

    def _parse_event_reference(self) -> EventReferenceNode:
        self._expect(TokenType.EVENTS)
        self._expect(TokenType.LBRACKET)
        event_id = self._expect(TokenType.STRING).value
        self._expect(TokenType.RBRACKET)
        self._expect(TokenType.DOT)

        prop = self._expect(TokenType.IDENTIFIER)
        if prop.value not in EVENT_PROPERTIES:
            raise ConditionSyntaxError(
                f"Unknown event property '{prop.value}' (expected active, state or effects)",
                prop.position,
            )

        effect_key = None
        if prop.value == "effects" and self._current().type == TokenType.LBRACKET:
            self._advance()
            effect_key = self._expect(TokenType.STRING).value
            self._expect(TokenType.RBRACKET)

        return EventReferenceNode(event_id, prop.value, effect_key)


# ─── Evaluation ────────────────────────────────────────────────


@dataclass
class EventStateInfo:
    """What a condition can see about one event on one day."""
    active: bool
    state: str = ""
    effects: dict[str, Any] | None = None


EventStateMap = Mapping[str, EventStateInfo]


@dataclass
class ParseResult:
    success: bool
    error: str | None = None
    ast: ASTNode | None = None


@dataclass
class EvaluationResult:
    success: bool
    value: bool
    error: str | None = None
    missing_event_ids: list[str] = field(default_factory=list)


@dataclass
class ConditionValidation:
    """Syntax errors block; unknown event references only warn."""
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def _strict_equal(left: Any, right: Any) -> bool:
    # No bool/number coercion: true != 1
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return left == right


def _ordered(left: Any, right: Any, operator: str) -> bool:
    numeric = (int, float)
    both_numbers = (
        isinstance(left, numeric) and isinstance(right, numeric)
        and not isinstance(left, bool) and not isinstance(right, bool)
    )
    if not both_numbers and not (isinstance(left, str) and isinstance(right, str)):
        raise ConditionEvaluationError(
            f"Cannot compare {type(left).__name__} {operator} {type(right).__name__}"
        )
    if operator == "<":
        return left < right
    if operator == ">":
        return left > right
    if operator == "<=":
        return left <= right
    return left >= right


def _evaluate(node: ASTNode, events: EventStateMap, missing: list[str]) -> Any:
    if isinstance(node, LiteralNode):
        return node.value

    if isinstance(node, EventReferenceNode):
        info = events.get(node.event_id)
        if info is None:
            if node.event_id not in missing:
                missing.append(node.event_id)
            return {"active": False, "state": ""}.get(node.property)
        if node.property == "active":
            return info.active
        if node.property == "state":
            return info.state
        if node.effect_key is not None:
            return (info.effects or {}).get(node.effect_key)
        return info.effects

    if isinstance(node, UnaryOpNode):
        return not _evaluate(node.operand, events, missing)

    if isinstance(node, BinaryOpNode):
        left = _evaluate(node.left, events, missing)
        if node.operator == "&&":
            return bool(left) and bool(_evaluate(node.right, events, missing))
        return bool(left) or bool(_evaluate(node.right, events, missing))

    if isinstance(node, ComparisonNode):
        left = _evaluate(node.left, events, missing)
        right = _evaluate(node.right, events, missing)
        if node.operator == "==":
            return _strict_equal(left, right)
        if node.operator == "!=":
            return not _strict_equal(left, right)
        return _ordered(left, right, node.operator)

    raise TypeError(f"Unknown AST node: {node!r}")


def parse_condition(condition: str) -> ParseResult:
    try:
        ast = Parser(tokenize(condition)).parse()
    except ConditionSyntaxError as e:
        return ParseResult(success=False, error=str(e))
    return ParseResult(success=True, ast=ast)


def evaluate_ast(ast: ASTNode, events: EventStateMap) -> EvaluationResult:
    """Evaluate an already-parsed condition."""
    missing: list[str] = []
    try:
        value = _evaluate(ast, events, missing)
    except ConditionEvaluationError as e:
        return EvaluationResult(success=False, value=False, error=str(e), missing_event_ids=missing)
    return EvaluationResult(success=True, value=bool(value), missing_event_ids=missing)


def evaluate_condition(condition: str, events: EventStateMap) -> EvaluationResult:
    """
    Parse and evaluate a condition against an event snapshot.

    Unknown event ids read as inactive with an empty state and are
    listed in missing_event_ids instead of failing the evaluation.
    """
    parsed = parse_condition(condition)
    if not parsed.success:
        return EvaluationResult(success=False, value=False, error=parsed.error)
    return evaluate_ast(parsed.ast, events)


def _collect_references(node: ASTNode, found: list[str]) -> None:
    if isinstance(node, EventReferenceNode):
        if node.event_id not in found:
            found.append(node.event_id)
    elif isinstance(node, UnaryOpNode):
        _collect_references(node.operand, found)
    elif isinstance(node, (BinaryOpNode, ComparisonNode)):
        _collect_references(node.left, found)
        _collect_references(node.right, found)


def extract_event_references(condition: str) -> list[str] | None:
    """Event ids referenced in order of first appearance, or None if unparsable."""
    parsed = parse_condition(condition)
    if not parsed.success:
        return None
    found: list[str] = []
    _collect_references(parsed.ast, found)
    return found


def validate_condition(condition: str, known_event_ids: set[str] | None = None) -> ConditionValidation:
    parsed = parse_condition(condition)
    if not parsed.success:
        return ConditionValidation(is_valid=False, errors=[f"Parse error: {parsed.error}"])

    warnings = []
    if known_event_ids is not None:
        found: list[str] = []
        _collect_references(parsed.ast, found)
        for event_id in found:
            if event_id not in known_event_ids:
                warnings.append(f"Unknown event reference: '{event_id}'")
    return ConditionValidation(is_valid=True, warnings=warnings)
