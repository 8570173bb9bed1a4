# Statement Engine - Declarative financial statement calculation engine
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Formula language used by calculated report rows.

A formula combines numbers, variable names and row-order references with
the four arithmetic operators and parentheses:

    revenue + cogs
    (@10 - @20) / @10 * 100
    -opex * 1.21

Grammar (recursive descent, left-associative, standard precedence):

    expr    := term (('+' | '-') term)*
    term    := unary (('*' | '/') unary)*
    unary   := ('+' | '-') unary | primary
    primary := number | name | '@' digits | '(' expr ')'

Names match ``[A-Za-z_][A-Za-z0-9_]*``. An order reference ``@10`` is looked
up in the evaluation context under the key ``"@10"``.

Public entry points
-------------------
- ``tokenize(expression)``     -> list of Token
- ``parse(expression, cache)`` -> AST node (raises ExpressionSyntaxError)
- ``evaluate(expression, context, cache)`` -> float or ExpressionFailure
- ``validate(expression)``     -> ExpressionValidation
- ``get_dependencies(expression)`` -> frozenset of referenced names

``evaluate`` never raises for syntax or evaluation problems: it returns an
``ExpressionFailure`` value so that callers can attribute the failure to the
row being rendered. Parsing is pure, so ASTs can be memoized per expression
text in an ``ExpressionCache`` owned by the caller.
"""

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union
from collections.abc import Mapping

from .errors import ExpressionSyntaxError


class FailureKind(str, Enum):
    INVALID_TOKEN = "InvalidToken"
    UNEXPECTED_TOKEN = "UnexpectedToken"
    UNEXPECTED_END = "UnexpectedEnd"
    MISSING_CLOSING_PARENTHESIS = "MissingClosingParenthesis"
    UNDEFINED_VARIABLE = "UndefinedVariable"
    DIVISION_BY_ZERO = "DivisionByZero"


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Token:
    type: str  # 'number', 'identifier', 'order' or 'operator'
    value: str
    position: int


_OPERATORS = "+-*/()"


def _is_name_start(char: str) -> bool:
    return char == "_" or ("a" <= char <= "z") or ("A" <= char <= "Z")


def _is_digit(char: str) -> bool:
    return "0" <= char <= "9"


def _is_name_char(char: str) -> bool:
    return _is_name_start(char) or _is_digit(char)


def tokenize(expression: str) -> list[Token]:
    """Split an expression into tokens.

    Raises:
        ExpressionSyntaxError: (kind InvalidToken) on an unexpected character,
            a malformed number or a bare '@' not followed by digits.
    """
    if not isinstance(expression, str) or not expression.strip():
        raise ExpressionSyntaxError(
            FailureKind.UNEXPECTED_END.value,
            "Expression must be a non-empty string",
            expression=str(expression) if expression is not None else "",
            position=0,
        )

    tokens: list[Token] = []
    i = 0
    n = len(expression)

    while i < n:
        char = expression[i]

        if char.isspace():
            i += 1
            continue

        if _is_digit(char):
            start = i
            while i < n and (_is_digit(expression[i]) or expression[i] == "."):
                i += 1
            text = expression[start:i]
            if text.count(".") > 1 or text.endswith("."):
                raise ExpressionSyntaxError(
                    FailureKind.INVALID_TOKEN.value,
                    f"Invalid number '{text}' at position {start}",
                    expression=expression,
                    position=start,
                )
            tokens.append(Token("number", text, start))
            continue

        if char == "@":
            start = i
            i += 1
            while i < n and _is_digit(expression[i]):
                i += 1
            if i == start + 1:
                raise ExpressionSyntaxError(
                    FailureKind.INVALID_TOKEN.value,
                    f"Invalid order reference at position {start}",
                    expression=expression,
                    position=start,
                )
            tokens.append(Token("order", expression[start:i], start))
            continue

        if _is_name_start(char):
            start = i
            while i < n and _is_name_char(expression[i]):
                i += 1
            tokens.append(Token("identifier", expression[start:i], start))
            continue

        if char in _OPERATORS:
            tokens.append(Token("operator", char, i))
            i += 1
            continue

        raise ExpressionSyntaxError(
            FailureKind.INVALID_TOKEN.value,
            f"Unexpected character '{char}' at position {i}",
            expression=expression,
            position=i,
        )

    return tokens


# ---------------------------------------------------------------------------
# AST
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class Variable:
    name: str


@dataclass(frozen=True)
class OrderRef:
    key: str  # '@10'

    @property
    def order(self) -> int:
        return int(self.key[1:])


@dataclass(frozen=True)
class Unary:
    operator: str  # '+' or '-'
    operand: "Node"


@dataclass(frozen=True)
class Binary:
    operator: str  # '+', '-', '*' or '/'
    left: "Node"
    right: "Node"


Node = Union[Number, Variable, OrderRef, Unary, Binary]


class _Parser:
    """Recursive-descent parser over a token list."""

    def __init__(self, expression: str, tokens: list[Token]) -> None:
        self.expression = expression
        self.tokens = tokens
        self.pos = 0

    def _peek(self) -> Optional[Token]:
        if self.pos < len(self.tokens):
            return self.tokens[self.pos]
        return None

    def _fail(self, kind: FailureKind, message: str, position: int) -> None:
        raise ExpressionSyntaxError(
            kind.value, message, expression=self.expression, position=position
        )

    def parse(self) -> Node:
        node = self._expr()
        token = self._peek()
        if token is not None:
            self._fail(
                FailureKind.UNEXPECTED_TOKEN,
                f"Unexpected token '{token.value}' at position {token.position}",
                token.position,
            )
        return node

    def _expr(self) -> Node:
        left = self._term()
        while True:
            token = self._peek()
            if token is None or token.type != "operator" or token.value not in "+-":
                return left
            self.pos += 1
            left = Binary(token.value, left, self._term())

    def _term(self) -> Node:
        left = self._unary()
        while True:
            token = self._peek()
            if token is None or token.type != "operator" or token.value not in "*/":
                return left
            self.pos += 1
            left = Binary(token.value, left, self._unary())

    def _unary(self) -> Node:
        token = self._peek()
        if token is not None and token.type == "operator" and token.value in "+-":
            self.pos += 1
            return Unary(token.value, self._unary())
        return self._primary()

    def _primary(self) -> Node:
        token = self._peek()
        if token is None:
            self._fail(
                FailureKind.UNEXPECTED_END,
                "Unexpected end of expression",
                len(self.expression),
            )

        if token.type == "number":
            self.pos += 1
            return Number(float(token.value))

        if token.type == "identifier":
            self.pos += 1
            return Variable(token.value)

        if token.type == "order":
            self.pos += 1
            return OrderRef(token.value)

        if token.value == "(":
            self.pos += 1
            inner = self._expr()
            closing = self._peek()
            if closing is None:
                self._fail(
                    FailureKind.MISSING_CLOSING_PARENTHESIS,
                    f"Missing closing parenthesis for '(' at position "
                    f"{token.position}",
                    len(self.expression),
                )
            if closing.value != ")":
                self._fail(
                    FailureKind.UNEXPECTED_TOKEN,
                    f"Expected ')' but found '{closing.value}' at position "
                    f"{closing.position}",
                    closing.position,
                )
            self.pos += 1
            return inner

        self._fail(
            FailureKind.UNEXPECTED_TOKEN,
            f"Unexpected token '{token.value}' at position {token.position}",
            token.position,
        )


def _parse_uncached(expression: str) -> Node:
    return _Parser(expression, tokenize(expression)).parse()


class ExpressionCache:
    """Memo table of parsed expressions, keyed by expression text.

    Parse failures are memoized as well and re-raised on lookup. The cache
    is safe to share between threads. With ``enabled=False`` every lookup
    parses from scratch and nothing is stored.
    """

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled
        self._entries: dict[str, Union[Node, ExpressionSyntaxError]] = {}
        self._lock = threading.Lock()

    def get_or_parse(self, expression: str) -> Node:
        if not self.enabled:
            return _parse_uncached(expression)

        with self._lock:
            entry = self._entries.get(expression)
        if entry is None:
            try:
                entry = _parse_uncached(expression)
            except ExpressionSyntaxError as exc:
                entry = exc
            with self._lock:
                self._entries[expression] = entry

        if isinstance(entry, ExpressionSyntaxError):
            raise entry
        return entry

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, expression: object) -> bool:
        with self._lock:
            return expression in self._entries


def parse(expression: str, cache: Optional[ExpressionCache] = None) -> Node:
    """Parse an expression into an AST.

    Args:
        expression: Formula text.
        cache: Optional memo table; when given, repeated parses of the same
            text return the same node.

    Raises:
        ExpressionSyntaxError: if the expression cannot be tokenized or parsed.
    """
    if cache is not None:
        return cache.get_or_parse(expression)
    return _parse_uncached(expression)


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExpressionFailure:
    """Failure value returned by ``evaluate``."""

    kind: FailureKind
    message: str
    expression: str = ""
    position: Optional[int] = None

    def __bool__(self) -> bool:
        return False


class _EvaluationFailed(Exception):
    def __init__(self, kind: FailureKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message


def _lookup(key: str, context: Mapping[str, float], what: str) -> float:
    if key not in context:
        raise _EvaluationFailed(
            FailureKind.UNDEFINED_VARIABLE, f"Undefined {what}: {key}"
        )
    value = context[key]
    return float(value) if value is not None else 0.0


def _eval(node: Node, context: Mapping[str, float]) -> float:
    if isinstance(node, Number):
        return node.value

    if isinstance(node, Variable):
        return _lookup(node.name, context, "variable")

    if isinstance(node, OrderRef):
        return _lookup(node.key, context, "order reference")

    if isinstance(node, Unary):
        operand = _eval(node.operand, context)
        return -operand if node.operator == "-" else operand

    if isinstance(node, Binary):
        left = _eval(node.left, context)
        right = _eval(node.right, context)
        if node.operator == "+":
            return left + right
        if node.operator == "-":
            return left - right
        if node.operator == "*":
            return left * right
        if node.operator == "/":
            if right == 0:
                raise _EvaluationFailed(
                    FailureKind.DIVISION_BY_ZERO, "Division by zero"
                )
            return left / right
        raise ValueError(f"Unknown operator: {node.operator!r}")

    raise TypeError(f"Unknown expression node: {type(node).__name__}")


def evaluate_ast(
    node: Node, context: Mapping[str, float]
) -> Union[float, ExpressionFailure]:
    """Evaluate an already parsed AST against a context."""
    try:
        return _eval(node, context)
    except _EvaluationFailed as exc:
        return ExpressionFailure(kind=exc.kind, message=exc.message)


def evaluate(
    expression: str,
    context: Mapping[str, float],
    cache: Optional[ExpressionCache] = None,
) -> Union[float, ExpressionFailure]:
    """Evaluate an expression against a mapping of name -> value.

    Returns:
        The numeric result, or an ExpressionFailure describing why the
        expression could not be parsed or evaluated.
    """
    try:
        node = parse(expression, cache)
    except ExpressionSyntaxError as exc:
        return ExpressionFailure(
            kind=FailureKind(exc.kind),
            message=exc.message,
            expression=exc.expression,
            position=exc.position,
        )

    try:
        return _eval(node, context)
    except _EvaluationFailed as exc:
        return ExpressionFailure(
            kind=exc.kind, message=exc.message, expression=expression
        )


# ---------------------------------------------------------------------------
# Validation & dependencies
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExpressionValidation:
    valid: bool
    errors: tuple[str, ...] = ()


def validate(
    expression: str, cache: Optional[ExpressionCache] = None
) -> ExpressionValidation:
    """Check that an expression is syntactically valid."""
    try:
        parse(expression, cache)
    except ExpressionSyntaxError as exc:
        return ExpressionValidation(valid=False, errors=(exc.message,))
    return ExpressionValidation(valid=True)


def _collect(node: Node, found: set[str]) -> None:
    if isinstance(node, Number):
        return
    if isinstance(node, Variable):
        found.add(node.name)
    elif isinstance(node, OrderRef):
        found.add(node.key)
    elif isinstance(node, Unary):
        _collect(node.operand, found)
    elif isinstance(node, Binary):
        _collect(node.left, found)
        _collect(node.right, found)
    else:
        raise TypeError(f"Unknown expression node: {type(node).__name__}")


def dependencies_of(node: Node) -> frozenset[str]:
    found: set[str] = set()
    _collect(node, found)
    return frozenset(found)


def get_dependencies(
    expression: str, cache: Optional[ExpressionCache] = None
) -> frozenset[str]:
    """Return the variable names and '@N' keys referenced by an expression.

    Raises:
        ExpressionSyntaxError: if the expression is not valid.
    """
    return dependencies_of(parse(expression, cache))


def is_order_reference(name: str) -> bool:
    return (
        len(name) > 1
        and name.startswith("@")
        and all(_is_digit(char) for char in name[1:])
    )
