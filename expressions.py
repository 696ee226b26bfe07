"""Arithmetic evaluation of transaction expressions.

An expression is a small formula such as ``"1200 * 12 / 13"`` or
``"-(45.90 + 12)"``. The accepted grammar is deliberately narrow::

    expression := term (("+" | "-") term)*
    term       := unary (("*" | "/") unary)*
    unary      := ("+" | "-") unary | primary
    primary    := NUMBER | NAME | NAME "(" args ")" | "(" expression ")"
    args       := expression ("," expression)*

Names resolve against a fixed table of constants (``pi``, ``e``) and
built-in functions. Reference tokens (``$id``) are never accepted here;
they must be substituted with plain numbers before evaluation.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP, localcontext
from typing import Callable, Optional

from config import get_settings

WHITESPACE_RE = re.compile(r"\s+")
ALLOWED_RE = re.compile(r"^[0-9+\-*/().,a-zA-Z]+$")
NUMBER_RE = re.compile(r"(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")
NAME_RE = re.compile(r"[a-zA-Z][a-zA-Z0-9]*")

# Largest finite float has 309 integer digits
ROUND_PRECISION = 400
MAX_NESTING = 100

CONSTANTS: dict[str, float] = {
    "pi": math.pi,
    "e": math.e,
}


class InvalidExpressionError(ValueError):
    def __init__(self, expression: str, reason: str) -> None:
        self.expression = expression
        self.reason = reason
        super().__init__(f'Cannot evaluate expression "{expression}": {reason}')


class UnsafeExpressionError(InvalidExpressionError):
    pass


class UndefinedSymbolError(InvalidExpressionError):
    def __init__(self, expression: str, symbol: str) -> None:
        self.symbol = symbol
        super().__init__(expression, f'Undefined symbol "{symbol}"')


class NonNumericResultError(InvalidExpressionError):
    pass


def _round(value: float, digits: float = 0) -> float:
    if not float(digits).is_integer() or digits < 0:
        raise ValueError("round() digits must be a non-negative integer")
    with localcontext() as ctx:
        ctx.prec = ROUND_PRECISION
        quantum = Decimal(1).scaleb(-int(digits))
        return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class _Function:
    min_args: int
    max_args: Optional[int]
    impl: Callable[..., float]


FUNCTIONS: dict[str, _Function] = {
    "abs": _Function(1, 1, abs),
    "round": _Function(1, 2, _round),
    "floor": _Function(1, 1, math.floor),
    "ceil": _Function(1, 1, math.ceil),
    "min": _Function(1, None, min),
    "max": _Function(1, None, max),
    "sqrt": _Function(1, 1, math.sqrt),
}


@dataclass(frozen=True)
class _Token:
    kind: str  # number, name, op, lparen, rparen, comma
    text: str
    position: int


def _tokenize(expression: str, cleaned: str) -> list[_Token]:
    tokens: list[_Token] = []
    pos = 0
    while pos < len(cleaned):
        char = cleaned[pos]
        if char.isdigit() or char == ".":
            match = NUMBER_RE.match(cleaned, pos)
            if not match:
                raise InvalidExpressionError(
                    expression, f'Unexpected character "{char}" at position {pos}'
                )
            tokens.append(_Token("number", match.group(), pos))
            pos = match.end()
        elif char.isalpha():
            match = NAME_RE.match(cleaned, pos)
            tokens.append(_Token("name", match.group(), pos))
            pos = match.end()
        elif char in "+-*/":
            tokens.append(_Token("op", char, pos))
            pos += 1
        elif char == "(":
            tokens.append(_Token("lparen", char, pos))
            pos += 1
        elif char == ")":
            tokens.append(_Token("rparen", char, pos))
            pos += 1
        else:
            # ALLOWED_RE leaves "," as the only remaining character
            tokens.append(_Token("comma", char, pos))
            pos += 1
    return tokens


class _Parser:
    def __init__(self, expression: str, tokens: list[_Token]) -> None:
        self.expression = expression
        self.tokens = tokens
        self.index = 0
        self.depth = 0

    def parse(self) -> float:
        value = self._expression()
        token = self._peek()
        if token is not None:
            raise self._unexpected(token)
        return value

    def _peek(self) -> Optional[_Token]:
        if self.index < len(self.tokens):
            return self.tokens[self.index]
        return None

    def _advance(self) -> _Token:
        token = self._peek()
        if token is None:
            raise InvalidExpressionError(
                self.expression, "Unexpected end of expression"
            )
        self.index += 1
        return token

    def _unexpected(self, token: _Token) -> InvalidExpressionError:
        return InvalidExpressionError(
            self.expression,
            f'Unexpected "{token.text}" at position {token.position}',
        )

    def _expect(self, kind: str) -> _Token:
        token = self._advance()
        if token.kind != kind:
            raise self._unexpected(token)
        return token

    def _expression(self) -> float:
        value = self._term()
        while True:
            token = self._peek()
            if token is None or token.kind != "op" or token.text not in "+-":
                return value
            self.index += 1
            right = self._term()
            value = value + right if token.text == "+" else value - right

    def _term(self) -> float:
        value = self._unary()
        while True:
            token = self._peek()
            if token is None or token.kind != "op" or token.text not in "*/":
                return value
            self.index += 1
            right = self._unary()
            if token.text == "*":
                value = value * right
            elif right == 0:
                raise NonNumericResultError(
                    self.expression, "Division by zero results in a non-finite value"
                )
            else:
                value = value / right

    def _unary(self) -> float:
        # Every parenthesis, argument and sign passes through here
        self.depth += 1
        try:
            if self.depth > MAX_NESTING:
                raise InvalidExpressionError(
                    self.expression, "Expression is nested too deeply"
                )
            token = self._peek()
            if token is not None and token.kind == "op" and token.text in "+-":
                self.index += 1
                operand = self._unary()
                return -operand if token.text == "-" else operand
            return self._primary()
        finally:
            self.depth -= 1

    def _primary(self) -> float:
        token = self._advance()
        if token.kind == "number":
            return float(token.text)
        if token.kind == "lparen":
            value = self._expression()
            self._expect("rparen")
            return value
        if token.kind == "name":
            following = self._peek()
            if following is not None and following.kind == "lparen":
                return self._call(token)
            if token.text not in CONSTANTS:
                raise UndefinedSymbolError(self.expression, token.text)
            return CONSTANTS[token.text]
        raise self._unexpected(token)

    def _call(self, name: _Token) -> float:
        function = FUNCTIONS.get(name.text)
        if function is None:
            raise UndefinedSymbolError(self.expression, name.text)
        self._expect("lparen")
        args = [self._expression()]
        while True:
            token = self._advance()
            if token.kind == "rparen":
                break
            if token.kind != "comma":
                raise self._unexpected(token)
            args.append(self._expression())

        if len(args) < function.min_args or (
            function.max_args is not None and len(args) > function.max_args
        ):
            raise InvalidExpressionError(
                self.expression,
                f"Wrong number of arguments for {name.text}(): {len(args)}",
            )
        try:
            return float(function.impl(*args))
        except (ValueError, ArithmeticError) as exc:
            raise NonNumericResultError(
                self.expression, f"{name.text}() returned no real number: {exc}"
            ) from exc


def evaluate(expression: str) -> float:
    """Evaluate an arithmetic expression to a finite float.

    Whitespace is stripped before the character check, so ``"1 2"`` reads as
    ``12``. Every failure is an ``InvalidExpressionError`` (or subclass) whose
    message names the expression exactly as given.
    """
    original = "" if expression is None else str(expression)
    cleaned = WHITESPACE_RE.sub("", original)
    if not cleaned:
        raise InvalidExpressionError(original, "Expression is empty")
    if not ALLOWED_RE.match(cleaned):
        raise UnsafeExpressionError(
            original, f"Unsafe characters in expression: {original}"
        )

    result = _Parser(original, _tokenize(original, cleaned)).parse()
    if not math.isfinite(result):
        raise NonNumericResultError(
            original, f"Expression result is not a number: {original}"
        )
    return result


def format_number(value: float) -> str:
    """Render a number the way it is substituted back into an expression."""
    value = float(value)
    if value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    return repr(value)


def clean_expression(raw: Optional[str], max_length: Optional[int] = None) -> str:
    if max_length is None:
        max_length = get_settings().expression_max_length
    if raw is None:
        return "0"
    value = str(raw).strip()
    if not value:
        return "0"
    if len(value) > max_length:
        raise ValueError(f"Expression is too long (max {max_length} characters)")
    return value


def has_references(expression: str) -> bool:
    return "$" in (expression or "")
