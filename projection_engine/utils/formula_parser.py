"""Constrained arithmetic formula parser and evaluator for driver formulas.

Formulas are operator-authored data, never host code. They are reduced to
a closed arithmetic expression by textual substitution and then parsed by
a small recursive-descent parser that only understands numbers, the
arithmetic and comparison operators, parentheses, and the conditional
``test ? a : b``.

Grammar (lowest to highest precedence)::

    expression     := conditional
    conditional    := comparison ( "?" expression ":" expression )?
    comparison     := additive ( ("<" | "<=" | ">" | ">=" | "==" | "!=") additive )*
    additive       := multiplicative ( ("+" | "-") multiplicative )*
    multiplicative := unary ( ("*" | "/") unary )*
    unary          := ("+" | "-") unary | power
    power          := primary ( "**" unary )?
    primary        := NUMBER | "(" expression ")"
"""

import math
import operator
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Sequence

from projection_engine.errors import FormulaEvaluationError, MissingDependencyValueError
from projection_engine.models.driver import ValueTable

PREV_YEAR_TOKEN = "PREV_YEAR"
CURRENT_YEAR_TOKEN = "CURRENT_YEAR"


class FormulaSyntaxError(ValueError):
    """Malformed expression text. Surfaced as FormulaEvaluationError."""


class TokenType(Enum):
    NUMBER = "NUMBER"
    IDENTIFIER = "IDENTIFIER"
    OPERATOR = "OPERATOR"
    LPAREN = "("
    RPAREN = ")"
    QUESTION = "?"
    COLON = ":"
    EOF = "EOF"


@dataclass(frozen=True)
class Token:
    type: TokenType
    value: Any
    position: int


class Tokenizer:
    """Splits an expression into tokens."""

    NUMBER_PATTERN = re.compile(r"(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
    IDENTIFIER_PATTERN = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
    # Longest operators first so "**" is not read as two "*"
    OPERATORS = ("**", "<=", ">=", "==", "!=", "+", "-", "*", "/", "<", ">")
    PUNCTUATION = {
        "(": TokenType.LPAREN,
        ")": TokenType.RPAREN,
        "?": TokenType.QUESTION,
        ":": TokenType.COLON,
    }

    def __init__(self, source: str) -> None:
        self.source = source

    def tokenize(self) -> list[Token]:
        tokens: list[Token] = []
        pos = 0
        length = len(self.source)

        while pos < length:
            ch = self.source[pos]

            if ch.isspace():
                pos += 1
                continue

            match = self.NUMBER_PATTERN.match(self.source, pos)
            if match:
                tokens.append(Token(TokenType.NUMBER, float(match.group()), pos))
                pos = match.end()
                continue

            match = self.IDENTIFIER_PATTERN.match(self.source, pos)
            if match:
                tokens.append(Token(TokenType.IDENTIFIER, match.group(), pos))
                pos = match.end()
                continue

            if ch in self.PUNCTUATION:
                tokens.append(Token(self.PUNCTUATION[ch], ch, pos))
                pos += 1
                continue

            for op in self.OPERATORS:
                if self.source.startswith(op, pos):
                    tokens.append(Token(TokenType.OPERATOR, op, pos))
                    pos += len(op)
                    break
            else:
                raise FormulaSyntaxError(
                    f"unexpected character '{ch}' at position {pos}"
                )

        tokens.append(Token(TokenType.EOF, None, length))
        return tokens


# ── Expression tree ─────────────────────────────────────────────
#
# Evaluation is deferred to the tree so the untaken branch of a
# conditional is never evaluated (e.g. "B != 0 ? A / B : 0").


@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class UnaryOp:
    op: str
    operand: Any


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: Any
    right: Any


@dataclass(frozen=True)
class Conditional:
    test: Any
    if_true: Any
    if_false: Any


def _compare(fn: Callable[[float, float], bool]) -> Callable[[float, float], float]:
    return lambda a, b: 1.0 if fn(a, b) else 0.0


BINARY_OPERATORS: dict[str, Callable[[float, float], float]] = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": operator.truediv,
    "**": operator.pow,
    "<": _compare(operator.lt),
    "<=": _compare(operator.le),
    ">": _compare(operator.gt),
    ">=": _compare(operator.ge),
    "==": _compare(operator.eq),
    "!=": _compare(operator.ne),
}

COMPARISON_OPERATORS = ("<", "<=", ">", ">=", "==", "!=")


class Parser:
    """Recursive-descent parser producing an expression tree."""

    def __init__(self, tokens: list[Token]) -> None:
        self.tokens = tokens
        self.pos = 0

    def parse(self) -> Any:
        node = self._expression()
        if self._peek().type != TokenType.EOF:
            token = self._peek()
            raise FormulaSyntaxError(
                f"unexpected '{token.value}' at position {token.position}"
            )
        return node

    def _peek(self) -> Token:
        return self.tokens[self.pos]

    def _advance(self) -> Token:
        token = self.tokens[self.pos]
        self.pos += 1
        return token

    def _match_operator(self, *ops: str) -> str | None:
        token = self._peek()
        if token.type == TokenType.OPERATOR and token.value in ops:
            self._advance()
            return token.value
        return None

    def _expect(self, token_type: TokenType) -> Token:
        token = self._peek()
        if token.type != token_type:
            found = "end of formula" if token.type == TokenType.EOF else f"'{token.value}'"
            raise FormulaSyntaxError(
                f"expected '{token_type.value}' but found {found} "
                f"at position {token.position}"
            )
        return self._advance()

    def _expression(self) -> Any:
        return self._conditional()

    def _conditional(self) -> Any:
        test = self._comparison()
        if self._peek().type == TokenType.QUESTION:
            self._advance()
            if_true = self._expression()
            self._expect(TokenType.COLON)
            if_false = self._expression()
            return Conditional(test, if_true, if_false)
        return test

    def _comparison(self) -> Any:
        node = self._additive()
        while (op := self._match_operator(*COMPARISON_OPERATORS)) is not None:
            node = BinaryOp(op, node, self._additive())
        return node

    def _additive(self) -> Any:
        node = self._multiplicative()
        while (op := self._match_operator("+", "-")) is not None:
            node = BinaryOp(op, node, self._multiplicative())
        return node

    def _multiplicative(self) -> Any:
        node = self._unary()
        while (op := self._match_operator("*", "/")) is not None:
            node = BinaryOp(op, node, self._unary())
        return node

    def _unary(self) -> Any:
        op = self._match_operator("+", "-")
        if op is not None:
            return UnaryOp(op, self._unary())
        return self._power()

    def _power(self) -> Any:
        base = self._primary()
        if self._match_operator("**") is not None:
            # Right-associative: 2 ** 3 ** 2 == 2 ** 9
            return BinaryOp("**", base, self._unary())
        return base

    def _primary(self) -> Any:
        token = self._peek()

        if token.type == TokenType.NUMBER:
            self._advance()
            return Number(token.value)

        if token.type == TokenType.LPAREN:
            self._advance()
            node = self._expression()
            self._expect(TokenType.RPAREN)
            return node

        if token.type == TokenType.IDENTIFIER:
            raise FormulaSyntaxError(
                f"unknown reference '{token.value}' at position {token.position}"
            )

        if token.type == TokenType.EOF:
            raise FormulaSyntaxError("unexpected end of formula")

        raise FormulaSyntaxError(
            f"unexpected '{token.value}' at position {token.position}"
        )


def evaluate_tree(node: Any) -> float:
    """Reduce an expression tree to a float."""
    if isinstance(node, Number):
        return node.value
    if isinstance(node, UnaryOp):
        value = evaluate_tree(node.operand)
        return -value if node.op == "-" else value
    if isinstance(node, Conditional):
        if evaluate_tree(node.test) != 0.0:
            return evaluate_tree(node.if_true)
        return evaluate_tree(node.if_false)
    if isinstance(node, BinaryOp):
        left = evaluate_tree(node.left)
        right = evaluate_tree(node.right)
        result = BINARY_OPERATORS[node.op](left, right)
        if isinstance(result, complex):
            # Negative base with fractional exponent
            raise ValueError("result is not a real number")
        return float(result)
    raise TypeError(f"unknown expression node {node!r}")


def evaluate_expression(expression: str, formula: str | None = None) -> float:
    """
    Parse and evaluate a closed arithmetic expression.

    Args:
        expression: Expression containing only numeric literals and operators.
        formula: Original formula text, used in error messages.

    Returns:
        Finite float result.

    Raises:
        FormulaEvaluationError: If the expression is malformed or does not
            reduce to a finite number.

    Example:
        >>> evaluate_expression("500 * (1 + 0.05)")
        525.0
    """
    source = formula if formula is not None else expression
    try:
        tree = Parser(Tokenizer(expression).tokenize()).parse()
        result = evaluate_tree(tree)
    except ZeroDivisionError as exc:
        raise FormulaEvaluationError(source, "division by zero") from exc
    except OverflowError as exc:
        raise FormulaEvaluationError(source, "numeric overflow") from exc
    except ValueError as exc:
        raise FormulaEvaluationError(source, str(exc)) from exc
    except RecursionError as exc:
        raise FormulaEvaluationError(source, "expression nested too deeply") from exc

    if not math.isfinite(result):
        raise FormulaEvaluationError(source, f"result {result} is not a finite number")
    return result


class FormulaEvaluator:
    """
    Evaluates a driver formula for one target year against a value table.

    Substitution runs in two passes:

    1. ``PREV_YEAR`` and ``CURRENT_YEAR`` become ``year - 1`` and ``year``.
    2. Every whole-word occurrence of a dependency's display name becomes
       that dependency's value at the target year. ``Name[<year>]`` reads
       the value at an explicit year instead, which is how a formula looks
       back in time (``Revenue[PREV_YEAR]``). A driver may read its own
       earlier values this way; it may never read its own current or
       future value.

    Example:
        >>> table = ValueTable()
        >>> table.set("students", 2025, 500)
        >>> table.set("tuition", 2025, 1000)
        >>> FormulaEvaluator().evaluate(
        ...     "Students * Tuition",
        ...     [("students", "Students"), ("tuition", "Tuition")],
        ...     2025,
        ...     table,
        ... )
        500000.0
    """

    YEAR_INDEX = r"(?:\s*\[\s*(\d+)\s*\])"

    def evaluate(
        self,
        formula: str,
        references: Sequence[tuple[str, str]],
        year: int,
        table: ValueTable,
        own: tuple[str, str] | None = None,
    ) -> float:
        """
        Evaluate ``formula`` for ``year``.

        Args:
            formula: Formula text as authored.
            references: Ordered (driver id, display name) pairs of the
                formula's dependencies.
            year: Target year.
            table: Value lookup.
            own: (driver id, display name) of the driver being evaluated,
                enabling lagged self-references.

        Returns:
            Finite float result.

        Raises:
            MissingDependencyValueError: If a referenced value is absent.
            FormulaEvaluationError: If the substituted expression is invalid
                or does not reduce to a finite number.
        """
        expression = self.substitute(formula, references, year, table, own)
        return evaluate_expression(expression, formula)

    def substitute(
        self,
        formula: str,
        references: Sequence[tuple[str, str]],
        year: int,
        table: ValueTable,
        own: tuple[str, str] | None = None,
    ) -> str:
        """Return the closed arithmetic expression for ``formula`` at ``year``."""
        expression = self._substitute_year_tokens(formula, year)

        names = [(driver_id, name, False) for driver_id, name in references]
        if own is not None:
            names.append((own[0], own[1], True))

        # Longest names first so "Revenue" never eats into "Revenue Growth"
        for driver_id, name, is_own in sorted(
            names, key=lambda ref: len(ref[1]), reverse=True
        ):
            if is_own:
                # Own values are only readable at an explicit earlier year
                pattern = re.compile(
                    rf"(?<![\w.]){re.escape(name)}(?!\w){self.YEAR_INDEX}"
                )
                expression = pattern.sub(
                    lambda m, d=driver_id, n=name: self._lookup_own(
                        formula, table, d, n, m, year
                    ),
                    expression,
                )
                continue

            pattern = re.compile(
                rf"(?<![\w.]){re.escape(name)}(?!\w){self.YEAR_INDEX}?"
            )
            expression = pattern.sub(
                lambda m, d=driver_id, n=name: self._lookup(
                    table, d, n, self._index_year(m, year)
                ),
                expression,
            )

        return expression

    @staticmethod
    def _substitute_year_tokens(formula: str, year: int) -> str:
        expression = re.sub(rf"\b{PREV_YEAR_TOKEN}\b", str(year - 1), formula)
        return re.sub(rf"\b{CURRENT_YEAR_TOKEN}\b", str(year), expression)

    @staticmethod
    def _index_year(match: re.Match, year: int) -> int:
        index = match.group(1)
        return year if index is None else int(index)

    def _lookup_own(
        self,
        formula: str,
        table: ValueTable,
        driver_id: str,
        name: str,
        match: re.Match,
        year: int,
    ) -> str:
        lookup_year = int(match.group(1))
        if lookup_year >= year:
            raise FormulaEvaluationError(
                formula,
                f"driver '{name}' cannot read its own value for year {lookup_year} "
                f"while computing year {year}",
            )
        return self._lookup(table, driver_id, name, lookup_year)

    @staticmethod
    def _lookup(table: ValueTable, driver_id: str, name: str, year: int) -> str:
        value = table.get(driver_id, year)
        if value is None:
            raise MissingDependencyValueError(driver_id, year, driver_name=name)
        literal = repr(float(value))
        return f"({literal})" if value < 0 else literal
