"""Constrained boolean expression language for adaptive rules.

Grammar (lowest to highest precedence):

    expr        := or_expr
    or_expr     := and_expr ( "||" and_expr )*
    and_expr    := equality ( "&&" equality )*
    equality    := relational ( ( "==" | "!=" ) relational )*
    relational  := unary ( ( "<" | "<=" | ">" | ">=" ) unary )*
    unary       := ( "!" | "-" ) unary | primary
    primary     := NUMBER | STRING | "true" | "false" | "null"
                 | PATH | "(" expr ")"

PATH is a dotted identifier (``dimensions10.demand``) resolved against the
context mapping; missing segments resolve to None. Strings are single-quoted.
There are no calls, assignments or attribute access beyond plain mapping/list
lookups, so an expression can only read the context it is given.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Mapping, Union

MAX_EXPRESSION_LENGTH = 2000
MAX_NESTING_DEPTH = 64
# Binary operators per expression; bounds the depth of flat chains like a < b < c ...
MAX_BINARY_OPERATORS = 128

# Anything outside identifiers, digits, whitespace and ().!<>=&|'.:- is rejected
_UNSAFE_CHARS = re.compile(r"[^\w\s().!<>=&|'.:\-]")
_NON_ASCII = re.compile(r"[^\x00-\x7f]")

_TOKEN_SPEC = [
    ("WS", r"\s+"),
    ("NUMBER", r"\d+(?:\.\d+)?"),
    ("STRING", r"'[^']*'"),
    ("PATH", r"[A-Za-z_][\w.]*"),
    ("OP", r"\|\||&&|==|!=|<=|>=|<|>|!|-"),
    ("LPAREN", r"\("),
    ("RPAREN", r"\)"),
]
_TOKEN_RE = re.compile("|".join(f"(?P<{name}>{pattern})" for name, pattern in _TOKEN_SPEC))

_KEYWORDS = {"true": True, "false": False, "null": None}


class RuleExpressionError(ValueError):
    """Base error for rule expressions that cannot be evaluated."""


class UnsafeExpressionError(RuleExpressionError):
    """Expression contains characters or structure outside the allow-list."""


class ExpressionSyntaxError(RuleExpressionError):
    """Expression does not conform to the grammar."""


# ============================================================================
# Tokens & AST
# ============================================================================


@dataclass(frozen=True)
class Token:
    kind: str
    text: str
    pos: int


@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class Path:
    parts: tuple[str, ...]


@dataclass(frozen=True)
class Unary:
    op: str
    operand: "Node"


@dataclass(frozen=True)
class Binary:
    op: str
    left: "Node"
    right: "Node"


Node = Union[Literal, Path, Unary, Binary]


# ============================================================================
# Tokenizer
# ============================================================================


def check_expression_safety(expr: str) -> None:
    """
    Scan raw expression text against the character allow-list.

    Raises:
        UnsafeExpressionError: On any disallowed character or oversize input
    """
    if len(expr) > MAX_EXPRESSION_LENGTH:
        raise UnsafeExpressionError(f"Expression longer than {MAX_EXPRESSION_LENGTH} chars")
    match = _UNSAFE_CHARS.search(expr) or _NON_ASCII.search(expr)
    if match:
        raise UnsafeExpressionError(
            f"Disallowed character {match.group()!r} at position {match.start()}"
        )


def tokenize(expr: str) -> list[Token]:
    """Split a safe expression into tokens (whitespace dropped)."""
    tokens: list[Token] = []
    pos = 0
    while pos < len(expr):
        match = _TOKEN_RE.match(expr, pos)
        if not match:
            raise ExpressionSyntaxError(f"Unexpected {expr[pos]!r} at position {pos}")
        kind = match.lastgroup
        if kind != "WS":
            tokens.append(Token(kind, match.group(), pos))
        pos = match.end()
    return tokens


# ============================================================================
# Parser
# ============================================================================


class _Parser:
    def __init__(self, tokens: list[Token]):
        self.tokens = tokens
        self.index = 0
        self.depth = 0
        self.operators = 0

    def peek(self) -> Token | None:
        return self.tokens[self.index] if self.index < len(self.tokens) else None

    def accept(self, *ops: str) -> Token | None:
        token = self.peek()
        if token is not None and token.kind == "OP" and token.text in ops:
            self.index += 1
            return token
        return None

    def parse(self) -> Node:
        if not self.tokens:
            raise ExpressionSyntaxError("Empty expression")
        node = self.or_expr()
        leftover = self.peek()
        if leftover is not None:
            raise ExpressionSyntaxError(
                f"Unexpected {leftover.text!r} at position {leftover.pos}"
            )
        return node

    def _binary_level(self, ops: tuple[str, ...], operand) -> Node:
        node = operand()
        while True:
            token = self.accept(*ops)
            if token is None:
                return node
            self.operators += 1
            if self.operators > MAX_BINARY_OPERATORS:
                raise UnsafeExpressionError(
                    f"More than {MAX_BINARY_OPERATORS} binary operators"
                )
            node = Binary(token.text, node, operand())

    def or_expr(self) -> Node:
        return self._binary_level(("||",), self.and_expr)

    def and_expr(self) -> Node:
        return self._binary_level(("&&",), self.equality)

    def equality(self) -> Node:
        return self._binary_level(("==", "!="), self.relational)

    def relational(self) -> Node:
        return self._binary_level(("<", "<=", ">", ">="), self.unary)

    def unary(self) -> Node:
        token = self.accept("!", "-")
        if token is None:
            return self.primary()
        self._enter()
        try:
            return Unary(token.text, self.unary())
        finally:
            self.depth -= 1

    def primary(self) -> Node:
        token = self.peek()
        if token is None:
            raise ExpressionSyntaxError("Unexpected end of expression")
        self.index += 1

        if token.kind == "NUMBER":
            return Literal(float(token.text) if "." in token.text else int(token.text))
        if token.kind == "STRING":
            return Literal(token.text[1:-1])
        if token.kind == "PATH":
            if token.text in _KEYWORDS:
                return Literal(_KEYWORDS[token.text])
            parts = tuple(token.text.split("."))
            if any(not part for part in parts):
                raise ExpressionSyntaxError(f"Malformed path {token.text!r}")
            return Path(parts)
        if token.kind == "LPAREN":
            self._enter()
            try:
                node = self.or_expr()
            finally:
                self.depth -= 1
            closing = self.peek()
            if closing is None or closing.kind != "RPAREN":
                raise ExpressionSyntaxError(f"Unclosed '(' at position {token.pos}")
            self.index += 1
            return node

        raise ExpressionSyntaxError(f"Unexpected {token.text!r} at position {token.pos}")

    def _enter(self) -> None:
        self.depth += 1
        if self.depth > MAX_NESTING_DEPTH:
            raise UnsafeExpressionError(f"Nesting deeper than {MAX_NESTING_DEPTH}")


@lru_cache(maxsize=512)
def parse_expression(expr: str) -> Node:
    """
    Parse an expression into an immutable AST.

    Raises:
        UnsafeExpressionError: If the text fails the allow-list scan
        ExpressionSyntaxError: If the text is not a valid expression
    """
    check_expression_safety(expr)
    return _Parser(tokenize(expr)).parse()


# ============================================================================
# Evaluation
# ============================================================================


def resolve_path(ctx: Any, parts: tuple[str, ...]) -> Any:
    """Walk mapping keys / list indices; anything missing yields None."""
    value = ctx
    for part in parts:
        if isinstance(value, Mapping) and part in value:
            value = value[part]
        elif isinstance(value, (list, tuple)) and part.isdigit() and int(part) < len(value):
            value = value[int(part)]
        else:
            return None
    return value


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def truthy(value: Any) -> bool:
    if value is None or value is False:
        return False
    if _is_number(value):
        return value != 0 and not math.isnan(value)
    if isinstance(value, str):
        return value != ""
    return True


def _equals(left: Any, right: Any) -> bool:
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return left == right


def _compare(op: str, left: Any, right: Any) -> bool:
    # Ordering only between two numbers or two strings; anything else is false
    comparable = (_is_number(left) and _is_number(right)) or (
        isinstance(left, str) and isinstance(right, str)
    )
    if not comparable:
        return False
    if op == "<":
        return left < right
    if op == "<=":
        return left <= right
    if op == ">":
        return left > right
    return left >= right


def _eval(node: Node, ctx: Mapping[str, Any]) -> Any:
    if isinstance(node, Literal):
        return node.value
    if isinstance(node, Path):
        return resolve_path(ctx, node.parts)
    if isinstance(node, Unary):
        operand = _eval(node.operand, ctx)
        if node.op == "!":
            return not truthy(operand)
        return -operand if _is_number(operand) else None

    if node.op == "&&":
        return truthy(_eval(node.left, ctx)) and truthy(_eval(node.right, ctx))
    if node.op == "||":
        return truthy(_eval(node.left, ctx)) or truthy(_eval(node.right, ctx))

    left = _eval(node.left, ctx)
    right = _eval(node.right, ctx)
    if node.op == "==":
        return _equals(left, right)
    if node.op == "!=":
        return not _equals(left, right)
    return _compare(node.op, left, right)


def evaluate_expression(expr: str, ctx: Mapping[str, Any]) -> bool:
    """
    Parse (cached) and evaluate an expression against a context mapping.

    Returns:
        Truthiness of the expression result

    Raises:
        RuleExpressionError: If the expression is unsafe or malformed
    """
    node = parse_expression(expr)
    try:
        return truthy(_eval(node, ctx))
    except RecursionError as e:
        raise UnsafeExpressionError("Expression too deeply nested to evaluate") from e
