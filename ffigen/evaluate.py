"""Constant value evaluation for enum initializers and macros.

Only numeric literals and the punctuation ``+ - << >> ( )`` are accepted.
The accepted tokens are joined back into an expression and evaluated with
a small :mod:`ast` walker, so nothing outside that grammar is ever run.
Anything else (identifiers, casts, ``sizeof``, string literals, other
operators) yields a failed :class:`Evaluation` which callers report and
skip.

Example
-------
::

    result = evaluate_tokens(cursor.get_tokens())
    if result.ok:
        value = result.value
    else:
        print(f"Warning: {result.error}", file=sys.stderr)
"""

from __future__ import (
    annotations,
)

import ast
import operator
from collections.abc import (
    Callable,
    Iterable,
)
from dataclasses import (
    dataclass,
)
from typing import (
    Any,
    Optional,
    Union,
)

from clang.cindex import (
    TokenKind,
)

ALLOWED_PUNCTUATION = frozenset(["+", "-", "<<", ">>", "(", ")"])

# Wider shifts are undefined in C for every integer type
MAX_SHIFT = 64


def _checked_shift(shift: Callable[[Any, Any], Any]) -> Callable[[Any, Any], Any]:
    def apply(value: Any, count: Any) -> Any:
        if isinstance(count, int) and count > MAX_SHIFT:
            raise ValueError(f"shift count {count} exceeds {MAX_SHIFT}")
        return shift(value, count)

    return apply


_BINARY_OPERATORS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.LShift: _checked_shift(operator.lshift),
    ast.RShift: _checked_shift(operator.rshift),
}

_UNARY_OPERATORS = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

_INTEGER_SUFFIXES = ("ULL", "LLU", "LL", "UL", "LU", "U", "L")


@dataclass
class Evaluation:
    """Outcome of evaluating a token sequence.

    :param value: The computed value when evaluation succeeded.
    :param error: Why evaluation failed, or None.
    :param expression: The reassembled expression, when one was built.
    """

    value: Optional[Union[int, float]] = None
    error: Optional[str] = None
    expression: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def parse_numeric_literal(spelling: str) -> Optional[Union[int, float]]:
    """Parse a C numeric literal, ignoring type suffixes.

    :returns: The value, or None if ``spelling`` is not numeric.
    """
    token = spelling.replace("'", "")  # C23 digit separators
    lowered = token.lower()
    is_hex = lowered.startswith("0x")

    if not is_hex and ("." in token or "e" in lowered):
        if token.endswith(("f", "F", "l", "L")):
            token = token[:-1]
        try:
            return float(token)
        except ValueError:
            return None

    upper = token.upper()
    for suffix in _INTEGER_SUFFIXES:
        if upper.endswith(suffix):
            token = token[: -len(suffix)]
            break

    try:
        if is_hex:
            return int(token, 16)
        if lowered.startswith("0b"):
            return int(token, 2)
        if token.startswith("0") and len(token) > 1 and token[1:].isdigit():
            return int(token, 8)
        return int(token)
    except ValueError:
        return None


def _evaluate_node(node: ast.AST) -> Union[int, float]:
    if isinstance(node, ast.Expression):
        return _evaluate_node(node.body)
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
        return node.value
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPERATORS:
        return _BINARY_OPERATORS[type(node.op)](_evaluate_node(node.left), _evaluate_node(node.right))
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPERATORS:
        return _UNARY_OPERATORS[type(node.op)](_evaluate_node(node.operand))
    raise ValueError(f"unsupported expression element {type(node).__name__}")


def evaluate_tokens(tokens: Iterable[Any]) -> Evaluation:
    """Evaluate a literal/arithmetic token sequence.

    :param tokens: Front-end tokens (anything with ``kind`` and ``spelling``).
    :returns: An :class:`Evaluation`; never raises for bad input.
    """
    parts: list[str] = []
    for token in tokens:
        spelling = token.spelling
        if token.kind == TokenKind.LITERAL:
            value = parse_numeric_literal(spelling)
            if value is None:
                return Evaluation(error=f"unsupported literal {spelling!r}")
            parts.append(repr(value))
        elif token.kind == TokenKind.PUNCTUATION:
            if spelling not in ALLOWED_PUNCTUATION:
                return Evaluation(error=f"unsupported operator {spelling!r}")
            parts.append(spelling)
        elif token.kind == TokenKind.COMMENT:
            continue
        else:
            return Evaluation(error=f"unsupported token {spelling!r}")

    if not parts:
        return Evaluation(error="empty expression")

    expression = " ".join(parts)
    try:
        value = _evaluate_node(ast.parse(expression, mode="eval"))
    except (SyntaxError, ValueError, TypeError, OverflowError) as e:
        return Evaluation(error=f"cannot evaluate {expression!r}: {e}", expression=expression)
    return Evaluation(value=value, expression=expression)
