"""Positional placeholder substitution for SQL templates.

Templates use ``?`` as the placeholder. The scan walks the template one
character at a time and tracks single quotes, so a ``?`` that sits inside a
string literal is copied as-is while every other ``?`` is replaced by the
next bind value rendered as a SQL literal. The template is never parsed.
"""

from __future__ import annotations

import math
from collections import deque
from decimal import Decimal
from typing import Iterable

from .errors import InsufficientBindingError, MalformedOperationParamsError, NonUtf8ValueError
from .models import BindValue, Scalar

PLACEHOLDER = "?"
QUOTE = "'"
ESCAPE = "\\"


def ensure_text(value: str | bytes) -> str:
    """Return ``value`` as ``str`` after checking it is valid UTF-8."""

    if isinstance(value, bytes):
        try:
            return value.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise NonUtf8ValueError(f"Non UTF-8 sequence in bind value: {value!r}") from exc
    try:
        value.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise NonUtf8ValueError(f"Non UTF-8 sequence in bind value: {value!r}") from exc
    return value


def quote_literal(value: str | bytes) -> str:
    """Quote text the way PostgreSQL's ``quote_literal`` does."""

    text = ensure_text(value)
    escaped = text.replace(QUOTE, QUOTE * 2)
    if ESCAPE in escaped:
        return f"E'{escaped.replace(ESCAPE, ESCAPE * 2)}'"
    return f"'{escaped}'"


def quote_identifier(name: str) -> str:
    """Double-quote a column or table identifier."""

    return '"' + ensure_text(name).replace('"', '""') + '"'


def is_numeric(value: object) -> bool:
    """True for ints, floats and decimals; booleans are not numbers here."""

    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def is_array(value: object) -> bool:
    return isinstance(value, (list, tuple))


def scalar_literal(value: Scalar) -> str:
    """Render a single non-array bind value as SQL literal text."""

    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return repr(value) if math.isfinite(value) else quote_literal(str(value))
    if isinstance(value, Decimal):
        return str(value) if value.is_finite() else quote_literal(str(value))
    if isinstance(value, (str, bytes)):
        return quote_literal(value)
    raise TypeError(f"Unsupported bind value type: {type(value).__name__}")


def array_items(values: Iterable[Scalar]) -> list[str]:
    items: list[str] = []
    for item in values:
        if is_array(item):
            raise TypeError("Nested arrays cannot be bound to a placeholder")
        items.append(scalar_literal(item))
    return items


def to_literal(value: BindValue) -> str:
    """Render a bind value; arrays become a comma list for ``IN (?)``."""

    if is_array(value):
        return ",".join(array_items(value))  # type: ignore[arg-type]
    return scalar_literal(value)  # type: ignore[arg-type]


def render(template: str, bindings: Iterable[BindValue] = ()) -> str:
    """Replace every unquoted placeholder in ``template`` with a bind value.

    Bind values are consumed left to right. A quote preceded by a backslash
    does not open or close a literal.

    Raises:
        InsufficientBindingError: more placeholders than bind values.
        MalformedOperationParamsError: bind values left over after the scan.
        NonUtf8ValueError: a text value is not valid UTF-8.
    """

    pending = deque(bindings)
    parts: list[str] = []
    quotes = 0
    previous = ""
    for char in template:
        if char == QUOTE and previous != ESCAPE:
            quotes += 1
            parts.append(char)
        elif char == PLACEHOLDER and quotes % 2 == 0:
            if not pending:
                raise InsufficientBindingError(f"Not enough bind values for query: {template}")
            parts.append(to_literal(pending.popleft()))
        else:
            parts.append(char)
        previous = char
    if pending:
        raise MalformedOperationParamsError(
            f"{len(pending)} bind value(s) left unused by query: {template}"
        )
    return "".join(parts)


__all__ = [
    "PLACEHOLDER",
    "ensure_text",
    "is_array",
    "is_numeric",
    "quote_identifier",
    "quote_literal",
    "render",
    "scalar_literal",
    "to_literal",
]
