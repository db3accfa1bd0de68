"""Compile condition mappings into SQL boolean expressions."""

from __future__ import annotations

import re

from .errors import MalformedOperationParamsError
from .models import BindValue, ConditionSpec
from .template import array_items, is_array, is_numeric, quote_identifier, scalar_literal

_FIELD_PATTERN = re.compile(r"^([a-z][a-z0-9_]*)\s*(.*)$", re.DOTALL)


def parse_field(spec: str) -> tuple[str, str]:
    """Split ``"id between"`` into ``("id", "between")``.

    Returns an empty identifier when the key does not start with a letter.
    """

    match = _FIELD_PATTERN.match(spec.strip().lower())
    if match is None:
        return "", ""
    return match.group(1), match.group(2).strip()


def compile_fragment(field: str, operator: str, value: BindValue) -> str:
    """Build the expression for one field; an empty operator picks a default."""

    column = quote_identifier(field)
    if is_numeric(value):
        return f"{column} {operator or '='} {scalar_literal(value)}"  # type: ignore[arg-type]
    if is_array(value):
        items = array_items(value)  # type: ignore[arg-type]
        if operator == "between" and len(items) == 2:
            return f"{column} BETWEEN {items[0]} AND {items[1]}"
        if not items:
            raise MalformedOperationParamsError(f"Empty value list for condition on {field!r}")
        return f"{column} {operator or 'IN'} ({', '.join(items)})"
    if value is None:
        return f"{column} {operator or 'IS'} NULL"
    return f"{column} {operator or '='} {scalar_literal(value)}"  # type: ignore[arg-type]


def compile_conditions(conditions: ConditionSpec) -> str:
    """Join one fragment per mapping entry with ``AND``, keeping entry order."""

    fragments: list[str] = []
    for spec, value in conditions.items():
        field, operator = parse_field(spec)
        if not field:
            continue
        fragments.append(compile_fragment(field, operator, value))
    return " AND ".join(fragments)


__all__ = ["compile_conditions", "compile_fragment", "parse_field"]
