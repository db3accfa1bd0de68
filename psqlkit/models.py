"""Shared dataclasses and value types used across the connector modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Mapping, Sequence, Union

from .errors import MalformedOperationParamsError

Scalar = Union[None, bool, int, float, Decimal, str, bytes]
BindValue = Union[Scalar, Sequence[Scalar]]
"""A positional bind value: NULL, a number, text, or an array of those."""

ConditionSpec = Mapping[str, BindValue]
"""Field specification (``"age"``, ``"id between"``, ``"name like"``) to value."""

DEFAULT_SERVER = "default"


@dataclass(frozen=True, slots=True)
class ServerProfile:
    """Runtime representation of a server profile."""

    name: str
    host: str = "localhost"
    port: int | None = None
    database: str = "postgres"
    username: str = "postgres"
    password: str = ""
    charset: str = "UTF8"
    options: Mapping[str, object] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class StatementResult:
    """Raw output of one executed statement, before fetch-mode shaping."""

    columns: tuple[str, ...]
    rows: tuple[tuple[object, ...], ...]
    status: str

    @property
    def affected_rows(self) -> int:
        """Row count parsed from the command tag (``UPDATE 3``, ``INSERT 0 2``)."""

        tail = self.status.rsplit(None, 1)[-1] if self.status else ""
        return int(tail) if tail.isdigit() else 0


@dataclass(frozen=True, slots=True)
class QueryLogEntry:
    """One executed statement, recorded while the query log is enabled."""

    server: str | None
    query: str
    caller: str | None
    duration_ms: float


@dataclass(frozen=True, slots=True)
class RawFragment:
    """A WHERE clause written by hand, with its own positional bind values."""

    text: str
    bindings: tuple[BindValue, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "bindings", tuple(self.bindings))


@dataclass(frozen=True, slots=True)
class Structured:
    """A WHERE clause compiled from a condition mapping."""

    conditions: ConditionSpec


Where = Union[RawFragment, Structured]


@dataclass(frozen=True, slots=True)
class Statement:
    """A statement ready for execution.

    ``prefix`` is emitted verbatim ahead of ``template``; it holds text that is
    already rendered, such as quoted identifiers and literal SET values.
    ``template`` is scanned for placeholders and filled from ``bindings``.
    ``conditions`` are compiled into a WHERE clause appended after rendering,
    followed by ``tail`` verbatim. Nothing appended after rendering is scanned
    again, so quoted values can never be mistaken for placeholders.
    """

    template: str
    bindings: tuple[BindValue, ...] = ()
    conditions: ConditionSpec | None = None
    tail: str = ""
    prefix: str = ""

    @classmethod
    def build(
        cls,
        head: str,
        bindings: Sequence[BindValue] = (),
        *,
        where: Where | None = None,
        tail: str = "",
        prefix: str = "",
    ) -> Statement:
        """Attach an optional WHERE clause to ``head``.

        A blank raw fragment means no WHERE clause, and must carry no bindings.
        """

        if isinstance(where, RawFragment):
            if not where.text.strip():
                if where.bindings:
                    raise MalformedOperationParamsError(
                        f"Blank WHERE fragment with {len(where.bindings)} bind value(s)"
                    )
                return cls(head, tuple(bindings), tail=tail, prefix=prefix)
            return cls(
                f"{head} WHERE {where.text}", (*bindings, *where.bindings), tail=tail, prefix=prefix
            )
        if isinstance(where, Structured):
            return cls(
                head, tuple(bindings), conditions=where.conditions or None, tail=tail, prefix=prefix
            )
        return cls(head, tuple(bindings), tail=tail, prefix=prefix)


__all__ = [
    "BindValue",
    "ConditionSpec",
    "DEFAULT_SERVER",
    "QueryLogEntry",
    "RawFragment",
    "Scalar",
    "ServerProfile",
    "Statement",
    "StatementResult",
    "Structured",
    "Where",
]
