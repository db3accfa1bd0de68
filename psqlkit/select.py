"""Deferred SELECT builder."""

from __future__ import annotations

from typing import Any, Sequence

from .errors import MalformedOperationParamsError
from .models import Statement, Where
from .query import FetchMode, QueryExecutor


class SelectBuilder:
    """Collects SELECT clauses; nothing touches the database until a fetch call.

    Example::

        session.select("id", "email").from_("accounts").where(
            Structured({"status": "active"})
        ).order_by("id DESC").limit(10).fetch_all()
    """

    def __init__(self, executor: QueryExecutor, columns: Sequence[str] = ()) -> None:
        self._executor = executor
        self._columns: tuple[str, ...] = tuple(columns) or ("*",)
        self._table: str | None = None
        self._where: Where | None = None
        self._order: list[str] = []
        self._limit: int | None = None

    def from_(self, table: str) -> SelectBuilder:
        self._table = table
        return self

    def where(self, where: Where | None) -> SelectBuilder:
        """Set (or clear) the WHERE clause."""

        self._where = where
        return self

    def order_by(self, *terms: str) -> SelectBuilder:
        self._order.extend(term for term in terms if term.strip())
        return self

    def limit(self, count: int | None) -> SelectBuilder:
        if count is not None and (isinstance(count, bool) or not isinstance(count, int) or count < 0):
            raise MalformedOperationParamsError(f"LIMIT must be a non-negative integer, got {count!r}")
        self._limit = count
        return self

    def statement(self) -> Statement:
        """Assemble the statement the terminal calls will execute."""

        if not self._table:
            raise MalformedOperationParamsError("SELECT needs a table; call from_() first")
        head = f"SELECT {', '.join(self._columns)} FROM {self._table}"
        tail = ""
        if self._order:
            tail += " ORDER BY " + ", ".join(self._order)
        if self._limit is not None:
            tail += f" LIMIT {self._limit}"
        return Statement.build(head, where=self._where, tail=tail)

    def fetch_all(self, *, context: str | None = None) -> Any:
        return self._fetch(FetchMode.ALL, context)

    def fetch_array(self, *, context: str | None = None) -> Any:
        return self._fetch(FetchMode.ARRAY, context)

    def fetch_assoc(self, *, context: str | None = None) -> Any:
        return self._fetch(FetchMode.ASSOC, context)

    def fetch_column(self, *, context: str | None = None) -> Any:
        return self._fetch(FetchMode.COLUMN, context)

    def fetch_one(self, *, context: str | None = None) -> Any:
        return self._fetch(FetchMode.ONE, context)

    def fetch_pair(self, *, context: str | None = None) -> Any:
        return self._fetch(FetchMode.PAIR, context)

    def fetch_row(self, *, context: str | None = None) -> Any:
        return self._fetch(FetchMode.ROW, context)

    def _fetch(self, mode: FetchMode, context: str | None) -> Any:
        with self._executor.preparing("select", context, table=self._table):
            statement = self.statement()
        return self._executor.execute(mode, statement, context=context)


__all__ = ["SelectBuilder"]
