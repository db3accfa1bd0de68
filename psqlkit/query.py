"""Statement execution and result shaping."""

from __future__ import annotations

import contextlib
import logging
import time
from enum import Enum
from types import SimpleNamespace
from typing import Any, Iterator, Sequence

from .conditions import compile_conditions
from .connections import ConnectionRouter
from .errors import CriticalLogger, MalformedOperationParamsError, PsqlkitError, report_critical
from .models import BindValue, QueryLogEntry, Statement, StatementResult
from .template import render
from .transactions import TransactionCoordinator

LOG = logging.getLogger(__name__)


class FetchMode(str, Enum):
    """Requested shape of a statement's result."""

    ALL = "fetch_all"
    ARRAY = "fetch_array"
    ASSOC = "fetch_assoc"
    COLUMN = "fetch_column"
    ONE = "fetch_one"
    PAIR = "fetch_pair"
    ROW = "fetch_row"
    QUERY = "query"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"

    @property
    def mutating(self) -> bool:
        return self in (FetchMode.INSERT, FetchMode.UPDATE, FetchMode.DELETE)


def render_statement(statement: Statement) -> str:
    """Produce the final literal SQL for ``statement``."""

    sql = statement.prefix + render(statement.template, statement.bindings)
    if statement.conditions:
        clause = compile_conditions(statement.conditions)
        if not clause:
            raise MalformedOperationParamsError(
                f"No usable field in WHERE conditions: {list(statement.conditions)!r}"
            )
        sql = f"{sql} WHERE {clause}"
    return sql + statement.tail


class QueryExecutor:
    """Runs statements through the router and shapes their results.

    Any failure rolls back the open transaction before propagating.
    """

    def __init__(
        self,
        router: ConnectionRouter,
        transactions: TransactionCoordinator,
        *,
        log_queries: bool = False,
        critical_logger: CriticalLogger | None = None,
    ) -> None:
        self._router = router
        self._transactions = transactions
        self._critical_logger = critical_logger
        self.log_queries = log_queries
        self._log: list[QueryLogEntry] = []

    @property
    def query_log(self) -> tuple[QueryLogEntry, ...]:
        return tuple(self._log)

    def clear_log(self) -> None:
        self._log.clear()

    def execute(
        self,
        mode: FetchMode,
        statement: Statement | str,
        bindings: Sequence[BindValue] = (),
        *,
        context: str | None = None,
    ) -> Any:
        """Render, run and shape one statement."""

        if isinstance(statement, str):
            statement = Statement(statement, tuple(bindings))
        sql: str | None = None
        try:
            handle = self._router.resolve()
            sql = render_statement(statement)
            started = time.perf_counter()
            if mode is FetchMode.QUERY:
                handle.execute(sql)
                result = None
            else:
                result = handle.fetch(sql)
            duration_ms = (time.perf_counter() - started) * 1000
            LOG.debug(
                "Executed statement",
                extra={"server": self._router.current_server, "duration_ms": round(duration_ms, 3)},
            )
            self._record(sql, duration_ms, context)
            return shape_result(mode, result)
        except Exception as exc:
            self._transactions.abort()
            report_critical(
                self._critical_logger,
                exc,
                {
                    "mode": mode.value,
                    "query": sql or statement.prefix + statement.template,
                    "bindings": statement.bindings,
                    "caller": context,
                },
            )
            raise

    @contextlib.contextmanager
    def preparing(self, operation: str, context: str | None = None, **details: object) -> Iterator[None]:
        """Guard statement assembly: failures roll back and are reported."""

        try:
            yield
        except PsqlkitError as exc:
            self._transactions.abort()
            report_critical(self._critical_logger, exc, {"mode": operation, "caller": context, **details})
            raise

    def _record(self, sql: str, duration_ms: float, context: str | None) -> None:
        if not self.log_queries:
            return
        self._log.append(
            QueryLogEntry(
                server=self._router.current_server,
                query=sql,
                caller=context,
                duration_ms=duration_ms,
            )
        )


def shape_result(mode: FetchMode, result: StatementResult | None) -> Any:
    """Convert raw statement output into the shape ``mode`` asks for."""

    if mode is FetchMode.QUERY or result is None:
        return True
    columns, rows = result.columns, result.rows
    if mode.mutating:
        if not columns:
            return result.affected_rows
        if len(columns) == 1:
            return [row[0] for row in rows]
        return [_record(columns, row) for row in rows]
    if mode is FetchMode.ALL:
        return [_record(columns, row) for row in rows]
    if mode is FetchMode.ARRAY:
        return [dict(zip(columns, row)) for row in rows]
    if mode is FetchMode.ONE:
        return rows[0][0] if rows and columns else None
    if mode is FetchMode.ROW:
        return _record(columns, rows[0]) if rows else None
    if mode is FetchMode.COLUMN:
        return [row[0] for row in rows]
    if mode is FetchMode.PAIR:
        if rows and len(columns) < 2:
            raise MalformedOperationParamsError("fetch_pair needs at least two result columns")
        return {row[0]: row[1] for row in rows}
    if mode is FetchMode.ASSOC:
        return {row[0]: _record(columns[1:], row[1:]) for row in rows}
    raise ValueError(f"Unsupported fetch mode: {mode!r}")  # pragma: no cover


def _record(columns: Sequence[str], row: Sequence[object]) -> SimpleNamespace:
    return SimpleNamespace(**dict(zip(columns, row)))


__all__ = ["FetchMode", "QueryExecutor", "render_statement", "shape_result"]
