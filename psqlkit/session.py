"""Session object exposing the public database operations."""

from __future__ import annotations

import contextlib
from typing import Any, Callable, Iterator, Mapping, Sequence, TypeVar

from .config import ConnectorConfig
from .connections import AsyncpgConnector, ConnectionRouter, Connector
from .errors import CriticalLogger, MalformedOperationParamsError, PsqlkitError, report_critical
from .models import BindValue, QueryLogEntry, RawFragment, Statement, Structured, Where
from .query import FetchMode, QueryExecutor
from .select import SelectBuilder
from .template import PLACEHOLDER, quote_identifier, to_literal
from .transactions import TransactionCoordinator

T = TypeVar("T")


class Session:
    """One logical database session.

    A session owns its connection pool, transaction counter and query log.
    None of them are synchronized: share a session between threads only
    behind an external lock.
    """

    def __init__(
        self,
        config: ConnectorConfig | None = None,
        *,
        connector: Connector | None = None,
        critical_logger: CriticalLogger | None = None,
    ) -> None:
        config = config or ConnectorConfig()
        self._critical_logger = critical_logger
        self._router = ConnectionRouter(
            config.profiles(),
            connector or AsyncpgConnector(),
            defaults=config.options,
            current=config.active_server,
            is_locked=lambda: self._transactions.active,
        )
        self._transactions = TransactionCoordinator(self._router)
        self._executor = QueryExecutor(
            self._router,
            self._transactions,
            log_queries=config.log_queries,
            critical_logger=critical_logger,
        )

    def __enter__(self) -> Session:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def current_server(self) -> str | None:
        """Name of the server profile used by the next operation."""

        return self._router.current_server

    @property
    def transaction_level(self) -> int:
        return self._transactions.level

    @property
    def query_log(self) -> tuple[QueryLogEntry, ...]:
        """Snapshot of statements recorded while the query log was enabled."""

        return self._executor.query_log

    def enable_query_log(self, enabled: bool = True) -> Session:
        self._executor.log_queries = bool(enabled)
        return self

    def clear_query_log(self) -> None:
        self._executor.clear_log()

    def use(self, name: str) -> Session:
        """Switch the active server; refused while a transaction is open."""

        try:
            self._router.switch(name)
        except PsqlkitError as exc:
            report_critical(self._critical_logger, exc, {"server": name})
            raise
        return self

    def close(self) -> None:
        """Close every pooled connection."""

        self._router.close_all()

    # Transactions

    def begin(self) -> Session:
        self._transactions.begin()
        return self

    def commit(self) -> Session:
        self._transactions.commit()
        return self

    def rollback(self) -> Session:
        self._transactions.rollback()
        return self

    def transaction(self, callback: Callable[[Session], T]) -> T:
        """Run ``callback(session)`` in a transaction; roll back if it raises."""

        return self._transactions.run(lambda: callback(self))

    @contextlib.contextmanager
    def atomic(self) -> Iterator[Session]:
        with self._transactions.scope():
            yield self

    # Queries

    def query(self, sql: str, bindings: Sequence[BindValue] = (), *, context: str | None = None) -> bool:
        return self._executor.execute(FetchMode.QUERY, sql, bindings, context=context)

    def fetch_all(self, sql: str, bindings: Sequence[BindValue] = (), *, context: str | None = None) -> Any:
        """Rows as attribute-access records."""

        return self._executor.execute(FetchMode.ALL, sql, bindings, context=context)

    def fetch_array(self, sql: str, bindings: Sequence[BindValue] = (), *, context: str | None = None) -> Any:
        """Rows as column-name dictionaries."""

        return self._executor.execute(FetchMode.ARRAY, sql, bindings, context=context)

    def fetch_assoc(self, sql: str, bindings: Sequence[BindValue] = (), *, context: str | None = None) -> Any:
        """Rows keyed by their first column; the other columns form the record."""

        return self._executor.execute(FetchMode.ASSOC, sql, bindings, context=context)

    def fetch_column(self, sql: str, bindings: Sequence[BindValue] = (), *, context: str | None = None) -> Any:
        return self._executor.execute(FetchMode.COLUMN, sql, bindings, context=context)

    def fetch_one(self, sql: str, bindings: Sequence[BindValue] = (), *, context: str | None = None) -> Any:
        return self._executor.execute(FetchMode.ONE, sql, bindings, context=context)

    def fetch_pair(self, sql: str, bindings: Sequence[BindValue] = (), *, context: str | None = None) -> Any:
        return self._executor.execute(FetchMode.PAIR, sql, bindings, context=context)

    def fetch_row(self, sql: str, bindings: Sequence[BindValue] = (), *, context: str | None = None) -> Any:
        return self._executor.execute(FetchMode.ROW, sql, bindings, context=context)

    def select(self, *columns: str) -> SelectBuilder:
        return SelectBuilder(self._executor, columns)

    def quote(self, value: BindValue) -> str:
        """Render ``value`` as a SQL literal."""

        try:
            return to_literal(value)
        except PsqlkitError as exc:
            report_critical(self._critical_logger, exc, {"value": value})
            raise

    # Mutations

    def insert(
        self,
        table: str,
        columns: Sequence[str],
        rows: Sequence[Sequence[BindValue]],
        returning: bool = True,
        *,
        context: str | None = None,
    ) -> Any:
        """Insert ``rows`` and return the new ids (one id for a single row).

        With ``returning=False`` the affected-row count is returned instead.
        """

        with self._executor.preparing("insert", context, table=table):
            if isinstance(columns, str) or not columns:
                raise MalformedOperationParamsError("insert needs a non-empty sequence of column names")
            if isinstance(rows, (str, bytes)) or not rows:
                raise MalformedOperationParamsError("insert needs at least one row")
            bindings: list[BindValue] = []
            for row in rows:
                if not isinstance(row, (list, tuple)) or len(row) != len(columns):
                    raise MalformedOperationParamsError(
                        f"Each row must hold {len(columns)} values, got {row!r}"
                    )
                bindings.extend(row)
            group = "(" + ", ".join(PLACEHOLDER * len(columns)) + ")"
            names = ", ".join(quote_identifier(column) for column in columns)
            statement = Statement(
                "VALUES " + ", ".join([group] * len(rows)),
                tuple(bindings),
                tail=" RETURNING id" if returning else "",
                prefix=f"INSERT INTO {table} ({names}) ",
            )
        result = self._executor.execute(FetchMode.INSERT, statement, context=context)
        if isinstance(result, list) and len(result) == 1:
            return result[0]
        return result

    def update(
        self,
        table: str,
        data: Mapping[str, BindValue],
        where: Where | None = None,
        *,
        context: str | None = None,
    ) -> Any:
        """Set ``data`` on matching rows; returns the affected-row count."""

        with self._executor.preparing("update", context, table=table):
            if not isinstance(data, Mapping) or not data:
                raise MalformedOperationParamsError("update needs a non-empty column mapping")
            self._check_where(where)
            assignments = ", ".join(
                f"{quote_identifier(column)} = {to_literal(value)}" for column, value in data.items()
            )
            statement = Statement.build("", where=where, prefix=f"UPDATE {table} SET {assignments}")
        return self._executor.execute(FetchMode.UPDATE, statement, context=context)

    def delete(
        self,
        table: str,
        where: Where | None = None,
        returning: bool = False,
        *,
        context: str | None = None,
    ) -> Any:
        """Delete matching rows; returns the count, or the deleted rows when ``returning``."""

        with self._executor.preparing("delete", context, table=table):
            self._check_where(where)
            statement = Statement.build(
                "",
                where=where,
                prefix=f"DELETE FROM {table}",
                tail=" RETURNING *" if returning else "",
            )
        return self._executor.execute(FetchMode.DELETE, statement, context=context)

    @staticmethod
    def _check_where(where: object) -> None:
        if where is not None and not isinstance(where, (RawFragment, Structured)):
            raise MalformedOperationParamsError(
                f"WHERE must be a RawFragment or Structured value, got {type(where).__name__}"
            )


__all__ = ["Session"]
