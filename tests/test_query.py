"""Tests for statement execution and result shaping."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from psqlkit.connections import ConnectionRouter
from psqlkit.errors import InsufficientBindingError, MalformedOperationParamsError, UnderlyingDriverError
from psqlkit.models import RawFragment, ServerProfile, Statement, StatementResult
from psqlkit.query import FetchMode, QueryExecutor, render_statement, shape_result
from psqlkit.transactions import TransactionCoordinator

ROWS = StatementResult(
    columns=("id", "email"),
    rows=((1, "anna@example.com"), (2, "ben@example.com")),
    status="SELECT 2",
)
NO_ROWS = StatementResult(columns=("id", "email"), rows=(), status="SELECT 0")


def _executor(connector, **kwargs) -> tuple[QueryExecutor, TransactionCoordinator]:  # type: ignore[no-untyped-def]
    router = ConnectionRouter({"default": ServerProfile(name="default")}, connector)
    transactions = TransactionCoordinator(router)
    return QueryExecutor(router, transactions, **kwargs), transactions


def test_fetch_all_returns_records() -> None:
    records = shape_result(FetchMode.ALL, ROWS)

    assert records[0].id == 1
    assert records[1].email == "ben@example.com"


def test_fetch_array_returns_dicts() -> None:
    assert shape_result(FetchMode.ARRAY, ROWS) == [
        {"id": 1, "email": "anna@example.com"},
        {"id": 2, "email": "ben@example.com"},
    ]


def test_scalar_and_column_modes() -> None:
    assert shape_result(FetchMode.ONE, ROWS) == 1
    assert shape_result(FetchMode.ONE, NO_ROWS) is None
    assert shape_result(FetchMode.COLUMN, ROWS) == [1, 2]
    assert shape_result(FetchMode.PAIR, ROWS) == {1: "anna@example.com", 2: "ben@example.com"}


def test_row_and_assoc_modes() -> None:
    assert shape_result(FetchMode.ROW, ROWS) == SimpleNamespace(id=1, email="anna@example.com")
    assert shape_result(FetchMode.ROW, NO_ROWS) is None
    assert shape_result(FetchMode.ASSOC, ROWS) == {
        1: SimpleNamespace(email="anna@example.com"),
        2: SimpleNamespace(email="ben@example.com"),
    }


def test_pair_needs_two_columns() -> None:
    single = StatementResult(columns=("id",), rows=((1,),), status="SELECT 1")

    with pytest.raises(MalformedOperationParamsError):
        shape_result(FetchMode.PAIR, single)


def test_mutations_return_counts_or_returned_values() -> None:
    assert shape_result(FetchMode.UPDATE, StatementResult((), (), "UPDATE 3")) == 3
    assert shape_result(FetchMode.INSERT, StatementResult((), (), "INSERT 0 2")) == 2
    assert shape_result(FetchMode.INSERT, StatementResult(("id",), ((7,), (8,)), "INSERT 0 2")) == [7, 8]
    assert shape_result(FetchMode.DELETE, ROWS) == [
        SimpleNamespace(id=1, email="anna@example.com"),
        SimpleNamespace(id=2, email="ben@example.com"),
    ]


def test_render_statement_appends_conditions_after_rendering() -> None:
    statement = Statement(
        "UPDATE accounts SET note = ?",
        ("n?",),
        conditions={"email": "it's ?"},
        tail=" RETURNING id",
    )

    assert render_statement(statement) == (
        "UPDATE accounts SET note = 'n?' WHERE \"email\" = 'it''s ?' RETURNING id"
    )


def test_render_statement_keeps_prefix_out_of_the_scan() -> None:
    statement = Statement(" WHERE id = ?", (3,), prefix="UPDATE t SET \"why?\" = 'it''s'")

    assert render_statement(statement) == "UPDATE t SET \"why?\" = 'it''s' WHERE id = 3"


def test_render_statement_rejects_conditions_without_usable_fields() -> None:
    with pytest.raises(MalformedOperationParamsError, match="1id"):
        render_statement(Statement("DELETE FROM accounts", conditions={"1id": 5}))


def test_blank_raw_fragment_with_bindings_is_rejected() -> None:
    with pytest.raises(MalformedOperationParamsError):
        Statement.build("DELETE FROM accounts", where=RawFragment("", (1,)))


def test_query_mode_runs_without_fetching(connector) -> None:
    executor, _ = _executor(connector)

    assert executor.execute(FetchMode.QUERY, "CREATE TABLE t (id int); DROP TABLE t") is True
    assert connector.statements() == ["CREATE TABLE t (id int); DROP TABLE t"]


def test_execute_renders_bindings_and_shapes(connector) -> None:
    executor, _ = _executor(connector)
    connector.queue(("count",), [(4,)])

    count = executor.execute(FetchMode.ONE, "SELECT count(*) FROM accounts WHERE status = ?", ["active"])

    assert count == 4
    assert connector.statements() == ["SELECT count(*) FROM accounts WHERE status = 'active'"]


def test_query_log_records_only_when_enabled(connector) -> None:
    executor, _ = _executor(connector)
    executor.execute(FetchMode.ALL, "SELECT 1")
    assert executor.query_log == ()

    executor.log_queries = True
    executor.execute(FetchMode.ALL, "SELECT ?", [2], context="reports.daily")

    (entry,) = executor.query_log
    assert entry.server == "default"
    assert entry.query == "SELECT 2"
    assert entry.caller == "reports.daily"
    assert entry.duration_ms >= 0
    executor.clear_log()
    assert executor.query_log == ()


def test_driver_failure_rolls_back_open_transaction(connector) -> None:
    executor, transactions = _executor(connector)
    transactions.begin()
    transactions.begin()
    connector.fail()

    with pytest.raises(UnderlyingDriverError):
        executor.execute(FetchMode.ALL, "SELECT * FROM missing")

    assert transactions.level == 0
    assert connector.statements() == ["BEGIN", "SELECT * FROM missing", "ROLLBACK"]


def test_template_failure_rolls_back_before_execution(connector) -> None:
    executor, transactions = _executor(connector)
    transactions.begin()

    with pytest.raises(InsufficientBindingError):
        executor.execute(FetchMode.ALL, "SELECT * FROM t WHERE a = ? AND b = ?", [1])

    assert transactions.level == 0
    assert connector.statements() == ["BEGIN", "ROLLBACK"]


def test_failures_reach_the_critical_logger(connector, critical_logger) -> None:
    executor, _ = _executor(connector, critical_logger=critical_logger)
    connector.fail("syntax error", code="42601")

    with pytest.raises(UnderlyingDriverError):
        executor.execute(FetchMode.ALL, "SELEC 1", context="jobs.import")

    message, context = critical_logger.records[0]
    assert "syntax error" in message
    assert context["query"] == "SELEC 1"
    assert context["caller"] == "jobs.import"


def test_broken_critical_logger_does_not_mask_error(connector) -> None:
    class _Broken:
        def critical(self, msg, *args, **kwargs):  # type: ignore[no-untyped-def]
            raise RuntimeError("logger down")

    executor, _ = _executor(connector, critical_logger=_Broken())
    connector.fail()

    with pytest.raises(UnderlyingDriverError):
        executor.execute(FetchMode.ALL, "SELECT 1")
