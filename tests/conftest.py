"""Shared fakes standing in for live PostgreSQL connections."""

from __future__ import annotations

from typing import Mapping

import pytest

from psqlkit.errors import UnderlyingDriverError
from psqlkit.models import ServerProfile, StatementResult

EMPTY = StatementResult(columns=(), rows=(), status="SELECT 0")


class FakeHandle:
    """Records every statement; ``fetch`` replays results queued on the connector."""

    def __init__(self, connector: "FakeConnector", profile: ServerProfile) -> None:
        self.connector = connector
        self.profile = profile
        self.statements: list[str] = []
        self.closed = False

    def fetch(self, sql: str) -> StatementResult:
        self.statements.append(sql)
        if self.connector.fail_with is not None:
            raise self.connector.fail_with
        if self.connector.results:
            return self.connector.results.pop(0)
        return EMPTY

    def execute(self, sql: str) -> str:
        self.statements.append(sql)
        if sql == "COMMIT":
            return self.connector.commit_status
        if self.connector.fail_with is not None and not sql.startswith(("SET", "BEGIN", "ROLLBACK")):
            raise self.connector.fail_with
        return sql.split(None, 1)[0].upper()

    def is_closed(self) -> bool:
        return self.closed

    def close(self) -> None:
        self.closed = True


class FakeConnector:
    def __init__(self) -> None:
        self.opened: list[tuple[str, dict[str, object]]] = []
        self.handles: dict[str, FakeHandle] = {}
        self.results: list[StatementResult] = []
        self.fail_with: Exception | None = None
        self.commit_status = "COMMIT"
        self.shutdown_called = False

    def open(self, profile: ServerProfile, options: Mapping[str, object]) -> FakeHandle:
        self.opened.append((profile.name, dict(options)))
        handle = FakeHandle(self, profile)
        self.handles[profile.name] = handle
        return handle

    def shutdown(self) -> None:
        self.shutdown_called = True

    def queue(self, columns: tuple[str, ...], rows: list[tuple[object, ...]], status: str = "") -> None:
        self.results.append(
            StatementResult(columns=columns, rows=tuple(rows), status=status or f"SELECT {len(rows)}")
        )

    def fail(self, message: str = "relation does not exist", code: str = "42P01") -> None:
        self.fail_with = UnderlyingDriverError(message, code=code)

    def statements(self, server: str = "default") -> list[str]:
        """Statements run on ``server``, minus the charset setup."""

        return [sql for sql in self.handles[server].statements if not sql.startswith("SET client_encoding")]


class RecordingLogger:
    def __init__(self) -> None:
        self.records: list[tuple[str, dict[str, object]]] = []

    def critical(self, msg: object, *args: object, **kwargs: object) -> None:
        extra = kwargs.get("extra") or {}
        self.records.append((str(msg), dict(extra.get("context", {}))))  # type: ignore[union-attr]


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def critical_logger() -> RecordingLogger:
    return RecordingLogger()
