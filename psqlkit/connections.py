"""Connection handles and the router that caches one handle per server profile."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Callable, Coroutine, Mapping, Protocol, TypeVar, runtime_checkable

import asyncpg

from .errors import (
    DatabaseConnectionError,
    NoActiveConnectionError,
    ServerSwitchDuringTransactionError,
    UnderlyingDriverError,
)
from .models import DEFAULT_SERVER, ServerProfile, StatementResult
from .template import quote_literal

LOG = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_OPTIONS: Mapping[str, object] = {
    "timeout": 5.0,
    "statement_cache_size": 0,
}


@runtime_checkable
class ConnectionHandle(Protocol):
    """An open connection able to run literal SQL."""

    def fetch(self, sql: str) -> StatementResult:
        """Run one statement and return its rows, columns and command tag."""

    def execute(self, sql: str) -> str:
        """Run one or more statements and return the last command tag."""

    def is_closed(self) -> bool:
        """True once the underlying connection is gone."""

    def close(self) -> None:
        """Close the connection."""


class Connector(Protocol):
    """Factory opening connection handles for server profiles."""

    def open(self, profile: ServerProfile, options: Mapping[str, object]) -> ConnectionHandle:
        """Open a new connection using the merged driver options."""

    def shutdown(self) -> None:
        """Release resources held by the connector."""


class AsyncpgConnection:
    """Synchronous facade over an ``asyncpg`` connection."""

    def __init__(self, connection: Any, runner: Callable[[Coroutine[Any, Any, Any]], Any]) -> None:
        self._connection = connection
        self._run = runner

    def fetch(self, sql: str) -> StatementResult:
        return self._run(self._fetch(sql))

    def execute(self, sql: str) -> str:
        return self._run(self._execute(sql))

    def is_closed(self) -> bool:
        return bool(self._connection.is_closed())

    def close(self) -> None:
        if not self.is_closed():
            self._run(self._connection.close())

    async def _fetch(self, sql: str) -> StatementResult:
        try:
            statement = await self._connection.prepare(sql)
            records = await statement.fetch()
        except Exception as exc:
            raise _driver_error(exc) from exc
        columns = tuple(str(attribute.name) for attribute in statement.get_attributes())
        rows = tuple(tuple(record.values()) for record in records)
        return StatementResult(columns=columns, rows=rows, status=statement.get_statusmsg() or "")

    async def _execute(self, sql: str) -> str:
        try:
            return await self._connection.execute(sql)
        except Exception as exc:
            raise _driver_error(exc) from exc


class AsyncpgConnector:
    """Opens ``asyncpg`` connections on a private event loop thread."""

    def __init__(self) -> None:
        self._loop = asyncio.new_event_loop()
        self._loop_thread = threading.Thread(
            target=self._loop.run_forever,
            name="psqlkit-asyncpg-loop",
            daemon=True,
        )
        self._loop_thread.start()

    def open(self, profile: ServerProfile, options: Mapping[str, object]) -> AsyncpgConnection:
        kwargs = self._connect_kwargs(profile, options)
        try:
            connection = self._run(asyncpg.connect(**kwargs))
        except Exception as exc:
            raise DatabaseConnectionError(f"Failed to connect to server '{profile.name}': {exc}") from exc
        return AsyncpgConnection(connection, self._run)

    def shutdown(self) -> None:
        """Stop the background event loop."""

        if not self._loop.is_running():  # pragma: no cover
            return
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._loop_thread.join(timeout=1)

    def __del__(self) -> None:  # pragma: no cover - best effort cleanup
        try:
            self.shutdown()
        except Exception:
            pass

    def _run(self, coro: Coroutine[Any, Any, T]) -> T:
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result()

    @staticmethod
    def _connect_kwargs(profile: ServerProfile, options: Mapping[str, object]) -> dict[str, object]:
        kwargs: dict[str, object] = dict(options)
        kwargs["host"] = profile.host or "localhost"
        if profile.port is not None:
            kwargs["port"] = profile.port
        kwargs["database"] = profile.database
        kwargs["user"] = profile.username
        if profile.password:
            kwargs["password"] = profile.password
        return kwargs


def _driver_error(exc: Exception) -> UnderlyingDriverError:
    if isinstance(exc, UnderlyingDriverError):
        return exc
    code = getattr(exc, "sqlstate", None) if isinstance(exc, asyncpg.PostgresError) else None
    return UnderlyingDriverError(str(exc) or type(exc).__name__, code=code)


class ConnectionRouter:
    """Resolves server profile names to cached, lazily opened handles.

    Handles live as long as the router; nothing here closes them except
    :meth:`close_all`.
    """

    def __init__(
        self,
        profiles: Mapping[str, ServerProfile],
        connector: Connector,
        *,
        defaults: Mapping[str, object] | None = None,
        current: str | None = None,
        is_locked: Callable[[], bool] = lambda: False,
    ) -> None:
        self._profiles = dict(profiles)
        self._connector = connector
        self._defaults = {**DEFAULT_OPTIONS, **(defaults or {})}
        self._pool: dict[str, ConnectionHandle] = {}
        self._current = current if current in self._profiles else None
        self._is_locked = is_locked

    @property
    def current_server(self) -> str | None:
        return self._current

    @property
    def pool(self) -> Mapping[str, ConnectionHandle]:
        """Snapshot of open handles keyed by profile name."""

        return dict(self._pool)

    def switch(self, name: str) -> None:
        """Make ``name`` the server used by subsequent operations."""

        if name not in self._profiles:
            raise DatabaseConnectionError(f"Server profile '{name}' not found.")
        self._guard_switch(name)
        self._current = name

    def resolve(self, name: str | None = None) -> ConnectionHandle:
        """Return the handle for ``name``, the current server, or ``default``."""

        server = self._choose(name)
        self._guard_switch(server)
        handle = self._pool.get(server)
        if handle is None or handle.is_closed():
            handle = self._open(self._profiles[server])
            self._pool[server] = handle
        self._current = server
        return handle

    def active(self) -> ConnectionHandle:
        """Handle of the current server, without opening anything."""

        handle = self._pool.get(self._current) if self._current else None
        if handle is None or handle.is_closed():
            raise NoActiveConnectionError("No connection")
        return handle

    def close_all(self) -> None:
        for name, handle in list(self._pool.items()):
            try:
                handle.close()
            finally:
                self._pool.pop(name, None)
        self._connector.shutdown()

    def _choose(self, name: str | None) -> str:
        if name is not None:
            if name in self._profiles:
                return name
            LOG.warning("Unknown server profile requested", extra={"server": name})
        if self._current is not None:
            return self._current
        if DEFAULT_SERVER in self._profiles:
            return DEFAULT_SERVER
        raise DatabaseConnectionError(f"No server profile named '{DEFAULT_SERVER}' is configured.")

    def _guard_switch(self, server: str) -> None:
        if self._current is not None and server != self._current and self._is_locked():
            raise ServerSwitchDuringTransactionError(
                f"Cannot switch server from '{self._current}' to '{server}' inside a transaction."
            )

    def _open(self, profile: ServerProfile) -> ConnectionHandle:
        options = {**self._defaults, **profile.options}
        handle = self._connector.open(profile, options)
        try:
            handle.execute(f"SET client_encoding TO {quote_literal(profile.charset)}")
        except Exception as exc:
            handle.close()
            raise DatabaseConnectionError(
                f"Failed to set charset '{profile.charset}' on server '{profile.name}': {exc}"
            ) from exc
        LOG.debug("Opened connection", extra={"server": profile.name, "host": profile.host})
        return handle


__all__ = [
    "AsyncpgConnection",
    "AsyncpgConnector",
    "ConnectionHandle",
    "ConnectionRouter",
    "Connector",
    "DEFAULT_OPTIONS",
]
