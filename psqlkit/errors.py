"""Exception types raised by the connector."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Protocol

LOG = logging.getLogger(__name__)


class PsqlkitError(RuntimeError):
    """Base class for every error surfaced by psqlkit."""


class DatabaseConnectionError(PsqlkitError):
    """Raised when a connection to a server profile cannot be opened."""


class NoActiveConnectionError(PsqlkitError):
    """Raised when an operation needs a live connection and none is open."""


class ServerSwitchDuringTransactionError(PsqlkitError):
    """Raised when the active server changes while a transaction is open."""


class InsufficientBindingError(PsqlkitError):
    """Raised when a template has more placeholders than bind values."""


class NonUtf8ValueError(PsqlkitError):
    """Raised when a text bind value is not valid UTF-8."""


class MalformedOperationParamsError(PsqlkitError):
    """Raised when operation arguments have the wrong shape."""


class UnderlyingDriverError(PsqlkitError):
    """Wraps an error reported by the database driver."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(f"{message} [{code}]" if code else message)
        self.message = message
        self.code = code


class CriticalLogger(Protocol):
    """Anything with a ``logging.Logger``-style ``critical`` method."""

    def critical(self, msg: object, *args: Any, **kwargs: Any) -> None: ...


def report_critical(logger: CriticalLogger | None, error: BaseException, context: Mapping[str, object]) -> None:
    """Hand ``error`` to ``logger.critical``; reporting problems never escape."""

    if logger is None:
        return
    try:
        logger.critical(str(error), extra={"context": dict(context)})
    except Exception:
        LOG.exception("Critical logger failed while reporting an error")


__all__ = [
    "CriticalLogger",
    "DatabaseConnectionError",
    "InsufficientBindingError",
    "MalformedOperationParamsError",
    "NoActiveConnectionError",
    "NonUtf8ValueError",
    "PsqlkitError",
    "ServerSwitchDuringTransactionError",
    "UnderlyingDriverError",
    "report_critical",
]
