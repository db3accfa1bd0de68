"""Reference-counted nested transactions over one physical connection."""

from __future__ import annotations

import contextlib
import logging
from typing import Callable, Iterator, TypeVar

from .connections import ConnectionRouter
from .errors import UnderlyingDriverError

LOG = logging.getLogger(__name__)

T = TypeVar("T")


class TransactionCoordinator:
    """Collapses nested begin/commit pairs into one BEGIN ... COMMIT.

    The physical transaction is open exactly while ``level > 0``. A rollback
    at any depth always unwinds the whole transaction.
    """

    def __init__(self, router: ConnectionRouter) -> None:
        self._router = router
        self._level = 0

    @property
    def level(self) -> int:
        return self._level

    @property
    def active(self) -> bool:
        return self._level > 0

    def begin(self) -> None:
        if self._level == 0:
            self._router.resolve().execute("BEGIN")
            LOG.debug("Transaction started", extra={"server": self._router.current_server})
        self._level += 1

    def commit(self) -> None:
        if self._level == 0:
            LOG.warning("Commit requested without an open transaction")
            return
        self._level -= 1
        if self._level:
            return
        status = self._router.active().execute("COMMIT")
        if status == "ROLLBACK":
            raise UnderlyingDriverError("Transaction was aborted by the server and rolled back")
        LOG.debug("Transaction committed", extra={"server": self._router.current_server})

    def rollback(self) -> None:
        if self._level == 0:
            return
        self._level = 0
        self._router.active().execute("ROLLBACK")
        LOG.debug("Transaction rolled back", extra={"server": self._router.current_server})

    def abort(self) -> None:
        """Roll back after a failure; a failing ROLLBACK is logged, not raised."""

        try:
            self.rollback()
        except Exception:
            LOG.exception("Rollback after failure did not complete")

    @contextlib.contextmanager
    def scope(self) -> Iterator[None]:
        """Run the block inside a (possibly nested) transaction."""

        self.begin()
        try:
            yield
        except BaseException:
            self.abort()
            raise
        self.commit()

    def run(self, callback: Callable[[], T]) -> T:
        with self.scope():
            return callback()


__all__ = ["TransactionCoordinator"]
