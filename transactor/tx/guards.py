"""
SQLAlchemy event guards active while a unit of work runs.

The guard binds listeners to the *Connection* of the current transaction (and
to the Session for ORM flushes) so that:

- every statement is refused once the :class:`TxContext` is done, which is how
  a deadline or cancellation aborts a transaction mid-flight;
- in read-only mode, ORM flushes and raw DML/DDL are blocked.

Listeners are always removed on exit so they never outlive one transaction.
"""

from __future__ import annotations

from contextlib import suppress
from types import TracebackType

from sqlalchemy import event
from sqlalchemy.engine import Connection
from sqlalchemy.orm import Session

from transactor.tx.context import TxContext
from transactor.tx.errors import ReadOnlyViolation


class TransactionGuard:
    """
    Context manager installing context and read-only listeners.

    :param session: Session whose current transaction is being guarded.
    :param ctx: Context checked before every statement.
    :param read_only: Also block writes when ``True``.
    """

    # Guard patterns for portable "no write" at driver level
    _WRITE_PREFIXES = (
        "insert",
        "update",
        "delete",
        "merge",
        "alter",
        "drop",
        "truncate",
        "create",
        "replace",
        "grant",
        "revoke",
    )

    # Statements that end or structure the transaction must always get through,
    # otherwise an expired context could not even roll back.
    _CONTROL_PREFIXES = ("savepoint", "release", "rollback", "commit", "begin")

    def __init__(self, session: Session, ctx: TxContext, *, read_only: bool = False) -> None:
        self.session = session
        self.ctx = ctx
        self.read_only = read_only
        self._conn: Connection | None = None
        self._installed = False

    def __enter__(self) -> TransactionGuard:
        self.install()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.remove()

    # ----------------------------------------------------------------- hooks

    def _before_cursor_execute(self, conn, cursor, statement, parameters, context, executemany):
        first_token = statement.lstrip().split(None, 1)[0].lower() if statement else ""
        if first_token.startswith(self._CONTROL_PREFIXES):
            return
        err = self.ctx.err()
        if err is not None:
            raise err
        if self.read_only and first_token.startswith(self._WRITE_PREFIXES):
            raise ReadOnlyViolation(
                f"Read-only transaction: SQL statement blocked: {first_token.upper()}"
            )

    def _before_flush(self, session, flush_context, instances):
        if session.new or session.dirty or session.deleted:
            raise ReadOnlyViolation(
                "Read-only transaction: ORM flush blocked (new/dirty/deleted objects present)."
            )

    # ------------------------------------------------------------- lifecycle

    def install(self) -> None:
        if self._installed:
            return
        self._conn = self.session.connection()
        event.listen(self._conn, "before_cursor_execute", self._before_cursor_execute)
        if self.read_only:
            event.listen(self.session, "before_flush", self._before_flush)
        self._installed = True

    def remove(self) -> None:
        if not self._installed:
            return

        # The connection may already be closed when the transaction was torn
        # down by a failing flush.
        with suppress(Exception):
            event.remove(self._conn, "before_cursor_execute", self._before_cursor_execute)
        if self.read_only:
            with suppress(Exception):
                event.remove(self.session, "before_flush", self._before_flush)

        self._conn = None
        self._installed = False


__all__ = ["TransactionGuard"]
