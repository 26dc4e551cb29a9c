"""
The transactional store primitive: run a callable atomically on a Session.

:func:`run_atomic` is the "begin, run, commit on success, roll back and
propagate the cause otherwise" building block the executor delegates to. It
owns the *transaction*, never the *session*: the session is neither created
nor closed here.

Nesting follows the executor frames recorded in ``session.info``: a call made
from inside another ``run_atomic`` on the same session uses a SAVEPOINT, so a
rollback at this level discards only the writes made at this level. A
transaction the session merely autobegan is not a frame; it is adopted and
committed or rolled back like one started here.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, SessionTransaction, scoped_session

from transactor.tx.context import TxContext
from transactor.tx.errors import (
    BeginError,
    CommitError,
    RollbackError,
    TransactionRolledBack,
)
from transactor.tx.guards import TransactionGuard
from transactor.tx.options import DEFAULT_OPTIONS, TxOptions

log = logging.getLogger(__name__)

AtomicFn = Callable[[Session], BaseException | None]

_READ_ONLY_DIALECTS = ("postgresql", "mysql", "mariadb")

# Number of run_atomic frames currently open on a session.
_DEPTH_KEY = "transactor.tx.depth"


def resolve_session(session: Session | scoped_session) -> Session:
    """Return the concrete :class:`Session` behind a ``scoped_session`` proxy."""
    if isinstance(session, scoped_session):
        return session()
    return session


def _extra(ctx: TxContext) -> dict[str, str | None]:
    return {"request_id": ctx.request_id}


def _enter_frame(session: Session) -> None:
    session.info[_DEPTH_KEY] = session.info.get(_DEPTH_KEY, 0) + 1


def _exit_frame(session: Session) -> None:
    depth = session.info.get(_DEPTH_KEY, 1) - 1
    if depth > 0:
        session.info[_DEPTH_KEY] = depth
    else:
        session.info.pop(_DEPTH_KEY, None)


def _begin(session: Session, ctx: TxContext, options: TxOptions) -> tuple[SessionTransaction, bool]:
    """
    Start the transaction ``run_atomic`` owns.

    A SAVEPOINT is used only inside another ``run_atomic`` frame. A transaction
    the session autobegan (for instance on a plain read) is adopted as the
    top-level transaction, so it is committed or rolled back by this call.
    """
    in_frame = session.info.get(_DEPTH_KEY, 0) > 0
    nested = in_frame and session.in_transaction()
    adopted = not nested and session.in_transaction()
    try:
        if nested:
            txn = session.begin_nested()
        elif adopted:
            txn = session.get_transaction()
        else:
            txn = session.begin()
    except SQLAlchemyError as exc:
        raise BeginError(f"begin transaction failed: {exc}") from exc

    if nested:
        if options.isolation_level:
            log.debug(
                "tx.savepoint ignores isolation_level=%s",
                options.isolation_level,
                extra=_extra(ctx),
            )
        return txn, nested

    if adopted:
        # The connection is already in use; its transaction settings are fixed.
        if options.isolation_level:
            raise BeginError(
                "begin transaction failed: isolation_level="
                f"{options.isolation_level} cannot be applied to a transaction already in progress"
            )
        log.debug("tx.adopt autobegun transaction", extra=_extra(ctx))
        return txn, nested

    try:
        if options.isolation_level:
            # Must be the first use of the connection within the transaction.
            conn = session.connection(
                execution_options={"isolation_level": options.isolation_level}
            )
        else:
            conn = session.connection()
        if options.read_only and conn.dialect.name in _READ_ONLY_DIALECTS:
            session.execute(text("SET TRANSACTION READ ONLY"))
    except SQLAlchemyError as exc:
        _rollback(txn, ctx, quiet=True)
        raise BeginError(f"begin transaction failed: {exc}") from exc
    return txn, nested


def _is_open(txn: SessionTransaction) -> bool:
    """Whether ``txn`` is still part of its session's transaction chain."""
    session = txn.session
    current = session.get_nested_transaction() if txn.nested else session.get_transaction()
    while current is not None:
        if current is txn:
            return True
        current = current.parent
    return False


def _rollback(txn: SessionTransaction, ctx: TxContext, *, quiet: bool = False) -> None:
    """
    Roll ``txn`` back unless SQLAlchemy already closed it (failed commit).

    With ``quiet=True`` another error is already propagating: a rollback
    failure is logged and that error wins.
    """
    if not _is_open(txn):
        return
    try:
        txn.rollback()
    except SQLAlchemyError as exc:
        if quiet:
            log.warning("tx.rollback_failed error=%s", exc, extra=_extra(ctx), exc_info=True)
            return
        raise RollbackError(f"rollback transaction failed: {exc}") from exc


def run_atomic(
    session: Session | scoped_session,
    ctx: TxContext,
    fn: AtomicFn,
    options: TxOptions | None = None,
) -> None:
    """
    Run ``fn`` inside a transaction on ``session``.

    :param session: Open session; a ``scoped_session`` is resolved first.
    :param ctx: Cancellation/deadline scope honoured before begin, on every
        statement, and before commit.
    :param fn: Called once with the session. Returning ``None`` commits;
        returning an exception rolls back.
    :param options: Isolation/read-only settings for a top-level transaction.
    :raises ContextError: The context was done before begin or before commit,
        or a statement was refused because it expired mid-flight.
    :raises BeginError: The transaction or savepoint could not be started.
    :raises TransactionRolledBack: ``fn`` returned an exception; it is chained
        as ``__cause__``.
    :raises CommitError: Commit or savepoint release failed.
    :raises RollbackError: Rolling back after a returned failure failed.

    Any exception raised by ``fn`` is re-raised unchanged after rollback.
    """
    session = resolve_session(session)
    options = options or DEFAULT_OPTIONS

    err = ctx.err()
    if err is not None:
        raise err

    txn, nested = _begin(session, ctx, options)
    log.debug("tx.begin nested=%s", nested, extra=_extra(ctx))

    _enter_frame(session)
    try:
        _finish(session, txn, nested, ctx, fn, options)
    finally:
        _exit_frame(session)


def _finish(
    session: Session,
    txn: SessionTransaction,
    nested: bool,
    ctx: TxContext,
    fn: AtomicFn,
    options: TxOptions,
) -> None:
    try:
        with TransactionGuard(session, ctx, read_only=options.read_only):
            cause = fn(session)
            if cause is None:
                # Flush while the guards still apply to the emitted statements.
                session.flush()
    except BaseException as exc:
        log.debug("tx.rollback nested=%s raised=%r", nested, exc, extra=_extra(ctx))
        _rollback(txn, ctx, quiet=True)
        raise

    if cause is not None:
        log.debug("tx.rollback nested=%s cause=%r", nested, cause, extra=_extra(ctx))
        _rollback(txn, ctx)
        raise TransactionRolledBack(cause) from cause

    err = ctx.err()
    if err is not None:
        log.debug("tx.rollback nested=%s context=%r", nested, err, extra=_extra(ctx))
        _rollback(txn, ctx)
        raise err

    try:
        txn.commit()
    except SQLAlchemyError as exc:
        _rollback(txn, ctx, quiet=True)
        raise CommitError(f"commit transaction failed: {exc}") from exc
    log.debug("tx.commit nested=%s", nested, extra=_extra(ctx))


__all__ = ["AtomicFn", "resolve_session", "run_atomic"]
