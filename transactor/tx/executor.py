"""
Transactional executor: run a unit of work and classify its failure.

The executor begins a transaction, calls the unit of work with the
transaction-scoped session, captures the business error it returns (or
raises) *before* the transaction's fate is decided, and then reports the
outcome in one of two shapes:

* dual: :func:`execute` returns ``Outcome(erk, err)``;
* single: :func:`execute_merged` returns one :class:`BusinessError`, built by a
  converter only when the failure came purely from the transaction layer.

Resolution rule for ``Outcome``:

=============================  ==========  ==========================
situation                      ``erk``     ``err``
=============================  ==========  ==========================
clean commit                   ``None``    ``None``
unit of work failed            the error   transaction-layer failure
pure infrastructure failure    ``None``    transaction-layer failure
=============================  ==========  ==========================

The executor performs exactly one begin and one commit-or-rollback per call,
never retries, and never logs: surfacing an outcome is the caller's job.

A deadline racing with a unit of work that is about to return ``None`` is
order-dependent: if the context expires before the commit check, the outcome
is infra-only even though the unit of work succeeded.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import NamedTuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, scoped_session

from transactor.tx.atomic import run_atomic
from transactor.tx.context import TxContext
from transactor.tx.errors import (
    BusinessError,
    Converter,
    TransactionError,
    new_format_converter,
    server_db_transaction_error,
)
from transactor.tx.options import TxOptions

UnitOfWork = Callable[[Session], BusinessError | None]

# Failures attributed to the transaction mechanism rather than the caller.
INFRA_ERRORS: tuple[type[Exception], ...] = (TransactionError, SQLAlchemyError)


class Outcome(NamedTuple):
    """Result of one transactional execution; unpacks as ``erk, err``."""

    erk: BusinessError | None
    err: BaseException | None

    @property
    def ok(self) -> bool:
        return self.err is None

    def merge(self, convert: Converter) -> BusinessError | None:
        """
        Collapse into a single business error.

        The captured business error is returned unchanged; ``convert`` is only
        applied when the failure has no business error attached.
        """
        if self.err is None:
            return None
        if self.erk is not None:
            return self.erk
        return convert(self.err)


def execute(
    ctx: TxContext,
    session: Session | scoped_session,
    run: UnitOfWork,
    options: TxOptions | None = None,
) -> Outcome:
    """
    Run ``run`` in a transaction and report ``Outcome(erk, err)``.

    :param ctx: Cancellation/deadline scope forwarded to the transaction layer.
    :param session: Open session; the executor never opens or closes it.
        Passing the session a unit of work received nests the call in a
        SAVEPOINT; a transaction the session autobegan is committed here.
    :param run: Unit of work. Returning (or raising) a :class:`BusinessError`
        rolls back; returning ``None`` commits.
    :param options: Forwarded verbatim to the transaction begin.
    :returns: The execution outcome. ``err is None`` implies ``erk is None``.
    :raises TypeError: ``run`` returned something other than ``None`` or a
        :class:`BusinessError`.

    Exceptions other than business and infrastructure errors raised by ``run``
    propagate after the transaction is rolled back.
    """
    captured: BusinessError | None = None

    def scoped(tx: Session) -> BusinessError | None:
        nonlocal captured
        try:
            result = run(tx)
        except BusinessError as erk:
            result = erk
        if result is not None and not isinstance(result, BusinessError):
            raise TypeError(
                f"unit of work must return a BusinessError or None, got {type(result).__name__}"
            )
        captured = result
        return result

    try:
        run_atomic(session, ctx, scoped, options)
    except INFRA_ERRORS as err:
        return Outcome(captured, err)
    return Outcome(None, None)


def execute_merged(
    ctx: TxContext,
    session: Session | scoped_session,
    run: UnitOfWork,
    convert: Converter,
    options: TxOptions | None = None,
) -> BusinessError | None:
    """
    Single-error variant of :func:`execute`.

    :returns: ``None`` on success, the unit of work's own error when it
        failed, otherwise ``convert(err)`` for the infrastructure failure.
    """
    return execute(ctx, session, run, options).merge(convert)


def execute_or_raise(
    ctx: TxContext,
    session: Session | scoped_session,
    run: UnitOfWork,
    convert: Converter,
    options: TxOptions | None = None,
) -> None:
    """Like :func:`execute_merged` but raise the merged error instead of returning it."""
    erk = execute_merged(ctx, session, run, convert, options)
    if erk is not None:
        raise erk


default_converter: Converter = new_format_converter(server_db_transaction_error, "error")


class TransactionalExecutor:
    """
    Executor bound to a default converter and default options.

    :param convert: Converter used by the single-error shapes. Defaults to a
        ``SERVER_DB_TRANSACTION_ERROR`` wrapping the raw error.
    :param options: Options applied when a call does not pass its own.
    """

    def __init__(
        self,
        *,
        convert: Converter | None = None,
        options: TxOptions | None = None,
    ) -> None:
        self.convert = convert or default_converter
        self.options = options

    def run(
        self,
        ctx: TxContext,
        session: Session | scoped_session,
        unit_of_work: UnitOfWork,
        options: TxOptions | None = None,
    ) -> Outcome:
        return execute(ctx, session, unit_of_work, options or self.options)

    def run_merged(
        self,
        ctx: TxContext,
        session: Session | scoped_session,
        unit_of_work: UnitOfWork,
        options: TxOptions | None = None,
    ) -> BusinessError | None:
        return self.run(ctx, session, unit_of_work, options).merge(self.convert)

    def run_or_raise(
        self,
        ctx: TxContext,
        session: Session | scoped_session,
        unit_of_work: UnitOfWork,
        options: TxOptions | None = None,
    ) -> None:
        erk = self.run_merged(ctx, session, unit_of_work, options)
        if erk is not None:
            raise erk


__all__ = [
    "UnitOfWork",
    "INFRA_ERRORS",
    "Outcome",
    "execute",
    "execute_merged",
    "execute_or_raise",
    "default_converter",
    "TransactionalExecutor",
]
