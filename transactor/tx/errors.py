"""
Error taxonomy for transactional execution.

Two families live here and must never be confused:

* :class:`BusinessError` is produced by a unit of work. It is typed, carries a
  machine-readable ``reason`` plus an HTTP-like ``status_code``, and always
  causes the surrounding transaction to roll back.
* :class:`TransactionError` and its subclasses are produced by the transaction
  layer itself (begin/commit/rollback failures, context expiry, read-only
  violations). Raw :class:`sqlalchemy.exc.SQLAlchemyError` instances are treated
  as the same family by the executor.

These types are framework-agnostic: no Flask import is allowed in this module.
"""

from __future__ import annotations

import copy
from collections.abc import Callable, Mapping
from http import HTTPStatus
from typing import Any

UNKNOWN_REASON = "UNKNOWN"

# --------------------------------------------------------------------------- #
# Business errors
# --------------------------------------------------------------------------- #


class BusinessError(Exception):
    """
    Typed application-level failure returned (or raised) by a unit of work.

    Parameters
    ----------
    message : str
        Human-readable description.
    status_code : int, optional
        HTTP-like status code. Defaults to ``500``.
    reason : str, optional
        Stable machine-readable identifier, typically UPPER_SNAKE_CASE.
    metadata : Mapping[str, str] | None, optional
        Extra string key/values attached to the error.

    Notes
    -----
    Instances are treated as values: :meth:`with_cause` and
    :meth:`with_metadata` return modified copies and leave the original
    untouched, so an error shared between callers is never mutated.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        reason: str = UNKNOWN_REASON,
        metadata: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = int(status_code)
        self.reason = reason
        self.metadata: dict[str, str] = dict(metadata or {})

    def __str__(self) -> str:
        text = (
            f"error: code = {self.status_code} reason = {self.reason} "
            f"message = {self.message} metadata = {self.metadata}"
        )
        if self.__cause__ is not None:
            text += f" cause = {self.__cause__}"
        return text

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(status_code={self.status_code!r}, "
            f"reason={self.reason!r}, message={self.message!r})"
        )

    # ------------------------------------------------------------------ copies

    def _clone(self) -> BusinessError:
        # copy.copy drops __cause__ on exceptions
        clone = copy.copy(self)
        clone.metadata = dict(self.metadata)
        clone.__cause__ = self.__cause__
        return clone

    def with_cause(self, cause: BaseException | None) -> BusinessError:
        """Return a copy wrapping ``cause`` as the underlying low-level error."""
        clone = self._clone()
        clone.__cause__ = cause
        return clone

    def with_metadata(self, metadata: Mapping[str, str]) -> BusinessError:
        """Return a copy whose metadata is replaced by ``metadata``."""
        clone = self._clone()
        clone.metadata = dict(metadata)
        return clone

    # -------------------------------------------------------------- inspection

    @property
    def cause(self) -> BaseException | None:
        return self.__cause__

    def matches(self, other: object) -> bool:
        """Return ``True`` when ``other`` carries the same code and reason."""
        if not isinstance(other, BusinessError):
            return False
        return self.status_code == other.status_code and self.reason == other.reason

    @classmethod
    def from_error(cls, exc: BaseException | None) -> BusinessError | None:
        """
        Coerce an arbitrary exception into a :class:`BusinessError`.

        :param exc: Exception to coerce, or ``None``.
        :returns: ``exc`` itself when already a business error, ``None`` for
            ``None``, otherwise an ``UNKNOWN`` 500 error wrapping ``exc``.
        """
        if exc is None:
            return None
        if isinstance(exc, BusinessError):
            return exc
        return cls(str(exc), status_code=500, reason=UNKNOWN_REASON).with_cause(exc)

    def to_problem(self, *, instance: str | None = None) -> dict[str, Any]:
        """
        Serialize into an RFC 7807 Problem Details dictionary.

        :param instance: Optional URI reference identifying the occurrence.
        :returns: Problem payload; ``code`` holds the business reason.
        :rtype: dict
        """
        try:
            title = HTTPStatus(self.status_code).phrase
        except ValueError:
            title = "Error"
        problem: dict[str, Any] = {
            "type": "about:blank",
            "title": title,
            "status": self.status_code,
            "detail": self.message,
            "instance": instance,
            "code": self.reason,
        }
        if self.metadata:
            problem["details"] = dict(self.metadata)
        return problem


# --------------------------------------------------------------------------- #
# Business error catalog
# --------------------------------------------------------------------------- #

REASON_BAD_REQUEST = "BAD_REQUEST"
REASON_SERVER_DB_ERROR = "SERVER_DB_ERROR"
REASON_SERVER_DB_TRANSACTION_ERROR = "SERVER_DB_TRANSACTION_ERROR"

ErrorFactory = Callable[..., BusinessError]


def _format(message: str, args: tuple[Any, ...]) -> str:
    return message % args if args else message


def bad_request(message: str, *args: Any) -> BusinessError:
    """400 for invalid input or failed business validation."""
    return BusinessError(_format(message, args), HTTPStatus.BAD_REQUEST, REASON_BAD_REQUEST)


def server_db_error(message: str, *args: Any) -> BusinessError:
    """500 for a database operation that failed inside the unit of work."""
    return BusinessError(
        _format(message, args), HTTPStatus.INTERNAL_SERVER_ERROR, REASON_SERVER_DB_ERROR
    )


def server_db_transaction_error(message: str, *args: Any) -> BusinessError:
    """500 for a failure of the transaction mechanism itself."""
    return BusinessError(
        _format(message, args),
        HTTPStatus.INTERNAL_SERVER_ERROR,
        REASON_SERVER_DB_TRANSACTION_ERROR,
    )


def _is(exc: BaseException | None, reason: str, status_code: int) -> bool:
    erk = BusinessError.from_error(exc)
    if erk is None:
        return False
    return erk.reason == reason and erk.status_code == status_code


def is_bad_request(exc: BaseException | None) -> bool:
    return _is(exc, REASON_BAD_REQUEST, HTTPStatus.BAD_REQUEST)


def is_server_db_error(exc: BaseException | None) -> bool:
    return _is(exc, REASON_SERVER_DB_ERROR, HTTPStatus.INTERNAL_SERVER_ERROR)


def is_server_db_transaction_error(exc: BaseException | None) -> bool:
    return _is(exc, REASON_SERVER_DB_TRANSACTION_ERROR, HTTPStatus.INTERNAL_SERVER_ERROR)


# --------------------------------------------------------------------------- #
# Converters: raw infrastructure error -> business error
# --------------------------------------------------------------------------- #

Converter = Callable[[BaseException], BusinessError]


def new_format_converter(factory: ErrorFactory, prefix: str = "error") -> Converter:
    """
    Build a converter rendering the raw error into the business message.

    The produced error reads ``"<prefix>=<raw error>"`` and keeps the raw error
    as its cause.
    """

    def convert(err: BaseException) -> BusinessError:
        return factory("%s=%s", prefix, err).with_cause(err)

    return convert


def new_metadata_converter(factory: ErrorFactory, message: str, key: str = "error") -> Converter:
    """
    Build a converter keeping a fixed message and moving the raw error text
    into ``metadata[key]``.
    """

    def convert(err: BaseException) -> BusinessError:
        erk = factory("%s", message)
        return erk.with_metadata({**erk.metadata, key: str(err)}).with_cause(err)

    return convert


# --------------------------------------------------------------------------- #
# Infrastructure errors
# --------------------------------------------------------------------------- #


class TransactionError(Exception):
    """Base class for failures of the transaction mechanism."""


class BeginError(TransactionError):
    """The transaction (or savepoint) could not be started."""


class CommitError(TransactionError):
    """Commit (or savepoint release) failed; the transaction was rolled back."""


class RollbackError(TransactionError):
    """Rolling back the transaction failed."""


class TransactionRolledBack(TransactionError):
    """
    The unit of work reported a failure and the transaction was rolled back.

    The failure reported by the unit of work is available as ``__cause__``.
    """

    def __init__(self, cause: BaseException) -> None:
        super().__init__(f"transaction rolled back: {cause}")
        self.__cause__ = cause


class ReadOnlyViolation(TransactionError):
    """A write was attempted inside a read-only transaction."""


class ContextError(TransactionError):
    """The execution context is done."""


class DeadlineExceeded(ContextError):
    def __init__(self, message: str = "context deadline exceeded") -> None:
        super().__init__(message)


class Cancelled(ContextError):
    def __init__(self, message: str = "context canceled") -> None:
        super().__init__(message)


__all__ = [
    "UNKNOWN_REASON",
    "BusinessError",
    "REASON_BAD_REQUEST",
    "REASON_SERVER_DB_ERROR",
    "REASON_SERVER_DB_TRANSACTION_ERROR",
    "ErrorFactory",
    "bad_request",
    "server_db_error",
    "server_db_transaction_error",
    "is_bad_request",
    "is_server_db_error",
    "is_server_db_transaction_error",
    "Converter",
    "new_format_converter",
    "new_metadata_converter",
    "TransactionError",
    "BeginError",
    "CommitError",
    "RollbackError",
    "TransactionRolledBack",
    "ReadOnlyViolation",
    "ContextError",
    "DeadlineExceeded",
    "Cancelled",
]
