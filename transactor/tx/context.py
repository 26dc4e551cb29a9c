"""
Execution context carrying cancellation and deadlines.

A :class:`TxContext` is handed to every transactional call. The transaction
layer consults it before beginning, on every statement sent to the database,
and right before committing; once the context is done the transaction is
rolled back and the context error is reported as an infrastructure failure.

Contexts form a chain: a derived context is done as soon as it *or any of its
ancestors* is done, and its effective deadline is the earliest one found along
the chain. Deadlines use :func:`time.monotonic`.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Iterator
from types import TracebackType

from transactor.tx.errors import Cancelled, ContextError, DeadlineExceeded


class TxContext:
    """
    Cancellation/deadline scope for one (possibly nested) transactional call.

    :param deadline: Absolute :func:`time.monotonic` timestamp, or ``None``.
    :param parent: Context this one derives from.
    :param request_id: Correlation id used when logging; inherited from the
        parent when omitted.
    """

    __slots__ = ("_deadline", "_parent", "_cancelled", "request_id")

    def __init__(
        self,
        *,
        deadline: float | None = None,
        parent: TxContext | None = None,
        request_id: str | None = None,
    ) -> None:
        self._deadline = deadline
        self._parent = parent
        self._cancelled = threading.Event()
        if request_id is None and parent is not None:
            request_id = parent.request_id
        self.request_id = request_id

    # ------------------------------------------------------------ constructors

    @classmethod
    def background(cls, *, request_id: str | None = None) -> TxContext:
        """Return a root context that is never done on its own."""
        return cls(request_id=request_id)

    def with_deadline(self, deadline: float) -> TxContext:
        return TxContext(deadline=deadline, parent=self)

    def with_timeout(self, seconds: float) -> TxContext:
        """Derive a context expiring ``seconds`` from now."""
        return self.with_deadline(time.monotonic() + seconds)

    def with_cancel(self) -> TxContext:
        """Derive a context that can be cancelled independently of this one."""
        return TxContext(parent=self)

    # ----------------------------------------------------------------- state

    @property
    def deadline(self) -> float | None:
        """Earliest deadline along the chain, or ``None``."""
        deadlines = [c._deadline for c in self._chain() if c._deadline is not None]
        return min(deadlines) if deadlines else None

    def remaining(self) -> float | None:
        """Seconds left before the deadline (never negative), or ``None``."""
        deadline = self.deadline
        if deadline is None:
            return None
        return max(0.0, deadline - time.monotonic())

    def cancel(self) -> None:
        """Mark this context (and every context derived from it) as cancelled."""
        self._cancelled.set()

    def err(self) -> ContextError | None:
        """
        Report why the context is done.

        :returns: :class:`Cancelled` if this context or an ancestor was
            cancelled, :class:`DeadlineExceeded` if the effective deadline has
            passed, otherwise ``None``.
        """
        if any(c._cancelled.is_set() for c in self._chain()):
            return Cancelled()
        deadline = self.deadline
        if deadline is not None and time.monotonic() >= deadline:
            return DeadlineExceeded()
        return None

    def done(self) -> bool:
        return self.err() is not None

    def _chain(self) -> Iterator[TxContext]:
        ctx: TxContext | None = self
        while ctx is not None:
            yield ctx
            ctx = ctx._parent

    # -------------------------------------------------------- context manager

    def __enter__(self) -> TxContext:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        # Release the scope on exit, like a deferred cancel.
        self.cancel()

    def __repr__(self) -> str:
        return f"<TxContext remaining={self.remaining()} err={self.err()!r}>"


__all__ = ["TxContext"]
