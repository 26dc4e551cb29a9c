"""Base service running units of work through the transactional executor."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session, scoped_session

from transactor.core.config import tx_context_from_config, tx_options_from_config
from transactor.tx import (
    BusinessError,
    Converter,
    TransactionalExecutor,
    TxContext,
    TxOptions,
    UnitOfWork,
    new_format_converter,
    server_db_transaction_error,
)


@dataclass(slots=True)
class ServiceContext:
    """
    Carry cross-cutting request-scoped data.

    :param request_id: Correlation id for logging/tracing.
    :param timeout: Per-call deadline in seconds overriding the configured one.
    """

    request_id: str | None = None
    timeout: float | None = None


class BaseService:
    """
    Base class for application services.

    Responsibilities
    ----------------
    * Run every write through :meth:`in_transaction` so business and
      infrastructure failures are told apart.
    * Derive deadline and default options from configuration.
    * Collapse infrastructure failures into ``SERVER_DB_TRANSACTION_ERROR``.

    Notes
    -----
    The session is injected, never looked up from a global, so the same
    service runs against Flask-SQLAlchemy's ``db.session`` in the app and a
    per-test session in the test-suite.
    """

    converter: Converter = staticmethod(new_format_converter(server_db_transaction_error, "transaction failed"))

    def __init__(
        self,
        session: Session | scoped_session,
        *,
        config: Mapping[str, Any] | None = None,
        ctx: ServiceContext | None = None,
    ) -> None:
        """
        :param session: Open session the transactions run on.
        :param config: Flask-style config mapping (``TX_*`` keys).
        :param ctx: Optional request-scoped context.
        """
        self.session = session
        self.config: Mapping[str, Any] = config or {}
        self.ctx = ctx or ServiceContext()
        self.executor = TransactionalExecutor(
            convert=self.converter,
            options=tx_options_from_config(self.config),
        )

    def tx_context(self) -> TxContext:
        """Build the execution context for one call."""
        if self.ctx.timeout is not None:
            config = {**self.config, "TX_TIMEOUT_SECONDS": self.ctx.timeout}
        else:
            config = self.config
        return tx_context_from_config(config, request_id=self.ctx.request_id)

    def in_transaction(
        self, run: UnitOfWork, options: TxOptions | None = None
    ) -> BusinessError | None:
        """
        Run ``run`` atomically and return a single business error or ``None``.

        :param run: Unit of work receiving the transaction-scoped session.
        :param options: Overrides the configured default options.
        """
        return self.executor.run_merged(self.tx_context(), self.session, run, options)
