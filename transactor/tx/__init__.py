"""Transactional execution with business/infrastructure error disambiguation.

This package re-exports the executor entry points together with the context,
options and error types its callers depend on.
"""

from .atomic import resolve_session, run_atomic
from .context import TxContext
from .errors import (
    BeginError,
    BusinessError,
    Cancelled,
    CommitError,
    ContextError,
    Converter,
    DeadlineExceeded,
    ReadOnlyViolation,
    RollbackError,
    TransactionError,
    TransactionRolledBack,
    bad_request,
    is_bad_request,
    is_server_db_error,
    is_server_db_transaction_error,
    new_format_converter,
    new_metadata_converter,
    server_db_error,
    server_db_transaction_error,
)
from .executor import (
    Outcome,
    TransactionalExecutor,
    UnitOfWork,
    execute,
    execute_merged,
    execute_or_raise,
)
from .options import TxOptions

__all__ = [
    "TxContext",
    "TxOptions",
    "UnitOfWork",
    "Outcome",
    "TransactionalExecutor",
    "execute",
    "execute_merged",
    "execute_or_raise",
    "run_atomic",
    "resolve_session",
    "BusinessError",
    "Converter",
    "bad_request",
    "server_db_error",
    "server_db_transaction_error",
    "is_bad_request",
    "is_server_db_error",
    "is_server_db_transaction_error",
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
