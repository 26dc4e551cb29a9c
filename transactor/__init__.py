"""Run units of work in a database transaction and tell business failures
apart from infrastructure failures.

The executor lives in :mod:`transactor.tx`; :func:`create_app` builds the Flask
application hosting configuration, logging, the health endpoint and the demo
CLI.
"""

from __future__ import annotations

from .factory import create_app
from .tx import Outcome, TransactionalExecutor, TxContext, TxOptions, execute, execute_merged

__all__ = [
    "create_app",
    "Outcome",
    "TransactionalExecutor",
    "TxContext",
    "TxOptions",
    "execute",
    "execute_merged",
]
