"""Application services orchestrating units of work.

Services receive the session they run on and delegate every transaction to
:class:`transactor.tx.TransactionalExecutor`.
"""

from .base import BaseService, ServiceContext
from .demo_service import DemoService

__all__ = ["BaseService", "ServiceContext", "DemoService"]
