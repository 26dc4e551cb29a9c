"""Demo scenarios showing how units of work report business failures."""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from transactor.models import Guest, Product, User
from transactor.services.base import BaseService
from transactor.tx import BusinessError, bad_request, server_db_error

log = logging.getLogger(__name__)


class DemoService(BaseService):
    """
    Scenarios: clean commit, business failure, create, create-then-reject,
    and create-then-update inside one transaction.

    Every public method returns ``None`` on success or the single
    :class:`BusinessError` produced by :meth:`BaseService.in_transaction`.
    """

    # ----------------------------------------------------------- scenarios

    def succeed(self) -> BusinessError | None:
        def run(tx: Session) -> BusinessError | None:
            log.info("Executing successful transaction")
            return None

        return self.in_transaction(run)

    def fail_validation(self) -> BusinessError | None:
        def run(tx: Session) -> BusinessError | None:
            log.info("Simulating business logic error")
            return bad_request("Simulated business validation failed")

        return self.in_transaction(run)

    def create_user(self, name: str, age: int | None = None) -> BusinessError | None:
        def run(tx: Session) -> BusinessError | None:
            user = User(name=name, age=age)
            tx.add(user)
            try:
                tx.flush()
            except SQLAlchemyError as exc:
                return server_db_error("Failed to create user: %s", exc).with_cause(exc)
            log.info("Created user name=%s id=%s", user.name, user.id)
            return None

        return self.in_transaction(run)

    def create_user_then_reject(self, name: str, age: int | None = None) -> BusinessError | None:
        """Insert a user, then fail validation so the insert is rolled back."""

        def run(tx: Session) -> BusinessError | None:
            user = User(name=name, age=age)
            tx.add(user)
            try:
                tx.flush()
            except SQLAlchemyError as exc:
                return server_db_error("Failed to create user: %s", exc).with_cause(exc)
            log.info("Data inserted, will trigger rollback name=%s", user.name)
            return bad_request("Business validation failed, triggering rollback")

        return self.in_transaction(run)

    def create_guest_then_reject(self, name: str) -> BusinessError | None:
        def run(tx: Session) -> BusinessError | None:
            guest = Guest(name=name)
            tx.add(guest)
            try:
                tx.flush()
            except SQLAlchemyError as exc:
                return server_db_error("create failed: %s", exc).with_cause(exc)
            log.debug("Created guest (then rollback) id=%s name=%s", guest.id, guest.name)
            return bad_request("validation failed")

        return self.in_transaction(run)

    def create_and_reprice_product(
        self, name: str, price: int, new_price: int
    ) -> BusinessError | None:
        """Create a product and change its price within one transaction."""

        def run(tx: Session) -> BusinessError | None:
            product = Product(name=name, price=price)
            tx.add(product)
            try:
                tx.flush()
                log.debug("Created product id=%s price=%s", product.id, product.price)
                product.price = new_price
                tx.flush()
            except SQLAlchemyError as exc:
                return server_db_error("create/update failed: %s", exc).with_cause(exc)
            log.debug("Updated product id=%s price=%s", product.id, product.price)
            return None

        return self.in_transaction(run)

    # ------------------------------------------------------------- queries

    def count(self, model: type) -> int:
        """Count rows of ``model`` outside of any executor transaction."""
        total = self.session.scalar(select(func.count()).select_from(model))
        # End the read transaction so configured isolation applies to the next call.
        self.session.rollback()
        return int(total or 0)
