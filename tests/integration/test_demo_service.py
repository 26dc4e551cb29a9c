"""Integration tests for the demo service scenarios on a per-test database."""

from __future__ import annotations

from sqlalchemy import select

from tests.factories.demo import UserFactory
from tests.helpers.utils import count_committed, count_rows
from transactor.models import Guest, Product, User
from transactor.services import DemoService, ServiceContext
from transactor.tx import is_bad_request, is_server_db_error, is_server_db_transaction_error


def test_succeed(session) -> None:
    assert DemoService(session).succeed() is None


def test_fail_validation_returns_bad_request(session) -> None:
    erk = DemoService(session).fail_validation()

    assert is_bad_request(erk)
    assert erk.message == "Simulated business validation failed"


def test_create_user_commits(session, faker) -> None:
    name = faker.name()

    assert DemoService(session).create_user(name, 25) is None

    assert count_rows(session, User, name=name) == 1


def test_create_user_then_reject_keeps_nothing(session) -> None:
    service = DemoService(session)

    erk = service.create_user_then_reject("Li Si", 30)

    assert is_bad_request(erk)
    assert service.count(User) == 0


def test_flush_failure_is_reported_as_business_db_error(session) -> None:
    UserFactory.create_batch(2)
    service = DemoService(session)

    erk = service.create_user(None)  # type: ignore[arg-type]

    assert is_server_db_error(erk)
    assert erk.message.startswith("Failed to create user: ")
    assert service.count(User) == 2


def test_guest_rollback(session) -> None:
    service = DemoService(session)

    erk = service.create_guest_then_reject("Bob")

    assert is_bad_request(erk)
    assert erk.message == "validation failed"
    assert service.count(Guest) == 0


def test_create_and_reprice_product(session) -> None:
    service = DemoService(session)

    assert service.create_and_reprice_product("Laptop", 5000, 4500) is None

    prices = session.scalars(select(Product.price)).all()
    session.rollback()
    assert prices == [4500]


def test_service_timeout_is_converted(session) -> None:
    service = DemoService(session, ctx=ServiceContext(request_id="req-1", timeout=0))

    erk = service.succeed()

    assert is_server_db_transaction_error(erk)
    assert erk.message == "transaction failed=context deadline exceeded"


def test_read_only_config_blocks_writes(session) -> None:
    service = DemoService(session, config={"TX_READ_ONLY": True})

    erk = service.create_user("Zhang San", 25)

    assert is_server_db_transaction_error(erk)
    assert "Read-only transaction" in erk.message
    assert service.count(User) == 0


def test_create_user_after_a_read_is_committed(session) -> None:
    UserFactory(name="existing")
    assert session.scalars(select(User.name)).all() == ["existing"]

    assert DemoService(session).create_user("Wang Wu", 41) is None

    assert count_committed(session, User) == 2
