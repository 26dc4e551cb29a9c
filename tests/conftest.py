"""Pytest fixtures building an isolated database per test.

Every test gets its own in-memory SQLite engine and session; nothing is shared
at module or session scope, so test order never matters. SAVEPOINT support is
installed on each engine so nested transactional calls behave like they do on
a server database.
"""

from __future__ import annotations

from collections.abc import Generator

import pytest
from flask import Flask
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from transactor import create_app
from transactor.core.database import create_engine_from_url
from transactor.core.extensions import db as _db
from transactor.core.extensions import metadata


class TestConfig:
    """Testing configuration for creating the Flask app.

    Notes
    -----
    - Uses an in-memory SQLite database for speed.
    - No transaction deadline unless a test sets one.
    """

    TESTING = True
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    API_BASE_PREFIX = "/api"
    LOG_LEVEL = "WARNING"
    TX_TIMEOUT_SECONDS = None
    TX_ISOLATION_LEVEL = None
    TX_READ_ONLY = False


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    """Fresh in-memory engine with all tables created."""
    eng = create_engine_from_url("sqlite://")
    # Ensure models are registered on the metadata
    from transactor import models as _models  # noqa: F401

    metadata.create_all(eng)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture()
def session(engine: Engine) -> Generator[Session, None, None]:
    """Open session handed to the executor; closed by the test, never by the executor."""
    sess = Session(bind=engine, expire_on_commit=False)
    try:
        yield sess
    finally:
        sess.close()


@pytest.fixture()
def app() -> Generator[Flask, None, None]:
    """Create a Flask application configured for testing, one per test."""
    application = create_app(TestConfig, instance_relative_config=False)
    with application.app_context():
        _db.create_all()
        yield application
        _db.session.remove()
        _db.drop_all()


@pytest.fixture()
def client(app: Flask):
    return app.test_client()


@pytest.fixture()
def runner(app: Flask):
    return app.test_cli_runner()


@pytest.fixture(scope="session")
def faker():
    """Provide a :class:`faker.Faker` instance seeded for deterministic tests."""
    from faker import Faker

    fk = Faker()
    Faker.seed(1337)
    return fk


# -- Hook up Factory Boy to the per-test session -------------------------------
@pytest.fixture(autouse=True)
def _factories_session(request):
    """Wire Factory Boy's session helper to the ``session`` fixture when used."""
    from tests.factories import SQLAlchemySession

    if "session" in request.fixturenames:
        SQLAlchemySession.set(request.getfixturevalue("session"))
    yield
    SQLAlchemySession.set(None)
