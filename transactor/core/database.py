"""Engine helpers for callers that do not go through the Flask extension.

The executor only needs an open :class:`~sqlalchemy.orm.Session`; these
helpers build engines whose sessions support nested SAVEPOINTs on every
backend, SQLite included.
"""

from __future__ import annotations

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool


def install_sqlite_savepoint_support(engine: Engine) -> Engine:
    """Make pysqlite emit BEGIN itself so SAVEPOINT/ROLLBACK TO behave.

    pysqlite defers BEGIN until the first DML statement and commits around
    DDL, which breaks nested transactions. Switching the driver to autocommit
    and emitting BEGIN from the ``begin`` event hands transaction control back
    to SQLAlchemy. No-op for other dialects or when already installed.
    """
    if engine.dialect.name != "sqlite":
        return engine
    if event.contains(engine, "begin", _emit_begin):
        return engine

    event.listen(engine, "connect", _disable_pysqlite_transactions)
    event.listen(engine, "begin", _emit_begin)
    return engine


def _disable_pysqlite_transactions(dbapi_connection, connection_record) -> None:
    dbapi_connection.isolation_level = None


def _emit_begin(conn) -> None:
    conn.exec_driver_sql("BEGIN")


def create_engine_from_url(url: str, *, echo: bool = False) -> Engine:
    """Create an engine for ``url`` with SAVEPOINT support installed.

    In-memory SQLite URLs get a :class:`StaticPool` so every session sees the
    same database.
    """
    kwargs: dict = {"echo": echo}
    if url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool
        kwargs["connect_args"] = {"check_same_thread": False}
    return install_sqlite_savepoint_support(create_engine(url, **kwargs))


__all__ = ["install_sqlite_savepoint_support", "create_engine_from_url"]
