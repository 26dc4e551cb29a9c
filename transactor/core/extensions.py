"""Global Flask extension instances and initialization helpers."""

from __future__ import annotations

from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import MetaData

from transactor.core.database import install_sqlite_savepoint_support

# Global naming convention for all constraints
convention = {
    "ix": "ix_%(table_name)s_%(column_0_name)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=convention)

# Global singleton (import-safe). The executor never reaches for it: services
# pass ``db.session`` explicitly.
db: SQLAlchemy = SQLAlchemy(session_options={"autoflush": False}, metadata=metadata)


def init_app(app: Flask) -> None:
    """Initialize SQLAlchemy and make its engine SAVEPOINT-capable.

    Parameters
    ----------
    app: flask.Flask
        Application used to bind extension instances. This call imports the
        :mod:`transactor.models` package so the metadata knows every table.
    """
    db.init_app(app)

    # Ensure models are imported so create_all sees metadata
    from transactor import models as _models  # noqa: F401

    with app.app_context():
        install_sqlite_savepoint_support(db.engine)
