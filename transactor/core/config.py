"""Application settings with environment-based simple classes."""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Any, Final

from dotenv import load_dotenv

from transactor.tx.context import TxContext
from transactor.tx.options import TxOptions

# Public selector env var
ENV_VAR: Final[str] = "TRANSACTOR_ENV"  # 'development' | 'testing' | 'production'


# Load .env in development (no-op when the file does not exist)
load_dotenv()


def env_bool(name: str, default: bool = False) -> bool:
    """Parse a boolean flag from an environment variable.

    Parameters
    ----------
    name: str
        Environment variable to inspect.
    default: bool, optional
        Value returned when the variable is unset. Defaults to ``False``.

    Returns
    -------
    bool
        ``True`` if the value resembles ``{"1", "true", "yes", "y", "on"}``
        ignoring case; otherwise ``False`` or ``default`` when missing.
    """
    val = os.getenv(name)
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "y", "on"}


def env_float(name: str, default: float | None = None) -> float | None:
    """Parse an optional float from an environment variable.

    Empty values map to ``default``; anything unparsable raises ``ValueError``
    so misconfiguration fails at startup rather than mid-transaction.
    """
    val = os.getenv(name)
    if val is None or not val.strip():
        return default
    return float(val)


class BaseConfig:
    """Base configuration shared across environments.

    Attributes
    ----------
    SQLALCHEMY_DATABASE_URI: str
        Database connection string consumed by SQLAlchemy.
    SQLALCHEMY_TRACK_MODIFICATIONS: bool
        Disabled to avoid extra overhead from the event system.
    SQLALCHEMY_ECHO: bool
        When ``True`` SQLAlchemy logs SQL statements for debugging.
    LOG_LEVEL: str
        Root logging verbosity (``INFO`` by default).
    TX_TIMEOUT_SECONDS: float | None
        Deadline applied to service-level transactions. ``None`` disables it.
    TX_ISOLATION_LEVEL: str | None
        Isolation level forwarded to top-level transactions.
    TX_READ_ONLY: bool
        Default read-only flag for service-level transactions.
    DEBUG: bool
        Toggles Flask debug mode.
    TESTING: bool
        Enables Flask testing mode when ``True``.

    Notes
    -----
    Values are primarily sourced from environment variables, enabling
    configuration without code changes.
    """

    API_BASE_PREFIX = "/api"

    SECRET_KEY = os.getenv("SECRET_KEY", "CHANGE_ME")

    # DB
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///./dev.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = env_bool("SQLALCHEMY_ECHO", False)

    # Transactions
    TX_TIMEOUT_SECONDS = env_float("TX_TIMEOUT_SECONDS", None)
    TX_ISOLATION_LEVEL = os.getenv("TX_ISOLATION_LEVEL") or None
    TX_READ_ONLY = env_bool("TX_READ_ONLY", False)

    # Flask & JSON
    JSON_SORT_KEYS = False
    PROPAGATE_EXCEPTIONS = False

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    DEBUG = False
    TESTING = False


class DevelopmentConfig(BaseConfig):
    """Configuration tailored for local development."""

    DEBUG = env_bool("FLASK_DEBUG", True)
    SQLALCHEMY_ECHO = env_bool("SQLALCHEMY_ECHO", False)


class TestingConfig(BaseConfig):
    """Configuration for automated test runs.

    Notes
    -----
    - Forces ``TESTING`` mode and disables debug logs.
    - Uses an in-memory SQLite database unless ``TEST_DATABASE_URL`` is set.
    - Propagates exceptions so pytest can surface tracebacks directly.
    """

    TESTING = True
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    SQLALCHEMY_ECHO = env_bool("SQLALCHEMY_ECHO", False)
    PROPAGATE_EXCEPTIONS = True


class ProductionConfig(BaseConfig):
    """Configuration defaults for production deployments."""

    DEBUG = False
    SQLALCHEMY_ECHO = False
    PROPAGATE_EXCEPTIONS = False


# Map names -> classes (simple, explicit)
CONFIG_MAP: Mapping[str, type[BaseConfig]] = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}


def get_config() -> type[BaseConfig]:
    """Return the configuration class inferred from ``TRANSACTOR_ENV``.

    Falls back to :class:`DevelopmentConfig` when the variable is unset or
    unknown.
    """
    name = os.getenv(ENV_VAR, "development").strip().lower()
    return CONFIG_MAP.get(name, DevelopmentConfig)


def tx_options_from_config(config: Mapping[str, Any]) -> TxOptions:
    """Build default :class:`TxOptions` from a Flask-style config mapping."""
    return TxOptions(
        isolation_level=config.get("TX_ISOLATION_LEVEL") or None,
        read_only=bool(config.get("TX_READ_ONLY", False)),
    )


def tx_context_from_config(
    config: Mapping[str, Any], *, request_id: str | None = None
) -> TxContext:
    """Build a :class:`TxContext` honouring ``TX_TIMEOUT_SECONDS`` when set."""
    ctx = TxContext.background(request_id=request_id)
    timeout = config.get("TX_TIMEOUT_SECONDS")
    if timeout is None:
        return ctx
    return ctx.with_timeout(float(timeout))
