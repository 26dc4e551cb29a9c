"""Transaction options forwarded verbatim to the transaction begin call."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class TxOptions:
    """
    Per-transaction settings.

    :param isolation_level: Isolation level name understood by the SQLAlchemy
        dialect (e.g. ``"SERIALIZABLE"``, ``"REPEATABLE READ"``). ``None`` keeps
        the connection default. No validation is performed here; unsupported
        values surface as a begin failure.
    :param read_only: Install write guards for the duration of the unit of
        work and, on PostgreSQL/MySQL, issue ``SET TRANSACTION READ ONLY``.

    Notes
    -----
    Both settings only take effect on a top-level transaction. A nested call
    runs inside a SAVEPOINT of the outer transaction and inherits its isolation
    level; ``read_only`` guards still apply to the nested scope.
    """

    isolation_level: str | None = None
    read_only: bool = False


DEFAULT_OPTIONS = TxOptions()

__all__ = ["TxOptions", "DEFAULT_OPTIONS"]
