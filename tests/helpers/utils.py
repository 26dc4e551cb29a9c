"""Tiny helpers shared across test modules."""

from __future__ import annotations

from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session


def _count_stmt(model: type, filters: dict[str, Any]) -> Select:
    return select(func.count()).select_from(model).filter_by(**filters)


def count_rows(session: Session, model: type, **filters) -> int:
    """Count rows of ``model`` matching ``filters`` as ``session`` sees them.

    The read transaction is rolled back afterwards so the session is idle
    again.
    """
    total = session.scalar(_count_stmt(model, filters))
    session.rollback()
    return int(total or 0)


def committed_scalars(session: Session, stmt: Select) -> list:
    """Run ``stmt`` on a fresh session once ``session`` has been closed.

    Closing ``session`` discards whatever it has not committed, so the result
    only reflects committed rows.
    """
    engine = session.get_bind()
    session.close()
    with Session(bind=engine) as fresh:
        return list(fresh.scalars(stmt))


def count_committed(session: Session, model: type, **filters) -> int:
    """Count committed rows of ``model`` matching ``filters``."""
    (total,) = committed_scalars(session, _count_stmt(model, filters))
    return int(total or 0)
