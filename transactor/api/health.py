"""Health check endpoint."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text
from sqlalchemy.orm import Session

from transactor.core.config import tx_context_from_config
from transactor.core.extensions import db
from transactor.core.logger import ensure_request_id
from transactor.tx import TxOptions, execute

bp = Blueprint("health", __name__)


def _probe(tx: Session) -> None:
    tx.execute(text("SELECT 1"))


@bp.get("/health")
def healthcheck():
    """Return application and database health information.

    The probe runs through the executor in a read-only transaction, so a
    deadline or driver failure shows up as ``db: fail``.
    """
    ctx = tx_context_from_config(current_app.config, request_id=ensure_request_id())
    _, err = execute(ctx, db.session, _probe, TxOptions(read_only=True))
    db_status = "ok"
    if err is not None:
        current_app.logger.error("healthcheck.db_error: %s", err)
        db_status = "fail"
    return jsonify({"status": "ok", "db": db_status})
