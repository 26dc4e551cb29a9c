"""Centralized JSON (RFC 7807) error handling for the HTTP surface."""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Any

from flask import Flask, Response, jsonify, request
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from transactor.core.logger import ensure_request_id
from transactor.tx.errors import BusinessError, TransactionError

log = logging.getLogger(__name__)


def _http_status_to_code(status_code: int) -> str:
    """Map common HTTP status codes to canonical, stable error codes."""
    mapping = {
        400: "bad_request",
        401: "unauthorized",
        403: "forbidden",
        404: "not_found",
        405: "method_not_allowed",
        409: "conflict",
        422: "unprocessable_entity",
        500: "internal_server_error",
        503: "service_unavailable",
    }
    return mapping.get(status_code, "error")


def _as_problem(
    *,
    status: int,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Build an RFC 7807 Problem Details dict.

    :param status: HTTP status code.
    :param code: Stable machine-consumable error code.
    :param message: Human-readable error summary (safe for clients).
    :param details: Optional safe, structured details.
    :returns: Problem+JSON dictionary.
    :rtype: dict
    """
    problem = {
        "type": "about:blank",
        "title": HTTPStatus(status).phrase,
        "status": status,
        "detail": message,
        "instance": request.path if request else None,
        "code": code,
    }
    if details:
        problem["details"] = details
    problem["request_id"] = ensure_request_id()
    return problem


def _problem_response(problem: dict[str, Any]) -> Response:
    """Return a Flask response with ``application/problem+json`` media type."""
    resp = jsonify(problem)
    resp.mimetype = "application/problem+json"
    return resp


def business_error_response(erk: BusinessError) -> tuple[Response, int]:
    """Render a :class:`BusinessError` as a problem response.

    Unknown status codes (outside the HTTP range) are reported as 500 while the
    business ``reason`` is kept as the problem ``code``.
    """
    problem = erk.to_problem(instance=request.path if request else None)
    try:
        status = HTTPStatus(erk.status_code)
    except ValueError:
        status = HTTPStatus.INTERNAL_SERVER_ERROR
        problem["status"] = int(status)
        problem["title"] = status.phrase
    problem["request_id"] = ensure_request_id()
    return _problem_response(problem), int(status)


def init_app(app: Flask) -> None:
    """
    Attach JSON error handlers to the Flask app.

    Notes
    -----
    - Business errors keep their status code and reason.
    - Infrastructure errors that escape a service are reported as 503 without
      leaking driver details.
    - Emits 5xx with ``exc_info`` for traceability; 4xx as warnings.
    """

    @app.errorhandler(BusinessError)
    def handle_business_error(err: BusinessError):
        response, status = business_error_response(err)
        level = log.error if status >= 500 else log.warning
        level(
            "BusinessError: reason=%s status=%s msg=%s",
            err.reason,
            status,
            err.message,
        )
        return response, status

    @app.errorhandler(HTTPException)
    def handle_http_exception(err: HTTPException):
        status = int(err.code or HTTPStatus.INTERNAL_SERVER_ERROR)
        error_code = _http_status_to_code(status)
        message = (err.description or error_code.replace("_", " ").capitalize()).strip()
        if status == HTTPStatus.NOT_FOUND and request:
            message = f"Route '{request.path}' not found"
        problem = _as_problem(status=status, code=error_code, message=message)
        level = log.error if status >= 500 else log.warning
        level("HTTPException: code=%s status=%s detail=%s", error_code, status, message)
        return _problem_response(problem), status

    @app.errorhandler(TransactionError)
    @app.errorhandler(SQLAlchemyError)
    def handle_infrastructure_error(err: Exception):
        # Do not leak raw DB error to clients
        problem = _as_problem(
            status=HTTPStatus.SERVICE_UNAVAILABLE,
            code="service_unavailable",
            message="Service temporarily unavailable",
        )
        log.error("Infrastructure error: %s", type(err).__name__, exc_info=True)
        return _problem_response(problem), HTTPStatus.SERVICE_UNAVAILABLE

    @app.errorhandler(Exception)
    def handle_unexpected_error(err: Exception):
        problem = _as_problem(
            status=HTTPStatus.INTERNAL_SERVER_ERROR,
            code="internal_server_error",
            message="Unexpected error",
        )
        log.error("Unhandled exception", exc_info=True)
        return _problem_response(problem), HTTPStatus.INTERNAL_SERVER_ERROR
