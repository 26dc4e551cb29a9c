"""HTTP blueprints exposed by the application."""

from __future__ import annotations

from flask import Flask


def init_app(app: Flask) -> None:
    """Register the blueprints under ``API_BASE_PREFIX``."""

    from transactor.api.health import bp as health_bp

    app.register_blueprint(health_bp, url_prefix=app.config.get("API_BASE_PREFIX", "/api"))


__all__ = ["init_app"]
