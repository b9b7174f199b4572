import logging
import time
from typing import Any, Mapping, Optional

import flask_limiter
import structlog
from dotenv import load_dotenv
from flask import Flask, g, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from archive_reader.config import settings
from archive_reader.extensions import limiter
from archive_reader.utils.correlation import CORRELATION_HEADER, start_request_context
from archive_reader.utils.logging_config import setup_logging


def _allowed_origins(raw_value: Optional[str]) -> list[str] | str:
    origins = [
        origin.strip() for origin in (raw_value or "").split(",") if origin.strip()
    ]
    return origins or "*"


def init_extensions(app: Flask) -> None:
    """Configure CORS and the rate limiter."""
    limiter_version = getattr(flask_limiter, "__version__", "0")
    app.logger.info("Flask-Limiter version: %s", limiter_version)

    app.config.setdefault("RATELIMIT_STORAGE_URI", "memory://")
    if app.config.get("TESTING"):
        app.config["RATELIMIT_ENABLED"] = False
    limiter.init_app(app)

    CORS(
        app,
        resources={r"/api/*": {"origins": app.config["ALLOWED_ORIGINS"]}},
        expose_headers=[CORRELATION_HEADER],
    )


def _register_request_hooks(app: Flask) -> None:
    log = structlog.get_logger("archive_reader.http")

    @app.before_request
    def bind_correlation():
        start_request_context(request.headers.get(CORRELATION_HEADER), request.path)
        g.request_started = time.perf_counter()

    @app.after_request
    def log_response(response):
        correlation_id = getattr(g, "correlation_id", None)
        if correlation_id:
            response.headers[CORRELATION_HEADER] = correlation_id
        started = getattr(g, "request_started", None)
        elapsed_ms = int((time.perf_counter() - started) * 1000) if started else None
        log.info(
            event="http.response",
            method=request.method,
            path=request.path,
            status_code=response.status_code,
            elapsed_ms=elapsed_ms,
        )
        return response

    @app.teardown_request
    def reset_context(_exc=None):
        structlog.contextvars.clear_contextvars()


def _register_error_handlers(app: Flask) -> None:
    log = structlog.get_logger("archive_reader.errors")

    def http_error(exc: HTTPException):
        response = jsonify({"error": exc.description or exc.name})
        response.status_code = exc.code or 500
        response.headers["Cache-Control"] = "no-store"
        return response

    def method_not_allowed(exc: HTTPException):
        response = jsonify({"error": "Method not allowed."})
        response.status_code = 405
        if getattr(exc, "valid_methods", None):
            response.headers["Allow"] = ", ".join(exc.valid_methods)
        response.headers["Cache-Control"] = "no-store"
        return response

    def internal_server_error(exc: Exception):
        original = getattr(exc, "original_exception", None) or exc
        log.error(
            event="unhandled_exception",
            path=request.path,
            error=str(original),
            error_type=type(original).__name__,
            exc_info=original,
        )
        response = jsonify({"error": "Unexpected error while resolving the archive."})
        response.status_code = 500
        response.headers["Cache-Control"] = "no-store"
        return response

    app.register_error_handler(405, method_not_allowed)
    app.register_error_handler(HTTPException, http_error)
    app.register_error_handler(500, internal_server_error)
    app.register_error_handler(Exception, internal_server_error)


def create_app(test_config: Optional[Mapping[str, Any]] = None) -> Flask:
    """Create and configure an instance of the Flask application."""
    load_dotenv()

    # Set up logging as early as possible
    setup_logging()
    logger = logging.getLogger(__name__)
    logger.info(
        "Application starting: ENV=%s wayback_origin=%s",
        settings.ENV,
        settings.WAYBACK_ORIGIN,
    )

    app = Flask(__name__)
    app.config.from_mapping(
        ENV=settings.ENV,
        ALLOWED_ORIGINS=_allowed_origins(settings.ALLOWED_ORIGINS),
    )
    app.json.sort_keys = False
    if test_config:
        app.config.update(test_config)

    init_extensions(app)
    _register_request_hooks(app)
    _register_error_handlers(app)

    from .routes import api, utility

    if "api" not in app.blueprints:
        app.register_blueprint(api.bp)
    if "utility" not in app.blueprints:
        app.register_blueprint(utility.bp)

    return app
