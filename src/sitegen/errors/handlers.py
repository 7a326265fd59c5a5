"""Centralized JSON error handlers.

Every error leaving the service is a JSON payload built by
``build_error_payload``; ``AppError`` subclasses carry their own status and
machine readable code.
"""
from __future__ import annotations

import traceback
import uuid
from typing import Any, Dict

from flask import Blueprint, current_app, g, jsonify, make_response
from werkzeug.exceptions import HTTPException

from sitegen.utils.errors import AppError, build_error_payload

error_bp = Blueprint("errors", __name__)

ERROR_TITLES = {
    400: "Bad Request",
    402: "Payment Required",
    404: "Not Found",
    405: "Method Not Allowed",
    415: "Unsupported Media Type",
    429: "Too Many Requests",
    500: "Internal Server Error",
    502: "Bad Gateway",
    503: "Service Unavailable",
    504: "Gateway Timeout",
}


def render_error(status_code: int, error: Exception | None = None):
    title = ERROR_TITLES.get(status_code, "Error")
    debug = current_app.debug or current_app.config.get("SHOW_ERROR_DETAILS", False)

    extra: Dict[str, Any] = {}
    if debug and error is not None and not isinstance(error, (HTTPException, AppError)):
        extra["debug"] = {
            "exception_type": type(error).__name__,
            "stacktrace": traceback.format_exc(),
        }

    if isinstance(error, AppError):
        status_code = error.http_status or status_code
        title = ERROR_TITLES.get(status_code, title)
        payload = build_error_payload(error.message, status=status_code, error=title,
                                      code=error.code, details=error.details, **extra)
    elif isinstance(error, HTTPException):
        payload = build_error_payload(error.description or title, status=status_code, error=title)
    else:
        payload = build_error_payload(title, status=status_code, error=title, **extra)
    return make_response(jsonify(payload), status_code)


@error_bp.app_errorhandler(AppError)  # type: ignore[misc]
def handle_app_error(exc: AppError):
    return render_error(exc.http_status, exc)


@error_bp.app_errorhandler(HTTPException)  # type: ignore[misc]
def handle_http_exception(exc: HTTPException):
    return render_error(getattr(exc, "code", 500) or 500, exc)


@error_bp.app_errorhandler(Exception)  # type: ignore[misc]
def handle_uncaught_exception(exc: Exception):
    current_app.logger.exception("Unhandled exception: %s", exc)
    return render_error(500, exc)


def register_error_handlers(app):
    """Register handlers & attach request id generation."""
    @app.before_request  # type: ignore[misc]
    def _assign_request_id():
        g.request_id = uuid.uuid4().hex

    app.register_blueprint(error_bp)
    return app
