"""
EduConnect — Flask Web Application

JSON API for school administration: academic structure, class placement,
detailed grades with overwrite approval, parent feedback, announcements,
leave applications and timetables.
"""

from __future__ import annotations

import hashlib
import os
from typing import Any

from flask import Flask, Response, jsonify, request as flask_request
from flask_wtf.csrf import CSRFError, CSRFProtect, generate_csrf

import database
from auth import auth_bp, login_manager
from blueprints import register_blueprints
from extensions import limiter

csrf = CSRFProtect()

# status -> (code, message) for errors raised outside server actions
HTTP_ERRORS: dict[int, tuple[str, str]] = {
    404: ("not_found", "Resource not found"),
    405: ("method_not_allowed", "Method not allowed"),
    429: ("rate_limited", "Too many requests, slow down"),
    500: ("server_error", "Internal server error"),
}

ETAG_MAX_BYTES = 1_048_576


def _error(message: str, code: str, status: int):
    return jsonify({"success": False, "error": message, "code": code}), status


def _load_config(app: Flask, test_config: dict[str, Any] | None) -> None:
    from config import config_by_name

    if test_config is not None:
        app.config.from_object(config_by_name["testing"])
        app.config.update(test_config)
        return
    cfg = config_by_name.get(os.environ.get("FLASK_ENV", "development"), config_by_name["development"])
    app.config.from_object(cfg)
    if hasattr(cfg, "validate"):
        cfg.validate()


def _register_error_handlers(app: Flask) -> None:
    def envelope(status: int):
        code, message = HTTP_ERRORS[status]

        def handler(e):
            if status == 500:
                app.logger.error("Unhandled error on %s: %s", flask_request.path, e)
            return _error(message, code, status)
        return handler

    for status in HTTP_ERRORS:
        app.register_error_handler(status, envelope(status))

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        return _error(e.description, "csrf_failed", 400)

    @app.errorhandler(413)
    def handle_too_large(e):
        limit_mb = (app.config.get("MAX_CONTENT_LENGTH") or 0) // (1024 * 1024)
        return _error(f"Upload exceeds the {limit_mb} MB limit", "payload_too_large", 413)


def _register_response_hooks(app: Flask) -> None:
    @app.after_request
    def set_security_headers(response: Response) -> Response:
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "same-origin"
        # API only: no documents, scripts or frames are ever served
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
        if not app.debug:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

    @app.after_request
    def set_etag(response: Response) -> Response:
        """Conditional GETs for JSON reads; downloads are streamed without an ETag."""
        if flask_request.method != "GET" or response.status_code != 200:
            return response
        if not response.is_json or not response.content_length or response.content_length >= ETAG_MAX_BYTES:
            return response
        etag = '"' + hashlib.md5(response.get_data()).hexdigest() + '"'
        response.headers["ETag"] = etag
        if flask_request.headers.get("If-None-Match") == etag:
            response.status_code = 304
            response.set_data(b"")
        return response


def create_app(test_config: dict[str, Any] | None = None) -> Flask:
    app = Flask(__name__)
    _load_config(app, test_config)
    app.secret_key = app.config.get("SECRET_KEY", os.environ.get("SECRET_KEY", "dev-key-change-in-production"))

    # Clients send the token from /api/csrf-token as X-CSRFToken
    csrf.init_app(app)

    from cache_backend import init_cache
    from logging_config import init_logging
    from tasks import init_tasks

    init_cache(app)
    init_tasks(app)
    init_logging(app)
    database.init_app(app)

    limiter.init_app(app)
    if app.config.get("TESTING"):
        limiter.enabled = False

    app.register_blueprint(auth_bp)
    login_manager.init_app(app)
    register_blueprints(app)

    @app.route("/api/csrf-token")
    def csrf_token():
        return jsonify({"csrf_token": generate_csrf()})

    _register_error_handlers(app)
    _register_response_hooks(app)
    return app


if __name__ == "__main__":
    create_app().run(debug=True, port=5001)
