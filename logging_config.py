"""
Structured logging configuration.

Production emits one JSON object per line; development gets a readable
text line. Records logged while serving a request carry the request id
(taken from X-Request-ID when the caller sends one) and the acting
profile, so a failed server action can be traced from the access log.
"""

from __future__ import annotations

import json
import logging
import time
import uuid

from flask import Flask, g, has_request_context, request

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s [%(request_id)s]: %(message)s"

access_logger = logging.getLogger("educonnect.access")


class RequestContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        in_request = has_request_context()
        if not hasattr(record, "request_id"):
            record.request_id = getattr(g, "request_id", "-") if in_request else "-"
        if not hasattr(record, "profile_id"):
            record.profile_id = getattr(g, "profile_id", None) if in_request else None
        return True


class JSONFormatter(logging.Formatter):
    """Emit log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", "-"),
        }
        if getattr(record, "profile_id", None) is not None:
            entry["profile_id"] = record.profile_id
        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def init_logging(app: Flask) -> None:
    """Configure the root logger from LOG_FORMAT / LOG_LEVEL and install request hooks."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, app.config.get("LOG_LEVEL", "INFO").upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler()
    handler.addFilter(RequestContextFilter())
    if app.config.get("LOG_FORMAT", "text") == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    root.addHandler(handler)

    logging.getLogger("werkzeug").setLevel(logging.WARNING)

    @app.before_request
    def _attach_request_id():
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
        g.request_start = time.perf_counter()

    @app.after_request
    def _log_request(response):
        duration_ms = (time.perf_counter() - g.get("request_start", time.perf_counter())) * 1000
        response.headers["X-Request-ID"] = g.get("request_id", "-")
        slow = duration_ms >= app.config.get("SLOW_REQUEST_MS", 1000)
        level = logging.WARNING if slow else logging.INFO
        access_logger.log(level, "%s %s %s %.0fms", request.method, request.path,
                          response.status_code, duration_ms)
        return response
