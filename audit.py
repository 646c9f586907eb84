"""
Audit logging — records administrative and security-relevant events.

Events are written to both the audit_log table and structured logging.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime

import psycopg2
from flask import has_request_context, request

from database import get_db

logger = logging.getLogger(__name__)


def log_event(action: str, user_id: int | None = None, detail: str = "") -> None:
    """Insert an audit log entry and emit a structured log line.

    Call it after the mutation it describes has been committed: a failed
    audit write rolls back whatever is still open on the connection.
    """
    ip = (request.remote_addr or "") if has_request_context() else ""
    ua = request.headers.get("User-Agent", "") if has_request_context() else ""
    now = datetime.now().isoformat()

    db = get_db()
    try:
        db.execute(
            "INSERT INTO audit_log (user_id, action, detail, ip_address, user_agent, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (user_id, action, detail, ip, ua, now),
        )
        db.commit()
    except (sqlite3.Error, psycopg2.Error) as e:
        db.rollback()
        logger.warning("audit write failed for %s: %s", action, e)

    logger.info("audit: %s user_id=%s detail=%s ip=%s", action, user_id, detail, ip)


def recent_events(limit: int = 50, action: str | None = None) -> list[dict]:
    """Most recent audit entries, newest first."""
    db = get_db()
    if action:
        rows = db.execute(
            "SELECT * FROM audit_log WHERE action = ? ORDER BY id DESC LIMIT ?",
            (action, limit),
        ).fetchall()
    else:
        rows = db.execute("SELECT * FROM audit_log ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
    return [dict(r) for r in rows]
