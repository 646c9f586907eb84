"""
Shared helpers used across blueprints.

Kept free of blueprint imports to avoid circular dependencies.
"""

from __future__ import annotations

from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import jsonify, request
from flask_login import current_user

XLSX_MAGIC = b"PK\x03\x04"
XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def current_user_id() -> int | None:
    """Return the authenticated profile id, or None for anonymous requests."""
    if current_user.is_authenticated:
        return current_user.id
    return None


def roles_required(*roles: str) -> Callable:
    """Decorator for routes that do not go through a server action (file up/downloads)."""
    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated(*args: Any, **kwargs: Any) -> Any:
            if not current_user.is_authenticated:
                return jsonify({"success": False, "error": "Authentication required",
                                "code": "authentication_required"}), 401
            if getattr(current_user, "role", None) not in roles:
                return jsonify({"success": False, "error": "You do not have access to this resource",
                                "code": "permission_denied"}), 403
            return f(*args, **kwargs)
        return decorated
    return decorator


def request_payload() -> dict:
    """Action payload from a JSON body, form fields, or the query string (GET)."""
    if request.method == "GET":
        return {k: v for k, v in request.args.items()}
    if request.is_json:
        data = request.get_json(silent=True)
        return data if isinstance(data, dict) else {}
    return request.form.to_dict()


def run_action(action: Callable, payload: dict | None = None, **extra: Any):
    """Call a server action with the request payload and return a (json, status) tuple."""
    data = request_payload() if payload is None else dict(payload)
    data.update(extra)
    return action(data).to_response()


def uploaded_workbook() -> tuple[bytes | None, str | None]:
    """Read the ``file`` upload and check it is an .xlsx workbook. Returns (data, error)."""
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        return None, "No file uploaded"
    if not upload.filename.lower().endswith(".xlsx"):
        return None, "Only .xlsx files are supported"
    data = upload.read()
    if not data.startswith(XLSX_MAGIC):
        return None, "File content does not match an .xlsx workbook"
    return data, None


# ── Pagination ──────────────────────────────────────────────

def paginate_args(default_limit: int = 20, max_limit: int = 100) -> tuple[int, int]:
    """Extract page/limit from request.args. Returns (page, limit)."""
    try:
        page = max(1, int(request.args.get("page", 1)))
    except (ValueError, TypeError):
        page = 1
    try:
        limit = min(max_limit, max(1, int(request.args.get("limit", default_limit))))
    except (ValueError, TypeError):
        limit = default_limit
    return page, limit


def paginated_response(items: list, total: int, page: int, limit: int) -> dict:
    """Standard pagination envelope."""
    return {
        "items": items,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": max(1, (total + limit - 1) // limit),
        },
    }
