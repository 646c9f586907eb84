"""Shared server-action guard and result envelope.

Every business operation is a plain function ``func(ctx, form)`` wrapped
with @server_action. The wrapper resolves the session, re-reads the
caller's profile to check its role, validates the payload with a pydantic
model, runs the function, applies cache revalidation on success, and turns
any outcome into an ActionResult.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from functools import wraps
from typing import Any

from flask import g, jsonify
from flask_login import current_user
from pydantic import BaseModel, ValidationError

from cache_backend import revalidate_path, revalidate_tag
from database import get_db
from errors import (
    ActionError,
    AuthenticationRequired,
    DatabaseFailure,
    InvalidInput,
    PermissionDenied,
    classify_integrity_error,
    is_integrity_error,
)

logger = logging.getLogger(__name__)

ROLE_LABELS = {"admin": "Admin", "teacher": "Teacher", "parent": "Parent", "student": "Student"}


@dataclass
class ActionResult:
    """The {success, data?, error?} envelope returned by every action."""

    success: bool
    data: Any = None
    error: str | None = None
    code: str | None = None
    message: str | None = None
    status: int = 200

    @classmethod
    def ok(cls, data: Any = None, message: str | None = None, status: int = 200) -> "ActionResult":
        return cls(True, data=data, message=message, status=status)

    @classmethod
    def fail(cls, error: ActionError) -> "ActionResult":
        return cls(False, error=error.message, code=error.code, status=error.status)

    def to_dict(self) -> dict:
        body: dict[str, Any] = {"success": self.success}
        if self.data is not None:
            body["data"] = self.data
        if self.error is not None:
            body["error"] = self.error
        if self.code is not None:
            body["code"] = self.code
        if self.message is not None:
            body["message"] = self.message
        return body

    def to_response(self):
        return jsonify(self.to_dict()), self.status


@dataclass
class ActionContext:
    """Per-call state handed to the action body."""

    profile: dict
    db: Any
    paths: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)

    @property
    def user_id(self) -> int:
        return self.profile["id"]

    @property
    def role(self) -> str:
        return self.profile["role"]

    def revalidate_path(self, path: str) -> None:
        self.paths.append(path)

    def revalidate_tag(self, tag: str) -> None:
        self.tags.append(tag)


def role_message(roles: Iterable[str]) -> str:
    labels = [ROLE_LABELS.get(r, r.title()) for r in roles]
    if len(labels) == 1:
        return f"{labels[0]} access required"
    return " or ".join([labels[0]] + [label.lower() for label in labels[1:]]) + " access required"


def resolve_profile(db) -> dict:
    """Session resolver: the caller's profile row, freshly read."""
    if not current_user.is_authenticated:
        raise AuthenticationRequired()
    row = db.execute(
        "SELECT id, email, full_name, role, student_id, homeroom_enabled FROM profiles WHERE id = ?",
        (current_user.id,),
    ).fetchone()
    if row is None:
        raise AuthenticationRequired("Profile not found")
    g.profile_id = row["id"]
    return dict(row)


def _validation_message(exc: ValidationError) -> str:
    err = exc.errors()[0]
    msg = err.get("msg", "Invalid input")
    if msg.startswith("Value error, "):
        msg = msg[len("Value error, "):]
    loc = ".".join(str(part) for part in err.get("loc", ()))
    return f"{loc}: {msg}" if loc else msg


def server_action(
    roles: Iterable[str] | None = None,
    schema: type[BaseModel] | None = None,
    revalidate: Iterable[str] = (),
    status: int = 200,
) -> Callable:
    """Wrap ``func(ctx, form)`` with authenticate → role gate → validate → run → revalidate."""
    allowed = tuple(roles) if roles else None
    paths = tuple(revalidate)

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(payload: dict | None = None) -> ActionResult:
            db = get_db()
            try:
                profile = resolve_profile(db)
                if allowed and profile["role"] not in allowed:
                    raise PermissionDenied(role_message(allowed))

                if schema is not None:
                    try:
                        form = schema.model_validate(payload or {})
                    except ValidationError as e:
                        raise InvalidInput(_validation_message(e))
                else:
                    form = payload or {}

                ctx = ActionContext(profile=profile, db=db)
                outcome = func(ctx, form)
            except ActionError as e:
                db.rollback()
                logger.warning("%s failed: %s (%s)", func.__name__, e.message, e.code)
                return ActionResult.fail(e)
            except Exception as e:
                db.rollback()
                if is_integrity_error(e):
                    err = classify_integrity_error(e)
                    logger.warning("%s constraint violation: %s", func.__name__, e)
                    return ActionResult.fail(err)
                logger.exception("%s raised", func.__name__)
                return ActionResult.fail(DatabaseFailure(str(e) or "Unexpected error"))

            for path in paths + tuple(ctx.paths):
                revalidate_path(path)
            for tag in ctx.tags:
                revalidate_tag(tag)

            if isinstance(outcome, ActionResult):
                return outcome
            return ActionResult.ok(outcome, status=status)

        wrapper.allowed_roles = allowed
        return wrapper

    return decorator
