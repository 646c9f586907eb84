"""
User Authentication — Flask-Login blueprint.

Provides JSON login, logout, current-profile and password-change routes.
Uses werkzeug.security for password hashing. Accounts are created by an
administrator (see actions.users), there is no self-registration.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta

from flask import Blueprint, jsonify, request
from flask_login import LoginManager, UserMixin, login_required, login_user, logout_user, current_user
from werkzeug.security import generate_password_hash, check_password_hash

from database import get_db
from extensions import limiter
from audit import log_event

LOCKOUT_THRESHOLD = 5
LOCKOUT_MINUTES = 15
ROLES = ("admin", "teacher", "parent", "student")

auth_bp = Blueprint("auth", __name__)
login_manager = LoginManager()


class Profile(UserMixin):
    """Wraps a profiles row for Flask-Login."""

    def __init__(self, id: int, full_name: str, email: str, role: str = "student"):
        self.id = id
        self.full_name = full_name
        self.email = email
        self.role = role

    @property
    def is_teacher(self):
        return self.role == "teacher"

    @property
    def is_admin(self):
        return self.role == "admin"

    def to_dict(self) -> dict:
        return {"id": self.id, "full_name": self.full_name, "email": self.email, "role": self.role}

    @staticmethod
    def get(profile_id: int):
        db = get_db()
        row = db.execute(
            "SELECT id, full_name, email, role FROM profiles WHERE id = ?", (profile_id,)
        ).fetchone()
        if row:
            return Profile(row["id"], row["full_name"], row["email"], row["role"])
        return None

    @staticmethod
    def get_by_email(email: str):
        db = get_db()
        return db.execute(
            "SELECT id, full_name, email, password_hash, role, login_attempts, locked_until "
            "FROM profiles WHERE email = ?", (email,),
        ).fetchone()


@login_manager.user_loader
def load_user(user_id):
    return Profile.get(int(user_id))


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({"success": False, "error": "Authentication required",
                    "code": "authentication_required"}), 401


def validate_password(password: str) -> str | None:
    """Return an error message if password is too weak, else None."""
    if len(password) < 8:
        return "Password must be at least 8 characters."
    if not any(c.isupper() for c in password):
        return "Password must contain at least one uppercase letter."
    if not any(c.islower() for c in password):
        return "Password must contain at least one lowercase letter."
    if not any(c.isdigit() for c in password):
        return "Password must contain at least one digit."
    return None


def _credentials() -> tuple[str, str]:
    data = request.get_json(silent=True) or request.form
    return (data.get("email") or "").strip().lower(), data.get("password") or ""


@auth_bp.route("/api/auth/login", methods=["POST"])
@limiter.limit("5 per 15 minutes")
def login():
    email, password = _credentials()
    if not email or not password:
        return jsonify({"success": False, "error": "Email and password are required."}), 400

    row = Profile.get_by_email(email)
    if not row:
        return jsonify({"success": False, "error": "Invalid email or password."}), 401

    # Check account lockout
    locked_until = row["locked_until"]
    if locked_until:
        try:
            lock_time = datetime.fromisoformat(locked_until)
            remaining = (lock_time - datetime.now()).total_seconds()
            if remaining > 0:
                mins = math.ceil(remaining / 60)
                log_event("login_locked", row["id"], f"email={email}")
                return jsonify({
                    "success": False,
                    "error": f"Account temporarily locked. Try again in {mins} minute(s).",
                }), 423
        except (ValueError, TypeError):
            pass

    db = get_db()
    if not row["password_hash"] or not check_password_hash(row["password_hash"], password):
        attempts = (row["login_attempts"] or 0) + 1
        if attempts >= LOCKOUT_THRESHOLD:
            db.execute(
                "UPDATE profiles SET login_attempts=?, locked_until=? WHERE id=?",
                (attempts, (datetime.now() + timedelta(minutes=LOCKOUT_MINUTES)).isoformat(), row["id"]),
            )
        else:
            db.execute("UPDATE profiles SET login_attempts=? WHERE id=?", (attempts, row["id"]))
        db.commit()
        log_event("login_failed", row["id"], f"email={email} attempts={attempts}")
        return jsonify({"success": False, "error": "Invalid email or password."}), 401

    # Success: reset lockout fields
    db.execute("UPDATE profiles SET login_attempts=0, locked_until='' WHERE id=?", (row["id"],))
    db.commit()

    profile = Profile(row["id"], row["full_name"], row["email"], row["role"])
    login_user(profile, remember=True)
    log_event("login_success", row["id"])
    return jsonify({"success": True, "data": profile.to_dict()})


@auth_bp.route("/api/auth/me")
@login_required
def me():
    return jsonify({"success": True, "data": current_user.to_dict()})


@auth_bp.route("/api/auth/password", methods=["POST"])
@login_required
def change_password():
    data = request.get_json(silent=True) or {}
    current = data.get("current_password", "")
    new = data.get("new_password", "")

    db = get_db()
    row = db.execute("SELECT password_hash FROM profiles WHERE id=?", (current_user.id,)).fetchone()
    if not row or not check_password_hash(row["password_hash"], current):
        return jsonify({"success": False, "error": "Incorrect password."}), 403

    pw_error = validate_password(new)
    if pw_error:
        return jsonify({"success": False, "error": pw_error}), 400

    db.execute("UPDATE profiles SET password_hash=? WHERE id=?",
               (generate_password_hash(new), current_user.id))
    db.commit()
    log_event("password_change", current_user.id)
    return jsonify({"success": True})


@auth_bp.route("/api/auth/logout", methods=["POST"])
def logout():
    uid = current_user.id if current_user.is_authenticated else None
    log_event("logout", uid)
    logout_user()
    return jsonify({"success": True})
