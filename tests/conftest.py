"""
Test fixtures for EduConnect.

Provides an app backed by file-based SQLite seeded with the demo school,
HTTP clients logged in per role, and an ``act`` helper that runs a server
action directly as one of the seeded profiles.
"""

from __future__ import annotations

import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from seed_demo_data import DEMO_PASSWORD, DEMO_PROFILES  # noqa: E402


@pytest.fixture
def app(tmp_path):
    """Create app with file-based SQLite for testing."""
    from app import create_app

    db_file = str(tmp_path / "test.db")
    app = create_app({
        "TESTING": True,
        "DATABASE": db_file,
        "SECRET_KEY": "test-secret-key",
        "WTF_CSRF_ENABLED": False,
        "REDIS_URL": "",
        "EMAIL_BACKEND": "log",
        "RATELIMIT_STORAGE_URI": "memory://",
    })

    with app.app_context():
        from database import init_db, run_migrations
        from seed_demo_data import seed

        init_db()
        run_migrations()
        app.config["SEED_IDS"] = seed()
    app._db_initialized = True

    yield app


@pytest.fixture
def ids(app):
    """Primary keys of the seeded demo rows."""
    return app.config["SEED_IDS"]


@pytest.fixture
def client(app):
    """Unauthenticated test client."""
    return app.test_client()


def _login(app, key: str):
    client = app.test_client()
    resp = client.post("/api/auth/login", json={
        "email": DEMO_PROFILES[key]["email"],
        "password": DEMO_PASSWORD,
    })
    assert resp.status_code == 200, resp.get_json()
    return client


@pytest.fixture
def admin_client(app):
    return _login(app, "admin")


@pytest.fixture
def teacher_client(app):
    """Homeroom teacher of 10A who also teaches maths there."""
    return _login(app, "teacher")


@pytest.fixture
def teacher2_client(app):
    """Literature teacher of 10A, not a homeroom teacher."""
    return _login(app, "teacher2")


@pytest.fixture
def parent_client(app):
    """Parent linked to student HS001."""
    return _login(app, "parent")


@pytest.fixture
def student_client(app):
    return _login(app, "student")


@pytest.fixture
def act(app):
    """Run a server action as a seeded profile: ``act("admin", create_class, {...})``."""
    from flask_login import login_user
    from auth import Profile

    seeded = app.config["SEED_IDS"]

    def run(who, action, payload=None):
        with app.test_request_context():
            login_user(Profile.get(seeded[who]))
            return action(payload or {})

    return run


@pytest.fixture
def query(app):
    """Run a SELECT in a fresh app context and return plain dicts."""
    from database import get_db

    def run(sql, params=()):
        with app.app_context():
            return [dict(r) for r in get_db().execute(sql, params).fetchall()]

    return run
