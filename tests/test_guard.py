"""Tests for the server-action guard and its result envelope."""

from __future__ import annotations

from actions.base import ActionResult, role_message


class TestRoleMessage:
    def test_single_role(self):
        assert role_message(["admin"]) == "Admin access required"

    def test_two_roles(self):
        assert role_message(["admin", "teacher"]) == "Admin or teacher access required"


class TestActionResult:
    def test_ok_omits_empty_fields(self):
        assert ActionResult.ok({"id": 1}).to_dict() == {"success": True, "data": {"id": 1}}

    def test_ok_with_message(self):
        body = ActionResult.ok(message="Done").to_dict()
        assert body == {"success": True, "message": "Done"}


class TestGuard:
    def test_unauthenticated_action(self, app):
        from actions.users import list_users
        with app.test_request_context():
            result = list_users({})
        assert result.success is False
        assert result.code == "authentication_required"
        assert result.status == 401

    def test_wrong_role(self, act):
        from actions.users import list_users
        result = act("teacher", list_users)
        assert result.success is False
        assert result.code == "permission_denied"
        assert result.error == "Admin access required"
        assert result.status == 403

    def test_validation_failure_names_field(self, act):
        from actions.users import create_user
        result = act("admin", create_user, {"email": "x@demo.edu", "full_name": "X Y", "role": "janitor",
                                            "password": "Secret123"})
        assert result.success is False
        assert result.code == "invalid_input"
        assert result.error.startswith("role")

    def test_model_validator_message_is_clean(self, act):
        from actions.users import create_user
        result = act("admin", create_user, {"email": "kid@demo.edu", "full_name": "Kid", "role": "student",
                                            "password": "Secret123"})
        assert result.code == "invalid_input"
        assert result.error == "Students must have a student ID"

    def test_role_is_read_from_database(self, act, app):
        """A session whose profile was demoted loses access on the next call."""
        from actions.users import list_users
        from database import get_db
        with app.app_context():
            db = get_db()
            db.execute("UPDATE profiles SET role = 'teacher' WHERE id = ?", (app.config["SEED_IDS"]["admin"],))
            db.commit()
        result = act("admin", list_users)
        assert result.code == "permission_denied"

    def test_http_route_returns_envelope(self, teacher_client):
        resp = teacher_client.get("/api/admin/users")
        assert resp.status_code == 403
        body = resp.get_json()
        assert body == {"success": False, "error": "Admin access required", "code": "permission_denied"}

    def test_unauthenticated_http(self, client):
        resp = client.get("/api/classes")
        assert resp.status_code == 401
        assert resp.get_json()["code"] == "authentication_required"


class TestAppErrors:
    def test_unknown_route_is_json(self, client):
        resp = client.get("/api/does-not-exist")
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "not_found"

    def test_method_not_allowed(self, client):
        resp = client.delete("/api/health")
        assert resp.status_code == 405

    def test_security_headers(self, client):
        resp = client.get("/api/health")
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert "default-src 'none'" in resp.headers["Content-Security-Policy"]

    def test_etag_round_trip(self, client):
        first = client.get("/api/health")
        etag = first.headers.get("ETag")
        assert etag
        second = client.get("/api/health", headers={"If-None-Match": etag})
        assert second.status_code == 304

    def test_csrf_token_endpoint(self, client):
        resp = client.get("/api/csrf-token")
        assert resp.status_code == 200
        assert resp.get_json()["csrf_token"]
