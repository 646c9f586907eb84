"""Tests for role and class targeted announcements."""

from __future__ import annotations

import pytest

from actions.notifications import (
    create_notification,
    delete_notification,
    get_notification_target_options,
    get_unread_count,
    get_user_notifications,
    mark_notification_read,
)


@pytest.fixture
def announce(act):
    def run(who="admin", roles=("student",), classes=(), title="Lịch thi"):
        return act(who, create_notification, {
            "title": title, "content": "Thi giữa kỳ vào thứ Hai",
            "target_roles": list(roles), "target_classes": list(classes),
        })
    return run


def _titles(act, who):
    return [n["title"] for n in act(who, get_user_notifications).data["items"]]


class TestTargetOptions:
    def test_admin_gets_everything(self, act):
        data = act("admin", get_notification_target_options).data
        assert data["roles"] == ["admin", "teacher", "parent", "student"]
        assert [c["name"] for c in data["classes"]] == ["10A", "10B"]

    def test_homeroom_teacher(self, act):
        data = act("teacher", get_notification_target_options).data
        assert data["roles"] == ["student", "parent"]
        assert [c["name"] for c in data["classes"]] == ["10A"]

    def test_subject_teacher(self, act):
        data = act("teacher2", get_notification_target_options).data
        assert data["roles"] == ["student"]

    def test_parent_has_no_options(self, act):
        assert act("parent", get_notification_target_options).status == 403


class TestCreate:
    def test_admin_broadcast(self, announce):
        result = announce(roles=["parent", "student", "student"])
        assert result.success
        assert result.status == 201
        assert result.data["target_roles"] == ["parent", "student"]
        assert result.data["target_classes"] == []

    def test_subject_teacher_cannot_notify_parents(self, announce):
        result = announce(who="teacher2", roles=["parent"])
        assert result.code == "target_not_allowed"
        assert result.status == 403

    def test_teacher_limited_to_own_classes(self, announce, ids):
        result = announce(who="teacher", roles=["student"], classes=[ids["class_b"]])
        assert result.code == "target_not_allowed"

    def test_homeroom_teacher_can_notify_parents(self, announce, ids):
        assert announce(who="teacher", roles=["parent"], classes=[ids["class"]]).success

    def test_unknown_class(self, announce):
        assert announce(classes=[9999]).code == "invalid_reference"

    def test_needs_a_role(self, announce):
        assert announce(roles=[]).code == "invalid_input"

    def test_unknown_role(self, announce):
        assert announce(roles=["janitor"]).code == "invalid_input"


class TestVisibility:
    def test_role_targeting(self, act, announce):
        announce(roles=["parent"], title="Họp phụ huynh")
        assert _titles(act, "parent") == ["Họp phụ huynh"]
        assert _titles(act, "parent2") == ["Họp phụ huynh"]
        assert _titles(act, "student") == []
        assert _titles(act, "teacher") == []

    def test_class_targeting(self, act, announce, ids):
        announce(roles=["student", "parent"], classes=[ids["class"]], title="10A")
        announce(roles=["student", "parent"], classes=[ids["class_b"]], title="10B")
        assert _titles(act, "student") == ["10A"]
        assert _titles(act, "student3") == []
        assert _titles(act, "parent") == ["10A"]
        assert _titles(act, "parent2") == []

    def test_teacher_class_targeting(self, act, announce, ids):
        announce(roles=["teacher"], classes=[ids["class"]], title="GV 10A")
        assert _titles(act, "teacher2") == ["GV 10A"]

    def test_sender_sees_own(self, act, announce):
        announce(who="teacher", roles=["student"], title="Bài tập")
        assert _titles(act, "teacher") == ["Bài tập"]
        assert _titles(act, "admin") == []

    def test_newest_first(self, act, announce):
        announce(title="Cũ")
        announce(title="Mới")
        assert _titles(act, "student") == ["Mới", "Cũ"]


class TestReadState:
    def test_unread_count_and_mark_read(self, act, announce):
        nid = announce(roles=["student"]).data["id"]
        announce(roles=["student"], title="Thông báo 2")
        listing = act("student", get_user_notifications).data
        assert listing["unread_count"] == 2
        assert act("student", get_unread_count).data == {"count": 2}

        assert act("student", mark_notification_read, {"notification_id": nid}).success
        assert act("student", get_unread_count).data == {"count": 1}
        assert act("student2", get_unread_count).data == {"count": 2}

    def test_mark_read_of_invisible(self, act, announce):
        nid = announce(roles=["parent"]).data["id"]
        assert act("student", mark_notification_read, {"notification_id": nid}).code == "not_found"

    def test_pagination(self, act, announce):
        for i in range(3):
            announce(title=f"T{i}")
        data = act("student", get_user_notifications, {"limit": 2, "page": 2}).data
        assert len(data["items"]) == 1
        assert data["pagination"]["total"] == 3


class TestDelete:
    def test_sender_deletes(self, act, announce, query):
        nid = announce(who="teacher", roles=["student"]).data["id"]
        assert act("teacher", delete_notification, {"notification_id": nid}).success
        assert query("SELECT is_active FROM notifications WHERE id = ?", (nid,)) == [{"is_active": 0}]
        assert _titles(act, "student") == []

    def test_other_teacher_cannot_delete(self, act, announce):
        nid = announce(who="teacher", roles=["student"]).data["id"]
        assert act("teacher2", delete_notification, {"notification_id": nid}).status == 403

    def test_admin_deletes_any(self, act, announce):
        nid = announce(who="teacher", roles=["student"]).data["id"]
        assert act("admin", delete_notification, {"notification_id": nid}).success
        again = act("admin", delete_notification, {"notification_id": nid})
        assert again.code == "not_found"


class TestHttp:
    def test_create_and_list(self, admin_client, student_client):
        resp = admin_client.post("/api/notifications", json={
            "title": "Nghỉ lễ", "content": "Trường nghỉ ngày 2/9", "target_roles": ["student"],
        })
        assert resp.status_code == 201
        nid = resp.get_json()["data"]["id"]

        assert student_client.get("/api/notifications/unread-count").get_json()["data"] == {"count": 1}
        assert student_client.post(f"/api/notifications/{nid}/read").status_code == 200
        listing = student_client.get("/api/notifications").get_json()["data"]
        assert listing["unread_count"] == 0

    def test_delete_over_http(self, admin_client):
        nid = admin_client.post("/api/notifications", json={
            "title": "x", "content": "y", "target_roles": ["teacher"],
        }).get_json()["data"]["id"]
        assert admin_client.delete(f"/api/notifications/{nid}").status_code == 200

    def test_parent_cannot_post(self, parent_client):
        resp = parent_client.post("/api/notifications", json={
            "title": "x", "content": "y", "target_roles": ["parent"],
        })
        assert resp.status_code == 403
