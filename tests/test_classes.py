"""Tests for classes, student placement and subject-teacher assignments."""

from __future__ import annotations

import sqlite3

import pytest

from actions.classes import (
    assign_student_to_class,
    assign_subject_teacher,
    bulk_assign_students,
    create_class,
    delete_class,
    get_available_students,
    get_class_assignments,
    get_class_roster,
    list_classes,
    list_teacher_assignments,
    remove_student_from_class,
    update_class,
)
from errors import classify_integrity_error


def _active(query, student_id):
    return query(
        "SELECT * FROM student_class_assignments WHERE student_id = ? AND is_active = 1", (student_id,),
    )


class TestCreateClass:
    def test_create_class(self, act, ids):
        result = act("admin", create_class, {"name": "11B", "academic_year_id": ids["year"], "grade_level": 11})
        assert result.success
        assert result.status == 201
        assert result.data["current_students"] == 0
        assert result.data["academic_year_name"] == "2025-2026"

    def test_duplicate_name_in_year(self, act, ids):
        result = act("admin", create_class, {"name": "10A", "academic_year_id": ids["year"]})
        assert result.code == "duplicate_class"
        assert result.status == 409

    def test_homeroom_teacher_must_be_enabled(self, act, ids):
        result = act("admin", create_class, {
            "name": "11C", "academic_year_id": ids["year"], "homeroom_teacher_id": ids["teacher2"],
        })
        assert result.code == "homeroom_not_enabled"

    def test_combination_needs_type(self, act, ids):
        result = act("admin", create_class, {
            "name": "KHTN1", "academic_year_id": ids["year"], "is_subject_combination": True,
        })
        assert result.code == "invalid_input"

    def test_unknown_year(self, act):
        result = act("admin", create_class, {"name": "12A", "academic_year_id": 9999})
        assert result.code == "not_found"

    def test_list_classes_counts_students(self, act, ids):
        result = act("teacher", list_classes, {"academic_year_id": ids["year"]})
        counts = {c["name"]: c["current_students"] for c in result.data}
        assert counts == {"10A": 2, "10B": 0}

    def test_delete_class_with_students(self, act, ids):
        result = act("admin", delete_class, {"class_id": ids["class"]})
        assert result.code == "class_not_empty"

    def test_delete_empty_class(self, act, ids, query):
        assert act("admin", delete_class, {"class_id": ids["class_b"]}).success
        assert query("SELECT id FROM classes WHERE id = ?", (ids["class_b"],)) == []


class TestUpdateClass:
    def _form(self, ids, class_key="class", **overrides):
        payload = {"class_id": ids[class_key], "name": "10A" if class_key == "class" else "10B",
                   "academic_year_id": ids["year"], "semester_id": ids["semester"], "grade_level": 10,
                   "max_students": 40}
        if class_key == "class":
            payload["homeroom_teacher_id"] = ids["teacher"]
        payload.update(overrides)
        return payload

    def test_rename(self, act, ids, query):
        result = act("admin", update_class, self._form(ids, name="10A1", description="Lớp chọn"))
        assert result.success
        assert result.data["name"] == "10A1"
        assert result.data["current_students"] == 2
        assert query("SELECT action FROM audit_log WHERE action = 'class_update'") != []

    def test_keeps_own_homeroom_teacher(self, act, ids):
        assert act("admin", update_class, self._form(ids, max_students=35)).success

    def test_below_current_students(self, act, ids):
        result = act("admin", update_class, self._form(ids, max_students=1))
        assert result.code == "below_current_students"
        assert result.status == 400

    def test_type_change_with_students(self, act, ids):
        result = act("admin", update_class, self._form(
            ids, is_subject_combination=True, subject_combination_type="KHTN",
        ))
        assert result.code == "class_not_empty"

    def test_type_change_when_empty(self, act, ids):
        result = act("admin", update_class, self._form(
            ids, "class_b", is_subject_combination=True, subject_combination_type="KHTN",
        ))
        assert result.success
        assert result.data["subject_combination_type"] == "KHTN"

    def test_name_taken(self, act, ids):
        result = act("admin", update_class, self._form(ids, "class_b", name="10A"))
        assert result.code == "duplicate_class"

    def test_homeroom_teacher_taken(self, act, ids):
        result = act("admin", update_class, self._form(ids, "class_b", homeroom_teacher_id=ids["teacher"]))
        assert result.code == "homeroom_taken"
        assert result.status == 409

    def test_create_with_taken_homeroom_teacher(self, act, ids):
        result = act("admin", create_class, {
            "name": "10C", "academic_year_id": ids["year"], "semester_id": ids["semester"],
            "homeroom_teacher_id": ids["teacher"],
        })
        assert result.code == "homeroom_taken"

    def test_homeroom_teacher_free_in_other_semester(self, act, ids):
        result = act("admin", update_class, self._form(
            ids, "class_b", semester_id=ids["semester2"], homeroom_teacher_id=ids["teacher"],
        ))
        assert result.success

    def test_missing_class(self, act, ids):
        assert act("admin", update_class, self._form(ids, class_id=9999)).code == "not_found"

    def test_update_over_http(self, admin_client, ids):
        payload = self._form(ids, "class_b", name="10B1")
        del payload["class_id"]
        resp = admin_client.put(f"/api/admin/classes/{ids['class_b']}", json=payload)
        assert resp.status_code == 200
        assert resp.get_json()["data"]["name"] == "10B1"


class TestAssignStudent:
    def test_assign(self, act, ids, query):
        result = act("admin", assign_student_to_class, {
            "student_id": ids["student3"], "class_id": ids["class_b"], "assignment_type": "main",
        })
        assert result.success
        assert result.data["is_active"] == 1
        assert len(_active(query, ids["student3"])) == 1

    def test_second_main_class_rejected(self, act, ids, query):
        result = act("admin", assign_student_to_class, {
            "student_id": ids["student"], "class_id": ids["class_b"], "assignment_type": "main",
        })
        assert result.success is False
        assert result.code == "already_assigned"
        assert result.status == 409
        rows = _active(query, ids["student"])
        assert len(rows) == 1
        assert rows[0]["class_id"] == ids["class"]

    def test_database_index_backs_the_rule(self, app, ids):
        """Bypassing the action check still cannot create a second active row."""
        from database import get_db
        with app.app_context():
            db = get_db()
            with pytest.raises(sqlite3.IntegrityError) as exc:
                db.execute(
                    "INSERT INTO student_class_assignments (student_id, class_id, academic_year_id, "
                    "assignment_type) VALUES (?, ?, ?, 'main')",
                    (ids["student"], ids["class_b"], ids["year"]),
                )
        assert classify_integrity_error(exc.value).code == "already_assigned"

    def test_type_mismatch(self, act, ids):
        result = act("admin", assign_student_to_class, {
            "student_id": ids["student3"], "class_id": ids["class_b"], "assignment_type": "combined",
        })
        assert result.code == "assignment_type_mismatch"

    def test_combined_class_takes_second_assignment(self, act, ids):
        combo = act("admin", create_class, {
            "name": "KHTN1", "academic_year_id": ids["year"], "is_subject_combination": True,
            "subject_combination_type": "natural_sciences",
        }).data
        result = act("admin", assign_student_to_class, {
            "student_id": ids["student"], "class_id": combo["id"], "assignment_type": "combined",
        })
        assert result.success

    def test_class_full(self, act, ids):
        small = act("admin", create_class, {"name": "10C", "academic_year_id": ids["year"], "max_students": 1}).data
        act("admin", remove_student_from_class, {"assignment_id": ids["student_assignment"]})
        act("admin", remove_student_from_class, {"assignment_id": ids["student2_assignment"]})
        first = act("admin", assign_student_to_class, {
            "student_id": ids["student"], "class_id": small["id"], "assignment_type": "main",
        })
        assert first.success
        second = act("admin", assign_student_to_class, {
            "student_id": ids["student2"], "class_id": small["id"], "assignment_type": "main",
        })
        assert second.code == "class_full"

    def test_non_student_rejected(self, act, ids):
        result = act("admin", assign_student_to_class, {
            "student_id": ids["parent"], "class_id": ids["class_b"], "assignment_type": "main",
        })
        assert result.code == "not_found"


class TestRemoveStudent:
    def test_soft_delete_keeps_row(self, act, ids, query):
        result = act("admin", remove_student_from_class, {"assignment_id": ids["student_assignment"]})
        assert result.success
        rows = query("SELECT * FROM student_class_assignments WHERE id = ?", (ids["student_assignment"],))
        assert len(rows) == 1
        assert rows[0]["is_active"] == 0
        assert rows[0]["removed_at"]

    def test_non_admin_cannot_remove(self, act, ids, query):
        result = act("teacher", remove_student_from_class, {"assignment_id": ids["student_assignment"]})
        assert result.success is False
        assert result.status == 403
        row = query("SELECT is_active FROM student_class_assignments WHERE id = ?", (ids["student_assignment"],))
        assert row[0]["is_active"] == 1

    def test_remove_twice(self, act, ids):
        act("admin", remove_student_from_class, {"assignment_id": ids["student_assignment"]})
        again = act("admin", remove_student_from_class, {"assignment_id": ids["student_assignment"]})
        assert again.code == "already_removed"

    def test_reassign_after_removal(self, act, ids, query):
        act("admin", remove_student_from_class, {"assignment_id": ids["student_assignment"]})
        result = act("admin", assign_student_to_class, {
            "student_id": ids["student"], "class_id": ids["class_b"], "assignment_type": "main",
        })
        assert result.success
        history = query("SELECT class_id, is_active FROM student_class_assignments WHERE student_id = ? "
                        "ORDER BY id", (ids["student"],))
        assert history == [
            {"class_id": ids["class"], "is_active": 0},
            {"class_id": ids["class_b"], "is_active": 1},
        ]

    def test_remove_over_http(self, admin_client, ids):
        resp = admin_client.delete(f"/api/admin/assignments/{ids['student_assignment']}")
        assert resp.status_code == 200
        assert resp.get_json()["data"]["is_active"] == 0


class TestBulkAssign:
    def test_partial_success(self, act, ids):
        result = act("admin", bulk_assign_students, {
            "class_id": ids["class_b"], "assignment_type": "main",
            "student_ids": [ids["student3"], ids["student"], ids["student3"]],
        })
        assert result.success
        assert result.data["success_count"] == 1
        assert result.data["error_count"] == 1
        assert result.data["errors"][0]["student_id"] == ids["student"]
        assert result.data["errors"][0]["code"] == "already_assigned"

    def test_available_students(self, act, ids):
        result = act("admin", get_available_students, {"class_id": ids["class_b"]})
        assert [s["id"] for s in result.data] == [ids["student3"]]


class TestListings:
    def test_class_assignments_paginated(self, act, ids):
        result = act("admin", get_class_assignments, {"class_id": ids["class"], "limit": 1})
        assert result.data["pagination"] == {"page": 1, "limit": 1, "total": 2, "pages": 2}

    def test_inactive_assignments_filter(self, act, ids):
        act("admin", remove_student_from_class, {"assignment_id": ids["student_assignment"]})
        result = act("admin", get_class_assignments, {"class_id": ids["class"], "is_active": False})
        assert [a["student_id"] for a in result.data["items"]] == [ids["student"]]

    def test_roster(self, teacher_client, ids):
        resp = teacher_client.get(f"/api/classes/{ids['class']}/roster")
        assert resp.status_code == 200
        students = resp.get_json()["data"]["students"]
        assert {s["student_id"] for s in students} == {"HS001", "HS002"}

    def test_roster_unknown_class(self, act):
        assert act("admin", get_class_roster, {"class_id": 9999}).code == "not_found"


class TestSubjectTeachers:
    def test_assign_subject_teacher(self, act, ids):
        result = act("admin", assign_subject_teacher, {
            "teacher_id": ids["teacher2"], "subject_id": ids["english"], "class_id": ids["class"],
        })
        assert result.success
        assert result.status == 201

    def test_duplicate_subject_teacher(self, act, ids):
        result = act("admin", assign_subject_teacher, {
            "teacher_id": ids["teacher"], "subject_id": ids["math"], "class_id": ids["class"],
        })
        assert result.code == "duplicate_subject_assignment"

    def test_teacher_sees_own_assignments_only(self, act, ids):
        result = act("teacher2", list_teacher_assignments, {"teacher_id": ids["teacher"]})
        assert [a["subject_code"] for a in result.data] == ["LIT"]
