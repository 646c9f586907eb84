"""Tests for the subject catalogue and curriculum distribution."""

from __future__ import annotations

from actions.curriculum import (
    DEFAULT_CURRICULUM,
    DEFAULT_SUBJECTS,
    create_subject,
    curriculum_action,
    get_curriculum_distribution,
    initialize_subjects,
    list_subjects,
    summarize,
)


def _distribution(act, ids, **filters):
    return act("admin", get_curriculum_distribution, {"academic_term_id": ids["semester"], **filters}).data


class TestSubjects:
    def test_default_catalogue(self):
        categories = [s[3] for s in DEFAULT_SUBJECTS]
        assert categories.count("mandatory") == 8
        assert categories.count("elective") == 9
        assert len({s[0] for s in DEFAULT_SUBJECTS}) == len(DEFAULT_SUBJECTS)

    def test_initialize_is_idempotent(self, act):
        result = act("admin", initialize_subjects)
        assert result.data == {"inserted": 0, "total": 17}

    def test_list_subjects(self, act):
        assert len(act("student", list_subjects).data) == 17

    def test_create_subject(self, act):
        result = act("admin", create_subject, {"code": "PHIL", "name_vietnamese": "Triết học",
                                               "category": "elective"})
        assert result.status == 201
        assert result.data["code"] == "PHIL"

    def test_duplicate_code(self, act):
        result = act("admin", create_subject, {"code": "MATH", "name_vietnamese": "Toán 2"})
        assert result.code == "duplicate_subject"
        assert result.status == 409

    def test_code_format(self, act):
        assert act("admin", create_subject, {"code": "math", "name_vietnamese": "x"}).code == "invalid_input"

    def test_teacher_cannot_create(self, act):
        assert act("teacher", create_subject, {"code": "PHIL", "name_vietnamese": "x"}).status == 403


class TestBulkActions:
    def test_initialize_default(self, act, ids):
        result = act("admin", curriculum_action, {"action": "initialize_default", "academic_term_id": ids["semester"]})
        assert result.success
        assert result.status == 201
        assert result.message == "Default curriculum initialized successfully"
        assert result.data["count"] == 8
        assert {i["scope"] for i in result.data["items"]} == {"school"}
        assert {i["subject_type"] for i in result.data["items"]} == {"mandatory"}

    def test_initialize_twice_replaces(self, act, ids):
        payload = {"action": "initialize_default", "academic_term_id": ids["semester"]}
        act("admin", curriculum_action, payload)
        act("admin", curriculum_action, payload)
        assert len(_distribution(act, ids)["items"]) == 8

    def test_apply_to_grade(self, act, ids):
        result = act("admin", curriculum_action, {
            "action": "apply_to_grade", "academic_term_id": ids["semester"], "grade_level": 10,
        })
        assert result.status == 200
        assert result.data["count"] == 17
        assert {i["grade_level"] for i in result.data["items"]} == {10}

    def test_apply_to_class(self, act, ids):
        result = act("admin", curriculum_action, {
            "action": "apply_to_class", "academic_term_id": ids["semester"], "class_id": ids["class"],
        })
        assert result.data["count"] == 17
        data = _distribution(act, ids, scope="class", class_id=ids["class"])
        assert data["summary"] == {"mandatory_count": 8, "elective_count": 9,
                                   "total_periods": 36, "total_credits": 36}

    def test_apply_to_unknown_class(self, act, ids):
        result = act("admin", curriculum_action, {
            "action": "apply_to_class", "academic_term_id": ids["semester"], "class_id": 999,
        })
        assert result.code == "not_found"

    def test_scope_fields_required(self, act, ids):
        result = act("admin", curriculum_action, {"action": "apply_to_grade", "academic_term_id": ids["semester"]})
        assert result.code == "invalid_input"
        assert result.error == "grade_level is required for apply_to_grade"

    def test_scopes_are_independent(self, act, ids):
        act("admin", curriculum_action, {"action": "initialize_default", "academic_term_id": ids["semester"]})
        act("admin", curriculum_action, {"action": "apply_to_grade", "academic_term_id": ids["semester"],
                                         "grade_level": 11})
        assert len(_distribution(act, ids, scope="school")["items"]) == 8
        assert len(_distribution(act, ids)["items"]) == 25

    def test_term_must_be_semester(self, act, ids):
        result = act("admin", curriculum_action, {"action": "initialize_default", "academic_term_id": 999})
        assert result.code == "not_found"


class TestCreateItem:
    def _create(self, act, ids, **extra):
        payload = {"academic_term_id": ids["semester"], "subject_id": ids["math"], "subject_type": "mandatory",
                   "weekly_periods": 4, "credits": 4}
        payload.update(extra)
        return act("admin", curriculum_action, payload)

    def test_create_scopes(self, act, ids):
        school = self._create(act, ids)
        grade = self._create(act, ids, grade_level=10)
        cls = self._create(act, ids, class_id=ids["class"])
        assert [r.status for r in (school, grade, cls)] == [201, 201, 201]
        assert (school.data["scope"], grade.data["scope"], cls.data["scope"]) == ("school", "grade", "class")

    def test_duplicate_item(self, act, ids):
        self._create(act, ids, grade_level=10)
        again = self._create(act, ids, grade_level=10)
        assert again.code == "curriculum_item_exists"
        assert again.status == 409

    def test_requires_subject(self, act, ids):
        result = act("admin", curriculum_action, {"academic_term_id": ids["semester"], "subject_type": "mandatory"})
        assert result.code == "invalid_input"

    def test_unknown_subject(self, act, ids):
        assert self._create(act, ids, subject_id=999).code == "not_found"

    def test_unknown_class(self, act, ids):
        assert self._create(act, ids, class_id=999).code == "invalid_reference"


class TestDistribution:
    def test_filters_echoed(self, act, ids):
        data = _distribution(act, ids, scope="grade", grade_level=10)
        assert data["items"] == []
        assert data["scope"] == "grade"
        assert data["filters"] == {"academic_term_id": ids["semester"], "grade_level": 10, "class_id": None}

    def test_teacher_can_read(self, act, ids):
        assert act("teacher", get_curriculum_distribution, {"academic_term_id": ids["semester"]}).success

    def test_summary(self):
        items = [
            {"subject_type": "mandatory", "weekly_periods": 3, "credits": 3},
            {"subject_type": "elective", "weekly_periods": 2, "credits": 1},
        ]
        assert summarize(items) == {"mandatory_count": 1, "elective_count": 1, "total_periods": 5,
                                    "total_credits": 4}

    def test_default_totals(self):
        mandatory = sum(e["weekly_periods"] for e in DEFAULT_CURRICULUM["mandatory"])
        elective = sum(e["weekly_periods"] for e in DEFAULT_CURRICULUM["elective"])
        assert (mandatory, elective) == (18, 18)

    def test_http(self, admin_client, ids):
        resp = admin_client.post("/api/admin/curriculum", json={
            "action": "initialize_default", "academic_term_id": ids["semester"],
        })
        assert resp.status_code == 201
        resp = admin_client.get(f"/api/curriculum?academic_term_id={ids['semester']}")
        assert resp.get_json()["data"]["summary"]["mandatory_count"] == 8
