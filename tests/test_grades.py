"""Tests for grade import, overview caching, change requests and report data."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from actions.grades import (
    get_class_summary,
    get_detailed_grades,
    get_grade_overview,
    get_student_report,
    import_individual_grades,
    import_validated_grades,
    submit_grade_overwrite,
)
from actions.parents import get_child_grades, get_parent_students


@pytest.fixture
def import_grades(act, ids):
    """Import maths grades for 10A as the homeroom teacher."""
    def run(rows, who="teacher", subject="math"):
        return act(who, import_validated_grades, {
            "period_id": ids["period"], "class_id": ids["class"], "subject_id": ids[subject], "rows": rows,
        })
    return run


@pytest.fixture
def grade_id(import_grades, query, ids):
    """Id of HS001's maths midterm grade after a clean import."""
    import_grades([
        {"student_id": "HS001", "regular_1": 7, "midterm": 6.5, "final": 8},
        {"student_id": "HS002", "regular_1": 9, "midterm": 9, "final": 9},
    ])

    def lookup(component="midterm", student="student"):
        rows = query("SELECT id FROM student_detailed_grades WHERE student_id = ? AND subject_id = ? "
                     "AND component_type = ?", (ids[student], ids["math"], component))
        return rows[0]["id"]
    return lookup


class TestImport:
    def test_import_writes_one_row_per_component(self, import_grades, query):
        result = import_grades([{"student_id": "HS001", "full_name": "Phạm Minh An",
                                 "regular_1": 8, "regular_2": 7.5, "midterm": 0, "final": 9}])
        assert result.success
        assert result.data["success_count"] == 1
        assert result.data["records_written"] == 4
        rows = query("SELECT component_type, grade_value FROM student_detailed_grades ORDER BY component_type")
        assert {r["component_type"]: r["grade_value"] for r in rows} == {
            "final": 9.0, "midterm": 0.0, "regular_1": 8.0, "regular_2": 7.5,
        }

    def test_reimport_updates_in_place(self, import_grades, query):
        import_grades([{"student_id": "HS001", "midterm": 5}])
        import_grades([{"student_id": "HS001", "midterm": 6}])
        rows = query("SELECT grade_value FROM student_detailed_grades WHERE component_type = 'midterm'")
        assert [r["grade_value"] for r in rows] == [6.0]

    def test_partial_import(self, import_grades, query):
        result = import_grades([
            {"student_id": "HS001", "midterm": 7},
            {"student_id": "HS003", "midterm": 8},
            {"student_id": "HS002"},
        ])
        assert result.success is False
        assert result.code == "partial_import"
        assert result.status == 200
        assert result.data["success_count"] == 2
        assert result.data["skipped_count"] == 1
        assert result.data["error_count"] == 1
        assert result.data["errors"][0]["student_id"] == "HS003"
        assert len(query("SELECT id FROM student_detailed_grades")) == 1

    def test_rows_without_grades_are_skipped(self, import_grades, query):
        result = import_grades([{"student_id": "HS001"}, {"student_id": "HS002", "notes": "Vắng"}])
        assert result.success
        assert (result.data["success_count"], result.data["skipped_count"]) == (2, 2)
        assert query("SELECT id FROM student_detailed_grades") == []

    def test_notes_saved_with_grades(self, import_grades, query):
        import_grades([{"student_id": "HS001", "midterm": 7, "final": 8, "notes": " Tiến bộ "}])
        rows = query("SELECT notes FROM student_detailed_grades ORDER BY component_type")
        assert [r["notes"] for r in rows] == ["Tiến bộ", "Tiến bộ"]

    def test_out_of_range_grade_rejected(self, import_grades):
        result = import_grades([{"student_id": "HS001", "midterm": 10.5}])
        assert result.code == "invalid_input"

    def test_two_decimals_rejected(self, import_grades):
        result = import_grades([{"student_id": "HS001", "midterm": 7.25}])
        assert result.code == "invalid_input"

    def test_teacher_must_teach_subject(self, import_grades):
        result = import_grades([{"student_id": "HS001", "midterm": 7}], who="teacher2")
        assert result.code == "not_class_teacher"
        assert result.status == 403

    def test_subject_teacher_can_import(self, import_grades):
        result = import_grades([{"student_id": "HS001", "midterm": 7}], who="teacher2", subject="literature")
        assert result.success

    def test_parent_cannot_import(self, import_grades):
        result = import_grades([{"student_id": "HS001", "midterm": 7}], who="parent")
        assert result.status == 403

    def test_import_after_deadline(self, import_grades, app, ids):
        from database import get_db
        with app.app_context():
            db = get_db()
            db.execute("UPDATE grade_reporting_periods SET import_deadline = ? WHERE id = ?",
                       ((datetime.now() - timedelta(hours=1)).isoformat(), ids["period"]))
            db.commit()
        result = import_grades([{"student_id": "HS001", "midterm": 7}])
        assert result.code == "deadline_passed"

    def test_import_over_http(self, teacher_client, ids):
        resp = teacher_client.post("/api/grades/import", json={
            "period_id": ids["period"], "class_id": ids["class"], "subject_id": ids["math"],
            "rows": [{"student_id": "HS002", "final": 7}],
        })
        assert resp.status_code == 200
        assert resp.get_json()["data"]["success_count"] == 1


class TestOverview:
    def _overview(self, act, ids, who="teacher"):
        return act(who, get_grade_overview, {
            "period_id": ids["period"], "class_id": ids["class"], "subject_id": ids["math"],
        })

    def test_overview_lists_every_student(self, act, ids, import_grades):
        import_grades([{"student_id": "HS001", "regular_1": 8, "regular_3": 6, "midterm": 7, "final": 9}])
        data = self._overview(act, ids).data
        by_number = {s["student_number"]: s for s in data}
        assert set(by_number) == {"HS001", "HS002"}
        first = by_number["HS001"]
        assert first["regular_grades"] == [8.0, None, 6.0, None]
        assert first["average"] == 7.9
        assert by_number["HS002"]["average"] is None

    def test_import_invalidates_cached_overview(self, act, ids, import_grades):
        import_grades([{"student_id": "HS001", "midterm": 5}])
        before = {s["student_number"]: s["midterm"] for s in self._overview(act, ids).data}
        assert before["HS001"] == 5.0
        import_grades([{"student_id": "HS001", "midterm": 6}])
        after = {s["student_number"]: s["midterm"] for s in self._overview(act, ids).data}
        assert after["HS001"] == 6.0

    def test_overview_requires_teaching(self, act, ids):
        assert self._overview(act, ids, who="teacher2").code == "not_class_teacher"

    def test_detailed_grades_teacher_needs_class(self, act):
        assert act("teacher", get_detailed_grades, {}).code == "invalid_input"

    def test_detailed_grades_admin(self, act, ids, grade_id):
        result = act("admin", get_detailed_grades, {"student_id": ids["student"]})
        assert len(result.data) == 3


class TestOverwriteSubmit:
    def test_submit_changes_live_grade(self, act, grade_id, query):
        gid = grade_id()
        result = act("teacher", submit_grade_overwrite, {"grade_id": gid, "new_value": 7.5, "reason": "Re-marked"})
        assert result.success
        assert result.status == 201
        assert result.data["old_value"] == 6.5
        assert result.data["new_value"] == 7.5
        assert result.data["status"] == "pending"
        live = query("SELECT grade_value FROM student_detailed_grades WHERE id = ?", (gid,))
        assert live[0]["grade_value"] == 7.5

    def test_reason_required_for_midterm(self, act, grade_id):
        result = act("teacher", submit_grade_overwrite, {"grade_id": grade_id(), "new_value": 7, "reason": "  "})
        assert result.code == "reason_required"

    def test_regular_grade_needs_no_reason(self, act, grade_id):
        result = act("teacher", submit_grade_overwrite, {"grade_id": grade_id("regular_1"), "new_value": 8})
        assert result.success

    def test_same_value_rejected(self, act, grade_id):
        result = act("teacher", submit_grade_overwrite, {"grade_id": grade_id("final"), "new_value": 8,
                                                         "reason": "typo"})
        assert result.code == "no_change"

    def test_one_pending_request_per_grade(self, act, grade_id, query):
        gid = grade_id("regular_1")
        act("teacher", submit_grade_overwrite, {"grade_id": gid, "new_value": 8})
        second = act("teacher", submit_grade_overwrite, {"grade_id": gid, "new_value": 9})
        assert second.code == "pending_request_exists"
        assert second.status == 409
        assert len(query("SELECT id FROM grade_overwrite_approvals WHERE grade_id = ?", (gid,))) == 1

    def test_other_teacher_cannot_submit(self, act, grade_id):
        result = act("teacher2", submit_grade_overwrite, {"grade_id": grade_id(), "new_value": 7, "reason": "x"})
        assert result.code == "not_class_teacher"

    def test_submit_over_http(self, teacher_client, grade_id):
        resp = teacher_client.post(f"/api/grades/{grade_id('regular_1')}/overwrite", json={"new_value": 6})
        assert resp.status_code == 201


class TestIndividualImport:
    def test_imports_midterm_and_final(self, act, ids, query):
        result = act("teacher", import_individual_grades, {
            "period_id": ids["period"], "class_id": ids["class"], "student_id": ids["student"],
            "grades": [{"subject_name": "Toán", "midterm": 8, "final": 9.5, "notes": "Tốt"}],
        })
        assert result.success
        rows = query("SELECT component_type, grade_value, notes FROM student_detailed_grades "
                     "WHERE student_id = ? ORDER BY component_type", (ids["student"],))
        assert [(r["component_type"], r["grade_value"]) for r in rows] == [("final", 9.5), ("midterm", 8.0)]
        assert rows[0]["notes"] == "Tốt"

    def test_unknown_subject_is_partial(self, act, ids):
        result = act("teacher", import_individual_grades, {
            "period_id": ids["period"], "class_id": ids["class"], "student_id": ids["student"],
            "grades": [{"subject_name": "Toán", "midterm": 8}, {"subject_name": "Thiên văn", "midterm": 5}],
        })
        assert result.code == "partial_import"
        assert result.data["success_count"] == 1

    def test_student_must_be_enrolled(self, act, ids):
        result = act("teacher", import_individual_grades, {
            "period_id": ids["period"], "class_id": ids["class"], "student_id": ids["student3"],
            "grades": [{"subject_name": "Toán", "midterm": 8}],
        })
        assert result.code == "not_found"


class TestSummary:
    def test_ranks_use_competition_order(self, act, ids, import_grades):
        import_grades([
            {"student_id": "HS001", "final": 8},
            {"student_id": "HS002", "final": 9},
        ])
        data = act("teacher", get_class_summary, {"period_id": ids["period"], "class_id": ids["class"]}).data
        ranks = {s["student_id"]: s["rank"] for s in data["students"]}
        assert ranks == {"HS001": 2, "HS002": 1}
        assert [s["code"] for s in data["subjects"]] == ["MATH"]

    def test_summary_requires_class_access(self, act, ids):
        result = act("teacher2", get_class_summary, {"period_id": ids["period"], "class_id": ids["class_b"]})
        assert result.code == "not_class_teacher"


class TestStudentReport:
    def _report(self, act, ids, who, student="student"):
        return act(who, get_student_report, {"student_id": ids[student], "period_id": ids["period"]})

    def test_report_data(self, act, ids, grade_id):
        data = self._report(act, ids, "admin").data
        assert data["class"]["name"] == "10A"
        maths = data["subjects"][0]
        assert maths["subject_code"] == "MATH"
        assert maths["average"] == pytest.approx(7.3)
        assert data["overall_average"] == maths["average"]

    def test_homeroom_teacher_allowed(self, act, ids):
        assert self._report(act, ids, "teacher").success

    def test_subject_teacher_refused(self, act, ids):
        assert self._report(act, ids, "teacher2").code == "not_homeroom_teacher"

    def test_parent_of_child_allowed(self, act, ids):
        assert self._report(act, ids, "parent").success

    def test_other_parent_refused(self, act, ids):
        assert self._report(act, ids, "parent2").code == "not_parent"

    def test_student_only_own_report(self, act, ids):
        assert self._report(act, ids, "student").success
        assert self._report(act, ids, "student", student="student2").status == 403


class TestParentView:
    def test_children_with_class(self, act, ids):
        children = act("parent", get_parent_students).data
        assert [(c["id"], c["current_class"]["name"]) for c in children] == [(ids["student"], "10A")]

    def test_child_grades(self, act, ids, grade_id):
        result = act("parent", get_child_grades, {"student_id": ids["student"]})
        assert result.success
        assert len(result.data) == 1
        assert result.data[0]["period"]["id"] == ids["period"]

    def test_child_grades_http_refuses_other_children(self, parent_client, ids):
        resp = parent_client.get(f"/api/parent/children/{ids['student2']}/grades")
        assert resp.status_code == 403
        assert resp.get_json()["code"] == "not_parent"
