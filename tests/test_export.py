"""Tests for workbook uploads, template downloads and the PDF report."""

from __future__ import annotations

import io

from openpyxl import load_workbook

from export import _safe, generate_student_report_pdf


def _upload(client, url, body: bytes, filename="grades.xlsx", **fields):
    data = {"file": (io.BytesIO(body), filename), **{k: str(v) for k, v in fields.items()}}
    return client.post(url, data=data, content_type="multipart/form-data")


def _class_template(client, ids):
    resp = client.get("/api/export/class-template", query_string={
        "period_id": ids["period"], "class_id": ids["class"], "subject_id": ids["math"],
    })
    assert resp.status_code == 200
    return resp.data


def _individual_template(client, ids):
    resp = client.get("/api/export/individual-template", query_string={
        "period_id": ids["period"], "class_id": ids["class"], "student_id": ids["student"],
    })
    assert resp.status_code == 200
    return resp.data


def _set_grade(data: bytes, subject: str, midterm=None, final=None) -> bytes:
    wb = load_workbook(io.BytesIO(data))
    ws = wb.worksheets[0]
    for row in range(8, ws.max_row + 1):
        if ws.cell(row=row, column=2).value == subject:
            ws.cell(row=row, column=3, value=midterm)
            ws.cell(row=row, column=4, value=final)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


class TestTemplateDownloads:
    def test_class_template(self, teacher_client, ids):
        resp = teacher_client.get("/api/export/class-template", query_string={
            "period_id": ids["period"], "class_id": ids["class"], "subject_id": ids["math"],
        })
        assert resp.status_code == 200
        assert resp.data.startswith(b"PK")
        assert resp.headers["Content-Disposition"] == 'attachment; filename="Grades_10A_MATH.xlsx"'
        ws = load_workbook(io.BytesIO(resp.data)).active
        assert {ws["B6"].value, ws["B7"].value} == {"HS001", "HS002"}

    def test_class_template_refused_for_other_subject(self, teacher2_client, ids):
        resp = teacher2_client.get("/api/export/class-template", query_string={
            "period_id": ids["period"], "class_id": ids["class"], "subject_id": ids["math"],
        })
        assert resp.status_code == 403
        assert resp.get_json()["code"] == "not_class_teacher"

    def test_individual_template_lists_class_subjects(self, teacher_client, ids):
        data = _individual_template(teacher_client, ids)
        ws = load_workbook(io.BytesIO(data)).worksheets[0]
        assert {ws["B8"].value, ws["B9"].value} == {"Toán", "Ngữ văn"}

    def test_individual_template_unenrolled_student(self, teacher_client, ids):
        resp = teacher_client.get("/api/export/individual-template", query_string={
            "period_id": ids["period"], "class_id": ids["class"], "student_id": ids["student3"],
        })
        assert resp.status_code == 404

    def test_downloads_need_login(self, client, ids):
        resp = client.get("/api/export/class-summary", query_string={
            "period_id": ids["period"], "class_id": ids["class"],
        })
        assert resp.status_code == 401
        assert resp.get_json()["success"] is False


class TestSummaryAndReport:
    def test_class_summary_workbook(self, teacher_client, ids):
        resp = teacher_client.get("/api/export/class-summary", query_string={
            "period_id": ids["period"], "class_id": ids["class"],
        })
        assert resp.status_code == 200
        assert resp.data.startswith(b"PK")
        assert resp.headers["Content-Disposition"].startswith('attachment; filename="Summary_10A_')
        wb = load_workbook(io.BytesIO(resp.data))
        assert wb.sheetnames[0] == "Tổng hợp"

    def test_student_report_pdf(self, parent_client, ids):
        resp = parent_client.get("/api/export/student-report", query_string={
            "student_id": ids["student"], "period_id": ids["period"],
        })
        assert resp.status_code == 200
        assert resp.mimetype == "application/pdf"
        assert resp.data.startswith(b"%PDF")

    def test_student_report_other_child(self, parent_client, ids):
        resp = parent_client.get("/api/export/student-report", query_string={
            "student_id": ids["student2"], "period_id": ids["period"],
        })
        assert resp.status_code == 403
        assert resp.get_json()["code"] == "not_parent"

    def test_pdf_renders_vietnamese_names(self):
        report = {
            "student": {"id": 1, "full_name": "Đỗ Quang Huy", "student_id": "HS002"},
            "period": {"name": "Giữa học kỳ 1", "semester_name": "Học kỳ 1", "academic_year_name": "2025-2026"},
            "class": {"name": "10A"},
            "subjects": [{"subject_name": "Ngữ văn", "components": {"midterm": 7.0}, "average": 7.0}],
            "overall_average": 7.0,
        }
        assert generate_student_report_pdf(report, "Trường THPT Demo").startswith(b"%PDF")

    def test_safe_folds_to_latin1(self):
        assert _safe("Đỗ Quang Huy") == "Do Quang Huy"
        assert _safe("Phạm — Minh") == "Pham - Minh"
        assert _safe("plain") == "plain"


class TestUploads:
    def test_preview_blank_template(self, teacher_client, ids):
        resp = _upload(teacher_client, "/api/grades/upload", _class_template(teacher_client, ids))
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["success"] is True
        assert [r["student_id"] for r in body["data"]["rows"]] == ["HS001", "HS002"]

    def _preview_then_import(self, client, ids, body: bytes):
        preview = _upload(client, "/api/grades/upload", body).get_json()["data"]
        return client.post("/api/grades/import", json={
            "period_id": ids["period"], "class_id": ids["class"], "subject_id": ids["math"],
            "rows": preview["rows"],
        })

    def test_blank_template_imports_nothing(self, teacher_client, ids, query):
        resp = self._preview_then_import(teacher_client, ids, _class_template(teacher_client, ids))
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["success"] is True
        assert body["data"]["success_count"] == 2
        assert body["data"]["records_written"] == 0
        assert query("SELECT id FROM student_detailed_grades") == []

    def test_filled_template_keeps_notes(self, teacher_client, ids, query):
        wb = load_workbook(io.BytesIO(_class_template(teacher_client, ids)))
        ws = wb.active
        ws["H6"] = 7
        ws["K6"] = "Tích cực"
        buf = io.BytesIO()
        wb.save(buf)
        resp = self._preview_then_import(teacher_client, ids, buf.getvalue())
        assert resp.get_json()["data"]["records_written"] == 1
        rows = query("SELECT component_type, grade_value, notes FROM student_detailed_grades")
        assert rows == [{"component_type": "midterm", "grade_value": 7.0, "notes": "Tích cực"}]

    def test_preview_rejects_other_extensions(self, teacher_client):
        resp = _upload(teacher_client, "/api/grades/upload", "STT,Mã học sinh".encode(), filename="grades.csv")
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Only .xlsx files are supported"

    def test_preview_rejects_fake_xlsx(self, teacher_client):
        resp = _upload(teacher_client, "/api/grades/upload", b"not a zip")
        assert resp.status_code == 400

    def test_preview_requires_file(self, teacher_client):
        resp = teacher_client.post("/api/grades/upload", data={}, content_type="multipart/form-data")
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "No file uploaded"

    def test_parent_cannot_upload(self, parent_client):
        resp = _upload(parent_client, "/api/grades/upload", b"PK\x03\x04")
        assert resp.status_code == 403

    def test_individual_upload_imports(self, teacher_client, ids, query):
        data = _set_grade(_individual_template(teacher_client, ids), "Toán", midterm=8, final=9)
        resp = _upload(teacher_client, "/api/grades/individual/upload", data,
                       period_id=ids["period"], class_id=ids["class"], student_id=ids["student"])
        assert resp.status_code == 200
        assert resp.get_json()["data"]["success_count"] == 1
        rows = query("SELECT component_type, grade_value FROM student_detailed_grades WHERE student_id = ? "
                     "ORDER BY component_type", (ids["student"],))
        assert [(r["component_type"], r["grade_value"]) for r in rows] == [("final", 9.0), ("midterm", 8.0)]

    def test_individual_upload_invalid_grade(self, teacher_client, ids):
        data = _set_grade(_individual_template(teacher_client, ids), "Toán", midterm=11)
        resp = _upload(teacher_client, "/api/grades/individual/upload", data,
                       period_id=ids["period"], class_id=ids["class"], student_id=ids["student"])
        assert resp.status_code == 400
        assert len(resp.get_json()["data"]["errors"]) == 1

    def test_individual_upload_empty(self, teacher_client, ids):
        resp = _upload(teacher_client, "/api/grades/individual/upload", _individual_template(teacher_client, ids),
                       period_id=ids["period"], class_id=ids["class"], student_id=ids["student"])
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "No grades found in the workbook"
