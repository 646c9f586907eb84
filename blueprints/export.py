"""Excel template, class summary workbook and PDF report downloads."""

from __future__ import annotations

import re
from datetime import date

from flask import Blueprint, Response, current_app

from actions import grades
from audit import log_event
from export import generate_student_report_pdf
from grade_excel import create_class_grade_template, create_class_summary_workbook, create_individual_grade_template
from helpers import XLSX_MIMETYPE, current_user_id, request_payload

bp = Blueprint("export", __name__, url_prefix="/api/export")


def _filename(*parts: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]+", "_", "_".join(p for p in parts if p))


def _download(body: bytes, mimetype: str, filename: str) -> Response:
    return Response(body, mimetype=mimetype,
                    headers={"Content-Disposition": f'attachment; filename="{filename}"'})


@bp.route("/class-template")
def export_class_template():
    """Blank class grade sheet for one subject."""
    result = grades.get_class_template_data(request_payload())
    if not result.success:
        return result.to_response()
    data = result.data
    period, cls, subject = data["period"], data["class"], data["subject"]
    body = create_class_grade_template(cls["name"], subject["name_vietnamese"], period["academic_year_name"],
                                       period["semester_name"], data["students"])
    log_event("data_export", current_user_id(), f"type=class_template class={cls['id']} subject={subject['id']}")
    return _download(body, XLSX_MIMETYPE, _filename("Grades", cls["name"], subject["code"]) + ".xlsx")


@bp.route("/individual-template")
def export_individual_template():
    """Per-student midterm/final sheet."""
    result = grades.get_individual_template_data(request_payload())
    if not result.success:
        return result.to_response()
    data = result.data
    period, cls, student = data["period"], data["class"], data["student"]
    body = create_individual_grade_template(student, cls["name"], period["academic_year_name"],
                                            period["semester_name"], data["subjects"])
    log_event("data_export", current_user_id(), f"type=individual_template student={student['id']}")
    return _download(body, XLSX_MIMETYPE, _filename("Grades", student.get("student_id") or "", cls["name"]) + ".xlsx")


@bp.route("/class-summary")
def export_class_summary():
    result = grades.get_class_summary(request_payload())
    if not result.success:
        return result.to_response()
    summary = result.data
    body = create_class_summary_workbook(summary, current_app.config.get("SCHOOL_NAME", ""))
    log_event("data_export", current_user_id(), f"type=class_summary class={summary['class']['id']}")
    return _download(body, XLSX_MIMETYPE,
                     _filename("Summary", summary["class"]["name"], date.today().isoformat()) + ".xlsx")


@bp.route("/student-report")
def export_student_report():
    """PDF grade report for one student and period."""
    result = grades.get_student_report(request_payload())
    if not result.success:
        return result.to_response()
    report = result.data
    pdf_bytes = generate_student_report_pdf(report, current_app.config.get("SCHOOL_NAME", ""))
    log_event("data_export", current_user_id(), f"type=pdf_report student={report['student']['id']}")
    return _download(pdf_bytes, "application/pdf",
                     _filename("Report", report["student"].get("student_id") or "", date.today().isoformat()) + ".pdf")
