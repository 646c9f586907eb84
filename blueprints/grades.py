"""Grade entry routes: Excel preview, import, overview and change requests."""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from actions import grades
from db_stores import SubjectStoreDB
from grade_excel import WorkbookError, parse_class_grade_workbook, parse_individual_grade_excel
from helpers import roles_required, run_action, uploaded_workbook

logger = logging.getLogger(__name__)

bp = Blueprint("grades", __name__, url_prefix="/api/grades")


@bp.route("/upload", methods=["POST"])
@roles_required("teacher", "admin")
def grades_upload_preview():
    """Validate a class grade sheet and return the rows that would be imported."""
    data, error = uploaded_workbook()
    if error:
        return jsonify({"success": False, "error": error, "code": "invalid_input"}), 400
    try:
        validation = parse_class_grade_workbook(data)
    except WorkbookError as e:
        return jsonify({"success": False, "error": str(e), "code": "invalid_input"}), 400
    logger.info("Grade sheet preview: %s", validation.statistics)
    return jsonify({"success": True, "data": validation.to_dict()})


@bp.route("/import", methods=["POST"])
def grades_import():
    return run_action(grades.import_validated_grades)


@bp.route("/individual/upload", methods=["POST"])
@roles_required("teacher", "admin")
def grades_individual_upload():
    """Parse a per-student workbook and import its midterm/final grades."""
    data, error = uploaded_workbook()
    if error:
        return jsonify({"success": False, "error": error, "code": "invalid_input"}), 400
    try:
        parsed = parse_individual_grade_excel(data, SubjectStoreDB.list())
    except WorkbookError as e:
        return jsonify({"success": False, "error": str(e), "code": "invalid_input"}), 400
    if not parsed.success:
        return jsonify({"success": False, "error": "The workbook contains invalid grades",
                        "code": "invalid_input", "data": {"errors": parsed.errors}}), 400
    if not parsed.entries:
        return jsonify({"success": False, "error": "No grades found in the workbook",
                        "code": "invalid_input"}), 400

    payload = request.form.to_dict()
    payload["grades"] = parsed.entries
    return run_action(grades.import_individual_grades, payload)


@bp.route("/overview")
def grades_overview():
    return run_action(grades.get_grade_overview)


@bp.route("")
def grades_detailed():
    return run_action(grades.get_detailed_grades)


@bp.route("/<int:grade_id>/overwrite", methods=["POST"])
def grades_overwrite(grade_id):
    return run_action(grades.submit_grade_overwrite, grade_id=grade_id)


@bp.route("/summary")
def grades_class_summary():
    return run_action(grades.get_class_summary)


@bp.route("/students/<int:student_id>/report")
def grades_student_report(student_id):
    return run_action(grades.get_student_report, student_id=student_id)
