"""Read-only school data shared by every role, plus the health check."""

from __future__ import annotations

from flask import Blueprint, jsonify

from actions import academic, classes, curriculum, timetable
from database import get_db
from helpers import run_action

bp = Blueprint("core", __name__, url_prefix="/api")


@bp.route("/health")
def health():
    get_db().execute("SELECT 1").fetchone()
    return jsonify({"status": "ok"})


@bp.route("/academic-years")
def api_academic_years():
    return run_action(academic.list_academic_years)


@bp.route("/semesters")
def api_semesters():
    return run_action(academic.list_semesters)


@bp.route("/periods/<int:period_id>/permissions")
def api_period_permissions(period_id):
    return run_action(academic.check_period_permissions, period_id=period_id)


@bp.route("/subjects")
def api_subjects():
    return run_action(curriculum.list_subjects)


@bp.route("/curriculum")
def api_curriculum():
    return run_action(curriculum.get_curriculum_distribution)


@bp.route("/classes")
def api_classes():
    return run_action(classes.list_classes)


@bp.route("/classes/<int:class_id>/roster")
def api_class_roster(class_id):
    return run_action(classes.get_class_roster, {"class_id": class_id})


@bp.route("/teacher-assignments")
def api_teacher_assignments():
    return run_action(classes.list_teacher_assignments)


@bp.route("/classrooms")
def api_classrooms():
    return run_action(timetable.list_classrooms)


@bp.route("/timetable")
def api_timetable():
    return run_action(timetable.get_timetable_events)
