"""Admin routes: accounts, academic structure, classes, timetable and approvals."""

from __future__ import annotations

from flask import Blueprint, jsonify, request

from actions import academic, classes, curriculum, grade_overwrite, parents, timetable, users
from audit import recent_events
from helpers import paginate_args, roles_required, run_action

bp = Blueprint("admin", __name__, url_prefix="/api/admin")


# ── Users ──────────────────────────────────────────────────

@bp.route("/users", methods=["GET", "POST"])
def admin_users():
    if request.method == "POST":
        return run_action(users.create_user)
    return run_action(users.list_users)


@bp.route("/teachers/<int:teacher_id>", methods=["PUT", "DELETE"])
def admin_teacher(teacher_id):
    if request.method == "DELETE":
        return run_action(users.delete_teacher, {"teacher_id": teacher_id})
    return run_action(users.update_teacher, teacher_id=teacher_id)


@bp.route("/students", methods=["POST"])
def admin_create_student_with_parent():
    return run_action(users.create_student_with_parent)


@bp.route("/students/<int:student_id>", methods=["DELETE"])
def admin_delete_student(student_id):
    return run_action(users.delete_student, {"student_id": student_id})


@bp.route("/teachers/<int:teacher_id>/homeroom", methods=["POST"])
def admin_set_homeroom(teacher_id):
    return run_action(users.set_homeroom_enabled, teacher_id=teacher_id)


@bp.route("/teachers/homeroom")
def admin_homeroom_teachers():
    return run_action(users.get_homeroom_enabled_teachers)


@bp.route("/parent-links", methods=["POST"])
def admin_link_parent():
    return run_action(parents.link_parent_student)


@bp.route("/audit")
@roles_required("admin")
def admin_audit_log():
    _, limit = paginate_args(default_limit=50, max_limit=200)
    events = recent_events(limit=limit, action=request.args.get("action") or None)
    return jsonify({"success": True, "data": events})


# ── Academic structure ─────────────────────────────────────

@bp.route("/academic-years", methods=["POST"])
def admin_create_year():
    return run_action(academic.create_academic_year)


@bp.route("/academic-years/<int:year_id>", methods=["PUT", "DELETE"])
def admin_year(year_id):
    if request.method == "DELETE":
        return run_action(academic.delete_academic_year, {"id": year_id})
    return run_action(academic.update_academic_year, id=year_id)


@bp.route("/semesters", methods=["POST"])
def admin_create_semester():
    return run_action(academic.create_semester)



@bp.route("/semesters/<int:semester_id>", methods=["PUT", "DELETE"])
def admin_semester(semester_id):
    if request.method == "DELETE":
        return run_action(academic.delete_semester, {"id": semester_id})
    return run_action(academic.update_semester, id=semester_id)


@bp.route("/periods", methods=["GET", "POST"])
def admin_periods():
    if request.method == "POST":
        return run_action(academic.create_grade_reporting_period)
    return run_action(academic.list_grade_reporting_periods)



@bp.route("/periods/<int:period_id>", methods=["PUT", "DELETE"])
def admin_period(period_id):
    if request.method == "DELETE":
        return run_action(academic.delete_grade_reporting_period, {"period_id": period_id})
    return run_action(academic.update_grade_reporting_period, period_id=period_id)


# ── Classes and placement ──────────────────────────────────

@bp.route("/classes", methods=["POST"])
def admin_create_class():
    return run_action(classes.create_class)


@bp.route("/classes/<int:class_id>", methods=["PUT", "DELETE"])
def admin_class(class_id):
    if request.method == "DELETE":
        return run_action(classes.delete_class, {"class_id": class_id})
    return run_action(classes.update_class, class_id=class_id)


@bp.route("/classes/<int:class_id>/available-students")
def admin_available_students(class_id):
    return run_action(classes.get_available_students, class_id=class_id)


@bp.route("/assignments", methods=["GET", "POST"])
def admin_assignments():
    if request.method == "POST":
        return run_action(classes.assign_student_to_class)
    return run_action(classes.get_class_assignments)


@bp.route("/assignments/bulk", methods=["POST"])
def admin_bulk_assign():
    return run_action(classes.bulk_assign_students)


@bp.route("/assignments/<int:assignment_id>", methods=["DELETE"])
def admin_remove_assignment(assignment_id):
    return run_action(classes.remove_student_from_class, {"assignment_id": assignment_id})


@bp.route("/subject-teachers", methods=["POST"])
def admin_assign_subject_teacher():
    return run_action(classes.assign_subject_teacher)


# ── Subjects and curriculum ────────────────────────────────

@bp.route("/subjects", methods=["POST"])
def admin_create_subject():
    return run_action(curriculum.create_subject)


@bp.route("/subjects/initialize", methods=["POST"])
def admin_initialize_subjects():
    return run_action(curriculum.initialize_subjects)


@bp.route("/curriculum", methods=["POST"])
def admin_curriculum_action():
    return run_action(curriculum.curriculum_action)


# ── Timetable ──────────────────────────────────────────────

@bp.route("/classrooms", methods=["POST"])
def admin_create_classroom():
    return run_action(timetable.create_classroom)


@bp.route("/timetable", methods=["POST"])
def admin_create_event():
    return run_action(timetable.create_timetable_event)


@bp.route("/timetable/<int:event_id>", methods=["PUT", "DELETE"])
def admin_event(event_id):
    if request.method == "DELETE":
        return run_action(timetable.delete_timetable_event, {"event_id": event_id})
    return run_action(timetable.update_timetable_event, event_id=event_id)


# ── Grade overwrite approvals ──────────────────────────────

@bp.route("/grade-overwrites")
def admin_overwrite_requests():
    return run_action(grade_overwrite.get_grade_overwrite_requests)


@bp.route("/grade-overwrites/<int:request_id>/approve", methods=["POST"])
def admin_approve_overwrite(request_id):
    return run_action(grade_overwrite.approve_grade_overwrite, request_id=request_id)


@bp.route("/grade-overwrites/<int:request_id>/reject", methods=["POST"])
def admin_reject_overwrite(request_id):
    return run_action(grade_overwrite.reject_grade_overwrite, request_id=request_id)
