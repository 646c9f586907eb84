"""Teacher routes: lesson feedback, parent fan-out, homeroom reports and leave requests."""

from __future__ import annotations

from flask import Blueprint, request

from actions import feedback, leave, reports
from helpers import run_action

bp = Blueprint("teacher", __name__, url_prefix="/api/teacher")


@bp.route("/feedback", methods=["POST"])
def teacher_create_feedback():
    return run_action(feedback.create_student_feedback)


@bp.route("/feedback/send-daily", methods=["POST"])
def teacher_send_daily_feedback():
    return run_action(feedback.send_daily_feedback_to_parents)


@bp.route("/feedback/send", methods=["POST"])
def teacher_send_feedback():
    return run_action(feedback.send_feedback_to_parents)


@bp.route("/feedback/daily-status")
def teacher_daily_feedback_status():
    return run_action(feedback.check_daily_feedback_sent_status)


@bp.route("/leave-applications")
def teacher_leave_applications():
    return run_action(leave.get_teacher_leave_applications)


@bp.route("/leave-applications/<int:application_id>/respond", methods=["POST"])
def teacher_respond_leave(application_id):
    return run_action(leave.respond_to_leave_application, application_id=application_id)


@bp.route("/reports", methods=["GET", "POST"])
def teacher_reports():
    if request.method == "POST":
        return run_action(reports.save_student_report)
    return run_action(reports.get_students_for_report)


@bp.route("/reports/<int:report_id>")
def teacher_report(report_id):
    return run_action(reports.get_student_report, {"report_id": report_id})


@bp.route("/reports/<int:report_id>/send", methods=["POST"])
def teacher_send_report(report_id):
    return run_action(reports.send_student_report, {"report_id": report_id})


@bp.route("/reports/<int:report_id>/responses")
def teacher_report_responses(report_id):
    return run_action(reports.get_parent_responses, {"report_id": report_id})
