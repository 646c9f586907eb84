"""Parent portal routes: children, grades, feedback and report inboxes, leave applications."""

from __future__ import annotations

from flask import Blueprint, request

from actions import feedback, leave, parents, reports
from helpers import run_action

bp = Blueprint("parent", __name__, url_prefix="/api/parent")


@bp.route("/children")
def parent_children():
    return run_action(parents.get_parent_students)


@bp.route("/children/<int:student_id>/grades")
def parent_child_grades(student_id):
    return run_action(parents.get_child_grades, student_id=student_id)


@bp.route("/feedback")
def parent_feedback():
    return run_action(feedback.get_parent_feedback)


@bp.route("/feedback/<int:notification_id>/read", methods=["POST"])
def parent_feedback_read(notification_id):
    return run_action(feedback.mark_feedback_read, {"notification_id": notification_id})


@bp.route("/leave-applications", methods=["GET", "POST"])
def parent_leave_applications():
    if request.method == "POST":
        return run_action(leave.create_leave_application)
    return run_action(leave.get_parent_leave_applications)


@bp.route("/reports")
def parent_reports():
    return run_action(reports.get_parent_report_notifications)


@bp.route("/reports/unread-count")
def parent_reports_unread():
    return run_action(reports.get_unread_report_count)


@bp.route("/reports/<int:report_id>")
def parent_report(report_id):
    return run_action(reports.get_parent_report, {"report_id": report_id})


@bp.route("/reports/<int:report_id>/response", methods=["POST"])
def parent_report_response(report_id):
    return run_action(reports.submit_parent_response, report_id=report_id)


@bp.route("/reports/notifications/<int:notification_id>/read", methods=["POST"])
def parent_report_read(notification_id):
    return run_action(reports.mark_report_read, {"notification_id": notification_id})
