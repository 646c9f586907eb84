"""Homeroom reports to parents and the parents' replies.

A homeroom teacher writes one report per student and grading period. The
report stays a draft until it is sent; sending creates one notification
and one empty response row per parent, after which the report is frozen.
Parents read the report and answer agree or disagree with a comment.
"""

from __future__ import annotations

import logging

from actions.base import server_action
from audit import log_event
from db_stores import (
    AssignmentStoreDB,
    ClassStoreDB,
    FeedbackStoreDB,
    ParentLinkStoreDB,
    PeriodStoreDB,
    ReportStoreDB,
)
from email_service import send_student_report as email_student_report
from errors import Conflict, NotFound, PermissionDenied
from schemas import (
    ParentResponseForm,
    ReportIdForm,
    ReportNotificationIdForm,
    ReportStudentsForm,
    StudentReportSaveForm,
)

logger = logging.getLogger(__name__)

TEACHER_REPORTS_PATH = "/dashboard/teacher/reports"
PARENT_REPORTS_PATH = "/dashboard/parent/reports"

NO_FEEDBACK_SUMMARY = "Chưa có phản hồi từ giáo viên trong kỳ báo cáo này."
COMMENTS_PER_SUBJECT = 2


def summarise_feedback(items: list[dict]) -> str:
    """One line per subject: average rating out of 5 and the first comments."""
    if not items:
        return NO_FEEDBACK_SUMMARY
    by_subject: dict[str, dict[str, list]] = {}
    for item in items:
        entry = by_subject.setdefault(item["subject_name"], {"ratings": [], "comments": []})
        if item.get("rating"):
            entry["ratings"].append(item["rating"])
        if item.get("feedback_text"):
            entry["comments"].append(item["feedback_text"])

    lines = ["Tình hình học tập trong kỳ báo cáo:", ""]
    for subject, entry in by_subject.items():
        ratings = entry["ratings"]
        average = f"{sum(ratings) / len(ratings):.1f}" if ratings else "N/A"
        line = f"• {subject}: Điểm trung bình {average}/5"
        if entry["comments"]:
            line += " - " + "; ".join(entry["comments"][:COMMENTS_PER_SUBJECT])
        lines.append(line)
    return "\n".join(lines)


def _active_period(period_id: int) -> dict:
    period = PeriodStoreDB.get(period_id)
    if not period or not period["is_active"]:
        raise NotFound("Grade reporting period not found")
    return period


def _own_report(ctx, report_id: int) -> dict:
    """The report, if the caller wrote it. Admins may read any report."""
    report = ReportStoreDB.get(report_id)
    if not report or (ctx.role != "admin" and report["homeroom_teacher_id"] != ctx.user_id):
        raise NotFound("Report not found")
    return report


# ── Homeroom teacher side ──────────────────────────────────


@server_action(roles=["teacher"], schema=ReportStudentsForm)
def get_students_for_report(ctx, form: ReportStudentsForm):
    _active_period(form.period_id)
    reports = {r["student_id"]: r for r in ReportStoreDB.for_teacher(form.period_id, ctx.user_id)}
    students = []
    for cls in ClassStoreDB.homeroom_classes(ctx.user_id):
        for student in AssignmentStoreDB.roster(cls["id"]):
            students.append({
                **student,
                "class_id": cls["id"],
                "class_name": cls["name"],
                "report": reports.get(student["id"]),
            })
    return students


@server_action(roles=["teacher"], schema=StudentReportSaveForm, revalidate=[TEACHER_REPORTS_PATH])
def save_student_report(ctx, form: StudentReportSaveForm):
    period = _active_period(form.period_id)
    cls = AssignmentStoreDB.current_main_class(form.student_id)
    if not cls:
        raise NotFound("Student is not assigned to a class", code="no_class")
    if cls["homeroom_teacher_id"] != ctx.user_id:
        raise PermissionDenied("Only the homeroom teacher can write this report", code="not_homeroom_teacher")
    existing = ReportStoreDB.find(form.period_id, form.student_id)
    if existing and existing["status"] == "sent":
        raise Conflict("This report has already been sent to parents", code="already_sent")

    feedback = FeedbackStoreDB.for_student_between(form.student_id, period["start_date"], period["end_date"])
    report_id = ReportStoreDB.save_draft(
        form.period_id, form.student_id, cls["id"], ctx.user_id,
        form.strengths, form.weaknesses, summarise_feedback(feedback),
    )
    return ReportStoreDB.get(report_id)


@server_action(roles=["teacher"], schema=ReportIdForm, revalidate=[TEACHER_REPORTS_PATH, PARENT_REPORTS_PATH])
def send_student_report(ctx, form: ReportIdForm):
    report = _own_report(ctx, form.report_id)
    if not ReportStoreDB.mark_sent(form.report_id):
        raise Conflict("This report has already been sent to parents", code="already_sent")
    parents = ParentLinkStoreDB.parents_of(report["student_id"])
    for parent in parents:
        ReportStoreDB.add_recipient(report, parent["id"])
    ReportStoreDB.commit()

    sent = ReportStoreDB.get(form.report_id)
    for parent in parents:
        email_student_report(parent, sent)
    logger.info("Report %s sent to %d parents", form.report_id, len(parents))
    log_event("report_send", ctx.user_id, f"report={form.report_id} parents={len(parents)}")
    return {"report": sent, "parent_count": len(parents)}


@server_action(roles=["teacher", "admin"], schema=ReportIdForm)
def get_student_report(ctx, form: ReportIdForm):
    return _own_report(ctx, form.report_id)


@server_action(roles=["teacher", "admin"], schema=ReportIdForm)
def get_parent_responses(ctx, form: ReportIdForm):
    _own_report(ctx, form.report_id)
    return ReportStoreDB.responses(form.report_id)


# ── Parent side ────────────────────────────────────────────


@server_action(roles=["parent"])
def get_unread_report_count(ctx, form):
    return {"unread": ReportStoreDB.unread_count(ctx.user_id)}


@server_action(roles=["parent"])
def get_parent_report_notifications(ctx, form):
    return ReportStoreDB.parent_notifications(ctx.user_id)


@server_action(roles=["parent"], schema=ReportNotificationIdForm, revalidate=[PARENT_REPORTS_PATH])
def mark_report_read(ctx, form: ReportNotificationIdForm):
    notification = ReportStoreDB.notification(form.notification_id)
    if not notification or notification["parent_id"] != ctx.user_id:
        raise NotFound("Report notification not found")
    updated = ReportStoreDB.mark_read(notification)
    return {"id": form.notification_id, "is_read": True, "updated": bool(updated)}


@server_action(roles=["parent"], schema=ReportIdForm)
def get_parent_report(ctx, form: ReportIdForm):
    report = ReportStoreDB.get(form.report_id)
    if not report or report["status"] != "sent":
        raise NotFound("Report not found")
    if not ParentLinkStoreDB.is_parent_of(ctx.user_id, report["student_id"]):
        raise PermissionDenied("You can only view reports for your own children", code="not_parent")
    notification = ReportStoreDB.notification_for(form.report_id, ctx.user_id)
    if not notification:
        raise NotFound("This report was not sent to you")
    return {
        "report": report,
        "response": ReportStoreDB.response(form.report_id, ctx.user_id),
        "notification_id": notification["id"],
    }


@server_action(roles=["parent"], schema=ParentResponseForm, revalidate=[PARENT_REPORTS_PATH, TEACHER_REPORTS_PATH])
def submit_parent_response(ctx, form: ParentResponseForm):
    """Record or change the parent's agreement. Only parents the report was sent to can answer."""
    if not ReportStoreDB.respond(form.report_id, ctx.user_id, form.agreement_status, form.comments.strip()):
        raise NotFound("Report not found")
    log_event("report_response", ctx.user_id, f"report={form.report_id} status={form.agreement_status}")
    return ReportStoreDB.response(form.report_id, ctx.user_id)
