"""Lesson feedback and its fan-out to parents.

Sending feedback upserts one feedback_notifications row per
(feedback, parent) pair, so repeating a send refreshes ``sent_at``
without creating duplicates.
"""

from __future__ import annotations

import logging

from actions.base import server_action
from audit import log_event
from db_stores import AssignmentStoreDB, FeedbackStoreDB, ParentLinkStoreDB, ProfileStoreDB, TimetableStoreDB
from email_service import send_feedback_digest
from errors import NotFound, PermissionDenied
from helpers import paginated_response
from schemas import DailyFeedbackForm, FeedbackForm, FeedbackIdsForm, FeedbackNotificationIdForm, ParentFeedbackFilter

logger = logging.getLogger(__name__)

TEACHER_FEEDBACK_PATH = "/dashboard/teacher/feedback"
PARENT_FEEDBACK_PATH = "/dashboard/parent/feedback"


@server_action(roles=["teacher"], schema=FeedbackForm, revalidate=[TEACHER_FEEDBACK_PATH])
def create_student_feedback(ctx, form: FeedbackForm):
    event = TimetableStoreDB.get(form.timetable_event_id)
    if not event:
        raise NotFound("Lesson not found")
    if event["teacher_id"] != ctx.user_id:
        raise PermissionDenied("You can only give feedback for your own lessons", code="not_lesson_teacher")
    if not AssignmentStoreDB.is_enrolled(event["class_id"], form.student_id):
        raise NotFound("Student is not in this class")

    feedback_id = FeedbackStoreDB.upsert(
        form.student_id, event, ctx.user_id, form.feedback_text.strip(), form.rating, form.feedback_type,
    )
    return FeedbackStoreDB.by_ids([feedback_id])[0]


def _fan_out(feedback: list[dict], teacher_id: int) -> dict:
    """Notify every parent of each feedback's student and email one digest per parent and student."""
    by_student: dict[int, list[dict]] = {}
    for item in feedback:
        by_student.setdefault(item["student_id"], []).append(item)

    parents_seen: set[int] = set()
    pairs = 0
    digests = []
    for student_id, items in by_student.items():
        parents = ParentLinkStoreDB.parents_of(student_id)
        if not parents:
            raise NotFound("No parents found for this student", code="no_parents")
        for parent in parents:
            for item in items:
                FeedbackStoreDB.notify(item, parent["id"])
                pairs += 1
            parents_seen.add(parent["id"])
            digests.append((parent, student_id, items))
    FeedbackStoreDB.commit()

    for parent, student_id, items in digests:
        student = ProfileStoreDB.get(student_id)
        send_feedback_digest(parent, student["full_name"] if student else "", items)
    logger.info("Feedback fan-out by teacher %s: %d feedback, %d parents", teacher_id, len(feedback),
                len(parents_seen))
    return {"feedback_count": len(feedback), "parent_count": len(parents_seen), "notifications": pairs}


@server_action(roles=["teacher"], schema=DailyFeedbackForm, revalidate=[TEACHER_FEEDBACK_PATH, PARENT_FEEDBACK_PATH])
def send_daily_feedback_to_parents(ctx, form: DailyFeedbackForm):
    feedback = FeedbackStoreDB.for_day(
        form.student_id, form.day_of_week, form.week_number, form.semester_id, form.academic_year_id,
        teacher_id=ctx.user_id,
    )
    if not feedback:
        raise NotFound("No feedback found for this day", code="no_feedback")
    result = _fan_out(feedback, ctx.user_id)
    log_event("feedback_send_daily", ctx.user_id,
              f"student={form.student_id} day={form.day_of_week} week={form.week_number}")
    return result


@server_action(roles=["teacher"], schema=FeedbackIdsForm, revalidate=[TEACHER_FEEDBACK_PATH, PARENT_FEEDBACK_PATH])
def send_feedback_to_parents(ctx, form: FeedbackIdsForm):
    wanted = list(dict.fromkeys(form.feedback_ids))
    feedback = FeedbackStoreDB.by_ids(wanted)
    if len(feedback) != len(wanted):
        raise NotFound("Some feedback entries were not found")
    if any(item["teacher_id"] != ctx.user_id for item in feedback):
        raise PermissionDenied("You can only send your own feedback", code="not_feedback_author")
    return _fan_out(feedback, ctx.user_id)


@server_action(roles=["teacher", "admin"], schema=DailyFeedbackForm)
def check_daily_feedback_sent_status(ctx, form: DailyFeedbackForm):
    feedback = FeedbackStoreDB.for_day(
        form.student_id, form.day_of_week, form.week_number, form.semester_id, form.academic_year_id,
        teacher_id=ctx.user_id if ctx.role == "teacher" else None,
    )
    sent = FeedbackStoreDB.notifications_for([f["id"] for f in feedback])
    return {
        "sent": bool(sent),
        "sent_at": max((n["sent_at"] for n in sent), default=None),
        "feedback_count": len(feedback),
        "parent_count": len({n["parent_id"] for n in sent}),
    }


@server_action(roles=["parent"], schema=ParentFeedbackFilter)
def get_parent_feedback(ctx, form: ParentFeedbackFilter):
    if form.student_id and not ParentLinkStoreDB.is_parent_of(ctx.user_id, form.student_id):
        raise PermissionDenied("You can only view feedback for your own children", code="not_parent")
    items, total = FeedbackStoreDB.parent_inbox(ctx.user_id, form.student_id, form.unread_only,
                                                form.page, form.limit)
    return paginated_response(items, total, form.page, form.limit)


@server_action(roles=["parent"], schema=FeedbackNotificationIdForm, revalidate=[PARENT_FEEDBACK_PATH])
def mark_feedback_read(ctx, form: FeedbackNotificationIdForm):
    notification = FeedbackStoreDB.notification(form.notification_id)
    if not notification or notification["parent_id"] != ctx.user_id:
        raise NotFound("Feedback notification not found")
    updated = FeedbackStoreDB.mark_read(form.notification_id, ctx.user_id)
    return {"id": form.notification_id, "is_read": True, "updated": bool(updated)}
