"""Leave applications filed by parents and answered by homeroom teachers."""

from __future__ import annotations

from actions.base import server_action
from audit import log_event
from db_stores import AssignmentStoreDB, LeaveStoreDB, ParentLinkStoreDB
from email_service import send_leave_response
from errors import Conflict, InvalidInput, NotFound, PermissionDenied
from schemas import LeaveApplicationForm, LeaveFilter, LeaveResponseForm

PARENT_LEAVE_PATH = "/dashboard/parent/leave-application"
TEACHER_LEAVE_PATH = "/dashboard/teacher/leave-requests"


@server_action(roles=["parent"], schema=LeaveApplicationForm, revalidate=[PARENT_LEAVE_PATH, TEACHER_LEAVE_PATH],
               status=201)
def create_leave_application(ctx, form: LeaveApplicationForm):
    if not ParentLinkStoreDB.is_parent_of(ctx.user_id, form.student_id):
        raise PermissionDenied("You can only apply for leave for your own children", code="not_parent")
    cls = AssignmentStoreDB.current_main_class(form.student_id)
    if not cls:
        raise InvalidInput("Student is not assigned to a class", code="no_class")

    application_id = LeaveStoreDB.create(
        form.student_id, ctx.user_id, cls["id"], cls["homeroom_teacher_id"], form.leave_type,
        form.reason.strip(), form.start_date.isoformat(), form.end_date.isoformat(),
    )
    log_event("leave_create", ctx.user_id, f"application={application_id} student={form.student_id}")
    return LeaveStoreDB.get(application_id)


@server_action(roles=["parent"], schema=LeaveFilter)
def get_parent_leave_applications(ctx, form: LeaveFilter):
    return LeaveStoreDB.list_for("parent_id", ctx.user_id, form.status)


@server_action(roles=["teacher"], schema=LeaveFilter)
def get_teacher_leave_applications(ctx, form: LeaveFilter):
    return LeaveStoreDB.list_for("homeroom_teacher_id", ctx.user_id, form.status)


@server_action(roles=["teacher"], schema=LeaveResponseForm, revalidate=[PARENT_LEAVE_PATH, TEACHER_LEAVE_PATH])
def respond_to_leave_application(ctx, form: LeaveResponseForm):
    application = LeaveStoreDB.get(form.application_id)
    if not application:
        raise NotFound("Leave application not found")
    if application["homeroom_teacher_id"] != ctx.user_id:
        raise PermissionDenied("Only the homeroom teacher can respond to this application",
                               code="not_homeroom_teacher")
    if not LeaveStoreDB.respond(form.application_id, form.status, form.teacher_response.strip()):
        raise Conflict("This application has already been answered", code="already_processed")

    updated = LeaveStoreDB.get(form.application_id)
    send_leave_response(updated)
    log_event("leave_respond", ctx.user_id, f"application={form.application_id} status={form.status}")
    return updated
