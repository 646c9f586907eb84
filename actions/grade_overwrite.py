"""Admin review of teacher grade-change requests.

A submitted request has already changed the live grade. Approving keeps
``new_value``; rejecting restores ``old_value``. The status moves out of
``pending`` through a conditional update, so each request is processed once.
"""

from __future__ import annotations

from actions.base import server_action
from actions.grades import GRADE_MANAGEMENT_PATH, OVERWRITE_PATH, grade_tags
from audit import log_event
from db_stores import GradeStoreDB, OverwriteStoreDB
from errors import Conflict, NotFound
from schemas import ApproveOverwriteForm, OverwriteFilter, RejectOverwriteForm


@server_action(roles=["admin"], schema=OverwriteFilter)
def get_grade_overwrite_requests(ctx, form: OverwriteFilter):
    return OverwriteStoreDB.list(form.status)


def _process(ctx, request_id: int, status: str, admin_reason: str) -> dict:
    request = OverwriteStoreDB.get(request_id)
    if not request:
        raise NotFound("Grade change request not found")
    grade = GradeStoreDB.get(request["grade_id"])
    if not grade:
        raise NotFound("Grade not found")

    if not OverwriteStoreDB.transition(request_id, status, admin_reason, ctx.user_id):
        raise Conflict("This request has already been processed", code="already_processed")
    value = request["new_value"] if status == "approved" else request["old_value"]
    GradeStoreDB.set_value(request["grade_id"], value, commit=False)
    GradeStoreDB.commit()

    for tag in grade_tags(grade["period_id"], grade["class_id"], grade["subject_id"]):
        ctx.revalidate_tag(tag)
    log_event(f"grade_overwrite_{status}", ctx.user_id,
              f"request={request_id} grade={request['grade_id']} value={value}")
    return {**OverwriteStoreDB.get(request_id), "grade_value": value}


@server_action(roles=["admin"], schema=ApproveOverwriteForm, revalidate=[OVERWRITE_PATH, GRADE_MANAGEMENT_PATH])
def approve_grade_overwrite(ctx, form: ApproveOverwriteForm):
    return _process(ctx, form.request_id, "approved", form.admin_note.strip())


@server_action(roles=["admin"], schema=RejectOverwriteForm, revalidate=[OVERWRITE_PATH, GRADE_MANAGEMENT_PATH])
def reject_grade_overwrite(ctx, form: RejectOverwriteForm):
    return _process(ctx, form.request_id, "rejected", form.admin_reason)
