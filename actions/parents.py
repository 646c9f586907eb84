"""Parent-student links and the parent's view of their children."""

from __future__ import annotations

from actions.base import server_action
from actions.grades import student_report_data
from audit import log_event
from db_stores import AssignmentStoreDB, ParentLinkStoreDB, PeriodStoreDB, ProfileStoreDB
from errors import InvalidInput, NotFound, PermissionDenied
from schemas import ChildGradesForm, ParentLinkForm

PARENT_PATH = "/dashboard/parent"


@server_action(roles=["admin"], schema=ParentLinkForm, revalidate=[PARENT_PATH], status=201)
def link_parent_student(ctx, form: ParentLinkForm):
    parent = ProfileStoreDB.get(form.parent_id)
    if not parent or parent["role"] != "parent":
        raise InvalidInput("Profile is not a parent", code="not_a_parent")
    student = ProfileStoreDB.get(form.student_id)
    if not student or student["role"] != "student":
        raise InvalidInput("Profile is not a student", code="not_a_student")

    link_id = ParentLinkStoreDB.create(form.parent_id, form.student_id, form.relationship, form.is_primary_contact)
    log_event("parent_link", ctx.user_id, f"parent={form.parent_id} student={form.student_id}")
    return {"id": link_id, "parent_id": form.parent_id, "student_id": form.student_id,
            "relationship": form.relationship, "is_primary_contact": form.is_primary_contact}


@server_action(roles=["parent"])
def get_parent_students(ctx, form):
    children = ParentLinkStoreDB.children_of(ctx.user_id)
    for child in children:
        cls = AssignmentStoreDB.current_main_class(child["id"])
        child["current_class"] = {"id": cls["id"], "name": cls["name"]} if cls else None
    return children


@server_action(roles=["parent"], schema=ChildGradesForm)
def get_child_grades(ctx, form: ChildGradesForm):
    if not ParentLinkStoreDB.is_parent_of(ctx.user_id, form.student_id):
        raise PermissionDenied("You can only view your own children's grades", code="not_parent")
    student = ProfileStoreDB.get(form.student_id)

    if form.period_id is not None:
        period = PeriodStoreDB.get(form.period_id)
        if not period:
            raise NotFound("Grade reporting period not found")
        return [student_report_data(student, period)]
    return [student_report_data(student, period) for period in PeriodStoreDB.list(is_active=True)]
