"""Profile administration: accounts, roles and homeroom eligibility."""

from __future__ import annotations

from werkzeug.security import generate_password_hash

from actions.base import server_action
from audit import log_event
from auth import validate_password
from db_stores import ParentLinkStoreDB, ProfileStoreDB
from errors import Conflict, InvalidInput, NotFound
from helpers import paginated_response
from schemas import (
    CreateUserForm,
    HomeroomToggleForm,
    StudentIdForm,
    StudentParentForm,
    TeacherIdForm,
    UpdateTeacherForm,
    UserFilter,
)

USERS_PATH = "/dashboard/admin/users"
TEACHERS_PATH = "/dashboard/admin/users/teachers"
STUDENTS_PATH = "/dashboard/admin/users/students"


def _strong_password(password: str) -> None:
    pw_error = validate_password(password)
    if pw_error:
        raise InvalidInput(pw_error, code="weak_password")


def _get_teacher(teacher_id: int) -> dict:
    teacher = ProfileStoreDB.get(teacher_id)
    if not teacher or teacher["role"] != "teacher":
        raise NotFound("Teacher not found")
    return teacher


@server_action(roles=["admin"], schema=CreateUserForm, revalidate=[USERS_PATH], status=201)
def create_user(ctx, form: CreateUserForm):
    _strong_password(form.password)
    profile_id = ProfileStoreDB.create(
        email=form.email,
        full_name=form.full_name.strip(),
        role=form.role,
        password_hash=generate_password_hash(form.password),
        student_id=form.student_id,
        phone=form.phone,
        homeroom_enabled=form.homeroom_enabled,
    )
    log_event("user_create", ctx.user_id, f"profile={profile_id} role={form.role}")
    return ProfileStoreDB.get(profile_id)


@server_action(roles=["admin"], schema=UserFilter)
def list_users(ctx, form: UserFilter):
    items, total = ProfileStoreDB.list(form.role, form.search, form.page, form.limit)
    return paginated_response(items, total, form.page, form.limit)


# ── Teachers ───────────────────────────────────────────────


@server_action(roles=["admin"], schema=UpdateTeacherForm, revalidate=[USERS_PATH, TEACHERS_PATH])
def update_teacher(ctx, form: UpdateTeacherForm):
    """Change only the fields sent in the payload."""
    _get_teacher(form.teacher_id)
    fields = form.model_dump(exclude={"teacher_id"}, exclude_none=True)
    if "full_name" in fields:
        fields["full_name"] = fields["full_name"].strip()
    ProfileStoreDB.update(form.teacher_id, fields)
    log_event("teacher_update", ctx.user_id, f"teacher={form.teacher_id} fields={','.join(sorted(fields))}")
    return ProfileStoreDB.get(form.teacher_id)


@server_action(roles=["admin"], schema=TeacherIdForm, revalidate=[USERS_PATH, TEACHERS_PATH])
def delete_teacher(ctx, form: TeacherIdForm):
    _get_teacher(form.teacher_id)
    usage = {label: n for label, n in ProfileStoreDB.teacher_usage(form.teacher_id).items() if n}
    if usage:
        raise Conflict(
            "Teacher still has " + ", ".join(f"{n} {label.replace('_', ' ')}" for label, n in usage.items()),
            code="teacher_in_use",
        )
    ProfileStoreDB.delete([form.teacher_id])
    log_event("teacher_delete", ctx.user_id, f"teacher={form.teacher_id}")
    return {"id": form.teacher_id}


@server_action(roles=["admin"], schema=HomeroomToggleForm, revalidate=[USERS_PATH, "/dashboard/admin/classes"])
def set_homeroom_enabled(ctx, form: HomeroomToggleForm):
    _get_teacher(form.teacher_id)
    ProfileStoreDB.set_homeroom_enabled(form.teacher_id, form.enabled)
    log_event("homeroom_toggle", ctx.user_id, f"teacher={form.teacher_id} enabled={form.enabled}")
    return {"teacher_id": form.teacher_id, "homeroom_enabled": form.enabled}


@server_action(roles=["admin"])
def get_homeroom_enabled_teachers(ctx, form):
    return ProfileStoreDB.homeroom_teachers()


# ── Students and their parents ─────────────────────────────


@server_action(roles=["admin"], schema=StudentParentForm, revalidate=[USERS_PATH, STUDENTS_PATH], status=201)
def create_student_with_parent(ctx, form: StudentParentForm):
    """Create a student account, a parent account and the link between them, all or nothing."""
    _strong_password(form.password)
    student = form.student.model_dump()
    parent = form.parent.model_dump()
    student["full_name"] = student["full_name"].strip()
    parent["full_name"] = parent["full_name"].strip()

    student_id, parent_id = ProfileStoreDB.create_student_with_parent(
        student, parent, generate_password_hash(form.password),
        form.parent.relationship, form.parent.is_primary_contact,
    )
    log_event("student_parent_create", ctx.user_id, f"student={student_id} parent={parent_id}")
    return {"student": ProfileStoreDB.get(student_id), "parent": ProfileStoreDB.get(parent_id)}


@server_action(roles=["admin"], schema=StudentIdForm, revalidate=[USERS_PATH, STUDENTS_PATH])
def delete_student(ctx, form: StudentIdForm):
    """Delete a student and every parent account left without children."""
    student = ProfileStoreDB.get(form.student_id)
    if not student or student["role"] != "student":
        raise NotFound("Student not found")

    orphaned = [
        parent["id"] for parent in ParentLinkStoreDB.parents_of(form.student_id)
        if {c["id"] for c in ParentLinkStoreDB.children_of(parent["id"])} == {form.student_id}
    ]
    ProfileStoreDB.delete([form.student_id] + orphaned)
    log_event("student_delete", ctx.user_id, f"student={form.student_id} parents={orphaned}")
    return {"id": form.student_id, "deleted_parent_ids": orphaned}
