"""Classes, student placement and subject-teacher assignments.

Students hold at most one active assignment per (assignment type, academic
year). "main" assignments go to regular classes, "combined" to subject
combination classes. Removing a student is a soft delete: the assignment
row stays with is_active = 0.
"""

from __future__ import annotations

from actions.base import server_action
from audit import log_event
from db_stores import (
    AcademicStoreDB,
    AssignmentStoreDB,
    ClassStoreDB,
    ProfileStoreDB,
    SubjectStoreDB,
    SubjectTeacherStoreDB,
)
from errors import ActionError, Conflict, InvalidInput, NotFound, classify_integrity_error, is_integrity_error
from helpers import paginated_response
from schemas import (
    AssignmentFilter,
    AssignmentIdForm,
    AvailableStudentsForm,
    BulkAssignmentForm,
    ClassFilter,
    ClassForm,
    ClassIdForm,
    StudentAssignmentForm,
    SubjectTeacherForm,
    TeacherAssignmentFilter,
    UpdateClassForm,
)


CLASSES_PATH = "/dashboard/admin/classes"
TYPE_LABELS = {"main": "main", "combined": "combined"}


# ── Classes ────────────────────────────────────────────────


def _check_class_form(form: ClassForm, class_id: int | None = None) -> None:
    """Validate year, semester and homeroom teacher for a new or edited class."""
    if not AcademicStoreDB.get_year(form.academic_year_id):
        raise NotFound("Academic year not found")
    if form.semester_id:
        semester = AcademicStoreDB.get_semester(form.semester_id)
        if not semester or semester["academic_year_id"] != form.academic_year_id:
            raise InvalidInput("Semester does not belong to the academic year")
    if form.homeroom_teacher_id:
        teacher = ProfileStoreDB.get(form.homeroom_teacher_id)
        if not teacher or teacher["role"] != "teacher":
            raise InvalidInput("Homeroom teacher must be a teacher")
        if not teacher["homeroom_enabled"]:
            raise InvalidInput("Teacher is not enabled as a homeroom teacher", code="homeroom_not_enabled")
        taken = ClassStoreDB.homeroom_of(form.homeroom_teacher_id, form.semester_id, exclude_id=class_id)
        if taken:
            raise Conflict(
                f"Teacher is already the homeroom teacher of class {taken['name']} in this semester",
                code="homeroom_taken",
            )


@server_action(roles=["admin"], schema=ClassForm, revalidate=[CLASSES_PATH], status=201)
def create_class(ctx, form: ClassForm):
    _check_class_form(form)

    class_id = ClassStoreDB.create(
        name=form.name.strip(),
        academic_year_id=form.academic_year_id,
        semester_id=form.semester_id,
        grade_level=form.grade_level,
        is_subject_combination=form.is_subject_combination,
        subject_combination_type=form.subject_combination_type if form.is_subject_combination else "",
        homeroom_teacher_id=form.homeroom_teacher_id,
        max_students=form.max_students,
        description=form.description,
    )
    log_event("class_create", ctx.user_id, f"class={class_id}")
    return ClassStoreDB.get(class_id)


@server_action(roles=["admin", "teacher"], schema=ClassFilter)
def list_classes(ctx, form: ClassFilter):
    return ClassStoreDB.list(
        form.academic_year_id, form.semester_id, form.grade_level, form.is_subject_combination, form.search,
    )


@server_action(roles=["admin"], schema=UpdateClassForm, revalidate=[CLASSES_PATH])
def update_class(ctx, form: UpdateClassForm):
    cls = ClassStoreDB.get(form.class_id)
    if not cls:
        raise NotFound("Class not found")
    _check_class_form(form, class_id=form.class_id)
    if form.max_students < cls["current_students"]:
        raise InvalidInput(
            f"Class already has {cls['current_students']} students", code="below_current_students",
        )
    moved = (form.is_subject_combination != bool(cls["is_subject_combination"])
             or form.academic_year_id != cls["academic_year_id"])
    if cls["current_students"] and moved:
        raise Conflict("Cannot change the class type or academic year while students are assigned",
                       code="class_not_empty")

    ClassStoreDB.update(
        form.class_id,
        name=form.name.strip(),
        academic_year_id=form.academic_year_id,
        semester_id=form.semester_id,
        grade_level=form.grade_level,
        is_subject_combination=form.is_subject_combination,
        subject_combination_type=form.subject_combination_type if form.is_subject_combination else "",
        homeroom_teacher_id=form.homeroom_teacher_id,
        max_students=form.max_students,
        description=form.description,
    )
    log_event("class_update", ctx.user_id, f"class={form.class_id}")
    return ClassStoreDB.get(form.class_id)


@server_action(roles=["admin"], schema=ClassIdForm, revalidate=[CLASSES_PATH])
def delete_class(ctx, form: ClassIdForm):
    cls = ClassStoreDB.get(form.class_id)
    if not cls:
        raise NotFound("Class not found")
    if cls["current_students"]:
        raise Conflict("Class still has active students", code="class_not_empty")
    ClassStoreDB.delete(form.class_id)
    log_event("class_delete", ctx.user_id, f"class={form.class_id}")
    return {"id": form.class_id}


# ── Student assignments ────────────────────────────────────


def _assign(student_id: int, cls: dict, assignment_type: str, assigned_by: int) -> dict:
    """Validate and insert one assignment. Raises ActionError on any rule violation."""
    student = ProfileStoreDB.get(student_id)
    if not student or student["role"] != "student":
        raise NotFound("Student not found")

    expects_combined = bool(cls["is_subject_combination"])
    if (assignment_type == "combined") != expects_combined:
        wanted = "combined" if expects_combined else "main"
        raise InvalidInput(
            f"Class {cls['name']} only accepts {wanted} assignments", code="assignment_type_mismatch",
        )

    existing = AssignmentStoreDB.active_for(student_id, assignment_type, cls["academic_year_id"])
    if existing:
        raise Conflict(
            f"Student is already assigned to a {TYPE_LABELS[assignment_type]} class this academic year "
            f"({existing['class_name']})",
            code="already_assigned",
        )

    if AssignmentStoreDB.active_count(cls["id"]) >= cls["max_students"]:
        raise Conflict(f"Class {cls['name']} is full", code="class_full")

    assignment_id = AssignmentStoreDB.create(
        student_id, cls["id"], cls["academic_year_id"], assignment_type, assigned_by,
    )
    return AssignmentStoreDB.get(assignment_id)


@server_action(roles=["admin"], schema=StudentAssignmentForm, revalidate=[CLASSES_PATH], status=201)
def assign_student_to_class(ctx, form: StudentAssignmentForm):
    cls = ClassStoreDB.get(form.class_id)
    if not cls:
        raise NotFound("Class not found")
    assignment = _assign(form.student_id, cls, form.assignment_type, ctx.user_id)
    log_event("student_assign", ctx.user_id,
              f"student={form.student_id} class={form.class_id} type={form.assignment_type}")
    return assignment


@server_action(roles=["admin"], schema=AssignmentIdForm, revalidate=[CLASSES_PATH])
def remove_student_from_class(ctx, form: AssignmentIdForm):
    assignment = AssignmentStoreDB.get(form.assignment_id)
    if not assignment:
        raise NotFound("Assignment not found")
    if not assignment["is_active"]:
        raise Conflict("Student has already been removed from this class", code="already_removed")
    AssignmentStoreDB.deactivate(form.assignment_id)
    log_event("student_remove", ctx.user_id,
              f"assignment={form.assignment_id} student={assignment['student_id']}")
    return AssignmentStoreDB.get(form.assignment_id)


@server_action(roles=["admin"], schema=BulkAssignmentForm, revalidate=[CLASSES_PATH])
def bulk_assign_students(ctx, form: BulkAssignmentForm):
    cls = ClassStoreDB.get(form.class_id)
    if not cls:
        raise NotFound("Class not found")

    assigned, errors = [], []
    for student_id in dict.fromkeys(form.student_ids):
        try:
            assigned.append(_assign(student_id, cls, form.assignment_type, ctx.user_id))
        except ActionError as e:
            errors.append({"student_id": student_id, "error": e.message, "code": e.code})
        except Exception as e:
            if not is_integrity_error(e):
                raise
            ctx.db.rollback()
            err = classify_integrity_error(e)
            errors.append({"student_id": student_id, "error": err.message, "code": err.code})

    log_event("student_bulk_assign", ctx.user_id,
              f"class={form.class_id} assigned={len(assigned)} failed={len(errors)}")
    return {"assigned": assigned, "errors": errors,
            "success_count": len(assigned), "error_count": len(errors)}


@server_action(roles=["admin"], schema=AvailableStudentsForm)
def get_available_students(ctx, form: AvailableStudentsForm):
    cls = ClassStoreDB.get(form.class_id)
    if not cls:
        raise NotFound("Class not found")
    assignment_type = "combined" if cls["is_subject_combination"] else "main"
    return AssignmentStoreDB.available_students(assignment_type, cls["academic_year_id"], form.search)


@server_action(roles=["admin"], schema=AssignmentFilter)
def get_class_assignments(ctx, form: AssignmentFilter):
    items, total = AssignmentStoreDB.list(
        form.class_id, form.academic_year_id, form.assignment_type, form.is_active, form.search,
        form.page, form.limit,
    )
    return paginated_response(items, total, form.page, form.limit)


@server_action(roles=["admin", "teacher"], schema=ClassIdForm)
def get_class_roster(ctx, form: ClassIdForm):
    cls = ClassStoreDB.get(form.class_id)
    if not cls:
        raise NotFound("Class not found")
    return {"class": cls, "students": AssignmentStoreDB.roster(form.class_id)}


# ── Subject-teacher assignments ────────────────────────────


@server_action(roles=["admin"], schema=SubjectTeacherForm, revalidate=[CLASSES_PATH], status=201)
def assign_subject_teacher(ctx, form: SubjectTeacherForm):
    teacher = ProfileStoreDB.get(form.teacher_id)
    if not teacher or teacher["role"] != "teacher":
        raise NotFound("Teacher not found")
    if not SubjectStoreDB.get(form.subject_id):
        raise NotFound("Subject not found")
    if not ClassStoreDB.get(form.class_id):
        raise NotFound("Class not found")
    assignment_id = SubjectTeacherStoreDB.create(form.teacher_id, form.subject_id, form.class_id)
    log_event("subject_teacher_assign", ctx.user_id,
              f"teacher={form.teacher_id} subject={form.subject_id} class={form.class_id}")
    return {"id": assignment_id, "teacher_id": form.teacher_id,
            "subject_id": form.subject_id, "class_id": form.class_id}


@server_action(roles=["admin", "teacher"], schema=TeacherAssignmentFilter)
def list_teacher_assignments(ctx, form: TeacherAssignmentFilter):
    teacher_id = ctx.user_id if ctx.role == "teacher" else form.teacher_id
    return SubjectTeacherStoreDB.list(teacher_id, form.class_id)
