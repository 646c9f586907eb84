"""Detailed grades: import, overview, overwrite requests and report data."""

from __future__ import annotations

from actions.academic import ensure_period_open
from actions.base import ActionResult, server_action
from audit import log_event
from cache_backend import cached
from db_stores import (
    GRADE_COMPONENTS,
    AssignmentStoreDB,
    ClassStoreDB,
    GradeStoreDB,
    OverwriteStoreDB,
    ParentLinkStoreDB,
    PeriodStoreDB,
    ProfileStoreDB,
    SubjectStoreDB,
    SubjectTeacherStoreDB,
)
from errors import Conflict, InvalidInput, NotFound, PermissionDenied, classify_integrity_error, is_integrity_error
from grade_validation import REGULAR_COMPONENTS, competition_rank, overall_average, subject_average
from schemas import (
    ClassSummaryForm,
    DetailedGradeFilter,
    GradeImportForm,
    GradeOverwriteSubmitForm,
    GradeScopeForm,
    IndividualImportForm,
    IndividualTemplateForm,
    StudentReportForm,
)

GRADE_MANAGEMENT_PATH = "/dashboard/admin/grade-management"
OVERWRITE_PATH = "/dashboard/admin/grade-overwrite-approvals"
REASON_REQUIRED = ("midterm", "final")


def grade_tags(period_id: int, class_id: int, subject_id: int) -> list[str]:
    return [f"grades-{period_id}-{class_id}-{subject_id}", f"grade-overview-{period_id}-{class_id}-{subject_id}"]


def ensure_teaches(ctx, class_id: int, subject_id: int | None = None) -> dict:
    """Admins pass; teachers must lead the class or teach the subject in it."""
    cls = ClassStoreDB.get(class_id)
    if not cls:
        raise NotFound("Class not found")
    if ctx.role == "admin":
        return cls
    if cls["homeroom_teacher_id"] == ctx.user_id:
        return cls
    if subject_id is not None and SubjectTeacherStoreDB.teaches(ctx.user_id, class_id, subject_id):
        return cls
    raise PermissionDenied("You do not teach this subject in this class", code="not_class_teacher")


def _active_period(period_id: int, operation: str) -> dict:
    period = PeriodStoreDB.get(period_id)
    ensure_period_open(period, operation)
    return period


# ── Import ─────────────────────────────────────────────────


@server_action(roles=["teacher", "admin"], schema=GradeImportForm, revalidate=[GRADE_MANAGEMENT_PATH])
def import_validated_grades(ctx, form: GradeImportForm):
    _active_period(form.period_id, "import")
    ensure_teaches(ctx, form.class_id, form.subject_id)
    if not SubjectStoreDB.get(form.subject_id):
        raise NotFound("Subject not found")

    success_count, errors = 0, []
    records_written = skipped = 0
    for row in form.rows:
        student = AssignmentStoreDB.student_in_class(form.class_id, row.student_id)
        if not student:
            errors.append({"student_id": row.student_id, "error": f"Student {row.student_id} is not in this class"})
            continue
        values = row.model_dump()
        records = [(c, values[c]) for c in GRADE_COMPONENTS if values.get(c) is not None]
        if not records:
            # Untouched template rows import as nothing
            success_count += 1
            skipped += 1
            continue
        try:
            for component, value in records:
                GradeStoreDB.upsert(form.period_id, student["id"], form.subject_id, form.class_id,
                                    component, value, ctx.user_id, row.notes.strip())
            GradeStoreDB.commit()
        except Exception as e:
            if not is_integrity_error(e):
                raise
            ctx.db.rollback()
            errors.append({"student_id": row.student_id, "error": classify_integrity_error(e).message})
            continue
        success_count += 1
        records_written += len(records)

    for tag in grade_tags(form.period_id, form.class_id, form.subject_id):
        ctx.revalidate_tag(tag)
    log_event("grades_import", ctx.user_id,
              f"period={form.period_id} class={form.class_id} subject={form.subject_id} "
              f"ok={success_count} failed={len(errors)}")

    data = {
        "success_count": success_count,
        "error_count": len(errors),
        "records_written": records_written,
        "skipped_count": skipped,
        "errors": errors,
    }
    if errors:
        return ActionResult(False, data=data, error=f"{len(errors)} rows could not be imported",
                            code="partial_import", message=f"Imported {success_count} of {len(form.rows)} rows")
    return ActionResult.ok(data, message=f"Imported {success_count} rows")


# ── Reads ──────────────────────────────────────────────────


def build_overview(period_id: int, class_id: int, subject_id: int) -> list[dict]:
    """One entry per active student with their components for one subject."""
    students = {s["id"]: {
        "student_id": s["id"],
        "student_number": s["student_id"],
        "full_name": s["full_name"],
        "regular_grades": [None] * len(REGULAR_COMPONENTS),
        "midterm": None,
        "final": None,
        "summary": None,
        "average": None,
        "last_modified": None,
    } for s in AssignmentStoreDB.roster(class_id)}

    for g in GradeStoreDB.list(period_id=period_id, class_id=class_id, subject_id=subject_id):
        entry = students.get(g["student_id"])
        if entry is None:
            continue
        component = g["component_type"]
        if component in REGULAR_COMPONENTS:
            entry["regular_grades"][REGULAR_COMPONENTS.index(component)] = g["grade_value"]
        else:
            entry[component] = g["grade_value"]
        if not entry["last_modified"] or g["updated_at"] > entry["last_modified"]:
            entry["last_modified"] = g["updated_at"]

    for entry in students.values():
        components = dict(zip(REGULAR_COMPONENTS, entry["regular_grades"]))
        components.update(midterm=entry["midterm"], final=entry["final"], summary=entry["summary"])
        entry["average"] = subject_average(components)
    return list(students.values())


@server_action(roles=["teacher", "admin"], schema=GradeScopeForm)
def get_grade_overview(ctx, form: GradeScopeForm):
    ensure_teaches(ctx, form.class_id, form.subject_id)
    return cached(
        grade_tags(form.period_id, form.class_id, form.subject_id),
        f"grade-overview:{form.period_id}:{form.class_id}:{form.subject_id}",
        lambda: build_overview(form.period_id, form.class_id, form.subject_id),
    )


@server_action(roles=["admin", "teacher"], schema=DetailedGradeFilter)
def get_detailed_grades(ctx, form: DetailedGradeFilter):
    if ctx.role == "teacher":
        if form.class_id is None:
            raise InvalidInput("class_id is required")
        ensure_teaches(ctx, form.class_id, form.subject_id)
    return GradeStoreDB.list(form.period_id, form.class_id, form.subject_id, form.student_id, form.component_type)


# ── Overwrite requests ─────────────────────────────────────


@server_action(roles=["teacher", "admin"], schema=GradeOverwriteSubmitForm, revalidate=[OVERWRITE_PATH], status=201)
def submit_grade_overwrite(ctx, form: GradeOverwriteSubmitForm):
    grade = GradeStoreDB.get(form.grade_id)
    if not grade:
        raise NotFound("Grade not found")
    ensure_teaches(ctx, grade["class_id"], grade["subject_id"])
    if grade["component_type"] in REASON_REQUIRED and not form.reason.strip():
        raise InvalidInput("A reason is required to change midterm or final grades", code="reason_required")
    if grade["grade_value"] == form.new_value:
        raise InvalidInput("The new grade equals the current grade", code="no_change")
    if OverwriteStoreDB.pending_for(form.grade_id):
        raise Conflict("A change request for this grade is already pending", code="pending_request_exists")

    request_id = OverwriteStoreDB.create(form.grade_id, ctx.user_id, grade["grade_value"], form.new_value,
                                         form.reason.strip())
    GradeStoreDB.set_value(form.grade_id, form.new_value, commit=False)
    GradeStoreDB.commit()

    for tag in grade_tags(grade["period_id"], grade["class_id"], grade["subject_id"]):
        ctx.revalidate_tag(tag)
    log_event("grade_overwrite_submit", ctx.user_id,
              f"request={request_id} grade={form.grade_id} {grade['grade_value']}->{form.new_value}")
    return OverwriteStoreDB.get(request_id)


# ── Individual import ──────────────────────────────────────


@server_action(roles=["admin", "teacher"], schema=IndividualImportForm, revalidate=[GRADE_MANAGEMENT_PATH])
def import_individual_grades(ctx, form: IndividualImportForm):
    _active_period(form.period_id, "import")
    ensure_teaches(ctx, form.class_id)
    if not AssignmentStoreDB.is_enrolled(form.class_id, form.student_id):
        raise NotFound("Student is not enrolled in this class")

    subjects = {s["name_vietnamese"]: s for s in SubjectStoreDB.list()}
    imported, errors = [], []
    for entry in form.grades:
        subject = subjects.get(entry.subject_name.strip())
        if subject is None:
            errors.append({"subject_name": entry.subject_name, "error": "Subject not found"})
            continue
        for component in ("midterm", "final"):
            value = getattr(entry, component)
            if value is not None:
                GradeStoreDB.upsert(form.period_id, form.student_id, subject["id"], form.class_id,
                                    component, value, ctx.user_id, entry.notes)
        GradeStoreDB.commit()
        imported.append(subject["id"])
        for tag in grade_tags(form.period_id, form.class_id, subject["id"]):
            ctx.revalidate_tag(tag)

    log_event("grades_import_individual", ctx.user_id,
              f"period={form.period_id} student={form.student_id} subjects={len(imported)}")
    data = {"success_count": len(imported), "error_count": len(errors), "errors": errors}
    if errors:
        return ActionResult(False, data=data, error=f"{len(errors)} subjects could not be imported",
                            code="partial_import")
    return ActionResult.ok(data, message=f"Imported grades for {len(imported)} subjects")


# ── Report data ────────────────────────────────────────────


def _components_by_subject(grades: list[dict]) -> dict[int, dict]:
    by_subject: dict[int, dict] = {}
    for g in grades:
        by_subject.setdefault(g["subject_id"], {})[g["component_type"]] = g["grade_value"]
    return by_subject


def class_summary_data(period: dict, cls: dict) -> dict:
    grades = GradeStoreDB.list(period_id=period["id"], class_id=cls["id"])
    subject_ids = sorted({g["subject_id"] for g in grades})
    subjects = [SubjectStoreDB.get(sid) for sid in subject_ids]
    subjects.sort(key=lambda s: (s["category"], s["code"]))

    per_student: dict[int, list[dict]] = {}
    for g in grades:
        per_student.setdefault(g["student_id"], []).append(g)

    students = []
    for s in AssignmentStoreDB.roster(cls["id"]):
        components = _components_by_subject(per_student.get(s["id"], []))
        averages = {sid: subject_average(components.get(sid, {})) for sid in subject_ids}
        students.append({
            "id": s["id"],
            "student_id": s["student_id"],
            "full_name": s["full_name"],
            "components": components,
            "averages": averages,
            "overall_average": overall_average(list(averages.values())),
        })
    for student, rank in zip(students, competition_rank([s["overall_average"] for s in students])):
        student["rank"] = rank
    return {"period": period, "class": cls, "subjects": subjects, "students": students}


@server_action(roles=["admin", "teacher"], schema=ClassSummaryForm)
def get_class_summary(ctx, form: ClassSummaryForm):
    period = PeriodStoreDB.get(form.period_id)
    if not period:
        raise NotFound("Grade reporting period not found")
    cls = ensure_teaches(ctx, form.class_id)
    return class_summary_data(period, cls)


def student_report_data(student: dict, period: dict) -> dict:
    grades = GradeStoreDB.list(period_id=period["id"], student_id=student["id"])
    by_subject: dict[int, dict] = {}
    for g in grades:
        entry = by_subject.setdefault(g["subject_id"], {
            "subject_id": g["subject_id"],
            "subject_code": g["subject_code"],
            "subject_name": g["subject_name"],
            "components": {},
        })
        entry["components"][g["component_type"]] = g["grade_value"]
    subjects = sorted(by_subject.values(), key=lambda e: e["subject_code"])
    for entry in subjects:
        entry["average"] = subject_average(entry["components"])
    return {
        "student": student,
        "period": period,
        "class": AssignmentStoreDB.current_main_class(student["id"]),
        "subjects": subjects,
        "overall_average": overall_average([e["average"] for e in subjects]),
    }


@server_action(roles=["admin", "teacher", "parent", "student"], schema=StudentReportForm)
def get_student_report(ctx, form: StudentReportForm):
    student = ProfileStoreDB.get(form.student_id)
    if not student or student["role"] != "student":
        raise NotFound("Student not found")
    if ctx.role == "student" and ctx.user_id != student["id"]:
        raise PermissionDenied("You can only view your own report")
    if ctx.role == "parent" and not ParentLinkStoreDB.is_parent_of(ctx.user_id, student["id"]):
        raise PermissionDenied("You can only view your own children's reports", code="not_parent")
    if ctx.role == "teacher":
        cls = AssignmentStoreDB.current_main_class(student["id"])
        if not cls or cls["homeroom_teacher_id"] != ctx.user_id:
            raise PermissionDenied("Only the homeroom teacher can view this report", code="not_homeroom_teacher")
    period = PeriodStoreDB.get(form.period_id)
    if not period:
        raise NotFound("Grade reporting period not found")
    return student_report_data(student, period)


# ── Excel template data ────────────────────────────────────


@server_action(roles=["teacher", "admin"], schema=GradeScopeForm)
def get_class_template_data(ctx, form: GradeScopeForm):
    period = PeriodStoreDB.get(form.period_id)
    if not period:
        raise NotFound("Grade reporting period not found")
    cls = ensure_teaches(ctx, form.class_id, form.subject_id)
    subject = SubjectStoreDB.get(form.subject_id)
    if not subject:
        raise NotFound("Subject not found")
    return {"period": period, "class": cls, "subject": subject, "students": AssignmentStoreDB.roster(cls["id"])}


@server_action(roles=["teacher", "admin"], schema=IndividualTemplateForm)
def get_individual_template_data(ctx, form: IndividualTemplateForm):
    period = PeriodStoreDB.get(form.period_id)
    if not period:
        raise NotFound("Grade reporting period not found")
    cls = ensure_teaches(ctx, form.class_id)
    if not AssignmentStoreDB.is_enrolled(cls["id"], form.student_id):
        raise NotFound("Student is not enrolled in this class")
    subjects = SubjectStoreDB.for_class(cls["id"]) or SubjectStoreDB.list()
    return {"period": period, "class": cls, "student": ProfileStoreDB.get(form.student_id), "subjects": subjects}
