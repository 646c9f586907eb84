"""Academic years, semesters and grade reporting periods."""

from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta

from actions.base import server_action
from audit import log_event
from db_stores import AcademicStoreDB, PeriodStoreDB
from errors import Conflict, InvalidInput, NotFound, PermissionDenied
from schemas import (
    AcademicYearForm,
    IdForm,
    PeriodIdForm,
    PeriodPermissionForm,
    ReportingPeriodFilter,
    ReportingPeriodForm,
    SemesterFilter,
    SemesterForm,
    UpdateAcademicYearForm,
    UpdateReportingPeriodForm,
    UpdateSemesterForm,
)

ACADEMIC_PATH = "/dashboard/admin/academic"
GRADE_MANAGEMENT_PATH = "/dashboard/admin/grade-management"

FIRST_SEMESTER_MONTHS = 4
FIRST_SEMESTER_WEEKS = 18
SECOND_SEMESTER_WEEKS = 17


def _add_months(d: date, months: int) -> date:
    month_index = d.month - 1 + months
    year = d.year + month_index // 12
    month = month_index % 12 + 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def _naive(dt: datetime) -> datetime:
    return dt.astimezone().replace(tzinfo=None) if dt.tzinfo else dt


def default_semesters(start: date, end: date, is_current: bool) -> list[dict]:
    """Two semesters splitting the year after roughly four months."""
    first_end = _add_months(start, FIRST_SEMESTER_MONTHS)
    second_start = first_end + timedelta(days=1)
    if second_start >= end:
        raise InvalidInput("Academic year is too short to split into two semesters")
    return [
        {
            "name": "Học kỳ 1",
            "semester_number": 1,
            "start_date": start.isoformat(),
            "end_date": first_end.isoformat(),
            "weeks_count": FIRST_SEMESTER_WEEKS,
            "is_current": is_current,
        },
        {
            "name": "Học kỳ 2",
            "semester_number": 2,
            "start_date": second_start.isoformat(),
            "end_date": end.isoformat(),
            "weeks_count": SECOND_SEMESTER_WEEKS,
            "is_current": False,
        },
    ]


# ── Academic years ─────────────────────────────────────────


@server_action(roles=["admin"], schema=AcademicYearForm, revalidate=[ACADEMIC_PATH], status=201)
def create_academic_year(ctx, form: AcademicYearForm):
    if AcademicStoreDB.year_by_name(form.name):
        raise Conflict("Academic year already exists", code="duplicate_academic_year")

    semesters = default_semesters(form.start_date, form.end_date, form.is_current)
    if form.is_current:
        AcademicStoreDB.clear_current()
    year_id = AcademicStoreDB.create_year(
        form.name, form.start_date.isoformat(), form.end_date.isoformat(), form.is_current, semesters,
    )
    log_event("academic_year_create", ctx.user_id, f"year={year_id} name={form.name}")
    return {
        "academic_year": AcademicStoreDB.get_year(year_id),
        "semesters": AcademicStoreDB.list_semesters(year_id),
    }


@server_action(roles=["admin", "teacher", "parent", "student"])
def list_academic_years(ctx, form):
    return AcademicStoreDB.list_years()


@server_action(roles=["admin"], schema=UpdateAcademicYearForm, revalidate=[ACADEMIC_PATH])
def update_academic_year(ctx, form: UpdateAcademicYearForm):
    year = AcademicStoreDB.get_year(form.id)
    if not year:
        raise NotFound("Academic year not found")
    if form.name != year["name"] and AcademicStoreDB.year_by_name(form.name):
        raise Conflict("Academic year name already exists", code="duplicate_academic_year")

    if form.is_current:
        AcademicStoreDB.clear_current(keep_year_id=form.id)
    AcademicStoreDB.update_year(
        form.id, form.name, form.start_date.isoformat(), form.end_date.isoformat(), form.is_current,
    )
    log_event("academic_year_update", ctx.user_id, f"year={form.id}")
    return AcademicStoreDB.get_year(form.id)


@server_action(roles=["admin"], schema=IdForm, revalidate=[ACADEMIC_PATH])
def delete_academic_year(ctx, form: IdForm):
    if not AcademicStoreDB.get_year(form.id):
        raise NotFound("Academic year not found")
    if AcademicStoreDB.year_in_use(form.id):
        raise Conflict("Academic year has classes and cannot be deleted", code="year_in_use")
    AcademicStoreDB.delete_year(form.id)
    log_event("academic_year_delete", ctx.user_id, f"year={form.id}")
    return {"id": form.id}


# ── Semesters ──────────────────────────────────────────────


def _check_semester_dates(form: SemesterForm) -> None:
    year = AcademicStoreDB.get_year(form.academic_year_id)
    if not year:
        raise NotFound("Academic year not found")
    if form.start_date.isoformat() < year["start_date"] or form.end_date.isoformat() > year["end_date"]:
        raise InvalidInput("Semester dates must fall within the academic year")


@server_action(roles=["admin"], schema=SemesterForm, revalidate=[ACADEMIC_PATH], status=201)
def create_semester(ctx, form: SemesterForm):
    _check_semester_dates(form)
    if form.is_current:
        AcademicStoreDB.clear_current(include_years=False)
    semester_id = AcademicStoreDB.create_semester(
        form.academic_year_id, form.name, form.semester_number,
        form.start_date.isoformat(), form.end_date.isoformat(), form.weeks_count, form.is_current,
    )
    return AcademicStoreDB.get_semester(semester_id)


@server_action(roles=["admin"], schema=UpdateSemesterForm, revalidate=[ACADEMIC_PATH])
def update_semester(ctx, form: UpdateSemesterForm):
    if not AcademicStoreDB.get_semester(form.id):
        raise NotFound("Semester not found")
    _check_semester_dates(form)

    if form.is_current:
        AcademicStoreDB.clear_current(include_years=False)
    AcademicStoreDB.update_semester(
        form.id, form.academic_year_id, form.name, form.semester_number,
        form.start_date.isoformat(), form.end_date.isoformat(), form.weeks_count, form.is_current,
    )
    log_event("semester_update", ctx.user_id, f"semester={form.id}")
    return AcademicStoreDB.get_semester(form.id)


@server_action(roles=["admin"], schema=IdForm, revalidate=[ACADEMIC_PATH])
def delete_semester(ctx, form: IdForm):
    if not AcademicStoreDB.get_semester(form.id):
        raise NotFound("Semester not found")
    usage = {label: n for label, n in AcademicStoreDB.semester_usage(form.id).items() if n}
    if usage:
        raise Conflict(
            "Semester is still used by " + ", ".join(f"{n} {label}" for label, n in usage.items()),
            code="semester_in_use",
        )
    AcademicStoreDB.delete_semester(form.id)
    log_event("semester_delete", ctx.user_id, f"semester={form.id}")
    return {"id": form.id}


@server_action(roles=["admin", "teacher", "parent", "student"], schema=SemesterFilter)
def list_semesters(ctx, form: SemesterFilter):
    return AcademicStoreDB.list_semesters(form.academic_year_id)


# ── Grade reporting periods ────────────────────────────────


def ensure_period_open(period: dict, operation: str, now: datetime | None = None) -> None:
    """Raise unless ``operation`` (import|edit) is still allowed for the period."""
    if not period or not period["is_active"]:
        raise NotFound("Grade reporting period not found")
    deadline = period["import_deadline"] if operation == "import" else period["edit_deadline"]
    now = now or datetime.now()
    if now > datetime.fromisoformat(deadline):
        label = "import" if operation == "import" else "edit"
        raise PermissionDenied(
            f"The {label} deadline for this period has passed ({deadline})", code="deadline_passed",
        )


@server_action(roles=["admin"], schema=ReportingPeriodForm, revalidate=[GRADE_MANAGEMENT_PATH], status=201)
def create_grade_reporting_period(ctx, form: ReportingPeriodForm):
    semester = AcademicStoreDB.get_semester(form.semester_id)
    if not semester or semester["academic_year_id"] != form.academic_year_id:
        raise InvalidInput("Semester does not belong to the academic year")

    overlap = PeriodStoreDB.overlapping(
        form.academic_year_id, form.semester_id, form.start_date.isoformat(), form.end_date.isoformat(),
    )
    if overlap:
        raise Conflict(
            f"Reporting period overlaps with '{overlap[0]['name']}' in the same semester",
            code="period_overlap",
        )

    period_id = PeriodStoreDB.create(
        form.name, form.academic_year_id, form.semester_id,
        form.start_date.isoformat(), form.end_date.isoformat(),
        _naive(form.import_deadline).isoformat(), _naive(form.edit_deadline).isoformat(), ctx.user_id,
    )
    log_event("grade_period_create", ctx.user_id, f"period={period_id}")
    return PeriodStoreDB.get(period_id)


@server_action(roles=["admin", "teacher"], schema=ReportingPeriodFilter)
def list_grade_reporting_periods(ctx, form: ReportingPeriodFilter):
    return PeriodStoreDB.list(form.academic_year_id, form.semester_id, form.is_active)


@server_action(roles=["admin", "teacher"], schema=PeriodPermissionForm)
def check_period_permissions(ctx, form: PeriodPermissionForm):
    period = PeriodStoreDB.get(form.period_id)
    ensure_period_open(period, form.operation)
    return period


@server_action(roles=["admin"], schema=UpdateReportingPeriodForm, revalidate=[GRADE_MANAGEMENT_PATH])
def update_grade_reporting_period(ctx, form: UpdateReportingPeriodForm):
    period = PeriodStoreDB.get(form.period_id)
    if not period or not period["is_active"]:
        raise NotFound("Grade reporting period not found")
    semester = AcademicStoreDB.get_semester(form.semester_id)
    if not semester or semester["academic_year_id"] != form.academic_year_id:
        raise InvalidInput("Semester does not belong to the academic year")

    edit_deadline = _naive(form.edit_deadline)
    if edit_deadline < datetime.fromisoformat(period["edit_deadline"]) and PeriodStoreDB.has_grades(form.period_id):
        raise Conflict("The edit deadline cannot be brought forward once grades have been entered",
                       code="deadline_shortened")

    overlap = PeriodStoreDB.overlapping(
        form.academic_year_id, form.semester_id, form.start_date.isoformat(), form.end_date.isoformat(),
        exclude_id=form.period_id,
    )
    if overlap:
        raise Conflict(
            f"Reporting period overlaps with '{overlap[0]['name']}' in the same semester",
            code="period_overlap",
        )

    PeriodStoreDB.update(
        form.period_id, form.name, form.academic_year_id, form.semester_id,
        form.start_date.isoformat(), form.end_date.isoformat(),
        _naive(form.import_deadline).isoformat(), edit_deadline.isoformat(),
    )
    log_event("grade_period_update", ctx.user_id, f"period={form.period_id}")
    return PeriodStoreDB.get(form.period_id)


@server_action(roles=["admin"], schema=PeriodIdForm, revalidate=[GRADE_MANAGEMENT_PATH])
def delete_grade_reporting_period(ctx, form: PeriodIdForm):
    """Deactivate a period. Periods that already hold grades are kept."""
    period = PeriodStoreDB.get(form.period_id)
    if not period or not period["is_active"]:
        raise NotFound("Grade reporting period not found")
    if PeriodStoreDB.has_grades(form.period_id):
        raise Conflict("This period already has grades and cannot be deleted", code="period_has_grades")
    PeriodStoreDB.deactivate(form.period_id)
    log_event("grade_period_delete", ctx.user_id, f"period={form.period_id}")
    return {"id": form.period_id, "is_active": False}
