"""Pydantic payload models for every server action."""

from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

Role = Literal["admin", "teacher", "parent", "student"]
AssignmentType = Literal["main", "combined"]
ComponentType = Literal["regular_1", "regular_2", "regular_3", "regular_4", "midterm", "final", "summary"]
LeaveType = Literal["sick", "family", "emergency", "vacation", "other"]

STUDENT_ID_PATTERN = r"^[A-Za-z0-9]{3,20}$"
TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"

GradeValue = float | None


def _normalise_email(value: str) -> str:
    value = value.strip().lower()
    if "@" not in value:
        raise ValueError("Invalid email address")
    return value


def _one_decimal(value: float | None) -> float | None:
    if value is not None and round(value, 1) != value:
        raise ValueError("Grade must have at most one decimal place")
    return value


class Page(BaseModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)


class IdForm(BaseModel):
    id: int


# ── Users ──────────────────────────────────────────────────


class CreateUserForm(BaseModel):
    email: str = Field(min_length=5, max_length=255)
    full_name: str = Field(min_length=2, max_length=100)
    role: Role
    password: str = Field(min_length=8)
    student_id: str | None = Field(default=None, pattern=STUDENT_ID_PATTERN)
    phone: str = Field(default="", max_length=20)
    homeroom_enabled: bool = False

    @field_validator("email")
    @classmethod
    def check_normalise_email(cls, v: str) -> str:
        return _normalise_email(v)

    @model_validator(mode="after")
    def check_student_needs_id(self):
        if self.role == "student" and not self.student_id:
            raise ValueError("Students must have a student ID")
        if self.role != "student" and self.student_id:
            raise ValueError("Only students can have a student ID")
        if self.homeroom_enabled and self.role != "teacher":
            raise ValueError("Only teachers can be homeroom teachers")
        return self


class UpdateTeacherForm(BaseModel):
    teacher_id: int
    email: str | None = Field(default=None, min_length=5, max_length=255)
    full_name: str | None = Field(default=None, min_length=2, max_length=100)
    phone: str | None = Field(default=None, max_length=20)
    homeroom_enabled: bool | None = None

    @field_validator("email")
    @classmethod
    def check_normalise_email(cls, v: str | None) -> str | None:
        return _normalise_email(v) if v is not None else None


class TeacherIdForm(BaseModel):
    teacher_id: int


class StudentIdForm(BaseModel):
    student_id: int


class NewStudent(BaseModel):
    email: str = Field(min_length=5, max_length=255)
    full_name: str = Field(min_length=2, max_length=100)
    student_id: str = Field(pattern=STUDENT_ID_PATTERN)
    phone: str = Field(default="", max_length=20)

    @field_validator("email")
    @classmethod
    def check_normalise_email(cls, v: str) -> str:
        return _normalise_email(v)


class NewParent(BaseModel):
    email: str = Field(min_length=5, max_length=255)
    full_name: str = Field(min_length=2, max_length=100)
    phone: str = Field(default="", max_length=20)
    relationship: Literal["father", "mother", "guardian", "parent"] = "parent"
    is_primary_contact: bool = True

    @field_validator("email")
    @classmethod
    def check_normalise_email(cls, v: str) -> str:
        return _normalise_email(v)


class StudentParentForm(BaseModel):
    student: NewStudent
    parent: NewParent
    password: str = Field(min_length=8)

    @model_validator(mode="after")
    def check_distinct_emails(self):
        if self.student.email == self.parent.email:
            raise ValueError("Student and parent need different email addresses")
        return self


class UserFilter(Page):
    role: Role | None = None
    search: str | None = None


class HomeroomToggleForm(BaseModel):
    teacher_id: int
    enabled: bool


# ── Academic structure ─────────────────────────────────────


class AcademicYearForm(BaseModel):
    name: str = Field(min_length=4, max_length=50)
    start_date: date
    end_date: date
    is_current: bool = False

    @model_validator(mode="after")
    def check_ordered(self):
        if self.end_date <= self.start_date:
            raise ValueError("End date must be after start date")
        return self


class UpdateAcademicYearForm(AcademicYearForm):
    id: int


class SemesterForm(BaseModel):
    academic_year_id: int
    name: str = Field(min_length=1, max_length=50)
    semester_number: int = Field(ge=1, le=3)
    start_date: date
    end_date: date
    weeks_count: int = Field(default=18, ge=1, le=30)
    is_current: bool = False

    @model_validator(mode="after")
    def check_ordered(self):
        if self.end_date <= self.start_date:
            raise ValueError("End date must be after start date")
        return self


class UpdateSemesterForm(SemesterForm):
    id: int


class SemesterFilter(BaseModel):
    academic_year_id: int | None = None


class ReportingPeriodForm(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    academic_year_id: int
    semester_id: int
    start_date: date
    end_date: date
    import_deadline: datetime
    edit_deadline: datetime

    @model_validator(mode="after")
    def check_ordered(self):
        if self.end_date < self.start_date:
            raise ValueError("End date must not be before start date")
        if self.edit_deadline < self.import_deadline:
            raise ValueError("Edit deadline must not be before import deadline")
        return self


class UpdateReportingPeriodForm(ReportingPeriodForm):
    period_id: int


class PeriodIdForm(BaseModel):
    period_id: int


class ReportingPeriodFilter(BaseModel):
    academic_year_id: int | None = None
    semester_id: int | None = None
    is_active: bool | None = None


class PeriodPermissionForm(BaseModel):
    period_id: int
    operation: Literal["import", "edit"]


# ── Classes ────────────────────────────────────────────────


class ClassForm(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    academic_year_id: int
    semester_id: int | None = None
    grade_level: int = Field(default=10, ge=1, le=12)
    is_subject_combination: bool = False
    subject_combination_type: str = ""
    homeroom_teacher_id: int | None = None
    max_students: int = Field(default=40, ge=1, le=100)
    description: str = Field(default="", max_length=500)

    @model_validator(mode="after")
    def check_combination_type(self):
        if self.is_subject_combination and not self.subject_combination_type:
            raise ValueError("Subject combination classes need a combination type")
        return self


class UpdateClassForm(ClassForm):
    class_id: int


class ClassFilter(BaseModel):
    academic_year_id: int | None = None
    semester_id: int | None = None
    grade_level: int | None = None
    is_subject_combination: bool | None = None
    search: str | None = None


class StudentAssignmentForm(BaseModel):
    student_id: int
    class_id: int
    assignment_type: AssignmentType


class AssignmentIdForm(BaseModel):
    assignment_id: int


class BulkAssignmentForm(BaseModel):
    class_id: int
    student_ids: list[int] = Field(min_length=1)
    assignment_type: AssignmentType


class AvailableStudentsForm(BaseModel):
    class_id: int
    search: str | None = None


class AssignmentFilter(Page):
    class_id: int | None = None
    academic_year_id: int | None = None
    assignment_type: AssignmentType | None = None
    is_active: bool | None = True
    search: str | None = None


class SubjectTeacherForm(BaseModel):
    teacher_id: int
    subject_id: int
    class_id: int


class TeacherAssignmentFilter(BaseModel):
    teacher_id: int | None = None
    class_id: int | None = None


class ClassIdForm(BaseModel):
    class_id: int


# ── Grades ─────────────────────────────────────────────────


class GradeImportRow(BaseModel):
    student_id: str = Field(pattern=STUDENT_ID_PATTERN)
    full_name: str = ""
    regular_1: GradeValue = Field(default=None, ge=0, le=10)
    regular_2: GradeValue = Field(default=None, ge=0, le=10)
    regular_3: GradeValue = Field(default=None, ge=0, le=10)
    regular_4: GradeValue = Field(default=None, ge=0, le=10)
    midterm: GradeValue = Field(default=None, ge=0, le=10)
    final: GradeValue = Field(default=None, ge=0, le=10)
    summary: GradeValue = Field(default=None, ge=0, le=10)
    notes: str = Field(default="", max_length=500)

    @field_validator("regular_1", "regular_2", "regular_3", "regular_4", "midterm", "final", "summary")
    @classmethod
    def check_decimals(cls, v: float | None) -> float | None:
        return _one_decimal(v)


class GradeImportForm(BaseModel):
    period_id: int
    class_id: int
    subject_id: int
    rows: list[GradeImportRow] = Field(min_length=1)


class GradeScopeForm(BaseModel):
    period_id: int
    class_id: int
    subject_id: int


class DetailedGradeFilter(BaseModel):
    period_id: int | None = None
    class_id: int | None = None
    subject_id: int | None = None
    student_id: int | None = None
    component_type: ComponentType | None = None


class GradeOverwriteSubmitForm(BaseModel):
    grade_id: int
    new_value: float = Field(ge=0, le=10)
    reason: str = Field(default="", max_length=500)

    @field_validator("new_value")
    @classmethod
    def check_decimals(cls, v: float) -> float:
        return _one_decimal(v)


class IndividualGradeEntry(BaseModel):
    subject_name: str
    midterm: GradeValue = Field(default=None, ge=0, le=10)
    final: GradeValue = Field(default=None, ge=0, le=10)
    notes: str = ""


class IndividualImportForm(BaseModel):
    period_id: int
    class_id: int
    student_id: int
    grades: list[IndividualGradeEntry]


class IndividualTemplateForm(BaseModel):
    period_id: int
    class_id: int
    student_id: int


class ClassSummaryForm(BaseModel):
    period_id: int
    class_id: int


class StudentReportForm(BaseModel):
    student_id: int
    period_id: int


class OverwriteFilter(BaseModel):
    status: Literal["pending", "approved", "rejected"] | None = None


class ApproveOverwriteForm(BaseModel):
    request_id: int
    admin_note: str = Field(default="", max_length=500)


class RejectOverwriteForm(BaseModel):
    request_id: int
    admin_reason: str = Field(min_length=1, max_length=500)

    @field_validator("admin_reason")
    @classmethod
    def check_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("A rejection reason is required")
        return v.strip()


# ── Feedback ───────────────────────────────────────────────


class FeedbackForm(BaseModel):
    student_id: int
    timetable_event_id: int
    feedback_text: str = Field(min_length=1, max_length=2000)
    rating: int | None = Field(default=None, ge=1, le=5)
    feedback_type: Literal["individual", "group", "class"] = "individual"


class DailyFeedbackForm(BaseModel):
    student_id: int
    day_of_week: int = Field(ge=0, le=6)
    academic_year_id: int
    semester_id: int
    week_number: int = Field(ge=1, le=52)


class FeedbackIdsForm(BaseModel):
    feedback_ids: list[int] = Field(min_length=1)


class ParentFeedbackFilter(Page):
    student_id: int | None = None
    unread_only: bool = False


class FeedbackNotificationIdForm(BaseModel):
    notification_id: int


# ── Student reports ────────────────────────────────────────


class ReportStudentsForm(BaseModel):
    period_id: int


class StudentReportSaveForm(BaseModel):
    period_id: int
    student_id: int
    strengths: str = Field(min_length=1, max_length=2000)
    weaknesses: str = Field(min_length=1, max_length=2000)

    @field_validator("strengths", "weaknesses")
    @classmethod
    def check_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("This field is required")
        return v.strip()


class ReportIdForm(BaseModel):
    report_id: int


class ParentResponseForm(BaseModel):
    report_id: int
    agreement_status: Literal["agree", "disagree"]
    comments: str = Field(default="", max_length=2000)


class ReportNotificationIdForm(BaseModel):
    notification_id: int


# ── Notifications ──────────────────────────────────────────


class NotificationForm(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    content: str = Field(min_length=1, max_length=5000)
    target_roles: list[Role] = Field(min_length=1)
    target_classes: list[int] = Field(default_factory=list)


class NotificationIdForm(BaseModel):
    notification_id: int


# ── Leave applications ─────────────────────────────────────


class LeaveApplicationForm(BaseModel):
    student_id: int
    leave_type: LeaveType
    reason: str = Field(min_length=5, max_length=1000)
    start_date: date
    end_date: date

    @model_validator(mode="after")
    def check_ordered(self):
        if self.end_date < self.start_date:
            raise ValueError("End date must not be before start date")
        return self


class LeaveFilter(BaseModel):
    status: Literal["pending", "approved", "rejected"] | None = None


class LeaveResponseForm(BaseModel):
    application_id: int
    status: Literal["approved", "rejected"]
    teacher_response: str = Field(default="", max_length=1000)


# ── Timetable ──────────────────────────────────────────────


class TimetableEventForm(BaseModel):
    class_id: int
    subject_id: int
    teacher_id: int
    classroom_id: int | None = None
    semester_id: int
    day_of_week: int = Field(ge=0, le=6)
    start_time: str = Field(pattern=TIME_PATTERN)
    end_time: str = Field(pattern=TIME_PATTERN)
    week_number: int = Field(ge=1, le=52)
    notes: str = Field(default="", max_length=500)

    @model_validator(mode="after")
    def check_ordered(self):
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        return self


class TimetableUpdateForm(TimetableEventForm):
    event_id: int


class ClassroomForm(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    building: str = Field(default="", max_length=100)
    capacity: int = Field(default=40, ge=1, le=500)


class TimetableEventIdForm(BaseModel):
    event_id: int


class TimetableFilter(BaseModel):
    class_id: int | None = None
    teacher_id: int | None = None
    semester_id: int | None = None
    week_number: int | None = Field(default=None, ge=1, le=52)
    day_of_week: int | None = Field(default=None, ge=0, le=6)


# ── Subjects & curriculum ──────────────────────────────────


class SubjectForm(BaseModel):
    code: str = Field(pattern=r"^[A-Z0-9_]{2,10}$")
    name_vietnamese: str = Field(min_length=1, max_length=100)
    name_english: str = Field(default="", max_length=100)
    category: Literal["mandatory", "elective"] = "mandatory"


class CurriculumQuery(BaseModel):
    academic_term_id: int
    scope: Literal["school", "grade", "class", "all"] = "all"
    grade_level: int | None = None
    class_id: int | None = None


class CurriculumActionForm(BaseModel):
    action: Literal["initialize_default", "apply_to_school", "apply_to_grade", "apply_to_class", "create"] = "create"
    academic_term_id: int
    grade_level: int | None = Field(default=None, ge=1, le=12)
    class_id: int | None = None
    subject_id: int | None = None
    subject_type: Literal["mandatory", "elective"] | None = None
    weekly_periods: int = Field(default=0, ge=0, le=20)
    credits: int = Field(default=0, ge=0, le=20)

    @model_validator(mode="after")
    def check_scope_fields(self):
        if self.action == "apply_to_grade" and self.grade_level is None:
            raise ValueError("grade_level is required for apply_to_grade")
        if self.action == "apply_to_class" and self.class_id is None:
            raise ValueError("class_id is required for apply_to_class")
        if self.action == "create" and (self.subject_id is None or self.subject_type is None):
            raise ValueError("subject_id and subject_type are required")
        return self


# ── Parents ────────────────────────────────────────────────


class ParentLinkForm(BaseModel):
    parent_id: int
    student_id: int
    relationship: Literal["father", "mother", "guardian", "parent"] = "parent"
    is_primary_contact: bool = False


class ChildGradesForm(BaseModel):
    student_id: int
    period_id: int | None = None
