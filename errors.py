"""
Typed action errors and database constraint classification.

Every failure an action can report is an ActionError carrying a stable
``code``, an HTTP ``status`` and a human-readable ``message``. Integrity
violations raised by the database driver are turned into typed Conflict
errors by looking the violated constraint up in CONSTRAINTS, instead of
matching on driver message text at each call site.
"""

from __future__ import annotations

import re
import sqlite3
from dataclasses import dataclass

from pg_compat import PG_CHECK_VIOLATION, PG_FOREIGN_KEY_VIOLATION, pg_error_details


class ActionError(Exception):
    code = "error"
    status = 400

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class AuthenticationRequired(ActionError):
    code = "authentication_required"
    status = 401

    def __init__(self, message: str = "Authentication required", code: str | None = None):
        super().__init__(message, code)


class PermissionDenied(ActionError):
    code = "permission_denied"
    status = 403


class InvalidInput(ActionError):
    code = "invalid_input"
    status = 400


class NotFound(ActionError):
    code = "not_found"
    status = 404


class Conflict(ActionError):
    code = "conflict"
    status = 409


class DatabaseFailure(ActionError):
    code = "database_error"
    status = 500


# ── Constraint registry ────────────────────────────────────


@dataclass(frozen=True)
class ConstraintInfo:
    table: str
    columns: tuple[str, ...]
    code: str
    message: str


CONSTRAINTS: dict[str, ConstraintInfo] = {
    "unique_student_assignment_per_year": ConstraintInfo(
        "student_class_assignments", ("student_id", "assignment_type", "academic_year_id"),
        "already_assigned", "Student is already assigned to a class of this type this academic year",
    ),
    "unique_class_name_per_year": ConstraintInfo(
        "classes", ("name", "academic_year_id"),
        "duplicate_class", "A class with this name already exists in this academic year",
    ),
    "unique_semester_number": ConstraintInfo(
        "semesters", ("academic_year_id", "semester_number"),
        "duplicate_semester", "This semester number already exists for the academic year",
    ),
    "unique_detailed_grade": ConstraintInfo(
        "student_detailed_grades", ("period_id", "student_id", "subject_id", "class_id", "component_type"),
        "duplicate_grade", "A grade for this component already exists",
    ),
    "unique_subject_assignment": ConstraintInfo(
        "subject_assignments", ("teacher_id", "subject_id", "class_id"),
        "duplicate_subject_assignment", "Teacher is already assigned to this subject in this class",
    ),
    "unique_parent_student": ConstraintInfo(
        "parent_student_relationships", ("parent_id", "student_id"),
        "duplicate_relationship", "This parent is already linked to the student",
    ),
    "unique_feedback_parent": ConstraintInfo(
        "feedback_notifications", ("student_feedback_id", "parent_id"),
        "duplicate_feedback_notification", "Feedback was already sent to this parent",
    ),
    "unique_student_event_feedback": ConstraintInfo(
        "student_feedback", ("student_id", "timetable_event_id"),
        "duplicate_feedback", "Feedback for this student and lesson already exists",
    ),
    "unique_notification_read": ConstraintInfo(
        "notification_reads", ("notification_id", "user_id"),
        "already_read", "Notification already marked as read",
    ),
    "unique_curriculum_item": ConstraintInfo(
        "curriculum_distribution", ("academic_term_id", "scope", "grade_level", "class_id", "subject_id"),
        "curriculum_item_exists", "This subject is already in the curriculum for this scope",
    ),
    "unique_student_report": ConstraintInfo(
        "student_reports", ("period_id", "student_id"),
        "duplicate_report", "A report for this student already exists in this period",
    ),
    "unique_report_notification": ConstraintInfo(
        "report_notifications", ("student_report_id", "parent_id"),
        "duplicate_report_notification", "The report was already sent to this parent",
    ),
    "unique_report_response": ConstraintInfo(
        "parent_report_responses", ("student_report_id", "parent_id"),
        "duplicate_report_response", "This parent already has a response record for the report",
    ),
    "profiles_email_key": ConstraintInfo(
        "profiles", ("email",), "duplicate_email", "An account with this email already exists",
    ),
    "profiles_student_id_key": ConstraintInfo(
        "profiles", ("student_id",), "duplicate_student_id", "This student ID is already in use",
    ),
    "academic_years_name_key": ConstraintInfo(
        "academic_years", ("name",), "duplicate_academic_year", "Academic year already exists",
    ),
    "subjects_code_key": ConstraintInfo(
        "subjects", ("code",), "duplicate_subject", "A subject with this code already exists",
    ),
    "classrooms_name_key": ConstraintInfo(
        "classrooms", ("name",), "duplicate_classroom", "A classroom with this name already exists",
    ),
}

_SQLITE_UNIQUE_RE = re.compile(r"UNIQUE constraint failed: (.+)$")


def _match_columns(table: str, columns: tuple[str, ...]) -> tuple[str, ConstraintInfo] | None:
    for name, info in CONSTRAINTS.items():
        if info.table == table and set(info.columns) == set(columns):
            return name, info
    return None


def constraint_for(exc: Exception) -> tuple[str, ConstraintInfo] | None:
    """Identify the registered constraint an integrity error refers to."""
    _, pg_constraint = pg_error_details(exc)
    if pg_constraint:
        info = CONSTRAINTS.get(pg_constraint)
        return (pg_constraint, info) if info else None

    match = _SQLITE_UNIQUE_RE.search(str(exc))
    if not match:
        return None
    qualified = [part.strip() for part in match.group(1).split(",")]
    table = qualified[0].split(".", 1)[0]
    columns = tuple(part.split(".", 1)[1] for part in qualified if "." in part)
    return _match_columns(table, columns)


def is_integrity_error(exc: Exception) -> bool:
    if isinstance(exc, sqlite3.IntegrityError):
        return True
    code, _ = pg_error_details(exc)
    return code.startswith("23")


def classify_integrity_error(exc: Exception) -> ActionError:
    """Map a driver integrity error to a typed ActionError."""
    found = constraint_for(exc)
    if found:
        _, info = found
        return Conflict(info.message, code=info.code)

    code, _ = pg_error_details(exc)
    text = str(exc)
    if code == PG_FOREIGN_KEY_VIOLATION or "FOREIGN KEY constraint failed" in text:
        return InvalidInput("Referenced record does not exist", code="invalid_reference")
    if code == PG_CHECK_VIOLATION or "CHECK constraint failed" in text:
        return InvalidInput("Value is not allowed for this field", code="check_violation")
    return Conflict(text, code="constraint_violation")
