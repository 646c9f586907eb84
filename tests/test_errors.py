"""Tests for typed errors and integrity error classification."""

from __future__ import annotations

import sqlite3
from types import SimpleNamespace

from errors import (
    CONSTRAINTS,
    AuthenticationRequired,
    Conflict,
    DatabaseFailure,
    InvalidInput,
    NotFound,
    PermissionDenied,
    classify_integrity_error,
    constraint_for,
    is_integrity_error,
)


def _pg_error(pgcode, constraint=""):
    exc = Exception("pg error")
    exc.pgcode = pgcode
    exc.diag = SimpleNamespace(constraint_name=constraint)
    return exc


class TestActionErrors:
    def test_status_codes(self):
        assert [cls("x").status for cls in (InvalidInput, AuthenticationRequired, PermissionDenied, NotFound,
                                            Conflict, DatabaseFailure)] == [400, 401, 403, 404, 409, 500]

    def test_code_override(self):
        err = PermissionDenied("nope", code="not_parent")
        assert err.code == "not_parent"
        assert PermissionDenied("nope").code == "permission_denied"

    def test_default_auth_message(self):
        assert AuthenticationRequired().message == "Authentication required"


class TestSqliteClassification:
    def test_unique_by_columns(self):
        exc = sqlite3.IntegrityError("UNIQUE constraint failed: classes.name, classes.academic_year_id")
        err = classify_integrity_error(exc)
        assert isinstance(err, Conflict)
        assert err.code == "duplicate_class"

    def test_column_order_does_not_matter(self):
        exc = sqlite3.IntegrityError("UNIQUE constraint failed: subject_assignments.class_id, "
                                     "subject_assignments.subject_id, subject_assignments.teacher_id")
        assert classify_integrity_error(exc).code == "duplicate_subject_assignment"

    def test_single_column(self):
        exc = sqlite3.IntegrityError("UNIQUE constraint failed: profiles.email")
        assert constraint_for(exc)[0] == "profiles_email_key"

    def test_unregistered_unique(self):
        exc = sqlite3.IntegrityError("UNIQUE constraint failed: schema_version.version")
        err = classify_integrity_error(exc)
        assert err.code == "constraint_violation"
        assert err.status == 409

    def test_foreign_key(self):
        err = classify_integrity_error(sqlite3.IntegrityError("FOREIGN KEY constraint failed"))
        assert (err.code, err.status) == ("invalid_reference", 400)

    def test_check(self):
        err = classify_integrity_error(sqlite3.IntegrityError("CHECK constraint failed: grade_value"))
        assert err.code == "check_violation"

    def test_real_violation(self, app, ids):
        from database import get_db
        with app.app_context():
            try:
                get_db().execute("INSERT INTO subjects (code, name_vietnamese) VALUES ('MATH', 'Toán')")
            except sqlite3.IntegrityError as e:
                err = classify_integrity_error(e)
            else:
                raise AssertionError("duplicate subject code was accepted")
        assert err.code == "duplicate_subject"


class TestPostgresClassification:
    def test_by_constraint_name(self):
        err = classify_integrity_error(_pg_error("23505", "unique_student_assignment_per_year"))
        assert err.code == "already_assigned"

    def test_unknown_constraint_name(self):
        assert constraint_for(_pg_error("23505", "some_other_key")) is None
        assert classify_integrity_error(_pg_error("23505", "some_other_key")).code == "constraint_violation"

    def test_foreign_key_code(self):
        assert classify_integrity_error(_pg_error("23503")).code == "invalid_reference"

    def test_check_code(self):
        assert classify_integrity_error(_pg_error("23514")).code == "check_violation"

    def test_is_integrity_error(self):
        assert is_integrity_error(sqlite3.IntegrityError("x"))
        assert is_integrity_error(_pg_error("23505"))
        assert not is_integrity_error(_pg_error("42P01"))
        assert not is_integrity_error(ValueError("x"))


class TestRegistry:
    def test_codes_are_unique(self):
        codes = [info.code for info in CONSTRAINTS.values()]
        assert len(codes) == len(set(codes))

    def test_every_index_is_registered(self):
        """Named unique constraints and indexes in the schema all map to a code."""
        from database import SCHEMA, MIGRATIONS
        ddl = SCHEMA + "".join(sql for _, sql in MIGRATIONS)
        for name in ("unique_student_assignment_per_year", "unique_class_name_per_year",
                     "unique_feedback_parent", "unique_curriculum_item"):
            assert name in ddl
            assert name in CONSTRAINTS
