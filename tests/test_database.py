"""Tests for database.py — schema creation, constraints and migrations."""

import sqlite3

import pytest
from database import MIGRATIONS, get_db, init_db, run_migrations


class TestSchema:
    """Verify all tables are created correctly."""

    def test_tables_exist(self, app):
        with app.app_context():
            db = get_db()
            tables = {r["name"] for r in db.execute(
                "SELECT name FROM sqlite_master WHERE type='table'"
            ).fetchall()}
            expected = {
                "schema_version", "profiles", "academic_years", "semesters", "subjects", "classrooms",
                "classes", "student_class_assignments", "subject_assignments", "parent_student_relationships",
                "grade_reporting_periods", "student_detailed_grades", "grade_overwrite_approvals",
                "timetable_events", "student_feedback", "feedback_notifications", "notifications",
                "notification_reads", "leave_applications", "curriculum_distribution", "audit_log",
                "student_reports", "report_notifications", "parent_report_responses",
            }
            assert expected <= tables

    def test_wal_mode(self, app):
        with app.app_context():
            db = get_db()
            mode = db.execute("PRAGMA journal_mode").fetchone()[0]
            assert mode == "wal"

    def test_foreign_keys_enabled(self, app):
        with app.app_context():
            db = get_db()
            fk = db.execute("PRAGMA foreign_keys").fetchone()[0]
            assert fk == 1

    def test_init_is_repeatable(self, app):
        with app.app_context():
            init_db()
            assert get_db().execute("SELECT COUNT(*) FROM subjects").fetchone()[0] == 17


class TestConstraints:
    def test_active_assignment_index_is_partial(self, app):
        with app.app_context():
            sql = get_db().execute(
                "SELECT sql FROM sqlite_master WHERE name = 'unique_student_assignment_per_year'"
            ).fetchone()[0]
        assert "WHERE is_active = 1" in sql

    def test_inactive_rows_do_not_collide(self, app, ids):
        with app.app_context():
            db = get_db()
            for _ in range(2):
                db.execute(
                    "INSERT INTO student_class_assignments (student_id, class_id, academic_year_id, "
                    "assignment_type, is_active) VALUES (?, ?, ?, 'main', 0)",
                    (ids["student3"], ids["class"], ids["year"]),
                )
            db.commit()
            count = db.execute("SELECT COUNT(*) FROM student_class_assignments WHERE student_id = ?",
                               (ids["student3"],)).fetchone()[0]
        assert count == 2

    def test_grade_range_check(self, app, ids):
        with app.app_context():
            db = get_db()
            with pytest.raises(sqlite3.IntegrityError):
                db.execute(
                    "INSERT INTO student_detailed_grades (period_id, student_id, subject_id, class_id, "
                    "component_type, grade_value) VALUES (?, ?, ?, ?, 'midterm', 11)",
                    (ids["period"], ids["student"], ids["math"], ids["class"]),
                )

    def test_foreign_key_enforced(self, app, ids):
        with app.app_context():
            db = get_db()
            with pytest.raises(sqlite3.IntegrityError):
                db.execute("INSERT INTO parent_student_relationships (parent_id, student_id) VALUES (?, 9999)",
                           (ids["parent"],))

    def test_profile_role_check(self, app):
        with app.app_context():
            with pytest.raises(sqlite3.IntegrityError):
                get_db().execute("INSERT INTO profiles (email, full_name, role) VALUES ('x@y.z', 'X', 'janitor')")


class TestMigrations:
    def test_versions_recorded(self, app):
        with app.app_context():
            versions = [r["version"] for r in get_db().execute(
                "SELECT version FROM schema_version ORDER BY version"
            ).fetchall()]
        assert versions == [v for v, _ in MIGRATIONS]

    def test_rerun_is_noop(self, app):
        with app.app_context():
            run_migrations()
            count = get_db().execute("SELECT COUNT(*) FROM schema_version").fetchone()[0]
        assert count == len(MIGRATIONS)

    def test_phone_column_added(self, app):
        with app.app_context():
            columns = {r["name"] for r in get_db().execute("PRAGMA table_info(profiles)").fetchall()}
        assert "phone" in columns
