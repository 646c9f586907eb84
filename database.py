"""
SQLite database layer for EduConnect.

Uses raw sqlite3 with WAL mode and parameterized queries, or PostgreSQL
through pg_compat when DATABASE is a postgresql:// URL.
A schema_version table handles migrations.
"""

from __future__ import annotations

import fcntl
import sqlite3
from datetime import datetime
from pathlib import Path

from flask import current_app, g


SCHEMA = """
-- Migration tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER NOT NULL,
    applied_at TEXT NOT NULL
);

-- Users (admin, teacher, parent, student)
CREATE TABLE IF NOT EXISTS profiles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    email TEXT NOT NULL UNIQUE,
    full_name TEXT NOT NULL,
    role TEXT NOT NULL CHECK (role IN ('admin', 'teacher', 'parent', 'student')),
    student_id TEXT UNIQUE,
    homeroom_enabled INTEGER NOT NULL DEFAULT 0,
    password_hash TEXT NOT NULL DEFAULT '',
    login_attempts INTEGER NOT NULL DEFAULT 0,
    locked_until TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL DEFAULT ''
);
CREATE INDEX IF NOT EXISTS idx_profiles_role ON profiles(role);

-- Academic calendar
CREATE TABLE IF NOT EXISTS academic_years (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    start_date TEXT NOT NULL,
    end_date TEXT NOT NULL,
    is_current INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS semesters (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    academic_year_id INTEGER NOT NULL REFERENCES academic_years(id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    semester_number INTEGER NOT NULL,
    start_date TEXT NOT NULL,
    end_date TEXT NOT NULL,
    weeks_count INTEGER NOT NULL DEFAULT 18,
    is_current INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL DEFAULT '',
    CONSTRAINT unique_semester_number UNIQUE (academic_year_id, semester_number)
);

CREATE TABLE IF NOT EXISTS subjects (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    code TEXT NOT NULL UNIQUE,
    name_vietnamese TEXT NOT NULL,
    name_english TEXT NOT NULL DEFAULT '',
    category TEXT NOT NULL DEFAULT 'mandatory' CHECK (category IN ('mandatory', 'elective')),
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS classrooms (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    building TEXT NOT NULL DEFAULT '',
    capacity INTEGER NOT NULL DEFAULT 40,
    is_active INTEGER NOT NULL DEFAULT 1
);

-- Classes and student placement
CREATE TABLE IF NOT EXISTS classes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    academic_year_id INTEGER NOT NULL REFERENCES academic_years(id),
    semester_id INTEGER REFERENCES semesters(id),
    grade_level INTEGER NOT NULL DEFAULT 10,
    is_subject_combination INTEGER NOT NULL DEFAULT 0,
    subject_combination_type TEXT NOT NULL DEFAULT '',
    homeroom_teacher_id INTEGER REFERENCES profiles(id),
    max_students INTEGER NOT NULL DEFAULT 40,
    description TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL DEFAULT '',
    CONSTRAINT unique_class_name_per_year UNIQUE (name, academic_year_id)
);

CREATE TABLE IF NOT EXISTS student_class_assignments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    student_id INTEGER NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
    class_id INTEGER NOT NULL REFERENCES classes(id) ON DELETE CASCADE,
    academic_year_id INTEGER NOT NULL REFERENCES academic_years(id),
    assignment_type TEXT NOT NULL CHECK (assignment_type IN ('main', 'combined')),
    is_active INTEGER NOT NULL DEFAULT 1,
    assigned_by INTEGER REFERENCES profiles(id),
    assigned_at TEXT NOT NULL DEFAULT '',
    removed_at TEXT NOT NULL DEFAULT ''
);
CREATE UNIQUE INDEX IF NOT EXISTS unique_student_assignment_per_year
    ON student_class_assignments(student_id, assignment_type, academic_year_id)
    WHERE is_active = 1;
CREATE INDEX IF NOT EXISTS idx_sca_class ON student_class_assignments(class_id, is_active);

CREATE TABLE IF NOT EXISTS subject_assignments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    teacher_id INTEGER NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
    subject_id INTEGER NOT NULL REFERENCES subjects(id),
    class_id INTEGER NOT NULL REFERENCES classes(id) ON DELETE CASCADE,
    created_at TEXT NOT NULL DEFAULT '',
    CONSTRAINT unique_subject_assignment UNIQUE (teacher_id, subject_id, class_id)
);

CREATE TABLE IF NOT EXISTS parent_student_relationships (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    parent_id INTEGER NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
    student_id INTEGER NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
    relationship TEXT NOT NULL DEFAULT 'parent',
    is_primary_contact INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL DEFAULT '',
    CONSTRAINT unique_parent_student UNIQUE (parent_id, student_id)
);

-- Grades
CREATE TABLE IF NOT EXISTS grade_reporting_periods (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    academic_year_id INTEGER NOT NULL REFERENCES academic_years(id),
    semester_id INTEGER NOT NULL REFERENCES semesters(id),
    start_date TEXT NOT NULL,
    end_date TEXT NOT NULL,
    import_deadline TEXT NOT NULL,
    edit_deadline TEXT NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_by INTEGER REFERENCES profiles(id),
    created_at TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS student_detailed_grades (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    period_id INTEGER NOT NULL REFERENCES grade_reporting_periods(id) ON DELETE CASCADE,
    student_id INTEGER NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
    subject_id INTEGER NOT NULL REFERENCES subjects(id),
    class_id INTEGER NOT NULL REFERENCES classes(id) ON DELETE CASCADE,
    component_type TEXT NOT NULL CHECK (component_type IN (
        'regular_1', 'regular_2', 'regular_3', 'regular_4', 'midterm', 'final', 'summary'
    )),
    grade_value REAL CHECK (grade_value IS NULL OR grade_value BETWEEN 0 AND 10),
    notes TEXT NOT NULL DEFAULT '',
    created_by INTEGER REFERENCES profiles(id),
    created_at TEXT NOT NULL DEFAULT '',
    updated_at TEXT NOT NULL DEFAULT '',
    CONSTRAINT unique_detailed_grade UNIQUE (period_id, student_id, subject_id, class_id, component_type)
);
CREATE INDEX IF NOT EXISTS idx_grades_lookup ON student_detailed_grades(period_id, class_id, subject_id);

CREATE TABLE IF NOT EXISTS grade_overwrite_approvals (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    grade_id INTEGER NOT NULL REFERENCES student_detailed_grades(id) ON DELETE CASCADE,
    requested_by INTEGER NOT NULL REFERENCES profiles(id),
    old_value REAL,
    new_value REAL,
    reason TEXT NOT NULL DEFAULT '',
    status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ('pending', 'approved', 'rejected')),
    admin_reason TEXT NOT NULL DEFAULT '',
    processed_by INTEGER REFERENCES profiles(id),
    processed_at TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL DEFAULT ''
);
CREATE INDEX IF NOT EXISTS idx_overwrite_status ON grade_overwrite_approvals(status);

-- Timetable
CREATE TABLE IF NOT EXISTS timetable_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    class_id INTEGER NOT NULL REFERENCES classes(id) ON DELETE CASCADE,
    subject_id INTEGER NOT NULL REFERENCES subjects(id),
    teacher_id INTEGER NOT NULL REFERENCES profiles(id),
    classroom_id INTEGER REFERENCES classrooms(id),
    semester_id INTEGER NOT NULL REFERENCES semesters(id),
    day_of_week INTEGER NOT NULL CHECK (day_of_week BETWEEN 0 AND 6),
    start_time TEXT NOT NULL,
    end_time TEXT NOT NULL,
    week_number INTEGER NOT NULL CHECK (week_number BETWEEN 1 AND 52),
    notes TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL DEFAULT ''
);
CREATE INDEX IF NOT EXISTS idx_timetable_slot ON timetable_events(semester_id, week_number, day_of_week, start_time);

-- Lesson feedback and parent fan-out
CREATE TABLE IF NOT EXISTS student_feedback (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    student_id INTEGER NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
    timetable_event_id INTEGER NOT NULL REFERENCES timetable_events(id) ON DELETE CASCADE,
    teacher_id INTEGER NOT NULL REFERENCES profiles(id),
    class_id INTEGER NOT NULL REFERENCES classes(id),
    subject_id INTEGER NOT NULL REFERENCES subjects(id),
    feedback_text TEXT NOT NULL,
    rating INTEGER,
    feedback_type TEXT NOT NULL DEFAULT 'individual',
    created_at TEXT NOT NULL DEFAULT '',
    updated_at TEXT NOT NULL DEFAULT '',
    CONSTRAINT unique_student_event_feedback UNIQUE (student_id, timetable_event_id)
);

CREATE TABLE IF NOT EXISTS feedback_notifications (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    student_feedback_id INTEGER NOT NULL REFERENCES student_feedback(id) ON DELETE CASCADE,
    parent_id INTEGER NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
    student_id INTEGER NOT NULL REFERENCES profiles(id),
    teacher_id INTEGER NOT NULL REFERENCES profiles(id),
    sent_at TEXT NOT NULL DEFAULT '',
    is_read INTEGER NOT NULL DEFAULT 0,
    read_at TEXT NOT NULL DEFAULT '',
    CONSTRAINT unique_feedback_parent UNIQUE (student_feedback_id, parent_id)
);

-- Announcements
CREATE TABLE IF NOT EXISTS notifications (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    content TEXT NOT NULL,
    sender_id INTEGER NOT NULL REFERENCES profiles(id),
    target_roles TEXT NOT NULL DEFAULT '[]',
    target_classes TEXT NOT NULL DEFAULT '[]',
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS notification_reads (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    notification_id INTEGER NOT NULL REFERENCES notifications(id) ON DELETE CASCADE,
    user_id INTEGER NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
    read_at TEXT NOT NULL DEFAULT '',
    CONSTRAINT unique_notification_read UNIQUE (notification_id, user_id)
);

-- Leave applications
CREATE TABLE IF NOT EXISTS leave_applications (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    student_id INTEGER NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
    parent_id INTEGER NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
    class_id INTEGER NOT NULL REFERENCES classes(id),
    homeroom_teacher_id INTEGER REFERENCES profiles(id),
    leave_type TEXT NOT NULL CHECK (leave_type IN ('sick', 'family', 'emergency', 'vacation', 'other')),
    reason TEXT NOT NULL,
    start_date TEXT NOT NULL,
    end_date TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ('pending', 'approved', 'rejected')),
    teacher_response TEXT NOT NULL DEFAULT '',
    responded_at TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL DEFAULT ''
);

-- Curriculum distribution per academic term
CREATE TABLE IF NOT EXISTS curriculum_distribution (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    academic_term_id INTEGER NOT NULL REFERENCES semesters(id) ON DELETE CASCADE,
    scope TEXT NOT NULL CHECK (scope IN ('school', 'grade', 'class')),
    grade_level INTEGER NOT NULL DEFAULT 0,
    class_id INTEGER NOT NULL DEFAULT 0,
    subject_id INTEGER NOT NULL REFERENCES subjects(id),
    subject_type TEXT NOT NULL CHECK (subject_type IN ('mandatory', 'elective')),
    weekly_periods INTEGER NOT NULL DEFAULT 0,
    credits INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL DEFAULT '',
    CONSTRAINT unique_curriculum_item UNIQUE (academic_term_id, scope, grade_level, class_id, subject_id)
);

-- Audit log
CREATE TABLE IF NOT EXISTS audit_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER,
    action TEXT NOT NULL,
    detail TEXT NOT NULL DEFAULT '',
    ip_address TEXT NOT NULL DEFAULT '',
    user_agent TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL DEFAULT ''
);
CREATE INDEX IF NOT EXISTS idx_audit_log_action ON audit_log(action, created_at);
"""


# Versioned migrations: (version, sql)
# Each migration runs once and is recorded in schema_version.
MIGRATIONS: list[tuple[int, str]] = [
    (1, """
        ALTER TABLE profiles ADD COLUMN phone TEXT NOT NULL DEFAULT '';
    """),
    (2, """
        CREATE INDEX IF NOT EXISTS idx_feedback_student ON student_feedback(student_id, timetable_event_id);
        CREATE INDEX IF NOT EXISTS idx_feedback_notif_parent ON feedback_notifications(parent_id, is_read);
        CREATE INDEX IF NOT EXISTS idx_leave_teacher ON leave_applications(homeroom_teacher_id, status);
    """),
    (3, """
        CREATE TABLE IF NOT EXISTS student_reports (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            period_id INTEGER NOT NULL REFERENCES grade_reporting_periods(id) ON DELETE CASCADE,
            student_id INTEGER NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            class_id INTEGER NOT NULL REFERENCES classes(id) ON DELETE CASCADE,
            homeroom_teacher_id INTEGER NOT NULL REFERENCES profiles(id),
            strengths TEXT NOT NULL,
            weaknesses TEXT NOT NULL,
            academic_performance TEXT NOT NULL DEFAULT '',
            status TEXT NOT NULL DEFAULT 'draft' CHECK (status IN ('draft', 'sent')),
            sent_at TEXT NOT NULL DEFAULT '',
            created_at TEXT NOT NULL DEFAULT '',
            updated_at TEXT NOT NULL DEFAULT '',
            CONSTRAINT unique_student_report UNIQUE (period_id, student_id)
        );
        CREATE TABLE IF NOT EXISTS report_notifications (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            student_report_id INTEGER NOT NULL REFERENCES student_reports(id) ON DELETE CASCADE,
            parent_id INTEGER NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            homeroom_teacher_id INTEGER NOT NULL REFERENCES profiles(id),
            is_read INTEGER NOT NULL DEFAULT 0,
            read_at TEXT NOT NULL DEFAULT '',
            created_at TEXT NOT NULL DEFAULT '',
            CONSTRAINT unique_report_notification UNIQUE (student_report_id, parent_id)
        );
        CREATE TABLE IF NOT EXISTS parent_report_responses (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            student_report_id INTEGER NOT NULL REFERENCES student_reports(id) ON DELETE CASCADE,
            parent_id INTEGER NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            agreement_status TEXT NOT NULL DEFAULT '' CHECK (agreement_status IN ('', 'agree', 'disagree')),
            comments TEXT NOT NULL DEFAULT '',
            is_read INTEGER NOT NULL DEFAULT 0,
            read_at TEXT NOT NULL DEFAULT '',
            responded_at TEXT NOT NULL DEFAULT '',
            CONSTRAINT unique_report_response UNIQUE (student_report_id, parent_id)
        );
        CREATE INDEX IF NOT EXISTS idx_report_notif_parent ON report_notifications(parent_id, is_read);
    """),
]


def _is_postgres() -> bool:
    """Check if the configured database is PostgreSQL."""
    from pg_compat import is_postgres_url
    db_url = current_app.config.get("DATABASE", "")
    return is_postgres_url(db_url)


def get_db():
    """Return a DB connection from Flask g, creating if needed.

    Supports both SQLite (default) and PostgreSQL (when DATABASE starts
    with postgresql:// or postgres://).
    """
    if "db" not in g:
        db_url = current_app.config.get("DATABASE", str(Path(__file__).parent / "educonnect.db"))

        from pg_compat import is_postgres_url, connect_pg
        if is_postgres_url(db_url):
            g.db = connect_pg(db_url)
            return g.db

        # Default: SQLite
        g.db = sqlite3.connect(db_url)
        g.db.row_factory = sqlite3.Row
        g.db.execute("PRAGMA journal_mode=WAL")
        g.db.execute("PRAGMA foreign_keys=ON")
    return g.db


def close_db(e=None) -> None:
    """Teardown handler — close DB connection."""
    db = g.pop("db", None)
    if db is not None:
        db.close()


def init_db() -> None:
    """Execute schema DDL to create all tables."""
    db = get_db()
    db.executescript(SCHEMA)
    db.commit()


def run_migrations() -> None:
    """Apply any unapplied versioned migrations.

    Uses file-based locking to prevent race conditions when multiple
    Gunicorn workers start simultaneously.
    """
    from pg_compat import is_postgres_url

    db_url = current_app.config.get("DATABASE", str(Path(__file__).parent / "educonnect.db"))
    lock_file = None

    # File-based locking only for SQLite (PostgreSQL has its own locking)
    if not is_postgres_url(db_url):
        lock_path = Path(db_url).with_suffix(".migration.lock")
        try:
            lock_file = open(lock_path, "w")
            fcntl.flock(lock_file, fcntl.LOCK_EX)
        except OSError:
            lock_file = None

    try:
        db = get_db()
        applied = {
            row["version"]
            for row in db.execute("SELECT version FROM schema_version").fetchall()
        }
        for version, sql in MIGRATIONS:
            if version not in applied:
                try:
                    db.executescript(sql)
                except sqlite3.OperationalError as e:
                    err_msg = str(e).lower()
                    if "duplicate column" not in err_msg and "already exists" not in err_msg:
                        raise
                db.execute(
                    "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                    (version, datetime.now().isoformat()),
                )
                db.commit()
    finally:
        if lock_file:
            fcntl.flock(lock_file, fcntl.LOCK_UN)
            lock_file.close()


def init_app(app) -> None:
    """Register teardown and auto-init on first request."""
    app.teardown_appcontext(close_db)

    @app.before_request
    def _ensure_db():
        if not getattr(app, "_db_initialized", False):
            init_db()
            run_migrations()
            app._db_initialized = True
