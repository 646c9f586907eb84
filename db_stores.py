"""
DB-backed stores — all SQL for EduConnect lives here.

Each store is a class of static methods over the shared connection from
database.get_db(). Mutating methods commit their own work; a failure part
way through a multi-row operation leaves the rows already committed.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from database import get_db

GRADE_COMPONENTS = ("regular_1", "regular_2", "regular_3", "regular_4", "midterm", "final", "summary")

PROFILE_EDITABLE = ("email", "full_name", "phone", "homeroom_enabled")

# Columns that reference a teacher without ON DELETE CASCADE
TEACHER_REFERENCES = {
    "homeroom_classes": ("classes", "homeroom_teacher_id"),
    "lessons": ("timetable_events", "teacher_id"),
    "feedback": ("student_feedback", "teacher_id"),
    "grades": ("student_detailed_grades", "created_by"),
    "announcements": ("notifications", "sender_id"),
    "reports": ("student_reports", "homeroom_teacher_id"),
    "leave_applications": ("leave_applications", "homeroom_teacher_id"),
}


def _now() -> str:
    return datetime.now().isoformat()


def _rows(rows) -> list[dict]:
    return [dict(r) for r in rows]


def _one(row) -> dict | None:
    return dict(row) if row else None


def _like(term: str) -> str:
    return f"%{term.strip().lower()}%"


def _where(clauses: list[str]) -> str:
    return (" WHERE " + " AND ".join(clauses)) if clauses else ""


# ── Profiles ───────────────────────────────────────────────


class ProfileStoreDB:
    @staticmethod
    def get(profile_id: int) -> dict | None:
        db = get_db()
        return _one(db.execute(
            "SELECT id, email, full_name, role, student_id, phone, homeroom_enabled, created_at "
            "FROM profiles WHERE id = ?", (profile_id,),
        ).fetchone())

    @staticmethod
    def create(email: str, full_name: str, role: str, password_hash: str,
               student_id: str | None = None, phone: str = "", homeroom_enabled: bool = False) -> int:
        db = get_db()
        cur = db.execute(
            "INSERT INTO profiles (email, full_name, role, student_id, phone, homeroom_enabled, "
            "password_hash, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (email, full_name, role, student_id, phone, int(homeroom_enabled), password_hash, _now()),
        )
        db.commit()
        return cur.lastrowid

    @staticmethod
    def list(role: str | None = None, search: str | None = None,
             page: int = 1, limit: int = 20) -> tuple[list[dict], int]:
        db = get_db()
        clauses, params = [], []
        if role:
            clauses.append("role = ?")
            params.append(role)
        if search:
            clauses.append("(LOWER(full_name) LIKE ? OR LOWER(email) LIKE ? OR LOWER(COALESCE(student_id, '')) LIKE ?)")
            params += [_like(search)] * 3
        where = _where(clauses)
        total = db.execute(f"SELECT COUNT(*) AS n FROM profiles{where}", tuple(params)).fetchone()["n"]
        rows = db.execute(
            f"SELECT id, email, full_name, role, student_id, phone, homeroom_enabled, created_at "
            f"FROM profiles{where} ORDER BY full_name LIMIT ? OFFSET ?",
            tuple(params) + (limit, (page - 1) * limit),
        ).fetchall()
        return _rows(rows), total

    @staticmethod
    def create_student_with_parent(student: dict, parent: dict, password_hash: str,
                                   relationship: str, is_primary_contact: bool) -> tuple[int, int]:
        """Insert a student, a parent and their link in one transaction. Returns (student_id, parent_id)."""
        db = get_db()
        now = _now()
        student_id = db.execute(
            "INSERT INTO profiles (email, full_name, role, student_id, phone, password_hash, created_at) "
            "VALUES (?, ?, 'student', ?, ?, ?, ?)",
            (student["email"], student["full_name"], student["student_id"], student["phone"], password_hash, now),
        ).lastrowid
        parent_id = db.execute(
            "INSERT INTO profiles (email, full_name, role, phone, password_hash, created_at) "
            "VALUES (?, ?, 'parent', ?, ?, ?)",
            (parent["email"], parent["full_name"], parent["phone"], password_hash, now),
        ).lastrowid
        db.execute(
            "INSERT INTO parent_student_relationships (parent_id, student_id, relationship, "
            "is_primary_contact, created_at) VALUES (?, ?, ?, ?, ?)",
            (parent_id, student_id, relationship, int(is_primary_contact), now),
        )
        db.commit()
        return student_id, parent_id

    @staticmethod
    def update(profile_id: int, fields: dict) -> None:
        """Update the given editable columns (email, full_name, phone, homeroom_enabled)."""
        unknown = set(fields) - set(PROFILE_EDITABLE)
        if unknown:
            raise ValueError(f"Not editable: {', '.join(sorted(unknown))}")
        if not fields:
            return
        db = get_db()
        assignments = ", ".join(f"{column} = ?" for column in fields)
        values = tuple(int(v) if isinstance(v, bool) else v for v in fields.values())
        db.execute(f"UPDATE profiles SET {assignments} WHERE id = ?", values + (profile_id,))
        db.commit()

    @staticmethod
    def teacher_usage(teacher_id: int) -> dict:
        """Rows that still point at a teacher and would block deleting the profile."""
        db = get_db()
        return {
            label: db.execute(f"SELECT COUNT(*) AS n FROM {table} WHERE {column} = ?", (teacher_id,)).fetchone()["n"]
            for label, (table, column) in TEACHER_REFERENCES.items()
        }

    @staticmethod
    def delete(profile_ids: list[int]) -> None:
        db = get_db()
        for profile_id in profile_ids:
            db.execute("DELETE FROM profiles WHERE id = ?", (profile_id,))
        db.commit()

    @staticmethod
    def set_homeroom_enabled(teacher_id: int, enabled: bool) -> None:
        db = get_db()
        db.execute("UPDATE profiles SET homeroom_enabled = ? WHERE id = ?", (int(enabled), teacher_id))
        db.commit()

    @staticmethod
    def homeroom_teachers() -> list[dict]:
        db = get_db()
        return _rows(db.execute(
            "SELECT id, full_name, email FROM profiles "
            "WHERE role = 'teacher' AND homeroom_enabled = 1 ORDER BY full_name"
        ).fetchall())


# ── Academic years, semesters, reporting periods ───────────


class AcademicStoreDB:
    @staticmethod
    def year_by_name(name: str) -> dict | None:
        db = get_db()
        return _one(db.execute("SELECT * FROM academic_years WHERE name = ?", (name,)).fetchone())

    @staticmethod
    def get_year(year_id: int) -> dict | None:
        db = get_db()
        return _one(db.execute("SELECT * FROM academic_years WHERE id = ?", (year_id,)).fetchone())

    @staticmethod
    def clear_current(include_years: bool = True, keep_year_id: int | None = None) -> None:
        """Unset the current flag on semesters, and on years unless told not to (uncommitted).

        With ``keep_year_id`` that year and its semesters keep their flags.
        """
        db = get_db()
        keep = keep_year_id if keep_year_id is not None else 0
        if include_years:
            db.execute("UPDATE academic_years SET is_current = 0 WHERE is_current = 1 AND id != ?", (keep,))
        db.execute("UPDATE semesters SET is_current = 0 WHERE is_current = 1 AND academic_year_id != ?", (keep,))

    @staticmethod
    def create_year(name: str, start_date: str, end_date: str, is_current: bool,
                    semesters: list[dict]) -> int:
        db = get_db()
        cur = db.execute(
            "INSERT INTO academic_years (name, start_date, end_date, is_current, created_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (name, start_date, end_date, int(is_current), _now()),
        )
        year_id = cur.lastrowid
        for sem in semesters:
            db.execute(
                "INSERT INTO semesters (academic_year_id, name, semester_number, start_date, end_date, "
                "weeks_count, is_current, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (year_id, sem["name"], sem["semester_number"], sem["start_date"], sem["end_date"],
                 sem["weeks_count"], int(sem["is_current"]), _now()),
            )
        db.commit()
        return year_id

    @staticmethod
    def list_years() -> list[dict]:
        db = get_db()
        return _rows(db.execute(
            "SELECT y.*, (SELECT COUNT(*) FROM semesters s WHERE s.academic_year_id = y.id) AS semester_count "
            "FROM academic_years y ORDER BY y.start_date DESC"
        ).fetchall())

    @staticmethod
    def year_in_use(year_id: int) -> bool:
        db = get_db()
        row = db.execute("SELECT COUNT(*) AS n FROM classes WHERE academic_year_id = ?", (year_id,)).fetchone()
        return row["n"] > 0

    @staticmethod
    def delete_year(year_id: int) -> None:
        db = get_db()
        db.execute("DELETE FROM semesters WHERE academic_year_id = ?", (year_id,))
        db.execute("DELETE FROM academic_years WHERE id = ?", (year_id,))
        db.commit()

    @staticmethod
    def update_year(year_id: int, name: str, start_date: str, end_date: str, is_current: bool) -> None:
        db = get_db()
        db.execute(
            "UPDATE academic_years SET name = ?, start_date = ?, end_date = ?, is_current = ? WHERE id = ?",
            (name, start_date, end_date, int(is_current), year_id),
        )
        db.commit()

    @staticmethod
    def create_semester(academic_year_id: int, name: str, semester_number: int, start_date: str,
                        end_date: str, weeks_count: int, is_current: bool) -> int:
        db = get_db()
        cur = db.execute(
            "INSERT INTO semesters (academic_year_id, name, semester_number, start_date, end_date, "
            "weeks_count, is_current, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (academic_year_id, name, semester_number, start_date, end_date, weeks_count,
             int(is_current), _now()),
        )
        db.commit()
        return cur.lastrowid

    @staticmethod
    def get_semester(semester_id: int) -> dict | None:
        db = get_db()
        return _one(db.execute("SELECT * FROM semesters WHERE id = ?", (semester_id,)).fetchone())

    @staticmethod
    def update_semester(semester_id: int, academic_year_id: int, name: str, semester_number: int,
                        start_date: str, end_date: str, weeks_count: int, is_current: bool) -> None:
        db = get_db()
        db.execute(
            "UPDATE semesters SET academic_year_id = ?, name = ?, semester_number = ?, start_date = ?, "
            "end_date = ?, weeks_count = ?, is_current = ? WHERE id = ?",
            (academic_year_id, name, semester_number, start_date, end_date, weeks_count,
             int(is_current), semester_id),
        )
        db.commit()

    @staticmethod
    def semester_usage(semester_id: int) -> dict:
        """Counts of rows that reference the semester without cascading."""
        db = get_db()
        return {
            label: db.execute(f"SELECT COUNT(*) AS n FROM {table} WHERE semester_id = ?",
                              (semester_id,)).fetchone()["n"]
            for label, table in (("classes", "classes"), ("periods", "grade_reporting_periods"),
                                 ("lessons", "timetable_events"))
        }

    @staticmethod
    def delete_semester(semester_id: int) -> None:
        db = get_db()
        db.execute("DELETE FROM semesters WHERE id = ?", (semester_id,))
        db.commit()

    @staticmethod
    def list_semesters(academic_year_id: int | None = None) -> list[dict]:
        db = get_db()
        if academic_year_id:
            rows = db.execute(
                "SELECT s.*, y.name AS academic_year_name FROM semesters s "
                "JOIN academic_years y ON y.id = s.academic_year_id "
                "WHERE s.academic_year_id = ? ORDER BY s.semester_number",
                (academic_year_id,),
            ).fetchall()
        else:
            rows = db.execute(
                "SELECT s.*, y.name AS academic_year_name FROM semesters s "
                "JOIN academic_years y ON y.id = s.academic_year_id "
                "ORDER BY y.start_date DESC, s.semester_number"
            ).fetchall()
        return _rows(rows)


class PeriodStoreDB:
    @staticmethod
    def get(period_id: int) -> dict | None:
        db = get_db()
        return _one(db.execute(
            "SELECT p.*, y.name AS academic_year_name, s.name AS semester_name "
            "FROM grade_reporting_periods p "
            "JOIN academic_years y ON y.id = p.academic_year_id "
            "JOIN semesters s ON s.id = p.semester_id WHERE p.id = ?",
            (period_id,),
        ).fetchone())

    @staticmethod
    def overlapping(academic_year_id: int, semester_id: int, start_date: str, end_date: str,
                    exclude_id: int | None = None) -> list[dict]:
        db = get_db()
        return _rows(db.execute(
            "SELECT id, name, start_date, end_date FROM grade_reporting_periods "
            "WHERE academic_year_id = ? AND semester_id = ? AND is_active = 1 "
            "AND start_date <= ? AND end_date >= ? AND id != ?",
            (academic_year_id, semester_id, end_date, start_date, exclude_id or 0),
        ).fetchall())

    @staticmethod
    def create(name: str, academic_year_id: int, semester_id: int, start_date: str, end_date: str,
               import_deadline: str, edit_deadline: str, created_by: int) -> int:
        db = get_db()
        cur = db.execute(
            "INSERT INTO grade_reporting_periods (name, academic_year_id, semester_id, start_date, "
            "end_date, import_deadline, edit_deadline, created_by, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (name, academic_year_id, semester_id, start_date, end_date, import_deadline,
             edit_deadline, created_by, _now()),
        )
        db.commit()
        return cur.lastrowid

    @staticmethod
    def update(period_id: int, name: str, academic_year_id: int, semester_id: int, start_date: str,
               end_date: str, import_deadline: str, edit_deadline: str) -> None:
        db = get_db()
        db.execute(
            "UPDATE grade_reporting_periods SET name = ?, academic_year_id = ?, semester_id = ?, "
            "start_date = ?, end_date = ?, import_deadline = ?, edit_deadline = ? WHERE id = ?",
            (name, academic_year_id, semester_id, start_date, end_date, import_deadline, edit_deadline,
             period_id),
        )
        db.commit()

    @staticmethod
    def has_grades(period_id: int) -> bool:
        db = get_db()
        row = db.execute(
            "SELECT id FROM student_detailed_grades WHERE period_id = ? LIMIT 1", (period_id,),
        ).fetchone()
        return row is not None

    @staticmethod
    def deactivate(period_id: int) -> None:
        db = get_db()
        db.execute("UPDATE grade_reporting_periods SET is_active = 0 WHERE id = ?", (period_id,))
        db.commit()

    @staticmethod
    def list(academic_year_id: int | None = None, semester_id: int | None = None,
             is_active: bool | None = None) -> list[dict]:
        db = get_db()
        clauses, params = [], []
        if academic_year_id:
            clauses.append("p.academic_year_id = ?")
            params.append(academic_year_id)
        if semester_id:
            clauses.append("p.semester_id = ?")
            params.append(semester_id)
        if is_active is not None:
            clauses.append("p.is_active = ?")
            params.append(int(is_active))
        return _rows(db.execute(
            "SELECT p.*, y.name AS academic_year_name, s.name AS semester_name "
            "FROM grade_reporting_periods p "
            "JOIN academic_years y ON y.id = p.academic_year_id "
            "JOIN semesters s ON s.id = p.semester_id"
            + _where(clauses) + " ORDER BY p.start_date DESC",
            tuple(params),
        ).fetchall())


# ── Subjects, classrooms, curriculum ───────────────────────


class SubjectStoreDB:
    @staticmethod
    def get(subject_id: int) -> dict | None:
        db = get_db()
        return _one(db.execute("SELECT * FROM subjects WHERE id = ?", (subject_id,)).fetchone())

    @staticmethod
    def by_code(code: str) -> dict | None:
        db = get_db()
        return _one(db.execute("SELECT * FROM subjects WHERE code = ?", (code,)).fetchone())

    @staticmethod
    def list(active_only: bool = True) -> list[dict]:
        db = get_db()
        sql = "SELECT * FROM subjects"
        if active_only:
            sql += " WHERE is_active = 1"
        return _rows(db.execute(sql + " ORDER BY category, code").fetchall())

    @staticmethod
    def create(code: str, name_vietnamese: str, name_english: str, category: str) -> int:
        db = get_db()
        cur = db.execute(
            "INSERT INTO subjects (code, name_vietnamese, name_english, category, created_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (code, name_vietnamese, name_english, category, _now()),
        )
        db.commit()
        return cur.lastrowid

    @staticmethod
    def ensure(code: str, name_vietnamese: str, name_english: str, category: str) -> bool:
        """Insert the subject unless its code exists. Returns True when inserted."""
        db = get_db()
        cur = db.execute(
            "INSERT OR IGNORE INTO subjects (code, name_vietnamese, name_english, category, created_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (code, name_vietnamese, name_english, category, _now()),
        )
        db.commit()
        return cur.rowcount > 0

    @staticmethod
    def for_class(class_id: int) -> list[dict]:
        """Subjects taught in a class according to teaching assignments."""
        db = get_db()
        return _rows(db.execute(
            "SELECT DISTINCT s.* FROM subjects s JOIN subject_assignments sa ON sa.subject_id = s.id "
            "WHERE sa.class_id = ? ORDER BY s.category, s.code",
            (class_id,),
        ).fetchall())


class ClassroomStoreDB:
    @staticmethod
    def get(classroom_id: int) -> dict | None:
        db = get_db()
        return _one(db.execute("SELECT * FROM classrooms WHERE id = ?", (classroom_id,)).fetchone())

    @staticmethod
    def create(name: str, building: str, capacity: int) -> int:
        db = get_db()
        cur = db.execute(
            "INSERT INTO classrooms (name, building, capacity) VALUES (?, ?, ?)",
            (name, building, capacity),
        )
        db.commit()
        return cur.lastrowid

    @staticmethod
    def list() -> list[dict]:
        db = get_db()
        return _rows(db.execute("SELECT * FROM classrooms WHERE is_active = 1 ORDER BY name").fetchall())


class CurriculumStoreDB:
    @staticmethod
    def list(academic_term_id: int, scope: str = "all", grade_level: int | None = None,
             class_id: int | None = None) -> list[dict]:
        db = get_db()
        clauses, params = ["c.academic_term_id = ?"], [academic_term_id]
        if scope != "all":
            clauses.append("c.scope = ?")
            params.append(scope)
        if grade_level is not None:
            clauses.append("c.grade_level = ?")
            params.append(grade_level)
        if class_id is not None:
            clauses.append("c.class_id = ?")
            params.append(class_id)
        return _rows(db.execute(
            "SELECT c.*, s.code AS subject_code, s.name_vietnamese AS subject_name "
            "FROM curriculum_distribution c JOIN subjects s ON s.id = c.subject_id"
            + _where(clauses) + " ORDER BY c.subject_type DESC, s.code",
            tuple(params),
        ).fetchall())

    @staticmethod
    def exists(academic_term_id: int, scope: str, grade_level: int, class_id: int, subject_id: int) -> bool:
        db = get_db()
        row = db.execute(
            "SELECT id FROM curriculum_distribution WHERE academic_term_id = ? AND scope = ? "
            "AND grade_level = ? AND class_id = ? AND subject_id = ?",
            (academic_term_id, scope, grade_level, class_id, subject_id),
        ).fetchone()
        return row is not None

    @staticmethod
    def insert(academic_term_id: int, scope: str, grade_level: int, class_id: int, subject_id: int,
               subject_type: str, weekly_periods: int, credits: int, commit: bool = True) -> int:
        db = get_db()
        cur = db.execute(
            "INSERT INTO curriculum_distribution (academic_term_id, scope, grade_level, class_id, "
            "subject_id, subject_type, weekly_periods, credits, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (academic_term_id, scope, grade_level, class_id, subject_id, subject_type,
             weekly_periods, credits, _now()),
        )
        if commit:
            db.commit()
        return cur.lastrowid

    @staticmethod
    def delete_scope(academic_term_id: int, scope: str, grade_level: int = 0, class_id: int = 0) -> int:
        """Remove a scope's rows (uncommitted). Returns the count removed."""
        db = get_db()
        cur = db.execute(
            "DELETE FROM curriculum_distribution WHERE academic_term_id = ? AND scope = ? "
            "AND grade_level = ? AND class_id = ?",
            (academic_term_id, scope, grade_level, class_id),
        )
        return cur.rowcount

    @staticmethod
    def commit() -> None:
        get_db().commit()


# ── Classes and student placement ──────────────────────────


class ClassStoreDB:
    @staticmethod
    def create(name: str, academic_year_id: int, semester_id: int | None, grade_level: int,
               is_subject_combination: bool, subject_combination_type: str,
               homeroom_teacher_id: int | None, max_students: int, description: str) -> int:
        db = get_db()
        cur = db.execute(
            "INSERT INTO classes (name, academic_year_id, semester_id, grade_level, is_subject_combination, "
            "subject_combination_type, homeroom_teacher_id, max_students, description, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (name, academic_year_id, semester_id, grade_level, int(is_subject_combination),
             subject_combination_type, homeroom_teacher_id, max_students, description, _now()),
        )
        db.commit()
        return cur.lastrowid

    @staticmethod
    def get(class_id: int) -> dict | None:
        db = get_db()
        return _one(db.execute(
            "SELECT c.*, y.name AS academic_year_name, p.full_name AS homeroom_teacher_name, "
            "(SELECT COUNT(*) FROM student_class_assignments a "
            " WHERE a.class_id = c.id AND a.is_active = 1) AS current_students "
            "FROM classes c JOIN academic_years y ON y.id = c.academic_year_id "
            "LEFT JOIN profiles p ON p.id = c.homeroom_teacher_id WHERE c.id = ?",
            (class_id,),
        ).fetchone())

    @staticmethod
    def list(academic_year_id: int | None = None, semester_id: int | None = None,
             grade_level: int | None = None, is_subject_combination: bool | None = None,
             search: str | None = None) -> list[dict]:
        db = get_db()
        clauses, params = [], []
        if academic_year_id:
            clauses.append("c.academic_year_id = ?")
            params.append(academic_year_id)
        if semester_id:
            clauses.append("c.semester_id = ?")
            params.append(semester_id)
        if grade_level:
            clauses.append("c.grade_level = ?")
            params.append(grade_level)
        if is_subject_combination is not None:
            clauses.append("c.is_subject_combination = ?")
            params.append(int(is_subject_combination))
        if search:
            clauses.append("LOWER(c.name) LIKE ?")
            params.append(_like(search))
        return _rows(db.execute(
            "SELECT c.*, y.name AS academic_year_name, p.full_name AS homeroom_teacher_name, "
            "(SELECT COUNT(*) FROM student_class_assignments a "
            " WHERE a.class_id = c.id AND a.is_active = 1) AS current_students "
            "FROM classes c JOIN academic_years y ON y.id = c.academic_year_id "
            "LEFT JOIN profiles p ON p.id = c.homeroom_teacher_id"
            + _where(clauses) + " ORDER BY c.grade_level, c.name",
            tuple(params),
        ).fetchall())

    @staticmethod
    def update(class_id: int, name: str, academic_year_id: int, semester_id: int | None, grade_level: int,
               is_subject_combination: bool, subject_combination_type: str,
               homeroom_teacher_id: int | None, max_students: int, description: str) -> None:
        db = get_db()
        db.execute(
            "UPDATE classes SET name = ?, academic_year_id = ?, semester_id = ?, grade_level = ?, "
            "is_subject_combination = ?, subject_combination_type = ?, homeroom_teacher_id = ?, "
            "max_students = ?, description = ? WHERE id = ?",
            (name, academic_year_id, semester_id, grade_level, int(is_subject_combination),
             subject_combination_type, homeroom_teacher_id, max_students, description, class_id),
        )
        db.commit()

    @staticmethod
    def homeroom_of(teacher_id: int, semester_id: int | None, exclude_id: int | None = None) -> dict | None:
        """Another class the teacher leads as homeroom teacher in the same semester."""
        db = get_db()
        sql = "SELECT id, name FROM classes WHERE homeroom_teacher_id = ? AND id != ?"
        params: list[Any] = [teacher_id, exclude_id or 0]
        if semester_id is None:
            sql += " AND semester_id IS NULL"
        else:
            sql += " AND semester_id = ?"
            params.append(semester_id)
        return _one(db.execute(sql, tuple(params)).fetchone())

    @staticmethod
    def delete(class_id: int) -> None:
        db = get_db()
        db.execute("DELETE FROM classes WHERE id = ?", (class_id,))
        db.commit()

    @staticmethod
    def homeroom_classes(teacher_id: int) -> list[dict]:
        db = get_db()
        return _rows(db.execute(
            "SELECT id, name, grade_level, academic_year_id FROM classes "
            "WHERE homeroom_teacher_id = ? ORDER BY name",
            (teacher_id,),
        ).fetchall())

    @staticmethod
    def teaching_classes(teacher_id: int) -> list[dict]:
        """Classes a teacher leads as homeroom teacher or teaches a subject in."""
        db = get_db()
        return _rows(db.execute(
            "SELECT DISTINCT c.id, c.name, c.grade_level FROM classes c "
            "LEFT JOIN subject_assignments sa ON sa.class_id = c.id "
            "WHERE c.homeroom_teacher_id = ? OR sa.teacher_id = ? ORDER BY c.name",
            (teacher_id, teacher_id),
        ).fetchall())


class AssignmentStoreDB:
    @staticmethod
    def get(assignment_id: int) -> dict | None:
        db = get_db()
        return _one(db.execute(
            "SELECT * FROM student_class_assignments WHERE id = ?", (assignment_id,)
        ).fetchone())

    @staticmethod
    def active_for(student_id: int, assignment_type: str, academic_year_id: int) -> dict | None:
        db = get_db()
        return _one(db.execute(
            "SELECT a.*, c.name AS class_name FROM student_class_assignments a "
            "JOIN classes c ON c.id = a.class_id "
            "WHERE a.student_id = ? AND a.assignment_type = ? AND a.academic_year_id = ? AND a.is_active = 1",
            (student_id, assignment_type, academic_year_id),
        ).fetchone())

    @staticmethod
    def active_count(class_id: int) -> int:
        db = get_db()
        row = db.execute(
            "SELECT COUNT(*) AS n FROM student_class_assignments WHERE class_id = ? AND is_active = 1",
            (class_id,),
        ).fetchone()
        return row["n"]

    @staticmethod
    def create(student_id: int, class_id: int, academic_year_id: int, assignment_type: str,
               assigned_by: int) -> int:
        db = get_db()
        cur = db.execute(
            "INSERT INTO student_class_assignments (student_id, class_id, academic_year_id, "
            "assignment_type, assigned_by, assigned_at) VALUES (?, ?, ?, ?, ?, ?)",
            (student_id, class_id, academic_year_id, assignment_type, assigned_by, _now()),
        )
        db.commit()
        return cur.lastrowid

    @staticmethod
    def deactivate(assignment_id: int) -> int:
        db = get_db()
        cur = db.execute(
            "UPDATE student_class_assignments SET is_active = 0, removed_at = ? "
            "WHERE id = ? AND is_active = 1",
            (_now(), assignment_id),
        )
        db.commit()
        return cur.rowcount

    @staticmethod
    def available_students(assignment_type: str, academic_year_id: int,
                           search: str | None = None) -> list[dict]:
        db = get_db()
        sql = (
            "SELECT p.id, p.full_name, p.email, p.student_id FROM profiles p "
            "WHERE p.role = 'student' AND p.id NOT IN ("
            " SELECT a.student_id FROM student_class_assignments a "
            " WHERE a.assignment_type = ? AND a.academic_year_id = ? AND a.is_active = 1)"
        )
        params: list[Any] = [assignment_type, academic_year_id]
        if search:
            sql += " AND (LOWER(p.full_name) LIKE ? OR LOWER(COALESCE(p.student_id, '')) LIKE ?)"
            params += [_like(search)] * 2
        return _rows(db.execute(sql + " ORDER BY p.full_name", tuple(params)).fetchall())

    @staticmethod
    def list(class_id: int | None = None, academic_year_id: int | None = None,
             assignment_type: str | None = None, is_active: bool | None = True,
             search: str | None = None, page: int = 1, limit: int = 20) -> tuple[list[dict], int]:
        db = get_db()
        clauses, params = [], []
        if class_id:
            clauses.append("a.class_id = ?")
            params.append(class_id)
        if academic_year_id:
            clauses.append("a.academic_year_id = ?")
            params.append(academic_year_id)
        if assignment_type:
            clauses.append("a.assignment_type = ?")
            params.append(assignment_type)
        if is_active is not None:
            clauses.append("a.is_active = ?")
            params.append(int(is_active))
        if search:
            clauses.append("(LOWER(p.full_name) LIKE ? OR LOWER(COALESCE(p.student_id, '')) LIKE ?)")
            params += [_like(search)] * 2
        base = (
            " FROM student_class_assignments a "
            "JOIN profiles p ON p.id = a.student_id JOIN classes c ON c.id = a.class_id"
            + _where(clauses)
        )
        total = db.execute("SELECT COUNT(*) AS n" + base, tuple(params)).fetchone()["n"]
        rows = db.execute(
            "SELECT a.*, p.full_name AS student_name, p.student_id AS student_number, "
            "c.name AS class_name" + base + " ORDER BY c.name, p.full_name LIMIT ? OFFSET ?",
            tuple(params) + (limit, (page - 1) * limit),
        ).fetchall()
        return _rows(rows), total

    @staticmethod
    def roster(class_id: int) -> list[dict]:
        """Active students in a class, ordered by name."""
        db = get_db()
        return _rows(db.execute(
            "SELECT p.id, p.full_name, p.student_id, p.email FROM student_class_assignments a "
            "JOIN profiles p ON p.id = a.student_id "
            "WHERE a.class_id = ? AND a.is_active = 1 ORDER BY p.full_name",
            (class_id,),
        ).fetchall())

    @staticmethod
    def student_in_class(class_id: int, student_number: str) -> dict | None:
        db = get_db()
        return _one(db.execute(
            "SELECT p.id, p.full_name, p.student_id FROM student_class_assignments a "
            "JOIN profiles p ON p.id = a.student_id "
            "WHERE a.class_id = ? AND a.is_active = 1 AND p.student_id = ?",
            (class_id, student_number),
        ).fetchone())

    @staticmethod
    def is_enrolled(class_id: int, student_id: int) -> bool:
        db = get_db()
        row = db.execute(
            "SELECT id FROM student_class_assignments WHERE class_id = ? AND student_id = ? AND is_active = 1",
            (class_id, student_id),
        ).fetchone()
        return row is not None

    @staticmethod
    def current_main_class(student_id: int) -> dict | None:
        db = get_db()
        return _one(db.execute(
            "SELECT c.*, a.id AS assignment_id FROM student_class_assignments a "
            "JOIN classes c ON c.id = a.class_id "
            "JOIN academic_years y ON y.id = a.academic_year_id "
            "WHERE a.student_id = ? AND a.assignment_type = 'main' AND a.is_active = 1 "
            "ORDER BY y.is_current DESC, y.start_date DESC LIMIT 1",
            (student_id,),
        ).fetchone())

    @staticmethod
    def active_class_ids(student_ids: list[int]) -> list[int]:
        if not student_ids:
            return []
        db = get_db()
        marks = ",".join("?" for _ in student_ids)
        rows = db.execute(
            f"SELECT DISTINCT class_id FROM student_class_assignments "
            f"WHERE is_active = 1 AND student_id IN ({marks})",
            tuple(student_ids),
        ).fetchall()
        return [r["class_id"] for r in rows]


class SubjectTeacherStoreDB:
    @staticmethod
    def create(teacher_id: int, subject_id: int, class_id: int) -> int:
        db = get_db()
        cur = db.execute(
            "INSERT INTO subject_assignments (teacher_id, subject_id, class_id, created_at) VALUES (?, ?, ?, ?)",
            (teacher_id, subject_id, class_id, _now()),
        )
        db.commit()
        return cur.lastrowid

    @staticmethod
    def list(teacher_id: int | None = None, class_id: int | None = None) -> list[dict]:
        db = get_db()
        clauses, params = [], []
        if teacher_id:
            clauses.append("sa.teacher_id = ?")
            params.append(teacher_id)
        if class_id:
            clauses.append("sa.class_id = ?")
            params.append(class_id)
        return _rows(db.execute(
            "SELECT sa.*, p.full_name AS teacher_name, s.code AS subject_code, "
            "s.name_vietnamese AS subject_name, c.name AS class_name "
            "FROM subject_assignments sa JOIN profiles p ON p.id = sa.teacher_id "
            "JOIN subjects s ON s.id = sa.subject_id JOIN classes c ON c.id = sa.class_id"
            + _where(clauses) + " ORDER BY c.name, s.code",
            tuple(params),
        ).fetchall())

    @staticmethod
    def teaches(teacher_id: int, class_id: int, subject_id: int) -> bool:
        db = get_db()
        row = db.execute(
            "SELECT id FROM subject_assignments WHERE teacher_id = ? AND class_id = ? AND subject_id = ?",
            (teacher_id, class_id, subject_id),
        ).fetchone()
        return row is not None


class ParentLinkStoreDB:
    @staticmethod
    def create(parent_id: int, student_id: int, relationship: str, is_primary_contact: bool) -> int:
        db = get_db()
        cur = db.execute(
            "INSERT INTO parent_student_relationships (parent_id, student_id, relationship, "
            "is_primary_contact, created_at) VALUES (?, ?, ?, ?, ?)",
            (parent_id, student_id, relationship, int(is_primary_contact), _now()),
        )
        db.commit()
        return cur.lastrowid

    @staticmethod
    def is_parent_of(parent_id: int, student_id: int) -> bool:
        db = get_db()
        row = db.execute(
            "SELECT id FROM parent_student_relationships WHERE parent_id = ? AND student_id = ?",
            (parent_id, student_id),
        ).fetchone()
        return row is not None

    @staticmethod
    def parents_of(student_id: int) -> list[dict]:
        db = get_db()
        return _rows(db.execute(
            "SELECT p.id, p.full_name, p.email, r.relationship, r.is_primary_contact "
            "FROM parent_student_relationships r JOIN profiles p ON p.id = r.parent_id "
            "WHERE r.student_id = ? ORDER BY r.is_primary_contact DESC, p.full_name",
            (student_id,),
        ).fetchall())

    @staticmethod
    def children_of(parent_id: int) -> list[dict]:
        db = get_db()
        return _rows(db.execute(
            "SELECT p.id, p.full_name, p.email, p.student_id, r.relationship "
            "FROM parent_student_relationships r JOIN profiles p ON p.id = r.student_id "
            "WHERE r.parent_id = ? ORDER BY p.full_name",
            (parent_id,),
        ).fetchall())


# ── Grades ─────────────────────────────────────────────────


class GradeStoreDB:
    @staticmethod
    def upsert(period_id: int, student_id: int, subject_id: int, class_id: int,
               component_type: str, grade_value: float | None, created_by: int, notes: str = "") -> None:
        db = get_db()
        now = _now()
        db.execute(
            "INSERT INTO student_detailed_grades (period_id, student_id, subject_id, class_id, "
            "component_type, grade_value, notes, created_by, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT (period_id, student_id, subject_id, class_id, component_type) DO UPDATE SET "
            "grade_value = excluded.grade_value, notes = excluded.notes, "
            "created_by = excluded.created_by, updated_at = excluded.updated_at",
            (period_id, student_id, subject_id, class_id, component_type, grade_value, notes,
             created_by, now, now),
        )

    @staticmethod
    def commit() -> None:
        get_db().commit()

    @staticmethod
    def get(grade_id: int) -> dict | None:
        db = get_db()
        return _one(db.execute(
            "SELECT g.*, p.full_name AS student_name, s.name_vietnamese AS subject_name "
            "FROM student_detailed_grades g JOIN profiles p ON p.id = g.student_id "
            "JOIN subjects s ON s.id = g.subject_id WHERE g.id = ?",
            (grade_id,),
        ).fetchone())

    @staticmethod
    def set_value(grade_id: int, grade_value: float | None, commit: bool = True) -> None:
        db = get_db()
        db.execute(
            "UPDATE student_detailed_grades SET grade_value = ?, updated_at = ? WHERE id = ?",
            (grade_value, _now(), grade_id),
        )
        if commit:
            db.commit()

    @staticmethod
    def list(period_id: int | None = None, class_id: int | None = None, subject_id: int | None = None,
             student_id: int | None = None, component_type: str | None = None) -> list[dict]:
        db = get_db()
        clauses, params = [], []
        for column, value in (("g.period_id", period_id), ("g.class_id", class_id),
                              ("g.subject_id", subject_id), ("g.student_id", student_id),
                              ("g.component_type", component_type)):
            if value is not None:
                clauses.append(f"{column} = ?")
                params.append(value)
        return _rows(db.execute(
            "SELECT g.*, p.full_name AS student_name, p.student_id AS student_number, "
            "s.code AS subject_code, s.name_vietnamese AS subject_name "
            "FROM student_detailed_grades g JOIN profiles p ON p.id = g.student_id "
            "JOIN subjects s ON s.id = g.subject_id"
            + _where(clauses) + " ORDER BY p.full_name, s.code, g.component_type",
            tuple(params),
        ).fetchall())


class OverwriteStoreDB:
    @staticmethod
    def create(grade_id: int, requested_by: int, old_value: float | None, new_value: float | None,
               reason: str) -> int:
        db = get_db()
        cur = db.execute(
            "INSERT INTO grade_overwrite_approvals (grade_id, requested_by, old_value, new_value, "
            "reason, created_at) VALUES (?, ?, ?, ?, ?, ?)",
            (grade_id, requested_by, old_value, new_value, reason, _now()),
        )
        return cur.lastrowid

    @staticmethod
    def get(request_id: int) -> dict | None:
        db = get_db()
        return _one(db.execute("SELECT * FROM grade_overwrite_approvals WHERE id = ?", (request_id,)).fetchone())

    @staticmethod
    def pending_for(grade_id: int) -> dict | None:
        db = get_db()
        return _one(db.execute(
            "SELECT * FROM grade_overwrite_approvals WHERE grade_id = ? AND status = 'pending'",
            (grade_id,),
        ).fetchone())

    @staticmethod
    def list(status: str | None = None) -> list[dict]:
        db = get_db()
        sql = (
            "SELECT r.*, g.component_type, g.grade_value AS current_value, g.period_id, g.class_id, "
            "st.full_name AS student_name, st.student_id AS student_number, "
            "s.name_vietnamese AS subject_name, t.full_name AS requested_by_name "
            "FROM grade_overwrite_approvals r "
            "JOIN student_detailed_grades g ON g.id = r.grade_id "
            "JOIN profiles st ON st.id = g.student_id "
            "JOIN subjects s ON s.id = g.subject_id "
            "JOIN profiles t ON t.id = r.requested_by"
        )
        if status:
            rows = db.execute(sql + " WHERE r.status = ? ORDER BY r.created_at DESC", (status,)).fetchall()
        else:
            rows = db.execute(sql + " ORDER BY r.created_at DESC").fetchall()
        return _rows(rows)

    @staticmethod
    def transition(request_id: int, status: str, admin_reason: str, processed_by: int) -> int:
        """Move a pending request to ``status`` (uncommitted). Returns rows changed."""
        db = get_db()
        cur = db.execute(
            "UPDATE grade_overwrite_approvals SET status = ?, admin_reason = ?, processed_by = ?, "
            "processed_at = ? WHERE id = ? AND status = 'pending'",
            (status, admin_reason, processed_by, _now(), request_id),
        )
        return cur.rowcount


# ── Timetable ──────────────────────────────────────────────


class TimetableStoreDB:
    @staticmethod
    def get(event_id: int) -> dict | None:
        db = get_db()
        return _one(db.execute("SELECT * FROM timetable_events WHERE id = ?", (event_id,)).fetchone())

    @staticmethod
    def conflict(column: str, value: int, day_of_week: int, start_time: str, week_number: int,
                 semester_id: int, exclude_id: int | None = None) -> dict | None:
        if column not in ("classroom_id", "teacher_id"):
            raise ValueError(f"unsupported conflict column {column}")
        db = get_db()
        sql = (
            f"SELECT id FROM timetable_events WHERE {column} = ? AND day_of_week = ? "
            f"AND start_time = ? AND week_number = ? AND semester_id = ?"
        )
        params: list[Any] = [value, day_of_week, start_time, week_number, semester_id]
        if exclude_id:
            sql += " AND id != ?"
            params.append(exclude_id)
        return _one(db.execute(sql, tuple(params)).fetchone())

    @staticmethod
    def create(fields: dict) -> int:
        db = get_db()
        cur = db.execute(
            "INSERT INTO timetable_events (class_id, subject_id, teacher_id, classroom_id, semester_id, "
            "day_of_week, start_time, end_time, week_number, notes, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (fields["class_id"], fields["subject_id"], fields["teacher_id"], fields["classroom_id"],
             fields["semester_id"], fields["day_of_week"], fields["start_time"], fields["end_time"],
             fields["week_number"], fields["notes"], _now()),
        )
        db.commit()
        return cur.lastrowid

    @staticmethod
    def update(event_id: int, fields: dict) -> None:
        db = get_db()
        db.execute(
            "UPDATE timetable_events SET class_id = ?, subject_id = ?, teacher_id = ?, classroom_id = ?, "
            "semester_id = ?, day_of_week = ?, start_time = ?, end_time = ?, week_number = ?, notes = ? "
            "WHERE id = ?",
            (fields["class_id"], fields["subject_id"], fields["teacher_id"], fields["classroom_id"],
             fields["semester_id"], fields["day_of_week"], fields["start_time"], fields["end_time"],
             fields["week_number"], fields["notes"], event_id),
        )
        db.commit()

    @staticmethod
    def delete(event_id: int) -> None:
        db = get_db()
        db.execute("DELETE FROM timetable_events WHERE id = ?", (event_id,))
        db.commit()

    @staticmethod
    def list(class_id: int | None = None, teacher_id: int | None = None, semester_id: int | None = None,
             week_number: int | None = None, day_of_week: int | None = None) -> list[dict]:
        db = get_db()
        clauses, params = [], []
        for column, value in (("e.class_id", class_id), ("e.teacher_id", teacher_id),
                              ("e.semester_id", semester_id), ("e.week_number", week_number),
                              ("e.day_of_week", day_of_week)):
            if value is not None:
                clauses.append(f"{column} = ?")
                params.append(value)
        return _rows(db.execute(
            "SELECT e.*, c.name AS class_name, s.name_vietnamese AS subject_name, "
            "t.full_name AS teacher_name, r.name AS classroom_name "
            "FROM timetable_events e JOIN classes c ON c.id = e.class_id "
            "JOIN subjects s ON s.id = e.subject_id JOIN profiles t ON t.id = e.teacher_id "
            "LEFT JOIN classrooms r ON r.id = e.classroom_id"
            + _where(clauses) + " ORDER BY e.week_number, e.day_of_week, e.start_time",
            tuple(params),
        ).fetchall())


# ── Feedback ───────────────────────────────────────────────


class FeedbackStoreDB:
    @staticmethod
    def upsert(student_id: int, event: dict, teacher_id: int, feedback_text: str,
               rating: int | None, feedback_type: str) -> int:
        db = get_db()
        now = _now()
        db.execute(
            "INSERT INTO student_feedback (student_id, timetable_event_id, teacher_id, class_id, subject_id, "
            "feedback_text, rating, feedback_type, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT (student_id, timetable_event_id) DO UPDATE SET "
            "feedback_text = excluded.feedback_text, rating = excluded.rating, "
            "feedback_type = excluded.feedback_type, updated_at = excluded.updated_at",
            (student_id, event["id"], teacher_id, event["class_id"], event["subject_id"],
             feedback_text, rating, feedback_type, now, now),
        )
        db.commit()
        row = db.execute(
            "SELECT id FROM student_feedback WHERE student_id = ? AND timetable_event_id = ?",
            (student_id, event["id"]),
        ).fetchone()
        return row["id"]

    @staticmethod
    def for_day(student_id: int, day_of_week: int, week_number: int, semester_id: int,
                academic_year_id: int, teacher_id: int | None = None) -> list[dict]:
        """Feedback on a student's lessons for one day, optionally only one teacher's."""
        db = get_db()
        sql = (
            "SELECT f.*, e.start_time, e.end_time, s.name_vietnamese AS subject_name "
            "FROM student_feedback f JOIN timetable_events e ON e.id = f.timetable_event_id "
            "JOIN semesters sem ON sem.id = e.semester_id "
            "JOIN subjects s ON s.id = f.subject_id "
            "WHERE f.student_id = ? AND e.day_of_week = ? AND e.week_number = ? "
            "AND e.semester_id = ? AND sem.academic_year_id = ?"
        )
        params: list[Any] = [student_id, day_of_week, week_number, semester_id, academic_year_id]
        if teacher_id is not None:
            sql += " AND f.teacher_id = ?"
            params.append(teacher_id)
        return _rows(db.execute(sql + " ORDER BY e.start_time", tuple(params)).fetchall())

    @staticmethod
    def by_ids(feedback_ids: list[int]) -> list[dict]:
        if not feedback_ids:
            return []
        db = get_db()
        marks = ",".join("?" for _ in feedback_ids)
        return _rows(db.execute(
            f"SELECT f.*, s.name_vietnamese AS subject_name FROM student_feedback f "
            f"JOIN subjects s ON s.id = f.subject_id WHERE f.id IN ({marks})",
            tuple(feedback_ids),
        ).fetchall())

    @staticmethod
    def notify(feedback: dict, parent_id: int) -> None:
        """Upsert one feedback→parent notification (uncommitted)."""
        db = get_db()
        db.execute(
            "INSERT INTO feedback_notifications (student_feedback_id, parent_id, student_id, teacher_id, sent_at) "
            "VALUES (?, ?, ?, ?, ?) "
            "ON CONFLICT (student_feedback_id, parent_id) DO UPDATE SET sent_at = excluded.sent_at",
            (feedback["id"], parent_id, feedback["student_id"], feedback["teacher_id"], _now()),
        )

    @staticmethod
    def commit() -> None:
        get_db().commit()

    @staticmethod
    def notifications_for(feedback_ids: list[int]) -> list[dict]:
        if not feedback_ids:
            return []
        db = get_db()
        marks = ",".join("?" for _ in feedback_ids)
        return _rows(db.execute(
            f"SELECT * FROM feedback_notifications WHERE student_feedback_id IN ({marks}) ORDER BY sent_at",
            tuple(feedback_ids),
        ).fetchall())

    @staticmethod
    def parent_inbox(parent_id: int, student_id: int | None = None, unread_only: bool = False,
                     page: int = 1, limit: int = 20) -> tuple[list[dict], int]:
        db = get_db()
        clauses, params = ["n.parent_id = ?"], [parent_id]
        if student_id:
            clauses.append("n.student_id = ?")
            params.append(student_id)
        if unread_only:
            clauses.append("n.is_read = 0")
        base = (
            " FROM feedback_notifications n JOIN student_feedback f ON f.id = n.student_feedback_id "
            "JOIN profiles st ON st.id = n.student_id JOIN profiles t ON t.id = n.teacher_id "
            "JOIN subjects s ON s.id = f.subject_id" + _where(clauses)
        )
        total = db.execute("SELECT COUNT(*) AS n" + base, tuple(params)).fetchone()["n"]
        rows = db.execute(
            "SELECT n.id, n.student_feedback_id, n.student_id, n.sent_at, n.is_read, n.read_at, "
            "f.feedback_text, f.rating, f.feedback_type, st.full_name AS student_name, "
            "t.full_name AS teacher_name, s.name_vietnamese AS subject_name"
            + base + " ORDER BY n.sent_at DESC LIMIT ? OFFSET ?",
            tuple(params) + (limit, (page - 1) * limit),
        ).fetchall()
        return _rows(rows), total

    @staticmethod
    def notification(notification_id: int) -> dict | None:
        db = get_db()
        return _one(db.execute("SELECT * FROM feedback_notifications WHERE id = ?", (notification_id,)).fetchone())

    @staticmethod
    def mark_read(notification_id: int, parent_id: int) -> int:
        db = get_db()
        cur = db.execute(
            "UPDATE feedback_notifications SET is_read = 1, read_at = ? "
            "WHERE id = ? AND parent_id = ? AND is_read = 0",
            (_now(), notification_id, parent_id),
        )
        db.commit()
        return cur.rowcount

    @staticmethod
    def for_student_between(student_id: int, start_date: str, end_date: str) -> list[dict]:
        """Feedback given to a student on days inside [start_date, end_date]."""
        db = get_db()
        return _rows(db.execute(
            "SELECT f.id, f.subject_id, f.feedback_text, f.rating, f.created_at, "
            "s.name_vietnamese AS subject_name FROM student_feedback f "
            "JOIN subjects s ON s.id = f.subject_id "
            "WHERE f.student_id = ? AND substr(f.created_at, 1, 10) BETWEEN ? AND ? "
            "ORDER BY s.name_vietnamese, f.created_at",
            (student_id, start_date, end_date),
        ).fetchall())


# ── Student reports to parents ─────────────────────────────


class ReportStoreDB:
    _SELECT = (
        "SELECT r.*, st.full_name AS student_name, st.student_id AS student_number, "
        "c.name AS class_name, p.name AS period_name, p.start_date AS period_start, "
        "p.end_date AS period_end, t.full_name AS homeroom_teacher_name, t.email AS homeroom_teacher_email "
        "FROM student_reports r JOIN profiles st ON st.id = r.student_id "
        "JOIN classes c ON c.id = r.class_id JOIN grade_reporting_periods p ON p.id = r.period_id "
        "JOIN profiles t ON t.id = r.homeroom_teacher_id"
    )

    @staticmethod
    def get(report_id: int) -> dict | None:
        db = get_db()
        return _one(db.execute(ReportStoreDB._SELECT + " WHERE r.id = ?", (report_id,)).fetchone())

    @staticmethod
    def find(period_id: int, student_id: int) -> dict | None:
        db = get_db()
        return _one(db.execute(
            "SELECT * FROM student_reports WHERE period_id = ? AND student_id = ?", (period_id, student_id),
        ).fetchone())

    @staticmethod
    def for_teacher(period_id: int, teacher_id: int) -> list[dict]:
        db = get_db()
        return _rows(db.execute(
            "SELECT * FROM student_reports WHERE period_id = ? AND homeroom_teacher_id = ?",
            (period_id, teacher_id),
        ).fetchall())

    @staticmethod
    def save_draft(period_id: int, student_id: int, class_id: int, teacher_id: int, strengths: str,
                   weaknesses: str, academic_performance: str) -> int:
        """Insert or rewrite a draft report. Sent reports are left untouched."""
        db = get_db()
        now = _now()
        db.execute(
            "INSERT INTO student_reports (period_id, student_id, class_id, homeroom_teacher_id, strengths, "
            "weaknesses, academic_performance, status, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, 'draft', ?, ?) "
            "ON CONFLICT (period_id, student_id) DO UPDATE SET "
            "class_id = excluded.class_id, homeroom_teacher_id = excluded.homeroom_teacher_id, "
            "strengths = excluded.strengths, weaknesses = excluded.weaknesses, "
            "academic_performance = excluded.academic_performance, updated_at = excluded.updated_at "
            "WHERE student_reports.status = 'draft'",
            (period_id, student_id, class_id, teacher_id, strengths, weaknesses, academic_performance, now, now),
        )
        db.commit()
        return ReportStoreDB.find(period_id, student_id)["id"]

    @staticmethod
    def mark_sent(report_id: int) -> int:
        """Flip a draft to sent (uncommitted). Returns 0 when it was already sent."""
        db = get_db()
        cur = db.execute(
            "UPDATE student_reports SET status = 'sent', sent_at = ?, updated_at = ? "
            "WHERE id = ? AND status = 'draft'",
            (_now(), _now(), report_id),
        )
        return cur.rowcount

    @staticmethod
    def add_recipient(report: dict, parent_id: int) -> None:
        """Create the parent's notification and empty response rows (uncommitted)."""
        db = get_db()
        db.execute(
            "INSERT OR IGNORE INTO report_notifications (student_report_id, parent_id, homeroom_teacher_id, "
            "created_at) VALUES (?, ?, ?, ?)",
            (report["id"], parent_id, report["homeroom_teacher_id"], _now()),
        )
        db.execute(
            "INSERT OR IGNORE INTO parent_report_responses (student_report_id, parent_id) VALUES (?, ?)",
            (report["id"], parent_id),
        )

    @staticmethod
    def commit() -> None:
        get_db().commit()

    @staticmethod
    def responses(report_id: int) -> list[dict]:
        db = get_db()
        return _rows(db.execute(
            "SELECT r.*, p.full_name AS parent_name, p.email AS parent_email "
            "FROM parent_report_responses r JOIN profiles p ON p.id = r.parent_id "
            "WHERE r.student_report_id = ? ORDER BY p.full_name",
            (report_id,),
        ).fetchall())

    @staticmethod
    def response(report_id: int, parent_id: int) -> dict | None:
        db = get_db()
        return _one(db.execute(
            "SELECT * FROM parent_report_responses WHERE student_report_id = ? AND parent_id = ?",
            (report_id, parent_id),
        ).fetchone())

    @staticmethod
    def respond(report_id: int, parent_id: int, agreement_status: str, comments: str) -> int:
        db = get_db()
        cur = db.execute(
            "UPDATE parent_report_responses SET agreement_status = ?, comments = ?, responded_at = ? "
            "WHERE student_report_id = ? AND parent_id = ?",
            (agreement_status, comments, _now(), report_id, parent_id),
        )
        db.commit()
        return cur.rowcount

    @staticmethod
    def parent_notifications(parent_id: int) -> list[dict]:
        db = get_db()
        return _rows(db.execute(
            "SELECT n.id, n.student_report_id, n.is_read, n.read_at, n.created_at, "
            "r.strengths, r.weaknesses, r.academic_performance, r.status, r.sent_at, "
            "st.full_name AS student_name, st.student_id AS student_number, c.name AS class_name, "
            "p.name AS period_name, t.full_name AS homeroom_teacher_name, "
            "resp.agreement_status, resp.comments, resp.responded_at "
            "FROM report_notifications n JOIN student_reports r ON r.id = n.student_report_id "
            "JOIN profiles st ON st.id = r.student_id JOIN classes c ON c.id = r.class_id "
            "JOIN grade_reporting_periods p ON p.id = r.period_id "
            "JOIN profiles t ON t.id = n.homeroom_teacher_id "
            "LEFT JOIN parent_report_responses resp "
            "ON resp.student_report_id = n.student_report_id AND resp.parent_id = n.parent_id "
            "WHERE n.parent_id = ? ORDER BY n.created_at DESC, n.id DESC",
            (parent_id,),
        ).fetchall())

    @staticmethod
    def unread_count(parent_id: int) -> int:
        db = get_db()
        return db.execute(
            "SELECT COUNT(*) AS n FROM report_notifications WHERE parent_id = ? AND is_read = 0", (parent_id,),
        ).fetchone()["n"]

    @staticmethod
    def notification(notification_id: int) -> dict | None:
        db = get_db()
        return _one(db.execute("SELECT * FROM report_notifications WHERE id = ?", (notification_id,)).fetchone())

    @staticmethod
    def notification_for(report_id: int, parent_id: int) -> dict | None:
        db = get_db()
        return _one(db.execute(
            "SELECT * FROM report_notifications WHERE student_report_id = ? AND parent_id = ?",
            (report_id, parent_id),
        ).fetchone())

    @staticmethod
    def mark_read(notification: dict) -> int:
        """Mark the notification and the matching response row read. Returns 0 if already read."""
        db = get_db()
        now = _now()
        cur = db.execute(
            "UPDATE report_notifications SET is_read = 1, read_at = ? WHERE id = ? AND is_read = 0",
            (now, notification["id"]),
        )
        db.execute(
            "UPDATE parent_report_responses SET is_read = 1, read_at = ? "
            "WHERE student_report_id = ? AND parent_id = ? AND is_read = 0",
            (now, notification["student_report_id"], notification["parent_id"]),
        )
        db.commit()
        return cur.rowcount


# ── Notifications ──────────────────────────────────────────


class NotificationStoreDB:
    @staticmethod
    def create(title: str, content: str, sender_id: int, target_roles: list[str],
               target_classes: list[int]) -> int:
        db = get_db()
        cur = db.execute(
            "INSERT INTO notifications (title, content, sender_id, target_roles, target_classes, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (title, content, sender_id, json.dumps(target_roles), json.dumps(target_classes), _now()),
        )
        db.commit()
        return cur.lastrowid

    @staticmethod
    def get(notification_id: int) -> dict | None:
        db = get_db()
        row = _one(db.execute("SELECT * FROM notifications WHERE id = ?", (notification_id,)).fetchone())
        if row:
            row["target_roles"] = json.loads(row["target_roles"] or "[]")
            row["target_classes"] = json.loads(row["target_classes"] or "[]")
        return row

    @staticmethod
    def active_with_reads(user_id: int) -> list[dict]:
        db = get_db()
        rows = _rows(db.execute(
            "SELECT n.*, p.full_name AS sender_name, r.read_at AS read_at "
            "FROM notifications n JOIN profiles p ON p.id = n.sender_id "
            "LEFT JOIN notification_reads r ON r.notification_id = n.id AND r.user_id = ? "
            "WHERE n.is_active = 1 ORDER BY n.created_at DESC, n.id DESC",
            (user_id,),
        ).fetchall())
        for row in rows:
            row["target_roles"] = json.loads(row["target_roles"] or "[]")
            row["target_classes"] = json.loads(row["target_classes"] or "[]")
            row["is_read"] = bool(row["read_at"])
        return rows

    @staticmethod
    def mark_read(notification_id: int, user_id: int) -> None:
        db = get_db()
        db.execute(
            "INSERT INTO notification_reads (notification_id, user_id, read_at) VALUES (?, ?, ?) "
            "ON CONFLICT (notification_id, user_id) DO UPDATE SET read_at = excluded.read_at",
            (notification_id, user_id, _now()),
        )
        db.commit()

    @staticmethod
    def deactivate(notification_id: int) -> None:
        db = get_db()
        db.execute("UPDATE notifications SET is_active = 0 WHERE id = ?", (notification_id,))
        db.commit()


# ── Leave applications ─────────────────────────────────────


class LeaveStoreDB:
    @staticmethod
    def create(student_id: int, parent_id: int, class_id: int, homeroom_teacher_id: int | None,
               leave_type: str, reason: str, start_date: str, end_date: str) -> int:
        db = get_db()
        cur = db.execute(
            "INSERT INTO leave_applications (student_id, parent_id, class_id, homeroom_teacher_id, leave_type, "
            "reason, start_date, end_date, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (student_id, parent_id, class_id, homeroom_teacher_id, leave_type, reason,
             start_date, end_date, _now()),
        )
        db.commit()
        return cur.lastrowid

    @staticmethod
    def get(application_id: int) -> dict | None:
        db = get_db()
        return _one(db.execute(
            "SELECT l.*, st.full_name AS student_name, pa.full_name AS parent_name, pa.email AS parent_email, "
            "c.name AS class_name FROM leave_applications l "
            "JOIN profiles st ON st.id = l.student_id JOIN profiles pa ON pa.id = l.parent_id "
            "JOIN classes c ON c.id = l.class_id WHERE l.id = ?",
            (application_id,),
        ).fetchone())

    @staticmethod
    def list_for(column: str, profile_id: int, status: str | None = None) -> list[dict]:
        if column not in ("parent_id", "homeroom_teacher_id"):
            raise ValueError(f"unsupported leave owner column {column}")
        db = get_db()
        sql = (
            "SELECT l.*, st.full_name AS student_name, st.student_id AS student_number, "
            "pa.full_name AS parent_name, c.name AS class_name FROM leave_applications l "
            "JOIN profiles st ON st.id = l.student_id JOIN profiles pa ON pa.id = l.parent_id "
            f"JOIN classes c ON c.id = l.class_id WHERE l.{column} = ?"
        )
        params: list[Any] = [profile_id]
        if status:
            sql += " AND l.status = ?"
            params.append(status)
        return _rows(db.execute(sql + " ORDER BY l.created_at DESC", tuple(params)).fetchall())

    @staticmethod
    def respond(application_id: int, status: str, teacher_response: str) -> int:
        db = get_db()
        cur = db.execute(
            "UPDATE leave_applications SET status = ?, teacher_response = ?, responded_at = ? "
            "WHERE id = ? AND status = 'pending'",
            (status, teacher_response, _now(), application_id),
        )
        db.commit()
        return cur.rowcount
