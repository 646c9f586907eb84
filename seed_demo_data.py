"""
Seed Demo Data — Standalone script and pytest fixture.

Creates one school year with its two semesters, the default subject
catalogue, an admin, two teachers (one homeroom), two parents and three
students, class 10A with two students placed in it, a grade reporting
period open for a year, a classroom and one timetable lesson.

Usage:
    python seed_demo_data.py           # Seed into the configured database
"""

from __future__ import annotations

from datetime import date, datetime, timedelta

from werkzeug.security import generate_password_hash

from actions.academic import default_semesters
from actions.curriculum import DEFAULT_SUBJECTS
from db_stores import (
    AcademicStoreDB,
    AssignmentStoreDB,
    ClassroomStoreDB,
    ClassStoreDB,
    ParentLinkStoreDB,
    PeriodStoreDB,
    ProfileStoreDB,
    SubjectStoreDB,
    SubjectTeacherStoreDB,
    TimetableStoreDB,
)

DEMO_PASSWORD = "Demo1234"
DEMO_YEAR = ("2025-2026", date(2025, 9, 1), date(2026, 5, 31))

DEMO_PROFILES = {
    "admin": {"email": "admin@demo.edu", "full_name": "Nguyễn Quản Trị", "role": "admin"},
    "teacher": {"email": "teacher@demo.edu", "full_name": "Trần Thị Hoa", "role": "teacher",
                "homeroom_enabled": True},
    "teacher2": {"email": "teacher2@demo.edu", "full_name": "Lê Văn Nam", "role": "teacher"},
    "parent": {"email": "parent@demo.edu", "full_name": "Phạm Văn Bình", "role": "parent"},
    "parent2": {"email": "parent2@demo.edu", "full_name": "Võ Thị Lan", "role": "parent"},
    "student": {"email": "student1@demo.edu", "full_name": "Phạm Minh An", "role": "student",
                "student_id": "HS001"},
    "student2": {"email": "student2@demo.edu", "full_name": "Đỗ Quang Huy", "role": "student",
                 "student_id": "HS002"},
    "student3": {"email": "student3@demo.edu", "full_name": "Bùi Thu Trang", "role": "student",
                 "student_id": "HS003"},
}


def seed() -> dict:
    """Seed demo data through the store classes. Needs an app context. Returns the created ids."""
    password = generate_password_hash(DEMO_PASSWORD)
    ids: dict = {}

    for key, info in DEMO_PROFILES.items():
        ids[key] = ProfileStoreDB.create(
            email=info["email"],
            full_name=info["full_name"],
            role=info["role"],
            password_hash=password,
            student_id=info.get("student_id"),
            homeroom_enabled=info.get("homeroom_enabled", False),
        )

    name, start, end = DEMO_YEAR
    ids["year"] = AcademicStoreDB.create_year(name, start.isoformat(), end.isoformat(), True,
                                              default_semesters(start, end, True))
    semesters = AcademicStoreDB.list_semesters(ids["year"])
    ids["semester"] = semesters[0]["id"]
    ids["semester2"] = semesters[1]["id"]

    for subject in DEFAULT_SUBJECTS:
        SubjectStoreDB.ensure(*subject)
    ids["math"] = SubjectStoreDB.by_code("MATH")["id"]
    ids["literature"] = SubjectStoreDB.by_code("LIT")["id"]
    ids["english"] = SubjectStoreDB.by_code("ENG")["id"]

    ids["class"] = ClassStoreDB.create("10A", ids["year"], ids["semester"], 10, False, "",
                                       ids["teacher"], 40, "Demo homeroom class")
    ids["class_b"] = ClassStoreDB.create("10B", ids["year"], ids["semester"], 10, False, "",
                                         None, 40, "")
    for student in ("student", "student2"):
        ids[f"{student}_assignment"] = AssignmentStoreDB.create(ids[student], ids["class"], ids["year"],
                                                                "main", ids["admin"])
    ParentLinkStoreDB.create(ids["parent"], ids["student"], "father", True)

    SubjectTeacherStoreDB.create(ids["teacher"], ids["math"], ids["class"])
    SubjectTeacherStoreDB.create(ids["teacher2"], ids["literature"], ids["class"])

    now = datetime.now()
    ids["period"] = PeriodStoreDB.create(
        "Giữa học kỳ 1", ids["year"], ids["semester"], start.isoformat(), end.isoformat(),
        (now + timedelta(days=365)).isoformat(), (now + timedelta(days=400)).isoformat(), ids["admin"],
    )

    ids["classroom"] = ClassroomStoreDB.create("P101", "A", 40)
    ids["lesson"] = TimetableStoreDB.create({
        "class_id": ids["class"], "subject_id": ids["math"], "teacher_id": ids["teacher"],
        "classroom_id": ids["classroom"], "semester_id": ids["semester"], "day_of_week": 0,
        "start_time": "07:00", "end_time": "07:45", "week_number": 1, "notes": "",
    })
    return ids


if __name__ == "__main__":
    from app import create_app
    from database import init_db, run_migrations

    app = create_app()
    with app.app_context():
        init_db()
        run_migrations()
        result = seed()
        print(f"[Seed] Done: {result}")
