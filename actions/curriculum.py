"""Subject catalogue and per-term curriculum distribution."""

from __future__ import annotations

from actions.base import ActionResult, server_action
from audit import log_event
from db_stores import ClassStoreDB, CurriculumStoreDB, SubjectStoreDB, AcademicStoreDB
from errors import Conflict, InvalidInput, NotFound
from schemas import CurriculumActionForm, CurriculumQuery, SubjectForm

CURRICULUM_PATH = "/dashboard/admin/curriculum-distribution"

# code, Vietnamese name, English name, category
DEFAULT_SUBJECTS = [
    ("LIT", "Ngữ văn", "Literature", "mandatory"),
    ("MATH", "Toán", "Mathematics", "mandatory"),
    ("ENG", "Tiếng Anh", "English", "mandatory"),
    ("HIST", "Lịch sử", "History", "mandatory"),
    ("NDSE", "Giáo dục quốc phòng và an ninh", "National Defense and Security Education", "mandatory"),
    ("EXPR", "Hoạt động trải nghiệm, hướng nghiệp", "Experiential Activities", "mandatory"),
    ("LOCAL", "Nội dung giáo dục địa phương", "Local Education", "mandatory"),
    ("PE", "Giáo dục thể chất", "Physical Education", "mandatory"),
    ("GEO", "Địa lí", "Geography", "elective"),
    ("ECON", "Giáo dục kinh tế và pháp luật", "Economics and Law", "elective"),
    ("PHYS", "Vật lí", "Physics", "elective"),
    ("CHEM", "Hóa học", "Chemistry", "elective"),
    ("BIO", "Sinh học", "Biology", "elective"),
    ("TECH", "Công nghệ", "Technology", "elective"),
    ("CS", "Tin học", "Computer Science", "elective"),
    ("MUSIC", "Âm nhạc", "Music", "elective"),
    ("ART", "Mỹ thuật", "Fine Arts", "elective"),
]

# Weekly periods equal credits in the 2018 upper-secondary programme.
DEFAULT_CURRICULUM = {
    "mandatory": [
        {"code": "LIT", "weekly_periods": 3, "credits": 3},
        {"code": "MATH", "weekly_periods": 3, "credits": 3},
        {"code": "ENG", "weekly_periods": 3, "credits": 3},
        {"code": "HIST", "weekly_periods": 2, "credits": 2},
        {"code": "NDSE", "weekly_periods": 1, "credits": 1},
        {"code": "EXPR", "weekly_periods": 3, "credits": 3},
        {"code": "LOCAL", "weekly_periods": 1, "credits": 1},
        {"code": "PE", "weekly_periods": 2, "credits": 2},
    ],
    "elective": [
        {"code": code, "weekly_periods": 2, "credits": 2}
        for code in ("GEO", "ECON", "PHYS", "CHEM", "BIO", "TECH", "CS", "MUSIC", "ART")
    ],
}


def summarize(items: list[dict]) -> dict:
    mandatory = [i for i in items if i["subject_type"] == "mandatory"]
    elective = [i for i in items if i["subject_type"] == "elective"]
    return {
        "mandatory_count": len(mandatory),
        "elective_count": len(elective),
        "total_periods": sum(i["weekly_periods"] for i in items),
        "total_credits": sum(i["credits"] for i in items),
    }


# ── Subjects ───────────────────────────────────────────────


@server_action(roles=["admin", "teacher", "parent", "student"])
def list_subjects(ctx, form):
    return SubjectStoreDB.list()


@server_action(roles=["admin"], schema=SubjectForm, revalidate=[CURRICULUM_PATH], status=201)
def create_subject(ctx, form: SubjectForm):
    if SubjectStoreDB.by_code(form.code):
        raise Conflict("A subject with this code already exists", code="duplicate_subject")
    subject_id = SubjectStoreDB.create(form.code, form.name_vietnamese, form.name_english, form.category)
    return SubjectStoreDB.get(subject_id)


@server_action(roles=["admin"], revalidate=[CURRICULUM_PATH])
def initialize_subjects(ctx, form):
    inserted = sum(1 for subject in DEFAULT_SUBJECTS if SubjectStoreDB.ensure(*subject))
    log_event("subjects_initialize", ctx.user_id, f"inserted={inserted}")
    return {"inserted": inserted, "total": len(DEFAULT_SUBJECTS)}


# ── Curriculum distribution ────────────────────────────────


@server_action(roles=["admin", "teacher"], schema=CurriculumQuery)
def get_curriculum_distribution(ctx, form: CurriculumQuery):
    items = CurriculumStoreDB.list(form.academic_term_id, form.scope, form.grade_level, form.class_id)
    return {
        "items": items,
        "summary": summarize(items),
        "scope": form.scope,
        "filters": {
            "academic_term_id": form.academic_term_id,
            "grade_level": form.grade_level,
            "class_id": form.class_id,
        },
    }


def _replace_scope(term_id: int, scope: str, grade_level: int, class_id: int,
                   types: tuple[str, ...]) -> list[dict]:
    """Swap a scope's rows for the default curriculum in one transaction."""
    CurriculumStoreDB.delete_scope(term_id, scope, grade_level, class_id)
    for subject_type in types:
        for entry in DEFAULT_CURRICULUM[subject_type]:
            subject = SubjectStoreDB.by_code(entry["code"])
            if not subject:
                continue
            CurriculumStoreDB.insert(
                term_id, scope, grade_level, class_id, subject["id"], subject_type,
                entry["weekly_periods"], entry["credits"], commit=False,
            )
    CurriculumStoreDB.commit()
    return CurriculumStoreDB.list(term_id, scope, grade_level if scope != "school" else None,
                                  class_id if scope == "class" else None)


@server_action(roles=["admin"], schema=CurriculumActionForm, revalidate=[CURRICULUM_PATH], status=201)
def curriculum_action(ctx, form: CurriculumActionForm):
    if not AcademicStoreDB.get_semester(form.academic_term_id):
        raise NotFound("Academic term not found")

    if form.action == "initialize_default":
        items = _replace_scope(form.academic_term_id, "school", 0, 0, ("mandatory",))
        return ActionResult.ok({"count": len(items), "items": items},
                               message="Default curriculum initialized successfully", status=201)

    if form.action in ("apply_to_school", "apply_to_grade", "apply_to_class"):
        scope = form.action.removeprefix("apply_to_")
        grade_level = form.grade_level if scope == "grade" else 0
        class_id = 0
        if scope == "class":
            cls = ClassStoreDB.get(form.class_id)
            if not cls:
                raise NotFound("Class not found")
            class_id = cls["id"]
        items = _replace_scope(form.academic_term_id, scope, grade_level, class_id, ("mandatory", "elective"))
        log_event("curriculum_apply", ctx.user_id, f"term={form.academic_term_id} scope={scope}")
        return ActionResult.ok({"count": len(items), "items": items},
                               message=f"Curriculum applied to {scope} successfully")

    if not SubjectStoreDB.get(form.subject_id):
        raise NotFound("Subject not found")
    if form.class_id is not None:
        scope, grade_level, class_id = "class", 0, form.class_id
    elif form.grade_level is not None:
        scope, grade_level, class_id = "grade", form.grade_level, 0
    else:
        scope, grade_level, class_id = "school", 0, 0
    if CurriculumStoreDB.exists(form.academic_term_id, scope, grade_level, class_id, form.subject_id):
        raise Conflict("Assignment already exists for this subject in this scope", code="curriculum_item_exists")
    if scope == "class" and not ClassStoreDB.get(class_id):
        raise InvalidInput("Class not found", code="invalid_reference")

    item_id = CurriculumStoreDB.insert(
        form.academic_term_id, scope, grade_level, class_id, form.subject_id, form.subject_type,
        form.weekly_periods, form.credits,
    )
    return {"id": item_id, "academic_term_id": form.academic_term_id, "scope": scope,
            "grade_level": grade_level, "class_id": class_id, "subject_id": form.subject_id,
            "subject_type": form.subject_type, "weekly_periods": form.weekly_periods,
            "credits": form.credits}
