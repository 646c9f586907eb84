"""Weekly timetable events with classroom and teacher clash checks."""

from __future__ import annotations

from actions.base import server_action
from audit import log_event
from db_stores import AcademicStoreDB, ClassroomStoreDB, ClassStoreDB, ProfileStoreDB, SubjectStoreDB, TimetableStoreDB
from errors import Conflict, InvalidInput, NotFound
from schemas import ClassroomForm, TimetableEventForm, TimetableEventIdForm, TimetableFilter, TimetableUpdateForm

TIMETABLE_PATH = "/dashboard/admin/timetable"
EVENT_FIELDS = ("class_id", "subject_id", "teacher_id", "classroom_id", "semester_id",
                "day_of_week", "start_time", "end_time", "week_number", "notes")


def _check_event(form: TimetableEventForm, exclude_id: int | None = None) -> dict:
    if not ClassStoreDB.get(form.class_id):
        raise NotFound("Class not found")
    if not SubjectStoreDB.get(form.subject_id):
        raise NotFound("Subject not found")
    teacher = ProfileStoreDB.get(form.teacher_id)
    if not teacher or teacher["role"] != "teacher":
        raise InvalidInput("Assigned teacher must be a teacher")
    if not AcademicStoreDB.get_semester(form.semester_id):
        raise NotFound("Semester not found")
    if form.classroom_id is not None and not ClassroomStoreDB.get(form.classroom_id):
        raise NotFound("Classroom not found")

    slot = (form.day_of_week, form.start_time, form.week_number, form.semester_id)
    if form.classroom_id is not None and TimetableStoreDB.conflict("classroom_id", form.classroom_id, *slot,
                                                                   exclude_id=exclude_id):
        raise Conflict("Classroom is already booked at this time", code="classroom_conflict")
    if TimetableStoreDB.conflict("teacher_id", form.teacher_id, *slot, exclude_id=exclude_id):
        raise Conflict("Teacher is already assigned at this time", code="teacher_conflict")

    fields = {name: getattr(form, name) for name in EVENT_FIELDS}
    fields["notes"] = fields["notes"].strip()
    return fields


@server_action(roles=["admin"], schema=TimetableEventForm, revalidate=[TIMETABLE_PATH], status=201)
def create_timetable_event(ctx, form: TimetableEventForm):
    event_id = TimetableStoreDB.create(_check_event(form))
    log_event("timetable_create", ctx.user_id, f"event={event_id}")
    return TimetableStoreDB.get(event_id)


@server_action(roles=["admin"], schema=TimetableUpdateForm, revalidate=[TIMETABLE_PATH])
def update_timetable_event(ctx, form: TimetableUpdateForm):
    if not TimetableStoreDB.get(form.event_id):
        raise NotFound("Timetable event not found")
    TimetableStoreDB.update(form.event_id, _check_event(form, exclude_id=form.event_id))
    log_event("timetable_update", ctx.user_id, f"event={form.event_id}")
    return TimetableStoreDB.get(form.event_id)


@server_action(roles=["admin"], schema=TimetableEventIdForm, revalidate=[TIMETABLE_PATH])
def delete_timetable_event(ctx, form: TimetableEventIdForm):
    if not TimetableStoreDB.get(form.event_id):
        raise NotFound("Timetable event not found")
    TimetableStoreDB.delete(form.event_id)
    log_event("timetable_delete", ctx.user_id, f"event={form.event_id}")
    return {"id": form.event_id}


@server_action(roles=["admin", "teacher", "parent", "student"], schema=TimetableFilter)
def get_timetable_events(ctx, form: TimetableFilter):
    teacher_id = form.teacher_id
    if ctx.role == "teacher" and teacher_id is None and form.class_id is None:
        teacher_id = ctx.user_id
    return TimetableStoreDB.list(form.class_id, teacher_id, form.semester_id, form.week_number, form.day_of_week)


@server_action(roles=["admin"], schema=ClassroomForm, revalidate=[TIMETABLE_PATH], status=201)
def create_classroom(ctx, form: ClassroomForm):
    classroom_id = ClassroomStoreDB.create(form.name.strip(), form.building.strip(), form.capacity)
    log_event("classroom_create", ctx.user_id, f"classroom={classroom_id}")
    return ClassroomStoreDB.get(classroom_id)


@server_action(roles=["admin", "teacher"])
def list_classrooms(ctx, form):
    return ClassroomStoreDB.list()
