"""School announcements targeted by role and optionally by class."""

from __future__ import annotations

from actions.base import server_action
from audit import log_event
from db_stores import AssignmentStoreDB, ClassStoreDB, NotificationStoreDB, ParentLinkStoreDB
from errors import InvalidInput, NotFound, PermissionDenied
from helpers import paginated_response
from schemas import NotificationForm, NotificationIdForm, Page

ALL_ROLES = ["admin", "teacher", "parent", "student"]
NOTIFICATIONS_PATH = "/dashboard/notifications"


def target_options(profile: dict) -> dict:
    if profile["role"] == "admin":
        classes = [{"id": c["id"], "name": c["name"]} for c in ClassStoreDB.list()]
        return {"roles": list(ALL_ROLES), "classes": classes}
    roles = ["student"]
    if ClassStoreDB.homeroom_classes(profile["id"]):
        roles.append("parent")
    classes = [{"id": c["id"], "name": c["name"]} for c in ClassStoreDB.teaching_classes(profile["id"])]
    return {"roles": roles, "classes": classes}


def _class_ids_for(profile: dict) -> set[int]:
    if profile["role"] == "student":
        return set(AssignmentStoreDB.active_class_ids([profile["id"]]))
    if profile["role"] == "parent":
        children = [c["id"] for c in ParentLinkStoreDB.children_of(profile["id"])]
        return set(AssignmentStoreDB.active_class_ids(children))
    if profile["role"] == "teacher":
        return {c["id"] for c in ClassStoreDB.teaching_classes(profile["id"])}
    return set()


def visible_notifications(profile: dict) -> list[dict]:
    """Active notifications addressed to the profile's role and, when class-targeted, one of its classes."""
    class_ids = None
    visible = []
    for n in NotificationStoreDB.active_with_reads(profile["id"]):
        if n["sender_id"] == profile["id"]:
            visible.append(n)
            continue
        if profile["role"] not in n["target_roles"]:
            continue
        if n["target_classes"] and profile["role"] != "admin":
            if class_ids is None:
                class_ids = _class_ids_for(profile)
            if not class_ids.intersection(n["target_classes"]):
                continue
        visible.append(n)
    return visible


@server_action(roles=["admin", "teacher"])
def get_notification_target_options(ctx, form):
    return target_options(ctx.profile)


@server_action(roles=["admin", "teacher"], schema=NotificationForm, revalidate=[NOTIFICATIONS_PATH], status=201)
def create_notification(ctx, form: NotificationForm):
    roles = list(dict.fromkeys(form.target_roles))
    classes = list(dict.fromkeys(form.target_classes))
    if ctx.role == "teacher":
        options = target_options(ctx.profile)
        disallowed = [r for r in roles if r not in options["roles"]]
        if disallowed:
            raise PermissionDenied(f"Teachers cannot notify: {', '.join(disallowed)}", code="target_not_allowed")
        allowed_classes = {c["id"] for c in options["classes"]}
        if any(c not in allowed_classes for c in classes):
            raise PermissionDenied("You can only notify classes you teach", code="target_not_allowed")
    elif classes:
        known = {c["id"] for c in ClassStoreDB.list()}
        if any(c not in known for c in classes):
            raise InvalidInput("Unknown target class", code="invalid_reference")

    notification_id = NotificationStoreDB.create(form.title.strip(), form.content.strip(), ctx.user_id,
                                                 roles, classes)
    log_event("notification_create", ctx.user_id, f"notification={notification_id} roles={','.join(roles)}")
    return NotificationStoreDB.get(notification_id)


@server_action(roles=ALL_ROLES, schema=Page)
def get_user_notifications(ctx, form: Page):
    items = visible_notifications(ctx.profile)
    start = (form.page - 1) * form.limit
    result = paginated_response(items[start:start + form.limit], len(items), form.page, form.limit)
    result["unread_count"] = sum(1 for n in items if not n["is_read"])
    return result


@server_action(roles=ALL_ROLES)
def get_unread_count(ctx, form):
    return {"count": sum(1 for n in visible_notifications(ctx.profile) if not n["is_read"])}


@server_action(roles=ALL_ROLES, schema=NotificationIdForm, revalidate=[NOTIFICATIONS_PATH])
def mark_notification_read(ctx, form: NotificationIdForm):
    if not any(n["id"] == form.notification_id for n in visible_notifications(ctx.profile)):
        raise NotFound("Notification not found")
    NotificationStoreDB.mark_read(form.notification_id, ctx.user_id)
    return {"id": form.notification_id, "is_read": True}


@server_action(roles=["admin", "teacher"], schema=NotificationIdForm, revalidate=[NOTIFICATIONS_PATH])
def delete_notification(ctx, form: NotificationIdForm):
    notification = NotificationStoreDB.get(form.notification_id)
    if not notification or not notification["is_active"]:
        raise NotFound("Notification not found")
    if ctx.role != "admin" and notification["sender_id"] != ctx.user_id:
        raise PermissionDenied("Only the sender or an admin can delete this notification")
    NotificationStoreDB.deactivate(form.notification_id)
    log_event("notification_delete", ctx.user_id, f"notification={form.notification_id}")
    return {"id": form.notification_id}
