"""School announcement routes."""

from __future__ import annotations

from flask import Blueprint, request

from actions import notifications
from helpers import paginate_args, run_action

bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@bp.route("", methods=["GET", "POST"])
def api_notifications():
    if request.method == "POST":
        return run_action(notifications.create_notification)
    page, limit = paginate_args(default_limit=20, max_limit=50)
    return run_action(notifications.get_user_notifications, {"page": page, "limit": limit})


@bp.route("/unread-count")
def api_notifications_unread():
    return run_action(notifications.get_unread_count)


@bp.route("/target-options")
def api_notification_targets():
    return run_action(notifications.get_notification_target_options)


@bp.route("/<int:notification_id>/read", methods=["POST"])
def api_notification_read(notification_id):
    return run_action(notifications.mark_notification_read, {"notification_id": notification_id})


@bp.route("/<int:notification_id>", methods=["DELETE"])
def api_notification_delete(notification_id):
    return run_action(notifications.delete_notification, {"notification_id": notification_id})
