"""
Project Approval Portal
Notification inbox Blueprint.

Endpoints:
    GET  /api/v1/notifications               — current user's inbox (?unread_only=, limit, offset)
    POST /api/v1/notifications/<id>/read     — mark one as read
    POST /api/v1/notifications/read-all      — mark all as read
"""

from flask import Blueprint, request

from portal.auth import current_user
from portal.core.exceptions import NotFoundError
from portal.services.notification import NotificationService
from portal.utils.errors import api_success, register_error_handlers

notification_bp = Blueprint("notifications", __name__, url_prefix="/api/v1/notifications")
register_error_handlers(notification_bp)


@notification_bp.route("", methods=["GET"])
def list_notifications():
    user = current_user()
    unread_only = request.args.get("unread_only", "false").lower() in ("1", "true", "yes")
    limit = min(request.args.get("limit", 50, type=int), 200)
    offset = max(request.args.get("offset", 0, type=int), 0)
    items, total = NotificationService.list_for_recipient(
        user.id,
        project_id=request.args.get("project_id", type=int),
        unread_only=unread_only,
        limit=limit,
        offset=offset,
    )
    return api_success(
        [n.to_dict() for n in items],
        total=total,
        unread_count=NotificationService.unread_count(user.id),
    )


@notification_bp.route("/<int:notification_id>/read", methods=["POST"])
def mark_read(notification_id):
    notif = NotificationService.mark_read(notification_id, current_user().id)
    if notif is None:
        raise NotFoundError(resource="Notification", resource_id=notification_id)
    return api_success(notif.to_dict(), "Notification marked as read")


@notification_bp.route("/read-all", methods=["POST"])
def mark_all_read():
    count = NotificationService.mark_all_read(current_user().id)
    return api_success({"marked_read": count})
