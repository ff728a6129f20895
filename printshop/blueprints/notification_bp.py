"""
Notification Blueprint.

Endpoints:
    GET  /notifications?user_id=…[&unread_only=1]
    GET  /notifications/unread-count?user_id=…
    POST /notifications/<id>/read
    POST /notifications/read-all   {"user_id": …}
"""

from flask import Blueprint, jsonify, request

from printshop.blueprints import request_actor
from printshop.core.exceptions import NotFoundError
from printshop.services.notification import NotificationService
from printshop.utils.errors import E, api_error, register_error_handlers

notification_bp = Blueprint("notification_bp", __name__, url_prefix="/api/v1/notifications")
register_error_handlers(notification_bp)


def _user_id(data: dict | None = None):
    data = data or {}
    return data.get("user_id") or request.args.get("user_id") or request_actor(data)["id"]


@notification_bp.route("", methods=["GET"])
def list_notifications():
    user_id = _user_id()
    if not user_id:
        return api_error(E.VALIDATION_REQUIRED, "user_id is required")
    unread_only = request.args.get("unread_only", "").lower() in ("1", "true")
    limit = min(request.args.get("limit", 50, type=int), 200)
    offset = max(request.args.get("offset", 0, type=int), 0)
    items, total = NotificationService.list_for_user(user_id, unread_only, limit, offset)
    return jsonify({"items": [n.to_dict() for n in items], "total": total})


@notification_bp.route("/unread-count", methods=["GET"])
def unread_count():
    user_id = _user_id()
    if not user_id:
        return api_error(E.VALIDATION_REQUIRED, "user_id is required")
    return jsonify({"user_id": user_id, "unread": NotificationService.unread_count(user_id)})


@notification_bp.route("/<int:notification_id>/read", methods=["POST"])
def mark_read(notification_id):
    notif = NotificationService.mark_read(notification_id)
    if notif is None:
        raise NotFoundError(resource="Notification", resource_id=notification_id)
    return jsonify(notif.to_dict())


@notification_bp.route("/read-all", methods=["POST"])
def mark_all_read():
    data = request.get_json(silent=True) or {}
    user_id = _user_id(data)
    if not user_id:
        return api_error(E.VALIDATION_REQUIRED, "user_id is required")
    return jsonify({"marked": NotificationService.mark_all_read(user_id)})
