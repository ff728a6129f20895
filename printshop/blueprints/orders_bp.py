"""
Orders Blueprint.

Endpoints:
  Orders:       GET/POST /orders, GET/DELETE /orders/<id>
                GET  /orders/<id>/timeline[?public=1&item_id=]
  Departments:  GET  /departments/<department>/items
  Items:        GET  /items/<id>
                PUT  /items/<id>/delivery-date
                PATCH /items/<id>/specifications
                POST /items/<id>/notes
  Timeline:     DELETE /timeline/<entry_id>
"""

import logging

from flask import Blueprint, jsonify, request

from printshop.blueprints import paginate_query, request_actor
from printshop.services import order_service
from printshop.utils.errors import E, api_error, register_error_handlers

logger = logging.getLogger(__name__)

orders_bp = Blueprint("orders_bp", __name__, url_prefix="/api/v1")
register_error_handlers(orders_bp)


def _flag(name: str) -> bool:
    return request.args.get(name, "").lower() in ("1", "true", "yes")


# ═════════════════════════════════════════════════════════════════════════════
# Orders
# ═════════════════════════════════════════════════════════════════════════════

@orders_bp.route("/orders", methods=["GET"])
def list_orders():
    """List open orders, newest first (``?include_completed=1`` for all)."""
    items, total = paginate_query(order_service.list_orders(_flag("include_completed")))
    return jsonify({"items": [o.to_dict(include_items=False) for o in items], "total": total})


@orders_bp.route("/orders", methods=["POST"])
def create_order():
    data = request.get_json(silent=True) or {}
    if not data.get("order_number"):
        return api_error(E.VALIDATION_REQUIRED, "order_number is required")
    order = order_service.create_order(data, request_actor(data))
    return jsonify(order.to_dict()), 201


@orders_bp.route("/orders/<int:order_id>", methods=["GET"])
def get_order(order_id):
    return jsonify(order_service.get_order(order_id).to_dict())


@orders_bp.route("/orders/<int:order_id>", methods=["DELETE"])
def delete_order(order_id):
    order_service.delete_order(order_id, request_actor())
    return jsonify({"deleted": True, "order_id": order_id}), 200


@orders_bp.route("/orders/<int:order_id>/timeline", methods=["GET"])
def order_timeline(order_id):
    """Order history; ``?public=1`` is the customer tracking view."""
    entries = order_service.get_timeline(
        order_id,
        item_id=request.args.get("item_id", type=int),
        public_only=_flag("public"),
    )
    return jsonify({"items": [e.to_dict() for e in entries], "total": len(entries)})


# ═════════════════════════════════════════════════════════════════════════════
# Department queues
# ═════════════════════════════════════════════════════════════════════════════

@orders_bp.route("/departments/<department>/items", methods=["GET"])
def department_items(department):
    items = order_service.list_department_items(department, _flag("include_completed"))
    return jsonify({"items": [i.to_dict() for i in items], "total": len(items)})


# ═════════════════════════════════════════════════════════════════════════════
# Item maintenance
# ═════════════════════════════════════════════════════════════════════════════

@orders_bp.route("/items/<int:item_id>", methods=["GET"])
def get_item(item_id):
    return jsonify(order_service.get_item(item_id).to_dict())


@orders_bp.route("/items/<int:item_id>/delivery-date", methods=["PUT"])
def update_delivery_date(item_id):
    data = request.get_json(silent=True) or {}
    if "delivery_date" not in data:
        return api_error(E.VALIDATION_REQUIRED, "delivery_date is required")
    item, warnings = order_service.update_delivery_date(item_id, request_actor(data), data["delivery_date"])
    return jsonify({"item": item.to_dict(), "warnings": warnings})


@orders_bp.route("/items/<int:item_id>/specifications", methods=["PATCH"])
def update_specifications(item_id):
    data = request.get_json(silent=True) or {}
    changes = data.get("specifications")
    if not isinstance(changes, dict):
        return api_error(E.VALIDATION_INVALID, "specifications object is required")
    item = order_service.update_specifications(item_id, request_actor(data), changes)
    return jsonify(item.to_dict())


@orders_bp.route("/items/<int:item_id>/notes", methods=["POST"])
def add_note(item_id):
    data = request.get_json(silent=True) or {}
    if not (data.get("notes") or "").strip():
        return api_error(E.VALIDATION_REQUIRED, "notes is required")
    entry = order_service.add_note(
        item_id, request_actor(data), data["notes"], is_public=bool(data.get("is_public")),
    )
    return jsonify(entry.to_dict()), 201


@orders_bp.route("/timeline/<int:entry_id>", methods=["DELETE"])
def delete_note(entry_id):
    entry = order_service.soft_delete_note(entry_id, request_actor())
    return jsonify(entry.to_dict())
