"""
Workflow Blueprint.

Endpoints:
    GET  /items/<id>/actions?role=…          actions available to a role
    POST /items/<id>/actions/<action_id>     apply an action
    POST /items/<id>/override                admin correction
    PUT  /items/<id>/sequence                admin production sequence change

Request body for actions:
    {"actor": {"id", "role", "name"}, "note": "...", "payload": {...}}
"""

import logging

from flask import Blueprint, jsonify, request

from printshop.blueprints import request_actor
from printshop.services import order_service
from printshop.services.stage_catalog import get_catalog
from printshop.services.transition_executor import apply_action
from printshop.services.workflow_rules import available_actions
from printshop.services.workflow_state import WorkflowState, effective_department
from printshop.utils.errors import E, api_error, register_error_handlers

logger = logging.getLogger(__name__)

workflow_bp = Blueprint("workflow_bp", __name__, url_prefix="/api/v1")
register_error_handlers(workflow_bp)


@workflow_bp.route("/items/<int:item_id>/actions", methods=["GET"])
def list_actions(item_id):
    """Advisory snapshot; the POST re-validates against fresh state."""
    item = order_service.get_item(item_id)
    role = request_actor()["role"]
    if not role:
        return api_error(E.VALIDATION_REQUIRED, "role is required")
    state = WorkflowState.from_item(item)
    return jsonify({
        "item_id": item.id,
        "state": {"stage": state.stage, "status": state.status, "substage": state.substage},
        "effective_department": effective_department(state),
        "role": role,
        "actions": available_actions(item, role, get_catalog()),
    })


@workflow_bp.route("/items/<int:item_id>/actions/<action_id>", methods=["POST"])
def post_action(item_id, action_id):
    data = request.get_json(silent=True) or {}
    actor = request_actor(data)
    if not actor["role"]:
        return api_error(E.VALIDATION_REQUIRED, "actor role is required")
    payload = data.get("payload") or {}
    if not isinstance(payload, dict):
        return api_error(E.VALIDATION_INVALID, "payload must be an object")
    result = apply_action(item_id, action_id, actor, note=data.get("note"), payload=payload)
    return jsonify(result.to_dict())


@workflow_bp.route("/items/<int:item_id>/override", methods=["POST"])
def override(item_id):
    data = request.get_json(silent=True) or {}
    changes = data.get("changes")
    if not isinstance(changes, dict) or not changes:
        return api_error(E.VALIDATION_REQUIRED, "changes object is required")
    item = order_service.admin_override(item_id, request_actor(data), changes, note=data.get("note"))
    return jsonify(item.to_dict())


@workflow_bp.route("/items/<int:item_id>/sequence", methods=["PUT"])
def reconfigure_sequence(item_id):
    data = request.get_json(silent=True) or {}
    if "production_stage_sequence" not in data:
        return api_error(E.VALIDATION_REQUIRED, "production_stage_sequence is required")
    item = order_service.reconfigure_sequence(
        item_id, request_actor(data), data["production_stage_sequence"], note=data.get("note"),
    )
    return jsonify(item.to_dict())
