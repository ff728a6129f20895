"""
Settings Blueprint — production stage catalog.

Endpoints:
    GET    /settings/production-stages          catalog + version
    PUT    /settings/production-stages          replace catalog (admin)
    POST   /settings/production-stages          append a stage (admin)
    DELETE /settings/production-stages/<key>    remove a stage (admin)
"""

from flask import Blueprint, jsonify, request

from printshop.blueprints import request_actor
from printshop.core.exceptions import InvalidTransitionError
from printshop.services import stage_catalog
from printshop.utils.errors import E, api_error, register_error_handlers

settings_bp = Blueprint("settings_bp", __name__, url_prefix="/api/v1/settings")
register_error_handlers(settings_bp)


def _require_admin(actor: dict, action: str):
    if actor.get("role") != "admin":
        raise InvalidTransitionError(
            stage=None, status=None, action=action, role=actor.get("role"),
            reason="requires role admin",
        )


def _catalog_response(stages=None):
    return jsonify({
        "stages": stages if stages is not None else stage_catalog.get_catalog(),
        "version": stage_catalog.get_catalog_version(),
    })


@settings_bp.route("/production-stages", methods=["GET"])
def get_stages():
    return _catalog_response()


@settings_bp.route("/production-stages", methods=["PUT"])
def save_stages():
    data = request.get_json(silent=True) or {}
    actor = request_actor(data)
    _require_admin(actor, "save_catalog")
    if not isinstance(data.get("stages"), list):
        return api_error(E.VALIDATION_REQUIRED, "stages list is required")
    return _catalog_response(stage_catalog.save_catalog(data["stages"], actor_id=actor["id"]))


@settings_bp.route("/production-stages", methods=["POST"])
def add_stage():
    data = request.get_json(silent=True) or {}
    actor = request_actor(data)
    _require_admin(actor, "add_stage")
    if not (data.get("key") or "").strip():
        return api_error(E.VALIDATION_REQUIRED, "key is required")
    stages = stage_catalog.add_stage(data["key"], data.get("label"), actor_id=actor["id"])
    return _catalog_response(stages), 201


@settings_bp.route("/production-stages/<key>", methods=["DELETE"])
def remove_stage(key):
    actor = request_actor()
    _require_admin(actor, "remove_stage")
    return _catalog_response(stage_catalog.remove_stage(key, actor_id=actor["id"]))
