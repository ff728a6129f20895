"""
Health check blueprint.

Endpoints:
    GET /api/v1/health        readiness, 200 while the process serves requests
    GET /api/v1/health/live   database round trip, stage catalog version and
                              open items per stage
"""

import logging
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import func

from printshop.models import db
from printshop.models.order import OrderItem
from printshop.services.stage_catalog import get_catalog_version

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


@health_bp.route("", methods=["GET"])
def ready():
    return jsonify({"status": "ok", "app": "Print-shop Workflow Engine"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    checks = {}
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        checks["database"] = {"status": "ok", "latency_ms": round((time.perf_counter() - t0) * 1000, 1)}

        rows = (
            db.session.query(OrderItem.current_stage, func.count(OrderItem.id))
            .filter(OrderItem.current_stage != "completed")
            .group_by(OrderItem.current_stage)
            .all()
        )
        checks["workflow"] = {"status": "ok", "open_items": {stage: n for stage, n in rows}}
        checks["stage_catalog"] = {"status": "ok", "version": get_catalog_version()}
    except Exception as exc:
        db.session.rollback()
        logger.error("Health check failed: %s", exc)
        checks["database"] = {"status": "error", "detail": str(exc)}
        return jsonify({"status": "degraded", "checks": checks}), 503

    checks["app"] = {"debug": current_app.debug, "testing": current_app.testing}
    return jsonify({"status": "ok", "checks": checks}), 200
