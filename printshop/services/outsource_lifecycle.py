"""
Outsource job progression.

Only the state field ``outsource_info.current_outsource_stage`` is tracked;
vendor bookkeeping (payments, follow-up scheduling) lives elsewhere.

    outsourced → vendor_in_progress → vendor_dispatched → received_from_vendor
               → quality_check ──pass──▶ decision_pending ──▶ production | dispatch
                               └─fail──▶ vendor_in_progress

Usage:
    from printshop.services.outsource_lifecycle import assign_outsource

    patch = assign_outsource(payload, actor, moves_stage=True)
"""

from datetime import datetime, timezone

from printshop.core.exceptions import ValidationError

OUTSOURCE_STAGES = (
    "outsourced",
    "vendor_in_progress",
    "vendor_dispatched",
    "received_from_vendor",
    "quality_check",
    "decision_pending",
    "closed",
)

OUTSOURCE_STAGE_LABELS = {
    "outsourced": "Outsourced",
    "vendor_in_progress": "Vendor In Progress",
    "vendor_dispatched": "Vendor Dispatched",
    "received_from_vendor": "Received from Vendor",
    "quality_check": "Quality Check",
    "decision_pending": "Decision Pending",
    "closed": "Closed",
}

# Fixed-step actions
OUTSOURCE_TRANSITIONS = {
    "vendor_start": {"from": ["outsourced"], "to": "vendor_in_progress"},
    "vendor_dispatch": {"from": ["vendor_in_progress"], "to": "vendor_dispatched"},
    "receive_from_vendor": {"from": ["vendor_dispatched"], "to": "received_from_vendor"},
    "start_quality_check": {"from": ["received_from_vendor"], "to": "quality_check"},
}

QC_RESULTS = {"pass": "decision_pending", "fail": "vendor_in_progress"}
POST_QC_DECISIONS = ("production", "dispatch")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def assign_outsource(payload: dict, actor: dict, *, moves_stage: bool) -> dict:
    """Patch opening an outsource job for an item in prepress.

    Payload:
        vendor: {vendor_name (required), vendor_company, contact_person, phone, email, city}
        job_details: {work_type, expected_ready_date, quantity_sent, special_instructions}
    """
    vendor = payload.get("vendor") or {}
    if not (vendor.get("vendor_name") or "").strip():
        raise ValidationError("vendor.vendor_name is required", details={"vendor": "vendor_name required"})

    info = {
        "vendor": {
            "vendor_name": vendor["vendor_name"].strip(),
            "vendor_company": vendor.get("vendor_company", ""),
            "contact_person": vendor.get("contact_person", ""),
            "phone": vendor.get("phone", ""),
            "email": vendor.get("email", ""),
            "city": vendor.get("city", ""),
        },
        "job_details": dict(payload.get("job_details") or {}),
        "current_outsource_stage": "outsourced",
        "assigned_at": _now_iso(),
        "assigned_by": actor.get("id"),
        "assigned_by_name": actor.get("name"),
    }
    patch = {"outsource_info": info, "status": "outsourced"}
    if moves_stage:
        patch["current_stage"] = "outsource"
        patch["assigned_department"] = "outsource"
    return patch


def _advance(info: dict, to: str, **extra) -> dict:
    updated = dict(info or {})
    updated.update(extra)
    updated["current_outsource_stage"] = to
    updated["updated_at"] = _now_iso()
    return {"outsource_info": updated}


def advance(action: str, info: dict) -> dict:
    """Patch for one of the fixed vendor steps."""
    rule = OUTSOURCE_TRANSITIONS[action]
    current = (info or {}).get("current_outsource_stage")
    if current not in rule["from"]:
        raise ValidationError(f"Cannot '{action}' from outsource stage '{current}'")
    return _advance(info, rule["to"])


def record_qc_result(info: dict, payload: dict) -> dict:
    result = (payload.get("result") or "").lower()
    if result not in QC_RESULTS:
        raise ValidationError("result must be 'pass' or 'fail'", details={"result": payload.get("result")})
    return _advance(info, QC_RESULTS[result], qc_result=result, qc_notes=payload.get("notes", ""))


def post_qc_decision(info: dict, payload: dict) -> tuple[str, dict]:
    """Close the outsource job.

    Returns:
        (decision, patch) where decision is "production" or "dispatch"; the
        executor adds the stage-specific fields.
    """
    decision = payload.get("decision")
    if decision not in POST_QC_DECISIONS:
        raise ValidationError(
            "decision must be 'production' or 'dispatch'",
            details={"decision": decision},
        )
    return decision, _advance(info, "closed", decision=decision)
