"""
Workflow Transition Executor.

Applies one action to one item:

    1. Load the item fresh (never trust the client's view of it)
    2. Validate the action against the rule table for (state, role)
    3. Pre-checks (note requirement, payload)
    4. Compute the field patch through the action's handler
    5. Apply the patch and derive notification side effects
    6. Append exactly one timeline entry
    7. Commit item + timeline together
    8. Dispatch side effects (post-commit, failures become warnings)

Concurrency: ``order_items.version_id`` makes every UPDATE a compare-and-
swap.  A stale write rolls the session back, re-reads, re-validates and
retries ``WORKFLOW_CONCURRENCY_RETRIES`` times before raising
``ConcurrentModificationError``.

Usage:
    from printshop.services.transition_executor import apply_action

    result = apply_action(
        item_id=42,
        action_id="send_for_approval",
        actor={"id": "u-7", "role": "design", "name": "Asha"},
        note="Proof v2 attached",
    )
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from flask import current_app
from sqlalchemy.orm.exc import StaleDataError

from printshop.core.exceptions import (
    ConcurrentModificationError,
    InvalidTransitionError,
    MissingReferenceError,
    ValidationError,
)
from printshop.models import db
from printshop.models.order import DEPARTMENTS, OrderItem
from printshop.models.timeline import write_timeline
from printshop.services import approval_loop, outsource_lifecycle, substage_sequencer
from printshop.services.inventory import parse_material
from printshop.services.side_effects import SideEffect, dispatch_side_effects, notify, reserve
from printshop.services.stage_catalog import default_sequence, get_catalog, stage_label, validate_sequence
from printshop.services.workflow_rules import ActionId, ActionRule, RuleContext, validate_action
from printshop.services.workflow_state import STAGE_DEPARTMENT, WorkflowState

logger = logging.getLogger(__name__)


@dataclass
class TransitionResult:
    """Outcome of one committed action."""

    item: dict
    timeline_entry: dict
    side_effects: list[SideEffect] = field(default_factory=list)
    warnings: list[dict] = field(default_factory=list)
    attempts: int = 1

    def to_dict(self) -> dict:
        return {
            "item": self.item,
            "timeline_entry": self.timeline_entry,
            "side_effects": [e.to_dict() for e in self.side_effects],
            "warnings": self.warnings,
            "attempts": self.attempts,
        }


@dataclass
class _Call:
    item: OrderItem
    state: WorkflowState
    rule: ActionRule
    actor: dict
    payload: dict


# ── Item transaction with optimistic retry ───────────────────────────────────


def _load_item(item_id) -> OrderItem:
    item = db.session.get(OrderItem, item_id)
    if item is None:
        raise MissingReferenceError(resource="OrderItem", resource_id=item_id)
    return item


def run_item_transaction(item_id, work: Callable[[OrderItem], tuple]) -> tuple:
    """Run ``work(item)`` and commit, retrying on a stale item write.

    ``work`` must only flush; it is re-run from a fresh read on retry, so it
    re-validates against the state that actually won.

    Returns:
        (work_result, attempts)
    """
    retries = current_app.config.get("WORKFLOW_CONCURRENCY_RETRIES", 1)
    attempt = 0
    while True:
        attempt += 1
        try:
            result = work(_load_item(item_id))
            db.session.commit()
            return result, attempt
        except StaleDataError:
            db.session.rollback()
            if attempt > retries:
                logger.warning(
                    "Concurrent modification on item %s after %d attempts", item_id, attempt,
                    extra={"item_id": item_id, "attempt": attempt},
                )
                raise ConcurrentModificationError(item_id, attempts=attempt)
            logger.info(
                "Stale write on item %s, re-reading (attempt %d)", item_id, attempt,
                extra={"item_id": item_id, "attempt": attempt},
            )
        except Exception:
            db.session.rollback()
            raise


def apply_patch(item: OrderItem, patch: dict) -> dict:
    """Set fields from ``patch``; return the previous values of changed fields."""
    before = {}
    for key, value in patch.items():
        before[key] = getattr(item, key)
        setattr(item, key, value)
    item.updated_at = datetime.now(timezone.utc)
    return before


def refresh_order_completion(item: OrderItem) -> None:
    order = item.order
    if order is not None and order.items:
        order.is_completed = all(i.current_stage == "completed" for i in order.items)


# ── Action handlers ──────────────────────────────────────────────────────────
# Each returns (patch, side_effects, summary).


def _move(call: _Call):
    rule = call.rule
    patch = {}
    if rule.result_stage:
        patch["current_stage"] = rule.result_stage
    if rule.result_status:
        patch["status"] = rule.result_status
    if rule.result_stage and rule.result_stage != "production":
        patch.update({"current_substage": None, "substage_status": None, "substage_started_at": None})
    return patch, [], f"{rule.label}: moved to {rule.result_stage or call.state.stage}"


def _upload_design(call: _Call):
    file_name = (call.payload.get("file_name") or "").strip()
    if not file_name:
        raise ValidationError("file_name is required", details={"file_name": "required"})
    specs = dict(call.item.specifications or {})
    files = list(specs.get("design_files") or [])
    files.append({
        "file_name": file_name,
        "file_url": call.payload.get("file_url"),
        "uploaded_by": call.actor.get("id"),
        "uploaded_at": datetime.now(timezone.utc).isoformat(),
    })
    specs["design_files"] = files
    return {"specifications": specs}, [], f"Design uploaded: {file_name}"


def _enter_approval(call: _Call):
    order = call.item.order
    patch = approval_loop.enter_pending(
        call.state, call.item.assigned_to,
        sales_owner=order.assigned_user if order else None,
        action=call.rule.id.value, role=call.actor.get("role"),
        assigned_to_name=call.item.assigned_to_name,
    )
    verb = "Revision sent" if call.rule.id == ActionId.RESUBMIT_FOR_APPROVAL else "Sent"
    return patch, [], f"{verb} for customer approval from {patch['previous_department']}"


def _approve(call: _Call):
    patch = approval_loop.approve(call.state, role=call.actor.get("role"))
    if patch["current_stage"] == call.item.previous_department:
        patch["assigned_to"] = call.item.previous_assigned_to
        patch["assigned_to_name"] = call.item.previous_assigned_to_name
    return patch, [], f"Customer approved, routed to {patch['current_stage']}"


def _request_revision(call: _Call):
    patch = approval_loop.request_revision(
        call.state, call.item.previous_department, call.item.previous_assigned_to,
        role=call.actor.get("role"),
        previous_assigned_to_name=call.item.previous_assigned_to_name,
    )
    return patch, [], f"Customer requested revision, returned to {patch['current_stage']}"


def _production_sequence(payload: dict) -> list[str]:
    catalog = get_catalog()
    if payload.get("sequence") is not None:
        return validate_sequence(payload["sequence"], catalog)
    return default_sequence(catalog)


def _send_to_production(call: _Call):
    material = parse_material(call.payload.get("material"))
    sequence = _production_sequence(call.payload)
    patch = substage_sequencer.enter_production(sequence)
    patch["status"] = "production_in_progress"

    effects = []
    if material:
        effects.append(reserve(
            call.item.id, material["name"], material["quantity"],
            order_id=call.item.order_id, reserved_by=call.actor.get("id"),
        ))
    return patch, effects, f"Sent to production: {' → '.join(sequence)}"


def _assign_outsource(call: _Call):
    moves = current_app.config.get("OUTSOURCE_MOVES_STAGE", True)
    patch = outsource_lifecycle.assign_outsource(call.payload, call.actor, moves_stage=moves)
    vendor = patch["outsource_info"]["vendor"]["vendor_name"]
    return patch, [], f"Outsourced to {vendor}"


def _start_substage(call: _Call):
    patch = substage_sequencer.start_substage(call.state, call.payload.get("substage"))
    return patch, [], f"Started {stage_label(call.state.substage)}"


def _complete_substage(call: _Call):
    patch = substage_sequencer.complete_substage(call.state)
    minutes = substage_sequencer.substage_duration_minutes(call.item.substage_started_at)
    summary = f"Completed {stage_label(call.state.substage)}"
    if minutes is not None:
        summary += f" in {minutes} min"
    if patch.get("current_stage") == "dispatch":
        summary += ", ready for dispatch"
    return patch, [], summary


def _mark_dispatched(call: _Call):
    patch, _, _ = _move(call)
    courier = (call.payload.get("courier") or "").strip()
    tracking = (call.payload.get("tracking_number") or "").strip()
    summary = "Dispatched"
    if courier:
        summary += f" via {courier}"
    if tracking:
        summary += f" (tracking {tracking})"
    return patch, [], summary


def _vendor_step(call: _Call):
    patch = outsource_lifecycle.advance(call.rule.id.value, call.item.outsource_info)
    to = patch["outsource_info"]["current_outsource_stage"]
    return patch, [], f"Outsource stage: {outsource_lifecycle.OUTSOURCE_STAGE_LABELS[to]}"


def _record_qc_result(call: _Call):
    patch = outsource_lifecycle.record_qc_result(call.item.outsource_info, call.payload)
    result = patch["outsource_info"]["qc_result"]
    return patch, [], f"Quality check {'passed' if result == 'pass' else 'failed, back to vendor'}"


def _post_qc_decision(call: _Call):
    decision, patch = outsource_lifecycle.post_qc_decision(call.item.outsource_info, call.payload)
    if decision == "production":
        patch.update(substage_sequencer.enter_production(_production_sequence(call.payload)))
        patch["status"] = "production_in_progress"
    else:
        patch.update({"current_stage": "dispatch", "status": "ready_for_dispatch"})
    return patch, [], f"After QC: sent to {decision}"


_ACTION_HANDLERS = {
    ActionId.ASSIGN_DESIGN: _move,
    ActionId.MARK_DESIGN_NOT_REQUIRED: _move,
    ActionId.APPROVE: _approve,
    ActionId.REQUEST_REVISION: _request_revision,
    ActionId.UPLOAD_DESIGN: _upload_design,
    ActionId.SEND_FOR_APPROVAL: _enter_approval,
    ActionId.RESUBMIT_FOR_APPROVAL: _enter_approval,
    ActionId.ASSIGN_PREPRESS: _move,
    ActionId.SEND_TO_PRODUCTION: _send_to_production,
    ActionId.MARK_COMPLETE: _move,
    ActionId.SEND_FOR_REVISION: _move,
    ActionId.ASSIGN_OUTSOURCE: _assign_outsource,
    ActionId.START_SUBSTAGE: _start_substage,
    ActionId.COMPLETE_SUBSTAGE: _complete_substage,
    ActionId.MARK_COMPLETED: _move,
    ActionId.MARK_DISPATCHED: _mark_dispatched,
    ActionId.VENDOR_START: _vendor_step,
    ActionId.VENDOR_DISPATCH: _vendor_step,
    ActionId.RECEIVE_FROM_VENDOR: _vendor_step,
    ActionId.START_QUALITY_CHECK: _vendor_step,
    ActionId.RECORD_QC_RESULT: _record_qc_result,
    ActionId.POST_QC_DECISION: _post_qc_decision,
}

if set(_ACTION_HANDLERS) != set(ActionId):
    raise RuntimeError("Every ActionId needs a transition handler")


def _with_department_change(patch: dict, before_stage: str, payload: dict) -> dict:
    """Fill in view department and owner when the item changes hands."""
    stage = patch.get("current_stage")
    if not stage or stage == before_stage:
        return patch
    if "assigned_department" not in patch:
        patch["assigned_department"] = stage if stage in DEPARTMENTS else None
    if "assigned_to" not in patch and STAGE_DEPARTMENT.get(stage) != STAGE_DEPARTMENT.get(before_stage):
        patch["assigned_to"] = payload.get("assigned_to")
        patch["assigned_to_name"] = payload.get("assigned_to_name")
    return patch


def _notification_effects(item: OrderItem, before: dict, actor_id) -> list[SideEffect]:
    """Who hears about this transition."""
    effects = []
    notified = {actor_id}
    order = item.order
    sales_owner = order.assigned_user if order else None
    label = f"{order.order_number if order else item.order_id} / {item.product_name}"

    entered_pending = (
        item.status == approval_loop.PENDING
        and before.get("status", item.status) != approval_loop.PENDING
    )
    if entered_pending and sales_owner and sales_owner not in notified:
        effects.append(notify(
            sales_owner, "Customer approval pending",
            f"{label} is waiting for customer approval",
            order_id=item.order_id, item_id=item.id,
        ))
        notified.add(sales_owner)

    entered_dispatch = (
        item.current_stage == "dispatch"
        and before.get("current_stage", item.current_stage) != "dispatch"
    )
    if entered_dispatch and sales_owner and sales_owner not in notified:
        effects.append(notify(
            sales_owner, "Ready for Dispatch",
            f"{label} has finished production",
            type="success", order_id=item.order_id, item_id=item.id,
        ))
        notified.add(sales_owner)

    old_assignee = before.get("assigned_to", item.assigned_to)
    if item.assigned_to and item.assigned_to != old_assignee and item.assigned_to not in notified:
        effects.append(notify(
            item.assigned_to, "New item assigned",
            f"{label} is now with {item.current_stage}",
            order_id=item.order_id, item_id=item.id,
        ))
    return effects


# ── Public API ───────────────────────────────────────────────────────────────


def apply_action(item_id, action_id, actor: dict, *, note: str | None = None,
                 payload: dict | None = None) -> TransitionResult:
    """
    Execute one workflow action on an item.

    Args:
        item_id: OrderItem id.
        action_id: ``ActionId`` or its string value.
        actor: {"id", "role", "name"}; role drives the rule table.
        note: Optional human-readable annotation (required when
            ``WORKFLOW_NOTE_REQUIRED`` is set).
        payload: Action-specific data (sequence, material, vendor, QC result,
            target user ``assigned_to`` / ``assigned_to_name``).

    Returns:
        TransitionResult (item state, timeline entry, side effects, warnings)

    Raises:
        MissingReferenceError, InvalidTransitionError, ValidationError,
        ConcurrentModificationError
    """
    payload = payload or {}
    actor = actor or {}
    role = actor.get("role")
    note = (note or "").strip() or None

    def work(item: OrderItem):
        state = WorkflowState.from_item(item)

        # 1. Validate against the fresh state
        validation = validate_action(state, action_id, role, RuleContext.from_item(item))
        if not validation["valid"]:
            raise InvalidTransitionError(
                stage=state.stage, status=state.status,
                action=str(getattr(action_id, "value", action_id)), role=role,
                reason=validation["reason"],
            )
        rule = validation["rule"]

        # 2. Pre-checks
        if note is None and current_app.config.get("WORKFLOW_NOTE_REQUIRED"):
            raise ValidationError("A note is required for workflow actions", details={"note": "required"})

        # 3. Compute patch
        call = _Call(item=item, state=state, rule=rule, actor=actor, payload=payload)
        patch, effects, summary = _ACTION_HANDLERS[rule.id](call)
        patch = _with_department_change(patch, state.stage, payload)

        # 4. Execute
        before = apply_patch(item, patch)
        item.last_workflow_note = note or summary
        if item.current_stage == "completed":
            refresh_order_completion(item)
        effects = effects + _notification_effects(item, before, actor.get("id"))

        # 5. Timeline
        entry = write_timeline(
            order_id=item.order_id,
            item_id=item.id,
            stage=item.current_stage,
            substage=item.current_substage,
            action=rule.id.value,
            performed_by=actor.get("id"),
            performed_by_name=actor.get("name"),
            notes=f"{summary}: {note}" if note else summary,
            is_public=rule.public,
        )
        return item, entry, effects, rule

    (item, entry, effects, rule), attempts = run_item_transaction(item_id, work)

    logger.info(
        "Workflow action %s applied to item %s → %s/%s",
        rule.id.value, item.id, item.current_stage, item.status,
        extra={"order_id": item.order_id, "item_id": item.id,
               "action": rule.id.value, "actor_id": actor.get("id")},
    )

    item_dict = item.to_dict()
    entry_dict = entry.to_dict()
    warnings = dispatch_side_effects(effects)
    return TransitionResult(
        item=item_dict,
        timeline_entry=entry_dict,
        side_effects=effects,
        warnings=warnings,
        attempts=attempts,
    )
