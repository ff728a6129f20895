"""
Customer-approval loop.

    none ──send_for_approval / resubmit──▶ pending_for_customer_approval
    pending ──approve──▶ approved   → design (need_design) | prepress
    pending ──request_revision──▶ rejected → previous_department | design

Entering pending always moves the item to sales and snapshots where it
came from (``previous_department`` and the previous assignee id and name) so the
rejection can be routed back to the same desk.  Entering pending twice is
refused even on direct calls.
"""

from printshop.core.exceptions import InvalidTransitionError
from printshop.services.workflow_state import WorkflowState, effective_department

PENDING = "pending_for_customer_approval"
APPROVED = "approved"
REJECTED = "rejected"

RETURN_DEPARTMENTS = ("design", "prepress")


def enter_pending(state: WorkflowState, assigned_to: str | None, sales_owner: str | None = None,
                  action: str = "send_for_approval", role: str | None = None,
                  assigned_to_name: str | None = None) -> dict:
    """Patch sending the item to sales for customer sign-off."""
    if state.is_pending_approval:
        raise InvalidTransitionError(
            stage=state.stage, status=state.status, action=action, role=role,
            reason="already pending customer approval",
        )
    return {
        "previous_department": effective_department(state),
        "previous_assigned_to": assigned_to,
        "previous_assigned_to_name": assigned_to_name,
        "current_stage": "sales",
        "assigned_department": "sales",
        "status": PENDING,
        "assigned_to": sales_owner,
        "assigned_to_name": None,
    }


def _require_pending(state: WorkflowState, action: str, role: str | None):
    if not state.is_pending_approval:
        raise InvalidTransitionError(
            stage=state.stage, status=state.status, action=action, role=role,
            reason="not pending customer approval",
        )


def approve(state: WorkflowState, role: str | None = "sales") -> dict:
    """Route forward: design when the item needs design, prepress otherwise."""
    _require_pending(state, "approve", role)
    target = "design" if state.need_design else "prepress"
    return {
        "current_stage": target,
        "assigned_department": target,
        "status": APPROVED,
    }


def request_revision(state: WorkflowState, previous_department: str | None,
                     previous_assigned_to: str | None, role: str | None = "sales",
                     previous_assigned_to_name: str | None = None) -> dict:
    """Route back to the desk that sent it (design when unknown)."""
    _require_pending(state, "request_revision", role)
    target = previous_department if previous_department in RETURN_DEPARTMENTS else "design"
    return {
        "current_stage": target,
        "assigned_department": target,
        "status": REJECTED,
        "assigned_to": previous_assigned_to,
        "assigned_to_name": previous_assigned_to_name,
    }
