"""
Workflow rule table.

Closed set of actions (``ActionId``) each carrying its gate and result as
data (``ActionRule``).  ``available_actions`` is the only place that decides
what a role may do with an item; the executor re-derives it on every call.

Role gate:
    The action set is chosen by the department implied by ``current_stage``
    (``effective_department``), never by ``assigned_department``.  A
    non-admin role sees actions only when it IS that department; admin
    satisfies every gate and is shown exactly the department's set.

Rules (stage / precondition → result):

    sales       new_order, need_design        assign_design            → design
    sales       new_order, no design          mark_design_not_required → prepress
    sales       pending approval              approve                  → design | prepress, approved
    sales       pending approval              request_revision         → previous dept | design, rejected
    design      —                             upload_design            (no stage change)
    design/pp   not rejected, not pending     send_for_approval        → sales, pending
    design/pp   rejected                      resubmit_for_approval    → sales, pending
    design      —                             assign_prepress          → prepress
    design/pp   —                             send_to_production       → production, first substage
    design      design-only order             mark_complete            → completed
    prepress    —                             send_for_revision        → design, revision_requested
    prepress    no outsource job              assign_outsource         → outsource | prepress
    production  substage not in progress      start_substage
    production  substage in progress          complete_substage        → next | dispatch
    production  no substage                   mark_completed           → dispatch
    dispatch    —                             mark_dispatched          → completed, dispatched
    outsource   vendor progression            vendor_start … post_qc_decision
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable

from printshop.models.order import ROLES
from printshop.services.stage_catalog import stage_label
from printshop.services.workflow_state import WorkflowState, effective_department

ADMIN_ROLE = "admin"

PENDING_APPROVAL = "pending_for_customer_approval"
NEW_STATUSES = (None, "", "new_order")


class ActionId(str, Enum):
    ASSIGN_DESIGN = "assign_design"
    MARK_DESIGN_NOT_REQUIRED = "mark_design_not_required"
    APPROVE = "approve"
    REQUEST_REVISION = "request_revision"
    UPLOAD_DESIGN = "upload_design"
    SEND_FOR_APPROVAL = "send_for_approval"
    RESUBMIT_FOR_APPROVAL = "resubmit_for_approval"
    ASSIGN_PREPRESS = "assign_prepress"
    SEND_TO_PRODUCTION = "send_to_production"
    MARK_COMPLETE = "mark_complete"
    SEND_FOR_REVISION = "send_for_revision"
    ASSIGN_OUTSOURCE = "assign_outsource"
    START_SUBSTAGE = "start_substage"
    COMPLETE_SUBSTAGE = "complete_substage"
    MARK_COMPLETED = "mark_completed"
    MARK_DISPATCHED = "mark_dispatched"
    VENDOR_START = "vendor_start"
    VENDOR_DISPATCH = "vendor_dispatch"
    RECEIVE_FROM_VENDOR = "receive_from_vendor"
    START_QUALITY_CHECK = "start_quality_check"
    RECORD_QC_RESULT = "record_qc_result"
    POST_QC_DECISION = "post_qc_decision"


@dataclass(frozen=True)
class RuleContext:
    """Order-level facts a precondition may read."""

    requires_downstream_departments: bool = True

    @classmethod
    def from_item(cls, item) -> "RuleContext":
        order = getattr(item, "order", None)
        if order is None or order.requires_downstream_departments is None:
            return cls()
        return cls(requires_downstream_departments=bool(order.requires_downstream_departments))


def _always(state: WorkflowState, ctx: RuleContext) -> bool:
    return True


@dataclass(frozen=True)
class ActionRule:
    """One legal action.

    ``result_stage`` / ``result_status`` of ``None`` mean "computed by the
    handler" (approval routing, substage advance) or "unchanged".
    """

    id: ActionId
    label: str
    stages: frozenset
    roles: frozenset
    precondition: Callable[[WorkflowState, RuleContext], bool] = _always
    requires: str = ""
    result_stage: str | None = None
    result_status: str | None = None
    public: bool = True

    def allows(self, state: WorkflowState, ctx: RuleContext) -> bool:
        return state.stage in self.stages and self.precondition(state, ctx)

    def to_dict(self) -> dict:
        return {
            "id": self.id.value,
            "label": self.label,
            "required_roles": sorted(self.roles),
            "preconditions": self.requires or None,
            "resulting_stage": self.result_stage,
            "resulting_status": self.result_status,
            "public": self.public,
        }


def _outsource_at(step: str) -> Callable[[WorkflowState, RuleContext], bool]:
    def check(state: WorkflowState, ctx: RuleContext) -> bool:
        return state.outsource_stage == step
    return check


_RULE_LIST = [
    # ── Sales ────────────────────────────────────────────────────────────
    ActionRule(
        ActionId.ASSIGN_DESIGN, "Assign to Design",
        frozenset({"sales"}), frozenset({"sales"}),
        lambda s, c: s.status in NEW_STATUSES and s.need_design,
        requires="new order that needs design",
        result_stage="design", result_status="design_in_progress",
    ),
    ActionRule(
        ActionId.MARK_DESIGN_NOT_REQUIRED, "Design Not Required",
        frozenset({"sales"}), frozenset({"sales"}),
        lambda s, c: s.status in NEW_STATUSES and not s.need_design,
        requires="new order without design",
        result_stage="prepress", result_status="prepress_in_progress",
    ),
    ActionRule(
        ActionId.APPROVE, "Approve",
        frozenset({"sales"}), frozenset({"sales"}),
        lambda s, c: s.is_pending_approval,
        requires="pending customer approval",
        result_status="approved",
    ),
    ActionRule(
        ActionId.REQUEST_REVISION, "Request Revision",
        frozenset({"sales"}), frozenset({"sales"}),
        lambda s, c: s.is_pending_approval,
        requires="pending customer approval",
        result_status="rejected",
    ),
    # ── Design / prepress ────────────────────────────────────────────────
    ActionRule(
        ActionId.UPLOAD_DESIGN, "Upload Design",
        frozenset({"design"}), frozenset({"design"}),
        public=False,
    ),
    ActionRule(
        ActionId.SEND_FOR_APPROVAL, "Send for Approval",
        frozenset({"design", "prepress"}), frozenset({"design", "prepress"}),
        lambda s, c: s.status != "rejected" and not s.is_pending_approval,
        requires="no rejection pending",
        result_stage="sales", result_status=PENDING_APPROVAL,
    ),
    ActionRule(
        ActionId.RESUBMIT_FOR_APPROVAL, "Send Revision",
        frozenset({"design", "prepress"}), frozenset({"design", "prepress"}),
        lambda s, c: s.status == "rejected",
        requires="rejected by the customer",
        result_stage="sales", result_status=PENDING_APPROVAL,
    ),
    ActionRule(
        ActionId.ASSIGN_PREPRESS, "Assign to Prepress",
        frozenset({"design"}), frozenset({"design"}),
        result_stage="prepress", result_status="prepress_in_progress",
    ),
    ActionRule(
        ActionId.SEND_TO_PRODUCTION, "Send to Production",
        frozenset({"design", "prepress"}), frozenset({"design", "prepress"}),
        result_stage="production", result_status="production_in_progress",
    ),
    ActionRule(
        ActionId.MARK_COMPLETE, "Mark Complete",
        frozenset({"design"}), frozenset({"design"}),
        lambda s, c: not c.requires_downstream_departments,
        requires="design-only order",
        result_stage="completed", result_status="completed",
    ),
    ActionRule(
        ActionId.SEND_FOR_REVISION, "Send for Revision",
        frozenset({"prepress"}), frozenset({"prepress"}),
        result_stage="design", result_status="revision_requested",
    ),
    ActionRule(
        ActionId.ASSIGN_OUTSOURCE, "Assign to Outsource",
        frozenset({"prepress"}), frozenset({"prepress"}),
        lambda s, c: s.outsource_stage in (None, "closed"),
        requires="no active outsource job",
        result_status="outsourced",
    ),
    # ── Production ───────────────────────────────────────────────────────
    ActionRule(
        ActionId.START_SUBSTAGE, "Start Stage",
        frozenset({"production"}), frozenset({"production"}),
        lambda s, c: s.has_substage and s.substage_status != "in_progress",
        requires="substage not already in progress",
    ),
    ActionRule(
        ActionId.COMPLETE_SUBSTAGE, "Complete Stage",
        frozenset({"production"}), frozenset({"production"}),
        lambda s, c: s.has_substage and s.substage_status == "in_progress",
        requires="substage in progress",
    ),
    ActionRule(
        ActionId.MARK_COMPLETED, "Mark Production Complete",
        frozenset({"production"}), frozenset({"production"}),
        lambda s, c: not s.has_substage,
        requires="no production substage",
        result_stage="dispatch", result_status="ready_for_dispatch",
    ),
    ActionRule(
        ActionId.MARK_DISPATCHED, "Mark Dispatched",
        frozenset({"dispatch"}), frozenset({"production"}),
        result_stage="completed", result_status="dispatched",
    ),
    # ── Outsource ────────────────────────────────────────────────────────
    ActionRule(
        ActionId.VENDOR_START, "Vendor Started",
        frozenset({"outsource", "prepress"}), frozenset({"prepress"}),
        _outsource_at("outsourced"), requires="outsourced",
    ),
    ActionRule(
        ActionId.VENDOR_DISPATCH, "Vendor Dispatched",
        frozenset({"outsource", "prepress"}), frozenset({"prepress"}),
        _outsource_at("vendor_in_progress"), requires="vendor in progress",
    ),
    ActionRule(
        ActionId.RECEIVE_FROM_VENDOR, "Receive from Vendor",
        frozenset({"outsource", "prepress"}), frozenset({"prepress"}),
        _outsource_at("vendor_dispatched"), requires="vendor dispatched",
    ),
    ActionRule(
        ActionId.START_QUALITY_CHECK, "Start Quality Check",
        frozenset({"outsource", "prepress"}), frozenset({"prepress"}),
        _outsource_at("received_from_vendor"), requires="received from vendor",
    ),
    ActionRule(
        ActionId.RECORD_QC_RESULT, "Record QC Result",
        frozenset({"outsource", "prepress"}), frozenset({"prepress"}),
        _outsource_at("quality_check"), requires="quality check in progress",
    ),
    ActionRule(
        ActionId.POST_QC_DECISION, "Post-QC Decision",
        frozenset({"outsource", "prepress"}), frozenset({"prepress"}),
        _outsource_at("decision_pending"), requires="QC passed, decision pending",
    ),
]

RULES: dict[ActionId, ActionRule] = {rule.id: rule for rule in _RULE_LIST}

# Every ActionId must have exactly one rule
_missing = set(ActionId) - set(RULES)
if _missing or len(RULES) != len(_RULE_LIST):
    raise RuntimeError(f"Workflow rule table incomplete: {sorted(a.value for a in _missing)}")


# ── Lookup ───────────────────────────────────────────────────────────────────


def parse_action(action_id) -> ActionId | None:
    """``ActionId`` for a raw string, ``None`` if the id is not in the closed set."""
    if isinstance(action_id, ActionId):
        return action_id
    try:
        return ActionId(action_id)
    except ValueError:
        return None


def get_rule(action_id) -> ActionRule | None:
    parsed = parse_action(action_id)
    return RULES.get(parsed) if parsed else None


def acting_department(state: WorkflowState, role: str | None) -> str | None:
    """Department whose action set ``role`` gets for this state, or None."""
    dept = effective_department(state)
    if role == ADMIN_ROLE:
        return dept
    return dept if role == dept else None


def actions_for_state(state: WorkflowState, role: str | None, ctx: RuleContext | None = None) -> list[ActionRule]:
    """Pure rule-table evaluation."""
    ctx = ctx or RuleContext()
    dept = acting_department(state, role)
    if dept is None:
        return []
    return [r for r in _RULE_LIST if dept in r.roles and r.allows(state, ctx)]


def available_actions(item, role: str | None, catalog: list[dict] | None = None) -> list[dict]:
    """Actions ``role`` may take on ``item`` right now, ready for display.

    ``catalog`` resolves substage labels ("Start Printing"); unknown keys
    display as the key itself.
    """
    state = WorkflowState.from_item(item)
    out = []
    for rule in actions_for_state(state, role, RuleContext.from_item(item)):
        d = rule.to_dict()
        if rule.id in (ActionId.START_SUBSTAGE, ActionId.COMPLETE_SUBSTAGE):
            verb = "Start" if rule.id == ActionId.START_SUBSTAGE else "Complete"
            d["label"] = f"{verb} {stage_label(state.substage, catalog)}"
        out.append(d)
    return out


def validate_action(state: WorkflowState, action_id, role: str | None, ctx: RuleContext | None = None) -> dict:
    """Check whether ``role`` may apply ``action_id`` to ``state``.

    Returns:
        {"valid": bool, "rule": ActionRule|None, "reason": str|None}
    """
    ctx = ctx or RuleContext()
    rule = get_rule(action_id)
    if rule is None:
        return {"valid": False, "rule": None, "reason": f"Unknown action: {action_id}"}
    if role not in ROLES:
        return {"valid": False, "rule": rule, "reason": f"Unknown role: {role}"}

    dept = acting_department(state, role)
    if dept is None:
        return {"valid": False, "rule": rule,
                "reason": f"Stage '{state.stage}' belongs to {effective_department(state)}"}
    if dept not in rule.roles or state.stage not in rule.stages:
        return {"valid": False, "rule": rule,
                "reason": f"Not available from stage '{state.stage}'"}
    if not rule.precondition(state, ctx):
        return {"valid": False, "rule": rule, "reason": f"Requires {rule.requires}"}
    return {"valid": True, "rule": rule, "reason": None}
