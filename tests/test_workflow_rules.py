"""
Exhaustive rule-table tests.

For every (stage, status, role) combination the available action set is
exactly the one enumerated below; anything not enumerated is empty.
Admin is shown the set of the department implied by ``current_stage``.
"""

import itertools

import pytest

from printshop.services.workflow_rules import (
    RULES,
    ActionId,
    RuleContext,
    actions_for_state,
    available_actions,
    validate_action,
)
from printshop.services.workflow_state import WorkflowState, effective_department, item_visible_to

A = ActionId

STAGES = ("sales", "design", "prepress", "production", "outsource", "dispatch", "completed")
STATUSES = (
    "new_order", "design_in_progress", "pending_for_customer_approval", "approved",
    "rejected", "revision_requested", "prepress_in_progress", "production_in_progress",
    "ready_for_dispatch", "completed",
)
ROLES = ("sales", "design", "prepress", "production")


def _ids(state, role, ctx=None):
    return {r.id for r in actions_for_state(state, role, ctx)}


def _expected(stage, status, role):
    """Hand-written rule table for plain items (need_design, no substage, no outsource job)."""
    owner = {"outsource": "prepress", "dispatch": "production", "completed": "production"}.get(stage, stage)
    if role != owner:
        return set()
    if stage == "sales":
        if status == "new_order":
            return {A.ASSIGN_DESIGN}
        if status == "pending_for_customer_approval":
            return {A.APPROVE, A.REQUEST_REVISION}
        return set()
    if stage == "design":
        approval = A.RESUBMIT_FOR_APPROVAL if status == "rejected" else A.SEND_FOR_APPROVAL
        if status == "pending_for_customer_approval":
            approval = None
        return {A.UPLOAD_DESIGN, A.ASSIGN_PREPRESS, A.SEND_TO_PRODUCTION} | ({approval} - {None})
    if stage == "prepress":
        approval = A.RESUBMIT_FOR_APPROVAL if status == "rejected" else A.SEND_FOR_APPROVAL
        if status == "pending_for_customer_approval":
            approval = None
        return {A.SEND_FOR_REVISION, A.SEND_TO_PRODUCTION, A.ASSIGN_OUTSOURCE} | ({approval} - {None})
    if stage == "production":
        return {A.MARK_COMPLETED}
    if stage == "dispatch":
        return {A.MARK_DISPATCHED}
    return set()


@pytest.mark.parametrize(
    "stage, status, role",
    list(itertools.product(STAGES, STATUSES, ROLES)),
)
def test_rule_table_closure(stage, status, role):
    state = WorkflowState(stage=stage, status=status)
    assert _ids(state, role) == _expected(stage, status, role)


@pytest.mark.parametrize("stage, status", list(itertools.product(STAGES, STATUSES)))
def test_admin_sees_department_set(stage, status):
    state = WorkflowState(stage=stage, status=status)
    dept = effective_department(state)
    assert _ids(state, "admin") == _ids(state, dept)


def test_every_action_has_a_rule():
    assert set(RULES) == set(ActionId)


class TestSalesBranches:
    def test_no_design_goes_straight_to_prepress(self):
        state = WorkflowState(stage="sales", status="new_order", need_design=False)
        assert _ids(state, "sales") == {A.MARK_DESIGN_NOT_REQUIRED}

    def test_missing_status_counts_as_new(self):
        state = WorkflowState(stage="sales", status=None)
        assert _ids(state, "sales") == {A.ASSIGN_DESIGN}


class TestDesignOnlyOrders:
    def test_mark_complete_requires_design_only_order(self):
        state = WorkflowState(stage="design", status="design_in_progress")
        assert A.MARK_COMPLETE not in _ids(state, "design", RuleContext(True))
        assert A.MARK_COMPLETE in _ids(state, "design", RuleContext(False))


class TestProductionSubstages:
    def _state(self, substage_status):
        return WorkflowState(
            stage="production", status="production_in_progress",
            substage="printing", substage_status=substage_status,
            sequence=("printing", "packing"),
        )

    def test_not_started_offers_start(self):
        assert _ids(self._state("not_started"), "production") == {A.START_SUBSTAGE}

    def test_in_progress_offers_complete(self):
        assert _ids(self._state("in_progress"), "production") == {A.COMPLETE_SUBSTAGE}

    def test_substage_without_sequence_counts_as_none(self):
        state = WorkflowState(stage="production", substage="printing", substage_status="not_started")
        assert _ids(state, "production") == {A.MARK_COMPLETED}


class TestOutsource:
    @pytest.mark.parametrize(
        "step, action",
        [
            ("outsourced", A.VENDOR_START),
            ("vendor_in_progress", A.VENDOR_DISPATCH),
            ("vendor_dispatched", A.RECEIVE_FROM_VENDOR),
            ("received_from_vendor", A.START_QUALITY_CHECK),
            ("quality_check", A.RECORD_QC_RESULT),
            ("decision_pending", A.POST_QC_DECISION),
        ],
    )
    def test_one_vendor_action_per_step(self, step, action):
        state = WorkflowState(stage="outsource", status="outsourced", outsource_stage=step)
        assert _ids(state, "prepress") == {action}
        assert _ids(state, "production") == set()

    def test_outsourced_item_kept_in_prepress_cannot_be_outsourced_twice(self):
        state = WorkflowState(stage="prepress", status="outsourced", outsource_stage="outsourced")
        ids = _ids(state, "prepress")
        assert A.ASSIGN_OUTSOURCE not in ids
        assert A.VENDOR_START in ids


class TestValidateAction:
    def test_valid(self):
        state = WorkflowState(stage="sales", status="new_order")
        result = validate_action(state, "assign_design", "sales")
        assert result["valid"] is True
        assert result["rule"].id == A.ASSIGN_DESIGN

    def test_unknown_action(self):
        result = validate_action(WorkflowState(stage="sales"), "teleport", "sales")
        assert result["valid"] is False
        assert "Unknown action" in result["reason"]

    def test_unknown_role(self):
        result = validate_action(WorkflowState(stage="sales", status="new_order"), "assign_design", "intern")
        assert result["valid"] is False
        assert "Unknown role" in result["reason"]

    def test_wrong_department(self):
        result = validate_action(WorkflowState(stage="sales", status="new_order"), "assign_design", "design")
        assert result["valid"] is False

    def test_precondition_failure_names_requirement(self):
        state = WorkflowState(stage="sales", status="approved")
        result = validate_action(state, "approve", "sales")
        assert result["valid"] is False
        assert "pending customer approval" in result["reason"]

    def test_pending_cannot_be_reentered(self):
        state = WorkflowState(stage="design", status="pending_for_customer_approval")
        assert validate_action(state, "send_for_approval", "design")["valid"] is False


class TestEffectiveDepartment:
    @pytest.mark.parametrize(
        "stage, dept",
        [
            ("sales", "sales"), ("design", "design"), ("prepress", "prepress"),
            ("production", "production"), ("outsource", "prepress"),
            ("dispatch", "production"), ("completed", "production"),
        ],
    )
    def test_mapping(self, stage, dept):
        assert effective_department(WorkflowState(stage=stage)) == dept

    def test_stage_beats_override_for_actions(self, make_item):
        item = make_item(current_stage="sales", status="new_order", assigned_department="design")
        assert available_actions(item, "design") == []
        assert [a["id"] for a in available_actions(item, "sales")] == ["assign_design"]

    def test_override_still_shows_item_in_queue(self, make_item):
        item = make_item(current_stage="sales", status="new_order", assigned_department="design")
        assert item_visible_to(item, "design")
        assert item_visible_to(item, "sales")
        assert not item_visible_to(item, "production")


class TestAvailableActions:
    def test_substage_label_from_catalog(self, make_item):
        item = make_item(
            current_stage="production", status="production_in_progress",
            production_stage_sequence=["printing"], current_substage="printing",
            substage_status="not_started",
        )
        actions = available_actions(item, "production")
        assert actions[0]["label"] == "Start Printing"

    def test_removed_stage_label_falls_back_to_key(self, make_item):
        item = make_item(
            current_stage="production", status="production_in_progress",
            production_stage_sequence=["hot_stamping"], current_substage="hot_stamping",
            substage_status="in_progress",
        )
        actions = available_actions(item, "production", catalog=[])
        assert actions[0]["label"] == "Complete hot_stamping"

    def test_design_only_flag_read_from_order(self, make_order, make_item):
        order = make_order(requires_downstream_departments=False)
        item = make_item(order=order, current_stage="design", status="design_in_progress")
        assert "mark_complete" in [a["id"] for a in available_actions(item, "design")]

    def test_action_dict_shape(self, make_item):
        item = make_item()
        action = available_actions(item, "admin")[0]
        assert action == {
            "id": "assign_design",
            "label": "Assign to Design",
            "required_roles": ["sales"],
            "preconditions": "new order that needs design",
            "resulting_stage": "design",
            "resulting_status": "design_in_progress",
            "public": True,
        }
