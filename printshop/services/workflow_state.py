"""
Workflow state value object.

An item's position is three loosely related strings on the row
(``current_stage``, ``status``, ``assigned_department``) plus the
production cursor.  ``WorkflowState`` snapshots them as one immutable value
and ``effective_department`` is the single pure derivation the rule table
and department views use:

    sales       → sales
    design      → design
    prepress    → prepress
    production  → production
    outsource   → prepress      (prepress owns outsourced jobs)
    dispatch    → production    (production hands over to the courier)
    completed   → production
"""

from dataclasses import dataclass, field

STAGE_DEPARTMENT = {
    "sales": "sales",
    "design": "design",
    "prepress": "prepress",
    "production": "production",
    "outsource": "prepress",
    "dispatch": "production",
    "completed": "production",
}


@dataclass(frozen=True)
class WorkflowState:
    """Immutable snapshot of an item's workflow position."""

    stage: str
    status: str | None = None
    department_override: str | None = None
    substage: str | None = None
    substage_status: str | None = None
    sequence: tuple = field(default_factory=tuple)
    need_design: bool = True
    outsource_stage: str | None = None

    @classmethod
    def from_item(cls, item) -> "WorkflowState":
        info = item.outsource_info or {}
        return cls(
            stage=item.current_stage or "sales",
            status=item.status,
            department_override=item.assigned_department,
            substage=item.current_substage,
            substage_status=item.substage_status,
            sequence=tuple(item.production_stage_sequence or ()),
            need_design=bool(item.need_design),
            outsource_stage=info.get("current_outsource_stage"),
        )

    @property
    def has_substage(self) -> bool:
        return self.stage == "production" and bool(self.substage) and bool(self.sequence)

    @property
    def is_pending_approval(self) -> bool:
        return self.status == "pending_for_customer_approval"


def effective_department(state: WorkflowState) -> str:
    """Department implied by the physical stage; the override never wins here."""
    return STAGE_DEPARTMENT.get(state.stage, state.stage)


def item_visible_to(item, department: str) -> bool:
    """Department queue filter: physical stage first, view override second."""
    state = WorkflowState.from_item(item)
    if effective_department(state) == department:
        return True
    return state.department_override == department
