"""
Production substage sequencer.

Each item carries its own ``production_stage_sequence`` (catalog keys,
frozen at send_to_production) and a cursor ``current_substage``.  Per
substage:

    not_started ──start──▶ in_progress ──complete──▶ next key (not_started)
                                               └──▶ dispatch (last key)

The cursor only moves forward; jumping back is an admin override.

A cursor key that is no longer in the sequence (sequence reconfigured,
stale data) is treated as sitting before the first key: completing it
moves to ``sequence[0]`` rather than finishing the item.

All functions are pure and return field patches for the executor.
"""

from datetime import datetime, timezone

from printshop.core.exceptions import InvalidTransitionError
from printshop.services.workflow_state import WorkflowState

NOT_STARTED = "not_started"
IN_PROGRESS = "in_progress"


def _refuse(state: WorkflowState, action: str, reason: str):
    raise InvalidTransitionError(
        stage=state.stage, status=state.status, action=action,
        role="production", reason=reason,
    )


def enter_production(sequence: list[str]) -> dict:
    """Patch placing an item on the first key of ``sequence``.

    An empty sequence is allowed; the item then has no substage and leaves
    production through ``mark_completed``.
    """
    sequence = list(sequence or [])
    return {
        "current_stage": "production",
        "production_stage_sequence": sequence,
        "current_substage": sequence[0] if sequence else None,
        "substage_status": NOT_STARTED if sequence else None,
        "substage_started_at": None,
    }


def start_substage(state: WorkflowState, key: str | None = None, now: datetime | None = None) -> dict:
    """``not_started`` → ``in_progress`` for the cursor key.

    ``key`` is optional; when given it must match the cursor (no skipping).
    """
    if not state.has_substage:
        _refuse(state, "start_substage", "no active production substage")
    if state.substage_status == IN_PROGRESS:
        _refuse(state, "start_substage", f"'{state.substage}' is already in progress")
    if key is not None and key != state.substage:
        _refuse(state, "start_substage", f"current substage is '{state.substage}', not '{key}'")
    return {
        "substage_status": IN_PROGRESS,
        "substage_started_at": now or datetime.now(timezone.utc),
    }


def next_key(sequence, current: str | None) -> str | None:
    """Key after ``current``; ``None`` when ``current`` is the last.

    Unknown ``current`` counts as index -1, so the answer is the first key.
    """
    sequence = list(sequence or [])
    index = sequence.index(current) if current in sequence else -1
    if index + 1 < len(sequence):
        return sequence[index + 1]
    return None


def complete_substage(state: WorkflowState) -> dict:
    """Finish the in-progress substage and advance the cursor."""
    if not state.has_substage:
        _refuse(state, "complete_substage", "no active production substage")
    if state.substage_status != IN_PROGRESS:
        _refuse(state, "complete_substage", f"'{state.substage}' has not been started")

    following = next_key(state.sequence, state.substage)
    if following is None:
        return {
            "current_stage": "dispatch",
            "status": "ready_for_dispatch",
            "current_substage": None,
            "substage_status": None,
            "substage_started_at": None,
        }
    return {
        "current_substage": following,
        "substage_status": NOT_STARTED,
        "substage_started_at": None,
    }


def reconfigure(state: WorkflowState, sequence: list[str]) -> dict:
    """Replace the sequence; keep the cursor when its key survives."""
    sequence = list(sequence)
    patch = {"production_stage_sequence": sequence}
    if state.stage != "production":
        return patch
    if state.substage in sequence:
        return patch
    patch.update({
        "current_substage": sequence[0] if sequence else None,
        "substage_status": NOT_STARTED if sequence else None,
        "substage_started_at": None,
    })
    return patch


def substage_duration_minutes(started_at: datetime | None, now: datetime | None = None) -> int | None:
    """Whole minutes a substage has been (or was) in progress."""
    if started_at is None:
        return None
    if started_at.tzinfo is None:
        started_at = started_at.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max(int((now - started_at).total_seconds() // 60), 0)
