"""
Order & item service.

Everything outside the rule table that touches orders and items:

    create_order / get_order / list_orders / delete_order
    list_department_items          department work queues
    admin_override                 arbitrary correction, bypasses the rule table
    reconfigure_sequence           replace an item's production sequence (admin)
    update_delivery_date           sales/admin, public timeline entry
    update_specifications          brief edits, internal timeline entry
    add_note / soft_delete_note    chat-style notes
    get_timeline                   full or public-only history

Item writes go through ``run_item_transaction`` so they share the
executor's optimistic-concurrency retry and write exactly one timeline
entry each.
"""

import logging
from datetime import date, datetime, timezone

from printshop.core.exceptions import (
    ConflictError,
    InvalidTransitionError,
    MissingReferenceError,
    NotFoundError,
    ValidationError,
)
from printshop.models import db
from printshop.models.order import DEPARTMENTS, ITEM_STATUSES, STAGES, SUBSTAGE_STATUSES, Order, OrderItem
from printshop.models.timeline import SOFT_DELETABLE_ACTIONS, TimelineEntry, write_timeline
from printshop.services import substage_sequencer
from printshop.services.priority import PRIORITY_RED
from printshop.services.side_effects import dispatch_side_effects, notify
from printshop.services.stage_catalog import get_catalog, validate_sequence
from printshop.services.transition_executor import apply_patch, refresh_order_completion, run_item_transaction
from printshop.services.workflow_rules import ADMIN_ROLE
from printshop.services.workflow_state import WorkflowState, item_visible_to

logger = logging.getLogger(__name__)

def _parse_date(value, field_name: str) -> date | None:
    if value in (None, ""):
        return None
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value)).date()
    except ValueError:
        raise ValidationError(f"{field_name} must be an ISO date", details={field_name: value})


def _parse_quantity(value, field_name: str) -> int:
    """Item quantity; missing means 1, anything else must be a positive integer."""
    if value in (None, ""):
        return 1
    try:
        quantity = int(value)
    except (TypeError, ValueError):
        quantity = 0
    if isinstance(value, bool) or quantity <= 0:
        raise ValidationError(f"{field_name} must be a positive integer", details={field_name: value})
    return quantity


def _require_role(actor: dict, action: str, allowed: tuple, item: OrderItem | None = None):
    role = (actor or {}).get("role")
    if role not in allowed:
        raise InvalidTransitionError(
            stage=item.current_stage if item else None,
            status=item.status if item else None,
            action=action, role=role,
            reason=f"requires role {' or '.join(allowed)}",
        )


# ── Orders ───────────────────────────────────────────────────────────────────


def create_order(data: dict, actor: dict | None = None) -> Order:
    """Create an order with its items.  Commits.

    Data:
        order_number (required), customer_name, customer_ref, delivery_date,
        source, assigned_user, requires_downstream_departments, global_notes,
        items: [{product_name (required), quantity, sku, need_design,
                 delivery_date, specifications}]
    """
    actor = actor or {}
    number = (data.get("order_number") or "").strip()
    if not number:
        raise ValidationError("order_number is required", details={"order_number": "required"})
    if Order.query.filter_by(order_number=number).first():
        raise ConflictError(resource="Order", field="order_number", value=number)

    items = data.get("items") or []
    if not items:
        raise ValidationError("An order needs at least one item", details={"items": "required"})

    order = Order(
        order_number=number,
        source=data.get("source") or "manual",
        customer_ref=data.get("customer_ref"),
        customer_name=data.get("customer_name") or "",
        delivery_date=_parse_date(data.get("delivery_date"), "delivery_date"),
        requires_downstream_departments=bool(data.get("requires_downstream_departments", True)),
        assigned_user=data.get("assigned_user") or actor.get("id"),
        created_by=actor.get("id"),
        global_notes=data.get("global_notes") or "",
    )
    for i, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError("Each item must be an object", details={f"items[{i}]": raw})
        name = (raw.get("product_name") or "").strip()
        if not name:
            raise ValidationError("product_name is required", details={f"items[{i}].product_name": "required"})
        specs = {k: v for k, v in (raw.get("specifications") or {}).items() if v is not None}
        order.items.append(OrderItem(
            product_name=name,
            sku=raw.get("sku"),
            quantity=_parse_quantity(raw.get("quantity"), f"items[{i}].quantity"),
            need_design=bool(raw.get("need_design", True)),
            delivery_date=_parse_date(raw.get("delivery_date"), f"items[{i}].delivery_date"),
            specifications=specs,
            current_stage="sales",
            assigned_department="sales",
            status="new_order",
            assigned_to=order.assigned_user,
        ))
    db.session.add(order)
    db.session.flush()

    for item in order.items:
        write_timeline(
            order_id=order.id, item_id=item.id, stage="sales", action="created",
            performed_by=actor.get("id"), performed_by_name=actor.get("name"),
            notes=f"Order {number} created", is_public=True,
        )
    db.session.commit()
    logger.info("Order %s created with %d items", number, len(order.items),
                extra={"order_id": order.id, "actor_id": actor.get("id")})
    return order


def get_order(order_id) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise MissingReferenceError(resource="Order", resource_id=order_id)
    return order


def get_item(item_id) -> OrderItem:
    item = db.session.get(OrderItem, item_id)
    if item is None:
        raise MissingReferenceError(resource="OrderItem", resource_id=item_id)
    return item


def list_orders(include_completed: bool = False):
    q = Order.query
    if not include_completed:
        q = q.filter_by(is_completed=False)
    return q.order_by(Order.created_at.desc())


def delete_order(order_id, actor: dict) -> None:
    """Cascade-delete an order with its items and timeline.  Admin only."""
    order = get_order(order_id)
    _require_role(actor, "delete_order", (ADMIN_ROLE,))
    number = order.order_number
    db.session.delete(order)
    db.session.commit()
    logger.info("Order %s deleted", number, extra={"order_id": order_id, "actor_id": actor.get("id")})


def list_department_items(department: str, include_completed: bool = False) -> list[OrderItem]:
    """Work queue: items whose stage or view override belongs to ``department``.

    Sorted red → yellow → blue, then by delivery date.
    """
    if department not in DEPARTMENTS:
        raise ValidationError(f"Unknown department '{department}'", details={"department": department})
    q = OrderItem.query
    if not include_completed:
        q = q.filter(OrderItem.current_stage != "completed")
    items = [i for i in q.all() if item_visible_to(i, department)]
    rank = {"red": 0, "yellow": 1, "blue": 2}
    return sorted(items, key=lambda i: (
        rank[i.priority_computed],
        i.effective_delivery_date or date.max,
        i.id,
    ))


# ── Admin ────────────────────────────────────────────────────────────────────


def _normalise_override(item: OrderItem) -> None:
    """Keep ``current_substage`` only while in production with a sequence."""
    sequence = list(item.production_stage_sequence or [])
    if item.current_stage != "production" or not sequence:
        item.current_substage = None
        item.substage_status = None
        item.substage_started_at = None
    elif item.current_substage is None:
        item.current_substage = sequence[0]
        item.substage_status = "not_started"
    elif item.substage_status is None:
        item.substage_status = "not_started"


def _validate_override(patch: dict, allowed: tuple) -> None:
    if not patch:
        raise ValidationError("No override fields given", details={"allowed": list(allowed)})
    if "current_stage" in patch and patch["current_stage"] not in STAGES:
        raise ValidationError(f"Unknown stage '{patch['current_stage']}'")
    if patch.get("assigned_department") not in (None, *DEPARTMENTS):
        raise ValidationError(f"Unknown department '{patch['assigned_department']}'")
    if patch.get("status") is not None and patch["status"] not in ITEM_STATUSES:
        raise ValidationError(f"Unknown status '{patch['status']}'")
    if patch.get("substage_status") not in (None, *SUBSTAGE_STATUSES):
        raise ValidationError(f"Unknown substage status '{patch['substage_status']}'")


def admin_override(item_id, actor: dict, changes: dict, note: str | None = None) -> OrderItem:
    """
    Correct an item directly, bypassing the rule table.

    Changes (all optional):
        current_stage, status, assigned_department, assigned_to,
        assigned_to_name, current_substage, substage_status

    Raises:
        InvalidTransitionError: actor is not admin.
        ValidationError: unknown stage / department / substage values.
    """
    allowed = ("current_stage", "status", "assigned_department", "assigned_to",
               "assigned_to_name", "current_substage", "substage_status")
    patch = {k: v for k, v in (changes or {}).items() if k in allowed}
    effects = []

    def work(item: OrderItem):
        _require_role(actor, "admin_override", (ADMIN_ROLE,), item)
        _validate_override(patch, allowed)
        if patch.get("current_substage") and patch["current_substage"] not in (item.production_stage_sequence or []):
            raise ValidationError(
                f"'{patch['current_substage']}' is not in the item's production sequence",
                details={"production_stage_sequence": item.production_stage_sequence},
            )
        before = apply_patch(item, patch)
        _normalise_override(item)
        refresh_order_completion(item)

        changed = ", ".join(f"{k}: {before[k]} → {getattr(item, k)}" for k in patch)
        item.last_workflow_note = note or f"Admin override ({changed})"
        effects.clear()
        if item.assigned_to and item.assigned_to != before.get("assigned_to", item.assigned_to) \
                and item.assigned_to != actor.get("id"):
            effects.append(notify(item.assigned_to, "New item assigned",
                                  f"{item.product_name} was assigned to you",
                                  order_id=item.order_id, item_id=item.id))
        write_timeline(
            order_id=item.order_id, item_id=item.id,
            stage=item.current_stage, substage=item.current_substage,
            action="admin_override",
            performed_by=actor.get("id"), performed_by_name=actor.get("name"),
            notes=f"Admin override ({changed})" + (f": {note}" if note else ""),
            is_public="current_stage" in patch or "current_substage" in patch,
        )
        return item

    item, _ = run_item_transaction(item_id, work)
    logger.info("Admin override on item %s", item.id,
                extra={"item_id": item.id, "order_id": item.order_id,
                       "action": "admin_override", "actor_id": actor.get("id")})
    dispatch_side_effects(effects)
    return item


def reconfigure_sequence(item_id, actor: dict, sequence: list[str], note: str | None = None) -> OrderItem:
    """Replace an item's production sequence (admin only).

    The cursor stays put when its key survives; otherwise it resets to the
    first key, not started.
    """
    catalog = get_catalog()

    def work(item: OrderItem):
        _require_role(actor, "reconfigure_sequence", (ADMIN_ROLE,), item)
        validated = validate_sequence(sequence, catalog)
        patch = substage_sequencer.reconfigure(WorkflowState.from_item(item), validated)
        apply_patch(item, patch)
        summary = f"Production sequence set: {' → '.join(validated)}"
        item.last_workflow_note = note or summary
        write_timeline(
            order_id=item.order_id, item_id=item.id,
            stage=item.current_stage, substage=item.current_substage,
            action="reconfigure_sequence",
            performed_by=actor.get("id"), performed_by_name=actor.get("name"),
            notes=summary + (f": {note}" if note else ""),
            is_public=False,
        )
        return item

    item, _ = run_item_transaction(item_id, work)
    return item


# ── Item maintenance ─────────────────────────────────────────────────────────


def update_delivery_date(item_id, actor: dict, delivery_date) -> tuple[OrderItem, list[dict]]:
    """Set the item's delivery date; alert the assignee when it turns red.

    Returns:
        (item, warnings)
    """
    new_date = _parse_date(delivery_date, "delivery_date")
    effects = []

    def work(item: OrderItem):
        _require_role(actor, "update_delivery_date", ("sales", ADMIN_ROLE), item)
        old_priority = item.priority_computed
        old_date = item.delivery_date
        apply_patch(item, {"delivery_date": new_date})
        new_priority = item.priority_computed

        effects.clear()
        if new_priority == PRIORITY_RED and old_priority != PRIORITY_RED and item.assigned_to:
            effects.append(notify(
                item.assigned_to, "Urgent Order Alert",
                f"{item.product_name} is now due {new_date.isoformat() if new_date else 'soon'}",
                type="urgent", order_id=item.order_id, item_id=item.id,
            ))
        write_timeline(
            order_id=item.order_id, item_id=item.id,
            stage=item.current_stage, substage=item.current_substage,
            action="delivery_date_updated",
            performed_by=actor.get("id"), performed_by_name=actor.get("name"),
            notes=f"Delivery date: {old_date or 'none'} → {new_date or 'none'}",
            is_public=True,
        )
        return item

    item, _ = run_item_transaction(item_id, work)
    return item, dispatch_side_effects(effects)


def update_specifications(item_id, actor: dict, changes: dict) -> OrderItem:
    """Merge brief edits into ``specifications``; ``None`` removes a key."""
    if not isinstance(changes, dict) or not changes:
        raise ValidationError("specifications must be a non-empty object")

    def work(item: OrderItem):
        specs = dict(item.specifications or {})
        for key, value in changes.items():
            if value is None:
                specs.pop(key, None)
            else:
                specs[key] = value
        apply_patch(item, {"specifications": specs})
        write_timeline(
            order_id=item.order_id, item_id=item.id,
            stage=item.current_stage, substage=item.current_substage,
            action="specifications_updated",
            performed_by=actor.get("id"), performed_by_name=actor.get("name"),
            notes="Updated " + ", ".join(sorted(changes)),
            is_public=False,
        )
        return item

    item, _ = run_item_transaction(item_id, work)
    return item


def add_note(item_id, actor: dict, text: str, is_public: bool = False) -> TimelineEntry:
    """Chat-style note on an item's timeline."""
    text = (text or "").strip()
    if not text:
        raise ValidationError("Note text is required", details={"notes": "required"})
    item = get_item(item_id)
    entry = write_timeline(
        order_id=item.order_id, item_id=item.id,
        stage=item.current_stage, substage=item.current_substage,
        action="note_added",
        performed_by=actor.get("id"), performed_by_name=actor.get("name"),
        notes=text, is_public=bool(is_public),
    )
    db.session.commit()
    return entry


def soft_delete_note(entry_id, actor: dict) -> TimelineEntry:
    """Hide a note.  Only its author or an admin may; workflow entries are permanent."""
    entry = db.session.get(TimelineEntry, entry_id)
    if entry is None or entry.deleted_at is not None:
        raise NotFoundError(resource="TimelineEntry", resource_id=entry_id)
    if entry.action not in SOFT_DELETABLE_ACTIONS:
        raise ValidationError("Only notes can be deleted", details={"action": entry.action})
    if actor.get("role") != ADMIN_ROLE and actor.get("id") != entry.performed_by:
        raise ValidationError("Only the author or an admin can delete this note")
    entry.deleted_at = datetime.now(timezone.utc)
    db.session.commit()
    return entry


def get_timeline(order_id, item_id=None, public_only: bool = False) -> list[TimelineEntry]:
    """History for an order (or one item), oldest first; soft-deleted entries hidden."""
    get_order(order_id)
    q = TimelineEntry.query.filter(
        TimelineEntry.order_id == order_id,
        TimelineEntry.deleted_at.is_(None),
    )
    if item_id is not None:
        q = q.filter(TimelineEntry.item_id == item_id)
    if public_only:
        q = q.filter(TimelineEntry.is_public.is_(True))
    return q.order_by(TimelineEntry.created_at, TimelineEntry.id).all()
