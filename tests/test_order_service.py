"""Order service: creation, queues, admin corrections, delivery dates, notes, timeline."""

from datetime import date, timedelta

import pytest

from printshop.core.exceptions import (
    ConflictError,
    InvalidTransitionError,
    MissingReferenceError,
    NotFoundError,
    ValidationError,
)
from printshop.models import db
from printshop.models.notification import Notification
from printshop.models.order import Order, OrderItem
from printshop.models.timeline import TimelineEntry
from printshop.services import order_service
from printshop.services.transition_executor import apply_action


def _order_payload(**overrides):
    data = {
        "order_number": "WC-60001",
        "customer_name": "Meera Traders",
        "delivery_date": (date.today() + timedelta(days=10)).isoformat(),
        "items": [
            {"product_name": "Visiting Card", "quantity": 500,
             "specifications": {"paper": "350gsm", "finish": None}},
            {"product_name": "Letterhead", "quantity": 1000, "need_design": False},
        ],
    }
    data.update(overrides)
    return data


# ── Orders ───────────────────────────────────────────────────────────────


class TestCreateOrder:
    def test_items_start_in_sales(self, actor):
        order = order_service.create_order(_order_payload(), actor("sales"))
        assert order.assigned_user == "u-sales"
        assert [i.current_stage for i in order.items] == ["sales", "sales"]
        assert [i.status for i in order.items] == ["new_order", "new_order"]
        assert order.items[0].specifications == {"paper": "350gsm"}
        assert order.items[1].need_design is False

    def test_created_entries_are_public(self, actor):
        order = order_service.create_order(_order_payload(), actor("sales"))
        entries = order_service.get_timeline(order.id, public_only=True)
        assert [e.action for e in entries] == ["created", "created"]

    def test_duplicate_number_conflicts(self, actor):
        order_service.create_order(_order_payload(), actor("sales"))
        with pytest.raises(ConflictError):
            order_service.create_order(_order_payload(), actor("sales"))

    @pytest.mark.parametrize(
        "overrides",
        [
            {"order_number": ""},
            {"items": []},
            {"items": [{"quantity": 2}]},
            {"delivery_date": "next tuesday"},
        ],
    )
    def test_invalid_payloads(self, actor, overrides):
        with pytest.raises(ValidationError):
            order_service.create_order(_order_payload(**overrides), actor("sales"))

    def test_missing_order(self):
        with pytest.raises(MissingReferenceError):
            order_service.get_order(404)


class TestListAndDelete:
    def test_completed_orders_hidden_by_default(self, make_order):
        make_order(is_completed=True)
        open_order = make_order()
        db.session.commit()
        assert [o.id for o in order_service.list_orders()] == [open_order.id]
        assert len(order_service.list_orders(include_completed=True).all()) == 2

    def test_delete_cascades(self, actor):
        order = order_service.create_order(_order_payload(), actor("sales"))
        order_id = order.id
        order_service.delete_order(order_id, actor("admin"))
        assert db.session.get(Order, order_id) is None
        assert OrderItem.query.filter_by(order_id=order_id).count() == 0
        assert TimelineEntry.query.filter_by(order_id=order_id).count() == 0

    def test_delete_requires_admin(self, make_item, actor):
        item = make_item()
        with pytest.raises(InvalidTransitionError):
            order_service.delete_order(item.order_id, actor("sales"))


# ── Department queues ────────────────────────────────────────────────────


class TestDepartmentQueue:
    def test_sorted_by_priority_then_date(self, make_item):
        today = date.today()
        blue = make_item(current_stage="design", delivery_date=today + timedelta(days=20))
        red = make_item(current_stage="design", delivery_date=today + timedelta(days=1))
        yellow = make_item(current_stage="design", delivery_date=today + timedelta(days=4))
        redder = make_item(current_stage="design", delivery_date=today - timedelta(days=2))
        make_item(current_stage="prepress")

        ids = [i.id for i in order_service.list_department_items("design")]
        assert ids == [redder.id, red.id, yellow.id, blue.id]

    def test_view_override_includes_item(self, make_item):
        item = make_item(current_stage="sales", assigned_department="design")
        assert item.id in [i.id for i in order_service.list_department_items("design")]

    def test_outsource_and_dispatch_queues(self, make_item):
        outsourced = make_item(current_stage="outsource", status="outsourced")
        dispatching = make_item(current_stage="dispatch", status="ready_for_dispatch")
        assert [i.id for i in order_service.list_department_items("prepress")] == [outsourced.id]
        assert [i.id for i in order_service.list_department_items("production")] == [dispatching.id]

    def test_completed_hidden_unless_asked(self, make_item):
        done = make_item(current_stage="completed", status="dispatched")
        assert order_service.list_department_items("production") == []
        assert [i.id for i in order_service.list_department_items("production", include_completed=True)] == [done.id]

    def test_unknown_department(self):
        with pytest.raises(ValidationError):
            order_service.list_department_items("marketing")


# ── Admin corrections ────────────────────────────────────────────────────


class TestAdminOverride:
    def test_moves_item_and_writes_entry(self, make_item, actor):
        item = make_item(current_stage="design", status="design_in_progress")
        updated = order_service.admin_override(
            item.id, actor("admin"),
            {"current_stage": "prepress", "status": "prepress_in_progress"},
            note="Customer sent print-ready PDF",
        )
        assert updated.current_stage == "prepress"
        entry = TimelineEntry.query.filter_by(item_id=item.id).one()
        assert entry.action == "admin_override"
        assert entry.is_public is True
        assert entry.notes.endswith("Customer sent print-ready PDF")

    def test_into_production_places_cursor(self, make_item, actor):
        item = make_item(current_stage="design", production_stage_sequence=["cutting", "packing"])
        updated = order_service.admin_override(item.id, actor("admin"), {"current_stage": "production"})
        assert updated.current_substage == "cutting"
        assert updated.substage_status == "not_started"

    def test_out_of_production_clears_cursor(self, make_item, actor):
        item = make_item(
            current_stage="production", status="production_in_progress",
            production_stage_sequence=["cutting"], current_substage="cutting",
            substage_status="in_progress",
        )
        updated = order_service.admin_override(item.id, actor("admin"), {"current_stage": "dispatch"})
        assert updated.current_substage is None
        assert updated.substage_status is None

    def test_substage_outside_sequence_rejected(self, make_item, actor):
        item = make_item(current_stage="production", production_stage_sequence=["cutting"])
        with pytest.raises(ValidationError):
            order_service.admin_override(item.id, actor("admin"), {"current_substage": "foiling"})

    def test_non_admin_refused(self, make_item, actor):
        item = make_item()
        with pytest.raises(InvalidTransitionError):
            order_service.admin_override(item.id, actor("sales"), {"current_stage": "design"})
        assert TimelineEntry.query.count() == 0

    def test_non_admin_refused_before_field_checks(self, make_item, actor):
        item = make_item()
        with pytest.raises(InvalidTransitionError) as exc:
            order_service.admin_override(item.id, actor("design"), {"current_stage": "shipping"})
        assert exc.value.to_dict()["role"] == "design"

    @pytest.mark.parametrize(
        "changes",
        [{}, {"current_stage": "shipping"}, {"assigned_department": "hr"}, {"status": "lost"}],
    )
    def test_invalid_changes(self, make_item, actor, changes):
        item = make_item()
        with pytest.raises(ValidationError):
            order_service.admin_override(item.id, actor("admin"), changes)

    def test_completing_last_item_completes_order(self, make_item, actor):
        item = make_item(current_stage="dispatch", status="ready_for_dispatch")
        order_service.admin_override(item.id, actor("admin"),
                                     {"current_stage": "completed", "status": "dispatched"})
        assert db.session.get(Order, item.order_id).is_completed is True


class TestReconfigureSequence:
    def test_cursor_reset_when_removed(self, make_item, actor):
        item = make_item(
            current_stage="production", status="production_in_progress",
            production_stage_sequence=["printing", "packing"],
            current_substage="printing", substage_status="in_progress",
        )
        updated = order_service.reconfigure_sequence(item.id, actor("admin"), ["cutting", "packing"])
        assert updated.production_stage_sequence == ["cutting", "packing"]
        assert updated.current_substage == "cutting"
        assert updated.substage_status == "not_started"
        entry = TimelineEntry.query.filter_by(item_id=item.id).one()
        assert entry.action == "reconfigure_sequence"
        assert entry.is_public is False

    def test_requires_admin(self, make_item, actor):
        item = make_item(current_stage="production")
        with pytest.raises(InvalidTransitionError):
            order_service.reconfigure_sequence(item.id, actor("production"), ["packing"])

    def test_unknown_key_rejected(self, make_item, actor):
        item = make_item(current_stage="production")
        with pytest.raises(ValidationError):
            order_service.reconfigure_sequence(item.id, actor("admin"), ["laminating"])


# ── Item maintenance ─────────────────────────────────────────────────────


class TestDeliveryDate:
    def test_turning_red_alerts_assignee(self, make_item, actor):
        item = make_item(assigned_to="u-design", delivery_date=date.today() + timedelta(days=30))
        urgent = date.today() + timedelta(days=1)
        updated, warnings = order_service.update_delivery_date(item.id, actor("sales"), urgent.isoformat())
        assert updated.priority_computed == "red"
        assert warnings == []
        notif = Notification.query.filter_by(user_id="u-design").one()
        assert notif.type == "urgent"
        assert notif.title == "Urgent Order Alert"

    def test_already_red_does_not_realert(self, make_item, actor):
        item = make_item(assigned_to="u-design", delivery_date=date.today())
        order_service.update_delivery_date(item.id, actor("sales"), date.today() + timedelta(days=1))
        assert Notification.query.count() == 0

    def test_public_entry(self, make_item, actor):
        item = make_item()
        order_service.update_delivery_date(item.id, actor("admin"), "2030-01-31")
        entry = TimelineEntry.query.filter_by(item_id=item.id).one()
        assert entry.is_public is True
        assert "2030-01-31" in entry.notes

    def test_role_restricted(self, make_item, actor):
        item = make_item()
        with pytest.raises(InvalidTransitionError):
            order_service.update_delivery_date(item.id, actor("design"), "2030-01-31")


class TestSpecifications:
    def test_merge_and_remove(self, make_item, actor):
        item = make_item(specifications={"paper": "300gsm", "foil": "gold"})
        updated = order_service.update_specifications(
            item.id, actor("design"), {"paper": "350gsm", "foil": None, "size": "A5"},
        )
        assert updated.specifications == {"paper": "350gsm", "size": "A5"}
        entry = TimelineEntry.query.filter_by(item_id=item.id).one()
        assert entry.is_public is False
        assert entry.notes == "Updated foil, paper, size"

    def test_empty_changes_rejected(self, make_item, actor):
        item = make_item()
        with pytest.raises(ValidationError):
            order_service.update_specifications(item.id, actor("design"), {})


class TestNotes:
    def test_add_and_author_delete(self, make_item, actor):
        item = make_item()
        entry = order_service.add_note(item.id, actor("design"), "Need hi-res logo", is_public=False)
        order_service.soft_delete_note(entry.id, actor("design"))
        assert order_service.get_timeline(item.order_id) == []
        assert db.session.get(TimelineEntry, entry.id).deleted_at is not None

    def test_admin_can_delete_any_note(self, make_item, actor):
        item = make_item()
        entry = order_service.add_note(item.id, actor("design"), "Draft")
        order_service.soft_delete_note(entry.id, actor("admin"))

    def test_other_users_cannot_delete(self, make_item, actor):
        item = make_item()
        entry = order_service.add_note(item.id, actor("design"), "Draft")
        with pytest.raises(ValidationError):
            order_service.soft_delete_note(entry.id, actor("sales"))

    def test_workflow_entries_are_permanent(self, make_item, actor):
        item = make_item()
        result = apply_action(item.id, "assign_design", actor("sales"))
        with pytest.raises(ValidationError):
            order_service.soft_delete_note(result.timeline_entry["id"], actor("admin"))

    def test_deleting_twice_is_not_found(self, make_item, actor):
        item = make_item()
        entry = order_service.add_note(item.id, actor("design"), "Draft")
        order_service.soft_delete_note(entry.id, actor("design"))
        with pytest.raises(NotFoundError):
            order_service.soft_delete_note(entry.id, actor("design"))

    def test_blank_note_rejected(self, make_item, actor):
        item = make_item()
        with pytest.raises(ValidationError):
            order_service.add_note(item.id, actor("design"), "   ")


class TestTimeline:
    def test_public_only_filters_internal(self, make_item, actor):
        item = make_item(current_stage="design", status="design_in_progress")
        apply_action(item.id, "upload_design", actor("design"), payload={"file_name": "a.pdf"})
        apply_action(item.id, "assign_prepress", actor("design"))
        order_service.add_note(item.id, actor("design"), "Customer called", is_public=True)

        full = [e.action for e in order_service.get_timeline(item.order_id)]
        public = [e.action for e in order_service.get_timeline(item.order_id, public_only=True)]
        assert full == ["upload_design", "assign_prepress", "note_added"]
        assert public == ["assign_prepress", "note_added"]

    def test_filter_by_item(self, make_order, make_item, actor):
        order = make_order()
        a = make_item(order=order)
        b = make_item(order=order)
        apply_action(a.id, "assign_design", actor("sales"))
        apply_action(b.id, "assign_design", actor("sales"))
        entries = order_service.get_timeline(order.id, item_id=b.id)
        assert [e.item_id for e in entries] == [b.id]
