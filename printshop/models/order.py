"""
Print-shop Workflow Engine
Order domain models.

Models:
    - Order:      a customer purchase (human-readable number, e.g. WC-53529)
    - OrderItem:  one product line flowing sales → design → prepress → production → dispatch

Architecture:
    Order ──1:N──▶ OrderItem
    Order ──1:N──▶ TimelineEntry        (cascade delete)
    OrderItem ──1:N──▶ TimelineEntry

Item state fields:
    current_stage         physical location, the only field views may trust
    assigned_department   view override (may lag/lead current_stage)
    status                workflow reason, orthogonal to current_stage
    current_substage      production step key, set only while in production
"""

from datetime import date, datetime, timezone

from printshop.models import db
from printshop.services.priority import compute_priority


# ── Constants ────────────────────────────────────────────────────────────────

STAGES = ("sales", "design", "prepress", "production", "outsource", "dispatch", "completed")

DEPARTMENTS = ("sales", "design", "prepress", "production", "outsource")

ROLES = ("sales", "design", "prepress", "production", "admin")

SUBSTAGE_STATUSES = ("not_started", "in_progress", "completed")

ITEM_STATUSES = {
    "new_order",
    "design_in_progress",
    "revision_requested",
    "pending_for_customer_approval",
    "approved",
    "rejected",
    "prepress_in_progress",
    "outsourced",
    "production_in_progress",
    "ready_for_dispatch",
    "dispatched",
    "completed",
}


def _utcnow():
    return datetime.now(timezone.utc)


class Order(db.Model):
    """
    Customer purchase owning one or more OrderItems.

    ``delivery_date`` is optional at order level; item priority falls back to
    it when the item has no date of its own.
    """

    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(
        db.String(40), nullable=False, unique=True, index=True,
        comment="Human-readable identifier, e.g. WC-53529",
    )
    source = db.Column(db.String(20), default="manual", comment="manual | woocommerce")
    customer_ref = db.Column(db.String(100), nullable=True)
    customer_name = db.Column(db.String(200), default="")
    delivery_date = db.Column(db.Date, nullable=True)
    is_completed = db.Column(db.Boolean, nullable=False, default=False)
    requires_downstream_departments = db.Column(
        db.Boolean, nullable=False, default=True,
        comment="False for design-only orders: design may mark items complete",
    )
    assigned_user = db.Column(
        db.String(64), nullable=True,
        comment="Sales owner; receives approval and dispatch notifications",
    )
    created_by = db.Column(db.String(64), nullable=True)
    global_notes = db.Column(db.Text, default="")

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    items = db.relationship(
        "OrderItem", back_populates="order",
        cascade="all, delete-orphan", order_by="OrderItem.id",
    )
    timeline_entries = db.relationship(
        "TimelineEntry", back_populates="order",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    @property
    def effective_delivery_date(self) -> date | None:
        """Order-level date, else the earliest item date."""
        if self.delivery_date:
            return self.delivery_date
        dates = [i.delivery_date for i in self.items if i.delivery_date]
        return min(dates) if dates else None

    @property
    def priority_computed(self) -> str:
        return compute_priority(self.effective_delivery_date)

    def to_dict(self, include_items: bool = True) -> dict:
        d = {
            "id": self.id,
            "order_number": self.order_number,
            "source": self.source,
            "customer_ref": self.customer_ref,
            "customer_name": self.customer_name,
            "delivery_date": self.delivery_date.isoformat() if self.delivery_date else None,
            "is_completed": self.is_completed,
            "requires_downstream_departments": self.requires_downstream_departments,
            "assigned_user": self.assigned_user,
            "created_by": self.created_by,
            "global_notes": self.global_notes,
            "priority_computed": self.priority_computed,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_items:
            d["items"] = [i.to_dict() for i in self.items]
        return d

    def __repr__(self):
        return f"<Order {self.id}: {self.order_number}>"


class OrderItem(db.Model):
    """
    One product line within an order; the unit the workflow engine moves.

    ``version_id`` is the optimistic-concurrency column: every UPDATE is
    issued as ``… WHERE id = :id AND version_id = :seen`` and raises
    ``StaleDataError`` when another writer got there first.
    """

    __tablename__ = "order_items"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(
        db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    product_name = db.Column(db.String(300), nullable=False)
    sku = db.Column(db.String(100), nullable=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    specifications = db.Column(
        db.JSON, nullable=False, default=dict,
        comment="design_brief / prepress_brief / production_brief / requirement text",
    )
    need_design = db.Column(db.Boolean, nullable=False, default=True)

    # Workflow state
    current_stage = db.Column(
        db.String(20), nullable=False, default="sales", index=True,
        comment="sales | design | prepress | production | outsource | dispatch | completed",
    )
    assigned_department = db.Column(db.String(20), nullable=True, index=True)
    status = db.Column(db.String(40), nullable=False, default="new_order")
    assigned_to = db.Column(db.String(64), nullable=True, index=True)
    assigned_to_name = db.Column(db.String(150), nullable=True)
    previous_department = db.Column(db.String(20), nullable=True)
    previous_assigned_to = db.Column(db.String(64), nullable=True)
    previous_assigned_to_name = db.Column(db.String(150), nullable=True)

    # Production
    current_substage = db.Column(db.String(50), nullable=True)
    substage_status = db.Column(
        db.String(20), nullable=True,
        comment="not_started | in_progress | completed",
    )
    substage_started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    production_stage_sequence = db.Column(
        db.JSON, nullable=False, default=list,
        comment="Ordered stage catalog keys frozen at send_to_production",
    )

    delivery_date = db.Column(db.Date, nullable=True)
    outsource_info = db.Column(db.JSON, nullable=True)
    last_workflow_note = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    version_id = db.Column(db.Integer, nullable=False)
    __mapper_args__ = {"version_id_col": version_id}

    order = db.relationship("Order", back_populates="items")

    @property
    def effective_delivery_date(self) -> date | None:
        if self.delivery_date:
            return self.delivery_date
        return self.order.delivery_date if self.order else None

    @property
    def priority_computed(self) -> str:
        """Derived on every read; never stored."""
        return compute_priority(self.effective_delivery_date)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_name": self.product_name,
            "sku": self.sku,
            "quantity": self.quantity,
            "specifications": self.specifications or {},
            "need_design": self.need_design,
            "current_stage": self.current_stage,
            "assigned_department": self.assigned_department,
            "status": self.status,
            "assigned_to": self.assigned_to,
            "assigned_to_name": self.assigned_to_name,
            "previous_department": self.previous_department,
            "previous_assigned_to": self.previous_assigned_to,
            "previous_assigned_to_name": self.previous_assigned_to_name,
            "current_substage": self.current_substage,
            "substage_status": self.substage_status,
            "substage_started_at": self.substage_started_at.isoformat() if self.substage_started_at else None,
            "production_stage_sequence": list(self.production_stage_sequence or []),
            "delivery_date": self.delivery_date.isoformat() if self.delivery_date else None,
            "priority_computed": self.priority_computed,
            "outsource_info": self.outsource_info,
            "last_workflow_note": self.last_workflow_note,
            "version": self.version_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<OrderItem {self.id}: {self.product_name[:40]} @ {self.current_stage}>"
