"""
Print-shop Workflow Engine
Timeline domain model.

Models:
    - TimelineEntry: append-only event log of every workflow action and
      chat-style note on an order/item.

Entries are never updated. The only mutation is the soft delete
(``deleted_at``) of chat-style notes. ``is_public`` marks entries that the
customer-facing tracking page may show.
"""

from datetime import datetime, timezone

from sqlalchemy import func

from printshop.models import db

# ── Constants ────────────────────────────────────────────────────────────────

# Actions whose entries may be soft-deleted by their author
SOFT_DELETABLE_ACTIONS = {"note_added"}


def _as_aware(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo on the way back
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class TimelineEntry(db.Model):
    """
    Immutable record of one workflow action or note.

    One row per committed ``apply_action`` call plus one per maintenance
    operation (note, brief edit, delivery date change).
    """

    __tablename__ = "timeline_entries"
    __table_args__ = (
        db.Index("idx_timeline_item_ts", "item_id", "created_at"),
        db.Index("idx_timeline_order_ts", "order_id", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(
        db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
    )
    item_id = db.Column(
        db.Integer, db.ForeignKey("order_items.id", ondelete="CASCADE"),
        nullable=True,
    )
    stage = db.Column(db.String(20), nullable=False, comment="Stage the item is in after the action")
    substage = db.Column(db.String(50), nullable=True)
    action = db.Column(db.String(40), nullable=False, comment="assign_design | approve | note_added | …")
    performed_by = db.Column(db.String(64), nullable=False, default="system")
    performed_by_name = db.Column(db.String(150), nullable=True)
    notes = db.Column(db.Text, default="")
    is_public = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    order = db.relationship("Order", back_populates="timeline_entries")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "item_id": self.item_id,
            "stage": self.stage,
            "substage": self.substage,
            "action": self.action,
            "performed_by": self.performed_by,
            "performed_by_name": self.performed_by_name,
            "notes": self.notes,
            "is_public": self.is_public,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "deleted_at": self.deleted_at.isoformat() if self.deleted_at else None,
        }

    def __repr__(self):
        return f"<TimelineEntry {self.id}: {self.action} on item {self.item_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_timeline(
    *,
    order_id: int,
    item_id: int | None,
    stage: str,
    action: str,
    performed_by: str | None,
    performed_by_name: str | None = None,
    notes: str = "",
    is_public: bool = False,
    substage: str | None = None,
) -> TimelineEntry:
    """
    Append a single timeline row.  Uses ``flush`` so callers keep
    transaction control: the entry commits (or rolls back) together with
    the item state it describes.

    ``created_at`` never goes backwards for the same item: if the clock
    reads earlier than the item's latest entry, the latest timestamp is
    reused.

    Returns the (flushed) TimelineEntry instance.
    """
    now = datetime.now(timezone.utc)
    if item_id is not None:
        latest = _as_aware(
            db.session.query(func.max(TimelineEntry.created_at))
            .filter(TimelineEntry.item_id == item_id)
            .scalar()
        )
        if latest is not None and latest > now:
            now = latest

    entry = TimelineEntry(
        order_id=order_id,
        item_id=item_id,
        stage=stage,
        substage=substage,
        action=action,
        performed_by=performed_by or "system",
        performed_by_name=performed_by_name,
        notes=notes or "",
        is_public=is_public,
        created_at=now,
    )
    db.session.add(entry)
    db.session.flush()
    return entry
