"""
Print-shop Workflow Engine
Material reservation model.

Models:
    - MaterialReservation: sheets of paper (or other stock) held for an item
      when it is sent to production.
"""

from datetime import datetime, timezone

from printshop.models import db


class MaterialReservation(db.Model):
    __tablename__ = "material_reservations"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(
        db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=True, index=True,
    )
    item_id = db.Column(
        db.Integer, db.ForeignKey("order_items.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    material = db.Column(db.String(200), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    reserved_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "order_id": self.order_id,
            "item_id": self.item_id,
            "material": self.material,
            "quantity": self.quantity,
            "reserved_by": self.reserved_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<MaterialReservation {self.id}: {self.quantity} x {self.material}>"
