"""
Print-shop Workflow Engine
Inventory collaborator: material reservations for production.
"""

from printshop.core.exceptions import ValidationError
from printshop.models import db
from printshop.models.inventory import MaterialReservation


def parse_material(raw) -> dict | None:
    """Validate ``payload.material`` (``{name, quantity}``); ``None`` passes through."""
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise ValidationError("material must be an object with name and quantity")
    name = (raw.get("name") or "").strip()
    try:
        quantity = int(raw.get("quantity"))
    except (TypeError, ValueError):
        quantity = 0
    if not name or quantity <= 0:
        raise ValidationError(
            "material requires a name and a positive quantity",
            details={"material": raw},
        )
    return {"name": name, "quantity": quantity}


def reserve_material(*, item_id, material, quantity, order_id=None, reserved_by=None):
    """Record a reservation.  Commits.

    Returns:
        The created MaterialReservation.
    """
    reservation = MaterialReservation(
        order_id=order_id,
        item_id=item_id,
        material=material,
        quantity=quantity,
        reserved_by=reserved_by,
    )
    db.session.add(reservation)
    db.session.commit()
    return reservation
