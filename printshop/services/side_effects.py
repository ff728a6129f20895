"""
Post-commit side effects.

The executor never performs side effects itself: it returns declarative
``SideEffect`` instructions and hands them to ``dispatch_side_effects``
after the transition has committed.  Each effect runs on its own; a
failure is logged, wrapped in ``SideEffectFailure`` and reported as a
warning.  It never rolls back the transition.

Kinds:
    notify            → NotificationService.create
    reserve_material  → inventory.reserve_material
"""

import logging
from dataclasses import asdict, dataclass, field

from printshop.core.exceptions import SideEffectFailure
from printshop.models import db
from printshop.services import inventory
from printshop.services.notification import NotificationService

logger = logging.getLogger(__name__)

NOTIFY = "notify"
RESERVE_MATERIAL = "reserve_material"


@dataclass(frozen=True)
class SideEffect:
    kind: str
    params: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


def notify(user_id, title, message="", type="info", order_id=None, item_id=None) -> SideEffect:
    return SideEffect(NOTIFY, {
        "user_id": user_id, "title": title, "message": message, "type": type,
        "order_id": order_id, "item_id": item_id,
    })


def reserve(item_id, material, quantity, order_id=None, reserved_by=None) -> SideEffect:
    return SideEffect(RESERVE_MATERIAL, {
        "item_id": item_id, "material": material, "quantity": quantity,
        "order_id": order_id, "reserved_by": reserved_by,
    })


def _run_notify(params: dict):
    NotificationService.create(**params)


def _run_reserve(params: dict):
    inventory.reserve_material(**params)


_HANDLERS = {
    NOTIFY: _run_notify,
    RESERVE_MATERIAL: _run_reserve,
}


def dispatch_side_effects(effects: list[SideEffect]) -> list[dict]:
    """Run each effect; return one warning dict per failure.

    Returns:
        [{"kind": str, "message": str}, ...]
    """
    warnings = []
    for effect in effects:
        handler = _HANDLERS.get(effect.kind)
        try:
            if handler is None:
                raise ValueError(f"no handler for side effect '{effect.kind}'")
            handler(effect.params)
        except Exception as exc:
            db.session.rollback()
            failure = SideEffectFailure(effect.kind, exc)
            logger.warning(
                "%s", failure,
                extra={"item_id": effect.params.get("item_id"),
                       "order_id": effect.params.get("order_id")},
                exc_info=True,
            )
            warnings.append({"kind": effect.kind, "message": str(failure)})
    return warnings
