"""
Priority tier derivation.

    days_until = delivery_day - today_day   (time of day ignored on both sides)

    > 5      → blue
    3 … 5    → yellow
    < 3      → red   (includes today and overdue)
    no date  → blue

Pure: no model or session imports, so models may call it on every read.
"""

from datetime import date, datetime

PRIORITY_BLUE = "blue"
PRIORITY_YELLOW = "yellow"
PRIORITY_RED = "red"

PRIORITIES = (PRIORITY_BLUE, PRIORITY_YELLOW, PRIORITY_RED)


def _as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def days_until(delivery_date: date | datetime, today: date | datetime | None = None) -> int:
    """Whole calendar days from ``today`` to ``delivery_date``."""
    today = _as_date(today) if today is not None else date.today()
    return (_as_date(delivery_date) - today).days


def compute_priority(
    delivery_date: date | datetime | None,
    today: date | datetime | None = None,
) -> str:
    """Map a delivery date to its priority tier.

    Args:
        delivery_date: Item (or order) delivery date; ``None`` means unscheduled.
        today: Reference day, defaults to ``date.today()``.

    Returns:
        "blue" | "yellow" | "red"
    """
    if delivery_date is None:
        return PRIORITY_BLUE

    days = days_until(delivery_date, today)
    if days > 5:
        return PRIORITY_BLUE
    if days >= 3:
        return PRIORITY_YELLOW
    return PRIORITY_RED
