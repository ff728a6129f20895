"""
Production stage catalog.

The catalog is the ordered list of production substages
(``{key, label, order}``) every item's ``production_stage_sequence`` is
chosen from.  Two sources reconcile:

    DEFAULT_STAGES                  compiled-in defaults
    app_settings['production_stages']  admin-edited list, wins when non-empty

Mutation is append/filter only.  Removing a key never touches items that
already reference it; ``stage_label`` falls back to the raw key for those.

Usage:
    from printshop.services.stage_catalog import get_catalog, add_stage

    catalog = get_catalog()
    add_stage("varnishing", "Varnishing", actor_id="u-admin")
"""

import logging
import re

from printshop.core.exceptions import ConflictError, NotFoundError, ValidationError
from printshop.models import db
from printshop.models.settings import AppSetting

logger = logging.getLogger(__name__)

SETTING_KEY = "production_stages"

DEFAULT_STAGES = [
    {"key": "foiling", "label": "Foiling", "order": 1},
    {"key": "printing", "label": "Printing", "order": 2},
    {"key": "pasting", "label": "Pasting", "order": 3},
    {"key": "cutting", "label": "Cutting", "order": 4},
    {"key": "letterpress", "label": "Letterpress", "order": 5},
    {"key": "embossing", "label": "Embossing", "order": 6},
    {"key": "packing", "label": "Packing", "order": 7},
]

_KEY_RE = re.compile(r"^[a-z0-9_]+$")


def _copy_defaults() -> list[dict]:
    return [dict(s) for s in DEFAULT_STAGES]


def _sort_key(raw: dict) -> tuple[bool, int]:
    """Stages without an ``order`` go last, in the order given."""
    order = raw.get("order")
    if order is None:
        return True, 0
    if isinstance(order, bool):
        raise ValidationError("Stage order must be an integer", details={"order": order})
    try:
        return False, int(order)
    except (TypeError, ValueError):
        raise ValidationError("Stage order must be an integer", details={"order": order}) from None


def _normalise(stages: list[dict]) -> list[dict]:
    """Validate shape, drop duplicates and renumber ``order`` from 1."""
    if not isinstance(stages, list):
        raise ValidationError("Stage catalog must be a list", details={"stages": "expected list"})

    for raw in stages:
        if not isinstance(raw, dict):
            raise ValidationError("Each stage must be an object with key and label")

    seen: set[str] = set()
    out: list[dict] = []
    for raw in sorted(stages, key=_sort_key):
        key = (raw.get("key") or "").strip().lower()
        if not key or not _KEY_RE.match(key):
            raise ValidationError(
                "Stage key must be lowercase letters, digits or underscores",
                details={"key": raw.get("key")},
            )
        if key in seen:
            raise ValidationError(f"Duplicate stage key '{key}'", details={"key": key})
        seen.add(key)
        label = (raw.get("label") or "").strip() or key.replace("_", " ").title()
        out.append({"key": key, "label": label, "order": len(out) + 1})
    return out


def _setting() -> AppSetting | None:
    return AppSetting.query.filter_by(setting_key=SETTING_KEY).first()


# ── Read ─────────────────────────────────────────────────────────────────────


def get_catalog() -> list[dict]:
    """Ordered catalog; the persisted list wins when it is non-empty."""
    setting = _setting()
    if setting and setting.value:
        return sorted((dict(s) for s in setting.value), key=lambda s: s.get("order", 0))
    return _copy_defaults()


def get_catalog_version() -> int:
    setting = _setting()
    return setting.version if setting else 0


def catalog_keys(catalog: list[dict] | None = None) -> list[str]:
    catalog = catalog if catalog is not None else get_catalog()
    return [s["key"] for s in catalog]


def default_sequence(catalog: list[dict] | None = None) -> list[str]:
    """Catalog keys in display order, used when an item has no custom selection."""
    return catalog_keys(catalog)


def stage_label(key: str | None, catalog: list[dict] | None = None) -> str | None:
    """Display label for ``key``; unknown keys fall back to the key itself."""
    if key is None:
        return None
    catalog = catalog if catalog is not None else get_catalog()
    for stage in catalog:
        if stage["key"] == key:
            return stage["label"]
    return key


def validate_sequence(sequence, catalog: list[dict] | None = None) -> list[str]:
    """Check a per-item production sequence against the catalog.

    Raises:
        ValidationError: empty, non-list, duplicate or unknown keys.
    """
    if not isinstance(sequence, list) or not sequence:
        raise ValidationError(
            "production_stage_sequence must be a non-empty list",
            details={"production_stage_sequence": sequence},
        )
    keys = set(catalog_keys(catalog))
    dupes = sorted({k for k in sequence if sequence.count(k) > 1})
    if dupes:
        raise ValidationError("Duplicate stages in sequence", details={"duplicates": dupes})
    unknown = [k for k in sequence if k not in keys]
    if unknown:
        raise ValidationError("Unknown production stages", details={"unknown": unknown})
    return list(sequence)


# ── Write ────────────────────────────────────────────────────────────────────


def save_catalog(stages: list[dict], actor_id: str | None = None) -> list[dict]:
    """Replace the persisted catalog and bump its version.  Commits."""
    normalised = _normalise(stages)
    if not normalised:
        raise ValidationError("Stage catalog cannot be empty")

    setting = _setting()
    if setting is None:
        setting = AppSetting(setting_key=SETTING_KEY, version=0)
        db.session.add(setting)
    setting.value = normalised
    setting.version = (setting.version or 0) + 1
    setting.updated_by = actor_id
    db.session.commit()

    logger.info(
        "Production stage catalog saved: %d stages (v%d)",
        len(normalised), setting.version,
        extra={"actor_id": actor_id},
    )
    return normalised


def add_stage(key: str, label: str | None = None, actor_id: str | None = None) -> list[dict]:
    """Append a stage at the end of the catalog."""
    catalog = get_catalog()
    normalised_key = (key or "").strip().lower()
    if normalised_key in catalog_keys(catalog):
        raise ConflictError(resource="ProductionStage", field="key", value=normalised_key)
    catalog.append({"key": normalised_key, "label": label, "order": len(catalog) + 1})
    return save_catalog(catalog, actor_id=actor_id)


def remove_stage(key: str, actor_id: str | None = None) -> list[dict]:
    """Filter a stage out of the catalog.

    Items whose sequence already references ``key`` keep it untouched.
    """
    catalog = get_catalog()
    if key not in catalog_keys(catalog):
        raise NotFoundError(resource="ProductionStage", resource_id=key)
    remaining = [s for s in catalog if s["key"] != key]
    if not remaining:
        raise ValidationError("Cannot remove the last production stage")
    return save_catalog(remaining, actor_id=actor_id)
