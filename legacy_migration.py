"""One-shot import of items from the legacy per-platform options format."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from item_store import ItemStore


logger = logging.getLogger("bubbles.migration")

MIGRATED_KEY = "migrated"
BACKUP_KEY = "legacy_options_backup"
_CONTACT_FIELDS = ("number", "username", "id")


def _contact_value(config: dict) -> str:
    for field in _CONTACT_FIELDS:
        value = config.get(field)
        if value:
            return str(value)
    return ""


def migrate_legacy_options(store: ItemStore, meta, legacy: dict | None) -> dict:
    """Create items from ``legacy["platforms"]`` once.

    ``meta`` is the repository meta interface (``get_meta``/``set_meta``).
    Legacy QR code paths are not carried over; migrated items start without
    a QR image.
    """
    if meta.get_meta(MIGRATED_KEY, False):
        return {"ok": True, "migrated": 0, "skipped": 0, "already_migrated": True, "errors": [], "warnings": []}

    platforms = legacy.get("platforms") if isinstance(legacy, dict) else None
    if not isinstance(platforms, dict) or not platforms:
        meta.set_meta(MIGRATED_KEY, True)
        return {"ok": True, "migrated": 0, "skipped": 0, "already_migrated": False, "errors": [], "warnings": []}

    migrated = 0
    skipped = 0
    warnings = []
    order = 1
    for platform_key, config in platforms.items():
        if not isinstance(config, dict) or not config.get("enabled") or not config.get("label"):
            skipped += 1
            continue
        contact_value = _contact_value(config)
        if not contact_value:
            skipped += 1
            continue
        result = store.create(
            {
                "platform_key": platform_key,
                "label": config["label"],
                "contact_value": contact_value,
                "qr_image_ref": 0,
                "enabled": True,
                "sort_order": order,
            }
        )
        order += 1
        if result["ok"]:
            migrated += 1
        else:
            skipped += 1
            for err in result["errors"]:
                warnings.append({**err, "detail": {**(err.get("detail") or {}), "legacy_platform": platform_key}})

    meta.set_meta(BACKUP_KEY, legacy)
    meta.set_meta(MIGRATED_KEY, True)
    logger.info("legacy_migration migrated=%s skipped=%s", migrated, skipped)
    return {
        "ok": migrated > 0,
        "migrated": migrated,
        "skipped": skipped,
        "already_migrated": False,
        "errors": [],
        "warnings": warnings,
    }


def load_legacy_options(path: str | Path) -> dict | None:
    path = Path(path)
    if not path.exists():
        logger.info("legacy_migration source_missing path=%s", path)
        return None
    return json.loads(path.read_text(encoding="utf-8"))


def migrate_legacy_file(store: ItemStore, meta, path: str | Path | None) -> dict | None:
    """Run ``migrate_legacy_options`` on a JSON export of the legacy options.

    Returns ``None`` without touching the store or the migrated flag when no
    path is configured or the file is not there yet.
    """
    if not path:
        return None
    if meta.get_meta(MIGRATED_KEY, False):
        return migrate_legacy_options(store, meta, None)
    legacy = load_legacy_options(path)
    if legacy is None:
        return None
    return migrate_legacy_options(store, meta, legacy)
