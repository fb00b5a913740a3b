"""Ordered chat bubble items with validated create/update/delete/reorder."""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List

from contact_validator import ContactValidator
from platform_registry import PlatformRegistry


Issue = Dict[str, Any]

logger = logging.getLogger("bubbles.items")

LABEL_MIN = 2
LABEL_MAX = 255

MUTABLE_FIELDS = ("label", "contact_value", "qr_image_ref", "enabled", "sort_order")
_FIELD_ALIASES = {"platform": "platform_key", "qr_code_id": "qr_image_ref"}
_TAG_RE = re.compile(r"<[^>]*>")
_SPACE_RE = re.compile(r"\s+")
_FALSY = {"", "0", "false", "no", "off"}


def _issue(code: str, message: str, path: str | None = None, detail: dict | None = None) -> Issue:
    return {"code": code, "message": message, "path": path, "detail": detail}


def _failure(errors: List[Issue], warnings: List[Issue] | None = None, **payload) -> dict:
    return {"ok": False, **payload, "errors": errors, "warnings": warnings or []}


def _success(warnings: List[Issue] | None = None, **payload) -> dict:
    return {"ok": True, **payload, "errors": [], "warnings": warnings or []}


@dataclass
class Item:
    id: int
    platform_key: str
    label: str
    contact_value: str
    qr_image_ref: int = 0
    enabled: bool = True
    sort_order: int = 0

    @property
    def has_qr(self) -> bool:
        return self.qr_image_ref > 0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_row(cls, row: dict) -> "Item":
        return cls(
            id=int(row["id"]),
            platform_key=str(row["platform_key"]),
            label=str(row["label"]),
            contact_value=str(row["contact_value"]),
            qr_image_ref=int(row.get("qr_image_ref") or 0),
            enabled=bool(row.get("enabled")),
            sort_order=int(row.get("sort_order") or 0),
        )


def clean_text(value: Any) -> str:
    text = _TAG_RE.sub("", str(value))
    return _SPACE_RE.sub(" ", text).strip()


def raw_text(value: Any) -> str:
    """Trim ``value`` without any other cleanup; validation sees this form."""
    return "" if value is None else str(value).strip()


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in _FALSY
    return bool(value)


def _to_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


def _canonical_keys(data: dict) -> dict:
    normalized = {}
    for key, value in data.items():
        target = _FIELD_ALIASES.get(key, key)
        if target in normalized and key != target:
            continue
        normalized[target] = value
    return normalized


class ItemStore:
    """CRUD and ordering over chat bubble items.

    ``repository`` persists rows (see ``app.stores.MemoryItemRepository`` and
    ``app.stores_db.DbItemRepository``). ``media`` is the collaborator that
    owns QR images; only ``release_image(ref)`` is used here.

    Validation and not-found outcomes come back as ``{"ok": False, ...}``
    dicts; repository errors propagate to the caller.
    """

    def __init__(
        self,
        repository,
        registry: PlatformRegistry,
        validator: ContactValidator | None = None,
        media=None,
        label_min: int = LABEL_MIN,
        label_max: int = LABEL_MAX,
    ) -> None:
        self._repo = repository
        self._registry = registry
        self._validator = validator or ContactValidator(registry)
        self._media = media
        self.label_min = label_min
        self.label_max = label_max

    @property
    def data_version(self) -> int:
        return int(self._repo.get_meta("data_version", 1) or 1)

    def _bump_version(self) -> None:
        version = self._repo.bump_data_version()
        logger.debug("items_data_version=%s", version)

    def _check_label(self, label: str, errors: List[Issue]) -> None:
        if not (self.label_min <= len(label) <= self.label_max):
            errors.append(
                _issue(
                    "LABEL_LENGTH",
                    f"label must be between {self.label_min} and {self.label_max} characters",
                    "label",
                    {"min": self.label_min, "max": self.label_max, "length": len(label)},
                )
            )

    def _coerce_optional(self, data: dict, errors: List[Issue]) -> dict:
        values: dict = {}
        if "enabled" in data and data["enabled"] is not None:
            values["enabled"] = _to_bool(data["enabled"])
        if "qr_image_ref" in data:
            raw = data["qr_image_ref"]
            ref = 0 if raw in (None, "") else _to_int(raw)
            if ref is None or ref < 0:
                errors.append(_issue("FIELD_INVALID", "qr_image_ref must be a non-negative integer", "qr_image_ref"))
            else:
                values["qr_image_ref"] = ref
        if "sort_order" in data and data["sort_order"] not in (None, ""):
            order = _to_int(data["sort_order"])
            if order is None:
                errors.append(_issue("FIELD_INVALID", "sort_order must be an integer", "sort_order"))
            else:
                values["sort_order"] = order
        return values

    def create(self, data: dict) -> dict:
        if not isinstance(data, dict):
            return _failure([_issue("FIELD_INVALID", "item data must be an object")], item_id=None)
        data = _canonical_keys(data)
        errors: List[Issue] = []

        platform_key = clean_text(data.get("platform_key") or "")
        label = clean_text(data.get("label") or "")
        contact_value = raw_text(data.get("contact_value"))
        for field, value in (("platform_key", platform_key), ("label", label), ("contact_value", contact_value)):
            if not value:
                errors.append(_issue("REQUIRED_FIELD", f"Missing required field: {field}", field))
        if errors:
            return _failure(errors, item_id=None)

        if not self._registry.is_supported(platform_key):
            errors.append(_issue("PLATFORM_UNSUPPORTED", f"Unsupported platform: {platform_key}", "platform_key"))
            return _failure(errors, item_id=None)

        self._check_label(label, errors)
        if not self._validator.validate(platform_key, contact_value):
            errors.append(
                _issue(
                    "CONTACT_INVALID",
                    f"Invalid contact value for {self._registry.label(platform_key)}",
                    "contact_value",
                    {"platform_key": platform_key},
                )
            )
        values = self._coerce_optional(data, errors)
        if errors:
            return _failure(errors, item_id=None)

        row = {
            "platform_key": platform_key,
            "label": label,
            "contact_value": clean_text(contact_value),
            "qr_image_ref": values.get("qr_image_ref", 0),
            "enabled": values.get("enabled", True),
        }
        with self._repo.transaction():
            if "sort_order" in values:
                row["sort_order"] = values["sort_order"]
            else:
                row["sort_order"] = (self._repo.select_max_sort_order() or 0) + 1
            item_id = self._repo.insert(row)
            self._bump_version()

        logger.info("item_created id=%s platform=%s sort_order=%s", item_id, platform_key, row["sort_order"])
        return _success(item_id=item_id, item={"id": item_id, **row})

    def update(self, item_id: Any, data: dict) -> dict:
        item = self.get_by_id(item_id)
        if item is None:
            return _failure([_issue("ITEM_NOT_FOUND", "item not found", "id")], item=None)
        if not isinstance(data, dict):
            return _failure([_issue("FIELD_INVALID", "item data must be an object")], item=None)

        # platform is fixed at creation; attempts to change it are dropped
        data = {k: v for k, v in _canonical_keys(data).items() if k in MUTABLE_FIELDS}
        errors: List[Issue] = []
        changes: dict = {}

        if "label" in data:
            label = clean_text(data["label"] or "")
            self._check_label(label, errors)
            changes["label"] = label
        if "contact_value" in data:
            contact_value = raw_text(data["contact_value"])
            if not self._validator.validate(item.platform_key, contact_value):
                errors.append(
                    _issue(
                        "CONTACT_INVALID",
                        f"Invalid contact value for {self._registry.label(item.platform_key)}",
                        "contact_value",
                        {"platform_key": item.platform_key},
                    )
                )
            changes["contact_value"] = clean_text(contact_value)
        changes.update(self._coerce_optional(data, errors))
        if errors:
            return _failure(errors, item=None)
        if not changes:
            return _failure([_issue("NO_CHANGES", "no updatable fields provided")], item=None)

        updated = self._repo.update_by_id(item.id, changes)
        if not updated:
            return _failure([_issue("ITEM_NOT_FOUND", "item not found", "id")], item=None)
        self._bump_version()
        logger.info("item_updated id=%s fields=%s", item.id, ",".join(sorted(changes)))
        merged = {**item.to_dict(), **changes}
        return _success(item=merged)

    def delete(self, item_id: Any) -> dict:
        item = self.get_by_id(item_id)
        if item is None:
            return _failure([_issue("ITEM_NOT_FOUND", "item not found", "id")])

        warnings: List[Issue] = []
        if item.has_qr and self._media is not None:
            try:
                self._media.release_image(item.qr_image_ref)
            except Exception as exc:
                logger.warning("qr_release_failed item_id=%s ref=%s error=%s", item.id, item.qr_image_ref, exc)
                warnings.append(
                    _issue("QR_RELEASE_FAILED", "QR image could not be released", "qr_image_ref", {"ref": item.qr_image_ref})
                )

        deleted = self._repo.delete_by_id(item.id)
        if not deleted:
            return _failure([_issue("ITEM_NOT_FOUND", "item not found", "id")], warnings)
        self._bump_version()
        logger.info("item_deleted id=%s qr_ref=%s", item.id, item.qr_image_ref)
        return _success(warnings, item_id=item.id)

    def reorder(self, ordered_ids: Iterable[Any]) -> dict:
        """Assign ``sort_order = position + 1`` along ``ordered_ids``.

        Unknown or malformed ids are reported as warnings and skipped; the
        remaining assignments still apply.
        """
        if isinstance(ordered_ids, (str, bytes)) or ordered_ids is None:
            ids: list = []
        else:
            ids = list(ordered_ids)
        if not ids:
            return _failure([_issue("REORDER_EMPTY", "ordered_ids must be a non-empty list", "ordered_ids")], updated=0)

        warnings: List[Issue] = []
        updated = 0
        with self._repo.transaction():
            for index, raw_id in enumerate(ids):
                item_id = _to_int(raw_id)
                if item_id is None:
                    warnings.append(_issue("FIELD_INVALID", f"invalid item id: {raw_id!r}", f"ordered_ids[{index}]"))
                    continue
                if self._repo.update_by_id(item_id, {"sort_order": index + 1}):
                    updated += 1
                else:
                    warnings.append(_issue("ITEM_NOT_FOUND", f"item not found: {item_id}", f"ordered_ids[{index}]"))
            if updated:
                self._bump_version()
        logger.info("items_reordered count=%s updated=%s", len(ids), updated)
        return _success(warnings, updated=updated)

    def list_all(self, enabled_only: bool = False) -> list[Item]:
        rows = self._repo.select_ordered(enabled_only=enabled_only)
        items = [Item.from_row(row) for row in rows]
        items.sort(key=lambda it: (it.sort_order, it.id))
        return items

    def get_by_id(self, item_id: Any) -> Item | None:
        item_id = _to_int(item_id)
        if item_id is None:
            return None
        row = self._repo.select_by_id(item_id)
        return Item.from_row(row) if row else None
