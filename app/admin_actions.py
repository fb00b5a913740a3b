"""Admin-facing item actions with caller-side policy checks."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, List

from app.media import ALLOWED_IMAGE_TYPES, MAX_IMAGE_BYTES
from contact_validator import ContactValidator
from item_store import ItemStore, clean_text, raw_text
from platform_registry import PlatformRegistry


logger = logging.getLogger("bubbles.admin")

ADMIN_LABEL_MIN = 2
ADMIN_LABEL_MAX = 50
REORDER_MAX = 50


def _issue(code: str, message: str, path: str | None = None, detail: dict | None = None) -> dict:
    return {"code": code, "message": message, "path": path, "detail": detail}


def _error(code: str, message: str, path: str | None = None, detail: dict | None = None) -> dict:
    return {"ok": False, "errors": [_issue(code, message, path, detail)], "warnings": []}


class RateLimiter:
    """Fixed-window request counter per actor."""

    def __init__(self, limit: int = 20, window_s: float = 60.0, clock: Callable[[], float] = time.time) -> None:
        self.limit = limit
        self.window_s = window_s
        self._clock = clock
        self._windows: Dict[str, tuple[float, int]] = {}
        self._lock = threading.Lock()

    def allow(self, actor_id: str) -> bool:
        now = self._clock()
        with self._lock:
            started, count = self._windows.get(actor_id, (now, 0))
            if now - started >= self.window_s:
                started, count = now, 0
            if count >= self.limit:
                return False
            self._windows[actor_id] = (started, count + 1)
            return True


class AdminActions:
    """Guards Item Store mutations the way the admin screen expects.

    The label policy here is stricter than the store's own bound and the
    reorder cap lives only at this layer.
    """

    def __init__(
        self,
        store: ItemStore,
        registry: PlatformRegistry,
        validator: ContactValidator | None = None,
        media=None,
        on_change: Callable[[], None] | None = None,
        rate_limiter: RateLimiter | None = None,
        label_min: int = ADMIN_LABEL_MIN,
        label_max: int = ADMIN_LABEL_MAX,
        reorder_max: int = REORDER_MAX,
    ) -> None:
        self._store = store
        self._registry = registry
        self._validator = validator or ContactValidator(registry)
        self._media = media
        self._on_change = on_change
        self._limiter = rate_limiter or RateLimiter()
        self.label_min = label_min
        self.label_max = label_max
        self.reorder_max = reorder_max

    def _throttled(self, actor_id: str) -> dict | None:
        if self._limiter.allow(actor_id):
            return None
        logger.warning("admin_rate_limited actor=%s", actor_id)
        return _error("RATE_LIMITED", "Too many requests. Please wait a moment before trying again.")

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()

    def list_items(self) -> list[dict]:
        rows = []
        for item in self._store.list_all():
            row = item.to_dict()
            row["platform_label"] = self._registry.label(item.platform_key)
            row["platform_icon"] = self._registry.icon_url(item.platform_key)
            row["has_qr"] = item.has_qr
            rows.append(row)
        return rows

    def save_item(self, payload: dict, actor_id: str = "anonymous") -> dict:
        throttled = self._throttled(actor_id)
        if throttled:
            return throttled
        if not isinstance(payload, dict):
            return _error("FIELD_INVALID", "item data must be an object")

        try:
            item_id = int(payload.get("item_id") or 0)
        except (TypeError, ValueError):
            return _error("FIELD_INVALID", "item_id must be an integer", "item_id")
        platform_key = clean_text(payload.get("platform_key") or payload.get("platform") or "")
        label = clean_text(payload.get("label") or "")
        contact_value = raw_text(payload.get("contact_value"))

        if not platform_key or not label or not contact_value:
            return _error("REQUIRED_FIELD", "Required fields are missing")
        if not self._registry.is_supported(platform_key):
            return _error("PLATFORM_UNSUPPORTED", "Invalid platform selected", "platform_key")
        if not (self.label_min <= len(label) <= self.label_max):
            return _error(
                "LABEL_LENGTH",
                f"Label must be between {self.label_min} and {self.label_max} characters",
                "label",
                {"min": self.label_min, "max": self.label_max},
            )
        if not self._validator.validate(platform_key, contact_value):
            definition = self._registry.get(platform_key)
            return _error(
                "CONTACT_INVALID",
                "Invalid contact value format for selected platform",
                "contact_value",
                {"platform_key": platform_key, "placeholder": definition.placeholder},
            )

        data: Dict[str, Any] = {
            "platform_key": platform_key,
            "label": label,
            "contact_value": contact_value,
        }
        # omitted fields keep their stored values on update
        for source in ("qr_image_ref", "qr_code_id"):
            if source in payload:
                data["qr_image_ref"] = payload[source] or 0
                break
        if "enabled" in payload:
            data["enabled"] = payload["enabled"]
        if item_id > 0:
            result = self._store.update(item_id, data)
            action = "updated"
        else:
            result = self._store.create(data)
            action = "created"
        if not result["ok"]:
            return result
        self._changed()
        logger.info("admin_item_saved actor=%s action=%s", actor_id, action)
        return {**result, "action": action, "message": f"Item {action} successfully"}

    def delete_item(self, item_id: Any, actor_id: str = "anonymous") -> dict:
        throttled = self._throttled(actor_id)
        if throttled:
            return throttled
        result = self._store.delete(item_id)
        if result["ok"]:
            self._changed()
            result = {**result, "message": "Item deleted successfully"}
        return result

    def reorder_items(self, ordered_ids: List[Any], actor_id: str = "anonymous") -> dict:
        throttled = self._throttled(actor_id)
        if throttled:
            return throttled
        if not isinstance(ordered_ids, list):
            return _error("FIELD_INVALID", "ordered_ids must be a list", "ordered_ids")
        if len(ordered_ids) > self.reorder_max:
            return _error("REORDER_TOO_MANY", "Too many items to reorder.", "ordered_ids", {"max": self.reorder_max})
        result = self._store.reorder(ordered_ids)
        if result["ok"]:
            self._changed()
            result = {**result, "message": "Items reordered successfully"}
        return result

    def image_url(self, ref: Any, actor_id: str = "anonymous") -> dict:
        throttled = self._throttled(actor_id)
        if throttled:
            return throttled
        try:
            ref = int(ref or 0)
        except (TypeError, ValueError):
            ref = 0
        if ref <= 0 or self._media is None:
            return _error("MEDIA_NOT_FOUND", "Invalid attachment ID", "ref")
        info = self._media.image_info(ref)
        if info is None:
            return _error("MEDIA_NOT_FOUND", "Invalid attachment ID", "ref")
        if info.get("mime_type") not in ALLOWED_IMAGE_TYPES:
            return _error("MEDIA_INVALID_TYPE", "Invalid file type. Only images are allowed.", "ref")
        if int(info.get("size") or 0) > MAX_IMAGE_BYTES:
            return _error("MEDIA_TOO_LARGE", "File too large. Maximum size is 2MB.", "ref")
        url = self._media.resolve_image_url(ref)
        if not url:
            return _error("MEDIA_NOT_FOUND", "Invalid attachment ID", "ref")
        return {"ok": True, "url": url, "errors": [], "warnings": []}
