"""Read-optimized view of enabled items for the widget renderer."""

from __future__ import annotations

import copy
import logging

from bubbles.settings_hash import settings_hash
from display_settings import DisplaySettings
from item_store import Item, ItemStore
from platform_registry import PlatformRegistry
from read_cache import ReadThroughCache
from url_generator import UrlGenerator


logger = logging.getLogger("bubbles.projection")

SUPPORT_ICON = "assets/images/support.svg"
CANCEL_ICON = "assets/images/cancel.svg"
CACHE_PREFIX = "frontend:"


class ProjectionService:
    """Builds the frontend projection from the item store.

    The cache is optional; with ``cache=None`` (or a cache that always misses)
    every call recomputes from storage and returns the same result.
    """

    def __init__(
        self,
        store: ItemStore,
        registry: PlatformRegistry,
        settings: DisplaySettings,
        media=None,
        urls: UrlGenerator | None = None,
        cache: ReadThroughCache | None = None,
    ) -> None:
        self._store = store
        self._registry = registry
        self._settings = settings
        self._media = media
        self._urls = urls or UrlGenerator(registry)
        self._cache = cache

    def cache_key(self) -> str:
        return f"{CACHE_PREFIX}v{self._store.data_version}:s{settings_hash(self._settings.cache_relevant())}"

    def get_frontend_projection(self) -> dict | None:
        if self._cache is None:
            return self._build()
        return copy.deepcopy(self._cache.get_or_load(self.cache_key(), self._build))

    def get_frontend_js_data(self) -> dict:
        projection = self.get_frontend_projection()
        if not projection:
            return {}
        js_data = {}
        for item in projection["items"]:
            js_data[item["id"]] = {
                "id": item["id"],
                "platform": item["platform"],
                "label": item["label"],
                "url": item["platform_url"],
                "icon": item["platform_icon"],
                "qr_code": item["qr_code_url"],
                "has_qr": item["has_qr"],
            }
        return js_data

    def should_load(self, page_id: int | None = None, is_admin: bool = False) -> bool:
        if not self._settings.is_enabled():
            return False
        if not self._settings.is_auto_load_enabled():
            return False
        if is_admin:
            return False
        excluded = self._settings.get_option("exclude_pages", []) or []
        if page_id is not None and page_id in excluded:
            return False
        return True

    def invalidate(self) -> None:
        if self._cache is not None:
            self._cache.invalidate_prefix(CACHE_PREFIX)

    def _image_url(self, ref: int) -> str:
        if ref <= 0 or self._media is None:
            return ""
        return self._media.resolve_image_url(ref) or ""

    def _main_icon_url(self) -> str:
        custom = int(self._settings.get_option("custom_main_icon", 0) or 0)
        url = self._image_url(custom)
        return url or self._registry.asset_url(SUPPORT_ICON)

    def _project_item(self, item: Item) -> dict:
        return {
            "id": item.id,
            "platform": item.platform_key,
            "label": item.label,
            "contact_value": item.contact_value,
            "enabled": item.enabled,
            "qr_image_ref": item.qr_image_ref,
            "sort_order": item.sort_order,
            "platform_url": self._urls.generate_url(item.platform_key, item.contact_value),
            "platform_icon": self._registry.icon_url(item.platform_key),
            "platform_color": self._registry.color(item.platform_key),
            "qr_code_url": self._image_url(item.qr_image_ref),
            "has_qr": item.has_qr,
        }

    def _build(self) -> dict | None:
        items = self._store.list_all(enabled_only=True)
        if not items:
            logger.info("frontend_projection empty=true")
            return None
        projection = {
            "items": [self._project_item(item) for item in items],
            "settings": self._settings.display_block(),
            "support_icon": self._main_icon_url(),
            "cancel_icon": self._registry.asset_url(CANCEL_ICON),
        }
        logger.info("frontend_projection items=%s", len(projection["items"]))
        return projection
