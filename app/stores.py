"""In-memory stores for items, settings and QR media."""

from __future__ import annotations

import copy
import threading
from contextlib import contextmanager
from typing import Any, Dict

from display_settings import default_options, sanitize_options


class MemoryItemRepository:
    """Item rows keyed by an auto-incrementing integer id.

    ``transaction()`` holds a re-entrant lock so the read-then-write of a
    create and the multi-row write of a reorder are atomic within a process.
    """

    def __init__(self) -> None:
        self._rows: Dict[int, dict] = {}
        self._meta: Dict[str, Any] = {}
        self._next_id = 1
        self._lock = threading.RLock()

    @contextmanager
    def transaction(self):
        with self._lock:
            yield self

    def insert(self, values: dict) -> int:
        with self._lock:
            item_id = self._next_id
            self._next_id += 1
            row = copy.deepcopy(values)
            row["id"] = item_id
            self._rows[item_id] = row
            return item_id

    def update_by_id(self, item_id: int, changes: dict) -> bool:
        with self._lock:
            row = self._rows.get(item_id)
            if row is None:
                return False
            row.update(copy.deepcopy(changes))
            return True

    def delete_by_id(self, item_id: int) -> bool:
        with self._lock:
            return self._rows.pop(item_id, None) is not None

    def select_by_id(self, item_id: int) -> dict | None:
        with self._lock:
            row = self._rows.get(item_id)
            return copy.deepcopy(row) if row else None

    def select_ordered(self, enabled_only: bool = False) -> list[dict]:
        with self._lock:
            rows = [copy.deepcopy(r) for r in self._rows.values() if not enabled_only or r.get("enabled")]
        return sorted(rows, key=lambda r: (r.get("sort_order") or 0, r["id"]))

    def select_max_sort_order(self) -> int:
        if not self._rows:
            return 0
        return max(r.get("sort_order") or 0 for r in self._rows.values())

    def get_meta(self, key: str, default: Any = None) -> Any:
        return copy.deepcopy(self._meta.get(key, default))

    def set_meta(self, key: str, value: Any) -> None:
        with self._lock:
            self._meta[key] = copy.deepcopy(value)

    def bump_data_version(self) -> int:
        with self._lock:
            version = int(self._meta.get("data_version", 1)) + 1
            self._meta["data_version"] = version
            return version


class MemorySettingsStore:
    """Display settings held in process memory; see ``display_settings``."""

    def __init__(self, options: dict | None = None) -> None:
        self._options = sanitize_options(options) if options is not None else default_options()

    def load(self) -> dict:
        return copy.deepcopy(self._options)

    def save(self, options: dict) -> None:
        self._options = copy.deepcopy(options)


class MemoryMediaLibrary:
    """QR images held as bytes, addressed by integer refs."""

    def __init__(self, base_url: str = "memory://media/") -> None:
        self._images: Dict[int, dict] = {}
        self._next_ref = 1
        self._base_url = base_url
        self.released: list[int] = []
        self.fail_release = False

    def add_image(self, data: bytes, mime_type: str = "image/png", filename: str = "qr.png") -> int:
        ref = self._next_ref
        self._next_ref += 1
        self._images[ref] = {"data": data, "mime_type": mime_type, "filename": filename, "size": len(data)}
        return ref

    def image_info(self, ref: int) -> dict | None:
        image = self._images.get(ref)
        if image is None:
            return None
        return {"mime_type": image["mime_type"], "size": image["size"], "filename": image["filename"]}

    def release_image(self, ref: int) -> None:
        self.released.append(ref)
        if self.fail_release:
            raise RuntimeError(f"media_release_failed:{ref}")
        self._images.pop(ref, None)

    def resolve_image_url(self, ref: int) -> str | None:
        image = self._images.get(ref)
        if image is None:
            return None
        return f"{self._base_url}{ref}/{image['filename']}"
