"""Widget display settings with sanitization."""

from __future__ import annotations

import copy
import re
from typing import Any


POSITIONS = ("bottom-right", "bottom-left", "top-right", "top-left")
DEFAULT_POSITION = "bottom-right"
DEFAULT_BUTTON_COLOR = "#52BA00"

_HEX_COLOR_RE = re.compile(r"#([A-Fa-f0-9]{3}){1,2}")
_TAG_RE = re.compile(r"<[^>]*>")
_SCRIPT_STYLE_RE = re.compile(r"<(script|style)[^>]*?>.*?</\1>", re.IGNORECASE | re.DOTALL)
_FALSY = {"", "0", "false", "no", "off"}


def default_options() -> dict:
    return {
        "enabled": True,
        "auto_load": True,
        "position": DEFAULT_POSITION,
        "main_button_color": DEFAULT_BUTTON_COLOR,
        "animation_enabled": True,
        "show_labels": True,
        "custom_css": "",
        "load_on_mobile": True,
        "exclude_pages": [],
        "custom_main_icon": 0,
    }


def _flag(options: dict, key: str, default: bool) -> bool:
    if key not in options or options[key] is None:
        return default
    value = options[key]
    if isinstance(value, str):
        return value.strip().lower() not in _FALSY
    return bool(value)


def _non_negative_int(value: Any) -> int:
    try:
        return abs(int(value))
    except (TypeError, ValueError):
        return 0


def sanitize_hex_color(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value if _HEX_COLOR_RE.fullmatch(value) else None


def strip_all_tags(value: Any) -> str:
    text = _SCRIPT_STYLE_RE.sub("", str(value))
    return _TAG_RE.sub("", text).strip()


def sanitize_options(options: Any) -> dict:
    """Coerce raw form or JSON input into a complete, valid options dict."""
    if not isinstance(options, dict):
        options = {}
    sanitized = {
        "enabled": _flag(options, "enabled", True),
        "auto_load": _flag(options, "auto_load", True),
    }

    position = options.get("position")
    position = position.strip() if isinstance(position, str) else DEFAULT_POSITION
    sanitized["position"] = position if position in POSITIONS else DEFAULT_POSITION

    sanitized["main_button_color"] = sanitize_hex_color(options.get("main_button_color")) or DEFAULT_BUTTON_COLOR
    sanitized["animation_enabled"] = _flag(options, "animation_enabled", True)
    sanitized["show_labels"] = _flag(options, "show_labels", True)
    sanitized["custom_css"] = strip_all_tags(options.get("custom_css") or "")
    sanitized["load_on_mobile"] = _flag(options, "load_on_mobile", True)

    pages = options.get("exclude_pages")
    sanitized["exclude_pages"] = [_non_negative_int(p) for p in pages] if isinstance(pages, (list, tuple)) else []
    sanitized["custom_main_icon"] = _non_negative_int(options.get("custom_main_icon", 0))
    return sanitized


class DisplaySettings:
    """Read/write access to the widget options over a settings backend.

    The backend only needs ``load() -> dict | None`` and ``save(dict)``.
    """

    def __init__(self, backend) -> None:
        self._backend = backend

    def get_options(self) -> dict:
        stored = self._backend.load()
        if not isinstance(stored, dict):
            return default_options()
        options = default_options()
        options.update(stored)
        return options

    def update_options(self, options: dict) -> dict:
        sanitized = sanitize_options(options)
        self._backend.save(sanitized)
        return copy.deepcopy(sanitized)

    def get_option(self, key: str, default: Any = None) -> Any:
        value: Any = self.get_options()
        for part in key.split("."):
            if not isinstance(value, dict) or part not in value:
                return default
            value = value[part]
        return value

    def is_enabled(self) -> bool:
        return bool(self.get_option("enabled", True))

    def is_auto_load_enabled(self) -> bool:
        return bool(self.get_option("auto_load", True))

    def should_show_labels(self) -> bool:
        return bool(self.get_option("show_labels", True))

    def display_block(self) -> dict:
        options = self.get_options()
        return {
            "position": options.get("position", DEFAULT_POSITION),
            "main_button_color": options.get("main_button_color", DEFAULT_BUTTON_COLOR),
            "animation_enabled": bool(options.get("animation_enabled", True)),
            "show_labels": bool(options.get("show_labels", True)),
        }

    def cache_relevant(self) -> dict:
        block = self.display_block()
        block["custom_main_icon"] = int(self.get_option("custom_main_icon", 0) or 0)
        return block
