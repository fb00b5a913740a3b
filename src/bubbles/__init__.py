"""Chat bubbles kernel utilities."""

from .settings_hash import SettingsHashError, canonical_dumps, settings_hash

__all__ = [
    "SettingsHashError",
    "canonical_dumps",
    "settings_hash",
]
