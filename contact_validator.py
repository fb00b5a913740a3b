"""Contact value validation against per-platform patterns."""

from __future__ import annotations

from platform_registry import PlatformRegistry


MAX_CONTACT_LENGTH = 100

# Checked case-insensitively before any platform pattern.
XSS_DENYLIST = (
    "<script",
    "javascript:",
    "vbscript:",
    "onload=",
    "onerror=",
    "onclick=",
    "onmouseover=",
    "expression(",
)


def contains_xss_signal(value: str) -> bool:
    lowered = value.lower()
    return any(token in lowered for token in XSS_DENYLIST)


class ContactValidator:
    def __init__(self, registry: PlatformRegistry) -> None:
        self._registry = registry

    def validate(self, platform_key: str | None, contact_value: str | None) -> bool:
        if not isinstance(contact_value, str):
            return False
        value = contact_value.strip()
        if not value:
            return False
        definition = self._registry.get(platform_key)
        if definition is None:
            return False
        if len(value) > MAX_CONTACT_LENGTH:
            return False
        if contains_xss_signal(value):
            return False
        return definition.matches(value)
