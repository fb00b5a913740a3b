"""Deep-link generation for chat bubble items."""

from __future__ import annotations

from platform_registry import PlatformRegistry


PLACEHOLDER_URL = "#"


class UrlGenerator:
    def __init__(self, registry: PlatformRegistry) -> None:
        self._registry = registry

    def generate_url(self, platform_key: str | None, contact_value: str | None) -> str:
        """Return the deep link for ``contact_value`` on ``platform_key``.

        The value is not re-validated here. Empty values and unknown platforms
        yield ``"#"`` so a renderer can always emit an anchor.
        """
        if not contact_value:
            return PLACEHOLDER_URL
        definition = self._registry.get(platform_key)
        if definition is None:
            return PLACEHOLDER_URL
        return definition.build_url(str(contact_value))
