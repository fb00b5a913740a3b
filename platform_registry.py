"""Static catalog of the messaging platforms a chat bubble can point at."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, Mapping


DEFAULT_COLOR = "#52BA00"
ICON_DIR = "assets/images/socials/"


class Platform(str, Enum):
    PHONE = "phone"
    ZALO = "zalo"
    WHATSAPP = "whatsapp"
    VIBER = "viber"
    TELEGRAM = "telegram"
    MESSENGER = "messenger"
    LINE = "line"
    KAKAOTALK = "kakaotalk"


class ContactFieldKind(str, Enum):
    NUMBER = "number"
    USERNAME = "username"
    ID = "id"


@dataclass(frozen=True)
class PlatformDefinition:
    key: Platform
    label: str
    contact_field_kind: ContactFieldKind
    pattern: re.Pattern
    placeholder: str
    url_template: str
    brand_color: str
    icon_file: str

    def build_url(self, value: str) -> str:
        return self.url_template.format(value=value)

    def matches(self, value: str) -> bool:
        return self.pattern.fullmatch(value) is not None

    def to_dict(self) -> dict:
        return {
            "key": self.key.value,
            "label": self.label,
            "contact_field": self.contact_field_kind.value,
            "pattern": self.pattern.pattern,
            "placeholder": self.placeholder,
            "brand_color": self.brand_color,
            "icon": self.icon_file,
        }


_DIAL_NUMBER = re.compile(r"\+?[0-9\s\-()]{7,20}")

_DEFINITIONS = (
    PlatformDefinition(
        key=Platform.PHONE,
        label="Phone/Hotline",
        contact_field_kind=ContactFieldKind.NUMBER,
        pattern=_DIAL_NUMBER,
        placeholder="+1234567890",
        url_template="tel:{value}",
        brand_color="#52BA00",
        icon_file="phone.svg",
    ),
    PlatformDefinition(
        key=Platform.ZALO,
        label="Zalo",
        contact_field_kind=ContactFieldKind.NUMBER,
        pattern=re.compile(r"[0-9]{9,11}"),
        placeholder="0123456789",
        url_template="https://zalo.me/{value}?openChat=true",
        brand_color="#008BE6",
        icon_file="zalo.svg",
    ),
    PlatformDefinition(
        key=Platform.WHATSAPP,
        label="WhatsApp",
        contact_field_kind=ContactFieldKind.NUMBER,
        pattern=re.compile(r"\+?[1-9][0-9]{0,15}"),
        placeholder="1234567890",
        url_template="https://wa.me/{value}",
        brand_color="#25D366",
        icon_file="whatsapp.svg",
    ),
    PlatformDefinition(
        key=Platform.VIBER,
        label="Viber",
        contact_field_kind=ContactFieldKind.NUMBER,
        pattern=_DIAL_NUMBER,
        placeholder="+1234567890",
        url_template="viber://contact?number={value}",
        brand_color="#665cac",
        icon_file="viber.svg",
    ),
    PlatformDefinition(
        key=Platform.TELEGRAM,
        label="Telegram",
        contact_field_kind=ContactFieldKind.USERNAME,
        # usernames start with a letter
        pattern=re.compile(r"[a-zA-Z][a-zA-Z0-9_]{4,31}"),
        placeholder="username",
        url_template="https://t.me/{value}",
        brand_color="#0088cc",
        icon_file="telegram.svg",
    ),
    PlatformDefinition(
        key=Platform.MESSENGER,
        label="Facebook Messenger",
        contact_field_kind=ContactFieldKind.USERNAME,
        pattern=re.compile(r"[a-zA-Z0-9][a-zA-Z0-9.]{0,49}"),
        placeholder="username",
        url_template="https://m.me/{value}",
        brand_color="#0084ff",
        icon_file="messenger.svg",
    ),
    PlatformDefinition(
        key=Platform.LINE,
        label="Line",
        contact_field_kind=ContactFieldKind.ID,
        pattern=re.compile(r"[a-zA-Z0-9._\-]{1,50}"),
        placeholder="your-line-id",
        url_template="https://line.me/ti/p/{value}",
        brand_color="#38cd01",
        icon_file="line.svg",
    ),
    PlatformDefinition(
        key=Platform.KAKAOTALK,
        label="KakaoTalk",
        contact_field_kind=ContactFieldKind.ID,
        pattern=re.compile(r"[a-zA-Z0-9_\-]{1,50}"),
        placeholder="your-kakao-id",
        # no public web link; the widget opens its QR panel for this anchor
        url_template="#kakaotalk-{value}",
        brand_color="#ffeb3b",
        icon_file="kakaotalk.svg",
    ),
)

# Icons shipped with the widget that are not wired to a platform yet.
EXTRA_ICONS = {
    "facebook": "facebook.svg",
    "instagram": "instagram.svg",
    "youtube": "youtube.svg",
    "tiktok": "tiktok.svg",
    "wechat": "wechat.svg",
}


class PlatformRegistry:
    """Read-only lookup over the supported platforms.

    Built once by the composition root and handed to every consumer; nothing
    mutates it after construction.
    """

    def __init__(self, asset_base_url: str = "") -> None:
        self._platforms: Dict[str, PlatformDefinition] = {d.key.value: d for d in _DEFINITIONS}
        self._asset_base_url = asset_base_url.rstrip("/") + "/" if asset_base_url else ""

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, (str, Platform)):
            return False
        return self.get(key) is not None

    def __iter__(self) -> Iterator[PlatformDefinition]:
        return iter(self._platforms.values())

    def __len__(self) -> int:
        return len(self._platforms)

    def list_platforms(self) -> Mapping[str, PlatformDefinition]:
        return dict(self._platforms)

    def get(self, key: str | Platform | None) -> PlatformDefinition | None:
        if isinstance(key, Platform):
            key = key.value
        if not isinstance(key, str):
            return None
        return self._platforms.get(key)

    def is_supported(self, key: str | None) -> bool:
        return self.get(key) is not None

    def label(self, key: str) -> str:
        definition = self.get(key)
        return definition.label if definition else str(key).capitalize()

    def color(self, key: str) -> str:
        definition = self.get(key)
        return definition.brand_color if definition else DEFAULT_COLOR

    def icon_file(self, key: str) -> str:
        definition = self.get(key)
        if definition:
            return definition.icon_file
        return EXTRA_ICONS.get(key, f"{key}.svg")

    def icon_url(self, key: str) -> str:
        return f"{self._asset_base_url}{ICON_DIR}{self.icon_file(key)}"

    def all_icons(self) -> dict[str, str]:
        icons = {key: self.icon_url(key) for key in self._platforms}
        for key in EXTRA_ICONS:
            icons[key] = self.icon_url(key)
        return icons

    def asset_url(self, path: str) -> str:
        return f"{self._asset_base_url}{path.lstrip('/')}"
