import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from platform_registry import Platform, PlatformRegistry
from url_generator import UrlGenerator


class TestUrlGenerator(unittest.TestCase):
    def setUp(self) -> None:
        self.urls = UrlGenerator(PlatformRegistry())

    def test_platform_urls(self) -> None:
        cases = [
            ("phone", "+1234567890", "tel:+1234567890"),
            ("whatsapp", "1234567890", "https://wa.me/1234567890"),
            ("zalo", "0123456789", "https://zalo.me/0123456789?openChat=true"),
            ("telegram", "username", "https://t.me/username"),
            ("messenger", "user123", "https://m.me/user123"),
            ("viber", "+1234567890", "viber://contact?number=+1234567890"),
            ("line", "lineid", "https://line.me/ti/p/lineid"),
            ("kakaotalk", "kakao_id", "#kakaotalk-kakao_id"),
        ]
        for platform, value, expected in cases:
            with self.subTest(platform=platform):
                self.assertEqual(self.urls.generate_url(platform, value), expected)

    def test_enum_key_accepted(self) -> None:
        self.assertEqual(self.urls.generate_url(Platform.TELEGRAM, "username"), "https://t.me/username")

    def test_empty_value_is_placeholder(self) -> None:
        for platform in Platform:
            with self.subTest(platform=platform.value):
                self.assertEqual(self.urls.generate_url(platform.value, ""), "#")
        self.assertEqual(self.urls.generate_url("whatsapp", None), "#")

    def test_unknown_platform_is_placeholder(self) -> None:
        self.assertEqual(self.urls.generate_url("unknown", "test"), "#")
        self.assertEqual(self.urls.generate_url(None, "test"), "#")

    def test_invalid_value_does_not_raise(self) -> None:
        self.assertEqual(self.urls.generate_url("whatsapp", "not a number {x}"), "https://wa.me/not a number {x}")

    def test_deterministic(self) -> None:
        first = self.urls.generate_url("line", "abc")
        self.assertEqual(first, self.urls.generate_url("line", "abc"))


if __name__ == "__main__":
    unittest.main()
