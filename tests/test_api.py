import os
import sys
import unittest
import uuid

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from fastapi.testclient import TestClient

os.environ["USE_DB"] = "0"
os.environ["BUBBLES_MEDIA"] = "memory"

import app.main as main


class TestBubblesApi(unittest.TestCase):
    def setUp(self) -> None:
        self.client = TestClient(main.app)
        self.headers = {"X-Actor-Id": f"test_{uuid.uuid4().hex[:8]}"}

    def _create(self, **payload) -> dict:
        data = {"platform_key": "whatsapp", "label": "Sales", "contact_value": "1234567890"}
        data.update(payload)
        res = self.client.post("/items", json=data, headers=self.headers)
        self.assertEqual(res.status_code, 201, res.text)
        return res.json()

    def test_health_and_platforms(self) -> None:
        self.assertEqual(self.client.get("/health").json(), {"ok": True})
        body = self.client.get("/platforms").json()
        self.assertEqual(len(body["platforms"]), 8)
        self.assertIn("facebook", body["icons"])

    def test_create_get_update_delete(self) -> None:
        created = self._create()
        item_id = created["item_id"]
        self.assertEqual(created["action"], "created")

        fetched = self.client.get(f"/items/{item_id}").json()
        self.assertEqual(fetched["item"]["contact_value"], "1234567890")

        res = self.client.put(f"/items/{item_id}", json={"platform_key": "whatsapp", "label": "Renamed", "contact_value": "1234567890"}, headers=self.headers)
        self.assertEqual(res.status_code, 200, res.text)
        self.assertEqual(self.client.get(f"/items/{item_id}").json()["item"]["label"], "Renamed")

        res = self.client.delete(f"/items/{item_id}", headers=self.headers)
        self.assertEqual(res.status_code, 200)
        self.assertEqual(self.client.get(f"/items/{item_id}").status_code, 404)
        self.assertEqual(self.client.delete(f"/items/{item_id}", headers=self.headers).status_code, 404)

    def test_validation_errors(self) -> None:
        res = self.client.post("/items", json={"platform_key": "unknown_platform", "label": "Test", "contact_value": "12345"}, headers=self.headers)
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.json()["errors"][0]["code"], "PLATFORM_UNSUPPORTED")

        res = self.client.post("/items", json={"platform_key": "telegram", "label": "Support", "contact_value": "1abc"}, headers=self.headers)
        self.assertEqual(res.json()["errors"][0]["code"], "CONTACT_INVALID")

        res = self.client.post("/items", json=["not", "an", "object"], headers=self.headers)
        self.assertEqual(res.json()["errors"][0]["code"], "FIELD_INVALID")

    def test_put_keeps_disabled_state(self) -> None:
        item_id = self._create(enabled=False, qr_image_ref=9)["item_id"]
        res = self.client.put(f"/items/{item_id}", json={"platform_key": "whatsapp", "label": "Renamed", "contact_value": "1234567890"}, headers=self.headers)
        self.assertEqual(res.status_code, 200, res.text)
        item = self.client.get(f"/items/{item_id}").json()["item"]
        self.assertFalse(item["enabled"])
        self.assertEqual(item["qr_image_ref"], 9)

    def test_update_missing_item(self) -> None:
        res = self.client.put("/items/999999", json={"label": "Nope"}, headers=self.headers)
        self.assertEqual(res.status_code, 404)

    def test_reorder(self) -> None:
        first = self._create(label="First")["item_id"]
        second = self._create(label="Second")["item_id"]
        res = self.client.post("/items/reorder", json={"ordered_ids": [second, first]}, headers=self.headers)
        self.assertEqual(res.status_code, 200, res.text)
        orders = {row["id"]: row["sort_order"] for row in self.client.get("/items").json()["items"]}
        self.assertEqual((orders[second], orders[first]), (1, 2))

        res = self.client.post("/items/reorder", json={"ordered_ids": []}, headers=self.headers)
        self.assertEqual(res.json()["errors"][0]["code"], "REORDER_EMPTY")

    def test_frontend_reflects_changes(self) -> None:
        item_id = self._create(platform_key="telegram", label="Support", contact_value="support_bot")["item_id"]
        body = self.client.get("/frontend").json()
        self.assertTrue(body["should_load"])
        urls = {row["id"]: row["platform_url"] for row in body["projection"]["items"]}
        self.assertEqual(urls[item_id], "https://t.me/support_bot")

        self.client.put(f"/items/{item_id}", json={"platform_key": "telegram", "label": "Support", "contact_value": "help_desk"}, headers=self.headers)
        body = self.client.get("/frontend").json()
        urls = {row["id"]: row["platform_url"] for row in body["projection"]["items"]}
        self.assertEqual(urls[item_id], "https://t.me/help_desk")

        js = self.client.get("/frontend/js").json()["items"]
        self.assertEqual(js[str(item_id)]["url"], "https://t.me/help_desk")

        self.assertFalse(self.client.get("/frontend", params={"is_admin": "true"}).json()["should_load"])

    def test_settings_round_trip(self) -> None:
        original = self.client.get("/settings").json()["settings"]
        try:
            res = self.client.put("/settings", json={**original, "position": "top-left", "main_button_color": "bad"})
            settings = res.json()["settings"]
            self.assertEqual(settings["position"], "top-left")
            self.assertEqual(settings["main_button_color"], "#52BA00")
        finally:
            self.client.put("/settings", json=original)

    def test_media_url(self) -> None:
        ref = main.media.add_image(b"qr", filename="qr.png")
        res = self.client.get(f"/media/{ref}/url", headers=self.headers)
        self.assertEqual(res.json()["url"], f"memory://media/{ref}/qr.png")
        self.assertEqual(self.client.get("/media/999999/url", headers=self.headers).status_code, 404)


if __name__ == "__main__":
    unittest.main()
