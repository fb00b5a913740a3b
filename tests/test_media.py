import os
import sys
import tempfile
import unittest
from unittest import mock

import httpx


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from app.media import MAX_IMAGE_BYTES, StorageMediaLibrary


_NO_SUPABASE = {"SUPABASE_URL": "", "SUPABASE_SERVICE_ROLE_KEY": ""}
_SUPABASE = {
    "SUPABASE_URL": "https://project.supabase.co",
    "SUPABASE_SERVICE_ROLE_KEY": "service-key",
    "SUPABASE_STORAGE_BUCKET_MEDIA": "bubbles",
}


class TestLocalMediaLibrary(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        patcher = mock.patch.dict(os.environ, _NO_SUPABASE)
        patcher.start()
        self.addCleanup(patcher.stop)
        self.media = StorageMediaLibrary(root=self._tmp.name, base_url="https://site.example/media")

    def test_store_and_resolve(self) -> None:
        ref = self.media.store_image(b"png-bytes", "qr code.png")
        self.assertEqual(ref, 1)
        self.assertEqual(self.media.image_info(ref), {"filename": "qr code.png", "mime_type": "image/png", "size": 9})
        self.assertEqual(self.media.resolve_image_url(ref), "https://site.example/media/qr/1")
        self.assertTrue(os.path.exists(os.path.join(self._tmp.name, "qr", "1")))
        self.assertEqual(self.media.store_image(b"gif", "b.gif"), 2)

    def test_rejects_non_images(self) -> None:
        with self.assertRaises(ValueError):
            self.media.store_image(b"%PDF", "doc.pdf")
        with self.assertRaises(ValueError):
            self.media.store_image(b"x" * (MAX_IMAGE_BYTES + 1), "big.png")

    def test_release(self) -> None:
        ref = self.media.store_image(b"png-bytes", "qr.png")
        self.media.release_image(ref)
        self.assertIsNone(self.media.image_info(ref))
        self.assertIsNone(self.media.resolve_image_url(ref))
        self.assertFalse(os.path.exists(os.path.join(self._tmp.name, "qr", str(ref))))
        self.media.release_image(ref)

    def test_resolve_unknown(self) -> None:
        self.assertIsNone(self.media.resolve_image_url(0))
        self.assertIsNone(self.media.resolve_image_url(5))


class TestSupabaseMediaLibrary(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        patcher = mock.patch.dict(os.environ, _SUPABASE)
        patcher.start()
        self.addCleanup(patcher.stop)
        self.requests = []
        self.status = 200

        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return httpx.Response(self.status, json={})

        client = httpx.Client(transport=httpx.MockTransport(handler))
        self.addCleanup(client.close)
        self.media = StorageMediaLibrary(root=self._tmp.name, client=client)

    def test_upload_and_public_url(self) -> None:
        ref = self.media.store_image(b"png-bytes", "qr.png")
        request = self.requests[0]
        self.assertEqual(request.method, "POST")
        self.assertEqual(str(request.url), "https://project.supabase.co/storage/v1/object/bubbles/qr/1")
        self.assertEqual(request.headers["Authorization"], "Bearer service-key")
        self.assertEqual(request.headers["Content-Type"], "image/png")
        self.assertEqual(
            self.media.resolve_image_url(ref),
            "https://project.supabase.co/storage/v1/object/public/bubbles/qr/1",
        )

    def test_upload_failure_raises(self) -> None:
        self.status = 400
        with self.assertRaises(RuntimeError):
            self.media.store_image(b"png-bytes", "qr.png")

    def test_release_tolerates_missing_object(self) -> None:
        ref = self.media.store_image(b"png-bytes", "qr.png")
        self.status = 404
        self.media.release_image(ref)
        self.assertEqual(self.requests[-1].method, "DELETE")
        self.assertIsNone(self.media.image_info(ref))

    def test_release_server_error_raises(self) -> None:
        ref = self.media.store_image(b"png-bytes", "qr.png")
        self.status = 503
        with self.assertRaises(RuntimeError):
            self.media.release_image(ref)


if __name__ == "__main__":
    unittest.main()
