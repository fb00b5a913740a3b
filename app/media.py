"""QR image storage: local directory or Supabase Storage."""

from __future__ import annotations

import json
import logging
import mimetypes
import os
from pathlib import Path
from urllib.parse import quote

import httpx


logger = logging.getLogger("bubbles.media")

ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"}
MAX_IMAGE_BYTES = 2 * 1024 * 1024


def _supabase_url() -> str:
    return (os.getenv("SUPABASE_URL") or "").strip().rstrip("/")


def _supabase_service_role_key() -> str:
    return (os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "").strip()


def _supabase_enabled() -> bool:
    return bool(_supabase_url() and _supabase_service_role_key())


def media_bucket() -> str:
    return (os.getenv("SUPABASE_STORAGE_BUCKET_MEDIA") or "chat-bubbles").strip()


def _supabase_headers(content_type: str | None = None) -> dict:
    headers = {
        "Authorization": f"Bearer {_supabase_service_role_key()}",
        "apikey": _supabase_service_role_key(),
        "x-upsert": "true",
    }
    if content_type:
        headers["Content-Type"] = content_type
    return headers


def _object_url(bucket: str, storage_key: str) -> str:
    return f"{_supabase_url()}/storage/v1/object/{bucket}/{quote(storage_key, safe='/')}"


def public_url(bucket: str, storage_key: str) -> str:
    return f"{_supabase_url()}/storage/v1/object/public/{bucket}/{quote(storage_key, safe='/')}"


class StorageMediaLibrary:
    """Images addressed by integer refs, stored as ``qr/<ref>`` objects.

    Each object has a JSON sidecar ``qr/<ref>.json`` with its filename, mime
    type and size. With ``SUPABASE_URL`` and ``SUPABASE_SERVICE_ROLE_KEY`` set
    objects live in Supabase Storage, otherwise under ``BUBBLES_STORAGE_DIR``.
    """

    def __init__(self, root: str | Path | None = None, base_url: str | None = None, client: httpx.Client | None = None) -> None:
        self._root = Path(root or os.getenv("BUBBLES_STORAGE_DIR", "storage"))
        self._base_url = (base_url if base_url is not None else os.getenv("BUBBLES_MEDIA_BASE_URL", "/media/")).rstrip("/") + "/"
        self._client = client
        self._remote = _supabase_enabled()

    @staticmethod
    def _key(ref: int) -> str:
        return f"qr/{int(ref)}"

    def _http(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=30.0)
        return self._client

    def _remote_upload(self, storage_key: str, data: bytes, mime_type: str) -> None:
        res = self._http().post(_object_url(media_bucket(), storage_key), headers=_supabase_headers(mime_type), content=data)
        if res.status_code >= 400:
            raise RuntimeError(f"supabase_upload_failed:{res.status_code}:{res.text}")

    def _remote_delete(self, storage_key: str) -> None:
        res = self._http().delete(_object_url(media_bucket(), storage_key), headers=_supabase_headers())
        # 404s are fine during cleanup.
        if res.status_code >= 500:
            raise RuntimeError(f"supabase_delete_failed:{res.status_code}")

    def _next_ref(self) -> int:
        refs = [int(p.stem) for p in (self._root / "qr").glob("*.json") if p.stem.isdigit()]
        return max(refs, default=0) + 1

    def store_image(self, data: bytes, filename: str, mime_type: str | None = None, ref: int | None = None) -> int:
        mime_type = mime_type or mimetypes.guess_type(filename)[0] or "application/octet-stream"
        if mime_type not in ALLOWED_IMAGE_TYPES:
            raise ValueError(f"unsupported image type: {mime_type}")
        if len(data) > MAX_IMAGE_BYTES:
            raise ValueError("image larger than 2MB")
        ref = ref or self._next_ref()
        info = {"filename": filename.replace("/", "_"), "mime_type": mime_type, "size": len(data)}
        key = self._key(ref)
        folder = self._root / "qr"
        folder.mkdir(parents=True, exist_ok=True)
        if self._remote:
            self._remote_upload(key, data, mime_type)
        else:
            (self._root / key).write_bytes(data)
        (folder / f"{ref}.json").write_text(json.dumps(info), encoding="utf-8")
        logger.info("media_stored ref=%s size=%s remote=%s", ref, len(data), self._remote)
        return ref

    def image_info(self, ref: int) -> dict | None:
        sidecar = self._root / "qr" / f"{int(ref)}.json"
        if not sidecar.exists():
            return None
        return json.loads(sidecar.read_text(encoding="utf-8"))

    def release_image(self, ref: int) -> None:
        key = self._key(ref)
        if self._remote:
            self._remote_delete(key)
        else:
            path = self._root / key
            if path.exists():
                path.unlink()
        sidecar = self._root / "qr" / f"{int(ref)}.json"
        if sidecar.exists():
            sidecar.unlink()
        logger.info("media_released ref=%s", ref)

    def resolve_image_url(self, ref: int) -> str | None:
        if ref is None or int(ref) <= 0 or self.image_info(ref) is None:
            return None
        if self._remote:
            return public_url(media_bucket(), self._key(ref))
        return f"{self._base_url}{self._key(ref)}"
