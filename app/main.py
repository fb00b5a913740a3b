"""FastAPI app wiring the chat bubble services."""

from __future__ import annotations

import os
import sys
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


_load_env_file(ROOT / "app" / ".env")

import logging
import time

import psycopg2

from app.admin_actions import AdminActions, RateLimiter
from app.media import StorageMediaLibrary
from app.stores import MemoryItemRepository, MemoryMediaLibrary, MemorySettingsStore
from app.stores_db import DbItemRepository, DbSettingsStore
from contact_validator import ContactValidator
from display_settings import DisplaySettings
from item_store import ItemStore
from legacy_migration import migrate_legacy_file
from platform_registry import PlatformRegistry
from projection import ProjectionService
from read_cache import ReadThroughCache
from url_generator import UrlGenerator


app = FastAPI(title="Chat Bubbles")
logger = logging.getLogger("bubbles")
logging.basicConfig(level=logging.INFO)

USE_DB = os.getenv("USE_DB", "0").strip() == "1"
MEDIA_BACKEND = os.getenv("BUBBLES_MEDIA", "storage").strip().lower()
REQ_SLOW_MS = float(os.getenv("BUBBLES_REQ_SLOW_MS", "250"))


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        logger.warning("config_invalid name=%s value=%s default=%s", name, raw, default)
        return default


registry = PlatformRegistry(asset_base_url=os.getenv("BUBBLES_ASSET_BASE_URL", ""))
validator = ContactValidator(registry)
urls = UrlGenerator(registry)

if USE_DB:
    repository = DbItemRepository()
    repository.ensure_schema()
    settings = DisplaySettings(DbSettingsStore(repository))
else:
    repository = MemoryItemRepository()
    settings = DisplaySettings(MemorySettingsStore())

media = MemoryMediaLibrary() if MEDIA_BACKEND == "memory" else StorageMediaLibrary()

items = ItemStore(
    repository,
    registry,
    validator,
    media=media,
    label_min=_env_int("BUBBLES_LABEL_MIN", 2),
    label_max=_env_int("BUBBLES_LABEL_MAX", 255),
)
projection_cache = ReadThroughCache(ttl_s=float(_env_int("BUBBLES_PROJECTION_TTL_S", 3600)))
projection = ProjectionService(items, registry, settings, media=media, urls=urls, cache=projection_cache)
admin = AdminActions(
    items,
    registry,
    validator,
    media=media,
    on_change=projection.invalidate,
    rate_limiter=RateLimiter(_env_int("BUBBLES_RATE_LIMIT", 20), float(_env_int("BUBBLES_RATE_WINDOW_S", 60))),
    label_min=_env_int("BUBBLES_ADMIN_LABEL_MIN", 2),
    label_max=_env_int("BUBBLES_ADMIN_LABEL_MAX", 50),
    reorder_max=_env_int("BUBBLES_REORDER_MAX", 50),
)
migrate_legacy_file(items, repository, os.getenv("BUBBLES_LEGACY_OPTIONS_FILE", "").strip())
logger.info("bubbles_ready use_db=%s media=%s platforms=%s", USE_DB, MEDIA_BACKEND, len(registry))


_STATUS_BY_CODE = {
    "RATE_LIMITED": 429,
    "ITEM_NOT_FOUND": 404,
    "MEDIA_NOT_FOUND": 404,
}


@app.middleware("http")
async def timing_middleware(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    total_ms = (time.perf_counter() - start) * 1000
    logger.info("%s %s %s total_ms=%.1f", request.method, request.url.path, response.status_code, total_ms)
    if total_ms >= REQ_SLOW_MS:
        logger.warning("slow_request method=%s path=%s total_ms=%.1f", request.method, request.url.path, total_ms)
    return response


@app.exception_handler(psycopg2.Error)
async def storage_error_handler(request: Request, exc: psycopg2.Error) -> JSONResponse:
    logger.error("storage_error path=%s error=%s", request.url.path, exc)
    return _error_response("STORAGE_ERROR", "storage unavailable", status=503)


def _error_response(code: str, message: str, path: str | None = None, detail: dict | None = None, status: int = 400) -> JSONResponse:
    body = {
        "ok": False,
        "errors": [{"code": code, "message": message, "path": path, "detail": detail}],
        "warnings": [],
    }
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _ok_response(payload: dict, warnings: list | None = None, status: int = 200) -> JSONResponse:
    body = {"ok": True, **payload, "errors": [], "warnings": warnings or []}
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _result_response(result: dict, status: int = 200) -> JSONResponse:
    if result.get("ok"):
        return JSONResponse(jsonable_encoder(result), status_code=status)
    errors = result.get("errors") or []
    code = errors[0].get("code") if errors else None
    return JSONResponse(jsonable_encoder(result), status_code=_STATUS_BY_CODE.get(code, 400))


def _actor_id(request: Request) -> str:
    return (request.headers.get("X-Actor-Id") or "").strip() or "anonymous"


async def _json_body(request: Request) -> dict | None:
    try:
        body = await request.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


@app.get("/health")
async def health() -> dict:
    return {"ok": True}


@app.get("/platforms")
async def list_platforms() -> dict:
    return {"platforms": [definition.to_dict() for definition in registry], "icons": registry.all_icons()}


@app.get("/items")
async def list_items() -> dict:
    return {"items": admin.list_items()}


@app.get("/items/{item_id}")
async def get_item(item_id: int) -> JSONResponse:
    item = items.get_by_id(item_id)
    if item is None:
        return _error_response("ITEM_NOT_FOUND", "item not found", "id", status=404)
    return _ok_response({"item": item.to_dict()})


@app.post("/items")
async def save_item(request: Request) -> JSONResponse:
    body = await _json_body(request)
    if body is None:
        return _error_response("FIELD_INVALID", "request body must be a JSON object")
    result = admin.save_item(body, actor_id=_actor_id(request))
    return _result_response(result, status=201 if result.get("action") == "created" else 200)


@app.put("/items/{item_id}")
async def update_item(item_id: int, request: Request) -> JSONResponse:
    body = await _json_body(request)
    if body is None:
        return _error_response("FIELD_INVALID", "request body must be a JSON object")
    if items.get_by_id(item_id) is None:
        return _error_response("ITEM_NOT_FOUND", "item not found", "id", status=404)
    body["item_id"] = item_id
    return _result_response(admin.save_item(body, actor_id=_actor_id(request)))


@app.delete("/items/{item_id}")
async def delete_item(item_id: int, request: Request) -> JSONResponse:
    return _result_response(admin.delete_item(item_id, actor_id=_actor_id(request)))


@app.post("/items/reorder")
async def reorder_items(request: Request) -> JSONResponse:
    body = await _json_body(request)
    if body is None:
        return _error_response("FIELD_INVALID", "request body must be a JSON object")
    return _result_response(admin.reorder_items(body.get("ordered_ids"), actor_id=_actor_id(request)))


@app.get("/media/{ref}/url")
async def media_url(ref: int, request: Request) -> JSONResponse:
    return _result_response(admin.image_url(ref, actor_id=_actor_id(request)))


@app.get("/settings")
async def get_settings() -> dict:
    return {"settings": settings.get_options()}


@app.put("/settings")
async def update_settings(request: Request) -> JSONResponse:
    body = await _json_body(request)
    if body is None:
        return _error_response("FIELD_INVALID", "request body must be a JSON object")
    updated = settings.update_options(body)
    projection.invalidate()
    return _ok_response({"settings": updated})


@app.get("/frontend")
async def frontend(page_id: int | None = None, is_admin: bool = False) -> dict:
    if not projection.should_load(page_id=page_id, is_admin=is_admin):
        return {"ok": True, "should_load": False, "projection": None}
    return {"ok": True, "should_load": True, "projection": projection.get_frontend_projection()}


@app.get("/frontend/js")
async def frontend_js() -> dict:
    return {"items": projection.get_frontend_js_data()}
