"""DB-backed stores for chat bubble items and settings."""

from __future__ import annotations

import json
import logging
import os
import re
from contextlib import contextmanager
from typing import Any

from app.db import execute, fetch_all, fetch_one, get_conn, transaction


logger = logging.getLogger("bubbles.db")

SCHEMA_VERSION = 1
_ITEMS_LOCK_KEY = 70410301
_SAFE_PREFIX_RE = re.compile(r"[a-z0-9_]*")


def _table_prefix() -> str:
    prefix = os.getenv("BUBBLES_TABLE_PREFIX", "").strip().lower()
    if not _SAFE_PREFIX_RE.fullmatch(prefix):
        raise ValueError(f"invalid table prefix: {prefix!r}")
    return prefix


class DbItemRepository:
    """Items in ``<prefix>chat_bubble_items`` plus a key/jsonb meta table."""

    def __init__(self, prefix: str | None = None) -> None:
        prefix = _table_prefix() if prefix is None else prefix
        if not _SAFE_PREFIX_RE.fullmatch(prefix):
            raise ValueError(f"invalid table prefix: {prefix!r}")
        self.items_table = f"{prefix}chat_bubble_items"
        self.meta_table = f"{prefix}chat_bubble_meta"

    def ensure_schema(self) -> bool:
        """Create or upgrade tables when the recorded schema is older."""
        with transaction() as conn:
            execute(
                conn,
                f"create table if not exists {self.meta_table} (key text primary key, value jsonb not null)",
                query_name="chat_bubble_meta.create",
            )
            row = fetch_one(
                conn,
                f"select value from {self.meta_table} where key='schema_version'",
                query_name="chat_bubble_meta.schema_version",
            )
            installed = int(row["value"]) if row and row.get("value") is not None else 0
            if installed >= SCHEMA_VERSION:
                return False
            execute(
                conn,
                f"""
                create table if not exists {self.items_table} (
                  id serial primary key,
                  platform_key varchar(20) not null,
                  enabled boolean not null default true,
                  label varchar(255) not null,
                  contact_value varchar(255) not null,
                  qr_image_ref integer not null default 0,
                  sort_order integer not null default 0
                )
                """,
                query_name="chat_bubble_items.create",
            )
            for column in ("platform_key", "enabled", "sort_order"):
                execute(
                    conn,
                    f"create index if not exists {self.items_table}_{column}_idx on {self.items_table} ({column})",
                    query_name="chat_bubble_items.index",
                )
            self.set_meta("schema_version", SCHEMA_VERSION)
        logger.info("db_schema_ready table=%s from=%s to=%s", self.items_table, installed, SCHEMA_VERSION)
        return True

    def drop_schema(self) -> None:
        with get_conn() as conn:
            execute(conn, f"drop table if exists {self.items_table}", query_name="chat_bubble_items.drop")
            execute(conn, f"drop table if exists {self.meta_table}", query_name="chat_bubble_meta.drop")
        logger.info("db_schema_dropped table=%s", self.items_table)

    @contextmanager
    def transaction(self):
        with transaction() as conn:
            # serializes sort_order read-then-write across processes
            execute(conn, "select pg_advisory_xact_lock(%s)", [_ITEMS_LOCK_KEY], query_name="chat_bubble_items.lock")
            yield conn

    def insert(self, values: dict) -> int:
        with get_conn() as conn:
            row = fetch_one(
                conn,
                f"""
                insert into {self.items_table} (platform_key, enabled, label, contact_value, qr_image_ref, sort_order)
                values (%s,%s,%s,%s,%s,%s)
                returning id
                """,
                [
                    values["platform_key"],
                    bool(values.get("enabled", True)),
                    values["label"],
                    values["contact_value"],
                    int(values.get("qr_image_ref") or 0),
                    int(values.get("sort_order") or 0),
                ],
                query_name="chat_bubble_items.insert",
            )
            return int(row["id"])

    def update_by_id(self, item_id: int, changes: dict) -> bool:
        columns = [c for c in ("enabled", "label", "contact_value", "qr_image_ref", "sort_order") if c in changes]
        if not columns:
            return False
        assignments = ", ".join(f"{c}=%s" for c in columns)
        params = [changes[c] for c in columns] + [item_id]
        with get_conn() as conn:
            rowcount = execute(
                conn,
                f"update {self.items_table} set {assignments} where id=%s",
                params,
                query_name="chat_bubble_items.update",
            )
            return rowcount > 0

    def delete_by_id(self, item_id: int) -> bool:
        with get_conn() as conn:
            rowcount = execute(
                conn,
                f"delete from {self.items_table} where id=%s",
                [item_id],
                query_name="chat_bubble_items.delete",
            )
            return rowcount > 0

    def select_by_id(self, item_id: int) -> dict | None:
        with get_conn() as conn:
            return fetch_one(
                conn,
                f"select * from {self.items_table} where id=%s",
                [item_id],
                query_name="chat_bubble_items.get",
            )

    def select_ordered(self, enabled_only: bool = False) -> list[dict]:
        where = "where enabled" if enabled_only else ""
        with get_conn() as conn:
            return fetch_all(
                conn,
                f"select * from {self.items_table} {where} order by sort_order asc, id asc",
                query_name="chat_bubble_items.list",
            )

    def select_max_sort_order(self) -> int:
        with get_conn() as conn:
            row = fetch_one(
                conn,
                f"select coalesce(max(sort_order), 0) as max_order from {self.items_table}",
                query_name="chat_bubble_items.max_order",
            )
            return int(row["max_order"]) if row else 0

    def get_meta(self, key: str, default: Any = None) -> Any:
        with get_conn() as conn:
            row = fetch_one(
                conn,
                f"select value from {self.meta_table} where key=%s",
                [key],
                query_name="chat_bubble_meta.get",
            )
        if not row:
            return default
        value = row.get("value")
        if isinstance(value, str):
            value = json.loads(value)
        return value

    def set_meta(self, key: str, value: Any) -> None:
        with get_conn() as conn:
            execute(
                conn,
                f"""
                insert into {self.meta_table} (key, value) values (%s, %s::jsonb)
                on conflict (key) do update set value = excluded.value
                """,
                [key, json.dumps(value, default=str)],
                query_name="chat_bubble_meta.set",
            )

    def bump_data_version(self) -> int:
        with get_conn() as conn:
            row = fetch_one(
                conn,
                f"""
                insert into {self.meta_table} as m (key, value) values ('data_version', '2'::jsonb)
                on conflict (key) do update set value = to_jsonb((m.value #>> '{{}}')::int + 1)
                returning value
                """,
                query_name="chat_bubble_meta.bump_version",
            )
        value = row.get("value") if row else None
        if isinstance(value, str):
            value = json.loads(value)
        return int(value or 1)


class DbSettingsStore:
    """Display options kept as one jsonb meta row."""

    OPTIONS_KEY = "display_options"

    def __init__(self, repository: DbItemRepository) -> None:
        self._repo = repository

    def load(self) -> dict | None:
        return self._repo.get_meta(self.OPTIONS_KEY)

    def save(self, options: dict) -> None:
        self._repo.set_meta(self.OPTIONS_KEY, options)
