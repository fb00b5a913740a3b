"""Postgres connection pool and the query helpers the item repository uses."""

from __future__ import annotations

import contextvars
import logging
import os
import time
from contextlib import contextmanager
from typing import Any, Iterable

import psycopg2
import psycopg2.extras
from psycopg2.pool import SimpleConnectionPool


logger = logging.getLogger("bubbles.db")
query_logger = logging.getLogger("bubbles.db.query")

_pool: SimpleConnectionPool | None = None
_bound_conn: contextvars.ContextVar[Any | None] = contextvars.ContextVar("bubbles_bound_conn", default=None)

SLOW_QUERY_MS = float(os.getenv("BUBBLES_QUERY_SLOW_MS", "200"))
LOG_ALL_QUERIES = os.getenv("BUBBLES_QUERY_LOG", "").strip() == "1"


def get_db_url() -> str:
    for name in ("SUPABASE_DB_URL", "DATABASE_URL"):
        url = (os.getenv(name) or "").strip()
        if url:
            return url
    raise RuntimeError("USE_DB=1 needs SUPABASE_DB_URL or DATABASE_URL")


def _param_summary(params: Iterable[Any] | None) -> list[Any] | None:
    # contact values and labels are personal data; log their shape only
    if params is None:
        return None
    summary: list[Any] = []
    for value in params:
        if value is None or isinstance(value, (bool, int, float)):
            summary.append(value)
        elif isinstance(value, (bytes, bytearray)):
            summary.append(f"<bytes:{len(value)}>")
        else:
            summary.append(f"<{type(value).__name__}:{len(str(value))}>")
    return summary


def _log_query(query_name: str | None, params: Iterable[Any] | None, elapsed_ms: float, rowcount: int | None) -> None:
    slow = elapsed_ms >= SLOW_QUERY_MS
    if not (slow or LOG_ALL_QUERIES):
        return
    level = logging.WARNING if slow else logging.INFO
    query_logger.log(
        level,
        "db_query name=%s ms=%.2f rows=%s slow=%s params=%s",
        query_name or "unnamed",
        elapsed_ms,
        rowcount,
        slow,
        _param_summary(params),
    )


def init_pool(minconn: int | None = None, maxconn: int | None = None) -> SimpleConnectionPool:
    global _pool
    if _pool is not None:
        return _pool
    minconn = minconn if minconn is not None else int(os.getenv("BUBBLES_DB_POOL_MIN", "1"))
    maxconn = maxconn if maxconn is not None else int(os.getenv("BUBBLES_DB_POOL_MAX", "5"))
    _pool = SimpleConnectionPool(minconn, maxconn, dsn=get_db_url())
    logger.info("db_pool_ready min=%s max=%s", minconn, maxconn)
    return _pool


def get_active_conn():
    return _bound_conn.get()


@contextmanager
def get_conn():
    """Yield the connection bound by ``transaction()``, or borrow one.

    A borrowed connection is committed when the block succeeds and rolled
    back when it raises; a bound one is left to its transaction.
    """
    bound = get_active_conn()
    if bound is not None:
        yield bound
        return
    pool = init_pool()
    conn = pool.getconn()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        pool.putconn(conn)


@contextmanager
def transaction():
    """Run every ``get_conn()`` inside the block on one connection.

    Nested blocks join the outermost one, so a commit happens once.
    """
    bound = get_active_conn()
    if bound is not None:
        yield bound
        return
    with get_conn() as conn:
        token = _bound_conn.set(conn)
        try:
            yield conn
        finally:
            _bound_conn.reset(token)


def _run(conn, sql: str, params: Iterable[Any] | None, query_name: str | None, fetch: str | None, dict_rows: bool = True):
    params = list(params) if params is not None else []
    cursor_factory = psycopg2.extras.RealDictCursor if dict_rows else None
    started = time.perf_counter()
    with conn.cursor(cursor_factory=cursor_factory) as cur:
        cur.execute(sql, params)
        if fetch == "one":
            result = cur.fetchone()
            result = dict(result) if result else None
        elif fetch == "all":
            result = [dict(r) for r in cur.fetchall()]
        else:
            result = cur.rowcount
        rowcount = cur.rowcount
    _log_query(query_name, params, (time.perf_counter() - started) * 1000, rowcount)
    return result


def fetch_one(conn, sql: str, params: Iterable[Any] | None = None, query_name: str | None = None) -> dict | None:
    return _run(conn, sql, params, query_name, "one")


def fetch_all(conn, sql: str, params: Iterable[Any] | None = None, query_name: str | None = None) -> list[dict]:
    return _run(conn, sql, params, query_name, "all")


def execute(conn, sql: str, params: Iterable[Any] | None = None, query_name: str | None = None) -> int:
    return _run(conn, sql, params, query_name, None, dict_rows=False)
