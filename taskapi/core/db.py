"""
Async database access helpers (raw SQL) using asyncpg.

This module owns the connection pool. FastAPI initializes it on startup and
closes it on shutdown (see `taskapi/main.py`).

SQL parameter style:
- asyncpg uses positional placeholders: $1, $2, $3, ...

Transactions:
- `async with db.transaction():` pins one pooled connection to the current
  task (via a ContextVar). `fetch_one` / `fetch_all` / `fetch_value` /
  `execute` run on that connection while the block is open, so repository
  helpers join the transaction without passing connections around.
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import asyncpg

from .schema import SCHEMA_SQL

logger = logging.getLogger(__name__)

_pool: asyncpg.Pool | None = None
_current_conn: ContextVar[asyncpg.Connection | None] = ContextVar("taskapi_db_conn", default=None)


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _sanitize_database_url(url: str) -> str:
    parts = urlsplit(url)
    if not parts.query:
        return url

    params = [(k, v) for (k, v) in parse_qsl(parts.query, keep_blank_values=True) if k != "sslmode"]
    query = urlencode(params)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


def database_url() -> str:
    url = os.environ.get("DATABASE_URL", "").strip()
    if not url:
        raise RuntimeError("DATABASE_URL is not set.")
    return _sanitize_database_url(url)


async def init_pool() -> None:
    global _pool
    if _pool is not None:
        return None
    _pool = await asyncpg.create_pool(
        dsn=database_url(),
        min_size=_env_int("DB_POOL_MIN_SIZE", 1),
        max_size=_env_int("DB_POOL_MAX_SIZE", 5),
        command_timeout=_env_int("DB_COMMAND_TIMEOUT_S", 30),
    )
    logger.info("db_pool_opened")


async def close_pool() -> None:
    global _pool
    if _pool is None:
        return None
    await _pool.close()
    _pool = None
    logger.info("db_pool_closed")


def pool() -> asyncpg.Pool:
    if _pool is None:
        raise RuntimeError("DB pool is not initialized. Call init_pool() on startup.")
    return _pool


async def ensure_schema() -> None:
    """
    Create the tasks/users tables if they do not exist yet.

    Idempotent DDL only; this is table bootstrap, not a migration tool.
    """
    await pool().execute(SCHEMA_SQL)
    logger.info("db_schema_ready")


def _executor() -> asyncpg.Connection | asyncpg.Pool:
    conn = _current_conn.get()
    return conn if conn is not None else pool()


@asynccontextmanager
async def transaction() -> AsyncIterator[asyncpg.Connection]:
    """
    Run the enclosed statements in one transaction.

    Nested use opens a savepoint on the already pinned connection.
    """
    conn = _current_conn.get()
    if conn is not None:
        async with conn.transaction():
            yield conn
        return

    async with pool().acquire() as conn:
        async with conn.transaction():
            token = _current_conn.set(conn)
            try:
                yield conn
            finally:
                _current_conn.reset(token)


def _record_to_dict(record: asyncpg.Record) -> dict[str, Any]:
    return dict(record)


async def fetch_one(sql: str, *args: Any) -> dict[str, Any] | None:
    """
    Run a query and return a single row as a dict (or None).
    """
    row = await _executor().fetchrow(sql, *args)
    return _record_to_dict(row) if row is not None else None


async def fetch_all(sql: str, *args: Any) -> list[dict[str, Any]]:
    """
    Run a query and return all rows as a list of dicts.
    """
    rows = await _executor().fetch(sql, *args)
    return [_record_to_dict(r) for r in rows]


async def fetch_value(sql: str, *args: Any) -> Any:
    """
    Run a query and return the first column of the first row.
    """
    return await _executor().fetchval(sql, *args)


async def execute(sql: str, *args: Any) -> str:
    """
    Run a statement (INSERT/UPDATE/DELETE/DDL). Returns the status tag, e.g. "UPDATE 3".
    """
    return await _executor().execute(sql, *args)


def affected_rows(status: str) -> int:
    """
    Parse the row count from an asyncpg status tag ("UPDATE 3" -> 3).
    """
    try:
        return int((status or "").rsplit(" ", 1)[-1])
    except ValueError:
        return 0
