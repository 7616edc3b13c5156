from __future__ import annotations

import os
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine.url import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

SQLITE_BUSY_TIMEOUT_MS = 30_000

# Image rows and their tags are written together; every transaction runs at
# this level unless a caller overrides it with execution_options().
DEFAULT_ISOLATION_LEVEL = "SERIALIZABLE"


def _busy_timeout_ms() -> int:
    try:
        busy_timeout_ms = int((os.environ.get("SQLITE_BUSY_TIMEOUT_MS") or str(SQLITE_BUSY_TIMEOUT_MS)).strip() or SQLITE_BUSY_TIMEOUT_MS)
    except Exception:
        busy_timeout_ms = int(SQLITE_BUSY_TIMEOUT_MS)
    return max(1000, min(int(busy_timeout_ms), 5 * 60_000))


def apply_sqlite_pragmas(dbapi_connection: Any) -> None:
    cursor = dbapi_connection.cursor()
    try:
        # Tag rows rely on ON DELETE CASCADE.
        cursor.execute("PRAGMA foreign_keys = ON")
        try:
            cursor.execute("PRAGMA journal_mode = WAL")
            cursor.fetchone()
        except Exception:
            pass
        cursor.execute("PRAGMA synchronous = NORMAL")
        cursor.execute(f"PRAGMA busy_timeout = {_busy_timeout_ms()}")
    finally:
        cursor.close()


def is_sqlite_url(database_url: str) -> bool:
    try:
        url = make_url(database_url)
    except Exception:
        return False
    return (url.get_backend_name() or "").lower() == "sqlite"


def create_engine(database_url: str, *, isolation_level: str = DEFAULT_ISOLATION_LEVEL) -> AsyncEngine:
    kwargs: dict[str, Any] = {"isolation_level": isolation_level}
    sqlite = is_sqlite_url(database_url)
    if sqlite:
        kwargs["connect_args"] = {"timeout": float(_busy_timeout_ms()) / 1000.0}

    engine = create_async_engine(database_url, **kwargs)

    if sqlite:
        def _on_connect(dbapi_connection: Any, _record: Any) -> None:
            apply_sqlite_pragmas(dbapi_connection)

        event.listen(engine.sync_engine, "connect", _on_connect)

    return engine
