from __future__ import annotations

import asyncio
import os
import random
import sqlite3
from pathlib import Path
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy.exc import OperationalError, TimeoutError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

T = TypeVar("T")


def is_sqlite_busy_error(exc: BaseException) -> bool:
    if isinstance(exc, TimeoutError):
        return True
    if isinstance(exc, sqlite3.OperationalError):
        msg = str(exc).lower()
        return "database is locked" in msg or "database table is locked" in msg or "database is busy" in msg
    if isinstance(exc, OperationalError):
        orig = getattr(exc, "orig", None)
        return is_sqlite_busy_error(orig) if isinstance(orig, BaseException) else False
    return False


async def with_sqlite_busy_retry(
    op: Callable[[], Awaitable[T]],
    *,
    retries: int = 8,
    base_delay_s: float = 0.05,
    max_delay_s: float = 2.0,
) -> T:
    try:
        env_retries = int((os.environ.get("SQLITE_BUSY_RETRIES") or "").strip() or retries)
    except Exception:
        env_retries = int(retries)
    retries_i = max(0, min(int(env_retries), 50))

    attempt = 0
    while True:
        try:
            return await op()
        except Exception as exc:
            if attempt >= retries_i or not is_sqlite_busy_error(exc):
                raise
            delay = min(float(base_delay_s) * (2**attempt), float(max_delay_s))
            if delay > 0:
                delay *= 0.9 + (random.random() * 0.2)
                await asyncio.sleep(float(delay))
            attempt += 1


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


def ensure_sqlite_dir(engine: AsyncEngine) -> None:
    url = engine.url
    if url.get_backend_name() != "sqlite":
        return
    db_path = url.database
    if not db_path or db_path == ":memory:":
        return
    Path(db_path).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)


async def create_schema(engine: AsyncEngine) -> None:
    from imagegallery.db.models.base import Base

    ensure_sqlite_dir(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
