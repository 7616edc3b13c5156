from __future__ import annotations

import asyncio
import sqlite3
from pathlib import Path

from imagegallery.db.engine import SQLITE_BUSY_TIMEOUT_MS, create_engine, is_sqlite_url
from imagegallery.db.session import is_sqlite_busy_error, with_sqlite_busy_retry


def _sqlite_url(db_path: Path) -> str:
    return "sqlite+aiosqlite:///" + db_path.as_posix()


def test_sqlite_pragmas_applied(tmp_path: Path) -> None:
    engine = create_engine(_sqlite_url(tmp_path / "test.db"))

    async def _check() -> None:
        async with engine.connect() as conn:
            fk = (await conn.exec_driver_sql("PRAGMA foreign_keys")).scalar_one()
            assert int(fk) == 1

            journal = (await conn.exec_driver_sql("PRAGMA journal_mode")).scalar_one()
            assert str(journal).lower() == "wal"

            busy = (await conn.exec_driver_sql("PRAGMA busy_timeout")).scalar_one()
            assert int(busy) == SQLITE_BUSY_TIMEOUT_MS

        await engine.dispose()

    asyncio.run(_check())


def test_engine_uses_serializable_isolation(tmp_path: Path) -> None:
    engine = create_engine(_sqlite_url(tmp_path / "iso.db"))

    async def _check() -> str:
        async with engine.connect() as conn:
            level = await conn.get_isolation_level()
        await engine.dispose()
        return level

    assert asyncio.run(_check()) == "SERIALIZABLE"


def test_is_sqlite_url() -> None:
    assert is_sqlite_url("sqlite+aiosqlite:///./data/gallery.db") is True
    assert is_sqlite_url("postgresql+asyncpg://u@h/db") is False


def test_busy_retry_retries_locked_errors_only() -> None:
    calls = {"n": 0}

    async def _flaky() -> str:
        calls["n"] += 1
        if calls["n"] < 3:
            raise sqlite3.OperationalError("database is locked")
        return "ok"

    assert asyncio.run(with_sqlite_busy_retry(_flaky, base_delay_s=0.0)) == "ok"
    assert calls["n"] == 3

    assert is_sqlite_busy_error(sqlite3.OperationalError("database is locked")) is True
    assert is_sqlite_busy_error(sqlite3.OperationalError("no such table: x")) is False
    assert is_sqlite_busy_error(ValueError("database is locked")) is False
