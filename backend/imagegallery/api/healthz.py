from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncEngine

from imagegallery.core.errors import ErrorCode, error_body
from imagegallery.core.logging import get_logger
from imagegallery.core.request_id import REQUEST_ID_HEADER, request_id_for
from imagegallery.db.session import ensure_sqlite_dir

log = get_logger(__name__)

router = APIRouter()


async def _check_db(engine: AsyncEngine) -> bool:
    try:
        ensure_sqlite_dir(engine)
        async with engine.connect() as conn:
            await conn.exec_driver_sql("SELECT 1")
        return True
    except Exception as exc:
        log.warning("healthz_db_failed error_type=%s", type(exc).__name__)
        return False


@router.get("/healthz")
async def healthz(request: Request) -> Any:
    rid = request_id_for(request)

    engine: AsyncEngine | None = getattr(request.app.state, "engine", None)
    db_ok = await _check_db(engine) if engine is not None else False
    settings = getattr(request.app.state, "settings", None)

    if db_ok:
        resp = JSONResponse(
            status_code=200,
            content={
                "ok": True,
                "db_ok": True,
                "storage": {
                    "container": getattr(settings, "storage_container", None),
                    "fault_injection": bool(getattr(settings, "storage_fault_injection", False)),
                },
                "request_id": rid,
            },
        )
    else:
        resp = JSONResponse(
            status_code=503,
            content=error_body(
                code=ErrorCode.INTERNAL_ERROR,
                message="Database unavailable",
                request_id=rid,
                details={"db_ok": False},
            ),
        )

    resp.headers[REQUEST_ID_HEADER] = rid
    return resp
