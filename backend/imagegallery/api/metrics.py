from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import Response
from prometheus_client.exposition import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy.ext.asyncio import AsyncEngine

from imagegallery.core.metrics import GALLERY_IMAGES_COUNT, METRICS_SCRAPE_ERRORS_TOTAL

router = APIRouter()


async def _query_image_count(engine: AsyncEngine) -> int:
    async with engine.connect() as conn:
        result = await conn.exec_driver_sql("SELECT COUNT(*) FROM gallery_images")
        row = result.fetchone()
        return int(row[0] or 0) if row is not None else 0


@router.get("/metrics")
async def metrics(request: Request) -> Response:
    engine: AsyncEngine | None = getattr(request.app.state, "engine", None)
    if engine is not None:
        try:
            GALLERY_IMAGES_COUNT.set(await _query_image_count(engine))
        except Exception:
            METRICS_SCRAPE_ERRORS_TOTAL.inc()

    content = generate_latest()
    return Response(content=content, media_type=CONTENT_TYPE_LATEST)
