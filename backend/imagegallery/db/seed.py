from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from imagegallery.core.logging import get_logger
from imagegallery.db.images_query import count_images
from imagegallery.db.images_write import insert_image
from imagegallery.services.images import parse_tags

log = get_logger(__name__)

DEMO_IMAGES: tuple[tuple[str, str, str], ...] = (
    ("Mountain Lake", "https://images.example.test/demo/mountain-lake.jpg", "nature, water"),
    ("City Lights", "https://images.example.test/demo/city-lights.jpg", "city, night"),
    ("Forest Trail", "https://images.example.test/demo/forest-trail.jpg", "nature, forest"),
    ("Desert Dunes", "https://images.example.test/demo/desert-dunes.jpg", "desert, sand"),
)


async def seed_demo_images(session: AsyncSession, *, now: datetime) -> int:
    """Insert the demo images when the gallery is empty. Returns rows inserted."""
    existing = await count_images(session)
    await session.commit()
    if existing > 0:
        return 0

    inserted = 0
    for offset, (title, url, tags) in enumerate(DEMO_IMAGES):
        await insert_image(
            session,
            title=title,
            url=url,
            created=now - timedelta(minutes=offset),
            tag_descriptions=parse_tags(tags),
        )
        inserted += 1
    log.info("demo_images_seeded count=%s", inserted)
    return inserted
