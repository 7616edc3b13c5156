from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from imagegallery.core.result import NOT_FOUND, Found, LookupResult
from imagegallery.db.models.gallery_images import GalleryImage
from imagegallery.db.models.image_tags import ImageTag

# Every function here opens its own transaction with session.begin(), so the
# image row and its tag rows commit or roll back together. Pass a session that
# has no transaction in progress.


async def _load_for_write(session: AsyncSession, image_id: int) -> GalleryImage | None:
    stmt = select(GalleryImage).where(GalleryImage.id == int(image_id)).limit(1)
    return (await session.execute(stmt)).scalars().first()


async def insert_image(
    session: AsyncSession,
    *,
    title: str,
    url: str,
    created: datetime,
    tag_descriptions: Sequence[str],
) -> GalleryImage:
    async with session.begin():
        image = GalleryImage(
            title=title,
            url=url,
            created=created,
            tags=[ImageTag(description=d) for d in tag_descriptions],
        )
        session.add(image)
        await session.flush()
    return image


async def update_image(
    session: AsyncSession,
    *,
    image_id: int,
    title: str,
    tag_descriptions: Sequence[str],
) -> LookupResult[GalleryImage]:
    """Overwrite title and tags; last writer wins."""
    async with session.begin():
        image = await _load_for_write(session, image_id)
        if image is None:
            return NOT_FOUND
        image.title = title
        image.tags = [ImageTag(description=d) for d in tag_descriptions]
        await session.flush()
    return Found(image)


async def delete_image(session: AsyncSession, *, image_id: int) -> LookupResult[GalleryImage]:
    async with session.begin():
        image = await _load_for_write(session, image_id)
        if image is None:
            return NOT_FOUND
        await session.delete(image)
    return Found(image)
