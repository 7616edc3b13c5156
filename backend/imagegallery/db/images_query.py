from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from imagegallery.core.paging import page_skip
from imagegallery.core.result import NOT_FOUND, Found, LookupResult
from imagegallery.db.models.gallery_images import GalleryImage
from imagegallery.db.models.image_tags import ImageTag


def _newest_first() -> sa.Select:
    return select(GalleryImage).order_by(GalleryImage.created.desc(), GalleryImage.id.desc())


async def get_all(session: AsyncSession) -> list[GalleryImage]:
    return list((await session.execute(_newest_first())).scalars().all())


async def range_images(session: AsyncSession, *, skip: int, take: int) -> list[GalleryImage]:
    skip_i = int(skip)
    take_i = int(take)
    if skip_i < 0:
        raise ValueError("skip must be >= 0")
    if take_i < 0:
        raise ValueError("take must be >= 0")
    if take_i == 0:
        return []
    stmt = _newest_first().offset(skip_i).limit(take_i)
    return list((await session.execute(stmt)).scalars().all())


async def get_all_with_paging(session: AsyncSession, *, page_number: int, page_size: int) -> list[GalleryImage]:
    if int(page_number) < 1:
        raise ValueError("page_number must be >= 1")
    if int(page_size) < 1:
        raise ValueError("page_size must be >= 1")
    return await range_images(session, skip=page_skip(page_number, page_size), take=int(page_size))


async def count_images(session: AsyncSession) -> int:
    return int((await session.execute(select(sa.func.count()).select_from(GalleryImage))).scalar_one())


async def get_by_id(session: AsyncSession, *, image_id: int) -> LookupResult[GalleryImage]:
    stmt = select(GalleryImage).where(GalleryImage.id == int(image_id)).limit(1)
    image = (await session.execute(stmt)).scalars().first()
    return Found(image) if image is not None else NOT_FOUND


async def get_with_tag(session: AsyncSession, *, tag: str) -> list[GalleryImage]:
    has_tag = (
        select(ImageTag.id)
        .where(ImageTag.gallery_image_id == GalleryImage.id, ImageTag.description == str(tag))
        .exists()
    )
    stmt = _newest_first().where(has_tag)
    return list((await session.execute(stmt)).scalars().all())
