"""Image service: the gallery's single entry point for image records.

Handlers never touch sessions directly. Each method opens a short-lived
session; writes run inside one explicit transaction covering the image and its
tags (see ``imagegallery.db.images_write``).
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncEngine

from imagegallery.core.logging import get_logger
from imagegallery.core.result import Found, LookupResult
from imagegallery.core.time import local_now
from imagegallery.db import images_query, images_write
from imagegallery.db.models.gallery_images import GalleryImage
from imagegallery.db.session import create_sessionmaker, with_sqlite_busy_retry

log = get_logger(__name__)

TAG_DELIMITER = ", "


def parse_tags(tags_text: str) -> list[str]:
    """Split on the literal ``", "``; segments are kept verbatim, empties and duplicates included."""
    return str(tags_text).split(TAG_DELIMITER)


def tags_from_field(tags_text: str | None) -> list[str]:
    """Tags for a submitted form field; a blank field means no tags."""
    text = tags_text or ""
    return parse_tags(text) if text.strip() else []


def join_tags(tags: list[str]) -> str:
    return TAG_DELIMITER.join(tags)


@dataclass(frozen=True, slots=True)
class ImageEdit:
    id: int
    title: str
    tags: list[str] = field(default_factory=list)


class ImageService:
    def __init__(self, engine: AsyncEngine, *, clock: Callable[[], datetime] = local_now) -> None:
        self._sessionmaker = create_sessionmaker(engine)
        self._clock = clock

    parse_tags = staticmethod(parse_tags)

    async def get_all(self) -> list[GalleryImage]:
        async with self._sessionmaker() as session:
            return await images_query.get_all(session)

    async def get_all_with_paging(self, page_number: int, page_size: int) -> list[GalleryImage]:
        async with self._sessionmaker() as session:
            return await images_query.get_all_with_paging(session, page_number=page_number, page_size=page_size)

    async def range(self, skip: int, take: int) -> list[GalleryImage]:
        async with self._sessionmaker() as session:
            return await images_query.range_images(session, skip=skip, take=take)

    async def count(self) -> int:
        async with self._sessionmaker() as session:
            return await images_query.count_images(session)

    async def get_by_id(self, image_id: int) -> LookupResult[GalleryImage]:
        async with self._sessionmaker() as session:
            return await images_query.get_by_id(session, image_id=image_id)

    async def get_with_tag(self, tag: str) -> list[GalleryImage]:
        async with self._sessionmaker() as session:
            return await images_query.get_with_tag(session, tag=tag)

    async def set_image(self, title: str, tags_text: str, uri: str) -> GalleryImage:
        created = self._clock()
        tag_descriptions = tags_from_field(tags_text)

        async def _op() -> GalleryImage:
            async with self._sessionmaker() as session:
                return await images_write.insert_image(
                    session,
                    title=title,
                    url=str(uri),
                    created=created,
                    tag_descriptions=tag_descriptions,
                )

        image = await with_sqlite_busy_retry(_op)
        log.info("image_created id=%s tags=%s", image.id, len(tag_descriptions))
        return image

    async def update_image(self, edit: ImageEdit) -> LookupResult[GalleryImage]:
        async def _op() -> LookupResult[GalleryImage]:
            async with self._sessionmaker() as session:
                return await images_write.update_image(
                    session,
                    image_id=edit.id,
                    title=edit.title,
                    tag_descriptions=list(edit.tags),
                )

        result = await with_sqlite_busy_retry(_op)
        if isinstance(result, Found):
            log.info("image_updated id=%s", edit.id)
        return result

    async def delete_image(self, image_id: int) -> LookupResult[GalleryImage]:
        async def _op() -> LookupResult[GalleryImage]:
            async with self._sessionmaker() as session:
                return await images_write.delete_image(session, image_id=image_id)

        result = await with_sqlite_busy_retry(_op)
        if isinstance(result, Found):
            log.info("image_deleted id=%s", image_id)
        else:
            log.info("image_delete_missing id=%s", image_id)
        return result
