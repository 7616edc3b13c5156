from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from imagegallery.core.result import NOT_FOUND, Found
from imagegallery.db.engine import create_engine
from imagegallery.db.models.gallery_images import GalleryImage
from imagegallery.db.session import create_schema
from imagegallery.services.images import ImageEdit, ImageService


class _StepClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 5, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        self.now += timedelta(minutes=1)
        return self.now


def _service(tmp_path: Path) -> ImageService:
    engine = create_engine("sqlite+aiosqlite:///" + (tmp_path / "images.db").as_posix())
    asyncio.run(create_schema(engine))
    return ImageService(engine, clock=_StepClock())


def test_set_image_end_to_end(tmp_path: Path) -> None:
    service = _service(tmp_path)

    async def _run() -> tuple[GalleryImage, list[GalleryImage]]:
        await service.set_image("Older", "misc", "https://blob.test/images/older.png")
        created = await service.set_image("Sunset", "beach, evening", "https://blob.test/images/sunset.png")
        return created, await service.get_all()

    created, all_images = asyncio.run(_run())
    assert created.id is not None
    assert created.title == "Sunset"
    assert created.url == "https://blob.test/images/sunset.png"
    assert created.created is not None
    assert created.tag_descriptions == ["beach", "evening"]
    assert [img.title for img in all_images] == ["Sunset", "Older"]
    assert all_images[0].tag_descriptions == ["beach", "evening"]


def test_set_image_keeps_empty_and_duplicate_segments(tmp_path: Path) -> None:
    service = _service(tmp_path)

    async def _run() -> tuple[list[str], list[str], list[str]]:
        a = await service.set_image("A", "x, , x", "u1")
        b = await service.set_image("B", "", "u2")
        c = await service.set_image("C", "   ", "u3")
        return a.tag_descriptions, b.tag_descriptions, c.tag_descriptions

    tags_a, tags_b, tags_c = asyncio.run(_run())
    assert tags_a == ["x", "", "x"]
    assert tags_b == []
    assert tags_c == []


def test_paging_and_range(tmp_path: Path) -> None:
    service = _service(tmp_path)

    async def _run() -> tuple[list[str], list[str], list[str], list[str], int]:
        for i in range(5):
            await service.set_image(f"img{i}", "t", f"u{i}")
        page1 = await service.get_all_with_paging(1, 2)
        page3 = await service.get_all_with_paging(3, 2)
        page9 = await service.get_all_with_paging(9, 2)
        window = await service.range(1, 3)
        return (
            [i.title for i in page1],
            [i.title for i in page3],
            [i.title for i in page9],
            [i.title for i in window],
            await service.count(),
        )

    page1, page3, page9, window, count = asyncio.run(_run())
    assert page1 == ["img4", "img3"]
    assert page3 == ["img0"]
    assert page9 == []
    assert window == ["img3", "img2", "img1"]
    assert count == 5


def test_paging_rejects_non_positive_page(tmp_path: Path) -> None:
    service = _service(tmp_path)
    with pytest.raises(ValueError):
        asyncio.run(service.get_all_with_paging(0, 8))


def test_get_with_tag_preserves_order(tmp_path: Path) -> None:
    service = _service(tmp_path)

    async def _run() -> tuple[list[str], list[str]]:
        await service.set_image("first", "beach, evening", "u1")
        await service.set_image("second", "city", "u2")
        await service.set_image("third", "beach", "u3")
        beach = await service.get_with_tag("beach")
        partial = await service.get_with_tag("bea")
        return [i.title for i in beach], [i.title for i in partial]

    beach, partial = asyncio.run(_run())
    assert beach == ["third", "first"]
    assert partial == []


def test_get_by_id_found_and_missing(tmp_path: Path) -> None:
    service = _service(tmp_path)

    async def _run():  # type: ignore[no-untyped-def]
        created = await service.set_image("A", "t", "u")
        return created.id, await service.get_by_id(created.id), await service.get_by_id(created.id + 100)

    image_id, found, missing = asyncio.run(_run())
    assert isinstance(found, Found)
    assert found.value.id == image_id
    assert missing is NOT_FOUND


def test_update_image_replaces_title_and_tags_but_not_url(tmp_path: Path) -> None:
    service = _service(tmp_path)

    async def _run():  # type: ignore[no-untyped-def]
        created = await service.set_image("Old", "a, b", "https://blob.test/images/x.png")
        result = await service.update_image(ImageEdit(id=created.id, title="New", tags=["c"]))
        reloaded = await service.get_by_id(created.id)
        missing = await service.update_image(ImageEdit(id=created.id + 100, title="Nope", tags=[]))
        return result, reloaded, missing

    result, reloaded, missing = asyncio.run(_run())
    assert isinstance(result, Found)
    assert isinstance(reloaded, Found)
    assert reloaded.value.title == "New"
    assert reloaded.value.tag_descriptions == ["c"]
    assert reloaded.value.url == "https://blob.test/images/x.png"
    assert missing is NOT_FOUND


def test_delete_image_removes_record_and_tags(tmp_path: Path) -> None:
    service = _service(tmp_path)

    async def _run():  # type: ignore[no-untyped-def]
        created = await service.set_image("Gone", "a, b", "u")
        deleted = await service.delete_image(created.id)
        again = await service.delete_image(created.id)
        after = await service.get_by_id(created.id)
        tags = await service.get_with_tag("a")
        return deleted, again, after, tags

    deleted, again, after, tags = asyncio.run(_run())
    assert isinstance(deleted, Found)
    assert again is NOT_FOUND
    assert after is NOT_FOUND
    assert tags == []
