from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from imagegallery.db.models.gallery_images import GalleryImage
from imagegallery.services.images import join_tags


@dataclass(frozen=True, slots=True)
class GalleryDetailModel:
    id: int
    title: str
    url: str
    created: datetime | None
    tags: list[str] = field(default_factory=list)

    @property
    def tags_text(self) -> str:
        return join_tags(self.tags)

    @classmethod
    def from_image(cls, image: GalleryImage) -> "GalleryDetailModel":
        return cls(
            id=int(image.id),
            title=image.title,
            url=image.url,
            created=image.created,
            tags=image.tag_descriptions,
        )
