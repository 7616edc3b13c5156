from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from imagegallery.db.models.base import Base

if TYPE_CHECKING:
    from imagegallery.db.models.image_tags import ImageTag


class GalleryImage(Base):
    __tablename__ = "gallery_images"
    __table_args__ = (sa.Index("idx_gallery_images_created", "created"),)

    id: Mapped[int] = mapped_column(sa.Integer(), primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(sa.Text(), nullable=False)
    url: Mapped[str] = mapped_column(sa.Text(), nullable=False)
    # Local wall-clock time of the uploading process.
    created: Mapped[datetime] = mapped_column(sa.DateTime(), nullable=False)

    tags: Mapped[list["ImageTag"]] = relationship(
        back_populates="gallery_image",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ImageTag.id",
        lazy="selectin",
    )

    @property
    def tag_descriptions(self) -> list[str]:
        return [t.description for t in self.tags]
