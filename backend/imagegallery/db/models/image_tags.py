from __future__ import annotations

from typing import TYPE_CHECKING

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from imagegallery.db.models.base import Base

if TYPE_CHECKING:
    from imagegallery.db.models.gallery_images import GalleryImage


class ImageTag(Base):
    __tablename__ = "image_tags"
    __table_args__ = (
        sa.Index("idx_image_tags_image", "gallery_image_id"),
        sa.Index("idx_image_tags_description", "description"),
    )

    id: Mapped[int] = mapped_column(sa.Integer(), primary_key=True, autoincrement=True)
    description: Mapped[str] = mapped_column(sa.Text(), nullable=False)
    gallery_image_id: Mapped[int] = mapped_column(
        sa.Integer(),
        sa.ForeignKey("gallery_images.id", ondelete="CASCADE"),
        nullable=False,
    )

    gallery_image: Mapped["GalleryImage"] = relationship(back_populates="tags")
