from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "gallery_images",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("created", sa.DateTime(), nullable=False),
    )
    op.create_index("idx_gallery_images_created", "gallery_images", ["created"], unique=False)

    op.create_table(
        "image_tags",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column(
            "gallery_image_id",
            sa.Integer(),
            sa.ForeignKey("gallery_images.id", name="fk_image_tags_gallery_image", ondelete="CASCADE"),
            nullable=False,
        ),
    )
    op.create_index("idx_image_tags_image", "image_tags", ["gallery_image_id"], unique=False)
    op.create_index("idx_image_tags_description", "image_tags", ["description"], unique=False)


def downgrade() -> None:
    op.drop_index("idx_image_tags_description", table_name="image_tags")
    op.drop_index("idx_image_tags_image", table_name="image_tags")
    op.drop_table("image_tags")
    op.drop_index("idx_gallery_images_created", table_name="gallery_images")
    op.drop_table("gallery_images")
