"""create slideshows and slideshow_photos tables

Revision ID: 20261018_0003
Revises: 20261018_0002
Create Date: 2026-10-18 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "20261018_0003"
down_revision = "20261018_0002"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "slideshows",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_slideshows_user_id", "slideshows", ["user_id"])

    op.create_table(
        "slideshow_photos",
        sa.Column("slideshow_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("slideshows.id", ondelete="CASCADE"), nullable=False),
        sa.Column("photo_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("photos.id", ondelete="CASCADE"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("slideshow_id", "photo_id", name="pk_slideshow_photos"),
        sa.CheckConstraint("position >= 0", name="ck_slideshow_photos_position_non_negative"),
    )
    op.create_index("ix_slideshow_photos_slideshow_id_position", "slideshow_photos", ["slideshow_id", "position"])


def downgrade() -> None:
    op.drop_index("ix_slideshow_photos_slideshow_id_position", table_name="slideshow_photos")
    op.drop_table("slideshow_photos")
    op.drop_index("ix_slideshows_user_id", table_name="slideshows")
    op.drop_table("slideshows")
