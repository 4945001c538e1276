import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.database import Base


class Slideshow(Base):
    __tablename__ = "slideshows"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4, nullable=False)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    is_public = Column(Boolean, server_default="false", default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    user = relationship("User", back_populates="slideshows")
    photos = relationship(
        "SlideshowPhoto",
        back_populates="slideshow",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="SlideshowPhoto.position",
    )


class SlideshowPhoto(Base):
    """One photo's membership in a slideshow.

    Positions within a slideshow are always exactly ``0..N-1`` between
    transactions. The position index is not unique since renumbering shifts
    rows in place.
    """

    __tablename__ = "slideshow_photos"
    __table_args__ = (
        Index("ix_slideshow_photos_slideshow_id_position", "slideshow_id", "position"),
        CheckConstraint("position >= 0", name="ck_slideshow_photos_position_non_negative"),
    )

    slideshow_id = Column(Uuid, ForeignKey("slideshows.id", ondelete="CASCADE"), primary_key=True, nullable=False)
    photo_id = Column(Uuid, ForeignKey("photos.id", ondelete="CASCADE"), primary_key=True, nullable=False)
    position = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    slideshow = relationship("Slideshow", back_populates="photos")
    photo = relationship("Photo")
