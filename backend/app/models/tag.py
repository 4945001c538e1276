import uuid

from sqlalchemy import Column, ForeignKey, Text, Uuid
from sqlalchemy.orm import relationship

from app.core.database import Base


class Tag(Base):
    __tablename__ = "tags"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False, unique=True)

    photo_tags = relationship("PhotoTag", back_populates="tag", cascade="all, delete-orphan")


class PhotoTag(Base):
    __tablename__ = "photo_tags"

    photo_id = Column(Uuid, ForeignKey("photos.id", ondelete="CASCADE"), primary_key=True)
    tag_id = Column(Uuid, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True)

    photo = relationship("Photo", back_populates="photo_tags")
    tag = relationship("Tag", back_populates="photo_tags")
