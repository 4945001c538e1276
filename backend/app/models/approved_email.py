import uuid

from sqlalchemy import Boolean, Column, DateTime, String, Uuid
from sqlalchemy.sql import func

from app.core.database import Base


class ApprovedEmail(Base):
    """An address that is allowed to register; ``used`` flips once it has."""

    __tablename__ = "approved_emails"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(320), unique=True, nullable=False)
    used = Column(Boolean, server_default="false", default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
