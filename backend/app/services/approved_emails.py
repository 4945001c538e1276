from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.approved_email import ApprovedEmail

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class ApprovedEmailError(ValueError):
    pass


def normalize_email(email: str) -> str:
    return email.strip().lower()


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email.strip()))


async def list_approved_emails(db: AsyncSession) -> list[ApprovedEmail]:
    result = await db.execute(
        select(ApprovedEmail).order_by(ApprovedEmail.created_at.desc(), ApprovedEmail.email)
    )
    return list(result.scalars().all())


async def get_approved_email(db: AsyncSession, email: str) -> ApprovedEmail | None:
    result = await db.execute(
        select(ApprovedEmail).where(func.lower(ApprovedEmail.email) == normalize_email(email))
    )
    return result.scalar_one_or_none()


async def is_email_approved(db: AsyncSession, email: str) -> bool:
    return await get_approved_email(db, email) is not None


async def add_approved_email(db: AsyncSession, email: str) -> ApprovedEmail:
    """Add ``email`` to the allow-list. Does not commit."""
    if not email or not is_valid_email(email):
        raise ApprovedEmailError("Invalid email address format")
    if await is_email_approved(db, email):
        raise ApprovedEmailError("Email is already approved")

    entry = ApprovedEmail(email=normalize_email(email), created_at=datetime.now(timezone.utc))
    db.add(entry)
    await db.flush()
    logger.info("approved email added %s", entry.email)
    return entry


async def remove_approved_email(db: AsyncSession, entry_id: UUID) -> bool:
    """Delete the allow-list entry. Does not commit; returns False if absent."""
    result = await db.execute(select(ApprovedEmail).where(ApprovedEmail.id == entry_id))
    entry = result.scalar_one_or_none()
    if entry is None:
        return False
    await db.delete(entry)
    await db.flush()
    logger.info("approved email removed %s", entry.email)
    return True


async def mark_email_used(db: AsyncSession, email: str) -> bool:
    entry = await get_approved_email(db, email)
    if entry is None:
        return False
    entry.used = True
    await db.flush()
    return True
