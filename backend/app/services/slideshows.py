"""Slideshow membership and ordering.

Every slideshow keeps its member photos at positions ``0..N-1`` with no gaps
and no duplicates. Each public function here is one transaction: it commits on
success and rolls back on any failure, so a half-renumbered slideshow is never
visible to other sessions. Mutations start by locking the slideshow row, which
serialises concurrent writers of the same membership set.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import store_transaction
from app.core.errors import AuthorizationError, NotFoundError, ValidationError
from app.models.photo import Photo
from app.models.slideshow import Slideshow, SlideshowPhoto
from app.models.user import User
from app.services.tags import tags_for_photos

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 200


@dataclass
class SlideshowPhotoView:
    photo: Photo
    position: int
    tags: list[str] = field(default_factory=list)


@dataclass
class SlideshowDetail:
    slideshow: Slideshow
    creator_name: str
    photos: list[SlideshowPhotoView]


@dataclass
class SlideshowSummary:
    slideshow: Slideshow
    creator_name: str
    photo_count: int
    first_photo: Photo | None
    is_owner: bool


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _clean_title(title: str | None) -> str:
    cleaned = (title or "").strip()
    if not cleaned:
        raise ValidationError("Title is required")
    if len(cleaned) > MAX_TITLE_LENGTH:
        raise ValidationError(f"Title must be {MAX_TITLE_LENGTH} characters or fewer")
    return cleaned


def _require_photo_ids(photo_ids: Sequence[UUID], message: str) -> list[UUID]:
    ids = list(photo_ids or [])
    if not ids:
        raise ValidationError(message)
    return ids


def _reject_duplicates(photo_ids: list[UUID]) -> None:
    seen: set[UUID] = set()
    duplicates: list[str] = []
    for photo_id in photo_ids:
        if photo_id in seen and str(photo_id) not in duplicates:
            duplicates.append(str(photo_id))
        seen.add(photo_id)
    if duplicates:
        raise ValidationError(f"Duplicate photo ids: {', '.join(duplicates)}")


async def _ensure_photos_exist(db: AsyncSession, photo_ids: list[UUID]) -> None:
    wanted = set(photo_ids)
    result = await db.execute(select(Photo.id).where(Photo.id.in_(wanted)))
    found = set(result.scalars().all())
    missing = [str(photo_id) for photo_id in photo_ids if photo_id not in found]
    if missing:
        raise NotFoundError(f"Photos not found: {', '.join(dict.fromkeys(missing))}")


async def _lock_owned_slideshow(db: AsyncSession, slideshow_id: UUID, user_id: UUID) -> Slideshow:
    result = await db.execute(
        select(Slideshow)
        .where(Slideshow.id == slideshow_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    slideshow = result.scalar_one_or_none()
    if slideshow is None:
        raise NotFoundError("Slideshow not found")
    if slideshow.user_id != user_id:
        raise AuthorizationError("You can only edit your own slideshows")
    return slideshow


async def _member_positions(db: AsyncSession, slideshow_id: UUID) -> dict[UUID, int]:
    result = await db.execute(
        select(SlideshowPhoto.photo_id, SlideshowPhoto.position).where(SlideshowPhoto.slideshow_id == slideshow_id)
    )
    return {row.photo_id: row.position for row in result}


async def _set_position(db: AsyncSession, slideshow_id: UUID, photo_id: UUID, position: int) -> None:
    await db.execute(
        update(SlideshowPhoto)
        .where(SlideshowPhoto.slideshow_id == slideshow_id, SlideshowPhoto.photo_id == photo_id)
        .values(position=position)
    )


async def _remove_and_close_gap(db: AsyncSession, slideshow_id: UUID, photo_id: UUID) -> bool:
    result = await db.execute(
        select(SlideshowPhoto.position).where(
            SlideshowPhoto.slideshow_id == slideshow_id,
            SlideshowPhoto.photo_id == photo_id,
        )
    )
    removed_position = result.scalar_one_or_none()
    if removed_position is None:
        return False

    await db.execute(
        delete(SlideshowPhoto).where(
            SlideshowPhoto.slideshow_id == slideshow_id,
            SlideshowPhoto.photo_id == photo_id,
        )
    )
    await db.execute(
        update(SlideshowPhoto)
        .where(SlideshowPhoto.slideshow_id == slideshow_id, SlideshowPhoto.position > removed_position)
        .values(position=SlideshowPhoto.position - 1)
    )
    return True


async def create_slideshow(
    db: AsyncSession,
    user_id: UUID,
    title: str,
    photo_ids: Sequence[UUID],
    description: str | None = None,
    is_public: bool = False,
) -> UUID:
    clean_title = _clean_title(title)
    ids = _require_photo_ids(photo_ids, "At least one photo is required")
    _reject_duplicates(ids)

    async with store_transaction(db, "create the slideshow"):
        await _ensure_photos_exist(db, ids)

        now = _utcnow()
        slideshow = Slideshow(
            user_id=user_id,
            title=clean_title,
            description=description,
            is_public=bool(is_public),
            created_at=now,
            updated_at=now,
        )
        db.add(slideshow)
        await db.flush()

        for position, photo_id in enumerate(ids):
            db.add(SlideshowPhoto(slideshow_id=slideshow.id, photo_id=photo_id, position=position))
        await db.flush()
        slideshow_id = slideshow.id

    logger.info("slideshow created id=%s user=%s photos=%d", slideshow_id, user_id, len(ids))
    return slideshow_id


async def append_photos(db: AsyncSession, slideshow_id: UUID, user_id: UUID, photo_ids: Sequence[UUID]) -> int:
    """Append photos after the current last position; existing members are skipped.

    Returns the number of rows inserted.
    """
    async with store_transaction(db, "add photos to the slideshow"):
        slideshow = await _lock_owned_slideshow(db, slideshow_id, user_id)
        ids = _require_photo_ids(photo_ids, "Photo IDs are required")
        await _ensure_photos_exist(db, ids)

        max_result = await db.execute(
            select(func.coalesce(func.max(SlideshowPhoto.position), -1)).where(
                SlideshowPhoto.slideshow_id == slideshow_id
            )
        )
        next_position = max_result.scalar_one() + 1
        members = set(await _member_positions(db, slideshow_id))

        inserted = 0
        for photo_id in ids:
            if photo_id in members:
                continue
            db.add(SlideshowPhoto(slideshow_id=slideshow_id, photo_id=photo_id, position=next_position))
            members.add(photo_id)
            next_position += 1
            inserted += 1

        slideshow.updated_at = _utcnow()
        await db.flush()

    logger.info("slideshow photos appended id=%s inserted=%d skipped=%d", slideshow_id, inserted, len(ids) - inserted)
    return inserted


async def remove_photo(db: AsyncSession, slideshow_id: UUID, user_id: UUID, photo_id: UUID) -> None:
    async with store_transaction(db, "remove the photo"):
        slideshow = await _lock_owned_slideshow(db, slideshow_id, user_id)
        if not await _remove_and_close_gap(db, slideshow_id, photo_id):
            raise NotFoundError("Photo not found in slideshow")
        slideshow.updated_at = _utcnow()
        await db.flush()

    logger.info("slideshow photo removed id=%s photo=%s", slideshow_id, photo_id)


async def reorder_photos(db: AsyncSession, slideshow_id: UUID, user_id: UUID, photo_ids: Sequence[UUID]) -> None:
    """Set ``position = index`` for every photo in ``photo_ids``.

    The list must be a permutation of the current members.
    """
    async with store_transaction(db, "reorder the slideshow"):
        slideshow = await _lock_owned_slideshow(db, slideshow_id, user_id)
        ids = _require_photo_ids(photo_ids, "Photo order is required")
        _reject_duplicates(ids)

        current = await _member_positions(db, slideshow_id)
        if set(ids) != set(current):
            unknown = [str(photo_id) for photo_id in ids if photo_id not in current]
            omitted = [str(photo_id) for photo_id in current if photo_id not in set(ids)]
            details = []
            if unknown:
                details.append(f"not in slideshow: {', '.join(unknown)}")
            if omitted:
                details.append(f"missing from order: {', '.join(omitted)}")
            raise ValidationError(f"Photo order must list every slideshow photo exactly once ({'; '.join(details)})")

        for position, photo_id in enumerate(ids):
            if current[photo_id] != position:
                await _set_position(db, slideshow_id, photo_id, position)

        slideshow.updated_at = _utcnow()
        await db.flush()

    logger.info("slideshow reordered id=%s photos=%d", slideshow_id, len(ids))


async def update_slideshow(
    db: AsyncSession,
    slideshow_id: UUID,
    user_id: UUID,
    title: str,
    description: str | None,
    is_public: bool,
) -> None:
    async with store_transaction(db, "update the slideshow"):
        slideshow = await _lock_owned_slideshow(db, slideshow_id, user_id)
        slideshow.title = _clean_title(title)
        slideshow.description = description
        slideshow.is_public = bool(is_public)
        slideshow.updated_at = _utcnow()
        await db.flush()


async def delete_slideshow(db: AsyncSession, slideshow_id: UUID, user_id: UUID) -> None:
    async with store_transaction(db, "delete the slideshow"):
        await _lock_owned_slideshow(db, slideshow_id, user_id)
        await db.execute(delete(SlideshowPhoto).where(SlideshowPhoto.slideshow_id == slideshow_id))
        await db.execute(delete(Slideshow).where(Slideshow.id == slideshow_id))

    logger.info("slideshow deleted id=%s user=%s", slideshow_id, user_id)


async def detach_photo(db: AsyncSession, photo_id: UUID) -> list[UUID]:
    """Remove ``photo_id`` from every slideshow, closing each gap.

    Runs inside the caller's transaction and does not commit.
    """
    result = await db.execute(
        select(SlideshowPhoto.slideshow_id)
        .where(SlideshowPhoto.photo_id == photo_id)
        .order_by(SlideshowPhoto.slideshow_id)
    )
    slideshow_ids = list(result.scalars().all())
    if not slideshow_ids:
        return []

    # slideshows lock in id order and before the photo row, the order Append takes them in
    await db.execute(
        select(Slideshow.id).where(Slideshow.id.in_(slideshow_ids)).order_by(Slideshow.id).with_for_update()
    )
    now = _utcnow()
    for slideshow_id in slideshow_ids:
        await _remove_and_close_gap(db, slideshow_id, photo_id)
    await db.execute(update(Slideshow).where(Slideshow.id.in_(slideshow_ids)).values(updated_at=now))
    return slideshow_ids


async def get_slideshow(db: AsyncSession, slideshow_id: UUID, viewer_id: UUID) -> SlideshowDetail:
    result = await db.execute(
        select(Slideshow, User.name).join(User, User.id == Slideshow.user_id).where(Slideshow.id == slideshow_id)
    )
    row = result.one_or_none()
    if row is None:
        raise NotFoundError("Slideshow not found")
    slideshow, creator_name = row
    if slideshow.user_id != viewer_id and not slideshow.is_public:
        raise AuthorizationError("Access denied")

    photos_result = await db.execute(
        select(Photo, SlideshowPhoto.position)
        .join(SlideshowPhoto, SlideshowPhoto.photo_id == Photo.id)
        .where(SlideshowPhoto.slideshow_id == slideshow_id)
        .order_by(SlideshowPhoto.position.asc())
    )
    members = photos_result.all()
    tags = await tags_for_photos(db, [photo.id for photo, _ in members])

    return SlideshowDetail(
        slideshow=slideshow,
        creator_name=creator_name,
        photos=[
            SlideshowPhotoView(photo=photo, position=position, tags=tags.get(photo.id, []))
            for photo, position in members
        ],
    )


async def list_slideshows(db: AsyncSession, viewer_id: UUID, include_public: bool = False) -> list[SlideshowSummary]:
    photo_count = (
        select(SlideshowPhoto.slideshow_id, func.count().label("photo_count"))
        .group_by(SlideshowPhoto.slideshow_id)
        .subquery()
    )
    visibility = Slideshow.user_id == viewer_id
    if include_public:
        visibility = or_(visibility, Slideshow.is_public.is_(True))

    result = await db.execute(
        select(Slideshow, User.name, func.coalesce(photo_count.c.photo_count, 0))
        .join(User, User.id == Slideshow.user_id)
        .outerjoin(photo_count, photo_count.c.slideshow_id == Slideshow.id)
        .where(visibility)
        .order_by(Slideshow.updated_at.desc(), Slideshow.id)
    )
    rows = result.all()

    first_photos: dict[UUID, Photo] = {}
    slideshow_ids = [slideshow.id for slideshow, _, _ in rows]
    if slideshow_ids:
        first_result = await db.execute(
            select(SlideshowPhoto.slideshow_id, Photo)
            .join(Photo, Photo.id == SlideshowPhoto.photo_id)
            .where(SlideshowPhoto.slideshow_id.in_(slideshow_ids), SlideshowPhoto.position == 0)
        )
        first_photos = {slideshow_id: photo for slideshow_id, photo in first_result}

    return [
        SlideshowSummary(
            slideshow=slideshow,
            creator_name=creator_name,
            photo_count=int(count or 0),
            first_photo=first_photos.get(slideshow.id),
            is_owner=slideshow.user_id == viewer_id,
        )
        for slideshow, creator_name, count in rows
    ]
