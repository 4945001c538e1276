from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.tag import PhotoTag, Tag

MAX_TAG_LENGTH = 50


def parse_tag_names(raw: str | None) -> list[str]:
    """Split a comma separated tag field, dropping blanks and repeats."""
    if not raw:
        return []
    names: list[str] = []
    for item in raw.split(","):
        name = item.strip().lower()[:MAX_TAG_LENGTH]
        if name and name not in names:
            names.append(name)
    return names


async def _find_tag(db: AsyncSession, name: str) -> Tag | None:
    result = await db.execute(select(Tag).where(Tag.name == name))
    return result.scalar_one_or_none()


async def get_or_create_tag(db: AsyncSession, name: str) -> Tag:
    tag = await _find_tag(db, name)
    if tag is not None:
        return tag
    try:
        async with db.begin_nested():
            tag = Tag(name=name)
            db.add(tag)
    except IntegrityError:
        # another upload created the same tag first
        tag = await _find_tag(db, name)
        if tag is None:
            raise
    return tag


async def add_tags_to_photo(db: AsyncSession, photo_id: UUID, names: list[str]) -> list[str]:
    existing_result = await db.execute(
        select(Tag.name).join(PhotoTag, PhotoTag.tag_id == Tag.id).where(PhotoTag.photo_id == photo_id)
    )
    attached = set(existing_result.scalars().all())

    for name in names:
        if name in attached:
            continue
        tag = await get_or_create_tag(db, name)
        db.add(PhotoTag(photo_id=photo_id, tag_id=tag.id))
        attached.add(name)
    await db.flush()
    return sorted(attached)


async def tags_for_photos(db: AsyncSession, photo_ids: list[UUID]) -> dict[UUID, list[str]]:
    if not photo_ids:
        return {}
    result = await db.execute(
        select(PhotoTag.photo_id, Tag.name)
        .join(Tag, Tag.id == PhotoTag.tag_id)
        .where(PhotoTag.photo_id.in_(photo_ids))
        .order_by(Tag.name)
    )
    tags: dict[UUID, list[str]] = {}
    for row in result:
        tags.setdefault(row.photo_id, []).append(row.name)
    return tags


async def list_tags_with_counts(db: AsyncSession) -> list[tuple[str, int]]:
    result = await db.execute(
        select(Tag.name, func.count(PhotoTag.photo_id))
        .outerjoin(PhotoTag, PhotoTag.tag_id == Tag.id)
        .group_by(Tag.id, Tag.name)
        .order_by(Tag.name)
    )
    return [(name, int(count)) for name, count in result]
