"""Photo rows: saving an upload's metadata and deleting a photo.

Both run as one transaction through ``store_transaction``, so store failures
reach the caller as a retryable ``TransientStoreError``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import store_transaction
from app.core.errors import AuthorizationError, NotFoundError
from app.models.photo import Photo
from app.services import slideshows as slideshow_service
from app.services.image_meta import ImageInfo
from app.services.tags import add_tags_to_photo

logger = logging.getLogger(__name__)


async def save_photo(
    db: AsyncSession,
    user_id: UUID,
    storage_key: str,
    original_filename: str,
    file_size_bytes: int,
    info: ImageInfo,
    mime_type: str,
    description: str | None,
    tag_names: list[str],
) -> tuple[Photo, list[str]]:
    async with store_transaction(db, "save the photo"):
        photo = Photo(
            id=uuid4(),
            user_id=user_id,
            storage_key=storage_key,
            original_filename=original_filename,
            file_size_bytes=file_size_bytes,
            mime_type=mime_type,
            width=info.width,
            height=info.height,
            description=description,
            created_at=datetime.now(timezone.utc),
        )
        db.add(photo)
        await db.flush()
        attached = await add_tags_to_photo(db, photo.id, tag_names)

    logger.info("photo saved id=%s user=%s key=%s", photo.id, user_id, storage_key)
    return photo, attached


async def delete_photo(db: AsyncSession, photo_id: UUID, user_id: UUID) -> tuple[str, list[UUID]]:
    """Delete the photo row and its slideshow memberships.

    Returns the storage key, for the caller to remove once the row is gone,
    and the ids of the slideshows that lost the photo.
    """
    async with store_transaction(db, "delete the photo"):
        result = await db.execute(select(Photo.user_id, Photo.storage_key).where(Photo.id == photo_id))
        row = result.one_or_none()
        if row is None:
            raise NotFoundError("Photo not found")
        if row.user_id != user_id:
            raise AuthorizationError("You can only delete your own photos")

        slideshow_ids = await slideshow_service.detach_photo(db, photo_id)

        # from here no new membership can reference the photo
        locked = await db.execute(select(Photo).where(Photo.id == photo_id).with_for_update())
        photo = locked.scalar_one_or_none()
        if photo is None:
            raise NotFoundError("Photo not found")
        late = await slideshow_service.detach_photo(db, photo_id)
        slideshow_ids.extend(slideshow_id for slideshow_id in late if slideshow_id not in slideshow_ids)

        await db.delete(photo)
        storage_key = row.storage_key

    logger.info("photo deleted id=%s slideshows_updated=%d", photo_id, len(slideshow_ids))
    return storage_key, slideshow_ids
