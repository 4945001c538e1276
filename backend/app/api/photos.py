from __future__ import annotations

import logging
from pathlib import Path as FilePath
from uuid import UUID, uuid4

from botocore.exceptions import BotoCoreError, ClientError
from fastapi import APIRouter, Depends, File, Form, HTTPException, Path, Query, Request, UploadFile
from sqlalchemy import desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.auth import require_current_user
from app.core.config import settings
from app.core.database import get_db
from app.core.rate_limit import UPLOAD_LIMIT, limiter
from app.models.photo import Photo
from app.models.tag import PhotoTag, Tag
from app.models.user import User
from app.services import photos as photo_service
from app.services.image_meta import UnreadableImageError, read_image_info
from app.services.storage import delete_file, get_photo_url, upload_file
from app.services.tags import list_tags_with_counts, parse_tag_names, tags_for_photos

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/photos", tags=["photos"])

ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}


def _storage_key(filename: str) -> str:
    extension = FilePath(filename).suffix.lower()
    if extension not in ALLOWED_EXTENSIONS:
        extension = ""
    return f"{uuid4()}{extension}"


def _photo_payload(photo: Photo, tags: list[str], current_user: User) -> dict:
    return {
        "id": str(photo.id),
        "url": get_photo_url(photo.storage_key),
        "original_filename": photo.original_filename,
        "file_size_bytes": photo.file_size_bytes,
        "mime_type": photo.mime_type,
        "width": photo.width,
        "height": photo.height,
        "description": photo.description,
        "user_id": str(photo.user_id),
        "is_owner": photo.user_id == current_user.id,
        "created_at": photo.created_at.isoformat() if photo.created_at else None,
        "tags": tags,
    }


def _discard_stored_object(storage_key: str) -> None:
    try:
        delete_file(storage_key)
    except (BotoCoreError, ClientError, OSError, ValueError):
        logger.exception("Stored object %s could not be deleted", storage_key)


def _parse_photo_id(photo_id: str) -> UUID:
    try:
        return UUID(photo_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid photo id") from exc


@router.post("/upload", status_code=201)
@limiter.limit(UPLOAD_LIMIT)
async def upload_photo(
    request: Request,
    file: UploadFile | None = File(default=None),
    description: str | None = Form(default=None),
    tags: str | None = Form(default=None),
    current_user: User = Depends(require_current_user),
    db: AsyncSession = Depends(get_db),
):
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file provided")

    image_bytes = await file.read()
    if not image_bytes:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    if len(image_bytes) > settings.MAX_UPLOAD_SIZE_BYTES:
        raise HTTPException(status_code=413, detail="File is too large")

    try:
        info = read_image_info(image_bytes)
    except UnreadableImageError as exc:
        raise HTTPException(status_code=422, detail=f"{file.filename} is not a readable image") from exc

    mime_type = info.mime_type or file.content_type or "application/octet-stream"
    storage_key = _storage_key(file.filename)

    try:
        upload_file(image_bytes, storage_key, mime_type)
    except ClientError as exc:
        error_code = exc.response.get("Error", {}).get("Code", "UnknownError")
        raise HTTPException(status_code=503, detail=f"Upload to storage failed: {error_code}") from exc
    except (BotoCoreError, OSError) as exc:
        raise HTTPException(
            status_code=503,
            detail=f"Upload to storage failed: {exc.__class__.__name__}",
        ) from exc

    try:
        photo, tag_names = await photo_service.save_photo(
            db,
            current_user.id,
            storage_key=storage_key,
            original_filename=file.filename,
            file_size_bytes=len(image_bytes),
            info=info,
            mime_type=mime_type,
            description=(description or "").strip() or None,
            tag_names=parse_tag_names(tags),
        )
    except Exception:
        _discard_stored_object(storage_key)
        raise

    return {"success": True, "photo": _photo_payload(photo, tag_names, current_user)}


@router.get("")
async def list_photos(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    tag: str | None = Query(default=None),
    current_user: User = Depends(require_current_user),
    db: AsyncSession = Depends(get_db),
):
    query = select(Photo)
    count_query = select(func.count()).select_from(Photo)
    if tag:
        tag_filter = (
            select(PhotoTag.photo_id)
            .join(Tag, Tag.id == PhotoTag.tag_id)
            .where(Tag.name == tag.strip().lower())
        )
        query = query.where(Photo.id.in_(tag_filter))
        count_query = count_query.where(Photo.id.in_(tag_filter))

    total = int((await db.execute(count_query)).scalar_one() or 0)
    result = await db.execute(
        query.order_by(desc(Photo.created_at), desc(Photo.id)).limit(limit).offset(offset)
    )
    photos = result.scalars().all()
    tags_by_photo = await tags_for_photos(db, [photo.id for photo in photos])

    return {
        "photos": [_photo_payload(photo, tags_by_photo.get(photo.id, []), current_user) for photo in photos],
        "pagination": {
            "total": total,
            "limit": limit,
            "offset": offset,
            "has_more": offset + len(photos) < total,
        },
    }


@router.get("/tags")
async def list_tags(
    current_user: User = Depends(require_current_user),
    db: AsyncSession = Depends(get_db),
):
    return {"tags": [{"name": name, "photo_count": count} for name, count in await list_tags_with_counts(db)]}


@router.get("/{photo_id}")
async def get_photo(
    photo_id: str = Path(...),
    current_user: User = Depends(require_current_user),
    db: AsyncSession = Depends(get_db),
):
    photo_uuid = _parse_photo_id(photo_id)
    result = await db.execute(select(Photo).where(Photo.id == photo_uuid))
    photo = result.scalar_one_or_none()
    if not photo:
        raise HTTPException(status_code=404, detail="Photo not found")

    tags_by_photo = await tags_for_photos(db, [photo.id])
    return _photo_payload(photo, tags_by_photo.get(photo.id, []), current_user)


@router.delete("/{photo_id}")
async def delete_photo(
    photo_id: str = Path(...),
    current_user: User = Depends(require_current_user),
    db: AsyncSession = Depends(get_db),
):
    photo_uuid = _parse_photo_id(photo_id)
    storage_key, slideshow_ids = await photo_service.delete_photo(db, photo_uuid, current_user.id)
    _discard_stored_object(storage_key)
    return {"success": True, "slideshows_updated": len(slideshow_ids)}
