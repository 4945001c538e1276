from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.auth import require_current_user
from app.core.database import get_db
from app.core.errors import ValidationError
from app.models.photo import Photo
from app.models.user import User
from app.services import slideshows as slideshow_service
from app.services.storage import get_photo_url

router = APIRouter(prefix="/slideshows", tags=["slideshows"])


class CreateSlideshowPayload(BaseModel):
    title: str | None = None
    description: str | None = None
    is_public: bool = False
    photo_ids: list[str] | None = None


class UpdateSlideshowPayload(BaseModel):
    title: str | None = None
    description: str | None = None
    is_public: bool = False


class SlideshowPhotosPayload(BaseModel):
    photo_ids: list[str] | None = None


def _parse_id(value: str, label: str) -> UUID:
    try:
        return UUID(str(value))
    except ValueError as exc:
        raise ValidationError(f"Invalid {label}: {value}") from exc


def _parse_photo_ids(photo_ids: list[str] | None) -> list[UUID]:
    return [_parse_id(photo_id, "photo id") for photo_id in photo_ids or []]


def _photo_payload(photo: Photo, current_user: User) -> dict:
    return {
        "id": str(photo.id),
        "url": get_photo_url(photo.storage_key),
        "original_filename": photo.original_filename,
        "description": photo.description,
        "width": photo.width,
        "height": photo.height,
        "is_owner": photo.user_id == current_user.id,
    }


@router.get("")
async def list_slideshows(
    include_public: bool = Query(default=False),
    current_user: User = Depends(require_current_user),
    db: AsyncSession = Depends(get_db),
):
    summaries = await slideshow_service.list_slideshows(db, current_user.id, include_public=include_public)

    slideshows = []
    for summary in summaries:
        slideshow = summary.slideshow
        slideshows.append(
            {
                "id": str(slideshow.id),
                "title": slideshow.title,
                "description": slideshow.description,
                "is_public": bool(slideshow.is_public),
                "creator_name": summary.creator_name,
                "photo_count": summary.photo_count,
                "thumbnail_url": (
                    get_photo_url(summary.first_photo.storage_key) if summary.first_photo else None
                ),
                "is_owner": summary.is_owner,
                "created_at": slideshow.created_at.isoformat() if slideshow.created_at else None,
                "updated_at": slideshow.updated_at.isoformat() if slideshow.updated_at else None,
            }
        )
    return {"slideshows": slideshows}


@router.post("", status_code=201)
async def create_slideshow(
    payload: CreateSlideshowPayload,
    current_user: User = Depends(require_current_user),
    db: AsyncSession = Depends(get_db),
):
    slideshow_id = await slideshow_service.create_slideshow(
        db,
        current_user.id,
        title=payload.title or "",
        photo_ids=_parse_photo_ids(payload.photo_ids),
        description=payload.description,
        is_public=payload.is_public,
    )
    return {"success": True, "slideshow_id": str(slideshow_id), "message": "Slideshow created successfully"}


@router.get("/{slideshow_id}")
async def get_slideshow(
    slideshow_id: str = Path(...),
    current_user: User = Depends(require_current_user),
    db: AsyncSession = Depends(get_db),
):
    detail = await slideshow_service.get_slideshow(db, _parse_id(slideshow_id, "slideshow id"), current_user.id)
    slideshow = detail.slideshow

    photos = []
    for member in detail.photos:
        item = _photo_payload(member.photo, current_user)
        item["position"] = member.position
        item["tags"] = member.tags
        photos.append(item)

    return {
        "id": str(slideshow.id),
        "title": slideshow.title,
        "description": slideshow.description,
        "is_public": bool(slideshow.is_public),
        "creator_name": detail.creator_name,
        "is_owner": slideshow.user_id == current_user.id,
        "created_at": slideshow.created_at.isoformat() if slideshow.created_at else None,
        "updated_at": slideshow.updated_at.isoformat() if slideshow.updated_at else None,
        "photos": photos,
    }


@router.put("/{slideshow_id}")
async def update_slideshow(
    payload: UpdateSlideshowPayload,
    slideshow_id: str = Path(...),
    current_user: User = Depends(require_current_user),
    db: AsyncSession = Depends(get_db),
):
    await slideshow_service.update_slideshow(
        db,
        _parse_id(slideshow_id, "slideshow id"),
        current_user.id,
        title=payload.title or "",
        description=payload.description,
        is_public=payload.is_public,
    )
    return {"success": True, "message": "Slideshow updated successfully"}


@router.delete("/{slideshow_id}")
async def delete_slideshow(
    slideshow_id: str = Path(...),
    current_user: User = Depends(require_current_user),
    db: AsyncSession = Depends(get_db),
):
    await slideshow_service.delete_slideshow(db, _parse_id(slideshow_id, "slideshow id"), current_user.id)
    return {"success": True, "message": "Slideshow deleted successfully"}


@router.post("/{slideshow_id}/photos")
async def add_photos_to_slideshow(
    payload: SlideshowPhotosPayload,
    slideshow_id: str = Path(...),
    current_user: User = Depends(require_current_user),
    db: AsyncSession = Depends(get_db),
):
    inserted = await slideshow_service.append_photos(
        db,
        _parse_id(slideshow_id, "slideshow id"),
        current_user.id,
        _parse_photo_ids(payload.photo_ids),
    )
    return {"success": True, "inserted": inserted, "message": "Photos added to slideshow"}


@router.put("/{slideshow_id}/photos")
async def reorder_slideshow_photos(
    payload: SlideshowPhotosPayload,
    slideshow_id: str = Path(...),
    current_user: User = Depends(require_current_user),
    db: AsyncSession = Depends(get_db),
):
    await slideshow_service.reorder_photos(
        db,
        _parse_id(slideshow_id, "slideshow id"),
        current_user.id,
        _parse_photo_ids(payload.photo_ids),
    )
    return {"success": True, "message": "Photo order updated"}


@router.delete("/{slideshow_id}/photos/{photo_id}")
async def remove_photo_from_slideshow(
    slideshow_id: str = Path(...),
    photo_id: str = Path(...),
    current_user: User = Depends(require_current_user),
    db: AsyncSession = Depends(get_db),
):
    await slideshow_service.remove_photo(
        db,
        _parse_id(slideshow_id, "slideshow id"),
        current_user.id,
        _parse_id(photo_id, "photo id"),
    )
    return {"success": True, "message": "Photo removed from slideshow"}
