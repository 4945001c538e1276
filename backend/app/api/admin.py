from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Path
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.auth import require_admin
from app.core.database import get_db
from app.models.approved_email import ApprovedEmail
from app.models.user import User
from app.services.approved_emails import (
    ApprovedEmailError,
    add_approved_email,
    list_approved_emails,
    remove_approved_email,
)

router = APIRouter(prefix="/admin", tags=["admin"])


class ApprovedEmailPayload(BaseModel):
    email: str | None = None


def _approved_email_payload(entry: ApprovedEmail) -> dict:
    return {
        "id": str(entry.id),
        "email": entry.email,
        "used": bool(entry.used),
        "created_at": entry.created_at.isoformat() if entry.created_at else None,
    }


@router.get("/approved-emails")
async def get_approved_emails(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    entries = await list_approved_emails(db)
    return {"approved_emails": [_approved_email_payload(entry) for entry in entries]}


@router.post("/approved-emails", status_code=201)
async def create_approved_email(
    payload: ApprovedEmailPayload,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    if not payload.email or not payload.email.strip():
        raise HTTPException(status_code=400, detail="Email address is required")

    try:
        entry = await add_approved_email(db, payload.email)
    except ApprovedEmailError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    await db.commit()

    return {
        "success": True,
        "message": f"Email {entry.email} added successfully",
        "approved_email": _approved_email_payload(entry),
    }


@router.delete("/approved-emails/{entry_id}")
async def delete_approved_email(
    entry_id: str = Path(...),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    try:
        entry_uuid = UUID(entry_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid approved email id") from exc

    if not await remove_approved_email(db, entry_uuid):
        raise HTTPException(status_code=404, detail="Email not found in the approved list")
    await db.commit()
    return {"success": True, "message": "Email removed successfully"}
