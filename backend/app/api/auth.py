import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.rate_limit import LOGIN_LIMIT, REGISTER_LIMIT, limiter
from app.core.security import create_access_token, decode_access_token
from app.models.user import User
from app.services.approved_emails import is_valid_email
from app.services.auth_service import (
    RegistrationError,
    authenticate,
    create_refresh_token_for_user,
    get_active_refresh_token,
    get_current_user,
    register_user,
    revoke_refresh_token,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])
MIN_PASSWORD_LENGTH = 8


class RegisterPayload(BaseModel):
    name: str | None = None
    email: str | None = None
    password: str | None = None


class LoginPayload(BaseModel):
    email: str
    password: str


async def require_current_user(request: Request, db: AsyncSession = Depends(get_db)) -> User:
    token = request.cookies.get("access_token")
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    payload = decode_access_token(token)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    user = await get_current_user(db, payload["sub"])
    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    return user


async def require_admin(user: User = Depends(require_current_user)) -> User:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Forbidden")
    return user


def _set_auth_cookies(response: Response, access_token: str, refresh_token: str | None = None) -> None:
    response.set_cookie(
        "access_token",
        access_token,
        httponly=True,
        samesite="lax",
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )
    if refresh_token is not None:
        response.set_cookie(
            "refresh_token",
            refresh_token,
            httponly=True,
            samesite="lax",
            max_age=86400 * settings.REFRESH_TOKEN_EXPIRE_DAYS,
        )


def _user_payload(user: User) -> dict:
    return {"id": str(user.id), "name": user.name, "email": user.email, "is_admin": bool(user.is_admin)}


@router.post("/register", status_code=201)
@limiter.limit(REGISTER_LIMIT)
async def register(request: Request, payload: RegisterPayload, db: AsyncSession = Depends(get_db)):
    name = (payload.name or "").strip()
    email = (payload.email or "").strip()
    password = payload.password or ""
    if not name or not email or not password:
        raise HTTPException(status_code=400, detail="Missing required fields")
    if not is_valid_email(email):
        raise HTTPException(status_code=400, detail="Please enter a valid email address")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=400,
            detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
        )

    try:
        user = await register_user(db, name, email, password)
    except RegistrationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    logger.info("registered user %s", user.email)
    return {"user": _user_payload(user), "message": "Registration successful! You can now log in."}


@router.post("/login")
@limiter.limit(LOGIN_LIMIT)
async def login(request: Request, response: Response, payload: LoginPayload, db: AsyncSession = Depends(get_db)):
    user = await authenticate(db, payload.email, payload.password)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid email or password")

    raw_refresh_token = await create_refresh_token_for_user(db, user.id)
    _set_auth_cookies(response, create_access_token(str(user.id)), raw_refresh_token)
    return {"user": _user_payload(user)}


@router.post("/refresh")
async def refresh_token(request: Request, response: Response, db: AsyncSession = Depends(get_db)):
    raw_token = request.cookies.get("refresh_token")
    if not raw_token:
        raise HTTPException(status_code=401, detail="No refresh token")
    db_token = await get_active_refresh_token(db, raw_token)
    if not db_token:
        raise HTTPException(status_code=401, detail="Invalid or expired refresh token")
    _set_auth_cookies(response, create_access_token(str(db_token.user_id)))
    return {"message": "Token refreshed"}


@router.post("/logout")
async def logout(request: Request, response: Response, db: AsyncSession = Depends(get_db)):
    raw_token = request.cookies.get("refresh_token")
    if raw_token:
        await revoke_refresh_token(db, raw_token)
    response.delete_cookie("access_token")
    response.delete_cookie("refresh_token")
    return {"message": "Logged out"}


@router.get("/me")
async def get_me(user: User = Depends(require_current_user)):
    return _user_payload(user)
