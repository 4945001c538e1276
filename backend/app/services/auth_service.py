from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from datetime import datetime, timedelta, timezone
from uuid import UUID
from app.models.user import User, RefreshToken
from app.core.security import create_refresh_token, hash_password, hash_token, verify_password
from app.core.config import settings
from app.services.approved_emails import is_email_approved, mark_email_used, normalize_email


class RegistrationError(ValueError):
    pass


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == normalize_email(email)))
    return result.scalar_one_or_none()

async def register_user(db: AsyncSession, name: str, email: str, password: str) -> User:
    if not await is_email_approved(db, email):
        raise RegistrationError(
            "This email is not in our approved list. Please contact your council administrator."
        )
    if await get_user_by_email(db, email):
        raise RegistrationError("Email already exists")

    user = User(name=name.strip(), email=normalize_email(email), password_hash=hash_password(password))
    db.add(user)
    await db.flush()
    await mark_email_used(db, email)
    await db.commit()
    return user

async def authenticate(db: AsyncSession, email: str, password: str) -> User | None:
    user = await get_user_by_email(db, email)
    if user is None or not verify_password(password, user.password_hash):
        return None
    return user

async def create_refresh_token_for_user(db: AsyncSession, user_id: UUID) -> str:
    raw_token, token_hash = create_refresh_token()
    expires_at = datetime.now(timezone.utc) + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    db_token = RefreshToken(user_id=user_id, token_hash=token_hash, expires_at=expires_at)
    db.add(db_token)
    await db.commit()
    return raw_token

async def get_active_refresh_token(db: AsyncSession, raw_token: str) -> RefreshToken | None:
    result = await db.execute(
        select(RefreshToken).where(
            RefreshToken.token_hash == hash_token(raw_token),
            RefreshToken.revoked.is_(False),
            RefreshToken.expires_at > datetime.now(timezone.utc),
        )
    )
    return result.scalar_one_or_none()

async def revoke_refresh_token(db: AsyncSession, raw_token: str) -> None:
    await db.execute(
        update(RefreshToken)
        .where(RefreshToken.token_hash == hash_token(raw_token))
        .values(revoked=True)
        .execution_options(synchronize_session=False)
    )
    await db.commit()

async def get_current_user(db: AsyncSession, user_id: str) -> User | None:
    try:
        user_uuid = UUID(user_id)
    except ValueError:
        return None
    result = await db.execute(select(User).where(User.id == user_uuid))
    return result.scalar_one_or_none()
