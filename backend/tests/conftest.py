"""Shared fixtures: an in-memory SQLite database per test and an API client bound to it."""

import io
import os
import tempfile

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["LOCAL_UPLOAD_DIR"] = tempfile.mkdtemp(prefix="council-photos-")
for _name in ("AWS_BUCKET_NAME", "AWS_REGION", "AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY"):
    os.environ.pop(_name, None)

from datetime import datetime, timedelta, timezone
from uuid import UUID

import pytest
from httpx import ASGITransport, AsyncClient
from PIL import Image
from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.config import settings
from app.core.database import Base, get_db
from app.core.security import create_access_token, hash_password
from app.main import app
from app.models.photo import Photo
from app.models.slideshow import SlideshowPhoto
from app.models.user import User

DEFAULT_PASSWORD = "correct-horse-battery"
DEFAULT_PASSWORD_HASH = hash_password(DEFAULT_PASSWORD)


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def upload_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "LOCAL_UPLOAD_DIR", str(tmp_path / "uploads"))
    return tmp_path / "uploads"


async def create_user(db, name="Member", email="member@example.org", is_admin=False) -> UUID:
    user = User(name=name, email=email, password_hash=DEFAULT_PASSWORD_HASH, is_admin=is_admin)
    db.add(user)
    await db.commit()
    return user.id


_photo_clock = datetime(2026, 1, 1, tzinfo=timezone.utc)


async def create_photo(db, user_id: UUID, filename="photo.jpg") -> UUID:
    global _photo_clock
    _photo_clock += timedelta(seconds=1)
    photo = Photo(
        user_id=user_id,
        storage_key=f"{filename}-{_photo_clock.timestamp():.0f}",
        original_filename=filename,
        file_size_bytes=1024,
        mime_type="image/jpeg",
        width=640,
        height=480,
        created_at=_photo_clock,
    )
    db.add(photo)
    await db.commit()
    return photo.id


async def member_positions(db, slideshow_id: UUID) -> dict[UUID, int]:
    result = await db.execute(
        select(SlideshowPhoto.photo_id, SlideshowPhoto.position).where(SlideshowPhoto.slideshow_id == slideshow_id)
    )
    return {row.photo_id: row.position for row in result}


def png_bytes(width=32, height=24, color=(200, 30, 30)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


def auth_headers(user_id: UUID) -> dict[str, str]:
    return {"Cookie": f"access_token={create_access_token(str(user_id))}"}


@pytest.fixture
async def owner_id(db):
    return await create_user(db, name="Owner", email="owner@example.org")


@pytest.fixture
async def other_id(db):
    return await create_user(db, name="Other", email="other@example.org")


@pytest.fixture
async def photos(db, owner_id):
    """Ten photos keyed 0..9 so scenarios can refer to them by number."""
    return {number: await create_photo(db, owner_id, f"photo-{number}.jpg") for number in range(10)}
