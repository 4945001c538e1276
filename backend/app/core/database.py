import logging
from contextlib import asynccontextmanager

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import DeclarativeBase
from app.core.config import settings
from app.core.errors import TransientStoreError

logger = logging.getLogger(__name__)


def engine_connect_args(database_url: str) -> dict:
    url = make_url(database_url)
    if url.drivername.endswith("+asyncpg"):
        return {"statement_cache_size": 0}  # required behind pgbouncer-style poolers
    return {}


engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    pool_pre_ping=True,
    connect_args=engine_connect_args(settings.DATABASE_URL),
)
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False)

class Base(DeclarativeBase):
    pass

async def get_db():
    async with AsyncSessionLocal() as session:
        yield session


@asynccontextmanager
async def store_transaction(db: AsyncSession, action: str):
    """Commit on success; roll back on any failure.

    Driver-level failures (deadlock, serialization, lost connection, a unique
    conflict with a concurrent writer) surface as ``TransientStoreError``.
    """
    try:
        yield
        await db.commit()
    except DBAPIError as exc:
        await db.rollback()
        logger.warning("%s rolled back: %s", action, exc.orig)
        raise TransientStoreError(f"Could not {action}; the change was not applied, please retry") from exc
    except BaseException:
        await db.rollback()
        raise
