"""Database connection and session management."""

from typing import AsyncGenerator

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from src.services.config import load_config
from src.services.errors import ConflictError

# Get database URL from environment or use SQLite default
DATABASE_URL = load_config().database_url


def create_engine_for(url: str):
    """Create an async engine (SQLite uses StaticPool so :memory: is shared)."""
    if url.startswith("sqlite"):
        if url.startswith("sqlite:///"):
            url = url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
        return create_async_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_async_engine(url, pool_pre_ping=True)


async_engine = create_engine_for(DATABASE_URL)

AsyncSessionLocal = async_sessionmaker(
    async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Get async database session."""
    async with AsyncSessionLocal() as session:
        yield session


async def commit_or_conflict(session: AsyncSession, message: str) -> None:
    """Commit, turning a uniqueness violation into ConflictError.

    Primary keys and unique constraints are the conditional ("only if not
    already present") write that serializes concurrent creators.
    """
    try:
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        raise ConflictError(message) from e


async def init_models(engine=None) -> None:
    """Create all tables that do not exist yet."""
    from src.models import Base

    engine = engine or async_engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


__all__ = [
    "DATABASE_URL",
    "AsyncSessionLocal",
    "async_engine",
    "commit_or_conflict",
    "create_engine_for",
    "get_async_session",
    "init_models",
]
