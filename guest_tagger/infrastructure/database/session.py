"""Database session management."""
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine
)

from guest_tagger.core.config import settings
from guest_tagger.core.logging import get_logger
from guest_tagger.infrastructure.database.models import Base

logger = get_logger(__name__)


def create_engine(url: str = settings.DATABASE_URL) -> AsyncEngine:
    """Create the async engine, with pool sizing only where the dialect pools."""
    kwargs: Dict[str, Any] = {"echo": settings.DATABASE_ECHO}
    if not url.startswith("sqlite"):
        kwargs.update(
            pool_size=settings.DATABASE_POOL_SIZE,
            max_overflow=settings.DATABASE_MAX_OVERFLOW,
            pool_pre_ping=True
        )
    return create_async_engine(url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )


# Create async engine
engine = create_engine()

# Create async session factory
async_session_factory = create_session_factory(engine)


async def create_tables(db_engine: AsyncEngine = engine) -> None:
    """Create all tables that do not exist yet."""
    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ready")


@asynccontextmanager
async def get_db_session(
    session_factory: async_sessionmaker[AsyncSession] = async_session_factory
) -> AsyncGenerator[AsyncSession, None]:
    """Get database session.

    Yields:
        AsyncSession: Database session

    Example:
        ```python
        async with get_db_session() as session:
            await session.execute(query)
            await session.commit()
        ```
    """
    session = session_factory()
    logger.debug("Creating new database session")
    try:
        yield session
    except Exception as e:
        logger.error(
            "Database session error",
            error=str(e),
            exc_info=True
        )
        await session.rollback()
        raise
    finally:
        logger.debug("Closing database session")
        await session.close()
