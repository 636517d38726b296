"""Async engine, session factory and startup schema creation."""

import asyncio
import logging
from collections.abc import AsyncGenerator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from animator.config import get_settings
from animator.models.base import Base

logger = logging.getLogger(__name__)

INIT_ATTEMPTS = 5
INIT_BACKOFF_SECONDS = 2.0

_settings = get_settings()

engine = create_async_engine(
    _settings.database_url,
    echo=_settings.database_echo,
    pool_size=5,
    max_overflow=5,
    pool_pre_ping=True,
    pool_recycle=300,
)

async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db(
    attempts: int = INIT_ATTEMPTS, backoff_seconds: float = INIT_BACKOFF_SECONDS
) -> None:
    """Create missing tables, waiting for the database with doubling delays."""
    delay = backoff_seconds
    for attempt in range(1, attempts + 1):
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except (OSError, SQLAlchemyError) as e:
            if attempt == attempts:
                logger.error(f"Database unavailable after {attempts} attempts")
                raise
            logger.warning(f"Database not ready ({attempt}/{attempts}): {e}; retrying in {delay:.0f}s")
            await asyncio.sleep(delay)
            delay *= 2
        else:
            logger.info("Database schema ready")
            return


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Session for one request, committed when the handler returns cleanly."""
    async with async_session_maker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        else:
            await session.commit()
