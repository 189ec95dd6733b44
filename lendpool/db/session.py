"""Database session configuration with async SQLAlchemy."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

from lendpool.config import settings
from lendpool.core.exceptions import PersistenceError

logger = logging.getLogger(__name__)

# Plain postgresql:// URLs run on the asyncpg driver
database_url = settings.DATABASE_URL
if database_url.startswith("postgresql://"):
    database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)


def _get_engine_kwargs() -> dict:
    """Return dialect-specific engine options for SQLite vs PostgreSQL."""
    kwargs = {
        "echo": settings.ENVIRONMENT == "development",
        "future": True,
    }
    if database_url.startswith("sqlite"):
        kwargs["poolclass"] = StaticPool
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs["pool_pre_ping"] = True
        if settings.ENVIRONMENT == "test":
            kwargs["poolclass"] = NullPool
    return kwargs


engine = create_async_engine(database_url, **_get_engine_kwargs())

SessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Yield one session per request.

    Services commit their own units of work through ``transaction``; anything
    left uncommitted is rolled back when the session closes.
    """
    async with SessionLocal() as session:
        yield session


@asynccontextmanager
async def transaction(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Run a unit of work that either commits entirely or not at all.

    Commits when the block exits normally and rolls back on any exception.
    Store-level failures are re-raised as PersistenceError; other errors
    propagate unchanged.

    Args:
        session: Session the unit of work runs on

    Yields:
        AsyncSession: The same session
    """
    try:
        yield session
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Transaction rolled back after database error: {e}", exc_info=True)
        raise PersistenceError("Database operation failed") from e
    except BaseException:
        await session.rollback()
        raise
