"""Dependencies shared by the API endpoints."""

from typing import Annotated, AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from lendpool.db.session import get_db
from lendpool.services.rate_provider import RateProvider, get_rate_provider

__all__ = ["get_session", "get_rate_provider", "SessionDep", "RateProviderDep"]


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a request-scoped session.

    Tests override this dependency to bind the API to their own engine.
    """
    async for session in get_db():
        yield session


SessionDep = Annotated[AsyncSession, Depends(get_session)]
RateProviderDep = Annotated[RateProvider, Depends(get_rate_provider)]
