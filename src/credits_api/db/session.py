"""Async engine, session factory and the FastAPI session dependency."""

from __future__ import annotations

from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from credits_api.core.settings import settings


def create_session_factory(database_url: str, *, echo: bool = False) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory for the given database URL."""

    engine = create_async_engine(database_url, echo=echo, future=True)
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async_session = create_session_factory(settings.database_url, echo=settings.database_echo)


async def get_session() -> AsyncIterator[AsyncSession]:
    async with async_session() as session:
        yield session
