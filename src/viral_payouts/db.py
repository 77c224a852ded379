"""Database utilities."""

from __future__ import annotations

from typing import AsyncIterator, Callable, TypeAlias

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from .config import settings


_engine = create_async_engine(settings.database_url, echo=False, pool_pre_ping=True)
SessionFactory = async_sessionmaker(_engine, expire_on_commit=False)
SessionDependency: TypeAlias = Callable[[], AsyncIterator[AsyncSession]]


async def get_session() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency: one transaction per request."""

    async with SessionFactory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


__all__ = [
    "_engine",
    "SessionFactory",
    "SessionDependency",
    "get_session",
]
