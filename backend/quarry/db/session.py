"""Async database engine and session helpers."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from quarry.core.config import settings

async_engine = create_async_engine(
    settings.SQLALCHEMY_ASYNC_DATABASE_URI,
    pool_size=20,
    max_overflow=10,
    pool_pre_ping=True,
    pool_timeout=settings.DELETION_MAX_WAIT_SECONDS,
)

AsyncSessionLocal = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    autoflush=False,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a database session for a request.

    Yields:
    ------
        AsyncSession: The session, closed when the request finishes.
    """
    async with AsyncSessionLocal() as db:
        yield db


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[AsyncSession, None]:
    """Database session as an async context manager, for use outside of requests."""
    async with AsyncSessionLocal() as db:
        yield db
