"""
Async SQLAlchemy engine, session factory and declarative base.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.config import settings


class Base(DeclarativeBase):
    # Server-generated timestamps are read back with the write
    __mapper_args__ = {"eager_defaults": True}


def _engine_kwargs(url: str) -> dict:
    kwargs = {"echo": settings.DB_ECHO, "pool_pre_ping": True}
    # SQLite (tests, local dev) has no connection pool sizing
    if not url.startswith("sqlite"):
        kwargs["pool_size"] = settings.DB_POOL_SIZE
        kwargs["max_overflow"] = settings.DB_MAX_OVERFLOW
    return kwargs


engine = create_async_engine(settings.DATABASE_URL, **_engine_kwargs(settings.DATABASE_URL))

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_session() -> AsyncIterator[AsyncSession]:
    """Yield a session; commit/rollback is owned by the service layer."""
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


@asynccontextmanager
async def transaction(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Commit on success, roll back on any error.
    Each mutating service operation runs inside exactly one of these so that
    record fields, line totals and quote totals persist together or not at all.
    """
    try:
        yield session
        await session.commit()
    except BaseException:
        await session.rollback()
        raise


async def close_db() -> None:
    await engine.dispose()
