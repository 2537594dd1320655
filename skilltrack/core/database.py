"""Async database engine and session management."""

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from skilltrack.core.config import settings


class Base(DeclarativeBase):
    """Declarative base for all ORM records."""


engine = create_async_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a database session for one request."""
    async with async_session() as session:
        yield session


async def init_db():
    """Create tables that do not exist yet."""
    # Import records so they register on the metadata
    import skilltrack.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
