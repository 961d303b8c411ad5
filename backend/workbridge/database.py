"""Database engine, session factory, and declarative base.

All onboarding tables live in a single schema. Request handlers get a
session through `get_db()`; background work (debounced autosave) opens
its own sessions from `async_session` via the persistence gateway.
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.orm import DeclarativeBase

from workbridge.config import settings


def _engine_kwargs(url: str) -> dict:
    # SQLite (tests, local dev) does not accept pool sizing arguments
    if url.startswith("sqlite"):
        return {}
    return {"pool_size": 20, "max_overflow": 10}


engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    **_engine_kwargs(settings.database_url),
)

async_session = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


class Base(DeclarativeBase):
    """Base class for all WorkBridge models."""
    pass


async def get_db() -> AsyncSession:
    """Yield a request-scoped session, committing on success."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
