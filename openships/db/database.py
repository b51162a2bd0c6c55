"""
Async engine and session factory.

Storage is optional: without credentials `get_sessionmaker()` returns None and
callers run in degraded mode (the worker keeps streaming, the API answers 503).
"""
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from openships.core.config import settings
from openships.db.models import Base

_engine: AsyncEngine | None = None
_sessionmaker: async_sessionmaker[AsyncSession] | None = None


def create_engine(url: str) -> AsyncEngine:
    kwargs = {}
    if not url.startswith("sqlite"):
        kwargs.update(pool_size=10, max_overflow=0, pool_pre_ping=True)
    return create_async_engine(url, **kwargs)


def get_sessionmaker() -> async_sessionmaker[AsyncSession] | None:
    """Process-wide session factory for the API; None when storage is disabled."""
    global _engine, _sessionmaker
    if _sessionmaker is None:
        url = settings.database_url
        if url is None:
            return None
        _engine = create_engine(url)
        _sessionmaker = async_sessionmaker(_engine, expire_on_commit=False)
    return _sessionmaker


async def dispose_engine() -> None:
    global _engine, _sessionmaker
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _sessionmaker = None


async def ensure_schema(engine: AsyncEngine) -> None:
    """Create missing tables. Existing tables are left untouched."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db() -> AsyncGenerator[AsyncSession | None, None]:
    """FastAPI dependency; yields None when storage is not configured."""
    factory = get_sessionmaker()
    if factory is None:
        yield None
        return
    async with factory() as session:
        yield session
