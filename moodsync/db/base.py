"""
Local store database plumbing.

The local store is an on-device SQLite file reached through SQLAlchemy's
asyncio extension. NullPool: every unit of work opens its own connection,
so background tasks never share a request's connection or event loop.
"""
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from moodsync.core.config import settings


class Base(DeclarativeBase):
    pass


def make_engine(url: str) -> AsyncEngine:
    return create_async_engine(url, poolclass=NullPool)


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(bind=bind, expire_on_commit=False)


engine = make_engine(settings.LOCAL_DATABASE_URL)
SessionLocal = make_session_factory(engine)


async def create_local_schema(bind: AsyncEngine) -> None:
    """Create missing local tables (fresh device install)."""
    # Import for side effect: registers every model on Base.metadata.
    import moodsync.models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def get_session_factory() -> async_sessionmaker:
    return SessionLocal
