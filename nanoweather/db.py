"""
Database connection and session management.

Search history, preferences and streak state share one async engine.
Point DATABASE_URL at the hosted Postgres (postgresql+asyncpg://...) in
production; the SQLite default is for local runs.
"""
from typing import Any, Dict

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from .config import settings


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


def engine_options(url: str) -> Dict[str, Any]:
    """Engine keyword arguments; pool sizing only applies to server databases."""
    options: Dict[str, Any] = {"echo": settings.DEBUG, "pool_pre_ping": True}
    if make_url(url).get_backend_name() != "sqlite":
        options.update(pool_size=5, max_overflow=10)
    return options


engine = create_async_engine(settings.DATABASE_URL, **engine_options(settings.DATABASE_URL))

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)


async def get_session():
    """Dependency for getting database sessions."""
    async with async_session() as session:
        yield session
