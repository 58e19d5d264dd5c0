"""SQLAlchemy 2.x async database setup.

The vehicles table lives in the hosted Postgres database (asyncpg driver).
Tests point ``DB_URL`` at SQLite through aiosqlite instead.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .config import DatabaseSettings, settings

logger = logging.getLogger(__name__)


def engine_options(config: DatabaseSettings) -> dict[str, Any]:
    """Keyword arguments for ``create_async_engine``.

    Pool sizing only applies to server databases; SQLite uses its own pool.
    """
    options: dict[str, Any] = {"echo": config.echo}
    if make_url(config.url).get_backend_name() != "sqlite":
        options.update(
            pool_size=config.pool_size,
            max_overflow=config.max_overflow,
            pool_pre_ping=config.pool_pre_ping,
        )
    return options


engine: AsyncEngine = create_async_engine(settings.db.url, **engine_options(settings.db))

AsyncSessionMaker = async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)


async def get_session() -> AsyncIterator[AsyncSession]:
    """FastAPI-friendly async session dependency.

    Usage:
        async def endpoint(session: AsyncSession = Depends(get_session)):
            ...
    """

    async with AsyncSessionMaker() as session:
        yield session


async def dispose_engine() -> None:
    """Close pooled connections on shutdown."""
    await engine.dispose()
    logger.info("Database connections closed")
