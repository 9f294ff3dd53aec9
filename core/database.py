"""
Async engine and session factory.

One engine per process. Connections are not pooled in-process (``NullPool``);
PostgreSQL deployments put pgbouncer in front instead. Sessions keep loaded
attributes after commit so services can return ORM rows to route handlers.
"""

import logging
from typing import AsyncGenerator, Optional
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from core.config import settings

logger = logging.getLogger(__name__)


def build_engine(database_url: Optional[str] = None, echo: Optional[bool] = None) -> AsyncEngine:
    """Create an async engine for ``database_url`` (defaults to ``DATABASE_URL``)."""
    url = database_url or settings.DATABASE_URL
    if echo is None:
        echo = settings.ENVIRONMENT == "development" and settings.LOG_LEVEL.upper() == "DEBUG"
    return create_async_engine(url, echo=echo, poolclass=NullPool, future=True)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = build_engine()
async_session_maker = build_session_factory(engine)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a session for one unit of work; the caller commits."""
    async with async_session_maker() as session:
        yield session


async def dispose_engine() -> None:
    await engine.dispose()
    logger.info("Database engine disposed")
