from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager

import structlog
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from src.core.config import settings

logger = structlog.get_logger()


def _create_engine(pool_size: int, max_overflow: int) -> AsyncEngine:
    return create_async_engine(
        str(settings.database_url),
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        echo=settings.debug,
    )


def _session_maker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


# =============================================================================
# API engine: one pool per process, one session per webhook or API request
# =============================================================================
engine = _create_engine(settings.database_pool_size, settings.database_max_overflow)

async_session_maker = _session_maker(engine)


@asynccontextmanager
async def worker_session() -> AsyncIterator[AsyncSession]:
    """Session for a single task run on its own short-lived engine.

    Celery tasks run each call on a new event loop, and asyncpg connections
    cannot cross loops, so workers never share the API engine.
    """
    worker_engine = _create_engine(pool_size=2, max_overflow=2)
    try:
        async with _session_maker(worker_engine)() as session:
            yield session
    finally:
        await worker_engine.dispose()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped unit of work: commit on success, roll back on error.

    Rolling back also discards the event ledger mark, so a provider retry of
    a failed event is processed again.
    """
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.warning("Request rolled back", error_type=type(e).__name__)
            raise


async def init_db() -> None:
    """Initialize database tables."""
    from src.db.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
