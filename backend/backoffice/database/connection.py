"""
Async engine and sessions for the back office database.

The engine and session factory are created lazily so importing the app never
touches the database. Services own their commits; ``get_db`` only guarantees
that a failed request leaves nothing pending.
"""

import asyncio
from typing import AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from backoffice.core.config import Settings, get_settings
from backoffice.core.logging import get_logger

logger = get_logger(__name__)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def async_database_url(url: str) -> str:
    """``postgresql://`` URLs are served through asyncpg."""
    return url.replace("postgresql://", "postgresql+asyncpg://", 1)


def _pool_options(settings: Settings) -> dict:
    # Each TestClient runs its own event loop; connections must not outlive it.
    if settings.is_test:
        return {"poolclass": NullPool}
    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_recycle": 3600,
    }


def get_engine() -> AsyncEngine:
    global _engine

    if _engine is None:
        settings = get_settings()
        try:
            _engine = create_async_engine(
                async_database_url(settings.database_url),
                echo=settings.debug,
                pool_pre_ping=True,
                connect_args={
                    "server_settings": {"application_name": settings.app_name},
                    "command_timeout": 60,
                    "timeout": 10,
                },
                **_pool_options(settings),
            )
        except (SQLAlchemyError, ValueError) as e:
            logger.error("Cannot create database engine", error=str(e))
            raise RuntimeError(f"Database engine initialization failed: {e}") from e

        logger.info(
            "Database engine created",
            environment=settings.environment,
            pool_size=settings.db_pool_size,
        )
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory

    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(), expire_on_commit=False, autoflush=False
        )
    return _session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session; rolled back if the request handler raises."""
    async with get_session_factory()() as session:
        try:
            yield session
        except Exception as e:
            await session.rollback()
            logger.warning(
                "Request session rolled back", error_type=type(e).__name__
            )
            raise


async def check_database_health(max_retries: int = 3, retry_delay: float = 1.0) -> bool:
    """Run ``SELECT 1``, backing off exponentially between failed attempts."""
    for attempt in range(1, max_retries + 1):
        try:
            async with get_engine().connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except (SQLAlchemyError, RuntimeError, OSError) as e:
            logger.warning(
                "Database not reachable",
                attempt=attempt,
                max_retries=max_retries,
                error=str(e),
            )
            if attempt < max_retries:
                await asyncio.sleep(retry_delay * 2 ** (attempt - 1))
    return False


async def close_database_connections() -> None:
    global _engine, _session_factory

    if _engine is None:
        return
    engine, _engine, _session_factory = _engine, None, None
    await engine.dispose()
    logger.info("Database engine disposed")
