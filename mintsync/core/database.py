"""
Database configuration and session management.
Uses SQLAlchemy 2.0 with async support.
"""

from typing import AsyncGenerator, Optional
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
    AsyncEngine
)

from .config import settings, DatabaseConfig
from .logging import get_logger

logger = get_logger(__name__)

# Global engine and session maker
async_engine: Optional[AsyncEngine] = None
async_session_maker: Optional[async_sessionmaker[AsyncSession]] = None


def build_engine(url: Optional[str] = None) -> AsyncEngine:
    """Create an async engine for ``url`` (defaults to the configured database)."""
    database_url = DatabaseConfig.get_database_url(url)
    return create_async_engine(
        database_url,
        **DatabaseConfig.get_engine_config(database_url),
        echo=settings.debug
    )


async def init_database(url: Optional[str] = None) -> async_sessionmaker[AsyncSession]:
    """Initialize database connections and session makers."""
    global async_engine, async_session_maker

    logger.info("Initializing database connections")

    async_engine = build_engine(url)
    async_session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    logger.info("Database connections initialized")
    return async_session_maker


async def close_database() -> None:
    """Close database connections."""
    global async_engine, async_session_maker

    logger.info("Closing database connections")

    if async_engine:
        await async_engine.dispose()
    async_engine = None
    async_session_maker = None

    logger.info("Database connections closed")


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    if not async_session_maker:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return async_session_maker


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Get an async database session with automatic cleanup.

    Usage:
        async with get_async_session() as session:
            # Use session here
            pass
    """
    async with get_session_maker()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


class DatabaseManager:
    """Database manager for administrative operations."""

    @staticmethod
    async def create_tables(engine: Optional[AsyncEngine] = None) -> None:
        """Create all tables in the database."""
        from mintsync.models.base import Base

        engine = engine or async_engine
        if not engine:
            raise RuntimeError("Database not initialized")

        logger.info("Creating database tables")
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created")

    @staticmethod
    async def health_check() -> bool:
        """Check database connectivity."""
        try:
            async with get_async_session() as session:
                await session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return False
