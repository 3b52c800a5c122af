"""
Database base configuration and async session management

The engine is created on first use so that Alembic and the test suite can
import the models without a configured DATABASE_URL.
"""

import logging
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.ext.declarative import declarative_base

from app.core.config import settings

logger = logging.getLogger(__name__)

# Base class for documents and analyses
Base = declarative_base()

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker] = None


def _get_database_url() -> str:
    """DATABASE_URL in asyncpg form (postgresql:// is rewritten)"""
    database_url = settings.DATABASE_URL or "postgresql+asyncpg://localhost/contract_intelligence"
    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return database_url


def get_engine() -> AsyncEngine:
    """Get or create the async database engine"""
    global _engine
    if _engine is None:
        _engine = create_async_engine(
            _get_database_url(),
            pool_pre_ping=True,
            echo=settings.DEBUG
        )
    return _engine


def get_session_factory() -> async_sessionmaker:
    """Get or create the async session factory"""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False
        )
    return _session_factory


async def dispose_engine() -> None:
    """Close pooled connections (application shutdown)"""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        logger.info("Database engine disposed")
    _engine = None
    _session_factory = None


async def get_db() -> AsyncIterator[AsyncSession]:
    """
    FastAPI dependency yielding one session per request.

    The contract repository commits each write itself, so the session is
    only closed here.

    Raises:
        ValueError: If DATABASE_URL is not configured
    """
    if not settings.DATABASE_URL:
        raise ValueError("DATABASE_URL not configured")

    async with get_session_factory()() as session:
        yield session
