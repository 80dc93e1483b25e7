"""
Copy Trading - Database.

============================================================
RESPONSIBILITY
============================================================
Manages the async engine and sessions.

- Creates the async engine from a URL
- Provides the session factory handed to the orchestrator
- Creates tables on demand
- Transaction scope with commit/rollback

============================================================
DESIGN PRINCIPLES
============================================================
- Async by default
- Explicit transaction boundaries
- Hard failures on persistence errors

Any async SQLAlchemy driver works; tests use sqlite+aiosqlite.

============================================================
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional, AsyncIterator

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .config import CopyTradingConfig
from .models import Base


logger = logging.getLogger(__name__)


def _redact_url(url: str) -> str:
    """Drop credentials from a database URL for logging."""
    if "@" not in url:
        return url
    scheme, _, rest = url.partition("://")
    return f"{scheme}://***@{rest.split('@')[-1]}"


class Database:
    """
    Async database handle.

    Usage:
        db = Database("sqlite+aiosqlite:///./copy_trading.db")
        await db.create_tables()
        async with db.session_scope() as session:
            session.add(record)
    """

    def __init__(self, url: str, echo: bool = False):
        self._url = url
        self._engine: AsyncEngine = create_async_engine(url, echo=echo, future=True)
        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            autoflush=False,
            expire_on_commit=False,
        )
        logger.info(f"Database engine created for {_redact_url(url)}")

    @classmethod
    def from_config(cls, config: Optional[CopyTradingConfig] = None) -> "Database":
        config = config or CopyTradingConfig.from_env()
        return cls(config.database_url)

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker:
        return self._session_factory

    async def create_tables(self) -> None:
        """Create all tables defined in the ORM models."""
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created")

    async def drop_tables(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def health_check(self) -> bool:
        """Return True when a trivial query succeeds."""
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.error(f"Database health check failed: {e}")
            return False

    async def dispose(self) -> None:
        await self._engine.dispose()
        logger.info("Database engine disposed")

    @asynccontextmanager
    async def session_scope(self) -> AsyncIterator[AsyncSession]:
        """Yield a session and commit on success."""
        async with session_scope(self._session_factory) as session:
            yield session


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker,
) -> AsyncIterator[AsyncSession]:
    """
    Context manager for explicit transaction boundaries.

    Commits only if no exception occurs.
    Rolls back on ANY exception and re-raises it.

    Usage:
        async with session_scope(factory) as session:
            repo = CopyTradeRepository(session)
            await repo.write_log(...)
            # Commits automatically at end
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.error(f"Database transaction failed, rolling back: {e}")
            await session.rollback()
            raise


async def init_db(url: str) -> Database:
    """Create a Database and its tables."""
    db = Database(url)
    await db.create_tables()
    return db
