"""
Database session management and the unit of work.

A ``Database`` owns the engine, the session factory and the write lock.
Each ``UnitOfWork`` wraps one session and one transaction: everything done
through it commits together or rolls back together.
"""

import asyncio
import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from commerce_core.db.config import DatabaseConfig
from commerce_core.db.engine import check_engine_health, create_engine
from commerce_core.db.models.base import Base

logger = logging.getLogger(__name__)


class UnitOfWork:
    """
    Explicit transaction boundary around one AsyncSession.

    While active, the unit of work holds the database write lock so
    transactions on the shared SQLite connection never interleave.

    Example:
        >>> async with database.unit_of_work() as session:
        ...     session.add(order)
        ...     # Committed on exit, rolled back if the block raises
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        write_lock: asyncio.Lock | None = None,
    ):
        self._session_maker = session_maker
        self._write_lock = write_lock
        self._holds_lock = False
        self.session: AsyncSession | None = None

    @property
    def active(self) -> bool:
        return self.session is not None

    async def begin(self) -> AsyncSession:
        """
        Acquire the write lock and start a new session.

        Returns:
            AsyncSession instance

        Raises:
            RuntimeError: If this unit of work is already active
        """
        if self.session is not None:
            raise RuntimeError("Unit of work already active")

        if self._write_lock is not None:
            await self._write_lock.acquire()
            self._holds_lock = True

        self.session = self._session_maker()
        return self.session

    async def commit(self) -> None:
        """Commit the current transaction."""
        if self.session is None:
            raise RuntimeError("No active session")

        await self.session.commit()
        logger.debug("Unit of work committed")

    async def rollback(self) -> None:
        """Rollback the current transaction."""
        if self.session is None:
            raise RuntimeError("No active session")

        await self.session.rollback()
        logger.debug("Unit of work rolled back")

    async def close(self) -> None:
        """Close the session and release the write lock."""
        try:
            if self.session is not None:
                await self.session.close()
                self.session = None
        finally:
            if self._holds_lock and self._write_lock is not None:
                self._write_lock.release()
                self._holds_lock = False

    async def __aenter__(self) -> AsyncSession:
        return await self.begin()

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        try:
            if exc_type is not None:
                await self.rollback()
                logger.debug(f"Unit of work rolled back due to error: {exc_val}")
            else:
                try:
                    await self.commit()
                except Exception as e:
                    await self.rollback()
                    logger.error(f"Unit of work commit failed, rolled back: {e}")
                    raise
        finally:
            await self.close()


class Database:
    """Engine, session factory and write lock for one SQLite database."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self.session_maker = async_sessionmaker(
            bind=engine,
            class_=AsyncSession,
            autoflush=True,
            # Views are built from ORM objects after commit
            expire_on_commit=False,
        )
        self._write_lock = asyncio.Lock()

    @classmethod
    def from_url(
        cls, url: str = DatabaseConfig.DEFAULT_URL, echo: bool = False
    ) -> "Database":
        return cls(create_engine(url, echo=echo))

    def unit_of_work(self) -> UnitOfWork:
        """Create a new unit of work bound to this database."""
        return UnitOfWork(self.session_maker, self._write_lock)

    async def create_all(self) -> None:
        """Create all tables (idempotent)."""
        # Registers every model on Base.metadata
        from commerce_core.db import models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info(f"Created all tables for engine: {self.engine.url}")

    async def drop_all(self) -> None:
        """Drop all tables. Deletes every row."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        logger.warning(f"Dropped all tables for engine: {self.engine.url}")

    async def is_healthy(self) -> bool:
        return await check_engine_health(self.engine)

    async def dispose(self) -> None:
        await self.engine.dispose()
        logger.info(f"Disposed database engine: {self.engine.url}")
