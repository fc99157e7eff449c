"""
Database engine creation.

Provides async SQLAlchemy engines with SQLite configuration and
pragma enforcement via connection event handling.
"""

import logging
from pathlib import Path

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from commerce_core.db.config import DatabaseConfig

logger = logging.getLogger(__name__)


def create_engine(
    url: str = DatabaseConfig.DEFAULT_URL,
    pragmas: dict[str, str | int] | None = None,
    echo: bool = False,
) -> AsyncEngine:
    """
    Create an async SQLAlchemy engine for SQLite.

    The engine uses the aiosqlite driver with a StaticPool (a single shared
    connection) and applies PRAGMAs on connect.

    Args:
        url: sqlite+aiosqlite database URL
        pragmas: PRAGMA settings to apply on each connection.
                If None, uses DatabaseConfig.SQLITE_PRAGMAS
        echo: If True, log all SQL queries

    Returns:
        Configured AsyncEngine instance
    """
    if pragmas is None:
        pragmas = DatabaseConfig.SQLITE_PRAGMAS

    db_path = DatabaseConfig.file_path_from_url(url)
    if db_path:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    engine = create_async_engine(
        url,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=echo,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        """Set SQLite PRAGMAs on each new connection."""
        cursor = dbapi_connection.cursor()
        try:
            for pragma, value in pragmas.items():
                cursor.execute(f"PRAGMA {pragma}={value}")
            logger.debug(f"Applied {len(pragmas)} PRAGMAs to connection for {url}")
        except Exception as e:
            logger.error(f"Failed to apply PRAGMAs to {url}: {e}")
            raise
        finally:
            cursor.close()

    logger.info(f"Created async engine for database: {url}")
    return engine


async def check_engine_health(engine: AsyncEngine) -> bool:
    """
    Check if a database engine can execute queries.

    Args:
        engine: AsyncEngine to check

    Returns:
        True if engine is healthy, False otherwise
    """
    try:
        async with engine.begin() as conn:
            result = await conn.execute(text("SELECT 1"))
            result.scalar()
        return True
    except Exception as e:
        logger.error(f"Engine health check failed: {e}")
        return False
