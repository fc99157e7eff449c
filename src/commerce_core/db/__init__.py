"""
Database engine, unit of work and ORM models for the commerce core.

Usage:
    from commerce_core.db import Database

    database = Database.from_url("sqlite+aiosqlite:///data/commerce.db")
    await database.create_all()

    async with database.unit_of_work() as session:
        ...
"""

from commerce_core.db.config import DatabaseConfig
from commerce_core.db.engine import check_engine_health, create_engine
from commerce_core.db.session import Database, UnitOfWork

__all__ = [
    "Database",
    "DatabaseConfig",
    "UnitOfWork",
    "check_engine_health",
    "create_engine",
]
