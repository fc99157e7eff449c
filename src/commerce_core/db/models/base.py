"""
Base class and column types shared by all ORM models.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import String
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Uses SQLAlchemy 2.0 declarative base pattern. All models inherit from this
    class to share one metadata object.
    """

    pass


class DecimalText(TypeDecorator):
    """Decimal stored as text so SQLite never rounds it through a float."""

    impl = String(40)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(Decimal(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(value)


def utcnow() -> datetime:
    return datetime.now(UTC)
