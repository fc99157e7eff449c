"""
Database configuration constants.

Defines the SQLite pragmas applied to every connection.
"""


class DatabaseConfig:
    """Configuration for the SQLite database."""

    DEFAULT_URL: str = "sqlite+aiosqlite:///data/commerce.db"
    MEMORY_URL: str = "sqlite+aiosqlite:///:memory:"

    # Applied on each connection via event listeners
    SQLITE_PRAGMAS: dict[str, str | int] = {
        # Write-Ahead Logging mode (reported as "memory" for in-memory databases)
        "journal_mode": "WAL",
        "synchronous": "NORMAL",
        # Disabled by default in SQLite
        "foreign_keys": 1,
        "temp_store": "MEMORY",
        # Negative value = size in KB (64MB cache)
        "cache_size": -64000,
        # Wait up to 5 seconds when database is locked
        "busy_timeout": 5000,
    }

    ECHO_SQL: bool = False

    @classmethod
    def is_memory_url(cls, url: str) -> bool:
        return url.endswith(":memory:") or url.endswith("://")

    @classmethod
    def file_path_from_url(cls, url: str) -> str | None:
        """Return the database file path for a sqlite URL, None for memory."""
        if cls.is_memory_url(url):
            return None
        return url.split(":///", 1)[1]
