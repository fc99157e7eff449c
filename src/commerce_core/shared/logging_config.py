"""Process-wide logging setup."""
import logging
import sys

# Libraries that log every statement or request at INFO
NOISY_LOGGERS = ("aiosqlite", "sqlalchemy.engine", "httpx", "httpcore", "asyncio")


def configure_structured_logging(level: str = "INFO", sql_echo: bool = False):
    """
    Send log records to stdout as bare messages.

    Business events are already JSON (see ``StructuredLogger``); plain
    ``logging`` records from the rest of the code pass through unchanged.
    """
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(message)s",
        stream=sys.stdout,
    )
    logging.getLogger("commerce_core").setLevel(getattr(logging, level.upper()))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    if sql_echo:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)
