"""
Schema bootstrap.

Creates the tracker database (MySQL only) and its tables if missing.
"""

import logging

from sqlalchemy import text
from sqlalchemy.engine import URL
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from whatsapp_tracker.persistence.models import TrackerBase
from whatsapp_tracker.persistence.repo import DatabaseUnavailable

logger = logging.getLogger(__name__)


async def _ensure_mysql_database(url: URL) -> None:
    server_engine = create_async_engine(url.set(database=None))
    try:
        async with server_engine.begin() as conn:
            name = conn.dialect.identifier_preparer.quote(url.database)
            await conn.execute(text(f"CREATE DATABASE IF NOT EXISTS {name}"))
    finally:
        await server_engine.dispose()


async def init_database(engine: AsyncEngine) -> None:
    """
    Create the database and tables if they do not exist yet.

    Raises:
        DatabaseUnavailable: the server could not be reached; fatal at startup
    """
    try:
        if engine.dialect.name == "mysql" and engine.url.database:
            await _ensure_mysql_database(engine.url)

        async with engine.begin() as conn:
            await conn.run_sync(TrackerBase.metadata.create_all)

    except (OperationalError, InterfaceError, OSError) as e:
        raise DatabaseUnavailable(f"Cannot initialize database: {e}") from e

    logger.info("Database initialized successfully")
