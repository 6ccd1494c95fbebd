"""SQLAlchemy async session management.

Services receive the session factory and open one session and one
transaction per operation, so commit happens before the HTTP response is
written.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from scheduling_core.database.connection import READ_ONLY_OPTION, get_engine, is_sqlite_engine

logger = logging.getLogger(__name__)

# Global session factory
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Build a session factory bound to an engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Rows are returned after commit
        autoflush=False,
        autocommit=False,
    )


async def begin_read_only(session: AsyncSession) -> None:
    """Open the session's transaction as a read.

    Must be the first use of the session. On SQLite the transaction then starts
    with a deferred BEGIN and does not wait for the write lock; other stores
    ignore the option.
    """
    await session.connection(execution_options={READ_ONLY_OPTION: True})


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the session factory (also the FastAPI dependency)."""
    global _session_factory
    if _session_factory is None:
        _session_factory = build_session_factory(get_engine())
        logger.info("Session factory created")
    return _session_factory


async def init_db() -> None:
    """Initialize database connection and verify connectivity.

    On SQLite the tables are created directly; PostgreSQL schemas are owned by
    the Alembic migrations.
    """
    from scheduling_core.database.connection import check_connection
    from scheduling_core.database.models import Base

    is_connected = await check_connection()
    if not is_connected:
        logger.warning("Database connection check failed")
        return

    engine = get_engine()
    if is_sqlite_engine(engine):
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("SQLite schema created")
    logger.info("Database connection initialized successfully")


async def close_db() -> None:
    """Close database connections."""
    global _session_factory
    from scheduling_core.database.connection import close_engine

    try:
        await close_engine()
        _session_factory = None
        logger.info("Database connections closed")
    except Exception as e:
        logger.error(f"Error closing database connections: {e}")
