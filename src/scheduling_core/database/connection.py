"""Database engine and connection pool.

PostgreSQL (asyncpg) is the production store. SQLite (aiosqlite) is accepted
for development and tests; on SQLite every transaction is opened with
``BEGIN IMMEDIATE`` so writers are serialized, which is what the booking
transaction relies on when no exclusion constraint is available.
"""

import logging
from typing import Optional

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from scheduling_core.config import get_settings

logger = logging.getLogger(__name__)

# Global engine instance
_engine: Optional[AsyncEngine] = None

# Execution option marking a connection that only reads
READ_ONLY_OPTION = "scheduling_read_only"


def get_database_url() -> str:
    """Get the database URL, converting to async format if needed."""
    settings = get_settings()
    db_url = settings.database.url

    if db_url.startswith("postgresql://"):
        db_url = db_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    elif db_url.startswith("postgresql+psycopg2://"):
        db_url = db_url.replace("postgresql+psycopg2://", "postgresql+asyncpg://", 1)

    return db_url


def is_sqlite_engine(engine: AsyncEngine) -> bool:
    """Check whether an engine talks to SQLite."""
    return engine.dialect.name == "sqlite"


def install_sqlite_hooks(engine: AsyncEngine) -> None:
    """Take over transaction control from the sqlite driver.

    The driver's own implicit BEGIN is disabled and replaced with
    ``BEGIN IMMEDIATE``, which acquires the write lock up front. Connections
    opened with the :data:`READ_ONLY_OPTION` execution option use a plain
    deferred ``BEGIN`` instead, so reads never queue behind writers.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, _connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        # Readers see the last commit while a writer holds the lock
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        if conn.get_execution_options().get(READ_ONLY_OPTION):
            conn.exec_driver_sql("BEGIN")
        else:
            conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine(database_url: Optional[str] = None) -> AsyncEngine:
    """Create and configure the SQLAlchemy async engine.

    Args:
        database_url: Override for the configured URL (used by tests)

    Returns:
        Configured async engine
    """
    settings = get_settings()
    db_url = database_url or get_database_url()

    if db_url.startswith("sqlite"):
        engine = create_async_engine(
            db_url,
            echo=settings.database.echo,
            connect_args={"timeout": settings.database.sqlite_busy_timeout},
        )
        install_sqlite_hooks(engine)
        logger.info("Database engine created: sqlite (serialized writers)")
        return engine

    pool_config = {
        "pool_size": settings.database.pool_size,
        "max_overflow": settings.database.max_overflow,
        "pool_timeout": settings.database.pool_timeout,
        "pool_recycle": settings.database.pool_recycle,
        "pool_pre_ping": True,  # Verify connections before using them
        "echo": settings.database.echo,
    }
    engine = create_async_engine(db_url, **pool_config)

    logger.info(
        f"Database engine created: pool_size={pool_config['pool_size']}, "
        f"max_overflow={pool_config['max_overflow']}"
    )
    return engine


def get_engine() -> AsyncEngine:
    """Get or create the global database engine."""
    global _engine
    if _engine is None:
        _engine = create_engine()
    return _engine


async def close_engine() -> None:
    """Close the database engine and dispose of all connections."""
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        logger.info("Database engine closed")


async def check_connection() -> bool:
    """Check if database connection is available."""
    try:
        engine = get_engine()
        async with engine.connect() as conn:
            result = await conn.execute(text("SELECT 1"))
            row = result.fetchone()
            return row is not None and row[0] == 1
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return False
