"""Async SQLAlchemy engine and session helpers.

Provides a configured async engine, sessionmaker and a helper for
initializing the database tables.
"""

from config.config import settings
from core.logging import logger
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

Base = declarative_base()


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores ON DELETE clauses unless enabled per connection.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine for `url`.

    SQLite databases get a ``NullPool`` so connections never outlive the
    event loop that opened them, and foreign key enforcement on every
    connection. Server databases keep a bounded pool.
    """
    if url.startswith("sqlite"):
        sqlite_engine = create_async_engine(url, echo=echo, poolclass=NullPool)
        event.listen(
            sqlite_engine.sync_engine, "connect", _enable_sqlite_foreign_keys
        )
        return sqlite_engine
    return create_async_engine(url, echo=echo, pool_size=5, max_overflow=10)


def build_sessionmaker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.DATABASE_URL_ASYNC, echo=settings.DATABASE_ECHO)

AsyncSessionLocal = build_sessionmaker(engine)


async def initialize_database(bind: AsyncEngine = engine):
    """Create all metadata tables defined on the declarative `Base`.

    Raises:
        Exception: Re-raises any exception encountered while initializing.
    """

    # NOTE: models register their tables on Base when imported.
    import models.auth  # noqa: F401

    logger.info("Initializing database tables")
    async with bind.begin() as conn:
        try:
            await conn.run_sync(Base.metadata.create_all)
            logger.info("Database initialization complete")
        except Exception:
            logger.exception("Database initialization failed")
            raise
