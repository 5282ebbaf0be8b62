"""
Database connection and session management.
Uses SQLAlchemy 2.0 async pattern.

Engines are built from a resolved database URL rather than at import time,
so each listener (and each test) owns its own Database.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import Engine, event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from conduit.logging_config import get_logger

logger = get_logger(__name__)


def is_sqlite(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def configure_sqlite(sync_engine: Engine) -> None:
    """
    Enforce foreign keys on every SQLite connection and let SQLAlchemy emit
    BEGIN itself, so DDL inside a migration step is transactional.
    """

    @event.listens_for(sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        dbapi_conn.isolation_level = None
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.close()

    @event.listens_for(sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_engine(database_url: str, *, echo: bool = False) -> AsyncEngine:
    """Create an async engine with dialect-specific settings."""
    if is_sqlite(database_url):
        # NullPool: every session gets its own connection
        engine = create_async_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=NullPool,
        )
        configure_sqlite(engine.sync_engine)
    else:
        engine = create_async_engine(
            database_url,
            echo=echo,
            pool_pre_ping=True,
        )
    return engine


class Database:
    """Owns an engine and its session factory."""

    def __init__(self, database_url: str, *, echo: bool = False):
        self.url = database_url
        self.engine = create_engine(database_url, echo=echo)
        self.session_maker = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Session that commits on success and rolls back on error."""
        async with self.session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def init_db(self) -> None:
        """
        Create all tables and their timestamp triggers.

        Intended for tests and throwaway databases; deployments use the
        Alembic migrations through conduit.kernel.migrations.apply().
        """
        # Import models so every table is registered on the metadata
        from conduit.kernel.models import Base

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema created")

    async def close(self) -> None:
        """Close database connections."""
        await self.engine.dispose()
