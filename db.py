"""Database configuration and session management."""

import asyncio
import logging

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from config import Settings

logger = logging.getLogger(__name__)

# Base class for declarative models
Base = declarative_base()


class Database:
    """
    Owns the async engine and the two session factories built from it.

    ``session_factory`` is for reads. ``write_session_factory`` is bound to
    the same connection pool with the configured write isolation level
    (SERIALIZABLE by default), so every mutating transaction runs under it.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

        engine_kwargs = {"echo": settings.DB_ECHO}
        if make_url(settings.DATABASE_URL).get_backend_name() != "sqlite":
            engine_kwargs.update(
                pool_size=settings.DB_POOL_SIZE,
                max_overflow=settings.DB_MAX_OVERFLOW,
                pool_recycle=settings.DB_POOL_RECYCLE_SECONDS,
                pool_pre_ping=True,
            )

        self.engine = create_async_engine(settings.DATABASE_URL, **engine_kwargs)
        self.write_engine = self.engine.execution_options(
            isolation_level=settings.DB_WRITE_ISOLATION_LEVEL,
        )

        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        self.write_session_factory = async_sessionmaker(
            self.write_engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    async def ping(self) -> None:
        """Run a trivial query; raises if the database is unreachable."""
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def connect_with_retry(self) -> None:
        """
        Wait for the database to accept connections.

        Tries DB_CONNECT_RETRIES times, sleeping DB_CONNECT_RETRY_DELAY_SECONDS
        between attempts.

        Raises:
            SQLAlchemyError: The last connection error once retries run out
        """
        attempts = max(1, self.settings.DB_CONNECT_RETRIES)
        for attempt in range(1, attempts + 1):
            try:
                await self.ping()
            except (SQLAlchemyError, OSError) as e:
                if attempt == attempts:
                    raise
                logger.error(
                    "Failed to connect to db. Retrying",
                    extra={"attempt": attempt, "error": str(e)},
                )
                await asyncio.sleep(self.settings.DB_CONNECT_RETRY_DELAY_SECONDS)
            else:
                logger.info("Successfully connected to database")
                return

    async def init_db(self) -> None:
        """
        Initialize database (create tables).
        This should be called on application startup.
        """
        # Importing models registers the tables on Base.metadata
        import models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_db(self) -> None:
        """Drop every table known to the metadata."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def close(self) -> None:
        """
        Close database connections.
        This should be called on application shutdown.
        """
        await self.engine.dispose()
