"""Pytest configuration and fixtures."""

import asyncio
import os
import sys

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from config import Settings
from db import Database
from messaging.dispatcher import CommandDispatcher
from models.store import StoreCreate
from models.store_version import StoreVersion, StoreVersionCreate
from services.store_storage import StoreStorage
from services.stores_service import StoreService

# Fix Windows asyncio event loop
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Point at Postgres to run the suite against the real backend
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings for a throwaway database with the consumer disabled."""
    database_url = TEST_DATABASE_URL or f"sqlite+aiosqlite:///{tmp_path / 'stores.db'}"
    return Settings(
        _env_file=None,
        DATABASE_URL=database_url,
        CONSUMER_ENABLED=False,
        DB_CONNECT_RETRIES=1,
        CONFLICT_RETRY_ATTEMPTS=20,
        CONFLICT_RETRY_BASE_DELAY_SECONDS=0.001,
        CONFLICT_RETRY_MAX_DELAY_SECONDS=0.01,
    )


@pytest_asyncio.fixture
async def database(settings):
    """Create the schema for one test and drop it afterwards."""
    database = Database(settings)
    await database.init_db()
    yield database
    await database.drop_db()
    await database.close()


@pytest_asyncio.fixture
async def db_session(database):
    """Create a test database session."""
    async with database.session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def storage(database, settings) -> StoreStorage:
    return StoreStorage(database, settings)


@pytest.fixture
def service(storage) -> StoreService:
    return StoreService(storage)


@pytest.fixture
def dispatcher(service, settings) -> CommandDispatcher:
    return CommandDispatcher(service, settings)


@pytest.fixture
def acme_fields() -> StoreCreate:
    return StoreCreate(
        name="Acme",
        address="1 Main St",
        ownerName="Jo",
        openingTime="08:00",
        closingTime="20:00",
    )


@pytest.fixture
def later_hours() -> StoreVersionCreate:
    return StoreVersionCreate(
        storeOwnerName="Jo",
        openingTime="09:00",
        closingTime="21:00",
    )


@pytest.fixture
def count_rows(database):
    """Count rows of a table through a fresh session."""

    async def _count_rows(model) -> int:
        async with database.session_factory() as session:
            result = await session.execute(select(func.count()).select_from(model))
            return result.scalar_one()

    return _count_rows


@pytest.fixture
def count_current_versions(database):
    """Count versions flagged is_current for one store."""

    async def _count_current_versions(store_id) -> int:
        async with database.session_factory() as session:
            result = await session.execute(
                select(func.count())
                .select_from(StoreVersion)
                .where(StoreVersion.store_id == store_id, StoreVersion.is_current.is_(True))
            )
            return result.scalar_one()

    return _count_current_versions
