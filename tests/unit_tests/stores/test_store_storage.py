"""Unit tests for the transactional storage layer.

These tests verify atomicity, error translation and the conflict retry.
"""

from datetime import UTC, datetime
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError

from errors import ConflictError, InvalidOperationError, NotFoundError, PersistenceError
from models.store import Store
from models.store_version import StoreVersion
from repos import store_versions_repo
from services.store_storage import StoreStorage, is_conflict


class FakeDriverError(Exception):
    """Stand-in for a DBAPI error carrying a SQLSTATE."""

    def __init__(self, message: str, sqlstate: str | None = None) -> None:
        super().__init__(message)
        self.sqlstate = sqlstate


def now() -> datetime:
    return datetime.now(UTC)


def test_is_conflict_serialization_failure():
    """Test: SQLSTATE 40001 and 40P01 are conflicts."""
    serialization = OperationalError("COMMIT", {}, FakeDriverError("could not serialize", "40001"))
    deadlock = OperationalError("UPDATE", {}, FakeDriverError("deadlock detected", "40P01"))

    assert is_conflict(serialization)
    assert is_conflict(deadlock)


def test_is_conflict_version_unique_violation():
    """Test: Unique violations on store_versions are conflicts."""
    pg_style = IntegrityError(
        "INSERT",
        {},
        FakeDriverError(
            'duplicate key value violates unique constraint "uq_store_versions_store_version_number"',
            "23505",
        ),
    )
    sqlite_style = IntegrityError(
        "INSERT",
        {},
        FakeDriverError("UNIQUE constraint failed: store_versions.store_id, store_versions.version_number"),
    )

    assert is_conflict(pg_style)
    assert is_conflict(sqlite_style)


def test_is_conflict_sqlite_lock():
    """Test: SQLite lock contention is a conflict."""
    locked = OperationalError("UPDATE", {}, FakeDriverError("database is locked"))

    assert is_conflict(locked)


def test_is_conflict_other_errors():
    """Test: Other driver errors are not conflicts."""
    not_null = IntegrityError("INSERT", {}, FakeDriverError("NOT NULL constraint failed: stores.name", "23502"))
    connection = OperationalError("SELECT", {}, FakeDriverError("connection refused", "08006"))
    syntax = ProgrammingError("SELEC", {}, FakeDriverError("syntax error", "42601"))

    assert not is_conflict(not_null)
    assert not is_conflict(connection)
    assert not is_conflict(syntax)


@pytest.mark.asyncio
async def test_create_store_inserts_version_one(storage: StoreStorage, acme_fields):
    """Test: Creating a store also creates version 1 as current."""
    store = await storage.create_store(acme_fields, creator_login="jo", created_at=now())

    versions = await storage.list_versions(store.id)
    assert len(versions) == 1
    assert versions[0].version_number == 1
    assert versions[0].is_current is True
    assert versions[0].owner_name == "Jo"
    assert versions[0].creator_login == "jo"


@pytest.mark.asyncio
async def test_create_store_is_atomic(storage: StoreStorage, acme_fields, count_rows, monkeypatch):
    """Test: A failure inserting version 1 leaves no store behind."""

    async def failing_create(session, version):
        raise OperationalError("INSERT", {}, FakeDriverError("server closed the connection", "08006"))

    monkeypatch.setattr(store_versions_repo, "create", failing_create)

    with pytest.raises(PersistenceError):
        await storage.create_store(acme_fields, creator_login="jo", created_at=now())

    assert await count_rows(Store) == 0
    assert await count_rows(StoreVersion) == 0


@pytest.mark.asyncio
async def test_append_version_flips_current(storage: StoreStorage, acme_fields, later_hours):
    """Test: Appending demotes the old current version and numbers the new one."""
    store = await storage.create_store(acme_fields, creator_login="jo", created_at=now())

    version = await storage.append_version(store.id, later_hours, creator_login="kim", created_at=now())

    assert version.version_number == 2
    assert version.is_current is True
    assert version.creator_login == "kim"
    versions = {v.version_number: v for v in await storage.list_versions(store.id)}
    assert versions[1].is_current is False
    assert versions[2].is_current is True
    assert versions[2].opening_time == "09:00"


@pytest.mark.asyncio
async def test_append_version_unknown_store(storage: StoreStorage, later_hours, count_rows):
    """Test: Appending to a store without a current version is NotFound."""
    with pytest.raises(NotFoundError):
        await storage.append_version(uuid4(), later_hours, creator_login="jo", created_at=now())

    assert await count_rows(StoreVersion) == 0


@pytest.mark.asyncio
async def test_append_version_conflict_leaves_state_unchanged(
    database, settings, acme_fields, later_hours, count_current_versions, monkeypatch
):
    """Test: An append that keeps conflicting rolls back the demotion and inserts nothing."""
    storage = StoreStorage(database, settings.model_copy(update={"CONFLICT_RETRY_ATTEMPTS": 2}))
    store = await storage.create_store(acme_fields, creator_login="jo", created_at=now())
    calls = []

    async def conflicting_create(session, version):
        calls.append(version.version_number)
        raise OperationalError("INSERT", {}, FakeDriverError("could not serialize access", "40001"))

    monkeypatch.setattr(store_versions_repo, "create", conflicting_create)

    with pytest.raises(ConflictError):
        await storage.append_version(store.id, later_hours, creator_login="jo", created_at=now())

    assert calls == [2, 2]
    versions = await storage.list_versions(store.id)
    assert len(versions) == 1
    assert versions[0].version_number == 1
    assert versions[0].is_current is True
    assert await count_current_versions(store.id) == 1


@pytest.mark.asyncio
async def test_append_version_retries_then_succeeds(storage: StoreStorage, acme_fields, later_hours, monkeypatch):
    """Test: A single conflict is retried transparently."""
    store = await storage.create_store(acme_fields, creator_login="jo", created_at=now())
    real_create = store_versions_repo.create
    attempts = []

    async def flaky_create(session, version):
        attempts.append(version.version_number)
        if len(attempts) == 1:
            raise OperationalError("INSERT", {}, FakeDriverError("database is locked"))
        return await real_create(session, version)

    monkeypatch.setattr(store_versions_repo, "create", flaky_create)

    version = await storage.append_version(store.id, later_hours, creator_login="jo", created_at=now())

    assert attempts == [2, 2]
    assert version.version_number == 2


@pytest.mark.asyncio
async def test_delete_store_removes_versions(storage: StoreStorage, acme_fields, later_hours, count_rows):
    """Test: Deleting a store deletes all of its versions."""
    store = await storage.create_store(acme_fields, creator_login="jo", created_at=now())
    await storage.append_version(store.id, later_hours, creator_login="jo", created_at=now())

    await storage.delete_store(store.id)

    assert await storage.get_store(store.id) is None
    assert await storage.list_versions(store.id) == []
    assert await count_rows(StoreVersion) == 0


@pytest.mark.asyncio
async def test_delete_store_missing_rolls_back(storage: StoreStorage, acme_fields, count_rows):
    """Test: Deleting an absent store is NotFound and touches nothing else."""
    await storage.create_store(acme_fields, creator_login="jo", created_at=now())

    with pytest.raises(NotFoundError):
        await storage.delete_store(uuid4())

    assert await count_rows(Store) == 1
    assert await count_rows(StoreVersion) == 1


@pytest.mark.asyncio
async def test_delete_version_refuses_current(storage: StoreStorage, acme_fields, later_hours):
    """Test: The current version cannot be deleted."""
    store = await storage.create_store(acme_fields, creator_login="jo", created_at=now())
    current = await storage.append_version(store.id, later_hours, creator_login="jo", created_at=now())

    with pytest.raises(InvalidOperationError):
        await storage.delete_version(store.id, current.id)

    assert len(await storage.list_versions(store.id)) == 2


@pytest.mark.asyncio
async def test_delete_version_wrong_store(storage: StoreStorage, acme_fields, later_hours):
    """Test: A version cannot be deleted through another store's id."""
    store_a = await storage.create_store(acme_fields, creator_login="jo", created_at=now())
    store_b = await storage.create_store(acme_fields, creator_login="jo", created_at=now())
    await storage.append_version(store_a.id, later_hours, creator_login="jo", created_at=now())
    old_a = next(v for v in await storage.list_versions(store_a.id) if not v.is_current)

    with pytest.raises(NotFoundError):
        await storage.delete_version(store_b.id, old_a.id)

    assert len(await storage.list_versions(store_a.id)) == 2


@pytest.mark.asyncio
async def test_reads_wrap_backend_failures(storage: StoreStorage, database):
    """Test: A read against a broken backend is a PersistenceError."""
    await database.drop_db()

    with pytest.raises(PersistenceError):
        await storage.get_store(uuid4())

    # Recreate so the fixture teardown can drop cleanly
    await database.init_db()
