"""
Transactional storage for stores and their version log.

StoreStorage is the only writer of the ``stores`` and ``store_versions``
tables. Every mutating operation runs as one transaction on the write
session factory (SERIALIZABLE unless configured otherwise) and either
commits completely or leaves no trace.

Invariants:
    - A store and its version 1 are committed together or not at all
    - Appending flips exactly one current row and inserts previous + 1
    - Deleting a store removes its versions in the same transaction
    - Driver errors never escape; callers only see errors.StoreServiceError

Conflicts (serialization failures, deadlocks, version uniqueness
violations) re-run the whole transaction with exponential backoff until
CONFLICT_RETRY_ATTEMPTS is spent, then surface as ConflictError.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TypeVar
from uuid import UUID

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings
from db import Database
from errors import (
    ConflictError,
    InvalidOperationError,
    NotFoundError,
    PersistenceError,
    StoreServiceError,
)
from models.store import Store, StoreCreate
from models.store_version import StoreVersion, StoreVersionCreate
from repos import store_versions_repo, stores_repo

logger = logging.getLogger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected
CONFLICT_SQLSTATES = frozenset({"40001", "40P01"})

UNIQUE_VIOLATION_PATTERNS = (
    "uq_store_versions_store_version_number",
    "ux_store_versions_store_current",
    "unique constraint failed: store_versions",
)


def is_conflict(exc: SQLAlchemyError) -> bool:
    """
    Tell whether a driver error means another transaction won the race.

    Args:
        exc: Error raised by SQLAlchemy

    Returns:
        True for serialization failures, deadlocks, version uniqueness
        violations and SQLite lock contention
    """
    orig = getattr(exc, "orig", None)
    # psycopg 3 exposes sqlstate, psycopg2 pgcode
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in CONFLICT_SQLSTATES:
        return True

    error_msg_lower = str(orig if orig is not None else exc).lower()
    if isinstance(exc, IntegrityError):
        return any(pattern in error_msg_lower for pattern in UNIQUE_VIOLATION_PATTERNS)
    if isinstance(exc, OperationalError):
        return "database is locked" in error_msg_lower
    return False


class StoreStorage:
    """Atomic persistence operations over stores and store versions.

    Holds no store data between calls; every method opens its own session.

    Example:
        >>> storage = StoreStorage(database, settings)
        >>> store = await storage.create_store(fields, creator_login="jo", created_at=now)
        >>> version = await storage.append_version(store.id, changes, creator_login="jo", created_at=now)
    """

    def __init__(self, database: Database, settings: Settings) -> None:
        self.database = database
        self.max_attempts = max(1, settings.CONFLICT_RETRY_ATTEMPTS)
        self.base_delay = settings.CONFLICT_RETRY_BASE_DELAY_SECONDS
        self.max_delay = settings.CONFLICT_RETRY_MAX_DELAY_SECONDS

    async def _write(
        self,
        operation: str,
        work: Callable[[AsyncSession], Awaitable[T]],
    ) -> T:
        """Run ``work`` in one write transaction, retrying on conflict."""
        delay = self.base_delay
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await self._write_once(operation, work)
            except ConflictError as e:
                if attempt == self.max_attempts:
                    raise ConflictError(
                        f"{operation} kept conflicting with concurrent writers",
                        details={"attempts": attempt},
                    ) from e
                logger.warning(
                    "Transaction conflict, retrying",
                    extra={"operation": operation, "attempt": attempt, "delay": delay},
                )
                await asyncio.sleep(delay)
                delay = min(delay * 2, self.max_delay)

        # range() above always runs at least once
        raise AssertionError("unreachable")

    async def _write_once(
        self,
        operation: str,
        work: Callable[[AsyncSession], Awaitable[T]],
    ) -> T:
        try:
            async with self.database.write_session_factory() as session:
                async with session.begin():
                    return await work(session)
        except StoreServiceError:
            raise
        except SQLAlchemyError as e:
            if is_conflict(e):
                raise ConflictError(f"{operation} conflicted with a concurrent transaction") from e
            raise PersistenceError(f"{operation} failed: {e}") from e
        except OSError as e:
            raise PersistenceError(f"{operation} failed: {e}") from e

    async def _read(
        self,
        operation: str,
        work: Callable[[AsyncSession], Awaitable[T]],
    ) -> T:
        try:
            async with self.database.session_factory() as session:
                return await work(session)
        except (SQLAlchemyError, OSError) as e:
            raise PersistenceError(f"{operation} failed: {e}") from e

    async def create_store(
        self,
        fields: StoreCreate,
        *,
        creator_login: str,
        created_at: datetime,
    ) -> Store:
        """
        Insert a store and its version 1 in one transaction.

        Args:
            fields: Founding attributes
            creator_login: Login recorded as creator of both rows
            created_at: Timestamp stamped on both rows

        Returns:
            The created store (id populated)

        Raises:
            ConflictError: Conflicts persisted past the retry budget
            PersistenceError: Any other backend failure
        """

        async def work(session: AsyncSession) -> Store:
            store = await stores_repo.create(
                session,
                Store(
                    name=fields.name,
                    address=fields.address,
                    creator_login=creator_login,
                    owner_name=fields.owner_name,
                    opening_time=fields.opening_time,
                    closing_time=fields.closing_time,
                    created_at=created_at,
                ),
            )
            await store_versions_repo.create(
                session,
                StoreVersion(
                    store_id=store.id,
                    version_number=1,
                    creator_login=creator_login,
                    owner_name=fields.owner_name,
                    opening_time=fields.opening_time,
                    closing_time=fields.closing_time,
                    created_at=created_at,
                    is_current=True,
                ),
            )
            return store

        return await self._write("create_store", work)

    async def append_version(
        self,
        store_id: UUID,
        fields: StoreVersionCreate,
        *,
        creator_login: str,
        created_at: datetime,
    ) -> StoreVersion:
        """
        Make a new version current.

        1. Read the current version (NotFoundError if there is none)
        2. Flip it to is_current = false
        3. Insert version_number + 1 with is_current = true
        4. Commit

        Raises:
            NotFoundError: Store has no current version
            ConflictError: Conflicts persisted past the retry budget
            PersistenceError: Any other backend failure
        """

        async def work(session: AsyncSession) -> StoreVersion:
            current = await store_versions_repo.get_current(session, store_id=store_id)
            if current is None:
                raise NotFoundError(
                    "Store has no current version",
                    details={"store_id": str(store_id)},
                )

            demoted = await store_versions_repo.clear_current(session, version_id=current.id)
            if demoted != 1:
                raise ConflictError("Current version changed underneath the transaction")

            return await store_versions_repo.create(
                session,
                StoreVersion(
                    store_id=store_id,
                    version_number=current.version_number + 1,
                    creator_login=creator_login,
                    owner_name=fields.owner_name,
                    opening_time=fields.opening_time,
                    closing_time=fields.closing_time,
                    created_at=created_at,
                    is_current=True,
                ),
            )

        return await self._write("append_version", work)

    async def delete_store(self, store_id: UUID) -> None:
        """
        Delete all versions of a store, then the store, in one transaction.

        Raises:
            NotFoundError: Store row was already gone; nothing is deleted
            ConflictError: Conflicts persisted past the retry budget
            PersistenceError: Any other backend failure
        """

        async def work(session: AsyncSession) -> None:
            versions_deleted = await store_versions_repo.delete_all_for_store(
                session, store_id=store_id
            )
            if await stores_repo.delete_by_id(session, store_id=store_id) != 1:
                raise NotFoundError("Store not found", details={"store_id": str(store_id)})
            logger.debug(
                "Deleted store",
                extra={"store_id": str(store_id), "versions_deleted": versions_deleted},
            )

        await self._write("delete_store", work)

    async def delete_version(self, store_id: UUID, version_id: UUID) -> None:
        """
        Delete one version row without touching its siblings.

        The current version cannot be deleted; delete the store instead.

        Raises:
            NotFoundError: Version does not exist under store_id
            InvalidOperationError: Version is the current one
            ConflictError: Conflicts persisted past the retry budget
            PersistenceError: Any other backend failure
        """

        async def work(session: AsyncSession) -> None:
            version = await store_versions_repo.get_for_store(
                session, store_id=store_id, version_id=version_id
            )
            if version is None:
                raise NotFoundError(
                    "Store version not found",
                    details={"store_id": str(store_id), "version_id": str(version_id)},
                )
            if version.is_current:
                raise InvalidOperationError(
                    "Cannot delete the current version of a store",
                    details={"store_id": str(store_id), "version_id": str(version_id)},
                )
            await store_versions_repo.delete_by_id(session, version_id=version_id)

        await self._write("delete_version", work)

    async def get_store(self, store_id: UUID) -> Store | None:
        async def work(session: AsyncSession) -> Store | None:
            return await stores_repo.get_by_id(session, store_id=store_id)

        return await self._read("get_store", work)

    async def list_versions(self, store_id: UUID) -> list[StoreVersion]:
        async def work(session: AsyncSession) -> list[StoreVersion]:
            return await store_versions_repo.list_for_store(session, store_id=store_id)

        return await self._read("list_versions", work)

    async def get_version(self, store_id: UUID, version_id: UUID) -> StoreVersion | None:
        async def work(session: AsyncSession) -> StoreVersion | None:
            return await store_versions_repo.get_for_store(
                session, store_id=store_id, version_id=version_id
            )

        return await self._read("get_version", work)
