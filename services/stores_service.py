"""Service layer for store and store version business logic."""

import logging
from datetime import UTC, datetime
from uuid import UUID

from errors import NotFoundError, StoreServiceError
from models.store import Store, StoreCreate
from models.store_version import StoreVersion, StoreVersionCreate
from services.store_storage import StoreStorage

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class StoreService:
    """
    Enforces the version lifecycle on top of StoreStorage.

    Stateless: nothing about a store is kept between calls. The requester
    login is recorded as provenance on created rows and passed into log
    records; it is never checked.
    """

    def __init__(self, storage: StoreStorage) -> None:
        self.storage = storage

    async def create_store(self, fields: StoreCreate, requester_login: str) -> UUID:
        """
        Create a store together with its version 1.

        Args:
            fields: Founding attributes from the command payload
            requester_login: Login recorded as creator

        Returns:
            ID of the new store

        Raises:
            ConflictError, PersistenceError: Backend failure; nothing was created
        """
        try:
            store = await self.storage.create_store(
                fields,
                creator_login=requester_login,
                created_at=_utcnow(),
            )
        except StoreServiceError as e:
            logger.error(
                "Failed to create store",
                extra={"requester_login": requester_login, "error": str(e)},
            )
            raise

        logger.info(
            "Store created",
            extra={"store_id": str(store.id), "requester_login": requester_login},
        )
        return store.id

    async def create_store_version(
        self,
        fields: StoreVersionCreate,
        store_id: UUID,
        requester_login: str,
    ) -> StoreVersion:
        """
        Append a version and make it current.

        Args:
            fields: Attributes of the new version
            store_id: Store to version
            requester_login: Login recorded as creator of the version

        Returns:
            The new current version

        Raises:
            NotFoundError: Store has no current version
            ConflictError: Concurrent writers kept winning
            PersistenceError: Any other backend failure
        """
        try:
            version = await self.storage.append_version(
                store_id,
                fields,
                creator_login=requester_login,
                created_at=_utcnow(),
            )
        except StoreServiceError as e:
            logger.error(
                "Failed to create store version",
                extra={"store_id": str(store_id), "requester_login": requester_login, "error": str(e)},
            )
            raise

        logger.info(
            "Store version created",
            extra={
                "store_id": str(store_id),
                "version_id": str(version.id),
                "version_number": version.version_number,
                "requester_login": requester_login,
            },
        )
        return version

    async def delete_store(self, store_id: UUID, requester_login: str) -> None:
        """
        Delete a store and all of its versions.

        The existence check and the cascade delete are separate transactions.
        If another worker deletes the store in between, the cascade reports
        NotFoundError instead of succeeding twice.

        Raises:
            NotFoundError: Store does not exist
            ConflictError, PersistenceError: Backend failure; nothing was deleted
        """
        try:
            store = await self.storage.get_store(store_id)
            if store is None:
                raise NotFoundError("Store not found", details={"store_id": str(store_id)})
            await self.storage.delete_store(store_id)
        except StoreServiceError as e:
            logger.error(
                "Failed to delete store",
                extra={"store_id": str(store_id), "requester_login": requester_login, "error": str(e)},
            )
            raise

        logger.info(
            "Store deleted",
            extra={"store_id": str(store_id), "requester_login": requester_login},
        )

    async def delete_store_version(
        self,
        store_id: UUID,
        version_id: UUID,
        requester_login: str,
    ) -> None:
        """
        Delete a single, non-current version of a store.

        Raises:
            NotFoundError: Version does not exist under store_id
            InvalidOperationError: Version is the current one
            ConflictError, PersistenceError: Backend failure
        """
        try:
            version = await self.storage.get_version(store_id, version_id)
            if version is None:
                raise NotFoundError(
                    "Store version not found",
                    details={"store_id": str(store_id), "version_id": str(version_id)},
                )
            await self.storage.delete_version(store_id, version_id)
        except StoreServiceError as e:
            logger.error(
                "Failed to delete store version",
                extra={
                    "store_id": str(store_id),
                    "version_id": str(version_id),
                    "requester_login": requester_login,
                    "error": str(e),
                },
            )
            raise

        logger.info(
            "Store version deleted",
            extra={
                "store_id": str(store_id),
                "version_id": str(version_id),
                "requester_login": requester_login,
            },
        )

    async def get_store(self, store_id: UUID, requester_login: str) -> Store | None:
        """Get a store by ID; None when it does not exist."""
        try:
            return await self.storage.get_store(store_id)
        except StoreServiceError as e:
            logger.error(
                "Failed to get store",
                extra={"store_id": str(store_id), "requester_login": requester_login, "error": str(e)},
            )
            raise

    async def get_store_history(self, store_id: UUID, requester_login: str) -> list[StoreVersion]:
        """
        Get every version of a store, newest first.

        Returns:
            Versions ordered by creation time descending; empty when none exist
        """
        try:
            return await self.storage.list_versions(store_id)
        except StoreServiceError as e:
            logger.error(
                "Failed to get store version history",
                extra={"store_id": str(store_id), "requester_login": requester_login, "error": str(e)},
            )
            raise

    async def get_store_version(
        self,
        store_id: UUID,
        version_id: UUID,
        requester_login: str,
    ) -> StoreVersion | None:
        """Get one version, only if it belongs to store_id."""
        try:
            return await self.storage.get_version(store_id, version_id)
        except StoreServiceError as e:
            logger.error(
                "Failed to get store version",
                extra={
                    "store_id": str(store_id),
                    "version_id": str(version_id),
                    "requester_login": requester_login,
                    "error": str(e),
                },
            )
            raise
