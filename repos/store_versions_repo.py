"""Repository for StoreVersion database operations."""

from uuid import UUID

from sqlalchemy import delete, desc, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from models.store_version import StoreVersion


async def get_current(
    session: AsyncSession,
    *,
    store_id: UUID,
) -> StoreVersion | None:
    """
    Get the version flagged as current for a store.

    Args:
        session: Database session
        store_id: Store ID

    Returns:
        Current StoreVersion, or None if the store has no versions
    """
    query = select(StoreVersion).where(
        StoreVersion.store_id == store_id,
        StoreVersion.is_current.is_(True),
    )

    result = await session.execute(query)
    return result.scalar_one_or_none()


async def get_for_store(
    session: AsyncSession,
    *,
    store_id: UUID,
    version_id: UUID,
) -> StoreVersion | None:
    """
    Get a version by ID, scoped to the store it must belong to.

    A version id that exists under a different store is treated as absent.

    Args:
        session: Database session
        store_id: Store the version must belong to
        version_id: Version ID to fetch

    Returns:
        StoreVersion if found under store_id, None otherwise
    """
    query = select(StoreVersion).where(
        StoreVersion.id == version_id,
        StoreVersion.store_id == store_id,
    )

    result = await session.execute(query)
    return result.scalar_one_or_none()


async def list_for_store(
    session: AsyncSession,
    *,
    store_id: UUID,
) -> list[StoreVersion]:
    """
    List all versions for a store, newest first.

    Ordered by created_at DESC; version_number DESC breaks ties between
    versions stamped within the same clock tick.
    """
    query = (
        select(StoreVersion)
        .where(StoreVersion.store_id == store_id)
        .order_by(desc(StoreVersion.created_at), desc(StoreVersion.version_number))
    )

    result = await session.execute(query)
    return list(result.scalars().all())


async def create(session: AsyncSession, version: StoreVersion) -> StoreVersion:
    """
    Insert a new version row and flush it.

    Args:
        session: Database session
        version: StoreVersion instance to create

    Returns:
        Created version
    """
    session.add(version)
    await session.flush()
    return version


async def clear_current(session: AsyncSession, *, version_id: UUID) -> int:
    """
    Flip a version's is_current flag to false.

    Only matches a row that is still current, so a concurrent writer that
    already demoted it yields 0.

    Returns:
        Number of rows updated (0 or 1)
    """
    result = await session.execute(
        update(StoreVersion)
        .where(
            StoreVersion.id == version_id,
            StoreVersion.is_current.is_(True),
        )
        .values(is_current=False)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


async def delete_by_id(session: AsyncSession, *, version_id: UUID) -> int:
    """
    Delete a single version row. Siblings are left untouched.

    Returns:
        Number of rows deleted (0 or 1)
    """
    result = await session.execute(
        delete(StoreVersion)
        .where(StoreVersion.id == version_id)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


async def delete_all_for_store(session: AsyncSession, *, store_id: UUID) -> int:
    """
    Delete every version of a store.

    Returns:
        Number of rows deleted
    """
    result = await session.execute(
        delete(StoreVersion)
        .where(StoreVersion.store_id == store_id)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount
