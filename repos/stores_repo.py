"""Repository for Store database operations."""

from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from models.store import Store


async def get_by_id(
    session: AsyncSession,
    *,
    store_id: UUID,
) -> Store | None:
    """
    Get a store by ID.

    Args:
        session: Database session
        store_id: Store ID to fetch

    Returns:
        Store if found, None otherwise
    """
    query = select(Store).where(Store.id == store_id)

    result = await session.execute(query)
    return result.scalar_one_or_none()


async def create(session: AsyncSession, store: Store) -> Store:
    """
    Create a new store.

    Flushes so the generated id is available to the caller inside the
    same transaction.

    Args:
        session: Database session
        store: Store instance to create

    Returns:
        Created store
    """
    session.add(store)
    await session.flush()
    return store


async def delete_by_id(session: AsyncSession, *, store_id: UUID) -> int:
    """
    Delete a store row. Versions must already be gone.

    Returns:
        Number of rows deleted (0 or 1)
    """
    result = await session.execute(
        delete(Store)
        .where(Store.id == store_id)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount
