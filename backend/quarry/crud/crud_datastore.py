"""CRUD operations for datastores."""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from quarry.core.shared_models import DatastoreStatus
from quarry.models.datastore import Datastore


class CRUDDatastore:
    """CRUD operations for datastores."""

    def __init__(self):
        """Initialize the CRUD object."""
        self.model = Datastore

    async def get(self, db: AsyncSession, id: UUID) -> Optional[Datastore]:
        """Get datastore by ID.

        Args:
            db: Database session
            id: Datastore ID

        Returns:
            Datastore if found, None otherwise
        """
        result = await db.execute(
            select(self.model).where(self.model.id == id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def update(
        self,
        db: AsyncSession,
        *,
        db_obj: Datastore,
        obj_in: Dict[str, Any],
    ) -> Datastore:
        """Update a datastore.

        Args:
            db: Database session
            db_obj: Datastore to update
            obj_in: Column values to set

        Returns:
            Updated datastore
        """
        for field, value in obj_in.items():
            setattr(db_obj, field, value)
        db.add(db_obj)

        await db.commit()
        await db.refresh(db_obj)

        return db_obj

    async def mark_status(
        self,
        db: AsyncSession,
        *,
        id: UUID,
        status: DatastoreStatus,
    ) -> None:
        """Set the lifecycle status of a datastore."""
        await db.execute(update(self.model).where(self.model.id == id).values(status=status.value))
        await db.commit()

    async def remove(self, db: AsyncSession, *, id: UUID) -> int:
        """Delete the datastore row. The caller owns the transaction.

        Returns:
            Number of rows deleted
        """
        result = await db.execute(
            delete(self.model)
            .where(self.model.id == id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def get_existing_ids(self, db: AsyncSession, ids: Iterable[UUID]) -> Set[UUID]:
        """Return the subset of ids that still have a datastore row."""
        ids = list(ids)
        if not ids:
            return set()
        result = await db.execute(select(self.model.id).where(self.model.id.in_(ids)))
        return set(result.scalars().all())

    async def get_stale_deleting(self, db: AsyncSession, *, before: datetime) -> List[Datastore]:
        """Get datastores marked DELETING whose last modification is older than `before`."""
        result = await db.execute(
            select(self.model).where(
                self.model.status == DatastoreStatus.DELETING.value,
                self.model.modified_at < before,
            )
        )
        return list(result.scalars().all())


# Singleton instance
datastore = CRUDDatastore()
