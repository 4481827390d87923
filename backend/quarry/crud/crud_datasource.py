"""CRUD operations for datasources."""

from datetime import datetime
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import and_, delete, exists, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased, selectinload
from sqlalchemy.sql import ColumnElement

from quarry.core.shared_models import ACTIVE_DATASOURCE_STATUSES, DatasourceStatus
from quarry.models.datasource import Datasource
from quarry.schemas.datasource import DatasourceFilters, Pagination


class CRUDDatasource:
    """CRUD operations for datasources.

    Organization checks are done by the services before calling these methods.
    """

    def __init__(self):
        """Initialize the CRUD object."""
        self.model = Datasource

    async def get(self, db: AsyncSession, id: UUID) -> Optional[Datasource]:
        """Get datasource by ID.

        Args:
            db: Database session
            id: Datasource ID

        Returns:
            Datasource if found, None otherwise
        """
        result = await db.execute(
            select(self.model).where(self.model.id == id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_with_datastore(self, db: AsyncSession, id: UUID) -> Optional[Datasource]:
        """Get datasource by ID with its datastore loaded."""
        result = await db.execute(
            select(self.model)
            .where(self.model.id == id)
            .options(selectinload(self.model.datastore))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def update_status(
        self,
        db: AsyncSession,
        *,
        id: UUID,
        status: DatasourceStatus,
        last_synch: Optional[datetime] = None,
        error_message: Optional[str] = None,
    ) -> int:
        """Overwrite the status of a datasource.

        The write does not look at the current status.

        Args:
            db: Database session
            id: Datasource ID
            status: New status
            last_synch: Set when given
            error_message: Stored for ERROR, cleared otherwise

        Returns:
            Number of rows updated, 0 when the datasource no longer exists
        """
        values = {
            "status": status.value,
            "error_message": error_message if status == DatasourceStatus.ERROR else None,
        }
        if last_synch is not None:
            values["last_synch"] = last_synch

        result = await db.execute(update(self.model).where(self.model.id == id).values(**values))
        await db.commit()
        return result.rowcount

    def _filter_clauses(
        self, datastore_id: UUID, filters: DatasourceFilters
    ) -> List[ColumnElement]:
        """Build the predicate shared by the page query and the count query."""
        clauses: List[ColumnElement] = [self.model.datastore_id == datastore_id]

        if filters.group_id is None:
            clauses.append(self.model.group_id.is_(None))
        else:
            clauses.append(self.model.group_id == filters.group_id)

        if filters.search:
            clauses.append(self.model.name.contains(filters.search, autoescape=True))
        if filters.status:
            clauses.append(self.model.status == filters.status.value)
        if filters.type:
            clauses.append(self.model.type == filters.type.value)

        return clauses

    async def list_for_datastore(
        self,
        db: AsyncSession,
        *,
        datastore_id: UUID,
        filters: DatasourceFilters,
        pagination: Pagination,
    ) -> List[Tuple[Datasource, int, bool]]:
        """List one page of a datastore's datasources.

        Each row comes with its direct children count and whether at least one
        direct child is pending or running. The latter is an EXISTS check, so
        the database stops at the first matching child.

        Args:
            db: Database session
            datastore_id: Datastore ID
            filters: Listing filters
            pagination: Page selection

        Returns:
            List of (datasource, children_count, has_active_children)
        """
        child = aliased(Datasource)

        children_count = (
            select(func.count(child.id))
            .where(child.group_id == self.model.id)
            .correlate(self.model)
            .scalar_subquery()
        )
        has_active_children = (
            exists()
            .where(
                and_(
                    child.group_id == self.model.id,
                    child.status.in_([s.value for s in ACTIVE_DATASOURCE_STATUSES]),
                )
            )
            .correlate(self.model)
        )

        query = (
            select(
                self.model,
                children_count.label("children_count"),
                has_active_children.label("has_active_children"),
            )
            .where(*self._filter_clauses(datastore_id, filters))
            .order_by(self.model.last_synch.desc().nulls_last(), self.model.id)
            .offset(pagination.offset * pagination.limit)
            .limit(pagination.limit)
        )

        result = await db.execute(query)
        return [(row[0], int(row[1] or 0), bool(row[2])) for row in result.all()]

    async def count_for_datastore(
        self,
        db: AsyncSession,
        *,
        datastore_id: UUID,
        filters: DatasourceFilters,
    ) -> int:
        """Count the datasources matching the same filters, ignoring pagination."""
        result = await db.execute(
            select(func.count(self.model.id)).where(*self._filter_clauses(datastore_id, filters))
        )
        return int(result.scalar_one())

    async def remove_by_datastore(self, db: AsyncSession, *, datastore_id: UUID) -> int:
        """Delete every datasource of a datastore, descendants included.

        Descendants are collected with a recursive CTE over group_id. The caller
        owns the transaction: nothing is committed here.

        Args:
            db: Database session
            datastore_id: Datastore ID

        Returns:
            Number of rows deleted
        """
        tree = (
            select(self.model.id)
            .where(self.model.datastore_id == datastore_id)
            .cte("datasource_tree", recursive=True)
        )
        tree = tree.union(select(self.model.id).where(self.model.group_id == tree.c.id))

        result = await db.execute(
            delete(self.model)
            .where(self.model.id.in_(select(tree.c.id)))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def get_usage_totals(
        self, db: AsyncSession, *, organization_id: UUID
    ) -> Tuple[int, int, int]:
        """Sum stored bytes and tokens and count datasources of an organization.

        Returns:
            Tuple of (storage_bytes, stored_tokens, datasources)
        """
        result = await db.execute(
            select(
                func.coalesce(func.sum(self.model.size_bytes), 0),
                func.coalesce(func.sum(self.model.nb_tokens), 0),
                func.count(self.model.id),
            ).where(self.model.organization_id == organization_id)
        )
        storage_bytes, stored_tokens, count = result.one()
        return int(storage_bytes), int(stored_tokens), int(count)


# Singleton instance
datasource = CRUDDatasource()
