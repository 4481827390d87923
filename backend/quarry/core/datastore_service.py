"""Datastore reads and updates: filtered, paginated datasource listings."""

from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from quarry import crud, schemas
from quarry.api.context import ApiContext
from quarry.core.exceptions import NotFoundException, UnauthorizedException
from quarry.core.shared_models import DatastoreVisibility
from quarry.models.datastore import Datastore


class DatastoreService:
    """Read-only listing plus datastore updates.

    Manages datastore reads across the SQL datamodel; deletion is handled by
    the deletion coordinator.
    """

    async def get_owned(self, db: AsyncSession, datastore_id: UUID, ctx: ApiContext) -> Datastore:
        """Load a datastore and check the caller's organization owns it.

        Raises:
            NotFoundException: If the datastore does not exist
            UnauthorizedException: If it belongs to another organization
        """
        db_datastore = await crud.datastore.get(db, id=datastore_id)
        if db_datastore is None:
            raise NotFoundException(f"Datastore {datastore_id} not found")

        if db_datastore.organization_id != ctx.organization.id:
            ctx.logger.warning(
                f"Organization {ctx.organization.id} tried to access datastore {datastore_id}"
            )
            raise UnauthorizedException(f"Datastore {datastore_id} belongs to another organization")

        return db_datastore

    async def list_datasources(
        self,
        db: AsyncSession,
        datastore_id: UUID,
        ctx: ApiContext,
        filters: schemas.DatasourceFilters,
        pagination: schemas.Pagination,
    ) -> schemas.DatasourceListResponse:
        """List one page of a datastore's datasources.

        total_count uses the same filters as the page and ignores pagination,
        so walking offsets 0, 1, 2, ... visits every matching row exactly once.

        Args:
            db: Database session
            datastore_id: Datastore to list
            ctx: API context
            filters: Listing filters
            pagination: Page selection

        Returns:
            Page of datasource summaries and the filtered total
        """
        await self.get_owned(db, datastore_id, ctx)

        rows = await crud.datasource.list_for_datastore(
            db, datastore_id=datastore_id, filters=filters, pagination=pagination
        )
        total_count = await crud.datasource.count_for_datastore(
            db, datastore_id=datastore_id, filters=filters
        )

        items = [
            schemas.DatasourceSummary.model_validate(
                {
                    **schemas.Datasource.model_validate(db_datasource).model_dump(),
                    "children_count": children_count,
                    "has_active_children": has_active_children,
                }
            )
            for db_datasource, children_count, has_active_children in rows
        ]

        return schemas.DatasourceListResponse(items=items, total_count=total_count)

    async def get_datastore(
        self,
        db: AsyncSession,
        datastore_id: UUID,
        ctx: ApiContext,
        filters: schemas.DatasourceFilters,
        pagination: schemas.Pagination,
    ) -> schemas.DatastoreWithDatasources:
        """Get a datastore with one page of its datasources."""
        db_datastore = await self.get_owned(db, datastore_id, ctx)
        datasources = await self.list_datasources(db, datastore_id, ctx, filters, pagination)

        return schemas.DatastoreWithDatasources(
            **schemas.Datastore.model_validate(db_datastore).model_dump(),
            datasources=datasources,
        )

    async def update_datastore(
        self,
        db: AsyncSession,
        datastore_id: UUID,
        datastore_in: schemas.DatastoreUpdate,
        ctx: ApiContext,
    ) -> schemas.Datastore:
        """Update a datastore's name, description or visibility.

        The owning organization cannot be changed.
        """
        db_datastore = await self.get_owned(db, datastore_id, ctx)

        updates = datastore_in.model_dump(exclude_unset=True, exclude={"is_public"})
        if updates.get("name") is None:
            updates.pop("name", None)
        if datastore_in.is_public is not None:
            updates["visibility"] = (
                DatastoreVisibility.PUBLIC.value
                if datastore_in.is_public
                else DatastoreVisibility.PRIVATE.value
            )

        db_datastore = await crud.datastore.update(db, db_obj=db_datastore, obj_in=updates)
        ctx.logger.with_context(datastore_id=str(datastore_id)).info(
            f"Updated datastore fields: {', '.join(sorted(updates)) or 'none'}"
        )
        return schemas.Datastore.model_validate(db_datastore)


# Singleton instance
datastore_service = DatastoreService()
