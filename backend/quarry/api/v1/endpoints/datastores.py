"""API endpoints for datastores."""

from uuid import UUID

from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from quarry import schemas
from quarry.api import deps
from quarry.api.context import ApiContext
from quarry.core.datastore_service import datastore_service
from quarry.core.deletion_coordinator import deletion_coordinator

router = APIRouter()


@router.get("/{datastore_id}", response_model=schemas.DatastoreWithDatasources)
async def get(
    datastore_id: UUID = Path(..., description="The datastore to retrieve"),
    filters: schemas.DatasourceFilters = Depends(deps.get_filters),
    pagination: schemas.Pagination = Depends(deps.get_pagination),
    db: AsyncSession = Depends(deps.get_db),
    ctx: ApiContext = Depends(deps.get_context),
) -> schemas.DatastoreWithDatasources:
    """Get a datastore with one page of its datasources.

    Without a group_id only top-level datasources are listed. Datasources are
    ordered by most recent synchronization first, never-synchronized last.
    """
    return await datastore_service.get_datastore(db, datastore_id, ctx, filters, pagination)


@router.get("/{datastore_id}/datasources", response_model=schemas.DatasourceListResponse)
async def list_datasources(
    datastore_id: UUID = Path(...),
    filters: schemas.DatasourceFilters = Depends(deps.get_filters),
    pagination: schemas.Pagination = Depends(deps.get_pagination),
    db: AsyncSession = Depends(deps.get_db),
    ctx: ApiContext = Depends(deps.get_context),
) -> schemas.DatasourceListResponse:
    """List one page of a datastore's datasources with the filtered total."""
    return await datastore_service.list_datasources(db, datastore_id, ctx, filters, pagination)


@router.patch("/{datastore_id}", response_model=schemas.Datastore)
async def update(
    datastore_in: schemas.DatastoreUpdate,
    datastore_id: UUID = Path(...),
    db: AsyncSession = Depends(deps.get_db),
    ctx: ApiContext = Depends(deps.get_context),
) -> schemas.Datastore:
    """Update a datastore's name, description or visibility."""
    return await datastore_service.update_datastore(db, datastore_id, datastore_in, ctx)


@router.delete("/{datastore_id}", response_model=schemas.Datastore)
async def delete(
    datastore_id: UUID = Path(..., description="The datastore to delete"),
    db: AsyncSession = Depends(deps.get_db),
    ctx: ApiContext = Depends(deps.get_context),
) -> schemas.Datastore:
    """Delete a datastore with all its datasources and stored files.

    Database rows are removed in one transaction that commits only once the
    files are gone. On timeout or failure the rows are kept and the datastore
    stays marked as deleting until a later attempt or the reconciliation sweep
    finishes the job.
    """
    return await deletion_coordinator.delete_datastore(db, datastore_id, ctx)
