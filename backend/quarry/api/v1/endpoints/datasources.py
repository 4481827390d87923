"""API endpoints for datasources."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from quarry import schemas
from quarry.api import deps
from quarry.api.context import ApiContext
from quarry.core.datasource_service import datasource_service

router = APIRouter()


@router.post("/{datasource_id}/synch", response_model=schemas.DatasourceWithDatastore)
async def synch(
    datasource_id: UUID = Path(..., description="The datasource to synchronize"),
    priority: Optional[int] = Query(
        None, ge=0, description="Queue priority, lower values are served first"
    ),
    db: AsyncSession = Depends(deps.get_db),
    ctx: ApiContext = Depends(deps.get_context),
) -> schemas.DatasourceWithDatastore:
    """Trigger a synchronization of a datasource.

    The datasource is set to pending regardless of its current status and one
    sync task is queued for the ingestion pipeline.
    """
    return await datasource_service.trigger_sync(db, datasource_id, ctx, priority=priority)


@router.post("/{datasource_id}/dispatch", response_model=schemas.Datasource)
async def dispatch(
    datasource_id: UUID = Path(..., description="The pending datasource to re-dispatch"),
    priority: Optional[int] = Query(None, ge=0),
    db: AsyncSession = Depends(deps.get_db),
    ctx: ApiContext = Depends(deps.get_context),
) -> schemas.Datasource:
    """Re-queue the sync task of a pending datasource after a failed dispatch."""
    return await datasource_service.redispatch(db, datasource_id, ctx, priority=priority)


@router.post("/{datasource_id}/status", response_model=schemas.Datasource)
async def report_status(
    update: schemas.PipelineStatusUpdate,
    datasource_id: UUID = Path(...),
    db: AsyncSession = Depends(deps.get_db),
    ctx: ApiContext = Depends(deps.get_context),
) -> schemas.Datasource:
    """Record a status reported by the ingestion pipeline (running, synced or error)."""
    return await datasource_service.apply_pipeline_status(db, datasource_id, update, ctx)
