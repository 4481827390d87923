"""Dependencies that are used in the API endpoints."""

import uuid
from typing import Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from quarry import crud, schemas
from quarry.api.context import ApiContext
from quarry.core.logging import logger
from quarry.core.shared_models import DatasourceStatus, DatasourceType
from quarry.db.session import get_db

__all__ = ["get_context", "get_db", "get_filters", "get_pagination"]


async def _get_organization(db: AsyncSession, organization_id: str) -> schemas.Organization:
    """Resolve the organization named in the X-Organization-ID header."""
    try:
        org_uuid = UUID(organization_id)
    except ValueError:
        raise HTTPException(
            status_code=400, detail=f"Invalid organization id: {organization_id}"
        ) from None

    organization = await crud.organization.get(db, id=org_uuid)
    if organization is None:
        raise HTTPException(status_code=404, detail=f"Organization {organization_id} not found")
    return schemas.Organization.model_validate(organization)


async def get_context(
    request: Request,
    db: AsyncSession = Depends(get_db),
    x_organization_id: Optional[str] = Header(None, alias="X-Organization-ID"),
) -> ApiContext:
    """Create the API context for the request.

    Authentication happens at the gateway; the caller's organization arrives in
    the X-Organization-ID header.

    Args:
    ----
        request (Request): The FastAPI request object.
        db (AsyncSession): Database session.
        x_organization_id (Optional[str]): Organization ID from the X-Organization-ID header.

    Returns:
    -------
        ApiContext: Request id, organization and a contextual logger.

    Raises:
    ------
        HTTPException: If the header is missing or names an unknown organization.
    """
    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))

    if not x_organization_id:
        raise HTTPException(
            status_code=400,
            detail="Organization context required (X-Organization-ID header missing)",
        )

    organization = await _get_organization(db, x_organization_id)

    base_logger = logger.with_context(
        request_id=request_id,
        organization_id=str(organization.id),
        context_base="api",
    )

    return ApiContext(request_id=request_id, organization=organization, logger=base_logger)


def get_filters(
    search: Optional[str] = Query(None, description="Substring matched against the name"),
    status: Optional[DatasourceStatus] = Query(None, description="Datasource status"),
    type: Optional[DatasourceType] = Query(None, description="Datasource type"),
    group_id: Optional[UUID] = Query(
        None, description="Parent datasource; omit to list top-level datasources"
    ),
) -> schemas.DatasourceFilters:
    """Collect listing filters from the query string."""
    return schemas.DatasourceFilters(search=search, status=status, type=type, group_id=group_id)


def get_pagination(
    offset: int = Query(0, ge=0, description="Page index"),
    limit: int = Query(100, ge=1, le=1000, description="Page size (1-1000)"),
) -> schemas.Pagination:
    """Collect page selection from the query string."""
    return schemas.Pagination(offset=offset, limit=limit)
