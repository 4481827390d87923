"""Datasource schemas."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from quarry.core.shared_models import DatasourceStatus, DatasourceType, DatastoreVisibility


class Datasource(BaseModel):
    """Datasource schema."""

    model_config = {"from_attributes": True}

    id: UUID
    datastore_id: UUID
    organization_id: UUID
    group_id: Optional[UUID] = None
    name: str
    type: DatasourceType
    status: DatasourceStatus
    last_synch: Optional[datetime] = None
    size_bytes: int = 0
    nb_tokens: int = 0
    nb_chunks: int = 0
    error_message: Optional[str] = None
    created_at: datetime
    modified_at: datetime


class DatastoreRef(BaseModel):
    """Minimal datastore info embedded in datasource responses."""

    model_config = {"from_attributes": True}

    id: UUID
    name: str
    visibility: DatastoreVisibility


class DatasourceWithDatastore(Datasource):
    """Datasource with its owning datastore, returned after a sync trigger."""

    datastore: Optional[DatastoreRef] = None


class DatasourceSummary(Datasource):
    """Datasource row as shown in a datastore listing.

    has_active_children only tells whether at least one direct child is pending
    or running; it is not a count of them.
    """

    children_count: int = 0
    has_active_children: bool = False


class DatasourceFilters(BaseModel):
    """Filters for listing the datasources of a datastore.

    A missing group_id selects top-level datasources only.
    """

    search: Optional[str] = Field(None, description="Substring matched against the name")
    status: Optional[DatasourceStatus] = None
    type: Optional[DatasourceType] = None
    group_id: Optional[UUID] = None


class Pagination(BaseModel):
    """Page selection: rows [offset * limit, offset * limit + limit)."""

    offset: int = Field(0, ge=0, description="Page index")
    limit: int = Field(100, ge=1, le=1000, description="Page size")


class DatasourceListResponse(BaseModel):
    """One page of datasources and the size of the whole filtered set."""

    items: List[DatasourceSummary]
    total_count: int


class PipelineStatusUpdate(BaseModel):
    """Status reported by the ingestion pipeline."""

    status: DatasourceStatus
    error_message: Optional[str] = None
