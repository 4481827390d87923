"""Datastore schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from quarry.core.shared_models import DatastoreStatus, DatastoreVisibility
from quarry.schemas.datasource import DatasourceListResponse


class DatastoreBase(BaseModel):
    """Datastore base schema."""

    name: str = Field(..., min_length=1, max_length=255, description="Datastore name")
    description: Optional[str] = Field(None, max_length=2000, description="Datastore description")


class DatastoreUpdate(BaseModel):
    """Datastore update schema.

    `is_public` toggles the visibility between public and private.
    """

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    is_public: Optional[bool] = None


class Datastore(DatastoreBase):
    """Datastore schema."""

    model_config = {"from_attributes": True}

    id: UUID
    organization_id: UUID
    visibility: DatastoreVisibility
    status: DatastoreStatus
    created_at: datetime
    modified_at: datetime


class DatastoreWithDatasources(Datastore):
    """Datastore with one page of its datasources."""

    datasources: DatasourceListResponse
