"""Usage schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class Usage(BaseModel):
    """Usage snapshot of an organization.

    Every field that is compared against a plan limit must also exist on
    `PlanLimits` under the same name.
    """

    model_config = {"from_attributes": True}

    storage_bytes: int = Field(0, ge=0, description="Bytes stored across all datasources")
    stored_tokens: int = Field(0, ge=0, description="Tokens stored across all datasources")
    datasources: int = Field(0, ge=0, description="Number of datasources")
    processed_documents: int = Field(
        0, ge=0, description="Documents processed by the ingestion pipeline this period"
    )


class UsageSnapshot(Usage):
    """Persisted usage row."""

    organization_id: UUID
    recomputed_at: Optional[datetime] = None


class PlanLimits(BaseModel):
    """Limit vector of a plan tier. None means unlimited."""

    storage_bytes: Optional[int] = None
    stored_tokens: Optional[int] = None
    datasources: Optional[int] = None
    processed_documents: Optional[int] = None
