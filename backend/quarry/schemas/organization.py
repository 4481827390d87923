"""Organization schemas."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from quarry.schemas.organization_billing import BillingPlan


class Organization(BaseModel):
    """Organization schema used in API contexts."""

    model_config = {"from_attributes": True}

    id: UUID
    name: str
    current_plan: BillingPlan = Field(BillingPlan.TRIAL, description="Current billing plan")
    created_at: datetime
    modified_at: datetime

    @field_validator("current_plan", mode="before")
    @classmethod
    def normalize_current_plan(cls, v: Any) -> BillingPlan:
        """Normalize billing plan from database format."""
        if isinstance(v, BillingPlan):
            return v
        if isinstance(v, str):
            return BillingPlan.normalize(v)
        return BillingPlan.TRIAL
