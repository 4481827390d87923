"""Schemas for the API and services."""

from quarry.schemas.datasource import (
    Datasource,
    DatasourceFilters,
    DatasourceListResponse,
    DatasourceSummary,
    DatasourceWithDatastore,
    DatastoreRef,
    Pagination,
    PipelineStatusUpdate,
)
from quarry.schemas.datastore import (
    Datastore,
    DatastoreBase,
    DatastoreUpdate,
    DatastoreWithDatasources,
)
from quarry.schemas.organization import Organization
from quarry.schemas.organization_billing import BillingPlan
from quarry.schemas.sync_task import SyncTask
from quarry.schemas.usage import PlanLimits, Usage, UsageSnapshot

__all__ = [
    "BillingPlan",
    "Datasource",
    "DatasourceFilters",
    "DatasourceListResponse",
    "DatasourceSummary",
    "DatasourceWithDatastore",
    "Datastore",
    "DatastoreBase",
    "DatastoreRef",
    "DatastoreUpdate",
    "DatastoreWithDatasources",
    "Organization",
    "Pagination",
    "PipelineStatusUpdate",
    "PlanLimits",
    "SyncTask",
    "Usage",
    "UsageSnapshot",
]
