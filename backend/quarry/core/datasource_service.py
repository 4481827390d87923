"""Datasource state machine.

    unsynced -> pending -> running -> synced | error
    synced | error -> pending

Only the trigger moves a datasource to pending, and it does so regardless of
the current status so that an in-flight datasource can be force-resynced.
running, synced and error are written by the ingestion pipeline.
"""

from typing import Dict, FrozenSet, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from quarry import crud, schemas
from quarry.api.context import ApiContext
from quarry.core import usage_guard
from quarry.core.config import settings
from quarry.core.datetime_utils import utc_now_naive
from quarry.core.exceptions import NotFoundException, UnauthorizedException, ValidationException
from quarry.core.lease_service import LeaseService, lease_service
from quarry.core.shared_models import DatasourceStatus
from quarry.core.sync_dispatcher import SyncTaskDispatcher, sync_dispatcher
from quarry.core.usage_service import usage_service
from quarry.models.datasource import Datasource

# Statuses the pipeline may move a datasource to, keyed by current status
PIPELINE_TRANSITIONS: Dict[DatasourceStatus, FrozenSet[DatasourceStatus]] = {
    DatasourceStatus.UNSYNCED: frozenset(),
    DatasourceStatus.PENDING: frozenset(
        {DatasourceStatus.RUNNING, DatasourceStatus.SYNCED, DatasourceStatus.ERROR}
    ),
    DatasourceStatus.RUNNING: frozenset({DatasourceStatus.SYNCED, DatasourceStatus.ERROR}),
    DatasourceStatus.SYNCED: frozenset(),
    DatasourceStatus.ERROR: frozenset(),
}


def is_pipeline_transition(current: DatasourceStatus, new: DatasourceStatus) -> bool:
    """Whether the pipeline reporting `new` after `current` follows the state machine."""
    return new == current or new in PIPELINE_TRANSITIONS[current]


class DatasourceService:
    """Owns datasource status transitions and the enqueue-for-sync operation."""

    LEASE_RESOURCE = "datasource"

    def __init__(
        self,
        dispatcher: Optional[SyncTaskDispatcher] = None,
        lease: Optional[LeaseService] = None,
    ):
        """Initialize the service.

        Args:
            dispatcher: Sync task dispatcher, defaults to the shared one
            lease: Lease service, defaults to the shared one
        """
        self.dispatcher = dispatcher or sync_dispatcher
        self.lease = lease or lease_service

    async def _get_owned(
        self, db: AsyncSession, datasource_id: UUID, ctx: ApiContext
    ) -> Datasource:
        """Load a datasource and check it belongs to the caller's organization."""
        db_datasource = await crud.datasource.get(db, id=datasource_id)
        if db_datasource is None:
            raise NotFoundException(f"Datasource {datasource_id} not found")

        if db_datasource.organization_id != ctx.organization.id:
            ctx.logger.warning(
                f"Organization {ctx.organization.id} tried to access datasource {datasource_id}"
            )
            raise UnauthorizedException(
                f"Datasource {datasource_id} belongs to another organization"
            )

        return db_datasource

    async def _enforce_quota(
        self, db: AsyncSession, organization_id: UUID, ctx: ApiContext
    ) -> None:
        """Evaluate the usage guard against the organization's stored snapshot."""
        usage = await usage_service.get_usage(db, organization_id)
        usage_guard.enforce(usage, ctx.organization.current_plan)

    async def trigger_sync(
        self,
        db: AsyncSession,
        datasource_id: UUID,
        ctx: ApiContext,
        priority: Optional[int] = None,
    ) -> schemas.DatasourceWithDatastore:
        """Mark a datasource pending and queue one sync task for it.

        The status write is unconditional: a datasource already pending or
        running is re-triggered. If the dispatch fails after the write, the
        datasource stays pending and DispatchFailedException is raised.

        Args:
            db: Database session
            datasource_id: Datasource to sync
            ctx: API context
            priority: Queue priority (lower is served first)

        Returns:
            The updated datasource with its datastore

        Raises:
            NotFoundException: If the datasource does not exist or is deleted meanwhile
            UnauthorizedException: If it belongs to another organization
            QuotaExceededException: If usage is over the plan limits
            ConflictException: If another operation holds the datasource lease
            DispatchFailedException: If the task could not be queued
        """
        priority = settings.DEFAULT_SYNC_PRIORITY if priority is None else priority
        if priority < 0:
            raise ValidationException("priority must be a non-negative integer")

        db_datasource = await self._get_owned(db, datasource_id, ctx)
        await self._enforce_quota(db, db_datasource.organization_id, ctx)

        log = ctx.logger.with_context(datasource_id=str(datasource_id))

        async with self.lease.hold(self.LEASE_RESOURCE, datasource_id, logger=log):
            previous_status = db_datasource.status
            updated_rows = await crud.datasource.update_status(
                db, id=datasource_id, status=DatasourceStatus.PENDING
            )
            if not updated_rows:
                raise NotFoundException(f"Datasource {datasource_id} was deleted")
            log.info(f"Datasource status {previous_status} -> {DatasourceStatus.PENDING.value}")

            await self.dispatcher.dispatch(
                [
                    schemas.SyncTask(
                        organization_id=db_datasource.organization_id,
                        datasource_id=datasource_id,
                        priority=priority,
                    )
                ],
                logger=log,
            )

        updated = await crud.datasource.get_with_datastore(db, id=datasource_id)
        if updated is None:
            log.warning(f"Datasource {datasource_id} was deleted after its sync task was queued")
            raise NotFoundException(f"Datasource {datasource_id} was deleted")
        return schemas.DatasourceWithDatastore.model_validate(updated)

    async def redispatch(
        self,
        db: AsyncSession,
        datasource_id: UUID,
        ctx: ApiContext,
        priority: Optional[int] = None,
    ) -> schemas.Datasource:
        """Queue a sync task again for a datasource left pending by a failed dispatch.

        Args:
            db: Database session
            datasource_id: Datasource to re-dispatch
            ctx: API context
            priority: Queue priority

        Returns:
            The datasource, unchanged

        Raises:
            ValidationException: If the datasource is not pending
        """
        priority = settings.DEFAULT_SYNC_PRIORITY if priority is None else priority

        db_datasource = await self._get_owned(db, datasource_id, ctx)
        if db_datasource.status != DatasourceStatus.PENDING.value:
            raise ValidationException(
                f"Only pending datasources can be re-dispatched (status is {db_datasource.status})"
            )
        await self._enforce_quota(db, db_datasource.organization_id, ctx)

        log = ctx.logger.with_context(datasource_id=str(datasource_id))
        await self.dispatcher.dispatch(
            [
                schemas.SyncTask(
                    organization_id=db_datasource.organization_id,
                    datasource_id=datasource_id,
                    priority=priority,
                )
            ],
            logger=log,
        )
        return schemas.Datasource.model_validate(db_datasource)

    async def apply_pipeline_status(
        self,
        db: AsyncSession,
        datasource_id: UUID,
        update: schemas.PipelineStatusUpdate,
        ctx: ApiContext,
    ) -> schemas.Datasource:
        """Record a status reported by the ingestion pipeline.

        The pipeline writes concurrently with triggers, so a report that does
        not follow the state machine (e.g. "running" arriving after a newer
        trigger already reset the datasource) is applied and logged rather than
        rejected. Reporting pending or unsynced is not allowed: those belong to
        the trigger and to creation.

        Args:
            db: Database session
            datasource_id: Datasource to update
            update: Reported status
            ctx: API context

        Returns:
            The updated datasource
        """
        if update.status in (DatasourceStatus.PENDING, DatasourceStatus.UNSYNCED):
            raise ValidationException(f"The pipeline cannot report status '{update.status.value}'")

        db_datasource = await self._get_owned(db, datasource_id, ctx)
        current = DatasourceStatus(db_datasource.status)
        log = ctx.logger.with_context(datasource_id=str(datasource_id))

        if not is_pipeline_transition(current, update.status):
            log.warning(
                f"Out-of-order pipeline status {current.value} -> {update.status.value}, applying"
            )

        updated_rows = await crud.datasource.update_status(
            db,
            id=datasource_id,
            status=update.status,
            last_synch=utc_now_naive() if update.status == DatasourceStatus.SYNCED else None,
            error_message=update.error_message,
        )
        if not updated_rows:
            raise NotFoundException(f"Datasource {datasource_id} was deleted")
        log.info(f"Pipeline status {current.value} -> {update.status.value}")

        updated = await crud.datasource.get(db, id=datasource_id)
        if updated is None:
            raise NotFoundException(f"Datasource {datasource_id} was deleted")
        return schemas.Datasource.model_validate(updated)


# Singleton instance
datasource_service = DatasourceService()
