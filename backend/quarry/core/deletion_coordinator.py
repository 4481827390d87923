"""Deletion coordinator: removes a datastore from the database and object storage.

A datastore lives in two systems that share no transaction. Deletion runs in
two phases:

1. The datastore is marked DELETING in its own commit, so an interrupted
   deletion leaves a durable trace for the reconciliation sweep.
2. The object storage folder is deleted while the datasource and datastore rows
   are deleted in one relational transaction. The transaction commits only
   after the object deletion succeeded.

The relational transaction is bounded by a maximum wait to acquire it and a
maximum total duration; exceeding either rolls it back. Object deletion is not
cancelled by those bounds and runs to completion on its own.

Usage is recomputed after the commit. Its failure is reported, but the
deletion stands.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable, List, Optional
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from quarry import crud, schemas
from quarry.api.context import ApiContext
from quarry.core.config import settings
from quarry.core.datastore_service import datastore_service
from quarry.core.datetime_utils import utc_now_naive
from quarry.core.exceptions import (
    ConflictException,
    DeletionTimeoutException,
    TransactionFailedException,
    UsageRecomputeFailedException,
    ValidationException,
)
from quarry.core.lease_service import LeaseService, lease_service
from quarry.core.logging import ContextualLogger
from quarry.core.logging import logger as default_logger
from quarry.core.shared_models import DatastoreStatus
from quarry.core.usage_service import usage_service
from quarry.db.unit_of_work import UnitOfWork
from quarry.platform.storage import (
    S3ObjectStore,
    StorageException,
    StoragePaths,
    UnsafePrefixError,
    object_store,
)

# Postgres SQLSTATE for lock_timeout expiry
LOCK_NOT_AVAILABLE = "55P03"


@dataclass
class ReconcileReport:
    """Outcome of one reconciliation sweep."""

    orphaned_prefixes: List[str] = field(default_factory=list)
    objects_deleted: int = 0
    stale_datastores_deleted: List[UUID] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)


class DeletionCoordinator:
    """Deletes datastores across the relational store and object storage."""

    LEASE_RESOURCE = "datastore"
    USAGE_RECOMPUTE_ATTEMPTS = 3

    def __init__(
        self,
        session_factory: Optional[Callable[[], AsyncSession]] = None,
        store: Optional[S3ObjectStore] = None,
        lease: Optional[LeaseService] = None,
        max_wait_seconds: Optional[float] = None,
        timeout_seconds: Optional[float] = None,
    ):
        """Initialize the coordinator.

        Args:
            session_factory: Creates the sessions that run the deletion transaction
            store: Object store, defaults to the shared one
            lease: Lease service, defaults to the shared one
            max_wait_seconds: Maximum wait to acquire the transaction
            timeout_seconds: Maximum total duration of the transaction
        """
        if session_factory is None:
            from quarry.db.session import AsyncSessionLocal

            session_factory = AsyncSessionLocal

        self.session_factory = session_factory
        self.store = store or object_store
        self.lease = lease or lease_service
        self.max_wait_seconds = max_wait_seconds or settings.DELETION_MAX_WAIT_SECONDS
        self.timeout_seconds = timeout_seconds or settings.DELETION_TIMEOUT_SECONDS

    async def delete_datastore(
        self,
        db: AsyncSession,
        datastore_id: Optional[UUID],
        ctx: ApiContext,
    ) -> schemas.Datastore:
        """Delete a datastore, its datasources and its object storage folder.

        Args:
            db: Database session of the request
            datastore_id: Datastore to delete
            ctx: API context

        Returns:
            Summary of the deleted datastore

        Raises:
            ValidationException: If the id is empty
            NotFoundException: If the datastore does not exist
            UnauthorizedException: If it belongs to another organization
            ConflictException: If another operation holds the datastore lease
            DeletionTimeoutException: If the transaction timed out (rolled back)
            TransactionFailedException: If the transaction failed (rolled back)
            UsageRecomputeFailedException: If usage could not be recomputed after commit
        """
        if not datastore_id:
            raise ValidationException("A datastore id is required")
        try:
            prefix = StoragePaths.datastore_prefix(datastore_id)
        except UnsafePrefixError as e:
            raise ValidationException(str(e)) from e

        db_datastore = await datastore_service.get_owned(db, datastore_id, ctx)

        log = ctx.logger.with_context(datastore_id=str(datastore_id), component="deletion")

        async with self.lease.hold(self.LEASE_RESOURCE, datastore_id, logger=log):
            await crud.datastore.mark_status(db, id=datastore_id, status=DatastoreStatus.DELETING)
            deleted = schemas.Datastore.model_validate(db_datastore).model_copy(
                update={"status": DatastoreStatus.DELETING}
            )
            log.info(f"Marked datastore {datastore_id} as deleting")

            await self._delete_resources(datastore_id, prefix, log)

        await self._recompute_usage(deleted, log)
        return deleted

    async def _delete_resources(
        self, datastore_id: UUID, prefix: str, log: ContextualLogger
    ) -> None:
        """Run object deletion and the bounded relational transaction together."""
        object_task = asyncio.ensure_future(self.store.delete_prefix(prefix, logger=log))
        object_task.add_done_callback(self._object_deletion_callback(prefix, log))

        try:
            await asyncio.wait_for(
                self._delete_rows(datastore_id, object_task, log),
                timeout=self.timeout_seconds,
            )
        except DeletionTimeoutException:
            raise
        except asyncio.TimeoutError as e:
            log.error(
                f"Deletion transaction exceeded {self.timeout_seconds}s and was rolled back. "
                f"Objects under {prefix} may already be deleted."
            )
            raise DeletionTimeoutException(
                f"Deleting datastore {datastore_id} exceeded {self.timeout_seconds}s"
            ) from e
        except DBAPIError as e:
            if getattr(e.orig, "sqlstate", None) == LOCK_NOT_AVAILABLE or (
                getattr(e.orig, "pgcode", None) == LOCK_NOT_AVAILABLE
            ):
                log.error(f"Deletion transaction could not acquire its locks: {e}")
                raise DeletionTimeoutException(
                    f"Locks for datastore {datastore_id} not acquired within "
                    f"{self.max_wait_seconds}s"
                ) from e
            log.error(f"Deletion transaction failed and was rolled back: {e}")
            raise TransactionFailedException(
                f"Deleting datastore {datastore_id} failed: {e}"
            ) from e
        except SQLAlchemyError as e:
            log.error(f"Deletion transaction failed and was rolled back: {e}")
            raise TransactionFailedException(
                f"Deleting datastore {datastore_id} failed: {e}"
            ) from e
        except StorageException as e:
            log.error(f"Object storage deletion failed, relational transaction rolled back: {e}")
            raise TransactionFailedException(
                f"Deleting objects of datastore {datastore_id} failed: {e}"
            ) from e

    async def _begin(self, session: AsyncSession) -> None:
        """Acquire a connection and open the transaction."""
        await session.connection()
        if session.get_bind().dialect.name == "postgresql":
            lock_timeout_ms = int(self.max_wait_seconds * 1000)
            await session.execute(text(f"SET LOCAL lock_timeout = {lock_timeout_ms}"))

    async def _delete_rows(
        self,
        datastore_id: UUID,
        object_task: "asyncio.Future[int]",
        log: ContextualLogger,
    ) -> None:
        """Delete datasource and datastore rows; commit once the objects are gone."""
        async with self.session_factory() as session:
            try:
                await asyncio.wait_for(self._begin(session), timeout=self.max_wait_seconds)
            except asyncio.TimeoutError as e:
                raise DeletionTimeoutException(
                    f"Could not start the deletion transaction within {self.max_wait_seconds}s"
                ) from e

            async with UnitOfWork(session):
                datasources_deleted = await crud.datasource.remove_by_datastore(
                    session, datastore_id=datastore_id
                )
                datastores_deleted = await crud.datastore.remove(session, id=datastore_id)

                # Shielded: a timeout cancels the wait, not the deletion
                objects_deleted = await asyncio.shield(object_task)

        log.info(
            f"Deleted datastore {datastore_id}: {datastores_deleted} datastore row, "
            f"{datasources_deleted} datasource rows, {objects_deleted} objects"
        )

    @staticmethod
    def _object_deletion_callback(prefix: str, log: ContextualLogger):
        """Log the outcome of an object deletion nobody may be awaiting any more."""

        def _callback(task: "asyncio.Future[int]") -> None:
            if task.cancelled():
                log.warning(f"Object deletion under {prefix} was cancelled")
                return
            error = task.exception()
            if error is not None:
                log.error(f"Object deletion under {prefix} failed: {error}")

        return _callback

    async def _recompute_usage(self, deleted: schemas.Datastore, log: ContextualLogger) -> None:
        """Recompute the owner's usage after a committed deletion, with retries."""
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.USAGE_RECOMPUTE_ATTEMPTS),
                wait=wait_exponential(multiplier=0.2, max=2),
                retry=retry_if_exception_type(SQLAlchemyError),
                reraise=True,
            ):
                with attempt:
                    async with self.session_factory() as session:
                        await usage_service.recompute(session, deleted.organization_id, logger=log)
        except SQLAlchemyError as e:
            log.error(f"Usage recomputation failed after deleting datastore {deleted.id}: {e}")
            raise UsageRecomputeFailedException(
                f"Datastore {deleted.id} was deleted but usage could not be recomputed: {e}",
                deleted=deleted,
            ) from e

    async def reconcile_storage(
        self, logger: Optional[ContextualLogger] = None
    ) -> ReconcileReport:
        """Clean up what interrupted deletions left behind.

        - Object storage folders whose datastore row no longer exists are deleted.
        - Datastores stuck in DELETING for longer than
          RECONCILE_STALE_DELETING_SECONDS are deleted again.

        Returns:
            Report of what was cleaned up
        """
        log = logger or default_logger.with_context(component="reconcile")
        report = ReconcileReport()

        prefixes_by_id = {}
        for prefix in await self.store.list_datastore_prefixes():
            raw_id = StoragePaths.datastore_id_from_prefix(prefix)
            try:
                prefixes_by_id[UUID(raw_id)] = prefix
            except (TypeError, ValueError):
                log.warning(f"Skipping object storage folder with unexpected name: {prefix}")

        async with self.session_factory() as session:
            existing = await crud.datastore.get_existing_ids(session, prefixes_by_id.keys())
            stale = await crud.datastore.get_stale_deleting(
                session,
                before=utc_now_naive()
                - timedelta(seconds=settings.RECONCILE_STALE_DELETING_SECONDS),
            )
            stale = [schemas.Datastore.model_validate(db_obj) for db_obj in stale]

        for datastore_id, prefix in prefixes_by_id.items():
            if datastore_id in existing:
                continue
            try:
                report.objects_deleted += await self.store.delete_prefix(prefix, logger=log)
                report.orphaned_prefixes.append(prefix)
            except StorageException as e:
                log.error(f"Failed to delete orphaned folder {prefix}: {e}")
                report.failures.append(prefix)

        for datastore in stale:
            stale_log = log.with_context(datastore_id=str(datastore.id))
            try:
                async with self.lease.hold(self.LEASE_RESOURCE, datastore.id, logger=stale_log):
                    await self._delete_resources(
                        datastore.id, StoragePaths.datastore_prefix(datastore.id), stale_log
                    )
                await self._recompute_usage(datastore, stale_log)
                report.stale_datastores_deleted.append(datastore.id)
            except (
                ConflictException,
                TransactionFailedException,
                UsageRecomputeFailedException,
            ) as e:
                stale_log.error(f"Failed to finish deletion of datastore {datastore.id}: {e}")
                report.failures.append(str(datastore.id))

        log.info(
            f"Reconciliation done: {len(report.orphaned_prefixes)} orphaned folders "
            f"({report.objects_deleted} objects), "
            f"{len(report.stale_datastores_deleted)} stale datastores, "
            f"{len(report.failures)} failures"
        )
        return report


# Singleton instance
deletion_coordinator = DeletionCoordinator()
