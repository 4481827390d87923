"""Tests for the deletion coordinator."""

import asyncio
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from quarry import crud
from quarry.core.deletion_coordinator import DeletionCoordinator
from quarry.core.exceptions import (
    DeletionTimeoutException,
    NotFoundException,
    TransactionFailedException,
    UnauthorizedException,
    UsageRecomputeFailedException,
    ValidationException,
)
from quarry.core.shared_models import DatastoreStatus, DatasourceType
from quarry.core.usage_service import usage_service
from quarry.models import Datasource, Datastore
from quarry.platform.storage import StorageException


@pytest.fixture
def mock_store():
    """Object store that deletes instantly."""
    store = MagicMock()
    store.delete_prefix = AsyncMock(return_value=3)
    store.list_datastore_prefixes = AsyncMock(return_value=[])
    return store


@pytest.fixture
def coordinator(session_factory, mock_store, mock_lease):
    return DeletionCoordinator(
        session_factory=session_factory,
        store=mock_store,
        lease=mock_lease,
        max_wait_seconds=2,
        timeout_seconds=5,
    )


@pytest_asyncio.fixture
async def populated(db, organization, datastore, make_datasource):
    """A datastore with a nested datasource tree, plus a second datastore that must survive."""
    site = await make_datasource(name="site", type=DatasourceType.WEB_SITE, size_bytes=10)
    page = await make_datasource(
        name="page", type=DatasourceType.WEB_PAGE, group_id=site.id, size_bytes=20, nb_tokens=5
    )
    await make_datasource(
        name="subpage", type=DatasourceType.WEB_PAGE, group_id=page.id, size_bytes=30
    )

    other = Datastore(name="Other", organization_id=organization.id)
    db.add(other)
    await db.commit()
    await make_datasource(name="kept", size_bytes=100, nb_tokens=7, target=other)

    return datastore, other


async def datastore_status(session_factory, datastore_id):
    async with session_factory() as session:
        db_obj = await crud.datastore.get(session, id=datastore_id)
        return db_obj.status if db_obj else None


async def datasource_count(session_factory, datastore_id):
    async with session_factory() as session:
        result = await session.execute(
            select(func.count(Datasource.id)).where(Datasource.datastore_id == datastore_id)
        )
        return result.scalar_one()


@pytest.mark.asyncio
async def test_delete_removes_rows_objects_and_recomputes_usage(
    coordinator, mock_store, mock_lease, db, ctx, organization, session_factory, populated
):
    """Test the full deletion: rows, folder, usage, lease."""
    datastore, other = populated

    deleted = await coordinator.delete_datastore(db, datastore.id, ctx)

    assert deleted.id == datastore.id
    assert deleted.name == "Docs"
    assert deleted.status == DatastoreStatus.DELETING
    mock_store.delete_prefix.assert_awaited_once()
    assert mock_store.delete_prefix.await_args.args[0] == f"datastores/{datastore.id}/"
    mock_lease.hold.assert_called_once()
    assert mock_lease.hold.call_args.args[:2] == ("datastore", datastore.id)

    assert await datastore_status(session_factory, datastore.id) is None
    assert await datasource_count(session_factory, datastore.id) == 0
    assert await datastore_status(session_factory, other.id) == DatastoreStatus.ACTIVE.value
    assert await datasource_count(session_factory, other.id) == 1

    async with session_factory() as session:
        usage = await crud.usage.get_by_organization(session, organization_id=organization.id)
    assert usage.storage_bytes == 100
    assert usage.stored_tokens == 7
    assert usage.datasources == 1
    assert usage.recomputed_at is not None


@pytest.mark.asyncio
async def test_object_failure_rolls_back_rows(
    coordinator, mock_store, db, ctx, session_factory, populated
):
    """Test that rows survive when the folder deletion fails."""
    datastore, _ = populated
    mock_store.delete_prefix = AsyncMock(side_effect=StorageException("access denied"))

    with pytest.raises(TransactionFailedException) as exc_info:
        await coordinator.delete_datastore(db, datastore.id, ctx)

    assert not isinstance(exc_info.value, DeletionTimeoutException)
    assert await datasource_count(session_factory, datastore.id) == 3
    assert await datastore_status(session_factory, datastore.id) == DatastoreStatus.DELETING.value


@pytest.mark.asyncio
async def test_timeout_rolls_back_rows_but_objects_finish(
    session_factory, mock_store, mock_lease, db, ctx, populated
):
    """Test that a slow deletion times out, keeps the rows and lets objects finish."""
    datastore, _ = populated
    finished = asyncio.Event()

    async def slow_delete(prefix, logger=None):
        await asyncio.sleep(0.3)
        finished.set()
        return 3

    mock_store.delete_prefix = slow_delete
    coordinator = DeletionCoordinator(
        session_factory=session_factory,
        store=mock_store,
        lease=mock_lease,
        max_wait_seconds=1,
        timeout_seconds=0.1,
    )

    with pytest.raises(DeletionTimeoutException) as exc_info:
        await coordinator.delete_datastore(db, datastore.id, ctx)

    assert exc_info.value.status_code == 504
    assert await datasource_count(session_factory, datastore.id) == 3
    assert await datastore_status(session_factory, datastore.id) == DatastoreStatus.DELETING.value

    await asyncio.wait_for(finished.wait(), timeout=2)


class StalledSession(AsyncSession):
    """Session whose connection is never handed out."""

    async def connection(self, *args, **kwargs):
        await asyncio.sleep(5)


@pytest.mark.asyncio
async def test_transaction_start_bounded_by_max_wait(
    engine, session_factory, mock_store, mock_lease, db, ctx, populated
):
    """Test that a connection that never becomes available times out and keeps the rows."""
    datastore, _ = populated

    coordinator = DeletionCoordinator(
        session_factory=async_sessionmaker(engine, class_=StalledSession),
        store=mock_store,
        lease=mock_lease,
        max_wait_seconds=0.1,
        timeout_seconds=3,
    )

    with pytest.raises(DeletionTimeoutException, match="within 0.1s"):
        await coordinator.delete_datastore(db, datastore.id, ctx)

    assert await datasource_count(session_factory, datastore.id) == 3
    assert await datastore_status(session_factory, datastore.id) == DatastoreStatus.DELETING.value


class LockNotAvailable(Exception):
    sqlstate = "55P03"


class UniqueViolation(Exception):
    sqlstate = "23505"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "orig, expected",
    [
        (LockNotAvailable("canceling statement due to lock timeout"), DeletionTimeoutException),
        (UniqueViolation("duplicate key"), TransactionFailedException),
    ],
)
async def test_database_errors_roll_back_rows(
    coordinator, db, ctx, session_factory, populated, orig, expected
):
    """Test that a lock timeout maps to a timeout and other database errors to a failure."""
    datastore, _ = populated
    failing = AsyncMock(side_effect=DBAPIError("DELETE FROM datastore", {}, orig))

    with patch.object(crud.datastore, "remove", failing):
        with pytest.raises(TransactionFailedException) as exc_info:
            await coordinator.delete_datastore(db, datastore.id, ctx)

    assert type(exc_info.value) is expected
    assert await datasource_count(session_factory, datastore.id) == 3
    assert await datastore_status(session_factory, datastore.id) == DatastoreStatus.DELETING.value


@pytest.mark.asyncio
async def test_delete_missing_datastore(coordinator, mock_store, db, ctx):
    with pytest.raises(NotFoundException):
        await coordinator.delete_datastore(db, uuid4(), ctx)

    mock_store.delete_prefix.assert_not_called()


@pytest.mark.asyncio
async def test_delete_other_organization(
    coordinator, mock_store, db, other_ctx, session_factory, datastore
):
    """Test that a foreign datastore is neither marked nor deleted."""
    with pytest.raises(UnauthorizedException):
        await coordinator.delete_datastore(db, datastore.id, other_ctx)

    mock_store.delete_prefix.assert_not_called()
    assert await datastore_status(session_factory, datastore.id) == DatastoreStatus.ACTIVE.value


@pytest.mark.asyncio
@pytest.mark.parametrize("datastore_id", [None, ""])
async def test_delete_requires_an_id(coordinator, mock_store, db, ctx, datastore_id):
    """Test that an empty id never reaches the object store."""
    with pytest.raises(ValidationException):
        await coordinator.delete_datastore(db, datastore_id, ctx)

    mock_store.delete_prefix.assert_not_called()


@pytest.mark.asyncio
async def test_usage_failure_after_commit_reports_deleted_datastore(
    coordinator, db, ctx, session_factory, populated
):
    """Test that a usage failure is reported while the deletion stands."""
    datastore, _ = populated
    failing = AsyncMock(side_effect=OperationalError("UPDATE usage", {}, Exception("gone")))

    with patch("quarry.core.deletion_coordinator.usage_service.recompute", failing):
        with pytest.raises(UsageRecomputeFailedException) as exc_info:
            await coordinator.delete_datastore(db, datastore.id, ctx)

    assert exc_info.value.deleted.id == datastore.id
    assert failing.await_count == DeletionCoordinator.USAGE_RECOMPUTE_ATTEMPTS
    assert await datastore_status(session_factory, datastore.id) is None


@pytest.mark.asyncio
async def test_usage_recompute_is_idempotent(db, organization, make_datasource):
    """Test that recomputing twice yields the same snapshot."""
    await make_datasource(size_bytes=42, nb_tokens=9)

    first = await usage_service.recompute(db, organization.id)
    second = await usage_service.recompute(db, organization.id)

    assert (first.storage_bytes, first.stored_tokens, first.datasources) == (42, 9, 1)
    assert (second.storage_bytes, second.stored_tokens, second.datasources) == (42, 9, 1)


@pytest.mark.asyncio
async def test_reconcile_deletes_orphans_and_stale_deletions(
    coordinator, mock_store, db, organization, session_factory, populated
):
    """Test the reconciliation sweep."""
    datastore, other = populated
    orphan_id = uuid4()

    datastore.status = DatastoreStatus.DELETING.value
    datastore.modified_at = datetime(2020, 1, 1)
    await db.commit()

    mock_store.list_datastore_prefixes = AsyncMock(
        return_value=[
            f"datastores/{datastore.id}/",
            f"datastores/{orphan_id}/",
            f"datastores/{other.id}/",
            "datastores/not-a-uuid/",
        ]
    )

    report = await coordinator.reconcile_storage()

    assert report.orphaned_prefixes == [f"datastores/{orphan_id}/"]
    assert report.stale_datastores_deleted == [datastore.id]
    assert report.failures == []
    deleted_prefixes = [call.args[0] for call in mock_store.delete_prefix.await_args_list]
    assert sorted(deleted_prefixes) == sorted(
        [f"datastores/{orphan_id}/", f"datastores/{datastore.id}/"]
    )
    assert await datastore_status(session_factory, datastore.id) is None
    assert await datastore_status(session_factory, other.id) == DatastoreStatus.ACTIVE.value


@pytest.mark.asyncio
async def test_reconcile_leaves_recent_deletions_alone(
    coordinator, mock_store, db, session_factory, datastore
):
    """Test that a deletion still in progress is not picked up."""
    datastore.status = DatastoreStatus.DELETING.value
    await db.commit()

    report = await coordinator.reconcile_storage()

    assert report.stale_datastores_deleted == []
    mock_store.delete_prefix.assert_not_called()
    assert await datastore_status(session_factory, datastore.id) == DatastoreStatus.DELETING.value
