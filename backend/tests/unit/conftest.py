"""Unit test conftest for setting up test environment."""

import os

# Set minimal required environment variables before importing any quarry modules
os.environ.setdefault("POSTGRES_HOST", "localhost")
os.environ.setdefault("POSTGRES_USER", "test_user")
os.environ.setdefault("POSTGRES_PASSWORD", "test_password")
os.environ.setdefault("POSTGRES_DB", "test_db")
os.environ.setdefault("S3_BUCKET_NAME", "quarry-test")
os.environ.setdefault("LOCAL_DEVELOPMENT", "false")

from datetime import datetime  # noqa: E402
from typing import Optional  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402
from uuid import UUID, uuid4  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402

from quarry import schemas  # noqa: E402
from quarry.api.context import ApiContext  # noqa: E402
from quarry.core.logging import logger  # noqa: E402
from quarry.core.shared_models import DatasourceStatus, DatasourceType  # noqa: E402
from quarry.models import Base, Datasource, Datastore, Organization, Usage  # noqa: E402


@pytest_asyncio.fixture
async def engine(tmp_path):
    """SQLite database with the full schema, one file per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'quarry.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    """Session factory bound to the test database."""
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory):
    """Database session for the test body."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def organization(db) -> Organization:
    """Organization on the trial plan."""
    org = Organization(name="Acme", current_plan="trial")
    db.add(org)
    await db.commit()
    return org


@pytest.fixture
def ctx(organization) -> ApiContext:
    """API context of the test organization."""
    org_schema = schemas.Organization.model_validate(organization)
    return ApiContext(
        request_id="test-request",
        organization=org_schema,
        logger=logger.with_context(request_id="test-request"),
    )


@pytest.fixture
def other_ctx() -> ApiContext:
    """API context of an organization that owns nothing."""
    org_schema = schemas.Organization(
        id=uuid4(),
        name="Intruder",
        current_plan="trial",
        created_at=datetime(2024, 1, 1),
        modified_at=datetime(2024, 1, 1),
    )
    return ApiContext(
        request_id="other-request",
        organization=org_schema,
        logger=logger.with_context(request_id="other-request"),
    )


@pytest_asyncio.fixture
async def datastore(db, organization) -> Datastore:
    """Empty datastore of the test organization."""
    db_obj = Datastore(name="Docs", organization_id=organization.id)
    db.add(db_obj)
    await db.commit()
    return db_obj


@pytest.fixture
def make_datasource(db, datastore):
    """Factory inserting datasources into the test datastore."""

    async def _make(
        *,
        name: str = "source",
        status: DatasourceStatus = DatasourceStatus.UNSYNCED,
        type: DatasourceType = DatasourceType.FILE,
        group_id: Optional[UUID] = None,
        last_synch: Optional[datetime] = None,
        size_bytes: int = 0,
        nb_tokens: int = 0,
        target: Optional[Datastore] = None,
    ) -> Datasource:
        target = target or datastore
        db_obj = Datasource(
            organization_id=target.organization_id,
            datastore_id=target.id,
            group_id=group_id,
            name=name,
            type=type.value,
            status=status.value,
            last_synch=last_synch,
            size_bytes=size_bytes,
            nb_tokens=nb_tokens,
        )
        db.add(db_obj)
        await db.commit()
        return db_obj

    return _make


@pytest.fixture
def make_usage(db):
    """Factory inserting the usage row of an organization."""

    async def _make(organization_id: UUID, **values) -> Usage:
        db_obj = Usage(
            organization_id=organization_id,
            storage_bytes=values.get("storage_bytes", 0),
            stored_tokens=values.get("stored_tokens", 0),
            datasources=values.get("datasources", 0),
            processed_documents=values.get("processed_documents", 0),
        )
        db.add(db_obj)
        await db.commit()
        return db_obj

    return _make


@pytest.fixture
def mock_lease():
    """Lease service that always grants the lease."""
    lease = MagicMock()
    hold = MagicMock()
    hold.return_value.__aenter__ = AsyncMock(return_value="token")
    hold.return_value.__aexit__ = AsyncMock(return_value=False)
    lease.hold = hold
    return lease
