"""Tests for the advisory lease service."""

from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from quarry.core.exceptions import ConflictException
from quarry.core.lease_service import LeaseService


@pytest.fixture
def mock_redis():
    """Mock Redis client."""
    with patch("quarry.core.lease_service.redis_client") as mock:
        mock.client.set = AsyncMock(return_value=True)
        mock.client.eval = AsyncMock(return_value=1)
        yield mock


@pytest.fixture
def lease():
    return LeaseService(ttl_seconds=30)


@pytest.mark.asyncio
async def test_acquire_sets_key_with_nx_and_ttl(lease, mock_redis):
    """Test that acquiring sets a token only if the key is absent."""
    resource_id = uuid4()

    token = await lease.acquire("datasource", resource_id)

    assert token
    mock_redis.client.set.assert_awaited_once_with(
        f"lease:datasource:{resource_id}", token, nx=True, px=30000
    )


@pytest.mark.asyncio
async def test_acquire_held_lease_raises_conflict(lease, mock_redis):
    """Test that a lease held by someone else yields a conflict."""
    mock_redis.client.set = AsyncMock(return_value=None)

    with pytest.raises(ConflictException):
        await lease.acquire("datastore", uuid4())


@pytest.mark.asyncio
async def test_acquire_proceeds_without_lease_when_redis_is_down(lease, mock_redis):
    """Test that a Redis outage does not block the operation."""
    mock_redis.client.set = AsyncMock(side_effect=RedisConnectionError("down"))

    token = await lease.acquire("datasource", uuid4())

    assert token is None


@pytest.mark.asyncio
async def test_release_only_deletes_own_token(lease, mock_redis):
    """Test that release runs the compare-and-delete script with our token."""
    resource_id = uuid4()

    released = await lease.release("datasource", resource_id, "abc")

    assert released is True
    mock_redis.client.eval.assert_awaited_once_with(
        LeaseService.RELEASE_SCRIPT, 1, f"lease:datasource:{resource_id}", "abc"
    )


@pytest.mark.asyncio
async def test_release_without_token_is_noop(lease, mock_redis):
    """Test that a lease acquired in fail-open mode is not released."""
    released = await lease.release("datasource", uuid4(), None)

    assert released is False
    mock_redis.client.eval.assert_not_called()


@pytest.mark.asyncio
async def test_hold_releases_on_error(lease, mock_redis):
    """Test that the lease is released when the block raises."""
    with pytest.raises(RuntimeError):
        async with lease.hold("datastore", uuid4()):
            raise RuntimeError("boom")

    mock_redis.client.eval.assert_awaited_once()
