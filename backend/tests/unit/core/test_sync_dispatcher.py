"""Tests for the sync task dispatcher."""

import json
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from quarry.core.exceptions import DispatchFailedException
from quarry.core.sync_dispatcher import SyncTaskDispatcher
from quarry.schemas.sync_task import SyncTask


@pytest.fixture
def mock_redis():
    """Mock Redis client with a transactional pipeline."""
    with patch("quarry.core.sync_dispatcher.redis_client") as mock:
        mock_pipeline = MagicMock()
        mock_pipeline.execute = AsyncMock(return_value=[1])
        mock.client.pipeline.return_value = mock_pipeline
        mock.client.incrby = AsyncMock(return_value=1)
        yield mock


@pytest.fixture
def dispatcher():
    return SyncTaskDispatcher(queue_name="load-datasource", max_attempts=3)


def make_task(priority: int = 2) -> SyncTask:
    return SyncTask(organization_id=uuid4(), datasource_id=uuid4(), priority=priority)


def test_message_uses_camel_case_keys():
    """Test the wire format of a sync task."""
    task = make_task(priority=1)

    message = json.loads(task.to_message())

    assert message == {
        "organizationId": str(task.organization_id),
        "datasourceId": str(task.datasource_id),
        "priority": 1,
    }


def test_priority_dominates_enqueue_order(dispatcher):
    """Test that a lower priority value always scores first."""
    late_urgent = dispatcher.score(priority=1, sequence=10**9)
    early_normal = dispatcher.score(priority=2, sequence=1)

    assert late_urgent < early_normal
    assert dispatcher.score(2, 1) < dispatcher.score(2, 2)


@pytest.mark.asyncio
async def test_dispatch_empty_list_is_noop(dispatcher, mock_redis):
    """Test that dispatching nothing does not touch Redis."""
    queued = await dispatcher.dispatch([])

    assert queued == 0
    mock_redis.client.incrby.assert_not_called()


@pytest.mark.asyncio
async def test_dispatch_adds_task_to_sorted_set(dispatcher, mock_redis):
    """Test that a task is ZADDed with NX and its score."""
    task = make_task()

    queued = await dispatcher.dispatch([task])

    assert queued == 1
    mock_redis.client.incrby.assert_awaited_once_with("load-datasource:seq", 1)
    pipe = mock_redis.client.pipeline.return_value
    pipe.zadd.assert_called_once_with(
        "load-datasource", {task.to_message(): dispatcher.score(2, 1)}, nx=True
    )


@pytest.mark.asyncio
async def test_dispatch_does_not_count_already_queued_task(dispatcher, mock_redis):
    """Test that a duplicate waiting in the queue is not counted as queued."""
    mock_redis.client.pipeline.return_value.execute = AsyncMock(return_value=[0])

    queued = await dispatcher.dispatch([make_task()])

    assert queued == 0


@pytest.mark.asyncio
async def test_dispatch_retries_transient_errors(dispatcher, mock_redis):
    """Test that a transient Redis error is retried."""
    mock_redis.client.incrby = AsyncMock(side_effect=[RedisConnectionError("reset"), 7])

    queued = await dispatcher.dispatch([make_task()])

    assert queued == 1
    assert mock_redis.client.incrby.await_count == 2


@pytest.mark.asyncio
async def test_dispatch_raises_after_exhausting_attempts(dispatcher, mock_redis):
    """Test that a persistent Redis error becomes DispatchFailedException."""
    mock_redis.client.incrby = AsyncMock(side_effect=RedisConnectionError("down"))

    with pytest.raises(DispatchFailedException) as exc_info:
        await dispatcher.dispatch([make_task()])

    assert mock_redis.client.incrby.await_count == 3
    assert exc_info.value.status_code == 503
