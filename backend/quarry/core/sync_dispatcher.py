"""Sync task dispatcher: hands sync tasks to the ingestion pipeline.

Tasks are pushed onto a Redis sorted set that the pipeline workers pop with
ZPOPMIN. The score orders tasks by priority first (lower value is served
first) and then by enqueue order. Members are the serialized messages, so a
task identical to one still waiting in the queue is not queued twice; once a
worker has popped it, a new trigger queues it again.
"""

from typing import List, Optional, Sequence

from redis.exceptions import RedisError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from quarry.core.config import settings
from quarry.core.exceptions import DispatchFailedException
from quarry.core.logging import ContextualLogger
from quarry.core.logging import logger as default_logger
from quarry.core.redis_client import redis_client
from quarry.schemas.sync_task import SyncTask


class SyncTaskDispatcher:
    """Enqueues sync tasks with at-least-once delivery."""

    # Sequence numbers stay below the stride, so priority always dominates
    PRIORITY_STRIDE = 2**32

    def __init__(self, queue_name: Optional[str] = None, max_attempts: Optional[int] = None):
        """Initialize the dispatcher.

        Args:
            queue_name: Redis key of the queue, defaults to settings.SYNC_QUEUE_NAME
            max_attempts: Attempts before giving up, defaults to settings.SYNC_DISPATCH_MAX_ATTEMPTS
        """
        self.queue_name = queue_name or settings.SYNC_QUEUE_NAME
        self.max_attempts = max_attempts or settings.SYNC_DISPATCH_MAX_ATTEMPTS

    @property
    def sequence_key(self) -> str:
        """Redis key of the enqueue counter."""
        return f"{self.queue_name}:seq"

    def score(self, priority: int, sequence: int) -> int:
        """Queue score of a task."""
        return priority * self.PRIORITY_STRIDE + sequence % self.PRIORITY_STRIDE

    async def _enqueue(self, tasks: Sequence[SyncTask]) -> int:
        """Push tasks in one transaction. Returns how many were newly queued."""
        client = redis_client.client
        last_sequence = await client.incrby(self.sequence_key, len(tasks))
        first_sequence = last_sequence - len(tasks) + 1

        pipe = client.pipeline(transaction=True)
        for offset, task in enumerate(tasks):
            pipe.zadd(
                self.queue_name,
                {task.to_message(): self.score(task.priority, first_sequence + offset)},
                nx=True,
            )
        results = await pipe.execute()
        return sum(int(added) for added in results)

    async def dispatch(
        self,
        tasks: List[SyncTask],
        logger: Optional[ContextualLogger] = None,
    ) -> int:
        """Dispatch sync tasks to the ingestion queue.

        Transient Redis errors are retried with exponential backoff. Retrying a
        partially applied batch does not duplicate tasks.

        Args:
            tasks: Tasks to enqueue
            logger: Optional contextual logger

        Returns:
            Number of tasks newly queued (already queued duplicates are not counted)

        Raises:
            DispatchFailedException: If the queue stays unreachable
        """
        log = logger or default_logger.with_context(component="sync_dispatcher")

        if not tasks:
            return 0

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_exponential(multiplier=0.2, max=2),
                retry=retry_if_exception_type(RedisError),
                reraise=True,
            ):
                with attempt:
                    queued = await self._enqueue(tasks)
        except RedisError as e:
            log.error(f"Failed to dispatch {len(tasks)} sync task(s) to {self.queue_name}: {e}")
            raise DispatchFailedException(
                f"Could not enqueue sync task(s) after {self.max_attempts} attempts: {e}"
            ) from e

        duplicates = len(tasks) - queued
        log.info(
            f"Dispatched {queued} sync task(s) to {self.queue_name}"
            + (f" ({duplicates} already queued)" if duplicates else "")
        )
        return queued


# Singleton instance
sync_dispatcher = SyncTaskDispatcher()
