"""Shared async Redis client."""

from typing import Optional

from redis.asyncio import Redis

from quarry.core.config import settings


class RedisClient:
    """Lazily connected Redis client shared by the dispatcher and the lease."""

    def __init__(self):
        """Initialize without connecting."""
        self._client: Optional[Redis] = None

    @property
    def client(self) -> Redis:
        """Get the underlying client, creating it on first use."""
        if self._client is None:
            self._client = Redis(
                host=settings.REDIS_HOST,
                port=settings.REDIS_PORT,
                db=settings.REDIS_DB,
                password=settings.REDIS_PASSWORD,
                decode_responses=True,
            )
        return self._client

    async def close(self) -> None:
        """Close the connection pool."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None


redis_client = RedisClient()
