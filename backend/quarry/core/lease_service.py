"""Per-resource advisory leases backed by Redis.

A lease is a Redis key holding a random token with an expiry. Only the holder
of the token can release it, so a lease that expired and was taken over by
another caller is never released by the previous holder.
"""

import secrets
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional
from uuid import UUID

from redis.exceptions import RedisError

from quarry.core.config import settings
from quarry.core.exceptions import ConflictException
from quarry.core.logging import ContextualLogger
from quarry.core.logging import logger as default_logger
from quarry.core.redis_client import redis_client


class LeaseService:
    """Acquires and releases advisory leases on datasources and datastores.

    Redis failures do not block the operation: the lease is skipped and an
    error is logged, the same way the rate limiter lets requests through.
    """

    KEY_PREFIX = "lease"

    # Delete the key only if it still holds our token
    RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""

    def __init__(self, ttl_seconds: Optional[int] = None):
        """Initialize the lease service.

        Args:
            ttl_seconds: Lease expiry, defaults to settings.LEASE_TTL_SECONDS
        """
        self.ttl_seconds = ttl_seconds or settings.LEASE_TTL_SECONDS

    def _get_redis_key(self, resource: str, resource_id: UUID) -> str:
        """Build the Redis key: lease:{resource}:{resource_id}."""
        return f"{self.KEY_PREFIX}:{resource}:{resource_id}"

    async def acquire(
        self,
        resource: str,
        resource_id: UUID,
        logger: Optional[ContextualLogger] = None,
    ) -> Optional[str]:
        """Acquire the lease.

        Args:
            resource: Resource kind, e.g. "datasource"
            resource_id: Resource ID
            logger: Optional contextual logger

        Returns:
            The lease token, or None when Redis was unavailable

        Raises:
            ConflictException: If another caller holds the lease
        """
        log = logger or default_logger
        key = self._get_redis_key(resource, resource_id)
        token = secrets.token_hex(16)

        try:
            acquired = await redis_client.client.set(
                key, token, nx=True, px=int(self.ttl_seconds * 1000)
            )
        except RedisError as e:
            log.error(f"Redis error while acquiring lease {key}: {e}. Proceeding without lease.")
            return None

        if not acquired:
            log.warning(f"Lease {key} is held by another operation")
            raise ConflictException(
                f"Another operation is already in progress on {resource} {resource_id}"
            )

        log.debug(f"Acquired lease {key}")
        return token

    async def release(
        self,
        resource: str,
        resource_id: UUID,
        token: Optional[str],
        logger: Optional[ContextualLogger] = None,
    ) -> bool:
        """Release the lease if we still own it.

        Returns:
            True if the key was deleted
        """
        if token is None:
            return False

        log = logger or default_logger
        key = self._get_redis_key(resource, resource_id)
        try:
            released = await redis_client.client.eval(self.RELEASE_SCRIPT, 1, key, token)
        except RedisError as e:
            log.error(f"Redis error while releasing lease {key}: {e}. It will expire on its own.")
            return False

        if not released:
            log.warning(f"Lease {key} expired before release")
        return bool(released)

    @asynccontextmanager
    async def hold(
        self,
        resource: str,
        resource_id: UUID,
        logger: Optional[ContextualLogger] = None,
    ) -> AsyncIterator[Optional[str]]:
        """Hold the lease for the duration of the block."""
        token = await self.acquire(resource, resource_id, logger=logger)
        try:
            yield token
        finally:
            await self.release(resource, resource_id, token, logger=logger)


# Singleton instance
lease_service = LeaseService()
