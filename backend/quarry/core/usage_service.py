"""Usage recomputation.

Stored usage (bytes, tokens, datasource count) is never incremented or
decremented. It is recomputed from the rows that currently exist, which makes
the operation idempotent and safe to retry.
"""

from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from quarry import crud, schemas
from quarry.core.datetime_utils import utc_now_naive
from quarry.core.logging import ContextualLogger
from quarry.core.logging import logger as default_logger


class UsageService:
    """Reads and recomputes organization usage snapshots."""

    async def get_usage(self, db: AsyncSession, organization_id: UUID) -> schemas.Usage:
        """Get the stored usage snapshot. A missing row means zero usage."""
        db_usage = await crud.usage.get_by_organization(db, organization_id=organization_id)
        if db_usage is None:
            return schemas.Usage()
        return schemas.Usage.model_validate(db_usage)

    async def recompute(
        self,
        db: AsyncSession,
        organization_id: UUID,
        logger: Optional[ContextualLogger] = None,
    ) -> schemas.UsageSnapshot:
        """Recompute and persist the usage of an organization.

        processed_documents is written by the ingestion pipeline and kept as is.

        Args:
            db: Database session
            organization_id: Organization to recompute
            logger: Optional contextual logger

        Returns:
            The persisted snapshot
        """
        log = logger or default_logger.with_context(component="usage")

        storage_bytes, stored_tokens, datasources = await crud.datasource.get_usage_totals(
            db, organization_id=organization_id
        )
        db_usage = await crud.usage.upsert(
            db,
            organization_id=organization_id,
            values={
                "storage_bytes": storage_bytes,
                "stored_tokens": stored_tokens,
                "datasources": datasources,
                "recomputed_at": utc_now_naive(),
            },
        )

        log.info(
            f"Recomputed usage for organization {organization_id}: "
            f"{storage_bytes} bytes, {stored_tokens} tokens, {datasources} datasources"
        )
        return schemas.UsageSnapshot.model_validate(db_usage)


# Singleton instance
usage_service = UsageService()
