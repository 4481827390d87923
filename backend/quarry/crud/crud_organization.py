"""CRUD operations for organizations and their usage."""

from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from quarry.models.organization import Organization
from quarry.models.usage import Usage


class CRUDOrganization:
    """CRUD operations for organizations."""

    def __init__(self):
        """Initialize the CRUD object."""
        self.model = Organization

    async def get(self, db: AsyncSession, id: UUID) -> Optional[Organization]:
        """Get organization by ID."""
        result = await db.execute(select(self.model).where(self.model.id == id))
        return result.scalar_one_or_none()


class CRUDUsage:
    """CRUD operations for usage rows (one per organization)."""

    def __init__(self):
        """Initialize the CRUD object."""
        self.model = Usage

    async def get_by_organization(
        self, db: AsyncSession, *, organization_id: UUID
    ) -> Optional[Usage]:
        """Get the usage row of an organization."""
        result = await db.execute(
            select(self.model)
            .where(self.model.organization_id == organization_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def upsert(
        self,
        db: AsyncSession,
        *,
        organization_id: UUID,
        values: Dict[str, Any],
    ) -> Usage:
        """Overwrite the given usage columns, creating the row when missing.

        Columns not in `values` keep their stored value.

        Args:
            db: Database session
            organization_id: Organization ID
            values: Column values to write

        Returns:
            The usage row
        """
        db_obj = await self.get_by_organization(db, organization_id=organization_id)
        if db_obj is None:
            db_obj = Usage(
                organization_id=organization_id,
                storage_bytes=0,
                stored_tokens=0,
                datasources=0,
                processed_documents=0,
            )
            db.add(db_obj)

        for field, value in values.items():
            setattr(db_obj, field, value)

        await db.commit()
        await db.refresh(db_obj)

        return db_obj


# Singleton instances
organization = CRUDOrganization()
usage = CRUDUsage()
