"""Datastore model."""

from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from quarry.core.shared_models import DatastoreStatus, DatastoreVisibility
from quarry.models._base import OrganizationBase

if TYPE_CHECKING:
    from quarry.models.datasource import Datasource
    from quarry.models.organization import Organization


class Datastore(OrganizationBase):
    """Named collection of datasources owned by one organization."""

    __tablename__ = "datastore"

    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    visibility: Mapped[str] = mapped_column(
        String(16), nullable=False, default=DatastoreVisibility.PRIVATE.value
    )
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=DatastoreStatus.ACTIVE.value, index=True
    )

    organization: Mapped["Organization"] = relationship(
        "Organization", back_populates="datastores", lazy="noload"
    )
    datasources: Mapped[List["Datasource"]] = relationship(
        "Datasource",
        back_populates="datastore",
        lazy="noload",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
