"""Datasource model."""

from datetime import datetime
from typing import TYPE_CHECKING, List, Optional
from uuid import UUID

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from quarry.core.shared_models import DatasourceStatus
from quarry.models._base import OrganizationBase

if TYPE_CHECKING:
    from quarry.models.datastore import Datastore


class Datasource(OrganizationBase):
    """One ingestible content source with a synchronization status.

    organization_id is denormalized from the owning datastore and never changes.
    group_id points at the parent datasource for hierarchical sources (e.g. the
    pages discovered by a web crawl).
    """

    __tablename__ = "datasource"

    datastore_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("datastore.id", ondelete="CASCADE"), nullable=False, index=True
    )
    group_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid, ForeignKey("datasource.id", ondelete="CASCADE"), nullable=True, index=True
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=DatasourceStatus.UNSYNCED.value
    )
    last_synch: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    nb_tokens: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    nb_chunks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    datastore: Mapped["Datastore"] = relationship(
        "Datastore", back_populates="datasources", lazy="noload"
    )
    children: Mapped[List["Datasource"]] = relationship(
        "Datasource", lazy="noload", passive_deletes=True
    )

    __table_args__ = (
        Index("ix_datasource_datastore_group_status", "datastore_id", "group_id", "status"),
    )
