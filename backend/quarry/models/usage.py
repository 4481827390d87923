"""Usage model."""

from datetime import datetime
from typing import TYPE_CHECKING, Optional
from uuid import UUID

from sqlalchemy import BigInteger, DateTime, ForeignKey, Integer, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from quarry.models._base import Base

if TYPE_CHECKING:
    from quarry.models.organization import Organization


class Usage(Base):
    """Usage snapshot of one organization.

    storage_bytes, stored_tokens and datasources are derived values, rewritten
    by the usage service from the remaining datasource rows. processed_documents
    is a consumption counter owned by the ingestion pipeline.
    """

    __tablename__ = "usage"

    organization_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("organization.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    storage_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    stored_tokens: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    datasources: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processed_documents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    recomputed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    organization: Mapped["Organization"] = relationship(
        "Organization", back_populates="usage", lazy="noload"
    )
