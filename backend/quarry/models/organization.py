"""Organization model."""

from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from quarry.models._base import Base

if TYPE_CHECKING:
    from quarry.models.datastore import Datastore
    from quarry.models.usage import Usage


class Organization(Base):
    """Organization model."""

    __tablename__ = "organization"

    name: Mapped[str] = mapped_column(String, nullable=False)
    current_plan: Mapped[str] = mapped_column(String(32), nullable=False, default="trial")

    usage: Mapped[Optional["Usage"]] = relationship(
        "Usage", back_populates="organization", lazy="noload", uselist=False
    )
    datastores: Mapped[List["Datastore"]] = relationship(
        "Datastore",
        back_populates="organization",
        lazy="noload",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
