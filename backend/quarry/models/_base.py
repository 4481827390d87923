"""Declarative base and shared columns for all models."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import DateTime, ForeignKey, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column

from quarry.core.datetime_utils import utc_now_naive


class _Declarative(DeclarativeBase):
    pass


class Base(_Declarative):
    """Base class with id and audit timestamps."""

    __abstract__ = True

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive, nullable=False)
    modified_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now_naive, onupdate=utc_now_naive, nullable=False
    )


class OrganizationBase(Base):
    """Base class for rows owned by an organization."""

    __abstract__ = True

    @declared_attr
    def organization_id(cls) -> Mapped[UUID]:
        return mapped_column(
            Uuid, ForeignKey("organization.id", ondelete="CASCADE"), nullable=False, index=True
        )
