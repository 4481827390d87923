"""Unit of work: groups several writes into one commit."""

from types import TracebackType
from typing import Optional, Type

from sqlalchemy.ext.asyncio import AsyncSession


class UnitOfWork:
    """Commits on clean exit, rolls back when the block raises (or is cancelled).

    Usage:
        async with UnitOfWork(session):
            await crud.datasource.remove_by_datastore(session, datastore_id=datastore_id)
            await crud.datastore.remove(session, id=datastore_id)
    """

    def __init__(self, session: AsyncSession):
        """Initialize with the session the writes go through."""
        self.session = session
        self._committed = False

    async def __aenter__(self) -> "UnitOfWork":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_value: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        if exc_type is None and not self._committed:
            await self.commit()
        elif exc_type is not None:
            await self.rollback()

    async def commit(self) -> None:
        """Commit the transaction."""
        await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        """Roll back the transaction."""
        await self.session.rollback()
