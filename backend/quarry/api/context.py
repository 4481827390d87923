"""API context carried through services."""

from dataclasses import dataclass

from quarry import schemas
from quarry.core.logging import ContextualLogger


@dataclass
class ApiContext:
    """Request-scoped context: who is calling and a logger tagged with it.

    Authentication happens upstream; the organization here is the one the
    gateway resolved for the caller.
    """

    request_id: str
    organization: schemas.Organization
    logger: ContextualLogger

    def __str__(self) -> str:
        return f"ApiContext(request_id={self.request_id}, organization_id={self.organization.id})"
