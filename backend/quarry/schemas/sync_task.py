"""Sync task schema: the message consumed by the ingestion pipeline."""

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class SyncTask(BaseModel):
    """One queued instruction to (re)process a datasource.

    Serialized with camelCase keys: {"organizationId", "datasourceId", "priority"}.
    Lower priority values are served first.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    organization_id: UUID
    datasource_id: UUID
    priority: int = Field(2, ge=0)

    def to_message(self) -> str:
        """Serialize to the wire format."""
        return self.model_dump_json(by_alias=True)
