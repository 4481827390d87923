"""Models for the database."""

from quarry.models._base import Base
from quarry.models.datasource import Datasource
from quarry.models.datastore import Datastore
from quarry.models.organization import Organization
from quarry.models.usage import Usage

__all__ = ["Base", "Datasource", "Datastore", "Organization", "Usage"]
