"""CRUD operations for the database models."""

from quarry.crud.crud_datasource import datasource
from quarry.crud.crud_datastore import datastore
from quarry.crud.crud_organization import organization, usage

__all__ = ["datasource", "datastore", "organization", "usage"]
