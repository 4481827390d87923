"""Shared enums used by models, schemas and services."""

from enum import Enum


class DatasourceStatus(str, Enum):
    """Synchronization status of a datasource."""

    UNSYNCED = "unsynced"
    PENDING = "pending"
    RUNNING = "running"
    SYNCED = "synced"
    ERROR = "error"


# Statuses that mean a sync is queued or in flight
ACTIVE_DATASOURCE_STATUSES = (DatasourceStatus.PENDING, DatasourceStatus.RUNNING)


class DatasourceType(str, Enum):
    """Kind of content a datasource ingests."""

    FILE = "file"
    TEXT = "text"
    WEB_PAGE = "web_page"
    WEB_SITE = "web_site"
    GOOGLE_DRIVE = "google_drive"
    NOTION = "notion"
    API_FEED = "api_feed"


class DatastoreVisibility(str, Enum):
    """Who may query a datastore."""

    PRIVATE = "private"
    PUBLIC = "public"


class DatastoreStatus(str, Enum):
    """Lifecycle status of a datastore.

    DELETING is written durably before any destructive step so that an
    interrupted deletion can be found and finished by the reconciliation sweep.
    """

    ACTIVE = "active"
    DELETING = "deleting"
