"""Storage integration module for Quarry."""

from quarry.platform.storage.exceptions import (
    StorageConnectionError,
    StorageException,
    UnsafePrefixError,
)
from quarry.platform.storage.object_store import S3ObjectStore, object_store
from quarry.platform.storage.paths import StoragePaths

__all__ = [
    "S3ObjectStore",
    "StorageConnectionError",
    "StorageException",
    "StoragePaths",
    "UnsafePrefixError",
    "object_store",
]
