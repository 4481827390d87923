"""Storage exceptions for Quarry.

All storage-related exceptions inherit from StorageException.
"""


class StorageException(Exception):
    """Base exception for storage operations."""

    pass


class StorageConnectionError(StorageException):
    """Raised when storage connection fails."""

    pass


class UnsafePrefixError(StorageException):
    """Raised when a deletion prefix could match more than one datastore folder."""

    pass
