"""Object storage key conventions.

Every blob of a datastore lives under `datastores/{datastore_id}/`.
"""

from typing import Optional, Union
from uuid import UUID

from quarry.platform.storage.exceptions import UnsafePrefixError


class StoragePaths:
    """Key prefix builders."""

    DATASTORES_PREFIX = "datastores/"

    @classmethod
    def datastore_prefix(cls, datastore_id: Optional[Union[UUID, str]]) -> str:
        """Folder prefix of a datastore: datastores/{datastore_id}/.

        The trailing separator keeps `datastores/ab` from matching
        `datastores/abc`. An empty or missing id is refused, since the
        resulting prefix would cover every datastore in the bucket.

        Raises:
            UnsafePrefixError: If the id is empty or contains a separator
        """
        value = str(datastore_id).strip() if datastore_id is not None else ""
        if not value or value.lower() in ("none", "null", "undefined") or "/" in value:
            raise UnsafePrefixError(f"Refusing to build a datastore prefix from id {value!r}")
        return f"{cls.DATASTORES_PREFIX}{value}/"

    @classmethod
    def datastore_id_from_prefix(cls, prefix: str) -> Optional[str]:
        """Extract the datastore id from a `datastores/{id}/` prefix."""
        if not prefix.startswith(cls.DATASTORES_PREFIX):
            return None
        value = prefix[len(cls.DATASTORES_PREFIX) :].strip("/")
        return value or None
