"""S3-compatible object storage for datastore blobs.

Supports AWS S3, MinIO, LocalStack, Cloudflare R2, or any S3 API-compatible service.
The object store is not transactional: a prefix deletion that fails halfway
leaves the objects it already removed deleted.
"""

from typing import List, Optional

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

from quarry.core.config import settings
from quarry.core.logging import ContextualLogger
from quarry.core.logging import logger as default_logger
from quarry.platform.storage.exceptions import (
    StorageConnectionError,
    StorageException,
    UnsafePrefixError,
)
from quarry.platform.storage.paths import StoragePaths


class S3ObjectStore:
    """Object store client scoped to one bucket.

    Data Organization:
        {bucket}/datastores/{datastore_id}/
            └── ...                 ← raw and derived blobs of the datastore's datasources
    """

    def __init__(
        self,
        bucket_name: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        region: Optional[str] = None,
    ):
        """Initialize the object store. Unset arguments come from settings."""
        self.bucket_name = bucket_name or settings.S3_BUCKET_NAME
        self._endpoint_url = endpoint_url or settings.S3_ENDPOINT_URL
        self._access_key_id = aws_access_key_id or settings.AWS_ACCESS_KEY_ID
        self._secret_access_key = aws_secret_access_key or settings.AWS_SECRET_ACCESS_KEY
        self._region = region or settings.AWS_REGION
        self.session = aioboto3.Session()

    def _client(self):
        """Create an S3 client context manager."""
        return self.session.client(
            "s3",
            endpoint_url=self._endpoint_url,
            aws_access_key_id=self._access_key_id,
            aws_secret_access_key=self._secret_access_key,
            region_name=self._region,
        )

    @staticmethod
    def _check_prefix(prefix: str) -> None:
        """Only whole datastore folders may be deleted."""
        if (
            not prefix.startswith(StoragePaths.DATASTORES_PREFIX)
            or not prefix.endswith("/")
            or StoragePaths.datastore_id_from_prefix(prefix) is None
        ):
            raise UnsafePrefixError(f"Refusing to delete objects under prefix {prefix!r}")

    async def delete_prefix(self, prefix: str, logger: Optional[ContextualLogger] = None) -> int:
        """Delete every object under a datastore folder prefix.

        Lists the prefix page by page and removes each page with one batched
        delete (up to 1000 keys per request).

        Args:
            prefix: Folder prefix, as built by StoragePaths.datastore_prefix
            logger: Optional contextual logger

        Returns:
            Number of objects deleted

        Raises:
            UnsafePrefixError: If the prefix is not a single datastore folder
            StorageException: If listing or deleting fails
        """
        self._check_prefix(prefix)
        log = logger or default_logger

        total_deleted = 0
        try:
            async with self._client() as s3:
                paginator = s3.get_paginator("list_objects_v2")
                async for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix):
                    if "Contents" not in page:
                        continue

                    objects_to_delete = [{"Key": obj["Key"]} for obj in page["Contents"]]
                    response = await s3.delete_objects(
                        Bucket=self.bucket_name,
                        Delete={"Objects": objects_to_delete, "Quiet": True},
                    )
                    errors = response.get("Errors") or []
                    if errors:
                        raise StorageException(
                            f"Failed to delete {len(errors)} object(s) under {prefix}: "
                            f"{errors[0].get('Key')} ({errors[0].get('Code')})"
                        )
                    total_deleted += len(objects_to_delete)
        except (ClientError, BotoCoreError) as e:
            log.error(f"Failed to delete objects under {prefix}: {e}", exc_info=True)
            raise StorageConnectionError(f"Object storage error under {prefix}: {e}") from e

        log.info(f"Deleted {total_deleted} objects under {prefix} from {self.bucket_name}")
        return total_deleted

    async def list_datastore_prefixes(self) -> List[str]:
        """List the top-level datastore folders (`datastores/{id}/`)."""
        prefixes: List[str] = []
        try:
            async with self._client() as s3:
                paginator = s3.get_paginator("list_objects_v2")
                async for page in paginator.paginate(
                    Bucket=self.bucket_name,
                    Prefix=StoragePaths.DATASTORES_PREFIX,
                    Delimiter="/",
                ):
                    for common_prefix in page.get("CommonPrefixes", []):
                        prefixes.append(common_prefix["Prefix"])
        except (ClientError, BotoCoreError) as e:
            raise StorageConnectionError(f"Failed to list datastore folders: {e}") from e
        return sorted(prefixes)


# Singleton instance
object_store = S3ObjectStore()
