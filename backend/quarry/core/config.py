"""Configuration settings for Quarry.

Settings are read from the environment (or a local `.env` file) once at import
time and exposed through the module-level `settings` singleton.
"""

from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings.

    Attributes:
    ----------
        PROJECT_NAME (str): The name of the project.
        LOCAL_DEVELOPMENT (bool): Whether the application runs on a developer machine.
        LOG_LEVEL (str): Root log level.
        POSTGRES_HOST (str): The PostgreSQL server hostname.
        POSTGRES_PORT (int): The PostgreSQL server port.
        POSTGRES_USER (str): The PostgreSQL username.
        POSTGRES_PASSWORD (str): The PostgreSQL password.
        POSTGRES_DB (str): The PostgreSQL database name.
        SQLALCHEMY_ASYNC_DATABASE_URI (Optional[str]): Full async URI, derived when unset.
        REDIS_HOST (str): Redis hostname used for the sync queue and leases.
        REDIS_PORT (int): Redis port.
        REDIS_DB (int): Redis logical database.
        REDIS_PASSWORD (Optional[str]): Redis password.
        S3_BUCKET_NAME (str): Bucket holding datastore blobs.
        S3_ENDPOINT_URL (Optional[str]): Custom endpoint (MinIO, LocalStack, R2).
        AWS_ACCESS_KEY_ID (Optional[str]): Object storage access key.
        AWS_SECRET_ACCESS_KEY (Optional[str]): Object storage secret key.
        AWS_REGION (str): Object storage region.
        SYNC_QUEUE_NAME (str): Redis key of the sync task queue.
        SYNC_DISPATCH_MAX_ATTEMPTS (int): Attempts before a dispatch is reported as failed.
        DEFAULT_SYNC_PRIORITY (int): Priority used when the caller gives none.
        DELETION_MAX_WAIT_SECONDS (float): Maximum wait to acquire the deletion transaction.
        DELETION_TIMEOUT_SECONDS (float): Maximum total duration of the deletion transaction.
        LEASE_TTL_SECONDS (int): Expiry of per-id advisory leases.
        RECONCILE_STALE_DELETING_SECONDS (int): Age after which a `deleting` datastore is retried.
    """

    PROJECT_NAME: str = "Quarry"
    LOCAL_DEVELOPMENT: bool = False
    LOG_LEVEL: str = "INFO"

    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "quarry"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = "quarry"
    SQLALCHEMY_ASYNC_DATABASE_URI: Optional[str] = None

    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: Optional[str] = None

    S3_BUCKET_NAME: str = "quarry"
    S3_ENDPOINT_URL: Optional[str] = None
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    AWS_REGION: str = "us-east-1"

    SYNC_QUEUE_NAME: str = "load-datasource"
    SYNC_DISPATCH_MAX_ATTEMPTS: int = 3
    DEFAULT_SYNC_PRIORITY: int = 2

    DELETION_MAX_WAIT_SECONDS: float = 10.0
    DELETION_TIMEOUT_SECONDS: float = 60.0
    LEASE_TTL_SECONDS: int = 90
    RECONCILE_STALE_DELETING_SECONDS: int = 3600

    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", case_sensitive=True, validate_default=True
    )

    @field_validator("SQLALCHEMY_ASYNC_DATABASE_URI", mode="before")
    @classmethod
    def assemble_db_connection(cls, v: Optional[str], info) -> str:
        """Build the async PostgreSQL URI from its parts unless one is given.

        Args:
        ----
            v (Optional[str]): The explicitly configured URI.
            info: Validation info carrying the already-parsed fields.

        Returns:
        -------
            str: The connection string.
        """
        if isinstance(v, str) and v:
            return v
        data = info.data
        return (
            f"postgresql+asyncpg://{data.get('POSTGRES_USER')}:{data.get('POSTGRES_PASSWORD')}"
            f"@{data.get('POSTGRES_HOST')}:{data.get('POSTGRES_PORT')}/{data.get('POSTGRES_DB')}"
        )


settings = Settings()
