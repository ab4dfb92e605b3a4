"""Storage configuration for S3-compatible object storage.

Builds the remote storage configuration from application settings. Remote
storage is optional: when credentials or bucket are missing the document
storage service runs on the local fallback only.
"""

from dataclasses import dataclass
from typing import Optional

from config import Settings
from domain.errors import ConfigurationError


@dataclass
class StorageConfig:
    """Configuration for S3-compatible object storage.

    Attributes:
        endpoint_url: S3 endpoint URL (None for AWS S3, URL for MinIO/Spaces)
        access_key: S3 access key ID
        secret_key: S3 secret access key
        bucket_name: S3 bucket name for storing documents
        region: AWS region the bucket is expected to live in
        server_side_encryption: SSE algorithm applied on upload (None disables)
    """
    endpoint_url: Optional[str]
    access_key: str
    secret_key: str
    bucket_name: str
    region: str = "us-east-1"
    server_side_encryption: Optional[str] = "AES256"


def load_storage_config(settings: Settings) -> Optional[StorageConfig]:
    """Build storage configuration from settings.

    Environment Variables:
        AWS_ACCESS_KEY_ID / AWS_SECRET_ACCESS_KEY: Credentials (required for S3)
        AWS_S3_BUCKET_NAME: Bucket name (required for S3)
        AWS_REGION: Region (default: 'us-east-1')
        AWS_S3_ENDPOINT: Endpoint for S3-compatible services

    Returns:
        StorageConfig, or None when remote storage is not configured
    """
    if not (settings.AWS_ACCESS_KEY_ID and settings.AWS_SECRET_ACCESS_KEY and settings.AWS_S3_BUCKET_NAME):
        return None

    return StorageConfig(
        endpoint_url=settings.AWS_S3_ENDPOINT or None,
        access_key=settings.AWS_ACCESS_KEY_ID,
        secret_key=settings.AWS_SECRET_ACCESS_KEY,
        bucket_name=settings.AWS_S3_BUCKET_NAME,
        region=settings.AWS_REGION or "us-east-1",
        server_side_encryption=settings.S3_SERVER_SIDE_ENCRYPTION or None,
    )


def validate_storage_config(config: StorageConfig) -> None:
    """Validate storage configuration.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    if not config.access_key:
        raise ConfigurationError("Storage access_key is required")

    if not config.secret_key:
        raise ConfigurationError("Storage secret_key is required")

    if not config.bucket_name:
        raise ConfigurationError("Storage bucket_name is required")

    if config.endpoint_url:
        if not config.endpoint_url.startswith(("http://", "https://")):
            raise ConfigurationError(
                f"Invalid endpoint_url: {config.endpoint_url}. "
                "Must start with http:// or https://"
            )
    elif not config.region:
        raise ConfigurationError("AWS region is required when using S3 (AWS_S3_ENDPOINT not set)")
