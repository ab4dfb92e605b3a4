"""S3 Storage Adapter - Implementation of ObjectStoragePort using boto3.

Provides S3-compatible storage operations for AWS S3, MinIO, DigitalOcean
Spaces and other S3-compatible services. Objects are written with
server-side encryption and read back through presigned SigV4 URLs.

Architecture: Hexagonal - Adapter implementation in infrastructure layer
"""

import logging
from typing import Dict, List, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from domain.documents.ports.object_storage_port import (
    AccessCheckResult,
    ObjectInfo,
    ObjectStoragePort,
    RetrievedObject,
    StoredObject,
)
from domain.errors import StorageError

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}
_REDIRECT_CODES = {"301", "PermanentRedirect", "AuthorizationHeaderMalformed"}


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "Unknown")


def _bucket_region_from_error(error: ClientError) -> Optional[str]:
    """Extract the bucket's real region from a redirect/authorization error."""
    headers = error.response.get("ResponseMetadata", {}).get("HTTPHeaders", {}) or {}
    region = headers.get("x-amz-bucket-region")
    if region:
        return region
    return error.response.get("Error", {}).get("Region")


def _to_s3_metadata(metadata: Optional[Dict[str, str]]) -> Dict[str, str]:
    """User metadata travels as x-amz-meta-* headers: lowercase, hyphenated names."""
    return {k.lower().replace("_", "-"): str(v) for k, v in (metadata or {}).items()}


def _from_s3_metadata(metadata: Optional[Dict[str, str]]) -> Dict[str, str]:
    return {k.replace("-", "_"): v for k, v in (metadata or {}).items()}


class S3StorageAdapter(ObjectStoragePort):
    """S3-compatible storage adapter using boto3.

    Example:
        config = load_storage_config(get_settings())
        storage = S3StorageAdapter(
            endpoint_url=config.endpoint_url,
            access_key=config.access_key,
            secret_key=config.secret_key,
            bucket_name=config.bucket_name,
            region=config.region,
        )
        stored = await storage.put_object(key, data, "application/pdf")
    """

    storage_type = "s3"

    def __init__(
        self,
        endpoint_url: Optional[str],
        access_key: str,
        secret_key: str,
        bucket_name: str,
        region: str = "us-east-1",
        server_side_encryption: Optional[str] = "AES256",
    ):
        """Initialize S3 storage adapter.

        Args:
            endpoint_url: S3 endpoint URL (None for AWS S3)
            access_key: S3 access key ID
            secret_key: S3 secret access key
            bucket_name: S3 bucket name
            region: AWS region the bucket is expected in
            server_side_encryption: SSE algorithm for uploads (None disables)

        Raises:
            StorageError: If S3 client initialization fails
        """
        try:
            self.s3_client = boto3.client(
                "s3",
                endpoint_url=endpoint_url,
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                region_name=region,
                config=BotoConfig(
                    signature_version="s3v4",
                    s3={"addressing_style": "path"},
                ),
            )
        except BotoCoreError as e:
            raise StorageError(f"Failed to initialize S3 client: {e}")

        self.bucket_name = bucket_name
        self.region = region
        self.endpoint_url = endpoint_url
        self.server_side_encryption = server_side_encryption

        logger.info(
            f"Initialized S3 storage adapter: bucket={bucket_name}, "
            f"endpoint={endpoint_url or 'AWS S3'}, region={region}"
        )

    async def put_object(
        self,
        storage_key: str,
        data: bytes,
        content_type: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> StoredObject:
        params = {
            "Bucket": self.bucket_name,
            "Key": storage_key,
            "Body": data,
            "ContentType": content_type,
            "Metadata": _to_s3_metadata(metadata),
        }
        if self.server_side_encryption:
            params["ServerSideEncryption"] = self.server_side_encryption

        try:
            response = self.s3_client.put_object(**params)
        except ClientError as e:
            error_code = _error_code(e)
            logger.error(
                f"S3 upload failed: storage_key={storage_key}, "
                f"error={error_code}, message={e}"
            )
            raise StorageError(f"Failed to upload file: {error_code}", error_code=error_code)
        except BotoCoreError as e:
            logger.error(f"S3 upload failed: storage_key={storage_key}, message={e}")
            raise StorageError(f"Failed to upload file: {e}")

        logger.info(
            f"Uploaded file to S3: storage_key={storage_key}, "
            f"size={len(data)}, content_type={content_type}"
        )
        return StoredObject(
            storage_key=storage_key,
            size_bytes=len(data),
            content_type=content_type,
            etag=response.get("ETag"),
            version_id=response.get("VersionId"),
        )

    async def get_object(self, storage_key: str) -> RetrievedObject:
        try:
            response = self.s3_client.get_object(
                Bucket=self.bucket_name,
                Key=storage_key,
            )
            data = response["Body"].read()
        except ClientError as e:
            error_code = _error_code(e)
            if error_code in _NOT_FOUND_CODES:
                logger.warning(f"File not found: storage_key={storage_key}")
                raise FileNotFoundError(f"File not found: {storage_key}")
            logger.error(
                f"S3 retrieval failed: storage_key={storage_key}, "
                f"error={error_code}"
            )
            raise StorageError(f"Failed to retrieve file: {error_code}", error_code=error_code)
        except BotoCoreError as e:
            logger.error(f"S3 retrieval failed: storage_key={storage_key}, message={e}")
            raise StorageError(f"Failed to retrieve file: {e}")

        logger.info(f"Retrieved file: storage_key={storage_key}")
        return RetrievedObject(
            storage_key=storage_key,
            data=data,
            content_type=response.get("ContentType") or "application/octet-stream",
            metadata=_from_s3_metadata(response.get("Metadata")),
        )

    async def delete_object(self, storage_key: str) -> bool:
        if not await self.object_exists(storage_key):
            logger.info(f"File not found for deletion: storage_key={storage_key}")
            return False

        try:
            self.s3_client.delete_object(
                Bucket=self.bucket_name,
                Key=storage_key,
            )
        except ClientError as e:
            error_code = _error_code(e)
            logger.error(
                f"S3 deletion failed: storage_key={storage_key}, "
                f"error={error_code}"
            )
            raise StorageError(f"Failed to delete file: {error_code}", error_code=error_code)
        except BotoCoreError as e:
            raise StorageError(f"Failed to delete file: {e}")

        logger.info(f"Deleted S3 object: storage_key={storage_key}")
        return True

    async def object_exists(self, storage_key: str) -> bool:
        """Check if an object exists in S3 (HEAD request)."""
        try:
            self.s3_client.head_object(
                Bucket=self.bucket_name,
                Key=storage_key,
            )
            return True
        except ClientError as e:
            error_code = _error_code(e)
            if error_code in _NOT_FOUND_CODES:
                return False
            logger.warning(
                f"Error checking file existence: storage_key={storage_key}, "
                f"error={error_code}"
            )
            raise StorageError(f"Failed to check file existence: {error_code}", error_code=error_code)
        except BotoCoreError as e:
            raise StorageError(f"Failed to check file existence: {e}")

    async def list_objects(self, prefix: str) -> List[ObjectInfo]:
        files: List[ObjectInfo] = []
        try:
            paginator = self.s3_client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix):
                for item in page.get("Contents", []):
                    files.append(ObjectInfo(
                        key=item["Key"],
                        size=item.get("Size"),
                        last_modified=item.get("LastModified"),
                        etag=item.get("ETag"),
                    ))
        except ClientError as e:
            error_code = _error_code(e)
            logger.error(f"S3 listing failed: prefix={prefix}, error={error_code}")
            raise StorageError(f"Failed to list files: {error_code}", error_code=error_code)
        except BotoCoreError as e:
            raise StorageError(f"Failed to list files: {e}")

        return files

    async def generate_signed_url(
        self,
        storage_key: str,
        expires_in_seconds: int = 3600,
    ) -> str:
        if not await self.object_exists(storage_key):
            raise FileNotFoundError(f"File not found: {storage_key}")

        try:
            url = self.s3_client.generate_presigned_url(
                "get_object",
                Params={
                    "Bucket": self.bucket_name,
                    "Key": storage_key,
                },
                ExpiresIn=expires_in_seconds,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(
                f"Presigned URL generation failed: storage_key={storage_key}, error={e}"
            )
            raise StorageError(f"Failed to generate presigned URL: {e}")

        logger.info(
            f"Generated presigned URL: storage_key={storage_key}, "
            f"expires_in={expires_in_seconds}s"
        )
        return url

    async def check_access(self) -> AccessCheckResult:
        """Verify the bucket exists, is readable, and lives in the configured region.

        A region mismatch is reported with the bucket's actual region; the
        adapter never retries against another region on its own.
        """
        try:
            response = self.s3_client.head_bucket(Bucket=self.bucket_name)
        except ClientError as e:
            error_code = _error_code(e)
            if error_code in _REDIRECT_CODES:
                bucket_region = _bucket_region_from_error(e)
                return AccessCheckResult(
                    has_access=False,
                    error=self._region_mismatch_message(bucket_region),
                    bucket_region=bucket_region,
                )
            if error_code in {"404", "NoSuchBucket", "NotFound"}:
                return AccessCheckResult(
                    has_access=False,
                    error=(
                        f"NoSuchBucket: Bucket '{self.bucket_name}' does not exist. "
                        f"Create it first or update AWS_S3_BUCKET_NAME."
                    ),
                )
            if error_code in {"403", "AccessDenied", "Forbidden"}:
                return AccessCheckResult(
                    has_access=False,
                    error=(
                        f"AccessDenied: Access denied to bucket '{self.bucket_name}'. "
                        f"Check IAM permissions for these credentials."
                    ),
                )
            return AccessCheckResult(
                has_access=False,
                error=f"{error_code}: Failed to verify bucket '{self.bucket_name}'",
            )
        except BotoCoreError as e:
            return AccessCheckResult(has_access=False, error=f"ConnectionError: {e}")

        headers = response.get("ResponseMetadata", {}).get("HTTPHeaders", {}) or {}
        bucket_region = headers.get("x-amz-bucket-region")
        if self.endpoint_url is None and bucket_region and bucket_region != self.region:
            return AccessCheckResult(
                has_access=False,
                error=self._region_mismatch_message(bucket_region),
                bucket_region=bucket_region,
            )

        logger.info(f"Verified bucket access: {self.bucket_name}")
        return AccessCheckResult(has_access=True, bucket_region=bucket_region or self.region)

    def _region_mismatch_message(self, bucket_region: Optional[str]) -> str:
        if bucket_region:
            return (
                f"PermanentRedirect: Bucket '{self.bucket_name}' is in region "
                f"'{bucket_region}' but the configured region is '{self.region}'. "
                f"Set AWS_REGION={bucket_region} and re-run the access check."
            )
        return (
            f"PermanentRedirect: Bucket '{self.bucket_name}' must be addressed using a "
            f"different endpoint than region '{self.region}'. Check AWS_REGION."
        )
