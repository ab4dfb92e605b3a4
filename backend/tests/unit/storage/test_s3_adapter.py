"""Unit tests for S3 Storage Adapter using moto

Covers put/get/delete/exists/list, presigned URLs and the bucket access
check including region mismatch diagnostics.
"""

from unittest.mock import patch

import boto3
import pytest
from botocore.exceptions import ClientError
from moto import mock_aws

from domain.errors import StorageError
from infrastructure.storage.s3_storage_adapter import S3StorageAdapter

# Test constants
TEST_BUCKET = "test-staffhub-bucket"
TEST_REGION = "us-east-1"
TEST_ACCESS_KEY = "test-access-key"
TEST_SECRET_KEY = "test-secret-key"


def _client_error(code: str, operation: str = "HeadBucket", headers=None, status: int = 400):
    return ClientError(
        {
            "Error": {"Code": code, "Message": code},
            "ResponseMetadata": {"HTTPStatusCode": status, "HTTPHeaders": headers or {}},
        },
        operation,
    )


def _adapter(bucket: str = TEST_BUCKET, region: str = TEST_REGION) -> S3StorageAdapter:
    return S3StorageAdapter(
        endpoint_url=None,  # AWS S3 (moto mocks this)
        access_key=TEST_ACCESS_KEY,
        secret_key=TEST_SECRET_KEY,
        bucket_name=bucket,
        region=region,
    )


@pytest.fixture
def storage_adapter():
    """Create S3StorageAdapter instance with mock S3"""
    with mock_aws():
        s3_client = boto3.client(
            "s3",
            region_name=TEST_REGION,
            aws_access_key_id=TEST_ACCESS_KEY,
            aws_secret_access_key=TEST_SECRET_KEY,
        )
        s3_client.create_bucket(Bucket=TEST_BUCKET)

        yield _adapter()


class TestS3AdapterInitialization:
    """Test S3 adapter initialization"""

    def test_adapter_creation_success(self):
        with mock_aws():
            adapter = _adapter()
            assert adapter.bucket_name == TEST_BUCKET
            assert adapter.region == TEST_REGION
            assert adapter.storage_type == "s3"

    def test_adapter_with_minio_endpoint(self):
        with mock_aws():
            adapter = S3StorageAdapter(
                endpoint_url="http://localhost:9000",
                access_key=TEST_ACCESS_KEY,
                secret_key=TEST_SECRET_KEY,
                bucket_name=TEST_BUCKET,
            )
            assert adapter.endpoint_url == "http://localhost:9000"


class TestObjects:
    """Test object storage operations"""

    @pytest.mark.asyncio
    async def test_put_and_get_round_trip(self, storage_adapter):
        data = b"%PDF-1.4 nursing license"
        stored = await storage_adapter.put_object(
            "employees/1/licenses/rn.pdf", data, "application/pdf", {"subject_id": "1"}
        )

        assert stored.size_bytes == len(data)
        assert stored.etag

        obj = await storage_adapter.get_object("employees/1/licenses/rn.pdf")
        assert obj.data == data
        assert obj.content_type == "application/pdf"
        assert obj.metadata == {"subject_id": "1"}

    @pytest.mark.asyncio
    async def test_metadata_names_stored_hyphenated(self, storage_adapter):
        await storage_adapter.put_object(
            "compliance/loc-1/fire_inspection/v2/fire.pdf",
            b"%PDF v2",
            "application/pdf",
            {"document_type": "fire_inspection", "previous_version_key": "compliance/v1.pdf", "version_id": "v2_ab"},
        )

        head = storage_adapter.s3_client.head_object(
            Bucket=TEST_BUCKET, Key="compliance/loc-1/fire_inspection/v2/fire.pdf"
        )
        assert head["Metadata"]["document-type"] == "fire_inspection"

        obj = await storage_adapter.get_object("compliance/loc-1/fire_inspection/v2/fire.pdf")
        assert obj.metadata == {
            "document_type": "fire_inspection",
            "previous_version_key": "compliance/v1.pdf",
            "version_id": "v2_ab",
        }

    @pytest.mark.asyncio
    async def test_put_applies_server_side_encryption(self, storage_adapter):
        await storage_adapter.put_object("documents/a.txt", b"x", "text/plain")
        head = storage_adapter.s3_client.head_object(Bucket=TEST_BUCKET, Key="documents/a.txt")
        assert head["ServerSideEncryption"] == "AES256"

    @pytest.mark.asyncio
    async def test_get_missing_raises_file_not_found(self, storage_adapter):
        with pytest.raises(FileNotFoundError):
            await storage_adapter.get_object("documents/missing.pdf")

    @pytest.mark.asyncio
    async def test_delete_then_delete_again(self, storage_adapter):
        await storage_adapter.put_object("documents/a.txt", b"x", "text/plain")

        assert await storage_adapter.delete_object("documents/a.txt") is True
        assert await storage_adapter.delete_object("documents/a.txt") is False

    @pytest.mark.asyncio
    async def test_exists(self, storage_adapter):
        await storage_adapter.put_object("documents/a.txt", b"x", "text/plain")

        assert await storage_adapter.object_exists("documents/a.txt") is True
        assert await storage_adapter.object_exists("documents/b.txt") is False

    @pytest.mark.asyncio
    async def test_list_by_prefix(self, storage_adapter):
        await storage_adapter.put_object("employees/1/a.txt", b"a", "text/plain")
        await storage_adapter.put_object("employees/1/b.txt", b"b", "text/plain")
        await storage_adapter.put_object("employees/2/c.txt", b"c", "text/plain")

        listing = await storage_adapter.list_objects("employees/1/")

        assert sorted(f.key for f in listing) == ["employees/1/a.txt", "employees/1/b.txt"]

    @pytest.mark.asyncio
    async def test_put_to_missing_bucket_raises_storage_error(self):
        with mock_aws():
            adapter = _adapter(bucket="does-not-exist")
            with pytest.raises(StorageError):
                await adapter.put_object("documents/a.txt", b"x", "text/plain")


class TestPresignedUrls:
    @pytest.mark.asyncio
    async def test_url_carries_expiry(self, storage_adapter):
        await storage_adapter.put_object("documents/a.pdf", b"x", "application/pdf")

        url = await storage_adapter.generate_signed_url("documents/a.pdf", 3600)

        assert "X-Amz-Expires=3600" in url
        assert TEST_BUCKET in url

    @pytest.mark.asyncio
    async def test_custom_expiry(self, storage_adapter):
        await storage_adapter.put_object("documents/a.pdf", b"x", "application/pdf")
        url = await storage_adapter.generate_signed_url("documents/a.pdf", 60)
        assert "X-Amz-Expires=60" in url

    @pytest.mark.asyncio
    async def test_missing_key(self, storage_adapter):
        with pytest.raises(FileNotFoundError):
            await storage_adapter.generate_signed_url("documents/missing.pdf")


class TestAccessCheck:
    """Test bucket access verification"""

    @pytest.mark.asyncio
    async def test_access_ok(self, storage_adapter):
        result = await storage_adapter.check_access()
        assert result.has_access is True
        assert result.error is None

    @pytest.mark.asyncio
    async def test_missing_bucket(self):
        with mock_aws():
            result = await _adapter(bucket="does-not-exist").check_access()
        assert result.has_access is False
        assert result.error.startswith("NoSuchBucket")

    @pytest.mark.asyncio
    async def test_region_mismatch_reports_bucket_region(self, storage_adapter):
        error = _client_error(
            "301", headers={"x-amz-bucket-region": "eu-west-1"}, status=301
        )
        with patch.object(storage_adapter.s3_client, "head_bucket", side_effect=error):
            result = await storage_adapter.check_access()

        assert result.has_access is False
        assert result.bucket_region == "eu-west-1"
        assert result.error.startswith("PermanentRedirect")
        assert "AWS_REGION=eu-west-1" in result.error

    @pytest.mark.asyncio
    async def test_permanent_redirect_without_region_header(self, storage_adapter):
        with patch.object(
            storage_adapter.s3_client, "head_bucket", side_effect=_client_error("PermanentRedirect")
        ):
            result = await storage_adapter.check_access()

        assert result.has_access is False
        assert result.bucket_region is None
        assert "Check AWS_REGION" in result.error

    @pytest.mark.asyncio
    async def test_access_denied(self, storage_adapter):
        with patch.object(
            storage_adapter.s3_client, "head_bucket", side_effect=_client_error("403", status=403)
        ):
            result = await storage_adapter.check_access()

        assert result.has_access is False
        assert result.error.startswith("AccessDenied")

    @pytest.mark.asyncio
    async def test_successful_head_in_other_region_is_mismatch(self, storage_adapter):
        response = {"ResponseMetadata": {"HTTPHeaders": {"x-amz-bucket-region": "us-west-2"}}}
        with patch.object(storage_adapter.s3_client, "head_bucket", return_value=response):
            result = await storage_adapter.check_access()

        assert result.has_access is False
        assert result.bucket_region == "us-west-2"
