"""Document Storage Service - storage adapter with local-disk fallback.

Maps logical uploads (employee documents, company documents, versioned
compliance documents) to storage keys and mediates every read, write,
delete and listing. Remote S3 storage is preferred; when it is unconfigured
or fails and fallback is permitted, the local filesystem adapter is used
and results report ``storage_type="local"``.

Failure semantics:
- A failed remote write is retried exactly once, against local storage,
  and only when fallback is enabled. The remote target is never retried
  automatically; after fixing configuration call check_access() again.
- Expected failures are returned as result objects, never raised.
"""

import logging
from typing import Dict, List, Optional

from config import Settings
from domain.documents.ports.object_storage_port import (
    AccessCheckResult,
    ObjectInfo,
    ObjectStoragePort,
)
from domain.documents.results import (
    ComplianceUploadOptions,
    DeleteResult,
    DownloadResult,
    ListResult,
    SignedUrlResult,
    UploadResult,
    VersionedUploadResult,
)
from domain.documents.storage_keys import (
    build_compliance_key,
    build_storage_key,
    build_version_id,
)
from domain.documents.validation import (
    guess_content_type,
    validate_file_size,
    validate_filename,
)
from domain.errors import (
    ConfigurationError,
    NoSuchKeyError,
    NotInitializedError,
    StorageError,
)
from infrastructure.storage.local_storage_adapter import LocalStorageAdapter
from infrastructure.storage.s3_storage_adapter import S3StorageAdapter
from infrastructure.storage.storage_config import (
    StorageConfig,
    load_storage_config,
    validate_storage_config,
)
from observability.metrics import storage_fallback_total, storage_operations_total
from services.keyed_lock import KeyedLock

logger = logging.getLogger(__name__)


class DocumentStorageService:
    """Storage adapter over a remote object store and a local fallback.

    Example:
        service = DocumentStorageService.from_settings(get_settings())
        await service.initialize()
        result = await service.upload_file(data, "license.pdf",
                                           subject_id=42, category="licenses")
        if result.success:
            url = await service.get_signed_url(result.storage_key)
    """

    def __init__(
        self,
        config: Optional[StorageConfig] = None,
        local_root: Optional[str] = None,
        allow_fallback: bool = True,
        default_expiry_seconds: int = 3600,
        remote: Optional[ObjectStoragePort] = None,
        local: Optional[ObjectStoragePort] = None,
    ):
        self.config = config
        self.local_root = local_root or "./uploads"
        self.allow_fallback = allow_fallback
        self.default_expiry_seconds = default_expiry_seconds
        self.remote = remote
        self.local = local
        self._remote_available = False
        self._initialized = False
        self._key_locks = KeyedLock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "DocumentStorageService":
        return cls(
            config=load_storage_config(settings),
            local_root=settings.LOCAL_STORAGE_PATH,
            allow_fallback=settings.STORAGE_ALLOW_LOCAL_FALLBACK,
            default_expiry_seconds=settings.SIGNED_URL_EXPIRY_SECONDS,
        )

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def degraded(self) -> bool:
        """True when documents are being written to the local fallback."""
        return self._initialized and not self._use_remote()

    @property
    def storage_type(self) -> str:
        return "s3" if self._use_remote() else "local"

    async def initialize(self) -> None:
        """Load configuration and verify remote access.

        Raises:
            ConfigurationError: If no remote configuration exists and local
                fallback is not permitted
        """
        if self.remote is None and self.config is not None:
            try:
                validate_storage_config(self.config)
                self.remote = S3StorageAdapter(
                    endpoint_url=self.config.endpoint_url,
                    access_key=self.config.access_key,
                    secret_key=self.config.secret_key,
                    bucket_name=self.config.bucket_name,
                    region=self.config.region,
                    server_side_encryption=self.config.server_side_encryption,
                )
            except (ConfigurationError, StorageError) as e:
                if not self.allow_fallback:
                    raise ConfigurationError(f"Invalid object storage configuration: {e}")
                logger.warning(f"Object storage misconfigured, using local fallback: {e}")

        if self.remote is None and not self.allow_fallback:
            raise ConfigurationError(
                "No object storage configuration found and local fallback is disabled. "
                "Set AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY and AWS_S3_BUCKET_NAME."
            )

        if self.allow_fallback and self.local is None:
            self.local = LocalStorageAdapter(self.local_root)

        self._initialized = True

        if self.remote is not None:
            access = await self.check_access()
            if not access.has_access:
                logger.warning(
                    f"Object storage not accessible ({access.error}); "
                    f"{'using local storage fallback' if self.allow_fallback else 'uploads will fail'}"
                )
        else:
            logger.info("Object storage not configured. Using local storage fallback.")

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise NotInitializedError("Document storage service not initialized")

    def _use_remote(self) -> bool:
        if self.remote is None:
            return False
        return self._remote_available or self.local is None

    async def check_access(self) -> AccessCheckResult:
        """Verify the remote bucket is reachable and in the expected region.

        Re-running this after a configuration fix re-enables remote storage.
        """
        self._ensure_initialized()
        if self.remote is None:
            return AccessCheckResult(
                has_access=False,
                error="NotConfigured: Remote object storage is not configured; using local storage",
            )

        result = await self.remote.check_access()
        self._remote_available = result.has_access
        if result.has_access:
            logger.info("Object storage access verified")
        else:
            logger.error(f"Object storage access check failed: {result.error}")
        return result

    async def upload_file(
        self,
        data: bytes,
        filename: str,
        content_type: Optional[str] = None,
        subject_id=None,
        category: Optional[str] = None,
        company_id=None,
    ) -> UploadResult:
        """Store a document under a freshly generated, collision-free key.

        Args:
            data: File content
            filename: Original filename (sanitized before use in the key)
            content_type: MIME type (guessed from filename when omitted)
            subject_id: Employee id owning the document
            category: Document category
            company_id: Company id, used when no employee id is given

        Returns:
            UploadResult with storage_key and storage_type on success
        """
        self._ensure_initialized()

        is_valid, error_msg = validate_filename(filename)
        if not is_valid:
            return UploadResult(success=False, error=f"ValidationError: {error_msg}")
        is_valid, error_msg = validate_file_size(len(data))
        if not is_valid:
            return UploadResult(success=False, error=f"ValidationError: {error_msg}")

        storage_key = build_storage_key(
            filename,
            subject_id=subject_id,
            category=category,
            company_id=company_id,
        )
        metadata = {}
        if subject_id is not None:
            metadata["subject_id"] = str(subject_id)
        if company_id is not None:
            metadata["company_id"] = str(company_id)
        if category:
            metadata["category"] = str(category)

        return await self._put_with_fallback(
            "upload",
            storage_key,
            data,
            guess_content_type(filename, content_type),
            metadata,
        )

    async def upload_compliance_document(
        self,
        data: bytes,
        filename: str,
        options: ComplianceUploadOptions,
    ) -> VersionedUploadResult:
        """Store a versioned compliance document.

        The result carries a ``v{version}_{token}`` version id and, when
        ``options.previous_version_id`` is given, a backward reference to
        the replaced version. Tags are stored as object metadata and
        returned unchanged.
        """
        self._ensure_initialized()

        if options.version < 1:
            return VersionedUploadResult(
                success=False,
                error="ValidationError: version must be >= 1",
            )

        is_valid, error_msg = validate_filename(filename)
        if not is_valid:
            return VersionedUploadResult(success=False, error=f"ValidationError: {error_msg}")
        is_valid, error_msg = validate_file_size(len(data))
        if not is_valid:
            return VersionedUploadResult(success=False, error=f"ValidationError: {error_msg}")

        storage_key = build_compliance_key(
            filename,
            document_type=options.document_type,
            version=options.version,
            location_id=options.location_id,
        )
        version_id = build_version_id(options.version)

        metadata: Dict[str, str] = dict(options.tags or {})
        metadata.update({
            "document_type": options.document_type,
            "version": str(options.version),
            "version_id": version_id,
            "is_required": "true" if options.is_required else "false",
        })
        if options.location_id is not None:
            metadata["location_id"] = str(options.location_id)
        if options.expiration_date is not None:
            metadata["expiration_date"] = options.expiration_date.isoformat()
        if options.previous_version_id:
            metadata["previous_version_key"] = options.previous_version_id

        base = await self._put_with_fallback(
            "compliance_upload",
            storage_key,
            data,
            options.content_type,
            metadata,
        )

        return VersionedUploadResult(
            success=base.success,
            storage_key=base.storage_key,
            storage_type=base.storage_type,
            etag=base.etag,
            content_type=base.content_type,
            size_bytes=base.size_bytes,
            error=base.error,
            version_id=version_id if base.success else None,
            version=options.version,
            previous_version_key=options.previous_version_id,
            metadata=dict(options.tags or {}),
        )

    async def _put_with_fallback(
        self,
        operation: str,
        storage_key: str,
        data: bytes,
        content_type: str,
        metadata: Dict[str, str],
    ) -> UploadResult:
        if self._use_remote():
            try:
                stored = await self.remote.put_object(storage_key, data, content_type, metadata)
                storage_operations_total.labels(operation, "s3", "success").inc()
                return UploadResult(
                    success=True,
                    storage_key=stored.storage_key,
                    storage_type="s3",
                    etag=stored.etag,
                    content_type=content_type,
                    size_bytes=stored.size_bytes,
                )
            except StorageError as e:
                storage_operations_total.labels(operation, "s3", "error").inc()
                if self.local is None:
                    return UploadResult(
                        success=False,
                        storage_key="",
                        storage_type="s3",
                        error=str(e),
                    )
                logger.warning(
                    f"S3 {operation} failed, falling back to local storage: "
                    f"storage_key={storage_key}, error={e}"
                )
                storage_fallback_total.labels(operation).inc()
        elif self.local is None:
            return UploadResult(
                success=False,
                storage_type="s3",
                error="Remote object storage is unavailable and local fallback is disabled",
            )

        try:
            stored = await self.local.put_object(storage_key, data, content_type, metadata)
        except StorageError as e:
            storage_operations_total.labels(operation, "local", "error").inc()
            logger.error(f"Local storage fallback failed: storage_key={storage_key}, error={e}")
            return UploadResult(
                success=False,
                storage_key="",
                storage_type="local",
                error=str(e),
            )

        storage_operations_total.labels(operation, "local", "success").inc()
        return UploadResult(
            success=True,
            storage_key=stored.storage_key,
            storage_type="local",
            etag=stored.etag,
            content_type=content_type,
            size_bytes=stored.size_bytes,
        )

    async def _resolve_backend(
        self,
        storage_key: str,
        storage_type: Optional[str] = None,
    ) -> Optional[ObjectStoragePort]:
        """Pick the backend holding a key.

        Local fallback objects are looked up first since that check is a
        cheap stat call. Other keys go to the remote store only while it is
        in use; in degraded mode they resolve locally and report NoSuchKey.
        """
        if storage_type == "local":
            return self.local
        if storage_type == "s3":
            return self.remote
        if self.local is not None and await self.local.object_exists(storage_key):
            return self.local
        return self.remote if self._use_remote() else self.local

    async def download_file(
        self,
        storage_key: str,
        storage_type: Optional[str] = None,
    ) -> DownloadResult:
        """Read a stored document's bytes and content type."""
        self._ensure_initialized()

        backend = await self._resolve_backend(storage_key, storage_type)
        if backend is None:
            return DownloadResult(success=False, error=f"Storage backend '{storage_type}' not available")

        try:
            obj = await backend.get_object(storage_key)
        except FileNotFoundError:
            storage_operations_total.labels("download", backend.storage_type, "error").inc()
            return DownloadResult(
                success=False,
                storage_type=backend.storage_type,
                error=NoSuchKeyError(storage_key).message,
            )
        except StorageError as e:
            storage_operations_total.labels("download", backend.storage_type, "error").inc()
            return DownloadResult(success=False, storage_type=backend.storage_type, error=str(e))

        storage_operations_total.labels("download", backend.storage_type, "success").inc()
        return DownloadResult(
            success=True,
            data=obj.data,
            content_type=obj.content_type,
            storage_type=backend.storage_type,
        )

    async def delete_file(
        self,
        storage_key: str,
        storage_type: Optional[str] = None,
    ) -> DeleteResult:
        """Delete a stored document; a missing key is reported, not raised."""
        self._ensure_initialized()

        async with self._key_locks.hold(storage_key):
            backend = await self._resolve_backend(storage_key, storage_type)
            if backend is None:
                return DeleteResult(success=False, error=f"Storage backend '{storage_type}' not available")

            try:
                deleted = await backend.delete_object(storage_key)
            except StorageError as e:
                storage_operations_total.labels("delete", backend.storage_type, "error").inc()
                return DeleteResult(success=False, storage_type=backend.storage_type, error=str(e))

        if not deleted:
            return DeleteResult(
                success=False,
                storage_type=backend.storage_type,
                error=NoSuchKeyError(storage_key).message,
            )

        storage_operations_total.labels("delete", backend.storage_type, "success").inc()
        return DeleteResult(success=True, storage_type=backend.storage_type)

    async def list_files(self, prefix: str = "") -> ListResult:
        """List documents under a key prefix across remote and local storage."""
        self._ensure_initialized()

        files: Dict[str, ObjectInfo] = {}
        error = None

        if self.remote is not None and self._remote_available:
            try:
                for info in await self.remote.list_objects(prefix):
                    files[info.key] = info
            except StorageError as e:
                logger.error(f"Failed to list remote files: prefix={prefix}, error={e}")
                error = str(e)

        if self.local is not None:
            for info in await self.local.list_objects(prefix):
                files.setdefault(info.key, info)

        listing: List[ObjectInfo] = sorted(files.values(), key=lambda f: f.key)
        return ListResult(success=error is None, files=listing, error=error)

    async def get_signed_url(
        self,
        storage_key: str,
        expires_in: Optional[int] = None,
    ) -> SignedUrlResult:
        """Time-limited URL for remote objects; internal download path for local ones."""
        self._ensure_initialized()
        if expires_in is None:
            expires_in = self.default_expiry_seconds

        backend = await self._resolve_backend(storage_key)
        if backend is None:
            return SignedUrlResult(success=False, error="No storage backend available")

        try:
            url = await backend.generate_signed_url(storage_key, expires_in)
        except FileNotFoundError:
            return SignedUrlResult(
                success=False,
                storage_type=backend.storage_type,
                error=NoSuchKeyError(storage_key).message,
            )
        except StorageError as e:
            return SignedUrlResult(success=False, storage_type=backend.storage_type, error=str(e))

        return SignedUrlResult(
            success=True,
            url=url,
            storage_type=backend.storage_type,
            expires_in=expires_in if backend.storage_type != "local" else None,
        )

    async def migrate_to_remote(self, storage_key: str) -> UploadResult:
        """Copy a local-fallback document to remote storage under the same key.

        The local copy is removed only after the remote write succeeded.
        """
        self._ensure_initialized()

        if self.remote is None or not self._remote_available:
            return UploadResult(
                success=False,
                storage_key=storage_key,
                storage_type="local",
                error="Remote object storage is not available",
            )
        if self.local is None:
            return UploadResult(success=False, storage_key=storage_key, error="Local storage not enabled")

        async with self._key_locks.hold(storage_key):
            try:
                obj = await self.local.get_object(storage_key)
            except FileNotFoundError:
                return UploadResult(
                    success=False,
                    storage_key=storage_key,
                    storage_type="local",
                    error=NoSuchKeyError(storage_key).message,
                )

            try:
                stored = await self.remote.put_object(
                    storage_key, obj.data, obj.content_type, obj.metadata
                )
            except StorageError as e:
                storage_operations_total.labels("migrate", "s3", "error").inc()
                return UploadResult(
                    success=False,
                    storage_key=storage_key,
                    storage_type="local",
                    error=str(e),
                )

            await self.local.delete_object(storage_key)

        storage_operations_total.labels("migrate", "s3", "success").inc()
        logger.info(f"Migrated local file to S3: storage_key={storage_key}")
        return UploadResult(
            success=True,
            storage_key=stored.storage_key,
            storage_type="s3",
            etag=stored.etag,
            content_type=obj.content_type,
            size_bytes=stored.size_bytes,
        )

    def get_storage_stats(self) -> Dict[str, object]:
        """Configuration summary safe for display (no credentials)."""
        return {
            "initialized": self._initialized,
            "is_configured": self.remote is not None,
            "remote_available": self._remote_available,
            "storage_type": self.storage_type,
            "fallback_enabled": self.allow_fallback,
            "bucket_name": self.config.bucket_name if self.config else None,
            "region": self.config.region if self.config else None,
            "endpoint": self.config.endpoint_url if self.config else None,
        }
