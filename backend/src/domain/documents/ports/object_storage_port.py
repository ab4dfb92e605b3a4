"""Object Storage Port - Domain interface for document blob storage.

This port defines the contract for storing and retrieving document blobs.
Adapters implement it for S3-compatible object storage and for the local
filesystem fallback.

Architecture: Hexagonal - Port interface in domain layer
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional


@dataclass
class StoredObject:
    """Metadata for an object written to storage.

    Attributes:
        storage_key: Unique key addressing the blob
        size_bytes: Object size in bytes
        content_type: MIME type of the object
        etag: Entity tag reported by the backend (if any)
        version_id: Backend version id (S3 versioned buckets only)
    """
    storage_key: str
    size_bytes: int
    content_type: str
    etag: Optional[str] = None
    version_id: Optional[str] = None


@dataclass
class RetrievedObject:
    """Object content returned by get_object()."""
    storage_key: str
    data: bytes
    content_type: str
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class ObjectInfo:
    """Listing entry returned by list_objects()."""
    key: str
    size: Optional[int] = None
    last_modified: Optional[datetime] = None
    etag: Optional[str] = None


@dataclass
class AccessCheckResult:
    """Outcome of a storage reachability check.

    Attributes:
        has_access: Whether the backend is usable with the current configuration
        error: Actionable error message when has_access is False
        bucket_region: Region the bucket actually lives in (when detectable)
    """
    has_access: bool
    error: Optional[str] = None
    bucket_region: Optional[str] = None


class ObjectStoragePort(ABC):
    """Port interface for document blob storage operations.

    Key Design Principles:
    - Keys are opaque strings; adapters never rewrite them
    - Missing keys raise FileNotFoundError from get_object()
    - delete_object() is idempotent and reports whether something was removed

    Example Usage:
        storage = S3StorageAdapter(...)
        stored = await storage.put_object(key, data, "application/pdf")
        obj = await storage.get_object(stored.storage_key)
    """

    storage_type: str = "unknown"

    @abstractmethod
    async def put_object(
        self,
        storage_key: str,
        data: bytes,
        content_type: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> StoredObject:
        """Write an object, overwriting any object under the same key.

        Raises:
            StorageError: If the backend write fails
        """
        pass

    @abstractmethod
    async def get_object(self, storage_key: str) -> RetrievedObject:
        """Read an object.

        Raises:
            FileNotFoundError: If no object exists under the key
            StorageError: If retrieval fails
        """
        pass

    @abstractmethod
    async def delete_object(self, storage_key: str) -> bool:
        """Delete an object.

        Returns:
            bool: True if deleted, False if it didn't exist

        Raises:
            StorageError: If deletion fails
        """
        pass

    @abstractmethod
    async def object_exists(self, storage_key: str) -> bool:
        """Check if an object exists under the key."""
        pass

    @abstractmethod
    async def list_objects(self, prefix: str) -> List[ObjectInfo]:
        """List all objects whose key starts with prefix.

        Returns an empty list when nothing matches.

        Raises:
            StorageError: If listing fails
        """
        pass

    @abstractmethod
    async def generate_signed_url(
        self,
        storage_key: str,
        expires_in_seconds: int = 3600,
    ) -> str:
        """Generate a URL granting read access to the object.

        Raises:
            FileNotFoundError: If the object doesn't exist
            StorageError: If URL generation fails
        """
        pass

    @abstractmethod
    async def check_access(self) -> AccessCheckResult:
        """Verify the backend is reachable with the current configuration."""
        pass
