"""Result objects returned by the document storage service.

Storage operations report expected failures through these objects instead of
raising: ``success`` is False and ``error`` names the cause (missing keys
start with ``NoSuchKey``).
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional

from .ports.object_storage_port import ObjectInfo


@dataclass
class UploadResult:
    success: bool
    storage_key: str = ""
    storage_type: str = "s3"
    etag: Optional[str] = None
    content_type: Optional[str] = None
    size_bytes: int = 0
    error: Optional[str] = None


@dataclass
class VersionedUploadResult(UploadResult):
    """Upload result for compliance documents.

    Attributes:
        version_id: Version identifier ``v{version}_{token}``
        previous_version_key: Back-reference to the version this one replaces
        metadata: Caller tags, carried through unchanged
    """
    version_id: Optional[str] = None
    version: int = 1
    previous_version_key: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class DownloadResult:
    success: bool
    data: Optional[bytes] = None
    content_type: Optional[str] = None
    storage_type: Optional[str] = None
    error: Optional[str] = None


@dataclass
class DeleteResult:
    success: bool
    storage_type: Optional[str] = None
    error: Optional[str] = None


@dataclass
class ListResult:
    success: bool
    files: List[ObjectInfo] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class SignedUrlResult:
    success: bool
    url: Optional[str] = None
    storage_type: Optional[str] = None
    expires_in: Optional[int] = None
    error: Optional[str] = None


@dataclass
class ComplianceUploadOptions:
    """Options for a versioned compliance document upload.

    Attributes:
        document_type: Compliance document type (e.g. 'fire_inspection')
        version: Version number of this upload (1 for the first version)
        location_id: Facility/location the document belongs to
        tags: Arbitrary string metadata, stored and returned unchanged
        expiration_date: Date the document stops being valid
        is_required: Whether the document is mandatory for the location
        previous_version_id: Storage key of the version being replaced
        content_type: MIME type (defaults to application/pdf)
    """
    document_type: str
    version: int = 1
    location_id: Optional[str] = None
    tags: Dict[str, str] = field(default_factory=dict)
    expiration_date: Optional[date] = None
    is_required: bool = False
    previous_version_id: Optional[str] = None
    content_type: str = "application/pdf"
