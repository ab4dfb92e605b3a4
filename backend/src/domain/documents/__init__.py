"""Documents domain module - storage keys, filename validation, storage results"""

from .results import (
    ComplianceUploadOptions,
    DeleteResult,
    DownloadResult,
    ListResult,
    SignedUrlResult,
    UploadResult,
    VersionedUploadResult,
)
from .storage_keys import build_compliance_key, build_storage_key, build_version_id
from .validation import (
    guess_content_type,
    sanitize_filename,
    sanitize_path_segment,
    validate_file_size,
    validate_filename,
    MAX_FILE_SIZE,
)

__all__ = [
    "ComplianceUploadOptions",
    "DeleteResult",
    "DownloadResult",
    "ListResult",
    "SignedUrlResult",
    "UploadResult",
    "VersionedUploadResult",
    "build_compliance_key",
    "build_storage_key",
    "build_version_id",
    "guess_content_type",
    "sanitize_filename",
    "sanitize_path_segment",
    "validate_file_size",
    "validate_filename",
    "MAX_FILE_SIZE",
]
