"""Storage key derivation for employee, company and compliance documents.

Keys are namespaced by subject and always carry a uniqueness token, so two
uploads of the same filename for the same subject never collide, even when
issued concurrently.

Key formats:
    employees/{employee_id}/{category}/{timestamp}-{token}-{filename}
    company/{company_id}/{category}/{timestamp}-{token}-{filename}
    employees/{employee_id}/documents/{timestamp}-{token}-{filename}
    documents/{timestamp}-{token}-{filename}
    compliance/{location_id|global}/{document_type}/v{version}/{timestamp}-{token}-{filename}
"""

import time
from typing import Optional
from uuid import uuid4

from .validation import sanitize_filename, sanitize_path_segment

DEFAULT_CATEGORY = "documents"


def generate_uniqueness_token() -> str:
    """Opaque token embedded in every generated key and version id."""
    return uuid4().hex[:16]


def _leaf(filename: str) -> str:
    timestamp = int(time.time() * 1000)
    return f"{timestamp}-{generate_uniqueness_token()}-{sanitize_filename(filename)}"


def build_storage_key(
    filename: str,
    subject_id=None,
    category: Optional[str] = None,
    company_id=None,
) -> str:
    """Build a storage key for an uploaded document.

    Args:
        filename: Original (unsanitized) filename
        subject_id: Employee id owning the document
        category: Document category (license, certification, ...)
        company_id: Company id, used when no employee id is given

    Returns:
        str: Storage key

    Example:
        >>> build_storage_key("license.pdf", subject_id=42, category="licenses")
        'employees/42/licenses/1735900000000-3f2a...-license.pdf'
    """
    if subject_id is not None and category:
        prefix = f"employees/{sanitize_path_segment(subject_id)}/{sanitize_path_segment(category)}"
    elif company_id is not None:
        prefix = (
            f"company/{sanitize_path_segment(company_id)}/"
            f"{sanitize_path_segment(category or DEFAULT_CATEGORY)}"
        )
    elif subject_id is not None:
        prefix = f"employees/{sanitize_path_segment(subject_id)}/{DEFAULT_CATEGORY}"
    else:
        prefix = DEFAULT_CATEGORY

    return f"{prefix}/{_leaf(filename)}"


def build_compliance_key(
    filename: str,
    document_type: str,
    version: int,
    location_id=None,
) -> str:
    """Build a storage key for a versioned compliance document."""
    location = sanitize_path_segment(location_id) if location_id is not None else "global"
    return (
        f"compliance/{location}/{sanitize_path_segment(document_type)}/"
        f"v{int(version)}/{_leaf(filename)}"
    )


def build_version_id(version: int) -> str:
    """Version identifier of the form ``v{version}_{token}``."""
    return f"v{int(version)}_{generate_uniqueness_token()}"
