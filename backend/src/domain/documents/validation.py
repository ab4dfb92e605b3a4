"""File validation utilities for document uploads"""

import mimetypes
import os
import re
import unicodedata
from typing import Optional, Tuple


DEFAULT_CONTENT_TYPE = 'application/octet-stream'

# File size limit (default 25MB, configurable via env)
MAX_FILE_SIZE = int(os.getenv('MAX_UPLOAD_SIZE_BYTES', 25 * 1024 * 1024))

MAX_FILENAME_LENGTH = 255

# Shell and HTML metacharacters never embedded in storage keys
_METACHARACTERS = re.compile(r'[<>:"|?*`$&;!\'(){}\[\]\\/%#~^=+,@]')
_CONTROL_CHARACTERS = re.compile(r'[\x00-\x1f\x7f]')


def validate_file_size(size_bytes: int, max_size: Optional[int] = None) -> Tuple[bool, Optional[str]]:
    """Validate file size is within limits

    Args:
        size_bytes: File size in bytes
        max_size: Maximum allowed size (defaults to MAX_FILE_SIZE)

    Returns:
        Tuple of (is_valid, error_message)

    Example:
        >>> validate_file_size(1024)
        (True, None)
        >>> validate_file_size(200 * 1024 * 1024)
        (False, 'File exceeds maximum size...')
    """
    if max_size is None:
        max_size = MAX_FILE_SIZE

    if size_bytes > max_size:
        return False, f"File exceeds maximum size of {max_size} bytes (got {size_bytes} bytes)"

    return True, None


def validate_filename(filename: str) -> Tuple[bool, Optional[str]]:
    """Check a caller-supplied filename before it is sanitized

    Validation rules:
    - Not empty
    - Max 255 characters
    - Something usable remains after sanitizing

    Example:
        >>> validate_filename('license.pdf')
        (True, None)
        >>> validate_filename('')
        (False, 'Filename cannot be empty')
    """
    if not filename or len(filename.strip()) == 0:
        return False, "Filename cannot be empty"

    if len(filename) > MAX_FILENAME_LENGTH:
        return False, f"Filename exceeds {MAX_FILENAME_LENGTH} characters (got {len(filename)})"

    basename = _CONTROL_CHARACTERS.sub('', filename).replace('\\', '/').split('/')[-1]
    if not basename.strip(' .'):
        return False, "Filename contains no usable characters"

    return True, None


def sanitize_filename(filename: str) -> str:
    """Sanitize filename for embedding in a storage key

    Removes directory components and traversal sequences, control characters
    and shell/HTML metacharacters. Never returns an empty string.

    Example:
        >>> sanitize_filename('../../../etc/passwd')
        'passwd'
        >>> sanitize_filename('license (copy).pdf')
        'license_copy_.pdf'
        >>> sanitize_filename('<script>.pdf')
        '_script_.pdf'
    """
    filename = unicodedata.normalize('NFKC', filename or '')

    # Remove control characters before splitting so they cannot hide separators
    filename = _CONTROL_CHARACTERS.sub('', filename)

    # Remove path components (both separator styles)
    filename = filename.replace('\\', '/').split('/')[-1]

    # Traversal sequences that survive as part of a single component
    while '..' in filename:
        filename = filename.replace('..', '.')

    filename = _METACHARACTERS.sub('_', filename)

    # Collapse whitespace and repeated underscores
    filename = re.sub(r'\s+', '_', filename)
    filename = re.sub(r'_+', '_', filename)

    # Hidden-file and trailing dots are not meaningful in keys
    filename = filename.strip('.')

    if len(filename) > MAX_FILENAME_LENGTH:
        name, ext = os.path.splitext(filename)
        filename = name[:MAX_FILENAME_LENGTH - len(ext)] + ext

    return filename or 'file'


def sanitize_path_segment(value) -> str:
    """Sanitize an id or category for use as a single storage key segment

    Example:
        >>> sanitize_path_segment('board certifications')
        'board_certifications'
        >>> sanitize_path_segment('../x')
        'x'
    """
    segment = re.sub(r'[^a-zA-Z0-9_-]', '_', str(value).strip())
    segment = re.sub(r'_+', '_', segment).strip('_')
    return segment or 'unknown'


def guess_content_type(filename: str, content_type: Optional[str] = None) -> str:
    """Return the explicit content type or one guessed from the filename

    Example:
        >>> guess_content_type('license.pdf')
        'application/pdf'
        >>> guess_content_type('blob')
        'application/octet-stream'
    """
    if content_type:
        return content_type
    guessed, _ = mimetypes.guess_type(filename or '')
    return guessed or DEFAULT_CONTENT_TYPE
