"""Error taxonomy shared by the storage and signature subsystems.

Each error carries a machine-readable ``code`` so services can report the
cause in result objects without leaking exception types to callers.
"""


class DocumentServiceError(Exception):
    """Base exception for document storage and e-signature operations."""

    code = "DOCUMENT_SERVICE_ERROR"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class ConfigurationError(DocumentServiceError):
    """Missing or invalid storage/provider configuration."""

    code = "CONFIGURATION_ERROR"


class ValidationError(DocumentServiceError):
    """Malformed caller input, rejected before any state changes."""

    code = "VALIDATION_ERROR"


class NotFoundError(DocumentServiceError):
    """Referenced entity does not exist."""

    code = "NOT_FOUND"


class NoSuchKeyError(NotFoundError):
    """Storage key does not address any stored object."""

    code = "NoSuchKey"

    def __init__(self, storage_key: str):
        super().__init__(f"NoSuchKey: The specified key does not exist: {storage_key}")
        self.storage_key = storage_key


class TemplateNotFoundError(NotFoundError):
    code = "TEMPLATE_NOT_FOUND"

    def __init__(self, template_id: str):
        super().__init__(f"Template not found: {template_id}")
        self.template_id = template_id


class NotInitializedError(DocumentServiceError):
    """Operation invoked before initialize() succeeded."""

    code = "NOT_INITIALIZED"


class InvalidStateTransitionError(DocumentServiceError):
    """Requested transition is not legal from the current status."""

    code = "INVALID_STATE_TRANSITION"

    def __init__(self, message: str, current_status=None, requested_status=None):
        super().__init__(message)
        self.current_status = current_status
        self.requested_status = requested_status


class NotCompletedError(InvalidStateTransitionError):
    """Documents requested for a submission that is not completed."""

    code = "NOT_COMPLETED"


class ProviderError(DocumentServiceError):
    """E-signature provider or network failure."""

    code = "PROVIDER_ERROR"

    def __init__(self, message: str, status_code=None, response_body=None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class StorageError(DocumentServiceError):
    """Object storage backend failure (network, permissions, outage)."""

    code = "STORAGE_ERROR"

    def __init__(self, message: str, error_code: str = "Unknown"):
        super().__init__(message)
        self.error_code = error_code
