"""FastAPI dependencies for the document services.

Both services are built once in the application lifespan and kept on
``app.state``; endpoints receive them through these dependencies so tests
can override them with ``app.dependency_overrides``.
"""

from fastapi import HTTPException, Request, status

from config import Settings, get_settings
from services.document_storage_service import DocumentStorageService
from services.submission_lifecycle_manager import SubmissionLifecycleManager


def get_app_settings(request: Request) -> Settings:
    """Settings the application was created with."""
    return getattr(request.app.state, "settings", None) or get_settings()


def get_storage_service(request: Request) -> DocumentStorageService:
    """Storage service created at startup.

    Raises:
        HTTPException 503: If the service was not initialized
    """
    service = getattr(request.app.state, "storage_service", None)
    if service is None or not service.initialized:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Document storage is not initialized",
        )
    return service


def get_lifecycle_manager(request: Request) -> SubmissionLifecycleManager:
    """Submission lifecycle manager created at startup.

    Raises:
        HTTPException 503: If the manager does not exist
    """
    manager = getattr(request.app.state, "lifecycle_manager", None)
    if manager is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="E-signature service is not available",
        )
    return manager
