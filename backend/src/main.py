"""StaffHub Documents - Main FastAPI Application

Document storage with local fallback and the e-signature submission
lifecycle for the healthcare staffing HR backend.

This module creates and configures the FastAPI application, including:
- Routers (documents, e-signature, observability)
- Middleware (request ID correlation, CORS)
- Exception handlers mapping domain errors to HTTP statuses
- Lifespan wiring that builds, initializes and closes the services
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.documents.router import router as documents_router
from api.signatures.router import router as signatures_router
from config import Settings, get_settings
from domain.errors import (
    ConfigurationError,
    DocumentServiceError,
    InvalidStateTransitionError,
    NotFoundError,
    NotInitializedError,
    ValidationError,
)
from observability.logging_config import configure_logging
from observability.middleware import RequestIDMiddleware
from observability.router import router as observability_router
from services.document_storage_service import DocumentStorageService
from services.submission_lifecycle_manager import SubmissionLifecycleManager

logger = logging.getLogger(__name__)

# Domain error -> HTTP status; first matching class wins
ERROR_STATUS = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidStateTransitionError, status.HTTP_409_CONFLICT),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotInitializedError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (ConfigurationError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def create_app(
    settings: Optional[Settings] = None,
    storage_service: Optional[DocumentStorageService] = None,
    lifecycle_manager: Optional[SubmissionLifecycleManager] = None,
) -> FastAPI:
    """Application factory.

    Services passed in are used as-is (tests inject pre-built ones);
    otherwise they are built from settings during startup.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("StaffHub Documents API starting up...")
        logger.info(f"Environment: {settings.ENVIRONMENT}")

        storage = storage_service or DocumentStorageService.from_settings(settings)
        if not storage.initialized:
            await storage.initialize()
        app.state.storage_service = storage

        manager = lifecycle_manager or SubmissionLifecycleManager.from_settings(settings)
        if not manager.initialized:
            result = await manager.initialize()
            if not result.success:
                logger.error(f"E-signature provider unavailable at startup: {result.message}")
        app.state.lifecycle_manager = manager

        yield

        logger.info("StaffHub Documents API shutting down...")
        await manager.close()

    app = FastAPI(
        title="StaffHub Documents API",
        description="Document storage and e-signature workflows for healthcare staffing",
        version="0.1.0",
        docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.settings = settings

    # Request ID Middleware (must be first for proper correlation)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS.split(","),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    @app.exception_handler(DocumentServiceError)
    async def document_service_exception_handler(
        request: Request,
        exc: DocumentServiceError,
    ) -> JSONResponse:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        for error_type, mapped in ERROR_STATUS:
            if isinstance(exc, error_type):
                status_code = mapped
                break
        logger.warning(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=status_code,
            content={"error": exc.code, "message": exc.message},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        logger.warning(f"Validation error on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": "validation_error",
                "message": "Request validation failed",
                "details": exc.errors(),
            },
        )

    app.include_router(observability_router)
    app.include_router(documents_router)
    app.include_router(signatures_router)

    @app.get("/", include_in_schema=False)
    async def root() -> dict[str, Any]:
        return {"name": "StaffHub Documents API", "version": "0.1.0", "status": "running"}

    return app


def build_app() -> FastAPI:
    """Entry point for ``uvicorn main:build_app --factory``."""
    settings = get_settings()
    configure_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)
    return create_app(settings)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:build_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        log_level=get_settings().LOG_LEVEL.lower(),
    )
