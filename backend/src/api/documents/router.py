"""Document storage API endpoints.

Upload, download, listing, signed URLs and deletion on top of
DocumentStorageService. Local-fallback signed URLs point at
``/api/documents/download/local/{key}``, which is served here.
"""

import logging
from dataclasses import asdict
from datetime import date
from typing import Optional

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    Query,
    UploadFile,
    status,
)
from fastapi.responses import Response

from domain.documents.results import ComplianceUploadOptions
from domain.errors import NoSuchKeyError
from services.document_storage_service import DocumentStorageService
from dependencies import get_storage_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/documents", tags=["documents"])


def _raise_for_error(error: Optional[str]) -> None:
    """Translate a failed storage result into an HTTP error."""
    message = error or "Storage operation failed"
    if message.startswith(NoSuchKeyError.code):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=message)
    if message.startswith("ValidationError"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)
    raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=message)


@router.post("/upload", status_code=status.HTTP_201_CREATED)
async def upload_document(
    file: UploadFile = File(...),
    subject_id: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    company_id: Optional[str] = Form(None),
    storage: DocumentStorageService = Depends(get_storage_service),
):
    """Upload a document.

    Returns:
        dict: storage_key, storage_type, size and content type

    Raises:
        HTTPException 400: Invalid filename or size
        HTTPException 502: Remote and fallback storage both failed
    """
    if not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File name is required")

    data = await file.read()
    result = await storage.upload_file(
        data,
        file.filename,
        content_type=file.content_type,
        subject_id=subject_id,
        category=category,
        company_id=company_id,
    )
    if not result.success:
        _raise_for_error(result.error)

    logger.info(
        f"Document uploaded: {result.storage_key} ({result.storage_type}, {result.size_bytes} bytes)",
        extra={"storage_key": result.storage_key},
    )
    return asdict(result)


@router.post("/compliance", status_code=status.HTTP_201_CREATED)
async def upload_compliance_document(
    file: UploadFile = File(...),
    document_type: str = Form(...),
    version: int = Form(1),
    location_id: Optional[str] = Form(None),
    is_required: bool = Form(False),
    expiration_date: Optional[date] = Form(None),
    previous_version_id: Optional[str] = Form(None),
    storage: DocumentStorageService = Depends(get_storage_service),
):
    """Upload a new version of a location compliance document."""
    if not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File name is required")

    options = ComplianceUploadOptions(
        document_type=document_type,
        version=version,
        location_id=location_id,
        is_required=is_required,
        expiration_date=expiration_date,
        previous_version_id=previous_version_id,
        content_type=file.content_type or "application/pdf",
    )
    result = await storage.upload_compliance_document(await file.read(), file.filename, options)
    if not result.success:
        _raise_for_error(result.error)
    return asdict(result)


@router.get("/download/local/{storage_key:path}")
async def download_local_document(
    storage_key: str,
    storage: DocumentStorageService = Depends(get_storage_service),
):
    """Serve a document held in local fallback storage."""
    result = await storage.download_file(storage_key, storage_type="local")
    if not result.success:
        _raise_for_error(result.error)

    filename = storage_key.rsplit("/", 1)[-1]
    return Response(
        content=result.data,
        media_type=result.content_type or "application/octet-stream",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/signed-url")
async def get_signed_url(
    key: str = Query(..., description="Storage key"),
    expires_in: Optional[int] = Query(None, gt=0, le=7 * 24 * 3600),
    storage: DocumentStorageService = Depends(get_storage_service),
):
    result = await storage.get_signed_url(key, expires_in)
    if not result.success:
        _raise_for_error(result.error)
    return asdict(result)


@router.get("/storage/status")
async def storage_status(storage: DocumentStorageService = Depends(get_storage_service)):
    """Remote access check (with region diagnostics) plus storage stats."""
    access = await storage.check_access()
    return {
        "access": asdict(access),
        "stats": storage.get_storage_stats(),
    }


@router.post("/migrate")
async def migrate_document(
    key: str = Query(..., description="Storage key of a local-fallback document"),
    storage: DocumentStorageService = Depends(get_storage_service),
):
    result = await storage.migrate_to_remote(key)
    if not result.success:
        _raise_for_error(result.error)
    return asdict(result)


@router.get("")
async def list_documents(
    prefix: str = Query("", description="Key prefix, e.g. employees/42/"),
    storage: DocumentStorageService = Depends(get_storage_service),
):
    result = await storage.list_files(prefix)
    if not result.success:
        _raise_for_error(result.error)
    return {"files": [asdict(f) for f in result.files]}


@router.delete("/{storage_key:path}")
async def delete_document(
    storage_key: str,
    storage: DocumentStorageService = Depends(get_storage_service),
):
    result = await storage.delete_file(storage_key)
    if not result.success:
        _raise_for_error(result.error)
    return asdict(result)
