"""E-signature API endpoints.

Templates, submissions and their transitions, signed document download,
and the inbound DocuSeal webhook. State errors raised by the lifecycle
manager are mapped to HTTP statuses by the handlers registered in main.
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from fastapi.responses import Response

from api.signatures.schemas import (
    CompleteSubmissionRequest,
    CreateSubmissionRequest,
    DeclineSubmissionRequest,
    ReminderRequest,
)
from config import Settings
from dependencies import get_app_settings, get_lifecycle_manager
from domain.errors import TemplateNotFoundError, ValidationError
from infrastructure.signatures.webhook import verify_webhook_signature
from observability.metrics import webhook_events_total
from services.submission_lifecycle_manager import SubmissionLifecycleManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/docuseal", tags=["esignature"])


def _submission_or_404(manager: SubmissionLifecycleManager, submission_id: str):
    submission = manager.get_submission(submission_id)
    if submission is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Submission not found")
    return submission


@router.get("/templates")
async def list_templates(manager: SubmissionLifecycleManager = Depends(get_lifecycle_manager)):
    return {"templates": manager.get_templates()}


@router.post("/templates/sync")
async def sync_templates(manager: SubmissionLifecycleManager = Depends(get_lifecycle_manager)):
    result = await manager.sync_templates()
    if not result.success:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=result.message)
    return result


@router.get("/templates/{template_id}")
async def get_template(
    template_id: str,
    manager: SubmissionLifecycleManager = Depends(get_lifecycle_manager),
):
    template = manager.get_template(template_id)
    if template is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Template not found")
    return template


@router.post("/submissions", status_code=status.HTTP_201_CREATED)
async def create_submission(
    body: CreateSubmissionRequest,
    manager: SubmissionLifecycleManager = Depends(get_lifecycle_manager),
):
    """Create a signature request.

    Raises:
        HTTPException 400: No submitters or malformed submitter
        HTTPException 404: Unknown template
        HTTPException 502: Provider failure
    """
    result = await manager.create_submission(
        body.template_id,
        [s.model_dump(exclude_none=True) for s in body.submitters],
        send_email=body.send_email,
        message=body.message,
        metadata=body.metadata,
    )
    if not result.success:
        if result.error_code == ValidationError.code:
            code = status.HTTP_400_BAD_REQUEST
        elif result.error_code == TemplateNotFoundError.code:
            code = status.HTTP_404_NOT_FOUND
        else:
            code = status.HTTP_502_BAD_GATEWAY
        raise HTTPException(status_code=code, detail={"error": result.error, "error_code": result.error_code})
    return result.submission


@router.get("/submissions/{submission_id}")
async def get_submission(
    submission_id: str,
    manager: SubmissionLifecycleManager = Depends(get_lifecycle_manager),
):
    return _submission_or_404(manager, submission_id)


@router.get("/employees/{employee_id}/submissions")
async def list_employee_submissions(
    employee_id: str,
    manager: SubmissionLifecycleManager = Depends(get_lifecycle_manager),
):
    return {"submissions": manager.get_submissions_by_employee_id(employee_id)}


@router.post("/submissions/{submission_id}/complete")
async def complete_submission(
    submission_id: str,
    body: Optional[CompleteSubmissionRequest] = None,
    manager: SubmissionLifecycleManager = Depends(get_lifecycle_manager),
):
    return await manager.complete_submission(submission_id, body.values if body else None)


@router.post("/submissions/{submission_id}/expire")
async def expire_submission(
    submission_id: str,
    manager: SubmissionLifecycleManager = Depends(get_lifecycle_manager),
):
    return await manager.expire_submission(submission_id)


@router.post("/submissions/{submission_id}/refresh")
async def refresh_submission_status(
    submission_id: str,
    manager: SubmissionLifecycleManager = Depends(get_lifecycle_manager),
):
    """Pull the provider's current status into the local record."""
    result = await manager.refresh_submission_status(submission_id)
    if not result.success:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"error": result.error, "error_code": result.error_code},
        )
    return result.submission


@router.post("/submissions/{submission_id}/resend")
async def resend_submission(
    submission_id: str,
    manager: SubmissionLifecycleManager = Depends(get_lifecycle_manager),
):
    return await manager.resend_submission(submission_id)


@router.post("/submissions/{submission_id}/decline")
async def decline_submission(
    submission_id: str,
    body: Optional[DeclineSubmissionRequest] = None,
    manager: SubmissionLifecycleManager = Depends(get_lifecycle_manager),
):
    return await manager.decline_submission(submission_id, body.reason if body else None)


@router.post("/submissions/{submission_id}/remind")
async def send_reminder(
    submission_id: str,
    body: Optional[ReminderRequest] = None,
    manager: SubmissionLifecycleManager = Depends(get_lifecycle_manager),
):
    _submission_or_404(manager, submission_id)
    result = await manager.send_reminder(submission_id, body.email if body else None)
    if not result.success:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=result.message)
    return result


@router.get("/submissions/{submission_id}/signing-url")
async def get_signing_url(
    submission_id: str,
    email: str = Query(...),
    manager: SubmissionLifecycleManager = Depends(get_lifecycle_manager),
):
    url = manager.get_signing_url(submission_id, email)
    if url is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No signing link for this submitter")
    return {"url": url}


@router.get("/submissions/{submission_id}/documents")
async def download_documents(
    submission_id: str,
    manager: SubmissionLifecycleManager = Depends(get_lifecycle_manager),
):
    result = await manager.download_submission_documents(submission_id)
    if not result.success:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=result.error)
    return Response(
        content=result.data,
        media_type=result.content_type,
        headers={"Content-Disposition": f'attachment; filename="{result.filename}"'},
    )


@router.post("/webhook")
async def docuseal_webhook(
    request: Request,
    x_docuseal_signature: Optional[str] = Header(None),
    settings: Settings = Depends(get_app_settings),
    manager: SubmissionLifecycleManager = Depends(get_lifecycle_manager),
):
    """Receive DocuSeal status events.

    Raises:
        HTTPException 401: Signature missing or invalid (when a secret is set)
        HTTPException 400: Body is not a valid event
    """
    raw = await request.body()
    if not verify_webhook_signature(settings.DOCUSEAL_WEBHOOK_SECRET, raw, x_docuseal_signature):
        webhook_events_total.labels(event="unknown", status="rejected").inc()
        logger.warning("Rejected DocuSeal webhook with invalid signature")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    try:
        payload = json.loads(raw or b"{}")
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON")

    result = await manager.handle_webhook_event(payload)
    return result
