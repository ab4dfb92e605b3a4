"""DocuSeal webhook verification and parsing.

DocuSeal posts JSON bodies shaped like::

    {"event_type": "form.completed", "timestamp": "...",
     "data": {"id": 1, "submission_id": 7, "email": "a@x.com",
              "values": [{"field": "full_name", "value": "Jane"}], ...}}

Submission-level events (``submission.expired``) carry the submission
itself in ``data``.
"""

import base64
import binascii
import hashlib
import hmac
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from domain.errors import ValidationError
from domain.signatures.submission_status import SubmissionEvent

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Docuseal-Signature"

EVENT_MAP: Dict[str, SubmissionEvent] = {
    "form.viewed": SubmissionEvent.OPENED,
    "form.started": SubmissionEvent.OPENED,
    "form.completed": SubmissionEvent.COMPLETED,
    "form.declined": SubmissionEvent.DECLINED,
    "submission.expired": SubmissionEvent.EXPIRED,
}


@dataclass
class ProviderWebhookEvent:
    """Normalized inbound provider event."""
    event_type: str
    submission_id: Optional[str]
    email: Optional[str] = None
    values: Dict[str, Any] = field(default_factory=dict)
    decline_reason: Optional[str] = None

    @property
    def event(self) -> Optional[SubmissionEvent]:
        return EVENT_MAP.get(self.event_type)


def verify_webhook_signature(secret: Optional[str], body: bytes, signature: Optional[str]) -> bool:
    """Check an HMAC-SHA256 signature of the raw request body.

    Accepts the digest hex-encoded or base64-encoded, optionally prefixed
    with ``sha256=``. Verification is disabled when no secret is configured.
    """
    if not secret:
        return True
    if not signature:
        return False

    provided = signature.strip()
    if provided.startswith("sha256="):
        provided = provided[len("sha256="):]

    digest = hmac.new(secret.encode(), body, hashlib.sha256).digest()
    if hmac.compare_digest(provided.lower(), digest.hex()):
        return True

    try:
        decoded = base64.b64decode(provided, validate=True)
    except (binascii.Error, ValueError):
        return False
    return hmac.compare_digest(decoded, digest)


def submitted_values(raw: Any) -> Dict[str, Any]:
    """Field values as a dict; DocuSeal sends a list of {field, value} items."""
    if isinstance(raw, Mapping):
        return dict(raw)
    values: Dict[str, Any] = {}
    for item in raw or []:
        if isinstance(item, Mapping) and item.get("field"):
            values[str(item["field"])] = item.get("value")
    return values


def parse_webhook_event(payload: Mapping[str, Any]) -> ProviderWebhookEvent:
    """Normalize a webhook body.

    Raises:
        ValidationError: If the body has no event type or data object
    """
    if not isinstance(payload, Mapping):
        raise ValidationError("Webhook payload must be a JSON object")

    event_type = payload.get("event_type") or payload.get("event")
    if not event_type:
        raise ValidationError("Webhook payload is missing event_type")

    data = payload.get("data")
    if not isinstance(data, Mapping):
        raise ValidationError("Webhook payload is missing data")

    if str(event_type).startswith("submission."):
        submission_id = data.get("id")
    else:
        submission_id = data.get("submission_id")
        if submission_id is None and isinstance(data.get("submission"), Mapping):
            submission_id = data["submission"].get("id")

    return ProviderWebhookEvent(
        event_type=str(event_type),
        submission_id=str(submission_id) if submission_id is not None else None,
        email=data.get("email"),
        values=submitted_values(data.get("values")),
        decline_reason=data.get("decline_reason"),
    )
