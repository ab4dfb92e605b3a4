"""Domain records for e-signature templates and submissions.

The lifecycle manager owns every Submission; callers only ever receive
deep-copied snapshots, so mutating a returned object never affects state.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from domain.errors import ValidationError

from .submission_status import SubmissionEvent, SubmissionStatus


@dataclass(frozen=True)
class TemplateField:
    name: str
    type: str = "text"
    required: bool = False


@dataclass(frozen=True)
class Template:
    """Reusable document definition synced from the provider."""
    id: str
    name: str
    description: Optional[str] = None
    fields: Tuple[TemplateField, ...] = ()
    submitter_roles: Tuple[str, ...] = ()

    @classmethod
    def from_provider(cls, payload: Mapping[str, Any]) -> "Template":
        """Build a template from a provider API record.

        Raises:
            ValidationError: If the record has no id
        """
        if payload.get("id") in (None, ""):
            raise ValidationError("Template record is missing an id")

        fields = tuple(
            TemplateField(
                name=str(f.get("name", "")),
                type=str(f.get("type", "text")),
                required=bool(f.get("required", False)),
            )
            for f in (payload.get("fields") or [])
        )
        roles = tuple(
            str(s.get("name", "")) for s in (payload.get("submitters") or [])
            if isinstance(s, Mapping)
        )
        return cls(
            id=str(payload["id"]),
            name=str(payload.get("name") or payload["id"]),
            description=payload.get("description"),
            fields=fields,
            submitter_roles=roles,
        )

    @property
    def required_fields(self) -> List[str]:
        return [f.name for f in self.fields if f.required]


@dataclass
class Submitter:
    """One signer within a submission; list order is invitation order."""
    email: str
    name: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[str] = None
    id: Optional[str] = None
    slug: Optional[str] = None
    embed_src: Optional[str] = None
    sent_at: Optional[datetime] = None
    viewed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    declined_at: Optional[datetime] = None
    values: Optional[Dict[str, Any]] = None

    @classmethod
    def coerce(cls, value: Union["Submitter", Mapping[str, Any]]) -> "Submitter":
        """Normalize caller input into a Submitter.

        Raises:
            ValidationError: If the email is missing or malformed
        """
        if isinstance(value, Submitter):
            submitter = copy.deepcopy(value)
        elif isinstance(value, Mapping):
            submitter = cls(
                email=str(value.get("email") or "").strip(),
                name=value.get("name"),
                phone=value.get("phone"),
                role=value.get("role"),
                values=dict(value["values"]) if value.get("values") else None,
            )
        else:
            raise ValidationError(f"Invalid submitter: {value!r}")

        email = (submitter.email or "").strip()
        if not email or "@" not in email or email.startswith("@") or email.endswith("@"):
            raise ValidationError(f"Invalid submitter email: {submitter.email!r}")
        submitter.email = email
        return submitter


@dataclass
class Submission:
    """One outbound e-signature request.

    ``status_history`` records every status the submission has held, in
    order, starting with ``pending``.
    """
    id: str
    template_id: str
    status: SubmissionStatus
    submitters: List[Submitter]
    created_at: datetime
    sent_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    declined_at: Optional[datetime] = None
    decline_reason: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    message: Optional[Dict[str, str]] = None
    send_email: bool = False
    documents_url: Optional[str] = None
    reminders_sent: int = 0
    last_reminder_at: Optional[datetime] = None
    status_history: List[SubmissionStatus] = field(default_factory=list)

    @property
    def employee_id(self):
        return self.metadata.get("employeeId", self.metadata.get("employee_id"))

    @property
    def primary_submitter(self) -> Optional[Submitter]:
        return self.submitters[0] if self.submitters else None

    def snapshot(self) -> "Submission":
        """Read-only copy handed to callers."""
        return copy.deepcopy(self)

    def find_submitter(self, email: str) -> Optional[Submitter]:
        wanted = (email or "").strip().lower()
        for submitter in self.submitters:
            if submitter.email.lower() == wanted:
                return submitter
        return None


@dataclass
class SubmissionCallbackEvent:
    """Payload delivered to a registered callback.

    Attributes:
        event: Transition that happened
        submission_id: Submission the event belongs to
        data: Snapshot of the submission after the transition
        source: What caused it (api, timer, webhook)
    """
    event: SubmissionEvent
    submission_id: str
    data: Submission
    occurred_at: datetime
    source: str = "api"


SubmissionCallback = Callable[[SubmissionCallbackEvent], Any]


@dataclass
class SubmissionResult:
    success: bool
    submission: Optional[Submission] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


@dataclass
class TemplateSyncResult:
    success: bool
    synced: int = 0
    message: str = ""


@dataclass
class ConnectionTestResult:
    success: bool
    message: str = ""


@dataclass
class DocumentDownloadResult:
    success: bool
    data: Optional[bytes] = None
    content_type: Optional[str] = None
    filename: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


@dataclass
class ReminderResult:
    success: bool
    message: str = ""


@dataclass
class WebhookResult:
    """Outcome of processing one inbound provider event.

    status is ``ok`` when a transition was applied and ``ignored`` for
    unknown events, unknown submissions, duplicates and illegal transitions.
    """
    status: str
    event: Optional[str] = None
    submission_id: Optional[str] = None
    message: Optional[str] = None
