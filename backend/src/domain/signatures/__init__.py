"""Signatures domain module - submission state machine, records, PDF rendering"""

from .models import (
    ConnectionTestResult,
    DocumentDownloadResult,
    ReminderResult,
    Submission,
    SubmissionCallbackEvent,
    SubmissionResult,
    Submitter,
    Template,
    TemplateField,
    TemplateSyncResult,
    WebhookResult,
)
from .submission_status import (
    SubmissionEvent,
    SubmissionStatus,
    can_transition,
    is_legal_path,
    is_terminal,
)

__all__ = [
    "ConnectionTestResult",
    "DocumentDownloadResult",
    "ReminderResult",
    "Submission",
    "SubmissionCallbackEvent",
    "SubmissionResult",
    "Submitter",
    "Template",
    "TemplateField",
    "TemplateSyncResult",
    "WebhookResult",
    "SubmissionEvent",
    "SubmissionStatus",
    "can_transition",
    "is_legal_path",
    "is_terminal",
]
