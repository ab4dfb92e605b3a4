"""Simulated Provider - In-memory SignatureProviderPort for development and tests.

Seeded with the standard onboarding templates. Sends no webhooks, so the
lifecycle manager drives sent/opened transitions with timers instead.
Failure switches let tests exercise provider outages.
"""

import logging
import time
import uuid
from datetime import datetime
from typing import Dict, List, Optional

from domain.errors import ProviderError
from domain.signatures.models import Submitter, Template, TemplateField
from domain.signatures.ports.signature_provider_port import (
    ProviderSubmission,
    ProviderSubmitter,
    SignatureProviderPort,
)

logger = logging.getLogger(__name__)

SEED_TEMPLATES = (
    Template(
        id="template_001",
        name="Employee Onboarding Form",
        description="Standard employee onboarding documentation",
        fields=(
            TemplateField("full_name", "text", True),
            TemplateField("email", "email", True),
            TemplateField("phone", "phone", False),
            TemplateField("signature", "signature", True),
        ),
    ),
    Template(
        id="template_002",
        name="I-9 Employment Verification",
        description="Federal I-9 form for employment eligibility",
        fields=(
            TemplateField("legal_name", "text", True),
            TemplateField("ssn", "text", True),
            TemplateField("birth_date", "date", True),
        ),
    ),
    Template(
        id="template_003",
        name="W-4 Tax Withholding",
        description="Federal W-4 tax withholding form",
        fields=(
            TemplateField("filing_status", "select", True),
            TemplateField("dependents", "number", False),
        ),
    ),
)


class SimulatedSignatureProvider(SignatureProviderPort):
    """Provider double that keeps everything in memory.

    Attributes:
        fail_connection: test_connection raises ProviderError
        fail_template_sync: list_templates raises ProviderError
        fail_submission: create_submission raises ProviderError
    """

    provider_name = "simulated"
    delivers_webhooks = False

    def __init__(
        self,
        templates: Optional[List[Template]] = None,
        base_url: str = "https://docuseal.co",
    ):
        self.base_url = base_url.rstrip("/")
        self.templates: List[Template] = list(SEED_TEMPLATES if templates is None else templates)
        self.submissions: Dict[str, ProviderSubmission] = {}
        self.reminders: List[str] = []
        self.fail_connection = False
        self.fail_template_sync = False
        self.fail_submission = False

    async def test_connection(self) -> None:
        if self.fail_connection:
            raise ProviderError("Failed to connect to e-signature provider")

    async def list_templates(self) -> List[Template]:
        if self.fail_template_sync:
            raise ProviderError("Failed to sync templates: API error")
        return list(self.templates)

    async def create_submission(
        self,
        template: Template,
        submitters: List[Submitter],
        send_email: bool = False,
        message: Optional[Dict[str, str]] = None,
        expires_at: Optional[datetime] = None,
    ) -> ProviderSubmission:
        if self.fail_submission:
            raise ProviderError("Failed to create submission: API error")

        submission_id = f"sub_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"
        provider_submitters = []
        for index, submitter in enumerate(submitters):
            slug = uuid.uuid4().hex[:14]
            provider_submitters.append(
                ProviderSubmitter(
                    email=submitter.email,
                    id=f"submitter_{index}",
                    slug=slug,
                    embed_src=f"{self.base_url}/s/{slug}",
                )
            )

        created = ProviderSubmission(
            id=submission_id,
            submitters=provider_submitters,
            status="pending",
            documents_url=f"{self.base_url}/submissions/{submission_id}/documents",
        )
        self.submissions[submission_id] = created
        logger.debug(f"Simulated submission created: {submission_id} (template {template.id})")
        return created

    async def get_submission(self, submission_id: str) -> ProviderSubmission:
        try:
            return self.submissions[submission_id]
        except KeyError:
            raise ProviderError(f"Submission not found: {submission_id}", status_code=404)

    async def download_documents(self, submission_id: str) -> Optional[bytes]:
        if submission_id not in self.submissions:
            raise ProviderError(f"Submission not found: {submission_id}", status_code=404)
        return None

    async def send_reminder(self, submitter_id: str) -> None:
        self.reminders.append(submitter_id)
