"""DocuSeal Provider - Implementation of SignatureProviderPort over the REST API.

Authenticates with the ``X-Auth-Token`` header and talks to the DocuSeal
endpoints for templates, submissions, documents and submitters. Status
changes are delivered by DocuSeal webhooks, see infrastructure.signatures.webhook.

Architecture: Hexagonal - Adapter implementation in infrastructure layer
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from domain.errors import ProviderError
from domain.signatures.models import Submitter, Template
from domain.signatures.ports.signature_provider_port import (
    ProviderSubmission,
    ProviderSubmitter,
    SignatureProviderPort,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


def _unwrap_list(payload: Any) -> List[Dict[str, Any]]:
    """DocuSeal list endpoints return either a bare list or {"data": [...]}."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get("data"), list):
        return payload["data"]
    raise ProviderError(f"Unexpected list response: {type(payload).__name__}")


def _to_provider_submission(payload: Any) -> ProviderSubmission:
    # POST /submissions returns the created submitters; GET returns the submission
    if isinstance(payload, list):
        if not payload:
            raise ProviderError("Provider returned an empty submission")
        submission_id = payload[0].get("submission_id")
        submitters = payload
        status = None
        documents_url = None
        raw = {"submitters": payload}
    elif isinstance(payload, dict):
        submission_id = payload.get("id") or payload.get("submission_id")
        submitters = payload.get("submitters") or []
        status = payload.get("status")
        documents_url = payload.get("combined_document_url")
        raw = payload
    else:
        raise ProviderError(f"Unexpected submission response: {type(payload).__name__}")

    if submission_id is None:
        raise ProviderError("Provider response is missing the submission id")

    return ProviderSubmission(
        id=str(submission_id),
        submitters=[
            ProviderSubmitter(
                email=str(s.get("email", "")),
                id=str(s["id"]) if s.get("id") is not None else None,
                slug=s.get("slug"),
                embed_src=s.get("embed_src"),
            )
            for s in submitters
        ],
        status=status,
        documents_url=documents_url,
        raw=raw,
    )


class DocuSealProvider(SignatureProviderPort):
    """DocuSeal REST client.

    Example:
        provider = DocuSealProvider(api_key=settings.DOCUSEAL_API_KEY)
        templates = await provider.list_templates()
    """

    provider_name = "docuseal"
    delivers_webhooks = True

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.docuseal.co",
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the DocuSeal client.

        Args:
            api_key: DocuSeal API token
            base_url: API root (self-hosted installs use their own host)
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"X-Auth-Token": api_key, "Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"DocuSeal {method} {path} failed: {e}")
            raise ProviderError(f"DocuSeal request failed: {e}") from e

        if response.status_code >= 400:
            body = response.text
            logger.error(f"DocuSeal {method} {path} returned {response.status_code}: {body[:200]}")
            raise ProviderError(
                f"DocuSeal API error {response.status_code} on {method} {path}",
                status_code=response.status_code,
                response_body=body,
            )
        return response

    async def _json(self, method: str, path: str, **kwargs) -> Any:
        response = await self._request(method, path, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(f"DocuSeal returned invalid JSON for {path}") from e

    async def test_connection(self) -> None:
        await self._request("GET", "/templates", params={"limit": 1})

    async def list_templates(self) -> List[Template]:
        payload = await self._json("GET", "/templates")
        return [Template.from_provider(item) for item in _unwrap_list(payload)]

    async def create_submission(
        self,
        template: Template,
        submitters: List[Submitter],
        send_email: bool = False,
        message: Optional[Dict[str, str]] = None,
        expires_at: Optional[datetime] = None,
    ) -> ProviderSubmission:
        body: Dict[str, Any] = {
            "template_id": int(template.id) if template.id.isdigit() else template.id,
            "send_email": send_email,
            "submitters": [
                {
                    k: v
                    for k, v in {
                        "email": s.email,
                        "name": s.name,
                        "phone": s.phone,
                        "role": s.role,
                        "values": s.values,
                    }.items()
                    if v is not None
                }
                for s in submitters
            ],
        }
        if message:
            body["message"] = message
        if expires_at:
            body["expire_at"] = expires_at.isoformat()

        payload = await self._json("POST", "/submissions", json=body)
        created = _to_provider_submission(payload)
        logger.info(f"DocuSeal submission created: {created.id} (template {template.id})")
        return created

    async def get_submission(self, submission_id: str) -> ProviderSubmission:
        payload = await self._json("GET", f"/submissions/{submission_id}")
        return _to_provider_submission(payload)

    async def download_documents(self, submission_id: str) -> Optional[bytes]:
        payload = await self._json("GET", f"/submissions/{submission_id}/documents")
        documents = payload.get("documents") if isinstance(payload, dict) else None
        if not documents:
            return None

        url = documents[0].get("url")
        if not url:
            return None
        response = await self._request("GET", url)
        return response.content

    async def send_reminder(self, submitter_id: str) -> None:
        await self._request("PUT", f"/submitters/{submitter_id}", json={"send_email": True})

    async def close(self) -> None:
        await self._client.aclose()
