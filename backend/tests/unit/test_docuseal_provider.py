"""Unit tests for the DocuSeal REST provider using httpx.MockTransport"""

import json

import httpx
import pytest

from domain.errors import ProviderError
from domain.signatures import Submitter, Template
from infrastructure.signatures.docuseal_provider import DocuSealProvider

API = "https://api.docuseal.test"
TEMPLATE = Template(id="1001", name="Employee Onboarding Form")


class Recorder:
    """Mock transport handler that records requests and replies from a route table."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        reply = self.routes.get((request.method, request.url.path))
        if reply is None:
            return httpx.Response(404, json={"error": "Not found"})
        return reply(request) if callable(reply) else reply


@pytest.fixture
async def make_provider():
    providers = []

    def factory(routes):
        recorder = Recorder(routes)
        provider = DocuSealProvider(
            api_key="test-token",
            base_url=API,
            transport=httpx.MockTransport(recorder),
        )
        providers.append(provider)
        return provider, recorder

    yield factory
    for provider in providers:
        await provider.close()


class TestConnectionAndTemplates:
    @pytest.mark.asyncio
    async def test_auth_header_sent(self, make_provider):
        provider, recorder = make_provider({("GET", "/templates"): httpx.Response(200, json=[])})

        await provider.test_connection()

        request = recorder.requests[0]
        assert request.headers["X-Auth-Token"] == "test-token"
        assert request.url.params["limit"] == "1"

    @pytest.mark.asyncio
    async def test_unauthorized_raises(self, make_provider):
        provider, _ = make_provider({
            ("GET", "/templates"): httpx.Response(401, json={"error": "Unauthorized"}),
        })

        with pytest.raises(ProviderError) as exc_info:
            await provider.test_connection()

        assert exc_info.value.status_code == 401
        assert "Unauthorized" in exc_info.value.response_body

    @pytest.mark.asyncio
    async def test_list_templates_wrapped(self, make_provider):
        provider, _ = make_provider({
            ("GET", "/templates"): httpx.Response(200, json={"data": [{
                "id": 1001,
                "name": "Employee Onboarding Form",
                "fields": [{"name": "full_name", "type": "text", "required": True},
                           {"name": "phone", "type": "phone"}],
                "submitters": [{"name": "Employee"}],
            }]}),
        })

        templates = await provider.list_templates()

        assert len(templates) == 1
        assert templates[0].id == "1001"
        assert templates[0].required_fields == ["full_name"]
        assert templates[0].submitter_roles == ("Employee",)

    @pytest.mark.asyncio
    async def test_list_templates_bare_list(self, make_provider):
        provider, _ = make_provider({
            ("GET", "/templates"): httpx.Response(200, json=[{"id": 1, "name": "W-4"}]),
        })
        assert [t.name for t in await provider.list_templates()] == ["W-4"]

    @pytest.mark.asyncio
    async def test_connection_failure_is_provider_error(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        provider = DocuSealProvider(api_key="t", base_url=API, transport=httpx.MockTransport(refuse))
        try:
            with pytest.raises(ProviderError):
                await provider.test_connection()
        finally:
            await provider.close()


class TestSubmissions:
    @pytest.mark.asyncio
    async def test_create_submission(self, make_provider):
        created = [{
            "id": 501, "submission_id": 77, "email": "nurse@example.com",
            "slug": "abc123", "embed_src": "https://docuseal.test/s/abc123",
        }]
        provider, recorder = make_provider({("POST", "/submissions"): httpx.Response(200, json=created)})

        submission = await provider.create_submission(
            TEMPLATE,
            [Submitter(email="nurse@example.com", name="Pat Doe")],
            send_email=True,
            message={"subject": "Onboarding", "body": "Please sign"},
        )

        body = json.loads(recorder.requests[0].content)
        assert body["template_id"] == 1001
        assert body["send_email"] is True
        assert body["submitters"][0]["email"] == "nurse@example.com"
        assert body["submitters"][0]["name"] == "Pat Doe"
        assert "phone" not in body["submitters"][0]
        assert body["message"]["subject"] == "Onboarding"

        assert submission.id == "77"
        match = submission.submitter_for("NURSE@example.com")
        assert match.id == "501"
        assert match.embed_src == "https://docuseal.test/s/abc123"

    @pytest.mark.asyncio
    async def test_create_rejected(self, make_provider):
        provider, _ = make_provider({
            ("POST", "/submissions"): httpx.Response(422, json={"error": "Template not found"}),
        })

        with pytest.raises(ProviderError) as exc_info:
            await provider.create_submission(TEMPLATE, [Submitter(email="a@example.com")])
        assert exc_info.value.status_code == 422

    @pytest.mark.asyncio
    async def test_get_submission(self, make_provider):
        provider, _ = make_provider({
            ("GET", "/submissions/77"): httpx.Response(200, json={
                "id": 77, "status": "completed",
                "combined_document_url": "https://docuseal.test/file.pdf",
                "submitters": [{"id": 501, "email": "nurse@example.com"}],
            }),
        })

        submission = await provider.get_submission("77")

        assert submission.status == "completed"
        assert submission.documents_url == "https://docuseal.test/file.pdf"
        assert submission.submitters[0].id == "501"

    @pytest.mark.asyncio
    async def test_send_reminder(self, make_provider):
        provider, recorder = make_provider({("PUT", "/submitters/501"): httpx.Response(200, json={})})

        await provider.send_reminder("501")

        assert json.loads(recorder.requests[0].content) == {"send_email": True}


class TestDocuments:
    @pytest.mark.asyncio
    async def test_download_first_document(self, make_provider):
        provider, recorder = make_provider({
            ("GET", "/submissions/77/documents"): httpx.Response(200, json={
                "id": 77, "documents": [{"name": "signed", "url": f"{API}/files/signed.pdf"}],
            }),
            ("GET", "/files/signed.pdf"): httpx.Response(200, content=b"%PDF-1.7 signed"),
        })

        data = await provider.download_documents("77")

        assert data == b"%PDF-1.7 signed"
        assert len(recorder.requests) == 2

    @pytest.mark.asyncio
    async def test_no_documents(self, make_provider):
        provider, _ = make_provider({
            ("GET", "/submissions/77/documents"): httpx.Response(200, json={"documents": []}),
        })
        assert await provider.download_documents("77") is None
