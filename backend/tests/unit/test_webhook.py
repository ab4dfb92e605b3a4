"""Unit tests for webhook signature verification, parsing and handling"""

import asyncio
import base64
import hashlib
import hmac
import json

import pytest

from domain.errors import NotInitializedError, ValidationError
from domain.signatures import SubmissionEvent, SubmissionStatus, is_legal_path
from infrastructure.signatures.simulated_provider import SimulatedSignatureProvider
from infrastructure.signatures.webhook import parse_webhook_event, verify_webhook_signature
from services.submission_lifecycle_manager import SubmissionLifecycleManager

S = SubmissionStatus
SECRET = "whsec_test"
BODY = json.dumps({"event_type": "form.viewed", "data": {"submission_id": 1}}).encode()


class WebhookProvider(SimulatedSignatureProvider):
    """Simulated provider that reports events through webhooks."""

    delivers_webhooks = True


def _event(event_type, submission_id, **data):
    key = "id" if event_type.startswith("submission.") else "submission_id"
    return {"event_type": event_type, "timestamp": "2026-01-05T10:00:00Z",
            "data": {key: submission_id, **data}}


@pytest.fixture
async def webhook_manager():
    manager = SubmissionLifecycleManager(
        provider=WebhookProvider(), send_delay_seconds=0.01, open_delay_seconds=0.01
    )
    await manager.initialize()
    yield manager
    await manager.close()


async def _created(manager, submitters=None):
    result = await manager.create_submission(
        "template_001", submitters or [{"email": "nurse@example.com"}]
    )
    return result.submission.id


class TestSignatureVerification:
    def test_hex_signature(self):
        signature = hmac.new(SECRET.encode(), BODY, hashlib.sha256).hexdigest()
        assert verify_webhook_signature(SECRET, BODY, signature) is True

    def test_prefixed_signature(self):
        signature = hmac.new(SECRET.encode(), BODY, hashlib.sha256).hexdigest()
        assert verify_webhook_signature(SECRET, BODY, f"sha256={signature}") is True

    def test_base64_signature(self):
        digest = hmac.new(SECRET.encode(), BODY, hashlib.sha256).digest()
        assert verify_webhook_signature(SECRET, BODY, base64.b64encode(digest).decode()) is True

    def test_wrong_signature(self):
        signature = hmac.new(b"other", BODY, hashlib.sha256).hexdigest()
        assert verify_webhook_signature(SECRET, BODY, signature) is False

    def test_tampered_body(self):
        signature = hmac.new(SECRET.encode(), BODY, hashlib.sha256).hexdigest()
        assert verify_webhook_signature(SECRET, BODY + b" ", signature) is False

    def test_missing_signature(self):
        assert verify_webhook_signature(SECRET, BODY, None) is False

    def test_no_secret_disables_verification(self):
        assert verify_webhook_signature(None, BODY, None) is True


class TestParsing:
    def test_form_event(self):
        event = parse_webhook_event(_event(
            "form.completed", 17, email="nurse@example.com",
            values=[{"field": "full_name", "value": "Pat Doe"}],
        ))

        assert event.submission_id == "17"
        assert event.event == SubmissionEvent.COMPLETED
        assert event.email == "nurse@example.com"
        assert event.values == {"full_name": "Pat Doe"}

    def test_nested_submission_id(self):
        event = parse_webhook_event(
            {"event_type": "form.viewed", "data": {"submission": {"id": "sub_9"}}}
        )
        assert event.submission_id == "sub_9"

    def test_submission_event_uses_data_id(self):
        event = parse_webhook_event(_event("submission.expired", "sub_5"))
        assert event.submission_id == "sub_5"
        assert event.event == SubmissionEvent.EXPIRED

    def test_unmapped_event_type(self):
        assert parse_webhook_event(_event("template.created", 1)).event is None

    @pytest.mark.parametrize("payload", [
        [],
        {"data": {}},
        {"event_type": "form.viewed"},
        {"event_type": "form.viewed", "data": "oops"},
    ])
    def test_malformed_payloads(self, payload):
        with pytest.raises(ValidationError):
            parse_webhook_event(payload)


class TestHandleWebhookEvent:
    @pytest.mark.asyncio
    async def test_requires_initialize(self):
        manager = SubmissionLifecycleManager(provider=WebhookProvider())
        with pytest.raises(NotInitializedError):
            await manager.handle_webhook_event(_event("form.viewed", "sub_1"))

    @pytest.mark.asyncio
    async def test_viewed_then_completed(self, webhook_manager):
        submission_id = await _created(webhook_manager)
        received = []
        webhook_manager.register_callback(submission_id, received.append)

        viewed = await webhook_manager.handle_webhook_event(
            _event("form.viewed", submission_id, email="nurse@example.com")
        )
        completed = await webhook_manager.handle_webhook_event(_event(
            "form.completed", submission_id, email="nurse@example.com",
            values=[{"field": "full_name", "value": "Pat Doe"}],
        ))
        await webhook_manager.drain_callbacks()

        assert viewed.status == "ok"
        assert completed.status == "ok"
        submission = webhook_manager.get_submission(submission_id)
        assert submission.status == S.COMPLETED
        assert submission.status_history == [S.PENDING, S.SENT, S.OPENED, S.COMPLETED]
        assert submission.submitters[0].viewed_at is not None
        assert submission.submitters[0].values == {"full_name": "Pat Doe"}
        assert [e.source for e in received] == ["webhook"] * 3

    @pytest.mark.asyncio
    async def test_duplicate_delivery_ignored(self, webhook_manager):
        submission_id = await _created(webhook_manager)
        await webhook_manager.handle_webhook_event(_event("form.viewed", submission_id))

        duplicate = await webhook_manager.handle_webhook_event(_event("form.viewed", submission_id))

        assert duplicate.status == "ignored"
        assert webhook_manager.get_submission(submission_id).status_history.count(S.OPENED) == 1

    @pytest.mark.asyncio
    async def test_event_after_terminal_status_ignored(self, webhook_manager):
        submission_id = await _created(webhook_manager)
        await webhook_manager.decline_submission(submission_id, "No longer interested")

        result = await webhook_manager.handle_webhook_event(_event("form.completed", submission_id))

        assert result.status == "ignored"
        assert webhook_manager.get_submission(submission_id).status == S.DECLINED

    @pytest.mark.asyncio
    async def test_unknown_submission_ignored(self, webhook_manager):
        result = await webhook_manager.handle_webhook_event(_event("form.viewed", "sub_missing"))
        assert result.status == "ignored"
        assert result.submission_id == "sub_missing"

    @pytest.mark.asyncio
    async def test_unmapped_event_ignored(self, webhook_manager):
        submission_id = await _created(webhook_manager)
        result = await webhook_manager.handle_webhook_event(_event("template.updated", submission_id))
        assert result.status == "ignored"

    @pytest.mark.asyncio
    async def test_declined(self, webhook_manager):
        submission_id = await _created(webhook_manager)

        await webhook_manager.handle_webhook_event(_event(
            "form.declined", submission_id, email="nurse@example.com", decline_reason="Wrong rate",
        ))

        submission = webhook_manager.get_submission(submission_id)
        assert submission.status == S.DECLINED
        assert submission.decline_reason == "Wrong rate"
        assert submission.submitters[0].declined_at is not None

    @pytest.mark.asyncio
    async def test_expired_from_provider(self, webhook_manager):
        result = await webhook_manager.create_submission(
            "template_001", [{"email": "nurse@example.com"}], send_email=True
        )
        submission_id = result.submission.id
        await webhook_manager.handle_webhook_event(_event("form.viewed", submission_id))

        expired = await webhook_manager.handle_webhook_event(_event("submission.expired", submission_id))

        assert expired.status == "ok"
        submission = webhook_manager.get_submission(submission_id)
        assert submission.status == S.EXPIRED
        assert is_legal_path(submission.status_history)

    @pytest.mark.asyncio
    async def test_multi_submitter_completes_after_last(self, webhook_manager):
        submission_id = await _created(webhook_manager, [
            {"email": "nurse@example.com", "role": "Employee"},
            {"email": "hr@example.com", "role": "HR"},
        ])

        first = await webhook_manager.handle_webhook_event(
            _event("form.completed", submission_id, email="nurse@example.com")
        )
        assert first.status == "ok"
        assert webhook_manager.get_submission(submission_id).status == S.SENT

        await webhook_manager.handle_webhook_event(
            _event("form.completed", submission_id, email="HR@example.com")
        )

        submission = webhook_manager.get_submission(submission_id)
        assert submission.status == S.COMPLETED
        assert all(s.completed_at is not None for s in submission.submitters)


class TestDeadlineAfterWebhook:
    @pytest.mark.asyncio
    async def test_promoted_submission_expires_at_deadline(self):
        manager = SubmissionLifecycleManager(provider=WebhookProvider(), expiry_days=0.3 / 86400)
        await manager.initialize()
        try:
            submission_id = await _created(manager)
            await manager.handle_webhook_event(
                _event("form.viewed", submission_id, email="nurse@example.com")
            )
            assert manager.get_submission(submission_id).status == S.OPENED

            loop = asyncio.get_running_loop()
            deadline = loop.time() + 2.0
            while manager.get_submission(submission_id).status != S.EXPIRED and loop.time() < deadline:
                await asyncio.sleep(0.02)

            expired = manager.get_submission(submission_id)
            assert expired.status == S.EXPIRED
            assert expired.status_history == [S.PENDING, S.SENT, S.OPENED, S.EXPIRED]
        finally:
            await manager.close()

    @pytest.mark.asyncio
    async def test_completed_by_webhook_ignores_deadline(self):
        manager = SubmissionLifecycleManager(provider=WebhookProvider(), expiry_days=0.2 / 86400)
        await manager.initialize()
        try:
            submission_id = await _created(manager)
            await manager.handle_webhook_event(_event("form.viewed", submission_id))
            await manager.handle_webhook_event(_event("form.completed", submission_id))

            await asyncio.sleep(0.4)

            assert manager.get_submission(submission_id).status == S.COMPLETED
        finally:
            await manager.close()
