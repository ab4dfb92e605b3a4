"""Submission Lifecycle Manager - e-signature state machine and event delivery.

Owns every submission record in memory, applies status transitions from
four sources (api calls, scheduled timers, provider webhooks and status
polls) and notifies the callback registered for each submission.

Concurrency:
- Mutations are serialized per submission id with FIFO locks; different
  submissions never block each other. Racing transitions are applied in
  arrival order and each is re-validated against the state left by the
  previous one.
- Scheduled transitions carry the generation they were scheduled under.
  Terminal transitions, expiry and resends bump the generation and cancel
  the tasks, so a stale timer never applies.
- Every sent or opened submission has a live deadline timer, however it
  got there.
- Callbacks run as separate tasks after the lock is released. Handler
  exceptions are logged and counted, never propagated.
"""

import asyncio
import inspect
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple, Union

from config import Settings
from domain.errors import (
    InvalidStateTransitionError,
    NotCompletedError,
    NotFoundError,
    NotInitializedError,
    ProviderError,
    TemplateNotFoundError,
    ValidationError,
)
from domain.signatures.documents import (
    PDF_CONTENT_TYPE,
    document_filename,
    render_submission_pdf,
)
from domain.signatures.models import (
    ConnectionTestResult,
    DocumentDownloadResult,
    ReminderResult,
    Submission,
    SubmissionCallback,
    SubmissionCallbackEvent,
    SubmissionResult,
    Submitter,
    Template,
    TemplateSyncResult,
    WebhookResult,
)
from domain.signatures.ports.signature_provider_port import (
    ProviderSubmission,
    SignatureProviderPort,
)
from domain.signatures.submission_status import (
    STATUS_FOR_EVENT,
    SubmissionEvent,
    SubmissionStatus,
    can_transition,
    is_terminal,
)
from infrastructure.signatures.docuseal_provider import DocuSealProvider
from infrastructure.signatures.simulated_provider import SimulatedSignatureProvider
from infrastructure.signatures.webhook import (
    ProviderWebhookEvent,
    parse_webhook_event,
    submitted_values,
)
from observability.metrics import (
    submission_callback_failures_total,
    submission_transitions_total,
    webhook_events_total,
)
from services.keyed_lock import KeyedLock

logger = logging.getLogger(__name__)

# Sources a transition can come from (metrics label and callback payload)
SOURCE_API = "api"
SOURCE_TIMER = "timer"
SOURCE_WEBHOOK = "webhook"
SOURCE_POLL = "poll"

_RESENDABLE = (SubmissionStatus.SENT, SubmissionStatus.OPENED, SubmissionStatus.EXPIRED)
_IN_FLIGHT = (SubmissionStatus.SENT, SubmissionStatus.OPENED)

# Provider status names; anything else leaves the local record unchanged
_REMOTE_STATUS = {
    "pending": SubmissionStatus.PENDING,
    "awaiting": SubmissionStatus.SENT,
    "sent": SubmissionStatus.SENT,
    "opened": SubmissionStatus.OPENED,
    "completed": SubmissionStatus.COMPLETED,
    "expired": SubmissionStatus.EXPIRED,
    "declined": SubmissionStatus.DECLINED,
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _normalize_message(message: Union[None, str, Mapping[str, str]]) -> Optional[Dict[str, str]]:
    if message is None:
        return None
    if isinstance(message, str):
        return {"body": message} if message else None
    return {k: str(v) for k, v in message.items() if v is not None}


class SubmissionLifecycleManager:
    """Authoritative state machine for outbound signature requests.

    Example:
        manager = SubmissionLifecycleManager.from_settings(get_settings())
        await manager.initialize()
        result = await manager.create_submission(
            "template_001", [{"email": "nurse@example.com"}], send_email=True
        )
        manager.register_callback(result.submission.id, on_event)
    """

    def __init__(
        self,
        provider: SignatureProviderPort,
        send_delay_seconds: float = 0.1,
        open_delay_seconds: float = 0.2,
        expiry_days: float = 30,
        callback_delay_seconds: float = 0.0,
    ):
        """Initialize the manager.

        Args:
            provider: E-signature provider adapter
            send_delay_seconds: Delay before a sent transition after create
            open_delay_seconds: Delay, from create or resend, before the
                simulated opened transition (providers without webhooks only)
            expiry_days: Business deadline stamped on each submission; the
                submission expires when it passes unless completed first
            callback_delay_seconds: Delay before each callback delivery
        """
        self.provider = provider
        self.send_delay_seconds = send_delay_seconds
        self.open_delay_seconds = open_delay_seconds
        self.expiry = timedelta(days=expiry_days)
        self.callback_delay_seconds = callback_delay_seconds

        self._initialized = False
        self._templates: Dict[str, Template] = {}
        self._submissions: Dict[str, Submission] = {}
        self._callbacks: Dict[str, SubmissionCallback] = {}
        self._locks = KeyedLock()
        self._timers: Dict[str, List[asyncio.Task]] = {}
        self._expiry_timers: Dict[str, asyncio.Task] = {}
        self._generations: Dict[str, int] = {}
        self._deliveries: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, settings: Settings) -> "SubmissionLifecycleManager":
        """Pick the provider from settings: DocuSeal when an API key is set."""
        if settings.DOCUSEAL_SIMULATE or not settings.DOCUSEAL_API_KEY:
            provider: SignatureProviderPort = SimulatedSignatureProvider()
        else:
            provider = DocuSealProvider(
                api_key=settings.DOCUSEAL_API_KEY,
                base_url=settings.DOCUSEAL_BASE_URL,
                timeout=settings.DOCUSEAL_TIMEOUT_SECONDS,
            )
        return cls(
            provider=provider,
            send_delay_seconds=settings.SUBMISSION_SEND_DELAY_SECONDS,
            open_delay_seconds=settings.SUBMISSION_OPEN_DELAY_SECONDS,
            expiry_days=settings.SUBMISSION_EXPIRY_DAYS,
            callback_delay_seconds=settings.SUBMISSION_CALLBACK_DELAY_SECONDS,
        )

    @property
    def initialized(self) -> bool:
        return self._initialized

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise NotInitializedError(
                "Submission lifecycle manager is not initialized; call initialize() first"
            )

    # ------------------------------------------------------------------
    # Provider connectivity and templates
    # ------------------------------------------------------------------

    async def initialize(self) -> ConnectionTestResult:
        """Establish provider connectivity and load the template cache.

        A failed template sync does not undo initialization; call
        sync_templates() again once the provider recovers.
        """
        result = await self.test_connection()
        if not result.success:
            return result

        self._initialized = True
        sync = await self.sync_templates()
        if not sync.success:
            logger.warning(f"Initial template sync failed: {sync.message}")
        logger.info(
            f"Submission lifecycle manager initialized "
            f"(provider={self.provider.provider_name}, templates={len(self._templates)})"
        )
        return result

    async def test_connection(self) -> ConnectionTestResult:
        try:
            await self.provider.test_connection()
        except ProviderError as e:
            logger.error(f"E-signature provider connection failed: {e.message}")
            return ConnectionTestResult(success=False, message=e.message)
        return ConnectionTestResult(
            success=True,
            message=f"Connected to {self.provider.provider_name}",
        )

    async def sync_templates(self) -> TemplateSyncResult:
        """Replace the template cache with the provider's templates.

        All or nothing: on any failure the previous cache stays intact.
        """
        self._ensure_initialized()
        try:
            templates = await self.provider.list_templates()
            fresh = {t.id: t for t in templates}
        except (ProviderError, ValidationError) as e:
            logger.error(f"Template sync failed: {e.message}")
            return TemplateSyncResult(success=False, synced=0, message=e.message)

        self._templates = fresh
        logger.info(f"Synced {len(fresh)} templates")
        return TemplateSyncResult(
            success=True,
            synced=len(fresh),
            message=f"Successfully synced {len(fresh)} templates",
        )

    def get_templates(self) -> List[Template]:
        return list(self._templates.values())

    def get_template(self, template_id: str) -> Optional[Template]:
        return self._templates.get(template_id)

    # ------------------------------------------------------------------
    # Creation and lookups
    # ------------------------------------------------------------------

    async def create_submission(
        self,
        template_id: str,
        submitters: Iterable[Union[Submitter, Mapping[str, Any]]],
        send_email: bool = False,
        message: Union[None, str, Mapping[str, str]] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> SubmissionResult:
        """Create a submission in ``pending`` status.

        With send_email the submission moves to ``sent`` shortly afterwards
        (and, for providers without webhooks, to ``opened`` after that).

        Returns:
            SubmissionResult: Snapshot on success; otherwise error and
                error_code (VALIDATION_ERROR, TEMPLATE_NOT_FOUND, PROVIDER_ERROR)

        Raises:
            NotInitializedError: If initialize() has not succeeded
        """
        self._ensure_initialized()

        try:
            if not template_id:
                raise ValidationError("template_id is required")
            template = self._templates.get(str(template_id))
            if template is None:
                raise TemplateNotFoundError(str(template_id))
            entries = [Submitter.coerce(s) for s in (submitters or [])]
            if not entries:
                raise ValidationError("At least one submitter is required")
        except (ValidationError, TemplateNotFoundError) as e:
            logger.info(f"Submission rejected: {e.message}")
            return SubmissionResult(success=False, error=e.message, error_code=e.code)

        created_at = _now()
        expires_at = created_at + self.expiry
        try:
            remote = await self.provider.create_submission(
                template,
                entries,
                send_email=send_email,
                message=_normalize_message(message),
                expires_at=expires_at,
            )
        except ProviderError as e:
            logger.error(f"Provider failed to create submission for {template.id}: {e.message}")
            return SubmissionResult(success=False, error=e.message, error_code=e.code)

        for entry in entries:
            match = remote.submitter_for(entry.email)
            if match:
                entry.id, entry.slug, entry.embed_src = match.id, match.slug, match.embed_src

        submission = Submission(
            id=remote.id,
            template_id=template.id,
            status=SubmissionStatus.PENDING,
            submitters=entries,
            created_at=created_at,
            expires_at=expires_at,
            metadata=dict(metadata or {}),
            message=_normalize_message(message),
            send_email=send_email,
            documents_url=remote.documents_url,
            status_history=[SubmissionStatus.PENDING],
        )
        self._submissions[submission.id] = submission
        self._generations[submission.id] = 0
        submission_transitions_total.labels(
            from_status="none", to_status=SubmissionStatus.PENDING.value, source=SOURCE_API
        ).inc()
        logger.info(
            f"Submission created: {submission.id} (template {template.id}, "
            f"{len(entries)} submitter(s), send_email={send_email})",
            extra={"submission_id": submission.id},
        )

        if send_email:
            self._schedule_delivery(submission.id, include_send=True)

        return SubmissionResult(success=True, submission=submission.snapshot())

    def get_submission(self, submission_id: str) -> Optional[Submission]:
        submission = self._submissions.get(submission_id)
        return submission.snapshot() if submission else None

    def get_submissions_by_employee_id(self, employee_id: Union[str, int]) -> List[Submission]:
        """All submissions whose metadata employeeId matches, in creation order."""
        wanted = str(employee_id)
        return [
            s.snapshot()
            for s in self._submissions.values()
            if s.employee_id is not None and str(s.employee_id) == wanted
        ]

    # ------------------------------------------------------------------
    # Caller-initiated transitions
    # ------------------------------------------------------------------

    async def complete_submission(
        self, submission_id: str, values: Optional[Mapping[str, Any]] = None
    ) -> Submission:
        """Mark a sent or opened submission completed and record field values.

        Raises:
            NotInitializedError: If initialize() has not succeeded
            NotFoundError: If the submission is unknown
            InvalidStateTransitionError: If the submission is not sent or opened
        """
        self._ensure_initialized()
        async with self._locks.hold(submission_id):
            submission = self._require(submission_id)
            self._check_status(submission, _IN_FLIGHT, SubmissionStatus.COMPLETED)

            now = _now()
            submitter = submission.primary_submitter
            if submitter is not None:
                submitter.values = dict(values or {})
                submitter.completed_at = now
            event = self._transition(
                submission, SubmissionStatus.COMPLETED, SOURCE_API, completed_at=now
            )
            snapshot = submission.snapshot()

        self._dispatch(event)
        return snapshot

    async def expire_submission(self, submission_id: str) -> Submission:
        """Expire a sent or opened submission.

        Raises:
            NotInitializedError: If initialize() has not succeeded
            NotFoundError: If the submission is unknown
            InvalidStateTransitionError: If the submission is not sent or opened
        """
        self._ensure_initialized()
        async with self._locks.hold(submission_id):
            submission = self._require(submission_id)
            self._check_status(submission, _IN_FLIGHT, SubmissionStatus.EXPIRED)
            event = self._transition(submission, SubmissionStatus.EXPIRED, SOURCE_API)
            snapshot = submission.snapshot()

        self._dispatch(event)
        return snapshot

    async def resend_submission(self, submission_id: str) -> Submission:
        """Send a sent, opened or expired submission again.

        Re-stamps sent_at, clears viewed stamps, pushes the deadline out and
        restarts the scheduled transitions.

        Raises:
            NotInitializedError: If initialize() has not succeeded
            NotFoundError: If the submission is unknown
            InvalidStateTransitionError: From pending, completed or declined
        """
        self._ensure_initialized()
        async with self._locks.hold(submission_id):
            submission = self._require(submission_id)
            self._check_status(submission, _RESENDABLE, SubmissionStatus.SENT)

            for submitter in submission.submitters:
                submitter.viewed_at = None
            submission.expires_at = _now() + self.expiry
            event = self._transition(submission, SubmissionStatus.SENT, SOURCE_API)
            snapshot = submission.snapshot()
            self._schedule_delivery(submission_id, include_send=False)

        self._dispatch(event)
        return snapshot

    async def decline_submission(self, submission_id: str, reason: Optional[str] = None) -> Submission:
        """Record that the recipient refused to sign.

        Raises:
            NotInitializedError: If initialize() has not succeeded
            NotFoundError: If the submission is unknown
            InvalidStateTransitionError: If the submission is expired or terminal
        """
        self._ensure_initialized()
        async with self._locks.hold(submission_id):
            submission = self._require(submission_id)
            self._check_status(
                submission,
                (SubmissionStatus.PENDING,) + _IN_FLIGHT,
                SubmissionStatus.DECLINED,
            )
            now = _now()
            submission.decline_reason = reason
            event = self._transition(
                submission, SubmissionStatus.DECLINED, SOURCE_API, declined_at=now
            )
            snapshot = submission.snapshot()

        self._dispatch(event)
        return snapshot

    def register_callback(self, submission_id: str, handler: SubmissionCallback) -> None:
        """Register the observer for a submission, replacing any previous one.

        The handler may be a plain function or a coroutine function; it
        receives a SubmissionCallbackEvent for every later transition.
        """
        if submission_id in self._callbacks:
            logger.debug(f"Replacing callback for submission {submission_id}")
        self._callbacks[submission_id] = handler

    def unregister_callback(self, submission_id: str) -> None:
        self._callbacks.pop(submission_id, None)

    # ------------------------------------------------------------------
    # Documents, signing links and reminders
    # ------------------------------------------------------------------

    async def download_submission_documents(self, submission_id: str) -> DocumentDownloadResult:
        """Return the signed PDF of a completed submission.

        Raises:
            NotInitializedError: If initialize() has not succeeded
            NotFoundError: If the submission is unknown
            NotCompletedError: If the submission is not completed
        """
        self._ensure_initialized()
        submission = self._require(submission_id)
        if submission.status != SubmissionStatus.COMPLETED:
            raise NotCompletedError(
                f"Submission {submission_id} is {submission.status.value}, not completed",
                current_status=submission.status,
            )
        snapshot = submission.snapshot()

        try:
            data = await self.provider.download_documents(submission_id)
        except ProviderError as e:
            logger.error(f"Document download failed for {submission_id}: {e.message}")
            return DocumentDownloadResult(success=False, error=e.message, error_code=e.code)

        if data is None:
            data = render_submission_pdf(snapshot, self._templates.get(snapshot.template_id))

        return DocumentDownloadResult(
            success=True,
            data=data,
            content_type=PDF_CONTENT_TYPE,
            filename=document_filename(snapshot),
        )

    def get_signing_url(self, submission_id: str, email: str) -> Optional[str]:
        """Signing link for one submitter (email match is case-insensitive)."""
        submission = self._submissions.get(submission_id)
        if submission is None:
            return None
        submitter = submission.find_submitter(email)
        if submitter is None:
            return None
        if submitter.embed_src:
            return submitter.embed_src
        if submitter.slug:
            base = getattr(self.provider, "base_url", "").rstrip("/")
            return f"{base}/s/{submitter.slug}"
        return None

    async def send_reminder(self, submission_id: str, email: Optional[str] = None) -> ReminderResult:
        """Ask the provider to re-notify submitters who have not completed.

        Raises:
            NotInitializedError: If initialize() has not succeeded
        """
        self._ensure_initialized()
        async with self._locks.hold(submission_id):
            submission = self._submissions.get(submission_id)
            if submission is None:
                return ReminderResult(success=False, message=f"Submission not found: {submission_id}")
            if submission.status not in _IN_FLIGHT:
                return ReminderResult(
                    success=False,
                    message=f"Cannot remind a {submission.status.value} submission",
                )

            if email:
                target = submission.find_submitter(email)
                if target is None:
                    return ReminderResult(success=False, message=f"No submitter with email {email}")
                targets = [target]
            else:
                targets = [s for s in submission.submitters if s.completed_at is None]

            try:
                for submitter in targets:
                    if submitter.id:
                        await self.provider.send_reminder(submitter.id)
            except ProviderError as e:
                logger.error(f"Reminder failed for {submission_id}: {e.message}")
                return ReminderResult(success=False, message=e.message)

            submission.reminders_sent += 1
            submission.last_reminder_at = _now()

        logger.info(
            f"Reminder sent for submission {submission_id} to {len(targets)} submitter(s)",
            extra={"submission_id": submission_id},
        )
        return ReminderResult(success=True, message=f"Reminder sent to {len(targets)} submitter(s)")

    # ------------------------------------------------------------------
    # Status polling
    # ------------------------------------------------------------------

    async def refresh_submission_status(self, submission_id: str) -> SubmissionResult:
        """Fetch the provider's view of a submission and apply it locally.

        Only forward moves are applied. A remote status that equals the local
        one, lags behind it or is not reachable from it leaves the record
        untouched. Completed submitters get their submitted values recorded.

        Returns:
            SubmissionResult: Snapshot after the refresh, or PROVIDER_ERROR

        Raises:
            NotInitializedError: If initialize() has not succeeded
            NotFoundError: If the submission is unknown
        """
        self._ensure_initialized()
        self._require(submission_id)

        try:
            remote = await self.provider.get_submission(submission_id)
        except ProviderError as e:
            logger.error(f"Status refresh failed for {submission_id}: {e.message}")
            return SubmissionResult(success=False, error=e.message, error_code=e.code)

        target = _REMOTE_STATUS.get(str(remote.status or "").lower())
        events: List[SubmissionCallbackEvent] = []
        async with self._locks.hold(submission_id):
            submission = self._submissions[submission_id]
            if target is not None:
                self._apply_remote_status(submission, remote, target, events)
            snapshot = submission.snapshot()

        for queued in events:
            self._dispatch(queued)
        return SubmissionResult(success=True, submission=snapshot)

    def _apply_remote_status(
        self,
        submission: Submission,
        remote: ProviderSubmission,
        target: SubmissionStatus,
        events: List[SubmissionCallbackEvent],
    ) -> None:
        current = submission.status
        if target in (current, SubmissionStatus.PENDING):
            return
        # Remote "sent" on an opened or expired record is staleness, not a resend
        if target == SubmissionStatus.SENT and current != SubmissionStatus.PENDING:
            return

        promote = current == SubmissionStatus.PENDING and target in (
            SubmissionStatus.OPENED, SubmissionStatus.COMPLETED, SubmissionStatus.EXPIRED
        )
        if not can_transition(SubmissionStatus.SENT if promote else current, target):
            logger.info(
                f"Remote status {remote.status} not applicable to {submission.id} ({current.value})",
                extra={"submission_id": submission.id},
            )
            return
        if promote:
            events.append(self._transition(submission, SubmissionStatus.SENT, SOURCE_POLL))

        now = _now()
        if target == SubmissionStatus.OPENED:
            primary = submission.primary_submitter
            if primary is not None and primary.viewed_at is None:
                primary.viewed_at = now
        elif target == SubmissionStatus.COMPLETED:
            for entry in remote.raw.get("submitters") or []:
                local = submission.find_submitter(str(entry.get("email", "")))
                if local is not None and entry.get("values") is not None:
                    local.values = submitted_values(entry.get("values"))
            for submitter in submission.submitters:
                if submitter.completed_at is None:
                    submitter.completed_at = now
        if remote.documents_url:
            submission.documents_url = remote.documents_url

        events.append(self._transition(submission, target, SOURCE_POLL))

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    async def handle_webhook_event(self, payload: Mapping[str, Any]) -> WebhookResult:
        """Apply a provider webhook event.

        Delivery is at-least-once, so duplicates and events that are no longer
        legal for the current status are ignored rather than rejected.

        Raises:
            NotInitializedError: If initialize() has not succeeded
            ValidationError: If the payload is malformed
        """
        self._ensure_initialized()
        incoming = parse_webhook_event(payload)
        event = incoming.event

        if event is None:
            return self._webhook_result("ignored", incoming.event_type, incoming.submission_id,
                                        f"Unhandled event type: {incoming.event_type}")
        if incoming.submission_id not in self._submissions:
            return self._webhook_result("ignored", incoming.event_type, incoming.submission_id,
                                        "Unknown submission")

        submission_id = incoming.submission_id
        events: List[SubmissionCallbackEvent] = []
        async with self._locks.hold(submission_id):
            submission = self._submissions[submission_id]
            status, message = self._apply_webhook(submission, incoming, event, events)

        for queued in events:
            self._dispatch(queued)
        return self._webhook_result(status, incoming.event_type, submission_id, message)

    @staticmethod
    def _webhook_result(status: str, event_type: str, submission_id: Optional[str],
                        message: Optional[str] = None) -> WebhookResult:
        webhook_events_total.labels(event=event_type, status=status).inc()
        if status == "ignored":
            logger.info(f"Webhook {event_type} for {submission_id} ignored: {message}")
        return WebhookResult(status=status, event=event_type,
                             submission_id=submission_id, message=message)

    def _apply_webhook(
        self,
        submission: Submission,
        incoming: ProviderWebhookEvent,
        event: SubmissionEvent,
        events: List[SubmissionCallbackEvent],
    ) -> Tuple[str, Optional[str]]:
        """Apply one webhook event under the submission lock.

        Appends the resulting callback events to ``events`` and returns the
        (status, message) pair for the WebhookResult.
        """
        target = STATUS_FOR_EVENT[event]
        now = _now()
        submitter = (
            submission.find_submitter(incoming.email) if incoming.email else None
        ) or submission.primary_submitter

        # Recipients can reach an unsent submission through an embedded link
        promote = submission.status == SubmissionStatus.PENDING and event in (
            SubmissionEvent.OPENED, SubmissionEvent.COMPLETED
        )
        current = SubmissionStatus.SENT if promote else submission.status
        if current == target or not can_transition(current, target):
            return "ignored", f"Transition {submission.status.value} -> {target.value} not applicable"
        if promote:
            events.append(self._transition(submission, SubmissionStatus.SENT, SOURCE_WEBHOOK))

        if event == SubmissionEvent.OPENED:
            if submitter is not None and submitter.viewed_at is None:
                submitter.viewed_at = now
        elif event == SubmissionEvent.COMPLETED and submitter is not None:
            if submitter.completed_at is not None:
                return ("ok" if events else "ignored"), "Submitter already completed"
            submitter.completed_at = now
            submitter.values = dict(incoming.values)
            if any(s.completed_at is None for s in submission.submitters):
                return "ok", "Submitter completed; waiting for remaining submitters"
        elif event == SubmissionEvent.DECLINED:
            submission.decline_reason = incoming.decline_reason
            if submitter is not None:
                submitter.declined_at = now

        events.append(self._transition(submission, target, SOURCE_WEBHOOK))
        return "ok", None

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def drain_callbacks(self) -> None:
        """Wait until every queued callback delivery has finished."""
        while self._deliveries:
            await asyncio.gather(*list(self._deliveries), return_exceptions=True)

    async def close(self) -> None:
        """Cancel scheduled transitions and pending deliveries, release the provider."""
        tasks = [t for timers in self._timers.values() for t in timers]
        tasks.extend(self._expiry_timers.values())
        tasks.extend(self._deliveries)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._timers.clear()
        self._expiry_timers.clear()
        self._deliveries.clear()
        await self.provider.close()
        self._initialized = False
        logger.info("Submission lifecycle manager closed")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require(self, submission_id: str) -> Submission:
        submission = self._submissions.get(submission_id)
        if submission is None:
            raise NotFoundError(f"Submission not found: {submission_id}")
        return submission

    @staticmethod
    def _check_status(submission: Submission, allowed, requested: SubmissionStatus) -> None:
        if submission.status not in allowed or not can_transition(submission.status, requested):
            raise InvalidStateTransitionError(
                f"Cannot move submission {submission.id} from "
                f"{submission.status.value} to {requested.value}",
                current_status=submission.status,
                requested_status=requested,
            )

    def _transition(
        self,
        submission: Submission,
        target: SubmissionStatus,
        source: str,
        completed_at: Optional[datetime] = None,
        declined_at: Optional[datetime] = None,
    ) -> SubmissionCallbackEvent:
        """Apply a legal transition. Caller holds the submission lock."""
        previous = submission.status
        if not can_transition(previous, target):
            raise InvalidStateTransitionError(
                f"Illegal transition {previous.value} -> {target.value}",
                current_status=previous,
                requested_status=target,
            )

        now = _now()
        submission.status = target
        submission.status_history.append(target)
        if target == SubmissionStatus.SENT:
            submission.sent_at = now
            for submitter in submission.submitters:
                submitter.sent_at = now
        elif target == SubmissionStatus.COMPLETED:
            submission.completed_at = completed_at or now
        elif target == SubmissionStatus.DECLINED:
            submission.declined_at = declined_at or now

        # Expiry is semi-terminal: any pending timers are stale from here on
        if is_terminal(target) or target == SubmissionStatus.EXPIRED:
            self._cancel_timers(submission.id)
        elif target in _IN_FLIGHT:
            self._schedule_expiry(submission.id)

        submission_transitions_total.labels(
            from_status=previous.value, to_status=target.value, source=source
        ).inc()
        logger.info(
            f"Submission {submission.id}: {previous.value} -> {target.value} ({source})",
            extra={"submission_id": submission.id, "event": target.value},
        )
        return SubmissionCallbackEvent(
            event=SubmissionEvent(target.value),
            submission_id=submission.id,
            data=submission.snapshot(),
            occurred_at=now,
            source=source,
        )

    def _cancel_timers(self, submission_id: str) -> None:
        self._generations[submission_id] = self._generations.get(submission_id, 0) + 1
        current = asyncio.current_task()
        tasks = self._timers.pop(submission_id, [])
        expiry = self._expiry_timers.pop(submission_id, None)
        if expiry is not None:
            tasks.append(expiry)
        for task in tasks:
            if task is not current:
                task.cancel()

    def _schedule_delivery(self, submission_id: str, include_send: bool) -> None:
        """Start the timers that move a submission along after create or resend."""
        self._cancel_timers(submission_id)
        generation = self._generations[submission_id]

        steps = []
        if include_send:
            steps.append((self.send_delay_seconds, SubmissionStatus.SENT, (SubmissionStatus.PENDING,)))
        if not self.provider.delivers_webhooks:
            steps.append((self.open_delay_seconds, SubmissionStatus.OPENED, (SubmissionStatus.SENT,)))

        self._timers[submission_id] = [
            asyncio.create_task(self._run_steps(submission_id, generation, steps))
        ]
        self._schedule_expiry(submission_id)

    def _schedule_expiry(self, submission_id: str) -> None:
        """Arm the deadline timer under the current generation unless one is live."""
        armed = self._expiry_timers.get(submission_id)
        if armed is not None and not armed.done():
            return
        submission = self._submissions[submission_id]
        if submission.expires_at is None:
            return

        delay = max((submission.expires_at - _now()).total_seconds(), 0.0)
        self._expiry_timers[submission_id] = asyncio.create_task(self._run_steps(
            submission_id,
            self._generations.get(submission_id, 0),
            [(delay, SubmissionStatus.EXPIRED, _IN_FLIGHT)],
        ))

    async def _run_steps(self, submission_id: str, generation: int, steps) -> None:
        """Apply scheduled transitions; delays are measured from scheduling time."""
        loop = asyncio.get_running_loop()
        started = loop.time()
        for delay, target, sources in steps:
            remaining = started + delay - loop.time()
            if remaining > 0:
                await asyncio.sleep(remaining)
            await self._apply_scheduled(submission_id, generation, target, sources)

    async def _apply_scheduled(self, submission_id: str, generation: int,
                               target: SubmissionStatus, sources) -> None:
        async with self._locks.hold(submission_id):
            if self._generations.get(submission_id) != generation:
                return
            submission = self._submissions.get(submission_id)
            if submission is None or submission.status not in sources:
                return
            if target == SubmissionStatus.OPENED:
                primary = submission.primary_submitter
                if primary is not None and primary.viewed_at is None:
                    primary.viewed_at = _now()
            event = self._transition(submission, target, SOURCE_TIMER)
        self._dispatch(event)

    def _dispatch(self, event: SubmissionCallbackEvent) -> None:
        handler = self._callbacks.get(event.submission_id)
        if handler is None:
            return
        task = asyncio.create_task(self._deliver(handler, event))
        self._deliveries.add(task)
        task.add_done_callback(self._deliveries.discard)

    async def _deliver(self, handler: SubmissionCallback, event: SubmissionCallbackEvent) -> None:
        if self.callback_delay_seconds > 0:
            await asyncio.sleep(self.callback_delay_seconds)
        try:
            result = handler(event)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            submission_callback_failures_total.inc()
            logger.error(
                f"Callback for submission {event.submission_id} failed on "
                f"{event.event.value}: {e}",
                exc_info=True,
                extra={"submission_id": event.submission_id, "event": event.event.value},
            )
