"""DeliveryExecutor: carries out a DeliveryPlan and records one log per channel.

Both channels run concurrently, each inside its own failure boundary, so a
failed confirmation never prevents the developer notice (or its log) and vice
versa. Channels the plan declined are logged as SKIPPED with the decision's
reason. The submission row is never touched here.
"""

import asyncio
from collections.abc import Callable

import structlog

from formrelay.core.exceptions import DeliveryError, StoreError
from formrelay.db.models.notification_log import NotificationLog
from formrelay.db.store import SubmissionStore
from formrelay.domain.analytics import META_KEY
from formrelay.domain.clock import utcnow
from formrelay.domain.notifications import (
    ChannelDecision,
    DeliveryPlan,
    NotificationStatus,
    NotificationType,
    submitter_email,
)
from formrelay.services.email_rendering import EmailRenderer, RenderedEmail
from formrelay.services.mail import MailMessage, MailTransport, send_budget_seconds

logger = structlog.get_logger(__name__)

# Matches ResendTransport defaults: 3 attempts of 10s each
DEFAULT_SEND_BUDGET_SECONDS = send_budget_seconds(10.0, 3)


class DeliveryExecutor:
    def __init__(
        self,
        store: SubmissionStore,
        transport: MailTransport,
        renderer: EmailRenderer,
        timeout_seconds: float = DEFAULT_SEND_BUDGET_SECONDS,
    ):
        self.store = store
        self.transport = transport
        self.renderer = renderer
        self.timeout_seconds = timeout_seconds

    async def deliver(self, plan: DeliveryPlan, submission, form, email_settings=None) -> list[NotificationLog]:
        """Execute both channels of ``plan`` and return the logs that were written.

        Returns once every channel has been sent, failed or skipped.
        """
        data = submission.data or {}

        def confirmation() -> RenderedEmail:
            return self.renderer.confirmation(form.name, data, email_settings)

        def developer_notice() -> RenderedEmail:
            return self.renderer.developer_notice(
                form.name,
                submission.id,
                data,
                reply_to=submitter_email(data),
            )

        results = await asyncio.gather(
            self._run_channel(
                NotificationType.SUBMISSION_CONFIRMATION, plan.confirmation, submission, form, confirmation
            ),
            self._run_channel(
                NotificationType.DEVELOPER_NOTIFICATION, plan.developer_notice, submission, form, developer_notice
            ),
        )
        return [log for log in results if log is not None]

    async def _run_channel(
        self,
        notification_type: NotificationType,
        decision: ChannelDecision,
        submission,
        form,
        render: Callable[[], RenderedEmail],
    ) -> NotificationLog | None:
        bound = logger.bind(submission_id=submission.id, form_id=form.id, type=notification_type.value)

        if not decision.attempt:
            bound.info("notification_skipped", reason=decision.reason)
            return await self._record(submission, form, notification_type, NotificationStatus.SKIPPED, decision.reason)

        try:
            rendered = render()
            message = MailMessage(
                from_email=rendered.from_email,
                to=decision.recipient,
                subject=rendered.subject,
                html=rendered.html,
                reply_to=rendered.reply_to,
            )
            provider_id = await asyncio.wait_for(self.transport.send(message), timeout=self.timeout_seconds)
        except TimeoutError:
            error = f"Delivery timed out after {self.timeout_seconds:g}s"
        except DeliveryError as exc:
            error = exc.message
        except Exception as exc:
            # Per-channel failure boundary: anything else is still a delivery failure
            error = str(exc) or type(exc).__name__
        else:
            bound.info("notification_sent", recipient=decision.recipient)
            if notification_type == NotificationType.DEVELOPER_NOTIFICATION:
                await self._mark_sent(form.id)
            return await self._record(
                submission,
                form,
                notification_type,
                NotificationStatus.SENT,
                details={"recipient": decision.recipient, "provider_message_id": provider_id},
            )

        bound.warning("notification_failed", recipient=decision.recipient, error=error)
        return await self._record(
            submission,
            form,
            notification_type,
            NotificationStatus.FAILED,
            error,
            details={"recipient": decision.recipient},
        )

    async def _record(
        self,
        submission,
        form,
        notification_type: NotificationType,
        status: NotificationStatus,
        error: str | None = None,
        details: dict | None = None,
    ) -> NotificationLog | None:
        meta = (submission.data or {}).get(META_KEY) or {}
        try:
            return await self.store.create_notification_log(
                submission_id=submission.id,
                form_id=form.id,
                notification_type=notification_type,
                status=status,
                error=error,
                details={**(details or {}), "browser": meta.get("browser"), "country": meta.get("country")},
            )
        except StoreError as exc:
            logger.warning(
                "notification_log_dropped",
                submission_id=submission.id,
                type=notification_type.value,
                status=status.value,
                error=exc.message,
            )
            return None

    async def _mark_sent(self, form_id: str) -> None:
        try:
            await self.store.mark_notification_sent(form_id, utcnow())
        except StoreError as exc:
            logger.warning("last_notification_stamp_failed", form_id=form_id, error=exc.message)
