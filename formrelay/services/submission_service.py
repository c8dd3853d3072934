"""SubmissionService: the public intake pipeline.

Order of operations for one submission:
1. Resolve the form and its owning tenant (404 when unknown)
2. Monthly submission quota (rejected before any write)
3. Enrich the payload with request metadata under ``_meta``
4. Persist the submission
5. Decide and deliver notifications; delivery failures are logged, never raised
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

import structlog

from formrelay.core.exceptions import InvalidSubmissionError, NotFoundError
from formrelay.db.store import SubmissionStore
from formrelay.domain.analytics import META_KEY, RequestMetadata, enrich
from formrelay.domain.clock import utcnow
from formrelay.domain.context import RequestContext
from formrelay.domain.entitlements import get_entitlements
from formrelay.domain.notifications import NotificationType, decide
from formrelay.services.delivery_service import DeliveryExecutor
from formrelay.services.quota_service import QuotaKind, QuotaLedger

logger = structlog.get_logger(__name__)

RATE_WINDOW = timedelta(hours=1)


@dataclass
class SubmissionResult:
    submission_id: str
    created_at: datetime
    notifications: list[dict[str, Any]] = field(default_factory=list)

    @property
    def message(self) -> str:
        return "Submission received"


def _indexed_email(data: dict[str, Any]) -> str | None:
    """Normalized copy of ``data["email"]`` for the (form, email) uniqueness rule.

    Lower-cased so ``A@b.com`` and ``a@b.com`` count as one submitter; the
    payload keeps the address as typed.
    """
    value = data.get("email")
    if isinstance(value, str) and value.strip():
        return value.strip().lower()
    return None


class SubmissionService:
    def __init__(self, store: SubmissionStore, ledger: QuotaLedger, executor: DeliveryExecutor):
        self.store = store
        self.ledger = ledger
        self.executor = executor

    async def submit(
        self,
        form_id: str,
        raw_data: dict[str, Any],
        request: RequestMetadata,
    ) -> SubmissionResult:
        """Accept one submission for a form.

        Raises:
            NotFoundError: the form does not exist.
            QuotaExceededError: the owner's monthly submission cap is reached.
            InvalidSubmissionError: the payload uses the reserved ``_meta`` key.
            DuplicateSubmissionError: the form already has a submission for this email.
        """
        form = await self.store.find_form(form_id)
        if form is None:
            raise NotFoundError("Form")

        tenant = form.tenant
        ctx = RequestContext(
            tenant_id=tenant.id,
            plan=get_entitlements(tenant.plan).plan,
            owner_email=tenant.email,
        )

        await self.ledger.enforce(ctx, QuotaKind.SUBMISSIONS)

        if META_KEY in raw_data:
            raise InvalidSubmissionError(
                f"'{META_KEY}' is a reserved field name",
                details={"field": META_KEY},
            )
        data = enrich(raw_data, request)

        submission = await self.store.create_submission(form.id, data, _indexed_email(raw_data))
        logger.info("submission_created", submission_id=submission.id, form_id=form.id, tenant_id=ctx.tenant_id)

        global_settings = await self.store.get_global_settings(ctx.tenant_id)
        recent = await self.store.count_notification_attempts_since(
            form.id,
            NotificationType.DEVELOPER_NOTIFICATION,
            utcnow() - RATE_WINDOW,
        )
        plan = decide(
            data,
            form.email_settings,
            ctx.entitlements,
            global_settings=global_settings,
            owner_email=ctx.owner_email,
            recent_developer_notifications=recent,
        )

        logs = await self.executor.deliver(plan, submission, form, form.email_settings)

        return SubmissionResult(
            submission_id=submission.id,
            created_at=submission.created_at,
            notifications=[{"type": log.type, "status": log.status, "error": log.error} for log in logs],
        )
