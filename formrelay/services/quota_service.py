"""QuotaLedger: plan quota checks for form creation and submission intake.

The check reads a count and compares it to the plan limit; it is not an
atomic reservation. Two requests racing past the same count can both be
admitted, overshooting a cap by at most the number of concurrent writers.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

import structlog

from formrelay.core.exceptions import QuotaExceededError
from formrelay.db.store import SubmissionStore
from formrelay.domain.clock import start_of_month, utcnow
from formrelay.domain.context import RequestContext
from formrelay.domain.entitlements import UNLIMITED

logger = structlog.get_logger(__name__)


class QuotaKind(StrEnum):
    FORMS = "forms"
    SUBMISSIONS = "submissions"


@dataclass(frozen=True)
class QuotaCheck:
    """Outcome of a quota check. ``limit`` is -1 for unlimited."""

    allowed: bool
    kind: QuotaKind
    current: int
    limit: int
    reason: str | None = None

    def to_error(self) -> QuotaExceededError:
        return QuotaExceededError(self.kind.value, self.current, self.limit, self.reason)


class QuotaLedger:
    def __init__(self, store: SubmissionStore):
        self.store = store

    async def _current(self, ctx: RequestContext, kind: QuotaKind, now: datetime) -> int:
        if kind == QuotaKind.FORMS:
            return await self.store.count_forms(ctx.tenant_id)
        return await self.store.count_submissions_since(ctx.tenant_id, start_of_month(now))

    def _limit(self, ctx: RequestContext, kind: QuotaKind) -> int:
        entitlements = ctx.entitlements
        if kind == QuotaKind.FORMS:
            return entitlements.max_forms
        return entitlements.max_submissions_per_month

    async def check_and_reserve(
        self,
        ctx: RequestContext,
        kind: QuotaKind,
        now: datetime | None = None,
    ) -> QuotaCheck:
        """Check whether one more ``kind`` fits the tenant's plan.

        Returns a denial carrying current/limit counts instead of raising.
        """
        limit = self._limit(ctx, kind)
        current = await self._current(ctx, kind, now or utcnow())

        if limit == UNLIMITED or current < limit:
            return QuotaCheck(allowed=True, kind=kind, current=current, limit=limit)

        if kind == QuotaKind.FORMS:
            reason = f"Form limit reached ({current}/{limit}) for the {ctx.plan.value} plan"
        else:
            reason = f"Monthly submission limit reached ({current}/{limit}) for the {ctx.plan.value} plan"
        return QuotaCheck(allowed=False, kind=kind, current=current, limit=limit, reason=reason)

    async def enforce(self, ctx: RequestContext, kind: QuotaKind, now: datetime | None = None) -> QuotaCheck:
        """Like ``check_and_reserve`` but raises on denial.

        Raises:
            QuotaExceededError: the plan's cap for ``kind`` is already reached.
        """
        check = await self.check_and_reserve(ctx, kind, now)
        if not check.allowed:
            logger.info(
                "quota_denied",
                tenant_id=ctx.tenant_id,
                plan=ctx.plan.value,
                kind=kind.value,
                current=check.current,
                limit=check.limit,
            )
            raise check.to_error()
        return check

    async def usage(self, ctx: RequestContext, now: datetime | None = None) -> dict:
        """Current consumption of both quotas against the plan limits."""
        now = now or utcnow()
        forms = await self._current(ctx, QuotaKind.FORMS, now)
        submissions = await self._current(ctx, QuotaKind.SUBMISSIONS, now)
        return {
            "plan": ctx.plan.value,
            "forms": {"current": forms, "limit": self._limit(ctx, QuotaKind.FORMS)},
            "submissions": {
                "current": submissions,
                "limit": self._limit(ctx, QuotaKind.SUBMISSIONS),
                "period_start": start_of_month(now).isoformat(),
            },
        }
