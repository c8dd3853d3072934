"""SubmissionQueryService: filtered, paginated submission history with reconciled logs.

Every result carries exactly one notification log entry per addressable
channel. Missing entries are synthesized at read time from the form's
current settings and are never written back.
"""

import math
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from typing import Any

from sqlalchemy import exists, func, or_, select
from sqlalchemy.orm import selectinload

from formrelay.core.exceptions import NotFoundError, PlanRestrictedError
from formrelay.db.models.form import Form
from formrelay.db.models.notification_log import NotificationLog
from formrelay.db.models.submission import Submission
from formrelay.db.store import SubmissionStore
from formrelay.domain.analytics import analytics_summary
from formrelay.domain.clock import as_utc
from formrelay.domain.context import RequestContext
from formrelay.domain.entitlements import lowest_plan_with
from formrelay.domain.notifications import NotificationStatus, NotificationType, decide, reconcile

MAX_SEARCH_RESULTS = 50
MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class SubmissionFilters:
    search: str | None = None
    status: NotificationStatus | None = None
    type: NotificationType | None = None
    form_id: str | None = None
    start_date: date | None = None
    end_date: date | None = None

    @property
    def has_date_range(self) -> bool:
        return self.start_date is not None or self.end_date is not None


def search_clause(text: str):
    """``@abc`` matches submission ids containing ``abc``; anything else matches emails.

    Email matching is case-insensitive and also looks inside the payload's
    ``email`` field.
    """
    if text.startswith("@"):
        return Submission.id.contains(text[1:], autoescape=True)
    return or_(
        Submission.email.icontains(text, autoescape=True),
        Submission.data["email"].as_string().icontains(text, autoescape=True),
    )


def date_bounds(start: date | None, end: date | None) -> tuple[datetime | None, datetime | None]:
    """Inclusive date range as a half-open [start, end + 1 day) UTC interval."""
    lower = datetime.combine(start, time.min, tzinfo=UTC) if start else None
    upper = datetime.combine(end + timedelta(days=1), time.min, tzinfo=UTC) if end else None
    return lower, upper


class SubmissionQueryService:
    def __init__(self, store: SubmissionStore):
        self.store = store

    def _scoped(self, ctx: RequestContext):
        return (
            select(Submission)
            .join(Form, Submission.form_id == Form.id)
            .where(Form.tenant_id == ctx.tenant_id)
        )

    def _require(self, ctx: RequestContext, capability: str, feature: str) -> None:
        if not getattr(ctx.entitlements, capability):
            raise PlanRestrictedError(feature, lowest_plan_with(capability).value)

    async def _present(self, ctx: RequestContext, submissions: list[Submission]) -> list[dict[str, Any]]:
        logs_by_submission = await self.store.find_notification_logs_for([s.id for s in submissions])
        global_settings = await self.store.get_global_settings(ctx.tenant_id)

        items = []
        for submission in submissions:
            data = submission.data or {}
            plan = decide(
                data,
                submission.form.email_settings,
                ctx.entitlements,
                global_settings=global_settings,
                owner_email=ctx.owner_email,
            )
            logs = reconcile(
                submission.id,
                submission.created_at,
                logs_by_submission.get(submission.id, []),
                plan,
            )
            items.append({
                "id": submission.id,
                "form_id": submission.form_id,
                "form_name": submission.form.name,
                "email": submission.email,
                "data": data,
                "created_at": as_utc(submission.created_at),
                "notification_logs": [log.to_dict() for log in logs],
                "analytics": analytics_summary(data),
            })
        return items

    async def query(
        self,
        ctx: RequestContext,
        filters: SubmissionFilters,
        page: int = 1,
        limit: int = 10,
    ) -> dict[str, Any]:
        """One page of the tenant's submissions, newest first.

        Raises:
            PlanRestrictedError: a date range was requested below the top tier.
        """
        if filters.has_date_range:
            self._require(ctx, "can_filter_by_date", "Date filtering")

        page = max(1, page)
        limit = max(1, min(limit, MAX_PAGE_SIZE))

        stmt = self._scoped(ctx)
        if filters.form_id:
            stmt = stmt.where(Submission.form_id == filters.form_id)
        if filters.search and filters.search.strip():
            stmt = stmt.where(search_clause(filters.search.strip()))
        if filters.status is not None or filters.type is not None:
            log_match = select(NotificationLog.id).where(NotificationLog.submission_id == Submission.id)
            if filters.status is not None:
                log_match = log_match.where(NotificationLog.status == filters.status.value)
            if filters.type is not None:
                log_match = log_match.where(NotificationLog.type == filters.type.value)
            stmt = stmt.where(exists(log_match))
        lower, upper = date_bounds(filters.start_date, filters.end_date)
        if lower is not None:
            stmt = stmt.where(Submission.created_at >= lower)
        if upper is not None:
            stmt = stmt.where(Submission.created_at < upper)

        async with self.store.session_factory() as session:
            total = (await session.execute(select(func.count()).select_from(stmt.subquery()))).scalar() or 0
            result = await session.execute(
                stmt.options(selectinload(Submission.form).selectinload(Form.email_settings))
                .order_by(Submission.created_at.desc(), Submission.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            submissions = list(result.scalars().all())

        return {
            "items": await self._present(ctx, submissions),
            "total": total,
            "page": page,
            "limit": limit,
            "pages": math.ceil(total / limit),
        }

    async def search(self, ctx: RequestContext, query: str, form_id: str | None = None) -> list[dict[str, Any]]:
        """Up to 50 matching submissions, newest first."""
        self._require(ctx, "can_search_submissions", "Submission search")

        text = (query or "").strip()
        if not text or text == "@":
            return []

        stmt = self._scoped(ctx).where(search_clause(text))
        if form_id:
            stmt = stmt.where(Submission.form_id == form_id)
        stmt = (
            stmt.options(selectinload(Submission.form).selectinload(Form.email_settings))
            .order_by(Submission.created_at.desc(), Submission.id.desc())
            .limit(MAX_SEARCH_RESULTS)
        )
        async with self.store.session_factory() as session:
            result = await session.execute(stmt)
            submissions = list(result.scalars().all())
        return await self._present(ctx, submissions)

    async def submission_logs(self, ctx: RequestContext, submission_id: str) -> list[dict[str, Any]]:
        """Reconciled logs for one owned submission."""
        submission = await self.store.find_submission(submission_id, ctx.tenant_id)
        if submission is None:
            raise NotFoundError("Submission")
        items = await self._present(ctx, [submission])
        return items[0]["notification_logs"]
