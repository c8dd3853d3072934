"""FormService: form lifecycle, per-form email settings and tenant-wide settings.

Every operation takes the caller's RequestContext. Forms and submissions that
belong to another tenant are reported exactly like missing ones.
"""

from datetime import date
from typing import Any

import structlog
from sqlalchemy import and_, func, or_, select

from formrelay.core.config import get_settings
from formrelay.core.exceptions import NotFoundError, PlanRestrictedError
from formrelay.db.models.email_settings import EmailSettings
from formrelay.db.models.form import Form
from formrelay.db.models.submission import Submission
from formrelay.db.store import EMAIL_SETTINGS_DEFAULTS, GLOBAL_SETTINGS_DEFAULTS, SubmissionStore
from formrelay.domain.analytics import TimeRange, analytics_summary, strip_meta, summarize_submissions
from formrelay.domain.clock import as_utc
from formrelay.domain.context import RequestContext
from formrelay.domain.entitlements import lowest_plan_with
from formrelay.domain.templates import FORM_TEMPLATES, FormTemplate, FormTemplateId
from formrelay.services.query_service import date_bounds
from formrelay.services.quota_service import QuotaKind, QuotaLedger

logger = structlog.get_logger(__name__)

GLOBAL_FORM_ID = "global"

DEFAULT_CONFIRMATION_TEMPLATE = (
    "<h1>Thank you for your submission!</h1>"
    "<p>We have received your submission for {{ form_name }}.</p>"
    "<p>We will review your submission and get back to you soon.</p>"
)


class FormService:
    def __init__(self, store: SubmissionStore, ledger: QuotaLedger):
        self.store = store
        self.ledger = ledger

    def _require(self, ctx: RequestContext, capability: str, feature: str) -> None:
        if not getattr(ctx.entitlements, capability):
            raise PlanRestrictedError(feature, lowest_plan_with(capability).value)

    async def _owned_form(self, ctx: RequestContext, form_id: str) -> Form:
        form = await self.store.find_form(form_id, tenant_id=ctx.tenant_id)
        if form is None:
            raise NotFoundError("Form")
        return form

    # ------------------------------------------------------------------
    # Forms
    # ------------------------------------------------------------------

    async def list_forms(self, ctx: RequestContext, limit: int = 10, cursor: str | None = None) -> dict[str, Any]:
        """Tenant's forms newest first. ``cursor`` is the id of the last form already seen."""
        limit = max(1, min(limit, 100))
        counts = (
            select(Submission.form_id, func.count(Submission.id).label("submission_count"))
            .group_by(Submission.form_id)
            .subquery()
        )
        stmt = (
            select(Form, func.coalesce(counts.c.submission_count, 0))
            .outerjoin(counts, counts.c.form_id == Form.id)
            .where(Form.tenant_id == ctx.tenant_id)
        )

        async with self.store.session_factory() as session:
            if cursor:
                anchor = (
                    await session.execute(
                        select(Form.created_at).where(Form.id == cursor, Form.tenant_id == ctx.tenant_id)
                    )
                ).scalar_one_or_none()
                if anchor is not None:
                    stmt = stmt.where(
                        or_(
                            Form.created_at < anchor,
                            and_(Form.created_at == anchor, Form.id < cursor),
                        )
                    )
            result = await session.execute(
                stmt.order_by(Form.created_at.desc(), Form.id.desc()).limit(limit + 1)
            )
            rows = result.all()

        next_cursor = None
        if len(rows) > limit:
            rows = rows[:limit]
            next_cursor = rows[-1][0].id

        return {
            "items": [
                {
                    "id": form.id,
                    "name": form.name,
                    "description": form.description,
                    "created_at": as_utc(form.created_at),
                    "updated_at": as_utc(form.updated_at),
                    "submission_count": count,
                }
                for form, count in rows
            ],
            "next_cursor": next_cursor,
        }

    async def create_form(self, ctx: RequestContext, name: str, description: str | None, schema: str) -> Form:
        """Create a custom form with pre-filled confirmation content.

        Raises:
            QuotaExceededError: the tenant already owns ``max_forms`` forms.
        """
        await self.ledger.enforce(ctx, QuotaKind.FORMS)
        settings = get_settings()
        form = await self.store.create_form(
            ctx.tenant_id,
            name=name,
            description=description,
            schema=schema,
            email_settings={
                "from_email": settings.default_from_email,
                "subject": f"Form Submission Confirmation - {name}",
                "template": DEFAULT_CONFIRMATION_TEMPLATE,
            },
        )
        logger.info("form_created", form_id=form.id, tenant_id=ctx.tenant_id)
        return form

    def templates(self) -> list[FormTemplate]:
        return list(FORM_TEMPLATES.values())

    async def create_from_template(self, ctx: RequestContext, template_id: str) -> Form:
        try:
            template = FORM_TEMPLATES[FormTemplateId(template_id)]
        except ValueError:
            raise NotFoundError("Template")

        await self.ledger.enforce(ctx, QuotaKind.FORMS)
        form = await self.store.create_form(
            ctx.tenant_id,
            name=template.name,
            description=template.description,
            schema=template.schema_json(),
        )
        logger.info("form_created", form_id=form.id, tenant_id=ctx.tenant_id, template=template.id.value)
        return form

    async def get_form(self, ctx: RequestContext, form_id: str) -> Form:
        return await self._owned_form(ctx, form_id)

    async def delete_form(self, ctx: RequestContext, form_id: str) -> None:
        """Delete a form with its submissions, logs and settings atomically.

        Raises:
            NotFoundError: the form is missing or owned by another tenant.
            StoreError: the cascade failed; nothing was deleted.
        """
        if not await self.store.delete_form_cascade(form_id, ctx.tenant_id):
            raise NotFoundError("Form")
        logger.info("form_deleted", form_id=form_id, tenant_id=ctx.tenant_id)

    # ------------------------------------------------------------------
    # Email settings
    # ------------------------------------------------------------------

    async def get_email_settings(self, ctx: RequestContext, form_id: str) -> EmailSettings:
        """The form's settings, created with disabled defaults on first access."""
        form = await self._owned_form(ctx, form_id)
        if form.email_settings is not None:
            return form.email_settings
        return await self.store.upsert_email_settings(form.id, **EMAIL_SETTINGS_DEFAULTS)

    async def toggle_email_settings(
        self,
        ctx: RequestContext,
        form_id: str,
        enabled: bool,
        developer_notifications: dict[str, Any] | None = None,
    ) -> EmailSettings:
        """Switch submitter confirmations and, optionally, the developer notice block.

        ``developer_notifications`` keys: enabled, digest_frequency, conditions,
        max_notifications_per_hour.
        """
        form = await self._owned_form(ctx, form_id)
        if enabled:
            self._require(ctx, "can_send_confirmations", "Confirmation emails")

        fields: dict[str, Any] = {"enabled": enabled}
        if developer_notifications is not None:
            if developer_notifications.get("enabled"):
                self._require(ctx, "can_send_developer_notifications", "Developer notifications")
            fields.update(
                developer_notifications_enabled=developer_notifications.get("enabled"),
                digest_frequency=developer_notifications.get("digest_frequency"),
                notification_conditions=developer_notifications.get("conditions"),
                max_notifications_per_hour=developer_notifications.get("max_notifications_per_hour"),
            )

        settings = await self.store.upsert_email_settings(form.id, **fields)
        logger.info("email_settings_toggled", form_id=form.id, enabled=enabled)
        return settings

    async def update_email_settings(self, ctx: RequestContext, form_id: str, **fields: Any):
        """Partial update; None values are left unchanged.

        The form id ``global`` routes the update to the tenant's GlobalSettings.
        """
        if form_id == GLOBAL_FORM_ID:
            return await self.update_global_settings(
                ctx,
                developer_notifications_enabled=fields.get("developer_notifications_enabled"),
                developer_email=fields.get("developer_email"),
                max_notifications_per_hour=fields.get("max_notifications_per_hour"),
            )

        form = await self._owned_form(ctx, form_id)
        if fields.get("enabled"):
            self._require(ctx, "can_send_confirmations", "Confirmation emails")
        if fields.get("developer_notifications_enabled"):
            self._require(ctx, "can_send_developer_notifications", "Developer notifications")

        settings = await self.store.upsert_email_settings(form.id, **fields)
        logger.info("email_settings_updated", form_id=form.id, fields=sorted(k for k, v in fields.items() if v is not None))
        return settings

    # ------------------------------------------------------------------
    # Global settings
    # ------------------------------------------------------------------

    async def get_global_settings(self, ctx: RequestContext) -> dict[str, Any]:
        row = await self.store.get_global_settings(ctx.tenant_id)
        if row is None:
            return {**GLOBAL_SETTINGS_DEFAULTS, "developer_email": None}
        return {
            "developer_notifications_enabled": row.developer_notifications_enabled,
            "developer_email": row.developer_email,
            "max_notifications_per_hour": row.max_notifications_per_hour,
        }

    async def update_global_settings(self, ctx: RequestContext, **fields: Any):
        """Raises PlanRestrictedError below the top tier."""
        self._require(ctx, "can_configure_global_notifications", "Global notification settings")
        settings = await self.store.upsert_global_settings(ctx.tenant_id, **fields)
        logger.info("global_settings_updated", tenant_id=ctx.tenant_id)
        return settings

    # ------------------------------------------------------------------
    # Submissions of one form
    # ------------------------------------------------------------------

    async def analytics(self, ctx: RequestContext, form_id: str, time_range: TimeRange = "day") -> dict[str, Any]:
        form = await self._owned_form(ctx, form_id)
        submissions = await self.store.list_form_submissions(form.id)
        return summarize_submissions(
            [(s.created_at, s.data) for s in submissions],
            form_created_at=form.created_at,
            time_range=time_range,
        )

    async def form_submissions(self, ctx: RequestContext, form_id: str) -> list[dict[str, Any]]:
        form = await self._owned_form(ctx, form_id)
        submissions = await self.store.list_form_submissions(form.id)
        return [
            {
                "id": s.id,
                "form_id": s.form_id,
                "email": s.email,
                "data": s.data or {},
                "created_at": as_utc(s.created_at),
                "analytics": analytics_summary(s.data),
            }
            for s in submissions
        ]

    async def export(
        self,
        ctx: RequestContext,
        form_id: str,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[dict[str, Any]]:
        """Flat JSON records of a form's submissions, without enrichment internals."""
        form = await self._owned_form(ctx, form_id)
        lower, upper = date_bounds(start_date, end_date)
        submissions = await self.store.list_form_submissions(form.id, start=lower, end=upper)
        records = []
        for s in submissions:
            summary = analytics_summary(s.data)
            records.append({
                **strip_meta(s.data),
                "id": s.id,
                "created_at": as_utc(s.created_at).isoformat(),
                "email": s.email,
                "browser": summary["browser"],
                "country": summary["location"],
            })
        logger.info("submissions_exported", form_id=form.id, count=len(records))
        return records

    async def delete_submission(self, ctx: RequestContext, submission_id: str) -> None:
        if not await self.store.delete_submission_cascade(submission_id, ctx.tenant_id):
            raise NotFoundError("Submission")
        logger.info("submission_deleted", submission_id=submission_id, tenant_id=ctx.tenant_id)
