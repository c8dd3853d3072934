"""Repository over the relational store.

The intake pipeline, settings services and cascading deletes go through
``SubmissionStore``; every method opens its own session from the injected
factory so calls can run concurrently.
"""

from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from formrelay.core.exceptions import DuplicateSubmissionError, StoreError
from formrelay.db.models.email_settings import EmailSettings
from formrelay.db.models.form import Form
from formrelay.db.models.global_settings import GlobalSettings
from formrelay.db.models.notification_log import NotificationLog
from formrelay.db.models.submission import Submission
from formrelay.db.models.tenant import Tenant
from formrelay.domain.notifications import NotificationStatus, NotificationType

logger = structlog.get_logger(__name__)

EMAIL_SETTINGS_DEFAULTS: dict[str, Any] = {
    "enabled": False,
    "developer_notifications_enabled": False,
    "max_notifications_per_hour": 10,
    "digest_frequency": "realtime",
}

GLOBAL_SETTINGS_DEFAULTS: dict[str, Any] = {
    "developer_notifications_enabled": False,
    "max_notifications_per_hour": 10,
}


def _form_cascade(form_id: str) -> list:
    """Deletes for one form, children first."""
    return [
        delete(NotificationLog).where(NotificationLog.form_id == form_id),
        delete(Submission).where(Submission.form_id == form_id),
        delete(EmailSettings).where(EmailSettings.form_id == form_id),
        delete(Form).where(Form.id == form_id),
    ]


def _submission_cascade(submission_id: str) -> list:
    return [
        delete(NotificationLog).where(NotificationLog.submission_id == submission_id),
        delete(Submission).where(Submission.id == submission_id),
    ]


DUPLICATE_EMAIL_CONSTRAINT = "uq_submissions_form_email"


def _is_duplicate_email(exc: IntegrityError) -> bool:
    """True when ``exc`` is the (form_id, email) uniqueness violation.

    PostgreSQL names the constraint; SQLite only names the columns.
    """
    message = str(exc.orig)
    return DUPLICATE_EMAIL_CONSTRAINT in message or "submissions.form_id, submissions.email" in message


def _store_failure(event: str, message: str, exc: SQLAlchemyError, **context: Any) -> StoreError:
    logger.error(event, error=str(exc), error_type=type(exc).__name__, **context)
    return StoreError(message)


class SubmissionStore:
    """Narrow persistence interface consumed by the services."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    # ------------------------------------------------------------------
    # Tenants and forms
    # ------------------------------------------------------------------

    async def find_tenant(self, tenant_id: str) -> Tenant | None:
        async with self.session_factory() as session:
            return await session.get(Tenant, tenant_id)

    async def find_form(self, form_id: str, tenant_id: str | None = None) -> Form | None:
        """Load a form with its tenant and email settings.

        When ``tenant_id`` is given, forms owned by other tenants are not returned.
        """
        stmt = (
            select(Form)
            .options(selectinload(Form.email_settings), selectinload(Form.tenant))
            .where(Form.id == form_id)
        )
        if tenant_id is not None:
            stmt = stmt.where(Form.tenant_id == tenant_id)
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def count_forms(self, tenant_id: str) -> int:
        async with self.session_factory() as session:
            result = await session.execute(select(func.count(Form.id)).where(Form.tenant_id == tenant_id))
            return result.scalar() or 0

    async def create_form(
        self,
        tenant_id: str,
        name: str,
        description: str | None,
        schema: str,
        email_settings: dict[str, Any] | None = None,
    ) -> Form:
        """Insert a form together with its EmailSettings row."""
        async with self.session_factory() as session:
            form = Form(tenant_id=tenant_id, name=name, description=description, schema=schema)
            form.email_settings = EmailSettings(**{**EMAIL_SETTINGS_DEFAULTS, **(email_settings or {})})
            session.add(form)
            try:
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                raise _store_failure("form_write_failed", "Failed to create form", exc, tenant_id=tenant_id) from exc
            await session.refresh(form, ["email_settings"])
            return form

    # ------------------------------------------------------------------
    # Submissions
    # ------------------------------------------------------------------

    async def count_submissions_since(self, tenant_id: str, since: datetime) -> int:
        """Submissions across all of the tenant's forms created at or after ``since``."""
        stmt = (
            select(func.count(Submission.id))
            .join(Form, Submission.form_id == Form.id)
            .where(Form.tenant_id == tenant_id, Submission.created_at >= since)
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return result.scalar() or 0

    async def create_submission(self, form_id: str, data: dict[str, Any], email: str | None) -> Submission:
        """Persist a submission.

        Raises:
            DuplicateSubmissionError: the form already holds a submission for ``email``.
            StoreError: any other write failure; nothing was stored.
        """
        async with self.session_factory() as session:
            submission = Submission(form_id=form_id, data=data, email=email)
            session.add(submission)
            try:
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                if email is not None and isinstance(exc, IntegrityError) and _is_duplicate_email(exc):
                    raise DuplicateSubmissionError(form_id, email) from exc
                raise _store_failure(
                    "submission_write_failed", "Failed to store submission", exc, form_id=form_id
                ) from exc
            return submission

    async def find_submission(self, submission_id: str, tenant_id: str) -> Submission | None:
        stmt = (
            select(Submission)
            .join(Form, Submission.form_id == Form.id)
            .options(selectinload(Submission.form).selectinload(Form.email_settings))
            .where(Submission.id == submission_id, Form.tenant_id == tenant_id)
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def list_form_submissions(
        self,
        form_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Submission]:
        """All submissions of a form, newest first, optionally within [start, end)."""
        stmt = select(Submission).where(Submission.form_id == form_id)
        if start is not None:
            stmt = stmt.where(Submission.created_at >= start)
        if end is not None:
            stmt = stmt.where(Submission.created_at < end)
        stmt = stmt.order_by(Submission.created_at.desc(), Submission.id.desc())
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Notification logs
    # ------------------------------------------------------------------

    async def create_notification_log(
        self,
        submission_id: str,
        form_id: str,
        notification_type: NotificationType,
        status: NotificationStatus,
        error: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> NotificationLog:
        try:
            async with self.session_factory() as session:
                log = NotificationLog(
                    submission_id=submission_id,
                    form_id=form_id,
                    type=notification_type.value,
                    status=status.value,
                    error=error,
                    details=details,
                )
                session.add(log)
                await session.commit()
                return log
        except SQLAlchemyError as exc:
            raise _store_failure(
                "notification_log_write_failed",
                "Failed to record notification",
                exc,
                submission_id=submission_id,
                type=notification_type.value,
            ) from exc

    async def find_notification_logs(self, submission_id: str) -> list[NotificationLog]:
        logs = await self.find_notification_logs_for([submission_id])
        return logs.get(submission_id, [])

    async def find_notification_logs_for(self, submission_ids: list[str]) -> dict[str, list[NotificationLog]]:
        """Logs grouped by submission id, newest first."""
        if not submission_ids:
            return {}
        stmt = (
            select(NotificationLog)
            .where(NotificationLog.submission_id.in_(submission_ids))
            .order_by(NotificationLog.created_at.desc(), NotificationLog.id.desc())
        )
        grouped: dict[str, list[NotificationLog]] = {sid: [] for sid in submission_ids}
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            for log in result.scalars().all():
                grouped[log.submission_id].append(log)
        return grouped

    async def count_notification_attempts_since(
        self,
        form_id: str,
        notification_type: NotificationType,
        since: datetime,
    ) -> int:
        """Real send attempts (SENT or FAILED) of one type for a form since ``since``."""
        stmt = select(func.count(NotificationLog.id)).where(
            NotificationLog.form_id == form_id,
            NotificationLog.type == notification_type.value,
            NotificationLog.status.in_([NotificationStatus.SENT.value, NotificationStatus.FAILED.value]),
            NotificationLog.created_at >= since,
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return result.scalar() or 0

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    async def get_email_settings(self, form_id: str) -> EmailSettings | None:
        async with self.session_factory() as session:
            result = await session.execute(select(EmailSettings).where(EmailSettings.form_id == form_id))
            return result.scalar_one_or_none()

    async def upsert_email_settings(self, form_id: str, **fields: Any) -> EmailSettings:
        """Update the form's settings row, creating it with defaults when absent.

        Fields passed as None are left unchanged.

        Raises:
            StoreError: the write failed and was rolled back.
        """
        changes = {k: v for k, v in fields.items() if v is not None}
        try:
            async with self.session_factory() as session:
                result = await session.execute(select(EmailSettings).where(EmailSettings.form_id == form_id))
                settings = result.scalar_one_or_none()
                if settings is None:
                    settings = EmailSettings(form_id=form_id, **{**EMAIL_SETTINGS_DEFAULTS, **changes})
                    session.add(settings)
                else:
                    for key, value in changes.items():
                        setattr(settings, key, value)
                try:
                    await session.commit()
                except IntegrityError:
                    # A concurrent request created the row first
                    await session.rollback()
                    result = await session.execute(select(EmailSettings).where(EmailSettings.form_id == form_id))
                    settings = result.scalar_one()
                    for key, value in changes.items():
                        setattr(settings, key, value)
                    await session.commit()
                return settings
        except SQLAlchemyError as exc:
            raise _store_failure(
                "email_settings_write_failed", "Failed to save email settings", exc, form_id=form_id
            ) from exc

    async def mark_notification_sent(self, form_id: str, sent_at: datetime) -> None:
        try:
            async with self.session_factory() as session:
                result = await session.execute(select(EmailSettings).where(EmailSettings.form_id == form_id))
                settings = result.scalar_one_or_none()
                if settings is not None:
                    settings.last_notification_sent_at = sent_at
                    await session.commit()
        except SQLAlchemyError as exc:
            raise _store_failure(
                "notification_stamp_failed", "Failed to stamp last notification", exc, form_id=form_id
            ) from exc

    async def get_global_settings(self, tenant_id: str) -> GlobalSettings | None:
        async with self.session_factory() as session:
            result = await session.execute(select(GlobalSettings).where(GlobalSettings.tenant_id == tenant_id))
            return result.scalar_one_or_none()

    async def upsert_global_settings(self, tenant_id: str, **fields: Any) -> GlobalSettings:
        changes = {k: v for k, v in fields.items() if v is not None}
        try:
            async with self.session_factory() as session:
                result = await session.execute(select(GlobalSettings).where(GlobalSettings.tenant_id == tenant_id))
                settings = result.scalar_one_or_none()
                if settings is None:
                    settings = GlobalSettings(tenant_id=tenant_id, **{**GLOBAL_SETTINGS_DEFAULTS, **changes})
                    session.add(settings)
                else:
                    for key, value in changes.items():
                        setattr(settings, key, value)
                await session.commit()
                return settings
        except SQLAlchemyError as exc:
            raise _store_failure(
                "global_settings_write_failed", "Failed to save global settings", exc, tenant_id=tenant_id
            ) from exc

    # ------------------------------------------------------------------
    # Cascading deletes
    # ------------------------------------------------------------------

    async def delete_form_cascade(self, form_id: str, tenant_id: str) -> bool:
        """Delete a form and everything that references it in one transaction.

        Returns False when the form does not exist or belongs to another tenant.

        Raises:
            StoreError: the transaction failed and was rolled back.
        """
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    owned = await session.execute(
                        select(Form.id).where(Form.id == form_id, Form.tenant_id == tenant_id)
                    )
                    if owned.scalar_one_or_none() is None:
                        return False
                    for stmt in _form_cascade(form_id):
                        await session.execute(stmt)
        except SQLAlchemyError as exc:
            logger.error("form_cascade_failed", form_id=form_id, error=str(exc), error_type=type(exc).__name__)
            raise StoreError("Failed to delete form and its related data") from exc
        return True

    async def delete_submission_cascade(self, submission_id: str, tenant_id: str) -> bool:
        """Delete a submission and its notification logs in one transaction."""
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    owned = await session.execute(
                        select(Submission.id)
                        .join(Form, Submission.form_id == Form.id)
                        .where(Submission.id == submission_id, Form.tenant_id == tenant_id)
                    )
                    if owned.scalar_one_or_none() is None:
                        return False
                    for stmt in _submission_cascade(submission_id):
                        await session.execute(stmt)
        except SQLAlchemyError as exc:
            logger.error(
                "submission_cascade_failed",
                submission_id=submission_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise StoreError("Failed to delete submission") from exc
        return True
