"""End-to-end tests for the intake pipeline against SQLite with a recording transport."""

from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select

from formrelay.core.exceptions import (
    DuplicateSubmissionError,
    InvalidSubmissionError,
    NotFoundError,
    QuotaExceededError,
)
from formrelay.db.models import NotificationLog, Submission
from formrelay.domain.analytics import RequestMetadata
from formrelay.domain.entitlements import PlanTier
from formrelay.services.delivery_service import DeliveryExecutor
from formrelay.services.quota_service import QuotaLedger
from formrelay.services.submission_service import SubmissionService

pytestmark = pytest.mark.integration

REQUEST = RequestMetadata(user_agent="Mozilla/5.0 (Windows NT 10.0) Firefox/125.0", country="NL")


@pytest.fixture
def service(store, transport, renderer):
    return SubmissionService(store, QuotaLedger(store), DeliveryExecutor(store, transport, renderer))


async def count(session_factory, model):
    async with session_factory() as session:
        return (await session.execute(select(func.count(model.id)))).scalar()


class TestSubmit:
    async def test_pro_tenant_confirmation_sent_and_developer_logged(
        self, service, store, transport, make_tenant, make_form
    ):
        ctx = await make_tenant(PlanTier.PRO)
        form = await make_form(ctx, settings={"enabled": True})

        result = await service.submit(form.id, {"email": "a@b.com", "name": "A"}, REQUEST)

        logs = await store.find_notification_logs(result.submission_id)
        by_type = {log.type: log for log in logs}
        assert len(logs) == 2
        assert by_type["SUBMISSION_CONFIRMATION"].status == "SENT"
        # Developer notices are off by default on the form
        assert by_type["DEVELOPER_NOTIFICATION"].status == "SKIPPED"
        assert by_type["DEVELOPER_NOTIFICATION"].error == "Developer notifications are disabled"
        assert [m.to for m in transport.sent] == ["a@b.com"]

    async def test_stored_data_is_original_plus_meta(self, service, session_factory, make_tenant, make_form):
        ctx = await make_tenant(PlanTier.FREE)
        form = await make_form(ctx)
        payload = {"email": "A@B.com", "name": "A", "tags": ["x", "y"]}

        result = await service.submit(form.id, payload, REQUEST)

        async with session_factory() as session:
            submission = await session.get(Submission, result.submission_id)
        assert {k: v for k, v in submission.data.items() if k != "_meta"} == payload
        assert submission.data["_meta"]["browser"] == "Firefox"
        assert submission.data["_meta"]["country"] == "NL"
        assert submission.email == "a@b.com"

    async def test_free_tenant_gets_skipped_logs_and_no_mail(self, service, transport, make_tenant, make_form):
        ctx = await make_tenant(PlanTier.FREE)
        form = await make_form(ctx, settings={"enabled": True, "developer_notifications_enabled": True})

        result = await service.submit(form.id, {"email": "a@b.com"}, REQUEST)

        assert transport.sent == []
        assert {n["status"] for n in result.notifications} == {"SKIPPED"}

    async def test_developer_notice_uses_global_settings_without_form_settings(
        self, service, transport, make_tenant, make_form, make_global_settings
    ):
        ctx = await make_tenant(PlanTier.PRO, email="owner@example.com")
        form = await make_form(ctx)
        await make_global_settings(ctx, developer_notifications_enabled=True)

        result = await service.submit(form.id, {"email": "a@b.com"}, REQUEST)

        statuses = {n["type"]: n["status"] for n in result.notifications}
        assert statuses["DEVELOPER_NOTIFICATION"] == "SENT"
        assert statuses["SUBMISSION_CONFIRMATION"] == "SKIPPED"
        assert [m.to for m in transport.sent] == ["owner@example.com"]

    async def test_hourly_cap_suppresses_developer_notice(self, service, transport, make_tenant, make_form):
        ctx = await make_tenant(PlanTier.STANDARD)
        form = await make_form(
            ctx,
            settings={
                "developer_notifications_enabled": True,
                "developer_email": "dev@example.com",
                "max_notifications_per_hour": 2,
            },
        )

        results = [await service.submit(form.id, {"n": i}, REQUEST) for i in range(3)]

        last = {n["type"]: n for n in results[-1].notifications}
        assert last["DEVELOPER_NOTIFICATION"]["status"] == "SKIPPED"
        assert "hourly limit reached (2/2)" in last["DEVELOPER_NOTIFICATION"]["error"]
        assert len(transport.sent) == 2

    async def test_delivery_failure_keeps_submission(self, service, session_factory, make_tenant, make_form):
        ctx = await make_tenant(PlanTier.PRO)
        form = await make_form(ctx, settings={"enabled": True})
        service.executor.transport = AsyncMock()
        service.executor.transport.send.side_effect = ConnectionError("smtp down")

        result = await service.submit(form.id, {"email": "a@b.com"}, REQUEST)

        confirmation = next(n for n in result.notifications if n["type"] == "SUBMISSION_CONFIRMATION")
        assert confirmation["status"] == "FAILED"
        assert await count(session_factory, Submission) == 1

    async def test_duplicate_email_is_structured_conflict(self, service, make_tenant, make_form):
        ctx = await make_tenant(PlanTier.PRO)
        form = await make_form(ctx)
        await service.submit(form.id, {"email": "a@b.com"}, REQUEST)

        with pytest.raises(DuplicateSubmissionError) as exc_info:
            await service.submit(form.id, {"email": "a@b.com"}, REQUEST)
        assert exc_info.value.status_code == 409

    async def test_duplicate_email_ignores_case(self, service, session_factory, make_tenant, make_form):
        ctx = await make_tenant(PlanTier.PRO)
        form = await make_form(ctx)
        await service.submit(form.id, {"email": "A@b.com"}, REQUEST)

        with pytest.raises(DuplicateSubmissionError):
            await service.submit(form.id, {"email": " a@B.COM "}, REQUEST)
        assert await count(session_factory, Submission) == 1

    async def test_submissions_without_email_are_not_deduplicated(self, service, session_factory, make_tenant, make_form):
        ctx = await make_tenant(PlanTier.PRO)
        form = await make_form(ctx)
        await service.submit(form.id, {"name": "A"}, REQUEST)
        await service.submit(form.id, {"name": "B"}, REQUEST)
        assert await count(session_factory, Submission) == 2

    async def test_reserved_meta_key_rejected_before_write(self, service, session_factory, make_tenant, make_form):
        ctx = await make_tenant(PlanTier.PRO)
        form = await make_form(ctx)

        with pytest.raises(InvalidSubmissionError):
            await service.submit(form.id, {"_meta": {"browser": "forged"}}, REQUEST)
        assert await count(session_factory, Submission) == 0

    async def test_unknown_form(self, service):
        with pytest.raises(NotFoundError):
            await service.submit("missing", {"a": 1}, REQUEST)

    async def test_monthly_quota_rejects_before_write(self, service, session_factory, make_tenant, make_form):
        ctx = await make_tenant(PlanTier.FREE)
        form = await make_form(ctx)

        with patch.object(service.store, "count_submissions_since", AsyncMock(return_value=200)):
            with pytest.raises(QuotaExceededError) as exc_info:
                await service.submit(form.id, {"a": 1}, REQUEST)

        assert exc_info.value.details == {"kind": "submissions", "current": 200, "limit": 200}
        assert await count(session_factory, Submission) == 0
        assert await count(session_factory, NotificationLog) == 0
