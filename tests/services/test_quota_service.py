"""Tests for QuotaLedger against a SQLite store."""

from datetime import UTC, datetime

import pytest

from formrelay.core.exceptions import QuotaExceededError
from formrelay.db.models import Submission
from formrelay.domain.entitlements import UNLIMITED, PlanTier
from formrelay.services.quota_service import QuotaKind, QuotaLedger

pytestmark = pytest.mark.integration

NOW = datetime(2026, 6, 15, 12, 0, tzinfo=UTC)


async def add_submission(session_factory, form_id, created_at):
    async with session_factory() as session:
        session.add(Submission(form_id=form_id, data={}, created_at=created_at))
        await session.commit()


class TestFormQuota:
    async def test_free_tenant_allowed_first_form(self, store, make_tenant):
        ctx = await make_tenant(PlanTier.FREE)
        check = await QuotaLedger(store).check_and_reserve(ctx, QuotaKind.FORMS)
        assert check.allowed is True
        assert (check.current, check.limit) == (0, 1)

    async def test_free_tenant_denied_at_cap_with_counts(self, store, make_tenant, make_form):
        ctx = await make_tenant(PlanTier.FREE)
        await make_form(ctx)

        check = await QuotaLedger(store).check_and_reserve(ctx, QuotaKind.FORMS)

        assert check.allowed is False
        assert (check.current, check.limit) == (1, 1)
        assert "1/1" in check.reason

    async def test_enforce_raises_structured_error(self, store, make_tenant, make_form):
        ctx = await make_tenant(PlanTier.FREE)
        await make_form(ctx)

        with pytest.raises(QuotaExceededError) as exc_info:
            await QuotaLedger(store).enforce(ctx, QuotaKind.FORMS)

        assert exc_info.value.to_dict()["details"] == {"kind": "forms", "current": 1, "limit": 1}
        assert exc_info.value.status_code == 403

    async def test_pro_is_unlimited(self, store, make_tenant, make_form):
        ctx = await make_tenant(PlanTier.PRO)
        for i in range(3):
            await make_form(ctx, name=f"Form {i}")
        check = await QuotaLedger(store).check_and_reserve(ctx, QuotaKind.FORMS)
        assert check.allowed is True
        assert check.limit == UNLIMITED


class TestSubmissionQuota:
    async def test_counts_only_current_month_across_all_forms(self, store, session_factory, make_tenant, make_form):
        ctx = await make_tenant(PlanTier.STANDARD)
        other = await make_tenant(PlanTier.STANDARD)
        first = await make_form(ctx, name="A")
        second = await make_form(ctx, name="B")
        foreign = await make_form(other, name="C")

        await add_submission(session_factory, first.id, datetime(2026, 6, 1, 0, 0, tzinfo=UTC))
        await add_submission(session_factory, second.id, datetime(2026, 6, 14, 8, 0, tzinfo=UTC))
        await add_submission(session_factory, first.id, datetime(2026, 5, 31, 23, 59, tzinfo=UTC))
        await add_submission(session_factory, foreign.id, datetime(2026, 6, 10, 8, 0, tzinfo=UTC))

        check = await QuotaLedger(store).check_and_reserve(ctx, QuotaKind.SUBMISSIONS, now=NOW)

        assert check.current == 2
        assert check.limit == 5000

    async def test_usage_reports_both_quotas(self, store, make_tenant, make_form):
        ctx = await make_tenant(PlanTier.FREE)
        await make_form(ctx)

        usage = await QuotaLedger(store).usage(ctx, now=NOW)

        assert usage["plan"] == "FREE"
        assert usage["forms"] == {"current": 1, "limit": 1}
        assert usage["submissions"]["current"] == 0
        assert usage["submissions"]["limit"] == 200
        assert usage["submissions"]["period_start"] == "2026-06-01T00:00:00+00:00"
