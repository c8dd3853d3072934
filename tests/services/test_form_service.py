"""Tests for FormService: creation quotas, templates, settings gates, export and deletes."""

from datetime import UTC, date, datetime

import pytest
from sqlalchemy import func, select

from formrelay.core.exceptions import NotFoundError, PlanRestrictedError, QuotaExceededError
from formrelay.db.models import EmailSettings, Form, GlobalSettings, Submission
from formrelay.domain.entitlements import PlanTier
from formrelay.services.form_service import FormService
from formrelay.services.quota_service import QuotaLedger

pytestmark = pytest.mark.integration


@pytest.fixture
def service(store):
    return FormService(store, QuotaLedger(store))


async def count(session_factory, model):
    async with session_factory() as session:
        return (await session.execute(select(func.count(model.id)))).scalar()


class TestCreate:
    async def test_custom_form_gets_prefilled_settings(self, service, make_tenant):
        ctx = await make_tenant(PlanTier.FREE)

        form = await service.create_form(ctx, "Beta signup", "Early access", '{"fields": []}')

        assert form.tenant_id == ctx.tenant_id
        assert form.email_settings.enabled is False
        assert form.email_settings.subject == "Form Submission Confirmation - Beta signup"
        assert form.email_settings.from_email == "contact@formrelay.dev"

    async def test_free_tenant_at_form_cap_is_rejected_without_write(self, service, session_factory, make_tenant):
        ctx = await make_tenant(PlanTier.FREE)
        await service.create_form(ctx, "First", None, "{}")

        with pytest.raises(QuotaExceededError):
            await service.create_form(ctx, "Second", None, "{}")
        with pytest.raises(QuotaExceededError):
            await service.create_from_template(ctx, "waitlist")

        assert await count(session_factory, Form) == 1

    async def test_from_template(self, service, make_tenant):
        ctx = await make_tenant(PlanTier.STANDARD)

        form = await service.create_from_template(ctx, "feedback")

        assert form.name == "Feedback Form"
        assert '"rating"' in form.schema
        assert form.email_settings.enabled is False

    async def test_unknown_template(self, service, make_tenant):
        ctx = await make_tenant(PlanTier.STANDARD)
        with pytest.raises(NotFoundError):
            await service.create_from_template(ctx, "survey")

    async def test_list_forms_paginates_with_cursor(self, service, make_tenant, make_form, session_factory):
        ctx = await make_tenant(PlanTier.PRO)
        forms = [await make_form(ctx, name=f"Form {i}") for i in range(3)]
        async with session_factory() as session:
            session.add(Submission(form_id=forms[2].id, data={}))
            await session.commit()

        first = await service.list_forms(ctx, limit=2)
        second = await service.list_forms(ctx, limit=2, cursor=first["next_cursor"])

        names = [item["name"] for item in first["items"] + second["items"]]
        assert sorted(names) == ["Form 0", "Form 1", "Form 2"]
        assert len(set(names)) == 3
        assert second["next_cursor"] is None
        counts = {item["name"]: item["submission_count"] for item in first["items"] + second["items"]}
        assert counts["Form 2"] == 1


class TestEmailSettings:
    async def test_get_lazily_creates_defaults(self, service, make_tenant, make_form):
        ctx = await make_tenant(PlanTier.FREE)
        form = await make_form(ctx)

        settings = await service.get_email_settings(ctx, form.id)

        assert settings.form_id == form.id
        assert settings.enabled is False
        assert settings.max_notifications_per_hour == 10

    async def test_foreign_form_is_not_found(self, service, make_tenant, make_form):
        owner = await make_tenant(PlanTier.PRO)
        intruder = await make_tenant(PlanTier.PRO)
        form = await make_form(owner)

        with pytest.raises(NotFoundError) as exc_info:
            await service.get_email_settings(intruder, form.id)
        assert exc_info.value.message == "Form not found"

    async def test_free_tenant_cannot_enable_confirmations(self, service, make_tenant, make_form):
        ctx = await make_tenant(PlanTier.FREE)
        form = await make_form(ctx)

        with pytest.raises(PlanRestrictedError) as exc_info:
            await service.toggle_email_settings(ctx, form.id, enabled=True)
        assert exc_info.value.required_plan == "STANDARD"

    async def test_toggle_with_developer_block(self, service, make_tenant, make_form):
        ctx = await make_tenant(PlanTier.STANDARD)
        form = await make_form(ctx, settings={})

        settings = await service.toggle_email_settings(
            ctx,
            form.id,
            enabled=True,
            developer_notifications={
                "enabled": True,
                "digest_frequency": "daily",
                "conditions": [{"field": "rating", "operator": "lessThan", "value": "3"}],
                "max_notifications_per_hour": 25,
            },
        )

        assert settings.enabled is True
        assert settings.developer_notifications_enabled is True
        assert settings.digest_frequency == "daily"
        assert settings.max_notifications_per_hour == 25
        assert settings.notification_conditions[0]["field"] == "rating"

    async def test_update_is_partial(self, service, make_tenant, make_form):
        ctx = await make_tenant(PlanTier.STANDARD)
        form = await make_form(ctx, settings={"subject": "Keep me", "enabled": True})

        settings = await service.update_email_settings(ctx, form.id, developer_email="dev@example.com", subject=None)

        assert settings.subject == "Keep me"
        assert settings.enabled is True
        assert settings.developer_email == "dev@example.com"

    async def test_global_form_id_routes_to_global_settings(self, service, session_factory, make_tenant):
        ctx = await make_tenant(PlanTier.PRO)

        result = await service.update_email_settings(ctx, "global", developer_notifications_enabled=True)

        assert isinstance(result, GlobalSettings)
        assert result.developer_notifications_enabled is True
        assert await count(session_factory, EmailSettings) == 0


class TestGlobalSettings:
    async def test_defaults_when_absent(self, service, make_tenant):
        ctx = await make_tenant(PlanTier.FREE)
        assert await service.get_global_settings(ctx) == {
            "developer_notifications_enabled": False,
            "developer_email": None,
            "max_notifications_per_hour": 10,
        }

    @pytest.mark.parametrize("plan", [PlanTier.FREE, PlanTier.STANDARD])
    async def test_update_requires_pro(self, service, make_tenant, plan):
        ctx = await make_tenant(plan)
        with pytest.raises(PlanRestrictedError) as exc_info:
            await service.update_global_settings(ctx, developer_email="team@example.com")
        assert exc_info.value.required_plan == "PRO"

    async def test_pro_update_round_trips(self, service, make_tenant):
        ctx = await make_tenant(PlanTier.PRO)
        await service.update_global_settings(ctx, developer_email="team@example.com", max_notifications_per_hour=50)
        assert await service.get_global_settings(ctx) == {
            "developer_notifications_enabled": False,
            "developer_email": "team@example.com",
            "max_notifications_per_hour": 50,
        }


class TestSubmissionsOfForm:
    async def test_export_strips_meta_and_honours_range(self, service, session_factory, make_tenant, make_form):
        ctx = await make_tenant(PlanTier.PRO)
        form = await make_form(ctx)
        async with session_factory() as session:
            session.add_all([
                Submission(
                    form_id=form.id,
                    email="a@b.com",
                    data={"email": "a@b.com", "name": "A", "_meta": {"browser": "Chrome", "country": "DE"}},
                    created_at=datetime(2026, 4, 2, 9, 0, tzinfo=UTC),
                ),
                Submission(form_id=form.id, data={"name": "Old"}, created_at=datetime(2026, 3, 1, tzinfo=UTC)),
            ])
            await session.commit()

        records = await service.export(ctx, form.id, start_date=date(2026, 4, 1), end_date=date(2026, 4, 2))

        assert len(records) == 1
        record = records[0]
        assert "_meta" not in record
        assert record["name"] == "A"
        assert record["browser"] == "Chrome"
        assert record["country"] == "DE"
        assert record["created_at"] == "2026-04-02T09:00:00+00:00"

    async def test_analytics_for_owned_form(self, service, make_tenant, make_form):
        ctx = await make_tenant(PlanTier.FREE)
        form = await make_form(ctx)
        stats = await service.analytics(ctx, form.id, "month")
        assert stats["total_submissions"] == 0
        assert len(stats["time_series"]) == 30

    async def test_delete_foreign_submission_is_not_found(self, service, store, make_tenant, make_form):
        owner = await make_tenant(PlanTier.PRO)
        intruder = await make_tenant(PlanTier.PRO)
        form = await make_form(owner)
        submission = await store.create_submission(form.id, {"a": 1}, None)

        with pytest.raises(NotFoundError):
            await service.delete_submission(intruder, submission.id)
        await service.delete_submission(owner, submission.id)

        assert await store.find_submission(submission.id, owner.tenant_id) is None
