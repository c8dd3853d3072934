"""Shared test fixtures: a temporary SQLite store, a recording mail transport and row factories."""

import pytest

import formrelay.db.models  # noqa: F401
from formrelay.core.exceptions import DeliveryError
from formrelay.db.base import build_engine, build_session_factory, create_tables
from formrelay.db.models import EmailSettings, Form, GlobalSettings, Tenant
from formrelay.db.store import SubmissionStore
from formrelay.domain.context import RequestContext
from formrelay.domain.entitlements import PlanTier
from formrelay.services.email_rendering import EmailRenderer
from formrelay.services.mail import MailMessage


class RecordingTransport:
    """Mail transport that records messages; recipients in ``fail_for`` raise DeliveryError."""

    def __init__(self, fail_for: set[str] | None = None):
        self.sent: list[MailMessage] = []
        self.fail_for = fail_for or set()

    async def send(self, message: MailMessage) -> str | None:
        if message.to in self.fail_for:
            raise DeliveryError(f"Mailbox unavailable: {message.to}")
        self.sent.append(message)
        return f"msg_{len(self.sent)}"


@pytest.fixture
async def session_factory(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'formrelay.db'}")
    await create_tables(engine)
    yield build_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def store(session_factory) -> SubmissionStore:
    return SubmissionStore(session_factory)


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def renderer() -> EmailRenderer:
    return EmailRenderer("contact@formrelay.dev", "contact@formrelay.dev")


@pytest.fixture
def make_tenant(session_factory):
    """Insert a tenant and return its RequestContext."""
    counter = {"n": 0}

    async def _make(plan: PlanTier = PlanTier.FREE, email: str | None = "owner@example.com") -> RequestContext:
        counter["n"] += 1
        async with session_factory() as session:
            tenant = Tenant(clerk_user_id=f"user_{counter['n']}", email=email, plan=plan.value)
            session.add(tenant)
            await session.commit()
            return RequestContext(tenant_id=tenant.id, plan=plan, owner_email=email)

    return _make


@pytest.fixture
def make_form(session_factory):
    """Insert a form, optionally with EmailSettings (``settings=None`` leaves the form without a row)."""

    async def _make(ctx: RequestContext, name: str = "Contact", settings: dict | None = None) -> Form:
        async with session_factory() as session:
            form = Form(tenant_id=ctx.tenant_id, name=name, schema="{}")
            if settings is not None:
                form.email_settings = EmailSettings(**settings)
            session.add(form)
            await session.commit()
            return form

    return _make


@pytest.fixture
def make_global_settings(session_factory):
    async def _make(ctx: RequestContext, **fields) -> GlobalSettings:
        async with session_factory() as session:
            row = GlobalSettings(tenant_id=ctx.tenant_id, **fields)
            session.add(row)
            await session.commit()
            return row

    return _make
