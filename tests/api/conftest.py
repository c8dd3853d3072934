"""API-specific test fixtures.

The app under test is assembled from the real routers and exception
handlers, backed by a temporary SQLite file. Authentication is replaced by
a dependency that takes the bearer token as the Clerk user id; the real
tenant provisioning still runs.
"""

from contextlib import asynccontextmanager

import pytest
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, update

from formrelay.api.routes import api_router
from formrelay.core.auth import ClerkUser, require_auth
from formrelay.db.models import Tenant
from formrelay.domain.entitlements import PlanTier
from formrelay.main import register_exception_handlers
from formrelay.middleware.correlation import setup_correlation_middleware
from formrelay.services.mail import get_mail_transport
from tests.conftest import RecordingTransport

_bearer = HTTPBearer(auto_error=False)


async def _token_is_user_id(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> ClerkUser:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing authorization header")
    user_id = credentials.credentials
    request.state.user_id = user_id
    return ClerkUser(user_id=user_id, claims={"sub": user_id, "email": f"{user_id}@test.com"})


def auth(user_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {user_id}"}


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "api.db"


@pytest.fixture
def mail_transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def api_client(db_path, mail_transport):
    """TestClient whose lifespan initialises the global engine in the client's own loop."""
    import formrelay.db.base as db_mod
    from formrelay.db import close_db, init_db

    @asynccontextmanager
    async def test_lifespan(app: FastAPI):
        db_mod._engine = None
        db_mod._session_factory = None
        await init_db(f"sqlite+aiosqlite:///{db_path}")
        yield
        await close_db()

    app = FastAPI(title="FormRelay - Test Client", lifespan=test_lifespan)
    setup_correlation_middleware(app)
    register_exception_handlers(app)
    app.include_router(api_router, prefix="/api")

    app.dependency_overrides[require_auth] = _token_is_user_id
    app.dependency_overrides[get_mail_transport] = lambda: mail_transport

    with TestClient(app) as client:
        yield client


@pytest.fixture
def set_plan(db_path):
    """Change a provisioned tenant's plan, standing in for the billing flow."""

    def _set(user_id: str, plan: PlanTier) -> None:
        engine = create_engine(f"sqlite:///{db_path}")
        try:
            with engine.begin() as conn:
                conn.execute(update(Tenant).where(Tenant.clerk_user_id == user_id).values(plan=plan.value))
        finally:
            engine.dispose()

    return _set


@pytest.fixture
def tenant(api_client, set_plan):
    """Provision a tenant through the API and move it to the requested plan."""

    def _make(user_id: str, plan: PlanTier = PlanTier.FREE) -> dict[str, str]:
        headers = auth(user_id)
        assert api_client.get("/api/usage", headers=headers).status_code == 200
        if plan != PlanTier.FREE:
            set_plan(user_id, plan)
        return headers

    return _make
