"""Tenant provisioning on first login.

Idempotent: repeat calls for the same Clerk user return the existing tenant.
A concurrent first request that loses the insert race re-reads the winner's row.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from formrelay.db.base import get_session_factory
from formrelay.db.models.tenant import Tenant
from formrelay.domain.entitlements import PlanTier


async def provision_tenant_on_first_login(
    clerk_user_id: str,
    jwt_claims: dict,
    session: AsyncSession | None = None,
) -> Tenant:
    """Return the tenant for a Clerk user, creating a FREE tenant if none exists.

    Args:
        clerk_user_id: Clerk user ID from JWT
        jwt_claims: JWT claims dict containing email and name
        session: Optional AsyncSession for testing (if None, creates new session)
    """
    if session is not None:
        return await _do_provision(clerk_user_id, jwt_claims, session)

    factory = get_session_factory()
    async with factory() as session:
        return await _do_provision(clerk_user_id, jwt_claims, session)


async def _find(session: AsyncSession, clerk_user_id: str) -> Tenant | None:
    result = await session.execute(select(Tenant).where(Tenant.clerk_user_id == clerk_user_id))
    return result.scalar_one_or_none()


async def _do_provision(clerk_user_id: str, jwt_claims: dict, session: AsyncSession) -> Tenant:
    tenant = await _find(session, clerk_user_id)
    if tenant is not None:
        return tenant

    tenant = Tenant(
        clerk_user_id=clerk_user_id,
        email=jwt_claims.get("email") or None,
        name=jwt_claims.get("name") or None,
        plan=PlanTier.FREE.value,
    )
    session.add(tenant)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        tenant = await _find(session, clerk_user_id)
        if tenant is None:
            raise
    return tenant
