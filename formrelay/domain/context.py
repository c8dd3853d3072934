"""Per-request tenant context threaded explicitly through the services."""

from dataclasses import dataclass

from formrelay.domain.entitlements import Entitlements, PlanTier, get_entitlements


@dataclass(frozen=True)
class RequestContext:
    """Resolved identity of the tenant making a request."""

    tenant_id: str
    plan: PlanTier
    owner_email: str | None = None

    @property
    def entitlements(self) -> Entitlements:
        return get_entitlements(self.plan)
