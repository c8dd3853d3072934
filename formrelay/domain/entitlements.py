"""Plan tier entitlements.

Every plan-gated decision in the service reads a capability from here
instead of comparing tier names. Limits use -1 for unlimited.
"""

from dataclasses import dataclass
from enum import StrEnum

UNLIMITED = -1


class PlanTier(StrEnum):
    """Ordered service levels. Mutated only by the billing flow."""

    FREE = "FREE"
    STANDARD = "STANDARD"
    PRO = "PRO"


@dataclass(frozen=True)
class Entitlements:
    """Capability set granted by a plan tier."""

    plan: PlanTier
    max_forms: int
    max_submissions_per_month: int
    can_send_confirmations: bool
    can_send_developer_notifications: bool
    can_search_submissions: bool
    can_filter_by_date: bool
    can_configure_global_notifications: bool


PLAN_ENTITLEMENTS: dict[PlanTier, Entitlements] = {
    PlanTier.FREE: Entitlements(
        plan=PlanTier.FREE,
        max_forms=1,
        max_submissions_per_month=200,
        can_send_confirmations=False,
        can_send_developer_notifications=False,
        can_search_submissions=False,
        can_filter_by_date=False,
        can_configure_global_notifications=False,
    ),
    PlanTier.STANDARD: Entitlements(
        plan=PlanTier.STANDARD,
        max_forms=5,
        max_submissions_per_month=5000,
        can_send_confirmations=True,
        can_send_developer_notifications=True,
        can_search_submissions=True,
        can_filter_by_date=False,
        can_configure_global_notifications=False,
    ),
    PlanTier.PRO: Entitlements(
        plan=PlanTier.PRO,
        max_forms=UNLIMITED,
        max_submissions_per_month=UNLIMITED,
        can_send_confirmations=True,
        can_send_developer_notifications=True,
        can_search_submissions=True,
        can_filter_by_date=True,
        can_configure_global_notifications=True,
    ),
}


def get_entitlements(plan: PlanTier | str) -> Entitlements:
    """Return the capability set for a plan tier.

    Unknown tier names resolve to FREE so a bad row never grants more
    than the lowest tier.
    """
    try:
        tier = PlanTier(plan)
    except ValueError:
        tier = PlanTier.FREE
    return PLAN_ENTITLEMENTS[tier]


def lowest_plan_with(capability: str) -> PlanTier:
    """Name the cheapest tier that grants a boolean capability."""
    for tier in PlanTier:
        if getattr(PLAN_ENTITLEMENTS[tier], capability):
            return tier
    raise ValueError(f"No plan grants {capability}")
